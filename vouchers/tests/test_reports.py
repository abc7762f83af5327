"""
Tests for voucher listings, statistics, export and the captive package catalogue
"""

import csv
import io
from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from vouchers import store
from vouchers.models import Package, Router, Tenant, Voucher
from vouchers.reports import export_vouchers_csv, range_start

from .base import VoucherTestMixin


class VoucherReportViewTest(VoucherTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.client.credentials(HTTP_X_API_KEY=self.tenant.api_key)
        self.paid, self.cancelled, self.active = store.generate_batch(self.router, self.package, 3)
        self.pay(self.paid)
        store.cancel(self.cancelled)

    def get(self, name, **params):
        return self.client.get(reverse(name, args=[self.router.pk]), params)

    def test_list_vouchers(self):
        response = self.get("router-list-vouchers")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["success"])
        self.assertEqual(len(response.data["vouchers"]), 3)
        self.assertEqual(
            response.data["pagination"], {"total": 3, "limit": 100, "skip": 0, "has_more": False}
        )
        self.assertNotIn("password", response.data["vouchers"][0])

    def test_list_filters(self):
        response = self.get("router-list-vouchers", state="paid")
        self.assertEqual([v["reference"] for v in response.data["vouchers"]], [self.paid.reference])

        response = self.get("router-list-vouchers", search="rbk12")
        self.assertEqual([v["reference"] for v in response.data["vouchers"]], [self.paid.reference])

        response = self.get("router-list-vouchers", batch_id="BATCH-NOPE")
        self.assertEqual(response.data["pagination"]["total"], 0)

    def test_list_pagination(self):
        first = self.get("router-list-vouchers", limit=2)
        second = self.get("router-list-vouchers", limit=2, skip=2)

        self.assertEqual(len(first.data["vouchers"]), 2)
        self.assertTrue(first.data["pagination"]["has_more"])
        self.assertEqual(len(second.data["vouchers"]), 1)
        self.assertFalse(second.data["pagination"]["has_more"])
        seen = {v["id"] for v in first.data["vouchers"] + second.data["vouchers"]}
        self.assertEqual(len(seen), 3)

    def test_list_rejects_unknown_state(self):
        response = self.get("router-list-vouchers", state="refunded")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("state", response.data["errors"])

    def test_reports_require_api_key(self):
        response = APIClient().get(reverse("router-voucher-stats", args=[self.router.pk]))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_other_tenants_router_is_hidden(self):
        other = Tenant.objects.create(business_name="Mama Mboga", slug="mboga")
        router = Router.objects.create(
            tenant=other, name="Shop", host="10.60.0.2", username="api", password="x"
        )

        for name in ("router-list-vouchers", "router-voucher-stats", "router-export-vouchers"):
            response = self.client.get(reverse(name, args=[router.pk]))
            self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_stats(self):
        response = self.get("router-voucher-stats")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        stats = response.data["stats"]
        self.assertEqual(
            stats["vouchers"],
            {"active": 1, "paid": 1, "used": 0, "expired": 0, "cancelled": 1, "total": 3},
        )
        self.assertEqual(stats["revenue"]["total"], "10.00")
        self.assertEqual(stats["revenue"]["commission"], "2.00")
        self.assertEqual(stats["revenue"]["net"], "8.00")
        self.assertEqual(stats["revenue"]["today"], "10.00")
        self.assertEqual(stats["usage"]["used"], 0)
        self.assertEqual(stats["usage"]["percentage"], 0)
        self.assertEqual(
            stats["package_breakdown"],
            [{"package": "1hr", "count": 3, "used": 0, "revenue": "10.00"}],
        )
        self.assertEqual(len(stats["recent_vouchers"]), 3)

    def test_stats_count_used_vouchers(self):
        store.start_usage(self.paid)

        stats = self.get("router-voucher-stats").data["stats"]

        self.assertEqual(stats["usage"]["used"], 1)
        self.assertEqual(stats["usage"]["unused"], 2)
        self.assertEqual(stats["usage"]["percentage"], 33)

    def test_history_date_range(self):
        Voucher.objects.filter(pk=self.cancelled.pk).update(
            created_at=timezone.now() - timedelta(days=40)
        )

        response = self.get("router-voucher-history", date_range="month")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["pagination"]["total"], 2)
        self.assertNotIn(self.cancelled.pk, [v["id"] for v in response.data["vouchers"]])
        # The summary ignores the filters
        self.assertEqual(response.data["summary"]["total"], 3)
        self.assertEqual(response.data["summary"]["cancelled"], 1)

    def test_export_csv(self):
        response = self.get("router-export-vouchers")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response["Content-Type"], "text/csv")
        self.assertIn('filename="vouchers_Main_Hall_', response["Content-Disposition"])

        rows = list(csv.reader(io.StringIO(response.content.decode())))
        self.assertEqual(rows[0][:3], ["Reference", "Code", "Password"])
        self.assertEqual(len(rows), 4)
        self.assertEqual({row[0] for row in rows[1:]}, {
            self.paid.reference, self.cancelled.reference, self.active.reference
        })

    def test_export_json_with_filter(self):
        response = self.get("router-export-vouchers", output="json", state="active")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn(".json", response["Content-Disposition"])
        self.assertEqual([v["reference"] for v in response.data["vouchers"]], [self.active.reference])

    def test_export_nothing_to_export(self):
        response = self.get("router-export-vouchers", state="used")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["error"], "no_vouchers")


class CaptivePackagesViewTest(VoucherTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.url = reverse("captive-packages")
        Package.objects.create(
            router=self.router,
            name="1day",
            display_name="Day Pass",
            duration_minutes=1440,
            upload_kbps=1024,
            download_kbps=5120,
            price=Decimal("50.00"),
        )
        Package.objects.create(
            router=self.router,
            name="30min",
            duration_minutes=30,
            price=Decimal("5.00"),
            is_active=False,
        )

    def test_lists_active_packages_cheapest_first(self):
        response = self.client.get(self.url, {"router_id": self.router.pk})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["success"])
        packages = response.data["packages"]
        self.assertEqual([p["profile"] for p in packages], ["1hr", "1day"])
        self.assertEqual(packages[0]["name"], "1 Hour Pass")
        self.assertEqual(packages[0]["duration_display"], "1 Hour")
        self.assertEqual(packages[0]["bandwidth"]["display"], "512kbps/2Mbps")
        self.assertEqual(packages[1]["duration_display"], "1 Day")
        self.assertEqual(packages[1]["bandwidth"]["display"], "1Mbps/5Mbps")
        self.assertEqual(response.data["router"]["name"], "Main Hall")
        self.assertEqual(response.data["metadata"]["total_packages"], 2)
        self.assertEqual(response.data["metadata"]["cheapest_price"], "10.00")
        self.assertEqual(response.data["metadata"]["most_expensive_price"], "50.00")
        self.assertIn("max-age", response["Cache-Control"])

    def test_inactive_packages_on_request(self):
        response = self.client.get(self.url, {"router_id": self.router.pk, "active_only": "false"})
        self.assertEqual(len(response.data["packages"]), 3)

    def test_router_without_packages(self):
        empty = Router.objects.create(
            tenant=self.tenant, name="Annex", host="10.50.0.3", username="api", password="x"
        )

        response = self.client.get(self.url, {"router_id": empty.pk})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["packages"], [])
        self.assertEqual(response.data["metadata"], {"total_packages": 0})
        self.assertIn("message", response.data)

    def test_bad_router_ids(self):
        missing = self.client.get(self.url)
        self.assertEqual(missing.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(missing.data["error"], "missing_router_id")

        invalid = self.client.get(self.url, {"router_id": "abc"})
        self.assertEqual(invalid.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(invalid.data["error"], "invalid_router_id")

        unknown = self.client.get(self.url, {"router_id": 99999})
        self.assertEqual(unknown.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(unknown.data["error"], "router_not_found")


class ReportHelpersTest(VoucherTestMixin, TestCase):
    def test_range_start(self):
        now = timezone.now()
        self.assertIsNone(range_start("all", now))
        self.assertEqual(range_start("week", now), now - timedelta(days=7))
        today = range_start("today", now)
        self.assertEqual((today.hour, today.minute, today.second), (0, 0, 0))
        self.assertLessEqual(today, now)

    def test_csv_marks_used_vouchers(self):
        voucher = self.make_voucher()
        self.pay(voucher)
        store.start_usage(voucher, mac_address="AA:BB:CC:DD:EE:FF")

        rows = list(csv.reader(io.StringIO(export_vouchers_csv([voucher]))))

        self.assertEqual(rows[1][0], voucher.reference)
        self.assertEqual(rows[1][6], "used")
        self.assertEqual(rows[1][9], "Yes")
        self.assertEqual(rows[1][10], "RBK1234567")
        self.assertEqual(rows[1][11], "AA:BB:CC:DD:EE:FF")
