"""
API tests for the captive portal, webhook and operator endpoints
"""

import hashlib
import hmac
import json
from unittest import mock

from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from vouchers.exceptions import DeviceOfflineError
from vouchers.models import Payment, PaymentWebhook, Router, Tenant, Voucher

from .base import VoucherTestMixin

MAC = "AA:BB:CC:DD:EE:FF"


class CaptivePortalViewTest(VoucherTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.voucher = self.make_voucher()
        self.verify_url = reverse("captive-verify")
        self.callback_url = reverse("captive-login-callback")

    def verify(self, code="RBK1234567", router_id=None, mac=MAC):
        return self.client.post(
            self.verify_url,
            {
                "transaction_code": code,
                "router_id": router_id or self.router.pk,
                "mac_address": mac,
            },
            format="json",
        )

    def test_verify_success(self):
        self.pay(self.voucher)

        response = self.verify()

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["valid"])
        self.assertEqual(response.data["voucher"]["code"], self.voucher.code)
        self.assertEqual(response.data["voucher"]["bandwidth"], "512kbps/2Mbps")

    def test_verify_business_error_is_200(self):
        response = self.verify(code="ZZZ9999999")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["success"])
        self.assertFalse(response.data["valid"])
        self.assertEqual(response.data["error"], "transaction_not_found")

    def test_verify_invalid_input(self):
        response = self.client.post(self.verify_url, {"mac_address": MAC}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data["success"])
        self.assertEqual(response.data["error"], "invalid_input")

    def test_verify_rate_limited(self):
        for _ in range(5):
            self.verify(code="ZZZ9999999")

        response = self.verify(code="ZZZ9999999")

        self.assertEqual(response.status_code, status.HTTP_429_TOO_MANY_REQUESTS)
        self.assertEqual(response.data["error"], "rate_limit_exceeded")
        self.assertGreater(int(response["Retry-After"]), 0)

    def test_login_callback(self):
        self.pay(self.voucher)
        body = {
            "voucher_code": self.voucher.code,
            "router_id": self.router.pk,
            "mac_address": MAC,
            "ip_address": "10.5.50.23",
        }

        first = self.client.post(self.callback_url, body, format="json")
        second = self.client.post(self.callback_url, body, format="json")

        self.assertEqual(first.status_code, status.HTTP_200_OK)
        self.assertFalse(first.data["already_started"])
        self.assertEqual(first.data["duration_minutes"], 60)
        self.assertTrue(second.data["already_started"])
        self.assertEqual(first.data["expected_end_time"], second.data["expected_end_time"])

    def test_login_callback_unknown_voucher(self):
        response = self.client.post(
            self.callback_url,
            {"voucher_code": "NOPE2345", "router_id": self.router.pk},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["error"], "voucher_not_found")

    def test_login_callback_missing_fields(self):
        response = self.client.post(self.callback_url, {"router_id": 0}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "invalid_input")
        self.assertIn("voucher_code", response.data["errors"])


class PaymentWebhookViewTest(VoucherTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.voucher = self.make_voucher()
        self.url = reverse("payment-webhook")
        self.body = {
            "event": "payment.completed",
            "transaction_id": "RBK1234567",
            "amount": "10.00",
            "payer_reference": self.voucher.reference,
            "phone_number": "254712345678",
            "recipient": "174379",
        }

    def test_completed_event(self):
        response = self.client.post(self.url, self.body, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["reconciled"])
        self.voucher.refresh_from_db()
        self.assertEqual(self.voucher.state, Voucher.STATE_PAID)

        log = PaymentWebhook.objects.get()
        self.assertEqual(log.processing_status, "processed")
        self.assertEqual(log.transaction_id, "RBK1234567")
        self.assertEqual(log.payment, Payment.objects.get())

    def test_duplicate_event_is_ignored(self):
        self.client.post(self.url, self.body, format="json")
        response = self.client.post(self.url, self.body, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["message"], "Duplicate webhook ignored")
        self.assertEqual(Payment.objects.count(), 1)
        self.assertEqual(
            list(PaymentWebhook.objects.order_by("pk").values_list("processing_status", flat=True)),
            ["processed", "ignored"],
        )

    def test_invalid_payload(self):
        response = self.client.post(self.url, {"event": "payment.refunded"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "invalid_input")
        self.assertEqual(PaymentWebhook.objects.get().processing_status, "failed")

    @override_settings(PAYMENT_WEBHOOK_SECRET="s3cret")
    def test_signature_required_when_configured(self):
        raw = json.dumps(self.body)

        rejected = self.client.post(
            self.url, raw, content_type="application/json", HTTP_X_WEBHOOK_SIGNATURE="bad"
        )
        self.assertEqual(rejected.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(rejected.data["error"], "invalid_signature")
        self.assertFalse(Payment.objects.exists())

        signature = hmac.new(b"s3cret", raw.encode(), hashlib.sha256).hexdigest()
        accepted = self.client.post(
            self.url,
            raw,
            content_type="application/json",
            HTTP_X_WEBHOOK_SIGNATURE=f"sha256={signature}",
        )
        self.assertEqual(accepted.status_code, status.HTTP_200_OK)
        self.assertTrue(accepted.data["reconciled"])

    def test_mpesa_confirmation(self):
        response = self.client.post(
            reverse("mpesa-confirmation"),
            {
                "TransactionType": "Pay Bill",
                "TransID": "RKL51ZDR4F",
                "TransTime": "20240115143000",
                "TransAmount": "10.00",
                "BusinessShortCode": "174379",
                "BillRefNumber": self.voucher.reference,
                "MSISDN": "254712345678",
            },
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {"ResultCode": 0, "ResultDesc": "Accepted"})
        self.voucher.refresh_from_db()
        self.assertEqual(self.voucher.state, Voucher.STATE_PAID)
        self.assertEqual(PaymentWebhook.objects.get().source, "mpesa_c2b")

    def test_mpesa_confirmation_rejects_bad_body(self):
        response = self.client.post(
            reverse("mpesa-confirmation"), {"TransAmount": "10"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["ResultCode"], 1)

    def test_mpesa_confirmation_rejects_nan_amount(self):
        response = self.client.post(
            reverse("mpesa-confirmation"),
            {"TransID": "RKL51ZDR4F", "TransAmount": "NaN", "BillRefNumber": self.voucher.reference},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["ResultCode"], 1)
        self.assertFalse(Payment.objects.exists())
        self.assertEqual(PaymentWebhook.objects.get().processing_status, "failed")

    def test_zero_amount_event_is_rejected(self):
        response = self.client.post(self.url, dict(self.body, amount="0.00"), format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("amount", response.data["errors"])

    @mock.patch("vouchers.views.process_payment_event", side_effect=RuntimeError("database is locked"))
    def test_processing_error_marks_log_failed(self, process):
        response = self.client.post(self.url, self.body, format="json")

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertFalse(response.data["success"])
        self.assertEqual(response.data["error"], "processing_failed")
        log = PaymentWebhook.objects.get()
        self.assertEqual(log.processing_status, "failed")
        self.assertIn("database is locked", log.processing_error)


class OperatorViewTest(VoucherTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.client.credentials(HTTP_X_API_KEY=self.tenant.api_key)
        self.sync_url = reverse("router-sync-vouchers", args=[self.router.pk])
        self.generate_url = reverse("router-generate-vouchers", args=[self.router.pk])

    def test_api_key_required(self):
        response = APIClient().post(self.sync_url)

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(response.data["success"])

    def test_unknown_api_key(self):
        client = APIClient()
        client.credentials(HTTP_X_API_KEY="not-a-key")
        self.assertEqual(client.post(self.sync_url).status_code, status.HTTP_403_FORBIDDEN)

    def test_other_tenants_router_is_hidden(self):
        other = Tenant.objects.create(business_name="Mama Mboga", slug="mboga")
        router = Router.objects.create(
            tenant=other, name="Shop", host="10.60.0.2", username="api", password="x"
        )

        response = self.client.post(reverse("router-sync-vouchers", args=[router.pk]))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    @mock.patch("vouchers.views.sync_router_vouchers")
    def test_sync(self, sync):
        sync.return_value = {
            "total": 1, "synced": 1, "failed": 0, "already_exists": 0, "details": []
        }

        response = self.client.post(self.sync_url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["results"]["synced"], 1)
        sync.assert_called_once()
        self.assertEqual(sync.call_args[0][0], self.router)

    @mock.patch("vouchers.views.sync_router_vouchers")
    def test_sync_offline_router(self, sync):
        sync.side_effect = DeviceOfflineError(self.router, "timed out")

        response = self.client.post(self.sync_url)

        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(response.data["error"], "device_offline")

    def test_generate(self):
        response = self.client.post(
            self.generate_url,
            {"package_id": self.package.pk, "quantity": 5, "expiry_days": 7},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["count"], 5)
        self.assertTrue(response.data["batch_id"].startswith("BATCH-"))
        self.assertEqual(len(response.data["vouchers"]), 5)
        self.assertNotIn("sync", response.data)
        self.assertEqual(
            Voucher.objects.filter(batch_id=response.data["batch_id"], created_by="api:kahawa").count(),
            5,
        )

    @mock.patch("vouchers.views.sync_router_vouchers")
    def test_generate_with_offline_sync(self, sync):
        sync.side_effect = DeviceOfflineError(self.router, "timed out")

        response = self.client.post(
            self.generate_url,
            {"package_id": self.package.pk, "quantity": 2, "sync_to_router": True},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertFalse(response.data["sync"]["success"])
        self.assertEqual(response.data["sync"]["error"], "device_offline")
        self.assertEqual(Voucher.objects.count(), 2)

    def test_generate_unknown_package(self):
        response = self.client.post(
            self.generate_url, {"package_id": 99999, "quantity": 5}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["error"], "package_not_found")

    def test_generate_rejects_large_batch(self):
        response = self.client.post(
            self.generate_url, {"package_id": self.package.pk, "quantity": 1001}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("quantity", response.data["errors"])

    def test_cancel(self):
        voucher = self.make_voucher()
        url = reverse("router-cancel-voucher", args=[self.router.pk, voucher.pk])

        response = self.client.post(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["voucher"]["state"], Voucher.STATE_CANCELLED)
        self.assertFalse(response.data["removed_from_router"])

        again = self.client.post(url)
        self.assertEqual(again.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(again.data["error"], "invalid_transition")

    @mock.patch("vouchers.views.remove_voucher_from_router", return_value=True)
    def test_cancel_synced_voucher_removes_user(self, remove):
        voucher = self.make_voucher()
        Voucher.objects.filter(pk=voucher.pk).update(synced_at=timezone.now())

        response = self.client.post(
            reverse("router-cancel-voucher", args=[self.router.pk, voucher.pk])
        )

        self.assertTrue(response.data["removed_from_router"])
        remove.assert_called_once()

    def test_cancel_unknown_voucher(self):
        response = self.client.post(
            reverse("router-cancel-voucher", args=[self.router.pk, 99999])
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
