"""
Read-side reporting for operators and the captive portal

Voucher listings, per-router statistics, CSV/JSON export and the public
package catalogue. Nothing here changes state.
"""

import csv
import io
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List

from django.db.models import Count, Q, Sum
from django.utils import timezone

from .models import Package, Router, Voucher
from .utils import format_bandwidth, format_duration

DATE_RANGES = ("all", "today", "week", "month", "3months")

CSV_HEADERS = [
    "Reference",
    "Code",
    "Password",
    "Package",
    "Duration (minutes)",
    "Price",
    "State",
    "Created At",
    "Expires At",
    "Used",
    "Transaction ID",
    "Device MAC",
    "Batch ID",
]


def range_start(date_range, now=None):
    """Start of a named date range, None for 'all'"""
    now = timezone.localtime(now or timezone.now())
    if date_range == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if date_range == "week":
        return now - timedelta(days=7)
    if date_range == "month":
        return now - timedelta(days=30)
    if date_range == "3months":
        return now - timedelta(days=90)
    return None


def filter_vouchers(
    router, state=None, package=None, batch_id=None, search=None, date_range=None, now=None
):
    """Vouchers on `router` matching the operator's filters, newest first"""
    vouchers = Voucher.objects.filter(router=router)

    if state and state != "all":
        vouchers = vouchers.filter(state=state)
    if package and package != "all":
        vouchers = vouchers.filter(package_name=package)
    if batch_id:
        vouchers = vouchers.filter(batch_id=batch_id)
    if search:
        vouchers = vouchers.filter(
            Q(code__icontains=search)
            | Q(reference__icontains=search)
            | Q(transaction_id__icontains=search)
            | Q(payer_phone__icontains=search)
            | Q(device_mac__icontains=search)
        )

    start = range_start(date_range, now) if date_range else None
    if start is not None:
        vouchers = vouchers.filter(created_at__gte=start)

    return vouchers.order_by("-created_at", "-pk")


def state_counts(vouchers) -> Dict[str, int]:
    counts = {state: 0 for state, _ in Voucher.STATE_CHOICES}
    for row in vouchers.order_by().values("state").annotate(count=Count("id")):
        counts[row["state"]] = row["count"]
    counts["total"] = sum(counts.values())
    return counts


def _money(value) -> str:
    return str((value or Decimal("0")).quantize(Decimal("0.01")))


class VoucherStats:
    """Per-router voucher statistics for the operator dashboard"""

    def __init__(self, router: Router, now=None):
        self.router = router
        self.now = now or timezone.now()
        self.vouchers = Voucher.objects.filter(router=router)

    def summary(self) -> Dict[str, Any]:
        counts = state_counts(self.vouchers)
        return {
            "vouchers": counts,
            "revenue": self._revenue(),
            "usage": self._usage(counts["total"]),
            "package_breakdown": self._package_breakdown(),
            "recent_vouchers": self._recent(),
        }

    def _revenue(self) -> Dict[str, str]:
        sold = self.vouchers.filter(paid_at__isnull=False)
        totals = sold.aggregate(total=Sum("amount_paid"), commission=Sum("commission"))
        total = totals["total"] or Decimal("0")
        commission = totals["commission"] or Decimal("0")

        def since(date_range):
            start = range_start(date_range, self.now)
            return sold.filter(paid_at__gte=start).aggregate(total=Sum("amount_paid"))["total"]

        return {
            "total": _money(total),
            "commission": _money(commission),
            "net": _money(total - commission),
            "today": _money(since("today")),
            "week": _money(since("week")),
            "month": _money(since("month")),
        }

    def _usage(self, total) -> Dict[str, int]:
        used = self.vouchers.filter(used=True).count()
        return {
            "used": used,
            "unused": total - used,
            "percentage": round(used * 100 / total) if total else 0,
            "data_used": self.vouchers.aggregate(total=Sum("data_used"))["total"] or 0,
        }

    def _package_breakdown(self) -> List[Dict[str, Any]]:
        rows = (
            self.vouchers.order_by()
            .values("package_name")
            .annotate(
                count=Count("id"),
                used=Count("id", filter=Q(used=True)),
                revenue=Sum("amount_paid", filter=Q(paid_at__isnull=False)),
            )
            .order_by("-revenue", "package_name")
        )
        return [
            {
                "package": row["package_name"],
                "count": row["count"],
                "used": row["used"],
                "revenue": _money(row["revenue"]),
            }
            for row in rows
        ]

    def _recent(self, limit=5) -> List[Dict[str, Any]]:
        return [
            {
                "reference": voucher.reference,
                "package": voucher.package_display_name or voucher.package_name,
                "price": str(voucher.price),
                "state": voucher.state,
                "created_at": voucher.created_at.isoformat(),
            }
            for voucher in self.vouchers.order_by("-created_at", "-pk")[:limit]
        ]


# =============================================================================
# EXPORT
# =============================================================================


def export_vouchers_csv(vouchers) -> str:
    """Render vouchers as CSV text"""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_HEADERS)

    for voucher in vouchers:
        writer.writerow([
            voucher.reference,
            voucher.code,
            voucher.password,
            voucher.package_display_name or voucher.package_name,
            voucher.duration_minutes,
            voucher.price,
            voucher.state,
            voucher.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            voucher.expires_at.strftime("%Y-%m-%d %H:%M:%S"),
            "Yes" if voucher.used else "No",
            voucher.transaction_id or "",
            voucher.device_mac or "",
            voucher.batch_id or "",
        ])

    return output.getvalue()


def export_filename(router, extension, now=None):
    stamp = timezone.localtime(now or timezone.now()).strftime("%Y-%m-%d")
    name = "".join(c if c.isalnum() else "_" for c in router.name).strip("_") or "router"
    return f"vouchers_{name}_{stamp}.{extension}"


# =============================================================================
# CAPTIVE PACKAGE CATALOGUE
# =============================================================================


def package_catalogue(router: Router, active_only: bool = True) -> Dict[str, Any]:
    """Packages a customer can buy on `router`, cheapest first"""
    packages = Package.objects.filter(router=router)
    if active_only:
        packages = packages.filter(is_active=True)

    items = [
        {
            "id": package.pk,
            "name": package.display_name or package.name,
            "profile": package.name,
            "price": str(package.price),
            "currency": package.currency,
            "duration": package.duration_minutes,
            "duration_display": format_duration(package.duration_minutes),
            "bandwidth": {
                "upload": package.upload_kbps,
                "download": package.download_kbps,
                "display": format_bandwidth(package.upload_kbps, package.download_kbps),
            },
            "data_limit_mb": package.data_limit_mb,
        }
        for package in packages.order_by("price", "duration_minutes")
    ]

    metadata: Dict[str, Any] = {"total_packages": len(items)}
    if items:
        prices = [Decimal(item["price"]) for item in items]
        metadata.update(
            cheapest_price=str(min(prices)),
            most_expensive_price=str(max(prices)),
            currency=items[0]["currency"],
        )

    return {
        "packages": items,
        "router": {"name": router.name, "status": router.status},
        "metadata": metadata,
    }
