"""
Django admin configuration for WifiPay with Jazzmin
"""

import csv

from django.contrib import admin, messages
from django.http import HttpResponse
from django.utils.html import format_html

from . import store
from .exceptions import InvalidTransition
from .models import (
    Package,
    Payment,
    PaymentWebhook,
    Router,
    Tenant,
    VerificationAttempt,
    Voucher,
)
from .payments import reconcile_payment
from .utils import format_duration

BADGE = '<span style="background: {}; color: white; padding: 2px 8px; border-radius: 4px;">{}</span>'


def badge(color, text):
    return format_html(BADGE, color, text)


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ["business_name", "slug", "paybill_number", "commission_rate", "is_active"]
    list_filter = ["is_active"]
    search_fields = ["business_name", "slug", "paybill_number"]
    readonly_fields = ["api_key", "created_at"]
    prepopulated_fields = {"slug": ("business_name",)}


@admin.register(Router)
class RouterAdmin(admin.ModelAdmin):
    """Manage MikroTik routers"""

    list_display = ["name", "tenant_name", "host", "status_badge", "last_seen", "is_active"]
    list_filter = ["status", "is_active", "tenant"]
    search_fields = ["name", "host", "tenant__business_name"]
    readonly_fields = ["last_seen", "last_error", "created_at", "updated_at"]

    fieldsets = (
        ("Router Info", {"fields": ("tenant", "name")}),
        ("Connection", {"fields": ("host", "port", "username", "password", "use_ssl")}),
        ("Hotspot Settings", {"fields": ("hotspot_server",)}),
        (
            "Status",
            {
                "fields": (
                    "status",
                    "last_seen",
                    "last_error",
                    "is_active",
                    "created_at",
                    "updated_at",
                )
            },
        ),
    )

    def tenant_name(self, obj):
        return obj.tenant.business_name

    tenant_name.short_description = "Tenant"

    def status_badge(self, obj):
        colors = {
            "online": "green",
            "offline": "red",
            "configuring": "orange",
            "error": "red",
        }
        return badge(colors.get(obj.status, "gray"), obj.status.upper())

    status_badge.short_description = "Status"


@admin.register(Package)
class PackageAdmin(admin.ModelAdmin):
    list_display = ["name", "display_name", "router", "duration", "price", "currency", "is_active"]
    list_filter = ["is_active", "router__tenant"]
    search_fields = ["name", "display_name", "router__name"]

    def duration(self, obj):
        return format_duration(obj.duration_minutes)


@admin.register(Voucher)
class VoucherAdmin(admin.ModelAdmin):
    list_display = [
        "reference",
        "code",
        "router",
        "package_name",
        "duration_display",
        "state_badge",
        "expires_at",
        "batch_id",
        "created_at",
    ]
    list_filter = ["state", "used", "timed_on_purchase", "router__tenant", "created_at"]
    search_fields = ["reference", "code", "transaction_id", "batch_id", "device_mac"]
    readonly_fields = [
        "code",
        "password",
        "reference",
        "state",
        "used",
        "start_time",
        "expected_end_time",
        "end_time",
        "paid_at",
        "expires_at",
        "activation_expires_at",
        "expired_reason",
        "synced_at",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]
    actions = ["export_vouchers_csv", "cancel_vouchers"]

    def duration_display(self, obj):
        return format_duration(obj.duration_minutes)

    duration_display.short_description = "Duration"

    def state_badge(self, obj):
        colors = {
            Voucher.STATE_ACTIVE: "green",
            Voucher.STATE_PAID: "blue",
            Voucher.STATE_USED: "orange",
            Voucher.STATE_EXPIRED: "gray",
            Voucher.STATE_CANCELLED: "red",
        }
        return badge(colors.get(obj.state, "gray"), obj.state.upper())

    state_badge.short_description = "State"

    def export_vouchers_csv(self, request, queryset):  # noqa: ARG002
        """Export selected vouchers to CSV"""
        response = HttpResponse(content_type="text/csv")
        response["Content-Disposition"] = 'attachment; filename="vouchers.csv"'

        writer = csv.writer(response)
        writer.writerow(["Reference", "Code", "Package", "Duration", "Price", "State", "Expires"])
        for voucher in queryset:
            writer.writerow(
                [
                    voucher.reference,
                    voucher.code,
                    voucher.package_display_name or voucher.package_name,
                    format_duration(voucher.duration_minutes),
                    voucher.price,
                    voucher.state,
                    voucher.expires_at.isoformat(),
                ]
            )
        return response

    export_vouchers_csv.short_description = "Export selected vouchers to CSV"

    def cancel_vouchers(self, request, queryset):
        cancelled = 0
        for voucher in queryset:
            try:
                store.cancel(voucher)
                cancelled += 1
            except InvalidTransition as e:
                self.message_user(request, str(e), level=messages.WARNING)
        self.message_user(request, f"Cancelled {cancelled} vouchers")

    cancel_vouchers.short_description = "Cancel selected vouchers"


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = [
        "transaction_id",
        "amount",
        "payer_reference",
        "status_badge",
        "reconciled",
        "reconciliation_error",
        "created_at",
    ]
    list_filter = ["status", "reconciled", "reconciliation_error", "tenant"]
    search_fields = ["transaction_id", "payer_reference", "phone_number"]
    readonly_fields = ["created_at", "updated_at", "completed_at", "reconciled_at"]
    actions = ["retry_reconciliation"]

    def status_badge(self, obj):
        colors = {"pending": "orange", "completed": "green", "failed": "red"}
        return badge(colors.get(obj.status, "gray"), obj.status.upper())

    status_badge.short_description = "Status"

    def retry_reconciliation(self, request, queryset):
        reconciled = 0
        for payment in queryset.filter(status=Payment.STATUS_COMPLETED, reconciled=False):
            payment.reconciliation_error = ""
            if reconcile_payment(payment):
                reconciled += 1
        self.message_user(request, f"Reconciled {reconciled} payments")

    retry_reconciliation.short_description = "Retry reconciliation"


@admin.register(PaymentWebhook)
class PaymentWebhookAdmin(admin.ModelAdmin):
    list_display = ["transaction_id", "source", "event_type", "processing_status", "received_at"]
    list_filter = ["source", "processing_status"]
    search_fields = ["transaction_id"]
    readonly_fields = [
        "source",
        "event_type",
        "transaction_id",
        "raw_payload",
        "received_at",
        "processed_at",
        "processing_status",
        "processing_error",
        "payment",
        "source_ip",
    ]


@admin.register(VerificationAttempt)
class VerificationAttemptAdmin(admin.ModelAdmin):
    list_display = ["timestamp", "mac_address", "router_id_raw", "transaction_code", "success", "error_code"]
    list_filter = ["success", "error_code"]
    search_fields = ["mac_address", "transaction_code"]
    date_hierarchy = "timestamp"

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
