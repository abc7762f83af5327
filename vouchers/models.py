"""
Database models for the WifiPay voucher platform
Vouchers, the routers that enforce them, and the payments that unlock them
"""

import secrets
import string
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone


# =============================================================================
# ACCOUNTS & DEVICES
# =============================================================================


def generate_api_key():
    return secrets.token_hex(24)


class Tenant(models.Model):
    """
    Customer account (hotspot operator) that owns routers and vouchers
    """

    business_name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=100, unique=True)
    api_key = models.CharField(max_length=64, unique=True, default=generate_api_key)

    # Paybill/till the provider reports as the payment recipient
    paybill_number = models.CharField(max_length=20, blank=True)
    # Platform commission taken from each voucher sale (percent)
    commission_rate = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal("20.00")
    )

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["business_name"]

    def __str__(self):
        return f"{self.business_name} ({self.slug})"


class Router(models.Model):
    """
    MikroTik router enforcing voucher logins for a tenant
    """

    STATUS_CHOICES = [
        ("online", "Online"),
        ("offline", "Offline"),
        ("configuring", "Configuring"),
        ("error", "Error"),
    ]

    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name="routers")
    name = models.CharField(max_length=100)

    # Connection settings (RouterOS API, usually over the VPN tunnel)
    host = models.CharField(max_length=255)
    port = models.IntegerField(default=8728)
    username = models.CharField(max_length=100)
    password = models.CharField(max_length=255)
    use_ssl = models.BooleanField(default=False)

    hotspot_server = models.CharField(max_length=50, default="hotspot1")

    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default="configuring"
    )
    last_seen = models.DateTimeField(null=True, blank=True)
    last_error = models.TextField(blank=True)

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["tenant", "name"]
        unique_together = ["tenant", "name"]

    def __str__(self):
        return f"{self.tenant.business_name} - {self.name} ({self.host})"


class Package(models.Model):
    """
    Sellable package configured on a router.
    `name` is the hotspot user profile on the device.
    """

    router = models.ForeignKey(Router, on_delete=models.CASCADE, related_name="packages")
    name = models.CharField(max_length=64)
    display_name = models.CharField(max_length=100, blank=True)
    duration_minutes = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    upload_kbps = models.PositiveIntegerField(default=512)
    download_kbps = models.PositiveIntegerField(default=1024)
    data_limit_mb = models.PositiveIntegerField(default=0)  # 0 = unlimited
    price = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, default="KES")
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["router", "duration_minutes"]
        unique_together = ["router", "name"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(duration_minutes__gte=1),
                name="package_duration_positive",
            ),
        ]

    def __str__(self):
        return f"{self.router.name} - {self.display_name or self.name} - {self.currency} {self.price}"


# =============================================================================
# VOUCHERS
# =============================================================================


class VoucherQuerySet(models.QuerySet):
    def sellable(self, now=None):
        """Unpaid, unused, unexpired vouchers that should exist as logins on the device"""
        return self.filter(
            state=Voucher.STATE_ACTIVE, used=False, expires_at__gt=now or timezone.now()
        )

    def due_for_expiry(self, now):
        return self.filter(
            expires_at__lte=now,
            state__in=Voucher.NON_TERMINAL_STATES,
        )


class Voucher(models.Model):
    """
    Time-boxed access credential.

    `code` is the private login (never shown before a payment check passes);
    `reference` is the public value customers quote when paying.
    """

    STATE_ACTIVE = "active"
    STATE_PAID = "paid"
    STATE_USED = "used"
    STATE_EXPIRED = "expired"
    STATE_CANCELLED = "cancelled"

    STATE_CHOICES = [
        (STATE_ACTIVE, "Active"),
        (STATE_PAID, "Paid"),
        (STATE_USED, "Used"),
        (STATE_EXPIRED, "Expired"),
        (STATE_CANCELLED, "Cancelled"),
    ]

    NON_TERMINAL_STATES = (STATE_ACTIVE, STATE_PAID, STATE_USED)
    TERMINAL_STATES = (STATE_EXPIRED, STATE_CANCELLED)

    EXPIRED_BY_ACTIVATION = "activation_expiry"
    EXPIRED_BY_PURCHASE = "purchase_expiry"
    EXPIRED_BY_USAGE = "usage_expiry"

    EXPIRED_REASON_CHOICES = [
        (EXPIRED_BY_ACTIVATION, "Not purchased in time"),
        (EXPIRED_BY_PURCHASE, "Not activated in time after purchase"),
        (EXPIRED_BY_USAGE, "Session duration elapsed"),
    ]

    CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # No 0/O or 1/I
    CODE_LENGTH = 8

    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name="vouchers")
    router = models.ForeignKey(Router, on_delete=models.CASCADE, related_name="vouchers")
    package = models.ForeignKey(
        Package,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="vouchers",
    )

    # Credentials
    code = models.CharField(max_length=32)
    password = models.CharField(max_length=32)
    reference = models.CharField(max_length=20, db_index=True)

    # Package snapshot taken at generation time
    package_name = models.CharField(max_length=64)
    package_display_name = models.CharField(max_length=100, blank=True)
    duration_minutes = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    upload_kbps = models.PositiveIntegerField(default=512)
    download_kbps = models.PositiveIntegerField(default=1024)
    data_limit_mb = models.PositiveIntegerField(default=0)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, default="KES")

    state = models.CharField(
        max_length=20, choices=STATE_CHOICES, default=STATE_ACTIVE, db_index=True
    )

    # Usage
    used = models.BooleanField(default=False)
    start_time = models.DateTimeField(null=True, blank=True)
    expected_end_time = models.DateTimeField(null=True, blank=True)
    end_time = models.DateTimeField(null=True, blank=True)
    device_mac = models.CharField(max_length=17, blank=True)
    device_ip = models.GenericIPAddressField(null=True, blank=True)
    data_used = models.BigIntegerField(default=0)  # bytes
    time_used = models.PositiveIntegerField(default=0)  # seconds

    # Payment
    payment_method = models.CharField(max_length=20, blank=True)
    transaction_id = models.CharField(max_length=100, blank=True)
    payer_phone = models.CharField(max_length=20, blank=True)
    amount_paid = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True
    )
    commission = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("0.00")
    )
    paid_at = models.DateTimeField(null=True, blank=True)

    # Expiry
    expires_at = models.DateTimeField(db_index=True)
    activation_expires_at = models.DateTimeField()
    timed_on_purchase = models.BooleanField(default=False)
    auto_delete = models.BooleanField(default=True)
    expired_reason = models.CharField(
        max_length=30, choices=EXPIRED_REASON_CHOICES, blank=True
    )

    # Batch metadata
    batch_id = models.CharField(max_length=50, blank=True, db_index=True)
    batch_size = models.PositiveIntegerField(default=1)
    created_by = models.CharField(max_length=100, blank=True)

    # Last time the login was confirmed present on the router
    synced_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    objects = VoucherQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["router", "code"], name="unique_voucher_code_per_router"
            ),
            models.UniqueConstraint(
                fields=["router", "reference"],
                name="unique_voucher_reference_per_router",
            ),
            models.CheckConstraint(
                condition=models.Q(duration_minutes__gte=1),
                name="voucher_duration_positive",
            ),
        ]
        indexes = [
            models.Index(fields=["state", "expires_at"], name="voucher_state_expires_idx"),
        ]

    def __str__(self):
        return f"{self.router.name} - {self.reference} - {self.package_name} - {self.state}"

    @property
    def is_terminal(self):
        return self.state in self.TERMINAL_STATES

    @staticmethod
    def generate_code(router=None, length=None):
        """Generate a login code unused on the given router"""
        length = length or Voucher.CODE_LENGTH
        while True:
            code = "".join(
                secrets.choice(Voucher.CODE_ALPHABET) for _ in range(length)
            )
            qs = Voucher.objects.filter(code=code)
            if router is not None:
                qs = qs.filter(router=router)
            if not qs.exists():
                return code

    @staticmethod
    def generate_reference():
        """Generate a public payment reference, e.g. VCH7K2M9QX4D"""
        alphabet = string.ascii_uppercase + string.digits
        while True:
            reference = "VCH" + "".join(secrets.choice(alphabet) for _ in range(9))
            if not Voucher.objects.filter(reference=reference).exists():
                return reference


# =============================================================================
# PAYMENTS
# =============================================================================


class Payment(models.Model):
    """
    Mobile-money payment reported by the provider.
    `transaction_id` is the provider's receipt code and the idempotency key.
    """

    STATUS_PENDING = "pending"
    STATUS_COMPLETED = "completed"
    STATUS_FAILED = "failed"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_FAILED, "Failed"),
    ]

    transaction_id = models.CharField(max_length=100, unique=True)
    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
    )
    router = models.ForeignKey(
        Router,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
    )
    voucher = models.ForeignKey(
        Voucher,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
    )

    payer_reference = models.CharField(max_length=100, blank=True, db_index=True)
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    phone_number = models.CharField(max_length=100, blank=True)
    recipient = models.CharField(max_length=20, blank=True)
    method = models.CharField(max_length=20, default="mpesa")

    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING
    )
    failure_reason = models.CharField(max_length=255, blank=True)
    reconciled = models.BooleanField(default=False)
    reconciled_at = models.DateTimeField(null=True, blank=True)
    reconciliation_error = models.CharField(max_length=100, blank=True)

    provider_timestamp = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.transaction_id} - {self.amount} - {self.status}"


class PaymentWebhook(models.Model):
    """
    Log of inbound payment provider notifications, kept for audit and replay
    """

    SOURCE_CHOICES = [
        ("generic", "Generic payment event"),
        ("mpesa_c2b", "M-Pesa C2B confirmation"),
    ]

    PROCESSING_STATUS_CHOICES = [
        ("received", "Received"),
        ("processed", "Processed Successfully"),
        ("failed", "Processing Failed"),
        ("ignored", "Ignored"),
    ]

    source = models.CharField(max_length=20, choices=SOURCE_CHOICES, default="generic")
    event_type = models.CharField(max_length=50, blank=True)
    transaction_id = models.CharField(max_length=100, blank=True, db_index=True)
    raw_payload = models.JSONField()

    received_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    processing_status = models.CharField(
        max_length=20, choices=PROCESSING_STATUS_CHOICES, default="received"
    )
    processing_error = models.TextField(blank=True)

    payment = models.ForeignKey(
        Payment,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="webhook_logs",
    )
    source_ip = models.GenericIPAddressField(null=True, blank=True)

    class Meta:
        ordering = ["-received_at"]

    def __str__(self):
        return f"{self.transaction_id or 'UNKNOWN'} - {self.event_type} - {self.processing_status}"

    def mark_processed(self, payment=None):
        """Mark webhook as successfully processed"""
        self.processing_status = "processed"
        self.processed_at = timezone.now()
        if payment:
            self.payment = payment
        self.save()

    def mark_failed(self, error_message):
        """Mark webhook processing as failed"""
        self.processing_status = "failed"
        self.processed_at = timezone.now()
        self.processing_error = error_message
        self.save()

    def mark_ignored(self, reason, payment=None):
        """Mark webhook as ignored (e.g., duplicate)"""
        self.processing_status = "ignored"
        self.processed_at = timezone.now()
        self.processing_error = reason
        if payment:
            self.payment = payment
        self.save()


# =============================================================================
# AUDIT
# =============================================================================


class VerificationAttempt(models.Model):
    """
    Append-only record of every captive portal verification attempt.
    Doubles as the shared counter behind the per-MAC rate limit.
    """

    mac_address = models.CharField(max_length=17, blank=True)
    router_id_raw = models.CharField(max_length=64, blank=True)
    transaction_code = models.CharField(max_length=32, blank=True)
    success = models.BooleanField(default=False)
    error_code = models.CharField(max_length=40, blank=True)
    timestamp = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-timestamp"]
        indexes = [
            models.Index(fields=["mac_address", "timestamp"], name="verify_mac_timestamp_idx"),
        ]

    def __str__(self):
        outcome = "OK" if self.success else self.error_code
        return f"{self.mac_address} - {self.transaction_code} - {outcome}"
