"""
Serializers for API requests and responses
"""

from decimal import Decimal

from rest_framework import serializers

from .models import Voucher
from .payments import EVENT_TYPES, PaymentFailed
from .reports import DATE_RANGES
from .store import MAX_BATCH_QUANTITY
from .utils import format_bandwidth, format_duration, normalize_mac_address


class LoginCallbackSerializer(serializers.Serializer):
    voucher_code = serializers.CharField(max_length=32)
    router_id = serializers.IntegerField(min_value=1)
    mac_address = serializers.CharField(max_length=32, required=False, allow_blank=True)
    ip_address = serializers.IPAddressField(required=False, allow_null=True)

    def validate_voucher_code(self, value):
        return value.strip().upper()

    def validate_mac_address(self, value):
        if value and not normalize_mac_address(value):
            raise serializers.ValidationError("Invalid MAC address format")
        return value


class PaymentEventSerializer(serializers.Serializer):
    """Generic payment provider notification"""

    event = serializers.ChoiceField(choices=sorted(EVENT_TYPES))
    transaction_id = serializers.CharField(max_length=100)
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0.01"))
    payer_reference = serializers.CharField(
        max_length=100, required=False, allow_blank=True, default=""
    )
    timestamp = serializers.DateTimeField(required=False, allow_null=True, default=None)
    phone_number = serializers.CharField(
        max_length=100, required=False, allow_blank=True, default=""
    )
    recipient = serializers.CharField(
        max_length=20, required=False, allow_blank=True, default=""
    )
    reason = serializers.CharField(
        max_length=255, required=False, allow_blank=True, default=""
    )

    def validate_transaction_id(self, value):
        return value.strip().upper()

    def validate_payer_reference(self, value):
        return value.strip().upper()

    def to_event(self):
        data = dict(self.validated_data)
        event_class = EVENT_TYPES[data.pop("event")]
        reason = data.pop("reason")
        if event_class is PaymentFailed:
            data["reason"] = reason
        return event_class(**data)


class GenerateVouchersSerializer(serializers.Serializer):
    package_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1, max_value=MAX_BATCH_QUANTITY)
    expiry_days = serializers.IntegerField(min_value=1, max_value=365, required=False)
    auto_delete = serializers.BooleanField(default=True)
    timed_on_purchase = serializers.BooleanField(default=False)
    sync_to_router = serializers.BooleanField(default=False)


class VoucherQuerySerializer(serializers.Serializer):
    """Query string filters for operator voucher listings"""

    state = serializers.ChoiceField(
        choices=["all"] + [state for state, _ in Voucher.STATE_CHOICES], default="all"
    )
    package = serializers.CharField(required=False, allow_blank=True)
    batch_id = serializers.CharField(required=False, allow_blank=True)
    search = serializers.CharField(required=False, allow_blank=True, max_length=100)
    date_range = serializers.ChoiceField(choices=DATE_RANGES, default="all")
    limit = serializers.IntegerField(min_value=1, max_value=MAX_BATCH_QUANTITY, default=100)
    skip = serializers.IntegerField(min_value=0, default=0)
    output = serializers.ChoiceField(choices=["csv", "json"], default="csv")


class VoucherSerializer(serializers.ModelSerializer):
    duration_display = serializers.SerializerMethodField()
    bandwidth = serializers.SerializerMethodField()

    class Meta:
        model = Voucher
        fields = [
            "id",
            "code",
            "reference",
            "package_name",
            "package_display_name",
            "duration_minutes",
            "duration_display",
            "bandwidth",
            "price",
            "currency",
            "state",
            "used",
            "expires_at",
            "timed_on_purchase",
            "auto_delete",
            "batch_id",
            "synced_at",
            "created_at",
        ]
        read_only_fields = fields

    def get_duration_display(self, obj):
        return format_duration(obj.duration_minutes)

    def get_bandwidth(self, obj):
        return format_bandwidth(obj.upload_kbps, obj.download_kbps)
