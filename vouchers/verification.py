"""
Captive portal verification gateway

A customer who paid by M-Pesa enters the receipt code on the portal. We walk
router -> payment -> voucher and only reveal the voucher login when every
check passes. Lookups that find nothing all answer `transaction_not_found`
so the endpoint cannot be used to discover valid codes.
"""

import logging

from django.utils import timezone

from .models import Payment, Router, Voucher
from .ratelimit import RATE_LIMIT_ERROR, VerificationRateLimiter
from .utils import (
    clean_transaction_code,
    format_bandwidth,
    format_duration,
    normalize_mac_address,
    parse_router_id,
    validate_transaction_code,
)

logger = logging.getLogger(__name__)

INVALID_INPUT = "invalid_input"
TRANSACTION_NOT_FOUND = "transaction_not_found"
PAYMENT_PENDING = "payment_pending"
PAYMENT_FAILED = "payment_failed"
WRONG_ROUTER = "wrong_router"
VOUCHER_USED = "voucher_used"
VOUCHER_EXPIRED = "voucher_expired"

MESSAGES = {
    INVALID_INPUT: "Please provide all required information",
    RATE_LIMIT_ERROR: "Too many attempts. Please wait before trying again.",
    TRANSACTION_NOT_FOUND: "M-Pesa transaction code not recognized. Please check and try again.",
    PAYMENT_PENDING: "Payment is still being processed. Please wait a few moments and try again.",
    PAYMENT_FAILED: "Payment was not successful. Please make a new purchase.",
    WRONG_ROUTER: "This voucher is not valid for this hotspot.",
    VOUCHER_USED: "This voucher has already been used.",
    VOUCHER_EXPIRED: "This voucher has expired.",
}


class VerificationResult:
    """Outcome of a verification attempt, rendered by the captive view"""

    def __init__(self, valid, error=None, voucher=None, errors=None, retry_after=None):
        self.valid = valid
        self.error = error
        self.voucher = voucher
        self.errors = errors or {}
        self.retry_after = retry_after

    @property
    def http_status(self):
        if self.error == INVALID_INPUT:
            return 400
        if self.error == RATE_LIMIT_ERROR:
            return 429
        return 200

    def to_dict(self):
        if self.error in (INVALID_INPUT, RATE_LIMIT_ERROR):
            data = {
                "success": False,
                "valid": False,
                "error": self.error,
                "message": MESSAGES[self.error],
            }
            if self.errors:
                data["errors"] = self.errors
            return data

        if not self.valid:
            return {
                "success": True,
                "valid": False,
                "error": self.error,
                "message": MESSAGES.get(self.error, ""),
            }

        voucher = self.voucher
        return {
            "success": True,
            "valid": True,
            "message": "Voucher verified successfully!",
            "voucher": {
                "code": voucher.code,
                "password": voucher.password,
                "package_name": voucher.package_display_name or voucher.package_name,
                "duration": voucher.duration_minutes,
                "duration_display": format_duration(voucher.duration_minutes),
                "bandwidth": format_bandwidth(voucher.upload_kbps, voucher.download_kbps),
                "price": str(voucher.price),
                "currency": voucher.currency,
                "expires_at": voucher.expires_at.isoformat(),
            },
            "auto_login": {
                "username": voucher.code,
                "password": voucher.password,
            },
        }


def _finish(attempt, error=None):
    attempt.success = error is None
    attempt.error_code = error or ""
    attempt.save(update_fields=["success", "error_code"])


def verify_transaction(transaction_code, router_id, mac_address, limiter=None, now=None):
    """
    Verify a payment receipt for a device and return a VerificationResult.

    Every attempt with a usable MAC address is written to VerificationAttempt
    before any lookup runs, then updated with its outcome.
    """
    now = now or timezone.now()
    limiter = limiter or VerificationRateLimiter()

    mac = normalize_mac_address(mac_address)
    if not mac:
        return VerificationResult(
            False,
            INVALID_INPUT,
            errors={"mac_address": "A valid MAC address is required"},
        )

    code = clean_transaction_code(transaction_code)

    attempt, limited = limiter.admit(
        mac,
        now=now,
        router_id_raw=str(router_id or "")[:64],
        transaction_code=(code or "")[:32],
    )
    if limited:
        return VerificationResult(
            False, RATE_LIMIT_ERROR, retry_after=limiter.retry_after(mac, now=now)
        )

    errors = {}
    if not code:
        errors["transaction_code"] = "M-Pesa transaction code is required"
    elif not validate_transaction_code(code):
        errors["transaction_code"] = "Invalid M-Pesa transaction code format"

    router_pk = parse_router_id(router_id)
    if router_pk is None:
        errors["router_id"] = "A valid router ID is required"

    if errors:
        _finish(attempt, INVALID_INPUT)
        return VerificationResult(False, INVALID_INPUT, errors=errors)

    def fail(error, detail):
        logger.info(f"Verification failed for {code} from {mac} on router {router_pk}: {detail}")
        _finish(attempt, error)
        return VerificationResult(False, error)

    router = Router.objects.select_related("tenant").filter(pk=router_pk, is_active=True).first()
    if router is None:
        return fail(TRANSACTION_NOT_FOUND, "unknown router")

    payment = (
        Payment.objects.select_related("voucher")
        .filter(transaction_id=code, tenant=router.tenant)
        .first()
    )
    if payment is None:
        return fail(TRANSACTION_NOT_FOUND, f"no payment for tenant {router.tenant.slug}")

    if payment.status == Payment.STATUS_PENDING:
        return fail(PAYMENT_PENDING, "payment pending")
    if payment.status != Payment.STATUS_COMPLETED:
        return fail(PAYMENT_FAILED, f"payment {payment.status}")
    if not payment.reconciled:
        return fail(PAYMENT_PENDING, "payment completed but not reconciled")

    voucher = payment.voucher
    if voucher is None:
        return fail(TRANSACTION_NOT_FOUND, "payment has no linked voucher")

    if voucher.router_id != router.pk:
        return fail(WRONG_ROUTER, f"voucher belongs to router {voucher.router_id}")

    if voucher.used:
        return fail(VOUCHER_USED, f"voucher {voucher.reference} already used")
    if voucher.expires_at < now:
        return fail(VOUCHER_EXPIRED, f"voucher {voucher.reference} expired at {voucher.expires_at}")
    if voucher.state not in (Voucher.STATE_PAID, Voucher.STATE_ACTIVE):
        return fail(VOUCHER_EXPIRED, f"voucher {voucher.reference} is {voucher.state}")

    _finish(attempt)
    logger.info(f"✅ Voucher {voucher.reference} verified for {mac} via {code}")
    return VerificationResult(True, voucher=voucher)
