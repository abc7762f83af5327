"""
Payment reconciliation

Inbound provider notifications are turned into one of three event types and
fed through `process_payment_event`. The provider's transaction id is the
idempotency key: redelivering an event never changes the outcome.
"""

import hmac
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from . import store
from .models import Payment, Tenant

logger = logging.getLogger(__name__)


# =============================================================================
# EVENTS
# =============================================================================


@dataclass(frozen=True)
class PaymentEvent:
    transaction_id: str
    amount: Decimal
    payer_reference: str = ""
    timestamp: Optional[datetime] = None
    phone_number: str = ""
    recipient: str = ""
    method: str = "mpesa"


@dataclass(frozen=True)
class PaymentCompleted(PaymentEvent):
    pass


@dataclass(frozen=True)
class PaymentPending(PaymentEvent):
    pass


@dataclass(frozen=True)
class PaymentFailed(PaymentEvent):
    reason: str = ""


EVENT_TYPES = {
    "payment.completed": PaymentCompleted,
    "payment.pending": PaymentPending,
    "payment.failed": PaymentFailed,
}


def event_from_c2b(data):
    """
    Build a PaymentCompleted event from an M-Pesa C2B confirmation body.
    Raises ValueError when the body is unusable.
    """
    transaction_id = str(data.get("TransID") or "").strip().upper()
    if not transaction_id:
        raise ValueError("TransID is required")

    try:
        amount = Decimal(str(data.get("TransAmount")))
    except (InvalidOperation, TypeError):
        raise ValueError(f"Invalid TransAmount: {data.get('TransAmount')!r}")
    if not amount.is_finite() or amount <= 0:
        raise ValueError(f"TransAmount must be a positive amount, got {amount}")

    timestamp = None
    trans_time = str(data.get("TransTime") or "")
    if trans_time:
        try:
            # Daraja sends local (EAT) time as YYYYMMDDHHMMSS
            timestamp = timezone.make_aware(datetime.strptime(trans_time, "%Y%m%d%H%M%S"))
        except ValueError:
            logger.warning(f"Unparseable TransTime '{trans_time}' for {transaction_id}")

    return PaymentCompleted(
        transaction_id=transaction_id,
        amount=amount,
        payer_reference=str(data.get("BillRefNumber") or "").strip().upper(),
        timestamp=timestamp,
        phone_number=str(data.get("MSISDN") or ""),
        recipient=str(data.get("BusinessShortCode") or ""),
    )


def verify_webhook_signature(payload, signature, secret):
    """
    Verify an HMAC-SHA256 signature over the raw request body.
    Accepts a bare hex digest or one prefixed with "sha256=".
    """
    if not signature or not secret:
        return False
    if isinstance(payload, str):
        payload = payload.encode()

    if signature.startswith("sha256="):
        signature = signature[len("sha256="):]

    expected = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature, expected)


# =============================================================================
# PROCESSING
# =============================================================================


def process_payment_event(event):
    """Apply a payment event and return (payment, created)"""
    if isinstance(event, PaymentCompleted):
        return _handle_completed(event)
    if isinstance(event, PaymentFailed):
        return _handle_failed(event)
    if isinstance(event, PaymentPending):
        return _handle_pending(event)
    raise TypeError(f"Unsupported payment event: {type(event).__name__}")


def _upsert_payment(event, status):
    """Get or create the Payment row for an event, tolerating concurrent inserts"""
    defaults = {
        "amount": event.amount,
        "payer_reference": event.payer_reference,
        "phone_number": event.phone_number,
        "recipient": event.recipient,
        "method": event.method,
        "status": status,
        "provider_timestamp": event.timestamp,
        "tenant": _tenant_for_recipient(event.recipient),
    }
    try:
        with transaction.atomic():
            return Payment.objects.get_or_create(
                transaction_id=event.transaction_id, defaults=defaults
            )
    except IntegrityError:
        # Lost an insert race against a duplicate delivery
        return Payment.objects.get(transaction_id=event.transaction_id), False


def _tenant_for_recipient(recipient):
    if not recipient:
        return None
    return Tenant.objects.filter(paybill_number=recipient, is_active=True).first()


def _handle_pending(event):
    payment, created = _upsert_payment(event, Payment.STATUS_PENDING)
    if created:
        logger.info(f"Payment {payment.transaction_id} recorded as pending")
    else:
        logger.debug(
            f"Pending event for {payment.transaction_id} ignored (status {payment.status})"
        )
    return payment, created


def _handle_failed(event):
    payment, created = _upsert_payment(event, Payment.STATUS_FAILED)
    if created:
        Payment.objects.filter(pk=payment.pk).update(failure_reason=event.reason[:255])
        payment.failure_reason = event.reason[:255]
        logger.info(f"Payment {payment.transaction_id} recorded as failed: {event.reason}")
        return payment, created

    moved = Payment.objects.filter(
        pk=payment.pk, status=Payment.STATUS_PENDING
    ).update(
        status=Payment.STATUS_FAILED,
        failure_reason=event.reason[:255],
        updated_at=timezone.now(),
    )
    if moved:
        payment.refresh_from_db()
        logger.info(f"Payment {payment.transaction_id} failed: {event.reason}")
    else:
        logger.debug(
            f"Failed event for {payment.transaction_id} ignored (status {payment.status})"
        )
    return payment, created


def _handle_completed(event):
    payment, created = _upsert_payment(event, Payment.STATUS_COMPLETED)
    now = timezone.now()

    if created:
        Payment.objects.filter(pk=payment.pk).update(completed_at=event.timestamp or now)
        payment.refresh_from_db()
        logger.info(
            f"✅ Payment {payment.transaction_id} completed: {payment.amount} "
            f"ref {payment.payer_reference or 'none'}"
        )
    elif payment.status == Payment.STATUS_PENDING:
        Payment.objects.filter(pk=payment.pk, status=Payment.STATUS_PENDING).update(
            status=Payment.STATUS_COMPLETED,
            amount=event.amount,
            payer_reference=event.payer_reference or payment.payer_reference,
            recipient=event.recipient or payment.recipient,
            completed_at=event.timestamp or now,
            updated_at=now,
        )
        payment.refresh_from_db()
        logger.info(f"✅ Pending payment {payment.transaction_id} completed")

    if payment.status != Payment.STATUS_COMPLETED:
        logger.warning(
            f"Completed event for {payment.transaction_id} ignored (status {payment.status})"
        )
        return payment, created

    if not payment.reconciled and not payment.reconciliation_error:
        reconcile_payment(payment)
    else:
        logger.info(f"Duplicate completion for {payment.transaction_id} ignored")
    return payment, created


# =============================================================================
# RECONCILIATION
# =============================================================================


def amount_tolerance():
    return Decimal(str(getattr(settings, "PAYMENT_AMOUNT_TOLERANCE", "0.01")))


def _flag_unreconciled(payment, error, **links):
    """Record why a payment could not be reconciled, unless another delivery already did it"""
    flagged = Payment.objects.filter(pk=payment.pk, reconciled=False).update(
        reconciliation_error=error, updated_at=timezone.now(), **links
    )
    payment.refresh_from_db()
    return bool(flagged)


def reconcile_payment(payment):
    """
    Match a completed payment to its voucher and mark the voucher paid.

    Returns True when the payment ends up reconciled. A payment whose voucher
    is not known yet is left unlinked for `reconcile_unlinked_payments`.
    Concurrent deliveries of the same payment race on a conditional UPDATE of
    the `reconciled` flag; only the winner touches the voucher.
    """
    voucher = payment.voucher or store.find_by_reference(payment.payer_reference)
    if voucher is None:
        logger.warning(
            f"No voucher for payment {payment.transaction_id} "
            f"(reference '{payment.payer_reference}'), will retry later"
        )
        return False

    tenant = voucher.tenant
    links = {"voucher": voucher, "tenant": tenant, "router": voucher.router}

    if abs(Decimal(payment.amount) - voucher.price) > amount_tolerance():
        if _flag_unreconciled(payment, "amount_mismatch", **links):
            logger.error(
                f"Payment {payment.transaction_id} amount {payment.amount} does not match "
                f"voucher {voucher.reference} price {voucher.price}"
            )
        return payment.reconciled

    if payment.recipient and tenant.paybill_number and payment.recipient != tenant.paybill_number:
        if _flag_unreconciled(payment, "recipient_mismatch", **links):
            logger.error(
                f"Payment {payment.transaction_id} went to {payment.recipient}, "
                f"expected {tenant.paybill_number} for {tenant.slug}"
            )
        return payment.reconciled

    with transaction.atomic():
        now = timezone.now()
        claimed = Payment.objects.filter(pk=payment.pk, reconciled=False).update(
            reconciled=True,
            reconciled_at=now,
            reconciliation_error="",
            updated_at=now,
            **links,
        )
        if not claimed:
            payment.refresh_from_db()
            logger.info(f"Payment {payment.transaction_id} already reconciled by another delivery")
            return payment.reconciled

        if not store.mark_paid(voucher, payment):
            voucher.refresh_from_db()
            if voucher.transaction_id == payment.transaction_id:
                logger.info(
                    f"Voucher {voucher.reference} already paid by {payment.transaction_id}"
                )
            else:
                Payment.objects.filter(pk=payment.pk).update(
                    reconciliation_error="voucher_not_payable", updated_at=now
                )
                logger.error(
                    f"Payment {payment.transaction_id} reconciled but voucher "
                    f"{voucher.reference} is {voucher.state}, not marked paid"
                )

    payment.refresh_from_db()
    return True


def reconcile_unlinked_payments():
    """Retry completed payments that arrived before their voucher could be matched"""
    pending = Payment.objects.filter(
        status=Payment.STATUS_COMPLETED, reconciled=False, reconciliation_error=""
    ).order_by("created_at")

    reconciled = 0
    for payment in pending:
        if reconcile_payment(payment):
            reconciled += 1

    if reconciled:
        logger.info(f"🔗 Reconciled {reconciled} previously unlinked payments")
    return reconciled
