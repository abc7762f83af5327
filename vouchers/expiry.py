"""
Voucher expiry rules and the expiry scheduler

Three rules each produce a candidate deadline:

1. Activation expiry: an unused voucher dies `expiry_days` after generation.
2. Purchase expiry: a paid voucher sold "timed on purchase" must be activated
   within its duration, counted from payment.
3. Usage expiry: a session ends `duration_minutes` after it started.

The earliest rule that applies to the voucher's current life stage governs.
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from .models import Voucher

logger = logging.getLogger(__name__)


def activation_deadline(created_at, expiry_days):
    return created_at + timedelta(days=expiry_days)


def purchase_deadline(paid_at, duration_minutes):
    return paid_at + timedelta(minutes=duration_minutes)


def usage_deadline(start_time, duration_minutes):
    return start_time + timedelta(minutes=duration_minutes)


def governing_deadline(voucher):
    """
    Return (deadline, reason) for the rule that currently governs the voucher.
    Returns (None, "") for terminal vouchers.
    """
    if voucher.state == Voucher.STATE_USED:
        if voucher.start_time is None:
            return voucher.expires_at, Voucher.EXPIRED_BY_USAGE
        return (
            usage_deadline(voucher.start_time, voucher.duration_minutes),
            Voucher.EXPIRED_BY_USAGE,
        )

    if voucher.state == Voucher.STATE_PAID:
        deadline = voucher.activation_expires_at
        reason = Voucher.EXPIRED_BY_ACTIVATION
        if voucher.timed_on_purchase and voucher.paid_at:
            candidate = purchase_deadline(voucher.paid_at, voucher.duration_minutes)
            # Ties go to the purchase rule
            if candidate <= deadline:
                deadline = candidate
                reason = Voucher.EXPIRED_BY_PURCHASE
        return deadline, reason

    if voucher.state == Voucher.STATE_ACTIVE:
        return voucher.activation_expires_at, Voucher.EXPIRED_BY_ACTIVATION

    return None, ""


def expire_due_vouchers(now=None, batch_size=None):
    """
    Expire every non-terminal voucher whose deadline has passed.

    Each voucher is moved with its own conditional update, so overlapping runs
    never expire the same voucher twice. Returns how many vouchers this call
    actually moved.
    """
    from .store import expire

    now = now or timezone.now()
    batch_size = batch_size or getattr(settings, "VOUCHER_EXPIRY_BATCH_SIZE", 500)

    expired_count = 0
    last_pk = 0

    while True:
        batch = list(
            Voucher.objects.due_for_expiry(now)
            .filter(pk__gt=last_pk)
            .order_by("pk")[:batch_size]
        )
        if not batch:
            break

        for voucher in batch:
            if expire(voucher, now=now):
                expired_count += 1
        last_pk = batch[-1].pk

        if len(batch) < batch_size:
            break

    if expired_count:
        logger.info(f"⏰ Expired {expired_count} vouchers")
    else:
        logger.debug("No vouchers due for expiry")
    return expired_count
