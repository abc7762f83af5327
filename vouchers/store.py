"""
Voucher store

Every state change is a single conditional UPDATE of the form
"move from state X to Y only if the row is still in X". A zero row count means
another actor got there first; callers re-read instead of overwriting.
"""

import logging
import secrets
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from .exceptions import InvalidTransition, VoucherError
from .expiry import activation_deadline, governing_deadline, purchase_deadline
from .models import Voucher

logger = logging.getLogger(__name__)

MAX_BATCH_QUANTITY = 1000

CANCELLABLE_STATES = (Voucher.STATE_ACTIVE, Voucher.STATE_PAID)
ACTIVATABLE_STATES = (Voucher.STATE_ACTIVE, Voucher.STATE_PAID)


# =============================================================================
# LOOKUPS
# =============================================================================


def find_sellable(router):
    """Unpaid, unused vouchers that should exist as logins on the router"""
    return Voucher.objects.sellable().filter(router=router).select_related("package")


def find_by_reference(reference, router=None):
    if not reference:
        return None
    qs = Voucher.objects.filter(reference=reference.strip().upper())
    if router is not None:
        qs = qs.filter(router=router)
    return qs.select_related("tenant", "router").first()


def find_by_code(code, router):
    if not code:
        return None
    return (
        Voucher.objects.filter(code=code.strip().upper(), router=router)
        .select_related("tenant", "router")
        .first()
    )


# =============================================================================
# TRANSITIONS
# =============================================================================


def transition(voucher, from_states, to_state, guard=None, **changes):
    """
    Move `voucher` to `to_state` only if it is currently in one of `from_states`.

    `guard` holds extra filter kwargs the row must also match. On success the
    in-memory instance is updated to mirror the row and True is returned.
    """
    if isinstance(from_states, str):
        from_states = (from_states,)

    changes["state"] = to_state
    changes["updated_at"] = timezone.now()

    updated = Voucher.objects.filter(
        pk=voucher.pk, state__in=from_states, **(guard or {})
    ).update(**changes)

    if not updated:
        return False

    for field, value in changes.items():
        setattr(voucher, field, value)
    logger.debug(f"Voucher {voucher.reference} -> {to_state}")
    return True


def mark_paid(voucher, payment, commission_rate=None, now=None):
    """
    active -> paid, recording the payment on the voucher.
    Only succeeds while the voucher is still within its activation window.
    """
    now = now or timezone.now()
    if commission_rate is None:
        commission_rate = voucher.tenant.commission_rate
    commission = (
        Decimal(payment.amount) * Decimal(commission_rate) / Decimal("100")
    ).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    expires_at = voucher.activation_expires_at
    if voucher.timed_on_purchase:
        expires_at = min(expires_at, purchase_deadline(now, voucher.duration_minutes))

    moved = transition(
        voucher,
        Voucher.STATE_ACTIVE,
        Voucher.STATE_PAID,
        guard={"used": False, "activation_expires_at__gt": now},
        payment_method=payment.method,
        transaction_id=payment.transaction_id,
        payer_phone=payment.phone_number[:20],
        amount_paid=payment.amount,
        commission=commission,
        paid_at=now,
        expires_at=expires_at,
    )
    if moved:
        logger.info(
            f"💰 Voucher {voucher.reference} paid via {payment.transaction_id} "
            f"(amount {payment.amount}, commission {commission})"
        )
    return moved


def start_usage(voucher, mac_address="", ip_address=None, now=None):
    """
    active|paid -> used, stamping the session start exactly once.
    The guard on start_time makes concurrent callers race on a single row.
    """
    now = now or timezone.now()
    expected_end = now + timedelta(minutes=voucher.duration_minutes)

    moved = transition(
        voucher,
        ACTIVATABLE_STATES,
        Voucher.STATE_USED,
        guard={"start_time__isnull": True, "expires_at__gt": now},
        used=True,
        start_time=now,
        expected_end_time=expected_end,
        expires_at=expected_end,
        device_mac=mac_address or "",
        device_ip=ip_address or None,
    )
    if moved:
        logger.info(
            f"▶️ Voucher {voucher.code} started on {voucher.router_id} "
            f"(mac {mac_address or 'unknown'}, ends {expected_end.isoformat()})"
        )
    return moved


def expire(voucher, now=None):
    """
    Move a non-terminal voucher to expired once its governing deadline passed.
    Returns True only for the call that actually moved it.
    """
    now = now or timezone.now()
    deadline, reason = governing_deadline(voucher)
    if deadline is None:
        return False

    changes = {"expired_reason": reason}
    if voucher.state == Voucher.STATE_USED:
        changes["end_time"] = now

    moved = transition(
        voucher,
        voucher.state,
        Voucher.STATE_EXPIRED,
        guard={"expires_at__lte": now},
        **changes,
    )
    if moved:
        logger.info(f"Voucher {voucher.reference} expired ({reason})")
    return moved


def cancel(voucher):
    """Administrative side-exit from active or paid. Raises InvalidTransition otherwise."""
    if voucher.used:
        raise InvalidTransition(voucher.pk, CANCELLABLE_STATES, Voucher.STATE_CANCELLED)

    moved = transition(
        voucher,
        CANCELLABLE_STATES,
        Voucher.STATE_CANCELLED,
        guard={"used": False},
    )
    if not moved:
        raise InvalidTransition(voucher.pk, CANCELLABLE_STATES, Voucher.STATE_CANCELLED)
    logger.info(f"Voucher {voucher.reference} cancelled")
    return voucher


# =============================================================================
# GENERATION
# =============================================================================


def generate_batch(
    router,
    package,
    quantity,
    expiry_days=None,
    auto_delete=True,
    timed_on_purchase=False,
    created_by="",
):
    """
    Create `quantity` active vouchers for `package` on `router`.
    Package attributes are copied onto each voucher so later package edits do
    not change vouchers already sold.
    """
    if quantity < 1 or quantity > MAX_BATCH_QUANTITY:
        raise VoucherError(
            f"Quantity must be between 1 and {MAX_BATCH_QUANTITY}", code="invalid_input"
        )
    if package.router_id != router.pk:
        raise VoucherError("Package does not belong to this router", code="invalid_input")
    if not package.duration_minutes or package.duration_minutes < 1:
        raise VoucherError("Package duration must be at least one minute", code="invalid_input")

    if expiry_days is None:
        expiry_days = getattr(settings, "VOUCHER_DEFAULT_EXPIRY_DAYS", 30)

    now = timezone.now()
    expires_at = activation_deadline(now, expiry_days)
    batch_id = f"BATCH-{now.strftime('%Y%m%d%H%M%S')}-{secrets.token_hex(3).upper()}"

    codes = set()
    references = set()
    vouchers = []
    for _ in range(quantity):
        code = Voucher.generate_code(router)
        while code in codes:
            code = Voucher.generate_code(router)
        codes.add(code)

        reference = Voucher.generate_reference()
        while reference in references:
            reference = Voucher.generate_reference()
        references.add(reference)

        vouchers.append(
            Voucher(
                tenant=router.tenant,
                router=router,
                package=package,
                code=code,
                password=code,
                reference=reference,
                package_name=package.name,
                package_display_name=package.display_name or package.name,
                duration_minutes=package.duration_minutes,
                upload_kbps=package.upload_kbps,
                download_kbps=package.download_kbps,
                data_limit_mb=package.data_limit_mb,
                price=package.price,
                currency=package.currency,
                state=Voucher.STATE_ACTIVE,
                expires_at=expires_at,
                activation_expires_at=expires_at,
                auto_delete=auto_delete,
                timed_on_purchase=timed_on_purchase,
                batch_id=batch_id,
                batch_size=quantity,
                created_by=created_by,
                created_at=now,
            )
        )

    with transaction.atomic():
        created = Voucher.objects.bulk_create(vouchers)

    logger.info(
        f"🎫 Generated {len(created)} vouchers for {router.name} "
        f"({package.name}, batch {batch_id})"
    )
    # bulk_create does not return primary keys on every backend (MySQL)
    return list(Voucher.objects.filter(batch_id=batch_id).order_by("pk"))
