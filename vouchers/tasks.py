"""
Background tasks for the WifiPay voucher platform
Entry points for django-crontab (see CRONJOBS in settings) and the
management commands
"""

import logging

from django.utils import timezone

from .exceptions import DeviceOfflineError
from .expiry import expire_due_vouchers
from .models import Router, Voucher
from .payments import reconcile_unlinked_payments as _reconcile_unlinked_payments
from .sync import sync_router_vouchers

logger = logging.getLogger(__name__)


def expire_vouchers(batch_size=None):
    """
    Expire vouchers whose governing deadline has passed.
    Should be run periodically (e.g. every 5 minutes via cron).
    """
    try:
        started = timezone.now()
        expired = expire_due_vouchers(now=started, batch_size=batch_size)
        logger.info(
            f"🎯 Voucher expiry run complete: {expired} expired "
            f"in {(timezone.now() - started).total_seconds():.1f}s"
        )
        return {"success": True, "expired": expired}

    except Exception as e:
        logger.exception(f"Error in expire_vouchers task: {str(e)}")
        return {"success": False, "error": str(e)}


def reconcile_unlinked_payments():
    """Link completed payments that arrived before their voucher could be matched"""
    try:
        reconciled = _reconcile_unlinked_payments()
        return {"success": True, "reconciled": reconciled}

    except Exception as e:
        logger.exception(f"Error in reconcile_unlinked_payments task: {str(e)}")
        return {"success": False, "error": str(e)}


def sync_all_routers():
    """
    Push sellable vouchers to every active router that has any.
    Offline routers are reported and skipped.
    """
    router_ids = (
        Voucher.objects.sellable()
        .filter(router__is_active=True)
        .order_by()
        .values_list("router_id", flat=True)
        .distinct()
    )
    routers = Router.objects.filter(pk__in=list(router_ids)).select_related("tenant")

    summary = {"success": True, "routers": {}, "offline": []}
    for router in routers:
        try:
            results = sync_router_vouchers(router)
            summary["routers"][router.pk] = {
                key: results[key] for key in ("total", "synced", "failed", "already_exists")
            }
        except DeviceOfflineError as e:
            logger.warning(f"⚠️  Skipping offline router {router.name}: {e}")
            summary["offline"].append(router.pk)

    logger.info(
        f"📊 Router sync complete: {len(summary['routers'])} synced, "
        f"{len(summary['offline'])} offline"
    )
    return summary
