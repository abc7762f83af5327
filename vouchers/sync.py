"""
Device synchronizer

Pushes sellable vouchers to a router as hotspot users so printed cards work
before any mobile payment. Only the missing users are created; a second run
with nothing changed creates nothing.

Router calls run on a small thread pool. Worker threads never touch the
database: results are collected and written from the calling thread.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor

from django.conf import settings
from django.utils import timezone

from . import store
from .exceptions import DeviceError, DeviceOfflineError
from .mikrotik import RouterClient
from .models import Router, Voucher
from .utils import minutes_to_uptime_limit

logger = logging.getLogger(__name__)


def _mark_router_online(router, now):
    Router.objects.filter(pk=router.pk).update(status="online", last_seen=now, last_error="")
    router.status, router.last_seen, router.last_error = "online", now, ""


def _mark_router_offline(router, error):
    Router.objects.filter(pk=router.pk).update(status="offline", last_error=str(error)[:1000])
    router.status, router.last_error = "offline", str(error)[:1000]


def sync_router_vouchers(router, client_factory=RouterClient, max_workers=None, timeout=None):
    """
    Create hotspot users for every sellable voucher missing from the router.

    Returns {total, synced, failed, already_exists, details}. Raises
    DeviceOfflineError, without touching any voucher, when the router cannot
    be reached or listed at the start.
    """
    max_workers = max_workers or getattr(settings, "VOUCHER_SYNC_MAX_WORKERS", 4)
    timeout = timeout or getattr(settings, "VOUCHER_SYNC_TIMEOUT", 10)

    vouchers = list(store.find_sellable(router))

    try:
        with client_factory(router, timeout=timeout) as client:
            existing = client.list_usernames()
    except DeviceOfflineError as e:
        _mark_router_offline(router, e.reason or e)
        logger.error(f"📡 Sync aborted, router {router.name} offline: {e}")
        raise
    except DeviceError as e:
        _mark_router_offline(router, e)
        logger.error(f"📡 Sync aborted, cannot list users on {router.name}: {e}")
        raise DeviceOfflineError(router, e) from e

    present = [v for v in vouchers if v.code in existing]
    missing = [v for v in vouchers if v.code not in existing]

    details = [
        {
            "code": v.code,
            "reference": v.reference,
            "status": "exists",
            "message": "Already on router",
        }
        for v in present
    ]

    thread_state = threading.local()
    clients = []
    clients_lock = threading.Lock()

    def worker_client():
        client = getattr(thread_state, "client", None)
        if client is None:
            client = client_factory(router, timeout=timeout)
            client.connect()
            with clients_lock:
                clients.append(client)
            thread_state.client = client
        return client

    def push(voucher):
        try:
            worker_client().add_hotspot_user(
                name=voucher.code,
                password=voucher.password,
                profile=voucher.package_name,
                limit_uptime=minutes_to_uptime_limit(voucher.duration_minutes),
                server=router.hotspot_server,
                comment=f"WifiPay {voucher.reference} {voucher.batch_id}".strip(),
            )
            return voucher, None
        except DeviceError as e:
            return voucher, e
        except OSError as e:
            return voucher, DeviceError(str(e))

    outcomes = []
    if missing:
        try:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                outcomes = list(executor.map(push, missing))
        finally:
            for client in clients:
                client.close()

    now = timezone.now()
    synced_pks = [v.pk for v in present]
    failed = 0
    for voucher, error in outcomes:
        if error is None:
            synced_pks.append(voucher.pk)
            details.append(
                {
                    "code": voucher.code,
                    "reference": voucher.reference,
                    "status": "synced",
                    "message": "Created on router",
                }
            )
        else:
            failed += 1
            logger.warning(f"Failed to push voucher {voucher.code} to {router.name}: {error}")
            details.append(
                {
                    "code": voucher.code,
                    "reference": voucher.reference,
                    "status": "failed",
                    "message": str(error),
                }
            )

    if synced_pks:
        Voucher.objects.filter(pk__in=synced_pks).update(synced_at=now)
    _mark_router_online(router, now)

    results = {
        "total": len(vouchers),
        "synced": len(outcomes) - failed,
        "failed": failed,
        "already_exists": len(present),
        "details": details,
    }
    logger.info(
        f"🔄 Synced router {router.name}: {results['synced']} created, "
        f"{results['already_exists']} existing, {results['failed']} failed"
    )
    return results


def remove_voucher_from_router(voucher, client_factory=RouterClient):
    """Best-effort removal of a voucher's hotspot user. Never raises."""
    try:
        with client_factory(voucher.router) as client:
            removed = client.remove_hotspot_user(voucher.code)
    except DeviceError as e:
        logger.warning(
            f"Could not remove voucher {voucher.code} from router {voucher.router.name}: {e}"
        )
        return False

    if removed:
        Voucher.objects.filter(pk=voucher.pk).update(synced_at=None)
        voucher.synced_at = None
    return removed
