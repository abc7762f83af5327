"""
Activation tracker

The captive portal calls back after the router accepted a voucher login.
The first call starts the session clock; repeats and concurrent calls report
the session that is already running.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from . import store
from .exceptions import VoucherError
from .models import Router
from .utils import normalize_mac_address

logger = logging.getLogger(__name__)


@dataclass
class ActivationResult:
    start_time: datetime
    expected_end_time: datetime
    already_started: bool
    duration_minutes: int

    def to_dict(self):
        return {
            "success": True,
            "start_time": self.start_time.isoformat(),
            "expected_end_time": self.expected_end_time.isoformat(),
            "already_started": self.already_started,
            "duration_minutes": self.duration_minutes,
        }


def _started(voucher, already_started):
    return ActivationResult(
        start_time=voucher.start_time,
        expected_end_time=voucher.expected_end_time,
        already_started=already_started,
        duration_minutes=voucher.duration_minutes,
    )


def record_login(voucher_code, router_id, mac_address=None, ip_address=None, now=None):
    """
    Start the usage session for a voucher exactly once.

    Raises VoucherError with code `voucher_not_found` or `voucher_unavailable`.
    """
    router = Router.objects.filter(pk=router_id).first()
    voucher = store.find_by_code(voucher_code, router) if router else None
    if voucher is None:
        logger.warning(f"Login callback for unknown voucher {voucher_code} on router {router_id}")
        raise VoucherError("Voucher not found", code="voucher_not_found")

    if voucher.start_time is not None:
        return _started(voucher, already_started=True)

    mac = normalize_mac_address(mac_address) if mac_address else ""
    if store.start_usage(voucher, mac_address=mac, ip_address=ip_address, now=now):
        return _started(voucher, already_started=False)

    # Lost the race, or the voucher left the activatable states
    voucher.refresh_from_db()
    if voucher.start_time is not None:
        logger.info(f"Voucher {voucher.code} already started by a concurrent callback")
        return _started(voucher, already_started=True)

    logger.warning(
        f"Login callback for voucher {voucher.code} in state {voucher.state} "
        f"(expires {voucher.expires_at}) rejected"
    )
    raise VoucherError(
        f"Voucher is {voucher.state} and cannot be activated", code="voucher_unavailable"
    )
