"""
Utility functions for the voucher engine
"""

import re

MPESA_CODE_RE = re.compile(r"^[A-Z0-9]{8,12}$")
MAC_ADDRESS_RE = re.compile(r"^([0-9A-F]{2}:){5}[0-9A-F]{2}$")

MINUTES_PER_HOUR = 60
MINUTES_PER_DAY = 1440
MINUTES_PER_WEEK = 10080


def clean_transaction_code(code):
    """Trim and upper-case a transaction code"""
    if not isinstance(code, str):
        return ""
    return code.strip().upper()


def validate_transaction_code(code):
    """
    Check an M-Pesa receipt code (8-12 characters, letters and digits only).
    Examples: RBK123456, RCK7A2B3C4
    """
    return bool(MPESA_CODE_RE.match(clean_transaction_code(code)))


def normalize_mac_address(mac):
    """
    Normalize a MAC address to AA:BB:CC:DD:EE:FF

    Separators and case are ignored. Returns an empty string when the input
    does not contain exactly 12 hex digits.
    """
    if not mac or not isinstance(mac, str):
        return ""
    cleaned = re.sub(r"[^a-fA-F0-9]", "", mac).upper()
    if len(cleaned) != 12:
        return ""
    return ":".join(cleaned[i : i + 2] for i in range(0, 12, 2))


def format_duration(minutes):
    """Human readable package duration, e.g. 90 -> '1 Hour', 2880 -> '2 Days'"""
    minutes = int(minutes)
    if minutes < MINUTES_PER_HOUR:
        return "1 Minute" if minutes == 1 else f"{minutes} Minutes"

    if minutes < MINUTES_PER_DAY:
        hours = minutes // MINUTES_PER_HOUR
        return "1 Hour" if hours == 1 else f"{hours} Hours"

    if minutes < MINUTES_PER_WEEK:
        days = minutes // MINUTES_PER_DAY
        return "1 Day" if days == 1 else f"{days} Days"

    weeks = minutes // MINUTES_PER_WEEK
    return "1 Week" if weeks == 1 else f"{weeks} Weeks"


def format_speed(kbps):
    kbps = int(kbps)
    if kbps >= 1024:
        return f"{kbps // 1024}Mbps"
    return f"{kbps}kbps"


def format_bandwidth(upload_kbps, download_kbps):
    """Format bandwidth as 'upload/download', e.g. '512kbps/2Mbps'"""
    return f"{format_speed(upload_kbps)}/{format_speed(download_kbps)}"


def minutes_to_uptime_limit(minutes):
    """
    Convert minutes to a RouterOS limit-uptime value.

    90 -> '1h30m', 1500 -> '1d1h', 10080 -> '1w'
    """
    minutes = int(minutes)
    if minutes < MINUTES_PER_HOUR:
        return f"{minutes}m"

    if minutes < MINUTES_PER_DAY:
        hours, rest = divmod(minutes, MINUTES_PER_HOUR)
        return f"{hours}h{rest}m" if rest else f"{hours}h"

    if minutes < MINUTES_PER_WEEK:
        days, rest = divmod(minutes, MINUTES_PER_DAY)
        hours = rest // MINUTES_PER_HOUR
        return f"{days}d{hours}h" if hours else f"{days}d"

    weeks, rest = divmod(minutes, MINUTES_PER_WEEK)
    days = rest // MINUTES_PER_DAY
    return f"{weeks}w{days}d" if days else f"{weeks}w"


def parse_router_id(value):
    """Return a positive integer router id, or None if the value is not one"""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        router_id = int(value.strip())
        return router_id if router_id > 0 else None
    return None


def get_client_ip(request):
    """Get client IP address from request"""
    x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
    if x_forwarded_for:
        return x_forwarded_for.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR")
