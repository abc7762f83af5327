"""
Per-MAC rate limiting for captive portal verification

Counts live in the VerificationAttempt table so every app instance sees the
same numbers. Rejected-by-rate-limit attempts are logged but not counted,
otherwise a blocked client would extend its own ban.
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from .models import VerificationAttempt

logger = logging.getLogger(__name__)

RATE_LIMIT_ERROR = "rate_limit_exceeded"


class VerificationRateLimiter:
    def __init__(self, limit=None, window_seconds=None):
        self.limit = limit or getattr(settings, "VOUCHER_VERIFY_RATE_LIMIT", 5)
        self.window_seconds = window_seconds or getattr(
            settings, "VOUCHER_VERIFY_RATE_WINDOW", 3600
        )

    def _window_start(self, now):
        return now - timedelta(seconds=self.window_seconds)

    def _counted(self, mac_address, now):
        return (
            VerificationAttempt.objects.filter(
                mac_address=mac_address, timestamp__gt=self._window_start(now)
            )
            .exclude(error_code=RATE_LIMIT_ERROR)
        )

    def attempts(self, mac_address, now=None):
        now = now or timezone.now()
        return self._counted(mac_address, now).count()

    def is_limited(self, mac_address, now=None):
        now = now or timezone.now()
        count = self.attempts(mac_address, now)
        if count >= self.limit:
            logger.warning(
                f"🚫 Verification rate limit hit for {mac_address} "
                f"({count} attempts in {self.window_seconds}s)"
            )
            return True
        return False

    def admit(self, mac_address, now=None, **fields):
        """
        Log an attempt and decide whether it is within the limit.

        The attempt row is written before counting and the count covers every
        row up to and including it, so concurrent requests from one MAC cannot
        all see the same pre-insert count. Returns (attempt, limited).
        """
        now = now or timezone.now()
        attempt = VerificationAttempt.objects.create(
            timestamp=now, mac_address=mac_address, **fields
        )
        position = self._counted(mac_address, now).filter(pk__lte=attempt.pk).count()
        if position <= self.limit:
            return attempt, False

        VerificationAttempt.objects.filter(pk=attempt.pk).update(error_code=RATE_LIMIT_ERROR)
        attempt.error_code = RATE_LIMIT_ERROR
        logger.warning(
            f"🚫 Verification rate limit hit for {mac_address} "
            f"({position - 1} attempts in {self.window_seconds}s)"
        )
        return attempt, True

    def retry_after(self, mac_address, now=None):
        """Seconds until the oldest counted attempt leaves the window"""
        now = now or timezone.now()
        oldest = self._counted(mac_address, now).order_by("timestamp").first()
        if oldest is None:
            return 0
        remaining = oldest.timestamp + timedelta(seconds=self.window_seconds) - now
        return max(1, int(remaining.total_seconds()) + 1)
