"""
Management command to expire vouchers whose deadline has passed

Usage:
    python manage.py expire_vouchers --once

    # As a long-running service:
    python manage.py expire_vouchers --interval 60

Options:
    --interval: Check interval in seconds (default: 300)
    --once: Run once and exit (for cron-like usage)
    --batch-size: Vouchers loaded per query (default: VOUCHER_EXPIRY_BATCH_SIZE)
"""

import signal
import sys
import time

from django.core.management.base import BaseCommand

from vouchers.expiry import expire_due_vouchers


class Command(BaseCommand):
    help = "Expire vouchers whose activation, purchase or usage deadline has passed"

    def add_arguments(self, parser):
        parser.add_argument(
            "--interval",
            type=int,
            default=300,
            help="Check interval in seconds (default: 300)",
        )
        parser.add_argument(
            "--once",
            action="store_true",
            help="Run once and exit (useful for cron)",
        )
        parser.add_argument(
            "--batch-size",
            type=int,
            default=None,
            help="Vouchers loaded per query",
        )

    def run_once(self, batch_size):
        expired = expire_due_vouchers(batch_size=batch_size)
        self.stdout.write(self.style.SUCCESS(f"✅ Expired {expired} vouchers"))
        return expired

    def handle(self, *args, **options):
        interval = options["interval"]
        batch_size = options["batch_size"]

        if options["once"]:
            self.run_once(batch_size)
            return

        # Set up signal handlers for graceful shutdown
        def signal_handler(signum, frame):
            self.stdout.write(self.style.WARNING("\n⚠️  Shutdown signal received, stopping...\n"))
            sys.exit(0)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        self.stdout.write(
            self.style.SUCCESS(f"🚀 Expiring vouchers every {interval} seconds. Press Ctrl+C to stop\n")
        )
        while True:
            self.run_once(batch_size)
            time.sleep(interval)
