"""
Management command to link completed payments to their vouchers

Payments whose voucher reference was unknown when the provider notified us
are retried here (also scheduled in CRONJOBS).
"""

from django.core.management.base import BaseCommand

from vouchers.payments import reconcile_unlinked_payments


class Command(BaseCommand):
    help = "Retry reconciliation of completed payments not yet linked to a voucher"

    def handle(self, *args, **options):
        reconciled = reconcile_unlinked_payments()
        self.stdout.write(self.style.SUCCESS(f"✅ Reconciled {reconciled} payments"))
