"""
Management command to push sellable vouchers to routers

Usage:
    python manage.py sync_vouchers              # every router with sellable vouchers
    python manage.py sync_vouchers --router 3   # a single router
"""

from django.core.management.base import BaseCommand, CommandError

from vouchers.exceptions import DeviceOfflineError
from vouchers.models import Router
from vouchers.sync import sync_router_vouchers
from vouchers.tasks import sync_all_routers


class Command(BaseCommand):
    help = "Create missing voucher hotspot users on MikroTik routers"

    def add_arguments(self, parser):
        parser.add_argument("--router", type=int, help="Router ID to sync")

    def handle(self, *args, **options):
        router_id = options.get("router")

        if router_id is None:
            summary = sync_all_routers()
            for pk, counts in summary["routers"].items():
                self.stdout.write(
                    f"Router {pk}: {counts['synced']} created, "
                    f"{counts['already_exists']} existing, {counts['failed']} failed"
                )
            for pk in summary["offline"]:
                self.stdout.write(self.style.WARNING(f"⚠️  Router {pk} offline"))
            self.stdout.write(self.style.SUCCESS("✅ Sync complete"))
            return

        router = Router.objects.filter(pk=router_id).first()
        if router is None:
            raise CommandError(f"Router {router_id} does not exist")

        try:
            results = sync_router_vouchers(router)
        except DeviceOfflineError as e:
            raise CommandError(str(e))

        for item in results["details"]:
            if item["status"] == "failed":
                self.stdout.write(self.style.ERROR(f"❌ {item['code']}: {item['message']}"))
        self.stdout.write(
            self.style.SUCCESS(
                f"✅ {router.name}: {results['synced']} created, "
                f"{results['already_exists']} existing, {results['failed']} failed "
                f"of {results['total']}"
            )
        )
