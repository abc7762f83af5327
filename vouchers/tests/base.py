"""
Shared fixtures for voucher tests
"""

import threading
from decimal import Decimal

from vouchers import store
from vouchers.exceptions import DeviceError, DeviceOfflineError
from vouchers.models import Package, Router, Tenant
from vouchers.payments import PaymentCompleted, process_payment_event


class VoucherTestMixin:
    """Tenant with one router and a 60 minute / KES 10 package"""

    def setUp(self):
        self.tenant = Tenant.objects.create(
            business_name="Kahawa Cafe",
            slug="kahawa",
            paybill_number="174379",
            commission_rate=Decimal("20.00"),
        )
        self.router = Router.objects.create(
            tenant=self.tenant,
            name="Main Hall",
            host="10.50.0.2",
            username="api",
            password="secret",
        )
        self.package = Package.objects.create(
            router=self.router,
            name="1hr",
            display_name="1 Hour Pass",
            duration_minutes=60,
            upload_kbps=512,
            download_kbps=2048,
            price=Decimal("10.00"),
        )

    def make_voucher(self, router=None, package=None, **kwargs):
        return store.generate_batch(
            router or self.router, package or self.package, 1, **kwargs
        )[0]

    def pay(self, voucher, transaction_id="RBK1234567", amount=None, **kwargs):
        event = PaymentCompleted(
            transaction_id=transaction_id,
            amount=amount if amount is not None else voucher.price,
            payer_reference=voucher.reference,
            phone_number="254712345678",
            recipient=self.tenant.paybill_number,
            **kwargs,
        )
        payment, _ = process_payment_event(event)
        voucher.refresh_from_db()
        return payment


class FakeDevice:
    """In-memory stand-in for a router's /ip/hotspot/user table"""

    def __init__(self, users=None, fail_names=(), offline=False, list_error=None):
        self.users = dict(users or {})
        self.fail_names = set(fail_names)
        self.offline = offline
        self.list_error = list_error
        self.add_calls = 0
        self.connections = 0
        self.lock = threading.Lock()

    def client_factory(self, router, timeout=None):
        return FakeRouterClient(self, router, timeout)


class FakeRouterClient:
    def __init__(self, device, router, timeout=None):
        self.device = device
        self.router = router
        self.timeout = timeout

    def connect(self):
        if self.device.offline:
            raise DeviceOfflineError(self.router, "timed out")
        with self.device.lock:
            self.device.connections += 1
        return self

    def close(self):
        pass

    def __enter__(self):
        return self.connect()

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def list_usernames(self):
        if self.device.list_error:
            raise DeviceError(self.device.list_error)
        return set(self.device.users)

    def add_hotspot_user(self, name, password, profile, limit_uptime=None, server=None, comment=""):
        if name in self.device.fail_names:
            raise DeviceError("failure: input does not match any value of profile")
        with self.device.lock:
            self.device.add_calls += 1
            self.device.users[name] = {
                "password": password,
                "profile": profile,
                "limit-uptime": limit_uptime,
                "server": server,
                "comment": comment,
            }

    def remove_hotspot_user(self, name):
        with self.device.lock:
            return self.device.users.pop(name, None) is not None
