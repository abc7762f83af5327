"""
MikroTik RouterOS integration for voucher hotspot users
"""

import socket
import logging
import threading

import routeros_api
from django.conf import settings

from .exceptions import DeviceError, DeviceOfflineError

logger = logging.getLogger(__name__)

HOTSPOT_USER_RESOURCE = "/ip/hotspot/user"

# socket.setdefaulttimeout is process wide; connects made from worker threads
# must not interleave their set/restore calls
_timeout_lock = threading.Lock()


def safe_close(api):
    """Safely close routeros_api communicator if present."""
    try:
        if api:
            api.get_communicator().close()
    except Exception as e:
        logger.debug(f"Ignoring error while closing RouterOS connection: {e}")


def get_router_api(router, timeout=None):
    """
    Return an authenticated RouterOS API connection for a router.
    Single attempt; raises DeviceOfflineError when the router cannot be reached.

    The socket timeout is applied while the connection is created, so every
    later call on that connection is bounded by it as well.
    """
    if getattr(settings, "MIKROTIK_MOCK_MODE", False):
        raise DeviceOfflineError(
            router, "MikroTik mock mode enabled, router not accessible"
        )

    timeout = timeout or getattr(settings, "MIKROTIK_CONNECT_TIMEOUT", 5)
    ssl_verify = bool(getattr(settings, "MIKROTIK_SSL_VERIFY", False))
    port = int(router.port) if router.port else 8728

    with _timeout_lock:
        original_timeout = socket.getdefaulttimeout()
        socket.setdefaulttimeout(timeout)
        try:
            try:
                pool = routeros_api.RouterOsApiPool(
                    router.host,
                    username=router.username,
                    password=router.password,
                    port=port,
                    use_ssl=router.use_ssl,
                    plaintext_login=True,
                    use_keepalive=True,
                    ssl_verify=ssl_verify,
                )
            except TypeError:
                pool = routeros_api.RouterOsApiPool(
                    router.host,
                    username=router.username,
                    password=router.password,
                    port=port,
                    use_ssl=router.use_ssl,
                    plaintext_login=True,
                    ssl_verify=ssl_verify,
                )
            api = pool.get_api()
        except Exception as e:
            logger.error(f"Failed to connect to router {router.host}:{port}: {e}")
            raise DeviceOfflineError(router, e) from e
        finally:
            socket.setdefaulttimeout(original_timeout)

    logger.debug(f"RouterOS API connected to {router.host}:{port}")
    return api


class RouterClient:
    """
    Thin wrapper around one RouterOS API connection, scoped to hotspot users.

    Use as a context manager:

        with RouterClient(router) as client:
            names = client.list_usernames()
    """

    def __init__(self, router, timeout=None):
        self.router = router
        self.timeout = timeout
        self.api = None

    def connect(self):
        if self.api is None:
            self.api = get_router_api(self.router, timeout=self.timeout)
        return self

    def close(self):
        safe_close(self.api)
        self.api = None

    def __enter__(self):
        return self.connect()

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def _users(self):
        return self.connect().api.get_resource(HOTSPOT_USER_RESOURCE)

    def list_usernames(self):
        """Names of every hotspot user currently on the router"""
        try:
            return {item.get("name") for item in self._users().get() if item.get("name")}
        except DeviceOfflineError:
            raise
        except Exception as e:
            raise DeviceError(f"Listing hotspot users on {self.router.host} failed: {e}") from e

    def add_hotspot_user(self, name, password, profile, limit_uptime=None, server=None, comment=""):
        params = {
            "name": name,
            "password": password,
            "profile": profile,
            "disabled": "no",
        }
        if limit_uptime:
            params["limit-uptime"] = limit_uptime
        if server:
            params["server"] = server
        if comment:
            params["comment"] = comment

        try:
            self._users().add(**params)
        except DeviceOfflineError:
            raise
        except Exception as e:
            raise DeviceError(f"Creating hotspot user {name} failed: {e}") from e
        logger.debug(f"Created hotspot user {name} on {self.router.host}")

    def remove_hotspot_user(self, name):
        """Remove a hotspot user by name. Returns False if it was not present."""
        try:
            users = self._users()
            existing = users.get(name=name)
            if not existing:
                return False
            for item in existing:
                user_id = item.get(".id") or item.get("id")
                if user_id:
                    users.remove(id=user_id)
        except DeviceOfflineError:
            raise
        except Exception as e:
            raise DeviceError(f"Removing hotspot user {name} failed: {e}") from e
        logger.info(f"Removed hotspot user {name} from {self.router.host}")
        return True
