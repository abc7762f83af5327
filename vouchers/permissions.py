"""
Custom permissions for the WifiPay voucher platform
"""

from rest_framework import permissions


class TenantAPIKeyPermission(permissions.BasePermission):
    """
    Permission class that allows access for valid tenant API keys
    Also allows Django admin users
    """

    message = "A valid X-API-Key header is required"

    def has_permission(self, request, view):
        # Check if user is authenticated Django admin (session-based)
        user = getattr(request, "user", None)
        if user and user.is_authenticated and user.is_staff:
            return True

        # Check for tenant API key (set by TenantMiddleware)
        tenant = getattr(request, "tenant", None)
        return bool(tenant and tenant.is_active)


def router_visible_to(request, router):
    """Staff see every router; tenants only their own"""
    user = getattr(request, "user", None)
    if user and user.is_authenticated and user.is_staff:
        return True
    tenant = getattr(request, "tenant", None)
    return tenant is not None and router.tenant_id == tenant.pk
