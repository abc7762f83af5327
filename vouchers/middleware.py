"""
Custom middleware for multi-tenancy
"""

import logging

from .models import Tenant

logger = logging.getLogger(__name__)


class TenantMiddleware:
    """
    Identify the tenant making an operator API call from the X-API-Key header
    and expose it as `request.tenant` (None when absent or unknown)
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request.tenant = None

        # Skip tenant resolution for admin URLs
        if not request.path.startswith("/admin/"):
            api_key = request.META.get("HTTP_X_API_KEY") or request.META.get("HTTP_API_KEY")
            if api_key:
                request.tenant = Tenant.objects.filter(api_key=api_key, is_active=True).first()
                if request.tenant:
                    logger.debug(f"Tenant resolved from API key: {request.tenant.slug}")
                else:
                    logger.warning(f"Unknown API key presented for {request.path}")

        return self.get_response(request)
