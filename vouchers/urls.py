"""
URL routes for the voucher API
"""

from django.urls import path

from . import views

urlpatterns = [
    # Captive portal
    path("captive/verify/", views.captive_verify, name="captive-verify"),
    path(
        "captive/login-callback/",
        views.captive_login_callback,
        name="captive-login-callback",
    ),
    path("captive/packages/", views.captive_packages, name="captive-packages"),
    # Payment provider webhooks
    path("webhooks/payments/", views.payment_webhook, name="payment-webhook"),
    path(
        "webhooks/mpesa/confirmation/",
        views.mpesa_confirmation,
        name="mpesa-confirmation",
    ),
    # Operator endpoints
    path(
        "routers/<int:router_id>/vouchers/",
        views.router_list_vouchers,
        name="router-list-vouchers",
    ),
    path(
        "routers/<int:router_id>/vouchers/stats/",
        views.router_voucher_stats,
        name="router-voucher-stats",
    ),
    path(
        "routers/<int:router_id>/vouchers/history/",
        views.router_voucher_history,
        name="router-voucher-history",
    ),
    path(
        "routers/<int:router_id>/vouchers/export/",
        views.router_export_vouchers,
        name="router-export-vouchers",
    ),
    path(
        "routers/<int:router_id>/vouchers/sync/",
        views.router_sync_vouchers,
        name="router-sync-vouchers",
    ),
    path(
        "routers/<int:router_id>/vouchers/generate/",
        views.router_generate_vouchers,
        name="router-generate-vouchers",
    ),
    path(
        "routers/<int:router_id>/vouchers/<int:voucher_id>/cancel/",
        views.router_cancel_voucher,
        name="router-cancel-voucher",
    ),
]
