"""
API views for the WifiPay voucher platform

Captive portal endpoints are public (the portal page is served from the
router). Operator endpoints require a tenant X-API-Key or a staff session.
Payment webhooks are public but may be signed.
"""

import logging

from django.conf import settings
from django.http import HttpResponse
from django.views.decorators.csrf import csrf_exempt
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from . import reports, store
from .activation import record_login
from .exceptions import DeviceOfflineError
from .models import Package, Payment, PaymentWebhook, Router, Voucher
from .payments import event_from_c2b, process_payment_event, verify_webhook_signature
from .permissions import TenantAPIKeyPermission, router_visible_to
from .serializers import (
    GenerateVouchersSerializer,
    LoginCallbackSerializer,
    PaymentEventSerializer,
    VoucherQuerySerializer,
    VoucherSerializer,
)
from .sync import remove_voucher_from_router, sync_router_vouchers
from .utils import get_client_ip, parse_router_id
from .verification import verify_transaction

logger = logging.getLogger(__name__)


def _payload_dict(request):
    data = request.data
    if hasattr(data, "dict"):
        return data.dict()
    return data if isinstance(data, dict) else {}


def _get_router(request, router_id):
    router = Router.objects.select_related("tenant").filter(pk=router_id).first()
    if router is None or not router_visible_to(request, router):
        raise NotFound("Router not found")
    return router


def _actor(request):
    user = getattr(request, "user", None)
    if user and user.is_authenticated:
        return user.get_username()
    tenant = getattr(request, "tenant", None)
    return f"api:{tenant.slug}" if tenant else ""


# =============================================================================
# CAPTIVE PORTAL
# =============================================================================


@csrf_exempt
@api_view(["POST"])
@permission_classes([AllowAny])
def captive_verify(request):
    """
    Verify an M-Pesa receipt code for the device on the captive portal and
    return the voucher login on success
    """
    data = _payload_dict(request)
    result = verify_transaction(
        transaction_code=data.get("transaction_code"),
        router_id=data.get("router_id"),
        mac_address=data.get("mac_address"),
    )

    response = Response(result.to_dict(), status=result.http_status)
    if result.retry_after:
        response["Retry-After"] = str(result.retry_after)
    return response


@csrf_exempt
@api_view(["POST"])
@permission_classes([AllowAny])
def captive_login_callback(request):
    """Called by the portal once the router accepted the voucher login"""
    serializer = LoginCallbackSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    result = record_login(
        voucher_code=data["voucher_code"],
        router_id=data["router_id"],
        mac_address=data.get("mac_address"),
        ip_address=data.get("ip_address") or get_client_ip(request),
    )
    return Response(result.to_dict())


@api_view(["GET"])
@permission_classes([AllowAny])
def captive_packages(request):
    """Packages on sale at a router, for the portal's purchase page"""
    raw_router_id = request.query_params.get("router_id")
    if not raw_router_id:
        return Response(
            {"success": False, "error": "missing_router_id", "message": "Router ID is required", "packages": []},
            status=status.HTTP_400_BAD_REQUEST,
        )

    router_pk = parse_router_id(raw_router_id)
    if router_pk is None:
        return Response(
            {"success": False, "error": "invalid_router_id", "message": "Invalid router identifier", "packages": []},
            status=status.HTTP_400_BAD_REQUEST,
        )

    router = Router.objects.filter(pk=router_pk, is_active=True).first()
    if router is None:
        logger.warning(f"Package listing for unknown router {router_pk}")
        return Response(
            {"success": False, "error": "router_not_found", "message": "Router not found", "packages": []},
            status=status.HTTP_404_NOT_FOUND,
        )

    active_only = request.query_params.get("active_only", "true").lower() != "false"
    data = {"success": True, **reports.package_catalogue(router, active_only=active_only)}
    if not data["packages"]:
        data["message"] = "No packages available at the moment"

    response = Response(data)
    response["Cache-Control"] = "public, max-age=300"
    return response


# =============================================================================
# PAYMENT WEBHOOKS
# =============================================================================


def _payment_snapshot(transaction_id):
    return (
        Payment.objects.filter(transaction_id=transaction_id)
        .values_list("status", "reconciled", "voucher_id")
        .first()
    )


@csrf_exempt
@api_view(["POST"])
@permission_classes([AllowAny])
def payment_webhook(request):
    """
    Generic payment provider notification
    {event, transaction_id, amount, payer_reference, timestamp, phone_number?, recipient?}
    """
    # Read the raw body before DRF consumes the stream
    raw_body = request.body
    payload = _payload_dict(request)
    logger.info(f"Payment webhook received: {payload}")

    webhook_log = PaymentWebhook.objects.create(
        source="generic",
        event_type=str(payload.get("event") or "")[:50],
        transaction_id=str(payload.get("transaction_id") or "").strip().upper()[:100],
        raw_payload=payload,
        source_ip=get_client_ip(request),
    )

    secret = getattr(settings, "PAYMENT_WEBHOOK_SECRET", "")
    if secret:
        signature = request.META.get("HTTP_X_WEBHOOK_SIGNATURE", "")
        if not verify_webhook_signature(raw_body, signature, secret):
            logger.warning(f"Rejected payment webhook with bad signature from {webhook_log.source_ip}")
            webhook_log.mark_failed("Invalid signature")
            return Response(
                {"success": False, "error": "invalid_signature"},
                status=status.HTTP_401_UNAUTHORIZED,
            )

    serializer = PaymentEventSerializer(data=payload)
    if not serializer.is_valid():
        webhook_log.mark_failed(f"Invalid payload: {serializer.errors}")
        return Response(
            {
                "success": False,
                "error": "invalid_input",
                "errors": serializer.errors,
            },
            status=status.HTTP_400_BAD_REQUEST,
        )

    event = serializer.to_event()
    before = _payment_snapshot(event.transaction_id)
    try:
        payment, created = process_payment_event(event)
    except Exception as e:
        logger.exception(f"Error processing payment webhook {event.transaction_id}: {e}")
        webhook_log.mark_failed(str(e))
        return Response(
            {"success": False, "error": "processing_failed", "message": "Failed to process payment event"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if not created and before == (payment.status, payment.reconciled, payment.voucher_id):
        webhook_log.mark_ignored("Duplicate webhook - already processed", payment)
        return Response({"success": True, "message": "Duplicate webhook ignored"})

    webhook_log.mark_processed(payment)
    return Response(
        {
            "success": True,
            "message": "Payment event processed",
            "transaction_id": payment.transaction_id,
            "status": payment.status,
            "reconciled": payment.reconciled,
        }
    )


@csrf_exempt
@api_view(["POST"])
@permission_classes([AllowAny])
def mpesa_confirmation(request):
    """M-Pesa (Daraja) C2B confirmation callback"""
    payload = _payload_dict(request)
    logger.info(f"M-Pesa C2B confirmation received: {payload}")

    webhook_log = PaymentWebhook.objects.create(
        source="mpesa_c2b",
        event_type=str(payload.get("TransactionType") or "C2B")[:50],
        transaction_id=str(payload.get("TransID") or "").strip().upper()[:100],
        raw_payload=payload,
        source_ip=get_client_ip(request),
    )

    try:
        event = event_from_c2b(payload)
    except ValueError as e:
        webhook_log.mark_failed(str(e))
        return Response(
            {"ResultCode": 1, "ResultDesc": f"Rejected: {e}"},
            status=status.HTTP_400_BAD_REQUEST,
        )

    before = _payment_snapshot(event.transaction_id)
    try:
        payment, created = process_payment_event(event)
    except Exception as e:
        logger.exception(f"Error processing M-Pesa confirmation {event.transaction_id}: {e}")
        webhook_log.mark_failed(str(e))
        return Response(
            {"ResultCode": 1, "ResultDesc": "Failed to process payment"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if not created and before == (payment.status, payment.reconciled, payment.voucher_id):
        webhook_log.mark_ignored("Duplicate webhook - already processed", payment)
    else:
        webhook_log.mark_processed(payment)
    return Response({"ResultCode": 0, "ResultDesc": "Accepted"})


# =============================================================================
# OPERATOR ENDPOINTS
# =============================================================================


@api_view(["POST"])
@permission_classes([TenantAPIKeyPermission])
def router_sync_vouchers(request, router_id):
    """Push sellable vouchers to the router. 503 when the router is offline."""
    router = _get_router(request, router_id)
    results = sync_router_vouchers(router)
    return Response({"success": True, "results": results})


@api_view(["POST"])
@permission_classes([TenantAPIKeyPermission])
def router_generate_vouchers(request, router_id):
    """Generate a batch of vouchers for one of the router's packages"""
    router = _get_router(request, router_id)
    serializer = GenerateVouchersSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    package = Package.objects.filter(
        pk=data["package_id"], router=router, is_active=True
    ).first()
    if package is None:
        return Response(
            {"success": False, "error": "package_not_found", "message": "Package not found"},
            status=status.HTTP_404_NOT_FOUND,
        )

    vouchers = store.generate_batch(
        router,
        package,
        data["quantity"],
        expiry_days=data.get("expiry_days"),
        auto_delete=data["auto_delete"],
        timed_on_purchase=data["timed_on_purchase"],
        created_by=_actor(request),
    )

    response_data = {
        "success": True,
        "batch_id": vouchers[0].batch_id if vouchers else "",
        "count": len(vouchers),
        "vouchers": VoucherSerializer(vouchers, many=True).data,
    }

    if data["sync_to_router"]:
        try:
            results = sync_router_vouchers(router)
            response_data["sync"] = {"success": True, "results": results}
        except DeviceOfflineError as e:
            response_data["sync"] = {
                "success": False,
                "error": e.code,
                "message": e.message,
            }

    return Response(response_data, status=status.HTTP_201_CREATED)


@api_view(["POST"])
@permission_classes([TenantAPIKeyPermission])
def router_cancel_voucher(request, router_id, voucher_id):
    """Cancel an unused voucher and remove it from the router if it was pushed"""
    router = _get_router(request, router_id)
    voucher = Voucher.objects.filter(pk=voucher_id, router=router).first()
    if voucher is None:
        raise NotFound("Voucher not found")

    was_synced = voucher.synced_at is not None
    store.cancel(voucher)

    removed = remove_voucher_from_router(voucher) if was_synced else False
    return Response(
        {
            "success": True,
            "voucher": VoucherSerializer(voucher).data,
            "removed_from_router": removed,
        }
    )


def _voucher_query(request, router):
    serializer = VoucherQuerySerializer(data=request.query_params)
    serializer.is_valid(raise_exception=True)
    params = serializer.validated_data
    vouchers = reports.filter_vouchers(
        router,
        state=params["state"],
        package=params.get("package"),
        batch_id=params.get("batch_id"),
        search=params.get("search"),
        date_range=params["date_range"],
    )
    return params, vouchers


def _page(vouchers, params):
    total = vouchers.count()
    limit, skip = params["limit"], params["skip"]
    return vouchers[skip:skip + limit], {
        "total": total,
        "limit": limit,
        "skip": skip,
        "has_more": skip + limit < total,
    }


@api_view(["GET"])
@permission_classes([TenantAPIKeyPermission])
def router_list_vouchers(request, router_id):
    """List the router's vouchers, filtered by state, package, batch or search text"""
    router = _get_router(request, router_id)
    params, vouchers = _voucher_query(request, router)
    page, pagination = _page(vouchers, params)
    return Response(
        {
            "success": True,
            "vouchers": VoucherSerializer(page, many=True).data,
            "pagination": pagination,
        }
    )


@api_view(["GET"])
@permission_classes([TenantAPIKeyPermission])
def router_voucher_history(request, router_id):
    """
    Voucher history with a date range filter. `summary` covers every voucher
    on the router regardless of the filters.
    """
    router = _get_router(request, router_id)
    params, vouchers = _voucher_query(request, router)
    page, pagination = _page(vouchers, params)
    all_vouchers = Voucher.objects.filter(router=router)
    return Response(
        {
            "success": True,
            "vouchers": VoucherSerializer(page, many=True).data,
            "pagination": pagination,
            "summary": reports.state_counts(all_vouchers),
        }
    )


@api_view(["GET"])
@permission_classes([TenantAPIKeyPermission])
def router_voucher_stats(request, router_id):
    """Counts per state, revenue, usage and package breakdown for the router"""
    router = _get_router(request, router_id)
    return Response({"success": True, "stats": reports.VoucherStats(router).summary()})


@api_view(["GET"])
@permission_classes([TenantAPIKeyPermission])
def router_export_vouchers(request, router_id):
    """Download the router's vouchers as CSV (default) or JSON"""
    router = _get_router(request, router_id)
    params, vouchers = _voucher_query(request, router)
    if not vouchers.exists():
        return Response(
            {"success": False, "error": "no_vouchers", "message": "No vouchers found to export"},
            status=status.HTTP_404_NOT_FOUND,
        )

    filename = reports.export_filename(router, params["output"])
    if params["output"] == "json":
        response = Response(
            {"success": True, "vouchers": VoucherSerializer(vouchers, many=True).data}
        )
    else:
        response = HttpResponse(reports.export_vouchers_csv(vouchers), content_type="text/csv")
    response["Content-Disposition"] = f'attachment; filename="{filename}"'
    logger.info(f"📄 Exported vouchers for {router.name} as {params['output']} ({_actor(request)})")
    return response
