import json
import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from . import reconcile, services
from .auth import require_api_key
from .exceptions import GatewayUnavailableError, ValidationError
from .forms import CreateBarcodeOrderForm, OrderListForm
from .integrations import ecpay

logger = logging.getLogger(__name__)


def _json_body(request):
    try:
        body = json.loads(request.body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None
    return body if isinstance(body, dict) else None


def _invalid(form):
    return ValidationError("Invalid request", details=form.errors.get_json_data())


def _order(request, order_id):
    return services.get_order(request.api_client.client_system, order_id)


@csrf_exempt
@require_POST
@require_api_key
def create_barcode_order_view(request):
    body = _json_body(request)
    if body is None:
        raise ValidationError("Request body must be a JSON object", code="INVALID_JSON")
    if body.get("amount") is None or not body.get("client_order_id"):
        raise ValidationError("Missing required fields: amount, client_order_id", code="MISSING_FIELD")
    form = CreateBarcodeOrderForm(body)
    if not form.is_valid():
        raise _invalid(form)
    cd = form.cleaned_data

    order, result = services.create_barcode_order(
        client_system=request.api_client.client_system,
        external_order_id=cd["client_order_id"],
        amount=body["amount"],
        product_info=cd.get("product_info") or "",
        callback_url=cd.get("callback_url") or "",
        store_type=cd.get("store_type") or None,
        internal_order_id=cd.get("internal_order_id") or "",
    )

    data = {
        **services.serialize_order(order),
        **services.serialize_barcode(order),
        "mode": result["mode"],
    }
    if result["mode"] == ecpay.MODE_REDIRECT:
        data["payment_form"] = result["payment_form"]
    elif result["mode"] == ecpay.MODE_DEFERRED:
        data["estimated_ready_at"] = result["estimated_ready_at"].isoformat()
    return JsonResponse({"success": True, "data": data}, status=201)


@require_GET
@require_api_key
def list_orders_view(request):
    form = OrderListForm(request.GET)
    if not form.is_valid():
        raise _invalid(form)
    cd = form.cleaned_data
    data = services.list_orders(
        request.api_client.client_system,
        status=cd.get("status") or None,
        page=cd.get("page") or 1,
        limit=cd.get("limit") or 20,
    )
    return JsonResponse({"success": True, "data": data})


@require_GET
@require_api_key
def order_status_view(request, order_id: int):
    return JsonResponse({"success": True, "data": services.get_status(_order(request, order_id))})


@require_GET
@require_api_key
def order_barcode_view(request, order_id: int):
    return JsonResponse({"success": True, "data": services.get_barcode(_order(request, order_id))})


@csrf_exempt
@require_POST
@require_api_key
def order_barcode_query_view(request, order_id: int):
    """Re-query the gateway now instead of waiting for the payment-info webhook."""
    outcome = reconcile.query_and_refresh(_order(request, order_id))
    if not outcome["success"]:
        error = outcome["error"]
        raise GatewayUnavailableError(error["message"], code=error["code"])
    data = {
        **services.serialize_barcode(outcome["order"]),
        "barcode_updated": outcome["barcode_updated"],
        "trade_status": outcome["trade_status"],
    }
    return JsonResponse({"success": True, "data": data})


@csrf_exempt
@require_POST
@require_api_key
def cancel_order_view(request, order_id: int):
    order = services.cancel_order(_order(request, order_id))
    return JsonResponse({"success": True, "data": services.serialize_order(order)})
