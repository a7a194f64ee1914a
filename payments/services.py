"""Payment order lifecycle.

``status`` moves ``pending -> paid | expired | cancelled``; ``barcode_status``
moves ``pending -> generated -> expired`` on its own axis.  Every transition
locks the order row by primary key and is idempotent, so the payment webhook,
the payment-info webhook and reconciliation polls may arrive in any order and
any number of times.
"""

import logging

from django.conf import settings
from django.db import IntegrityError, transaction
from django.urls import reverse
from django.utils import timezone

from barcodes import code39

from .exceptions import (
    DuplicateOrderError,
    GatewayUnavailableError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from .integrations import ecpay
from .models import CustomerInfo, GatewayTransaction, PaymentOrder
from .notifications import send_payment_notification
from .payloads import build_barcode_data
from .signals import payment_completed
from .utils import (
    absolute_url,
    default_expire_date,
    generate_merchant_trade_no,
    parse_gateway_datetime,
    payment_code,
    truncate_item_name,
)

logger = logging.getLogger(__name__)

TRADE_NO_ATTEMPTS = 5


def default_product_info(amount) -> str:
    return f"Convenience store payment - NT${amount}"


def validate_amount(amount) -> int:
    conf = settings.PAYMENTS
    low, high = conf.get("MIN_AMOUNT", 1), conf.get("MAX_AMOUNT", 6000)
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(
            f"amount must be a JSON integer, got {type(amount).__name__}", code="INVALID_AMOUNT",
        )
    if not low <= amount <= high:
        raise ValidationError(f"amount must be an integer between {low} and {high}", code="INVALID_AMOUNT")
    return amount


def validate_segments(segments):
    segments = [str(s).strip() for s in segments or [] if str(s).strip()]
    if not 1 <= len(segments) <= code39.MAX_SEGMENTS:
        raise ValidationError(
            f"Expected 1 to {code39.MAX_SEGMENTS} barcode segments, got {len(segments)}",
            code="INVALID_SEGMENTS",
        )
    bad = [s for s in segments if not code39.is_valid(s)]
    if bad:
        raise ValidationError(f"Barcode segments outside Code39: {bad}", code="INVALID_SEGMENTS")
    return [s.upper() for s in segments]


def _reserve_transaction(order) -> GatewayTransaction:
    for _ in range(TRADE_NO_ATTEMPTS):
        try:
            with transaction.atomic():
                return GatewayTransaction.objects.create(
                    order=order,
                    merchant_trade_no=generate_merchant_trade_no(order.pk),
                    amount=order.amount,
                    payment_type="BARCODE",
                )
        except IntegrityError:
            logger.warning("Merchant trade number collision for order %s, retrying", order.pk)
    raise IntegrityError(f"Could not allocate a unique merchant trade number for order {order.pk}")


@transaction.atomic
def _provision(*, client_system, external_order_id, amount, product_info, callback_url,
               store_type, internal_order_id):
    try:
        with transaction.atomic():
            order = PaymentOrder.objects.create(
                client_system=client_system,
                external_order_id=external_order_id,
                amount=amount,
                product_info=product_info,
                callback_url=callback_url or "",
                store_type=store_type,
                internal_order_id=internal_order_id or "",
                expire_date=default_expire_date(),
            )
    except IntegrityError:
        raise DuplicateOrderError(f"Order {external_order_id} already exists")
    order.payment_code = payment_code(order.pk, order.created_at)
    order.save(update_fields=["payment_code"])
    return order, _reserve_transaction(order)


def create_barcode_order(*, client_system, external_order_id, amount, product_info="",
                         callback_url="", store_type=None, internal_order_id=""):
    """Create the local order, submit it to the gateway, and return ``(order, gateway_result)``.

    If the gateway call fails, or answers with a barcode that is not valid
    Code39, the freshly provisioned rows are deleted before the error
    propagates, so no pending order exists without a usable gateway trade.
    """
    amount = validate_amount(amount)
    if not external_order_id:
        raise ValidationError("client_order_id is required", code="MISSING_FIELD")
    store_type = store_type or settings.PAYMENTS.get("DEFAULT_STORE_TYPE", "7ELEVEN")
    if store_type not in PaymentOrder.StoreType.values:
        raise ValidationError(f"Unsupported store_type {store_type}", code="INVALID_STORE_TYPE")

    if PaymentOrder.objects.filter(external_order_id=external_order_id, client_system=client_system).exists():
        raise DuplicateOrderError(f"Order {external_order_id} already exists")

    order, txn = _provision(
        client_system=client_system,
        external_order_id=external_order_id,
        amount=amount,
        product_info=truncate_item_name(product_info or default_product_info(amount)),
        callback_url=callback_url,
        store_type=store_type,
        internal_order_id=internal_order_id,
    )

    try:
        result = ecpay.create_barcode_order(
            merchant_trade_no=txn.merchant_trade_no,
            amount=order.amount,
            item_name=order.product_info,
            store_type=order.store_type,
        )
    except Exception:
        logger.error("Gateway create failed for %s/%s, removing order %s",
                     client_system, external_order_id, order.pk)
        order.delete()
        raise

    txn.raw_request = result.get("request")
    txn.raw_response = result.get("response")
    txn.response_code = result.get("rtn_code", "")
    txn.response_msg = (result.get("rtn_msg") or "")[:255]
    if result.get("trade_no"):
        txn.trade_no = result["trade_no"]
    txn.save()

    if result["mode"] == ecpay.MODE_REDIRECT:
        order.payment_url = result["payment_form"]["action"]
        order.save(update_fields=["payment_url", "updated_at"])
    elif result["mode"] == ecpay.MODE_DIRECT:
        try:
            order, _ = apply_barcode_segments(
                order.pk,
                result["segments"],
                payment_no=result.get("payment_no", ""),
                expire_text=result.get("expire_text", ""),
                source="create",
                merchant_trade_no=txn.merchant_trade_no,
            )
        except ValidationError as e:
            logger.error("Gateway returned unusable barcode for %s, removing order %s: %s",
                         txn.merchant_trade_no, order.pk, e)
            order.delete()
            raise GatewayUnavailableError(f"Gateway returned an unusable barcode: {e}",
                                          code="GATEWAY_MALFORMED") from e
    logger.info("Created order %s (%s) in %s mode", order.pk, txn.merchant_trade_no, result["mode"])
    return order, result


def barcode_page_url(full_barcode: str) -> str:
    return absolute_url(reverse("barcodes:generate", args=[full_barcode]))


@transaction.atomic
def apply_barcode_segments(order_pk, segments, *, payment_no="", expire_text="", source="webhook",
                           merchant_trade_no=None):
    """Replace the order's barcode with ``segments`` as one unit.

    Returns ``(order, changed)``.  Expired barcodes are left alone and an
    identical segment set is a no-op.
    """
    segments = validate_segments(segments)
    order = PaymentOrder.objects.select_for_update().get(pk=order_pk)

    if order.barcode_status == PaymentOrder.BarcodeStatus.EXPIRED:
        logger.info("Ignoring barcode for order %s: barcode already expired", order.pk)
        return order, False
    if order.status == PaymentOrder.Status.CANCELLED:
        logger.info("Ignoring barcode for cancelled order %s", order.pk)
        return order, False
    if order.barcode_status == PaymentOrder.BarcodeStatus.GENERATED and order.segments == segments:
        return order, False

    expire_at = parse_gateway_datetime(expire_text)
    data = build_barcode_data(segments, payment_no=payment_no, expire_date=expire_text, source=source)
    order.barcode_data = data
    order.barcode_status = PaymentOrder.BarcodeStatus.GENERATED
    order.payment_url = barcode_page_url(data["full_barcode"])
    if expire_at:
        order.expire_date = expire_at
    order.save()

    txns = order.transactions.all()
    if merchant_trade_no:
        txns = txns.filter(merchant_trade_no=merchant_trade_no)
    txns.update(barcode_info=data, updated_at=timezone.now())

    logger.info("Order %s barcode generated from %s: %s", order.pk, source, data["full_barcode"])
    return order, True


def _provision_customer(order):
    CustomerInfo.objects.get_or_create(order=order, defaults=dict(CustomerInfo.PLACEHOLDER))


def _mark_paid(order, paid_at=None):
    """Move a locked order to ``paid``. Returns True only on the first transition."""
    if order.status == PaymentOrder.Status.PAID:
        return False
    if order.status == PaymentOrder.Status.CANCELLED:
        logger.warning("Payment reported for cancelled order %s; leaving it cancelled", order.pk)
        return False

    order.status = PaymentOrder.Status.PAID
    order.paid_at = paid_at or timezone.now()
    fields = ["status", "paid_at", "updated_at"]
    if order.callback_url and order.notified_at is None:
        order.notified_at = timezone.now()
        fields.append("notified_at")
        transaction.on_commit(lambda: send_payment_notification(order))
    order.save(update_fields=fields)
    _provision_customer(order)
    transaction.on_commit(lambda: payment_completed.send(sender=PaymentOrder, order=order))
    logger.info("Order %s paid", order.pk)
    return True


@transaction.atomic
def record_gateway_payment(merchant_trade_no: str, data: dict, *, paid: bool, source="webhook"):
    """Store a payment result for ``merchant_trade_no`` and mark the order paid when ``paid``.

    Returns ``(order, transitioned)``.
    """
    order_id = (
        GatewayTransaction.objects.filter(merchant_trade_no=merchant_trade_no)
        .values_list("order_id", flat=True)
        .first()
    )
    if order_id is None:
        raise NotFoundError(f"Unknown MerchantTradeNo {merchant_trade_no}")
    # Order row first, then its transactions, same as apply_barcode_segments.
    order = PaymentOrder.objects.select_for_update().get(pk=order_id)
    txn = GatewayTransaction.objects.select_for_update().get(merchant_trade_no=merchant_trade_no)

    txn.trade_no = str(data.get("TradeNo") or txn.trade_no)
    txn.payment_type = str(data.get("PaymentType") or txn.payment_type)
    txn.payment_date = parse_gateway_datetime(data.get("PaymentDate")) or txn.payment_date
    if source == "webhook":
        txn.response_code = str(data.get("RtnCode", ""))
        txn.response_msg = str(data.get("RtnMsg", ""))[:255]
    txn.raw_response = data
    txn.save()

    transitioned = _mark_paid(order) if paid else False
    return order, transitioned


def check_expiry(order):
    """Persist ``expired`` the first time a pending order is read past its expire date."""
    if order.status != PaymentOrder.Status.PENDING or not order.is_overdue:
        return order
    now = timezone.now()
    updated = PaymentOrder.objects.filter(
        pk=order.pk, status=PaymentOrder.Status.PENDING, expire_date__lt=now,
    ).update(
        status=PaymentOrder.Status.EXPIRED,
        barcode_status=PaymentOrder.BarcodeStatus.EXPIRED,
        updated_at=now,
    )
    if updated:
        logger.info("Order %s expired", order.pk)
    order.refresh_from_db()
    return order


@transaction.atomic
def cancel_order(order):
    order = PaymentOrder.objects.select_for_update().get(pk=order.pk)
    if order.status == PaymentOrder.Status.PENDING and order.is_overdue:
        raise InvalidStateError("Order has already expired")
    if order.status != PaymentOrder.Status.PENDING:
        raise InvalidStateError(f"Cannot cancel an order that is {order.status}")
    order.status = PaymentOrder.Status.CANCELLED
    order.save(update_fields=["status", "updated_at"])
    logger.info("Order %s cancelled", order.pk)
    return order


def get_order(client_system: str, order_id) -> PaymentOrder:
    order = PaymentOrder.objects.filter(pk=order_id, client_system=client_system).first()
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def _iso(value):
    return value.isoformat() if value else None


def latest_transaction(order):
    return order.transactions.order_by("-created_at", "-id").first()


def serialize_order(order) -> dict:
    txn = latest_transaction(order)
    return {
        "order_id": order.pk,
        "client_order_id": order.external_order_id,
        "payment_code": order.payment_code,
        "merchant_trade_no": txn.merchant_trade_no if txn else None,
        "status": order.status,
        "barcode_status": order.barcode_status,
        "amount": order.amount,
        "product_info": order.product_info,
        "store_type": order.store_type,
        "payment_url": order.payment_url,
        "expire_date": _iso(order.expire_date),
        "paid_at": _iso(order.paid_at),
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
    }


def serialize_barcode(order) -> dict:
    data = order.barcode_data or {}
    return {
        "order_id": order.pk,
        "status": order.status,
        "barcode_status": order.barcode_status,
        "barcode": data.get("full_barcode") or None,
        "barcode_segments": list(data.get("segments") or []),
        "barcode_data": data or None,
        "barcode_page_url": order.payment_url or None,
        "expire_date": _iso(order.expire_date),
    }


def get_status(order) -> dict:
    """Stored state with lazy expiry applied. Never contacts the gateway."""
    return serialize_order(check_expiry(order))


def get_barcode(order) -> dict:
    return serialize_barcode(check_expiry(order))


def list_orders(client_system: str, *, status=None, page=1, limit=20) -> dict:
    qs = PaymentOrder.objects.filter(client_system=client_system)
    if status:
        qs = qs.filter(status=status)
    total = qs.count()
    start = (page - 1) * limit
    orders = [serialize_order(check_expiry(o)) for o in qs[start:start + limit]]
    return {
        "orders": orders,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }
