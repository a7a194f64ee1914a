import hashlib
import hmac
from datetime import datetime, timedelta, timezone as dt_timezone
from unittest.mock import Mock, patch

from django.conf import settings
from django.core.cache import cache
from django.db.models.query import QuerySet
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone

from . import services, utils
from .checks import check_gateway_settings
from .exceptions import (
    DuplicateOrderError,
    GatewayUnavailableError,
    InvalidStateError,
    SignatureError,
    ValidationError,
)
from .models import ApiClient, CustomerInfo, GatewayTransaction, PaymentOrder
from .notifications import build_notification
from .ratelimit import CacheRateLimiter, get_rate_limiter
from .signals import payment_completed

GATEWAY_POST = "payments.integrations.ecpay.requests.post"
NOTIFY_POST = "payments.notifications.requests.post"


def gateway_response(text="1|OK", status=200, content_type="text/plain"):
    return Mock(status_code=status, text=text, headers={"Content-Type": content_type})


def make_order(client_system="shop", external_order_id="ext-1", amount=299,
               merchant_trade_no="TP12345678ABCD001", **fields):
    fields.setdefault("expire_date", timezone.now() + timedelta(days=7))
    order = PaymentOrder.objects.create(
        client_system=client_system,
        external_order_id=external_order_id,
        amount=amount,
        product_info="Test item",
        **fields,
    )
    order.payment_code = utils.payment_code(order.pk, order.created_at)
    order.save(update_fields=["payment_code"])
    GatewayTransaction.objects.create(order=order, merchant_trade_no=merchant_trade_no, amount=amount)
    return order


class UtilsTests(SimpleTestCase):
    def test_merchant_trade_no_fits_gateway_limit(self):
        for oid in (1, 42, 123456, 99999999):
            with self.subTest(oid=oid):
                value = utils.generate_merchant_trade_no(oid)
                self.assertTrue(value.startswith("TP"))
                self.assertLessEqual(len(value), 20)
                self.assertTrue(value.isalnum())

    def test_merchant_trade_no_is_random(self):
        values = {utils.generate_merchant_trade_no(7) for _ in range(20)}
        self.assertGreater(len(values), 1)

    def test_gateway_datetime_uses_local_time(self):
        value = datetime(2024, 1, 1, 0, 0, 5, tzinfo=dt_timezone.utc)
        self.assertEqual(utils.format_gateway_datetime(value), "2024/01/01 08:00:05")

    def test_parse_gateway_datetime(self):
        parsed = utils.parse_gateway_datetime("2024/01/31 23:59:59")
        self.assertEqual(timezone.localtime(parsed).strftime("%Y-%m-%d %H:%M:%S"), "2024-01-31 23:59:59")
        self.assertIsNone(utils.parse_gateway_datetime(""))
        self.assertIsNone(utils.parse_gateway_datetime("not a date"))

    def test_truncate_item_name(self):
        self.assertEqual(utils.truncate_item_name("short"), "short")
        long_name = "x" * 450
        truncated = utils.truncate_item_name(long_name)
        self.assertEqual(len(truncated), 400)
        self.assertTrue(truncated.endswith("..."))

    def test_payment_code_pads_id(self):
        created = timezone.make_aware(datetime(2024, 3, 5, 10, 0))
        self.assertEqual(utils.payment_code(7, created), "PAY20240305007")
        self.assertEqual(utils.payment_code(1234, created), "PAY202403051234")


@patch(GATEWAY_POST)
class CreateOrderTests(TestCase):
    def _create(self, **kwargs):
        params = {"client_system": "shop", "external_order_id": "t1", "amount": 299}
        params.update(kwargs)
        return services.create_barcode_order(**params)

    def test_deferred_mode_creates_pending_order(self, post):
        post.return_value = gateway_response("1|OK")
        order, result = self._create()

        self.assertEqual(result["mode"], "deferred")
        self.assertGreater(result["estimated_ready_at"], timezone.now())
        self.assertEqual(order.status, PaymentOrder.Status.PENDING)
        self.assertEqual(order.barcode_status, PaymentOrder.BarcodeStatus.PENDING)
        self.assertTrue(order.payment_code.startswith("PAY"))
        self.assertEqual(order.product_info, "Convenience store payment - NT$299")
        self.assertGreater(order.expire_date, timezone.now() + timedelta(days=6))

        txn = order.transactions.get()
        self.assertLessEqual(len(txn.merchant_trade_no), 20)
        self.assertEqual(txn.raw_request["MerchantTradeNo"], txn.merchant_trade_no)
        self.assertEqual(txn.response_code, "1")

        sent = post.call_args.kwargs["data"]
        self.assertEqual(sent["TotalAmount"], 299)
        self.assertEqual(sent["ChoosePayment"], "BARCODE")
        self.assertEqual(sent["Desc_1"], "7-ELEVEN")

    def test_duplicate_external_id_is_rejected(self, post):
        post.return_value = gateway_response("1|OK")
        self._create()
        with self.assertRaises(DuplicateOrderError):
            self._create()
        self.assertEqual(PaymentOrder.objects.count(), 1)
        self.assertEqual(post.call_count, 1)

    def test_same_external_id_allowed_for_another_client(self, post):
        post.return_value = gateway_response("1|OK")
        self._create()
        self._create(client_system="other")
        self.assertEqual(PaymentOrder.objects.count(), 2)

    def test_amount_bounds_checked_before_gateway(self, post):
        for amount in (0, -1, 6001, "299", 299.5, True, None):
            with self.subTest(amount=amount):
                with self.assertRaises(ValidationError):
                    self._create(amount=amount)
        post.assert_not_called()
        self.assertFalse(PaymentOrder.objects.exists())

    def test_non_integer_amount_message_names_the_type(self, post):
        for amount, kind in (("299", "str"), (299.0, "float")):
            with self.subTest(amount=amount):
                with self.assertRaisesMessage(ValidationError, f"amount must be a JSON integer, got {kind}"):
                    self._create(amount=amount)
        post.assert_not_called()

    def test_amount_limits_are_inclusive(self, post):
        post.return_value = gateway_response("1|OK")
        self._create(external_order_id="low", amount=1)
        self._create(external_order_id="high", amount=6000)
        self.assertEqual(PaymentOrder.objects.count(), 2)

    def test_unknown_store_type(self, post):
        with self.assertRaises(ValidationError):
            self._create(store_type="CIRCLEK")
        post.assert_not_called()

    def test_gateway_failure_removes_local_rows(self, post):
        post.return_value = gateway_response("Server Error", status=500)
        with self.assertLogs("payments", level="ERROR"):
            with self.assertRaises(GatewayUnavailableError):
                self._create()
        self.assertFalse(PaymentOrder.objects.exists())
        self.assertFalse(GatewayTransaction.objects.exists())

    def test_gateway_rejection_removes_local_rows(self, post):
        post.return_value = gateway_response("0|TotalAmount error")
        with self.assertRaises(GatewayUnavailableError):
            self._create()
        self.assertFalse(PaymentOrder.objects.exists())

    def test_bad_response_signature_removes_local_rows(self, post):
        post.return_value = gateway_response("RtnCode=1&Barcode1=12345&CheckMacValue=BAD")
        with self.assertRaises(SignatureError):
            self._create()
        self.assertFalse(PaymentOrder.objects.exists())

    def test_failed_create_can_be_retried(self, post):
        post.return_value = gateway_response("oops", status=502)
        with self.assertRaises(GatewayUnavailableError):
            self._create()
        post.return_value = gateway_response("1|OK")
        order, _ = self._create()
        self.assertEqual(order.external_order_id, "t1")

    def test_direct_mode_stores_segments(self, post):
        post.return_value = gateway_response(
            "RtnCode=1&RtnMsg=OK&TradeNo=2401010000001&PaymentNo=P1"
            "&Barcode1=12345&Barcode2=67890&Barcode3=ABCDE&ExpireDate=2030/01/07 23:59:59"
        )
        order, result = self._create()
        self.assertEqual(result["mode"], "direct")
        self.assertEqual(order.barcode_status, PaymentOrder.BarcodeStatus.GENERATED)
        self.assertEqual(order.full_barcode, "12345-67890-ABCDE")
        self.assertEqual(order.barcode_data["source"], "create")
        self.assertEqual(timezone.localtime(order.expire_date).year, 2030)
        self.assertIn("/api/barcode/generate/12345-67890-ABCDE", order.payment_url)
        txn = order.transactions.get()
        self.assertEqual(txn.trade_no, "2401010000001")
        self.assertEqual(txn.barcode_info["segments"], ["12345", "67890", "ABCDE"])

    def test_unusable_direct_barcode_removes_local_rows(self, post):
        post.return_value = gateway_response("RtnCode=1&RtnMsg=OK&Barcode1=AB_CD")
        with self.assertLogs("payments", level="ERROR"):
            with self.assertRaises(GatewayUnavailableError) as ctx:
                self._create()
        self.assertEqual(ctx.exception.code, "GATEWAY_MALFORMED")
        self.assertEqual(ctx.exception.status, 503)
        self.assertFalse(PaymentOrder.objects.exists())
        self.assertFalse(GatewayTransaction.objects.exists())

        post.return_value = gateway_response("RtnCode=1&RtnMsg=OK&Barcode1=12345")
        order, result = self._create()
        self.assertEqual(result["mode"], "direct")
        self.assertEqual(order.full_barcode, "12345")

    def test_redirect_mode_keeps_checkout_url(self, post):
        post.return_value = gateway_response("<html><form></form></html>", content_type="text/html")
        order, result = self._create()
        self.assertEqual(result["mode"], "redirect")
        self.assertEqual(order.payment_url, settings.ECPAY["API_URL"])
        self.assertEqual(result["payment_form"]["method"], "POST")


class BarcodeTransitionTests(TestCase):
    def setUp(self):
        self.order = make_order()

    def test_segments_replace_as_a_unit(self):
        order, changed = services.apply_barcode_segments(self.order.pk, ["11111", "22222", "33333"])
        self.assertTrue(changed)
        order, changed = services.apply_barcode_segments(self.order.pk, ["44444", "55555"])
        self.assertTrue(changed)
        self.assertEqual(order.segments, ["44444", "55555"])
        self.assertEqual(order.barcode_data["barcode_3"], "")
        self.assertEqual(order.barcode_data["segments_count"], 2)

    def test_identical_segments_are_a_noop(self):
        services.apply_barcode_segments(self.order.pk, ["12345", "67890"])
        order, changed = services.apply_barcode_segments(self.order.pk, ["12345", "67890"])
        self.assertFalse(changed)
        self.assertEqual(order.barcode_status, PaymentOrder.BarcodeStatus.GENERATED)

    def test_segments_do_not_touch_payment_status(self):
        order, _ = services.apply_barcode_segments(self.order.pk, ["12345"])
        self.assertEqual(order.status, PaymentOrder.Status.PENDING)
        self.assertIsNone(order.paid_at)

    def test_expired_barcode_is_not_regenerated(self):
        PaymentOrder.objects.filter(pk=self.order.pk).update(barcode_status=PaymentOrder.BarcodeStatus.EXPIRED)
        order, changed = services.apply_barcode_segments(self.order.pk, ["12345"])
        self.assertFalse(changed)
        self.assertEqual(order.barcode_status, PaymentOrder.BarcodeStatus.EXPIRED)
        self.assertIsNone(order.barcode_data)

    def test_invalid_segments_rejected(self):
        for segments in ([], ["A", "B", "C", "D"], ["12_45"]):
            with self.subTest(segments=segments):
                with self.assertRaises(ValidationError):
                    services.apply_barcode_segments(self.order.pk, segments)
        self.order.refresh_from_db()
        self.assertEqual(self.order.barcode_status, PaymentOrder.BarcodeStatus.PENDING)

    def test_expire_date_taken_from_gateway(self):
        order, _ = services.apply_barcode_segments(self.order.pk, ["12345"], expire_text="2031/02/03 12:00:00")
        self.assertEqual(timezone.localtime(order.expire_date).strftime("%Y-%m-%d"), "2031-02-03")


@patch(NOTIFY_POST)
class PaymentTransitionTests(TestCase):
    trade_no = "TP12345678ABCD001"

    def setUp(self):
        self.client_row = ApiClient.objects.create(name="Shop", client_system="shop", api_key="tp_secret")
        self.order = make_order(callback_url="https://shop.example.com/notify")

    def _pay(self, data=None):
        with self.captureOnCommitCallbacks(execute=True):
            return services.record_gateway_payment(self.trade_no, data or {"RtnCode": "1"}, paid=True)

    def test_first_payment_transitions(self, post):
        post.return_value = Mock(ok=True, status_code=200)
        order, transitioned = self._pay({"RtnCode": "1", "TradeNo": "T1", "PaymentDate": "2024/01/02 03:04:05"})
        self.assertTrue(transitioned)
        self.assertEqual(order.status, PaymentOrder.Status.PAID)
        self.assertIsNotNone(order.paid_at)
        self.assertIsNotNone(order.notified_at)
        txn = order.transactions.get()
        self.assertEqual(txn.trade_no, "T1")
        self.assertIsNotNone(txn.payment_date)

    def test_repeat_payment_is_idempotent(self, post):
        post.return_value = Mock(ok=True, status_code=200)
        order, _ = self._pay()
        first_paid_at = order.paid_at
        order, transitioned = self._pay()
        self.assertFalse(transitioned)
        order.refresh_from_db()
        self.assertEqual(order.paid_at, first_paid_at)
        post.assert_called_once()
        self.assertEqual(CustomerInfo.objects.filter(order=order).count(), 1)

    def test_notification_body_is_signed(self, post):
        post.return_value = Mock(ok=True, status_code=200)
        order, _ = self._pay()
        body = post.call_args.kwargs["json"]
        self.assertEqual(post.call_args.args[0], "https://shop.example.com/notify")
        self.assertEqual(body["event"], "payment.completed")
        self.assertEqual(body["payment_id"], order.payment_code)
        self.assertEqual(body["external_ref"], "ext-1")
        message = f"{body['payment_id']}{body['external_ref']}{body['amount']}{body['paid_at']}"
        expected = hmac.new(b"tp_secret", message.encode(), hashlib.sha256).hexdigest()
        self.assertEqual(body["signature"], expected)
        self.assertEqual(build_notification(order, "tp_secret")["signature"], expected)

    def test_notification_failure_is_logged_not_raised(self, post):
        post.return_value = Mock(ok=False, status_code=500)
        with self.assertLogs("payments.notifications", level="ERROR"):
            order, _ = self._pay()
        self.assertEqual(order.status, PaymentOrder.Status.PAID)

    def test_no_callback_url_no_notification(self, post):
        PaymentOrder.objects.filter(pk=self.order.pk).update(callback_url="")
        order, _ = self._pay()
        post.assert_not_called()
        self.assertIsNone(order.notified_at)

    def test_placeholder_customer_created(self, post):
        post.return_value = Mock(ok=True, status_code=200)
        order, _ = self._pay()
        customer = CustomerInfo.objects.get(order=order)
        self.assertEqual(customer.phone, "0000000000")
        self.assertIsNone(customer.email)

    def test_signal_sent_once(self, post):
        post.return_value = Mock(ok=True, status_code=200)
        received = []

        def receiver(sender, order, **kwargs):
            received.append(order.pk)

        payment_completed.connect(receiver)
        self.addCleanup(payment_completed.disconnect, receiver)
        self._pay()
        self._pay()
        self.assertEqual(received, [self.order.pk])

    def test_unpaid_result_only_records_transaction(self, post):
        with self.captureOnCommitCallbacks(execute=True):
            order, transitioned = services.record_gateway_payment(
                self.trade_no, {"RtnCode": "10100058", "RtnMsg": "Failed"}, paid=False
            )
        self.assertFalse(transitioned)
        self.assertEqual(order.status, PaymentOrder.Status.PENDING)
        self.assertEqual(order.transactions.get().response_code, "10100058")
        post.assert_not_called()

    def test_order_row_locked_before_transaction_row(self, post):
        post.return_value = Mock(ok=True, status_code=200)
        select_for_update = QuerySet.select_for_update
        locked = []

        def spy(qs, *args, **kwargs):
            locked.append(qs.model)
            return select_for_update(qs, *args, **kwargs)

        with patch.object(QuerySet, "select_for_update", autospec=True, side_effect=spy):
            self._pay()
        self.assertEqual(locked, [PaymentOrder, GatewayTransaction])

    def test_cancelled_order_is_never_paid(self, post):
        PaymentOrder.objects.filter(pk=self.order.pk).update(status=PaymentOrder.Status.CANCELLED)
        with self.assertLogs("payments.services", level="WARNING"):
            order, transitioned = self._pay()
        self.assertFalse(transitioned)
        self.assertEqual(order.status, PaymentOrder.Status.CANCELLED)
        self.assertIsNone(order.paid_at)

    def test_expired_order_can_still_be_paid(self, post):
        post.return_value = Mock(ok=True, status_code=200)
        PaymentOrder.objects.filter(pk=self.order.pk).update(status=PaymentOrder.Status.EXPIRED)
        order, transitioned = self._pay()
        self.assertTrue(transitioned)
        self.assertEqual(order.status, PaymentOrder.Status.PAID)


class ExpiryAndCancelTests(TestCase):
    def test_lazy_expiry_persists(self):
        order = make_order(expire_date=timezone.now() - timedelta(minutes=1))
        data = services.get_status(order)
        self.assertEqual(data["status"], "expired")
        self.assertEqual(data["barcode_status"], "expired")
        stored = PaymentOrder.objects.get(pk=order.pk)
        self.assertEqual(stored.status, PaymentOrder.Status.EXPIRED)
        self.assertEqual(stored.barcode_status, PaymentOrder.BarcodeStatus.EXPIRED)

    def test_future_expiry_untouched(self):
        order = make_order()
        self.assertEqual(services.get_status(order)["status"], "pending")

    def test_paid_order_never_expires(self):
        order = make_order(
            expire_date=timezone.now() - timedelta(days=1),
            status=PaymentOrder.Status.PAID,
            paid_at=timezone.now() - timedelta(days=2),
        )
        self.assertEqual(services.get_status(order)["status"], "paid")

    def test_cancel_pending(self):
        order = services.cancel_order(make_order())
        self.assertEqual(order.status, PaymentOrder.Status.CANCELLED)

    def test_cancel_paid_rejected(self):
        order = make_order(status=PaymentOrder.Status.PAID, paid_at=timezone.now())
        with self.assertRaises(InvalidStateError):
            services.cancel_order(order)

    def test_cancel_overdue_rejected(self):
        order = make_order(expire_date=timezone.now() - timedelta(minutes=1))
        with self.assertRaises(InvalidStateError):
            services.cancel_order(order)


@override_settings(PAYMENTS={**settings.PAYMENTS, "MAX_AMOUNT": 100})
class AmountSettingTests(SimpleTestCase):
    def test_limit_follows_settings(self):
        self.assertEqual(services.validate_amount(100), 100)
        with self.assertRaises(ValidationError):
            services.validate_amount(101)


class SystemCheckTests(SimpleTestCase):
    def test_configured_keys_pass(self):
        self.assertEqual([e.id for e in check_gateway_settings(None)], [])

    @override_settings(ECPAY={"MERCHANT_ID": "2000132", "HASH_KEY": "", "HASH_IV": "",
                              "RETURN_URL": "https://x", "PAYMENT_INFO_URL": "https://y"})
    def test_missing_keys_fail(self):
        errors = check_gateway_settings(None)
        self.assertEqual([e.id for e in errors], ["payments.E001"])
        self.assertIn("HASH_KEY", errors[0].msg)


class CacheRateLimiterTests(SimpleTestCase):
    def setUp(self):
        cache.clear()

    @patch("payments.ratelimit.time.time", return_value=6_000)
    def test_fixed_window(self, _):
        limiter = get_rate_limiter()
        results = [limiter.hit("k", 2, 60) for _ in range(3)]
        self.assertEqual([r.allowed for r in results], [True, True, False])
        self.assertEqual(results[0].remaining, 1)
        self.assertEqual(results[2].retry_after, 60)

    def test_keys_are_independent(self):
        limiter = CacheRateLimiter()
        self.assertTrue(limiter.hit("a", 1, 60).allowed)
        self.assertTrue(limiter.hit("b", 1, 60).allowed)
