import json
from unittest.mock import Mock, patch
from urllib.parse import urlencode

from django.test import TestCase
from django.urls import reverse

from . import checkmac, payloads
from .models import ApiClient, PaymentOrder
from .tests import NOTIFY_POST, make_order
from .webhook import handle_payment_callback, handle_payment_info_callback

TRADE_NO = "TP12345678ABCD001"


def signed_form(**fields):
    fields.setdefault("MerchantID", "2000132")
    fields.setdefault("MerchantTradeNo", TRADE_NO)
    return checkmac.signed(fields)


class EcpayCallbackTests(TestCase):
    def setUp(self):
        ApiClient.objects.create(name="Shop", client_system="shop", api_key="tp_secret")
        self.order = make_order(callback_url="https://shop.example.com/notify")

    def _post(self, payload):
        return self.client.post(
            reverse("payments:ecpay_callback"),
            data=urlencode(payload),
            content_type="application/x-www-form-urlencoded",
        )

    def _paid_payload(self):
        return signed_form(
            RtnCode="1",
            RtnMsg="Succeeded",
            TradeNo="2401010000001",
            TradeAmt="299",
            PaymentDate="2024/01/02 10:00:00",
            PaymentType="BARCODE_BARCODE",
            SimulatePaid="0",
        )

    @patch(NOTIFY_POST, return_value=Mock(ok=True, status_code=200))
    def test_success_marks_paid(self, post):
        with self.captureOnCommitCallbacks(execute=True):
            resp = self._post(self._paid_payload())
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.content, b"1|OK")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, PaymentOrder.Status.PAID)
        self.assertIsNotNone(self.order.paid_at)
        txn = self.order.transactions.get()
        self.assertEqual(txn.trade_no, "2401010000001")
        self.assertEqual(txn.payment_type, "BARCODE_BARCODE")
        post.assert_called_once()

    @patch(NOTIFY_POST, return_value=Mock(ok=True, status_code=200))
    def test_duplicate_delivery_notifies_once(self, post):
        payload = self._paid_payload()
        with self.captureOnCommitCallbacks(execute=True):
            first = self._post(payload)
        self.order.refresh_from_db()
        paid_at = self.order.paid_at
        with self.captureOnCommitCallbacks(execute=True):
            second = self._post(payload)
        self.assertEqual(first.content, b"1|OK")
        self.assertEqual(second.content, b"1|OK")
        self.order.refresh_from_db()
        self.assertEqual(self.order.paid_at, paid_at)
        post.assert_called_once()

    def test_bad_signature_rejected(self):
        payload = self._paid_payload()
        payload["TradeAmt"] = "1"
        with self.assertLogs("payments.webhook", level="WARNING"):
            resp = self._post(payload)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.content, b"0|CheckMacValue verification failed")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, PaymentOrder.Status.PENDING)

    def test_unknown_trade_no(self):
        payload = signed_form(MerchantTradeNo="TP00000000ZZZZ999", RtnCode="1")
        with self.assertLogs("payments.webhook", level="ERROR"):
            resp = self._post(payload)
        self.assertEqual(resp.content, b"0|Unknown MerchantTradeNo")

    def test_failed_payment_keeps_pending(self):
        resp = self._post(signed_form(RtnCode="10100248", RtnMsg="Failed"))
        self.assertEqual(resp.content, b"1|OK")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, PaymentOrder.Status.PENDING)
        self.assertEqual(self.order.transactions.get().response_code, "10100248")

    def test_get_not_allowed(self):
        resp = self.client.get(reverse("payments:ecpay_callback"))
        self.assertEqual(resp.status_code, 405)

    def test_handler_never_raises_on_empty_payload(self):
        self.assertEqual(handle_payment_callback({}), (False, "CheckMacValue verification failed"))


class EcpayPaymentInfoTests(TestCase):
    def setUp(self):
        self.order = make_order()

    def _post_form(self, payload):
        return self.client.post(
            reverse("payments:ecpay_payment_info"),
            data=urlencode(payload),
            content_type="application/x-www-form-urlencoded",
        )

    def test_flat_segments(self):
        payload = signed_form(
            RtnCode="10100073", RtnMsg="Get CVS Code Succeeded.", PaymentNo="",
            Barcode1="12345", Barcode2="67890", Barcode3="ABCDE", ExpireDate="2030/01/07 23:59:59",
        )
        resp = self._post_form(payload)
        self.assertEqual(resp.content, b"1|OK")
        self.order.refresh_from_db()
        self.assertEqual(self.order.barcode_status, PaymentOrder.BarcodeStatus.GENERATED)
        self.assertEqual(self.order.full_barcode, "12345-67890-ABCDE")
        self.assertEqual(self.order.status, PaymentOrder.Status.PENDING)
        self.assertEqual(self.order.barcode_data["source"], "webhook")
        self.assertEqual(self.order.transactions.get().barcode_info["full_barcode"], "12345-67890-ABCDE")

    def test_nested_json_segments(self):
        payload = {
            "MerchantID": "2000132",
            "MerchantTradeNo": TRADE_NO,
            "RtnCode": "1",
            "BarcodeInfo": {"Barcode1": "AAA111", "Barcode2": "BBB222", "ExpireDate": "2030/01/07 23:59:59"},
        }
        payload["CheckMacValue"] = checkmac.sign(payloads.flatten(payload))
        resp = self.client.post(
            reverse("payments:ecpay_payment_info"), data=json.dumps(payload), content_type="application/json"
        )
        self.assertEqual(resp.content, b"1|OK")
        self.order.refresh_from_db()
        self.assertEqual(self.order.segments, ["AAA111", "BBB222"])

    def test_bad_signature(self):
        payload = signed_form(RtnCode="1", Barcode1="12345")
        payload["Barcode1"] = "54321"
        with self.assertLogs("payments.webhook", level="WARNING"):
            resp = self._post_form(payload)
        self.assertEqual(resp.content, b"0|CheckMacValue verification failed")
        self.order.refresh_from_db()
        self.assertEqual(self.order.barcode_status, PaymentOrder.BarcodeStatus.PENDING)

    def test_missing_segments(self):
        resp = self._post_form(signed_form(RtnCode="1"))
        self.assertEqual(resp.content, b"0|No barcode segments")

    def test_segments_outside_code39(self):
        resp = self._post_form(signed_form(RtnCode="1", Barcode1="ab#cd"))
        self.assertTrue(resp.content.startswith(b"0|"))
        self.order.refresh_from_db()
        self.assertEqual(self.order.barcode_status, PaymentOrder.BarcodeStatus.PENDING)

    def test_not_issued_is_acknowledged(self):
        with self.assertLogs("payments.webhook", level="WARNING"):
            resp = self._post_form(signed_form(RtnCode="10100050", RtnMsg="Parameter Error"))
        self.assertEqual(resp.content, b"1|OK")
        self.order.refresh_from_db()
        self.assertEqual(self.order.barcode_status, PaymentOrder.BarcodeStatus.PENDING)

    def test_redelivery_is_idempotent(self):
        payload = signed_form(RtnCode="1", Barcode1="12345", Barcode2="67890")
        self.assertEqual(handle_payment_info_callback(payload), (True, "OK"))
        self.order.refresh_from_db()
        updated_at = self.order.updated_at
        self.assertEqual(handle_payment_info_callback(payload), (True, "OK"))
        self.order.refresh_from_db()
        self.assertEqual(self.order.updated_at, updated_at)
