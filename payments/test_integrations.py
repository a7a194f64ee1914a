import re
from unittest.mock import Mock, patch
from urllib.parse import urlencode

import requests
from django.conf import settings
from django.test import SimpleTestCase

from . import checkmac
from .exceptions import GatewayUnavailableError, SignatureError
from .integrations import ecpay

GATEWAY_POST = "payments.integrations.ecpay.requests.post"


def response(text, status=200, content_type="text/plain;charset=utf-8"):
    return Mock(status_code=status, text=text, headers={"Content-Type": content_type})


class BuildOrderParamsTests(SimpleTestCase):
    def _params(self, **kwargs):
        options = {"merchant_trade_no": "TP12345678ABCD001", "amount": 299, "item_name": "Item"}
        options.update(kwargs)
        return ecpay.build_order_params(**options)

    def test_required_fields(self):
        params = self._params()
        self.assertEqual(params["MerchantID"], settings.ECPAY["MERCHANT_ID"])
        self.assertEqual(params["PaymentType"], "aio")
        self.assertEqual(params["ChoosePayment"], "BARCODE")
        self.assertEqual(params["EncryptType"], 1)
        self.assertEqual(params["StoreExpireDate"], 7)
        self.assertEqual(params["ReturnURL"], settings.ECPAY["RETURN_URL"])
        self.assertEqual(params["PaymentInfoURL"], settings.ECPAY["PAYMENT_INFO_URL"])
        self.assertRegex(params["MerchantTradeDate"], r"^\d{4}/\d{2}/\d{2} \d{2}:\d{2}:\d{2}$")
        self.assertTrue(checkmac.verify(params))

    def test_store_label(self):
        self.assertEqual(self._params(store_type="FAMILY")["Desc_1"], "FamilyMart")
        self.assertNotIn("Desc_1", self._params(store_type=""))

    def test_long_item_name_truncated(self):
        params = self._params(item_name="n" * 401)
        self.assertEqual(len(params["ItemName"]), 400)
        self.assertTrue(params["ItemName"].endswith("..."))


@patch(GATEWAY_POST)
class CreateBarcodeOrderTests(SimpleTestCase):
    def _create(self):
        return ecpay.create_barcode_order(merchant_trade_no="TP12345678ABCD001", amount=299, item_name="Item")

    def test_posts_signed_form_with_timeout(self, post):
        post.return_value = response("1|OK")
        self._create()
        args, kwargs = post.call_args
        self.assertEqual(args[0], settings.ECPAY["API_URL"])
        self.assertEqual(kwargs["timeout"], settings.ECPAY["TIMEOUT"])
        self.assertTrue(checkmac.verify(kwargs["data"]))

    def test_ack_means_deferred(self, post):
        post.return_value = response("1|OK")
        result = self._create()
        self.assertEqual(result["mode"], ecpay.MODE_DEFERRED)
        self.assertEqual(result["rtn_code"], "1")
        self.assertIn("estimated_ready_at", result)

    def test_html_means_redirect(self, post):
        post.return_value = response("<!DOCTYPE html><html></html>", content_type="text/html")
        result = self._create()
        self.assertEqual(result["mode"], ecpay.MODE_REDIRECT)
        form = result["payment_form"]
        self.assertEqual(form["action"], settings.ECPAY["API_URL"])
        self.assertEqual(form["params"]["MerchantTradeNo"], "TP12345678ABCD001")

    def test_signed_segments_mean_direct(self, post):
        body = checkmac.signed({
            "RtnCode": "1",
            "MerchantTradeNo": "TP12345678ABCD001",
            "Barcode1": "12345",
            "Barcode2": "67890",
            "Barcode3": "ABCDE",
            "ExpireDate": "2030/01/07 23:59:59",
        })
        post.return_value = response(urlencode(body))
        result = self._create()
        self.assertEqual(result["mode"], ecpay.MODE_DIRECT)
        self.assertEqual(result["segments"], ["12345", "67890", "ABCDE"])
        self.assertEqual(result["expire_text"], "2030/01/07 23:59:59")

    def test_json_nested_segments(self, post):
        post.return_value = response('{"RtnCode": 1, "BarcodeInfo": {"Barcode1": "AAA", "Barcode2": "BBB"}}')
        result = self._create()
        self.assertEqual(result["mode"], ecpay.MODE_DIRECT)
        self.assertEqual(result["segments"], ["AAA", "BBB"])

    def test_tampered_response_rejected(self, post):
        body = checkmac.signed({"RtnCode": "1", "Barcode1": "12345"})
        body["Barcode1"] = "99999"
        post.return_value = response(urlencode(body))
        with self.assertLogs("payments.integrations.ecpay", level="WARNING"):
            with self.assertRaises(SignatureError):
                self._create()

    def test_rejection(self, post):
        post.return_value = response("0|CheckMacValue Error")
        with self.assertRaises(GatewayUnavailableError) as ctx:
            self._create()
        self.assertEqual(ctx.exception.code, "GATEWAY_REJECTED")

    def test_non_2xx(self, post):
        post.return_value = response("Bad Gateway", status=502)
        with self.assertLogs("payments.integrations.ecpay", level="ERROR"):
            with self.assertRaises(GatewayUnavailableError):
                self._create()

    def test_timeout(self, post):
        post.side_effect = requests.Timeout("read timed out")
        with self.assertLogs("payments.integrations.ecpay", level="ERROR"):
            with self.assertRaises(GatewayUnavailableError) as ctx:
                self._create()
        self.assertEqual(ctx.exception.status, 503)

    def test_malformed_body(self, post):
        for text in ("", "garbage", "{not json"):
            with self.subTest(text=text):
                post.return_value = response(text)
                with self.assertRaises(GatewayUnavailableError) as ctx:
                    self._create()
                self.assertEqual(ctx.exception.code, "GATEWAY_MALFORMED")


@patch(GATEWAY_POST)
class QueryPaymentInfoTests(SimpleTestCase):
    def test_signed_query(self, post):
        post.return_value = response("MerchantTradeNo=TP1&TradeStatus=0&Barcode1=111")
        data = ecpay.query_payment_info("TP1")
        args, kwargs = post.call_args
        self.assertEqual(args[0], settings.ECPAY["QUERY_URL"])
        sent = kwargs["data"]
        self.assertEqual(sent["MerchantTradeNo"], "TP1")
        self.assertTrue(re.match(r"^\d{10}$", str(sent["TimeStamp"])))
        self.assertTrue(checkmac.verify(sent))
        self.assertEqual(data["TradeStatus"], "0")
        self.assertEqual(data["Barcode1"], "111")

    def test_query_failure(self, post):
        post.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(GatewayUnavailableError):
            ecpay.query_payment_info("TP1")


class ParseResponseTests(SimpleTestCase):
    def test_ack(self):
        self.assertEqual(ecpay.parse_response("1|OK"), {"RtnCode": "1", "RtnMsg": "OK"})

    def test_urlencoded(self):
        self.assertEqual(ecpay.parse_response("a=1&b=x+y"), {"a": "1", "b": "x y"})

    def test_json(self):
        self.assertEqual(ecpay.parse_response('{"RtnCode": "1"}'), {"RtnCode": "1"})
