from io import StringIO
from unittest.mock import patch
from urllib.parse import urlencode

import requests
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone

from . import checkmac
from .models import PaymentOrder
from .reconcile import query_and_refresh
from .test_webhook import TRADE_NO, signed_form
from .tests import GATEWAY_POST, gateway_response, make_order
from .webhook import handle_payment_info_callback


def query_response(**fields):
    fields.setdefault("MerchantID", "2000132")
    fields.setdefault("MerchantTradeNo", TRADE_NO)
    return gateway_response(urlencode(checkmac.signed(fields)))


@patch(GATEWAY_POST)
class QueryAndRefreshTests(TestCase):
    def setUp(self):
        self.order = make_order()

    def test_segments_from_query(self, post):
        post.return_value = query_response(TradeStatus="0", Barcode1="12345", Barcode2="67890", Barcode3="ABCDE")
        outcome = query_and_refresh(self.order)
        self.assertTrue(outcome["success"])
        self.assertTrue(outcome["barcode_updated"])
        self.assertEqual(outcome["trade_status"], "0")
        order = outcome["order"]
        self.assertEqual(order.barcode_status, PaymentOrder.BarcodeStatus.GENERATED)
        self.assertEqual(order.full_barcode, "12345-67890-ABCDE")
        self.assertEqual(order.barcode_data["source"], "query")
        self.assertEqual(order.status, PaymentOrder.Status.PENDING)

    def test_second_query_reports_no_change(self, post):
        post.return_value = query_response(TradeStatus="0", Barcode1="12345")
        query_and_refresh(self.order)
        outcome = query_and_refresh(self.order)
        self.assertFalse(outcome["barcode_updated"])

    def test_nothing_yet(self, post):
        post.return_value = query_response(TradeStatus="0")
        outcome = query_and_refresh(self.order)
        self.assertTrue(outcome["success"])
        self.assertFalse(outcome["barcode_updated"])
        self.assertEqual(outcome["order"].barcode_status, PaymentOrder.BarcodeStatus.PENDING)

    def test_paid_trade_status(self, post):
        post.return_value = query_response(TradeStatus="1", TradeNo="2401010000001", Barcode1="12345")
        with self.captureOnCommitCallbacks(execute=True):
            outcome = query_and_refresh(self.order)
        order = outcome["order"]
        self.assertEqual(outcome["trade_status"], "1")
        self.assertEqual(order.status, PaymentOrder.Status.PAID)
        self.assertIsNotNone(order.paid_at)
        self.assertEqual(order.transactions.get().trade_no, "2401010000001")

    def test_gateway_down_is_reported(self, post):
        post.side_effect = requests.Timeout("slow")
        with self.assertLogs("payments", level="WARNING"):
            outcome = query_and_refresh(self.order)
        self.assertFalse(outcome["success"])
        self.assertEqual(outcome["error"]["code"], "GATEWAY_UNAVAILABLE")
        self.order.refresh_from_db()
        self.assertEqual(self.order.barcode_status, PaymentOrder.BarcodeStatus.PENDING)

    def test_tampered_query_response(self, post):
        body = checkmac.signed({"MerchantTradeNo": TRADE_NO, "TradeStatus": "1", "Barcode1": "12345"})
        body["TradeStatus"] = "1 "
        post.return_value = gateway_response(urlencode(body))
        with self.assertLogs("payments", level="WARNING"):
            outcome = query_and_refresh(self.order)
        self.assertFalse(outcome["success"])
        self.assertEqual(outcome["error"]["code"], "INVALID_SIGNATURE")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, PaymentOrder.Status.PENDING)


@patch(GATEWAY_POST)
class WebhookPollConvergenceTests(TestCase):
    def setUp(self):
        self.order = make_order()
        self.webhook_payload = signed_form(RtnCode="1", Barcode1="12345", Barcode2="67890", Barcode3="ABCDE")

    def test_webhook_then_poll(self, post):
        post.return_value = query_response(TradeStatus="0", Barcode1="12345", Barcode2="67890", Barcode3="ABCDE")
        self.assertEqual(handle_payment_info_callback(self.webhook_payload), (True, "OK"))
        outcome = query_and_refresh(self.order)
        self.assertFalse(outcome["barcode_updated"])
        self.assertEqual(outcome["order"].segments, ["12345", "67890", "ABCDE"])
        self.assertEqual(outcome["order"].barcode_data["source"], "webhook")

    def test_poll_then_webhook(self, post):
        post.return_value = query_response(TradeStatus="0", Barcode1="12345", Barcode2="67890", Barcode3="ABCDE")
        query_and_refresh(self.order)
        self.assertEqual(handle_payment_info_callback(self.webhook_payload), (True, "OK"))
        self.order.refresh_from_db()
        self.assertEqual(self.order.segments, ["12345", "67890", "ABCDE"])
        self.assertEqual(self.order.barcode_status, PaymentOrder.BarcodeStatus.GENERATED)

    def test_differing_sets_never_mix(self, post):
        post.return_value = query_response(TradeStatus="0", Barcode1="99999", Barcode2="88888")
        handle_payment_info_callback(self.webhook_payload)
        outcome = query_and_refresh(self.order)
        self.assertEqual(outcome["order"].segments, ["99999", "88888"])
        self.assertEqual(outcome["order"].barcode_data["barcode_3"], "")
        self.assertEqual(outcome["order"].full_barcode, "99999-88888")


@patch(GATEWAY_POST)
class ReconcileCommandTests(TestCase):
    def _run(self):
        out = StringIO()
        call_command("reconcile_barcode_orders", "--sleep", "0", "--older-than-minutes", "0", stdout=out)
        return out.getvalue()

    def test_nothing_to_do(self, post):
        self.assertIn("No pending orders to reconcile.", self._run())
        post.assert_not_called()

    def test_refreshes_pending_barcodes(self, post):
        order = make_order()
        PaymentOrder.objects.filter(pk=order.pk).update(updated_at=timezone.now() - timezone.timedelta(minutes=5))
        post.return_value = query_response(TradeStatus="0", Barcode1="12345")
        output = self._run()
        self.assertIn(f"Order {order.pk} -> status=pending barcode=generated", output)
        order.refresh_from_db()
        self.assertEqual(order.barcode_status, PaymentOrder.BarcodeStatus.GENERATED)

    def test_expires_overdue_orders(self, post):
        order = make_order(expire_date=timezone.now() - timezone.timedelta(hours=1))
        output = self._run()
        self.assertIn(f"Order {order.pk} expired", output)
        order.refresh_from_db()
        self.assertEqual(order.status, PaymentOrder.Status.EXPIRED)
        post.assert_not_called()

    def test_gateway_failure_reported(self, post):
        order = make_order()
        PaymentOrder.objects.filter(pk=order.pk).update(updated_at=timezone.now() - timezone.timedelta(minutes=5))
        post.side_effect = requests.ConnectionError("refused")
        output = self._run()
        self.assertIn(f"Order {order.pk}: Gateway request failed", output)

    def test_bad_order_does_not_stop_the_batch(self, post):
        first = make_order()
        second = make_order(external_order_id="ext-2", merchant_trade_no="TP12345678ABCD002")
        PaymentOrder.objects.filter(pk=first.pk).update(updated_at=timezone.now() - timezone.timedelta(minutes=10))
        PaymentOrder.objects.filter(pk=second.pk).update(updated_at=timezone.now() - timezone.timedelta(minutes=5))
        post.side_effect = [
            query_response(TradeStatus="0", Barcode1="AB_CD"),
            query_response(MerchantTradeNo="TP12345678ABCD002", TradeStatus="0", Barcode1="12345"),
        ]
        with self.assertLogs("payments", level="WARNING"):
            output = self._run()

        self.assertIn(f"Order {first.pk}: Barcode segments outside Code39", output)
        self.assertIn(f"Order {second.pk} -> status=pending barcode=generated", output)
        self.assertEqual(post.call_count, 2)
        first.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(first.barcode_status, PaymentOrder.BarcodeStatus.PENDING)
        self.assertEqual(second.full_barcode, "12345")
