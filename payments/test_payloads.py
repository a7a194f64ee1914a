from django.test import SimpleTestCase

from . import payloads


class ExtractSegmentsTests(SimpleTestCase):
    def test_flat_fields(self):
        payload = {"Barcode1": "12345", "Barcode2": "67890", "Barcode3": "ABCDE"}
        self.assertEqual(payloads.extract_segments(payload), ["12345", "67890", "ABCDE"])

    def test_flat_underscore_fields(self):
        payload = {"Barcode_1": "12345", "Barcode_2": "67890"}
        self.assertEqual(payloads.extract_segments(payload), ["12345", "67890"])

    def test_nested_object(self):
        payload = {"MerchantTradeNo": "TP1", "BarcodeInfo": {"Barcode1": "111", "Barcode2": "222", "Barcode3": "333"}}
        self.assertEqual(payloads.extract_segments(payload), ["111", "222", "333"])

    def test_nested_json_string(self):
        payload = {"BarcodeInfo": '{"Barcode1": "111", "ExpireDate": "2030/01/01 00:00:00"}'}
        self.assertEqual(payloads.extract_segments(payload), ["111"])
        self.assertEqual(payloads.expire_text(payload), "2030/01/01 00:00:00")

    def test_blank_segments_skipped(self):
        payload = {"Barcode1": " 111 ", "Barcode2": "", "Barcode3": "333"}
        self.assertEqual(payloads.extract_segments(payload), ["111", "333"])

    def test_no_segments(self):
        self.assertEqual(payloads.extract_segments({"RtnCode": "1"}), [])
        self.assertEqual(payloads.extract_segments({"BarcodeInfo": "not json"}), [])


class FlattenTests(SimpleTestCase):
    def test_nested_merged_and_removed(self):
        flat = payloads.flatten({"A": "1", "BarcodeInfo": {"Barcode1": "x", "A": "2"}})
        self.assertEqual(flat, {"A": "1", "Barcode1": "x"})

    def test_flat_payload_unchanged(self):
        payload = {"A": "1", "Barcode1": "x"}
        self.assertEqual(payloads.flatten(payload), payload)


class BuildBarcodeDataTests(SimpleTestCase):
    def test_display_fields(self):
        data = payloads.build_barcode_data(["12345", "67890"], payment_no="P1", source="query")
        self.assertEqual(data["full_barcode"], "12345-67890")
        self.assertEqual(data["segments_count"], 2)
        self.assertEqual(data["barcode_1"], "12345")
        self.assertEqual(data["barcode_3"], "")
        self.assertEqual(data["payment_no"], "P1")
        self.assertEqual(data["source"], "query")
