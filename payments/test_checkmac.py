import hashlib

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase, override_settings

from . import checkmac


class CanonicalizeTests(SimpleTestCase):
    def test_known_canonical_string(self):
        self.assertEqual(
            checkmac.canonicalize({"b": "x y", "A": "(1)!"}, "K", "I"),
            "hashkey%3dk%26a%3d%281%29%21%26b%3dx+y%26hashiv%3di",
        )

    def test_keys_sorted_case_insensitively(self):
        canonical = checkmac.canonicalize({"b": 1, "A": 2, "c": 3}, "K", "I")
        self.assertEqual(canonical, "hashkey%3dk%26a%3d2%26b%3d1%26c%3d3%26hashiv%3di")

    def test_underscore_sorts_after_digits(self):
        canonical = checkmac.canonicalize({"Barcode_1": "b", "Barcode1": "a"}, "K", "I")
        self.assertEqual(canonical, "hashkey%3dk%26barcode1%3da%26barcode_1%3db%26hashiv%3di")

    def test_existing_digest_is_ignored(self):
        self.assertEqual(
            checkmac.canonicalize({"a": "1", "CheckMacValue": "XYZ"}, "K", "I"),
            checkmac.canonicalize({"a": "1"}, "K", "I"),
        )

    def test_reserved_marks_are_escaped(self):
        canonical = checkmac.canonicalize({"x": "!'()*-_.~"}, "K", "I")
        self.assertIn("x%3d%21%27%28%29%2a-_.~", canonical)

    def test_non_ascii_is_utf8_encoded(self):
        canonical = checkmac.canonicalize({"TradeDesc": "促銷"}, "K", "I")
        self.assertIn("tradedesc%3d%e4%bf%83%e9%8a%b7", canonical)


class SignTests(SimpleTestCase):
    params = {
        "MerchantID": "2000132",
        "MerchantTradeNo": "TP12345678ABCD001",
        "TotalAmount": 299,
        "ItemName": "Convenience store payment - NT$299",
    }

    def test_sign_is_upper_sha256_of_canonical_form(self):
        digest = checkmac.sign(self.params, "K", "I")
        expected = hashlib.sha256(checkmac.canonicalize(self.params, "K", "I").encode()).hexdigest().upper()
        self.assertEqual(digest, expected)
        self.assertEqual(len(digest), 64)

    def test_sign_defaults_to_settings_keys(self):
        key, iv = settings.ECPAY["HASH_KEY"], settings.ECPAY["HASH_IV"]
        self.assertEqual(checkmac.sign(self.params), checkmac.sign(self.params, key, iv))

    def test_verify_round_trip(self):
        signed = checkmac.signed(self.params)
        self.assertTrue(checkmac.verify(signed))

    def test_verify_accepts_lower_case_digest(self):
        signed = checkmac.signed(self.params)
        signed["CheckMacValue"] = signed["CheckMacValue"].lower()
        self.assertTrue(checkmac.verify(signed))

    def test_any_changed_field_fails(self):
        signed = checkmac.signed(self.params)
        for field in self.params:
            with self.subTest(field=field):
                tampered = dict(signed, **{field: str(signed[field]) + "0"})
                self.assertFalse(checkmac.verify(tampered))

    def test_missing_or_wrong_keys_fail(self):
        signed = checkmac.signed(self.params)
        self.assertFalse(checkmac.verify({k: v for k, v in signed.items() if k != "CheckMacValue"}))
        self.assertFalse(checkmac.verify(signed, "other", "keys"))

    @override_settings(ECPAY={"MERCHANT_ID": "1", "HASH_KEY": "", "HASH_IV": ""})
    def test_missing_configuration_is_fatal(self):
        with self.assertLogs("payments.checkmac", level="ERROR"):
            with self.assertRaises(ImproperlyConfigured):
                checkmac.sign(self.params)
