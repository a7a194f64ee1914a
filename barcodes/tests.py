import json

from django.test import SimpleTestCase
from django.urls import reverse

from . import code39


class EncodeTests(SimpleTestCase):
    def test_single_character_is_wrapped_in_sentinels(self):
        pattern = code39.encode("A")
        expected = "0".join([code39.SENTINEL_PATTERN, code39.PATTERNS["A"], code39.SENTINEL_PATTERN])
        self.assertEqual(pattern, expected)

    def test_pattern_length_matches_symbol_count(self):
        for text in ("A", "HELLO123", "12345-67890", "$/+% .", "Z" * 30):
            with self.subTest(text=text):
                pattern = code39.encode(text)
                symbols = len(text) + 2
                self.assertEqual(len(pattern), symbols * 12 + (symbols - 1))
                self.assertEqual(len(pattern), code39.pattern_length(text))

    def test_whole_alphabet_encodes(self):
        text = "".join(sorted(code39.ALPHABET))
        self.assertEqual(len(code39.ALPHABET), 43)
        self.assertEqual(set(code39.encode(text)), {"0", "1"})

    def test_case_insensitive(self):
        self.assertEqual(code39.encode("HELLO123"), code39.encode("hello123"))

    def test_sentinel_is_not_encodable(self):
        with self.assertRaises(code39.EncodingError) as ctx:
            code39.encode("A*B")
        self.assertEqual(ctx.exception.code, "INVALID_TEXT")

    def test_empty_text_raises(self):
        with self.assertRaises(code39.EncodingError):
            code39.encode("")


class ValidateTests(SimpleTestCase):
    def test_valid_text_is_upper_cased(self):
        result = code39.validate("abc-123")
        self.assertTrue(result.is_valid)
        self.assertEqual(result.cleaned_text, "ABC-123")
        self.assertEqual(result.errors, [])

    def test_empty_text(self):
        result = code39.validate("")
        self.assertFalse(result.is_valid)
        self.assertEqual(result.errors, ["Text must not be empty"])

    def test_invalid_characters_are_listed_once(self):
        result = code39.validate("A#B#C@")
        self.assertFalse(result.is_valid)
        self.assertEqual(len(result.errors), 1)
        self.assertIn("'#'", result.errors[0])
        self.assertIn("'@'", result.errors[0])
        self.assertEqual(code39.invalid_characters("A#B#C@"), ["#", "@"])

    def test_long_text_warns_but_stays_valid(self):
        result = code39.validate("1" * 21)
        self.assertTrue(result.is_valid)
        self.assertEqual(len(result.warnings), 1)

    def test_twenty_characters_do_not_warn(self):
        self.assertEqual(code39.validate("1" * 20).warnings, [])


class RenderTests(SimpleTestCase):
    def test_render_draws_one_rect_per_bar(self):
        svg = code39.render("A", show_text=False)
        bars = code39.encode("A").count("1")
        # one background rect plus one per bar module
        self.assertEqual(svg.count("<rect"), bars + 1)
        self.assertTrue(svg.startswith('<svg width="300" height="80"'))
        self.assertNotIn("<text", svg)

    def test_caption_uses_sentinels(self):
        svg = code39.render("abc")
        self.assertIn(">*ABC*</text>", svg)

    def test_quiet_zone_must_leave_room(self):
        with self.assertRaises(code39.EncodingError) as ctx:
            code39.render("A", width=20, quiet_zone=10)
        self.assertEqual(ctx.exception.code, "INVALID_OPTIONS")

    def test_render_multi_stacks_segments(self):
        svg = code39.render_multi(["12345", "67890", "ABCDE"])
        self.assertEqual(svg.count("<g transform="), 3)
        self.assertIn("Segment 3:", svg)
        # three 80px barcodes, two 20px gaps, 30px label band
        self.assertIn('height="310"', svg)

    def test_render_multi_without_labels(self):
        svg = code39.render_multi(["A"], show_segment_labels=False)
        self.assertNotIn("Segment 1:", svg)

    def test_render_multi_rejects_four_segments(self):
        with self.assertRaises(code39.EncodingError) as ctx:
            code39.render_multi(["A", "B", "C", "D"])
        self.assertEqual(ctx.exception.code, "TOO_MANY_SEGMENTS")

    def test_render_multi_rejects_empty_list(self):
        with self.assertRaises(code39.EncodingError) as ctx:
            code39.render_multi([])
        self.assertEqual(ctx.exception.code, "EMPTY_SEGMENTS")

    def test_render_multi_reports_every_bad_segment(self):
        with self.assertRaises(code39.EncodingError) as ctx:
            code39.render_multi(["A_", "OK", ""])
        self.assertEqual(len(ctx.exception.errors), 2)
        self.assertTrue(ctx.exception.errors[0].startswith("Segment 1:"))
        self.assertTrue(ctx.exception.errors[1].startswith("Segment 3:"))


class BarcodeViewTests(SimpleTestCase):
    def test_generate_returns_svg(self):
        resp = self.client.get(reverse("barcodes:generate", args=["HELLO"]))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp["Content-Type"], "image/svg+xml")
        self.assertIn(b"*HELLO*", resp.content)

    def test_generate_json_format(self):
        resp = self.client.get(
            reverse("barcodes:generate", args=["hello"]), {"format": "json", "width": 400}
        )
        self.assertEqual(resp.status_code, 200)
        data = resp.json()["data"]
        self.assertEqual(data["text"], "HELLO")
        self.assertEqual(data["pattern"], code39.encode("HELLO"))
        self.assertIn('width="400"', data["svg"])

    def test_generate_long_text_sets_warning_header(self):
        resp = self.client.get(reverse("barcodes:generate", args=["1" * 25]))
        self.assertEqual(resp.status_code, 200)
        self.assertIn("X-Barcode-Warnings", resp)

    def test_generate_invalid_text_is_json_error(self):
        resp = self.client.get(reverse("barcodes:generate", args=["AB_C"]))
        self.assertEqual(resp.status_code, 400)
        body = resp.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["error"]["code"], "INVALID_TEXT")

    def test_generate_rejects_bad_options(self):
        resp = self.client.get(reverse("barcodes:generate", args=["A"]), {"width": 5})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"]["code"], "INVALID_OPTIONS")

    def _post(self, name, payload):
        return self.client.post(reverse(name), data=json.dumps(payload), content_type="application/json")

    def test_generate_multi_svg(self):
        resp = self._post("barcodes:generate_multi", {"segments": ["12345", "67890", "ABCDE"]})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp["Content-Type"], "image/svg+xml")

    def test_generate_multi_json(self):
        resp = self._post(
            "barcodes:generate_multi",
            {"segments": ["ab", "cd"], "options": {"show_segment_labels": False}, "format": "json"},
        )
        self.assertEqual(resp.status_code, 200)
        data = resp.json()["data"]
        self.assertEqual(data["segments"], ["AB", "CD"])
        self.assertNotIn("Segment 1:", data["svg"])

    def test_generate_multi_too_many_segments(self):
        resp = self._post("barcodes:generate_multi", {"segments": ["A", "B", "C", "D"]})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"]["code"], "TOO_MANY_SEGMENTS")

    def test_generate_multi_requires_list(self):
        resp = self._post("barcodes:generate_multi", {"segments": "ABC"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"]["code"], "INVALID_SEGMENTS")

    def test_validate_endpoint(self):
        resp = self._post("barcodes:validate", {"text": "ab#"})
        self.assertEqual(resp.status_code, 200)
        data = resp.json()["data"]
        self.assertFalse(data["is_valid"])
        self.assertEqual(data["cleaned_text"], "AB#")
        self.assertIn("'#'", data["errors"][0])
