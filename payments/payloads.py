"""Normalize the gateway's two barcode payload shapes.

The payment-info webhook and the QueryPaymentInfo response carry one to
three barcode segments either flat on the top level (``Barcode1`` or
``Barcode_1``) or nested under ``BarcodeInfo``.  Everything downstream only
sees the flat form produced here.
"""

import json
from typing import List

SEGMENT_KEYS = (
    ("Barcode1", "Barcode_1"),
    ("Barcode2", "Barcode_2"),
    ("Barcode3", "Barcode_3"),
)
NESTED_KEY = "BarcodeInfo"


def _nested(payload: dict) -> dict:
    nested = payload.get(NESTED_KEY)
    if isinstance(nested, str) and nested.strip().startswith("{"):
        try:
            nested = json.loads(nested)
        except ValueError:
            return {}
    return nested if isinstance(nested, dict) else {}


def flatten(payload: dict) -> dict:
    """Merge a nested ``BarcodeInfo`` object into the top level.

    Top-level values win over nested ones.  The nested key itself is kept out
    of the result so signature checks run over plain string fields.
    """
    flat = {k: v for k, v in (payload or {}).items() if k != NESTED_KEY}
    for key, value in _nested(payload or {}).items():
        flat.setdefault(key, value)
    return flat


def extract_segments(payload: dict) -> List[str]:
    flat = flatten(payload)
    segments = []
    for names in SEGMENT_KEYS:
        value = next((flat[n] for n in names if flat.get(n)), "")
        value = str(value).strip()
        if value:
            segments.append(value)
    return segments


def expire_text(payload: dict) -> str:
    return str(flatten(payload).get("ExpireDate") or "").strip()


def build_barcode_data(segments, *, payment_no="", expire_date="", source="webhook") -> dict:
    segments = [s for s in segments if s]
    data = {
        "segments": segments,
        "full_barcode": "-".join(segments),
        "segments_count": len(segments),
        "payment_no": payment_no or "",
        "expire_date": expire_date or "",
        "source": source,
    }
    for index in range(3):
        data[f"barcode_{index + 1}"] = segments[index] if index < len(segments) else ""
    return data
