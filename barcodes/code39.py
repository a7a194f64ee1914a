"""Code39 symbol encoder used to render convenience-store payment barcodes.

The encoder is a pure function of its input text and render options; it never
touches the gateway.  Each character maps to a fixed 12-module pattern where
``1`` is a bar and ``0`` a space.  A single ``0`` gap module separates adjacent
symbols, and the ``*`` sentinel opens and closes every barcode.
"""

import logging
from dataclasses import dataclass, field
from typing import List

logger = logging.getLogger(__name__)

PATTERNS = {
    "0": "101001101101", "1": "110100101011", "2": "101100101011", "3": "110110010101",
    "4": "101001101011", "5": "110100110101", "6": "101100110101", "7": "101001011011",
    "8": "110100101101", "9": "101100101101", "A": "110101001011", "B": "101101001011",
    "C": "110110100101", "D": "101011001011", "E": "110101100101", "F": "101101100101",
    "G": "101010011011", "H": "110101001101", "I": "101101001101", "J": "101011001101",
    "K": "110101010011", "L": "101101010011", "M": "110110101001", "N": "101011010011",
    "O": "110101101001", "P": "101101101001", "Q": "101010110011", "R": "110101011001",
    "S": "101101011001", "T": "101011011001", "U": "110010101011", "V": "100110101011",
    "W": "110011010101", "X": "100101101011", "Y": "110010110101", "Z": "100110110101",
    "-": "100101011011", ".": "110010101101", " ": "100110101101", "$": "100100100101",
    "/": "100100101001", "+": "100101001001", "%": "101001001001",
}

SENTINEL = "*"
SENTINEL_PATTERN = "100101101101"
GAP = "0"

ALPHABET = frozenset(PATTERNS)

# Longer symbols still scan, but phone screens and receipt printers struggle.
READABLE_LENGTH = 20
MAX_SEGMENTS = 3


class EncodingError(ValueError):
    """Text or segment list that cannot be rendered as Code39."""

    def __init__(self, message, code="INVALID_TEXT", errors=None):
        super().__init__(message)
        self.code = code
        self.errors = list(errors or [])


@dataclass
class ValidationResult:
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    cleaned_text: str = ""

    def as_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "cleaned_text": self.cleaned_text,
        }


def invalid_characters(text: str) -> List[str]:
    """Characters of ``text`` outside the Code39 alphabet, in first-seen order."""
    seen = []
    for char in text or "":
        if char.upper() not in ALPHABET and char not in seen:
            seen.append(char)
    return seen


def is_valid(text: str) -> bool:
    return bool(text) and not invalid_characters(text)


def validate(text: str) -> ValidationResult:
    """Check ``text`` against the alphabet without raising.

    Errors make the text unusable; warnings are advisory only.  The cleaned
    text is always upper-cased because Code39 readers are case-insensitive.
    """
    result = ValidationResult(cleaned_text=(text or "").upper())
    if not text:
        result.is_valid = False
        result.errors.append("Text must not be empty")
        return result

    if len(text) > READABLE_LENGTH:
        result.warnings.append(
            f"Text is longer than {READABLE_LENGTH} characters and may be hard to scan"
        )

    bad = invalid_characters(text)
    if bad:
        result.is_valid = False
        result.errors.append("Invalid characters: " + ", ".join(repr(c) for c in bad))
    return result


def encode(text: str) -> str:
    """Return the bar/space module pattern for ``text``."""
    result = validate(text)
    if not result.is_valid:
        raise EncodingError("; ".join(result.errors), errors=result.errors)

    symbols = [SENTINEL_PATTERN]
    symbols.extend(PATTERNS[char] for char in result.cleaned_text)
    symbols.append(SENTINEL_PATTERN)
    return GAP.join(symbols)


def pattern_length(text: str) -> int:
    """Module count ``encode(text)`` produces, without encoding it."""
    symbols = len(text) + 2
    return symbols * len(SENTINEL_PATTERN) + (symbols - 1) * len(GAP)


def _num(value) -> str:
    # SVG accepts plain decimals; keep output short and stable.
    text = f"{float(value):.4f}".rstrip("0").rstrip(".")
    return text or "0"


def _svg_body(text, *, width, height, bar_height, show_text, font_size, font_family,
              text_margin, background_color, bar_color, text_color, quiet_zone):
    pattern = encode(text)
    bar_width = (width - quiet_zone * 2) / len(pattern)
    bar_y = (height - bar_height) / 2

    parts = [f'<rect width="{_num(width)}" height="{_num(height)}" fill="{background_color}"/>']
    x = quiet_zone
    for module in pattern:
        if module == "1":
            parts.append(
                f'<rect x="{_num(x)}" y="{_num(bar_y)}" width="{_num(bar_width)}" '
                f'height="{_num(bar_height)}" fill="{bar_color}"/>'
            )
        x += bar_width

    if show_text:
        caption = f"{SENTINEL}{text.upper()}{SENTINEL}"
        parts.append(
            f'<text x="{_num(width / 2)}" y="{_num(height - text_margin)}" '
            f'font-family="{font_family}" font-size="{_num(font_size)}" fill="{text_color}" '
            f'text-anchor="middle" dominant-baseline="text-bottom">{caption}</text>'
        )
    return "".join(parts)


def render(text: str, *, width=300, height=80, bar_height=60, show_text=True, font_size=12,
           font_family="monospace", text_margin=5, background_color="white",
           bar_color="black", text_color="black", quiet_zone=10) -> str:
    """Render ``text`` as a standalone SVG document."""
    if width <= quiet_zone * 2 or height <= 0 or bar_height <= 0:
        raise EncodingError("Barcode dimensions are too small", code="INVALID_OPTIONS")
    body = _svg_body(
        text, width=width, height=height, bar_height=min(bar_height, height),
        show_text=show_text, font_size=font_size, font_family=font_family,
        text_margin=text_margin, background_color=background_color,
        bar_color=bar_color, text_color=text_color, quiet_zone=quiet_zone,
    )
    return (
        f'<svg width="{_num(width)}" height="{_num(height)}" '
        f'xmlns="http://www.w3.org/2000/svg">{body}</svg>'
    )


def render_multi(segments, *, segment_spacing=20, label_spacing=30, show_segment_labels=True,
                 **options) -> str:
    """Stack up to three independently encoded barcodes in one SVG.

    Every segment is validated before anything is drawn, so a bad segment
    never yields a partially rendered image.
    """
    segments = list(segments or [])
    if not segments:
        raise EncodingError("At least one segment is required", code="EMPTY_SEGMENTS")
    if len(segments) > MAX_SEGMENTS:
        raise EncodingError(
            f"At most {MAX_SEGMENTS} segments are supported, got {len(segments)}",
            code="TOO_MANY_SEGMENTS",
        )

    errors = []
    for index, segment in enumerate(segments, start=1):
        result = validate(segment if isinstance(segment, str) else "")
        errors.extend(f"Segment {index}: {message}" for message in result.errors)
    if errors:
        raise EncodingError("; ".join(errors), errors=errors)

    width = options.get("width", 300)
    single_height = options.get("height", 80)
    background = options.get("background_color", "white")
    top = label_spacing if show_segment_labels else 0
    total_height = single_height * len(segments) + segment_spacing * (len(segments) - 1) + top

    parts = [
        f'<svg width="{_num(width)}" height="{_num(total_height)}" xmlns="http://www.w3.org/2000/svg">',
        f'<rect width="{_num(width)}" height="{_num(total_height)}" fill="{background}"/>',
    ]
    y = top
    for index, segment in enumerate(segments, start=1):
        if show_segment_labels:
            parts.append(
                f'<text x="10" y="{_num(y - 5)}" font-family="Arial, sans-serif" '
                f'font-size="14" fill="black" font-weight="bold">Segment {index}:</text>'
            )
        inner = render(segment, **options)
        inner = inner[inner.index(">") + 1:-len("</svg>")]
        parts.append(f'<g transform="translate(0, {_num(y)})">{inner}</g>')
        y += single_height + segment_spacing
    parts.append("</svg>")
    return "".join(parts)
