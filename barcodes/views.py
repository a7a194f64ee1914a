import json
import logging

from django.http import HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from . import code39
from .forms import BarcodeOptionsForm, MultiBarcodeOptionsForm

logger = logging.getLogger(__name__)

SVG_CONTENT_TYPE = "image/svg+xml"


def _json_body(request):
    try:
        body = json.loads(request.body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None
    return body if isinstance(body, dict) else None


def _error(code, message, status=400, **extra):
    return JsonResponse(
        {"success": False, "error": {"code": code, "message": message, **extra}},
        status=status,
    )


def _options_error(form):
    return _error("INVALID_OPTIONS", "Invalid barcode options", details=form.errors.get_json_data())


def _svg_response(svg, warnings):
    resp = HttpResponse(svg, content_type=SVG_CONTENT_TYPE)
    resp["Cache-Control"] = "public, max-age=3600"
    if warnings:
        resp["X-Barcode-Warnings"] = " | ".join(warnings)
    return resp


@require_GET
def generate_view(request, text: str):
    """Render one Code39 barcode; ``?format=json`` wraps it with the pattern and warnings."""
    form = BarcodeOptionsForm(request.GET)
    if not form.is_valid():
        return _options_error(form)

    result = code39.validate(text)
    if not result.is_valid:
        raise code39.EncodingError("; ".join(result.errors), errors=result.errors)

    svg = code39.render(text, **form.render_options())
    if request.GET.get("format", "svg").lower() != "json":
        return _svg_response(svg, result.warnings)

    return JsonResponse({
        "success": True,
        "data": {
            "text": result.cleaned_text,
            "pattern": code39.encode(text),
            "svg": svg,
            "warnings": result.warnings,
        },
    })


@csrf_exempt
@require_POST
def generate_multi_view(request):
    body = _json_body(request)
    if body is None:
        return _error("INVALID_JSON", "Request body must be a JSON object")

    segments = body.get("segments")
    if not isinstance(segments, list) or not all(isinstance(s, str) for s in segments):
        return _error("INVALID_SEGMENTS", "segments must be a list of strings")

    options = body.get("options") or {}
    if not isinstance(options, dict):
        return _error("INVALID_OPTIONS", "options must be an object")
    form = MultiBarcodeOptionsForm(options)
    if not form.is_valid():
        return _options_error(form)

    svg = code39.render_multi(segments, **form.render_options())
    warnings = []
    for index, segment in enumerate(segments, start=1):
        warnings.extend(f"Segment {index}: {w}" for w in code39.validate(segment).warnings)

    fmt = (body.get("format") or request.GET.get("format") or "svg").lower()
    if fmt != "json":
        return _svg_response(svg, warnings)

    return JsonResponse({
        "success": True,
        "data": {
            "segments": [s.upper() for s in segments],
            "svg": svg,
            "warnings": warnings,
        },
    })


@csrf_exempt
@require_POST
def validate_view(request):
    body = _json_body(request)
    if body is None or not isinstance(body.get("text", ""), str):
        return _error("INVALID_JSON", "Request body must be a JSON object with a text field")
    result = code39.validate(body.get("text", ""))
    return JsonResponse({"success": True, "data": result.as_dict()})
