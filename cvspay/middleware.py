import logging

from django.http import JsonResponse

from barcodes.code39 import EncodingError
from payments.exceptions import PaymentError

logger = logging.getLogger(__name__)


def error_response(code, message, status, **extra):
    return JsonResponse(
        {"success": False, "error": {"code": code, "message": message, **extra}},
        status=status,
    )


class ApiErrorMiddleware:
    """Render domain errors that escape a view as structured JSON bodies."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_exception(self, request, exception):
        if isinstance(exception, PaymentError):
            if exception.status >= 500:
                logger.error("%s %s failed: %s", request.method, request.path, exception)
            return error_response(exception.code, str(exception), exception.status, **exception.extra)
        if isinstance(exception, EncodingError):
            extra = {"details": exception.errors} if exception.errors else {}
            return error_response(exception.code, str(exception), 400, **extra)
        return None
