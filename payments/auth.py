import logging
from functools import wraps

from django.conf import settings

from .exceptions import AuthenticationError, RateLimitedError
from .models import ApiClient
from .ratelimit import get_rate_limiter

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"


def authenticate(request) -> ApiClient:
    key = (request.headers.get(API_KEY_HEADER) or "").strip()
    if not key:
        raise AuthenticationError(f"Missing {API_KEY_HEADER} header")
    client = ApiClient.objects.filter(api_key=key, is_active=True).first()
    if client is None:
        logger.warning("Rejected API key ending %s from %s", key[-4:], request.META.get("REMOTE_ADDR", ""))
        raise AuthenticationError("Invalid or inactive API key")
    return client


def require_api_key(view):
    """Resolve ``request.api_client`` from ``X-API-Key`` and apply its rate limit."""

    @wraps(view)
    def wrapper(request, *args, **kwargs):
        client = authenticate(request)
        conf = settings.PAYMENTS
        result = get_rate_limiter().hit(
            f"client:{client.client_system}",
            client.rate_limit or conf.get("DEFAULT_RATE_LIMIT", 100),
            conf.get("RATE_LIMIT_WINDOW", 60),
        )
        if not result.allowed:
            logger.warning("Rate limit exceeded for %s", client.client_system)
            raise RateLimitedError("Too many requests", retry_after=result.retry_after)
        request.api_client = client
        response = view(request, *args, **kwargs)
        response["X-RateLimit-Limit"] = str(result.limit)
        response["X-RateLimit-Remaining"] = str(result.remaining)
        return response

    return wrapper
