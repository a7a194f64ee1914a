class PaymentError(Exception):
    """Base for errors a client-facing payment call can surface."""

    code = "PAYMENT_ERROR"
    status = 400

    def __init__(self, message="", code=None, **extra):
        super().__init__(message or self.code)
        if code:
            self.code = code
        self.extra = extra


class ValidationError(PaymentError):
    code = "VALIDATION_ERROR"
    status = 400


class DuplicateOrderError(PaymentError):
    code = "DUPLICATE_ORDER"
    status = 409


class InvalidStateError(PaymentError):
    code = "INVALID_STATE"
    status = 409


class SignatureError(PaymentError):
    code = "INVALID_SIGNATURE"
    status = 400


class GatewayUnavailableError(PaymentError):
    """Timeout, transport failure or unusable response from the gateway. Retryable."""

    code = "GATEWAY_UNAVAILABLE"
    status = 503


class NotFoundError(PaymentError):
    code = "NOT_FOUND"
    status = 404


class AuthenticationError(PaymentError):
    code = "UNAUTHORIZED"
    status = 401


class RateLimitedError(PaymentError):
    code = "RATE_LIMITED"
    status = 429
