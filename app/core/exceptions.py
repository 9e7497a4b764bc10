"""
Engine error taxonomy.

Every error carries a stable ``code`` and a caller-safe ``message``; the HTTP
layer renders ``to_dict()`` as is.
"""
from typing import Optional


class EngineError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {"success": False, "error": self.code, "message": self.message}


class ValidationError(EngineError):
    """Malformed or out-of-bounds input, raised before any state transition."""
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(EngineError):
    code = "NOT_FOUND"
    status_code = 404


class InvalidStateError(EngineError):
    """Illegal state-machine transition."""
    code = "INVALID_STATE"
    status_code = 409


class CannotRefundError(InvalidStateError):
    code = "CANNOT_REFUND"


class ConflictError(EngineError):
    """Unique-constraint violation that could not be resolved by retrying."""
    code = "CONFLICT"
    status_code = 409


class GatewayError(EngineError):
    """
    Failure reported by a payment gateway adapter.

    The payment engine converts it into a failed payment; it never reaches
    a caller as an exception.
    """
    code = "GATEWAY_ERROR"
    status_code = 502

    def __init__(self, message: str, gateway_code: Optional[str] = None):
        super().__init__(message)
        self.gateway_code = gateway_code or self.code


class GatewayTimeoutError(GatewayError):
    code = "GATEWAY_TIMEOUT"
    status_code = 504


class AuthenticationError(EngineError):
    code = "UNAUTHORIZED"
    status_code = 401


class AuthorizationError(EngineError):
    code = "FORBIDDEN"
    status_code = 403
