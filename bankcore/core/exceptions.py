"""
Domain error taxonomy.
Every error carries a machine-readable kind, an HTTP status and a human message.
"""

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class BankingError(Exception):
    """Base class for all errors surfaced to API callers."""
    kind = "BankingError"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request failed"
    retryable = False
    # Set when the error is served again from the idempotency cache
    replayed = False

    def __init__(self, message=None, transaction=None):
        self.message = message or self.default_message
        # FAILED ledger row recorded for this attempt, if any
        self.transaction = transaction
        super().__init__(self.message)

    def to_dict(self):
        return {"kind": self.kind, "message": self.message}

    @classmethod
    def from_dict(cls, data):
        """Rebuild an error of the right subclass from its ``to_dict`` form."""
        error_class = _ERRORS_BY_KIND.get(data.get("kind"), cls)
        return error_class(data.get("message"))


class InvalidRequestError(BankingError):
    kind = "ValidationError"
    default_message = "Invalid request"


class AccountNotFound(BankingError):
    kind = "AccountNotFound"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Account not found"


class AccountLocked(BankingError):
    kind = "AccountLocked"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Account is locked"


class InsufficientFunds(BankingError):
    kind = "InsufficientFunds"
    default_message = "Insufficient funds"


class SimplePasswordMismatch(BankingError):
    kind = "SimplePasswordMismatch"
    default_message = "Simple password does not match"


class SimplePasswordNotRegistered(BankingError):
    kind = "SimplePasswordNotRegistered"
    default_message = "Simple password is not registered"


class QrExpired(BankingError):
    kind = "QrExpired"
    default_message = "QR code has expired"


class QrAlreadyUsed(BankingError):
    kind = "QrAlreadyUsed"
    status_code = status.HTTP_409_CONFLICT
    default_message = "QR code has already been used"


class Busy(BankingError):
    kind = "Busy"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Account is busy, retry later"
    retryable = True


class NotFound(BankingError):
    kind = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class Forbidden(BankingError):
    kind = "Forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not allowed"


class Conflict(BankingError):
    kind = "Conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflicting state"


class Unauthorized(BankingError):
    kind = "Unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Could not validate credentials"


_ERRORS_BY_KIND = {error_class.kind: error_class for error_class in BankingError.__subclasses__()}


async def banking_error_handler(request: Request, exc: BankingError):
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else {}
    if exc.replayed:
        headers["Idempotent-Replayed"] = "true"
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers or None)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"kind": "ValidationError", "message": message},
    )
