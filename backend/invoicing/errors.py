"""Service-level errors and their HTTP mapping.

Services raise these (all are ValueError subclasses, so callers that only
know about ValueError still treat them as client errors). Routes translate
them with ``http_error``.
"""

from fastapi import HTTPException

GENERIC_ERROR = "მოხდა შეცდომა"
UNAUTHORIZED = "არაავტორიზებული"
COMPANY_NOT_FOUND = "კომპანია ვერ მოიძებნა"
INVALID_DATA = "არასწორი მონაცემები"


class InvoicingError(ValueError):
    status_code = 400

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.extra = extra


class AuthenticationError(InvoicingError):
    status_code = 401


class NotFoundError(InvoicingError):
    status_code = 404


class ForbiddenError(InvoicingError):
    status_code = 403


class InsufficientCreditsError(ForbiddenError):
    pass


class ConflictError(InvoicingError):
    status_code = 409


class LinkExpiredError(InvoicingError):
    status_code = 410


class RateLimitError(InvoicingError):
    status_code = 429


def http_error(exc: ValueError) -> HTTPException:
    """Translate a service ValueError into an HTTPException."""
    status_code = getattr(exc, "status_code", 400)
    extra = getattr(exc, "extra", None)
    detail = {"message": str(exc), **extra} if extra else str(exc)
    return HTTPException(status_code=status_code, detail=detail)
