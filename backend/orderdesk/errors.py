# Overview: Domain error taxonomy shared by services, routes and the offline sync client.

"""
Every core operation either returns its result or raises one of these.

Routes translate them to HTTP responses through ``http_status``; the offline
HTTP dispatcher does the reverse (status code -> error class) so a replayed
action fails with the same type it would have failed with in-process.

ConnectivityError is the only kind the offline queue is allowed to absorb.
"""

from __future__ import annotations


class OrderDeskError(Exception):
    """Base class for expected, user-facing failures."""

    http_status = 500
    code = "error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class Unauthorized(OrderDeskError):
    """Missing or invalid credential."""
    http_status = 401
    code = "unauthorized"


class PermissionDenied(Unauthorized):
    """Authenticated, but the role or ownership check failed."""
    http_status = 403
    code = "permission_denied"


class NotFound(OrderDeskError):
    http_status = 404
    code = "not_found"


class ValidationError(OrderDeskError):
    """400-level input problem (missing proof fields, malformed payload)."""
    http_status = 400
    code = "validation_error"


class DuplicateSerial(ValidationError):
    code = "duplicate_serial"


class Conflict(OrderDeskError):
    """409-level business rule conflict."""
    http_status = 409
    code = "conflict"


class InvalidTransition(Conflict):
    code = "invalid_transition"


class ReservationConflict(Conflict):
    """Stock unit is reserved for another order or already sold."""
    code = "reservation_conflict"


class AlreadySold(Conflict):
    """Stock unit was consumed by another order before this one completed."""
    code = "already_sold"


class ConnectivityError(OrderDeskError):
    """The API could not be reached. Raised client-side only."""
    http_status = 503
    code = "connectivity"


class StorageError(OrderDeskError):
    """Backing store failure; the current request is aborted and rolled back."""
    http_status = 503
    code = "storage_error"


# Reverse lookup used when an error crosses the HTTP boundary.
ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        OrderDeskError,
        Unauthorized,
        PermissionDenied,
        NotFound,
        ValidationError,
        DuplicateSerial,
        Conflict,
        InvalidTransition,
        ReservationConflict,
        AlreadySold,
        ConnectivityError,
        StorageError,
    )
}

ERRORS_BY_STATUS = {
    400: ValidationError,
    401: Unauthorized,
    403: PermissionDenied,
    404: NotFound,
    409: Conflict,
    503: StorageError,
}


def error_from_response(status_code: int, body: dict | None) -> OrderDeskError:
    """Rebuild a typed error from an API error response."""
    body = body or {}
    message = body.get("error") or f"HTTP {status_code}"
    cls = ERRORS_BY_CODE.get(body.get("code") or "")
    if cls is None:
        cls = ERRORS_BY_STATUS.get(status_code, OrderDeskError)
    return cls(message, details=body.get("details"))
