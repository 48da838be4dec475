from __future__ import annotations

from typing import List, Optional


class OrderingError(Exception):
    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str, *, code: Optional[str] = None, errors: Optional[List[dict]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.errors = errors or []

    def to_dict(self) -> dict:
        body = {"message": self.message, "code": self.code}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(OrderingError):
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(OrderingError):
    status_code = 404
    code = "NOT_FOUND"


class ForbiddenError(OrderingError):
    status_code = 403
    code = "FORBIDDEN"


class ConflictError(OrderingError):
    status_code = 400
    code = "CONFLICT"


class InvalidTransitionError(ConflictError):
    code = "INVALID_TRANSITION"

    def __init__(self, kind: str, current: str, target: str):
        super().__init__(f"Cannot move {kind} from '{current}' to '{target}'")
        self.current = current
        self.target = target


class UpstreamError(OrderingError):
    status_code = 502
    code = "UPSTREAM_ERROR"


class UnavailableError(OrderingError):
    status_code = 503
    code = "SERVICE_UNAVAILABLE"
