from __future__ import annotations

from typing import Any


class FamilyGraphError(Exception):
    """Base class for failures surfaced to API callers."""

    status_code: int = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def to_body(self) -> dict[str, Any]:
        return {"detail": self.detail}


class NotFoundError(FamilyGraphError):
    status_code = 404


class ValidationFailedError(FamilyGraphError):
    """Raised when required member fields are missing or invalid.

    `errors` holds one `{"field": ..., "message": ...}` entry per offending field.
    """

    status_code = 400

    def __init__(self, errors: list[dict[str, str]], detail: str = "Validation Failed") -> None:
        super().__init__(detail)
        self.errors = errors

    def to_body(self) -> dict[str, Any]:
        return {"detail": self.detail, "errors": self.errors}


class ConflictError(FamilyGraphError):
    status_code = 409


class ForbiddenError(FamilyGraphError):
    status_code = 403


class InternalError(FamilyGraphError):
    status_code = 500
