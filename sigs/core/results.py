from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from functools import wraps
from typing import Any

from flask import current_app, jsonify, request

from sigs.core.extensions import db


class ErrorKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    VALIDATION_FAILED = "validation_failed"
    MISSING_CONTACT = "missing_contact"
    PARTIAL_FAILURE = "partial_failure"


HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.PERMISSION_DENIED: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_TRANSITION: 409,
    ErrorKind.VALIDATION_FAILED: 422,
    ErrorKind.MISSING_CONTACT: 422,
    ErrorKind.PARTIAL_FAILURE: 207,
}


class ServiceError(ValueError):
    """Expected business failure; converted into a failed result at the boundary."""

    kind: ErrorKind = ErrorKind.VALIDATION_FAILED
    detail: str | None = None

    def __init__(self, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.data = data


class Unauthenticated(ServiceError):
    kind = ErrorKind.UNAUTHENTICATED


class PermissionDenied(ServiceError):
    kind = ErrorKind.PERMISSION_DENIED


class NotFound(ServiceError):
    kind = ErrorKind.NOT_FOUND


class InvalidTransition(ServiceError):
    kind = ErrorKind.INVALID_TRANSITION


class EditWindowExpired(InvalidTransition):
    detail = "edit_window_expired"

    def __init__(self, message: str = "edit window expired", data: Any = None) -> None:
        super().__init__(message, data)


class LastAdminError(InvalidTransition):
    detail = "last_admin"


class ValidationFailed(ServiceError):
    kind = ErrorKind.VALIDATION_FAILED


class MissingContactError(ServiceError):
    kind = ErrorKind.MISSING_CONTACT


class PartialFailure(ServiceError):
    """The primary mutation is committed; a follow-up step did not complete."""

    kind = ErrorKind.PARTIAL_FAILURE


@dataclass
class ActionResult:
    success: bool
    data: Any = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    detail: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> ActionResult:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, exc: ServiceError) -> ActionResult:
        return cls(success=False, data=exc.data, error=exc.message, error_kind=exc.kind, detail=exc.detail)

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "data": self.data}
        payload: dict[str, Any] = {
            "success": False,
            "error": self.error,
            "errorKind": self.error_kind.value if self.error_kind else None,
        }
        if self.detail:
            payload["detail"] = self.detail
        if self.data is not None:
            payload["data"] = self.data
        return payload


@dataclass
class ListResult(ActionResult):
    count: int = 0
    page: int = 1
    page_size: int = 20
    data: list[Any] = field(default_factory=list)

    @classmethod
    def of(cls, rows: list[Any], count: int, page: int, page_size: int) -> ListResult:
        return cls(success=True, data=rows, count=count, page=page, page_size=page_size)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        if self.success:
            payload.update({"count": self.count, "page": self.page, "pageSize": self.page_size})
        return payload


def service_boundary(fn):
    """Turn ``ServiceError`` (and model ``ValueError``) into a failed result after rolling back the session.

    Unexpected exceptions propagate untouched.
    """

    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except PartialFailure as exc:
            current_app.logger.warning("%s: partial failure: %s", fn.__name__, exc.message)
            return ActionResult.fail(exc)
        except ServiceError as exc:
            db.session.rollback()
            current_app.logger.info("%s rejected (%s): %s", fn.__name__, exc.kind.value, exc.message)
            return ActionResult.fail(exc)
        except ValueError as exc:
            # Model validators raise plain ValueError.
            db.session.rollback()
            current_app.logger.info("%s rejected (validation_failed): %s", fn.__name__, exc)
            return ActionResult.fail(ValidationFailed(str(exc)))

    return wrapper


def json_result(result: ActionResult, success_status: int = 200):
    if result.success:
        return jsonify(result.to_dict()), success_status
    return jsonify(result.to_dict()), HTTP_STATUS_BY_KIND.get(result.error_kind, 400)


def request_payload() -> dict[str, Any]:
    return request.get_json(silent=True) or request.form.to_dict()


def page_args() -> tuple[int | None, int | None]:
    return request.args.get("page", type=int), request.args.get("page_size", type=int)
