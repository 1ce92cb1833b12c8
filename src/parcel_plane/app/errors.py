"""Typed application errors and their HTTP mapping.

Stores, validators and gates raise these; the API layer is the only place
that turns them into status codes and JSON bodies (``install_error_handlers``).

  ValidationError       400  malformed input
  UnauthenticatedError  401  no/invalid session
  PaymentRequiredError  402  plan tier insufficient
  ForbiddenError        403  authenticated but not permitted
  NotFoundError         404  resource absent
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(
        self,
        message: str = "",
        *,
        code: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.code
        if code is not None:
            self.code = code
        self.extra = dict(extra or {})
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.message, **self.extra}


class ValidationError(AppError):
    status_code = 400
    code = "invalid_request"


class UnauthenticatedError(AppError):
    status_code = 401
    code = "unauthorized"


class PaymentRequiredError(AppError):
    """Raised when the caller's plan does not include a capability.

    ``upgrade`` is the structured upgrade option rendered into the 402 body.
    """

    status_code = 402
    code = "upgrade_required"

    def __init__(self, message: str = "", *, upgrade: Any = None, **kwargs: Any) -> None:
        self.upgrade = upgrade
        super().__init__(message, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        if self.upgrade is not None:
            body.update(self.upgrade.to_dict())
        return body


class ForbiddenError(AppError):
    status_code = 403
    code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"


# ── HTTP mapping ──────────────────────────────────────────────────────


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    if exc.status_code >= 500:
        logger.error("Unhandled application error: %s", exc.code)
    body = exc.to_dict()
    if request_id:
        body["request_id"] = request_id
    headers = None
    if isinstance(exc, UnauthenticatedError):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


def install_error_handlers(app: FastAPI) -> None:
    """Register the AppError -> JSON response mapping on ``app``."""
    app.add_exception_handler(AppError, _app_error_handler)  # type: ignore[arg-type]
