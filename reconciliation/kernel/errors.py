from __future__ import annotations

import re
from typing import Any


_ERROR_CODE_RE = re.compile(r"^[a-z][a-z0-9_]*(\.[a-z][a-z0-9_]*)*$")


class ReconciliationError(Exception):
    """Base typed error for the reconciliation service.

    - Stable `code` for programmatic handling by clients.
    - Human-readable `message` that is safe to show to callers.
    - Optional `meta` payload (safe-to-expose only).
    """

    def __init__(
        self,
        *,
        code: str,
        message: str,
        status_code: int = 500,
        meta: dict[str, Any] | None = None,
    ) -> None:
        if not _ERROR_CODE_RE.fullmatch(code):
            raise ValueError(
                "Invalid error code. Expected dot-separated lowercase tokens, "
                f"got: {code!r}"
            )
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = int(status_code)
        self.meta = dict(meta or {})

    def to_public_dict(self, *, request_id: str | None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            # Keep `detail` for compatibility with FastAPI error surfaces.
            "detail": self.message,
            "code": self.code,
        }
        if request_id:
            payload["request_id"] = request_id
        if self.meta:
            payload["meta"] = self.meta
        return payload


class ValidationError(ReconciliationError):
    def __init__(
        self,
        *,
        message: str = "Validation error",
        code: str = "request.validation_error",
        meta: dict[str, Any] | None = None,
        status_code: int = 400,
    ):
        super().__init__(code=code, message=message, status_code=status_code, meta=meta)


class StoreError(ReconciliationError):
    """The contact store failed. The public message never carries driver detail."""

    def __init__(
        self,
        *,
        message: str = "Contact store unavailable",
        code: str = "store.unavailable",
        meta: dict[str, Any] | None = None,
        status_code: int = 503,
    ):
        super().__init__(code=code, message=message, status_code=status_code, meta=meta)
