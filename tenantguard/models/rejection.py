"""Guard rejection model and HTTP response builders.

Every guard returns either ``None`` (continue) or a ``Rejection``. The chain
turns a Rejection into a JSON response of the shape:

.. code-block:: json

    {"error": {"message": "IP address not allowed", "code": "ip_not_allowed"}}

``build_internal_error_response()`` is the only 500 body the chain produces.
It never carries exception text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from fastapi.responses import JSONResponse


@dataclass
class Rejection:
    """Terminal guard decision."""

    status_code: int
    code: str
    message: str
    headers: dict[str, str] = field(default_factory=dict)
    # Short machine reason for logs and audit; never sent to the client.
    reason: Optional[str] = None

    # ── Factories used by the guards ──────────────────────────────────────────

    @classmethod
    def bad_request(cls, message: str, code: str = "bad_request", reason: Optional[str] = None) -> "Rejection":
        return cls(status_code=400, code=code, message=message, reason=reason)

    @classmethod
    def unauthorized(cls, message: str = "Unauthorized", code: str = "unauthorized") -> "Rejection":
        return cls(status_code=401, code=code, message=message)

    @classmethod
    def forbidden(cls, message: str, code: str = "forbidden") -> "Rejection":
        return cls(status_code=403, code=code, message=message)


def build_rejection_response(rejection: Rejection) -> JSONResponse:
    """Render a Rejection as the standard error body plus its headers."""
    response = JSONResponse(
        status_code=rejection.status_code,
        content={"error": {"message": rejection.message, "code": rejection.code}},
    )
    for name, value in rejection.headers.items():
        response.headers[name] = value
    return response


def build_internal_error_response() -> JSONResponse:
    """HTTP 500 for unexpected guard failures. Details stay in the server log."""
    return JSONResponse(
        status_code=500,
        content={"error": {"message": "Internal server error", "code": "internal_error"}},
    )
