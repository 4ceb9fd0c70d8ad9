# services/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


class ApiError(Exception):
    """Error que el handler traduce a {"error": ...} con su status HTTP."""

    status = 500

    def __init__(self, message: str, stage: str | None = None, detail: Any = None):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.detail = detail

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"error": self.message}
        if self.stage:
            body["stage"] = self.stage
        if self.detail is not None:
            body["detail"] = self.detail
        return body


class BadRequest(ApiError):
    status = 400


class NotFound(ApiError):
    status = 404


class UpstreamError(ApiError):
    status = 500


class ConfigError(ApiError):
    status = 500


class BadGateway(ApiError):
    status = 502


@dataclass
class SideEffect:
    """
    Resultado de un paso secundario best-effort (promoción tras ganador o
    tras simular). Se loguea; nunca convierte la petición en fallo.
    """
    name: str
    ok: bool
    count: int = 0
    detail: Optional[str] = None
