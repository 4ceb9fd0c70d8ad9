# services/supabase_rest.py
from __future__ import annotations

import logging
import urllib.parse
from typing import Any, Dict, Iterable, Optional

import requests

from services.errors import ConfigError

log = logging.getLogger("supabase_rest")


class SupabaseError(Exception):
    """Fallo de PostgREST (o de red hacia él) con el mensaje del servidor."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.message = message
        self.status = status


# ───────────────────────────────────────────────────────────────────
# Filtros PostgREST
# ───────────────────────────────────────────────────────────────────

def eq(value) -> str:
    return f"eq.{value}"

def in_(values: Iterable) -> str:
    return "in.(" + ",".join(str(v) for v in values) + ")"

def ilike(text: str) -> str:
    return f"ilike.*{text}*"


# ───────────────────────────────────────────────────────────────────
# Cliente
# ───────────────────────────────────────────────────────────────────

class SupabaseRest:
    """
    Cliente mínimo de la API REST de Supabase (PostgREST + RPC).

    Se crea una vez al arrancar y se comparte entre peticiones: sólo guarda
    configuración de sólo lectura y una requests.Session.
    """

    def __init__(self, url: str, key: str, timeout: int = 20,
                 key_name: str = "SUPABASE_KEY", session: requests.Session | None = None):
        self.url = (url or "").rstrip("/")
        self.key = key or ""
        self.timeout = timeout
        self.key_name = key_name
        self.session = session or requests.Session()

    def ensure_configured(self) -> "SupabaseRest":
        if not self.url:
            raise ConfigError("SUPABASE_URL no configurado")
        if not self.key:
            raise ConfigError(f"{self.key_name} no configurada")
        return self

    def _headers(self, schema: str | None = None, prefer: str | None = None) -> Dict[str, str]:
        h = {
            "apikey": self.key,
            "Authorization": f"Bearer {self.key}",
            "Content-Type": "application/json",
        }
        if schema:
            h["Accept-Profile"] = schema
            h["Content-Profile"] = schema
        if prefer:
            h["Prefer"] = prefer
        return h

    def _request(self, method: str, path: str, params: Dict[str, Any] | None = None,
                 payload: Any = None, schema: str | None = None, prefer: str | None = None):
        self.ensure_configured()
        url = f"{self.url}/rest/v1/{path}"
        if params:
            url += "?" + urllib.parse.urlencode(params, doseq=True)
        try:
            r = self.session.request(
                method, url,
                headers=self._headers(schema=schema, prefer=prefer),
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            log.error("SB %s %s -> error de red: %s", method, path, e)
            raise SupabaseError(str(e)) from e
        if r.status_code >= 300:
            msg = _error_message(r)
            log.warning("SB %s %s -> %s %s", method, path, r.status_code, msg[:200])
            raise SupabaseError(msg, r.status_code)
        return r

    # --- lectura ---------------------------------------------------------

    def select(self, table: str, filters: Dict[str, Any] | None = None, select: str = "*",
               order: str | None = None, limit: int | None = None, offset: int | None = None,
               schema: str | None = None) -> list[dict]:
        q: Dict[str, Any] = {"select": select}
        q.update(filters or {})
        if order:
            q["order"] = order
        if limit is not None:
            q["limit"] = limit
        if offset:
            q["offset"] = offset
        log.info("SB GET %s %s", table, filters or {})
        r = self._request("GET", table, params=q, schema=schema)
        data = r.json() if r.text else []
        return data if isinstance(data, list) else []

    # --- escritura -------------------------------------------------------

    def insert(self, table: str, rows, on_conflict: str | None = None) -> None:
        params = {"on_conflict": on_conflict} if on_conflict else None
        prefer = "return=minimal"
        if on_conflict:
            prefer = "resolution=merge-duplicates," + prefer
        self._request("POST", table, params=params, payload=rows, prefer=prefer)

    def upsert(self, table: str, rows, on_conflict: str) -> None:
        self.insert(table, rows, on_conflict=on_conflict)

    def update(self, table: str, filters: Dict[str, Any], values: Dict[str, Any]) -> None:
        self._request("PATCH", table, params=filters, payload=values, prefer="return=minimal")

    def delete(self, table: str, filters: Dict[str, Any]) -> None:
        self._request("DELETE", table, params=filters, prefer="return=minimal")

    # --- RPC -------------------------------------------------------------

    def rpc(self, fn: str, payload: Dict[str, Any] | None = None) -> Any:
        log.info("SB RPC %s(%s)", fn, payload or {})
        r = self._request("POST", f"rpc/{fn}", payload=payload or {})
        return r.json() if r.text else None


def _error_message(r) -> str:
    try:
        data = r.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        msg = data.get("message") or data.get("error") or data.get("hint")
        if msg:
            return str(msg)
    return (r.text or f"HTTP {r.status_code}").strip()
