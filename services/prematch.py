# services/prematch.py
from __future__ import annotations

import logging
from typing import Any, Tuple

import requests

from services.errors import BadGateway, BadRequest, ConfigError, UpstreamError
from services.supabase_rest import SupabaseError
from utils.scoring import merge_weights, parse_weights

log = logging.getLogger("prematch")

MATCHUP_PATH = "/matchup"


# --------------------------- Proxy al backend ---------------------------

def forward_matchup(base_url: str, payload: Any, timeout: int = 20) -> Tuple[Any, int]:
    """
    Reenvía el payload tal cual a {base}/matchup y devuelve (json, status).
    Cualquier respuesta no-2xx, error de red o cuerpo no-JSON -> 502.
    """
    if not base_url:
        log.error("❌ Prematch: API_BASE_URL no configurado")
        raise ConfigError("API_BASE_URL no configurado")

    url = base_url.rstrip("/") + MATCHUP_PATH
    log.info("PM POST %s", url)
    try:
        r = requests.post(url, json=payload, timeout=timeout,
                          headers={"content-type": "application/json"})
    except requests.RequestException as e:
        log.error("❌ Prematch: error de red al llamar backend: %s", e)
        raise BadGateway("Error de red al backend")
    log.info("PM RESP %s", r.status_code)

    if not r.ok:
        log.error("❌ Prematch: backend retornó status %s %s", r.status_code, r.text[:200])
        raise BadGateway(f"Backend status {r.status_code}", detail=r.text)

    try:
        data = r.json()
    except ValueError:
        log.error("❌ Prematch: respuesta no es JSON: %s", r.text[:200])
        raise BadGateway("Respuesta inválida del backend")
    return data, r.status_code


# --------------------------- Pesos de métricas ---------------------------

def _missing_rpc_hint(message: str, fn: str) -> str:
    if fn in (message or ""):
        return f"RPC {fn} no encontrada: crea la función en Supabase."
    return message or "Error inesperado"


def get_weights(db) -> dict:
    try:
        data = db.rpc("prematch_metric_weights_get")
    except SupabaseError as e:
        raise UpstreamError(_missing_rpc_hint(e.message, "prematch_metric_weights_get"))
    rows = data if isinstance(data, list) else []
    return {"weights": merge_weights(rows)}


def save_weights(db, body: Any) -> dict:
    if not isinstance(body, dict):
        raise BadRequest("JSON invalido")
    payload = body.get("weights")
    if not isinstance(payload, list):
        raise BadRequest("weights debe ser un array")
    rows = parse_weights(payload)
    if not rows:
        raise BadRequest("No hay pesos validos")
    try:
        db.rpc("prematch_metric_weights_upsert", {"p_weights": rows})
    except SupabaseError as e:
        raise UpstreamError(_missing_rpc_hint(e.message, "prematch_metric_weights_upsert"))
    return {"ok": True, "rows": len(rows)}
