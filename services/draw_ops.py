# services/draw_ops.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from services.errors import BadRequest, NotFound, SideEffect, UpstreamError
from services.promotion import MATCHES_TABLE, promote_best_effort
from services.supabase_rest import SupabaseError, eq, in_
from utils.rounds import earliest_round, first_round_for_draw_size, rounds_after
from utils.scoring import to_number, to_str

log = logging.getLogger("draw_ops")

MAX_RUNS_PER_CALL = 20
RESET_MODES = ("soft", "hard")


# ───────────────────────────────────────────────────────────────────
# Ganador + promoción
# ───────────────────────────────────────────────────────────────────

def record_winner(db, tourney_id: str, match_id: str, winner_id) -> SideEffect:
    """
    Guarda el ganador del partido y propaga a la siguiente ronda.
    La propagación es best-effort: su fallo no anula la escritura.
    """
    tourney_id = (tourney_id or "").strip() if isinstance(tourney_id, str) else ""
    match_id = (match_id or "").strip() if isinstance(match_id, str) else ""
    winner = to_str(winner_id)
    if not tourney_id or not match_id or not winner:
        raise BadRequest("Parametros incompletos")

    try:
        rows = db.select(MATCHES_TABLE, {"tourney_id": eq(tourney_id), "id": eq(match_id)},
                         select="id,round,top_id,bot_id", limit=1)
    except SupabaseError as e:
        raise UpstreamError(e.message)
    if not rows:
        raise NotFound("Partido no encontrado")

    row = rows[0]
    if winner not in (to_str(row.get("top_id")), to_str(row.get("bot_id"))):
        raise BadRequest("El ganador no corresponde al partido")

    try:
        db.update(MATCHES_TABLE, {"tourney_id": eq(tourney_id), "id": eq(match_id)},
                  {"winner_id": winner})
    except SupabaseError as e:
        raise UpstreamError(e.message)
    log.info("🏆 %s %s -> ganador %s", tourney_id, match_id, winner)

    return promote_best_effort(db, tourney_id)


# ───────────────────────────────────────────────────────────────────
# Simulación (RPC en BD)
# ───────────────────────────────────────────────────────────────────

def ensure_draw(db, tourney_id: str) -> bool:
    """Construye el cuadro si aún no hay partidos. Devuelve True si lo creó."""
    try:
        existing = db.select(MATCHES_TABLE, {"tourney_id": eq(tourney_id)}, select="id", limit=1)
    except SupabaseError as e:
        raise UpstreamError(f"Error checking draw_matches: {e.message}")
    if existing:
        return False
    try:
        db.rpc("build_draw_matches", {"p_tournament_id": tourney_id})
    except SupabaseError as e:
        raise UpstreamError(f"Error in build_draw_matches: {e.message}")
    log.info("🎾 Cuadro construido para %s", tourney_id)
    return True


def _call_sim(db, fn: str, payload: Dict[str, Any]) -> None:
    try:
        db.rpc(fn, payload)
    except SupabaseError as e:
        log.error("❌ Error in %s: %s", fn, e.message)
        raise UpstreamError(e.message)


def simulate_full(db, tourney_id: str) -> SideEffect:
    ensure_draw(db, tourney_id)
    _call_sim(db, "simulate_full_tournament", {"p_tourney_id": tourney_id})
    return promote_best_effort(db, tourney_id)


def simulate_next_round(db, tourney_id: str) -> SideEffect:
    ensure_draw(db, tourney_id)
    _call_sim(db, "simulate_next_round", {"p_tourney_id": tourney_id})
    return promote_best_effort(db, tourney_id)


def parse_runs(raw, default: int = 1) -> int:
    """runs debe ser entero positivo (admite "3" pero no 2.5 ni "abc")."""
    if raw is None:
        return default
    if isinstance(raw, bool):
        raise BadRequest("runs must be a positive integer")
    n = to_number(raw)
    if n is None or not n.is_integer() or n <= 0:
        raise BadRequest("runs must be a positive integer")
    runs = int(n)
    if runs > MAX_RUNS_PER_CALL:
        raise BadRequest(f"runs chunk too large (max {MAX_RUNS_PER_CALL})")
    return runs


def parse_year(raw) -> int:
    if raw is None or raw == "":
        return datetime.now().year
    n = to_number(raw)
    if n is None or not n.is_integer():
        raise BadRequest("year must be an integer")
    return int(n)


def simulate_multiple(db, tourney_id: str, runs: int, year: int, reset: bool = False) -> SideEffect:
    ensure_draw(db, tourney_id)
    _call_sim(db, "simulate_multiple_runs", {
        "p_tourney_id": tourney_id,
        "p_year": year,
        "p_runs": runs,
        "p_reset": bool(reset),
    })
    log.info("✅ %s runs simulados para %s (%s)", runs, tourney_id, year)
    return promote_best_effort(db, tourney_id)


# ───────────────────────────────────────────────────────────────────
# Reset
# ───────────────────────────────────────────────────────────────────

def _stage(stage: str, fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except SupabaseError as e:
        log.error("❌ reset %s: %s", stage, e.message)
        raise UpstreamError(e.message, stage=stage)


def hard_reset(db, tourney_id: str) -> None:
    _stage("delete_all", db.delete, MATCHES_TABLE, {"tourney_id": eq(tourney_id)})
    _stage("rpc_build", db.rpc, "build_draw_matches", {"p_tournament_id": tourney_id})


def reset_draw(db, tourney_id: str, mode: Optional[str] = "soft") -> dict:
    """
    soft: limpia ganadores de la primera ronda y borra las siguientes.
    Si la primera ronda presente no cuadra con el draw_size, pasa a hard.
    hard: borra todo y vuelve a construir el cuadro.
    """
    if mode is not None and not isinstance(mode, str):
        raise BadRequest("mode debe ser 'soft' o 'hard'")
    mode = (mode or "soft").strip().lower()
    if mode not in RESET_MODES:
        raise BadRequest("mode debe ser 'soft' o 'hard'")

    if mode == "hard":
        hard_reset(db, tourney_id)
        return {"status": "ok", "mode": "hard"}

    hdr = _stage("read_rounds", db.select, "tournaments", {"tourney_id": eq(tourney_id)},
                 select="tourney_id,draw_size", limit=1)
    if not hdr:
        raise NotFound("Torneo no encontrado")
    expected = first_round_for_draw_size(hdr[0].get("draw_size"))

    rows = _stage("read_rounds", db.select, MATCHES_TABLE, {"tourney_id": eq(tourney_id)},
                  select="id,round")
    detected = earliest_round(r.get("round") for r in rows)

    if detected != expected:
        log.warning("⚠️ Cuadro desalineado en %s (esperada %s, presente %s): reset hard",
                    tourney_id, expected, detected)
        hard_reset(db, tourney_id)
        return {"status": "ok", "mode": "hard", "firstRound": expected, "fallback": True}

    _stage("update_first_round", db.update, MATCHES_TABLE,
           {"tourney_id": eq(tourney_id), "round": eq(expected)}, {"winner_id": None})
    later = rounds_after(expected)
    if later:
        _stage("delete_later_rounds", db.delete, MATCHES_TABLE,
               {"tourney_id": eq(tourney_id), "round": in_(later)})
    return {"status": "ok", "mode": "soft", "firstRound": expected}
