# services/promotion.py
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Tuple

from services.errors import SideEffect
from services.supabase_rest import eq
from utils.rounds import ROUND_ORDER, match_id, match_number, next_round
from utils.scoring import to_str

log = logging.getLogger("promotion")

MATCHES_TABLE = "draw_matches"
MATCH_CONFLICT = "tourney_id,id"


def normalize_match_rows(raw_rows) -> list[dict]:
    """Filas crudas de draw_matches -> dicts con ids en str (o None)."""
    rows = []
    for raw in raw_rows or []:
        if not isinstance(raw, dict):
            continue
        mid = to_str(raw.get("id"))
        rnd = to_str(raw.get("round"))
        if not mid or not rnd:
            continue
        rows.append({
            "id": mid,
            "round": rnd,
            "top_id": to_str(raw.get("top_id")),
            "bot_id": to_str(raw.get("bot_id")),
            "winner_id": to_str(raw.get("winner_id")),
        })
    return rows


def group_by_round(rows: list[dict]) -> Dict[str, list[dict]]:
    by_round: Dict[str, list[dict]] = {r: [] for r in ROUND_ORDER}
    for row in rows:
        by_round.setdefault(row["round"], []).append(row)
    for lst in by_round.values():
        lst.sort(key=lambda r: match_number(r["id"]))
    return by_round


def plan_promotion(rows: list[dict], tourney_id: str) -> List[Tuple[str, list[dict]]]:
    """
    Recorre las rondas en orden y, por cada pareja consecutiva (2k, 2k+1)
    con ambos ganadores, genera el upsert de <siguiente>-<k+1>.

    El ganador previo del cruce sólo se conserva si la pareja es la misma;
    si cambió algún participante, el cruce vuelve a quedar sin resolver.
    Devuelve [(ronda_siguiente, [upserts...]), ...] en el orden a aplicar.
    """
    by_round = group_by_round(rows)
    plan: List[Tuple[str, list[dict]]] = []

    for rnd in ROUND_ORDER:
        nxt = next_round(rnd)
        if not nxt:
            continue
        current = by_round.get(rnd) or []
        if not current:
            continue

        existing_next = by_round.get(nxt) or []
        existing_map = {r["id"]: r for r in existing_next}
        upserts: list[dict] = []

        for idx in range(0, len(current), 2):
            if idx + 1 >= len(current):
                break
            first, second = current[idx], current[idx + 1]
            if not first["winner_id"] or not second["winner_id"]:
                continue
            nid = match_id(nxt, idx // 2 + 1)
            prev = existing_map.get(nid)
            keep = (
                prev["winner_id"]
                if prev and prev["top_id"] == first["winner_id"] and prev["bot_id"] == second["winner_id"]
                else None
            )
            upserts.append({
                "id": nid,
                "tourney_id": tourney_id,
                "round": nxt,
                "top_id": first["winner_id"],
                "bot_id": second["winner_id"],
                "winner_id": keep,
            })

        if not upserts:
            continue
        plan.append((nxt, upserts))

        # la ronda siguiente se recalcula con lo recién promovido
        touched = {u["id"] for u in upserts}
        merged = [r for r in existing_next if r["id"] not in touched]
        merged.extend({k: u[k] for k in ("id", "round", "top_id", "bot_id", "winner_id")} for u in upserts)
        merged.sort(key=lambda r: match_number(r["id"]))
        by_round[nxt] = merged

    return plan


def promote_winners(db, tourney_id: str) -> int:
    """Lee el cuadro, aplica el plan ronda a ronda. Devuelve nº de upserts."""
    raw = db.select(MATCHES_TABLE, {"tourney_id": eq(tourney_id)},
                    select="id,round,top_id,bot_id,winner_id")
    rows = normalize_match_rows(raw)
    total = 0
    for nxt, upserts in plan_promotion(rows, tourney_id):
        db.upsert(MATCHES_TABLE, upserts, on_conflict=MATCH_CONFLICT)
        log.info("Emparejamientos listos para %s: %s", nxt, len(upserts))
        total += len(upserts)
    return total


def best_effort(name: str, fn: Callable[[], Any]) -> SideEffect:
    """Ejecuta un paso secundario; si falla se loguea y se devuelve el fallo."""
    try:
        res = fn()
    except Exception as e:
        log.warning("⚠️ %s falló (no crítico): %s", name, e)
        return SideEffect(name=name, ok=False, detail=str(e))
    count = res if isinstance(res, int) else 0
    return SideEffect(name=name, ok=True, count=count)


def promote_best_effort(db, tourney_id: str) -> SideEffect:
    return best_effort("promote_winners", lambda: promote_winners(db, tourney_id))
