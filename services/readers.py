# services/readers.py
from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional

from services.errors import BadRequest, NotFound, UpstreamError
from services.supabase_rest import SupabaseError, eq, in_
from utils.scoring import clamp, to_number, to_str

log = logging.getLogger("readers")

LIVE_WINDOW = timedelta(days=7)
ANALYTICS_PAGE = 2000
ROUND_PRIORITY = ["F", "SF", "QF", "R16", "R32", "R64", "R128"]


# ───────────────────────────────────────────────────────────────────
# Listado de torneos
# ───────────────────────────────────────────────────────────────────

def parse_start_date(raw: Any) -> Optional[date]:
    """tourney_date llega como 20250811 (int/str) o ISO '2025-08-11[T..]'."""
    if raw is None or raw == "":
        return None
    s = str(raw).strip()
    if re.fullmatch(r"\d{8}", s):
        try:
            return datetime.strptime(s, "%Y%m%d").date()
        except ValueError:
            return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def is_live(start: Optional[date], now: Optional[datetime] = None) -> bool:
    if start is None:
        return False
    now = now or datetime.now(timezone.utc)
    begin = datetime(start.year, start.month, start.day, tzinfo=timezone.utc)
    return begin <= now <= begin + LIVE_WINDOW


def _year_from_id(tourney_id: str) -> Optional[int]:
    m = re.match(r"^(\d{4})-", tourney_id or "")
    return int(m.group(1)) if m else None


def parse_limit(raw, default: int = 20) -> int:
    n = to_number(raw)
    if n is None or n == 0:
        n = default
    return int(clamp(int(n), 1, 100))


def list_tournaments(db, q: Optional[str] = None, limit=None, now: Optional[datetime] = None) -> dict:
    try:
        dm_rows = db.select("draw_matches", select="tourney_id")
    except SupabaseError as e:
        raise UpstreamError(e.message, stage="draw_matches")

    ids: list[str] = []
    for r in dm_rows:
        tid = to_str(r.get("tourney_id"))
        if tid and tid not in ids:
            ids.append(tid)
    if not ids:
        return {"items": []}

    try:
        meta = db.select("tournaments", {"tourney_id": in_(ids)},
                         select="tourney_id,name,surface,draw_size,tourney_date")
    except SupabaseError as e:
        raise UpstreamError(e.message, stage="tournaments")
    meta_map = {to_str(m.get("tourney_id")): m for m in meta}

    items = []
    for tid in sorted(ids, reverse=True):
        m = meta_map.get(tid) or {}
        start = parse_start_date(m.get("tourney_date"))
        items.append({
            "tourney_id": tid,
            "name": m.get("name"),
            "surface": m.get("surface"),
            "draw_size": m.get("draw_size"),
            "year": start.year if start else _year_from_id(tid),
            "month": start.month if start else None,
            "is_live": is_live(start, now),
        })

    needle = (q or "").strip().lower()
    if needle:
        items = [
            t for t in items
            if needle in t["tourney_id"].lower() or (t["name"] and needle in str(t["name"]).lower())
        ]
    return {"items": items[:parse_limit(limit)]}


# ───────────────────────────────────────────────────────────────────
# Estadísticas de jugador (aces / dobles faltas)
# ───────────────────────────────────────────────────────────────────

MATCH_FIELDS = "tourney_id,best_of,surface,winner_id,loser_id,w_ace,w_df,l_ace,l_df"

STAT_KEYS = {
    "aces_best_of_3": "aces_best_of_3",
    "aces_same_surface": "aces_same_surface",
    "aces_previous_tournament": "aces_previous_tournament",
    "df_best_of_3": "double_faults_best_of_3",
    "df_same_surface": "double_faults_same_surface",
    "df_previous_tournament": "double_faults_previous_tournament",
    "opp_aces_bo3_surface": "opponent_aces_best_of_3_same_surface",
    "opp_df_bo3_surface": "opponent_double_faults_best_of_3_same_surface",
}


class _Metric:
    __slots__ = ("total", "count")

    def __init__(self):
        self.total = 0.0
        self.count = 0

    def add(self, value) -> None:
        n = to_number(value)
        if n is None:
            return
        self.total += n
        self.count += 1

    def average(self) -> Optional[float]:
        return self.total / self.count if self.count else None


def previous_tourney_id(tourney_id: Optional[str]) -> Optional[str]:
    if not tourney_id:
        return None
    m = re.match(r"^(\d{4})(-.+)$", tourney_id)
    if not m:
        return None
    return f"{int(m.group(1)) - 1}{m.group(2)}"


def normalize_surface(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    s = value.strip()
    return s.upper() or None


def parse_player_id(raw) -> int:
    n = to_number(raw)
    if n is None or not n.is_integer():
        raise BadRequest("player_id requerido (numérico)")
    return int(n)


def player_stats(db, player_id, surface=None, tourney_id=None) -> dict:
    pid = parse_player_id(player_id)
    surf = normalize_surface(surface)
    tid = tourney_id.strip() if isinstance(tourney_id, str) and tourney_id.strip() else None
    prev = previous_tourney_id(tid)

    entries: list[tuple[dict, str]] = []
    try:
        for role, col in (("winner", "winner_id"), ("loser", "loser_id")):
            rows = db.select("matches", {col: eq(pid)}, select=MATCH_FIELDS,
                             limit=2000, schema="estratego_v1")
            entries.extend((r, role) for r in rows)
    except SupabaseError as e:
        raise UpstreamError(e.message)

    metrics: Dict[str, _Metric] = {k: _Metric() for k in STAT_KEYS}
    for row, role in entries:
        won = role == "winner"
        aces_for = row.get("w_ace") if won else row.get("l_ace")
        df_for = row.get("w_df") if won else row.get("l_df")
        aces_against = row.get("l_ace") if won else row.get("w_ace")
        df_against = row.get("l_df") if won else row.get("w_df")
        bo3 = to_number(row.get("best_of")) == 3

        if bo3:
            metrics["aces_best_of_3"].add(aces_for)
            metrics["df_best_of_3"].add(df_for)
        if surf and normalize_surface(row.get("surface")) == surf:
            metrics["aces_same_surface"].add(aces_for)
            metrics["df_same_surface"].add(df_for)
            if bo3:
                metrics["opp_aces_bo3_surface"].add(aces_against)
                metrics["opp_df_bo3_surface"].add(df_against)
        if prev and to_str(row.get("tourney_id")) == prev:
            metrics["aces_previous_tournament"].add(aces_for)
            metrics["df_previous_tournament"].add(df_for)

    return {
        "player_id": str(pid),
        "filters": {"surface": surf, "tourney_id": tid, "previous_tourney_id": prev},
        "stats": {out: metrics[k].average() for k, out in STAT_KEYS.items()},
        "samples": {out: metrics[k].count for k, out in STAT_KEYS.items()},
    }


# ───────────────────────────────────────────────────────────────────
# Highs / estado de simulación / analítica
# ───────────────────────────────────────────────────────────────────

def tournament_highs(db, tourney_id: str) -> Optional[dict]:
    tid = (tourney_id or "").strip()
    if not tid:
        raise BadRequest("tourney_id requerido")
    try:
        data = db.rpc("tournament_highs_summary", {"p_tourney_id": tid})
    except SupabaseError as e:
        raise UpstreamError(e.message)
    if isinstance(data, list):
        return data[0] if data else None
    return data


def run_count(db, tourney_id: str) -> int:
    try:
        data = db.rpc("simulation_results_run_count", {"p_tourney_id": tourney_id})
    except SupabaseError as e:
        raise UpstreamError(e.message)
    # la RPC puede devolver 12, "12" o [{"simulation_results_run_count": 12}]
    if isinstance(data, list) and data:
        data = data[0]
    if isinstance(data, dict):
        data = next(iter(data.values()), None)
    n = to_number(data)
    return int(n) if n is not None and n > 0 else 0


def simulation_status(db, tourney_id: str) -> dict:
    tid = (tourney_id or "").strip()
    if not tid:
        raise BadRequest("Missing tourneyId")
    count = run_count(db, tid)
    return {"tourney_id": tid, "run_count": count, "has_results": count > 0}


def _fetch_simulation_rows(db, tourney_id: str) -> list[dict]:
    rows: list[dict] = []
    offset = 0
    while True:
        chunk = db.select("simulation_results", {"tourney_id": eq(tourney_id)},
                          select="player_id,run_number,reached_round",
                          order="run_number.asc,player_id.asc",
                          limit=ANALYTICS_PAGE, offset=offset)
        rows.extend(chunk)
        if len(chunk) < ANALYTICS_PAGE:
            return rows
        offset += ANALYTICS_PAGE


def aggregate_simulations(rows: list[dict], players: Dict[str, dict]) -> dict:
    """Cuenta por jugador cuántas veces alcanzó cada ronda."""
    present = set()
    by_player: Dict[str, dict] = {}
    for row in rows:
        rnd = row.get("reached_round")
        key = to_str(row.get("player_id"))
        if not key or not isinstance(rnd, str):
            continue
        present.add(rnd)
        if key not in by_player:
            info = players.get(key) or {}
            name = (info.get("name") or "").strip() or f"Jugador {key}"
            by_player[key] = {
                "player_id": key,
                "name": name,
                "country": info.get("country"),
                "totals": {},
            }
        totals = by_player[key]["totals"]
        totals[rnd] = totals.get(rnd, 0) + 1

    def _sort_key(p):
        return tuple(-p["totals"].get(r, 0) for r in ROUND_PRIORITY) + (p["name"],)

    ordered = sorted(by_player.values(), key=_sort_key)
    top = [
        {"player_id": p["player_id"], "name": p["name"], "country": p["country"],
         "finals": p["totals"].get("F", 0), "semis": p["totals"].get("SF", 0)}
        for p in ordered
        if p["totals"].get("F", 0) > 0 or p["totals"].get("SF", 0) > 0
    ]
    top.sort(key=lambda t: (-t["finals"], -t["semis"]))
    return {
        "rounds": [r for r in ROUND_PRIORITY if r in present],
        "players": ordered,
        "top_performers": top[:4],
    }


def simulation_analytics(db, tourney_id: str, bracket_loader=None) -> dict:
    tid = (tourney_id or "").strip()
    if not tid:
        raise BadRequest("Missing tourneyId")
    try:
        rows = _fetch_simulation_rows(db, tid)
    except SupabaseError as e:
        raise UpstreamError(e.message)

    players: Dict[str, dict] = {}
    ids = sorted({int(n) for n in (to_number(r.get("player_id")) for r in rows)
                  if n is not None and n.is_integer()})
    if ids:
        try:
            for p in db.select("players_min", {"player_id": in_(ids)}, select="player_id,name,country"):
                players[to_str(p.get("player_id"))] = p
        except SupabaseError as e:
            log.warning("No se pudo cargar players_min: %s", e)

    # nombres/país del cuadro pisan los de players_min
    if bracket_loader is not None:
        try:
            bracket = bracket_loader(db, tid)
        except (NotFound, UpstreamError) as e:
            log.warning("No se pudo cargar bracket para nombres: %s", e)
            bracket = {}
        for m in bracket.get("matches") or []:
            for side in ("top", "bottom"):
                p = m.get(side) or {}
                if not p.get("id") or p["id"] == "TBD":
                    continue
                prev = players.get(p["id"]) or {}
                players[p["id"]] = {
                    "name": p.get("name") if p.get("name") not in (None, "TBD") else prev.get("name"),
                    "country": p.get("country") or prev.get("country"),
                }

    try:
        count = run_count(db, tid)
    except UpstreamError as e:
        log.warning("run_count no disponible: %s", e)
        count = 0
    if not count:
        count = len({to_str(r.get("run_number")) for r in rows if r.get("run_number") is not None})

    out = {"tourney_id": tid, "run_count": count}
    out.update(aggregate_simulations(rows, players))
    return out
