# services/bracket.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from services.errors import NotFound, UpstreamError
from services.supabase_rest import SupabaseError, eq, in_
from utils.rounds import match_number, round_index
from utils.scoring import to_number, to_str

log = logging.getLogger("bracket")

TBD = "TBD"
ENTRY_TYPES = {"Q", "WC"}

# IOC -> ISO-2 (sólo los que aparecen en los cuadros ATP)
IOC_TO_ISO2 = {
    "ESP": "ES", "ARG": "AR", "USA": "US", "GBR": "GB", "UKR": "UA", "GER": "DE", "FRA": "FR", "ITA": "IT",
    "SUI": "CH", "NED": "NL", "BEL": "BE", "SWE": "SE", "NOR": "NO", "DEN": "DK", "CRO": "HR", "SRB": "RS",
    "BIH": "BA", "POR": "PT", "POL": "PL", "CZE": "CZ", "SVK": "SK", "SLO": "SI", "HUN": "HU", "AUT": "AT",
    "AUS": "AU", "NZL": "NZ", "CAN": "CA", "MEX": "MX", "COL": "CO", "CHI": "CL", "PER": "PE", "ECU": "EC",
    "URU": "UY", "BOL": "BO", "VEN": "VE", "BRA": "BR", "JPN": "JP", "KOR": "KR", "CHN": "CN", "HKG": "HK",
    "TPE": "TW", "THA": "TH", "VIE": "VN", "IND": "IN", "PAK": "PK", "QAT": "QA", "UAE": "AE", "KAZ": "KZ",
    "UZB": "UZ", "GEO": "GE", "ARM": "AM", "TUR": "TR", "GRE": "GR", "CYP": "CY", "ROU": "RO", "BUL": "BG",
    "LTU": "LT", "LAT": "LV", "EST": "EE", "FIN": "FI", "IRL": "IE", "SCO": "GB", "WAL": "GB",
}


def ioc_to_iso2(ioc: Optional[str]) -> Optional[str]:
    if not ioc or not isinstance(ioc, str):
        return None
    return IOC_TO_ISO2.get(ioc.strip().upper())


def clean_entry_type(raw: Any) -> Optional[str]:
    if not isinstance(raw, str):
        return None
    code = raw.strip().upper()
    return code if code in ENTRY_TYPES else None


def _numeric_ids(rows: list[dict]) -> list[int]:
    ids: list[int] = []
    seen = set()
    for r in rows:
        for key in ("top_id", "bot_id"):
            n = to_number(r.get(key))
            if n is None or not n.is_integer():
                continue
            pid = int(n)
            if pid not in seen:
                seen.add(pid)
                ids.append(pid)
    return ids


def _fetch_entries(db, tourney_id: str) -> list[dict]:
    """draw_entries con entry_type; si la columna no existe, reintenta sólo con tag."""
    try:
        return db.select("draw_entries", {"tourney_id": eq(tourney_id)},
                         select="player_id,seed,entry_type,tag")
    except SupabaseError as e:
        if "entry_type" not in (e.message or "").lower():
            raise
        log.info("draw_entries sin columna entry_type, usando tag")
        return db.select("draw_entries", {"tourney_id": eq(tourney_id)},
                         select="player_id,seed,tag")


def _participant(pid: Optional[str], names: Dict[str, dict], entries: Dict[str, dict],
                 iocs: Dict[str, Optional[str]]) -> dict:
    if not pid:
        return {"id": TBD, "name": TBD, "seed": None, "entryType": None, "country": None}
    player = names.get(pid) or {}
    entry = entries.get(pid) or {}
    seed = to_number(entry.get("seed"))
    raw_type = entry.get("entry_type") or entry.get("tag")
    return {
        "id": pid,
        "name": player.get("name") or TBD,
        "seed": int(seed) if seed is not None and seed.is_integer() else seed,
        "entryType": clean_entry_type(raw_type),
        "country": ioc_to_iso2(iocs.get(pid)),
    }


def get_bracket(db, tourney_id: str) -> dict:
    """
    Cabecera del torneo + partidos actuales con los datos de cada jugador.
    404 si el torneo no existe; 500 con el mensaje de BD si falla la lectura.
    """
    try:
        hdr_rows = db.select("tournaments", {"tourney_id": eq(tourney_id)},
                             select="tourney_id,name,surface,draw_size", limit=1)
    except SupabaseError as e:
        raise UpstreamError(e.message)
    if not hdr_rows:
        raise NotFound("Torneo no encontrado")
    hdr = hdr_rows[0]

    try:
        raw = db.select("draw_matches", {"tourney_id": eq(tourney_id)},
                        select="id,round,top_id,bot_id,winner_id")
        rows = [r for r in raw if isinstance(r, dict) and to_str(r.get("id"))]
        rows.sort(key=lambda r: (round_index(r.get("round")), match_number(r.get("id"))))

        ids = _numeric_ids(rows)
        names: Dict[str, dict] = {}
        iocs: Dict[str, Optional[str]] = {}
        if ids:
            for p in db.select("players_min", {"player_id": in_(ids)}, select="player_id,name"):
                if p.get("player_id") is not None:
                    names[to_str(p["player_id"])] = p
            try:
                for p in db.select("players_flag", {"player_id": in_(ids)}, select="player_id,ioc"):
                    if p.get("player_id") is not None:
                        iocs[to_str(p["player_id"])] = p.get("ioc")
            except SupabaseError as e:
                # sin banderas el cuadro sigue siendo válido
                log.info("players_flag no disponible: %s", e)

        entries: Dict[str, dict] = {}
        for e in _fetch_entries(db, tourney_id):
            if e.get("player_id") is not None:
                entries[to_str(e["player_id"])] = e
    except SupabaseError as e:
        raise UpstreamError(e.message)

    matches = []
    for r in rows:
        top_id = to_str(r.get("top_id"))
        bot_id = to_str(r.get("bot_id"))
        matches.append({
            "id": to_str(r.get("id")),
            "round": r.get("round"),
            "top": _participant(top_id, names, entries, iocs),
            "bottom": _participant(bot_id, names, entries, iocs),
            "winnerId": to_str(r.get("winner_id")),
        })

    draw_size = to_number(hdr.get("draw_size"))
    return {
        "tournamentId": hdr.get("tourney_id"),
        "tourney_id": hdr.get("tourney_id"),
        "event": hdr.get("name"),
        "surface": hdr.get("surface"),
        "drawSize": int(draw_size) if draw_size is not None else None,
        "matches": matches,
    }
