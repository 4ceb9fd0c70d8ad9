from __future__ import annotations

from typing import Iterable, Optional

# Orden fijo de rondas (de la primera posible a la final)
ROUND_ORDER = ["R128", "R64", "R32", "R16", "QF", "SF", "F"]

NEXT_ROUND = {
    "R128": "R64",
    "R64": "R32",
    "R32": "R16",
    "R16": "QF",
    "QF": "SF",
    "SF": "F",
    "F": None,
}


def next_round(round_name: str | None) -> Optional[str]:
    return NEXT_ROUND.get(round_name or "")


def round_index(round_name: str | None) -> int:
    """Posición en ROUND_ORDER; rondas desconocidas van al final."""
    try:
        return ROUND_ORDER.index(round_name)
    except ValueError:
        return len(ROUND_ORDER)


def match_number(match_id) -> int:
    # "R32-7" -> 7 ; cualquier cosa rara -> 0
    parts = str(match_id or "").split("-")
    if len(parts) < 2:
        return 0
    try:
        return int(parts[1])
    except ValueError:
        return 0


def match_id(round_name: str, number: int) -> str:
    return f"{round_name}-{number}"


def first_round_for_draw_size(draw_size) -> str:
    try:
        n = int(draw_size)
    except (TypeError, ValueError):
        n = 0
    if n >= 64:
        return "R64"
    if n >= 32:
        return "R32"
    if n >= 16:
        return "R16"
    if n >= 8:
        return "QF"
    if n >= 4:
        return "SF"
    return "F"


def earliest_round(rounds: Iterable[str | None]) -> Optional[str]:
    present = {r for r in rounds if r in NEXT_ROUND}
    for r in ROUND_ORDER:
        if r in present:
            return r
    return None


def rounds_after(round_name: str) -> list[str]:
    idx = round_index(round_name)
    return ROUND_ORDER[idx + 1:]
