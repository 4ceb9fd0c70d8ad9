import math

# Métricas del prematch en el orden en que las pinta la UI
METRIC_KEYS = [
    "win_pct_year",
    "win_pct_surface",
    "win_pct_month",
    "win_pct_vs_top10",
    "court_speed_score",
    "rest_score",
    "ranking_score",
    "h2h_score",
    "motivation_score",
]

DEFAULT_WEIGHTS = {
    "win_pct_year": 0.15,
    "win_pct_surface": 0.15,
    "win_pct_month": 0.1,
    "win_pct_vs_top10": 0.1,
    "court_speed_score": 0.0,
    "rest_score": 0.05,
    "ranking_score": 0.3,
    "h2h_score": 0.1,
    "motivation_score": 0.05,
}

def clamp(x, lo, hi):
    return max(lo, min(hi, x))

def to_number(value):
    """int/float/str numérico -> float; None, bool, NaN o texto -> None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        f = float(value)
    elif isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        try:
            f = float(s)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(f) or math.isinf(f):
        return None
    return f

def to_str(value):
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    s = str(value).strip()
    return s or None

def merge_weights(rows) -> list[dict]:
    """
    Mezcla las filas {metric, weight} de BD sobre DEFAULT_WEIGHTS y devuelve
    la lista en el orden de METRIC_KEYS. Pesos no numéricos se ignoran.
    """
    merged = dict(DEFAULT_WEIGHTS)
    for row in rows or []:
        if not isinstance(row, dict):
            continue
        metric = (row.get("metric") or "").strip() if isinstance(row.get("metric"), str) else ""
        weight = to_number(row.get("weight"))
        if not metric or weight is None:
            continue
        merged[metric] = weight
    return [{"metric": k, "weight": merged[k]} for k in METRIC_KEYS]

def parse_weights(payload) -> list[dict]:
    rows = []
    for entry in payload or []:
        if not isinstance(entry, dict):
            continue
        metric = entry.get("metric").strip() if isinstance(entry.get("metric"), str) else ""
        weight = to_number(entry.get("weight"))
        if not metric or weight is None:
            continue
        rows.append({"metric": metric, "weight": weight})
    return rows
