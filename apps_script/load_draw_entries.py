# apps_script/load_draw_entries.py
"""
Carga un cuadro desde CSV (pos, player_name, seed, tag) a draw_entries.

Uso: python apps_script/load_draw_entries.py <csv_file> [tourney_id] [--build]

Si no se pasa tourney_id se extrae del nombre del fichero (draw_2025-747.csv).
Con --build se vuelve a generar draw_matches con build_draw_matches.
"""
import os
import sys
from pathlib import Path

import pandas as pd

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.settings import Settings
from services.supabase_rest import SupabaseRest, eq, ilike

DRAW_ENTRIES_TABLE = "draw_entries"
PLAYERS_TABLE = "players_min"
UNRESOLVED = "UNRESOLVED"


def tourney_id_from_filename(csv_file: str):
    stem = Path(csv_file).stem  # ej: draw_2025-747
    parts = stem.split("_", 1)
    return parts[1] if len(parts) == 2 and parts[1] else None


def read_draw_csv(csv_file) -> list[dict]:
    df = pd.read_csv(csv_file)
    if "pos" not in df.columns or "player_name" not in df.columns:
        raise ValueError("El CSV debe tener columnas 'pos' y 'player_name'.")
    if "seed" in df.columns:
        df["seed"] = pd.to_numeric(df["seed"], errors="coerce").astype("Int64")
    # NaN -> None
    df = df.astype(object).where(pd.notnull(df), None)
    rows = []
    for rec in df.to_dict(orient="records"):
        name = str(rec.get("player_name") or "").strip()
        tag = (rec.get("tag") or "").strip().upper() if isinstance(rec.get("tag"), str) else ""
        seed = rec.get("seed")
        rows.append({
            "pos": int(rec["pos"]),
            "player_name": name,
            "seed": int(seed) if seed is not None else None,
            "tag": tag or None,
        })
    return rows


def reorder_name(name: str) -> str:
    if not name or "," not in name:
        return name
    last, first = [p.strip() for p in name.split(",", 1)]
    return f"{first} {last}"


def resolve_player_id(db, name: str):
    if not name:
        return None
    for variant in dict.fromkeys([name, reorder_name(name)]):
        if not variant:
            continue
        rows = db.select(PLAYERS_TABLE, {"name": ilike(variant)}, select="player_id,name", limit=1)
        if rows:
            return rows[0]["player_id"]
    return None


def build_entries(db, tourney_id: str, staging_rows: list[dict]) -> list[dict]:
    entries = []
    for row in staging_rows:
        player_id = resolve_player_id(db, row["player_name"])
        entries.append({
            "tourney_id": tourney_id,
            "pos": row["pos"],
            "player_id": player_id,
            "seed": row["seed"],
            "tag": row["tag"] if row["tag"] else (UNRESOLVED if not player_id else None),
        })
        print(f" → Pos {row['pos']} | {row['player_name']} → player_id={player_id or '❌ UNRESOLVED'}")
    return entries


def load(db, tourney_id: str, staging_rows: list[dict], build: bool = False) -> list[dict]:
    entries = build_entries(db, tourney_id, staging_rows)
    db.delete(DRAW_ENTRIES_TABLE, {"tourney_id": eq(tourney_id)})
    print(f"🗑️ Eliminados registros previos en draw_entries para tourney_id={tourney_id}.")
    if entries:
        db.insert(DRAW_ENTRIES_TABLE, entries)
    print(f"✅ Insertados {len(entries)} registros en draw_entries.")
    if build:
        db.delete("draw_matches", {"tourney_id": eq(tourney_id)})
        db.rpc("build_draw_matches", {"p_tournament_id": tourney_id})
        print("🎾 draw_matches reconstruido.")
    return entries


def main(argv=None):
    argv = list(sys.argv[1:] if argv is None else argv)
    build = "--build" in argv
    args = [a for a in argv if a != "--build"]
    if not args:
        print("Uso: python load_draw_entries.py <csv_file> [tourney_id] [--build]")
        return 1

    csv_file = args[0]
    tourney_id = args[1] if len(args) > 1 else tourney_id_from_filename(csv_file)
    if not tourney_id:
        print("❌ No se pudo extraer tourney_id del nombre del archivo.")
        return 1

    settings = Settings.from_env()
    db = SupabaseRest(settings.supabase_url, settings.service_key, settings.http_timeout,
                      key_name="SUPABASE_SERVICE_ROLE_KEY").ensure_configured()
    rows = read_draw_csv(csv_file)
    print(f"🔄 Procesando {len(rows)} filas de {csv_file} para {tourney_id}…")
    load(db, tourney_id, rows, build=build)
    return 0


if __name__ == "__main__":
    sys.exit(main())
