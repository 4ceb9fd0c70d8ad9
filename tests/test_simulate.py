import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import pytest

import main
from fake_db import FakeDb
from services import draw_ops as D
from services.errors import BadRequest
from services.settings import Settings

TID = "2025-0001"


def _client(db):
    settings = Settings(supabase_url="http://sb", anon_key="a", service_key="s")
    return main.create_app(settings=settings, db=db, db_admin=db).test_client()


def _build(db, payload):
    db.tables.setdefault("draw_matches", []).extend([
        {"tourney_id": payload["p_tournament_id"], "id": "SF-1", "round": "SF", "top_id": "1", "bot_id": "2", "winner_id": None},
        {"tourney_id": payload["p_tournament_id"], "id": "SF-2", "round": "SF", "top_id": "3", "bot_id": "4", "winner_id": None},
    ])


def _simulate_sf(db, payload):
    for r in db.tables["draw_matches"]:
        if r["round"] == "SF":
            r["winner_id"] = r["top_id"]


def _db(with_draw=False):
    db = FakeDb({"draw_matches": []}, rpc_handlers={
        "build_draw_matches": _build,
        "simulate_full_tournament": _simulate_sf,
        "simulate_next_round": _simulate_sf,
        "simulate_multiple_runs": lambda db, p: None,
    })
    if with_draw:
        _build(db, {"p_tournament_id": TID})
    return db


def test_simulate_builds_missing_draw_then_promotes():
    db = _db()
    resp = _client(db).post("/simulate", json={"tourney_id": TID})
    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True}
    assert db.rpc_names() == ["build_draw_matches", "simulate_full_tournament"]
    final = db.match(TID, "F-1")
    assert (final["top_id"], final["bot_id"]) == ("1", "3")


def test_simulate_existing_draw_skips_build():
    db = _db(with_draw=True)
    _client(db).post("/simulate", json={"tourney_id": TID})
    assert db.rpc_names() == ["simulate_full_tournament"]


def test_simulate_rpc_failure_is_500():
    db = _db(with_draw=True)
    db.fail[("rpc", "simulate_full_tournament")] = "timeout en simulación"
    resp = _client(db).post("/simulate", json={"tourney_id": TID})
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "timeout en simulación"}


def test_simulate_requires_tourney_id():
    resp = _client(_db()).post("/simulate", json={"tourney_id": "  "})
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Missing tourney_id"}


def test_simulate_round_route():
    db = _db(with_draw=True)
    resp = _client(db).post("/simulate/round", json={"tourney_id": TID})
    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True, "tourney_id": TID}
    assert db.rpc_names() == ["simulate_next_round"]
    assert db.match(TID, "F-1") is not None


@pytest.mark.parametrize("runs", [0, -5, "abc", 2.5, True])
def test_simulate_multiple_rejects_bad_runs_without_rpc(runs):
    db = _db(with_draw=True)
    resp = _client(db).post("/simulate/multiple", json={"tourney_id": TID, "runs": runs})
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "runs must be a positive integer"}
    assert db.rpc_names() == []


def test_simulate_multiple_rejects_large_chunks():
    db = _db(with_draw=True)
    resp = _client(db).post("/simulate/multiple", json={"tourney_id": TID, "runs": 21})
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "runs chunk too large (max 20)"}
    assert db.rpc_names() == []


def test_simulate_multiple_passes_runs_year_and_reset():
    db = _db(with_draw=True)
    resp = _client(db).post("/simulate/multiple",
                            json={"tourney_id": TID, "runs": "5", "year": 2024, "reset": True})
    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True, "tourney_id": TID, "runs": 5, "year": 2024}
    call = [c for c in db.calls if c[0] == "rpc" and c[1] == "simulate_multiple_runs"][0]
    assert call[2] == {"p_tourney_id": TID, "p_year": 2024, "p_runs": 5, "p_reset": True}


def test_parse_runs_defaults_to_one():
    assert D.parse_runs(None) == 1
    assert D.parse_runs(20) == 20


def test_parse_year_defaults_to_current_year():
    from datetime import datetime
    assert D.parse_year(None) == datetime.now().year
    with pytest.raises(BadRequest):
        D.parse_year("dos mil")


def test_build_failure_is_reported():
    db = _db()
    db.fail[("rpc", "build_draw_matches")] = "no entries"
    resp = _client(db).post("/simulate", json={"tourney_id": TID})
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Error in build_draw_matches: no entries"}


def test_simulate_multiple_tolerates_pairing_failure():
    db = _db(with_draw=True)
    _simulate_sf(db, {})
    db.fail[("upsert", "draw_matches")] = "boom"
    resp = _client(db).post("/simulate/multiple", json={"tourney_id": TID, "runs": 2, "year": 2025})
    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True, "tourney_id": TID, "runs": 2, "year": 2025}
    assert db.match(TID, "F-1") is None


def test_simulate_multiple_pairs_next_round():
    db = _db(with_draw=True)
    _simulate_sf(db, {})
    resp = _client(db).post("/simulate/multiple", json={"tourney_id": TID, "runs": 3, "year": 2025})
    assert resp.status_code == 200
    final = db.match(TID, "F-1")
    assert (final["top_id"], final["bot_id"], final["winner_id"]) == ("1", "3", None)
