import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import pytest

import main
from fake_db import FakeDb
from services import bracket as B
from services.errors import NotFound, UpstreamError
from services.settings import Settings

TID = "2025-0580"


def _db():
    return FakeDb({
        "tournaments": [{"tourney_id": TID, "name": "Australian Open", "surface": "Hard", "draw_size": "4"}],
        "draw_matches": [
            {"tourney_id": TID, "id": "F-1", "round": "F", "top_id": 1, "bot_id": None, "winner_id": None},
            {"tourney_id": TID, "id": "SF-2", "round": "SF", "top_id": 3, "bot_id": 4, "winner_id": None},
            {"tourney_id": TID, "id": "SF-1", "round": "SF", "top_id": 1, "bot_id": 2, "winner_id": 1},
        ],
        "players_min": [
            {"player_id": 1, "name": "Carlos Alcaraz"},
            {"player_id": 2, "name": "Jannik Sinner"},
            {"player_id": 3, "name": "Qualy Player"},
        ],
        "players_flag": [{"player_id": 1, "ioc": "ESP"}, {"player_id": 2, "ioc": "ITA"}],
        "draw_entries": [
            {"tourney_id": TID, "player_id": 1, "seed": 1, "entry_type": None, "tag": None},
            {"tourney_id": TID, "player_id": 3, "seed": None, "entry_type": "q", "tag": None},
            {"tourney_id": TID, "player_id": 4, "seed": None, "entry_type": None, "tag": "WC"},
        ],
    })


def test_bracket_shape_and_order():
    out = B.get_bracket(_db(), TID)
    assert out["tournamentId"] == TID
    assert out["tourney_id"] == TID
    assert out["event"] == "Australian Open"
    assert out["surface"] == "Hard"
    assert out["drawSize"] == 4
    assert [m["id"] for m in out["matches"]] == ["SF-1", "SF-2", "F-1"]


def test_participants_are_enriched():
    out = B.get_bracket(_db(), TID)
    sf1 = out["matches"][0]
    assert sf1["top"] == {"id": "1", "name": "Carlos Alcaraz", "seed": 1, "entryType": None, "country": "ES"}
    assert sf1["bottom"]["country"] == "IT"
    assert sf1["winnerId"] == "1"
    sf2 = out["matches"][1]
    assert sf2["top"]["entryType"] == "Q"
    assert sf2["bottom"]["entryType"] == "WC"
    assert sf2["bottom"]["name"] == "TBD"
    assert sf2["winnerId"] is None


def test_empty_slot_is_tbd_placeholder():
    final = B.get_bracket(_db(), TID)["matches"][2]
    assert final["bottom"] == {"id": "TBD", "name": "TBD", "seed": None, "entryType": None, "country": None}


def test_entry_type_column_missing_falls_back_to_tag():
    db = _db()
    db.missing_columns["draw_entries"] = {"entry_type"}
    out = B.get_bracket(db, TID)
    assert out["matches"][1]["bottom"]["entryType"] == "WC"
    assert out["matches"][1]["top"]["entryType"] is None


def test_flags_failure_is_ignored():
    db = _db()
    db.fail[("select", "players_flag")] = "relation does not exist"
    out = B.get_bracket(db, TID)
    assert out["matches"][0]["top"]["country"] is None


def test_unknown_tournament_is_not_found():
    with pytest.raises(NotFound):
        B.get_bracket(_db(), "2099-0000")


def test_read_failure_is_upstream_error():
    db = _db()
    db.fail[("select", "draw_matches")] = "permission denied for table draw_matches"
    with pytest.raises(UpstreamError) as exc:
        B.get_bracket(db, TID)
    assert "permission denied" in exc.value.message


def test_ioc_to_iso2():
    assert B.ioc_to_iso2("esp") == "ES"
    assert B.ioc_to_iso2("SUI") == "CH"
    assert B.ioc_to_iso2("XXX") is None
    assert B.ioc_to_iso2(None) is None


def test_tournament_route():
    settings = Settings(supabase_url="http://sb", anon_key="a", service_key="s")
    client = main.create_app(settings=settings, db=_db(), db_admin=FakeDb()).test_client()
    ok = client.get(f"/tournament/{TID}")
    assert ok.status_code == 200
    assert len(ok.get_json()["matches"]) == 3
    missing = client.get("/tournament/2099-0000")
    assert missing.status_code == 404
    assert missing.get_json() == {"error": "Torneo no encontrado"}
