import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import main
from fake_db import FakeDb
from services.settings import Settings

TID = "2025-0001"


def _client(db):
    settings = Settings(supabase_url="http://sb", anon_key="a", service_key="s", api_base_url="http://api")
    return main.create_app(settings=settings, db=db, db_admin=db).test_client()


def _db():
    return FakeDb({"draw_matches": [
        {"tourney_id": TID, "id": "SF-1", "round": "SF", "top_id": "1", "bot_id": "2", "winner_id": None},
        {"tourney_id": TID, "id": "SF-2", "round": "SF", "top_id": "3", "bot_id": "4", "winner_id": "3"},
    ]})


def test_winner_records_and_promotes():
    db = _db()
    resp = _client(db).post("/draw/winner", json={"tourney_id": TID, "match_id": "SF-1", "winner_id": "2"})
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}
    assert db.match(TID, "SF-1")["winner_id"] == "2"
    final = db.match(TID, "F-1")
    assert (final["top_id"], final["bot_id"], final["winner_id"]) == ("2", "3", None)


def test_numeric_winner_id_is_accepted():
    db = _db()
    resp = _client(db).post("/draw/winner", json={"tourney_id": TID, "match_id": "SF-1", "winner_id": 1})
    assert resp.status_code == 200
    assert db.match(TID, "SF-1")["winner_id"] == "1"


def test_winner_not_in_match_is_rejected_without_writes():
    db = _db()
    resp = _client(db).post("/draw/winner", json={"tourney_id": TID, "match_id": "SF-1", "winner_id": "9"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "El ganador no corresponde al partido"
    assert db.ops("update") == []
    assert db.ops("upsert") == []
    assert db.match(TID, "SF-1")["winner_id"] is None


def test_unknown_match_is_404():
    db = _db()
    resp = _client(db).post("/draw/winner", json={"tourney_id": TID, "match_id": "QF-1", "winner_id": "1"})
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Partido no encontrado"}


def test_missing_fields_is_400():
    resp = _client(_db()).post("/draw/winner", json={"tourney_id": TID, "match_id": "SF-1"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Parametros incompletos"


def test_invalid_json_is_400():
    resp = _client(_db()).post("/draw/winner", data="no-json", content_type="application/json")
    assert resp.status_code == 400


def test_promotion_failure_does_not_fail_request():
    db = _db()
    db.fail[("upsert", "draw_matches")] = "permission denied"
    resp = _client(db).post("/draw/winner", json={"tourney_id": TID, "match_id": "SF-1", "winner_id": "1"})
    assert resp.status_code == 200
    assert db.match(TID, "SF-1")["winner_id"] == "1"
    assert db.match(TID, "F-1") is None


def test_update_failure_is_500_with_db_message():
    db = _db()
    db.fail[("update", "draw_matches")] = "row level security"
    resp = _client(db).post("/draw/winner", json={"tourney_id": TID, "match_id": "SF-1", "winner_id": "1"})
    assert resp.status_code == 500
    assert resp.get_json()["error"] == "row level security"


def test_missing_service_key_is_500():
    settings = Settings(supabase_url="http://sb", anon_key="a", service_key="")
    client = main.create_app(settings=settings).test_client()
    resp = client.post("/draw/winner", json={"tourney_id": TID, "match_id": "SF-1", "winner_id": "1"})
    assert resp.status_code == 500
    assert resp.get_json()["error"] == "SUPABASE_SERVICE_ROLE_KEY no configurada"
