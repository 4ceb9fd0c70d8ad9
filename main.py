from __future__ import annotations
from flask import Flask, Blueprint, current_app, request, jsonify
from werkzeug.exceptions import HTTPException
import os, logging

# Servicios/Utilidades
from services import bracket as BR
from services import draw_ops as DRAW
from services import readers as RD
from services.errors import ApiError, BadRequest
from services.settings import Settings
from services.supabase_rest import SupabaseRest
from apps_script.prematch_bp import prematch_bp


# -----------------------------------------------------------------------------
# Clientes compartidos (se crean una vez por proceso)
# -----------------------------------------------------------------------------
class Clients:
    """
    Clientes de BD inyectados en los handlers:
      - read():  clave pública (anon) para lecturas
      - admin(): service role para escrituras / RPC de administración
    Ambos validan configuración al usarse (500 descriptivo si falta).
    """

    def __init__(self, settings: Settings, db: SupabaseRest | None = None, db_admin: SupabaseRest | None = None):
        self.settings = settings
        self.db = db or SupabaseRest(
            settings.supabase_url, settings.anon_key, settings.http_timeout, key_name="SUPABASE_ANON_KEY"
        )
        self.db_admin = db_admin or SupabaseRest(
            settings.supabase_url, settings.service_key, settings.http_timeout, key_name="SUPABASE_SERVICE_ROLE_KEY"
        )

    def read(self):
        return self.db.ensure_configured()

    def admin(self):
        return self.db_admin.ensure_configured()


def _clients() -> Clients:
    return current_app.extensions["estratego"]

def _json_body() -> dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise BadRequest("JSON invalido")
    return body

def _tourney_id(body: dict) -> str:
    raw = body.get("tourney_id")
    tid = raw.strip() if isinstance(raw, str) else ""
    if not tid:
        raise BadRequest("Missing tourney_id")
    return tid


# -----------------------------------------------------------------------------
# Rutas del cuadro
# -----------------------------------------------------------------------------
api = Blueprint("draw", __name__)

@api.get("/health")
def health():
    return jsonify({"ok": True}), 200

@api.get("/healthz")
def healthz():
    return health()  # alias

@api.get("/tournament/<tourney_id>")
def tournament(tourney_id):
    return jsonify(BR.get_bracket(_clients().read(), tourney_id.strip())), 200

@api.get("/tournament/<tourney_id>/highs")
def tournament_highs(tourney_id):
    return jsonify(RD.tournament_highs(_clients().read(), tourney_id)), 200

@api.get("/tournaments")
def tournaments():
    out = RD.list_tournaments(
        _clients().read(),
        q=request.args.get("q"),
        limit=request.args.get("limit"),
    )
    return jsonify(out), 200

@api.post("/draw/winner")
def draw_winner():
    body = _json_body()
    db = _clients().admin()
    side = DRAW.record_winner(db, body.get("tourney_id"), body.get("match_id"), body.get("winner_id"))
    if not side.ok:
        current_app.logger.warning("Fallo al propagar ganadores: %s", side.detail)
    return jsonify({"status": "ok"}), 200

@api.post("/simulate")
def simulate():
    body = _json_body()
    tid = _tourney_id(body)
    current_app.logger.info("📦 Simulación completa para %s", tid)
    side = DRAW.simulate_full(_clients().admin(), tid)
    if not side.ok:
        current_app.logger.warning("Post-simulate pairing step failed: %s", side.detail)
    current_app.logger.info("✅ Simulación completada con éxito")
    return jsonify({"ok": True}), 200

@api.post("/simulate/round")
def simulate_round():
    body = _json_body()
    tid = _tourney_id(body)
    side = DRAW.simulate_next_round(_clients().admin(), tid)
    if not side.ok:
        current_app.logger.warning("Post-simulate pairing step failed: %s", side.detail)
    return jsonify({"ok": True, "tourney_id": tid}), 200

@api.post("/simulate/multiple")
def simulate_multiple():
    body = _json_body()
    tid = _tourney_id(body)
    runs = DRAW.parse_runs(body.get("runs"))
    year = DRAW.parse_year(body.get("year"))
    side = DRAW.simulate_multiple(_clients().admin(), tid, runs, year, reset=bool(body.get("reset")))
    if not side.ok:
        current_app.logger.warning("Pairing tras simulación múltiple falló: %s", side.detail)
    return jsonify({"ok": True, "tourney_id": tid, "runs": runs, "year": year}), 200

@api.post("/reset")
def reset():
    body = _json_body()
    tid = _tourney_id(body)
    out = DRAW.reset_draw(_clients().admin(), tid, body.get("mode"))
    return jsonify(out), 200

@api.post("/player/stats")
def player_stats():
    body = _json_body()
    out = RD.player_stats(
        _clients().admin(),
        body.get("player_id"),
        surface=body.get("surface"),
        tourney_id=body.get("tourney_id"),
    )
    return jsonify(out), 200

@api.get("/simulation/<tourney_id>/status")
def simulation_status(tourney_id):
    return jsonify(RD.simulation_status(_clients().read(), tourney_id)), 200

@api.get("/simulation/<tourney_id>/analytics")
def simulation_analytics(tourney_id):
    out = RD.simulation_analytics(_clients().read(), tourney_id, bracket_loader=BR.get_bracket)
    return jsonify(out), 200


# -----------------------------------------------------------------------------
# App / Logging
# -----------------------------------------------------------------------------
def create_app(settings: Settings | None = None, db: SupabaseRest | None = None,
               db_admin: SupabaseRest | None = None) -> Flask:
    settings = settings or Settings.from_env()
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))

    app = Flask(__name__)
    app.extensions["estratego"] = Clients(settings, db=db, db_admin=db_admin)
    app.register_blueprint(api)
    app.register_blueprint(prematch_bp)

    @app.errorhandler(ApiError)
    def handle_api_error(e: ApiError):
        if e.status >= 500:
            app.logger.error("❌ %s %s -> %s", request.method, request.path, e.message)
        return jsonify(e.to_dict()), e.status

    @app.errorhandler(Exception)
    def handle_exception(e):
        if isinstance(e, HTTPException):
            return jsonify({"error": e.description}), e.code
        app.logger.exception("Error no controlado en %s", request.path)
        return jsonify({"error": str(e)}), 500

    return app


app = create_app()

# -----------------------------------------------------------------------------
# Entrypoint
# -----------------------------------------------------------------------------
if __name__ == "__main__":
    port = int(os.environ.get("PORT", "8080"))
    app.run(host="0.0.0.0", port=port, threaded=True)
