# apps_script/prematch_bp.py
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from services import prematch as PM
from services.errors import BadRequest

bp = Blueprint("prematch", __name__)

@bp.route("/prematch", methods=["POST"])
def prematch():
    """
    Proxy al backend de scoring (POST {API_BASE_URL}/matchup).
    El cuerpo viaja tal cual; se devuelve el JSON y el status del backend.
    """
    payload = request.get_json(silent=True)
    if payload is None:
        raise BadRequest("Invalid JSON payload")

    clients = current_app.extensions["estratego"]
    current_app.logger.info("🔁 Prematch: enviando payload = %s", payload)
    data, status = PM.forward_matchup(
        clients.settings.api_base_url, payload, timeout=clients.settings.http_timeout
    )
    return jsonify(data), status

@bp.get("/prematch/weights")
def prematch_weights_get():
    db = current_app.extensions["estratego"].admin()
    return jsonify(PM.get_weights(db)), 200

@bp.post("/prematch/weights")
def prematch_weights_post():
    db = current_app.extensions["estratego"].admin()
    return jsonify(PM.save_weights(db, request.get_json(silent=True))), 200

# Alias por compatibilidad si en main.py importas 'prematch_bp'
prematch_bp = bp
