from flask import Blueprint, jsonify, request

from contract_lifecycle.exceptions import ConfigurationError
from contract_lifecycle.services.lifecycle import get_lifecycle

bp = Blueprint("health", __name__)

@bp.get("/healthz")
def healthz():
    """
    Healthcheck
    ---
    tags:
      - Health
    responses:
      200:
        description: OK
    """
    return jsonify({"ok": True}), 200

@bp.get("/healthz/ledger")
def ledger():
    """
    Ledger driver status for a network
    ---
    tags:
      - Health
    parameters:
      - in: query
        name: network
        type: string
        required: false
    responses:
      200: {description: Driver reachable}
      404: {description: Unknown network}
      503: {description: Driver unavailable}
    """
    try:
        info = get_lifecycle().driver(request.args.get("network")).get_driver_info()
    except ConfigurationError as e:
        return jsonify({"ok": False, "error": str(e)}), 404
    return jsonify({"ok": info["available"], "driver": info}), 200 if info["available"] else 503
