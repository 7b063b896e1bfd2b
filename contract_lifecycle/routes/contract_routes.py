# contract_lifecycle/routes/contract_routes.py
from typing import Any, Dict

import requests
from flask import Blueprint, jsonify, request

from contract_lifecycle.exceptions import ContractLifecycleError, PartialUpgradeError
from contract_lifecycle.models import db, LifecycleJob
from contract_lifecycle.services import registry
from contract_lifecycle.services.lifecycle import get_lifecycle

bp = Blueprint("contracts", __name__)

# migrations are never taken from the body, only looked up by name in settings
UPGRADE_OPTIONS = (
    "source_file", "source_code", "artifact", "constructor_params",
    "from", "gas_limit", "wait", "timeout", "metadata",
)


# --- Local helpers ---

def _as_bool(v) -> bool:
    return str(v).lower() in ("1", "true", "yes", "on")


def _body() -> Dict[str, Any]:
    return request.get_json(silent=True) or {}


def _outcome(value):
    """Read values pass through; write outcomes expose their variant."""
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


def _enqueue(kind: str, params: Dict[str, Any], task):
    job = LifecycleJob(kind=kind, status="queued", params=params)
    db.session.add(job)
    db.session.commit()

    async_res = task.delay(job.id)
    job.task_id = async_res.id
    db.session.commit()
    return jsonify({"ok": True, "job_id": job.id, "task_id": job.task_id, "status": job.status}), 202


@bp.errorhandler(ContractLifecycleError)
def _lifecycle_error(e: ContractLifecycleError):
    body = {"ok": False, "error": str(e), "type": type(e).__name__}
    if isinstance(e, PartialUpgradeError):
        body["step"] = e.step
        body["transaction_hash"] = e.transaction_hash
        body["old_contract"] = e.old_contract.to_dict() if e.old_contract is not None else None
        body["new_contract"] = e.new_contract.to_dict() if e.new_contract is not None else None
    return jsonify(body), e.status_code


@bp.errorhandler(requests.RequestException)
def _explorer_error(e):
    return jsonify({"ok": False, "error": f"explorer request failed: {e}", "type": "ExplorerError"}), 502


# --- Routes ---

@bp.route("", methods=["GET"])
def list_contracts():
    """
    Contracts: list registry records
    ---
    tags: [Contracts]
    parameters:
      - {in: query, name: name, type: string, required: false}
      - {in: query, name: network, type: string, required: false}
      - {in: query, name: status, type: string, required: false}
      - {in: query, name: limit, type: integer, required: false}
    responses:
      200: {description: OK}
    """
    rows = registry.list_contracts(
        name=request.args.get("name"),
        network=request.args.get("network"),
        status=request.args.get("status"),
        limit=request.args.get("limit", type=int) or 100,
    )
    return jsonify({"ok": True, "contracts": [r.to_dict() for r in rows]}), 200


@bp.route("/deploy", methods=["POST"])
def deploy():
    """
    Contracts: deploy (or preview with preview=true, enqueue with async=true)
    ---
    tags: [Contracts]
    consumes: [application/json]
    parameters:
      - in: body
        name: payload
        required: true
        schema:
          type: object
          required: [name]
          properties:
            name: {type: string, example: "Token"}
            version: {type: string, example: "1.0.0"}
            network: {type: string, example: "local"}
            constructor_params: {type: array, items: {}}
            from: {type: string}
            gas_limit: {type: integer}
            source_file: {type: string}
            source_code: {type: string}
            artifact: {type: object}
            upgradeable: {type: boolean}
            preview: {type: boolean}
            async: {type: boolean}
    responses:
      201: {description: Deployed}
      200: {description: Preview}
      202: {description: Enqueued}
      404: {description: Artifact not found}
      502: {description: Deployment failed}
    """
    data = _body()
    if not data.get("name"):
        return jsonify({"ok": False, "error": "Missing 'name'"}), 400

    lifecycle = get_lifecycle()
    if _as_bool(data.get("preview", False)):
        return jsonify({"ok": True, "preview": lifecycle.preview_deployment(data["name"], data)}), 200

    if _as_bool(data.get("async", False)):
        from contract_lifecycle.tasks.lifecycle_tasks import deploy_contract
        return _enqueue("deploy", data, deploy_contract)

    if _as_bool(data.get("upgradeable", False)):
        pair = lifecycle.create_upgradeable_contract(data)
        return jsonify({
            "ok": True,
            "proxy": pair["proxy"].to_dict(),
            "implementation": pair["implementation"].to_dict(),
        }), 201

    deployment = lifecycle.deploy(data)
    return jsonify(dict(deployment.to_dict(), ok=True)), 201


@bp.route("/preview", methods=["POST"])
def preview():
    """
    Contracts: deployment dry run (no registry write, no submission)
    ---
    tags: [Contracts]
    consumes: [application/json]
    parameters:
      - in: body
        name: payload
        required: true
        schema:
          type: object
          required: [name]
    responses:
      200: {description: OK}
    """
    data = _body()
    if not data.get("name"):
        return jsonify({"ok": False, "error": "Missing 'name'"}), 400
    return jsonify({"ok": True, "preview": get_lifecycle().preview_deployment(data["name"], data)}), 200


@bp.route("/reconcile", methods=["GET"])
def reconcile():
    """
    Contracts: proxies whose current implementation looks inconsistent
    ---
    tags: [Contracts]
    parameters:
      - {in: query, name: network, type: string, required: false}
    responses:
      200: {description: OK}
    """
    issues = get_lifecycle().reconcile(request.args.get("network"))
    return jsonify({"ok": not issues, "issues": issues}), 200


@bp.route("/<identifier>", methods=["GET"])
def status(identifier: str):
    """
    Contracts: status of one record (id, address, Name or Name@version)
    ---
    tags: [Contracts]
    parameters:
      - {in: path, name: identifier, type: string, required: true}
      - {in: query, name: network, type: string, required: false}
    responses:
      200: {description: OK}
      404: {description: Not found}
    """
    info = get_lifecycle().status(identifier, request.args.get("network"))
    return jsonify(dict(info, ok=True)), 200


@bp.route("/<identifier>/transactions", methods=["GET"])
def transactions(identifier: str):
    """
    Contracts: recent transactions
    ---
    tags: [Contracts]
    parameters:
      - {in: path, name: identifier, type: string, required: true}
      - {in: query, name: limit, type: integer, required: false}
    responses:
      200: {description: OK}
    """
    rec = registry.resolve_contract(identifier, request.args.get("network"))
    rows = registry.transactions_for(rec, request.args.get("limit", type=int) or 10)
    return jsonify({"ok": True, "contract": rec.full_identifier, "transactions": [t.to_dict() for t in rows]}), 200


@bp.route("/<identifier>/call", methods=["POST"])
def call(identifier: str):
    """
    Contracts: call a method (read returns the value, write returns the outcome)
    ---
    tags: [Contracts]
    consumes: [application/json]
    parameters:
      - {in: path, name: identifier, type: string, required: true}
      - in: body
        name: payload
        required: true
        schema:
          type: object
          required: [method]
          properties:
            method: {type: string, example: "balanceOf"}
            params: {type: array, items: {}}
            from: {type: string}
            value: {type: integer}
            gas_limit: {type: integer}
            wait: {type: boolean}
            timeout: {type: number}
    responses:
      200: {description: Read result or confirmed outcome}
      202: {description: Submitted, not confirmed}
    """
    data = _body()
    if not data.get("method"):
        return jsonify({"ok": False, "error": "Missing 'method'"}), 400

    options = {k: data[k] for k in ("from", "value", "gas_limit", "timeout") if data.get(k) is not None}
    options["wait"] = _as_bool(data.get("wait", False))
    result = get_lifecycle().call(identifier, data["method"], data.get("params"), options, data.get("network"))

    if hasattr(result, "outcome"):
        code = 200 if result.confirmed else 202
        return jsonify({"ok": True, "method": data["method"], "result": _outcome(result)}), code
    return jsonify({"ok": True, "method": data["method"], "result": result}), 200


@bp.route("/<identifier>/estimate-gas", methods=["POST"])
def estimate_gas(identifier: str):
    """
    Contracts: gas estimate for a method call
    ---
    tags: [Contracts]
    consumes: [application/json]
    parameters:
      - {in: path, name: identifier, type: string, required: true}
      - in: body
        name: payload
        required: true
        schema: {type: object, required: [method]}
    responses:
      200: {description: OK}
    """
    data = _body()
    if not data.get("method"):
        return jsonify({"ok": False, "error": "Missing 'method'"}), 400
    options = {k: data[k] for k in ("from", "value") if data.get(k) is not None}
    estimate = get_lifecycle().estimate_gas(identifier, data["method"], data.get("params"), options, data.get("network"))
    return jsonify({"ok": True, "estimate": estimate}), 200


@bp.route("/<identifier>/upgrade", methods=["POST"])
def upgrade(identifier: str):
    """
    Contracts: deploy a new implementation and repoint the proxy
    ---
    tags: [Contracts]
    consumes: [application/json]
    parameters:
      - {in: path, name: identifier, type: string, required: true}
      - in: body
        name: payload
        required: true
        schema:
          type: object
          required: [version]
          properties:
            version: {type: string, example: "1.0.1"}
            source_file: {type: string}
            artifact: {type: object}
            migration: {type: string, example: "token_v101", description: "name from CONTRACT_MIGRATIONS"}
    responses:
      200: {description: Upgraded}
      400: {description: Missing version or unknown migration}
      409: {description: Not upgradeable / no proxy}
      500: {description: Partial upgrade}
    """
    data = _body()
    if not data.get("version"):
        return jsonify({"ok": False, "error": "Missing 'version'"}), 400

    lifecycle = get_lifecycle()
    options = {k: data[k] for k in UPGRADE_OPTIONS if data.get(k) is not None}
    if "wait" in options:
        options["wait"] = _as_bool(options["wait"])
    if data.get("migration"):
        reference = lifecycle.settings.migrations.get(str(data["migration"]))
        if reference is None:
            return jsonify({
                "ok": False,
                "error": f"Unknown migration '{data['migration']}'",
                "type": "UnknownMigration",
            }), 400
        options["migration"] = reference

    result = lifecycle.upgrade(identifier, data["version"], options, data.get("network"))
    return jsonify({
        "ok": True,
        "old_contract": result["old_contract"].to_dict(),
        "new_contract": result["new_contract"].to_dict(),
        "proxy": result["proxy"].to_dict(),
        "transaction": _outcome(result["transaction"]),
    }), 200


@bp.route("/<identifier>/rollback", methods=["POST"])
def rollback(identifier: str):
    """
    Contracts: repoint the proxy to an older implementation
    ---
    tags: [Contracts]
    consumes: [application/json]
    parameters:
      - {in: path, name: identifier, type: string, required: true}
      - in: body
        name: payload
        required: false
        schema:
          type: object
          properties:
            version: {type: string, example: "1.0.0"}
    responses:
      200: {description: Rolled back}
      404: {description: No previous / target version}
    """
    data = _body()
    result = get_lifecycle().rollback(identifier, data.get("version"), data, data.get("network"))
    return jsonify({
        "ok": True,
        "restored_contract": result["restored_contract"].to_dict(),
        "rolled_back_from": result["rolled_back_from"].to_dict(),
        "rolled_back_to": result["rolled_back_to"],
        "transaction": _outcome(result["transaction"]),
    }), 200


@bp.route("/<identifier>/verify", methods=["POST"])
def verify(identifier: str):
    """
    Contracts: submit source verification to the network's explorer
    ---
    tags: [Contracts]
    parameters:
      - {in: path, name: identifier, type: string, required: true}
    responses:
      200: {description: OK}
      502: {description: Explorer unreachable}
    """
    result = get_lifecycle().verify(identifier, request.args.get("network"))
    return jsonify({"ok": result["status"] != "failed", "verification": result}), 200


@bp.route("/transactions/<tx_hash>/wait", methods=["POST"])
def wait_transaction(tx_hash: str):
    """
    Contracts: wait for a transaction receipt (async=true hands it to a worker)
    ---
    tags: [Contracts]
    parameters:
      - {in: path, name: tx_hash, type: string, required: true}
      - in: body
        name: payload
        required: false
        schema:
          type: object
          properties:
            timeout: {type: number, example: 30}
            async: {type: boolean}
    responses:
      200: {description: Confirmed}
      202: {description: Still pending / enqueued}
    """
    data = _body()
    if _as_bool(data.get("async", False)):
        from contract_lifecycle.tasks.lifecycle_tasks import confirm_transaction
        return _enqueue("confirm", dict(data, transaction_hash=tx_hash), confirm_transaction)

    result = get_lifecycle().wait_for_confirmation(tx_hash, data.get("timeout"), data.get("network"))
    if result is None:
        return jsonify({"ok": True, "outcome": "submitted", "transaction_hash": tx_hash, "timed_out": True}), 202
    if isinstance(result, dict):
        # bare hash with no registry row: raw receipt
        return jsonify({"ok": True, "outcome": "confirmed", "receipt": result}), 200
    return jsonify(dict(result.to_dict(), ok=True)), 200 if result.confirmed else 202
