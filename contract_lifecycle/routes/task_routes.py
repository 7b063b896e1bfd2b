from flask import Blueprint, jsonify
from contract_lifecycle.models import db
from contract_lifecycle.models.job import LifecycleJob

bp = Blueprint("tasks", __name__)

@bp.route("/", methods=["GET"])
def index():
    """
    Root
    ---
    tags:
      - Tasks
    responses:
      200:
        description: OK
    """
    return jsonify({"message": "Contract lifecycle OK. See /api/contracts and /jobs/<id>"}), 200

@bp.route("/jobs/<int:job_id>", methods=["GET"])
def job_status(job_id: int):
    """
    Status of a background deploy/confirm job
    ---
    tags:
      - Tasks
    parameters:
      - in: path
        name: job_id
        required: true
        type: integer
    responses:
      200: {description: OK}
      404: {description: Not found}
    """
    job = db.session.get(LifecycleJob, job_id)
    if not job:
        return jsonify({"error": "job not found"}), 404
    return jsonify({
        "job_id": job.id,
        "task_id": job.task_id,
        "kind": job.kind,
        "status": job.status,
        "result": job.result
    }), 200
