# contract_lifecycle/tasks/lifecycle_tasks.py
from datetime import datetime
from typing import Any, Dict

from celery import shared_task

from contract_lifecycle.models import db, LifecycleJob
from contract_lifecycle.services.lifecycle import get_lifecycle


def _update(job: LifecycleJob, status: str, result: Dict[str, Any]) -> None:
    job.status = status
    job.result = result
    job.updated_at = datetime.utcnow()
    db.session.commit()


@shared_task(name="lifecycle.deploy")
def deploy_contract(job_id: int):
    """
    Deploy from the job's params (same keys as the HTTP deploy payload) and
    record the resulting contract on the LifecycleJob.
    """
    job = db.session.get(LifecycleJob, job_id)
    if not job:
        return {"error": f"LifecycleJob id {job_id} not found"}

    params = dict(job.params or {})
    _update(job, "running", {})
    lifecycle = get_lifecycle()

    try:
        if params.get("upgradeable"):
            pair = lifecycle.create_upgradeable_contract(params)
            result = {
                "proxy": pair["proxy"].to_dict(),
                "implementation": pair["implementation"].to_dict(),
            }
        else:
            result = lifecycle.deploy(params).to_dict()
    except Exception as e:
        db.session.rollback()
        _update(job, "error", {"error": str(e), "type": type(e).__name__})
        raise

    _update(job, "done", result)
    return {"job_id": job_id, "status": "done"}


@shared_task(name="lifecycle.confirm_transaction")
def confirm_transaction(job_id: int):
    """Wait for a recorded transaction's receipt and update both rows."""
    job = db.session.get(LifecycleJob, job_id)
    if not job:
        return {"error": f"LifecycleJob id {job_id} not found"}

    params = dict(job.params or {})
    tx_hash = params.get("transaction_hash")
    _update(job, "pending", {"tx_hash": tx_hash})

    try:
        outcome = get_lifecycle().wait_for_confirmation(tx_hash, params.get("timeout"), params.get("network"))
    except Exception as e:
        db.session.rollback()
        _update(job, "error", {"tx_hash": tx_hash, "error": str(e)})
        raise

    if outcome is None:
        _update(job, "pending", {"tx_hash": tx_hash, "outcome": "submitted", "timed_out": True})
        return {"tx_hash": tx_hash, "status": "pending"}

    result = outcome.to_dict() if hasattr(outcome, "to_dict") else {"tx_hash": tx_hash, "receipt": outcome}
    confirmed = getattr(outcome, "confirmed", True)
    _update(job, "done" if confirmed else "pending", result)
    return {"tx_hash": tx_hash, "status": "mined" if confirmed else "pending"}
