from datetime import datetime
from contract_lifecycle.models import db


class LifecycleJob(db.Model):
    __tablename__ = "lifecycle_jobs"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(db.String(50), index=True, unique=True, nullable=True)
    kind = db.Column(db.String(32), nullable=False, default="deploy")   # deploy|confirm
    status = db.Column(db.String(20), default="queued", index=True)     # queued|running|pending|done|error
    params = db.Column(db.JSON, nullable=True)
    result = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
