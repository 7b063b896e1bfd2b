# contract_lifecycle/models/transaction.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from contract_lifecycle.models import db
from contract_lifecycle.models.types import JSONBCompat

TX_PENDING = "pending"
TX_SUCCESS = "success"
TX_FAILED = "failed"
TX_REVERTED = "reverted"

TRANSACTION_STATUSES = (TX_PENDING, TX_SUCCESS, TX_FAILED, TX_REVERTED)


class ContractTransaction(db.Model):
    __tablename__ = "contract_transactions"

    id = db.Column(db.Integer, primary_key=True)
    transaction_hash = db.Column(db.String(128), nullable=False, index=True)
    contract_id = db.Column(db.Integer, db.ForeignKey("contract_versions.id"), nullable=False, index=True)
    method_name = db.Column(db.String(128), nullable=False)
    parameters = db.Column(JSONBCompat(), nullable=True)
    return_values = db.Column(JSONBCompat(), nullable=True)

    resource_used = db.Column(db.BigInteger, nullable=True)      # gas used
    resource_price = db.Column(db.BigInteger, nullable=True)     # gas price
    from_address = db.Column(db.String(128), nullable=True)
    to_address = db.Column(db.String(128), nullable=True)

    status = db.Column(db.String(20), nullable=False, default=TX_PENDING, index=True)
    error_message = db.Column(db.Text, nullable=True)
    rollback_id = db.Column(db.Integer, db.ForeignKey("contract_transactions.id"), nullable=True)
    block_number = db.Column(db.BigInteger, nullable=True)
    confirmed_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_pending(self) -> bool:
        return self.status == TX_PENDING

    @property
    def is_confirmed(self) -> bool:
        return self.confirmed_at is not None

    @property
    def has_failed(self) -> bool:
        return self.status in (TX_FAILED, TX_REVERTED)

    @property
    def total_cost(self) -> Optional[int]:
        if self.resource_used is None or self.resource_price is None:
            return None
        return self.resource_used * self.resource_price

    def invariant_violations(self) -> List[str]:
        problems = []
        if self.status not in TRANSACTION_STATUSES:
            problems.append(f"unknown status '{self.status}'")
        if self.status == TX_PENDING and self.confirmed_at is not None:
            problems.append("a pending transaction cannot be confirmed")
        if self.status != TX_PENDING and self.confirmed_at is None:
            problems.append(f"status '{self.status}' requires confirmed_at")
        if self.id is not None and self.rollback_id == self.id:
            problems.append("a transaction cannot reverse itself")
        return problems

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "transaction_hash": self.transaction_hash,
            "contract_id": self.contract_id,
            "method_name": self.method_name,
            "parameters": self.parameters or [],
            "return_values": self.return_values,
            "resource_used": self.resource_used,
            "resource_price": self.resource_price,
            "from_address": self.from_address,
            "to_address": self.to_address,
            "status": self.status,
            "error_message": self.error_message,
            "rollback_id": self.rollback_id,
            "block_number": self.block_number,
            "confirmed_at": _iso(self.confirmed_at),
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<ContractTransaction {self.id} {self.method_name} {self.status}>"


def _iso(dt):
    return dt.replace(microsecond=0).isoformat() + "Z" if dt else None
