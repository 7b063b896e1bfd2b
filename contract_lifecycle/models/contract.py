# contract_lifecycle/models/contract.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from contract_lifecycle.models import db
from contract_lifecycle.models.types import JSONBCompat

STATUS_PENDING = "pending"
STATUS_DEPLOYED = "deployed"
STATUS_DEPRECATED = "deprecated"
STATUS_FAILED = "failed"
STATUS_UPGRADED = "upgraded"

CONTRACT_STATUSES = (
    STATUS_PENDING,
    STATUS_DEPLOYED,
    STATUS_DEPRECATED,
    STATUS_FAILED,
    STATUS_UPGRADED,
)

# statuses that require an on-chain address
ADDRESSED_STATUSES = (STATUS_DEPLOYED, STATUS_UPGRADED, STATUS_DEPRECATED)


class ContractVersion(db.Model):
    __tablename__ = "contract_versions"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    version = db.Column(db.String(64), nullable=False)
    kind = db.Column(db.String(32), nullable=False, default="evm")    # evm|mock
    address = db.Column(db.String(128), nullable=True)
    network = db.Column(db.String(32), nullable=False, default="local")
    deployer_address = db.Column(db.String(128), nullable=True)

    abi = db.Column(JSONBCompat(), nullable=True)
    bytecode_hash = db.Column(db.String(80), nullable=True)
    constructor_params = db.Column(JSONBCompat(), nullable=True)

    deployed_at = db.Column(db.DateTime, nullable=True)
    transaction_hash = db.Column(db.String(128), nullable=True)
    resource_used = db.Column(db.BigInteger, nullable=True)          # gas used

    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING)
    is_upgradeable = db.Column(db.Boolean, nullable=False, default=False)
    proxy_contract_id = db.Column(db.Integer, db.ForeignKey("contract_versions.id"), nullable=True)
    implementation_of = db.Column(db.Integer, db.ForeignKey("contract_versions.id"), nullable=True)
    # "metadata" is reserved on declarative models
    meta = db.Column("metadata", JSONBCompat(), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    transactions = db.relationship(
        "ContractTransaction",
        backref="contract",
        lazy="dynamic",
        order_by="ContractTransaction.id",
    )

    __table_args__ = (
        db.Index("ix_contract_versions_name_network", "name", "network"),
        db.Index("ix_contract_versions_address", "address"),
        db.Index("ix_contract_versions_status", "status"),
    )

    @property
    def full_identifier(self) -> str:
        return f"{self.name}@{self.version}"

    @property
    def is_proxy(self) -> bool:
        return self.implementation_of is not None

    @property
    def parsed_abi(self) -> Optional[List[Dict[str, Any]]]:
        return self.abi if isinstance(self.abi, list) else None

    def invariant_violations(self) -> List[str]:
        """Return the invariants this row would break if committed as is."""
        problems = []
        if self.status not in CONTRACT_STATUSES:
            problems.append(f"unknown status '{self.status}'")
        if self.status in ADDRESSED_STATUSES and not self.address:
            problems.append(f"status '{self.status}' requires an address")
        if self.status not in ADDRESSED_STATUSES and self.address:
            problems.append(f"status '{self.status}' must not carry an address")
        if self.id is not None and self.proxy_contract_id == self.id:
            problems.append("a contract cannot be its own proxy")
        if self.id is not None and self.implementation_of == self.id:
            problems.append("a proxy cannot point at itself")
        return problems

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "kind": self.kind,
            "address": self.address,
            "network": self.network,
            "deployer_address": self.deployer_address,
            "bytecode_hash": self.bytecode_hash,
            "constructor_params": self.constructor_params or [],
            "deployed_at": _iso(self.deployed_at),
            "transaction_hash": self.transaction_hash,
            "resource_used": self.resource_used,
            "status": self.status,
            "is_upgradeable": bool(self.is_upgradeable),
            "proxy_contract_id": self.proxy_contract_id,
            "implementation_of": self.implementation_of,
            "metadata": self.meta or {},
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<ContractVersion {self.id} {self.full_identifier} {self.status}>"


def _iso(dt):
    return dt.replace(microsecond=0).isoformat() + "Z" if dt else None
