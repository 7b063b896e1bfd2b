# contract_lifecycle/services/results.py
"""
Outcomes of state-changing calls.

A write either comes back as ``Submitted`` (hash known, no receipt yet,
possibly because the confirmation wait timed out) or as ``Confirmed``
(receipt in hand, success or failure). Callers branch on the type, never on
the shape of a dict.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

OUTCOME_SUBMITTED = "submitted"
OUTCOME_CONFIRMED_SUCCESS = "confirmed_success"
OUTCOME_CONFIRMED_FAILURE = "confirmed_failure"


@dataclass
class Submitted:
    transaction_hash: str
    transaction: Any = None          # ContractTransaction row, still pending
    timed_out: bool = False

    @property
    def outcome(self) -> str:
        return OUTCOME_SUBMITTED

    @property
    def confirmed(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome,
            "transaction_hash": self.transaction_hash,
            "timed_out": self.timed_out,
            "transaction": self.transaction.to_dict() if self.transaction is not None else None,
        }


@dataclass
class Confirmed:
    transaction_hash: str
    receipt: Dict[str, Any] = field(default_factory=dict)
    transaction: Any = None
    success: bool = True
    error: Optional[str] = None

    @property
    def outcome(self) -> str:
        return OUTCOME_CONFIRMED_SUCCESS if self.success else OUTCOME_CONFIRMED_FAILURE

    @property
    def confirmed(self) -> bool:
        return True

    @property
    def block_number(self) -> Optional[int]:
        return self.receipt.get("blockNumber")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome,
            "transaction_hash": self.transaction_hash,
            "success": self.success,
            "error": self.error,
            "receipt": self.receipt,
            "transaction": self.transaction.to_dict() if self.transaction is not None else None,
        }


@dataclass
class Deployment:
    contract: Any                    # ContractVersion row
    transaction_hash: str
    transaction: Any = None          # the constructor ContractTransaction

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contract": self.contract.to_dict(),
            "transaction_hash": self.transaction_hash,
            "transaction": self.transaction.to_dict() if self.transaction is not None else None,
        }
