# contract_lifecycle/services/drivers/base.py
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from contract_lifecycle.exceptions import DriverUnavailable

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class LedgerDriver(ABC):
    """
    Thin client over one ledger backend.

    Drivers only deal in primitives (addresses, hashes, dicts); registry rows
    never cross this boundary.
    """

    kind = "abstract"

    def __init__(self, network: str, config: Optional[Dict[str, Any]] = None):
        self.network = network
        self.config = dict(config or {})

    @abstractmethod
    def deploy_contract(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Deploy bytecode; returns ``{address, transaction_hash, gas_used, network}``."""

    @abstractmethod
    def call_contract(self, address: str, abi: List[Dict[str, Any]], method: str, params: List[Any]) -> Any:
        """Run a read-only call and return the decoded value."""

    @abstractmethod
    def estimate_gas(self, transaction: Dict[str, Any]) -> int:
        """Raise GasEstimationFailed when the backend cannot estimate."""

    @abstractmethod
    def get_transaction_receipt(self, transaction_hash: str) -> Optional[Dict[str, Any]]:
        """Return the receipt, or None while the transaction is not mined."""

    @abstractmethod
    def get_gas_price(self) -> int:
        pass

    @abstractmethod
    def send_transaction(self, transaction: Dict[str, Any]) -> str:
        """Submit a state-changing call; returns the transaction hash."""

    @abstractmethod
    def get_balance(self, address: str) -> str:
        pass

    @abstractmethod
    def is_available(self) -> bool:
        pass

    def get_driver_info(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "network": self.network,
            "available": self.is_available(),
            "driver": type(self).__name__,
        }

    def ensure_available(self) -> None:
        if not self.is_available():
            raise DriverUnavailable(f"Ledger driver '{self.kind}' for network '{self.network}' is not available")
