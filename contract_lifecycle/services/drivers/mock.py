# contract_lifecycle/services/drivers/mock.py
"""
In-process ledger used for development networks and the test suite.

Everything is deterministic: addresses and hashes come from a counter, gas
estimates from the payload size, so two identical dry runs agree. Proxy
contracts deployed here honour ``upgradeTo(address)`` and
``implementation()`` so repoints can be observed "on chain".
"""
import itertools
import logging
from typing import Any, Dict, List, Optional

from web3 import Web3

from contract_lifecycle.exceptions import GasEstimationFailed
from contract_lifecycle.services.drivers.base import LedgerDriver, ZERO_ADDRESS

logger = logging.getLogger(__name__)

DEFAULT_CALL_RESULTS = {
    "balanceOf": "1000000000000000000",
    "totalSupply": "1000000000000000000000",
    "name": "Mock Token",
    "symbol": "MOCK",
    "decimals": 18,
}


class MockDriver(LedgerDriver):
    kind = "mock"

    def __init__(self, network: str = "mock", config: Optional[Dict[str, Any]] = None):
        super().__init__(network, config)
        self.gas_price = int(self.config.get("gas_price", 1000000000))  # 1 gwei
        self.available = True
        self.withhold_receipts = False
        self.fail_on = set()            # {"deploy", "send", "estimate", "call"}
        self.revert_methods = set()
        self.call_results: Dict[str, Any] = {}

        self.contracts: Dict[str, Dict[str, Any]] = {}
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self.sent: List[Dict[str, Any]] = []
        self._counter = itertools.count(1)
        self._block = 1000000

    # -- helpers -----------------------------------------------------------

    def _next_hash(self, label: str) -> str:
        n = next(self._counter)
        return "0x" + bytes(Web3.keccak(text=f"{self.network}:{label}:{n}")).hex()

    def _next_address(self) -> str:
        n = next(self._counter)
        digest = bytes(Web3.keccak(text=f"{self.network}:address:{n}"))
        return Web3.to_checksum_address("0x" + digest[-20:].hex())

    def _mine(self, tx_hash: str, receipt: Dict[str, Any]) -> None:
        self._block += 1
        receipt.setdefault("transactionHash", tx_hash)
        receipt["blockNumber"] = self._block
        receipt.setdefault("effectiveGasPrice", self.gas_price)
        self.receipts[tx_hash] = receipt

    @staticmethod
    def _payload_size(data) -> int:
        if not data:
            return 0
        text = data[2:] if isinstance(data, str) and data.startswith("0x") else data
        return len(text) // 2 if isinstance(text, str) else len(text)

    def _gas_for(self, transaction: Dict[str, Any]) -> int:
        size = self._payload_size(transaction.get("data"))
        args = transaction.get("args") or []
        return 21000 + 16 * size + 5000 * len(args)

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise RuntimeError(f"mock {operation} failure")

    # -- driver interface --------------------------------------------------

    def deploy_contract(self, params: Dict[str, Any]) -> Dict[str, Any]:
        self._check("deploy")
        address = self._next_address()
        tx_hash = self._next_hash("deploy")
        gas_used = self._gas_for({"data": params.get("bytecode"), "args": params.get("constructor_params")})

        args = list(params.get("constructor_params") or [])
        self.contracts[address] = {
            "abi": params.get("abi") or [],
            "bytecode": params.get("bytecode"),
            "constructor_params": args,
            "implementation": args[0] if params.get("proxy") and args else None,
        }
        self._mine(tx_hash, {
            "contractAddress": address,
            "gasUsed": gas_used,
            "status": True,
            "from": params.get("from"),
            "to": None,
        })
        logger.info("mock deploy", extra={"context": {"address": address, "hash": tx_hash}})
        return {
            "address": address,
            "transaction_hash": tx_hash,
            "gas_used": gas_used,
            "network": self.network,
        }

    def call_contract(self, address, abi, method, params=None):
        self._check("call")
        if method in self.call_results:
            return self.call_results[method]
        state = self.contracts.get(address) or {}
        if method == "implementation" and state.get("implementation"):
            return state["implementation"]
        return DEFAULT_CALL_RESULTS.get(method, True)

    def estimate_gas(self, transaction: Dict[str, Any]) -> int:
        if "estimate" in self.fail_on:
            raise GasEstimationFailed("mock estimate failure")
        return self._gas_for(transaction)

    def get_transaction_receipt(self, transaction_hash: str) -> Optional[Dict[str, Any]]:
        if self.withhold_receipts:
            return None
        receipt = self.receipts.get(transaction_hash)
        return dict(receipt) if receipt else None

    def get_gas_price(self) -> int:
        return self.gas_price

    def send_transaction(self, transaction: Dict[str, Any]) -> str:
        self._check("send")
        tx_hash = self._next_hash("tx")
        method = transaction.get("method")
        args = list(transaction.get("args") or [])
        self.sent.append(dict(transaction, hash=tx_hash))

        target = self.contracts.get(transaction.get("to"))
        if target is not None and method == "upgradeTo" and args:
            target["implementation"] = args[0]

        self._mine(tx_hash, {
            "gasUsed": min(int(transaction.get("gas") or 21000), self._gas_for(transaction)),
            "status": method not in self.revert_methods,
            "from": transaction.get("from") or ZERO_ADDRESS,
            "to": transaction.get("to"),
            "contractAddress": None,
        })
        return tx_hash

    def get_balance(self, address: str) -> str:
        return "1000000000000000000"

    def is_available(self) -> bool:
        return self.available

    def get_driver_info(self) -> Dict[str, Any]:
        info = super().get_driver_info()
        info.update({"contracts": len(self.contracts), "transactions": len(self.receipts)})
        return info

    def implementation_of(self, proxy_address: str) -> Optional[str]:
        return (self.contracts.get(proxy_address) or {}).get("implementation")
