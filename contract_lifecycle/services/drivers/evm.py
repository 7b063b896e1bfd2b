# contract_lifecycle/services/drivers/evm.py
import logging
from typing import Any, Dict, List, Optional

from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import ContractCustomError, TransactionNotFound, Web3Exception

from contract_lifecycle.exceptions import ConfigurationError, GasEstimationFailed
from contract_lifecycle.services.drivers.base import LedgerDriver

logger = logging.getLogger(__name__)


# PoA: web3 v7 ships ExtraDataToPOAMiddleware, v6 geth_poa_middleware
def _poa_middleware():
    try:
        from web3.middleware.proof_of_authority import ExtraDataToPOAMiddleware as poa_mw
        return poa_mw
    except ImportError:
        try:
            from web3.middleware.geth_poa import geth_poa_middleware as poa_mw
            return poa_mw
        except ImportError:
            return None


def _to_hex(x):
    if isinstance(x, (bytes, HexBytes)):
        return "0x" + bytes(x).hex()
    return x


def _clean_receipt(receipt: Optional[dict]) -> Optional[dict]:
    if not receipt:
        return None
    cleaned = {
        "transactionHash": _to_hex(receipt.get("transactionHash")),
        "blockHash": _to_hex(receipt.get("blockHash")),
        "blockNumber": receipt.get("blockNumber"),
        "transactionIndex": receipt.get("transactionIndex"),
        "cumulativeGasUsed": receipt.get("cumulativeGasUsed"),
        "effectiveGasPrice": receipt.get("effectiveGasPrice"),
        "gasUsed": receipt.get("gasUsed"),
        "status": bool(receipt.get("status", 1)),
        "contractAddress": receipt.get("contractAddress"),
        "from": receipt.get("from"),
        "to": receipt.get("to"),
    }
    return {k: v for k, v in cleaned.items() if v is not None}


class EvmDriver(LedgerDriver):
    """EVM chain over JSON-RPC (web3.py)."""

    kind = "evm"

    def __init__(self, network: str, config: Optional[Dict[str, Any]] = None, w3: Optional[Web3] = None):
        super().__init__(network, config)
        self.private_key = self.config.get("private_key")
        self.default_account = self.config.get("default_account")
        self.receipt_timeout = int(self.config.get("receipt_timeout", 300))
        self.max_priority_fee = int(self.config.get("max_priority_fee", 2000000000))
        self.max_fee_per_gas = int(self.config.get("max_fee_per_gas", 100000000000))
        self.w3 = w3 or self._make_w3()

        if self.private_key:
            self.account = self.w3.eth.account.from_key(self.private_key)
            self.default_account = self.account.address
        else:
            self.account = None

    def _make_w3(self) -> Web3:
        uri = self.config.get("rpc_url")
        if not uri:
            raise ConfigurationError(f"rpc_url is not configured for network '{self.network}'")

        w3 = Web3(Web3.HTTPProvider(uri, request_kwargs={"timeout": int(self.config.get("timeout", 10))}))

        if self.config.get("use_poa"):
            poa_mw = _poa_middleware()
            if poa_mw:
                w3.middleware_onion.inject(poa_mw, layer=0)
        return w3

    # -- helpers -----------------------------------------------------------

    def _sender(self, tx: Dict[str, Any]) -> Optional[str]:
        sender = tx.get("from") or self.default_account
        return Web3.to_checksum_address(sender) if sender else None

    def _fee_params(self) -> Dict[str, int]:
        # EIP-1559 when the chain exposes baseFeePerGas, legacy otherwise
        latest = self.w3.eth.get_block("latest")
        base_fee = latest.get("baseFeePerGas")
        if base_fee is not None:
            max_fee = min(int(base_fee * 2) + self.max_priority_fee, self.max_fee_per_gas)
            return {"maxFeePerGas": max_fee, "maxPriorityFeePerGas": self.max_priority_fee}
        return {"gasPrice": self.w3.eth.gas_price}

    def _function(self, tx: Dict[str, Any]):
        contract = self.w3.eth.contract(address=Web3.to_checksum_address(tx["to"]), abi=tx.get("abi") or [])
        return contract.get_function_by_name(tx["method"])(*(tx.get("args") or []))

    def _submit(self, tx_params: Dict[str, Any]) -> str:
        if self.account is not None:
            tx_params.setdefault("nonce", self.w3.eth.get_transaction_count(self.account.address, "pending"))
            tx_params.setdefault("chainId", int(self.config.get("chain_id") or self.w3.eth.chain_id))
            signed = self.account.sign_transaction(tx_params)
            raw = getattr(signed, "raw_transaction", None) or getattr(signed, "rawTransaction")
            tx_hash = self.w3.eth.send_raw_transaction(raw)
        else:
            # node-managed account (local dev chains)
            tx_hash = self.w3.eth.send_transaction(tx_params)
        return _to_hex(tx_hash)

    # -- driver interface --------------------------------------------------

    def deploy_contract(self, params: Dict[str, Any]) -> Dict[str, Any]:
        sender = self._sender(params)
        if not sender:
            raise ValueError("From address is required for contract deployment")

        factory = self.w3.eth.contract(abi=params.get("abi") or [], bytecode=params["bytecode"])
        tx_params = {"from": sender, "value": int(params.get("value") or 0)}
        if params.get("gas_limit"):
            tx_params["gas"] = int(params["gas_limit"])
        tx_params.update(self._fee_params())

        tx = factory.constructor(*(params.get("constructor_params") or [])).build_transaction(tx_params)
        tx_hash = self._submit(tx)
        logger.info("EVM deploy submitted", extra={"context": {"network": self.network, "hash": tx_hash}})

        receipt = _clean_receipt(dict(self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)))
        if not receipt.get("status", True):
            raise RuntimeError(f"deployment transaction {tx_hash} reverted")
        return {
            "address": receipt.get("contractAddress"),
            "transaction_hash": tx_hash,
            "gas_used": receipt.get("gasUsed"),
            "network": self.network,
        }

    def call_contract(self, address: str, abi: List[Dict[str, Any]], method: str, params: List[Any]) -> Any:
        fn = self._function({"to": address, "abi": abi, "method": method, "args": params})
        return fn.call()

    def estimate_gas(self, transaction: Dict[str, Any]) -> int:
        try:
            if transaction.get("method"):
                fn = self._function(transaction)
                return int(fn.estimate_gas({"from": self._sender(transaction), "value": int(transaction.get("value") or 0)}))
            return int(self.w3.eth.estimate_gas({
                "from": self._sender(transaction),
                "data": transaction.get("data"),
            }))
        except ContractCustomError as e:
            raise GasEstimationFailed(f"Revert (custom error) while estimating gas: {e}") from e
        except (Web3Exception, ValueError) as e:
            # web3 v7+ reverts (ContractLogicError, Web3RPCError) are not ValueErrors
            raise GasEstimationFailed(f"Could not estimate gas: {e}") from e

    def get_transaction_receipt(self, transaction_hash: str) -> Optional[Dict[str, Any]]:
        try:
            receipt = self.w3.eth.get_transaction_receipt(transaction_hash)
        except TransactionNotFound:
            return None
        return _clean_receipt(dict(receipt))

    def get_gas_price(self) -> int:
        return int(self.w3.eth.gas_price)

    def send_transaction(self, transaction: Dict[str, Any]) -> str:
        tx_params = {"from": self._sender(transaction), "value": int(transaction.get("value") or 0)}
        if transaction.get("gas"):
            tx_params["gas"] = int(transaction["gas"])
        tx_params.update(self._fee_params())

        if transaction.get("method"):
            tx = self._function(transaction).build_transaction(tx_params)
        else:
            tx = dict(tx_params, to=Web3.to_checksum_address(transaction["to"]), data=transaction.get("data") or "0x")
        return self._submit(tx)

    def get_balance(self, address: str) -> str:
        return str(self.w3.eth.get_balance(Web3.to_checksum_address(address)))

    def is_available(self) -> bool:
        try:
            return bool(self.w3.is_connected())
        except Exception as e:
            logger.warning("EVM node not reachable: %s", e)
            return False

    def get_driver_info(self) -> Dict[str, Any]:
        info = super().get_driver_info()
        info.update({
            "rpc_url": self.config.get("rpc_url"),
            "chain_id": self.config.get("chain_id"),
            "default_account": self.default_account,
        })
        if info["available"]:
            info["block_number"] = self.w3.eth.block_number
        return info
