# contract_lifecycle/services/interactor.py
import logging
import threading
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from contract_lifecycle.exceptions import ContractLifecycleError, MethodNotFound, SubmissionFailed
from contract_lifecycle.models.contract import ContractVersion
from contract_lifecycle.models.transaction import TX_FAILED, TX_SUCCESS, ContractTransaction
from contract_lifecycle.services import abi as abi_helpers
from contract_lifecycle.services import registry
from contract_lifecycle.services.drivers.base import LedgerDriver
from contract_lifecycle.services.gas import estimate_gas_limit, estimated_cost
from contract_lifecycle.services.results import Confirmed, Submitted
from contract_lifecycle.services.settings import LifecycleSettings

logger = logging.getLogger(__name__)

REVERTED_MESSAGE = "transaction reverted"


class Interactor:
    """Method calls against a deployed ContractVersion: reads go straight to the driver, writes are recorded."""

    def __init__(self, driver: LedgerDriver, settings: LifecycleSettings):
        self.driver = driver
        self.settings = settings

    # ---------------------------
    # Method resolution
    # ---------------------------

    def resolve_method(self, contract: ContractVersion, method_name: str, params: List[Any]) -> Dict[str, Any]:
        abi = contract.parsed_abi
        if not abi:
            raise MethodNotFound(f"Contract {contract.full_identifier} has no ABI")
        method = abi_helpers.get_method(abi, method_name)
        abi_helpers.validate_parameters(method, params)
        return method

    def _tx(self, contract: ContractVersion, method_name: str, params: List[Any], options: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "to": contract.address,
            "abi": contract.parsed_abi,
            "method": method_name,
            "args": params,
            "from": options.get("from") or self.driver.config.get("default_account"),
            "value": int(options.get("value") or 0),
        }

    # ---------------------------
    # Call
    # ---------------------------

    def call(
        self,
        contract: ContractVersion,
        method_name: str,
        params=None,
        options: Optional[Dict[str, Any]] = None,
    ) -> Union[Any, Submitted, Confirmed]:
        """
        Read methods return the decoded value. Write methods return
        ``Submitted`` or, with ``options["wait"]``, ``Confirmed`` (or
        ``Submitted(timed_out=True)`` if no receipt showed up in time).

        Options: from, value, gas_limit, wait, timeout, rollback_id, cancel_event.
        """
        options = dict(options or {})
        params = abi_helpers.parse_parameters(params)
        method = self.resolve_method(contract, method_name, params)

        if abi_helpers.is_read_method(method):
            try:
                value = self.driver.call_contract(contract.address, contract.parsed_abi, method_name, params)
            except ContractLifecycleError:
                raise
            except Exception as e:
                raise SubmissionFailed(f"call {contract.full_identifier}.{method_name}", e) from e
            return abi_helpers.to_jsonable(value)

        return self._send(contract, method_name, params, options)

    def _send(self, contract: ContractVersion, method_name: str, params: List[Any], options: Dict[str, Any]):
        tx = self._tx(contract, method_name, params, options)
        if options.get("gas_limit"):
            tx["gas"] = int(options["gas_limit"])
        else:
            tx["gas"], _ = estimate_gas_limit(self.driver, self.settings, tx)

        operation = f"send {contract.full_identifier}.{method_name}"
        try:
            gas_price = self.driver.get_gas_price()
            tx_hash = self.driver.send_transaction(tx)
        except ContractLifecycleError:
            raise
        except Exception as e:
            logger.error("Transaction submission failed", extra={"context": {"operation": operation, "error": str(e)}})
            raise SubmissionFailed(operation, e) from e

        record = registry.record_transaction(
            transaction_hash=tx_hash,
            contract_id=contract.id,
            method_name=method_name,
            parameters=params,
            resource_price=gas_price,
            from_address=tx["from"],
            to_address=contract.address,
            rollback_id=options.get("rollback_id"),
        )
        logger.info("Transaction submitted", extra={"context": {
            "contract": contract.full_identifier, "method": method_name, "hash": tx_hash, "gas": tx["gas"],
        }})

        if not options.get("wait"):
            return Submitted(transaction_hash=tx_hash, transaction=record)

        receipt = self.wait_for_confirmation(
            tx_hash,
            timeout=options.get("timeout"),
            cancel_event=options.get("cancel_event"),
        )
        if receipt is None:
            return Submitted(transaction_hash=tx_hash, transaction=record, timed_out=True)
        return self.confirm(record, receipt)

    # ---------------------------
    # Gas
    # ---------------------------

    def estimate_gas(self, contract: ContractVersion, method_name: str, params=None, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        options = dict(options or {})
        params = abi_helpers.parse_parameters(params)
        method = self.resolve_method(contract, method_name, params)

        gas_limit, estimated = estimate_gas_limit(self.driver, self.settings, self._tx(contract, method_name, params, options))
        gas_price = self.driver.get_gas_price()
        result = {
            "contract": contract.full_identifier,
            "method": method_name,
            "selector": abi_helpers.function_selector(method),
            "gas_limit": gas_limit,
            "gas_price": gas_price,
            "estimated": estimated,
        }
        result.update(estimated_cost(gas_limit, gas_price))
        return result

    # ---------------------------
    # Confirmation
    # ---------------------------

    def wait_for_confirmation(
        self,
        transaction_hash: str,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Poll for a mined receipt. Returns None on timeout or cancellation;
        neither is an error. Holds no database state while waiting.
        """
        timeout = self.settings.confirmation_timeout if timeout is None else float(timeout)
        interval = self.settings.confirmation_interval
        deadline = time.monotonic() + timeout

        while True:
            receipt = self.driver.get_transaction_receipt(transaction_hash)
            if receipt and receipt.get("blockNumber") is not None:
                return receipt

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            pause = min(interval, remaining)
            if cancel_event is not None:
                if cancel_event.wait(pause):
                    logger.info("Confirmation wait cancelled", extra={"context": {"hash": transaction_hash}})
                    return None
            else:
                time.sleep(pause)

        logger.info("Confirmation wait timed out", extra={"context": {"hash": transaction_hash, "timeout": timeout}})
        return None

    def confirm(self, tx: ContractTransaction, receipt: Dict[str, Any]) -> Confirmed:
        success = bool(receipt.get("status", True))
        registry.update_transaction(
            tx,
            status=TX_SUCCESS if success else TX_FAILED,
            error_message=None if success else REVERTED_MESSAGE,
            resource_used=receipt.get("gasUsed"),
            resource_price=receipt.get("effectiveGasPrice") or tx.resource_price,
            block_number=receipt.get("blockNumber"),
            confirmed_at=datetime.utcnow(),
        )
        log = logger.info if success else logger.error
        log("Transaction confirmed", extra={"context": {
            "hash": tx.transaction_hash, "status": tx.status, "block": tx.block_number,
        }})
        return Confirmed(
            transaction_hash=tx.transaction_hash,
            receipt=abi_helpers.to_jsonable(receipt),
            transaction=tx,
            success=success,
            error=None if success else REVERTED_MESSAGE,
        )

    def check_transaction(
        self,
        tx: ContractTransaction,
        wait: bool = False,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Union[Submitted, Confirmed]:
        """Re-examine a recorded transaction, confirming it if its receipt is in."""
        if not tx.is_pending:
            return Confirmed(
                transaction_hash=tx.transaction_hash,
                transaction=tx,
                success=tx.status == TX_SUCCESS,
                error=tx.error_message,
                receipt={"blockNumber": tx.block_number, "gasUsed": tx.resource_used},
            )
        if wait:
            receipt = self.wait_for_confirmation(tx.transaction_hash, timeout=timeout, cancel_event=cancel_event)
        else:
            receipt = self.driver.get_transaction_receipt(tx.transaction_hash)
            if receipt and receipt.get("blockNumber") is None:
                receipt = None
        if receipt is None:
            return Submitted(transaction_hash=tx.transaction_hash, transaction=tx, timed_out=wait)
        return self.confirm(tx, receipt)
