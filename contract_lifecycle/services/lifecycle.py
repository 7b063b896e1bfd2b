# contract_lifecycle/services/lifecycle.py
"""
Entry point used by routes, tasks and the CLI.

One ``ContractLifecycle`` lives in ``app.extensions``; it owns the settings,
the compiler and one cached driver per network, and hands out deployers,
interactors and upgraders bound to a network.
"""
import logging
import threading
import time
from typing import Any, Dict, Optional

from flask import current_app

from contract_lifecycle.exceptions import ArtifactNotFound, ConfigurationError, ContractLifecycleError
from contract_lifecycle.models.contract import STATUS_DEPRECATED, ContractVersion
from contract_lifecycle.services import abi as abi_helpers
from contract_lifecycle.services import registry
from contract_lifecycle.services.compiler import ContractCompiler
from contract_lifecycle.services.deployer import Deployer
from contract_lifecycle.services.drivers import LedgerDriver, create_driver
from contract_lifecycle.services.interactor import Interactor
from contract_lifecycle.services.results import Deployment
from contract_lifecycle.services.settings import LifecycleSettings
from contract_lifecycle.services.upgrader import Upgrader
from contract_lifecycle.services.verifier import verify_contract

logger = logging.getLogger(__name__)

EXTENSION_KEY = "contract_lifecycle"


class ContractLifecycle:

    def __init__(self, settings: LifecycleSettings):
        self.settings = settings
        self.compiler = ContractCompiler(settings)
        self._drivers: Dict[str, LedgerDriver] = {}
        self._lock = threading.Lock()

    # ---------------------------
    # Components
    # ---------------------------

    def network_name(self, network: Optional[str] = None) -> str:
        return network or self.settings.default_network

    def driver(self, network: Optional[str] = None) -> LedgerDriver:
        name = self.network_name(network)
        with self._lock:
            if name not in self._drivers:
                if name not in self.settings.networks:
                    raise ConfigurationError(f"Unknown network '{name}'. Configured: {sorted(self.settings.networks)}")
                cfg = self.settings.network_config(name)
                cfg.setdefault("receipt_timeout", self.settings.confirmation_timeout)
                cfg.setdefault("max_priority_fee", self.settings.max_priority_fee)
                cfg.setdefault("max_fee_per_gas", self.settings.max_fee_per_gas)
                self._drivers[name] = create_driver(name, cfg)
            return self._drivers[name]

    def reset_drivers(self) -> None:
        with self._lock:
            self._drivers.clear()

    def deployer(self, network: Optional[str] = None) -> Deployer:
        return Deployer(self.driver(network), self.settings, self.compiler)

    def interactor(self, network: Optional[str] = None) -> Interactor:
        return Interactor(self.driver(network), self.settings)

    def upgrader(self, network: Optional[str] = None) -> Upgrader:
        return Upgrader(self.deployer(network), self.interactor(network))

    # ---------------------------
    # Operations
    # ---------------------------

    def resolve(self, contract, network: Optional[str] = None) -> ContractVersion:
        if isinstance(contract, ContractVersion):
            return contract
        return registry.resolve_contract(contract, network)

    def deploy(self, params: Dict[str, Any]) -> Deployment:
        deployment = self.deployer(params.get("network")).deploy(params)
        if self.settings.auto_verify:
            try:
                deployment.contract.meta = dict(deployment.contract.meta or {}, verification=self.verify(deployment.contract))
                registry.save(deployment.contract)
            except Exception as e:
                # verification is best effort; the deployment itself succeeded
                logger.warning("Auto verification failed", extra={"context": {"error": str(e)}})
        return deployment

    def preview_deployment(self, name: str, params: Dict[str, Any], network: Optional[str] = None) -> Dict[str, Any]:
        return self.deployer(network or params.get("network")).preview_deployment(name, params)

    def call(self, contract, method_name: str, params=None, options: Optional[Dict[str, Any]] = None, network: Optional[str] = None):
        rec = self.resolve(contract, network)
        return self.interactor(rec.network).call(rec, method_name, params, options)

    def estimate_gas(self, contract, method_name: str, params=None, options: Optional[Dict[str, Any]] = None, network: Optional[str] = None):
        rec = self.resolve(contract, network)
        return self.interactor(rec.network).estimate_gas(rec, method_name, params, options)

    def wait_for_confirmation(
        self,
        transaction_hash: str,
        timeout: Optional[float] = None,
        network: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        """Wait on a recorded transaction (updating its row) or on a bare hash."""
        tx = registry.find_transaction(transaction_hash)
        if tx is not None:
            return self.interactor(tx.contract.network).check_transaction(
                tx, wait=True, timeout=timeout, cancel_event=cancel_event,
            )
        return self.interactor(network).wait_for_confirmation(transaction_hash, timeout, cancel_event)

    def create_upgradeable_contract(self, params: Dict[str, Any]) -> Dict[str, ContractVersion]:
        return self.upgrader(params.get("network")).create_upgradeable_contract(params)

    def upgrade(self, contract, new_version: str, options: Optional[Dict[str, Any]] = None, network: Optional[str] = None):
        rec = self.resolve(contract, network)
        return self.upgrader(rec.network).upgrade(rec, new_version, options)

    def rollback(self, contract, target_version: Optional[str] = None, options: Optional[Dict[str, Any]] = None, network: Optional[str] = None):
        rec = self.resolve(contract, network)
        return self.upgrader(rec.network).rollback(rec, target_version, options)

    def verify(self, contract, network: Optional[str] = None) -> Dict[str, Any]:
        rec = self.resolve(contract, network)
        return verify_contract(
            rec,
            self.settings.network_config(rec.network),
            self.compiler.compiler_version(),
            optimize=self.settings.optimize,
            optimize_runs=self.settings.optimize_runs,
        )

    def status(self, contract, network: Optional[str] = None, limit: int = 10) -> Dict[str, Any]:
        rec = self.resolve(contract, network)
        info = {
            "contract": rec.to_dict(),
            "transactions": [t.to_dict() for t in registry.transactions_for(rec, limit)],
        }
        if rec.proxy_contract_id:
            proxy = registry.get_contract(rec.proxy_contract_id)
            info["proxy"] = proxy.to_dict() if proxy else None
            info["is_current"] = bool(proxy and proxy.implementation_of == rec.id)
        if rec.address:
            try:
                info["balance"] = self.driver(rec.network).get_balance(rec.address)
            except ContractLifecycleError:
                raise
            except Exception as e:
                logger.warning("Balance lookup failed", extra={"context": {"address": rec.address, "error": str(e)}})
                info["balance"] = None
        return info

    def reconcile(self, network: Optional[str] = None):
        return registry.find_inconsistent_proxies(network)

    def test_contract(
        self,
        name: str,
        network: Optional[str] = None,
        source_file: Optional[str] = None,
        artifact_version: Optional[str] = None,
        constructor_params=None,
    ) -> Dict[str, Any]:
        """
        Smoke-test ``name`` on a throwaway deployment.

        The contract is deployed as ``test-<unix time>``, checked (address,
        ABI, every argument-free read method) and then marked deprecated.
        Returns ``{contract, total, passed, failed, tests}``.
        """
        params: Dict[str, Any] = {
            "name": name,
            "version": f"test-{int(time.time())}",
            "network": network,
            "constructor_params": constructor_params or [],
        }
        if source_file:
            params["source_file"] = source_file
        else:
            version = artifact_version or "1.0.0"
            artifact = self.compiler.load_artifacts(name, version)
            if artifact is None:
                raise ArtifactNotFound(f"No artifact found for {name}@{version} and no source provided")
            params["artifact"] = artifact

        rec = self.deploy(params).contract
        tests = [
            {"name": "deployment", "passed": bool(rec.address)},
            {"name": "abi_validation", "passed": bool(rec.abi) and abi_helpers.validate_abi(rec.abi)},
        ]
        interactor = self.interactor(rec.network)
        for method in abi_helpers.normalize_abi(rec.abi):
            if not isinstance(method, dict) or method.get("type") != "function":
                continue
            if method.get("inputs") or not abi_helpers.is_read_method(method):
                continue
            check = {"name": f"call:{method['name']}"}
            try:
                check["result"] = interactor.call(rec, method["name"], [])
                check["passed"] = True
            except Exception as e:
                check.update(passed=False, error=str(e))
            tests.append(check)

        registry.update_contract(rec, status=STATUS_DEPRECATED)
        passed = sum(1 for t in tests if t["passed"])
        logger.info("Contract test run finished", extra={"context": {
            "contract": rec.full_identifier, "passed": passed, "failed": len(tests) - passed,
        }})
        return {
            "contract": rec.to_dict(),
            "total": len(tests),
            "passed": passed,
            "failed": len(tests) - passed,
            "tests": tests,
        }


def init_app(app) -> ContractLifecycle:
    lifecycle = ContractLifecycle(LifecycleSettings.from_config(app.config))
    app.extensions[EXTENSION_KEY] = lifecycle
    return lifecycle


def get_lifecycle(app=None) -> ContractLifecycle:
    app = app or current_app
    return app.extensions[EXTENSION_KEY]
