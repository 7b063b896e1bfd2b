# contract_lifecycle/services/upgrader.py
"""
Proxy based upgrades and rollbacks.

A proxy row's ``implementation_of`` is the only "current version" pointer.
Upgrading adds a new implementation row and repoints the proxy; history is
never rewritten. Neither workflow is atomic: every step commits on its own,
and a failure after the on-chain repoint raises ``PartialUpgradeError``
naming the step so the registry can be reconciled by hand (see
``registry.find_inconsistent_proxies``).
"""
import importlib
import logging
from typing import Any, Callable, Dict, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from contract_lifecycle.exceptions import (
    ContractLifecycleError,
    NoPreviousVersionFound,
    NoProxyFound,
    NotUpgradeable,
    PartialUpgradeError,
    ProxyNotFound,
    RegistryInvariantError,
    TargetVersionNotFound,
)
from contract_lifecycle.models import db
from contract_lifecycle.models.contract import (
    STATUS_DEPLOYED,
    STATUS_DEPRECATED,
    STATUS_UPGRADED,
    ContractVersion,
)
from contract_lifecycle.services import registry
from contract_lifecycle.services.deployer import Deployer
from contract_lifecycle.services.interactor import Interactor
from contract_lifecycle.services.results import Confirmed, Submitted

logger = logging.getLogger(__name__)

UPGRADE_METHOD = "upgradeTo"
PROXY_SUFFIX = "_Proxy"

# stored artifact that overrides the built-in proxy
PROXY_ARTIFACT_NAME = "UpgradeableProxy"
PROXY_ARTIFACT_VERSION = "latest"

PROXY_ABI = [
    {
        "type": "constructor",
        "inputs": [{"name": "implementation", "type": "address"}],
        "stateMutability": "nonpayable",
    },
    {
        "type": "function",
        "name": "upgradeTo",
        "inputs": [{"name": "newImplementation", "type": "address"}],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
    {
        "type": "function",
        "name": "implementation",
        "inputs": [],
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
    },
    {"type": "fallback", "stateMutability": "payable"},
]

# minimal delegate-call forwarder; replace through the stored proxy artifact
PROXY_BYTECODE = (
    "0x608060405234801561001057600080fd5b5060405161029a38038061029a833981016040819052"
    "61002f91610054565b600080546001600160a01b0319166001600160a01b0392909216919091179055"
    "610084565b60006020828403121561006657600080fd5b81516001600160a01b038116811461007d"
    "57600080fd5b9392505050565b610207806100936000396000f3fe"
)

MigrationSpec = Union[Callable[[ContractVersion, ContractVersion], Any], str]


def load_migration(migration: MigrationSpec) -> Callable[[ContractVersion, ContractVersion], Any]:
    """Accept a callable or a ``"package.module:function"`` reference."""
    if callable(migration):
        return migration
    module_name, _, attr = str(migration).partition(":")
    if not module_name or not attr:
        raise ValueError(f"Migration must be a callable or 'module:function', got {migration!r}")
    fn = getattr(importlib.import_module(module_name), attr)
    if not callable(fn):
        raise ValueError(f"Migration {migration!r} is not callable")
    return fn


class Upgrader:

    def __init__(self, deployer: Deployer, interactor: Interactor):
        self.deployer = deployer
        self.interactor = interactor

    # ---------------------------
    # Helpers
    # ---------------------------

    def _proxy_artifact(self) -> Dict[str, Any]:
        stored = self.deployer.compiler.load_artifacts(PROXY_ARTIFACT_NAME, PROXY_ARTIFACT_VERSION)
        if stored and stored.get("bytecode"):
            return {"abi": stored.get("abi") or PROXY_ABI, "bytecode": stored["bytecode"]}
        return {"abi": PROXY_ABI, "bytecode": PROXY_BYTECODE}

    def resolve_proxy(self, contract: ContractVersion) -> ContractVersion:
        if not contract.proxy_contract_id:
            raise NoProxyFound(f"{contract.full_identifier} has no proxy contract")
        proxy = registry.get_contract(contract.proxy_contract_id)
        if proxy is None:
            raise ProxyNotFound(f"Proxy #{contract.proxy_contract_id} of {contract.full_identifier} not found")
        return proxy

    def require_current(self, contract: ContractVersion, proxy: ContractVersion, action: str) -> None:
        """Only the live implementation behind ``proxy`` may be upgraded or rolled back."""
        if contract.status != STATUS_DEPLOYED:
            raise NotUpgradeable(
                f"cannot {action} {contract.full_identifier}: status is '{contract.status}', expected '{STATUS_DEPLOYED}'"
            )
        if proxy.implementation_of != contract.id:
            raise NotUpgradeable(
                f"cannot {action} {contract.full_identifier}: {proxy.full_identifier} points at #{proxy.implementation_of}"
            )

    def _repoint(self, proxy, target, old, new, options, rollback_id=None) -> Union[Submitted, Confirmed]:
        """Send ``upgradeTo(target.address)`` to the proxy and check the outcome."""
        wait = options.get("wait", True)
        try:
            outcome = self.interactor.call(proxy, UPGRADE_METHOD, [target.address], {
                "from": options.get("from"),
                "gas_limit": options.get("gas_limit"),
                "wait": wait,
                "timeout": options.get("timeout"),
                "rollback_id": rollback_id,
            })
        except ContractLifecycleError as e:
            logger.error("Proxy repoint failed", extra={"context": {"proxy": proxy.full_identifier, "error": str(e)}})
            raise PartialUpgradeError(
                "repoint", f"could not repoint {proxy.full_identifier}: {e}",
                old_contract=old, new_contract=new,
            ) from e

        if isinstance(outcome, Confirmed) and not outcome.success:
            raise PartialUpgradeError(
                "repoint", f"{UPGRADE_METHOD} on {proxy.full_identifier} reverted",
                old_contract=old, new_contract=new, transaction_hash=outcome.transaction_hash,
            )
        if wait and isinstance(outcome, Submitted):
            raise PartialUpgradeError(
                "confirmation", f"{UPGRADE_METHOD} on {proxy.full_identifier} not confirmed in time",
                old_contract=old, new_contract=new, transaction_hash=outcome.transaction_hash,
            )
        return outcome

    def _commit_pointer(self, step_contracts, updates, transaction_hash) -> None:
        old, new = step_contracts
        try:
            for record, fields in updates:
                registry.update_contract(record, **fields)
        except (SQLAlchemyError, RegistryInvariantError) as e:
            db.session.rollback()
            logger.error("Registry update after repoint failed", extra={"context": {"error": str(e)}})
            raise PartialUpgradeError(
                "registry", f"proxy repointed on chain but registry update failed: {e}",
                old_contract=old, new_contract=new, transaction_hash=transaction_hash,
            ) from e

    # ---------------------------
    # Create
    # ---------------------------

    def create_upgradeable_contract(self, params: Dict[str, Any]) -> Dict[str, ContractVersion]:
        """Deploy the implementation, then a proxy in front of it, then link the two rows."""
        impl = self.deployer.deploy(dict(params, is_upgradeable=True)).contract

        proxy_params = {
            "name": f"{params['name']}{PROXY_SUFFIX}",
            "version": impl.version,
            "artifact": self._proxy_artifact(),
            "constructor_params": [impl.address],
            "from": params.get("from"),
            "proxy": True,
            "metadata": {"proxy_for": impl.name},
        }
        try:
            proxy = self.deployer.deploy(proxy_params).contract
        except ContractLifecycleError as e:
            raise PartialUpgradeError(
                "deploy_proxy", f"implementation {impl.full_identifier} deployed but proxy failed: {e}",
                new_contract=impl,
            ) from e

        registry.update_contract(proxy, implementation_of=impl.id)
        registry.update_contract(impl, proxy_contract_id=proxy.id)
        logger.info("Upgradeable contract created", extra={"context": {
            "implementation": impl.full_identifier, "proxy": proxy.address,
        }})
        return {"proxy": proxy, "implementation": impl}

    # ---------------------------
    # Upgrade
    # ---------------------------

    def upgrade(self, old_contract: ContractVersion, new_version: str, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Deploy ``new_version`` of ``old_contract``'s logic and repoint its proxy.

        Options: source_file, source_code, artifact, constructor_params, from,
        gas_limit, wait (default True), timeout, migration, metadata.
        """
        options = dict(options or {})
        if not old_contract.is_upgradeable:
            raise NotUpgradeable(f"{old_contract.full_identifier} is not upgradeable")
        proxy = self.resolve_proxy(old_contract)
        self.require_current(old_contract, proxy, "upgrade")

        deploy_params = {
            "name": old_contract.name,
            "version": new_version,
            "is_upgradeable": True,
            "proxy_contract_id": proxy.id,
        }
        for key in ("source_file", "source_code", "artifact", "constructor_params", "from", "metadata"):
            if options.get(key) is not None:
                deploy_params[key] = options[key]
        new_contract = self.deployer.deploy(deploy_params).contract

        outcome = self._repoint(proxy, new_contract, old_contract, new_contract, options)
        self._commit_pointer(
            (old_contract, new_contract),
            [(proxy, {"implementation_of": new_contract.id}), (old_contract, {"status": STATUS_UPGRADED})],
            outcome.transaction_hash,
        )
        logger.info("Contract upgraded", extra={"context": {
            "from": old_contract.full_identifier, "to": new_contract.full_identifier, "hash": outcome.transaction_hash,
        }})

        migration = options.get("migration")
        if migration:
            try:
                load_migration(migration)(old_contract, new_contract)
            except Exception as e:
                logger.error("Migration failed after repoint", extra={"context": {
                    "from": old_contract.full_identifier, "to": new_contract.full_identifier, "error": str(e),
                }})
                raise PartialUpgradeError(
                    "migration", f"proxy points at {new_contract.full_identifier} but migration failed: {e}",
                    old_contract=old_contract, new_contract=new_contract,
                    transaction_hash=outcome.transaction_hash,
                ) from e

        return {"old_contract": old_contract, "new_contract": new_contract, "proxy": proxy, "transaction": outcome}

    # ---------------------------
    # Rollback
    # ---------------------------

    def rollback(
        self,
        contract: ContractVersion,
        target_version: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Repoint the proxy of ``contract`` to an older implementation.

        Without ``target_version`` the newest row created before ``contract``
        is restored (creation order, not version-string order).
        """
        options = dict(options or {})
        if not contract.is_upgradeable:
            raise NotUpgradeable(f"{contract.full_identifier} cannot be rolled back")
        proxy = self.resolve_proxy(contract)
        self.require_current(contract, proxy, "roll back")

        target = registry.find_previous_version(contract, target_version)
        if target is None:
            if target_version:
                raise TargetVersionNotFound(f"Version {target_version} of {contract.name} not found")
            raise NoPreviousVersionFound(f"No version of {contract.name} older than {contract.version}")

        undone = registry.latest_upgrade_transaction(proxy)

        outcome = self._repoint(proxy, target, contract, target, options, rollback_id=undone.id if undone else None)
        self._commit_pointer(
            (contract, target),
            [
                (proxy, {"implementation_of": target.id}),
                (target, {"status": STATUS_DEPLOYED, "proxy_contract_id": proxy.id}),
                (contract, {"status": STATUS_DEPRECATED}),
            ],
            outcome.transaction_hash,
        )
        logger.info("Contract rolled back", extra={"context": {
            "from": contract.full_identifier, "to": target.full_identifier, "hash": outcome.transaction_hash,
        }})
        return {
            "restored_contract": target,
            "rolled_back_from": contract,
            "rolled_back_to": target.version,
            "proxy": proxy,
            "transaction": outcome,
        }
