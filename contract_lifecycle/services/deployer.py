# contract_lifecycle/services/deployer.py
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from web3 import Web3

from contract_lifecycle.exceptions import ArtifactNotFound, DeploymentFailed
from contract_lifecycle.models.contract import STATUS_DEPLOYED, STATUS_FAILED, STATUS_PENDING
from contract_lifecycle.models.transaction import TX_SUCCESS
from contract_lifecycle.services import abi as abi_helpers
from contract_lifecycle.services import registry
from contract_lifecycle.services.compiler import ContractCompiler
from contract_lifecycle.services.drivers.base import LedgerDriver
from contract_lifecycle.services.gas import estimate_gas_limit, estimated_cost
from contract_lifecycle.services.results import Deployment
from contract_lifecycle.services.settings import LifecycleSettings

logger = logging.getLogger(__name__)


def bytecode_hash(bytecode: str) -> str:
    return "0x" + bytes(Web3.keccak(hexstr=bytecode)).hex()


def bytecode_size(bytecode: str) -> int:
    text = bytecode[2:] if bytecode.startswith("0x") else bytecode
    return len(text) // 2


class Deployer:
    """Turns an artifact plus constructor parameters into a deployed ContractVersion."""

    def __init__(self, driver: LedgerDriver, settings: LifecycleSettings, compiler: Optional[ContractCompiler] = None):
        self.driver = driver
        self.settings = settings
        self.compiler = compiler or ContractCompiler(settings)

    # ---------------------------
    # Artifacts
    # ---------------------------

    def resolve_artifact(self, name: str, version: Optional[str], params: Dict[str, Any], store: bool = True) -> Dict[str, Any]:
        """
        Return ``{abi, bytecode}`` from, in order: an inline artifact, fresh
        source (file or text), or the stored artifact for ``name@version``.
        """
        inline = params.get("artifact")
        if inline and inline.get("bytecode"):
            return {"abi": abi_helpers.normalize_abi(inline.get("abi")), "bytecode": inline["bytecode"]}

        store_as = version if store else None
        if params.get("source_file"):
            return self.compiler.compile_file(params["source_file"], name, store_as)
        if params.get("source_code"):
            return self.compiler.compile(params["source_code"], name, store_as)

        stored = self.compiler.load_artifacts(name, version) if version else None
        if stored and stored.get("bytecode"):
            return stored

        raise ArtifactNotFound(f"No artifact found for {name}@{version} and no source provided")

    # ---------------------------
    # Preview
    # ---------------------------

    def preview_deployment(self, name: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Dry run: same gas and price calls as ``deploy``, no registry write, no submission."""
        artifact = self.resolve_artifact(name, params.get("version"), params, store=False)
        args = abi_helpers.parse_parameters(params.get("constructor_params"))
        sender = params.get("from") or self.driver.config.get("default_account")

        gas_limit = params.get("gas_limit")
        if gas_limit:
            gas_limit = int(gas_limit)
        else:
            gas_limit, _ = estimate_gas_limit(self.driver, self.settings, {
                "from": sender,
                "data": artifact["bytecode"],
                "args": args,
            })
        gas_price = self.driver.get_gas_price()

        preview = {
            "contract_name": name,
            "network": self.driver.network,
            "from": sender,
            "gas_limit": gas_limit,
            "gas_price": gas_price,
            "bytecode_size": bytecode_size(artifact["bytecode"]),
        }
        preview.update(estimated_cost(gas_limit, gas_price))
        return preview

    # ---------------------------
    # Deploy
    # ---------------------------

    def deploy(self, params: Dict[str, Any]) -> Deployment:
        """
        Deploy ``params["name"]@params["version"]``.

        Recognised keys: name, version, constructor_params, from, gas_limit,
        source_file, source_code, artifact, is_upgradeable,
        proxy_contract_id, proxy, metadata.
        """
        name = params["name"]
        version = params.get("version") or "1.0.0"
        artifact = self.resolve_artifact(name, version, params)
        args = abi_helpers.parse_parameters(params.get("constructor_params"))
        sender = params.get("from") or self.driver.config.get("default_account")

        constructor = abi_helpers.get_constructor(artifact["abi"])
        if constructor is not None:
            abi_helpers.validate_parameters(constructor, args)

        self.driver.ensure_available()

        meta = dict(params.get("metadata") or {})
        if params.get("source_file"):
            meta.setdefault("source_file", str(Path(params["source_file"])))

        contract = registry.create_contract(
            name=name,
            version=version,
            kind=self.driver.kind,
            network=self.driver.network,
            deployer_address=sender,
            abi=artifact["abi"],
            bytecode_hash=bytecode_hash(artifact["bytecode"]),
            constructor_params=args,
            status=STATUS_PENDING,
            is_upgradeable=bool(params.get("is_upgradeable", False)),
            proxy_contract_id=params.get("proxy_contract_id"),
            meta=meta,
        )

        # from here on any driver error must leave the row failed, never pending
        try:
            gas_limit = params.get("gas_limit")
            if gas_limit:
                gas_limit = int(gas_limit)
            else:
                gas_limit, _ = estimate_gas_limit(self.driver, self.settings, {
                    "from": sender,
                    "data": artifact["bytecode"],
                    "args": args,
                })

            logger.info("Deploying contract", extra={"context": {
                "contract": contract.full_identifier, "network": self.driver.network, "gas_limit": gas_limit,
            }})
            result = self.driver.deploy_contract({
                "abi": artifact["abi"],
                "bytecode": artifact["bytecode"],
                "constructor_params": args,
                "from": sender,
                "gas_limit": gas_limit,
                "proxy": bool(params.get("proxy", False)),
            })
        except Exception as e:
            logger.error("Deployment failed", extra={"context": {"contract": contract.full_identifier, "error": str(e)}})
            self._mark_failed(contract, str(e))
            raise DeploymentFailed(f"Deployment of {contract.full_identifier} failed: {e}", contract=contract) from e

        if not result.get("address"):
            self._mark_failed(contract, "driver returned no contract address")
            raise DeploymentFailed(f"Deployment of {contract.full_identifier} returned no address", contract=contract)

        tx_hash = result.get("transaction_hash")
        receipt = self.driver.get_transaction_receipt(tx_hash) if tx_hash else None
        gas_used = result.get("gas_used")

        registry.update_contract(
            contract,
            address=result["address"],
            transaction_hash=tx_hash,
            resource_used=gas_used,
            deployed_at=datetime.utcnow(),
            status=STATUS_DEPLOYED,
        )
        tx = None
        if tx_hash:
            tx = registry.record_transaction(
                transaction_hash=tx_hash,
                contract_id=contract.id,
                method_name="constructor",
                parameters=args,
                resource_used=gas_used,
                resource_price=(receipt or {}).get("effectiveGasPrice") or self.driver.get_gas_price(),
                from_address=sender,
                to_address=result["address"],
                status=TX_SUCCESS,
                block_number=(receipt or {}).get("blockNumber"),
            )

        logger.info("Contract deployed", extra={"context": {
            "contract": contract.full_identifier, "address": contract.address, "hash": tx_hash,
        }})
        return Deployment(contract=contract, transaction_hash=tx_hash, transaction=tx)

    def _mark_failed(self, contract, error: str) -> None:
        meta = dict(contract.meta or {})
        meta["error"] = error
        registry.update_contract(contract, status=STATUS_FAILED, meta=meta)
