# contract_lifecycle/services/verifier.py
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import requests

from contract_lifecycle.models.contract import ContractVersion

logger = logging.getLogger(__name__)

ETHERSCAN_V2_BASE = "https://api.etherscan.io/v2/api"


def _skipped(reason: str) -> Dict[str, Any]:
    return {"status": "skipped", "reason": reason}


def _source_for(contract: ContractVersion) -> Optional[str]:
    meta = contract.meta or {}
    if meta.get("source_code"):
        return meta["source_code"]
    path = meta.get("source_file")
    if path and Path(path).exists():
        return Path(path).read_text(encoding="utf-8")
    return None


def verify_contract(
    contract: ContractVersion,
    network_config: Dict[str, Any],
    compiler_version: str,
    optimize: bool = True,
    optimize_runs: int = 200,
) -> Dict[str, Any]:
    """
    Submit source verification to an Etherscan-compatible explorer.

    Returns ``{"status": "skipped"|"submitted"|"failed", ...}``; transport
    errors from ``requests`` propagate.
    """
    api_key = network_config.get("explorer_api_key")
    if not api_key:
        return _skipped(f"no explorer API key configured for network '{contract.network}'")
    if not contract.address:
        return _skipped("contract has no address")
    source = _source_for(contract)
    if source is None:
        return _skipped("source code not available")

    data = {
        "module": "contract",
        "action": "verifysourcecode",
        "apikey": api_key,
        "chainid": str(network_config.get("chain_id") or 1),
        "contractaddress": contract.address,
        "sourceCode": source,
        "codeformat": "solidity-single-file",
        "contractname": contract.name,
        "compilerversion": compiler_version if compiler_version.startswith("v") else f"v{compiler_version}",
        "optimizationUsed": "1" if optimize else "0",
        "runs": str(optimize_runs),
        # Etherscan's own spelling
        "constructorArguements": (contract.meta or {}).get("constructor_args_encoded", ""),
    }

    url = network_config.get("explorer_api_url") or ETHERSCAN_V2_BASE
    resp = requests.post(url, data=data, timeout=20)
    resp.raise_for_status()
    body = resp.json()

    if str(body.get("status")) == "1":
        logger.info("Verification submitted", extra={"context": {"contract": contract.full_identifier, "guid": body.get("result")}})
        return {"status": "submitted", "guid": body.get("result")}

    logger.warning("Verification rejected", extra={"context": {"contract": contract.full_identifier, "result": body.get("result")}})
    return {"status": "failed", "message": body.get("message"), "result": body.get("result")}
