# contract_lifecycle/services/gas.py
import logging
from decimal import Decimal
from typing import Any, Dict, Tuple

from contract_lifecycle.exceptions import GasEstimationFailed
from contract_lifecycle.services.drivers.base import LedgerDriver, ZERO_ADDRESS
from contract_lifecycle.services.settings import LifecycleSettings

logger = logging.getLogger(__name__)


def estimate_gas_limit(driver: LedgerDriver, settings: LifecycleSettings, tx: Dict[str, Any]) -> Tuple[int, bool]:
    """
    Estimated gas times the safety multiplier, or the default limit when the
    driver cannot estimate. Returns ``(limit, estimated)``.

    Deploy, preview and method calls all go through here so dry runs and live
    submissions agree.
    """
    estimate_tx = dict(tx)
    if not estimate_tx.get("from"):
        estimate_tx["from"] = ZERO_ADDRESS
    try:
        raw = driver.estimate_gas(estimate_tx)
    except GasEstimationFailed as e:
        logger.warning(
            "Gas estimation failed, using default limit",
            extra={"context": {"network": driver.network, "default": settings.default_gas_limit, "error": str(e)}},
        )
        return settings.default_gas_limit, False
    return int(raw * settings.gas_multiplier), True


def estimated_cost(gas_limit: int, gas_price: int) -> Dict[str, Any]:
    wei = int(gas_limit) * int(gas_price)
    return {
        "estimated_cost_wei": str(wei),
        "estimated_cost_eth": _trim(format(Decimal(wei).scaleb(-18), "f")),
    }


def _trim(amount: str) -> str:
    if "." in amount:
        amount = amount.rstrip("0").rstrip(".")
    return amount or "0"
