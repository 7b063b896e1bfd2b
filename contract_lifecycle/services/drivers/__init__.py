# contract_lifecycle/services/drivers/__init__.py
from typing import Any, Dict, Optional

from contract_lifecycle.exceptions import ConfigurationError
from contract_lifecycle.services.drivers.base import LedgerDriver, ZERO_ADDRESS
from contract_lifecycle.services.drivers.evm import EvmDriver
from contract_lifecycle.services.drivers.mock import MockDriver

# closed set: network "type" -> driver class
DRIVERS = {
    "evm": EvmDriver,
    "mock": MockDriver,
}


def create_driver(network: str, config: Optional[Dict[str, Any]] = None, **overrides) -> LedgerDriver:
    cfg = dict(config or {})
    cfg.update(overrides)
    kind = (cfg.get("type") or "evm").lower()
    driver_cls = DRIVERS.get(kind)
    if driver_cls is None:
        raise ConfigurationError(
            f"Unsupported driver type '{kind}' for network '{network}'. Supported: {sorted(DRIVERS)}"
        )
    return driver_cls(network, cfg)


__all__ = ["LedgerDriver", "EvmDriver", "MockDriver", "DRIVERS", "ZERO_ADDRESS", "create_driver"]
