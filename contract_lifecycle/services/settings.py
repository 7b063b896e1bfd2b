# contract_lifecycle/services/settings.py
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple


@dataclass(frozen=True)
class LifecycleSettings:
    """Tunables for deployer, interactor and upgrader, read once from config."""

    networks: Dict[str, Dict[str, Any]] = field(default_factory=lambda: {"local": {"type": "mock"}})
    default_network: str = "local"

    default_gas_limit: int = 3000000
    gas_multiplier: float = 1.1
    max_priority_fee: int = 2000000000
    max_fee_per_gas: int = 100000000000

    confirmation_interval: float = 2.0
    confirmation_timeout: int = 300
    confirmation_blocks: int = 2
    retry_attempts: int = 3  # advisory, reported to callers but never enforced
    auto_verify: bool = False
    migrations: Dict[str, str] = field(default_factory=dict)

    solc_path: str = "solc"
    optimize: bool = True
    optimize_runs: int = 200
    evm_version: str = "paris"
    artifacts_path: str = "storage/contracts"
    sources_path: str = "contracts"

    hot_reload_enabled: bool = False
    watch_paths: Tuple[str, ...] = ("contracts",)
    watch_interval: float = 1.0

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "LifecycleSettings":
        return cls(
            networks=dict(config.get("CONTRACT_NETWORKS") or {"local": {"type": "mock"}}),
            default_network=config.get("CONTRACT_DEFAULT_NETWORK", "local"),
            default_gas_limit=int(config.get("GAS_DEFAULT_LIMIT", 3000000)),
            gas_multiplier=float(config.get("GAS_PRICE_MULTIPLIER", 1.1)),
            max_priority_fee=int(config.get("GAS_MAX_PRIORITY_FEE", 2000000000)),
            max_fee_per_gas=int(config.get("GAS_MAX_FEE_PER_GAS", 100000000000)),
            confirmation_interval=float(config.get("CONFIRMATION_POLL_INTERVAL", 2.0)),
            confirmation_timeout=int(config.get("DEPLOYMENT_TIMEOUT", 300)),
            confirmation_blocks=int(config.get("DEPLOYMENT_CONFIRMATION_BLOCKS", 2)),
            retry_attempts=int(config.get("DEPLOYMENT_RETRY_ATTEMPTS", 3)),
            auto_verify=bool(config.get("DEPLOYMENT_AUTO_VERIFY", False)),
            migrations=dict(config.get("CONTRACT_MIGRATIONS") or {}),
            solc_path=config.get("SOLC_PATH", "solc"),
            optimize=bool(config.get("SOLC_OPTIMIZE", True)),
            optimize_runs=int(config.get("SOLC_OPTIMIZE_RUNS", 200)),
            evm_version=config.get("SOLC_EVM_VERSION", "paris"),
            artifacts_path=config.get("CONTRACT_ARTIFACTS_PATH", "storage/contracts"),
            sources_path=config.get("CONTRACT_SOURCES_PATH", "contracts"),
            hot_reload_enabled=bool(config.get("HOT_RELOAD_ENABLED", False)),
            watch_paths=tuple(config.get("HOT_RELOAD_WATCH_PATHS") or ()),
            watch_interval=float(config.get("HOT_RELOAD_POLL_INTERVAL", 1.0)),
        )

    def network_config(self, network: Optional[str]) -> Dict[str, Any]:
        name = network or self.default_network
        return dict(self.networks.get(name) or {})
