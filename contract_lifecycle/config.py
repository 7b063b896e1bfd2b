# contract_lifecycle/config.py
import os


def _as_bool(v) -> bool:
    return str(v).lower() in ("1", "true", "yes", "on")


def _migrations(raw: str):
    # "token_v2=migrations.token:v2,nft=migrations.nft:backfill"
    pairs = (item.split("=", 1) for item in raw.split(",") if "=" in item)
    return {name.strip(): ref.strip() for name, ref in pairs if name.strip() and ref.strip()}


def _default_networks():
    return {
        "mainnet": {
            "type": "evm",
            "rpc_url": os.environ.get("BLOCKCHAIN_MAINNET_RPC", "https://mainnet.infura.io/v3/YOUR-PROJECT-ID"),
            "chain_id": 1,
            "explorer_url": "https://etherscan.io",
            "explorer_api_url": "https://api.etherscan.io/v2/api",
            "explorer_api_key": os.environ.get("ETHERSCAN_API_KEY"),
            "private_key": os.environ.get("BLOCKCHAIN_PRIVATE_KEY"),
            "use_poa": False,
        },
        "sepolia": {
            "type": "evm",
            "rpc_url": os.environ.get("BLOCKCHAIN_SEPOLIA_RPC", "https://sepolia.infura.io/v3/YOUR-PROJECT-ID"),
            "chain_id": 11155111,
            "explorer_url": "https://sepolia.etherscan.io",
            "explorer_api_url": "https://api.etherscan.io/v2/api",
            "explorer_api_key": os.environ.get("ETHERSCAN_API_KEY"),
            "private_key": os.environ.get("BLOCKCHAIN_PRIVATE_KEY"),
            "use_poa": _as_bool(os.environ.get("WEB3_USE_POA", "false")),
        },
        "local": {
            "type": "evm",
            "rpc_url": os.environ.get("BLOCKCHAIN_LOCAL_RPC", "http://localhost:8545"),
            "chain_id": 1337,
            "explorer_url": None,
            "explorer_api_key": None,
            "default_account": os.environ.get("BLOCKCHAIN_DEFAULT_ACCOUNT"),
        },
        "mock": {
            "type": "mock",
        },
    }


class BaseConfig:
    CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "redis://redis:6379/0")
    CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", "redis://redis:6379/0")
    LOG_LEVEL = os.environ.get("LOG_LEVEL")

    # --- DB ---
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", "postgresql+psycopg2://app_user:app_pass@db:5432/app_db"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JSON_SORT_KEYS = False

    # --- Networks ---
    CONTRACT_NETWORKS = _default_networks()
    CONTRACT_DEFAULT_NETWORK = os.environ.get("BLOCKCHAIN_CONTRACT_NETWORK", "local")

    # --- Gas ---
    GAS_DEFAULT_LIMIT = int(os.environ.get("BLOCKCHAIN_GAS_LIMIT", 3000000))
    GAS_PRICE_MULTIPLIER = float(os.environ.get("BLOCKCHAIN_GAS_PRICE_MULTIPLIER", 1.1))
    GAS_MAX_PRIORITY_FEE = int(os.environ.get("BLOCKCHAIN_MAX_PRIORITY_FEE", 2000000000))  # 2 gwei
    GAS_MAX_FEE_PER_GAS = int(os.environ.get("BLOCKCHAIN_MAX_FEE_PER_GAS", 100000000000))  # 100 gwei

    # --- Deployment ---
    DEPLOYMENT_AUTO_VERIFY = _as_bool(os.environ.get("BLOCKCHAIN_AUTO_VERIFY", "false"))
    DEPLOYMENT_CONFIRMATION_BLOCKS = int(os.environ.get("BLOCKCHAIN_CONFIRMATION_BLOCKS", 2))
    DEPLOYMENT_TIMEOUT = int(os.environ.get("BLOCKCHAIN_DEPLOYMENT_TIMEOUT", 300))
    DEPLOYMENT_RETRY_ATTEMPTS = int(os.environ.get("BLOCKCHAIN_RETRY_ATTEMPTS", 3))
    CONFIRMATION_POLL_INTERVAL = float(os.environ.get("BLOCKCHAIN_CONFIRMATION_INTERVAL", 2))

    # --- Upgrades ---
    # the only migrations the HTTP upgrade route may run, by name
    CONTRACT_MIGRATIONS = _migrations(os.environ.get("CONTRACT_MIGRATIONS", ""))

    # --- Compiler ---
    SOLC_PATH = os.environ.get("SOLC_PATH", "solc")
    SOLC_OPTIMIZE = _as_bool(os.environ.get("SOLC_OPTIMIZE", "true"))
    SOLC_OPTIMIZE_RUNS = int(os.environ.get("SOLC_OPTIMIZE_RUNS", 200))
    SOLC_EVM_VERSION = os.environ.get("SOLC_EVM_VERSION", "paris")
    CONTRACT_ARTIFACTS_PATH = os.environ.get("CONTRACT_ARTIFACTS_PATH", "storage/contracts")
    CONTRACT_SOURCES_PATH = os.environ.get("CONTRACT_SOURCES_PATH", "contracts")

    # --- Hot reload ---
    HOT_RELOAD_ENABLED = _as_bool(os.environ.get("BLOCKCHAIN_HOT_RELOAD", "false"))
    HOT_RELOAD_WATCH_PATHS = [
        p for p in os.environ.get("BLOCKCHAIN_WATCH_PATHS", "contracts").split(",") if p.strip()
    ]
    HOT_RELOAD_POLL_INTERVAL = float(os.environ.get("BLOCKCHAIN_WATCH_INTERVAL", 1))


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    ENV = "development"


class ProductionConfig(BaseConfig):
    DEBUG = False
    ENV = "production"


class TestingConfig(BaseConfig):
    TESTING = True
    ENV = "testing"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    CONTRACT_NETWORKS = {"local": {"type": "mock"}, "mock": {"type": "mock"}}
    CONTRACT_DEFAULT_NETWORK = "local"
    CONFIRMATION_POLL_INTERVAL = 0.05
    CELERY_BROKER_URL = "memory://"
    CELERY_RESULT_BACKEND = "cache+memory://"
