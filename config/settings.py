import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from src.shared.config.execution import BundleConfig, SwapConfig
from src.shared.config.infrastructure import InfrastructureConfig
from src.shared.config.strategy import ExitRulesConfig, MonitorConfig

# Load Environment Variables from project root .env
env_path = os.path.join(os.path.dirname(__file__), "../.env")
load_dotenv(env_path)


def _bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


def _int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


class Settings:
    # ═══════════════════════════════════════════════════════════════════
    # METEOR KEEPER CONFIGURATION (.env backed)
    # Read once here; components receive EngineConfig instead.
    # ═══════════════════════════════════════════════════════════════════

    # --- Infrastructure ---
    RPC_URL = os.getenv("RPC_URL", "https://api.mainnet-beta.solana.com")
    NETWORK = os.getenv("NETWORK", "mainnet")
    WALLET_PATH = os.getenv("WALLET_PATH", "~/id.json")
    POOL_ADDRESS = os.getenv("POOL_ADDRESS") or None
    JUPITER_API_URL = os.getenv("JUPITER_API_URL", "https://lite-api.jup.ag/swap/v1")
    JUPITER_PRICE_URL = os.getenv("JUPITER_PRICE_URL", "https://lite-api.jup.ag/price/v3")
    JITO_BLOCK_ENGINE_URL = os.getenv("JITO_BLOCK_ENGINE_URL", "https://mainnet.block-engine.jito.wtf")
    JITO_TIP_FLOOR_URL = os.getenv("JITO_TIP_FLOOR_URL", "https://bundles.jito.wtf/api/v1/bundles/tip_floor")
    METEORA_BRIDGE_PATH = os.getenv("METEORA_BRIDGE_PATH") or None

    # --- Monitor ---
    MONITOR_INTERVAL_SECONDS = _float("MONITOR_INTERVAL_SECONDS", 5.0)
    CENTER_DISTANCE_THRESHOLD = _float("CENTER_DISTANCE_THRESHOLD", 0.45)

    # --- Swaps ---
    SLIPPAGE_BPS = _int("SLIPPAGE", 10)
    PRICE_IMPACT_PCT = _float("PRICE_IMPACT", 0.5)
    PRIORITY_FEE_LAMPORTS = _int("PRIORITY_FEE_LAMPORTS", 50_000)
    PRIORITY_LEVEL = os.getenv("PRIORITY_LEVEL", "veryHigh")
    MAX_RETRIES = _int("MAX_RETRIES", 20)
    RETRY_ONCHAIN_FAILURES = _bool("RETRY_ONCHAIN_FAILURES", True)

    # --- Bundles ---
    USE_JITO_BUNDLES = _bool("USE_JITO_BUNDLES", True)
    JITO_PRIORITY_LEVEL = os.getenv("JITO_PRIORITY_LEVEL", "medium")
    JITO_BUNDLE_TIMEOUT_MS = _int("JITO_BUNDLE_TIMEOUT_MS", 30_000)
    BUNDLE_MAX_RETRIES = _int("BUNDLE_MAX_RETRIES", 2)

    # --- Exit rules ---
    TAKE_PROFIT_PCT = _float("TAKE_PROFIT_PCT", 0.0)
    STOP_LOSS_PCT = _float("STOP_LOSS_PCT", 0.0)
    TRAILING_TRIGGER_PCT = _float("TRAILING_TRIGGER_PCT", 0.0)
    TRAILING_STOP_PCT = _float("TRAILING_STOP_PCT", 0.0)
    SWAP_TO_SOL_ON_EXIT = _bool("SWAP_TO_SOL_ON_EXIT", True)

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


@dataclass(frozen=True)
class EngineConfig:
    infrastructure: InfrastructureConfig = field(default_factory=InfrastructureConfig)
    swap: SwapConfig = field(default_factory=SwapConfig)
    bundle: BundleConfig = field(default_factory=BundleConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    exit_rules: ExitRulesConfig = field(default_factory=ExitRulesConfig)


def build_engine_config(settings=Settings, **overrides) -> EngineConfig:
    """
    Snapshot Settings into explicit config structs.

    `overrides` maps section names ("monitor", "swap", ...) to replacement
    structs, which is how the CLI applies command-line options.
    """
    infrastructure = InfrastructureConfig(
        rpc_url=settings.RPC_URL,
        network=settings.NETWORK,
        wallet_path=settings.WALLET_PATH,
        pool_address=settings.POOL_ADDRESS,
        jupiter_api_url=settings.JUPITER_API_URL,
        jupiter_price_url=settings.JUPITER_PRICE_URL,
        jito_block_engine_url=settings.JITO_BLOCK_ENGINE_URL,
        jito_tip_floor_url=settings.JITO_TIP_FLOOR_URL,
        meteora_bridge_path=settings.METEORA_BRIDGE_PATH,
    )
    swap = SwapConfig(
        slippage_bps=settings.SLIPPAGE_BPS,
        max_price_impact_pct=settings.PRICE_IMPACT_PCT,
        quote_attempts=settings.MAX_RETRIES,
        execute_attempts=settings.MAX_RETRIES,
        priority_level=settings.PRIORITY_LEVEL,
        max_priority_fee_lamports=settings.PRIORITY_FEE_LAMPORTS,
        retry_onchain_failures=settings.RETRY_ONCHAIN_FAILURES,
    )
    bundle = BundleConfig(
        enabled=settings.USE_JITO_BUNDLES,
        priority_tier=settings.JITO_PRIORITY_LEVEL.lower(),
        timeout_ms=settings.JITO_BUNDLE_TIMEOUT_MS,
        max_retries=settings.BUNDLE_MAX_RETRIES,
        retry_onchain_failures=settings.RETRY_ONCHAIN_FAILURES,
    )
    monitor = MonitorConfig(
        interval_sec=settings.MONITOR_INTERVAL_SECONDS,
        recenter_threshold=settings.CENTER_DISTANCE_THRESHOLD,
    )
    exit_rules = ExitRulesConfig(
        take_profit_enabled=settings.TAKE_PROFIT_PCT > 0,
        take_profit_pct=settings.TAKE_PROFIT_PCT or 15.0,
        stop_loss_enabled=settings.STOP_LOSS_PCT > 0,
        stop_loss_pct=settings.STOP_LOSS_PCT or 10.0,
        trailing_stop_enabled=settings.TRAILING_TRIGGER_PCT > 0 and settings.TRAILING_STOP_PCT > 0,
        trailing_trigger_pct=settings.TRAILING_TRIGGER_PCT or 5.0,
        trailing_stop_pct=settings.TRAILING_STOP_PCT or 3.0,
        swap_to_sol_on_exit=settings.SWAP_TO_SOL_ON_EXIT,
    )
    sections = dict(
        infrastructure=infrastructure,
        swap=swap,
        bundle=bundle,
        monitor=monitor,
        exit_rules=exit_rules,
    )
    sections.update(overrides)
    return EngineConfig(**sections)
