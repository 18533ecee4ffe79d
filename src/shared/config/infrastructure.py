from dataclasses import dataclass
from typing import Optional

SOL_MINT = "So11111111111111111111111111111111111111112"
LAMPORTS_PER_SOL = 1_000_000_000


@dataclass(frozen=True)
class InfrastructureConfig:
    rpc_url: str = "https://api.mainnet-beta.solana.com"
    network: str = "mainnet"
    wallet_path: str = "~/id.json"
    pool_address: Optional[str] = None

    # Venues
    jupiter_api_url: str = "https://lite-api.jup.ag/swap/v1"
    jupiter_price_url: str = "https://lite-api.jup.ag/price/v3"
    jito_block_engine_url: str = "https://mainnet.block-engine.jito.wtf"
    jito_tip_floor_url: str = "https://bundles.jito.wtf/api/v1/bundles/tip_floor"

    # DLMM bridge (node script shipped with the SDK install)
    meteora_bridge_path: Optional[str] = None
    bridge_timeout_sec: float = 60.0

    # Network limits
    http_timeout_sec: float = 10.0
    rpc_read_attempts: int = 3
    rpc_read_delay_sec: float = 0.5
    price_cache_ttl_sec: float = 60.0

    @property
    def is_mainnet(self) -> bool:
        return self.network.lower() in ("mainnet", "mainnet-beta")
