from dataclasses import dataclass

from src.shared.system.retry import RetryPolicy


@dataclass(frozen=True)
class SwapConfig:
    # Quote
    slippage_bps: int = 10
    max_price_impact_pct: float = 0.5
    quote_attempts: int = 20

    # Build
    build_attempts: int = 3
    priority_level: str = "veryHigh"
    max_priority_fee_lamports: int = 50_000
    dynamic_slippage_max_bps: int = 300

    # Execute
    execute_attempts: int = 20
    retry_delay_sec: float = 0.5
    retry_onchain_failures: bool = True

    def quote_policy(self, max_attempts: int = None) -> RetryPolicy:
        return RetryPolicy(max_attempts=max_attempts or self.quote_attempts, delay_sec=self.retry_delay_sec)

    def build_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.build_attempts, delay_sec=self.retry_delay_sec)

    def execute_policy(self, max_attempts: int = None) -> RetryPolicy:
        return RetryPolicy(max_attempts=max_attempts or self.execute_attempts, delay_sec=self.retry_delay_sec)


@dataclass(frozen=True)
class BundleConfig:
    enabled: bool = True
    priority_tier: str = "medium"

    # Tip economics (lamports)
    default_tip_lamports: int = 10_000
    min_tip_lamports: int = 6_000
    max_tip_lamports: int = 1_400_000
    tip_account_cache_sec: float = 300.0

    # Submission
    max_bundle_size: int = 5
    timeout_ms: int = 30_000
    poll_interval_ms: int = 2_000
    max_retries: int = 2
    retry_delay_sec: float = 2.0
    retry_onchain_failures: bool = True

    # Relay HTTP
    relay_attempts: int = 3
    relay_delay_sec: float = 1.0

    def submit_policy(self) -> RetryPolicy:
        # max_retries counts resubmissions after the first attempt
        return RetryPolicy(max_attempts=self.max_retries + 1, delay_sec=self.retry_delay_sec)

    def relay_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.relay_attempts, delay_sec=self.relay_delay_sec, backoff=2.0)
