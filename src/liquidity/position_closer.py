"""
Position Closer
===============
Withdraws and closes a position when an exit rule fires, then optionally
converts the non-SOL token that came out of it back to SOL.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from src.liquidity.types import PoolSnapshot
from src.shared.config.infrastructure import SOL_MINT, InfrastructureConfig
from src.shared.config.strategy import ExitRulesConfig
from src.shared.execution.bundle_submitter import BundleSubmitter
from src.shared.execution.execution_result import ExecutionResult
from src.shared.execution.meteora_bridge import DlmmPoolClient
from src.shared.execution.swapper import JupiterSwapper
from src.shared.execution.transactions import decode_transaction
from src.shared.infrastructure.chain_gateway import ChainGateway
from src.shared.system.errors import BuildError, TransientReadError
from src.shared.system.logging import Logger


@dataclass
class CloseOutcome:
    closed: bool
    signatures: List[str] = field(default_factory=list)
    swaps: List[ExecutionResult] = field(default_factory=list)
    error: Optional[str] = None


class PositionCloser:
    def __init__(
        self,
        pool: DlmmPoolClient,
        submitter: BundleSubmitter,
        swapper: JupiterSwapper,
        gateway: ChainGateway,
        keypair: Keypair,
        infra: Optional[InfrastructureConfig] = None,
        exit_config: Optional[ExitRulesConfig] = None,
    ):
        self.pool = pool
        self.submitter = submitter
        self.swapper = swapper
        self.gateway = gateway
        self.keypair = keypair
        self.infra = infra or InfrastructureConfig()
        self.exit_config = exit_config or ExitRulesConfig()

    async def close(self, position_id: str, snapshot: PoolSnapshot) -> CloseOutcome:
        owner = self.keypair.pubkey()
        swap_mints = self._mints_to_swap(snapshot)

        try:
            before = await self._balances(owner, swap_mints)
            templates = [decode_transaction(b64) for b64 in await self.pool.close_transactions(position_id)]
        except (TransientReadError, BuildError) as e:
            Logger.error(f"[EXIT] Could not prepare close of {position_id}: {e}")
            return CloseOutcome(closed=False, error=str(e))

        Logger.info(f"[EXIT] Closing {position_id} with {len(templates)} transaction(s)")
        result = await self.submitter.execute_with_fallback(
            templates, self.infra.network, multi_position=len(templates) > 1
        )
        if not result.success:
            return CloseOutcome(closed=False, error=result.error_message)

        Logger.success(f"[EXIT] Position {position_id} closed")
        outcome = CloseOutcome(closed=True, signatures=list(result.signatures))

        if swap_mints:
            try:
                after = await self._balances(owner, swap_mints)
            except TransientReadError as e:
                Logger.error(f"[EXIT] Balance read failed, leaving tokens unswapped: {e}")
                return outcome
            for mint in swap_mints:
                received = after[mint] - before[mint]
                if received <= 0:
                    continue
                Logger.info(f"[EXIT] Swapping {received} of {mint[:6]}... to SOL")
                outcome.swaps.append(await self.swapper.swap(mint, SOL_MINT, received, self.keypair))
        return outcome

    def _mints_to_swap(self, snapshot: PoolSnapshot) -> List[str]:
        if not self.exit_config.swap_to_sol_on_exit:
            return []
        return [t.mint for t in (snapshot.token_x, snapshot.token_y) if t.mint != SOL_MINT]

    async def _balances(self, owner: Pubkey, mints: List[str]) -> Dict[str, int]:
        return {mint: await self.gateway.get_token_balance(owner, Pubkey.from_string(mint)) for mint in mints}
