"""
Position Closer Tests
=====================
Close transactions go through the bundle/sequential path, then the
non-SOL proceeds are swapped back to SOL.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from src.liquidity.position_closer import PositionCloser
from src.liquidity.types import PoolSnapshot, TokenInfo
from src.shared.config.strategy import ExitRulesConfig
from src.shared.execution.execution_result import ErrorCode, failure_result, success_result
from src.shared.system.errors import BridgeError
from tests.unit.helpers import encode, make_template

SOL = TokenInfo("So11111111111111111111111111111111111111112", 9, "SOL")
USDC = TokenInfo("EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", 6, "USDC")


@pytest.fixture
def pool_snapshot():
    return PoolSnapshot(pool_address="Pool", token_x=SOL, token_y=USDC, active_bin=None)


@pytest.fixture
def parts(keypair, fake_gateway):
    pool = MagicMock()
    pool.close_transactions = AsyncMock(return_value=[encode(make_template(keypair)) for _ in range(2)])
    submitter = MagicMock()
    submitter.execute_with_fallback = AsyncMock(return_value=success_result("s1", "JITO", signatures=["s1", "s2", "s3"]))
    swapper = MagicMock()
    swapper.swap = AsyncMock(return_value=success_result("swap-sig", "JUPITER"))
    fake_gateway.get_token_balance.side_effect = [1_000_000, 26_000_000]
    return pool, submitter, swapper, fake_gateway


def closer_for(parts, keypair, **exit_config):
    pool, submitter, swapper, gateway = parts
    return PositionCloser(pool, submitter, swapper, gateway, keypair, exit_config=ExitRulesConfig(**exit_config))


class TestPositionCloser:

    @pytest.mark.asyncio
    async def test_closes_and_swaps_received_tokens(self, parts, keypair, pool_snapshot):
        pool, submitter, swapper, _ = parts

        outcome = await closer_for(parts, keypair).close("PosA", pool_snapshot)

        assert outcome.closed
        assert outcome.signatures == ["s1", "s2", "s3"]
        pool.close_transactions.assert_awaited_once_with("PosA")
        templates, network = submitter.execute_with_fallback.call_args.args
        assert len(templates) == 2
        assert network == "mainnet"
        swapper.swap.assert_awaited_once()
        input_mint, output_mint, amount, _ = swapper.swap.call_args.args
        assert (input_mint, output_mint, amount) == (USDC.mint, SOL.mint, 25_000_000)

    @pytest.mark.asyncio
    async def test_swap_disabled(self, parts, keypair, pool_snapshot):
        _, _, swapper, gateway = parts

        outcome = await closer_for(parts, keypair, swap_to_sol_on_exit=False).close("PosA", pool_snapshot)

        assert outcome.closed
        swapper.swap.assert_not_awaited()
        gateway.get_token_balance.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_close_failure_is_reported(self, parts, keypair, pool_snapshot):
        _, submitter, swapper, _ = parts
        submitter.execute_with_fallback.return_value = failure_result(ErrorCode.EXECUTION_EXHAUSTED, "nope", "RPC")

        outcome = await closer_for(parts, keypair).close("PosA", pool_snapshot)

        assert not outcome.closed
        assert outcome.error == "nope"
        swapper.swap.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_bridge_failure_is_reported(self, parts, keypair, pool_snapshot):
        pool, submitter, _, _ = parts
        pool.close_transactions.side_effect = BridgeError("node missing")

        outcome = await closer_for(parts, keypair).close("PosA", pool_snapshot)

        assert not outcome.closed
        submitter.execute_with_fallback.assert_not_awaited()
