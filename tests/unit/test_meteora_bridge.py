"""
Meteora Bridge Tests
====================
The node process is patched out; these cover argument wiring, JSON parsing
and how each failure surfaces.
"""

import json
import subprocess

import pytest
from unittest.mock import MagicMock, patch

from src.shared.config.infrastructure import InfrastructureConfig
from src.shared.execution.meteora_bridge import MeteoraBridge
from src.shared.system.errors import BridgeError

SNAPSHOT = {
    "success": True,
    "pool": "PoolAddr",
    "tokenX": {"mint": "So11111111111111111111111111111111111111112", "decimals": 9, "symbol": "SOL"},
    "tokenY": {"mint": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", "decimals": 6, "symbol": "USDC"},
    "activeBin": {"binId": 120, "price": 151.25},
    "positions": [{
        "publicKey": "PosA",
        "lowerBinId": 100,
        "upperBinId": 139,
        "positionBinData": [
            {"binId": 119, "positionXAmount": "500", "positionYAmount": "0"},
            {"binId": 121, "positionXAmount": "0", "positionYAmount": "700"},
        ],
        "feeX": "11",
        "feeY": "22",
    }],
}


def completed(payload, returncode=0, stderr=""):
    result = MagicMock()
    result.returncode = returncode
    result.stdout = payload if isinstance(payload, str) else json.dumps(payload)
    result.stderr = stderr
    return result


@pytest.fixture
def bridge(tmp_path):
    script = tmp_path / "meteora_bridge.js"
    script.write_text("// bridge")
    config = InfrastructureConfig(meteora_bridge_path=str(script), bridge_timeout_sec=5)
    return MeteoraBridge("PoolAddr", "OwnerKey", "/keys/id.json", config)


class TestSnapshot:

    @pytest.mark.asyncio
    async def test_parses_pool_state(self, bridge):
        with patch("src.shared.execution.meteora_bridge.subprocess.run", return_value=completed(SNAPSHOT)) as run:
            snapshot = await bridge.refresh()

        cmd = run.call_args.args[0]
        assert cmd[0] == "node"
        assert cmd[2:] == ["snapshot", "PoolAddr", "OwnerKey"]

        assert snapshot.active_bin.bin_id == 120
        assert snapshot.token_y.decimals == 6
        position = snapshot.find_position("PosA")
        assert position.total_x == 500
        assert position.total_y == 700
        assert position.fee_y == 22
        assert bridge.get_active_bin().price == 151.25
        assert bridge.get_user_positions() == [position]

    @pytest.mark.asyncio
    async def test_missing_active_bin_is_allowed(self, bridge):
        payload = dict(SNAPSHOT, activeBin=None)
        with patch("src.shared.execution.meteora_bridge.subprocess.run", return_value=completed(payload)):
            snapshot = await bridge.refresh()

        assert snapshot.active_bin is None

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, bridge):
        with patch(
            "src.shared.execution.meteora_bridge.subprocess.run",
            return_value=completed("", returncode=1, stderr="RPC 429"),
        ):
            with pytest.raises(BridgeError, match="RPC 429"):
                await bridge.refresh()

    @pytest.mark.asyncio
    async def test_invalid_json(self, bridge):
        with patch("src.shared.execution.meteora_bridge.subprocess.run", return_value=completed("Loading SDK...")):
            with pytest.raises(BridgeError, match="invalid JSON"):
                await bridge.refresh()

    @pytest.mark.asyncio
    async def test_timeout(self, bridge):
        with patch(
            "src.shared.execution.meteora_bridge.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="node", timeout=5),
        ):
            with pytest.raises(BridgeError, match="timed out"):
                await bridge.refresh()


class TestWrites:

    @pytest.mark.asyncio
    async def test_recenter_result(self, bridge):
        payload = {"success": True, "pool": "PoolAddr", "positionId": "PosB", "feesEarnedUsd": 1.2, "claimedFeesUsd": 0.8}
        with patch("src.shared.execution.meteora_bridge.subprocess.run", return_value=completed(payload)) as run:
            result = await bridge.recenter_position("PosA", "UP")

        assert run.call_args.args[0][2:] == ["recenter", "PoolAddr", "/keys/id.json", "PosA", "UP"]
        assert result.position_id == "PosB"
        assert result.claimed_fees_usd == 0.8

    @pytest.mark.asyncio
    async def test_recenter_failure_is_none(self, bridge):
        payload = {"success": False, "error": "slippage exceeded"}
        with patch("src.shared.execution.meteora_bridge.subprocess.run", return_value=completed(payload)):
            assert await bridge.recenter_position("PosA", "DOWN") is None

    @pytest.mark.asyncio
    async def test_close_transactions(self, bridge):
        payload = {"success": True, "transactions": ["dHgx", "dHgy"]}
        with patch("src.shared.execution.meteora_bridge.subprocess.run", return_value=completed(payload)):
            assert await bridge.close_transactions("PosA") == ["dHgx", "dHgy"]

    @pytest.mark.asyncio
    async def test_close_transactions_empty(self, bridge):
        payload = {"success": True, "transactions": []}
        with patch("src.shared.execution.meteora_bridge.subprocess.run", return_value=completed(payload)):
            with pytest.raises(BridgeError):
                await bridge.close_transactions("PosA")

    @pytest.mark.asyncio
    async def test_open_position(self, bridge):
        payload = {"success": True, "pool": "PoolAddr", "positionId": "PosA", "initialCapitalUsd": 300.5, "signature": "sig"}
        with patch("src.shared.execution.meteora_bridge.subprocess.run", return_value=completed(payload)) as run:
            opened = await bridge.open_position(2.0, 40)

        assert run.call_args.args[0][2:] == ["open", "PoolAddr", "/keys/id.json", "2.0", "40", "Spot"]
        assert opened.initial_capital_usd == 300.5

    def test_retarget_drops_cached_snapshot(self, bridge):
        bridge._snapshot = MagicMock()
        bridge.retarget("OtherPool")

        assert bridge.pool_address == "OtherPool"
        assert bridge.get_active_bin() is None
