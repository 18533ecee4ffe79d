"""
Meteora DLMM Python Bridge
===========================
Wrapper for the Node.js DLMM bridge script that ships with the DLMM SDK.

Each call spawns `node <bridge> <command> ...` and parses one JSON object
from stdout. Commands:
- snapshot   <pool> <owner>                          pool tokens, active bin, owner positions
- open       <pool> <wallet> <solAmount> <binSpan> <strategy>
- recenter   <pool> <wallet> <positionId> <direction>
- close-txs  <pool> <owner> <positionId>            unsigned base64 transactions

Usage:
    bridge = MeteoraBridge(pool, owner, wallet_path, infra)
    snapshot = await bridge.refresh()
    active = bridge.get_active_bin()
"""

import asyncio
import json
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from pydantic import ValidationError

from src.liquidity.types import (
    ActiveBinSnapshot,
    BinLiquidity,
    OpenedPosition,
    PoolSnapshot,
    Position,
    RecenterResult,
    TokenInfo,
)
from src.shared.config.infrastructure import InfrastructureConfig
from src.shared.execution.schemas import (
    BridgeCloseTransactions,
    BridgeOpenResult,
    BridgeRecenterResult,
    BridgeSnapshot,
)
from src.shared.system.errors import BridgeError
from src.shared.system.logging import Logger


class DlmmPoolClient(Protocol):
    """Read/write surface of a DLMM pool used by the monitor and closer."""

    pool_address: str

    async def refresh(self) -> PoolSnapshot: ...

    def get_active_bin(self) -> Optional[ActiveBinSnapshot]: ...

    def get_user_positions(self) -> List[Position]: ...

    async def open_position(self, sol_amount: float, bin_span: int, strategy: str = "Spot") -> OpenedPosition: ...

    async def recenter_position(self, position_id: str, direction: str) -> Optional[RecenterResult]: ...

    async def close_transactions(self, position_id: str) -> List[str]: ...

    def retarget(self, pool_address: str) -> None: ...


class MeteoraBridge:
    """
    Python wrapper for the Meteora DLMM Node bridge.

    Bound to one pool and one owner; `retarget` swaps the pool after a
    re-center lands in a different pool account.
    """

    def __init__(
        self,
        pool_address: str,
        owner: str,
        wallet_path: str,
        config: Optional[InfrastructureConfig] = None,
    ):
        config = config or InfrastructureConfig()
        self.pool_address = pool_address
        self.owner = owner
        self.wallet_path = wallet_path
        self.timeout = config.bridge_timeout_sec

        if config.meteora_bridge_path:
            self.bridge_path = Path(config.meteora_bridge_path).expanduser()
        else:
            project_root = Path(__file__).parent.parent.parent.parent
            self.bridge_path = project_root / "bridges" / "meteora_bridge.js"

        if not self.bridge_path.exists():
            Logger.warning(f"[METEORA] Bridge not found at {self.bridge_path}")

        self._snapshot: Optional[PoolSnapshot] = None

    # ═══════════════════════════════════════════════════════════════════
    # PROCESS
    # ═══════════════════════════════════════════════════════════════════

    def _run_command(self, *args: str) -> Dict[str, Any]:
        """Run the bridge and parse its JSON output. Raises BridgeError."""
        cmd = ["node", str(self.bridge_path)] + list(args)
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                cwd=str(self.bridge_path.parent),
            )
        except subprocess.TimeoutExpired as e:
            raise BridgeError(f"bridge '{args[0]}' timed out after {self.timeout}s") from e
        except FileNotFoundError as e:
            raise BridgeError("Node.js not found; the DLMM bridge needs node on PATH") from e

        if result.returncode != 0:
            raise BridgeError(f"bridge '{args[0]}' exited {result.returncode}: {result.stderr.strip()[:300]}")

        try:
            data = json.loads(result.stdout.strip())
        except json.JSONDecodeError as e:
            Logger.debug(f"[METEORA] Raw output: {result.stdout[:200]}")
            raise BridgeError(f"bridge '{args[0]}' printed invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise BridgeError(f"bridge '{args[0]}' returned {type(data).__name__}, expected object")
        return data

    async def _call(self, *args: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self._run_command, *args)

    # ═══════════════════════════════════════════════════════════════════
    # READS
    # ═══════════════════════════════════════════════════════════════════

    async def refresh(self) -> PoolSnapshot:
        data = await self._call("snapshot", self.pool_address, self.owner)
        if data.get("success") is False:
            raise BridgeError(f"snapshot failed: {data.get('error')}")
        try:
            parsed = BridgeSnapshot.model_validate(data)
        except ValidationError as e:
            raise BridgeError(f"snapshot malformed: {e}") from e

        self._snapshot = PoolSnapshot(
            pool_address=parsed.pool,
            token_x=TokenInfo(parsed.token_x.mint, parsed.token_x.decimals, parsed.token_x.symbol),
            token_y=TokenInfo(parsed.token_y.mint, parsed.token_y.decimals, parsed.token_y.symbol),
            active_bin=(
                ActiveBinSnapshot(bin_id=parsed.active_bin.bin_id, price=parsed.active_bin.price)
                if parsed.active_bin else None
            ),
            positions=[
                Position(
                    position_id=p.public_key,
                    lower_bin_id=p.lower_bin_id,
                    upper_bin_id=p.upper_bin_id,
                    bins=[
                        BinLiquidity(b.bin_id, b.position_x_amount, b.position_y_amount)
                        for b in p.position_bin_data
                    ],
                    fee_x=p.fee_x,
                    fee_y=p.fee_y,
                )
                for p in parsed.positions
            ],
        )
        return self._snapshot

    def get_active_bin(self) -> Optional[ActiveBinSnapshot]:
        return self._snapshot.active_bin if self._snapshot else None

    def get_user_positions(self) -> List[Position]:
        return list(self._snapshot.positions) if self._snapshot else []

    # ═══════════════════════════════════════════════════════════════════
    # WRITES
    # ═══════════════════════════════════════════════════════════════════

    async def open_position(self, sol_amount: float, bin_span: int, strategy: str = "Spot") -> OpenedPosition:
        Logger.info(f"[METEORA] Opening {sol_amount} SOL over {bin_span} bins ({strategy})")
        data = await self._call("open", self.pool_address, self.wallet_path, str(sol_amount), str(bin_span), strategy)
        if data.get("success") is False:
            raise BridgeError(f"open failed: {data.get('error')}")
        try:
            parsed = BridgeOpenResult.model_validate(data)
        except ValidationError as e:
            raise BridgeError(f"open result malformed: {e}") from e
        return OpenedPosition(parsed.pool, parsed.position_id, parsed.initial_capital_usd, parsed.signature)

    async def recenter_position(self, position_id: str, direction: str) -> Optional[RecenterResult]:
        """None when the bridge reports the re-center did not happen."""
        data = await self._call("recenter", self.pool_address, self.wallet_path, position_id, direction)
        if data.get("success") is False:
            Logger.error(f"[METEORA] Re-center failed: {data.get('error')}")
            return None
        try:
            parsed = BridgeRecenterResult.model_validate(data)
        except ValidationError as e:
            Logger.error(f"[METEORA] Re-center result malformed: {e}")
            return None
        return RecenterResult(
            pool_address=parsed.pool,
            position_id=parsed.position_id,
            fees_earned_usd=parsed.fees_earned_usd,
            claimed_fees_usd=parsed.claimed_fees_usd,
            compounded=parsed.compounded,
        )

    async def close_transactions(self, position_id: str) -> List[str]:
        """Unsigned transactions that withdraw, claim and close the position."""
        data = await self._call("close-txs", self.pool_address, self.owner, position_id)
        if data.get("success") is False:
            raise BridgeError(f"close-txs failed: {data.get('error')}")
        try:
            return list(BridgeCloseTransactions.model_validate(data).transactions)
        except ValidationError as e:
            raise BridgeError(f"close-txs malformed: {e}") from e

    def retarget(self, pool_address: str) -> None:
        if pool_address != self.pool_address:
            Logger.info(f"[METEORA] Pool changed to {pool_address}")
            self.pool_address = pool_address
            self._snapshot = None
