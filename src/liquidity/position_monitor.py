"""
Position Monitor
================
The control loop that owns one DLMM position from open to close.

States:
    OBSERVING   -> OBSERVING     position in range, or a read failed (tick skipped)
    OBSERVING   -> REBALANCING   active bin drifted past width * threshold
    REBALANCING -> OBSERVING     re-center landed; new position id adopted
    *           -> TERMINATED    position gone, pool unreadable, re-center failed,
                                 or an exit rule closed the position

Each tick runs refresh -> value -> exit rules -> re-center decision strictly
in order; ticks never overlap.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from src.liquidity.exit_rules import ExitRules, ExitSignal, PnlTracker
from src.liquidity.position_closer import PositionCloser
from src.liquidity.types import PoolSnapshot, PositionValuation, RangeGeometry
from src.shared.config.strategy import MonitorConfig
from src.shared.execution.meteora_bridge import DlmmPoolClient
from src.shared.feeds.prices.jupiter import PriceOracle
from src.shared.system.errors import FatalError, TransientReadError
from src.shared.system.logging import Logger
from src.shared.system.signal_bus import SignalBus, SignalType


class MonitorState(Enum):
    OBSERVING = "OBSERVING"
    REBALANCING = "REBALANCING"
    TERMINATED = "TERMINATED"


class TickAction(Enum):
    SKIPPED = "SKIPPED"
    IN_RANGE = "IN_RANGE"
    REBALANCED = "REBALANCED"
    CLOSED = "CLOSED"
    TERMINATED = "TERMINATED"


@dataclass(frozen=True)
class TickReport:
    action: TickAction
    state: MonitorState
    valuation: Optional[PositionValuation] = None
    geometry: Optional[RangeGeometry] = None
    detail: Optional[str] = None


@dataclass(frozen=True)
class MonitorOutcome:
    state: MonitorState
    reason: str
    fatal: bool
    ticks: int
    rebalances: int
    position_id: str


class PositionMonitor:
    """
    Usage:
        monitor = PositionMonitor(bridge, oracle, position_id, config, tracker)
        outcome = await monitor.run()
        if outcome.fatal:
            sys.exit(1)
    """

    def __init__(
        self,
        pool: DlmmPoolClient,
        prices: PriceOracle,
        position_id: str,
        config: Optional[MonitorConfig] = None,
        tracker: Optional[PnlTracker] = None,
        exit_rules: Optional[ExitRules] = None,
        closer: Optional[PositionCloser] = None,
        bus: Optional[SignalBus] = None,
    ):
        self.pool = pool
        self.prices = prices
        self.position_id = position_id
        self.config = config or MonitorConfig()
        self.tracker = tracker or PnlTracker(initial_capital_usd=0.0)
        self.exit_rules = exit_rules
        self.closer = closer
        self.bus = bus

        self.state = MonitorState.OBSERVING
        self.reason = ""
        self.fatal = False
        self.ticks = 0
        self._stop = asyncio.Event()

    # ═══════════════════════════════════════════════════════════════════
    # LOOP
    # ═══════════════════════════════════════════════════════════════════

    async def run(self, max_ticks: Optional[int] = None) -> MonitorOutcome:
        max_ticks = max_ticks if max_ticks is not None else self.config.max_ticks
        Logger.section(f"Monitoring {self.position_id}")

        while self.state != MonitorState.TERMINATED and not self._stop.is_set():
            await self.tick()
            self.ticks += 1
            if max_ticks is not None and self.ticks >= max_ticks:
                break
            if self.state != MonitorState.TERMINATED:
                await self._sleep()

        if self.state == MonitorState.TERMINATED:
            log = Logger.critical if self.fatal else Logger.info
            log(f"[MONITOR] Stopped: {self.reason}")
        else:
            self.reason = "stop requested" if self._stop.is_set() else "tick limit reached"
            Logger.info(f"[MONITOR] Exiting loop: {self.reason}")

        return MonitorOutcome(
            state=self.state,
            reason=self.reason,
            fatal=self.fatal,
            ticks=self.ticks,
            rebalances=self.tracker.rebalance_count,
            position_id=self.position_id,
        )

    def request_stop(self) -> None:
        """Finish the current tick, then leave the loop."""
        if not self._stop.is_set():
            Logger.info("[MONITOR] Shutdown requested; finishing current tick")
            self._stop.set()

    async def _sleep(self) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self.config.interval_sec)
        except asyncio.TimeoutError:
            pass

    # ═══════════════════════════════════════════════════════════════════
    # TICK
    # ═══════════════════════════════════════════════════════════════════

    async def tick(self) -> TickReport:
        """One refresh -> value -> exit rules -> re-center pass. Never raises except FatalError."""
        try:
            return await self._tick()
        except FatalError:
            raise
        except Exception as e:
            if self.state == MonitorState.REBALANCING:
                return self._terminate(f"re-center action failed: {e!r}", fatal=True)
            return self._skip(f"unexpected error: {e!r}")

    async def _tick(self) -> TickReport:
        if self.state == MonitorState.TERMINATED:
            return TickReport(TickAction.TERMINATED, self.state, detail=self.reason)

        # 1. Refresh
        try:
            snapshot = await self.pool.refresh()
        except TransientReadError as e:
            return self._skip(f"pool refresh failed: {e}")

        if snapshot.active_bin is None:
            return self._terminate("active bin unavailable", fatal=True)
        position = snapshot.find_position(self.position_id)
        if position is None:
            return self._terminate(f"position {self.position_id} no longer found", fatal=True)

        # 2-3. Value
        try:
            price_x = await self.prices.get_price(snapshot.token_x.mint)
            price_y = await self.prices.get_price(snapshot.token_y.mint)
        except TransientReadError as e:
            return self._skip(f"price fetch failed: {e}")

        valuation = PositionValuation.of(position, snapshot, price_x, price_y)
        geometry = RangeGeometry.of(position, snapshot.active_bin.bin_id)
        self._report(valuation, geometry, snapshot)

        # Exit rules run before any re-center
        if self.exit_rules is not None:
            signal = self.exit_rules.evaluate(valuation.total_usd)
            if signal is not None:
                closed = await self._exit(signal, snapshot)
                if closed is not None:
                    return closed

        # 4-5. Re-center decision
        if not geometry.needs_recenter(self.config.recenter_threshold):
            return TickReport(TickAction.IN_RANGE, self.state, valuation, geometry)
        return await self._rebalance(snapshot, geometry, valuation)

    async def _rebalance(
        self,
        snapshot: PoolSnapshot,
        geometry: RangeGeometry,
        valuation: PositionValuation,
    ) -> TickReport:
        direction = "UP" if snapshot.active_bin.bin_id > geometry.centre else "DOWN"
        self.state = MonitorState.REBALANCING
        Logger.warning(
            f"[MONITOR] Re-centering {direction}: distance {geometry.distance:.1f} > "
            f"{geometry.width} x {self.config.recenter_threshold}"
        )
        self._emit(
            SignalType.REBALANCE_TRIGGERED,
            position_id=self.position_id,
            direction=direction,
            active_bin=snapshot.active_bin.bin_id,
            distance=geometry.distance,
            width=geometry.width,
        )

        try:
            result = await self.pool.recenter_position(self.position_id, direction)
        except TransientReadError as e:
            self.state = MonitorState.OBSERVING
            return self._skip(f"re-center call failed before acting: {e}")

        if result is None:
            return self._terminate("re-center action failed", fatal=True)

        old_id = self.position_id
        self.position_id = result.position_id
        self.pool.retarget(result.pool_address)
        self.tracker.record_rebalance(result.fees_earned_usd, result.claimed_fees_usd)
        self.state = MonitorState.OBSERVING

        Logger.success(f"[MONITOR] Re-centered {old_id[:8]}... -> {result.position_id[:8]}...")
        self._emit(
            SignalType.REBALANCE_COMPLETED,
            old_position_id=old_id,
            position_id=result.position_id,
            pool=result.pool_address,
            rebalance_count=self.tracker.rebalance_count,
        )
        return TickReport(TickAction.REBALANCED, self.state, valuation, geometry)

    async def _exit(self, signal: ExitSignal, snapshot: PoolSnapshot) -> Optional[TickReport]:
        Logger.warning(f"[EXIT] {signal.reason}")
        if self.closer is None:
            Logger.warning("[EXIT] No closer configured; keeping the position open")
            return None

        outcome = await self.closer.close(self.position_id, snapshot)
        if not outcome.closed:
            Logger.error(f"[EXIT] Close failed, will re-check next tick: {outcome.error}")
            return None

        self._emit(
            SignalType.POSITION_CLOSED,
            position_id=self.position_id,
            reason=signal.kind.value,
            pnl_pct=signal.pnl_pct,
            signatures=outcome.signatures,
        )
        report = self._terminate(signal.reason, fatal=False)
        return TickReport(TickAction.CLOSED, report.state, detail=signal.reason)

    # ═══════════════════════════════════════════════════════════════════
    # HELPERS
    # ═══════════════════════════════════════════════════════════════════

    def _skip(self, detail: str) -> TickReport:
        Logger.warning(f"[MONITOR] Skipping tick: {detail}")
        return TickReport(TickAction.SKIPPED, self.state, detail=detail)

    def _terminate(self, reason: str, fatal: bool) -> TickReport:
        self.state = MonitorState.TERMINATED
        self.reason = reason
        self.fatal = fatal
        return TickReport(TickAction.TERMINATED, self.state, detail=reason)

    def _report(self, valuation: PositionValuation, geometry: RangeGeometry, snapshot: PoolSnapshot) -> None:
        pnl = self.tracker.pnl_usd(valuation.total_usd)
        pnl_pct = self.tracker.pnl_pct(valuation.total_usd)
        pnl_text = f"{pnl:+.2f} ({pnl_pct:+.1f}%)" if pnl_pct is not None else "n/a"
        Logger.info(
            f"[MONITOR] {datetime.now().strftime('%H:%M:%S')} value ${valuation.total_usd:.2f} "
            f"(fees ${valuation.fees_usd:.2f}) | P&L {pnl_text} | "
            f"bin {snapshot.active_bin.bin_id} vs centre {geometry.centre:g} | "
            f"rebalances {self.tracker.rebalance_count}"
        )
        self._emit(
            SignalType.VALUATION,
            position_id=self.position_id,
            total_usd=valuation.total_usd,
            liquidity_usd=valuation.liquidity_usd,
            fees_usd=valuation.fees_usd,
            pnl_usd=pnl,
            pnl_pct=pnl_pct,
            timestamp=time.time(),
        )
        self._emit(
            SignalType.POSITION_UPDATED,
            position_id=self.position_id,
            active_bin=snapshot.active_bin.bin_id,
            centre=geometry.centre,
            width=geometry.width,
            distance=geometry.distance,
        )

    def _emit(self, signal_type: SignalType, **data) -> None:
        if self.bus is not None:
            self.bus.emit(signal_type, "MONITOR", **data)
