"""
Signal Bus Tests
================
Lifecycle events reach subscribers without ever blocking the emitter.
"""

import asyncio

import pytest

from src.shared.system.signal_bus import SignalBus, SignalType


class TestSignalBus:

    def test_sync_subscriber_receives_signal(self):
        bus = SignalBus()
        received = []
        bus.subscribe(SignalType.POSITION_OPENED, received.append)

        signal = bus.emit(SignalType.POSITION_OPENED, "CLI", position_id="PosA")

        assert received == [signal]
        assert signal.data == {"position_id": "PosA"}

    def test_failing_subscriber_does_not_break_emit(self):
        bus = SignalBus()
        received = []

        def broken(_signal):
            raise RuntimeError("dashboard down")

        bus.subscribe(SignalType.VALUATION, broken)
        bus.subscribe(SignalType.VALUATION, received.append)

        bus.emit(SignalType.VALUATION, "MONITOR", total_usd=1.0)

        assert len(received) == 1

    def test_unsubscribe(self):
        bus = SignalBus()
        received = []
        bus.subscribe(SignalType.SWAP_FAILED, received.append)
        bus.unsubscribe(SignalType.SWAP_FAILED, received.append)

        bus.emit(SignalType.SWAP_FAILED, "SWAP")

        assert received == []

    def test_history_is_bounded(self):
        bus = SignalBus(max_history=3)
        for i in range(5):
            bus.emit(SignalType.VALUATION, "MONITOR", tick=i)

        assert [s.data["tick"] for s in bus.history()] == [2, 3, 4]
        assert bus.history(SignalType.SWAP_FAILED) == []

    @pytest.mark.asyncio
    async def test_async_subscriber_runs_as_task(self):
        bus = SignalBus()
        received = []

        async def handler(signal):
            received.append(signal.type)

        bus.subscribe(SignalType.REBALANCE_COMPLETED, handler)
        bus.emit(SignalType.REBALANCE_COMPLETED, "MONITOR")

        assert received == []
        await asyncio.sleep(0)
        assert received == [SignalType.REBALANCE_COMPLETED]
