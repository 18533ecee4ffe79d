import asyncio
from typing import Dict, List, Callable, Any, Optional
from dataclasses import dataclass, field
from enum import Enum
import time

from src.shared.system.logging import Logger


class SignalType(Enum):
    POSITION_OPENED = "POSITION_OPENED"
    POSITION_UPDATED = "POSITION_UPDATED"
    POSITION_CLOSED = "POSITION_CLOSED"
    REBALANCE_TRIGGERED = "REBALANCE_TRIGGERED"
    REBALANCE_COMPLETED = "REBALANCE_COMPLETED"
    SWAP_SUCCEEDED = "SWAP_SUCCEEDED"
    SWAP_FAILED = "SWAP_FAILED"
    BUNDLE_SUCCEEDED = "BUNDLE_SUCCEEDED"
    BUNDLE_FAILED = "BUNDLE_FAILED"
    VALUATION = "VALUATION"


@dataclass
class Signal:
    type: SignalType
    source: str
    data: Dict[str, Any]
    timestamp: float = field(default_factory=time.time)


class SignalBus:
    """
    One-way lifecycle notifications for the dashboard layer.
    The engine emits and never waits on subscribers.
    """
    def __init__(self, max_history: int = 100):
        self._subscribers: Dict[SignalType, List[Callable]] = {t: [] for t in SignalType}
        self._history: List[Signal] = []
        self._max_history = max_history
        self._pending: set = set()

    def subscribe(self, signal_type: SignalType, callback: Callable[[Signal], Any]):
        """Register a callback for a specific signal type."""
        if callback not in self._subscribers[signal_type]:
            self._subscribers[signal_type].append(callback)

    def unsubscribe(self, signal_type: SignalType, callback: Callable[[Signal], Any]):
        if callback in self._subscribers[signal_type]:
            self._subscribers[signal_type].remove(callback)

    def emit(self, signal_type: SignalType, source: str, **data) -> Signal:
        """Emit a signal to all subscribers."""
        signal = Signal(type=signal_type, source=source, data=data)
        self._history.append(signal)
        if len(self._history) > self._max_history:
            self._history.pop(0)

        for callback in list(self._subscribers.get(signal_type, [])):
            if asyncio.iscoroutinefunction(callback):
                task = asyncio.create_task(callback(signal))
                self._pending.add(task)
                task.add_done_callback(self._on_task_done)
            else:
                try:
                    callback(signal)
                except Exception as e:
                    Logger.error(f"[SYSTEM] Subscriber for {signal_type.value} failed: {e}")
        return signal

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            Logger.error(f"[SYSTEM] Async subscriber failed: {task.exception()}")

    def history(self, signal_type: Optional[SignalType] = None) -> List[Signal]:
        if signal_type is None:
            return list(self._history)
        return [s for s in self._history if s.type == signal_type]
