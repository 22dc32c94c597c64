from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from skin_analyzer.errors import AlreadyInFlightError, TooSoonError

logger = logging.getLogger("skin-analyzer.gate")


def _now_ms() -> int:
    return int(time.monotonic() * 1000)


class RequestLifecycleState:
    def __init__(self) -> None:
        self.last_request_ms: Optional[int] = None
        self.in_flight = False
        self.cancellation_handle: Optional[asyncio.Future] = None
        self.completed_count = 0


class Admission:
    """Ticket for one admitted submission. Releasing it more than once is a no-op."""

    def __init__(self, gate: RequestGate, admitted_at_ms: int) -> None:
        self._gate = gate
        self.admitted_at_ms = admitted_at_ms
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def bind(self, handle: asyncio.Future) -> None:
        if not self._released:
            self._gate.state.cancellation_handle = handle

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._gate._release()

    def __enter__(self) -> Admission:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


class RequestGate:
    def __init__(self, *, min_interval_ms: int, state: Optional[RequestLifecycleState] = None) -> None:
        self.min_interval_ms = max(0, int(min_interval_ms))
        self.state = state or RequestLifecycleState()

    def try_admit(self, now_ms: Optional[int] = None) -> Admission:
        # Check and mark happen without an await in between, so two coroutines
        # on the same loop can never both be admitted.
        now = _now_ms() if now_ms is None else now_ms
        state = self.state
        if state.in_flight:
            raise AlreadyInFlightError()
        if state.last_request_ms is not None:
            elapsed = now - state.last_request_ms
            if elapsed < self.min_interval_ms:
                raise TooSoonError(self.min_interval_ms - elapsed)

        state.in_flight = True
        state.last_request_ms = now
        return Admission(self, now)

    def _release(self) -> None:
        state = self.state
        state.in_flight = False
        state.cancellation_handle = None
        state.completed_count += 1

    def cancel(self) -> bool:
        handle = self.state.cancellation_handle
        if handle is None or handle.done():
            return False
        return handle.cancel()


class GateRegistry:
    """One gate per client key; each storefront page gets its own lifecycle state."""

    def __init__(self, *, min_interval_ms: int, max_idle_gates: int = 1000) -> None:
        self._min_interval_ms = min_interval_ms
        self._max_idle_gates = max_idle_gates
        self._gates: dict[str, RequestGate] = {}

    def get(self, client_key: str) -> RequestGate:
        key = (client_key or "").strip()[:200] or "anonymous"
        gate = self._gates.get(key)
        if gate is None:
            if len(self._gates) >= self._max_idle_gates:
                self._prune(_now_ms())
            gate = RequestGate(min_interval_ms=self._min_interval_ms)
            self._gates[key] = gate
        return gate

    def _prune(self, now_ms: int) -> None:
        # A gate whose interval has elapsed and has nothing in flight behaves
        # exactly like a fresh one, so it can be dropped.
        stale = [
            key
            for key, gate in self._gates.items()
            if not gate.state.in_flight
            and (gate.state.last_request_ms is None or now_ms - gate.state.last_request_ms >= gate.min_interval_ms)
        ]
        for key in stale:
            self._gates.pop(key, None)

    def cancel_all(self) -> int:
        cancelled = 0
        for key, gate in self._gates.items():
            if gate.cancel():
                cancelled += 1
                logger.info("in_flight_cancelled client_key=%s", key)
        return cancelled

    def __len__(self) -> int:
        return len(self._gates)
