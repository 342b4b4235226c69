"""Burst-then-steady-state alert throttling.

An alert identity (``AlertKey``) may be emitted ``burst_limit`` times in a
row; after that each further emission must wait ``min_interval`` seconds
since the previous one. A quiet period longer than ``burst_window`` restores
the full burst budget.

``should_emit`` is a pure query and ``record_emission`` the only mutator, so
callers record an emission only after the send actually succeeded. Callers
that await between the two must hold ``lock(key)`` to keep the decision
atomic per key.
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass


@dataclass(frozen=True)
class AlertKey:
    """Identity of a recurring alert.

    Attributes:
        scope: Network or service name.
        message: Semantic alert text, without dynamic annotations.
    """

    scope: str
    message: str

    def __str__(self) -> str:
        return f"{self.scope}:{self.message}"


@dataclass
class ThrottleState:
    """Per-key emission history."""

    last_emitted_at: float | None = None
    emitted_count_in_burst: int = 0


@dataclass(frozen=True)
class ThrottlePolicy:
    """Throttle parameters, in seconds.

    Attributes:
        min_interval: Minimum gap between emissions once the burst is used.
        burst_limit: Emissions allowed before steady-state throttling.
        burst_window: Quiet period after which the burst budget resets.
    """

    min_interval: float = 300.0
    burst_limit: int = 3
    burst_window: float = 900.0

    def __post_init__(self) -> None:
        if self.min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        if self.burst_limit < 0:
            raise ValueError("burst_limit must be >= 0")
        if self.burst_window < 0:
            raise ValueError("burst_window must be >= 0")


class AlertThrottle:
    """Process-local throttle table keyed by ``AlertKey``.

    Example:
        ```python
        throttle = AlertThrottle(ThrottlePolicy())
        key = AlertKey("Ethereum", "API has recovered")

        async with throttle.lock(key):
            if throttle.should_emit(key, now) and await channel.send(text):
                throttle.record_emission(key, now)
        ```
    """

    def __init__(self, policy: ThrottlePolicy | None = None) -> None:
        self.policy = policy or ThrottlePolicy()
        self._states: dict[AlertKey, ThrottleState] = {}
        self._locks: dict[AlertKey, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, key: object) -> bool:
        return key in self._states

    def state(self, key: AlertKey) -> ThrottleState | None:
        """Return a copy of the state for ``key``, or None if never emitted."""
        state = self._states.get(key)
        if state is None:
            return None
        return ThrottleState(state.last_emitted_at, state.emitted_count_in_burst)

    def lock(self, key: AlertKey) -> asyncio.Lock:
        """Lock serializing the decide-send-record sequence for ``key``."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def _effective_count(self, state: ThrottleState, now: float) -> int:
        if (
            state.last_emitted_at is not None
            and now - state.last_emitted_at > self.policy.burst_window
        ):
            return 0
        return state.emitted_count_in_burst

    def should_emit(self, key: AlertKey, now: float) -> bool:
        """Decide whether ``key`` may be emitted at ``now``. Never mutates."""
        state = self._states.get(key)
        if state is None:
            return True

        if self._effective_count(state, now) < self.policy.burst_limit:
            return True

        last = state.last_emitted_at if state.last_emitted_at is not None else -math.inf
        return now - last >= self.policy.min_interval

    def burst_position(self, key: AlertKey, now: float) -> int:
        """1-based position the next emission of ``key`` would take in its burst."""
        state = self._states.get(key)
        if state is None:
            return 1
        return self._effective_count(state, now) + 1

    def record_emission(self, key: AlertKey, now: float) -> None:
        """Record a successful emission of ``key`` at ``now``."""
        state = self._states.get(key)
        if state is None:
            state = self._states[key] = ThrottleState()

        state.emitted_count_in_burst = self._effective_count(state, now) + 1
        state.last_emitted_at = now
