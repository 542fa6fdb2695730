"""
rate_limiter.py - Per-actor throttling of trade actions

Two independent rules, neither aware of trade semantics:
1. Cooldown: a minimum interval between an actor's consecutive actions
2. Burst cap: at most N actions inside a fixed window

check_action() only reads. record_action() is the sole mutation and is
called after an action has been committed.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Optional
import math

from .clock import Clock, SystemClock
from .core import RateLimitError


@dataclass(frozen=True, slots=True)
class RateCheck:
    allowed: bool
    reason: Optional[str] = None
    retry_after: float = 0.0


@dataclass(slots=True)
class _ActorWindow:
    last_action: Optional[float] = None
    window_start: float = 0.0
    action_count: int = 0


class RateLimiter:
    """
    Cooldown and burst throttling keyed by actor id.

    State is per process and is not persisted.
    """

    def __init__(
        self,
        min_interval: float = 3.0,
        burst_limit: int = 10,
        burst_window: float = 60.0,
        clock: Optional[Clock] = None,
    ):
        self.min_interval = min_interval
        self.burst_limit = burst_limit
        self.burst_window = burst_window
        self.clock = clock or SystemClock()
        self._actors: Dict[str, _ActorWindow] = {}

    def check_action(self, actor_id: str) -> RateCheck:
        """Report whether actor_id may act now, without changing any state."""
        state = self._actors.get(actor_id)
        if state is None:
            return RateCheck(True)
        now = self.clock.monotonic()

        if state.last_action is not None:
            elapsed = now - state.last_action
            if elapsed < self.min_interval:
                retry = self.min_interval - elapsed
                return RateCheck(
                    False,
                    f"Please wait {math.ceil(retry)}s between trades",
                    retry,
                )

        if now - state.window_start <= self.burst_window and state.action_count >= self.burst_limit:
            retry = self.burst_window - (now - state.window_start)
            return RateCheck(False, "Too many trade actions. Wait a minute.", retry)

        return RateCheck(True)

    def require(self, actor_id: str) -> None:
        """
        Raises:
            RateLimitError: If check_action() denies the action
        """
        check = self.check_action(actor_id)
        if not check.allowed:
            raise RateLimitError(check.reason or "Rate limited", check.retry_after)

    def record_action(self, actor_id: str) -> None:
        """Count one committed action for actor_id."""
        now = self.clock.monotonic()
        state = self._actors.get(actor_id)
        if state is None:
            state = self._actors[actor_id] = _ActorWindow(window_start=now)
        if now - state.window_start > self.burst_window:
            state.window_start = now
            state.action_count = 0
        state.last_action = now
        state.action_count += 1

    def reset(self, actor_id: Optional[str] = None) -> None:
        """Forget one actor's history, or everyone's."""
        if actor_id is None:
            self._actors.clear()
        else:
            self._actors.pop(actor_id, None)
