"""
limits.py - Tier-based trading limits

Each actor's progression tier sets two ceilings:
- how many trades it may make per local calendar day
- the largest currency leg a single trade may carry

The daily counter resets the first time it is touched on a new local day.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Mapping, Optional

from .clock import Clock, SystemClock
from .core import PolicyError, TierProvider, TradeConfig


@dataclass(slots=True)
class ActorLimitState:
    """Daily trade bookkeeping for one actor."""
    daily_trade_count: int = 0
    last_trade_date: Optional[str] = None  # ISO date of the last counted trade

    def count_on(self, today: date) -> int:
        """Trades counted on `today`; zero if the last trade was on another day."""
        if self.last_trade_date != today.isoformat():
            return 0
        return self.daily_trade_count

    def to_dict(self) -> Dict[str, Any]:
        return {"dailyTradeCount": self.daily_trade_count, "lastTradeDate": self.last_trade_date}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'ActorLimitState':
        count = data.get("dailyTradeCount", 0)
        last = data.get("lastTradeDate")
        if not isinstance(count, int) or isinstance(count, bool) or count < 0:
            raise ValueError(f"bad dailyTradeCount: {count!r}")
        if last is not None:
            date.fromisoformat(last)
        return cls(daily_trade_count=count, last_trade_date=last)


class LimitsPolicy:
    """
    Resolves an actor's tier and enforces its daily count and value ceilings.

    Tiers unknown to the config fall back to config.default_tier.
    """

    def __init__(
        self,
        tiers: TierProvider,
        config: Optional[TradeConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self.tiers = tiers
        self.config = config or TradeConfig()
        self.clock = clock or SystemClock()
        self._states: Dict[str, ActorLimitState] = {}

    # ========================================================================
    # QUERIES
    # ========================================================================

    def tier_of(self, actor_id: str) -> str:
        tier = self.tiers.current_tier(actor_id)
        if tier not in self.config.daily_trade_limits or tier not in self.config.max_trade_values:
            return self.config.default_tier
        return tier

    def daily_limit(self, actor_id: str) -> int:
        return self.config.daily_trade_limits[self.tier_of(actor_id)]

    def max_value(self, actor_id: str) -> int:
        return self.config.max_trade_values[self.tier_of(actor_id)]

    def state_of(self, actor_id: str) -> ActorLimitState:
        """Copy of the actor's bookkeeping (fresh state if never seen)."""
        state = self._states.get(actor_id)
        if state is None:
            return ActorLimitState()
        return ActorLimitState(state.daily_trade_count, state.last_trade_date)

    def daily_used(self, actor_id: str) -> int:
        state = self._states.get(actor_id)
        if state is None:
            return 0
        return state.count_on(self.clock.now().date())

    def describe(self, actor_id: str) -> Dict[str, Any]:
        limit = self.daily_limit(actor_id)
        used = self.daily_used(actor_id)
        return {
            "tier": self.tier_of(actor_id),
            "daily_limit": limit,
            "daily_used": used,
            "daily_remaining": max(0, limit - used),
            "max_value": self.max_value(actor_id),
            "fee_percent": self.config.fee_percent,
        }

    # ========================================================================
    # CHECKS
    # ========================================================================

    def check_daily(self, actor_id: str) -> None:
        """
        Raises:
            PolicyError: If the actor has used up today's trades
        """
        limit = self.daily_limit(actor_id)
        if self.daily_used(actor_id) >= limit:
            raise PolicyError(
                f"Daily trade limit reached ({limit}). Upgrade tier for more trades."
            )

    def check_value(self, actor_id: str, value: int) -> None:
        """
        Raises:
            PolicyError: If value is above the actor's per-trade ceiling
        """
        ceiling = self.max_value(actor_id)
        if value > ceiling:
            raise PolicyError(
                f"Trade exceeds tier limit ({ceiling}). Upgrade tier for higher limits."
            )

    # ========================================================================
    # MUTATION
    # ========================================================================

    def record_trade(self, actor_id: str) -> None:
        """Count one committed trade for actor_id today."""
        today = self.clock.now().date().isoformat()
        state = self._states.setdefault(actor_id, ActorLimitState())
        if state.last_trade_date != today:
            state.daily_trade_count = 0
            state.last_trade_date = today
        state.daily_trade_count += 1

    def export_states(self) -> Dict[str, Dict[str, Any]]:
        return {actor: state.to_dict() for actor, state in sorted(self._states.items())}

    def import_states(self, raw: Mapping[str, Any]) -> int:
        """
        Replace all bookkeeping from persisted form.

        Malformed entries are skipped. Returns how many were skipped.
        """
        states: Dict[str, ActorLimitState] = {}
        skipped = 0
        for actor, entry in raw.items():
            try:
                states[str(actor)] = ActorLimitState.from_dict(entry)
            except (AttributeError, TypeError, ValueError):
                skipped += 1
        self._states = states
        return skipped
