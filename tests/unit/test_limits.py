"""
Unit tests for tier-based trade limits.
"""

import pytest
from datetime import date, timedelta

from tradepost import (
    LimitsPolicy, ActorLimitState, StaticTierProvider, TradeConfig, PolicyError,
    TIERS, trade_fib,
)
from tradepost.core import DEFAULT_DAILY_TRADE_LIMITS, DEFAULT_MAX_TRADE_VALUES


@pytest.fixture
def policy(clock):
    tiers = StaticTierProvider({"carol": "INFERNO", "dave": "MYTHIC"})
    return LimitsPolicy(tiers, TradeConfig(), clock)


class TestTierTables:

    def test_daily_limits_are_fibonacci(self):
        assert [DEFAULT_DAILY_TRADE_LIMITS[t] for t in TIERS] == [8, 13, 21, 34, 55]

    def test_value_ceilings(self):
        assert [DEFAULT_MAX_TRADE_VALUES[t] for t in TIERS] == [340, 550, 890, 1440, 2330]

    def test_trade_fib_clamps(self):
        assert trade_fib(-1) == 0
        assert trade_fib(8) == 21
        assert trade_fib(1000) == 377


class TestTierResolution:

    def test_known_tier(self, policy):
        assert policy.tier_of("carol") == "INFERNO"
        assert policy.daily_limit("carol") == 55
        assert policy.max_value("carol") == 2330

    def test_default_tier(self, policy):
        assert policy.tier_of("alice") == "EMBER"
        assert policy.daily_limit("alice") == 8

    def test_unknown_tier_falls_back(self, policy):
        assert policy.tier_of("dave") == "EMBER"

    def test_describe(self, policy):
        policy.record_trade("alice")
        assert policy.describe("alice") == {
            "tier": "EMBER",
            "daily_limit": 8,
            "daily_used": 1,
            "daily_remaining": 7,
            "max_value": 340,
            "fee_percent": 5,
        }


class TestDailyLimit:

    def test_limit_reached(self, policy):
        for _ in range(8):
            policy.check_daily("alice")
            policy.record_trade("alice")
        with pytest.raises(PolicyError, match=r"Daily trade limit reached \(8\)"):
            policy.check_daily("alice")

    def test_resets_on_new_day(self, policy, clock):
        for _ in range(8):
            policy.record_trade("alice")
        clock.advance(timedelta(hours=12))
        assert policy.daily_used("alice") == 0
        policy.check_daily("alice")
        policy.record_trade("alice")
        assert policy.state_of("alice").daily_trade_count == 1

    def test_state_of_is_a_copy(self, policy):
        policy.record_trade("alice")
        state = policy.state_of("alice")
        state.daily_trade_count = 99
        assert policy.daily_used("alice") == 1


class TestValueCeiling:

    def test_at_ceiling_allowed(self, policy):
        policy.check_value("alice", 340)

    def test_above_ceiling_rejected(self, policy):
        with pytest.raises(PolicyError, match=r"Trade exceeds tier limit \(340\)"):
            policy.check_value("alice", 341)

    def test_higher_tier(self, policy):
        policy.check_value("carol", 2330)


class TestLimitStatePersistence:

    def test_export_import(self, policy, clock):
        policy.record_trade("alice")
        policy.record_trade("alice")
        exported = policy.export_states()
        assert exported == {
            "alice": {"dailyTradeCount": 2, "lastTradeDate": clock.now().date().isoformat()},
        }

        fresh = LimitsPolicy(StaticTierProvider(), TradeConfig(), clock)
        assert fresh.import_states(exported) == 0
        assert fresh.daily_used("alice") == 2

    def test_malformed_entries_skipped(self, policy):
        skipped = policy.import_states({
            "alice": {"dailyTradeCount": 3, "lastTradeDate": "2025-01-01"},
            "bob": {"dailyTradeCount": -1},
            "carol": {"dailyTradeCount": 1, "lastTradeDate": "yesterday"},
            "dave": "garbage",
        })
        assert skipped == 3
        assert policy.daily_used("alice") == 3

    def test_count_on_other_day(self):
        state = ActorLimitState(5, "2024-12-31")
        assert state.count_on(date(2025, 1, 1)) == 0
        assert state.count_on(date(2024, 12, 31)) == 5
