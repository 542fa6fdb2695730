"""
conftest.py - Shared pytest fixtures for trading engine tests

Provides common fixtures used across unit and conformance tests:
- A manual clock starting at midday so day boundaries are easy to cross
- Funded wallets and inventories for alice, bob and carol
- Engines wired to those collaborators, with and without a store
"""

import pytest

from tradepost import (
    TradeEngine, ManualClock,
    InMemoryInventory, InMemoryWallet, StaticTierProvider,
    MemoryStore,
)

from tests.fakes import START, RecordingNotifier, relaxed_config


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    return ManualClock(START)


@pytest.fixture
def wallet():
    """alice 100, bob 40, carol 500."""
    return InMemoryWallet({"alice": 100, "bob": 40, "carol": 500})


@pytest.fixture
def inventory():
    return InMemoryInventory({
        "alice": {"iron_sword": 2, "health_potion": 5},
        "bob": {"magic_gem": 3},
        "carol": {"magic_gem": 10, "dragon_scale": 1},
    })


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def tiers():
    """carol is INFERNO, everyone else the default EMBER."""
    return StaticTierProvider({"carol": "INFERNO"})


@pytest.fixture
def store():
    return MemoryStore()


# =============================================================================
# ENGINE FIXTURES
# =============================================================================

@pytest.fixture
def engine(inventory, wallet, tiers, notifier, clock):
    """Engine with the default game config and no store."""
    return TradeEngine(
        inventory, wallet,
        tiers=tiers, notifier=notifier, clock=clock,
        verbose=False,
    )


@pytest.fixture
def stored_engine(inventory, wallet, tiers, notifier, clock, store):
    """Engine that saves every transition into a MemoryStore."""
    return TradeEngine(
        inventory, wallet,
        tiers=tiers, notifier=notifier, store=store, clock=clock,
        verbose=False,
    )


@pytest.fixture
def relaxed_engine(inventory, wallet, tiers, notifier, clock):
    """Engine without throttling or tier ceilings."""
    return TradeEngine(
        inventory, wallet,
        tiers=tiers, notifier=notifier, clock=clock,
        config=relaxed_config(), verbose=False,
    )
