"""
Conservation Law Conformance Tests

INVARIANT: For every currency and item, at all times t:
    Σ held by actors + Σ held in escrow + fees collected = constant

Offers move assets between actors, escrow and the fee pool, but never
create or destroy them, whether operations succeed, fail, expire or are
retried.
"""

import pytest
from hypothesis import given, settings, note, HealthCheck
from hypothesis import strategies as st
from datetime import timedelta

from tradepost import (
    TradeEngine, ManualClock, InMemoryInventory, InMemoryWallet, StaticTierProvider,
)

from tests.fakes import START, offer, relaxed_config, world_totals


ACTORS = ["alice", "bob", "carol"]
ITEMS = ["iron_sword", "magic_gem", "health_potion"]


# =============================================================================
# STRATEGIES FOR PROPERTY-BASED TESTING
# =============================================================================

@st.composite
def item_side(draw):
    """Zero to two distinct (item_id, quantity) pairs."""
    chosen = draw(st.lists(st.sampled_from(ITEMS), max_size=2, unique=True))
    return [(item_id, draw(st.integers(min_value=1, max_value=4))) for item_id in chosen]


@st.composite
def operation(draw):
    kind = draw(st.sampled_from(["create", "accept", "cancel", "advance", "sweep"]))
    actor = draw(st.sampled_from(ACTORS))
    if kind == "create":
        return ("create", actor, offer(
            offered_currency=draw(st.integers(min_value=0, max_value=120)),
            requested_currency=draw(st.integers(min_value=0, max_value=120)),
            offered_items=draw(item_side()),
            requested_items=draw(item_side()),
        ))
    if kind in ("accept", "cancel"):
        # index into the offers created so far; resolved offers stay eligible
        return (kind, actor, draw(st.integers(min_value=0, max_value=20)))
    if kind == "advance":
        return ("advance", None, draw(st.integers(min_value=1, max_value=15 * 60)))
    return ("sweep", None, None)


def _world():
    clock = ManualClock(START)
    wallet = InMemoryWallet({"alice": 300, "bob": 200, "carol": 100})
    inventory = InMemoryInventory({
        "alice": {"iron_sword": 3, "health_potion": 6},
        "bob": {"magic_gem": 5},
        "carol": {"iron_sword": 1, "magic_gem": 2, "health_potion": 2},
    })
    engine = TradeEngine(
        inventory, wallet,
        tiers=StaticTierProvider(),
        clock=clock,
        config=relaxed_config(),
        verbose=False,
    )
    return engine, wallet, inventory, clock


# =============================================================================
# CONSERVATION PROPERTY TESTS
# =============================================================================

class TestConservationProperties:
    """Property-based tests for the conservation invariant."""

    @given(st.lists(operation(), min_size=1, max_size=40))
    @settings(max_examples=150, deadline=None, suppress_health_check=[HealthCheck.too_slow])
    def test_conservation_holds_for_arbitrary_sequences(self, ops):
        """
        PROPERTY: Conservation holds after every operation of any sequence.

        ∀ sequence S of create/accept/cancel/advance/sweep:
            totals(before S) = totals(after each step of S)
        """
        engine, wallet, inventory, clock = _world()
        initial = world_totals(engine, wallet, inventory)
        created = []

        for kind, actor, arg in ops:
            if kind == "create":
                result = engine.create_offer(actor, arg)
                if result.ok:
                    created.append(result.value.offer_id)
            elif kind == "accept" and created:
                engine.accept_offer(actor, created[arg % len(created)])
            elif kind == "cancel" and created:
                engine.cancel_offer(actor, created[arg % len(created)])
            elif kind == "advance":
                clock.advance(seconds=arg)
            elif kind == "sweep":
                engine.sweep_expired()

            note(f"{kind} {actor} → totals {world_totals(engine, wallet, inventory)}")
            assert world_totals(engine, wallet, inventory) == initial

    @given(st.lists(operation(), min_size=1, max_size=30))
    @settings(max_examples=75, deadline=None)
    def test_escrow_empty_once_everything_expires(self, ops):
        """
        PROPERTY: After all deadlines pass and a sweep runs, nothing is left in
        escrow and actors hold everything except the collected fees.
        """
        engine, wallet, inventory, clock = _world()
        created = []
        for kind, actor, arg in ops:
            if kind == "create":
                result = engine.create_offer(actor, arg)
                if result.ok:
                    created.append(result.value.offer_id)
            elif kind == "accept" and created:
                engine.accept_offer(actor, created[arg % len(created)])
            elif kind == "advance":
                clock.advance(seconds=arg)

        clock.advance(timedelta(minutes=21))
        engine.sweep_expired()

        assert engine.get_active_offers() == []
        assert engine.escrowed_currency() == 0
        assert engine.escrowed_items() == {}
        assert wallet.total() + engine.fees_collected == 600

    @given(
        offered=st.integers(min_value=0, max_value=200),
        requested=st.integers(min_value=1, max_value=200),
    )
    @settings(max_examples=100, deadline=None)
    def test_fee_split_conserves_currency(self, offered, requested):
        """
        PROPERTY: After a settlement, what the two sides received plus the fee
        equals what they put in.
        """
        engine, wallet, inventory, clock = _world()
        proposal = offer(
            offered_currency=offered,
            requested_currency=requested,
            offered_items=[] if offered else [("iron_sword", 1)],
        )
        offer_id = engine.create_offer("alice", proposal).unwrap().offer_id
        settlement = engine.accept_offer("bob", offer_id).unwrap()

        assert (settlement.received_currency + settlement.creator_received_currency
                + settlement.fee) == offered + requested
        assert settlement.fee <= (offered + requested) * 5 // 100


# =============================================================================
# CONSERVATION EXAMPLES
# =============================================================================

class TestConservationExamples:

    def test_worked_example(self, engine, wallet, inventory):
        """
        A offers 1 iron_sword + 50 for 30. Fee = floor(80 * 5 / 100) = 4,
        split 2/2. A ends at 100 - 50 + 28 = 78, B at 40 - 30 + 48 = 58.
        """
        before = world_totals(engine, wallet, inventory)
        offer_id = engine.create_offer("alice", offer(
            offered_currency=50, requested_currency=30, offered_items=[("iron_sword", 1)],
        )).value.offer_id
        assert world_totals(engine, wallet, inventory) == before

        settlement = engine.accept_offer("bob", offer_id).value
        assert settlement.fee == 4
        assert wallet.balance("alice") == 78
        assert wallet.balance("bob") == 58
        assert inventory.quantity("bob", "iron_sword") == 1
        assert world_totals(engine, wallet, inventory) == before

    @pytest.mark.parametrize("finish", ["cancel", "expire", "sweep"])
    def test_unsettled_offer_returns_everything(self, engine, wallet, inventory, clock, finish):
        before_balances = wallet.balances()
        before_items = inventory.as_dict()
        offer_id = engine.create_offer("alice", offer(
            offered_currency=70, requested_items=[("magic_gem", 1)],
            offered_items=[("health_potion", 5)],
        )).value.offer_id

        if finish == "cancel":
            assert engine.cancel_offer("alice", offer_id).ok
        elif finish == "expire":
            clock.advance(timedelta(minutes=21))
            assert not engine.accept_offer("bob", offer_id).ok
        else:
            clock.advance(timedelta(minutes=21))
            assert engine.sweep_expired() == [offer_id]

        assert wallet.balances() == before_balances
        assert inventory.as_dict() == before_items
        assert engine.fees_collected == 0
