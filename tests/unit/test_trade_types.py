"""
Unit tests for core data types, configuration and the manual clock.
"""

import pytest
from datetime import datetime, timedelta

from tradepost import (
    TradeConfig, TradeOffer, TradeItem, TradeProposal, EscrowLot, OfferStatus,
    ManualClock, ValidationError, RateLimitError, ErrorKind, TradeResult,
    InventoryLedger, CurrencyLedger, TierProvider, NotificationSink, PersistenceAdapter,
    InMemoryInventory, InMemoryWallet, StaticTierProvider, PrintNotifier, MemoryStore,
)

from tests.fakes import START


def _offer():
    return TradeOffer(
        offer_id="trade_000003_0badf00d",
        creator_id="alice",
        status=OfferStatus.PENDING,
        offered_items=(TradeItem("iron_sword", 1),),
        offered_currency=50,
        requested_items=(TradeItem("magic_gem", 2),),
        requested_currency=0,
        created_at=START,
        expires_at=START + timedelta(minutes=21),
        integrity_hash="abc",
    )


class TestTradeConfig:

    def test_defaults(self):
        config = TradeConfig()
        assert config.fee_percent == 5
        assert config.escrow_timeout == timedelta(minutes=21)
        assert config.min_action_interval == 3.0
        assert config.burst_limit == 10
        assert config.history_limit == 100
        assert config.history_view_limit == 20

    def test_from_dict(self):
        config = TradeConfig.from_dict({
            "fee_percent": 3,
            "escrow_timeout_seconds": 600,
            "sweep_interval_seconds": 5,
            "burst_limit": 4,
        })
        assert config.fee_percent == 3
        assert config.escrow_timeout == timedelta(minutes=10)
        assert config.sweep_interval == timedelta(seconds=5)
        assert config.burst_limit == 4

    def test_from_dict_unknown_key(self):
        with pytest.raises(ValueError, match="Unknown trade config key"):
            TradeConfig.from_dict({"fee": 5})

    @pytest.mark.parametrize("kwargs", [
        {"fee_percent": 101},
        {"fee_percent": -1},
        {"escrow_timeout": timedelta(0)},
        {"burst_limit": 0},
        {"history_limit": 0},
        {"default_tier": "MYTHIC"},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            TradeConfig(**kwargs)


class TestTradeOffer:

    def test_dict_round_trip(self):
        offer = _offer()
        data = offer.to_dict()
        assert data["id"] == offer.offer_id
        assert data["offeredItems"] == [{"id": "iron_sword", "quantity": 1}]
        assert "resolvedAt" not in data
        assert TradeOffer.from_dict(data) == offer

    def test_resolved_round_trip(self):
        resolved = _offer().resolve(OfferStatus.CANCELLED, START, "alice", reason="cancelled by creator")
        assert TradeOffer.from_dict(resolved.to_dict()) == resolved

    def test_resolve_only_once(self):
        resolved = _offer().resolve(OfferStatus.EXPIRED, START, "system")
        with pytest.raises(ValueError):
            resolved.resolve(OfferStatus.COMPLETED, START, "bob")

    def test_resolve_requires_terminal(self):
        with pytest.raises(ValueError):
            _offer().resolve(OfferStatus.PENDING, START, "bob")

    def test_expiry_at_deadline(self):
        offer = _offer()
        assert not offer.is_expired(offer.expires_at - timedelta(microseconds=1))
        assert offer.is_expired(offer.expires_at)
        assert offer.time_left(START) == timedelta(minutes=21)
        assert offer.time_left(START + timedelta(hours=1)) == timedelta(0)

    @pytest.mark.parametrize("missing", ["id", "creator", "status", "offeredItems", "expiresAt"])
    def test_from_dict_missing_field(self, missing):
        data = _offer().to_dict()
        del data[missing]
        with pytest.raises(KeyError):
            TradeOffer.from_dict(data)

    def test_lot_for_offer(self):
        lot = EscrowLot.for_offer(_offer())
        assert lot == EscrowLot("alice", (TradeItem("iron_sword", 1),), 50)
        assert EscrowLot.from_dict(lot.to_dict()) == lot


class TestProposalAndResults:

    def test_trade_value_is_larger_leg(self):
        assert TradeProposal(offered_currency=50, requested_currency=30).trade_value == 50
        assert TradeProposal(offered_currency=5, requested_currency=300).trade_value == 300

    def test_error_kinds(self):
        assert ValidationError(["a", "b"]).kind is ErrorKind.VALIDATION
        assert str(ValidationError(["a", "b"])) == "a, b"
        assert RateLimitError("slow down", 2.0).retry_after == 2.0

    def test_result_failure(self):
        result = TradeResult.failure(RateLimitError("slow down"))
        assert not result
        assert result.error is ErrorKind.RATE_LIMIT
        assert result.message == "slow down"


class TestCollaborators:

    def test_reference_implementations_satisfy_protocols(self):
        assert isinstance(InMemoryInventory(), InventoryLedger)
        assert isinstance(InMemoryWallet(), CurrencyLedger)
        assert isinstance(StaticTierProvider(), TierProvider)
        assert isinstance(PrintNotifier(), NotificationSink)
        assert isinstance(MemoryStore(), PersistenceAdapter)

    def test_wallet_never_negative(self):
        wallet = InMemoryWallet({"alice": 10})
        assert not wallet.debit("alice", 11)
        assert wallet.balance("alice") == 10
        assert wallet.debit("alice", 10)
        assert wallet.balance("alice") == 0

    def test_inventory_remove_short(self):
        inventory = InMemoryInventory({"alice": {"magic_gem": 1}})
        with pytest.raises(ValueError):
            inventory.remove("alice", "magic_gem", 2)
        inventory.remove("alice", "magic_gem", 1)
        assert inventory.items_of("alice") == {}

    def test_print_notifier(self, capsys):
        notifier = PrintNotifier()
        notifier.notify("Trade completed! Fee: 4", "success")
        assert notifier.messages == [("Trade completed! Fee: 4", "success")]
        assert "✓ Trade completed! Fee: 4" in capsys.readouterr().out


class TestManualClock:

    def test_advance(self):
        clock = ManualClock(datetime(2025, 1, 1))
        clock.advance(seconds=5)
        clock.advance(timedelta(minutes=1))
        clock.advance(2.5)
        assert clock.monotonic() == pytest.approx(67.5)
        assert clock.now() == datetime(2025, 1, 1, 0, 1, 7, 500000)

    def test_never_backwards(self):
        clock = ManualClock(datetime(2025, 1, 1))
        with pytest.raises(ValueError):
            clock.advance(seconds=-1)
        with pytest.raises(ValueError):
            clock.set(datetime(2024, 12, 31))
        clock.set(datetime(2025, 1, 2))
        assert clock.monotonic() == 86400.0
