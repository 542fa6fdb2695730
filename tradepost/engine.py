"""
engine.py - Trade Engine

Orchestrates validation, throttling, tier limits, integrity checks and escrow
into the public trading operations.

State machine:
    pending → completed   (accept_offer)
    pending → cancelled   (cancel_offer, or protective cancel on integrity failure)
    pending → expired     (sweep_expired, or any operation that finds the deadline passed)

Each transition runs under the escrow lock as one check-then-commit sequence:
every check happens before the first asset moves, and the offer leaves the
active set as the final act. Public operations never raise trade errors;
they return a TradeResult.
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from .clock import Clock, SystemClock
from .core import (
    TradeConfig, TradeOffer, OfferStatus, TradeResult, CreatedOffer, Settlement,
    InventoryLedger, CurrencyLedger, TierProvider, NotificationSink, PersistenceAdapter,
    TradeError, ValidationError, NotAuthorizedError, InsufficientAssetsError,
    IntegrityError, ExpiredError,
    SNAPSHOT_VERSION, LEVEL_SUCCESS, LEVEL_WARNING, LEVEL_ERROR, LEVEL_INFO,
)
from .escrow import EscrowLedger, SYSTEM_ACTOR
from .integrity import IntegrityGuard
from .limits import LimitsPolicy
from .rate_limiter import RateLimiter
from .validation import validate_proposal
from .accounts import StaticTierProvider, NullNotifier


class TradeEngine:
    """
    Escrow-based two-party trading.

    Example:
        engine = TradeEngine(InMemoryInventory(), InMemoryWallet({"alice": 100, "bob": 40}))
        created = engine.create_offer("alice", {"offered_currency": 50, "requested_currency": 30})
        settled = engine.accept_offer("bob", created.value.offer_id)
        settled.value.fee  # 4
    """

    def __init__(
        self,
        inventory: InventoryLedger,
        currency: CurrencyLedger,
        tiers: Optional[TierProvider] = None,
        notifier: Optional[NotificationSink] = None,
        store: Optional[PersistenceAdapter] = None,
        config: Optional[TradeConfig] = None,
        clock: Optional[Clock] = None,
        integrity: Optional[IntegrityGuard] = None,
        verbose: bool = True,
    ):
        """
        Create a trade engine.

        Args:
            inventory: Item ledger of all actors
            currency: Currency ledger of all actors
            tiers: Tier lookup (everyone at the default tier if not provided)
            notifier: User notification sink (silent if not provided)
            store: Snapshot store; when given every committed transition is saved
            config: Fees, limits and timeouts (defaults if not provided)
            clock: Time source (system time if not provided)
            integrity: Checksum guard (unkeyed SHA-256 if not provided)
            verbose: Print a line for every rejection and asset movement
        """
        self.config = config or TradeConfig()
        self.clock = clock or SystemClock()
        self.notifier = notifier or NullNotifier()
        self.store = store
        self.verbose = verbose
        self.integrity = integrity or IntegrityGuard()
        self.escrow = EscrowLedger(
            inventory, currency,
            history_limit=self.config.history_limit,
            integrity=self.integrity,
            verbose=verbose,
        )
        self.rate_limiter = RateLimiter(
            min_interval=self.config.min_action_interval,
            burst_limit=self.config.burst_limit,
            burst_window=self.config.burst_window,
            clock=self.clock,
        )
        self.limits = LimitsPolicy(
            tiers or StaticTierProvider(default=self.config.default_tier),
            self.config,
            self.clock,
        )
        self._last_sweep: Optional[datetime] = None

    # ========================================================================
    # RESULT HANDLING
    # ========================================================================

    def _run(self, operation: str, fn: Callable[..., Any], *args: Any) -> TradeResult:
        """Run one operation, converting trade errors into a failed TradeResult."""
        try:
            value = fn(*args)
        except TradeError as e:
            if self.verbose:
                print(f"✗ REJECTED [{operation}]: {e}")
            return TradeResult.failure(e)
        return TradeResult.success(value)

    def _notify(self, message: str, level: str) -> None:
        self.notifier.notify(message, level)

    def _persist(self) -> None:
        if self.store is not None:
            self.store.save(self.snapshot())

    # ========================================================================
    # GUARDS
    # ========================================================================

    def _guard(self, offer: TradeOffer) -> None:
        """
        Verify integrity and expiry of an active offer before acting on it.

        Either failure releases the escrow to the creator first, then raises.

        Raises:
            IntegrityError: If the checksum does not match
            ExpiredError: If the escrow deadline has passed
        """
        now = self.clock.now()
        if not self.integrity.verify(offer):
            self.escrow.release(
                offer.offer_id, OfferStatus.CANCELLED, now, SYSTEM_ACTOR,
                reason="integrity check failed",
            )
            self._persist()
            self._notify("Trade integrity check failed, escrow returned", LEVEL_ERROR)
            raise IntegrityError(f"Trade integrity check failed: {offer.offer_id}")
        if offer.is_expired(now):
            self.escrow.release(
                offer.offer_id, OfferStatus.EXPIRED, now, SYSTEM_ACTOR,
                reason="escrow timeout",
            )
            self._persist()
            self._notify("Trade has expired, escrow returned", LEVEL_WARNING)
            raise ExpiredError(f"Trade has expired: {offer.offer_id}")

    # ========================================================================
    # CREATE
    # ========================================================================

    def create_offer(self, actor_id: str, proposal: Any) -> TradeResult:
        """
        Put actor_id's offered assets into escrow as a new pending offer.

        Args:
            actor_id: The creator
            proposal: TradeProposal or mapping (see validation.validate_proposal)

        Returns:
            TradeResult with a CreatedOffer(offer_id, expires_at) on success
        """
        return self._run("create", self._create_offer, actor_id, proposal)

    def _create_offer(self, actor_id: str, proposal: Any) -> CreatedOffer:
        with self.escrow.lock:
            self.rate_limiter.require(actor_id)
            validation = validate_proposal(proposal, self.config)
            if not validation.valid:
                raise ValidationError(list(validation.errors))
            p = validation.proposal
            self.limits.check_daily(actor_id)
            self.limits.check_value(actor_id, p.trade_value)

            missing = self.escrow.missing_assets(actor_id, p.offered_items, p.offered_currency)
            if missing:
                raise InsufficientAssetsError(f"Insufficient {', '.join(missing)}")

            now = self.clock.now()
            offer = TradeOffer(
                offer_id=self.escrow.next_offer_id(),
                creator_id=actor_id,
                status=OfferStatus.PENDING,
                offered_items=p.offered_items,
                offered_currency=p.offered_currency,
                requested_items=p.requested_items,
                requested_currency=p.requested_currency,
                created_at=now,
                expires_at=now + self.config.escrow_timeout,
            )
            offer = replace(offer, integrity_hash=self.integrity.compute_hash(offer))

            self.escrow.lock_offer(offer)
            self.rate_limiter.record_action(actor_id)
            self.limits.record_trade(actor_id)
            self._persist()

        minutes = int(self.config.escrow_timeout.total_seconds() // 60)
        self._notify(f"Trade offer created, expires in {minutes} minutes", LEVEL_SUCCESS)
        return CreatedOffer(offer.offer_id, offer.expires_at)

    # ========================================================================
    # ACCEPT
    # ========================================================================

    def accept_offer(self, actor_id: str, offer_id: str) -> TradeResult:
        """
        Complete a pending offer created by another actor.

        Returns:
            TradeResult with a Settlement on success
        """
        return self._run("accept", self._accept_offer, actor_id, offer_id)

    def _accept_offer(self, actor_id: str, offer_id: str) -> Settlement:
        with self.escrow.lock:
            offer = self.escrow.get(offer_id)
            self.rate_limiter.require(actor_id)
            self.limits.check_daily(actor_id)
            self._guard(offer)
            if offer.creator_id == actor_id:
                raise NotAuthorizedError("Cannot accept your own trade offer")

            missing = self.escrow.missing_assets(actor_id, offer.requested_items, offer.requested_currency)
            if missing:
                raise InsufficientAssetsError(f"Missing: {', '.join(missing)}")

            settlement = self.escrow.settle(offer_id, actor_id, self.config.fee_percent, self.clock.now())
            self.rate_limiter.record_action(actor_id)
            self.limits.record_trade(actor_id)
            self._persist()

        self._notify(f"Trade completed! Fee: {settlement.fee}", LEVEL_SUCCESS)
        return settlement

    # ========================================================================
    # CANCEL
    # ========================================================================

    def cancel_offer(self, actor_id: str, offer_id: str) -> TradeResult:
        """
        Withdraw a pending offer and return its escrow to the creator.

        Only the creator may cancel. Cancelling an id that is no longer
        active reports NOT_FOUND and moves nothing.
        """
        return self._run("cancel", self._cancel_offer, actor_id, offer_id)

    def _cancel_offer(self, actor_id: str, offer_id: str) -> None:
        with self.escrow.lock:
            offer = self.escrow.get(offer_id)
            self._guard(offer)
            if offer.creator_id != actor_id:
                raise NotAuthorizedError("Only the creator can cancel a trade offer")
            self.escrow.release(
                offer_id, OfferStatus.CANCELLED, self.clock.now(), actor_id,
                reason="cancelled by creator",
            )
            self._persist()
        self._notify("Trade cancelled, items returned", LEVEL_INFO)

    # ========================================================================
    # EXPIRY
    # ========================================================================

    def sweep_expired(self) -> List[str]:
        """
        Release every active offer whose escrow deadline has passed.

        A past-deadline offer that fails verification is cancelled as an
        integrity failure instead, since its deadline cannot be trusted.

        Returns:
            Ids of the offers expired by this call (empty on a repeated call)
        """
        with self.escrow.lock:
            now = self.clock.now()
            self._last_sweep = now
            due = [o for o in self.escrow.active_offers() if o.is_expired(now)]
            expired, tampered = [], []
            for offer in due:
                if self.integrity.verify(offer):
                    self.escrow.release(
                        offer.offer_id, OfferStatus.EXPIRED, now, SYSTEM_ACTOR, reason="escrow timeout",
                    )
                    expired.append(offer.offer_id)
                else:
                    self.escrow.release(
                        offer.offer_id, OfferStatus.CANCELLED, now, SYSTEM_ACTOR,
                        reason="integrity check failed",
                    )
                    tampered.append(offer.offer_id)
            if due:
                self._persist()
        if tampered:
            self._notify("Trade integrity check failed, escrow returned", LEVEL_ERROR)
        if expired:
            self._notify(f"{len(expired)} trade(s) expired, items returned", LEVEL_WARNING)
        return expired

    def tick(self) -> List[str]:
        """
        Periodic entry point for a host timer.

        Sweeps if at least config.sweep_interval has passed since the last
        sweep (or none ever ran); otherwise does nothing.
        """
        now = self.clock.now()
        if self._last_sweep is not None and now - self._last_sweep < self.config.sweep_interval:
            return []
        return self.sweep_expired()

    # ========================================================================
    # QUERIES
    # ========================================================================

    def get_active_offers(self) -> List[TradeOffer]:
        """Pending offers in creation order, after expiring stale ones."""
        with self.escrow.lock:
            self.sweep_expired()
            return self.escrow.active_offers()

    def get_offer(self, offer_id: str) -> Optional[TradeOffer]:
        """A pending offer by id, or None if unknown, resolved or just expired."""
        with self.escrow.lock:
            self.sweep_expired()
            if offer_id not in self.escrow:
                return None
            return self.escrow.get(offer_id)

    def get_history(self, limit: Optional[int] = None) -> List[TradeOffer]:
        """Terminal offers, most recent first (config.history_view_limit by default)."""
        return self.escrow.history(self.config.history_view_limit if limit is None else limit)

    def get_limits(self, actor_id: str) -> Dict[str, Any]:
        """Tier, daily limit and usage, per-trade value ceiling and fee for actor_id."""
        return self.limits.describe(actor_id)

    @property
    def fees_collected(self) -> int:
        return self.escrow.fees_collected

    def escrowed_currency(self, actor_id: Optional[str] = None) -> int:
        return self.escrow.escrowed_currency(actor_id)

    def escrowed_items(self, actor_id: Optional[str] = None) -> Dict[str, int]:
        return self.escrow.escrowed_items(actor_id)

    def audit(self) -> Dict[str, Any]:
        """
        Read-only report of escrow contents.

        Unlike accept/cancel this does not act on integrity failures; it only
        lists the offers that would fail verification.
        """
        with self.escrow.lock:
            return {
                "active": len(self.escrow),
                "escrowed_currency": self.escrow.escrowed_currency(),
                "escrowed_items": self.escrow.escrowed_items(),
                "fees_collected": self.escrow.fees_collected,
                "integrity_failures": [
                    o.offer_id for o in self.escrow.active_offers()
                    if not self.integrity.verify(o)
                ],
            }

    # ========================================================================
    # PERSISTENCE
    # ========================================================================

    def snapshot(self) -> Dict[str, Any]:
        """
        Full engine state as a JSON-compatible dict.

        `dailyTradeCount`/`lastTradeDate` summarize the per-actor counters in
        `actorLimits`: the most recent trading day and the trades counted on it.
        """
        with self.escrow.lock:
            state = self.escrow.export_state()
            actor_limits = self.limits.export_states()
        dates = [s["lastTradeDate"] for s in actor_limits.values() if s["lastTradeDate"]]
        last_date = max(dates) if dates else None
        daily_total = sum(
            s["dailyTradeCount"] for s in actor_limits.values()
            if last_date is not None and s["lastTradeDate"] == last_date
        )
        return {
            "version": SNAPSHOT_VERSION,
            "activeOffers": state["activeOffers"],
            "history": state["history"],
            "dailyTradeCount": daily_total,
            "lastTradeDate": last_date,
            "actorLimits": actor_limits,
            "escrow": state["escrow"],
            "feesCollected": state["feesCollected"],
            "nextSequence": state["nextSequence"],
        }

    def save(self) -> None:
        """Write the current snapshot to the store, if one is attached."""
        self._persist()

    def restore(self, data: Mapping[str, Any]) -> List[str]:
        """
        Replace engine state with a snapshot, then expire stale offers.

        Malformed offers and offers without an integrity hash are dropped.
        The assets of a restored offer are taken to be in escrow already.

        Returns:
            Descriptions of the dropped entries

        Raises:
            ValueError: If data is not a mapping
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"Snapshot must be a mapping, got {type(data).__name__}")
        with self.escrow.lock:
            dropped = self.escrow.import_state(data)
            raw_limits = data.get("actorLimits")
            skipped = self.limits.import_states(raw_limits if isinstance(raw_limits, Mapping) else {})
            if skipped:
                dropped.append(f"{skipped} malformed actor limit entries")
            self._last_sweep = None
            self.sweep_expired()
        return dropped

    def load(self) -> List[str]:
        """
        Restore from the attached store. Does nothing if the store is empty.

        Returns:
            Descriptions of the dropped entries
        """
        if self.store is None:
            return []
        data = self.store.load()
        if data is None:
            return []
        return self.restore(data)
