"""
escrow.py - Custody of assets for pending offers

The EscrowLedger is the only component that moves assets between actors and
escrow. It owns:
    - the active set: pending offers by id, in creation order
    - escrow lots: what was actually taken from each creator
    - history: terminal offers, append-only, capped to the most recent N
    - the fee pool: currency withheld at settlement

Every movement is all-or-nothing: if a collaborator ledger fails part way
through taking assets, what was already taken is put back before the error
propagates. Removal from the active set is the last act of every resolution.

Thread Safety:
    Callers hold `lock` for the whole check-then-commit sequence of one
    transition. The lock is re-entrant so a transition may call helpers that
    take it again.
"""

from __future__ import annotations
from collections import Counter, deque
from datetime import datetime
from typing import Any, Deque, Dict, Iterable, List, Mapping, Optional, Set, Tuple
import secrets
import threading

from .core import (
    TradeOffer, TradeItem, EscrowLot, OfferStatus, Settlement,
    InventoryLedger, CurrencyLedger,
    InsufficientAssetsError, NotFoundError,
)
from .integrity import IntegrityGuard


SYSTEM_ACTOR = "system"


def _split_fee(total_fee: int) -> Tuple[int, int]:
    """Acceptor's share rounds down, creator's share rounds up."""
    return total_fee // 2, total_fee - total_fee // 2


def compute_fee(offered_currency: int, requested_currency: int, fee_percent: int) -> int:
    """floor((offered + requested) * fee_percent / 100), in exact integer arithmetic."""
    return (offered_currency + requested_currency) * fee_percent // 100


class EscrowLedger:
    """
    Active offers, their escrowed assets and the bounded trade history.

    Args:
        inventory: Item ledger of all actors
        currency: Currency ledger of all actors
        history_limit: Number of terminal offers kept
        integrity: Guard used to sign persisted escrow lots and to check them
            on load (unsigned lots, rebuilt from the offers, if not provided)
        verbose: Print a line for every lock, release and settlement
    """

    def __init__(
        self,
        inventory: InventoryLedger,
        currency: CurrencyLedger,
        history_limit: int = 100,
        integrity: Optional[IntegrityGuard] = None,
        verbose: bool = False,
    ):
        self.inventory = inventory
        self.currency = currency
        self.history_limit = history_limit
        self.integrity = integrity
        self.verbose = verbose
        self.lock = threading.RLock()
        self.fees_collected: int = 0
        self._active: Dict[str, TradeOffer] = {}
        self._lots: Dict[str, EscrowLot] = {}
        self._history: Deque[TradeOffer] = deque(maxlen=history_limit)
        self._resolved_ids: Set[str] = set()
        self._next_sequence: int = 0

    # ========================================================================
    # READ-ONLY
    # ========================================================================

    def __contains__(self, offer_id: str) -> bool:
        return offer_id in self._active

    def __len__(self) -> int:
        return len(self._active)

    def get(self, offer_id: str) -> TradeOffer:
        """
        Raises:
            NotFoundError: If offer_id is not in the active set
        """
        try:
            return self._active[offer_id]
        except KeyError:
            raise NotFoundError(f"Trade not found: {offer_id}") from None

    def lot(self, offer_id: str) -> EscrowLot:
        if offer_id not in self._lots:
            raise NotFoundError(f"No escrow for {offer_id}")
        return self._lots[offer_id]

    def active_offers(self) -> List[TradeOffer]:
        return list(self._active.values())

    def history(self, limit: Optional[int] = None) -> List[TradeOffer]:
        """Terminal offers, most recent first."""
        records = list(reversed(self._history))
        return records if limit is None else records[:max(0, limit)]

    def is_resolved(self, offer_id: str) -> bool:
        return offer_id in self._resolved_ids

    def escrowed_currency(self, actor_id: Optional[str] = None) -> int:
        return sum(
            lot.currency for lot in self._lots.values()
            if actor_id is None or lot.creator_id == actor_id
        )

    def escrowed_items(self, actor_id: Optional[str] = None) -> Dict[str, int]:
        totals: Counter = Counter()
        for lot in self._lots.values():
            if actor_id is None or lot.creator_id == actor_id:
                for item in lot.items:
                    totals[item.item_id] += item.quantity
        return dict(totals)

    def missing_assets(self, actor_id: str, items: Iterable[TradeItem], currency: int) -> List[str]:
        """Describe what actor_id lacks to hand over items and currency. Empty if nothing."""
        missing = []
        if currency > 0 and self.currency.balance(actor_id) < currency:
            missing.append("currency")
        for item in items:
            if not self.inventory.has_quantity(actor_id, item.item_id, item.quantity):
                missing.append(item.item_id)
        return missing

    # ========================================================================
    # ASSET MOVEMENT
    # ========================================================================

    def _take(self, actor_id: str, items: Tuple[TradeItem, ...], currency: int) -> None:
        """Debit currency then remove items; undo everything taken if any step fails."""
        if currency > 0 and not self.currency.debit(actor_id, currency):
            raise InsufficientAssetsError(f"{actor_id} has insufficient currency")
        removed: List[TradeItem] = []
        try:
            for item in items:
                if not self.inventory.has_quantity(actor_id, item.item_id, item.quantity):
                    raise InsufficientAssetsError(f"{actor_id} has insufficient {item.item_id}")
                self.inventory.remove(actor_id, item.item_id, item.quantity)
                removed.append(item)
        except Exception:
            for item in reversed(removed):
                self.inventory.add(actor_id, item.item_id, item.quantity)
            if currency > 0:
                self.currency.credit(actor_id, currency)
            raise

    def _give(self, actor_id: str, items: Tuple[TradeItem, ...], currency: int) -> None:
        for item in items:
            self.inventory.add(actor_id, item.item_id, item.quantity)
        if currency > 0:
            self.currency.credit(actor_id, currency)

    # ========================================================================
    # TRANSITIONS (callers hold self.lock)
    # ========================================================================

    def next_offer_id(self) -> str:
        """Unique id: creation sequence plus a random suffix."""
        with self.lock:
            sequence = self._next_sequence
            self._next_sequence += 1
        return f"trade_{sequence:06d}_{secrets.token_hex(4)}"

    def lock_offer(self, offer: TradeOffer) -> EscrowLot:
        """
        Take the creator's offered assets into escrow and add the offer to the active set.

        Raises:
            ValueError: If the id is already active or was resolved before
            InsufficientAssetsError: If the creator cannot cover the offer (nothing is taken)
        """
        with self.lock:
            if offer.status is not OfferStatus.PENDING:
                raise ValueError(f"Only pending offers can be escrowed, got {offer.status.value}")
            if offer.offer_id in self._active or offer.offer_id in self._resolved_ids:
                raise ValueError(f"Offer id {offer.offer_id} already used")
            lot = EscrowLot.for_offer(offer)
            self._take(lot.creator_id, lot.items, lot.currency)
            self._lots[offer.offer_id] = lot
            self._active[offer.offer_id] = offer
            if self.verbose:
                print(f"🔒 ESCROWED: {offer!r}")
            return lot

    def _archive(self, record: TradeOffer) -> None:
        # resolved ids are remembered only as long as their history entry
        if len(self._history) == self._history.maxlen:
            self._resolved_ids.discard(self._history[0].offer_id)
        self._history.append(record)
        self._resolved_ids.add(record.offer_id)
        self._lots.pop(record.offer_id, None)
        # last act: the id is gone for every later reader
        del self._active[record.offer_id]

    def release(
        self,
        offer_id: str,
        status: OfferStatus,
        when: datetime,
        by: str = SYSTEM_ACTOR,
        reason: Optional[str] = None,
    ) -> TradeOffer:
        """
        Return an offer's escrow lot to its creator and archive it as cancelled or expired.

        Raises:
            NotFoundError: If the offer is not active
            ValueError: If status is not CANCELLED or EXPIRED
        """
        if status not in (OfferStatus.CANCELLED, OfferStatus.EXPIRED):
            raise ValueError(f"release() cannot produce {status.value}")
        with self.lock:
            offer = self.get(offer_id)
            lot = self._lots.get(offer_id) or EscrowLot.for_offer(offer)
            record = offer.resolve(status, when, by, reason=reason)
            self._give(lot.creator_id, lot.items, lot.currency)
            self._archive(record)
            if self.verbose:
                print(f"↩ RELEASED [{status.value}]: {offer_id} → {lot.creator_id}"
                      + (f" ({reason})" if reason else ""))
            return record

    def settle(
        self,
        offer_id: str,
        acceptor_id: str,
        fee_percent: int,
        when: datetime,
    ) -> Settlement:
        """
        Complete an offer: take the requested assets from the acceptor, pay both sides.

        The fee is floor(total * fee_percent / 100) over both currency legs.
        The acceptor receives the escrowed currency minus floor(fee / 2); the
        creator receives the requested currency minus ceil(fee / 2). A leg too
        small for its share pays what it has, and the recorded fee is the
        amount actually withheld.

        Raises:
            NotFoundError: If the offer is not active
            InsufficientAssetsError: If the acceptor cannot pay (nothing changes)
        """
        with self.lock:
            offer = self.get(offer_id)
            lot = self._lots.get(offer_id) or EscrowLot.for_offer(offer)
            self._take(acceptor_id, offer.requested_items, offer.requested_currency)

            fee = compute_fee(lot.currency, offer.requested_currency, fee_percent)
            acceptor_share, creator_share = _split_fee(fee)
            to_acceptor = max(0, lot.currency - acceptor_share)
            to_creator = max(0, offer.requested_currency - creator_share)
            withheld = (lot.currency - to_acceptor) + (offer.requested_currency - to_creator)

            self._give(acceptor_id, lot.items, to_acceptor)
            self._give(lot.creator_id, offer.requested_items, to_creator)
            self.fees_collected += withheld
            record = offer.resolve(OfferStatus.COMPLETED, when, acceptor_id, fee=withheld)
            self._archive(record)
            if self.verbose:
                print(f"✓ SETTLED: {offer_id} {lot.creator_id}⇄{acceptor_id} fee={withheld}")
            return Settlement(
                offer_id=offer_id,
                received_items=lot.items,
                received_currency=to_acceptor,
                creator_received_items=offer.requested_items,
                creator_received_currency=to_creator,
                fee=withheld,
            )

    # ========================================================================
    # SNAPSHOT
    # ========================================================================

    def export_state(self) -> Dict[str, Any]:
        with self.lock:
            return {
                "activeOffers": [o.to_dict() for o in self._active.values()],
                "history": [o.to_dict() for o in self._history],
                "escrow": {oid: self._export_lot(oid, lot) for oid, lot in self._lots.items()},
                "feesCollected": self.fees_collected,
                "nextSequence": self._next_sequence,
            }

    def _export_lot(self, offer_id: str, lot: EscrowLot) -> Dict[str, Any]:
        record = lot.to_dict()
        if self.integrity is not None:
            record["hash"] = self.integrity.compute_lot_hash(offer_id, lot)
        return record

    def _trusted_lot(self, offer: TradeOffer, raw: Any) -> Optional[EscrowLot]:
        """
        The lot a loaded offer may pay out from.

        Without a guard the offer fields are taken as is. With one, a
        persisted lot whose checksum verifies wins; otherwise the lot is
        rebuilt from the offer, but only if the offer itself verifies.
        None means neither can be trusted.
        """
        if self.integrity is None:
            return EscrowLot.for_offer(offer)
        if isinstance(raw, Mapping):
            try:
                lot = EscrowLot.from_dict(raw)
                digest = str(raw.get("hash") or "")
            except (KeyError, TypeError, ValueError, AttributeError):
                lot = None
            if lot is not None and self.integrity.verify_lot(offer.offer_id, lot, digest):
                return lot
        if self.integrity.verify(offer):
            return EscrowLot.for_offer(offer)
        return None

    def import_state(self, data: Mapping[str, Any]) -> List[str]:
        """
        Replace all contents from persisted form, already held in escrow.

        Offers that are malformed, lack an integrity hash or are not pending
        are dropped from the active set; malformed history entries are dropped.
        An offer is also dropped when neither it nor its persisted escrow lot
        passes verification, since nothing says what to refund.

        Returns:
            Descriptions of everything that was dropped
        """
        dropped: List[str] = []
        active: Dict[str, TradeOffer] = {}
        lots: Dict[str, EscrowLot] = {}
        raw_lots = data.get("escrow") or {}
        if not isinstance(raw_lots, Mapping):
            raw_lots = {}

        for raw in data.get("activeOffers") or []:
            try:
                offer = TradeOffer.from_dict(raw)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                dropped.append(f"malformed offer: {e!r}")
                continue
            if not offer.integrity_hash or offer.status is not OfferStatus.PENDING:
                dropped.append(f"offer {offer.offer_id}: missing hash or not pending")
                continue
            if offer.offer_id in active:
                dropped.append(f"offer {offer.offer_id}: duplicate id")
                continue
            lot = self._trusted_lot(offer, raw_lots.get(offer.offer_id))
            if lot is None:
                dropped.append(f"offer {offer.offer_id}: offer and escrow record both fail verification")
                continue
            active[offer.offer_id] = offer
            lots[offer.offer_id] = lot

        history: Deque[TradeOffer] = deque(maxlen=self.history_limit)
        for raw in (data.get("history") or [])[-self.history_limit:]:
            try:
                history.append(TradeOffer.from_dict(raw))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                dropped.append(f"malformed history entry: {e!r}")

        fees = data.get("feesCollected", 0)
        sequence = data.get("nextSequence", 0)

        with self.lock:
            self._active = active
            self._lots = lots
            self._history = history
            self._resolved_ids = {o.offer_id for o in history}
            self.fees_collected = fees if isinstance(fees, int) and fees >= 0 else 0
            self._next_sequence = max(sequence if isinstance(sequence, int) else 0, len(history) + len(active))

        if self.verbose:
            for reason in dropped:
                print(f"⚠️  DROPPED on load: {reason}")
        return dropped
