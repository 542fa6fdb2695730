"""
integrity.py - Tamper evidence for offers and their escrow lots

An offer's checksum is taken once, at creation, over the fields that never
change afterwards. Any later difference between the stored checksum and a
fresh computation means the offer was corrupted or edited outside the
engine, typically in persisted state.

Persisted escrow lots carry their own checksum, bound to the offer id, so a
refund can be paid from a lot even when the offer's own fields were edited.

Two strengths:
- unkeyed: SHA-256 over the canonical form. Detects accidental corruption and
  casual edits, but anyone can recompute it.
- keyed: HMAC-SHA256 with a secret held by the host. Edits cannot be
  re-signed without the key.
"""

from __future__ import annotations
from datetime import datetime
from typing import Any, Optional
import hashlib
import hmac

from .core import TradeOffer, TradeItem, EscrowLot


def canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Output is independent of dict insertion order and type-tagged so that,
    for example, the string "1" and the integer 1 never collide.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, datetime):
        return f"T:{value.isoformat()}"
    if isinstance(value, TradeItem):
        return f"I:{canonicalize(value.item_id)}*{canonicalize(value.quantity)}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{canonicalize(k)}:{canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        serialized = ",".join(canonicalize(item) for item in value)
        return f"[{serialized}]"
    raise TypeError(f"Cannot canonicalize {type(value).__name__}")


def offer_content(offer: TradeOffer) -> str:
    """Canonical form of the hashed fields. Status and resolution fields are excluded."""
    return canonicalize({
        "id": offer.offer_id,
        "creator": offer.creator_id,
        "offered": list(offer.offered_items),
        "offeredCurrency": offer.offered_currency,
        "requested": list(offer.requested_items),
        "requestedCurrency": offer.requested_currency,
        "created": offer.created_at,
        "expires": offer.expires_at,
    })


def lot_content(offer_id: str, lot: EscrowLot) -> str:
    """Canonical form of an escrow lot, bound to its offer id."""
    return canonicalize({
        "lot": offer_id,
        "creator": lot.creator_id,
        "items": list(lot.items),
        "currency": lot.currency,
    })


class IntegrityGuard:
    """
    Computes and verifies offer and escrow lot checksums.

    Args:
        secret: Optional HMAC key. Without it the checksum is a plain SHA-256.
    """

    def __init__(self, secret: Optional[bytes] = None):
        if secret is not None and not secret:
            raise ValueError("secret must be non-empty when given")
        self._secret = secret

    @property
    def keyed(self) -> bool:
        return self._secret is not None

    def _digest(self, content: str) -> str:
        if self._secret is not None:
            return hmac.new(self._secret, content.encode(), hashlib.sha256).hexdigest()
        return hashlib.sha256(content.encode()).hexdigest()

    def compute_hash(self, offer: TradeOffer) -> str:
        return self._digest(offer_content(offer))

    def verify(self, offer: TradeOffer) -> bool:
        """True if the stored checksum matches the offer's current fields."""
        if not offer.integrity_hash:
            return False
        return hmac.compare_digest(offer.integrity_hash.encode(), self.compute_hash(offer).encode())

    def compute_lot_hash(self, offer_id: str, lot: EscrowLot) -> str:
        return self._digest(lot_content(offer_id, lot))

    def verify_lot(self, offer_id: str, lot: EscrowLot, digest: str) -> bool:
        if not digest:
            return False
        return hmac.compare_digest(digest.encode(), self.compute_lot_hash(offer_id, lot).encode())
