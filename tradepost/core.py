"""
Core types for the escrow trading engine.

This module provides the foundational data structures and protocols:
1. Configuration: TradeConfig with the default tier tables
2. Immutable data structures: TradeItem, TradeProposal, TradeOffer, EscrowLot
3. Exceptions: TradeError and the domain-specific error types
4. Protocols: collaborator ledgers, tier lookup, notifications, persistence
5. Results: TradeResult and the payloads of the public operations

Nothing in this module mutates engine state.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import (
    Dict, List, Optional, Any, Protocol, Tuple, Mapping,
    runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Fibonacci sequence the default economy is tuned on.
TRADE_FIB = (0, 1, 1, 2, 3, 5, 8, 13, 21, 34, 55, 89, 144, 233, 377)


def trade_fib(n: int) -> int:
    """Return fib[n], clamped to the table bounds."""
    if n < 0:
        return 0
    if n < len(TRADE_FIB):
        return TRADE_FIB[n]
    return TRADE_FIB[-1]


# Progression tiers, lowest first.
TIER_EMBER = "EMBER"
TIER_SPARK = "SPARK"
TIER_FLAME = "FLAME"
TIER_BLAZE = "BLAZE"
TIER_INFERNO = "INFERNO"
TIERS = (TIER_EMBER, TIER_SPARK, TIER_FLAME, TIER_BLAZE, TIER_INFERNO)

DEFAULT_DAILY_TRADE_LIMITS = {
    TIER_EMBER: trade_fib(6),     # 8
    TIER_SPARK: trade_fib(7),     # 13
    TIER_FLAME: trade_fib(8),     # 21
    TIER_BLAZE: trade_fib(9),     # 34
    TIER_INFERNO: trade_fib(10),  # 55
}

DEFAULT_MAX_TRADE_VALUES = {
    TIER_EMBER: trade_fib(9) * 10,     # 340
    TIER_SPARK: trade_fib(10) * 10,    # 550
    TIER_FLAME: trade_fib(11) * 10,    # 890
    TIER_BLAZE: trade_fib(12) * 10,    # 1440
    TIER_INFERNO: trade_fib(13) * 10,  # 2330
}

ITEM_ID_PATTERN = r"^[a-z0-9_]+$"

SNAPSHOT_VERSION = "1.0.0"

# Notification levels understood by NotificationSink implementations.
LEVEL_INFO = "info"
LEVEL_SUCCESS = "success"
LEVEL_WARNING = "warning"
LEVEL_ERROR = "error"


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True)
class TradeConfig:
    """
    Tunable parameters of the trading engine.

    Defaults follow the game's Fibonacci-tuned economy: a 5% fee, a 21 minute
    escrow timeout and a 3 second cooldown between trade actions.
    """
    fee_percent: int = trade_fib(5)
    escrow_timeout: timedelta = timedelta(minutes=trade_fib(8))
    min_action_interval: float = float(trade_fib(4))
    burst_limit: int = 10
    burst_window: float = 60.0
    daily_trade_limits: Mapping[str, int] = field(
        default_factory=lambda: dict(DEFAULT_DAILY_TRADE_LIMITS))
    max_trade_values: Mapping[str, int] = field(
        default_factory=lambda: dict(DEFAULT_MAX_TRADE_VALUES))
    default_tier: str = TIER_EMBER
    history_limit: int = 100
    history_view_limit: int = 20
    max_item_id_length: int = 50
    max_item_quantity: int = 9999
    max_currency: int = 1_000_000_000
    sweep_interval: timedelta = timedelta(seconds=30)

    def __post_init__(self):
        if not 0 <= self.fee_percent <= 100:
            raise ValueError(f"fee_percent must be within 0..100, got {self.fee_percent}")
        if self.escrow_timeout <= timedelta(0):
            raise ValueError("escrow_timeout must be positive")
        if self.min_action_interval < 0 or self.burst_window <= 0:
            raise ValueError("rate limit intervals must be non-negative")
        if self.burst_limit < 1:
            raise ValueError("burst_limit must be at least 1")
        if self.history_limit < 1:
            raise ValueError("history_limit must be at least 1")
        if self.default_tier not in self.daily_trade_limits:
            raise ValueError(f"default tier {self.default_tier} has no daily limit")
        if self.default_tier not in self.max_trade_values:
            raise ValueError(f"default tier {self.default_tier} has no value limit")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'TradeConfig':
        """
        Build a config from a plain mapping, e.g. a parsed JSON settings file.

        Durations may be given in seconds as `escrow_timeout_seconds` and
        `sweep_interval_seconds`. Unknown keys raise ValueError.
        """
        kwargs: Dict[str, Any] = {}
        known = set(cls.__dataclass_fields__)
        for key, value in data.items():
            if key == "escrow_timeout_seconds":
                kwargs["escrow_timeout"] = timedelta(seconds=value)
            elif key == "sweep_interval_seconds":
                kwargs["sweep_interval"] = timedelta(seconds=value)
            elif key in known:
                kwargs[key] = value
            else:
                raise ValueError(f"Unknown trade config key: {key}")
        return cls(**kwargs)


# ============================================================================
# ENUMS
# ============================================================================

class OfferStatus(Enum):
    """
    Lifecycle state of an offer.

    PENDING is the only non-terminal state. An offer leaves it exactly once.
    """
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not OfferStatus.PENDING


class ErrorKind(Enum):
    """Category of a failed trade operation, as reported in TradeResult."""
    VALIDATION = "validation"
    RATE_LIMIT = "rate_limit"
    POLICY = "policy"
    INSUFFICIENT_ASSETS = "insufficient_assets"
    NOT_FOUND = "not_found"
    INTEGRITY = "integrity"
    EXPIRED = "expired"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class TradeError(Exception):
    """Base exception for all trade-related errors."""
    kind: ErrorKind = ErrorKind.VALIDATION


class ValidationError(TradeError):
    """Raised when a proposal is malformed."""
    kind = ErrorKind.VALIDATION

    def __init__(self, errors: List[str]):
        self.errors = tuple(errors)
        super().__init__(", ".join(self.errors) or "Invalid offer")


class RateLimitError(TradeError):
    """Raised when an actor hits the cooldown or the burst cap."""
    kind = ErrorKind.RATE_LIMIT

    def __init__(self, message: str, retry_after: float = 0.0):
        self.retry_after = retry_after
        super().__init__(message)


class PolicyError(TradeError):
    """Raised when a daily trade count or trade value ceiling is exceeded."""
    kind = ErrorKind.POLICY


class NotAuthorizedError(PolicyError):
    """Raised when an actor may not perform an operation on an offer."""
    pass


class InsufficientAssetsError(TradeError):
    """Raised when an actor lacks an offered or requested asset."""
    kind = ErrorKind.INSUFFICIENT_ASSETS


class NotFoundError(TradeError):
    """Raised for an unknown or already resolved offer id."""
    kind = ErrorKind.NOT_FOUND


class IntegrityError(TradeError):
    """Raised when an offer's checksum does not match its fields."""
    kind = ErrorKind.INTEGRITY


class ExpiredError(TradeError):
    """Raised when an offer's escrow timeout has elapsed."""
    kind = ErrorKind.EXPIRED


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class TradeItem:
    """
    A quantity of one inventory item on one side of a trade.

    Construction does not validate: untrusted input goes through
    validation.validate_proposal first.
    """
    item_id: str
    quantity: int

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.item_id, "quantity": self.quantity}

    @classmethod
    def from_value(cls, value: Any) -> 'TradeItem':
        """Accept a TradeItem or a mapping with `item_id`/`id` and `quantity`."""
        if isinstance(value, TradeItem):
            return value
        item_id = value["item_id"] if "item_id" in value else value["id"]
        return cls(item_id=item_id, quantity=value["quantity"])


@dataclass(frozen=True, slots=True)
class TradeProposal:
    """What an actor offers and what it asks for in return."""
    offered_items: Tuple[TradeItem, ...] = ()
    offered_currency: int = 0
    requested_items: Tuple[TradeItem, ...] = ()
    requested_currency: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "offered_items": [i.to_dict() for i in self.offered_items],
            "offered_currency": self.offered_currency,
            "requested_items": [i.to_dict() for i in self.requested_items],
            "requested_currency": self.requested_currency,
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'TradeProposal':
        """Build a proposal from an already validated mapping."""
        return cls(
            offered_items=tuple(TradeItem.from_value(i) for i in data.get("offered_items") or ()),
            offered_currency=data.get("offered_currency") or 0,
            requested_items=tuple(TradeItem.from_value(i) for i in data.get("requested_items") or ()),
            requested_currency=data.get("requested_currency") or 0,
        )

    @property
    def trade_value(self) -> int:
        """Value used against tier ceilings: the larger currency leg."""
        return max(self.offered_currency, self.requested_currency)


def _items_to_list(items: Tuple[TradeItem, ...]) -> List[Dict[str, Any]]:
    return [item.to_dict() for item in items]


def _items_from_list(raw: Any) -> Tuple[TradeItem, ...]:
    if not isinstance(raw, list):
        raise ValueError("item list expected")
    return tuple(TradeItem(item_id=str(i["id"]), quantity=int(i["quantity"])) for i in raw)


def _parse_time(raw: Any) -> datetime:
    if not isinstance(raw, str):
        raise ValueError(f"timestamp string expected, got {raw!r}")
    return datetime.fromisoformat(raw)


@dataclass(frozen=True, slots=True)
class TradeOffer:
    """
    An offer, pending in escrow or archived in history.

    Attributes:
        offer_id: Unique identifier assigned by the engine
        creator_id: Actor whose assets are locked in escrow
        status: Lifecycle state
        offered_items / offered_currency: Assets locked from the creator
        requested_items / requested_currency: Assets asked from the acceptor
        created_at: When the offer was created
        expires_at: Escrow deadline; the offer is logically expired from then on
        integrity_hash: Checksum over the immutable fields, set at creation
        resolved_at: When the offer reached a terminal status
        resolved_by: Actor who accepted or cancelled it ("system" for sweeps)
        fee: Currency withheld at settlement (completed offers only)
        reason: Why a non-completed offer was closed
    """
    offer_id: str
    creator_id: str
    status: OfferStatus
    offered_items: Tuple[TradeItem, ...]
    offered_currency: int
    requested_items: Tuple[TradeItem, ...]
    requested_currency: int
    created_at: datetime
    expires_at: datetime
    integrity_hash: str = ""
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    fee: int = 0
    reason: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def time_left(self, now: datetime) -> timedelta:
        return max(timedelta(0), self.expires_at - now)

    def resolve(
        self,
        status: OfferStatus,
        when: datetime,
        by: Optional[str],
        fee: int = 0,
        reason: Optional[str] = None,
    ) -> 'TradeOffer':
        """Return the terminal copy of this offer. The hash is carried unchanged."""
        if not status.is_terminal:
            raise ValueError("resolve() requires a terminal status")
        if self.status.is_terminal:
            raise ValueError(f"Offer {self.offer_id} already {self.status.value}")
        return replace(self, status=status, resolved_at=when, resolved_by=by, fee=fee, reason=reason)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.offer_id,
            "creator": self.creator_id,
            "status": self.status.value,
            "offeredItems": _items_to_list(self.offered_items),
            "offeredCurrency": self.offered_currency,
            "requestedItems": _items_to_list(self.requested_items),
            "requestedCurrency": self.requested_currency,
            "createdAt": self.created_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
            "integrityHash": self.integrity_hash,
        }
        if self.resolved_at is not None:
            data["resolvedAt"] = self.resolved_at.isoformat()
            data["resolvedBy"] = self.resolved_by
            data["fee"] = self.fee
            data["reason"] = self.reason
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'TradeOffer':
        """
        Rebuild an offer from its persisted form.

        Raises:
            KeyError, ValueError, TypeError: If required fields are missing or malformed
        """
        resolved_raw = data.get("resolvedAt")
        return cls(
            offer_id=str(data["id"]),
            creator_id=str(data["creator"]),
            status=OfferStatus(data["status"]),
            offered_items=_items_from_list(data["offeredItems"]),
            offered_currency=int(data["offeredCurrency"]),
            requested_items=_items_from_list(data["requestedItems"]),
            requested_currency=int(data["requestedCurrency"]),
            created_at=_parse_time(data["createdAt"]),
            expires_at=_parse_time(data["expiresAt"]),
            integrity_hash=str(data["integrityHash"]),
            resolved_at=_parse_time(resolved_raw) if resolved_raw else None,
            resolved_by=data.get("resolvedBy"),
            fee=int(data.get("fee") or 0),
            reason=data.get("reason"),
        )

    def __repr__(self) -> str:
        give = ", ".join(f"{i.quantity}x{i.item_id}" for i in self.offered_items)
        want = ", ".join(f"{i.quantity}x{i.item_id}" for i in self.requested_items)
        return (f"TradeOffer({self.offer_id} [{self.status.value}] {self.creator_id}: "
                f"{self.offered_currency} + [{give}] → {self.requested_currency} + [{want}])")


@dataclass(frozen=True, slots=True)
class EscrowLot:
    """
    Assets actually locked for an offer at creation.

    Kept apart from the offer record so a release pays out exactly what was
    taken. Persisted with its own checksum; a lot whose checksum fails on
    load is rebuilt from the offer, and only if the offer verifies.
    """
    creator_id: str
    items: Tuple[TradeItem, ...]
    currency: int

    def to_dict(self) -> Dict[str, Any]:
        return {"creator": self.creator_id, "items": _items_to_list(self.items), "currency": self.currency}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'EscrowLot':
        return cls(
            creator_id=str(data["creator"]),
            items=_items_from_list(data["items"]),
            currency=int(data["currency"]),
        )

    @classmethod
    def for_offer(cls, offer: TradeOffer) -> 'EscrowLot':
        return cls(offer.creator_id, offer.offered_items, offer.offered_currency)


# ============================================================================
# RESULTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class CreatedOffer:
    offer_id: str
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class Settlement:
    """
    What both sides received, and the fee withheld from both legs.

    `fee` is the amount actually withheld. It equals
    floor((offered + requested) * fee_percent / 100) unless a currency leg
    is smaller than its half of that fee, in which case the leg pays out
    zero and `fee` is correspondingly lower (offered 1, requested 99 at 5%
    withholds 4, not 5).
    """
    offer_id: str
    received_items: Tuple[TradeItem, ...]
    received_currency: int
    creator_received_items: Tuple[TradeItem, ...]
    creator_received_currency: int
    fee: int


@dataclass(frozen=True, slots=True)
class TradeResult:
    """
    Outcome of a public engine operation.

    Trade errors never escape the engine: they are reported here with their
    ErrorKind, and unwrap() re-raises them for callers that want exceptions.
    """
    ok: bool
    value: Any = None
    error: Optional[ErrorKind] = None
    message: str = ""
    exception: Optional[TradeError] = None

    @classmethod
    def success(cls, value: Any = None, message: str = "") -> 'TradeResult':
        return cls(ok=True, value=value, message=message)

    @classmethod
    def failure(cls, exc: TradeError) -> 'TradeResult':
        return cls(ok=False, error=exc.kind, message=str(exc), exception=exc)

    def unwrap(self) -> Any:
        if not self.ok and self.exception is not None:
            raise self.exception
        return self.value

    def __bool__(self) -> bool:
        return self.ok


# ============================================================================
# COLLABORATOR PROTOCOLS
# ============================================================================

@runtime_checkable
class InventoryLedger(Protocol):
    """Item storage owned by the game; the engine only moves quantities."""

    def has_quantity(self, actor_id: str, item_id: str, quantity: int) -> bool:
        ...

    def remove(self, actor_id: str, item_id: str, quantity: int) -> None:
        ...

    def add(self, actor_id: str, item_id: str, quantity: int) -> None:
        ...


@runtime_checkable
class CurrencyLedger(Protocol):
    """Currency storage owned by the game."""

    def balance(self, actor_id: str) -> int:
        ...

    def debit(self, actor_id: str, amount: int) -> bool:
        """Remove amount; return False and change nothing if the balance is short."""
        ...

    def credit(self, actor_id: str, amount: int) -> None:
        ...


@runtime_checkable
class TierProvider(Protocol):
    def current_tier(self, actor_id: str) -> str:
        ...


@runtime_checkable
class NotificationSink(Protocol):
    """Fire-and-forget user notifications. Return values are ignored."""

    def notify(self, message: str, level: str) -> Any:
        ...


@runtime_checkable
class PersistenceAdapter(Protocol):
    """Loads and saves a full engine snapshot as a JSON-compatible dict."""

    def load(self) -> Optional[Dict[str, Any]]:
        ...

    def save(self, snapshot: Dict[str, Any]) -> None:
        ...
