"""
tradepost - Escrow-Based Peer Trading Engine

Two-party offers exchanging currency and inventory items, with escrow,
rate limiting, tier limits and tamper detection on persisted state.

Usage:
    from tradepost import TradeEngine, InMemoryInventory, InMemoryWallet

    inventory = InMemoryInventory({"alice": {"iron_sword": 1}})
    wallet = InMemoryWallet({"alice": 100, "bob": 40})
    engine = TradeEngine(inventory, wallet)

    # Alice escrows 50 currency and a sword, asking 30 currency in return
    created = engine.create_offer("alice", {
        "offered_items": [{"item_id": "iron_sword", "quantity": 1}],
        "offered_currency": 50,
        "requested_currency": 30,
    })

    # Bob accepts; the 5% fee is withheld from both legs
    result = engine.accept_offer("bob", created.value.offer_id)
    result.value.fee  # 4
"""

# Core types
from .core import (
    TradeConfig,
    TradeItem,
    TradeProposal,
    TradeOffer,
    EscrowLot,
    OfferStatus,
    ErrorKind,
    TradeResult,
    CreatedOffer,
    Settlement,
    TradeError,
    ValidationError,
    RateLimitError,
    PolicyError,
    NotAuthorizedError,
    InsufficientAssetsError,
    NotFoundError,
    IntegrityError,
    ExpiredError,
    InventoryLedger,
    CurrencyLedger,
    TierProvider,
    NotificationSink,
    PersistenceAdapter,
    trade_fib,
    TIERS,
    TIER_EMBER,
    TIER_SPARK,
    TIER_FLAME,
    TIER_BLAZE,
    TIER_INFERNO,
    SNAPSHOT_VERSION,
)

# Time
from .clock import Clock, SystemClock, ManualClock

# Components
from .validation import validate_proposal, validate_item, ValidationResult
from .rate_limiter import RateLimiter, RateCheck
from .limits import LimitsPolicy, ActorLimitState
from .integrity import IntegrityGuard, canonicalize
from .escrow import EscrowLedger, compute_fee, SYSTEM_ACTOR

# Engine
from .engine import TradeEngine

# Collaborators and stores
from .accounts import (
    InMemoryInventory,
    InMemoryWallet,
    StaticTierProvider,
    NullNotifier,
    PrintNotifier,
)
from .persistence import MemoryStore, JsonFileStore


__all__ = [
    # Core
    'TradeConfig', 'TradeItem', 'TradeProposal', 'TradeOffer', 'EscrowLot',
    'OfferStatus', 'ErrorKind', 'TradeResult', 'CreatedOffer', 'Settlement',
    # Exceptions
    'TradeError', 'ValidationError', 'RateLimitError', 'PolicyError',
    'NotAuthorizedError', 'InsufficientAssetsError', 'NotFoundError',
    'IntegrityError', 'ExpiredError',
    # Protocols
    'InventoryLedger', 'CurrencyLedger', 'TierProvider', 'NotificationSink',
    'PersistenceAdapter', 'Clock',
    # Constants
    'trade_fib', 'TIERS', 'TIER_EMBER', 'TIER_SPARK', 'TIER_FLAME',
    'TIER_BLAZE', 'TIER_INFERNO', 'SNAPSHOT_VERSION', 'SYSTEM_ACTOR',
    # Components
    'SystemClock', 'ManualClock',
    'validate_proposal', 'validate_item', 'ValidationResult',
    'RateLimiter', 'RateCheck',
    'LimitsPolicy', 'ActorLimitState',
    'IntegrityGuard', 'canonicalize',
    'EscrowLedger', 'compute_fee',
    'TradeEngine',
    # Collaborators
    'InMemoryInventory', 'InMemoryWallet', 'StaticTierProvider',
    'NullNotifier', 'PrintNotifier',
    'MemoryStore', 'JsonFileStore',
]

__version__ = '1.0.0'
