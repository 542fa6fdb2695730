"""
accounts.py - Reference collaborators for the trading engine

In-memory implementations of the collaborator protocols in core.py. The game
normally supplies its own; these serve demos, tests and hosts without a
storage layer of their own.

Classes:
- InMemoryInventory: InventoryLedger over nested dicts
- InMemoryWallet: CurrencyLedger over a dict
- StaticTierProvider: TierProvider from a fixed mapping
- NullNotifier / PrintNotifier: NotificationSink implementations
"""

from __future__ import annotations
from collections import defaultdict
from typing import Dict, List, Mapping, Optional, Tuple

from .core import TIER_EMBER


class InMemoryInventory:
    """
    Item quantities per actor.

    Example:
        inventory = InMemoryInventory({"alice": {"iron_sword": 1}})
        inventory.has_quantity("alice", "iron_sword", 1)  # True
    """

    def __init__(self, initial: Optional[Mapping[str, Mapping[str, int]]] = None):
        self._items: Dict[str, Dict[str, int]] = defaultdict(dict)
        for actor, items in (initial or {}).items():
            for item_id, quantity in items.items():
                self.add(actor, item_id, quantity)

    def quantity(self, actor_id: str, item_id: str) -> int:
        return self._items.get(actor_id, {}).get(item_id, 0)

    def has_quantity(self, actor_id: str, item_id: str, quantity: int) -> bool:
        return self.quantity(actor_id, item_id) >= quantity

    def add(self, actor_id: str, item_id: str, quantity: int) -> None:
        if quantity <= 0:
            raise ValueError(f"Quantity must be positive, got {quantity}")
        self._items[actor_id][item_id] = self.quantity(actor_id, item_id) + quantity

    def remove(self, actor_id: str, item_id: str, quantity: int) -> None:
        """
        Raises:
            ValueError: If the actor holds less than quantity
        """
        held = self.quantity(actor_id, item_id)
        if quantity <= 0 or held < quantity:
            raise ValueError(f"{actor_id} cannot remove {quantity} {item_id} (holds {held})")
        remaining = held - quantity
        if remaining:
            self._items[actor_id][item_id] = remaining
        else:
            del self._items[actor_id][item_id]

    def items_of(self, actor_id: str) -> Dict[str, int]:
        return dict(self._items.get(actor_id, {}))

    def as_dict(self) -> Dict[str, Dict[str, int]]:
        return {actor: dict(items) for actor, items in self._items.items() if items}

    def totals(self) -> Dict[str, int]:
        """Quantity of every item summed over all actors."""
        totals: Dict[str, int] = defaultdict(int)
        for items in self._items.values():
            for item_id, quantity in items.items():
                totals[item_id] += quantity
        return dict(totals)


class InMemoryWallet:
    """Integer currency balances per actor. Balances never go negative."""

    def __init__(self, initial: Optional[Mapping[str, int]] = None):
        self._balances: Dict[str, int] = {}
        for actor, amount in (initial or {}).items():
            self.credit(actor, amount)

    def balance(self, actor_id: str) -> int:
        return self._balances.get(actor_id, 0)

    def debit(self, actor_id: str, amount: int) -> bool:
        if amount < 0:
            raise ValueError(f"Amount must be non-negative, got {amount}")
        if self.balance(actor_id) < amount:
            return False
        self._balances[actor_id] = self.balance(actor_id) - amount
        return True

    def credit(self, actor_id: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"Amount must be non-negative, got {amount}")
        self._balances[actor_id] = self.balance(actor_id) + amount

    def total(self) -> int:
        return sum(self._balances.values())

    def balances(self) -> Dict[str, int]:
        return dict(self._balances)


class StaticTierProvider:
    """Tier per actor from a fixed mapping, with a default for everyone else."""

    def __init__(self, tiers: Optional[Mapping[str, str]] = None, default: str = TIER_EMBER):
        self.tiers = dict(tiers or {})
        self.default = default

    def current_tier(self, actor_id: str) -> str:
        return self.tiers.get(actor_id, self.default)

    def set_tier(self, actor_id: str, tier: str) -> None:
        self.tiers[actor_id] = tier


class NullNotifier:
    def notify(self, message: str, level: str) -> None:
        return None


class PrintNotifier:
    """Prints notifications and keeps them for inspection."""

    ICONS = {"success": "✓", "error": "✗", "warning": "⚠️ ", "info": "•"}

    def __init__(self):
        self.messages: List[Tuple[str, str]] = []

    def notify(self, message: str, level: str) -> None:
        self.messages.append((message, level))
        print(f"{self.ICONS.get(level, '•')} {message}")
