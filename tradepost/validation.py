"""
validation.py - Structural validation of trade proposals

Proposals arrive from the UI as plain mappings and are untrusted. Validation
is fail-closed: every violation is collected and reported, and a single one
rejects the whole proposal. Nothing here touches ledgers or engine state.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple
import re

from .core import (
    TradeConfig, TradeItem, TradeProposal,
    ITEM_ID_PATTERN,
)


PROPOSAL_KEYS = frozenset({
    "offered_items", "offered_currency", "requested_items", "requested_currency",
})

_ITEM_ID_RE = re.compile(ITEM_ID_PATTERN)


@dataclass(frozen=True, slots=True)
class ValidationResult:
    valid: bool
    errors: Tuple[str, ...] = ()
    proposal: Optional[TradeProposal] = None


def _is_int(value: Any) -> bool:
    # bool is an int subclass; True is not a quantity
    return isinstance(value, int) and not isinstance(value, bool)


def validate_item(item: Any, config: TradeConfig) -> bool:
    """Check a single item: known shape, well-formed id, positive bounded quantity."""
    if isinstance(item, TradeItem):
        item_id, quantity = item.item_id, item.quantity
    elif isinstance(item, Mapping):
        if set(item) - {"item_id", "id", "quantity"}:
            return False
        item_id = item.get("item_id", item.get("id"))
        quantity = item.get("quantity")
    else:
        return False
    if not isinstance(item_id, str) or not 0 < len(item_id) <= config.max_item_id_length:
        return False
    if not _ITEM_ID_RE.fullmatch(item_id):
        return False
    if not _is_int(quantity) or not 0 < quantity <= config.max_item_quantity:
        return False
    return True


def _check_items(raw: Any, side: str, config: TradeConfig, errors: List[str]) -> int:
    """Validate one side's item list; return how many well-formed items it has."""
    if raw is None:
        return 0
    if not isinstance(raw, (list, tuple)):
        errors.append(f"{side.capitalize()} items must be a list")
        return 0
    seen = set()
    good = 0
    for i, item in enumerate(raw):
        if not validate_item(item, config):
            errors.append(f"Invalid {side} item at index {i}")
            continue
        item_id = item.item_id if isinstance(item, TradeItem) else item.get("item_id", item.get("id"))
        if item_id in seen:
            errors.append(f"Duplicate {side} item: {item_id}")
            continue
        seen.add(item_id)
        good += 1
    return good


def _check_currency(raw: Any, side: str, config: TradeConfig, errors: List[str]) -> int:
    if raw is None:
        return 0
    if not _is_int(raw) or raw < 0:
        errors.append(f"{side.capitalize()} currency must be a non-negative integer")
        return 0
    if raw > config.max_currency:
        errors.append(f"{side.capitalize()} currency exceeds {config.max_currency}")
        return 0
    return raw


def validate_proposal(proposal: Any, config: Optional[TradeConfig] = None) -> ValidationResult:
    """
    Validate a proposed offer.

    Args:
        proposal: A TradeProposal or a mapping with the keys in PROPOSAL_KEYS.
                  Missing item lists count as empty, missing currency as zero.
        config: Limits for ids, quantities and currency (defaults if omitted)

    Returns:
        ValidationResult; `proposal` holds the normalized TradeProposal when valid
    """
    config = config or TradeConfig()
    if isinstance(proposal, TradeProposal):
        proposal = proposal.to_dict()
    if not isinstance(proposal, Mapping):
        return ValidationResult(False, ("Invalid offer format",))

    errors: List[str] = []
    unknown = set(proposal) - PROPOSAL_KEYS
    if unknown:
        errors.append(f"Unknown offer fields: {', '.join(sorted(map(str, unknown)))}")

    offered = _check_items(proposal.get("offered_items"), "offered", config, errors)
    offered_currency = _check_currency(proposal.get("offered_currency"), "offered", config, errors)
    requested = _check_items(proposal.get("requested_items"), "requested", config, errors)
    requested_currency = _check_currency(proposal.get("requested_currency"), "requested", config, errors)

    if offered == 0 and offered_currency == 0:
        errors.append("Must offer something (items or currency)")
    if requested == 0 and requested_currency == 0:
        errors.append("Must request something (items or currency)")

    if errors:
        return ValidationResult(False, tuple(errors))
    return ValidationResult(True, (), TradeProposal.from_mapping(proposal))
