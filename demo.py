#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Trading Post Step by Step

This is a pedagogical demonstration of escrow-based trading between players.
Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:   Foundation      - Collaborators, the engine, creating an offer
  4-6:   Core Mechanics  - Accepting, fees, rejections and atomicity
  7-8:   Time            - Escrow deadlines and the expiry sweep
  9-10:  Persistence     - Saving, reloading and catching tampered offers

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
import json
import sys
import tempfile

from tradepost import (
    TradeEngine, ManualClock, IntegrityGuard,
    InMemoryInventory, InMemoryWallet, StaticTierProvider, PrintNotifier,
    JsonFileStore, MemoryStore,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 18, 0, 0)

    alice_gold: int = 100
    bob_gold: int = 40

    offered_gold: int = 50
    requested_gold: int = 30


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def show_balances(wallet: InMemoryWallet, inventory: InMemoryInventory, engine: TradeEngine):
    for actor in ("alice", "bob"):
        print(f"{actor:6} gold={wallet.balance(actor):4}  items={inventory.items_of(actor)}")
    print(f"escrow gold={engine.escrowed_currency():4}  items={engine.escrowed_items()}")
    print(f"fees   gold={engine.fees_collected:4}")


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_collaborators():
    """Set up the game-side ledgers the engine trades against."""
    step_header(1, "The Game's Ledgers",
        "Understand that the engine owns no assets; it moves them between ledgers.")

    print("""
    The trading engine never stores player balances itself. The game hands it:

    - an InventoryLedger  (items per player)
    - a CurrencyLedger    (gold per player)
    - a TierProvider      (progression tier per player, for limits)
    - a NotificationSink  (where user-facing messages go)

    The in-memory versions below are enough for a tutorial.
    """)

    wait_for_enter()

    wallet = InMemoryWallet({"alice": CONFIG.alice_gold, "bob": CONFIG.bob_gold})
    inventory = InMemoryInventory({
        "alice": {"iron_sword": 2, "health_potion": 5},
        "bob": {"magic_gem": 3},
    })
    tiers = StaticTierProvider({"bob": "SPARK"})
    notifier = PrintNotifier()

    section_header("Initial Holdings")
    for actor in ("alice", "bob"):
        print(f"{actor:6} gold={wallet.balance(actor):4}  items={inventory.items_of(actor)}  "
              f"tier={tiers.current_tier(actor)}")

    return wallet, inventory, tiers, notifier


def step_02_engine(wallet, inventory, tiers, notifier):
    """Create the engine on a manual clock."""
    step_header(2, "The Trade Engine",
        "Wire the collaborators into an engine and read its limits.")

    print(">>> clock = ManualClock(datetime(2025, 1, 1, 18, 0))")
    print(">>> engine = TradeEngine(inventory, wallet, tiers=tiers, notifier=notifier, clock=clock)")
    clock = ManualClock(CONFIG.start_time)
    store = MemoryStore()
    engine = TradeEngine(
        inventory, wallet,
        tiers=tiers, notifier=notifier, store=store, clock=clock,
        verbose=True,
    )

    section_header("Limits")
    for actor in ("alice", "bob"):
        print(f"{actor}: {engine.get_limits(actor)}")

    section_header("Key Insight")
    print("""
    Limits follow the Fibonacci-tuned economy: an EMBER player may trade
    8 times a day with a 340 gold ceiling per trade; SPARK gets 13 and 550.
    The fee is 5% of both gold legs together.
    """)
    return engine, clock, store


def step_03_create_offer(engine, wallet, inventory):
    """Alice escrows a sword and gold."""
    step_header(3, "Creating an Offer",
        "Offered assets leave the creator's hands the moment the offer exists.")

    print(f">>> engine.create_offer('alice', {{offered_items: [iron_sword x1], "
          f"offered_currency: {CONFIG.offered_gold}, requested_currency: {CONFIG.requested_gold}}})")
    created = engine.create_offer("alice", {
        "offered_items": [{"item_id": "iron_sword", "quantity": 1}],
        "offered_currency": CONFIG.offered_gold,
        "requested_currency": CONFIG.requested_gold,
    }).unwrap()

    section_header("After Creation")
    print(f"Offer id:   {created.offer_id}")
    print(f"Expires at: {created.expires_at}")
    show_balances(wallet, inventory, engine)

    return created.offer_id


# ============================================================================
# PHASE 2: CORE MECHANICS (Steps 4-6)
# ============================================================================

def step_04_rejections(engine, clock, offer_id):
    """Everything that can go wrong before assets move."""
    step_header(4, "Rejections",
        "Failed operations come back as results and change nothing.")

    section_header("Too soon after the last action")
    result = engine.create_offer("alice", {"offered_currency": 1, "requested_currency": 1})
    print(f"ok={result.ok} error={result.error} message={result.message!r}")

    clock.advance(seconds=3)

    section_header("Malformed proposal")
    result = engine.create_offer("alice", {"offered_items": [{"item_id": "Iron Sword", "quantity": 0}]})
    print(f"ok={result.ok} error={result.error} message={result.message!r}")

    section_header("Accepting your own offer")
    result = engine.accept_offer("alice", offer_id)
    print(f"ok={result.ok} error={result.error} message={result.message!r}")


def step_05_accept(engine, wallet, inventory, offer_id):
    """Bob completes the trade."""
    step_header(5, "Accepting",
        "Settlement swaps both sides and withholds the fee from both gold legs.")

    print(f">>> engine.accept_offer('bob', {offer_id!r})")
    settlement = engine.accept_offer("bob", offer_id).unwrap()

    section_header("Settlement")
    print(f"Fee:                      {settlement.fee}  (floor(80 * 5 / 100))")
    print(f"Bob received:             {settlement.received_currency} gold + {settlement.received_items}")
    print(f"Alice received:           {settlement.creator_received_currency} gold")
    show_balances(wallet, inventory, engine)

    section_header("Key Insight")
    print("""
    Bob's share of the fee rounds down and Alice's rounds up: 2 + 2 = 4.
    Alice: 100 - 50 + 28 = 78.  Bob: 40 - 30 + 48 = 58.
    """)


def step_06_single_resolution(engine, offer_id):
    """A settled offer is gone."""
    step_header(6, "Single Resolution",
        "An offer leaves pending exactly once; repeats report NOT_FOUND.")

    result = engine.accept_offer("bob", offer_id)
    print(f"second accept: ok={result.ok} error={result.error}")
    result = engine.cancel_offer("alice", offer_id)
    print(f"late cancel:   ok={result.ok} error={result.error}")

    section_header("History (most recent first)")
    for record in engine.get_history():
        print(f"  {record!r}  by={record.resolved_by} fee={record.fee}")


# ============================================================================
# PHASE 3: TIME (Steps 7-8)
# ============================================================================

def step_07_expiry(engine, clock, wallet, inventory):
    """Offers nobody takes come back after 21 minutes."""
    step_header(7, "Escrow Deadlines",
        "An offer is expired from its deadline on, swept or not.")

    clock.advance(seconds=3)
    offer_id = engine.create_offer("alice", {
        "offered_items": [{"item_id": "health_potion", "quantity": 3}],
        "requested_items": [{"item_id": "magic_gem", "quantity": 1}],
    }).unwrap().offer_id
    show_balances(wallet, inventory, engine)

    print("\n>>> clock.advance(timedelta(minutes=21))")
    clock.advance(timedelta(minutes=21))

    section_header("Accept after the deadline")
    result = engine.accept_offer("bob", offer_id)
    print(f"ok={result.ok} error={result.error} message={result.message!r}")
    show_balances(wallet, inventory, engine)


def step_08_tick(engine, clock):
    """The host calls tick() on a timer."""
    step_header(8, "The Periodic Sweep",
        "tick() sweeps at most once per sweep interval; sweeping twice is harmless.")

    clock.advance(seconds=3)
    engine.create_offer("alice", {"offered_currency": 10, "requested_currency": 10})
    clock.advance(timedelta(minutes=30))
    print(f"tick()          → {engine.tick()}")
    print(f"tick() again    → {engine.tick()}")
    print(f"sweep_expired() → {engine.sweep_expired()}")


# ============================================================================
# PHASE 4: PERSISTENCE (Steps 9-10)
# ============================================================================

def step_09_persistence(wallet, inventory, clock):
    """Save to a JSON file and pick up where we left off."""
    step_header(9, "Saving and Loading",
        "Every committed transition is saved; a new engine can load it.")

    path = Path(tempfile.mkdtemp()) / "trades.json"
    guard = IntegrityGuard(b"demo-secret")
    engine = TradeEngine(inventory, wallet, store=JsonFileStore(path), clock=clock,
                         integrity=guard, verbose=False)
    clock.advance(seconds=3)
    offer_id = engine.create_offer("alice", {"offered_currency": 20, "requested_currency": 10}).unwrap().offer_id
    print(f"Saved to {path}")

    revived = TradeEngine(inventory, wallet, store=JsonFileStore(path), clock=clock,
                          integrity=guard, verbose=True)
    revived.load()
    print(f"Reloaded active offers: {[o.offer_id for o in revived.get_active_offers()]}")
    return path, guard, offer_id


def step_10_tamper(wallet, inventory, clock, path, guard, offer_id):
    """Edit the save file and watch the engine refuse the trade."""
    step_header(10, "Tamper Detection",
        "An edited offer is cancelled and refunded from escrow, never settled.")

    data = json.loads(path.read_text(encoding="utf-8"))
    data["activeOffers"][0]["requestedCurrency"] = 0
    path.write_text(json.dumps(data), encoding="utf-8")
    print(">>> (edited requestedCurrency to 0 in the save file)")

    engine = TradeEngine(inventory, wallet, store=JsonFileStore(path), clock=clock,
                         integrity=guard, notifier=PrintNotifier(), verbose=True)
    engine.load()
    print(f"audit: {engine.audit()}")
    result = engine.accept_offer("bob", offer_id)
    print(f"ok={result.ok} error={result.error} message={result.message!r}")
    print(f"alice gold={wallet.balance('alice')}  bob gold={wallet.balance('bob')}")


# ============================================================================
# MAIN
# ============================================================================

def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       TRADING POST - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    wait_for_enter()

    wallet, inventory, tiers, notifier = step_01_collaborators()
    wait_for_enter()

    engine, clock, _ = step_02_engine(wallet, inventory, tiers, notifier)
    wait_for_enter()

    offer_id = step_03_create_offer(engine, wallet, inventory)
    wait_for_enter()

    step_04_rejections(engine, clock, offer_id)
    wait_for_enter()

    step_05_accept(engine, wallet, inventory, offer_id)
    wait_for_enter()

    step_06_single_resolution(engine, offer_id)
    wait_for_enter()

    step_07_expiry(engine, clock, wallet, inventory)
    wait_for_enter()

    step_08_tick(engine, clock)
    wait_for_enter()

    path, guard, saved_id = step_09_persistence(wallet, inventory, clock)
    wait_for_enter()

    step_10_tamper(wallet, inventory, clock, path, guard, saved_id)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    You've learned:

      - Offers lock the creator's assets in escrow immediately
      - Accepting swaps both sides and withholds a 5% fee
      - Every failure is a TradeResult and changes nothing
      - Offers expire 21 minutes after creation, swept or not
      - Saved offers carry a checksum; edited ones are refunded, never settled

    Next steps:
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
