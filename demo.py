#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Security Deposits Step by Step

A walk through the escrow ledger. Each step builds on the previous one.
Press Enter to advance.

WHAT YOU'LL LEARN:
  1-2:  Foundation   - The ledger, funding the parties
  3-6:  Lifecycle    - Create, release, return, dispute
  7-9:  Guarantees   - Rejections, atomic payouts, conservation and replay

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
import sys

from escrow import (
    Ledger, DepositRegistry, ExecuteResult,
    compute_release_to_landlord,
    LedgerError, ESCROW_WALLET, SYSTEM_WALLET,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_height: int = 123
    tenant: str = "tenant"
    landlord: str = "landlord"
    stranger: str = "stranger"
    initial_balance: int = 10000
    deposit_amount: int = 1000
    lease_term_blocks: int = 333


CONFIG = DemoConfig()

# Global state for interactive mode
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


def show_balances(ledger: Ledger):
    for wallet in (CONFIG.tenant, CONFIG.landlord, ESCROW_WALLET):
        print(f"  {wallet:<10} {ledger.balance_of(wallet):>8}")


# ============================================================================
# PHASE 1: FOUNDATION
# ============================================================================

def step_01_ledger() -> Ledger:
    step_header(1, "The Ledger",
        "A ledger holds balances, deposit records and an append-only log.")

    print(f">>> ledger = Ledger('rentals', initial_height={CONFIG.start_height})")
    ledger = Ledger("rentals", initial_height=CONFIG.start_height, verbose=True)

    section_header("Initial State")
    print(f"Ledger name:        {ledger.name}")
    print(f"Current height:     {ledger.current_height}")
    print(f"Registered wallets: {sorted(ledger.list_wallets())}")
    print(f"Transaction log:    {len(ledger.transaction_log)} entries")
    return ledger


def step_02_fund_parties(ledger: Ledger) -> DepositRegistry:
    step_header(2, "Funding the Parties",
        "Value enters through the system wallet; escrow gets its own custody wallet.")

    for wallet in (CONFIG.tenant, CONFIG.landlord, CONFIG.stranger):
        ledger.register_wallet(wallet)
        print(f">>> ledger.issue({wallet!r}, {CONFIG.initial_balance})")
        ledger.issue(wallet, CONFIG.initial_balance)

    registry = DepositRegistry(ledger)
    section_header("Key Insight")
    print(f"""
    The {SYSTEM_WALLET!r} wallet now holds {ledger.balance_of(SYSTEM_WALLET)}.
    The sum over every wallet is always zero.
    """)
    return registry


# ============================================================================
# PHASE 2: LIFECYCLE
# ============================================================================

def step_03_create(registry: DepositRegistry):
    step_header(3, "Creating a Deposit",
        "The tenant moves the deposit into escrow custody; the record starts HELD.")

    deposit = registry.create_deposit(CONFIG.tenant, "lease123", CONFIG.landlord, CONFIG.deposit_amount)
    section_header("Deposit")
    print(deposit.to_dict())
    show_balances(registry.ledger)


def step_04_release(registry: DepositRegistry):
    step_header(4, "Releasing to the Landlord",
        "Only the tenant can pay the landlord out of escrow.")

    registry.ledger.advance_height(registry.ledger.current_height + CONFIG.lease_term_blocks)
    deposit = registry.release_to_landlord(CONFIG.tenant, "lease123")
    print(deposit.to_dict())
    show_balances(registry.ledger)


def step_05_return(registry: DepositRegistry):
    step_header(5, "Returning to the Tenant",
        "Only the landlord can send the deposit back to the tenant.")

    registry.create_deposit(CONFIG.tenant, "lease456", CONFIG.landlord, CONFIG.deposit_amount)
    deposit = registry.return_to_tenant(CONFIG.landlord, "lease456")
    print(deposit.to_dict())
    show_balances(registry.ledger)


def step_06_dispute(registry: DepositRegistry):
    step_header(6, "Disputing a Deposit",
        "Either party can freeze a HELD deposit; the funds stay in escrow.")

    registry.create_deposit(CONFIG.tenant, "lease789", CONFIG.landlord, CONFIG.deposit_amount)
    deposit = registry.dispute_deposit(CONFIG.landlord, "lease789")
    print(deposit.to_dict())
    show_balances(registry.ledger)


# ============================================================================
# PHASE 3: GUARANTEES
# ============================================================================

def step_07_rejections(registry: DepositRegistry):
    step_header(7, "Rejected Requests",
        "Every failure carries a contract error code and changes nothing.")

    registry.create_deposit(CONFIG.tenant, "lease321", CONFIG.landlord, CONFIG.deposit_amount)
    attempts = [
        ("landlord releases to self", lambda: registry.release_to_landlord(CONFIG.landlord, "lease321")),
        ("stranger releases lease789", lambda: registry.release_to_landlord(CONFIG.stranger, "lease789")),
        ("release of a missing lease", lambda: registry.release_to_landlord(CONFIG.tenant, "nope")),
        ("overdrawn deposit", lambda: registry.create_deposit(CONFIG.tenant, "big", CONFIG.landlord, 10**9)),
        ("release of a disputed lease", lambda: registry.release_to_landlord(CONFIG.tenant, "lease789")),
        ("second deposit for lease123", lambda: registry.create_deposit(CONFIG.tenant, "lease123", CONFIG.landlord, 1)),
    ]
    for label, attempt in attempts:
        try:
            attempt()
        except LedgerError as exc:
            print(f"  {label:<32} -> {type(exc).__name__} (code {exc.code})")


def step_08_stale_payout(registry: DepositRegistry):
    step_header(8, "Atomic Payouts",
        "A payout built before a concurrent transition is rejected at execution.")

    ledger = registry.ledger
    registry.create_deposit(CONFIG.tenant, "lease999", CONFIG.landlord, CONFIG.deposit_amount)
    stale = compute_release_to_landlord(ledger, CONFIG.tenant, "lease999")
    registry.dispute_deposit(CONFIG.tenant, "lease999")

    result = ledger.execute(stale)
    print(f">>> ledger.execute(stale_release) -> {result.name}")
    assert result == ExecuteResult.REJECTED


def step_09_conservation(registry: DepositRegistry):
    step_header(9, "Conservation and Replay",
        "Supply never changes; replaying the log rebuilds identical state.")

    ledger = registry.ledger
    result = ledger.verify_conservation(3 * CONFIG.initial_balance)
    print(f"verify_conservation: {result}")

    ledger.verbose = False
    replayed = ledger.replay()
    print(f"Replayed balances match:  {replayed.balances == ledger.balances}")
    print(f"Replayed deposits match:  {replayed.list_deposits() == ledger.list_deposits()}")


# ============================================================================
# MAIN
# ============================================================================

def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       SECURITY DEPOSIT ESCROW - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    ledger = step_01_ledger()
    wait_for_enter()

    registry = step_02_fund_parties(ledger)
    wait_for_enter()

    for step in (step_03_create, step_04_release, step_05_return, step_06_dispute,
                 step_07_rejections, step_08_stale_payout, step_09_conservation):
        step(registry)
        wait_for_enter()

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)


if __name__ == "__main__":
    main()
