#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Revenue Sharing Step by Step

A walk through one project's life, from creation to wind-down. Each step
builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Setup        - Marketplace, accounts, a project
  4-6:  Sales        - Purchases, refunds, the sales escrow
  7-9:  Revenue      - Deposits, the accumulator, late buyers
  10-12: Lifecycle   - Trading shares, claims, failed payouts
  13:   Proof        - Conservation of cash and revenue

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime
import sys

from revshare import (
    Marketplace, PRECISION, VAULT_WALLET,
    LedgerError, ClaimTransferFailed, NothingToClaim,
    get_project_summary, get_portfolio, get_held_funds, verify_reward_conservation,
    reject_payments_to,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)
    starting_cash: int = 10_000

    total_supply: int = 100
    price_wei: int = 10
    min_purchase: int = 1

    alice_shares: int = 40
    bob_shares: int = 60
    first_deposit: int = 400
    second_deposit: int = 1_000


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv

FROZEN = set()


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def show_project(market: Marketplace, project_id: int):
    s = get_project_summary(market, project_id)
    print(f"  Project {s.project_id} '{s.name}' (creator={s.creator}, active={s.active})")
    print(f"    minted          : {s.minted} / {s.total_supply}")
    print(f"    sales escrow    : {s.sales_balance}")
    print(f"    total revenue   : {s.total_revenue}")
    print(f"    reward/share    : {s.reward_per_share_stored} ({s.reward_per_share_stored / PRECISION:g} wei)")


def show_holders(market: Marketplace, project_id: int, holders):
    for holder in holders:
        for entry in get_portfolio(market, holder, [project_id]):
            print(f"  {holder:6s} shares={entry.balance:3d}  claimable={entry.claimable:5d}  "
                  f"claimed={entry.total_claimed:5d}")


# ============================================================================
# PHASE 1: SETUP
# ============================================================================

def step_01_marketplace():
    step_header(1, "THE MARKETPLACE", "Create a marketplace with an admin and a settlement currency")
    market = Marketplace(
        "demo",
        owner="admin",
        initial_time=CONFIG.start_time,
        verbose=False,
        cash_transfer_rule=reject_payments_to(FROZEN),
    )
    print(f"  Currency unit : {market.currency}")
    print(f"  Vault wallet  : {VAULT_WALLET} (holds all cash the marketplace receives)")
    print(f"  Registered    : {sorted(market.ledger.list_wallets())}")
    return market


def step_02_accounts(market: Marketplace):
    step_header(2, "ACCOUNTS", "Register participants and issue them cash")
    for account in ("admin", "creator", "alice", "bob", "carol"):
        market.register_account(account)
        market.issue_cash(account, CONFIG.starting_cash)
        print(f"  {account:8s} {market.ledger.get_balance(account, market.currency)} {market.currency}")
    return market


def step_03_project(market: Marketplace):
    step_header(3, "A PROJECT", "Register a project: fixed supply, fixed price, minimum purchase")
    pid = market.create_project(
        "creator", "Solar Farm",
        total_supply=CONFIG.total_supply,
        price_wei=CONFIG.price_wei,
        min_purchase=CONFIG.min_purchase,
    )
    show_project(market, pid)
    print(f"\n  Emitted: {market.events[-1]}")
    return pid


# ============================================================================
# PHASE 2: SALES
# ============================================================================

def step_04_purchase(market: Marketplace, pid: int):
    step_header(4, "FIRST PURCHASE", "Alice buys shares; the cost lands in the sales escrow")
    cost = market.purchase("alice", pid, CONFIG.alice_shares, payment=CONFIG.alice_shares * CONFIG.price_wei)
    print(f"  Alice paid {cost}")
    show_project(market, pid)


def step_05_refund(market: Marketplace, pid: int):
    step_header(5, "OVERPAYMENT", "Value sent above the cost is refunded in the same operation")
    before = market.ledger.get_balance("carol", market.currency)
    cost = market.purchase("carol", pid, 1, payment=1_000)
    after = market.ledger.get_balance("carol", market.currency)
    print(f"  Carol sent 1000, was charged {cost}, balance moved by {after - before}")
    market.transfer_shares("carol", "alice", pid, 1)
    print("  (Carol gives her share to Alice to keep the numbers round)")


def step_06_rejections(market: Marketplace, pid: int):
    step_header(6, "REJECTIONS", "Invalid purchases raise named errors and change nothing")
    attempts = [
        ("below minimum", lambda: market.purchase("bob", pid, 0, payment=0)),
        ("over supply", lambda: market.purchase("bob", pid, 1_000, payment=10_000)),
        ("underpaid", lambda: market.purchase("bob", pid, 10, payment=99)),
    ]
    for label, attempt in attempts:
        try:
            attempt()
        except LedgerError as exc:
            print(f"  {label:14s} -> {type(exc).__name__}: {exc}")


# ============================================================================
# PHASE 3: REVENUE
# ============================================================================

def step_07_deposit(market: Marketplace, pid: int):
    step_header(7, "REVENUE", "A deposit raises reward_per_share; no holder is iterated")
    market.deposit_revenue("creator", pid, CONFIG.first_deposit)
    show_project(market, pid)
    show_holders(market, pid, ("alice",))


def step_08_late_buyer(market: Marketplace, pid: int):
    step_header(8, "LATE BUYER", "Bob buys after the deposit and earns nothing from it")
    market.purchase("bob", pid, CONFIG.bob_shares - 1, payment=(CONFIG.bob_shares - 1) * CONFIG.price_wei)
    show_holders(market, pid, ("alice", "bob"))


def step_09_second_deposit(market: Marketplace, pid: int):
    step_header(9, "SECOND DEPOSIT", "Revenue is shared by whoever holds shares at deposit time")
    market.deposit_revenue("creator", pid, CONFIG.second_deposit)
    show_project(market, pid)
    show_holders(market, pid, ("alice", "bob"))


# ============================================================================
# PHASE 4: LIFECYCLE
# ============================================================================

def step_10_trading(market: Marketplace, pid: int):
    step_header(10, "TRADING", "Shares change hands; earned revenue stays with the seller")
    market.transfer_shares("alice", "carol", pid, 20)
    show_holders(market, pid, ("alice", "bob", "carol"))


def step_11_claims(market: Marketplace, pid: int):
    step_header(11, "CLAIMS", "Holders withdraw what they earned")
    for holder in ("alice", "bob", "carol"):
        try:
            print(f"  {holder} claimed {market.claim(holder, pid)}")
        except NothingToClaim:
            print(f"  {holder} has nothing to claim")


def step_12_failed_payout(market: Marketplace, pid: int):
    step_header(12, "FAILED PAYOUT", "A refused payout aborts the claim and keeps the entitlement")
    market.deposit_revenue("creator", pid, 100)
    FROZEN.add("bob")
    try:
        market.claim("bob", pid)
    except ClaimTransferFailed as exc:
        print(f"  ClaimTransferFailed: {exc}")
    print(f"  Bob can still claim {market.claimable(pid, 'bob')}")
    FROZEN.discard("bob")
    print(f"  After unfreezing, bob claimed {market.claim('bob', pid)}")


# ============================================================================
# PHASE 5: PROOF
# ============================================================================

def step_13_conservation(market: Marketplace, pid: int):
    step_header(13, "CONSERVATION", "Every wei is accounted for")
    market.withdraw_sales("creator", pid, "creator", get_project_summary(market, pid).sales_balance)
    result = verify_reward_conservation(market, pid)
    print(f"  total revenue : {result['total_revenue']}")
    print(f"  distributed   : {result['distributed']}")
    print(f"  remainder     : {result['remainder']} (bound {result['bound']})")
    print(f"  vault holds   : {get_held_funds(market)}")
    print(f"  double entry  : {market.ledger.verify_double_entry()['valid']}")
    print(f"  transactions  : {len(market.ledger.transaction_log)}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       REVSHARE - INTERACTIVE TUTORIAL")
    print("=" * 70)
    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")
    wait_for_enter()

    market = step_01_marketplace()
    wait_for_enter()
    step_02_accounts(market)
    wait_for_enter()
    pid = step_03_project(market)
    wait_for_enter()

    for step in (
        step_04_purchase, step_05_refund, step_06_rejections,
        step_07_deposit, step_08_late_buyer, step_09_second_deposit,
        step_10_trading, step_11_claims, step_12_failed_payout,
        step_13_conservation,
    ):
        step(market, pid)
        wait_for_enter()

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See revshare/rewards.py for the accumulator model
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
