"""
market_helpers.py - Shared builders and invariant checks for revshare tests
"""

from datetime import datetime
from typing import Dict, List, Set

from revshare import (
    Marketplace, VAULT_WALLET, SYSTEM_WALLET,
    get_project_summary, verify_reward_conservation, reject_payments_to, project_symbol,
)


ADMIN = "admin"
CREATOR = "creator"
ACCOUNTS = ("alice", "bob", "carol")
STARTING_CASH = 1_000_000


def make_market(frozen: Set[str] = None, **kwargs) -> Marketplace:
    """
    Marketplace with admin, creator, alice, bob and carol registered and funded.

    Args:
        frozen: Accounts the cash unit refuses to credit (payout failure tests)
        **kwargs: Passed to Marketplace (e.g. cash_transfer_rule, pause_gate)
    """
    if frozen is not None:
        kwargs['cash_transfer_rule'] = reject_payments_to(frozen)
    market = Marketplace(
        "test",
        owner=ADMIN,
        initial_time=datetime(2025, 1, 1),
        verbose=False,
        **kwargs,
    )
    for account in (ADMIN, CREATOR) + ACCOUNTS:
        market.register_account(account)
        market.issue_cash(account, STARTING_CASH)
    return market


def cash_of(market: Marketplace, account: str) -> int:
    return market.ledger.get_balance(account, market.currency)


def shares_of(market: Marketplace, account: str, project_id: int) -> int:
    return market.ledger.get_balance(account, project_symbol(project_id))


def snapshot(market: Marketplace) -> Dict:
    """Everything an operation may touch, for before/after comparisons."""
    return {
        'balances': {w: dict(b) for w, b in market.ledger.balances.items()},
        'units': {s: u.state for s, u in market.ledger.units.items()},
        'checkpoints': dict(market.rewards.checkpoints),
        'events': list(market.events),
        'log': len(market.ledger.transaction_log),
        'projects': list(market.project_ids),
    }


def check_invariants(market: Marketplace) -> List[str]:
    """
    Check the marketplace-wide invariants; returns a list of violations.

    - Cash and shares are conserved (double entry)
    - Vault cash = all sales escrow + all revenue not yet claimed
    - minted <= total_supply and minted = sum of share balances
    - Per-project reward conservation holds
    - No checkpoint is ahead of its project's accumulator
    """
    problems = []
    ledger = market.ledger

    double_entry = ledger.verify_double_entry()
    if not double_entry['valid']:
        problems.append(f"double entry: {double_entry['discrepancies']}")

    owed = 0
    for project_id in market.project_ids:
        summary = get_project_summary(market, project_id)
        claimed = sum(
            cp.total_claimed for (pid, _), cp in market.rewards.checkpoints.items()
            if pid == project_id
        )
        owed += summary.sales_balance + summary.total_revenue - claimed

        if summary.minted > summary.total_supply:
            problems.append(f"project {project_id}: minted above supply")
        positions = ledger.get_positions(project_symbol(project_id))
        held = sum(q for w, q in positions.items() if w != SYSTEM_WALLET)
        if held != summary.minted:
            problems.append(f"project {project_id}: held {held} != minted {summary.minted}")

        conservation = verify_reward_conservation(market, project_id)
        if not conservation['valid']:
            problems.append(f"project {project_id}: reward conservation {conservation}")

        for (pid, holder), cp in market.rewards.checkpoints.items():
            if pid == project_id and cp.paid_per_share > summary.reward_per_share_stored:
                problems.append(f"project {project_id}: {holder} checkpoint ahead of accumulator")

    vault = ledger.get_balance(VAULT_WALLET, market.currency)
    if vault != owed:
        problems.append(f"vault {vault} != owed {owed}")
    return problems
