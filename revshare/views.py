"""
views.py - Read-only queries

Functions here never mutate the marketplace. They read project unit state,
share balances and reward checkpoints and assemble them into summaries.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, TYPE_CHECKING

from .core import SYSTEM_WALLET, VAULT_WALLET
from .events import RevenueDeposited
from .projects import load_project, project_symbol, calculate_available_supply

if TYPE_CHECKING:
    from .marketplace import Marketplace


@dataclass(frozen=True, slots=True)
class ProjectSummary:
    project_id: int
    name: str
    creator: str
    active: bool
    total_supply: int
    minted: int
    available_supply: int
    price_wei: int
    min_purchase: int
    total_revenue: int
    total_energy_kwh: int
    reward_per_share_stored: int
    sales_balance: int
    created_at: datetime


@dataclass(frozen=True, slots=True)
class PortfolioEntry:
    """One project position held by an account."""
    project_id: int
    balance: int
    claimable: int
    total_claimed: int


def get_project_summary(market: Marketplace, project_id: int) -> ProjectSummary:
    """
    Full snapshot of a project's terms and counters.

    Raises:
        ProjectNotFound: unknown project id
    """
    terms, state = load_project(market.ledger, project_id)
    return ProjectSummary(
        project_id=terms.project_id,
        name=terms.name,
        creator=state.creator,
        active=state.active,
        total_supply=terms.total_supply,
        minted=state.minted,
        available_supply=calculate_available_supply(terms, state),
        price_wei=terms.price_wei,
        min_purchase=terms.min_purchase,
        total_revenue=state.total_revenue,
        total_energy_kwh=state.total_energy_kwh,
        reward_per_share_stored=state.reward_per_share_stored,
        sales_balance=state.sales_balance,
        created_at=terms.created_at,
    )


def get_project_creator(market: Marketplace, project_id: int) -> str:
    _, state = load_project(market.ledger, project_id)
    return state.creator


def get_sales_balance(market: Marketplace, project_id: int) -> int:
    _, state = load_project(market.ledger, project_id)
    return state.sales_balance


def get_next_project_id(market: Marketplace) -> int:
    return len(market.project_ids) + 1


def get_held_funds(market: Marketplace) -> int:
    """Cash held by the marketplace: unwithdrawn sale proceeds plus unclaimed revenue."""
    return market.ledger.get_balance(VAULT_WALLET, market.currency)


def get_portfolio(
    market: Marketplace,
    account: str,
    project_ids: Optional[Sequence[int]] = None,
) -> List[PortfolioEntry]:
    """
    Balance, claimable and lifetime claimed for an account, per project.

    Args:
        market: Marketplace to read
        account: Holder to report on
        project_ids: Projects to report, one entry each in the given order.
            When omitted, every project in which the account holds shares or
            has unclaimed revenue is reported. A holder who sold all their
            shares still appears while revenue earned before the sale is
            unclaimed.

    Raises:
        ProjectNotFound: a requested id is unknown
    """
    requested = project_ids is not None
    entries = []
    for project_id in (project_ids if requested else market.project_ids):
        load_project(market.ledger, project_id)
        balance = market.rewards.balance(project_id, account)
        claimable = market.rewards.claimable(project_id, account)
        if not requested and balance == 0 and claimable == 0:
            continue
        checkpoint = market.rewards.checkpoint(project_id, account)
        entries.append(PortfolioEntry(project_id, balance, claimable, checkpoint.total_claimed))
    return entries


def verify_reward_conservation(market: Marketplace, project_id: int) -> Dict[str, Any]:
    """
    Check that a project never owes holders more than was deposited.

    distributed = everything already claimed + everything still claimable.
    remainder = total_revenue - distributed is the rounding dust, which must be
    non-negative and below the bound of one wei per holder per deposit
    (minted + 1 per deposit, counting the integer division of the deposit
    itself).

    Returns:
        Dict with keys 'valid', 'total_revenue', 'distributed', 'remainder', 'bound'
    """
    _, state = load_project(market.ledger, project_id)
    symbol = project_symbol(project_id)

    holders = set(market.rewards.holders(project_id))
    holders.update(market.ledger.get_positions(symbol))
    holders.discard(SYSTEM_WALLET)

    distributed = 0
    for holder in holders:
        distributed += market.rewards.checkpoint(project_id, holder).total_claimed
        distributed += market.rewards.claimable(project_id, holder)

    deposits = sum(
        1 for record in market.events
        if isinstance(record, RevenueDeposited) and record.project_id == project_id
    )
    remainder = state.total_revenue - distributed
    bound = deposits * (state.minted + 1)
    return {
        'valid': 0 <= remainder <= bound,
        'total_revenue': state.total_revenue,
        'distributed': distributed,
        'remainder': remainder,
        'bound': bound,
    }
