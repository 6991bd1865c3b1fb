"""
projects.py - Project Registry

A project is a share Unit whose unit state carries both its fixed terms and
its running counters. Nothing else in the system stores project data.

ARCHITECTURE:
=============

1. FROZEN DATACLASSES:
   - ProjectTerms: set at creation, never changes (supply cap, price, minimum,
     display name, creation time)
   - ProjectState: mutable counters and flags (creator, active, minted,
     revenue, energy, reward-per-share accumulator, sales escrow)

2. ADAPTER:
   - load_project(view, project_id) is the only place that reads project
     unit state and turns it into the dataclasses above

3. COMPUTE FUNCTIONS (compute_*):
   - Take a LedgerView and return a PendingTransaction carrying the
     UnitStateChange; the caller executes it

Writers of ProjectState fields:
    minted, sales_balance            -> sale.py only
    reward_per_share_stored,
    total_revenue                    -> rewards.py only
    total_energy_kwh                 -> rewards.py (with a deposit) and here
    active, creator                  -> here
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Tuple

from .core import (
    LedgerView, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType,
    UNIT_TYPE_SHARE, SHARE_SYMBOL_PREFIX, RESERVED_WALLETS,
    InvalidSupply, InvalidPrice, InvalidMinPurchase, InvalidCreator,
    InvalidAmount, ProjectNotFound, UnitNotRegistered,
    build_transaction, _freeze_state,
)


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class ProjectTerms:
    """Immutable offering terms, fixed when the project is registered."""
    project_id: int
    name: str
    total_supply: int       # Maximum shares that can ever be minted
    price_wei: int          # Price per share
    min_purchase: int       # Smallest number of shares per purchase
    created_at: datetime


@dataclass(frozen=True, slots=True)
class ProjectState:
    """
    Snapshot of a project's mutable counters.

    Each change produces a new instance; nothing mutates in place.
    """
    creator: str
    active: bool
    minted: int                   # Shares issued so far, never above total_supply
    total_revenue: int            # Sum of every deposit ever made
    total_energy_kwh: int         # Opaque reporting counter
    reward_per_share_stored: int  # Accumulator scaled by PRECISION
    sales_balance: int            # Sale proceeds awaiting withdrawal by the creator


# ============================================================================
# HELPERS
# ============================================================================

def project_symbol(project_id: int) -> str:
    """Unit symbol of a project's shares."""
    return f"{SHARE_SYMBOL_PREFIX}{project_id}"


def is_null_account(account) -> bool:
    return not account or not str(account).strip()


def is_reserved_account(account) -> bool:
    """True for the marketplace's own wallets (mint source, vault)."""
    return account in RESERVED_WALLETS


def validate_project_terms(total_supply: int, price_wei: int, min_purchase: int) -> None:
    """
    Check offering terms before a project is registered.

    Raises:
        InvalidSupply: total_supply is not positive
        InvalidPrice: price_wei is not positive
        InvalidMinPurchase: min_purchase is not in [1, total_supply]
    """
    if total_supply <= 0:
        raise InvalidSupply(f"total_supply must be positive, got {total_supply}")
    if price_wei <= 0:
        raise InvalidPrice(f"price_wei must be positive, got {price_wei}")
    if min_purchase <= 0 or min_purchase > total_supply:
        raise InvalidMinPurchase(
            f"min_purchase must be between 1 and {total_supply}, got {min_purchase}"
        )


def calculate_available_supply(terms: ProjectTerms, state: ProjectState) -> int:
    return terms.total_supply - state.minted


# ============================================================================
# UNIT FACTORY / ADAPTER
# ============================================================================

def create_project_unit(
    project_id: int,
    name: str,
    creator: str,
    total_supply: int,
    price_wei: int,
    min_purchase: int,
    created_at: datetime,
) -> Unit:
    """
    Create the share unit for a new project.

    The project starts active, with nothing minted and a zero accumulator.

    Raises:
        InvalidCreator: creator is null, blank or a reserved wallet
        InvalidSupply / InvalidPrice / InvalidMinPurchase: see validate_project_terms
    """
    if is_null_account(creator):
        raise InvalidCreator("creator cannot be empty")
    if is_reserved_account(creator):
        raise InvalidCreator(f"{creator!r} is a reserved wallet")
    validate_project_terms(total_supply, price_wei, min_purchase)

    return Unit(
        symbol=project_symbol(project_id),
        name=name,
        unit_type=UNIT_TYPE_SHARE,
        min_balance=0,
        max_balance=total_supply,
        _frozen_state=_freeze_state({
            'project_id': project_id,
            'name': name,
            'total_supply': total_supply,
            'price_wei': price_wei,
            'min_purchase': min_purchase,
            'created_at': created_at,
            'creator': creator,
            'active': True,
            'minted': 0,
            'total_revenue': 0,
            'total_energy_kwh': 0,
            'reward_per_share_stored': 0,
            'sales_balance': 0,
        }),
    )


def load_project(view: LedgerView, project_id: int) -> Tuple[ProjectTerms, ProjectState]:
    """
    Load a project as typed frozen dataclasses.

    Raises:
        ProjectNotFound: no project was ever registered under project_id
    """
    try:
        raw = view.get_unit_state(project_symbol(project_id))
    except UnitNotRegistered:
        raise ProjectNotFound(f"Project {project_id} not found") from None
    if not raw.get('created_at'):
        raise ProjectNotFound(f"Project {project_id} not found")

    terms = ProjectTerms(
        project_id=raw['project_id'],
        name=raw['name'],
        total_supply=raw['total_supply'],
        price_wei=raw['price_wei'],
        min_purchase=raw['min_purchase'],
        created_at=raw['created_at'],
    )
    state = ProjectState(
        creator=raw['creator'],
        active=raw['active'],
        minted=raw['minted'],
        total_revenue=raw['total_revenue'],
        total_energy_kwh=raw['total_energy_kwh'],
        reward_per_share_stored=raw['reward_per_share_stored'],
        sales_balance=raw['sales_balance'],
    )
    return terms, state


def project_state_change(view: LedgerView, project_id: int, **updates) -> UnitStateChange:
    """Build a UnitStateChange that sets the given ProjectState fields."""
    symbol = project_symbol(project_id)
    old_state = view.get_unit_state(symbol)
    unknown = set(updates) - set(ProjectState.__dataclass_fields__)
    if unknown:
        raise ValueError(f"Not project state fields: {sorted(unknown)}")
    return UnitStateChange(unit=symbol, old_state=old_state, new_state={**old_state, **updates})


# ============================================================================
# STATE TRANSITIONS
# ============================================================================

def compute_project_registration(
    view: LedgerView,
    project_id: int,
    name: str,
    creator: str,
    total_supply: int,
    price_wei: int,
    min_purchase: int,
    requested_by: str,
) -> PendingTransaction:
    """Return a transaction registering the project's share unit."""
    unit = create_project_unit(
        project_id=project_id,
        name=name,
        creator=creator,
        total_supply=total_supply,
        price_wei=price_wei,
        min_purchase=min_purchase,
        created_at=view.current_time,
    )
    origin = TransactionOrigin(OriginType.REGISTRATION, requested_by, unit.symbol, "CREATE")
    return build_transaction(view, [], origin=origin, units_to_create=(unit,))


def compute_status_change(
    view: LedgerView,
    project_id: int,
    active: bool,
    caller: str,
) -> PendingTransaction:
    """Return a transaction setting the project's active flag."""
    change = project_state_change(view, project_id, active=bool(active))
    origin = TransactionOrigin(OriginType.ADMIN, caller, change.unit, "STATUS")
    return build_transaction(view, [], [change], origin=origin)


def compute_creator_transfer(
    view: LedgerView,
    project_id: int,
    new_creator: str,
    caller: str,
) -> PendingTransaction:
    """
    Return a transaction handing the project (and its sale proceeds) to new_creator.

    Raises:
        InvalidCreator: new_creator is null, blank or a reserved wallet
    """
    if is_null_account(new_creator):
        raise InvalidCreator("new creator cannot be empty")
    if is_reserved_account(new_creator):
        raise InvalidCreator(f"{new_creator!r} is a reserved wallet")
    change = project_state_change(view, project_id, creator=new_creator)
    origin = TransactionOrigin(OriginType.ADMIN, caller, change.unit, "CREATOR")
    return build_transaction(view, [], [change], origin=origin)


def compute_energy_update(
    view: LedgerView,
    project_id: int,
    energy_kwh: int,
    caller: str,
) -> PendingTransaction:
    """
    Return a transaction adding energy_kwh to the project's reporting counter.

    Raises:
        InvalidAmount: energy_kwh is not positive
    """
    if energy_kwh <= 0:
        raise InvalidAmount(f"energy_kwh must be positive, got {energy_kwh}")
    _, state = load_project(view, project_id)
    change = project_state_change(
        view, project_id, total_energy_kwh=state.total_energy_kwh + energy_kwh
    )
    origin = TransactionOrigin(OriginType.ADMIN, caller, change.unit, "ENERGY")
    return build_transaction(view, [], [change], origin=origin)
