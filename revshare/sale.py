"""
sale.py - Share Sale and Sales Escrow

A purchase mints new shares of a project to the buyer against payment at the
project's fixed price. The proceeds are credited to the project's sales
escrow (ProjectState.sales_balance), which only the creator can withdraw and
which the reward engine never touches.

Pure functions here validate and build transactions; moving the buyer's
payment in and any refund out is done by the caller (see marketplace.py),
which also syncs the buyer's reward checkpoint before the mint executes.

    validate_purchase(terms, state, amount, payment) -> cost
    compute_purchase(view, project_id, buyer, amount) -> PendingTransaction
    compute_sales_debit(view, project_id, amount, caller) -> PendingTransaction
"""

from __future__ import annotations
from typing import List

from .core import (
    LedgerView, Move, PendingTransaction, TransactionOrigin, OriginType,
    SYSTEM_WALLET,
    ProjectNotActive, BelowMinimumPurchase, InsufficientSupply,
    InsufficientPayment, InsufficientBalance, InvalidAmount,
    build_transaction,
)
from .projects import (
    ProjectTerms, ProjectState,
    load_project, project_state_change, project_symbol,
    calculate_available_supply,
)


def calculate_purchase_cost(price_wei: int, amount: int) -> int:
    return price_wei * amount


def validate_purchase(
    terms: ProjectTerms,
    state: ProjectState,
    amount: int,
    payment: int,
) -> int:
    """
    Check a purchase against the project's constraints. Pure function.

    Checks run in this order, and the first failure is raised:
    inactive project, below minimum, over supply, underpayment.

    Returns:
        The cost in wei (price_wei * amount)

    Raises:
        ProjectNotActive: the project is not selling
        BelowMinimumPurchase: amount < min_purchase
        InsufficientSupply: minted + amount > total_supply
        InsufficientPayment: payment < cost
    """
    if not state.active:
        raise ProjectNotActive(f"Project {terms.project_id} is not active")
    if amount < terms.min_purchase:
        raise BelowMinimumPurchase(terms.min_purchase, amount)
    available = calculate_available_supply(terms, state)
    if amount > available:
        raise InsufficientSupply(available, amount)
    cost = calculate_purchase_cost(terms.price_wei, amount)
    if payment < cost:
        raise InsufficientPayment(cost, payment)
    return cost


def compute_purchase(
    view: LedgerView,
    project_id: int,
    buyer: str,
    amount: int,
) -> PendingTransaction:
    """
    Build the mint half of a purchase.

    The transaction mints `amount` shares from SYSTEM_WALLET to the buyer and
    updates minted and sales_balance in the same step. The payment itself is
    not part of it.

    Example (price 10, 40 shares):
        Move(40, "PRJ-1", "system", "alice")
        minted: 0 -> 40, sales_balance: 0 -> 400
    """
    terms, state = load_project(view, project_id)
    cost = calculate_purchase_cost(terms.price_wei, amount)
    symbol = project_symbol(project_id)

    moves = [Move(amount, symbol, SYSTEM_WALLET, buyer, f"mint_{symbol}")]
    changes = [project_state_change(
        view, project_id,
        minted=state.minted + amount,
        sales_balance=state.sales_balance + cost,
    )]
    origin = TransactionOrigin(OriginType.PURCHASE, buyer, symbol, "MINT")
    return build_transaction(view, moves, changes, origin=origin)


def compute_sales_debit(
    view: LedgerView,
    project_id: int,
    amount: int,
    caller: str,
) -> PendingTransaction:
    """
    Build the escrow debit for a creator withdrawal.

    The payout is executed separately, after this debit has been applied.

    Raises:
        InvalidAmount: amount is zero or negative
        InsufficientBalance: amount exceeds the project's sales escrow
    """
    if amount <= 0:
        raise InvalidAmount(f"Withdrawal amount must be positive, got {amount}")
    _, state = load_project(view, project_id)
    if amount > state.sales_balance:
        raise InsufficientBalance(state.sales_balance, amount)

    changes = [project_state_change(
        view, project_id, sales_balance=state.sales_balance - amount
    )]
    moves: List[Move] = []
    origin = TransactionOrigin(OriginType.WITHDRAWAL, caller, project_symbol(project_id), "DEBIT")
    return build_transaction(view, moves, changes, origin=origin)
