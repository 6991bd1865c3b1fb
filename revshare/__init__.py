"""
revshare - Fractional-Ownership Revenue-Share Ledger

Projects sell fixed-supply shares; revenue deposited to a project is shared
pro-rata among whoever holds its shares at the time of the deposit.

Usage:
    from revshare import Marketplace, get_project_summary

    market = Marketplace("main", owner="admin", verbose=False)
    for account in ("creator", "alice", "bob"):
        market.register_account(account)
        market.issue_cash(account, 10_000)

    pid = market.create_project("creator", "Solar Farm", total_supply=100,
                                price_wei=10, min_purchase=1)
    market.purchase("alice", pid, 40, payment=400)
    market.purchase("bob", pid, 60, payment=600)

    market.deposit_revenue("creator", pid, 1_000)
    market.claimable(pid, "alice")      # 400
    market.claim("bob", pid)            # 600
    market.withdraw_sales("creator", pid, "creator", 1_000)
"""

# Core types
from .core import (
    LedgerView,
    TransferHook,
    Authority,
    PauseGate,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    Unit,
    UnitStateChange,
    ExecuteResult,
    cash,
    reject_payments_to,
    PRECISION,
    SYSTEM_WALLET,
    VAULT_WALLET,
    RESERVED_WALLETS,
    UNIT_TYPE_CASH,
    UNIT_TYPE_SHARE,
    DEFAULT_CURRENCY,
    # Exceptions
    LedgerError,
    InsufficientFunds,
    TransferRuleViolation,
    UnitNotRegistered,
    WalletNotRegistered,
    ReentrantCall,
    Unauthorized,
    EnforcedPause,
    ProjectNotFound,
    ProjectNotActive,
    InvalidSupply,
    InvalidPrice,
    InvalidMinPurchase,
    InvalidCreator,
    InvalidRecipient,
    InvalidAmount,
    NoFundsDeposited,
    NoTokensMinted,
    NothingToClaim,
    BelowMinimumPurchase,
    InsufficientSupply,
    InsufficientPayment,
    InsufficientBalance,
    TransferFailed,
    RefundFailed,
    ClaimTransferFailed,
    WithdrawFailed,
)

# Ledger
from .ledger import Ledger, Journal

# Project registry
from .projects import (
    ProjectTerms,
    ProjectState,
    project_symbol,
    load_project,
    create_project_unit,
    compute_project_registration,
    compute_status_change,
    compute_creator_transfer,
    compute_energy_update,
)

# Reward accounting
from .rewards import (
    RewardCheckpoint,
    RewardEngine,
    calculate_reward_increase,
    calculate_earned,
    calculate_synced_checkpoint,
    calculate_claimable,
    compute_deposit,
)

# Sale and escrow
from .sale import (
    calculate_purchase_cost,
    validate_purchase,
    compute_purchase,
    compute_sales_debit,
)

# Emitted records
from .events import (
    Record,
    Subscriber,
    ProjectCreated,
    SharesMinted,
    SharesTransferred,
    RevenueDeposited,
    RevenueClaimed,
    SalesWithdrawn,
    EnergyUpdated,
    StatusChanged,
    CreatorTransferred,
)

# Access control
from .access import SingleOwner, PauseSwitch

# Facade
from .marketplace import Marketplace

# Read-only queries
from .views import (
    ProjectSummary,
    PortfolioEntry,
    get_project_summary,
    get_project_creator,
    get_portfolio,
    get_sales_balance,
    get_held_funds,
    get_next_project_id,
    verify_reward_conservation,
)

__all__ = [
    # Core
    'LedgerView', 'TransferHook', 'Authority', 'PauseGate',
    'Move', 'Transaction', 'PendingTransaction', 'TransactionOrigin', 'OriginType',
    'build_transaction', 'Unit', 'UnitStateChange', 'ExecuteResult',
    'cash', 'reject_payments_to',
    'PRECISION', 'SYSTEM_WALLET', 'VAULT_WALLET', 'RESERVED_WALLETS',
    'UNIT_TYPE_CASH', 'UNIT_TYPE_SHARE', 'DEFAULT_CURRENCY',
    # Exceptions
    'LedgerError', 'InsufficientFunds',
    'TransferRuleViolation', 'UnitNotRegistered', 'WalletNotRegistered',
    'ReentrantCall', 'Unauthorized', 'EnforcedPause',
    'ProjectNotFound', 'ProjectNotActive',
    'InvalidSupply', 'InvalidPrice', 'InvalidMinPurchase', 'InvalidCreator',
    'InvalidRecipient', 'InvalidAmount',
    'NoFundsDeposited', 'NoTokensMinted', 'NothingToClaim',
    'BelowMinimumPurchase', 'InsufficientSupply', 'InsufficientPayment',
    'InsufficientBalance',
    'TransferFailed', 'RefundFailed', 'ClaimTransferFailed', 'WithdrawFailed',
    # Ledger
    'Ledger', 'Journal',
    # Projects
    'ProjectTerms', 'ProjectState', 'project_symbol', 'load_project',
    'create_project_unit', 'compute_project_registration', 'compute_status_change',
    'compute_creator_transfer', 'compute_energy_update',
    # Rewards
    'RewardCheckpoint', 'RewardEngine',
    'calculate_reward_increase', 'calculate_earned',
    'calculate_synced_checkpoint', 'calculate_claimable', 'compute_deposit',
    # Sale
    'calculate_purchase_cost', 'validate_purchase', 'compute_purchase', 'compute_sales_debit',
    # Events
    'Record', 'Subscriber',
    'ProjectCreated', 'SharesMinted', 'SharesTransferred', 'RevenueDeposited',
    'RevenueClaimed', 'SalesWithdrawn', 'EnergyUpdated', 'StatusChanged',
    'CreatorTransferred',
    # Access
    'SingleOwner', 'PauseSwitch',
    # Facade
    'Marketplace',
    # Views
    'ProjectSummary', 'PortfolioEntry',
    'get_project_summary', 'get_project_creator', 'get_portfolio',
    'get_sales_balance', 'get_held_funds', 'get_next_project_id',
    'verify_reward_conservation',
]

__version__ = '1.0.0'
