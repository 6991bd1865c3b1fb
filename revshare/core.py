"""
Core types and pure functions for the revenue-share ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only access, TransferHook for balance observers,
   Authority and PauseGate for the external admin/pause collaborators
2. Immutable data structures: Move, PendingTransaction, Transaction, Unit
3. Exceptions: LedgerError and the named precondition failures
4. Type aliases: Positions, UnitState
5. Transfer rules: Pure validation functions for moves
6. Unit factories: Functions to create standard unit types

All amounts are integers in the smallest denomination of their unit (wei for
cash, whole shares for project units). Fixed-point values are scaled by PRECISION.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import (
    Dict, List, Set, Optional, Callable, Any, Protocol,
    Tuple, FrozenSet, runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Fixed-point scale for the reward-per-share accumulator.
PRECISION = 10 ** 18

# Reserved wallet for issuance and redemption. Moves out of it are mints,
# moves into it are burns. Exempt from balance validation.
SYSTEM_WALLET = "system"

# Wallet holding every unit of value the marketplace has received and not yet
# paid out: sale proceeds awaiting withdrawal plus undistributed revenue.
VAULT_WALLET = "vault"

# Wallets owned by the marketplace itself. Never a creator, buyer, holder or
# payout recipient.
RESERVED_WALLETS = frozenset({SYSTEM_WALLET, VAULT_WALLET})

UNIT_TYPE_CASH = "CASH"
UNIT_TYPE_SHARE = "PROJECT_SHARE"

SHARE_SYMBOL_PREFIX = "PRJ-"
DEFAULT_CURRENCY = "WEI"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to quantity held by that wallet for a specific unit.
Positions = Dict[str, int]

# Internal state for a unit (project terms, counters, accumulator, ...).
UnitState = Dict[str, Any]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Pure functions accept a LedgerView to declare that they only read. The
    Ledger class implements this protocol but also provides mutation methods.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> int:
        """Return the balance of a unit in a wallet (0 if never touched)."""
        ...

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """Return a copy of the unit's internal state."""
        ...

    def get_positions(self, unit_symbol: str) -> Positions:
        """Return all non-zero positions for a unit across all wallets."""
        ...

    def list_wallets(self) -> Set[str]:
        """Return the set of all registered wallet IDs."""
        ...

    def get_unit(self, symbol: str) -> 'Unit':
        """Return the Unit object for a given symbol."""
        ...


class TransferHook(Protocol):
    """
    Observer invoked by the ledger before any balance moves.

    The ledger calls before_moves() once per executed transaction, after
    validation succeeds and before any balance is changed. The hook sees the
    whole batch, so every affected (unit, wallet) pair still reports its
    pre-transaction balance.
    """

    def before_moves(self, view: LedgerView, moves: Tuple['Move', ...]) -> None:
        ...


class Authority(Protocol):
    """Global admin capability check."""

    def is_owner(self, account: str) -> bool:
        ...


class PauseGate(Protocol):
    """Global pause switch consulted at entry to gated operations."""

    def is_paused(self) -> bool:
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was validated and applied to the ledger.
    REJECTED: Transaction failed validation (registration, transfer rule,
              balance constraint or stale state). Nothing was applied.
    """
    APPLIED = "applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated, for the audit trail."""
    ISSUANCE = "issuance"         # Cash issued from the system wallet
    REGISTRATION = "registration" # Project creation
    ADMIN = "admin"               # Status, creator and energy updates
    PURCHASE = "purchase"         # Share sale: payment, mint, refund
    DEPOSIT = "deposit"           # Revenue deposit
    CLAIM = "claim"               # Revenue payout to a holder
    WITHDRAWAL = "withdrawal"     # Sales escrow payout to the creator
    TRANSFER = "transfer"         # Holder-to-holder share movement


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class InsufficientFunds(LedgerError):
    """Raised when a payer cannot cover the value sent with an operation."""
    pass


class TransferRuleViolation(LedgerError):
    """Raised when a move violates the unit's transfer rule."""
    pass


class UnitNotRegistered(LedgerError):
    """Raised when operating on a unit that has not been registered."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when operating on a wallet that has not been registered."""
    pass


class ReentrantCall(LedgerError):
    """Raised when a guarded operation is entered while another is in progress."""
    pass


class Unauthorized(LedgerError):
    """Raised when the caller is neither the project creator nor the admin, as required."""
    pass


class EnforcedPause(LedgerError):
    """Raised when a gated operation is attempted while the pause gate is closed."""
    pass


class ProjectNotFound(LedgerError):
    pass


class ProjectNotActive(LedgerError):
    pass


class InvalidSupply(LedgerError):
    pass


class InvalidPrice(LedgerError):
    pass


class InvalidMinPurchase(LedgerError):
    pass


class InvalidCreator(LedgerError):
    pass


class InvalidRecipient(LedgerError):
    pass


class InvalidAmount(LedgerError):
    pass


class NoFundsDeposited(LedgerError):
    pass


class NoTokensMinted(LedgerError):
    """Raised when revenue is deposited into a project with no shares outstanding."""
    pass


class NothingToClaim(LedgerError):
    pass


class BelowMinimumPurchase(LedgerError):
    """Raised when a purchase requests fewer shares than the project minimum."""

    def __init__(self, minimum: int, requested: int):
        self.minimum = minimum
        self.requested = requested
        super().__init__(f"Below minimum purchase: requested {requested}, minimum {minimum}")


class InsufficientSupply(LedgerError):
    """Raised when a purchase would mint past the project's total supply."""

    def __init__(self, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(f"Insufficient supply: requested {requested}, available {available}")


class InsufficientPayment(LedgerError):
    """Raised when the value sent with a purchase does not cover its cost."""

    def __init__(self, required: int, sent: int):
        self.required = required
        self.sent = sent
        super().__init__(f"Insufficient payment: sent {sent}, required {required}")


class InsufficientBalance(LedgerError):
    """Raised when a debit exceeds the balance it is drawn from."""

    def __init__(self, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(f"Insufficient balance: requested {requested}, available {available}")


class TransferFailed(LedgerError):
    """Base class for failed outbound value transfers. Always aborts the operation."""
    pass


class RefundFailed(TransferFailed):
    pass


class ClaimTransferFailed(TransferFailed):
    pass


class WithdrawFailed(TransferFailed):
    pass


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: Classification of the origin source
        source_id: Account that initiated the operation
        unit_symbol: Symbol of the unit concerned (if applicable)
        event_type: Specific step within the operation (e.g., "PAYMENT", "REFUND")
    """
    origin_type: OriginType
    source_id: str
    unit_symbol: Optional[str] = None
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.unit_symbol:
            parts.append(f"unit={self.unit_symbol}")
        if self.event_type:
            parts.append(f"event={self.event_type}")
        return f"Origin({', '.join(parts)})"


# ============================================================================
# UNIT STATE CHANGE
# ============================================================================

@dataclass(frozen=True, slots=True)
class UnitStateChange:
    """
    Record of a unit state change.

    Stores complete before/after snapshots. The ledger rejects a change whose
    old_state no longer matches the unit's current state.

    Attributes:
        unit: Symbol of the unit whose state changed
        old_state: Complete state before the change (dict or None)
        new_state: Complete state after the change (dict)
    """
    unit: str
    old_state: Any
    new_state: Any

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """Return {field: (old_value, new_value)} for fields that differ."""
        old = self.old_state if isinstance(self.old_state, dict) else {}
        new = self.new_state if isinstance(self.new_state, dict) else {}
        changes = {}
        for key in set(old.keys()) | set(new.keys()):
            old_val = old.get(key)
            new_val = new.get(key)
            if old_val != new_val:
                changes[key] = (old_val, new_val)
        return changes


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of value between two wallets.

    Attributes:
        quantity: The amount to transfer (positive integer).
        unit_symbol: The symbol of the unit being transferred (e.g., "WEI", "PRJ-1").
        source: The wallet ID from which value is debited.
        dest: The wallet ID to which value is credited.
        contract_id: Identifier of the operation generating this move.
        metadata: Optional additional information about the move.
    """
    quantity: int
    unit_symbol: str
    source: str
    dest: str
    contract_id: str
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.unit_symbol or not self.unit_symbol.strip():
            raise ValueError("Move unit_symbol cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError(f"Move quantity must be int, got {type(self.quantity)}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    @property
    def is_mint(self) -> bool:
        return self.source == SYSTEM_WALLET

    @property
    def is_burn(self) -> bool:
        return self.dest == SYSTEM_WALLET

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction specification before execution - represents INTENT.

    Created by compute_* functions and submitted to Ledger.execute().

    Attributes:
        moves: Tuple of value transfers between wallets
        state_changes: Tuple of unit state changes (with old_state and new_state)
        origin: Who/what created this transaction and why
        timestamp: When this pending transaction was created
        units_to_create: Tuple of Unit objects to register before executing moves
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    units_to_create: Tuple['Unit', ...] = ()

    def is_empty(self) -> bool:
        """Return True if there are no moves, no state changes and no units to create."""
        return not self.moves and not self.state_changes and not self.units_to_create

    def __repr__(self) -> str:
        return f"PendingTransaction({len(self.moves)} moves, {len(self.state_changes)} deltas, {self.origin})"


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    state_changes: Optional[List[UnitStateChange]] = None,
    origin: Optional[TransactionOrigin] = None,
    units_to_create: Optional[Tuple['Unit', ...]] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves and state deltas.

    Args:
        view: Read-only ledger view (provides current_time)
        moves: List of moves to include in the transaction
        state_changes: Optional list of UnitStateChange objects
        origin: Transaction origin (defaults to a SYSTEM issuance origin)
        units_to_create: Optional tuple of Unit objects to register first

    Returns:
        A PendingTransaction ready for execution

    Example:
        pending = build_transaction(ledger, [
            Move(1000, "WEI", SYSTEM_WALLET, "alice", "issue_alice")
        ])
        ledger.execute(pending)
    """
    import copy

    if origin is None:
        origin = TransactionOrigin(
            origin_type=OriginType.ISSUANCE,
            source_id=SYSTEM_WALLET,
        )

    copied_changes: Tuple[UnitStateChange, ...] = ()
    if state_changes:
        copied_changes = tuple(
            UnitStateChange(
                unit=sc.unit,
                old_state=copy.deepcopy(sc.old_state),
                new_state=copy.deepcopy(sc.new_state),
            )
            for sc in state_changes
        )

    return PendingTransaction(
        moves=tuple(moves),
        state_changes=copied_changes,
        origin=origin,
        timestamp=view.current_time,
        units_to_create=units_to_create or (),
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger state changes - represents FACT.

    Attributes:
        moves: Tuple of value transfers between wallets
        state_changes: Tuple of unit state changes
        origin: Who/what created this transaction and why
        timestamp: When the PendingTransaction was created
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        execution_time: When this was executed and logged
        sequence_number: Monotonic sequence within the ledger
        units_to_create: Units registered by this transaction
        contract_ids: Set of contract IDs from moves (auto-populated)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    units_to_create: Tuple['Unit', ...] = ()
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if not self.moves and not self.state_changes and not self.units_to_create:
            raise ValueError("Transaction must have moves, state_changes, or units_to_create")
        if self.contract_ids is None:
            object.__setattr__(
                self, 'contract_ids',
                frozenset(m.contract_id for m in self.moves)
            )

    def __repr__(self) -> str:
        w = 88
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            f"┌{bar}┐",
            f"│{pad(' Transaction: ' + self.exec_id)}│",
            f"│{pad('   origin   : ' + repr(self.origin))}│",
            f"│{pad('   sequence : ' + str(self.sequence_number))}│",
        ]
        for unit in self.units_to_create:
            lines.append(f"│{pad('   + unit ' + unit.symbol + ' (' + unit.name + ')')}│")
        for i, move in enumerate(self.moves):
            lines.append(f"│{pad(f'   [{i}] {move.quantity} {move.unit_symbol}: {move.source} → {move.dest}')}│")
        for sc in self.state_changes:
            for field_name, (old_val, new_val) in sc.changed_fields().items():
                lines.append(f"│{pad(f'   {sc.unit}.{field_name}: {old_val!r} → {new_val!r}')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


# Type alias for transfer rule functions.
# Transfer rules validate moves and raise TransferRuleViolation if invalid.
TransferRule = Callable[[LedgerView, Move], None]


def _freeze_state(state: Optional[UnitState]) -> Tuple[Tuple[str, Any], ...]:
    """Convert a state dict to a sorted tuple of (key, value) pairs."""
    if not state:
        return ()
    return tuple(sorted(state.items()))


def _thaw_state(frozen_state: Tuple[Tuple[str, Any], ...]) -> UnitState:
    """Convert a frozen state representation back to a mutable dict."""
    return dict(frozen_state)


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of a unit (asset type) in the ledger.

    Attributes:
        symbol: Short identifier for the unit (e.g., "WEI", "PRJ-1").
        name: Human-readable name for the unit.
        unit_type: Category of the unit (CASH, PROJECT_SHARE).
        min_balance: Minimum allowed balance in any non-system wallet.
        max_balance: Maximum allowed balance in any wallet (None = unbounded).
        transfer_rule: Optional function to validate moves involving this unit.
        _frozen_state: Internal frozen state representation.
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: int = 0
    max_balance: Optional[int] = None
    transfer_rule: Optional[TransferRule] = None
    _frozen_state: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @property
    def state(self) -> UnitState:
        """Return the unit's state as a new mutable dictionary."""
        return _thaw_state(self._frozen_state)


# ============================================================================
# TRANSFER RULES
# ============================================================================

def reject_payments_to(wallets: Set[str]) -> TransferRule:
    """
    Build a transfer rule that refuses any move crediting one of `wallets`.

    The set is read on every validation, so callers can freeze or unfreeze
    accounts after the unit is registered.

    Example:
        frozen = {"mallory"}
        usd = cash("WEI", "Wei", transfer_rule=reject_payments_to(frozen))
    """
    def rule(view: LedgerView, move: Move) -> None:
        if move.dest in wallets:
            raise TransferRuleViolation(
                f"{move.unit_symbol}: {move.dest} does not accept payments"
            )
    rule.__name__ = "reject_payments_to"
    return rule


# ============================================================================
# UNIT FACTORIES
# ============================================================================

def cash(symbol: str, name: str, transfer_rule: Optional[TransferRule] = None) -> Unit:
    """
    Create a cash unit denominated in its smallest indivisible amount.

    Balances cannot go negative outside the system wallet, so a payer must hold
    the full amount of any payment.
    """
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_CASH,
        min_balance=0,
        transfer_rule=transfer_rule,
        _frozen_state=_freeze_state({'issuer': SYSTEM_WALLET}),
    )
