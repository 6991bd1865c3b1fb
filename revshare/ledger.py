"""
ledger.py - Stateful Multi-Asset Share Ledger

The Ledger class is the central state manager for balances. Every project's
shares and the settlement currency live here as units; every balance change
goes through execute().

Key responsibilities:
    - Implements LedgerView protocol for safe read-only access by pure functions
    - Executes transactions atomically (all moves succeed or all fail)
    - Notifies registered TransferHooks before any balance moves
    - Maintains wallet balances and unit definitions
    - Records every write in a Journal so a multi-transaction operation can be
      rolled back as a whole
"""

from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, MutableMapping, Optional, Set, Tuple

from .core import (
    # Types
    Move, Transaction, Unit,
    PendingTransaction, TransferHook,
    ExecuteResult,
    Positions, UnitState,
    # Constants
    SYSTEM_WALLET,
    # Exceptions
    TransferRuleViolation, UnitNotRegistered, WalletNotRegistered,
    # Helper functions
    _freeze_state,
)


_MISSING = object()


class _Rejected(Exception):
    """Internal signal: validation failed, unwind and report REJECTED."""


class Journal:
    """
    Undo log for all-or-nothing operations.

    Writes made through the journal while an atomic() block is open are
    recorded with their previous value. If the block raises, every write made
    inside it is reverted in reverse order. Nested blocks join the outermost:
    only the outermost commit discards the log and runs on-commit callbacks.

    Outside an atomic() block writes are applied directly and not recorded.
    """

    def __init__(self) -> None:
        self._undo: List[Tuple[str, Any, Any, Any]] = []
        self._on_commit: List[Callable[[], None]] = []
        self._depth = 0

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def write(self, mapping: MutableMapping, key: Any, value: Any) -> None:
        if self._depth:
            self._undo.append(("map", mapping, key, mapping.get(key, _MISSING)))
        mapping[key] = value

    def delete(self, mapping: MutableMapping, key: Any) -> None:
        if key not in mapping:
            return
        old = mapping.pop(key)
        if self._depth:
            self._undo.append(("map", mapping, key, old))

    def append(self, seq: List, item: Any) -> None:
        if self._depth:
            self._undo.append(("seq", seq, None, None))
        seq.append(item)

    def call_on_commit(self, callback: Callable[[], None]) -> None:
        """Run callback after the outermost block commits (now, if none is open)."""
        if self._depth:
            self._on_commit.append(callback)
        else:
            callback()

    @contextmanager
    def atomic(self) -> Iterator['Journal']:
        undo_mark = len(self._undo)
        commit_mark = len(self._on_commit)
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._rollback(undo_mark)
            del self._on_commit[commit_mark:]
            raise
        finally:
            self._depth -= 1

        if self._depth == 0:
            self._undo.clear()
            callbacks, self._on_commit = self._on_commit, []
            for callback in callbacks:
                callback()

    def _rollback(self, mark: int) -> None:
        while len(self._undo) > mark:
            kind, container, key, old = self._undo.pop()
            if kind == "seq":
                container.pop()
            elif old is _MISSING:
                container.pop(key, None)
            else:
                container[key] = old


class Ledger:
    """
    Multi-asset balance ledger with full validation, transfer hooks and audit trail.

    Implements the LedgerView protocol, allowing the ledger to be passed to pure
    functions that access only read-only methods.

    Design Principles:
        - Always validates: every transaction is checked against registration,
          transfer rules, balance constraints and stale unit state.
        - Hooks before balances: registered TransferHooks see the whole batch of
          moves before any balance changes.
        - Always logs: every applied transaction is recorded in transaction_log.

    Thread Safety:
        Not thread-safe. Each thread should maintain its own Ledger instance.

    Example:
        ledger = Ledger("main")
        ledger.register_unit(cash("WEI", "Wei"))
        ledger.register_wallet("alice")

        pending = build_transaction(ledger, [
            Move(1000, "WEI", SYSTEM_WALLET, "alice", "issue_alice")
        ])
        result = ledger.execute(pending)
    """

    def __init__(
        self,
        name: str,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            initial_time: Starting time for the ledger (default: 1970-01-01)
            verbose: Print registrations and transaction results (default: True)
        """
        self.name = name
        self.balances: Dict[str, Dict[str, int]] = {}
        self.units: Dict[str, Unit] = {}
        self.registered_wallets: Set[str] = set()
        self.transaction_log: List[Transaction] = []
        self.journal = Journal()
        self.last_rejection: str = ""
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self.verbose = verbose
        self._hooks: List[TransferHook] = []
        # Inverted index mapping unit -> {wallet -> quantity} for O(1) position lookups
        self._positions_by_unit: Dict[str, Dict[str, int]] = {}

        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = {}

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    def get_balance(self, wallet_id: str, unit_symbol: str) -> int:
        """
        Get the balance of a specific unit in a wallet.

        Raises:
            WalletNotRegistered: If wallet is not registered
            UnitNotRegistered: If unit is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return self.balances[wallet_id].get(unit_symbol, 0)

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """
        Get a copy of a unit's internal state.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return self.units[unit_symbol].state

    def get_positions(self, unit_symbol: str) -> Positions:
        """Return {wallet: balance} for every wallet with a non-zero balance of the unit."""
        return dict(self._positions_by_unit.get(unit_symbol, {}))

    def list_wallets(self) -> Set[str]:
        """List all registered wallet IDs."""
        return self.registered_wallets.copy()

    def get_unit(self, symbol: str) -> Unit:
        """Return the Unit object for a given symbol."""
        if symbol not in self.units:
            raise UnitNotRegistered(f"Unit {symbol} not registered")
        return self.units[symbol]

    def total_supply(self, unit_symbol: str) -> int:
        """
        Sum a unit's balances across all wallets, including the system wallet.

        Issuance moves value out of SYSTEM_WALLET, so a conserved unit always
        sums to zero.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return sum(self.balances[w].get(unit_symbol, 0) for w in sorted(self.registered_wallets))

    def verify_double_entry(self) -> Dict[str, Any]:
        """
        Verify that every unit's balances sum to zero.

        Returns:
            Dict with keys:
            - 'valid': bool - True if all units are conserved
            - 'supplies': Dict[str, int] - Current balance sum for each unit
            - 'discrepancies': List[Dict] - Units whose balances do not sum to zero

        Example:
            result = ledger.verify_double_entry()
            assert result['valid'], f"Conservation violated: {result['discrepancies']}"
        """
        supplies = {}
        discrepancies = []
        for unit_symbol in sorted(self.units):
            total = self.total_supply(unit_symbol)
            supplies[unit_symbol] = total
            if total != 0:
                discrepancies.append({'unit': unit_symbol, 'actual': total})
        return {
            'valid': not discrepancies,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    def is_registered(self, wallet_id: str) -> bool:
        """Check if a wallet is registered."""
        return wallet_id in self.registered_wallets

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the ledger's logical clock. Time can only move forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Register a new wallet in the ledger.

        Raises:
            ValueError: If wallet is already registered or the id is blank
        """
        if not wallet_id or not wallet_id.strip():
            raise ValueError("Wallet id cannot be empty")
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = {}
        return wallet_id

    def register_unit(self, unit: Unit) -> None:
        """
        Register a new unit (asset type) in the ledger.

        Raises:
            ValueError: If unit symbol is already registered
        """
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.journal.write(self.units, unit.symbol, unit)
        if self.verbose:
            rule_str = f", rule={unit.transfer_rule.__name__}" if unit.transfer_rule else ""
            print(f"📝 Registered: {unit.symbol} ({unit.name}) [{unit.unit_type}]{rule_str}")

    def register_hook(self, hook: TransferHook) -> None:
        """Register an observer to be called before every batch of moves."""
        self._hooks.append(hook)

    def update_unit_state(self, unit_symbol: str, state_updates: UnitState) -> None:
        """
        Merge state_updates into a unit's state.

        Since Unit is frozen, a new Unit instance replaces the registered one.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        old_unit = self.units[unit_symbol]
        new_state = {**old_unit.state, **state_updates}
        self._replace_unit_state(unit_symbol, new_state)

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    @contextmanager
    def atomic(self) -> Iterator[Journal]:
        """Group several executions into one all-or-nothing unit of work."""
        with self.journal.atomic() as journal:
            yield journal

    def _generate_exec_id(self, sequence: int) -> str:
        """
        Generate a unique execution ID.

        Format: exec:{ledger_name}:{sequence:012d}:{timestamp_micros}
        """
        micros = int(self._current_time.timestamp() * 1_000_000)
        return f"exec:{self.name}:{sequence:012d}:{micros}"

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Execute a PendingTransaction atomically.

        All moves and state changes succeed together or all fail together.

        Order of operations:
        1. Register units_to_create (rolled back if validation fails)
        2. Validate registration, transfer rules, balance limits, stale state
        3. Notify TransferHooks with the full batch of moves
        4. Apply moves, then state changes
        5. Append to the transaction log

        Hook exceptions propagate to the caller after every write made by this
        call (including the hooks' own journaled writes) has been rolled back.

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.REJECTED if validation failed (reason in last_rejection)
        """
        if pending.is_empty():
            return ExecuteResult.APPLIED

        try:
            with self.journal.atomic():
                # Units are registered first so moves can be validated against
                # them; a rejection below rolls the registration back.
                for unit in pending.units_to_create:
                    if unit.symbol not in self.units:
                        self.register_unit(unit)

                valid, reason = self._validate_pending(pending)
                if not valid:
                    raise _Rejected(reason)

                for hook in self._hooks:
                    hook.before_moves(self, pending.moves)

                sequence = len(self.transaction_log)
                tx = Transaction(
                    moves=pending.moves,
                    state_changes=pending.state_changes,
                    origin=pending.origin,
                    timestamp=pending.timestamp,
                    exec_id=self._generate_exec_id(sequence),
                    ledger_name=self.name,
                    execution_time=self._current_time,
                    sequence_number=sequence,
                    units_to_create=pending.units_to_create,
                )

                self._execute_moves(tx.moves)
                for sc in tx.state_changes:
                    self._replace_unit_state(
                        sc.unit, sc.new_state if isinstance(sc.new_state, dict) else {}
                    )
                self.journal.append(self.transaction_log, tx)
        except _Rejected as rejection:
            self.last_rejection = str(rejection)
            if self.verbose:
                print(f"✗ REJECTED: {rejection}")
            return ExecuteResult.REJECTED

        if self.verbose:
            print(repr(tx))
            print("✓ APPLIED")
        return ExecuteResult.APPLIED

    def _validate_pending(self, pending: PendingTransaction) -> Tuple[bool, str]:
        """
        Validate a pending transaction against all constraints.

        Checks performed:
        1. Timestamp (transaction must not be from the future)
        2. Unit and wallet registration
        3. Transfer rule enforcement
        4. Balance constraints (min/max, SYSTEM_WALLET exempt)
        5. State changes: old_state must match the unit's current state

        Returns:
            (success, reason) - reason is empty on success
        """
        if pending.timestamp > self._current_time:
            return False, "future timestamp"

        for move in pending.moves:
            if move.unit_symbol not in self.units:
                return False, f"unit not registered: {move.unit_symbol}"
            if not self.is_registered(move.source):
                return False, f"wallet not registered: {move.source}"
            if not self.is_registered(move.dest):
                return False, f"wallet not registered: {move.dest}"

            unit = self.units[move.unit_symbol]
            if unit.transfer_rule:
                try:
                    unit.transfer_rule(self, move)
                except TransferRuleViolation as e:
                    return False, str(e)

        net: Dict[Tuple[str, str], int] = {}
        for move in pending.moves:
            key_src = (move.source, move.unit_symbol)
            key_dst = (move.dest, move.unit_symbol)
            net[key_src] = net.get(key_src, 0) - move.quantity
            net[key_dst] = net.get(key_dst, 0) + move.quantity

        for (wallet, unit_sym), delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue
            unit = self.units[unit_sym]
            proposed = self.balances[wallet].get(unit_sym, 0) + delta
            if proposed < unit.min_balance:
                return False, f"{wallet} {unit_sym}: {proposed} < min {unit.min_balance}"
            if unit.max_balance is not None and proposed > unit.max_balance:
                return False, f"{wallet} {unit_sym}: {proposed} > max {unit.max_balance}"

        for sc in pending.state_changes:
            if sc.unit not in self.units:
                return False, f"unit not registered: {sc.unit}"
            if sc.old_state is not None and sc.old_state != self.units[sc.unit].state:
                return False, f"stale state for {sc.unit}"

        return True, ""

    def _update_position_index(self, wallet_id: str, unit_symbol: str, quantity: int) -> None:
        """Keep the unit -> {wallet -> quantity} index in step with a balance change."""
        positions = self._positions_by_unit.get(unit_symbol)
        if positions is None:
            positions = {}
            self.journal.write(self._positions_by_unit, unit_symbol, positions)
        if quantity != 0:
            self.journal.write(positions, wallet_id, quantity)
        else:
            self.journal.delete(positions, wallet_id)

    def _execute_moves(self, moves) -> None:
        """Apply moves to wallet balances and the position index."""
        for move in moves:
            src_balances = self.balances[move.source]
            new_src = src_balances.get(move.unit_symbol, 0) - move.quantity
            self.journal.write(src_balances, move.unit_symbol, new_src)
            self._update_position_index(move.source, move.unit_symbol, new_src)

            dst_balances = self.balances[move.dest]
            new_dst = dst_balances.get(move.unit_symbol, 0) + move.quantity
            self.journal.write(dst_balances, move.unit_symbol, new_dst)
            self._update_position_index(move.dest, move.unit_symbol, new_dst)

    def _replace_unit_state(self, unit_symbol: str, new_state: UnitState) -> None:
        old_unit = self.units[unit_symbol]
        new_unit = Unit(
            symbol=old_unit.symbol,
            name=old_unit.name,
            unit_type=old_unit.unit_type,
            min_balance=old_unit.min_balance,
            max_balance=old_unit.max_balance,
            transfer_rule=old_unit.transfer_rule,
            _frozen_state=_freeze_state(new_state),
        )
        self.journal.write(self.units, unit_symbol, new_unit)
