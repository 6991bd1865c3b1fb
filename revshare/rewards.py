"""
rewards.py - Reward Accounting Engine

=== ACCUMULATOR MODEL ===

Revenue is never split among holders when it is deposited. Each project keeps
one scalar, reward_per_share_stored, that absorbs the whole deposit:

    increase = amount * PRECISION // minted
    reward_per_share_stored += increase

Each (project, holder) pair keeps a RewardCheckpoint recording the
accumulator value it last reconciled against. What a holder has earned since
then is derived lazily:

    earned = balance * (reward_per_share_stored - paid_per_share) // PRECISION

sync() folds `earned` into `pending` and moves the checkpoint up to the current
accumulator. It must run for every affected holder BEFORE their balance
changes; the engine registers itself as a ledger TransferHook to guarantee
that for every mint, transfer and burn.

Rounding: the floor in `increase` loses less than minted / PRECISION wei per
deposit; the floor in `earned` loses less than 1 wei per holder per sync that
observes a new deposit. Total undistributed remainder per project is therefore
bounded by (number of deposits) x (minted at deposit time).

=== PURE FUNCTIONS ===

    calculate_reward_increase(amount, minted) -> int
    calculate_earned(balance, reward_per_share, paid_per_share) -> int
    calculate_synced_checkpoint(checkpoint, balance, reward_per_share) -> RewardCheckpoint
    calculate_claimable(checkpoint, balance, reward_per_share) -> int
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Dict, List, Sequence, Tuple

from .core import (
    LedgerView, Move, PendingTransaction, TransactionOrigin, OriginType,
    PRECISION, SYSTEM_WALLET, VAULT_WALLET, UNIT_TYPE_SHARE,
    ProjectNotActive, NoFundsDeposited, NoTokensMinted, NothingToClaim,
    build_transaction,
)
from .ledger import Ledger
from .projects import load_project, project_state_change, project_symbol


@dataclass(frozen=True, slots=True)
class RewardCheckpoint:
    """Per (project, holder) reconciliation record."""
    paid_per_share: int = 0   # Accumulator value last observed by this holder
    pending: int = 0          # Earned, not yet claimed
    total_claimed: int = 0    # Lifetime claimed, never decreases


# =============================================================================
# PURE FUNCTIONS
# =============================================================================

def calculate_reward_increase(amount: int, minted: int) -> int:
    """Accumulator increase for a deposit of `amount` spread over `minted` shares."""
    if minted <= 0:
        raise ValueError("minted must be positive")
    return amount * PRECISION // minted


def calculate_earned(balance: int, reward_per_share: int, paid_per_share: int) -> int:
    """Revenue earned by `balance` shares since the checkpoint at paid_per_share."""
    return balance * (reward_per_share - paid_per_share) // PRECISION


def calculate_synced_checkpoint(
    checkpoint: RewardCheckpoint,
    balance: int,
    reward_per_share: int,
) -> RewardCheckpoint:
    """
    Checkpoint after reconciling against the current accumulator.

    Idempotent: applying it again with the same balance and accumulator
    returns an equal checkpoint.
    """
    earned = calculate_earned(balance, reward_per_share, checkpoint.paid_per_share)
    return replace(
        checkpoint,
        paid_per_share=reward_per_share,
        pending=checkpoint.pending + earned if earned > 0 else checkpoint.pending,
    )


def calculate_claimable(checkpoint: RewardCheckpoint, balance: int, reward_per_share: int) -> int:
    """What a sync followed by a claim would pay out right now."""
    return checkpoint.pending + calculate_earned(balance, reward_per_share, checkpoint.paid_per_share)


# =============================================================================
# DEPOSIT
# =============================================================================

def compute_deposit(
    view: LedgerView,
    project_id: int,
    depositor: str,
    amount: int,
    currency: str,
    energy_kwh: int = 0,
) -> PendingTransaction:
    """
    Build the revenue deposit for a project.

    The transaction moves `amount` of cash from the depositor into the vault
    and raises the project's accumulator. Authorization is the caller's job.

    Args:
        view: Read-only ledger access
        project_id: Project receiving revenue
        depositor: Wallet paying the revenue in
        amount: Revenue in wei
        currency: Cash unit symbol
        energy_kwh: Optional production delta recorded alongside the deposit

    Raises:
        ProjectNotFound: unknown project
        ProjectNotActive: project is inactive
        NoFundsDeposited: amount is zero
        NoTokensMinted: no shares are outstanding to attribute the revenue to

    Example:
        # 40 shares outstanding, deposit 400 wei
        pending = compute_deposit(ledger, 1, "creator", 400, "WEI")
        # reward_per_share_stored: 0 -> 400 * 10**18 // 40 = 10**19
    """
    _, state = load_project(view, project_id)
    if not state.active:
        raise ProjectNotActive(f"Project {project_id} is not active")
    if amount <= 0:
        raise NoFundsDeposited(f"Deposit to project {project_id} carries no funds")
    if state.minted == 0:
        raise NoTokensMinted(f"Project {project_id} has no shares outstanding")

    increase = calculate_reward_increase(amount, state.minted)
    updates = {
        'reward_per_share_stored': state.reward_per_share_stored + increase,
        'total_revenue': state.total_revenue + amount,
    }
    if energy_kwh > 0:
        updates['total_energy_kwh'] = state.total_energy_kwh + energy_kwh

    symbol = project_symbol(project_id)
    moves = [Move(amount, currency, depositor, VAULT_WALLET, f"revenue_{symbol}")]
    changes = [project_state_change(view, project_id, **updates)]
    origin = TransactionOrigin(OriginType.DEPOSIT, depositor, symbol, "REVENUE")
    return build_transaction(view, moves, changes, origin=origin)


# =============================================================================
# ENGINE - checkpoint store and TransferHook
# =============================================================================

class RewardEngine:
    """
    Owns every RewardCheckpoint and keeps them in step with share balances.

    Created once per ledger; registers itself as a TransferHook so any mint,
    transfer or burn of a project share syncs both sides first. Checkpoint
    writes go through the ledger's journal and roll back with the operation
    that made them.
    """

    def __init__(self, ledger: Ledger):
        self.ledger = ledger
        self.checkpoints: Dict[Tuple[int, str], RewardCheckpoint] = {}
        ledger.register_hook(self)

    # ------------------------------------------------------------------
    # TransferHook
    # ------------------------------------------------------------------

    def before_moves(self, view: LedgerView, moves: Tuple[Move, ...]) -> None:
        for move in moves:
            unit = view.get_unit(move.unit_symbol)
            if unit.unit_type != UNIT_TYPE_SHARE:
                continue
            project_id = unit.state['project_id']
            if move.source != SYSTEM_WALLET:
                self.sync(project_id, move.source)
            if move.dest != SYSTEM_WALLET:
                self.sync(project_id, move.dest)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def checkpoint(self, project_id: int, holder: str) -> RewardCheckpoint:
        return self.checkpoints.get((project_id, holder), RewardCheckpoint())

    def claimable(self, project_id: int, holder: str) -> int:
        """What sync would commit for holder right now. 0 for an unknown wallet."""
        _, state = load_project(self.ledger, project_id)
        balance = self.balance(project_id, holder)
        return calculate_claimable(
            self.checkpoint(project_id, holder), balance, state.reward_per_share_stored
        )

    def balance(self, project_id: int, holder: str) -> int:
        if not self.ledger.is_registered(holder):
            return 0
        return self.ledger.get_balance(holder, project_symbol(project_id))

    def holders(self, project_id: int) -> List[str]:
        """Every wallet with a checkpoint for the project, sorted."""
        return sorted(h for (pid, h) in self.checkpoints if pid == project_id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def sync(self, project_id: int, holder: str) -> RewardCheckpoint:
        """Fold revenue earned since the holder's checkpoint into pending."""
        _, state = load_project(self.ledger, project_id)
        balance = self.ledger.get_balance(holder, project_symbol(project_id))
        synced = calculate_synced_checkpoint(
            self.checkpoint(project_id, holder), balance, state.reward_per_share_stored
        )
        self.ledger.journal.write(self.checkpoints, (project_id, holder), synced)
        return synced

    def settle(self, project_id: int, holder: str) -> int:
        """
        Sync, then move everything pending into total_claimed.

        Returns the amount the caller must now pay out to the holder. The
        caller owns the payout and must run this inside an atomic block so a
        failed payout restores the checkpoint.

        Raises:
            NothingToClaim: nothing is pending after the sync
        """
        checkpoint = self.sync(project_id, holder)
        amount = checkpoint.pending
        if amount == 0:
            raise NothingToClaim(f"{holder} has nothing to claim from project {project_id}")
        self.ledger.journal.write(
            self.checkpoints,
            (project_id, holder),
            replace(checkpoint, pending=0, total_claimed=checkpoint.total_claimed + amount),
        )
        return amount

    def settle_batch(self, project_ids: Sequence[int], holder: str) -> Dict[int, int]:
        """
        Settle every listed project that has something pending.

        Projects with nothing pending are skipped; a repeated id settles once.

        Returns:
            {project_id: amount} for each project that paid something

        Raises:
            NothingToClaim: the aggregate over all listed projects is zero
        """
        settled: Dict[int, int] = {}
        for project_id in project_ids:
            if project_id in settled:
                continue
            if self.sync(project_id, holder).pending > 0:
                settled[project_id] = self.settle(project_id, holder)
        if not settled:
            raise NothingToClaim(f"{holder} has nothing to claim from {list(project_ids)}")
        return settled
