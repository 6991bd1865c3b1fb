"""
marketplace.py - Revenue-Share Marketplace

The Marketplace is the single entry point for every state-changing operation.
It wires the pieces together:

    Ledger         - balances of cash and of every project's shares
    RewardEngine   - accumulator checkpoints, hooked into the ledger
    projects.py    - registry transitions (create, status, creator, energy)
    sale.py        - purchase validation and sales escrow
    Authority      - "is this account the admin?"
    PauseGate      - "is the system paused?"

Every public mutating method runs inside one ledger.atomic() block: if any
step raises, every balance, unit state, checkpoint and event written by the
call is rolled back. Operations that pay value out (purchase refunds, claims,
sales withdrawals) are also guarded against re-entry, and always apply their
ledger debit before attempting the payout.

Value held by the marketplace lives in VAULT_WALLET. Incoming payments move
payer -> vault; payouts move vault -> recipient. A payout the ledger rejects
(unregistered recipient, or a transfer rule refusing the credit) aborts the
whole operation with a TransferFailed subclass.

Example:
    market = Marketplace("main", owner="admin", verbose=False)
    for account in ("creator", "alice"):
        market.register_account(account)
    market.issue_cash("alice", 1_000)
    market.issue_cash("creator", 1_000)

    pid = market.create_project("creator", "Solar Farm", total_supply=100,
                                price_wei=10, min_purchase=1)
    market.purchase("alice", pid, 40, payment=400)
    market.deposit_revenue("creator", pid, 400)
    market.claim("alice", pid)   # -> 400
"""

from __future__ import annotations
from collections import OrderedDict
from datetime import datetime
import functools
from typing import Dict, List, Optional, Sequence, Tuple

from .core import (
    Move, PendingTransaction, TransactionOrigin, OriginType,
    ExecuteResult, Authority, PauseGate, TransferRule,
    SYSTEM_WALLET, VAULT_WALLET, DEFAULT_CURRENCY,
    LedgerError, InsufficientFunds, WalletNotRegistered, ReentrantCall,
    Unauthorized, EnforcedPause, InvalidCreator, InvalidRecipient, InvalidAmount,
    InsufficientBalance, RefundFailed, ClaimTransferFailed, WithdrawFailed,
    build_transaction, cash,
)
from .ledger import Ledger
from .access import SingleOwner, PauseSwitch
from .events import (
    Record, Subscriber,
    ProjectCreated, SharesMinted, SharesTransferred, RevenueDeposited,
    RevenueClaimed, SalesWithdrawn, EnergyUpdated, StatusChanged, CreatorTransferred,
)
from .projects import (
    ProjectState,
    load_project, project_symbol, is_null_account, is_reserved_account,
    compute_project_registration, compute_status_change,
    compute_creator_transfer, compute_energy_update,
)
from .rewards import RewardEngine, RewardCheckpoint, compute_deposit
from .sale import validate_purchase, compute_purchase, compute_sales_debit


def nonreentrant(method):
    """Reject a call made while another guarded operation on the same marketplace runs."""
    @functools.wraps(method)
    def guarded(self, *args, **kwargs):
        if self._entered:
            raise ReentrantCall(f"{method.__name__} called during another guarded operation")
        self._entered = True
        try:
            return method(self, *args, **kwargs)
        finally:
            self._entered = False
    return guarded


class Marketplace:
    """
    Multi-tenant fractional-ownership marketplace with pro-rata revenue sharing.

    Thread Safety:
        Not thread-safe. Operations must be called one at a time.
    """

    def __init__(
        self,
        name: str = "revshare",
        owner: Optional[str] = None,
        currency: str = DEFAULT_CURRENCY,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
        authority: Optional[Authority] = None,
        pause_gate: Optional[PauseGate] = None,
        cash_transfer_rule: Optional[TransferRule] = None,
    ):
        """
        Create a marketplace.

        Args:
            name: Ledger identifier
            owner: Global admin account (ignored when authority is given)
            currency: Symbol of the settlement cash unit
            initial_time: Starting logical time (default: 1970-01-01)
            verbose: Print ledger activity and emitted records (default: True)
            authority: Admin collaborator (default: SingleOwner(owner))
            pause_gate: Pause collaborator (default: PauseSwitch(authority))
            cash_transfer_rule: Optional transfer rule for the cash unit

        Raises:
            ValueError: neither owner nor authority was given
        """
        if authority is None:
            if owner is None:
                raise ValueError("Marketplace needs an owner or an authority")
            authority = SingleOwner(owner)
        self.authority = authority
        self.pause_gate = pause_gate if pause_gate is not None else PauseSwitch(authority)
        self.currency = currency
        self.verbose = verbose

        self.ledger = Ledger(name, initial_time=initial_time, verbose=verbose)
        self.ledger.register_unit(cash(currency, f"{currency} settlement cash", cash_transfer_rule))
        self.ledger.register_wallet(VAULT_WALLET)
        self.rewards = RewardEngine(self.ledger)

        self.project_ids: List[int] = []
        self.events: List[Record] = []
        self._subscribers: List[Subscriber] = []
        self.subscriber_errors: List[Tuple[Record, Exception]] = []
        self._entered = False

    # ========================================================================
    # ACCOUNTS, CASH AND OBSERVERS
    # ========================================================================

    def register_account(self, account: str) -> str:
        """
        Register a wallet so it can hold cash and shares.

        Raises:
            ValueError: account is blank, reserved or already registered
        """
        if is_reserved_account(account):
            raise ValueError(f"Wallet {account} is reserved")
        return self.ledger.register_wallet(account)

    def issue_cash(self, account: str, amount: int) -> None:
        """Issue settlement cash to an account from the system wallet."""
        self._require_account(account, InvalidRecipient)
        pending = build_transaction(
            self.ledger,
            [Move(amount, self.currency, SYSTEM_WALLET, account, f"issue_{account}")],
        )
        self._apply(pending)

    def subscribe(self, callback: Subscriber) -> None:
        """
        Deliver every emitted record to callback once its operation commits.

        Callbacks run before the emitting call returns, so they cannot enter a
        guarded operation (it raises ReentrantCall). An exception raised by a
        callback never reaches the caller, whose operation has already
        committed: it is kept in subscriber_errors and the remaining callbacks
        still run.
        """
        self._subscribers.append(callback)

    # ========================================================================
    # REWARD QUERIES
    # ========================================================================

    def claimable(self, project_id: int, holder: str) -> int:
        return self.rewards.claimable(project_id, holder)

    def checkpoint(self, project_id: int, holder: str) -> RewardCheckpoint:
        load_project(self.ledger, project_id)
        return self.rewards.checkpoint(project_id, holder)

    def balance_of(self, holder: str, project_id: int) -> int:
        load_project(self.ledger, project_id)
        return self.rewards.balance(project_id, holder)

    # ========================================================================
    # PROJECT REGISTRY
    # ========================================================================

    def create_project(
        self,
        requestor: str,
        name: str,
        total_supply: int,
        price_wei: int,
        min_purchase: int,
    ) -> int:
        """
        Register a new project owned by requestor.

        Returns:
            The new project id (sequential, starting at 1)

        Raises:
            InvalidSupply, InvalidPrice, InvalidMinPurchase, InvalidCreator
        """
        return self._register_project(requestor, requestor, name, total_supply, price_wei, min_purchase)

    def create_project_for(
        self,
        caller: str,
        creator: str,
        name: str,
        total_supply: int,
        price_wei: int,
        min_purchase: int,
    ) -> int:
        """Admin-only: register a project on behalf of creator."""
        self._require_owner(caller)
        if is_null_account(creator):
            raise InvalidCreator("creator cannot be empty")
        return self._register_project(caller, creator, name, total_supply, price_wei, min_purchase)

    def set_active(self, caller: str, project_id: int, active: bool) -> None:
        """Creator-only: open or close the project for sales and deposits."""
        with self.ledger.atomic():
            _, state = load_project(self.ledger, project_id)
            self._require_creator(project_id, state, caller)
            self._apply(compute_status_change(self.ledger, project_id, active, caller))
            self._emit(StatusChanged(project_id, bool(active)))

    def transfer_creator(self, caller: str, project_id: int, new_creator: str) -> None:
        """Creator-only: hand the project, its admin rights and its sales escrow to new_creator."""
        with self.ledger.atomic():
            _, state = load_project(self.ledger, project_id)
            self._require_creator(project_id, state, caller)
            self._apply(compute_creator_transfer(self.ledger, project_id, new_creator, caller))
            self._emit(CreatorTransferred(project_id, state.creator, new_creator))

    def record_energy(self, caller: str, project_id: int, energy_kwh: int) -> int:
        """
        Creator or admin: add to the project's energy counter.

        Returns:
            The new total_energy_kwh
        """
        with self.ledger.atomic():
            _, state = load_project(self.ledger, project_id)
            self._require_creator_or_owner(project_id, state, caller)
            self._apply(compute_energy_update(self.ledger, project_id, energy_kwh, caller))
            _, state = load_project(self.ledger, project_id)
            self._emit(EnergyUpdated(project_id, energy_kwh, state.total_energy_kwh))
        return state.total_energy_kwh

    # ========================================================================
    # SALE AND ESCROW
    # ========================================================================

    @nonreentrant
    def purchase(self, buyer: str, project_id: int, amount: int, payment: int) -> int:
        """
        Buy `amount` new shares of a project, paying `payment` wei.

        The buyer's reward checkpoint is synced before the shares are minted,
        so the purchase earns nothing from revenue deposited before it. Any
        payment above the cost is refunded.

        Returns:
            The cost charged (price_wei * amount)

        Raises:
            EnforcedPause: purchases are paused
            ProjectNotFound, ProjectNotActive, BelowMinimumPurchase,
            InsufficientSupply, InsufficientPayment: validation failures
            InsufficientFunds: the buyer does not hold `payment`
            RefundFailed: the excess could not be returned
        """
        if self.pause_gate.is_paused():
            raise EnforcedPause("purchases are paused")

        with self.ledger.atomic():
            terms, state = load_project(self.ledger, project_id)
            cost = validate_purchase(terms, state, amount, payment)
            self._require_account(buyer, InvalidRecipient)
            symbol = project_symbol(project_id)

            self._receive(buyer, payment, OriginType.PURCHASE, symbol)
            self.rewards.sync(project_id, buyer)
            self._apply(compute_purchase(self.ledger, project_id, buyer, amount))
            if payment > cost:
                self._send(buyer, payment - cost, RefundFailed, OriginType.PURCHASE, symbol, "REFUND")
            self._emit(SharesMinted(project_id, buyer, amount, cost))
        return cost

    @nonreentrant
    def withdraw_sales(self, caller: str, project_id: int, recipient: str, amount: int) -> None:
        """
        Creator-only: pay `amount` of the project's sale proceeds to recipient.

        Raises:
            Unauthorized: caller is not the creator
            InvalidAmount: amount is not positive
            InsufficientBalance: amount exceeds the sales escrow
            InvalidRecipient: recipient is null or a reserved wallet
            WithdrawFailed: the payout was refused
        """
        with self.ledger.atomic():
            _, state = load_project(self.ledger, project_id)
            self._require_creator(project_id, state, caller)
            debit = compute_sales_debit(self.ledger, project_id, amount, caller)
            if is_null_account(recipient) or is_reserved_account(recipient):
                raise InvalidRecipient(f"cannot pay sale proceeds to {recipient!r}")

            self._apply(debit)
            self._send(recipient, amount, WithdrawFailed, OriginType.WITHDRAWAL,
                       project_symbol(project_id), "PAYOUT")
            self._emit(SalesWithdrawn(project_id, recipient, amount))

    # ========================================================================
    # REVENUE
    # ========================================================================

    def deposit_revenue(self, caller: str, project_id: int, amount: int, energy_kwh: int = 0) -> int:
        """
        Creator or admin: deposit revenue to be shared by current holders.

        Returns:
            The new reward_per_share_stored

        Raises:
            Unauthorized, ProjectNotActive, NoFundsDeposited, NoTokensMinted
            InsufficientFunds: caller does not hold `amount`
        """
        with self.ledger.atomic():
            _, state = load_project(self.ledger, project_id)
            self._require_creator_or_owner(project_id, state, caller)
            if is_reserved_account(caller):
                raise Unauthorized(f"{caller} is a reserved wallet and cannot deposit")
            pending = compute_deposit(self.ledger, project_id, caller, amount, self.currency, energy_kwh)
            self._require_registered(caller)
            self._apply(pending, InsufficientFunds)

            _, state = load_project(self.ledger, project_id)
            self._emit(RevenueDeposited(project_id, caller, amount, state.reward_per_share_stored))
            if energy_kwh > 0:
                self._emit(EnergyUpdated(project_id, energy_kwh, state.total_energy_kwh))
        return state.reward_per_share_stored

    @nonreentrant
    def claim(self, holder: str, project_id: int) -> int:
        """
        Pay the holder everything they have earned from a project.

        Returns:
            The amount paid

        Raises:
            NothingToClaim: nothing is claimable
            ClaimTransferFailed: the payout was refused (nothing is changed)
        """
        with self.ledger.atomic():
            load_project(self.ledger, project_id)
            self._require_account(holder, InvalidRecipient)
            amount = self.rewards.settle(project_id, holder)
            self._send(holder, amount, ClaimTransferFailed, OriginType.CLAIM,
                       project_symbol(project_id), "PAYOUT")
            total = self.rewards.checkpoint(project_id, holder).total_claimed
            self._emit(RevenueClaimed(project_id, holder, amount, total))
        return amount

    @nonreentrant
    def claim_batch(self, holder: str, project_ids: Sequence[int]) -> int:
        """
        Claim from several projects with a single payout of the total.

        Projects with nothing claimable are skipped. If the single payout
        fails, no project's checkpoint changes.

        Returns:
            The total paid

        Raises:
            NothingToClaim: nothing is claimable across all listed projects
            ClaimTransferFailed: the payout was refused
        """
        with self.ledger.atomic():
            for project_id in project_ids:
                load_project(self.ledger, project_id)
            self._require_account(holder, InvalidRecipient)
            settled = self.rewards.settle_batch(project_ids, holder)
            total = sum(settled.values())
            self._send(holder, total, ClaimTransferFailed, OriginType.CLAIM, None, "BATCH_PAYOUT")
            for project_id, amount in settled.items():
                lifetime = self.rewards.checkpoint(project_id, holder).total_claimed
                self._emit(RevenueClaimed(project_id, holder, amount, lifetime))
        return total

    # ========================================================================
    # SHARE TRANSFERS
    # ========================================================================

    def transfer_shares(self, sender: str, recipient: str, project_id: int, amount: int) -> None:
        """Move shares between holders; both sides are synced before balances change."""
        self.transfer_shares_batch(sender, recipient, [project_id], [amount])

    def transfer_shares_batch(
        self,
        sender: str,
        recipient: str,
        project_ids: Sequence[int],
        amounts: Sequence[int],
    ) -> None:
        """
        Move shares of several projects from sender to recipient in one transaction.

        Raises:
            EnforcedPause: transfers are paused
            ValueError: project_ids and amounts differ in length
            InvalidRecipient: recipient is null, reserved or the sender itself
            InvalidAmount: an amount is not positive
            WalletNotRegistered: sender or recipient unknown
            InsufficientBalance: sender holds fewer shares than requested
        """
        if self.pause_gate.is_paused():
            raise EnforcedPause("transfers are paused")
        if len(project_ids) != len(amounts):
            raise ValueError("project_ids and amounts must have the same length")
        if is_null_account(recipient) or is_reserved_account(recipient) or recipient == sender:
            raise InvalidRecipient(f"cannot transfer to {recipient!r}")

        with self.ledger.atomic():
            self._require_registered(sender)
            self._require_registered(recipient)

            requested: Dict[int, int] = OrderedDict()
            for project_id, amount in zip(project_ids, amounts):
                load_project(self.ledger, project_id)
                if amount <= 0:
                    raise InvalidAmount(f"transfer amount must be positive, got {amount}")
                requested[project_id] = requested.get(project_id, 0) + amount
            for project_id, total in requested.items():
                available = self.ledger.get_balance(sender, project_symbol(project_id))
                if total > available:
                    raise InsufficientBalance(available, total)

            moves = [
                Move(amount, project_symbol(project_id), sender, recipient,
                     f"transfer_{project_symbol(project_id)}")
                for project_id, amount in zip(project_ids, amounts)
            ]
            origin = TransactionOrigin(OriginType.TRANSFER, sender)
            self._apply(build_transaction(self.ledger, moves, origin=origin))
            for project_id, amount in zip(project_ids, amounts):
                self._emit(SharesTransferred(project_id, sender, recipient, amount))

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _register_project(
        self,
        requestor: str,
        creator: str,
        name: str,
        total_supply: int,
        price_wei: int,
        min_purchase: int,
    ) -> int:
        with self.ledger.atomic():
            project_id = len(self.project_ids) + 1
            self._apply(compute_project_registration(
                self.ledger, project_id, name, creator,
                total_supply, price_wei, min_purchase, requestor,
            ))
            self.ledger.journal.append(self.project_ids, project_id)
            self._emit(ProjectCreated(project_id, creator, name, total_supply, price_wei, min_purchase))
        return project_id

    def _apply(self, pending: PendingTransaction, error_cls=LedgerError) -> None:
        if self.ledger.execute(pending) != ExecuteResult.APPLIED:
            raise error_cls(self.ledger.last_rejection)

    def _receive(self, payer: str, amount: int, origin_type: OriginType, symbol: str) -> None:
        """Move value sent with an operation from payer into the vault."""
        origin = TransactionOrigin(origin_type, payer, symbol, "PAYMENT")
        pending = build_transaction(
            self.ledger,
            [Move(amount, self.currency, payer, VAULT_WALLET, f"payment_{symbol}")],
            origin=origin,
        )
        self._apply(pending, InsufficientFunds)

    def _send(
        self,
        recipient: str,
        amount: int,
        error_cls,
        origin_type: OriginType,
        symbol: Optional[str],
        event_type: str,
    ) -> None:
        """Pay value out of the vault; a refused payout raises error_cls."""
        origin = TransactionOrigin(origin_type, recipient, symbol, event_type)
        pending = build_transaction(
            self.ledger,
            [Move(amount, self.currency, VAULT_WALLET, recipient, f"{event_type.lower()}_{recipient}")],
            origin=origin,
        )
        self._apply(pending, error_cls)

    def _emit(self, record: Record) -> None:
        self.ledger.journal.append(self.events, record)
        self.ledger.journal.call_on_commit(lambda: self._dispatch(record))

    def _dispatch(self, record: Record) -> None:
        if self.verbose:
            print(f"📣 {record}")
        for callback in list(self._subscribers):
            try:
                callback(record)
            except Exception as exc:
                self.subscriber_errors.append((record, exc))
                if self.verbose:
                    print(f"⚠️  Subscriber failed on {record}: {exc!r}")

    def _require_account(self, account: str, error_cls) -> None:
        """A registered wallet that is neither null nor reserved; otherwise raise error_cls."""
        if is_null_account(account) or is_reserved_account(account):
            raise error_cls(f"{account!r} cannot take part in this operation")
        self._require_registered(account)

    def _require_registered(self, account: str) -> None:
        if not self.ledger.is_registered(account):
            raise WalletNotRegistered(f"Wallet {account} not registered")

    def _require_owner(self, caller: str) -> None:
        if not self.authority.is_owner(caller):
            raise Unauthorized(f"{caller} is not the admin")

    def _require_creator(self, project_id: int, state: ProjectState, caller: str) -> None:
        if caller != state.creator:
            raise Unauthorized(f"{caller} is not the creator of project {project_id}")

    def _require_creator_or_owner(self, project_id: int, state: ProjectState, caller: str) -> None:
        if caller != state.creator and not self.authority.is_owner(caller):
            raise Unauthorized(f"{caller} is neither creator of project {project_id} nor admin")
