"""
test_sale.py - Unit tests for share sales and the sales escrow

Tests:
- validate_purchase check order (pure, via FakeView terms)
- purchase: minting, payment, refunds, supply boundaries, pause gate
- withdraw_sales: authorization, escrow limits, payout
"""

import pytest

from revshare import (
    SharesMinted, SalesWithdrawn, VAULT_WALLET,
    load_project, validate_purchase, compute_purchase, compute_sales_debit, calculate_purchase_cost,
    ProjectNotActive, BelowMinimumPurchase, InsufficientSupply, InsufficientPayment,
    InsufficientBalance, InsufficientFunds, InvalidAmount, InvalidRecipient,
    Unauthorized, EnforcedPause, WalletNotRegistered, SYSTEM_WALLET,
    get_sales_balance, get_held_funds, get_project_summary,
)
from tests.fake_view import project_view
from tests.market_helpers import ADMIN, CREATOR, STARTING_CASH, cash_of, shares_of


class TestValidatePurchase:

    def _load(self, **state):
        return load_project(project_view(**state), 1)

    def test_returns_cost(self):
        terms, state = self._load()
        assert validate_purchase(terms, state, 7, 70) == 70
        assert calculate_purchase_cost(10, 7) == 70

    def test_inactive_checked_first(self):
        terms, state = self._load(active=False, min_purchase=5, minted=100)
        with pytest.raises(ProjectNotActive):
            validate_purchase(terms, state, 1, 0)

    def test_minimum_checked_before_supply(self):
        terms, state = self._load(min_purchase=5, minted=98)
        with pytest.raises(BelowMinimumPurchase) as exc:
            validate_purchase(terms, state, 4, 0)
        assert (exc.value.minimum, exc.value.requested) == (5, 4)

    def test_supply_checked_before_payment(self):
        terms, state = self._load(minted=98)
        with pytest.raises(InsufficientSupply) as exc:
            validate_purchase(terms, state, 3, 0)
        assert (exc.value.available, exc.value.requested) == (2, 3)

    def test_payment(self):
        terms, state = self._load()
        with pytest.raises(InsufficientPayment) as exc:
            validate_purchase(terms, state, 3, 29)
        assert (exc.value.required, exc.value.sent) == (30, 29)

    def test_compute_purchase_mints_and_credits_escrow(self):
        view = project_view(minted=10, sales_balance=100)
        pending = compute_purchase(view, 1, "alice", 5)
        assert pending.moves[0].is_mint
        assert pending.moves[0].dest == "alice"
        new_state = pending.state_changes[0].new_state
        assert (new_state['minted'], new_state['sales_balance']) == (15, 150)

    def test_compute_sales_debit_limits(self):
        view = project_view(sales_balance=100)
        with pytest.raises(InvalidAmount):
            compute_sales_debit(view, 1, 0, CREATOR)
        with pytest.raises(InsufficientBalance):
            compute_sales_debit(view, 1, 101, CREATOR)
        pending = compute_sales_debit(view, 1, 100, CREATOR)
        assert pending.moves == ()
        assert pending.state_changes[0].new_state['sales_balance'] == 0


class TestPurchase:

    def test_exact_payment(self, market, project):
        cost = market.purchase("alice", project, 40, payment=400)
        assert cost == 400
        assert shares_of(market, "alice", project) == 40
        assert cash_of(market, "alice") == STARTING_CASH - 400
        assert get_sales_balance(market, project) == 400
        assert get_held_funds(market) == 400
        assert market.events[-1] == SharesMinted(project, "alice", 40, 400)

    def test_overpayment_refunded(self, market, project):
        cost = market.purchase("alice", project, 3, payment=1_000)
        assert cost == 30
        assert cash_of(market, "alice") == STARTING_CASH - 30
        assert get_sales_balance(market, project) == 30
        assert market.ledger.get_balance(VAULT_WALLET, market.currency) == 30

    def test_buy_exact_remaining_supply(self, market, project):
        market.purchase("alice", project, 99, payment=990)
        market.purchase("bob", project, 1, payment=10)
        summary = get_project_summary(market, project)
        assert summary.minted == summary.total_supply == 100
        assert summary.available_supply == 0

    def test_one_past_supply_rejected(self, market, project):
        market.purchase("alice", project, 99, payment=990)
        with pytest.raises(InsufficientSupply):
            market.purchase("bob", project, 2, payment=20)

    def test_exact_minimum_accepted(self, market):
        pid = market.create_project(CREATOR, "Min 5", 100, 10, 5)
        market.purchase("alice", pid, 5, payment=50)
        with pytest.raises(BelowMinimumPurchase):
            market.purchase("alice", pid, 4, payment=40)

    def test_zero_amount_below_minimum(self, market, project):
        with pytest.raises(BelowMinimumPurchase):
            market.purchase("alice", project, 0, payment=0)

    def test_buyer_without_funds(self, market, project):
        market.register_account("dave")
        with pytest.raises(InsufficientFunds):
            market.purchase("dave", project, 1, payment=10)
        assert get_project_summary(market, project).minted == 0

    def test_unregistered_buyer(self, market, project):
        with pytest.raises(WalletNotRegistered):
            market.purchase("ghost", project, 1, payment=10)

    @pytest.mark.parametrize("buyer", [SYSTEM_WALLET, VAULT_WALLET])
    def test_reserved_buyer(self, market, project, buyer):
        with pytest.raises(InvalidRecipient):
            market.purchase(buyer, project, 1, payment=10)
        assert get_project_summary(market, project).minted == 0
        assert get_held_funds(market) == 0

    def test_paused(self, market, project):
        market.pause_gate.pause(ADMIN)
        with pytest.raises(EnforcedPause):
            market.purchase("alice", project, 1, payment=10)
        market.pause_gate.resume(ADMIN)
        assert market.purchase("alice", project, 1, payment=10) == 10

    def test_paused_checked_before_validation(self, market):
        market.pause_gate.pause(ADMIN)
        with pytest.raises(EnforcedPause):
            market.purchase("alice", 42, 1, payment=10)

    def test_purchase_after_deposit_earns_nothing_from_it(self, market, project):
        market.purchase("alice", project, 10, payment=100)
        market.deposit_revenue(CREATOR, project, 100)
        market.purchase("bob", project, 10, payment=100)
        assert market.claimable(project, "bob") == 0
        assert market.claimable(project, "alice") == 100


class TestWithdrawSales:

    def test_creator_withdraws_to_recipient(self, market, split_project):
        market.withdraw_sales(CREATOR, split_project, "carol", 250)
        assert get_sales_balance(market, split_project) == 750
        assert cash_of(market, "carol") == STARTING_CASH + 250
        assert market.events[-1] == SalesWithdrawn(split_project, "carol", 250)

    def test_withdraw_full_balance(self, market, split_project):
        market.withdraw_sales(CREATOR, split_project, CREATOR, 1_000)
        assert get_sales_balance(market, split_project) == 0
        with pytest.raises(InsufficientBalance):
            market.withdraw_sales(CREATOR, split_project, CREATOR, 1)

    def test_withdraw_does_not_touch_revenue(self, market, split_project):
        market.deposit_revenue(CREATOR, split_project, 500)
        with pytest.raises(InsufficientBalance):
            market.withdraw_sales(CREATOR, split_project, CREATOR, 1_001)
        assert market.claimable(split_project, "alice") == 200

    def test_admin_cannot_withdraw(self, market, split_project):
        with pytest.raises(Unauthorized):
            market.withdraw_sales(ADMIN, split_project, ADMIN, 1)

    def test_zero_amount(self, market, split_project):
        with pytest.raises(InvalidAmount):
            market.withdraw_sales(CREATOR, split_project, CREATOR, 0)

    def test_blank_recipient(self, market, split_project):
        with pytest.raises(InvalidRecipient):
            market.withdraw_sales(CREATOR, split_project, "", 10)
        assert get_sales_balance(market, split_project) == 1_000

    @pytest.mark.parametrize("recipient", [SYSTEM_WALLET, VAULT_WALLET])
    def test_reserved_recipient(self, market, split_project, recipient):
        with pytest.raises(InvalidRecipient):
            market.withdraw_sales(CREATOR, split_project, recipient, 100)
        assert get_sales_balance(market, split_project) == 1_000
        assert get_held_funds(market) == 1_000

    def test_escrow_follows_creator_transfer(self, market, split_project):
        market.transfer_creator(CREATOR, split_project, "carol")
        with pytest.raises(Unauthorized):
            market.withdraw_sales(CREATOR, split_project, CREATOR, 10)
        market.withdraw_sales("carol", split_project, "carol", 1_000)
        assert cash_of(market, "carol") == STARTING_CASH + 1_000
