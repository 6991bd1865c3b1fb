"""
test_revenue_scenarios.py - End-to-end revenue-sharing scenarios

Walks complete project lifecycles through the Marketplace facade:
- Staggered purchases and deposits (late buyers earn nothing retroactively)
- Trading shares between deposits
- Multi-project portfolios claimed in one batch
- Creator hand-over and full wind-down of escrow and revenue
"""

import pytest

from revshare import (
    PRECISION, VAULT_WALLET,
    NothingToClaim,
    get_project_summary, get_portfolio, get_held_funds, verify_reward_conservation,
)
from tests.market_helpers import CREATOR, STARTING_CASH, cash_of, check_invariants, make_market


class TestStaggeredPurchases:

    def test_late_buyer_scenario(self):
        market = make_market()
        pid = market.create_project(CREATOR, "Solar Farm", total_supply=100, price_wei=10, min_purchase=1)

        # A buys 40: cost 400 goes to escrow
        assert market.purchase("alice", pid, 40, payment=400) == 400
        summary = get_project_summary(market, pid)
        assert (summary.minted, summary.sales_balance) == (40, 400)

        # First deposit is shared by A alone
        assert market.deposit_revenue(CREATOR, pid, 400) == 10 ** 19
        assert market.claimable(pid, "alice") == 400

        # B buys 60; checkpointed at the current accumulator
        market.purchase("bob", pid, 60, payment=600)
        assert market.checkpoint(pid, "bob").paid_per_share == 10 ** 19
        assert market.claimable(pid, "bob") == 0

        # Second deposit spread over 100 shares
        assert market.deposit_revenue(CREATOR, pid, 1_000) == 2 * 10 ** 19
        assert market.claimable(pid, "alice") == 800
        assert market.claimable(pid, "bob") == 600

        result = verify_reward_conservation(market, pid)
        assert result['total_revenue'] == 1_400
        assert result['distributed'] == 1_400
        assert result['remainder'] == 0
        assert check_invariants(market) == []

    def test_claim_timing_does_not_change_entitlement(self):
        early, late = make_market(), make_market()
        for market in (early, late):
            pid = market.create_project(CREATOR, "Solar", 100, 10, 1)
            market.purchase("alice", pid, 40, payment=400)
            market.deposit_revenue(CREATOR, pid, 400)

        early_total = early.claim("alice", 1)
        for market in (early, late):
            market.purchase("bob", 1, 60, payment=600)
            market.deposit_revenue(CREATOR, 1, 1_000)
        early_total += early.claim("alice", 1)
        late_total = late.claim("alice", 1)

        assert early_total == late_total == 800
        assert cash_of(early, "alice") == cash_of(late, "alice")


class TestSecondaryTransfers:

    def test_revenue_follows_shares_between_deposits(self):
        market = make_market()
        pid = market.create_project(CREATOR, "Wind", 10, 100, 1)
        market.purchase("alice", pid, 10, payment=1_000)

        market.deposit_revenue(CREATOR, pid, 100)          # alice: 100
        market.transfer_shares("alice", "bob", pid, 5)
        market.deposit_revenue(CREATOR, pid, 100)          # alice: 50, bob: 50
        market.transfer_shares("bob", "carol", pid, 5)
        market.deposit_revenue(CREATOR, pid, 100)          # alice: 50, carol: 50

        assert market.claim("alice", pid) == 200
        assert market.claim("bob", pid) == 50
        assert market.claim("carol", pid) == 50
        with pytest.raises(NothingToClaim):
            market.claim("bob", pid)
        assert check_invariants(market) == []

    def test_shares_bounce_back(self):
        market = make_market()
        pid = market.create_project(CREATOR, "Hydro", 4, 1, 1)
        market.purchase("alice", pid, 4, payment=4)
        market.transfer_shares("alice", "bob", pid, 4)
        market.transfer_shares("bob", "alice", pid, 4)
        market.deposit_revenue(CREATOR, pid, 40)
        assert market.claimable(pid, "alice") == 40
        assert market.claimable(pid, "bob") == 0


class TestPortfolio:

    def test_batch_claim_across_three_projects(self):
        market = make_market()
        pids = [
            market.create_project(CREATOR, name, total_supply=supply, price_wei=1, min_purchase=1)
            for name, supply in (("A", 10), ("B", 20), ("C", 30))
        ]
        for pid in pids:
            market.purchase("alice", pid, 5, payment=5)
            market.purchase("bob", pid, 5, payment=5)
        market.deposit_revenue(CREATOR, pids[0], 100)
        market.deposit_revenue(CREATOR, pids[2], 33)

        before = cash_of(market, "alice")
        total = market.claim_batch("alice", pids)
        assert total == 50 + 16
        assert cash_of(market, "alice") == before + total

        entries = {e.project_id: e for e in get_portfolio(market, "alice")}
        assert entries[pids[0]].total_claimed == 50
        assert entries[pids[1]].claimable == 0
        assert entries[pids[2]].total_claimed == 16
        assert check_invariants(market) == []


class TestWindDown:

    def test_everything_paid_out_leaves_only_dust(self):
        market = make_market()
        pid = market.create_project(CREATOR, "Thirds", 3, 7, 1)
        for holder in ("alice", "bob", "carol"):
            market.purchase(holder, pid, 1, payment=7)
        market.deposit_revenue(CREATOR, pid, 1_000)
        market.deposit_revenue(CREATOR, pid, 1_000)

        for holder in ("alice", "bob", "carol"):
            market.claim(holder, pid)
        market.withdraw_sales(CREATOR, pid, CREATOR, 21)

        dust = get_held_funds(market)
        assert dust == verify_reward_conservation(market, pid)['remainder']
        assert 0 <= dust <= 2 * (3 + 1)
        assert market.ledger.get_balance(VAULT_WALLET, market.currency) == dust

    def test_creator_handover_mid_life(self):
        market = make_market()
        pid = market.create_project(CREATOR, "Solar", 100, 10, 1)
        market.purchase("alice", pid, 50, payment=500)
        market.transfer_creator(CREATOR, pid, "carol")

        market.deposit_revenue("carol", pid, 500)
        market.withdraw_sales("carol", pid, "carol", 500)
        assert market.claim("alice", pid) == 500
        assert cash_of(market, "carol") == STARTING_CASH
        assert cash_of(market, CREATOR) == STARTING_CASH
        assert check_invariants(market) == []

    def test_deactivated_project_still_pays_out(self):
        market = make_market()
        pid = market.create_project(CREATOR, "Solar", 100, 10, 1)
        market.purchase("alice", pid, 10, payment=100)
        market.deposit_revenue(CREATOR, pid, 70)
        market.set_active(CREATOR, pid, False)

        assert market.claim("alice", pid) == 70
        market.withdraw_sales(CREATOR, pid, CREATOR, 100)
        assert get_held_funds(market) == 0
        assert get_project_summary(market, pid).reward_per_share_stored == 7 * PRECISION
