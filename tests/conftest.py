"""
conftest.py - Shared pytest fixtures for revshare tests

Provides common fixtures used across unit, conformance and functional tests:
- A quiet marketplace with funded accounts
- A single open project and a fully subscribed 40/60 project
- A marketplace whose cash unit can refuse payouts
"""

import pytest

from tests.market_helpers import CREATOR, make_market


@pytest.fixture
def market():
    """Quiet marketplace with funded accounts and no projects."""
    return make_market()


@pytest.fixture
def project(market):
    """Open project 1: supply 100, price 10 wei, minimum purchase 1."""
    return market.create_project(CREATOR, "Solar Farm", total_supply=100, price_wei=10, min_purchase=1)


@pytest.fixture
def split_project(market, project):
    """Project 1 fully sold: alice holds 40 shares, bob holds 60."""
    market.purchase("alice", project, 40, payment=400)
    market.purchase("bob", project, 60, payment=600)
    return project


@pytest.fixture
def frozen():
    """Mutable set of accounts the cash unit refuses to pay."""
    return set()


@pytest.fixture
def guarded_market(frozen):
    """Funded marketplace whose cash unit refuses payments to accounts in `frozen`."""
    return make_market(frozen=frozen)
