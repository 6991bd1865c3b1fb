"""
Monotonicity Conformance Tests

INVARIANT: Some quantities never move backwards.

    ∀ project P:  reward_per_share_stored, total_revenue, minted, total_energy_kwh
    ∀ (P, holder): total_claimed, paid_per_share
    project ids are never reused; the next id only grows
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from revshare import InvalidSupply, get_project_summary, get_next_project_id
from tests.conformance.test_conservation import PROJECTS, build_market, apply, operation


def observe(market):
    projects = {}
    for pid in PROJECTS:
        s = get_project_summary(market, pid)
        projects[pid] = (s.reward_per_share_stored, s.total_revenue, s.minted, s.total_energy_kwh)
    checkpoints = {
        key: (cp.total_claimed, cp.paid_per_share)
        for key, cp in market.rewards.checkpoints.items()
    }
    return projects, checkpoints


class TestMonotonicityProperties:

    @given(st.lists(operation, min_size=1, max_size=40))
    @settings(max_examples=150, deadline=None)
    def test_counters_never_decrease(self, ops):
        market = build_market()
        projects, checkpoints = observe(market)
        for op in ops:
            apply(market, op)
            new_projects, new_checkpoints = observe(market)
            for pid, values in projects.items():
                assert all(new >= old for new, old in zip(new_projects[pid], values)), op
            for key, values in checkpoints.items():
                assert key in new_checkpoints
                assert all(new >= old for new, old in zip(new_checkpoints[key], values)), op
            projects, checkpoints = new_projects, new_checkpoints

    @given(st.lists(st.integers(-2, 5), max_size=12))
    @settings(max_examples=50, deadline=None)
    def test_project_ids_strictly_increase(self, supplies):
        market = build_market()
        seen = list(market.project_ids)
        for supply in supplies:
            expected = get_next_project_id(market)
            try:
                pid = market.create_project("creator", "P", supply, 1, 1)
            except InvalidSupply:
                assert get_next_project_id(market) == expected
                continue
            assert pid == expected
            assert pid > max(seen)
            seen.append(pid)
        assert market.project_ids == seen
