"""
events.py - Emitted records

Immutable records describing what an operation did, for observers outside
the core. The marketplace appends them to its event log as operations run and
delivers them to subscribers only once the operation has committed; a rolled
back operation emits nothing.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Union


@dataclass(frozen=True, slots=True)
class ProjectCreated:
    project_id: int
    creator: str
    name: str
    total_supply: int
    price_wei: int
    min_purchase: int


@dataclass(frozen=True, slots=True)
class SharesMinted:
    project_id: int
    buyer: str
    amount: int
    cost: int


@dataclass(frozen=True, slots=True)
class SharesTransferred:
    project_id: int
    sender: str
    recipient: str
    amount: int


@dataclass(frozen=True, slots=True)
class RevenueDeposited:
    """A deposit, with the accumulator value it produced."""
    project_id: int
    depositor: str
    amount: int
    reward_per_share: int


@dataclass(frozen=True, slots=True)
class RevenueClaimed:
    """A payout, with the holder's running lifetime total for the project."""
    project_id: int
    holder: str
    amount: int
    total_claimed: int


@dataclass(frozen=True, slots=True)
class SalesWithdrawn:
    project_id: int
    recipient: str
    amount: int


@dataclass(frozen=True, slots=True)
class EnergyUpdated:
    project_id: int
    energy_kwh: int
    total_energy_kwh: int


@dataclass(frozen=True, slots=True)
class StatusChanged:
    project_id: int
    active: bool


@dataclass(frozen=True, slots=True)
class CreatorTransferred:
    project_id: int
    previous_creator: str
    new_creator: str


Record = Union[
    ProjectCreated, SharesMinted, SharesTransferred, RevenueDeposited,
    RevenueClaimed, SalesWithdrawn, EnergyUpdated, StatusChanged, CreatorTransferred,
]

Subscriber = Callable[[Record], None]
