"""
access.py - Reference admin and pause collaborators

The core only asks two questions: "is this account the admin?" and "is the
system paused?". These small classes answer them; anything implementing the
Authority / PauseGate protocols from core.py can be used instead.
"""

from __future__ import annotations

from .core import Unauthorized, InvalidCreator


class SingleOwner:
    """One global admin account."""

    def __init__(self, owner: str):
        if not owner or not owner.strip():
            raise InvalidCreator("owner cannot be empty")
        self.owner = owner

    def is_owner(self, account: str) -> bool:
        return account == self.owner

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        if not self.is_owner(caller):
            raise Unauthorized(f"{caller} is not the owner")
        if not new_owner or not new_owner.strip():
            raise InvalidCreator("new owner cannot be empty")
        self.owner = new_owner


class PauseSwitch:
    """Global pause flag that only the admin may flip."""

    def __init__(self, authority, paused: bool = False):
        self.authority = authority
        self._paused = paused

    def is_paused(self) -> bool:
        return self._paused

    def pause(self, caller: str) -> None:
        if not self.authority.is_owner(caller):
            raise Unauthorized(f"{caller} cannot pause")
        self._paused = True

    def resume(self, caller: str) -> None:
        if not self.authority.is_owner(caller):
            raise Unauthorized(f"{caller} cannot resume")
        self._paused = False
