"""Currently selected member, persisted across requests.

The selection lives in any mutable key/value store. The web layer hands in
the Flask session (a signed client-side cookie), tests hand in a plain dict.
A selection expires ``lifetime`` after the member was chosen; ``None``
keeps it until another member is picked.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Callable, MutableMapping

SELECTED_MEMBER_ID = "memberId"
SELECTED_MEMBER_NAME = "fullName"
SELECTED_AT = "memberSelectedAt"


class MissingSelectionError(RuntimeError):
    """Raised when a member is required but none has been selected."""


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class MemberSelection:
    """Per-request view over the persisted member selection."""

    def __init__(
        self,
        store: MutableMapping[str, Any],
        *,
        lifetime: dt.timedelta | None = None,
        clock: Callable[[], dt.datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.lifetime = lifetime
        self._clock = clock

    def _expired(self) -> bool:
        if self.lifetime is None:
            return False
        selected_at = self.store.get(SELECTED_AT)
        if not selected_at:
            return False
        return self._clock() - dt.datetime.fromisoformat(selected_at) > self.lifetime

    @property
    def member_id(self) -> int | None:
        if self._expired():
            self.clear()
            return None
        value = self.store.get(SELECTED_MEMBER_ID)
        return int(value) if value is not None else None

    @property
    def display_name(self) -> str | None:
        if self.member_id is None:
            return None
        return self.store.get(SELECTED_MEMBER_NAME)

    def resolve_member(self, requested_member_id: int | None) -> int:
        """Return the member to work with, persisting a newly requested one."""

        if requested_member_id is not None:
            member_id = int(requested_member_id)
            self.store[SELECTED_MEMBER_ID] = member_id
            self.store[SELECTED_AT] = self._clock().isoformat()
            return member_id
        member_id = self.member_id
        if member_id is None:
            raise MissingSelectionError("Please select a member to see their boats")
        return member_id

    def resolve_display_name(
        self,
        member_id: int,
        provided_name: str | None,
        lookup: Callable[[int], dict],
    ) -> str:
        """Return ``provided_name`` or the member's full name and persist it."""

        name = provided_name or lookup(member_id)["full_name"]
        self.store[SELECTED_MEMBER_NAME] = name
        return name

    def clear(self) -> None:
        for key in (SELECTED_MEMBER_ID, SELECTED_MEMBER_NAME, SELECTED_AT):
            self.store.pop(key, None)


__all__ = ["MemberSelection", "MissingSelectionError"]
