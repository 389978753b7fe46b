"""
Driver Selection Policies  (Strategy Pattern)
=============================================

Every policy implements ``select_and_assign(ride, presence) -> outcome``.
The policy only *decides*; the dispatch coordinator commits the decision to
the ledger and fans out the side effects.

* **Direct pick**   -- draw one driver uniformly at random from the presence
  snapshot.  Nobody online: the ride stays ``requested`` and is posted to the
  pending board so a driver's own pending poll can claim it.
* **Broadcast**     -- pick nobody; post the ride to the pending board and let
  the first successful ``accept`` win the race.

Complexity: O(1) per ride (``SRANDMEMBER``).
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Protocol

from .entities import Ride
from .enums import SelectionPolicyName


class PresenceSnapshot(Protocol):
    async def random_driver(self) -> Optional[str]: ...


class SelectionKind(str, enum.Enum):
    ASSIGN = "assign"
    BROADCAST = "broadcast"
    UNMATCHED = "unmatched"


@dataclass(frozen=True)
class SelectionOutcome:
    kind: SelectionKind
    driver_id: Optional[str] = None

    @property
    def posts_to_board(self) -> bool:
        return self.kind in (SelectionKind.BROADCAST, SelectionKind.UNMATCHED)


# ── Strategy hierarchy ────────────────────────────────────────────────


class SelectionPolicy(ABC):
    name: SelectionPolicyName

    @abstractmethod
    async def select_and_assign(
        self, ride: Ride, presence: PresenceSnapshot
    ) -> SelectionOutcome: ...


class DirectPickPolicy(SelectionPolicy):
    name = SelectionPolicyName.DIRECT_PICK

    async def select_and_assign(
        self, ride: Ride, presence: PresenceSnapshot
    ) -> SelectionOutcome:
        driver_id = await presence.random_driver()
        if not driver_id:
            return SelectionOutcome(SelectionKind.UNMATCHED)
        return SelectionOutcome(SelectionKind.ASSIGN, driver_id=driver_id)


class BroadcastPolicy(SelectionPolicy):
    name = SelectionPolicyName.BROADCAST

    async def select_and_assign(
        self, ride: Ride, presence: PresenceSnapshot
    ) -> SelectionOutcome:
        return SelectionOutcome(SelectionKind.BROADCAST)


_POLICIES: dict[SelectionPolicyName, type[SelectionPolicy]] = {
    SelectionPolicyName.DIRECT_PICK: DirectPickPolicy,
    SelectionPolicyName.BROADCAST: BroadcastPolicy,
}


def build_policy(name: str | SelectionPolicyName) -> SelectionPolicy:
    """Instantiate the policy configured by ``SELECTION_POLICY``."""
    try:
        return _POLICIES[SelectionPolicyName(name)]()
    except ValueError:
        raise ValueError(f"Unknown selection policy: {name!r}") from None
