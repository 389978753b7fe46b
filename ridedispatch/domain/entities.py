"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Ride``: enforces valid lifecycle transitions
  (requested -> assigned -> accepted -> ongoing -> completed, with
  rider/driver cancellation escapes) and keeps ``driver_id`` and the
  timestamps consistent with the status.
- Driver actions (``assign``, ``accept``, ``start``, ``complete``,
  ``cancel_by_rider``, ``cancel_by_driver``) are guards over
  ``transition_to``.  They are pure: the ledger persists whatever they change
  with a compare-and-set, so every guard is evaluated against the state the
  write is conditioned on.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime, timezone
from typing import Any, Optional

from .enums import (
    CANCELLED_STATUSES,
    DRIVER_HELD_STATUSES,
    LIVE_STATUSES,
    RIDE_TRANSITIONS,
    STATUS_TIMESTAMPS,
    RideStatus,
)
from .errors import (
    InvalidTransition,
    NotRideDriver,
    RideAlreadyTaken,
    RideNoLongerAvailable,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _naive_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; compare everything as naive UTC
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


@dataclass
class Ride:
    id: Optional[int] = None
    rider_id: str = ""
    pickup: str = ""
    dropoff: str = ""
    driver_id: Optional[str] = None
    status: RideStatus = RideStatus.REQUESTED
    request_id: Optional[str] = None
    requested_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: Any) -> "Ride":
        """Build an entity from any object exposing the ride attributes."""
        values = {f.name: getattr(record, f.name) for f in fields(cls)}
        values["status"] = RideStatus(values["status"])
        return cls(**values)

    def changes_since(self, before: "Ride") -> dict[str, Any]:
        """Attributes whose value differs from *before*."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) != getattr(before, f.name)
        }

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    # ── State machine ────────────────────────────────────────────────

    def transition_to(
        self,
        new_status: RideStatus,
        *,
        at: Optional[datetime] = None,
        driver_id: Optional[str] = None,
    ) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        allowed = RIDE_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidTransition(
                f"Cannot transition ride {self.id} from {self.status.value} "
                f"to {new_status.value}"
            )

        if new_status == RideStatus.ASSIGNED:
            if not driver_id:
                raise InvalidTransition("Assigning a ride requires a driver")
            self.driver_id = driver_id
        elif new_status in CANCELLED_STATUSES:
            self.driver_id = None
        elif new_status in DRIVER_HELD_STATUSES and self.driver_id is None:
            raise InvalidTransition(
                f"Ride {self.id} has no driver; cannot enter {new_status.value}"
            )

        self._stamp(new_status, at or utcnow())
        self.status = new_status

    def _stamp(self, status: RideStatus, at: datetime) -> None:
        attr = STATUS_TIMESTAMPS[status]
        if getattr(self, attr) is not None:
            raise InvalidTransition(f"{attr} already recorded for ride {self.id}")
        # Never earlier than what is already on record (clock skew between
        # replicas must not break ordering).
        recorded = [
            getattr(self, name)
            for name in STATUS_TIMESTAMPS.values()
            if getattr(self, name) is not None
        ]
        if recorded:
            latest = max(recorded, key=_naive_utc)
            if _naive_utc(at) < _naive_utc(latest):
                at = latest
        setattr(self, attr, at)

    # ── Guards ───────────────────────────────────────────────────────

    def _require_driver(self, driver_id: str) -> None:
        if self.driver_id != driver_id:
            raise NotRideDriver(f"Ride {self.id} is not assigned to driver {driver_id}")

    def assign(self, driver_id: str, at: Optional[datetime] = None) -> None:
        """Direct pick: hand a ``requested`` ride to one driver."""
        if self.status == RideStatus.ASSIGNED and self.driver_id == driver_id:
            return
        self.transition_to(RideStatus.ASSIGNED, at=at, driver_id=driver_id)

    def accept(self, driver_id: str, at: Optional[datetime] = None) -> None:
        """Claim an open ride or confirm a direct-pick assignment."""
        if self.status in CANCELLED_STATUSES:
            raise RideNoLongerAvailable(f"Ride {self.id} was cancelled")
        if self.driver_id is not None and self.driver_id != driver_id:
            raise RideAlreadyTaken(f"Ride {self.id} is held by another driver")

        at = at or utcnow()
        if self.status == RideStatus.REQUESTED:
            self.transition_to(RideStatus.ASSIGNED, at=at, driver_id=driver_id)
            self.transition_to(RideStatus.ACCEPTED, at=at)
        elif self.status == RideStatus.ASSIGNED:
            self.transition_to(RideStatus.ACCEPTED, at=at)
        elif self.status != RideStatus.ACCEPTED:
            raise InvalidTransition(
                f"Ride {self.id} is {self.status.value}; cannot accept"
            )

    def start(self, driver_id: str, at: Optional[datetime] = None) -> None:
        if self.status in CANCELLED_STATUSES:
            raise RideNoLongerAvailable(f"Ride {self.id} was cancelled")
        self._require_driver(driver_id)

        at = at or utcnow()
        if self.status == RideStatus.ASSIGNED:
            # Starting implies acceptance
            self.transition_to(RideStatus.ACCEPTED, at=at)
        if self.status == RideStatus.ACCEPTED:
            self.transition_to(RideStatus.ONGOING, at=at)
        elif self.status != RideStatus.ONGOING:
            raise InvalidTransition(
                f"Ride {self.id} is {self.status.value}; cannot start"
            )

    def complete(self, driver_id: str, at: Optional[datetime] = None) -> None:
        if self.status in CANCELLED_STATUSES:
            raise RideNoLongerAvailable(f"Ride {self.id} was cancelled")
        self._require_driver(driver_id)
        if self.status == RideStatus.COMPLETED:
            return
        self.transition_to(RideStatus.COMPLETED, at=at)

    def cancel_by_rider(self, at: Optional[datetime] = None) -> None:
        if self.status == RideStatus.RIDER_CANCELLED:
            return
        self.transition_to(RideStatus.RIDER_CANCELLED, at=at)

    def cancel_by_driver(self, driver_id: str, at: Optional[datetime] = None) -> None:
        """Driver gives the ride up.

        Cancelling nulls ``driver_id``, so a repeated call cannot be traced
        back to the driver who cancelled; it is a no-op for any caller.
        """
        if self.status == RideStatus.DRIVER_CANCELLED:
            return
        if self.status in CANCELLED_STATUSES:
            raise RideNoLongerAvailable(f"Ride {self.id} was cancelled")
        self._require_driver(driver_id)
        self.transition_to(RideStatus.DRIVER_CANCELLED, at=at)


@dataclass(frozen=True)
class AssignmentSnapshot:
    """Driver-facing view of the ride currently offered to / held by a driver."""

    ride_id: int
    rider_id: str
    driver_id: str
    pickup: str
    dropoff: str
    status: RideStatus
    requested_at: Optional[str] = None

    @classmethod
    def of(cls, ride: Ride) -> "AssignmentSnapshot":
        if ride.id is None or ride.driver_id is None:
            raise ValueError("Only a persisted ride held by a driver has a snapshot")
        return cls(
            ride_id=ride.id,
            rider_id=ride.rider_id,
            driver_id=ride.driver_id,
            pickup=ride.pickup,
            dropoff=ride.dropoff,
            status=ride.status,
            requested_at=ride.requested_at.isoformat() if ride.requested_at else None,
        )

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "rideId": self.ride_id,
            "riderId": self.rider_id,
            "driverId": self.driver_id,
            "pickup": self.pickup,
            "dropoff": self.dropoff,
            "status": self.status.value,
            "requestedAt": self.requested_at,
        }

    @classmethod
    def from_json_dict(cls, data: dict[str, Any]) -> "AssignmentSnapshot":
        return cls(
            ride_id=int(data["rideId"]),
            rider_id=data["riderId"],
            driver_id=data["driverId"],
            pickup=data["pickup"],
            dropoff=data["dropoff"],
            status=RideStatus(data.get("status") or RideStatus.ASSIGNED.value),
            requested_at=data.get("requestedAt"),
        )
