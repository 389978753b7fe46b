"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    REQUESTED = "requested"
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    RIDER_CANCELLED = "rider_cancelled"
    DRIVER_CANCELLED = "driver_cancelled"


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.REQUESTED: {RideStatus.ASSIGNED, RideStatus.RIDER_CANCELLED},
    RideStatus.ASSIGNED: {
        RideStatus.ACCEPTED,
        RideStatus.RIDER_CANCELLED,
        RideStatus.DRIVER_CANCELLED,
    },
    RideStatus.ACCEPTED: {RideStatus.ONGOING, RideStatus.DRIVER_CANCELLED},
    RideStatus.ONGOING: {RideStatus.COMPLETED},
    RideStatus.COMPLETED: set(),
    RideStatus.RIDER_CANCELLED: set(),
    RideStatus.DRIVER_CANCELLED: set(),
}

# Statuses in which a ride carries a driver_id
DRIVER_HELD_STATUSES = frozenset(
    {
        RideStatus.ASSIGNED,
        RideStatus.ACCEPTED,
        RideStatus.ONGOING,
        RideStatus.COMPLETED,
    }
)

# Statuses worth showing on a driver's dashboard
LIVE_STATUSES = frozenset(
    {RideStatus.ASSIGNED, RideStatus.ACCEPTED, RideStatus.ONGOING}
)

CANCELLED_STATUSES = frozenset(
    {RideStatus.RIDER_CANCELLED, RideStatus.DRIVER_CANCELLED}
)

# Entity attribute stamped when a status is entered
STATUS_TIMESTAMPS: dict[RideStatus, str] = {
    RideStatus.REQUESTED: "requested_at",
    RideStatus.ASSIGNED: "assigned_at",
    RideStatus.ACCEPTED: "accepted_at",
    RideStatus.ONGOING: "started_at",
    RideStatus.COMPLETED: "completed_at",
    RideStatus.RIDER_CANCELLED: "cancelled_at",
    RideStatus.DRIVER_CANCELLED: "cancelled_at",
}


class SelectionPolicyName(str, enum.Enum):
    DIRECT_PICK = "direct_pick"
    BROADCAST = "broadcast"


class Topic(str, enum.Enum):
    """Dispatch queue topics."""

    RIDE_REQUESTED = "ride-requested"
    DRIVER_ASSIGNED = "driver-assigned"
    RIDE_CANCELLED = "ride-cancelled"
