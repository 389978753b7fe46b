"""
SQLAlchemy ORM models (PostgreSQL).

Tables
------
* ``rides`` -- the ride ledger: one row per ride, never deleted.

Indexes
-------
* **B-Tree** on ``status`` (pending listing), ``rider_id`` / ``driver_id``
  (history) and a unique index on ``request_id`` (redelivery dedupe).
"""

from sqlalchemy import Column, DateTime, Enum, Index, Integer, String

from .database import Base
from ridedispatch.domain.enums import RideStatus


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(String(64), unique=True, nullable=True)
    rider_id = Column(String(64), nullable=False)
    driver_id = Column(String(64), nullable=True)
    pickup = Column(String(255), nullable=False)
    dropoff = Column(String(255), nullable=False)

    status = Column(
        Enum(
            RideStatus,
            name="ride_status",
            native_enum=False,
            length=20,
            values_callable=_enum_values,
        ),
        default=RideStatus.REQUESTED,
        nullable=False,
    )

    requested_at = Column(DateTime(timezone=True), nullable=False)
    assigned_at = Column(DateTime(timezone=True), nullable=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_rides_status", "status"),
        Index("idx_rides_rider", "rider_id"),
        Index("idx_rides_driver", "driver_id"),
    )
