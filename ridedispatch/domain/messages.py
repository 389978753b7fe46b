"""Dispatch queue message schemas.

Payloads travel as camelCase JSON; the models accept either spelling.
"""

from __future__ import annotations

from typing import Any, ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from .enums import Topic
from .errors import ValidationError


class QueueMessage(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    topic: ClassVar[Topic]

    @classmethod
    def parse(cls, payload: dict[str, Any]):
        """Validate a consumed payload; malformed input is a terminal error."""
        try:
            return cls.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationError(f"Malformed {cls.__name__} message: {exc}") from exc

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class RideRequested(QueueMessage):
    topic: ClassVar[Topic] = Topic.RIDE_REQUESTED

    request_id: Optional[str] = None
    rider_id: str = Field(..., min_length=1)
    pickup: str = Field(..., min_length=1)
    dropoff: str = Field(..., min_length=1)


class DriverAssigned(QueueMessage):
    topic: ClassVar[Topic] = Topic.DRIVER_ASSIGNED

    ride_id: int
    rider_id: str
    driver_id: str = Field(..., min_length=1)
    pickup: str
    dropoff: str


class RideCancelled(QueueMessage):
    topic: ClassVar[Topic] = Topic.RIDE_CANCELLED

    ride_id: int
    driver_id: Optional[str] = None
    rider_id: str
