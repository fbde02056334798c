from typing import Literal

from pydantic import Field

from careflow.schemas.common import CamelModel

Weekday = Literal["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


class AvailabilitySlot(CamelModel):
    day: Weekday
    is_available: bool = True
    start_time: str = "09:00"
    end_time: str = "17:00"


class UpdateScheduleRequest(CamelModel):
    available_slots: list[AvailabilitySlot] = Field(default_factory=list)
