from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

ACTOR_ROLES = ("patient", "doctor")


class CamelModel(BaseModel):
    """Wire models use camelCase keys; Python code uses snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


@dataclass(frozen=True)
class Actor:
    id: str
    role: str

    @property
    def is_doctor(self) -> bool:
        return self.role == "doctor"

    @property
    def is_patient(self) -> bool:
        return self.role == "patient"


def success(data: Any, message: str = "Success", status_code: int = 200) -> dict:
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True, mode="json")
    elif isinstance(data, list):
        data = [item.model_dump(by_alias=True, mode="json") if isinstance(item, BaseModel) else item for item in data]
    return {"statusCode": status_code, "message": message, "data": data}
