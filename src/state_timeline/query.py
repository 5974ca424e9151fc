from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Mapping

from metaspn_schemas.utils.time import ensure_utc, str_to_datetime
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

from state_timeline.errors import InvalidInputError

# Extended-format calendar date; bare digit strings such as epoch seconds do not match.
_ISO_DATE_PREFIX = re.compile(r"\d{4}-\d{2}-\d{2}")


class TimelineQuery(BaseModel):
    """Validated timeline request: entity id plus an ISO-8601 window with start before end."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    entity_id: str = Field(alias="vehicleId", min_length=1)
    start: datetime = Field(alias="startDate")
    end: datetime = Field(alias="endDate")

    @field_validator("entity_id")
    @classmethod
    def _strip_entity_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("vehicleId should not be empty.")
        return value

    @field_validator("start", "end", mode="before")
    @classmethod
    def _parse_iso8601(cls, value: Any, info: ValidationInfo) -> datetime:
        if isinstance(value, datetime):
            return ensure_utc(value)
        name = cls.model_fields[info.field_name].alias or info.field_name
        message = f"{name} must be a valid ISO 8601 date string (e.g., 2024-01-01T00:00:00Z)."
        if not isinstance(value, str) or not _ISO_DATE_PREFIX.match(value.strip()):
            raise ValueError(message)
        try:
            return str_to_datetime(value.strip())
        except ValueError:
            raise ValueError(message) from None

    @model_validator(mode="after")
    def _start_before_end(self) -> "TimelineQuery":
        if self.start >= self.end:
            raise ValueError("startDate must be a date that occurs before endDate.")
        return self

    @classmethod
    def parse(cls, data: Mapping[str, Any]) -> "TimelineQuery":
        """Validate raw request parameters, raising InvalidInputError on any violation."""
        try:
            return cls.model_validate(dict(data))
        except ValidationError as error:
            raise InvalidInputError(_format_errors(error)) from error


def _format_errors(error: ValidationError) -> str:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        message = item["msg"].removeprefix("Value error, ")
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages)
