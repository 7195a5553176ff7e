"""Transient inbound events parsed from device messages."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import Field, field_validator

from pysmarthome.models._base import Identifier, SmartHomeModel
from pysmarthome.models.device import DeviceState


class StateUpdate(SmartHomeModel):
    """A device reported its state on ``.../state``."""

    device_id: Identifier
    state: DeviceState
    message: str | None = Field(default=None, description="Optional response text from the hardware")


class StatusUpdate(SmartHomeModel):
    """A device reported online/offline on ``.../status``."""

    device_id: Identifier
    online: bool
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("observed_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
