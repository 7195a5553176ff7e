"""Base models shared by the domain and wire layers.

Domain records (:class:`~pysmarthome.models.device.Device`, homes, rooms,
commands, updates) inherit from :class:`SmartHomeModel`: frozen, strict
about unknown fields, and mutated only through ``model_copy(update=...)``.

Wire payloads inherit from :class:`WireModel` which provides:

* ``alias_generator=to_camel`` so snake_case fields serialise to the
  camelCase keys devices expect (``is_on`` ↔ ``isOn``).
* ``extra="ignore"`` so unknown fields sent by firmware are tolerated.
"""

from __future__ import annotations

import uuid
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from pysmarthome._constants import MULTI_LEVEL_WILDCARD, SINGLE_LEVEL_WILDCARD, TOPIC_SEPARATOR

_FORBIDDEN_ID_CHARS = (TOPIC_SEPARATOR, SINGLE_LEVEL_WILDCARD, MULTI_LEVEL_WILDCARD)


def new_identifier() -> str:
    """Return a fresh opaque identifier (uuid4 text)."""
    return str(uuid.uuid4())


def validate_identifier(value: str) -> str:
    """Reject identifiers that cannot be used as a single topic segment."""
    if not value.strip():
        raise ValueError("identifier must be non-empty")
    if any(ch in value for ch in _FORBIDDEN_ID_CHARS):
        raise ValueError(f"identifier must not contain any of {_FORBIDDEN_ID_CHARS}: {value!r}")
    return value


Identifier = Annotated[str, AfterValidator(validate_identifier)]
"""Annotated type for home/room/device identifiers (one topic segment)."""


class SmartHomeModel(BaseModel):
    """Base for immutable domain records."""

    model_config = ConfigDict(frozen=True, extra="forbid")


class WireModel(BaseModel):
    """Base for MQTT JSON payloads."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )
