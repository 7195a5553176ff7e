"""Homes and rooms: the containers that address a device's topic."""

from __future__ import annotations

from pydantic import Field

from pysmarthome.models._base import Identifier, SmartHomeModel, new_identifier


class Home(SmartHomeModel):
    id: Identifier = Field(default_factory=new_identifier)
    name: str


class Room(SmartHomeModel):
    id: Identifier = Field(default_factory=new_identifier)
    name: str
    home_id: Identifier
