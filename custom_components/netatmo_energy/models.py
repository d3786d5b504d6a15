"""Data models for Netatmo Energy integration."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class AuthFlowState(Enum):
    """States of the two-phase authorization flow."""

    IDLE = "idle"
    AWAITING_CALLBACK = "awaiting_callback"
    EXCHANGING = "exchanging"
    DONE = "done"
    FAILED = "failed"


class PropertyCapability(Enum):
    """What writing a device property does."""

    READ_ONLY = "read_only"
    WRITABLE_TARGET_TEMP = "writable_target_temp"
    WRITABLE_MODE = "writable_mode"


@dataclass(frozen=True)
class Credentials:
    """Client credentials registered with the provider."""

    client_id: str
    client_secret: str


@dataclass(frozen=True)
class TokenState:
    """Snapshot of the OAuth tokens held by the token store."""

    access_token: str = ""
    expires_at: datetime | None = None
    refresh_token: str = ""


@dataclass(frozen=True)
class Room:
    """A heating zone as listed by homesdata."""

    id: str
    name: str


@dataclass(frozen=True)
class Module:
    """A physical module as listed by homesdata."""

    id: str
    name: str
    type: str
    room_id: str | None


@dataclass(frozen=True)
class Home:
    """A home with its rooms and modules."""

    id: str
    name: str
    rooms: list[Room] = field(default_factory=list)
    modules: list[Module] = field(default_factory=list)


@dataclass(slots=True)
class RoomStatus:
    """Live state of a room as reported by homestatus."""

    id: str
    measured_temperature: float | None
    setpoint_temperature: float | None
    heating_power_request: int | None
    setpoint_mode: str | None


@dataclass(slots=True)
class ModuleStatus:
    """Live telemetry of a module as reported by homestatus."""

    id: str
    type: str
    battery_level: int | None
    rf_strength: int | None


@dataclass(slots=True)
class HomeStatus:
    """Live status snapshot of one home."""

    id: str
    rooms: list[RoomStatus]
    modules: list[ModuleStatus]
