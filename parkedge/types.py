"""Shared enumerations, records and constants of the parking sensor."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

SYSTEM_FOLDER_CORE = "./core/"
SYSTEM_FOLDER_LOG = "./log/"
SYSTEM_FILE_PARKINGSPOTS = "parkingspots.json"


class ParkingSpotStatus(IntEnum):
    """Status code of a parking spot."""

    EMPTY = 0
    OCCUPIED = 1
    UNAVAILABLE = 2
    USER = 3


class ParkingSpotPolicy(IntEnum):
    """Policy that applies to a parking spot."""

    FORBIDDEN = 0
    TIMED = 1
    UNLIMITED = 2
    ACCESSIBLE = 3
    DISABLED = 4


class HttpRequestType(IntEnum):
    """Kinds of request a sensor sends to the server."""

    SYNC_GENERAL = 0
    UPDATE_ENTER = 1
    UPDATE_EXIT = 2
    UPDATE_OVER = 3


_CLASSIFIER_LABELS = ("cascade", "cnn")


class ClassifierType(IntEnum):
    """Type of the vehicle detection engine."""

    CASCADE = 0
    CNN = 1

    @property
    def label(self) -> str:
        """The lower-case name used in configuration files."""
        return _CLASSIFIER_LABELS[self.value]

    @classmethod
    def from_label(cls, label: str) -> "ClassifierType":
        """Look up a classifier type by its configuration label."""
        for member in cls:
            if member.label == label:
                return member
        raise ValueError(f"unknown classifier type: {label!r}")


@dataclass
class ServerDestination:
    """Where on the server one request type is sent, and with which method."""

    request_type: int
    target_path: str
    http_method: str


@dataclass
class ParkingParams:
    """Tuning parameters of the parking sensor."""

    sensitivity: int
    enter_count: int
    exit_count: int


@dataclass(frozen=True)
class Rect:
    """An axis-aligned rectangle in pixel coordinates."""

    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0

    def is_empty(self) -> bool:
        """True when the rectangle has no area."""
        return self.width <= 0 or self.height <= 0

    def fits_within(self, width: int, height: int) -> bool:
        """True when the rectangle's size is no larger than width x height."""
        return self.width <= width and self.height <= height