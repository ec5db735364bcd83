"""Messages the sensor sends to the parking server."""

from __future__ import annotations

import base64
import binascii
import io
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import numpy as np
from PIL import Image, UnidentifiedImageError

from .types import HttpRequestType
from .utils import from_iso_string, to_iso_string, to_simple_string


class MessageError(Exception):
    """Raised when a message cannot be saved, loaded or decoded."""


def _is_empty(image: Optional[np.ndarray]) -> bool:
    return image is None or np.asarray(image).size == 0


def encode_image(image: Optional[np.ndarray]) -> str:
    """Encode an image array as base64 PNG text; an empty image gives ''."""
    if _is_empty(image):
        return ""
    buffer = io.BytesIO()
    Image.fromarray(np.asarray(image)).save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


def decode_image(data: str) -> np.ndarray:
    """Decode base64 image text produced by encode_image into an array."""
    try:
        raw = base64.b64decode(data, validate=True)
        with Image.open(io.BytesIO(raw)) as picture:
            return np.asarray(picture).copy()
    except (binascii.Error, ValueError, UnidentifiedImageError, OSError) as error:
        raise MessageError(f"cannot decode image: {error}") from error


@dataclass
class ParkingUpdateMessage:
    """A vehicle entered, left or overstayed at a parking spot."""

    request_code: int
    spot_id: int
    frame: Optional[np.ndarray]
    event_time: datetime
    plate_number: str = "null"
    crop_frame: Optional[np.ndarray] = field(default=None, repr=False)

    def to_string(self) -> str:
        """A short human-readable description of the message."""
        return (
            f"{self.spot_id} with plate number {self.plate_number} "
            f"at {to_simple_string(self.event_time)} ({self.request_code})"
        )

    def to_dict(self) -> dict[str, Any]:
        """The JSON body sent to the server."""
        info: dict[str, Any] = {
            "messageType": 1,
            "httpRequest": int(self.request_code),
            "parkingSpotId": self.spot_id,
            "plateNumber": self.plate_number,
            "timeStamp": to_iso_string(self.event_time),
            "currentPicture": encode_image(self.frame),
        }
        if not _is_empty(self.crop_frame):
            info["croppedPicture"] = encode_image(self.crop_frame)
        return info

    def filename(self) -> str:
        """File name encoding time, request code, plate and spot id."""
        return (
            f"{to_iso_string(self.event_time)}_{int(self.request_code)}"
            f"_{self.plate_number}_{self.spot_id}.png"
        )

    def save(self, folder) -> Path:
        """Write the frame into folder under filename(); return the path."""
        directory = Path(folder)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise MessageError(f"cannot prepare folder {directory}: {error}") from error
        if _is_empty(self.frame):
            raise MessageError("cannot save a message without an image frame")
        path = directory / self.filename()
        try:
            Image.fromarray(np.asarray(self.frame)).save(path, format="PNG")
        except (OSError, ValueError, TypeError) as error:
            raise MessageError(f"cannot write image {path}: {error}") from error
        return path

    @classmethod
    def load(cls, path) -> "ParkingUpdateMessage":
        """Rebuild a message from a file written by save()."""
        path = Path(path)
        parts = path.stem.split("_")
        if len(parts) < 4:
            raise MessageError(f"invalid filename: {path}")
        try:
            with Image.open(path) as picture:
                frame = np.asarray(picture).copy()
        except (OSError, UnidentifiedImageError) as error:
            raise MessageError(f"failed to read image: {path}") from error
        if frame.size == 0:
            raise MessageError(f"failed to read image: {path}")
        try:
            event_time = from_iso_string(parts[0])
            request_code = int(parts[1])
            spot_id = int(parts[3])
        except ValueError as error:
            raise MessageError(f"invalid filename: {path}") from error
        return cls(request_code, spot_id, frame, event_time, parts[2])


@dataclass
class ServerSyncMessage:
    """Synchronisation of the frame size and parking spot layout."""

    image_size: tuple[int, int]
    event_time: datetime
    parking_spots: Any

    def to_string(self) -> str:
        """Description of the message; this kind carries none."""
        return ""

    def to_dict(self) -> dict[str, Any]:
        """The JSON body sent to the server."""
        stamp = to_iso_string(self.event_time)
        stamp = stamp[:8] + stamp[9:]
        width, height = self.image_size
        return {
            "httpRequest": int(HttpRequestType.SYNC_GENERAL),
            "messageType": 0,
            "timeStamp": stamp,
            "pictureWidth": width,
            "pictureHeight": height,
            "ROI": self.parking_spots,
        }