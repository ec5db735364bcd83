"""Small conversions and helpers shared across the sensor."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum

from .types import Rect

_MONTHS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

_ISO_PATTERN = re.compile(
    r"(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})(?:[.,](\d+))?"
)


def to_bool(text: str) -> bool:
    """Interpret 'true' (any case) as True; anything else is False."""
    return text.strip().lower() == "true"


def bool_to_string(value: bool) -> str:
    """Render a boolean as 'true' or 'false'."""
    return "true" if value else "false"


def cvt_to_fourcc(value: float) -> str:
    """Convert a numeric FourCC code into its four characters."""
    code = int(value)
    return "".join(chr((code >> shift) & 0xFF) for shift in (0, 8, 16, 24))


def compute_image_ratio(width: int, height: int) -> float:
    """Ratio of the longer side to the shorter one; 0.0 for invalid sizes."""
    if width <= 0 or height <= 0:
        return 0.0
    if width < height:
        return height / width
    return width / height


def to_iso_string(moment: datetime) -> str:
    """Format a moment as YYYYMMDDTHHMMSS, with ',ffffff' when fractional."""
    text = (
        f"{moment.year:04d}{moment.month:02d}{moment.day:02d}"
        f"T{moment.hour:02d}{moment.minute:02d}{moment.second:02d}"
    )
    if moment.microsecond:
        text += f",{moment.microsecond:06d}"
    return text


def from_iso_string(text: str) -> datetime:
    """Parse the format produced by to_iso_string."""
    match = _ISO_PATTERN.fullmatch(text.strip())
    if match is None:
        raise ValueError(f"not an ISO time string: {text!r}")
    year, month, day, hour, minute, second = (int(g) for g in match.groups()[:6])
    fraction = match.group(7) or ""
    microsecond = int(fraction[:6].ljust(6, "0")) if fraction else 0
    return datetime(year, month, day, hour, minute, second, microsecond)


def to_simple_string(moment: datetime) -> str:
    """Format a moment as 'YYYY-Mon-DD HH:MM:SS', with fractional seconds if any."""
    text = (
        f"{moment.year:04d}-{_MONTHS[moment.month - 1]}-{moment.day:02d} "
        f"{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
    )
    if moment.microsecond:
        text += f".{moment.microsecond:06d}"
    return text


class MouseEvent(IntEnum):
    """Mouse event codes delivered by an image window."""

    MOUSEMOVE = 0
    LBUTTONDOWN = 1
    LBUTTONUP = 4


@dataclass
class RoiSelection:
    """Tracks a rectangle being drawn with the mouse on a preview window."""

    x0: int = 0
    y0: int = 0
    x1: int = 0
    y1: int = 0
    drawing: bool = False
    roi_set: bool = False

    def handle(self, event: int, x: int, y: int):
        """Feed one mouse event.

        Returns the corners ((x0, y0), (x, y)) of the rectangle to preview
        while the mouse moves during drawing, otherwise None.
        """
        if event == MouseEvent.LBUTTONDOWN:
            if not self.drawing:
                self.x0, self.y0 = x, y
                self.drawing = True
            else:
                self._finish(x, y)

        if event == MouseEvent.MOUSEMOVE and self.drawing:
            return (self.x0, self.y0), (x, y)

        if event == MouseEvent.LBUTTONUP and self.drawing:
            self._finish(x, y)
        return None

    def _finish(self, x: int, y: int) -> None:
        self.x1, self.y1 = x, y
        self.drawing = False
        self.roi_set = True

    @property
    def rect(self) -> Rect:
        """The selected rectangle, normalised to a positive size."""
        left, right = sorted((self.x0, self.x1))
        top, bottom = sorted((self.y0, self.y1))
        return Rect(left, top, right - left, bottom - top)