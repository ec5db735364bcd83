"""A single parking spot: occupancy tracking, parking timer and server updates."""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

import numpy as np

from .frame_buffer import FrameBuffer
from .messages import ParkingUpdateMessage
from .types import HttpRequestType, ParkingSpotPolicy, Rect
from .utils import to_iso_string, to_simple_string

logger = logging.getLogger(__name__)

# Weights that turn a calendar moment into a comparable minute count.
_YEAR_WEIGHT = 15768000
_MONTH_WEIGHT = 43200
_DAY_WEIGHT = 1440
_HOUR_WEIGHT = 60
FALLBACK_RESERVATION_MINUTES = 10


def reservation_minutes(entry_time: datetime, end_date, end_time) -> int:
    """Minutes from entry until the reservation ends.

    ``end_date`` is YYYYMMDD and ``end_time`` is HHMM, as integers or
    digit strings. When the reservation has already ended, the fallback
    of ten minutes is returned.
    """
    end_date = int(end_date)
    end_time = int(end_time)
    entered = (
        entry_time.year * _YEAR_WEIGHT
        + entry_time.month * _MONTH_WEIGHT
        + entry_time.day * _DAY_WEIGHT
        + entry_time.hour * _HOUR_WEIGHT
        + entry_time.minute
    )
    ends = (
        end_date // 10000 * _YEAR_WEIGHT
        + (end_date % 10000) // 100 * _MONTH_WEIGHT
        + (end_date % 100) * _DAY_WEIGHT
        + end_time // 100 * _HOUR_WEIGHT
        + end_time % 100
    )
    remaining = ends - entered
    return remaining if remaining > 0 else FALLBACK_RESERVATION_MINUTES


@dataclass
class Reservation:
    """One reservation of a parking place for a vehicle."""

    sequence: int
    plate: str
    start_date: int
    start_time: int
    end_date: int
    end_time: int
    used: bool = False


class ReservationStore:
    """Reservations of end users, looked up by plate number."""

    def __init__(self, reservations: Iterable[Reservation] = ()) -> None:
        self._reservations = list(reservations)
        self._lock = threading.Lock()

    def add(self, reservation: Reservation) -> None:
        """Register a reservation."""
        with self._lock:
            self._reservations.append(reservation)

    def __iter__(self):
        with self._lock:
            return iter(list(self._reservations))

    def has_reservation(self, plate: str) -> bool:
        """True when any reservation, used or not, exists for the plate."""
        with self._lock:
            return any(r.plate == plate for r in self._reservations)

    def claim(self, plate: str) -> Reservation:
        """Mark the earliest unused reservation of the plate as used and return it."""
        with self._lock:
            open_ones = [r for r in self._reservations if r.plate == plate and not r.used]
            if not open_ones:
                raise LookupError(f"no unused reservation for plate {plate!r}")
            reservation = min(open_ones, key=lambda r: (r.start_date, r.start_time))
            reservation.used = True
            logger.info("Reservation %d claimed", reservation.sequence)
            return reservation


class ParkingSpot:
    """State of one parking spot and its overstay timer.

    Status changes are posted as ParkingUpdateMessage objects to
    ``message_queue``. The occupancy thresholds are shared by all spots.
    """

    positive_threshold = 1
    negative_threshold = -1

    def __init__(self, spot_id: int, name: str, time_limit, roi: Rect, policy,
                 message_queue: Optional[Any] = None,
                 frame_buffer: Optional[FrameBuffer] = None,
                 reservations: Optional[ReservationStore] = None) -> None:
        self._id = spot_id
        self._name = name
        self._time_limit = time_limit
        self._roi = roi
        self._policy = ParkingSpotPolicy(policy)
        self.message_queue = message_queue if message_queue is not None else queue.Queue()
        self.frame_buffer = frame_buffer
        self.reservations = reservations
        self.plate_number = ""
        self.car_brand = ""
        self.localizer_roi = Rect()
        self.vehicle_roi = Rect()
        self._update_enabled = True
        self._occupied = False
        self._overstayed = False
        self._counter = 0
        self._entry_time: Optional[datetime] = None
        self._lock = threading.RLock()
        self._timer: Optional[threading.Timer] = None
        self._generation = 0

    def __enter__(self) -> "ParkingSpot":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def id(self) -> int:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def time_limit(self):
        return self._time_limit

    @property
    def roi(self) -> Rect:
        return self._roi

    @property
    def policy(self) -> ParkingSpotPolicy:
        return self._policy

    @property
    def update_enabled(self) -> bool:
        return self._update_enabled

    @property
    def entry_time(self) -> Optional[datetime]:
        return self._entry_time

    @property
    def is_reservation_sensor(self) -> bool:
        """True when the spot checks reservations on entry."""
        return self.reservations is not None

    def is_occupied(self) -> bool:
        """True while a vehicle is in the spot."""
        return self._occupied

    def is_overstayed(self) -> bool:
        """True while the spot is occupied beyond its time limit."""
        return self._occupied and self._overstayed

    def enter(self, image, roi: Rect, entry_time: datetime, plate: str = "null") -> None:
        """Record a vehicle entering, post the event and start the timer."""
        image = np.asarray(image)
        if roi.fits_within(image.shape[0], image.shape[1]):
            crop = image[roi.y:roi.y + roi.height, roi.x:roi.x + roi.width]
        else:
            crop = image
        message = ParkingUpdateMessage(
            HttpRequestType.UPDATE_ENTER, self._id, image.copy(), entry_time, plate,
            crop_frame=crop.copy(),
        )
        with self._lock:
            reservation = None
            if self.is_reservation_sensor and self.reservations.has_reservation(plate):
                reservation = self.reservations.claim(plate)
            self._occupied = True
            self._entry_time = entry_time
            self.message_queue.put(message)
            if reservation is None:
                logger.info("normal user")
                self._start_timer(self._time_limit)
            else:
                minutes = reservation_minutes(
                    entry_time, reservation.end_date, reservation.end_time
                )
                logger.info("reservation user, timer of %d minutes", minutes)
                self._time_limit = minutes
                self._start_timer(minutes * 60)
        logger.info("Parking spot ID %s has been occupied at %s by %s",
                    self._id, to_iso_string(entry_time), plate)

    def overstayed(self, image, expiry_time: datetime) -> None:
        """Mark the spot overstayed and post the event."""
        frame = None if image is None else np.array(image, copy=True)
        message = ParkingUpdateMessage(
            HttpRequestType.UPDATE_OVER, self._id, frame, expiry_time
        )
        with self._lock:
            self._overstayed = True
            self.message_queue.put(message)

    def exit(self, image, exit_time: datetime, plate: str = "null") -> None:
        """Record the vehicle leaving, post the event and stop the timer."""
        message = ParkingUpdateMessage(
            HttpRequestType.UPDATE_EXIT, self._id, np.asarray(image).copy(), exit_time
        )
        with self._lock:
            self._occupied = False
            self._overstayed = False
            self.plate_number = ""
            self.localizer_roi = Rect()
            self.vehicle_roi = Rect()
            self.message_queue.put(message)
            self._stop_timer()
        logger.info("Parking spot ID %s has been released at %s",
                    self._id, to_simple_string(exit_time))

    def configure(self, name: str, time_limit, roi: Rect, policy) -> bool:
        """Change the spot's attributes.

        Refused, returning False, while a vehicle occupies the spot and its
        timer is still running.
        """
        with self._lock:
            if self._occupied and not self._overstayed:
                logger.warning(
                    "Failed to update parking spot id %s. To update a parking spot, "
                    "parking timer must be disabled.", self._id,
                )
                return False
            self._name = name
            self._time_limit = time_limit
            self._roi = roi
            self._policy = ParkingSpotPolicy(policy)
            return True

    def observe(self, occupied: bool) -> bool:
        """Feed one detection result; True when the occupancy status changed."""
        positive = type(self).positive_threshold
        negative = type(self).negative_threshold
        updated = False
        with self._lock:
            if occupied:
                if self._counter < positive:
                    self._counter += 1
                elif self._counter - positive < positive:
                    if not self._occupied:
                        self._occupied = True
                        updated = True
                    self._counter += 1
            else:
                if self._counter > negative:
                    self._counter -= 1
                elif self._counter - negative > negative:
                    if self._occupied:
                        self._occupied = False
                        updated = True
                    self._counter -= 1
        return updated

    def reset(self) -> None:
        """Stop the timer and clear the parking status."""
        with self._lock:
            self._stop_timer()
            self._occupied = False
            self._overstayed = False
            self._update_enabled = True
            self._counter = 0

    def close(self) -> None:
        """Stop the timer for good."""
        with self._lock:
            self._stop_timer()
        logger.debug("Release parking spot %s", self._id)

    @classmethod
    def set_positive_threshold(cls, value: int) -> None:
        """Set the frame count needed to consider a spot occupied."""
        ParkingSpot.positive_threshold = value

    @classmethod
    def set_negative_threshold(cls, value: int) -> None:
        """Set the (negative) frame count needed to consider a spot empty."""
        ParkingSpot.negative_threshold = value

    def _start_timer(self, delay_seconds) -> None:
        self._stop_timer()
        generation = self._generation
        timer = threading.Timer(delay_seconds, self._notify_expiration, args=(generation,))
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _stop_timer(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _notify_expiration(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or not self._occupied:
                return
            self._timer = None
            moment = self._entry_time + timedelta(seconds=self._time_limit)
            frame = self.frame_buffer.read_at(moment) if self.frame_buffer else None
            logger.info("Parking spot ID %s has expired at %s", self._id, moment)
            self.overstayed(frame, moment)