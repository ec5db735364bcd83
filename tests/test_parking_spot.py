import queue
from datetime import datetime, timedelta

import numpy as np
import pytest

from parkedge.frame_buffer import FrameBuffer
from parkedge.parking_spot import (
    ParkingSpot,
    Reservation,
    ReservationStore,
    reservation_minutes,
)
from parkedge.types import HttpRequestType, ParkingSpotPolicy, Rect

ENTRY = datetime(2017, 6, 1, 10, 0, 0)


@pytest.fixture(autouse=True)
def restore_thresholds():
    yield
    ParkingSpot.set_positive_threshold(1)
    ParkingSpot.set_negative_threshold(-1)


@pytest.fixture
def spots():
    made = []

    def make(time_limit=3600, **kwargs):
        spot = ParkingSpot(7, "A1", time_limit, Rect(0, 0, 2, 2),
                           ParkingSpotPolicy.TIMED, queue.Queue(), **kwargs)
        made.append(spot)
        return spot

    yield make
    for spot in made:
        spot.close()


def image():
    return np.arange(4 * 6 * 3, dtype=np.uint8).reshape(4, 6, 3)


def test_reservation_minutes_until_end():
    assert reservation_minutes(ENTRY, 20170601, 1030) == 30


def test_reservation_minutes_past_end_falls_back_to_ten():
    assert reservation_minutes(ENTRY, 20170601, 900) == 10


def test_reservation_minutes_accepts_digit_strings_and_is_monotonic():
    a = reservation_minutes(ENTRY, "20170601", "1100")
    b = reservation_minutes(ENTRY, 20170601, 1101)
    assert a == reservation_minutes(ENTRY, 20170601, 1100)
    assert b - a == 1


def test_store_claims_earliest_unused_reservation():
    store = ReservationStore([
        Reservation(2, "TEST123", 20170602, 900, 20170602, 1000),
        Reservation(1, "TEST123", 20170601, 900, 20170601, 1000),
        Reservation(3, "OTHER", 20170501, 900, 20170501, 1000),
    ])
    assert store.claim("TEST123").sequence == 1
    assert store.claim("TEST123").sequence == 2
    with pytest.raises(LookupError):
        store.claim("TEST123")
    assert store.has_reservation("TEST123")
    assert not store.has_reservation("NONE")


def test_enter_posts_message_with_crop(spots):
    spot = spots()
    spot.enter(image(), Rect(1, 1, 2, 2), ENTRY, "TEST123")
    message = spot.message_queue.get_nowait()
    assert message.request_code == HttpRequestType.UPDATE_ENTER
    assert message.spot_id == 7
    assert message.plate_number == "TEST123"
    assert np.array_equal(message.crop_frame, image()[1:3, 1:3])
    assert np.array_equal(message.frame, image())
    assert spot.is_occupied()
    assert not spot.is_overstayed()
    assert spot.entry_time == ENTRY


def test_enter_uses_whole_image_when_roi_width_exceeds_rows(spots):
    spot = spots()
    spot.enter(image(), Rect(0, 0, 5, 2), ENTRY)
    message = spot.message_queue.get_nowait()
    assert message.crop_frame.shape == image().shape
    assert message.plate_number == "null"


def test_exit_clears_state_and_posts_message(spots):
    spot = spots()
    spot.plate_number = "TEST123"
    spot.localizer_roi = Rect(1, 1, 3, 3)
    spot.enter(image(), Rect(0, 0, 1, 1), ENTRY, "TEST123")
    spot.message_queue.get_nowait()
    exit_time = ENTRY + timedelta(minutes=5)
    spot.exit(image(), exit_time, "TEST123")
    message = spot.message_queue.get_nowait()
    assert message.request_code == HttpRequestType.UPDATE_EXIT
    assert message.event_time == exit_time
    assert not spot.is_occupied()
    assert spot.plate_number == ""
    assert spot.localizer_roi == Rect()
    assert spot.vehicle_roi == Rect()


def test_configure_refused_while_timer_runs(spots):
    spot = spots()
    assert spot.configure("B2", 60, Rect(1, 2, 3, 4), ParkingSpotPolicy.UNLIMITED)
    assert spot.name == "B2"
    assert spot.time_limit == 60
    assert spot.roi == Rect(1, 2, 3, 4)
    assert spot.policy is ParkingSpotPolicy.UNLIMITED
    spot.enter(image(), Rect(0, 0, 1, 1), ENTRY)
    assert not spot.configure("C3", 30, Rect(), ParkingSpotPolicy.TIMED)
    assert spot.name == "B2"


def test_observe_requires_consecutive_frames(spots):
    spot = spots()
    assert spot.observe(True) is False
    assert not spot.is_occupied()
    assert spot.observe(True) is True
    assert spot.is_occupied()
    assert spot.observe(True) is False
    results = [spot.observe(False) for _ in range(4)]
    assert results == [False, False, False, True]
    assert not spot.is_occupied()


def test_thresholds_are_shared_by_all_spots(spots):
    first, second = spots(), spots()
    first.set_positive_threshold(3)
    assert ParkingSpot.positive_threshold == 3
    changes = [second.observe(True) for _ in range(4)]
    assert changes == [False, False, False, True]


def test_reset_clears_occupancy(spots):
    spot = spots()
    spot.enter(image(), Rect(0, 0, 1, 1), ENTRY)
    spot.reset()
    assert not spot.is_occupied()
    assert not spot.is_overstayed()
    assert spot.update_enabled
    assert spot.observe(True) is False


def test_expiry_posts_overstay_with_buffered_frame(spots):
    buffer = FrameBuffer()
    buffered = np.full((2, 2, 3), 200, dtype=np.uint8)
    buffer.push(buffered, ENTRY)
    spot = spots(time_limit=0, frame_buffer=buffer)
    spot.enter(image(), Rect(0, 0, 1, 1), ENTRY)
    first = spot.message_queue.get(timeout=2)
    over = spot.message_queue.get(timeout=2)
    assert first.request_code == HttpRequestType.UPDATE_ENTER
    assert over.request_code == HttpRequestType.UPDATE_OVER
    assert over.event_time == ENTRY
    assert np.array_equal(over.frame, buffered)
    assert spot.is_overstayed()
    assert spot.configure("A1", 10, Rect(), ParkingSpotPolicy.TIMED)


def test_exit_before_expiry_cancels_timer(spots):
    spot = spots(time_limit=1)
    spot.enter(image(), Rect(0, 0, 1, 1), ENTRY)
    spot.exit(image(), ENTRY, "null")
    kinds = [spot.message_queue.get_nowait().request_code for _ in range(2)]
    assert kinds == [HttpRequestType.UPDATE_ENTER, HttpRequestType.UPDATE_EXIT]
    with pytest.raises(queue.Empty):
        spot.message_queue.get(timeout=1.5)


def test_reservation_entry_sets_time_limit_from_reservation(spots):
    store = ReservationStore([Reservation(1, "TEST123", 20170601, 900, 20170601, 1200)])
    spot = spots(reservations=store)
    spot.enter(image(), Rect(0, 0, 1, 1), ENTRY, "TEST123")
    assert spot.time_limit == reservation_minutes(ENTRY, 20170601, 1200)
    assert all(r.used for r in store)
    assert spot.is_occupied()


def test_reservation_sensor_without_booking_keeps_time_limit(spots):
    store = ReservationStore()
    spot = spots(time_limit=3600, reservations=store)
    spot.enter(image(), Rect(0, 0, 1, 1), ENTRY, "NONE")
    assert spot.time_limit == 3600
    assert spot.is_reservation_sensor
    assert spot.is_occupied()