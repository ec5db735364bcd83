from datetime import datetime

import pytest

from parkedge.types import Rect
from parkedge.utils import (
    MouseEvent,
    RoiSelection,
    bool_to_string,
    compute_image_ratio,
    cvt_to_fourcc,
    from_iso_string,
    to_bool,
    to_iso_string,
    to_simple_string,
)


@pytest.mark.parametrize(
    "text, expected",
    [("true", True), ("TRUE", True), ("True", True), ("false", False), ("yes", False), ("", False)],
)
def test_to_bool(text, expected):
    assert to_bool(text) is expected


@pytest.mark.parametrize("value", [True, False])
def test_bool_string_round_trip(value):
    assert to_bool(bool_to_string(value)) is value


def test_bool_to_string_values():
    assert bool_to_string(True) == "true"
    assert bool_to_string(False) == "false"


def test_cvt_to_fourcc_mjpg():
    assert cvt_to_fourcc(0x47504A4D) == "MJPG"


def test_cvt_to_fourcc_accepts_float_and_truncates():
    assert cvt_to_fourcc(float(0x47504A4D) + 0.7) == cvt_to_fourcc(0x47504A4D)


def test_cvt_to_fourcc_has_four_characters():
    assert len(cvt_to_fourcc(0)) == 4


def test_image_ratio_is_symmetric_and_at_least_one():
    assert compute_image_ratio(640, 480) == compute_image_ratio(480, 640)
    assert compute_image_ratio(640, 480) >= 1.0


def test_image_ratio_value():
    assert compute_image_ratio(640, 320) == 2.0


@pytest.mark.parametrize("width, height", [(0, 10), (10, 0), (-1, 5)])
def test_image_ratio_invalid(width, height):
    assert compute_image_ratio(width, height) == 0.0


def test_to_iso_string():
    assert to_iso_string(datetime(2017, 6, 1, 12, 30, 5)) == "20170601T123005"


@pytest.mark.parametrize(
    "moment",
    [datetime(2017, 6, 1, 12, 30, 5), datetime(1999, 12, 31, 23, 59, 59, 250000)],
)
def test_iso_round_trip(moment):
    assert from_iso_string(to_iso_string(moment)) == moment


@pytest.mark.parametrize("text", ["", "2017-06-01", "20170601T1230", "20171301T000000"])
def test_from_iso_string_rejects_invalid(text):
    with pytest.raises(ValueError):
        from_iso_string(text)


def test_to_simple_string():
    assert to_simple_string(datetime(2017, 6, 1, 12, 30, 5)) == "2017-Jun-01 12:30:05"


def test_roi_selection_drag():
    selection = RoiSelection()
    assert selection.handle(MouseEvent.LBUTTONDOWN, 10, 20) is None
    assert selection.drawing is True
    assert selection.handle(MouseEvent.MOUSEMOVE, 30, 40) == ((10, 20), (30, 40))
    selection.handle(MouseEvent.LBUTTONUP, 50, 60)
    assert selection.roi_set is True
    assert selection.drawing is False
    assert (selection.x0, selection.y0, selection.x1, selection.y1) == (10, 20, 50, 60)


def test_roi_selection_two_clicks():
    selection = RoiSelection()
    selection.handle(MouseEvent.LBUTTONDOWN, 5, 5)
    selection.handle(MouseEvent.LBUTTONDOWN, 15, 25)
    assert selection.roi_set is True
    assert (selection.x1, selection.y1) == (15, 25)


def test_roi_move_without_drawing_returns_none():
    selection = RoiSelection()
    assert selection.handle(MouseEvent.MOUSEMOVE, 3, 3) is None
    assert selection.roi_set is False


def test_roi_rect_is_normalised():
    selection = RoiSelection()
    selection.handle(MouseEvent.LBUTTONDOWN, 50, 60)
    selection.handle(MouseEvent.LBUTTONUP, 10, 20)
    assert selection.rect == Rect(10, 20, 40, 40)