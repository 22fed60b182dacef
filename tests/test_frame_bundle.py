"""
Frame bundle and format change detection tests
"""

from conftest import bundle, skeleton
from frame_bundle import (FormatWatcher, ImageFormat, TrackingState, UNDEFINED_FORMAT,
                          COLOR_RGB_640x480_30, COLOR_RGB_1280x960_12, DEPTH_320x240_30)


def test_first_bundle_is_a_format_change():
    watcher = FormatWatcher()

    assert not watcher.initialized
    assert watcher.check(bundle(1)) is True
    assert watcher.initialized
    assert watcher.last_color_format == COLOR_RGB_640x480_30


def test_same_formats_are_no_change():
    watcher = FormatWatcher()
    watcher.check(bundle(1))

    assert watcher.check(bundle(2)) is False


def test_either_stream_counts():
    watcher = FormatWatcher()
    watcher.check(bundle(1))

    assert watcher.check(bundle(2, color_format=COLOR_RGB_1280x960_12)) is True
    assert watcher.check(bundle(3, color_format=COLOR_RGB_1280x960_12,
                                depth_format=DEPTH_320x240_30)) is True
    assert watcher.last_depth_format == DEPTH_320x240_30


def test_formats_compare_by_value():
    assert ImageFormat("Bgr", 640, 480, 30) == ImageFormat("Bgr", 640, 480, 30)
    assert ImageFormat("Bgr", 640, 480, 30) != ImageFormat("Bgr", 320, 240, 30)
    assert str(UNDEFINED_FORMAT) == "Undefined"


def test_observed_subjects_keep_bundle_order():
    frame = bundle(1, [
        skeleton(3, TrackingState.POSITION_ONLY),
        skeleton(1, TrackingState.NOT_TRACKED),
        skeleton(2, TrackingState.FULLY_TRACKED),
    ])

    assert [s.subject_id for s in frame.observed_subjects()] == [3, 2]
