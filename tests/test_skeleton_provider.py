"""
Skeleton classification and keypoint matching tests (no model needed)
"""

from types import SimpleNamespace

import numpy as np

from frame_bundle import TrackingState
from skeleton_provider import classify_skeleton, keypoint_distance


def keypoints_with_visible(count):
    keypoints = np.zeros((17, 3), dtype=np.float32)
    keypoints[:, 0] = np.arange(17) * 10.0
    keypoints[:, 1] = np.arange(17) * 5.0
    keypoints[:count, 2] = 0.9
    return keypoints


def test_classify_skeleton_states():
    assert classify_skeleton(keypoints_with_visible(17)) == TrackingState.FULLY_TRACKED
    assert classify_skeleton(keypoints_with_visible(8)) == TrackingState.FULLY_TRACKED
    assert classify_skeleton(keypoints_with_visible(3)) == TrackingState.POSITION_ONLY
    assert classify_skeleton(keypoints_with_visible(0)) == TrackingState.NOT_TRACKED


def test_keypoint_distance_prefers_close_poses():
    points = keypoints_with_visible(17)[:, :2]
    detection = SimpleNamespace(points=points)

    same = keypoint_distance(detection, SimpleNamespace(estimate=points))
    moved = keypoint_distance(detection, SimpleNamespace(estimate=points + 20.0))

    assert same == 0.0
    assert moved > same


def test_keypoint_distance_without_estimate():
    detection = SimpleNamespace(points=keypoints_with_visible(17)[:, :2])

    assert keypoint_distance(detection, SimpleNamespace(estimate=None)) == 1e6
