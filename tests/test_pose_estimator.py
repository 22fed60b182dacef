"""
Head pose estimation tests
"""

import math

import numpy as np
import pytest

from frame_bundle import SkeletonEstimate, TrackingState, COLOR_RGB_640x480_30, DEPTH_640x480_30
from pose_estimator import (HeadPoseEstimator, PoseEstimator, PoseResult, create_estimator,
                            head_pose_estimator_factory)
from pose_utils import calculate_head_pose, pixel_to_camera, sample_depth

INTRINSICS = {'fx': 525.0, 'fy': 525.0, 'cx': 319.5, 'cy': 239.5}
POSE_CONFIG = {
    'keypoint_confidence': 0.3,
    'min_face_width_pixels': 20,
    'yaw_scale_degrees': 30,
    'pitch_scale_degrees': 45,
}


def face_keypoints(nose=(100.0, 110.0), left_eye=(120.0, 100.0), right_eye=(80.0, 100.0),
                   ears_visible=False):
    keypoints = np.zeros((17, 3), dtype=np.float32)
    keypoints[0] = (*nose, 0.9)
    keypoints[1] = (*left_eye, 0.9)
    keypoints[2] = (*right_eye, 0.9)
    if ears_visible:
        keypoints[3] = (130.0, 105.0, 0.9)
        keypoints[4] = (70.0, 105.0, 0.9)
    return keypoints


def test_head_pose_level_face():
    yaw, pitch, roll, center = calculate_head_pose(face_keypoints(), POSE_CONFIG)

    assert yaw == 0.0
    assert pitch == pytest.approx(11.25)
    assert roll == pytest.approx(0.0)
    assert center == pytest.approx((100.0, 310.0 / 3))


def test_head_pose_yaw_from_ears():
    keypoints = face_keypoints(nose=(90.0, 110.0), ears_visible=True)

    yaw, _, _, _ = calculate_head_pose(keypoints, POSE_CONFIG)

    # ear midpoint 100, nose 90, face width 40
    assert yaw == pytest.approx(7.5)


def test_head_pose_tilted_face():
    keypoints = face_keypoints(left_eye=(120.0, 120.0), right_eye=(80.0, 100.0))

    _, _, roll, _ = calculate_head_pose(keypoints, POSE_CONFIG)

    assert roll == pytest.approx(math.degrees(math.atan2(20.0, 40.0)))


def test_head_pose_requires_visible_face():
    keypoints = face_keypoints()
    keypoints[0, 2] = 0.1

    assert calculate_head_pose(keypoints, POSE_CONFIG) == (None, None, None, None)
    assert calculate_head_pose(None, POSE_CONFIG) == (None, None, None, None)


def test_head_pose_rejects_small_face():
    keypoints = face_keypoints(left_eye=(105.0, 100.0), right_eye=(95.0, 100.0))

    assert calculate_head_pose(keypoints, POSE_CONFIG)[3] is None


def test_sample_depth_ignores_invalid_pixels():
    depth = np.zeros((10, 10), dtype=np.uint16)
    depth[4:7, 4:7] = 1200
    depth[5, 5] = 0

    assert sample_depth(depth, 5, 5, window=3) == 1200.0
    assert sample_depth(depth, 0, 0, window=1) is None
    assert sample_depth(depth, 50, 5) is None


def test_pixel_to_camera_center():
    assert pixel_to_camera(319.5, 239.5, 2000, INTRINSICS) == (0.0, 0.0, 2.0)


def test_estimator_translation_from_depth():
    estimator = HeadPoseEstimator(INTRINSICS, POSE_CONFIG)
    skeleton = SkeletonEstimate(1, TrackingState.FULLY_TRACKED, (0.5, 0.5, 0.5), face_keypoints())
    color = np.zeros((480, 640, 3), dtype=np.uint8)
    depth = np.full((480, 640), 1000, dtype=np.uint16)

    result = estimator.track(COLOR_RGB_640x480_30, color, DEPTH_640x480_30, depth, skeleton)

    assert result.success
    assert result.rotation.y == pytest.approx(11.25)
    assert result.translation.z == pytest.approx(1.0)
    assert result.translation.x == pytest.approx((100.0 - 319.5) / 525.0, abs=1e-3)


def test_estimator_falls_back_to_skeleton_position():
    estimator = HeadPoseEstimator(INTRINSICS, POSE_CONFIG)
    skeleton = SkeletonEstimate(1, TrackingState.FULLY_TRACKED, (0.5, 0.6, 0.7), face_keypoints())
    color = np.zeros((480, 640, 3), dtype=np.uint8)
    depth = np.zeros((480, 640), dtype=np.uint16)

    result = estimator.track(COLOR_RGB_640x480_30, color, DEPTH_640x480_30, depth, skeleton)

    assert tuple(result.translation) == (0.5, 0.6, 0.7)


def test_estimator_miss_without_face():
    estimator = HeadPoseEstimator(INTRINSICS, POSE_CONFIG)
    skeleton = SkeletonEstimate(1, TrackingState.FULLY_TRACKED, (0.0, 0.0, 1.0), None)

    result = estimator.track(COLOR_RGB_640x480_30, None, DEPTH_640x480_30, None, skeleton)

    assert result == PoseResult.miss()


def test_creation_failure_is_a_result():
    creation = create_estimator(lambda: HeadPoseEstimator({'fx': 0, 'fy': 525.0, 'cx': 0, 'cy': 0}))

    assert not creation.ok
    assert "focal" in creation.error


def test_factory_creates_estimators():
    factory = head_pose_estimator_factory(INTRINSICS, POSE_CONFIG)

    first, second = factory(), factory()

    assert first.ok and second.ok
    assert first.estimator is not second.estimator


def test_released_estimator_refuses_to_track():
    estimator = HeadPoseEstimator(INTRINSICS, POSE_CONFIG)
    estimator.release()
    estimator.release()

    with pytest.raises(RuntimeError):
        estimator.track(None, None, None, None, None)


def test_base_estimator_is_abstract():
    with pytest.raises(NotImplementedError):
        PoseEstimator().track(None, None, None, None, None)
