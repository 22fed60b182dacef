"""
Depth Head Tracker - Pose Utilities
Head pose calculation from keypoints and depth back-projection
"""

import numpy as np
import math
from config_manager import get_config

# Get configuration
_config = None

def _get_config():
    """Get or initialize config"""
    global _config
    if _config is None:
        _config = get_config()
    return _config

# COCO keypoint indices used for the head
NOSE, LEFT_EYE, RIGHT_EYE, LEFT_EAR, RIGHT_EAR = 0, 1, 2, 3, 4


def calculate_head_pose(keypoints, pose_config=None):
    """
    Calculate yaw, pitch, and roll angles from head keypoints

    Args:
        keypoints: [17, 3] array (x, y, confidence) in color pixels
        pose_config: head_pose settings (config file values if None)

    Returns:
        (yaw, pitch, roll, head_center) in degrees, or (None, None, None, None)
    """
    if keypoints is None or len(keypoints.shape) != 2 or keypoints.shape[0] < 5:
        return None, None, None, None

    if pose_config is None:
        pose_config = _get_config().get_head_pose_config()

    nose = keypoints[NOSE]
    left_eye = keypoints[LEFT_EYE]
    right_eye = keypoints[RIGHT_EYE]
    left_ear = keypoints[LEFT_EAR]
    right_ear = keypoints[RIGHT_EAR]

    # Check if keypoints are visible enough
    confidence_threshold = pose_config.get('keypoint_confidence', 0.3)
    if (nose[2] < confidence_threshold or
            left_eye[2] < confidence_threshold or
            right_eye[2] < confidence_threshold):
        return None, None, None, None

    # Head center (average of nose and eyes)
    head_center_x = (nose[0] + left_eye[0] + right_eye[0]) / 3
    head_center_y = (nose[1] + left_eye[1] + right_eye[1]) / 3

    face_width = abs(right_eye[0] - left_eye[0])

    min_face_width = pose_config.get('min_face_width_pixels', 20)
    if face_width < min_face_width:
        return None, None, None, None

    # Yaw (left-right rotation)
    yaw = 0.0
    yaw_scale = pose_config.get('yaw_scale_degrees', 30)
    if left_ear[2] > confidence_threshold and right_ear[2] > confidence_threshold:
        ear_midpoint_x = (left_ear[0] + right_ear[0]) / 2
        yaw = ((ear_midpoint_x - nose[0]) / face_width) * yaw_scale

    # Pitch (up-down rotation)
    pitch_scale = pose_config.get('pitch_scale_degrees', 45)
    eye_midpoint_y = (left_eye[1] + right_eye[1]) / 2
    pitch = ((nose[1] - eye_midpoint_y) / face_width) * pitch_scale

    # Roll (head tilt), image x grows to the subject's left so eyes are swapped
    eye_angle = math.atan2(left_eye[1] - right_eye[1], left_eye[0] - right_eye[0])
    roll = math.degrees(eye_angle)

    yaw = max(-90.0, min(90.0, float(yaw)))
    pitch = max(-90.0, min(90.0, float(pitch)))
    roll = max(-90.0, min(90.0, float(roll)))

    return yaw, pitch, roll, (float(head_center_x), float(head_center_y))


def sample_depth(depth_buffer, x, y, window=5, min_depth=1):
    """
    Median depth around a pixel, ignoring invalid (zero) samples

    Args:
        depth_buffer: [H, W] depth map (millimeters)
        x, y: Pixel coordinates
        window: Square window size (pixels)
        min_depth: Smallest valid depth value

    Returns:
        depth in millimeters, or None if no valid sample
    """
    if depth_buffer is None or depth_buffer.ndim != 2:
        return None

    height, width = depth_buffer.shape
    cx, cy = int(round(x)), int(round(y))
    if not (0 <= cx < width and 0 <= cy < height):
        return None

    half = max(0, window // 2)
    patch = depth_buffer[max(0, cy - half):cy + half + 1, max(0, cx - half):cx + half + 1]
    valid = patch[patch >= min_depth]

    if valid.size == 0:
        return None

    return float(np.median(valid))


def scale_to_depth(x, y, color_shape, depth_shape):
    """Map a color pixel to the (registered) depth image of a different size"""
    color_h, color_w = color_shape[:2]
    depth_h, depth_w = depth_shape[:2]
    return x * depth_w / color_w, y * depth_h / color_h


def pixel_to_camera(x, y, depth_mm, intrinsics):
    """
    Back-project a pixel into camera space

    Args:
        x, y: Depth image pixel
        depth_mm: Depth in millimeters
        intrinsics: dict with fx, fy, cx, cy

    Returns:
        (X, Y, Z) in meters, Y pointing up
    """
    z = depth_mm / 1000.0
    cam_x = (x - intrinsics['cx']) * z / intrinsics['fx']
    cam_y = -(y - intrinsics['cy']) * z / intrinsics['fy']
    return cam_x, cam_y, z


def keypoint_centroid(keypoints, confidence_threshold=0.3):
    """Centroid of confident keypoints, or None"""
    if keypoints is None or len(keypoints) == 0:
        return None

    visible = keypoints[keypoints[:, 2] > confidence_threshold]
    if len(visible) == 0:
        return None

    return float(np.mean(visible[:, 0])), float(np.mean(visible[:, 1]))
