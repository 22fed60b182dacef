"""
Skeleton Provider Module
YOLO pose detection + Norfair tracking turned into skeleton estimates
with stable subject IDs and depth-based positions
"""

import numpy as np
from norfair import Detection, Tracker
from ultralytics import YOLO

from frame_bundle import SkeletonEstimate, TrackingState
from log import log_with_timestamp
from pose_utils import keypoint_centroid, sample_depth, scale_to_depth, pixel_to_camera


# COCO pose keypoint sigmas for OKS calculation
# Smaller sigma values = more sensitive matching
COCO_KEYPOINT_SIGMAS = np.array([
    .26, .25, .25, .35, .35, .79, .79, .72, .72, .62, .62, 1.07, 1.07, .87, .87, .89, .89
]) / 10.0


def keypoint_distance(detected_pose, tracked_pose):
    """
    Norfair distance function - OKS-style pose keypoint distance

    Args:
        detected_pose: Norfair Detection object (new detection)
        tracked_pose: Norfair TrackedObject object (existing track)

    Returns:
        distance: Lower value = better match
    """
    det_points = detected_pose.points
    track_estimate = tracked_pose.estimate

    if det_points is None or track_estimate is None:
        return 1e6

    distances = np.linalg.norm(det_points - track_estimate, axis=1)

    # Normalize by the detection's bounding box scale
    det_min = np.min(det_points, axis=0)
    det_max = np.max(det_points, axis=0)
    area = (det_max[0] - det_min[0]) * (det_max[1] - det_min[1])
    s = np.sqrt(area) + 1e-6

    e = distances / (2 * s * COCO_KEYPOINT_SIGMAS[:len(distances)])

    return float(np.mean(e ** 2))


def classify_skeleton(keypoints, keypoint_confidence=0.3, min_visible_keypoints=8):
    """
    Tracking state from keypoint visibility

    Returns:
        FULLY_TRACKED with enough confident keypoints, POSITION_ONLY with
        at least one, NOT_TRACKED otherwise
    """
    visible = int(np.sum(keypoints[:, 2] > keypoint_confidence))

    if visible >= min_visible_keypoints:
        return TrackingState.FULLY_TRACKED
    if visible > 0:
        return TrackingState.POSITION_ONLY
    return TrackingState.NOT_TRACKED


class SkeletonProvider:
    """
    Skeleton estimates from color + depth frames

    Features:
    - YOLO pose keypoints (COCO-17)
    - Norfair: Kalman filter tracking gives IDs that stay stable while a person is visible
    - Camera-space position from the depth map under the keypoint centroid
    """

    def __init__(self, model_path="yolo11n-pose.pt", device="cpu",
                 intrinsics=None,
                 conf_threshold=0.25,
                 keypoint_confidence=0.3,
                 min_visible_keypoints=8,
                 distance_threshold=0.8,
                 hit_counter_max=30,
                 initialization_delay=2):
        """
        Args:
            model_path: YOLO pose model
            device: 'cuda' or 'cpu'
            intrinsics: Depth camera intrinsics (fx, fy, cx, cy)
            conf_threshold: Person detection confidence
            keypoint_confidence: Minimum keypoint confidence to count as visible
            min_visible_keypoints: Visible keypoints needed for FULLY_TRACKED
            distance_threshold: Norfair matching threshold (lower = stricter)
            hit_counter_max: Frames before a Norfair track is lost
            initialization_delay: Frames before a track gets an ID
        """
        self.model = YOLO(model_path)
        self.device = device
        self.intrinsics = intrinsics
        self.conf_threshold = conf_threshold
        self.keypoint_confidence = keypoint_confidence
        self.min_visible_keypoints = min_visible_keypoints

        self.tracker = Tracker(
            distance_function=keypoint_distance,
            distance_threshold=distance_threshold,
            hit_counter_max=hit_counter_max,
            initialization_delay=initialization_delay,
        )

        log_with_timestamp("Skeleton provider active!", "TRACKING")
        log_with_timestamp(f"   - Model: {model_path} ({device})", "TRACKING")
        log_with_timestamp(f"   - Threshold: {distance_threshold}", "TRACKING")
        log_with_timestamp(f"   - Max Age: {hit_counter_max} frames", "TRACKING")

    def detect(self, color_image):
        """Keypoints [N, 17, 3] of all detected people"""
        results = self.model(color_image, conf=self.conf_threshold,
                             device=self.device, verbose=False)

        if not results or results[0].keypoints is None:
            return np.empty((0, 17, 3), dtype=np.float32)

        return results[0].keypoints.data.cpu().numpy()

    def __call__(self, color_image, depth_image):
        """
        Skeletons for one frame

        Args:
            color_image: [H, W, 3] BGR image
            depth_image: [H, W] depth map (mm)

        Returns:
            list of SkeletonEstimate in detection order
        """
        pose_keypoints = self.detect(color_image)

        detections = []
        for keypoints in pose_keypoints:
            if classify_skeleton(keypoints, self.keypoint_confidence, 1) == TrackingState.NOT_TRACKED:
                continue
            detection = Detection(points=keypoints[:, :2], scores=keypoints[:, 2])
            detection.keypoints = keypoints
            detections.append(detection)

        tracked_objects = self.tracker.update(detections=detections)

        skeletons = []
        for tracked_obj in tracked_objects:
            last_detection = tracked_obj.last_detection
            keypoints = getattr(last_detection, 'keypoints', None)
            if keypoints is None or tracked_obj.id is None:
                continue

            state = classify_skeleton(keypoints, self.keypoint_confidence, self.min_visible_keypoints)
            position = self._position(keypoints, color_image, depth_image)
            if position is None:
                state = TrackingState.NOT_TRACKED
                position = (0.0, 0.0, 0.0)

            skeletons.append(SkeletonEstimate(
                subject_id=int(tracked_obj.id),
                state=state,
                position=position,
                keypoints=keypoints
            ))

        return skeletons

    def _position(self, keypoints, color_image, depth_image):
        """Camera-space position of the skeleton centroid, or None"""
        if depth_image is None or self.intrinsics is None:
            return None

        centroid = keypoint_centroid(keypoints, self.keypoint_confidence)
        if centroid is None:
            return None

        dx, dy = scale_to_depth(centroid[0], centroid[1], color_image.shape, depth_image.shape)
        depth_mm = sample_depth(depth_image, dx, dy, window=9)
        if depth_mm is None:
            return None

        return pixel_to_camera(dx, dy, depth_mm, self.intrinsics)
