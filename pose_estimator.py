"""
Pose Estimator Module
Per-subject head pose estimation interface and keypoint/depth implementation
"""

from dataclasses import dataclass
from typing import NamedTuple, Optional

from log import log_with_timestamp
from pose_utils import calculate_head_pose, sample_depth, scale_to_depth, pixel_to_camera


class Vector3(NamedTuple):
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


@dataclass(frozen=True)
class PoseResult:
    """Result of one tracking call"""
    success: bool
    rotation: Vector3 = Vector3()
    translation: Vector3 = Vector3()

    @classmethod
    def miss(cls):
        """No face found this frame"""
        return cls(success=False)


@dataclass(frozen=True)
class Pose:
    """
    Last known good pose of a subject

    rotation holds (roll, pitch, yaw) as (x, y, z) in degrees.
    """
    rotation: Vector3
    translation: Vector3

    @property
    def pitch(self):
        return self.rotation.y

    @property
    def roll(self):
        return self.rotation.x

    @property
    def yaw(self):
        return self.rotation.z


class PoseEstimator:
    """
    Stateful pose estimator bound to one subject

    Subclasses implement _track and optionally _release.
    """

    def __init__(self):
        self.released = False

    def track(self, color_format, color_buffer, depth_format, depth_buffer, skeleton):
        """
        Estimate the head pose of one skeleton

        Args:
            color_format, color_buffer: Color image format and pixels
            depth_format, depth_buffer: Depth image format and pixels (mm)
            skeleton: SkeletonEstimate of the subject

        Returns:
            PoseResult
        """
        if self.released:
            raise RuntimeError("Pose estimator already released")
        return self._track(color_format, color_buffer, depth_format, depth_buffer, skeleton)

    def release(self):
        """Free estimator resources (safe to call more than once)"""
        if self.released:
            return
        self.released = True
        self._release()

    def _track(self, color_format, color_buffer, depth_format, depth_buffer, skeleton):
        raise NotImplementedError

    def _release(self):
        pass


@dataclass(frozen=True)
class EstimatorCreation:
    """Outcome of creating a pose estimator"""
    estimator: Optional[PoseEstimator] = None
    error: Optional[str] = None

    @property
    def ok(self):
        return self.estimator is not None

    @classmethod
    def success(cls, estimator):
        return cls(estimator=estimator)

    @classmethod
    def failure(cls, error):
        return cls(error=str(error))


def create_estimator(constructor):
    """
    Instantiate an estimator, turning constructor errors into a failure result

    Args:
        constructor: Zero-argument callable returning a PoseEstimator

    Returns:
        EstimatorCreation
    """
    try:
        return EstimatorCreation.success(constructor())
    except (RuntimeError, ValueError, OSError) as e:
        return EstimatorCreation.failure(e)


class HeadPoseEstimator(PoseEstimator):
    """
    Head pose from face keypoints + depth

    Rotation comes from the nose/eye/ear layout of the skeleton keypoints,
    translation from the depth under the head center back-projected with
    the camera intrinsics. Falls back to the skeleton position when the
    depth under the head is invalid.
    """

    def __init__(self, intrinsics, pose_config=None, depth_window=5):
        """
        Args:
            intrinsics: dict with fx, fy, cx, cy of the depth camera
            pose_config: head_pose settings (config file values if None)
            depth_window: Depth sampling window (pixels)
        """
        super().__init__()

        for key in ('fx', 'fy', 'cx', 'cy'):
            if key not in intrinsics:
                raise ValueError(f"Camera intrinsics missing '{key}'")
        if intrinsics['fx'] <= 0 or intrinsics['fy'] <= 0:
            raise ValueError("Camera focal lengths must be positive")

        self.intrinsics = dict(intrinsics)
        self.pose_config = pose_config
        self.depth_window = depth_window

    def _track(self, color_format, color_buffer, depth_format, depth_buffer, skeleton):
        yaw, pitch, roll, head_center = calculate_head_pose(skeleton.keypoints, self.pose_config)
        if head_center is None:
            return PoseResult.miss()

        translation = Vector3(*skeleton.position)

        if depth_buffer is not None and color_buffer is not None:
            dx, dy = scale_to_depth(head_center[0], head_center[1],
                                    color_buffer.shape, depth_buffer.shape)
            depth_mm = sample_depth(depth_buffer, dx, dy, self.depth_window)
            if depth_mm is not None:
                translation = Vector3(*pixel_to_camera(dx, dy, depth_mm, self.intrinsics))

        return PoseResult(success=True,
                          rotation=Vector3(roll, pitch, yaw),
                          translation=translation)


def head_pose_estimator_factory(intrinsics, pose_config=None):
    """Estimator factory for the session registry"""
    def factory():
        return create_estimator(lambda: HeadPoseEstimator(intrinsics, pose_config))

    log_with_timestamp(f"Head pose estimator: fx={intrinsics.get('fx')}, fy={intrinsics.get('fy')}", "ESTIMATOR")
    return factory
