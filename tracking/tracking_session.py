"""
Tracking Session Module
Binds one tracked skeleton to one pose estimator
"""

from frame_bundle import TrackingState
from log import log_estimator_failure
from pose_estimator import Pose


class TrackingSession:
    """
    Per-subject pose tracking state

    Features:
    - Lazy estimator creation (retried every frame until it succeeds)
    - Last known good pose kept across missed frames
    - Frame number of the last update for staleness checks
    """

    def __init__(self, subject_id, estimator_factory, created_sequence=0):
        """
        Args:
            subject_id: Skeleton tracking ID
            estimator_factory: Callable returning an EstimatorCreation
            created_sequence: Frame number the session was created at
        """
        self.subject_id = subject_id
        self.estimator_factory = estimator_factory
        self.estimator = None
        self.last_pose = None
        self.last_state = TrackingState.NOT_TRACKED
        self.last_updated_sequence = created_sequence
        self.updated_this_frame = False
        self.destroyed = False

    def update(self, bundle, subject):
        """
        Give the session the current frame

        Args:
            bundle: FrameBundle
            subject: SkeletonEstimate of this session's subject

        Returns:
            True if a new pose was estimated this frame
        """
        self.updated_this_frame = False
        if self.destroyed:
            return False

        self.last_state = subject.state

        # Position-only skeletons count as seen, but there is no face to track
        if subject.state != TrackingState.FULLY_TRACKED:
            return False

        if self.estimator is None:
            creation = self.estimator_factory()
            if not creation.ok:
                log_estimator_failure(self.subject_id, creation.error)
                return False
            # Destroyed from another thread while the estimator was being built
            if self.destroyed:
                creation.estimator.release()
                return False
            self.estimator = creation.estimator

        result = self.estimator.track(bundle.color_format, bundle.color_buffer,
                                      bundle.depth_format, bundle.depth_buffer, subject)

        if result.success:
            self.last_pose = Pose(rotation=result.rotation, translation=result.translation)
            self.updated_this_frame = True

        return self.updated_this_frame

    @property
    def has_pose(self):
        """True once a pose was estimated at least once"""
        return self.last_pose is not None

    def missed_frames(self, sequence_number):
        """Frames since the last update"""
        return sequence_number - self.last_updated_sequence

    def destroy(self):
        """Release the estimator (safe to call more than once)"""
        if self.estimator is not None:
            self.estimator.release()
            self.estimator = None
        self.destroyed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.destroy()
        return False

    def __repr__(self):
        return (f"TrackingSession(subject_id={self.subject_id}, "
                f"last_updated_sequence={self.last_updated_sequence}, has_pose={self.has_pose})")
