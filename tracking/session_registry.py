"""
Session Registry Module
Multi-subject session management: format invalidation, staleness eviction
and single-subject pose forwarding
"""

from frame_bundle import FormatWatcher
from log import (log_with_timestamp, log_session_created, log_session_evicted,
                 log_format_change, log_bundle_dropped, log_pose)
from .tracking_session import TrackingSession

DEFAULT_MAX_MISSED_FRAMES = 100


class SessionRegistry:
    """
    Owner of all per-subject tracking sessions

    Features:
    - One TrackingSession per tracked skeleton ID
    - Full reset when the color or depth format changes
    - Only the first tracked skeleton of a frame is forwarded to the sink
    - Sessions not seen for more than max_missed_frames frames are evicted
    - Out-of-order and duplicate frames are dropped
    """

    def __init__(self, sink, estimator_factory,
                 max_missed_frames=DEFAULT_MAX_MISSED_FRAMES,
                 forward_last_known_pose=False,
                 log_poses=False):
        """
        Args:
            sink: PoseSink receiving the forwarded pose
            estimator_factory: Callable returning an EstimatorCreation
            max_missed_frames: Frames a subject may be absent before eviction
            forward_last_known_pose: Forward the last good pose when the current frame missed
            log_poses: Log every forwarded pose
        """
        if isinstance(max_missed_frames, bool) or not isinstance(max_missed_frames, int):
            raise ValueError(f"max_missed_frames must be an integer: {max_missed_frames!r}")
        if max_missed_frames < 0:
            raise ValueError(f"max_missed_frames must not be negative: {max_missed_frames}")

        self.sink = sink
        self.estimator_factory = estimator_factory
        self.max_missed_frames = max_missed_frames
        self.forward_last_known_pose = forward_last_known_pose
        self.log_poses = log_poses

        self.sessions = {}  # subject_id: TrackingSession
        self.format_watcher = FormatWatcher()
        self.last_sequence = None
        self.closed = False

        self.stats = {
            'bundles_processed': 0,
            'bundles_dropped': 0,
            'sessions_created': 0,
            'sessions_evicted': 0,
            'sessions_invalidated': 0,
            'format_changes': 0,
            'poses_forwarded': 0,
            'sink_errors': 0,
        }

    def process_bundle(self, bundle):
        """
        Process one frame bundle

        Args:
            bundle: FrameBundle

        Returns:
            The forwarded Pose, or None if nothing was forwarded
        """
        if self.closed:
            log_with_timestamp(f"Frame #{bundle.sequence_number} ignored, registry is shut down", "WARNING")
            return None

        if self.last_sequence is not None and bundle.sequence_number <= self.last_sequence:
            self.stats['bundles_dropped'] += 1
            log_bundle_dropped(bundle.sequence_number, self.last_sequence)
            return None

        self.last_sequence = bundle.sequence_number
        self.stats['bundles_processed'] += 1

        # The estimators cannot follow a format change, start over
        had_formats = self.format_watcher.initialized
        if self.format_watcher.check(bundle):
            if had_formats:
                self.stats['format_changes'] += 1
            if self.sessions:
                log_format_change(bundle.color_format, bundle.depth_format, len(self.sessions))
                self.stats['sessions_invalidated'] += len(self.sessions)
            self._remove_all_sessions()

        selected = None
        for subject in bundle.observed_subjects():
            session = self.sessions.get(subject.subject_id)
            if session is None:
                session = TrackingSession(subject.subject_id, self.estimator_factory, bundle.sequence_number)
                self.sessions[subject.subject_id] = session
                self.stats['sessions_created'] += 1
                log_session_created(subject.subject_id, bundle.sequence_number)

            session.update(bundle, subject)
            session.last_updated_sequence = bundle.sequence_number

            # Shut down from another thread while this bundle was in work
            if self.closed:
                session.destroy()
                return None

            # First tracked skeleton wins, the rest are only kept up to date
            if selected is None:
                selected = (subject, session)

        if self.closed:
            return None

        forwarded = None
        if selected is not None:
            forwarded = self._forward(*selected)

        self._remove_old_sessions(bundle.sequence_number)

        return forwarded

    def _forward(self, subject, session):
        """Send the selected subject's pose to the sink"""
        if session.updated_this_frame:
            pose = session.last_pose
        elif self.forward_last_known_pose and session.has_pose:
            pose = session.last_pose
        else:
            return None

        x, y, z = subject.position
        try:
            self.sink.update(float(x), float(y), float(z),
                             float(pose.pitch), float(pose.roll), float(pose.yaw))
        except (OSError, ValueError) as e:
            self.stats['sink_errors'] += 1
            log_with_timestamp(f"Pose output error: {e}", "ERROR")
            return None

        self.stats['poses_forwarded'] += 1
        if self.log_poses:
            log_pose(subject.subject_id, x, y, z, pose.pitch, pose.roll, pose.yaw)

        return pose

    def _remove_session(self, subject_id):
        self.sessions.pop(subject_id).destroy()

    def _remove_all_sessions(self):
        for subject_id in list(self.sessions.keys()):
            self._remove_session(subject_id)

    def _remove_old_sessions(self, sequence_number):
        """Clear out sessions for skeletons not seen for a while"""
        stale = [(subject_id, session.missed_frames(sequence_number))
                 for subject_id, session in self.sessions.items()
                 if session.missed_frames(sequence_number) > self.max_missed_frames]

        for subject_id, missed in stale:
            self._remove_session(subject_id)
            self.stats['sessions_evicted'] += 1
            log_session_evicted(subject_id, missed)

    def shutdown(self):
        """Destroy all sessions (safe to call more than once)"""
        if self.closed:
            return
        self.closed = True
        self._remove_all_sessions()
        log_with_timestamp("Session registry shut down", "CLEANUP")

    def get_session(self, subject_id):
        """Session of a subject, or None"""
        return self.sessions.get(subject_id)

    def active_subject_ids(self):
        """IDs of all subjects with a session"""
        return list(self.sessions.keys())

    def get_stats(self):
        """Copy of the processing counters"""
        stats = self.stats.copy()
        stats['active_sessions'] = len(self.sessions)
        return stats

    def __len__(self):
        return len(self.sessions)

    def __contains__(self, subject_id):
        return subject_id in self.sessions

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.shutdown()
        return False
