"""
Shared test helpers: fake estimator, fake sink and bundle builders
"""

import threading

import numpy as np
import pytest

from frame_bundle import (FrameBundle, SkeletonEstimate, TrackingState,
                          COLOR_RGB_640x480_30, DEPTH_640x480_30)
from pose_estimator import EstimatorCreation, PoseEstimator, PoseResult, Vector3


class FakeEstimator(PoseEstimator):
    """Returns scripted results, counts releases"""

    def __init__(self, results=None):
        super().__init__()
        self.results = list(results or [])
        self.default = PoseResult(success=True, rotation=Vector3(10.0, 20.0, 30.0))
        self.track_calls = 0
        self.release_calls = 0

    def _track(self, color_format, color_buffer, depth_format, depth_buffer, skeleton):
        self.track_calls += 1
        if self.results:
            return self.results.pop(0)
        return self.default

    def _release(self):
        self.release_calls += 1


class FakeFactory:
    """Estimator factory that can be told to fail"""

    def __init__(self, failures=0, results=None):
        self.failures = failures
        self.results = results
        self.calls = 0
        self.created = []

    def __call__(self):
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            return EstimatorCreation.failure("sensor busy")
        estimator = FakeEstimator(self.results)
        self.created.append(estimator)
        return EstimatorCreation.success(estimator)


class GatedFactory(FakeFactory):
    """Estimator factory that blocks until the gate is opened"""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.gate = threading.Event()

    def __call__(self):
        self.entered.set()
        self.gate.wait(2.0)
        return super().__call__()


class FakeSink:
    def __init__(self):
        self.updates = []

    def update(self, x, y, z, pitch, roll, yaw):
        self.updates.append((x, y, z, pitch, roll, yaw))

    def close(self):
        pass


def skeleton(subject_id, state=TrackingState.FULLY_TRACKED, position=(1.0, 2.0, 3.0)):
    return SkeletonEstimate(subject_id=subject_id, state=state, position=position)


def bundle(sequence_number, subjects=(), color_format=COLOR_RGB_640x480_30,
           depth_format=DEPTH_640x480_30):
    return FrameBundle(
        sequence_number=sequence_number,
        color_format=color_format,
        color_buffer=np.zeros((480, 640, 3), dtype=np.uint8),
        depth_format=depth_format,
        depth_buffer=np.zeros((480, 640), dtype=np.uint16),
        subjects=list(subjects)
    )


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def factory():
    return FakeFactory()
