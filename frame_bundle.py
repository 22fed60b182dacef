"""
Frame Bundle Module
Synchronized color + depth + skeleton observations and format-change detection
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np


class TrackingState(Enum):
    """Skeleton tracking quality reported by the sensor"""
    NOT_TRACKED = 0
    POSITION_ONLY = 1
    FULLY_TRACKED = 2


@dataclass(frozen=True)
class ImageFormat:
    """
    Image stream format

    Two formats are the same stream encoding when all fields match.
    """
    name: str
    width: int = 0
    height: int = 0
    fps: int = 0

    def __str__(self):
        if self.width and self.height:
            return f"{self.name} {self.width}x{self.height}@{self.fps}"
        return self.name


UNDEFINED_FORMAT = ImageFormat("Undefined")

# Common depth sensor formats
COLOR_RGB_640x480_30 = ImageFormat("RgbResolution640x480Fps30", 640, 480, 30)
COLOR_RGB_1280x960_12 = ImageFormat("RgbResolution1280x960Fps12", 1280, 960, 12)
DEPTH_640x480_30 = ImageFormat("Resolution640x480Fps30", 640, 480, 30)
DEPTH_320x240_30 = ImageFormat("Resolution320x240Fps30", 320, 240, 30)


@dataclass
class SkeletonEstimate:
    """
    One subject's skeleton in a frame

    position is the skeleton center in camera space (meters).
    keypoints, when present, is an [N, 3] array of (x, y, confidence) in
    color image pixels (COCO-17 order).
    """
    subject_id: int
    state: TrackingState
    position: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    keypoints: Optional[np.ndarray] = None

    @property
    def is_observed(self):
        """Fully tracked or position-only skeletons count as observed"""
        return self.state in (TrackingState.FULLY_TRACKED, TrackingState.POSITION_ONLY)


@dataclass
class FrameBundle:
    """
    One synchronized observation from the sensor

    Buffers are borrowed: consumers must not keep references to them
    after processing the bundle.
    """
    sequence_number: int
    color_format: ImageFormat
    color_buffer: Optional[np.ndarray]
    depth_format: ImageFormat
    depth_buffer: Optional[np.ndarray]
    subjects: List[SkeletonEstimate] = field(default_factory=list)

    def observed_subjects(self):
        """Subjects in bundle order that are fully tracked or position-only"""
        return [subject for subject in self.subjects if subject.is_observed]


class FormatWatcher:
    """
    Detects color/depth format changes between bundles

    A change in either stream counts as a change.
    """

    def __init__(self):
        self.last_color_format = UNDEFINED_FORMAT
        self.last_depth_format = UNDEFINED_FORMAT

    @property
    def initialized(self):
        """True once formats were seen"""
        return (self.last_color_format != UNDEFINED_FORMAT or
                self.last_depth_format != UNDEFINED_FORMAT)

    def check(self, bundle):
        """
        Compare bundle formats with the last seen ones and remember the new ones

        Args:
            bundle: FrameBundle

        Returns:
            changed: True if either format differs from the last bundle
        """
        changed = (bundle.color_format != self.last_color_format or
                   bundle.depth_format != self.last_depth_format)

        if changed:
            self.last_color_format = bundle.color_format
            self.last_depth_format = bundle.depth_format

        return changed
