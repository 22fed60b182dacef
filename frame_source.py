"""
Depth Sensor Frame Source
OpenNI depth sensor capture (color + depth) delivering frame bundles
to a single consumer, skipping frames while the consumer is busy
"""

import threading
import time

import cv2
import numpy as np

from frame_bundle import FrameBundle, ImageFormat
from log import log_with_timestamp


class FrameDispatcher:
    """
    Hands bundles to one consumer, never more than one at a time

    A bundle offered while the previous one is still being processed is
    skipped, not queued.
    """

    def __init__(self, callback):
        """
        Args:
            callback: Called with each accepted FrameBundle
        """
        self.callback = callback
        self._busy = threading.Lock()
        self._worker = None
        self.dispatched = 0
        self.skipped = 0

    @property
    def busy(self):
        return self._busy.locked()

    def dispatch(self, bundle):
        """
        Process a bundle in the calling thread

        Returns:
            True if processed, False if skipped
        """
        if not self._busy.acquire(blocking=False):
            self.skipped += 1
            return False

        try:
            self._run(bundle)
        finally:
            self._busy.release()
        return True

    def dispatch_in_background(self, bundle):
        """
        Process a bundle in a worker thread

        Returns:
            True if accepted, False if skipped
        """
        if not self._busy.acquire(blocking=False):
            self.skipped += 1
            return False

        def work():
            try:
                self._run(bundle)
            finally:
                self._busy.release()

        self._worker = threading.Thread(target=work, name="bundle-processing", daemon=True)
        self._worker.start()
        return True

    def _run(self, bundle):
        self.dispatched += 1
        try:
            self.callback(bundle)
        except Exception as e:
            log_with_timestamp(f"Frame #{bundle.sequence_number} processing error: {e}", "ERROR")

    def wait_idle(self, timeout=None):
        """Wait until the current bundle is processed"""
        worker = self._worker
        if worker is not None and worker.is_alive():
            worker.join(timeout)
        return not self.busy


class DepthSensorSource:
    """
    Depth sensor capture through OpenCV's OpenNI2 backend

    Features:
    - Capture thread producing numbered frame bundles
    - Reused depth buffer (reallocated only when the depth format changes)
    - Skeletons attached by a skeleton provider
    - Sensor tilt in fixed steps within the motor range
    """

    def __init__(self, dispatcher, skeleton_provider=None, device=0,
                 tilt_step_degrees=5, max_tilt_degrees=27, motor=None):
        """
        Args:
            dispatcher: FrameDispatcher receiving the bundles
            skeleton_provider: Callable(color, depth) -> list of SkeletonEstimate
            device: OpenNI device index
            tilt_step_degrees: Tilt change per tilt_up/tilt_down
            max_tilt_degrees: Motor range (+/-)
            motor: Callable(angle) driving the tilt motor (None = no motor)
        """
        self.dispatcher = dispatcher
        self.skeleton_provider = skeleton_provider
        self.device = device
        self.tilt_step_degrees = tilt_step_degrees
        self.max_tilt_degrees = max_tilt_degrees
        self.motor = motor
        self.elevation_angle = 0

        self.cap = None
        self._running = False
        self._thread = None

        self.frame_number = 0
        self.fps = 30
        self.depth_image = None
        self.depth_format = None

    def connect(self):
        """Open the sensor"""
        log_with_timestamp(f"Connecting to depth sensor #{self.device}...", "CAMERA")

        self.cap = cv2.VideoCapture(cv2.CAP_OPENNI2 + self.device)
        if not self.cap.isOpened():
            log_with_timestamp("Could not connect to depth sensor!", "ERROR")
            self.cap = None
            return False

        fps = int(self.cap.get(cv2.CAP_PROP_FPS))
        # Use default value if FPS is abnormal
        self.fps = fps if 0 < fps <= 120 else 30

        log_with_timestamp("Depth sensor connected!", "CAMERA")
        log_with_timestamp(f"FPS: {self.fps}", "CAMERA")
        return True

    def start(self):
        """
        Connect and start capturing

        Returns:
            bool: Was successful?
        """
        if self._running:
            return True

        try:
            if not self.connect():
                return False
        except cv2.error as e:
            log_with_timestamp(f"Error initializing depth sensor: {e}", "ERROR")
            return False

        self._running = True
        self._thread = threading.Thread(target=self._capture_loop, name="sensor-capture", daemon=True)
        self._thread.start()
        return True

    def stop(self):
        """Stop capturing and wait for the last bundle to be processed"""
        self._running = False

        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None

        self.dispatcher.wait_idle()

        if self.cap is not None:
            self.cap.release()
            self.cap = None
            log_with_timestamp("Depth sensor closed", "CAMERA")

    def _capture_loop(self):
        consecutive_failures = 0

        while self._running:
            if not self.cap.grab():
                consecutive_failures += 1
                if consecutive_failures <= 3:
                    log_with_timestamp(f"WARNING: Frame could not be read! (Failed: {consecutive_failures})", "WARNING")
                time.sleep(0.05)
                continue
            consecutive_failures = 0
            self.frame_number += 1

            # Previous bundle still in work, drop this frame
            if self.dispatcher.busy:
                self.dispatcher.skipped += 1
                continue

            ok_color, color = self.cap.retrieve(None, cv2.CAP_OPENNI_BGR_IMAGE)
            ok_depth, depth = self.cap.retrieve(None, cv2.CAP_OPENNI_DEPTH_MAP)
            if not ok_color or not ok_depth or color is None or depth is None:
                continue

            bundle = self.build_bundle(color, depth)
            self.dispatcher.dispatch_in_background(bundle)

    def build_bundle(self, color, depth):
        """
        Frame bundle for the current frame

        Args:
            color: [H, W, 3] BGR image
            depth: [H, W] uint16 depth map (mm)

        Returns:
            FrameBundle
        """
        color_format = ImageFormat("Bgr", color.shape[1], color.shape[0], self.fps)
        depth_format = ImageFormat("DepthMillimeters", depth.shape[1], depth.shape[0], self.fps)

        if depth_format != self.depth_format or self.depth_image is None:
            self.depth_image = np.empty(depth.shape, dtype=np.uint16)
            self.depth_format = depth_format
        np.copyto(self.depth_image, depth, casting='unsafe')

        subjects = []
        if self.skeleton_provider is not None:
            subjects = self.skeleton_provider(color, self.depth_image)

        return FrameBundle(
            sequence_number=self.frame_number,
            color_format=color_format,
            color_buffer=color,
            depth_format=depth_format,
            depth_buffer=self.depth_image,
            subjects=subjects
        )

    def tilt_up(self):
        return self.tilt(self.tilt_step_degrees)

    def tilt_down(self):
        return self.tilt(-self.tilt_step_degrees)

    def tilt(self, degrees):
        """
        Change the sensor elevation

        Returns:
            New elevation angle (clamped to the motor range)
        """
        angle = max(-self.max_tilt_degrees, min(self.max_tilt_degrees, self.elevation_angle + degrees))
        self.elevation_angle = angle

        if self.motor is not None:
            self.motor(angle)
        else:
            log_with_timestamp(f"No tilt motor, elevation stays physical (requested {angle}°)", "WARNING")

        return angle
