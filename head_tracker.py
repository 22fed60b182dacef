"""
Depth Sensor Head Tracker
Forwards the head pose of the first tracked person to opentrack
"""

import argparse
import sys
import time

from config_manager import get_config
from frame_source import DepthSensorSource, FrameDispatcher
from log import log_with_timestamp, log_system_start, log_system_stats, configure_file_logging
from pose_estimator import head_pose_estimator_factory
from pose_sink import create_sink
from tracking import SessionRegistry


class HeadTracker:
    """
    Sensor -> session registry -> pose sink wiring
    """

    def __init__(self, config, sink, skeleton_provider=None):
        """
        Args:
            config: ConfigManager
            sink: PoseSink
            skeleton_provider: Callable(color, depth) -> skeletons
        """
        self.config = config
        self.sink = sink

        tracking_config = config.get_tracking_config()
        sensor_config = config.get_sensor_config()
        logging_config = config.get_logging_config()

        self.registry = SessionRegistry(
            sink=sink,
            estimator_factory=head_pose_estimator_factory(
                sensor_config.get('intrinsics', {}), config.get_head_pose_config()),
            max_missed_frames=tracking_config.get('max_missed_frames', 100),
            forward_last_known_pose=tracking_config.get('forward_last_known_pose', False),
            log_poses=logging_config.get('log_poses', False)
        )
        self.stats_every_n_frames = logging_config.get('stats_every_n_frames', 300)

        self.dispatcher = FrameDispatcher(self.on_bundle)
        self.source = DepthSensorSource(
            self.dispatcher,
            skeleton_provider=skeleton_provider,
            device=sensor_config.get('device', 0),
            tilt_step_degrees=sensor_config.get('tilt_step_degrees', 5),
            max_tilt_degrees=sensor_config.get('max_tilt_degrees', 27)
        )
        self.start_time = None

    def on_bundle(self, bundle):
        self.registry.process_bundle(bundle)

        if self.stats_every_n_frames and bundle.sequence_number % self.stats_every_n_frames == 0:
            stats = self.registry.get_stats()
            log_with_timestamp(f"Frame #{bundle.sequence_number:06d} | "
                               f"Sessions: {stats['active_sessions']} | "
                               f"Poses: {stats['poses_forwarded']} | "
                               f"Skipped: {self.dispatcher.skipped}", "FRAME")

    def start(self):
        self.start_time = time.time()
        return self.source.start()

    def stop(self):
        self.source.stop()
        # Sessions must not be destroyed under a bundle still in work
        self.dispatcher.wait_idle()
        self.registry.shutdown()
        self.sink.close()

        total_runtime = time.time() - self.start_time if self.start_time else 0.0
        log_system_stats(self.registry.get_stats(), total_runtime, self.dispatcher.skipped)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Depth sensor head tracker for opentrack")
    parser.add_argument('--config', default='config.yaml', help='Configuration file')
    parser.add_argument('--sink', choices=['console', 'udp'], help='Pose output')
    parser.add_argument('--host', help='opentrack host (udp output)')
    parser.add_argument('--port', type=int, help='opentrack port (udp output)')
    parser.add_argument('--max-missed-frames', type=int, help='Frames before a lost person is dropped')
    return parser.parse_args(argv)


def apply_overrides(config, args):
    """Command line values take precedence over the config file"""
    if args.sink:
        config.set('sink.type', args.sink)
    if args.host:
        config.set('sink.host', args.host)
    if args.port is not None:
        config.set('sink.port', args.port)
    if args.max_missed_frames is not None:
        config.set('tracking.max_missed_frames', args.max_missed_frames)
    return config


def main(argv=None):
    """Head tracking with a depth sensor"""
    args = parse_args(argv)
    config = apply_overrides(get_config(args.config), args)

    if not config.validate_config():
        return 1

    logging_config = config.get_logging_config()
    if logging_config.get('log_to_file', False):
        configure_file_logging(logging_config.get('log_file'))

    # Heavy model imports only when actually running
    from skeleton_provider import SkeletonProvider

    device = config.get_device()
    skeleton_config = config.get_skeleton_config()
    skeleton_provider = SkeletonProvider(
        model_path=skeleton_config.get('model_path', 'yolo11n-pose.pt'),
        device=device,
        intrinsics=config.get('sensor.intrinsics'),
        conf_threshold=skeleton_config.get('conf_threshold', 0.25),
        keypoint_confidence=skeleton_config.get('keypoint_confidence', 0.3),
        min_visible_keypoints=skeleton_config.get('min_visible_keypoints', 8),
        distance_threshold=skeleton_config.get('distance_threshold', 0.8),
        hit_counter_max=skeleton_config.get('hit_counter_max', 30),
        initialization_delay=skeleton_config.get('initialization_delay', 2)
    )

    sink = create_sink(config.get_sink_config())
    tracker = HeadTracker(config, sink, skeleton_provider)

    log_system_start(device, sink.describe(), tracker.registry.max_missed_frames)

    if not tracker.start():
        print("ERROR: Could not start the depth sensor!")
        print("Please check:")
        print("1. Sensor is connected and powered")
        print("2. OpenNI2 drivers are installed")
        sink.close()
        return 1

    print("Controls:")
    print("  'u' + Enter = Tilt up")
    print("  'd' + Enter = Tilt down")
    print("  Enter       = Exit")

    try:
        while True:
            command = input().strip().lower()
            if command == 'u':
                tracker.source.tilt_up()
            elif command == 'd':
                tracker.source.tilt_down()
            else:
                break
    except (KeyboardInterrupt, EOFError):
        log_with_timestamp("User issued exit command...", "EXIT")

    tracker.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
