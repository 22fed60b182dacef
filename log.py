"""
Depth Head Tracker - Logging Module
Logging functions and helper utilities
"""

from datetime import datetime
import os
import sys


# Optional log file (set by configure_file_logging)
_log_file_path = None


def configure_file_logging(log_file):
    """
    Mirror every log line into a file

    Args:
        log_file: Log file path (None disables file logging)
    """
    global _log_file_path

    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
    _log_file_path = log_file


def log_with_timestamp(message, log_type="INFO"):
    """Print log message with timestamp"""
    timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
    line = f"[{timestamp}] [{log_type}] {message}"
    print(line)
    sys.stdout.flush()

    if _log_file_path:
        try:
            with open(_log_file_path, 'a', encoding='utf-8') as f:
                f.write(line + "\n")
        except OSError as e:
            print(f"[{timestamp}] [WARNING] Log file could not be written: {e}")


def log_session_created(subject_id, sequence_number):
    """New subject session"""
    log_with_timestamp(f"ID:{subject_id} - SESSION CREATED at frame #{sequence_number}", "ENTRY")


def log_session_evicted(subject_id, missed_frames):
    """Subject session removed after too many missed frames"""
    log_with_timestamp(f"ID:{subject_id} - SESSION EVICTED | Missed frames: {missed_frames}", "EXIT")


def log_format_change(color_format, depth_format, session_count):
    """Image format change - all sessions are reset"""
    log_with_timestamp(f"Format changed -> color: {color_format}, depth: {depth_format} | "
                       f"Resetting {session_count} session(s)", "FORMAT")


def log_bundle_dropped(sequence_number, last_sequence):
    """Out-of-order or duplicate frame bundle"""
    log_with_timestamp(f"Frame #{sequence_number} dropped (last processed: #{last_sequence})", "WARNING")


def log_estimator_failure(subject_id, error):
    """Pose estimator could not be created"""
    log_with_timestamp(f"ID:{subject_id} - pose estimator could not be created: {error}", "ESTIMATOR")


def log_pose(subject_id, x, y, z, pitch, roll, yaw):
    """Forwarded pose"""
    log_with_timestamp(f"ID:{subject_id} | x={x:.3f} y={y:.3f} z={z:.3f} | "
                       f"Pitch={pitch:.1f}°, Roll={roll:.1f}°, Yaw={yaw:.1f}°", "POSE")


def log_system_start(device, sink_description, max_missed_frames):
    """System startup logs"""
    log_with_timestamp("Starting depth sensor head tracking...", "START")
    log_with_timestamp("", "SYSTEM")
    log_with_timestamp(f"DEVICE: {str(device).upper()}", "SYSTEM")
    log_with_timestamp(f"POSE OUTPUT: {sink_description}", "SYSTEM")
    log_with_timestamp("", "SYSTEM")
    log_with_timestamp("  SESSION TRACKING ACTIVE!", "SYSTEM")
    log_with_timestamp("- One pose session per tracked skeleton", "SYSTEM")
    log_with_timestamp("- Only the first tracked skeleton is forwarded", "SYSTEM")
    log_with_timestamp(f"- Sessions expire after {max_missed_frames} missed frames", "SYSTEM")
    log_with_timestamp("- Image format change resets all sessions", "SYSTEM")
    log_with_timestamp("", "SYSTEM")


def log_system_stats(stats, total_runtime, skipped_frames=0):
    """System shutdown statistics"""
    log_with_timestamp("System shutting down...", "CLEANUP")

    bundles = stats.get('bundles_processed', 0)

    log_with_timestamp("=== SYSTEM STATISTICS ===", "STATS")
    log_with_timestamp(f"Total frames processed: {bundles}", "STATS")
    log_with_timestamp(f"Frames skipped (busy): {skipped_frames}", "STATS")
    log_with_timestamp(f"Frames dropped (out of order): {stats.get('bundles_dropped', 0)}", "STATS")
    log_with_timestamp(f"Total runtime: {total_runtime:.2f} seconds ({total_runtime/60:.1f} minutes)", "STATS")
    if total_runtime > 0:
        log_with_timestamp(f"Average FPS: {bundles/total_runtime:.2f}", "STATS")
    log_with_timestamp("", "STATS")
    log_with_timestamp("=== SESSION STATISTICS ===", "STATS")
    log_with_timestamp(f"Sessions created: {stats.get('sessions_created', 0)}", "STATS")
    log_with_timestamp(f"Sessions evicted: {stats.get('sessions_evicted', 0)}", "STATS")
    log_with_timestamp(f"Sessions reset by format change: {stats.get('sessions_invalidated', 0)}", "STATS")
    log_with_timestamp(f"Format changes: {stats.get('format_changes', 0)}", "STATS")
    log_with_timestamp(f"Poses forwarded: {stats.get('poses_forwarded', 0)}", "STATS")
    log_with_timestamp("Head tracking completed!", "COMPLETE")
