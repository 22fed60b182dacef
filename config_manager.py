"""
Configuration Manager
Loads and manages all system parameters from YAML files
"""

import yaml
import os
import copy
from typing import Dict, Any, Optional
from log import log_with_timestamp


DEFAULT_CONFIG = {
    'tracking': {
        'max_missed_frames': 100,
        'forward_last_known_pose': False
    },
    'sensor': {
        'device': 0,
        'tilt_step_degrees': 5,
        'max_tilt_degrees': 27,
        'intrinsics': {
            'fx': 525.0,
            'fy': 525.0,
            'cx': 319.5,
            'cy': 239.5
        }
    },
    'skeleton': {
        'model_path': 'yolo11n-pose.pt',
        'device': 'auto',
        'conf_threshold': 0.25,
        'keypoint_confidence': 0.3,
        'min_visible_keypoints': 8,
        'distance_threshold': 0.8,
        'hit_counter_max': 30,
        'initialization_delay': 2
    },
    'head_pose': {
        'keypoint_confidence': 0.3,
        'min_face_width_pixels': 20,
        'yaw_scale_degrees': 30,
        'pitch_scale_degrees': 45
    },
    'sink': {
        'type': 'udp',
        'host': '127.0.0.1',
        'port': 4242
    },
    'logging': {
        'log_to_file': False,
        'log_file': 'logs/head_tracker.log',
        'log_poses': False,
        'stats_every_n_frames': 300
    }
}


class ConfigManager:
    """
    Configuration Manager - Loads settings from YAML files

    Features:
    - Load configuration from YAML files
    - Default values for every missing key
    - Validation
    """

    def __init__(self, config_path: str = "config.yaml"):
        """
        Args:
            config_path: Configuration file path
        """
        self.config_path = config_path
        self.config = {}
        self._load_config()

    def _load_config(self):
        """Load configuration file"""
        try:
            if os.path.exists(self.config_path):
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    loaded = yaml.safe_load(f) or {}
                self.config = _merge(copy.deepcopy(DEFAULT_CONFIG), loaded)
                log_with_timestamp(f"Configuration loaded: {self.config_path}", "CONFIG")
            else:
                log_with_timestamp(f"Configuration file not found: {self.config_path}", "WARNING")
                log_with_timestamp("Using default values...", "CONFIG")
                self._set_defaults()
        except (OSError, yaml.YAMLError) as e:
            log_with_timestamp(f"Configuration could not be loaded: {e}", "ERROR")
            log_with_timestamp("Using default values...", "CONFIG")
            self._set_defaults()

    def _set_defaults(self):
        """Default configuration values"""
        self.config = copy.deepcopy(DEFAULT_CONFIG)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value

        Args:
            key: Dot-separated key (e.g., 'sink.port')
            default: Default value

        Returns:
            Configuration value
        """
        keys = key.split('.')
        value = self.config

        try:
            for k in keys:
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any):
        """
        Set configuration value

        Args:
            key: Dot-separated key
            value: New value
        """
        keys = key.split('.')
        config = self.config

        # Navigate to the last key
        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def get_tracking_config(self) -> Dict[str, Any]:
        """Get session tracking configuration"""
        return self.get('tracking', {})

    def get_sensor_config(self) -> Dict[str, Any]:
        """Get depth sensor configuration"""
        return self.get('sensor', {})

    def get_skeleton_config(self) -> Dict[str, Any]:
        """Get skeleton detection configuration"""
        return self.get('skeleton', {})

    def get_head_pose_config(self) -> Dict[str, Any]:
        """Get head pose estimation configuration"""
        return self.get('head_pose', {})

    def get_sink_config(self) -> Dict[str, Any]:
        """Get pose output configuration"""
        return self.get('sink', {})

    def get_logging_config(self) -> Dict[str, Any]:
        """Get logging configuration"""
        return self.get('logging', {})

    def save_config(self, path: Optional[str] = None):
        """
        Save configuration to file

        Args:
            path: Save path (use current path if None)
        """
        save_path = path or self.config_path

        try:
            directory = os.path.dirname(save_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

            with open(save_path, 'w', encoding='utf-8') as f:
                yaml.dump(self.config, f, default_flow_style=False,
                          allow_unicode=True, sort_keys=False)
            log_with_timestamp(f"Configuration saved: {save_path}", "CONFIG")
        except OSError as e:
            log_with_timestamp(f"Configuration could not be saved: {e}", "ERROR")

    def validate_config(self) -> bool:
        """
        Validate configuration

        Returns:
            True if valid, False otherwise
        """
        required_sections = ['tracking', 'sensor', 'sink']

        for section in required_sections:
            if section not in self.config:
                log_with_timestamp(f"Missing section: {section}", "ERROR")
                return False

        max_missed = self.get('tracking.max_missed_frames')
        if isinstance(max_missed, bool) or not isinstance(max_missed, int) or max_missed < 0:
            log_with_timestamp(f"tracking.max_missed_frames must be a non-negative integer: {max_missed}", "ERROR")
            return False

        sink_type = self.get('sink.type')
        if sink_type not in ('console', 'udp'):
            log_with_timestamp(f"Unknown sink type: {sink_type}", "ERROR")
            return False

        port = self.get('sink.port')
        if sink_type == 'udp' and (not isinstance(port, int) or not 0 < port < 65536):
            log_with_timestamp(f"Invalid UDP port: {port}", "ERROR")
            return False

        intrinsics = self.get('sensor.intrinsics', {})
        if intrinsics.get('fx', 0) <= 0 or intrinsics.get('fy', 0) <= 0:
            log_with_timestamp("Camera focal lengths must be positive", "WARNING")

        log_with_timestamp("Configuration validation successful", "CONFIG")
        return True

    def get_device(self) -> str:
        """Get skeleton model device (with auto detection)"""
        device = self.get('skeleton.device', 'auto')

        if device == 'auto':
            try:
                import torch
                if torch.cuda.is_available():
                    device = 'cuda'
                    log_with_timestamp("GPU found, using CUDA", "SYSTEM")
                else:
                    device = 'cpu'
                    log_with_timestamp("GPU not found, using CPU", "WARNING")
            except ImportError:
                device = 'cpu'
                log_with_timestamp("PyTorch not found, using CPU", "WARNING")

        return device


def _merge(base, override):
    """Recursively merge override into base"""
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


_configs = {}


def get_config(config_file: str = "config.yaml") -> ConfigManager:
    """Get config instance - one per file, loaded on first use"""
    if config_file not in _configs:
        _configs[config_file] = ConfigManager(config_file)
    return _configs[config_file]
