"""
Rider monitor: watches a camera for a passing rider and records the ride.

Loads layered configuration, sets up logging, builds the detector manager,
presence tracker and recording controller, and runs the frame loop until the
source ends or the user interrupts.

Usage:
    python src/main.py --config config/config.yaml

Arguments:
    --config: Path to configuration file
    --source: Camera index, stream URL or video file (overrides camera.device_id)
    --detector: Detector type (pose, motion, optical_flow, hybrid)
    --output-dir: Directory for recorded rides (overrides recording.output_dir)
"""

import argparse
import logging
import os
import sys
from typing import Any, Dict, Optional, Tuple

import yaml

from detection.manager import DetectorType
from models.config import Config
from ops.logging import setup_logging
from pipeline.engine import create_engine_from_config


VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
POSE_DETECTORS = (DetectorType.POSE.value, DetectorType.HYBRID.value)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base and return base."""
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
    return base


def _read_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration with layering:
    - `config/default.yaml` (checked in)
    - `config/config.yaml` (local overrides)
    - plus any explicitly provided `--config` path (treated as overrides)
    """
    config_dir = os.path.dirname(config_path)
    base_path = os.path.join(config_dir, "default.yaml")
    local_path = os.path.join(config_dir, "config.yaml")

    try:
        merged: Dict[str, Any] = {}
        if os.path.exists(base_path):
            merged = _read_yaml(base_path)
        if os.path.exists(local_path):
            merged = _deep_merge(merged, _read_yaml(local_path))
        if os.path.exists(config_path) and os.path.abspath(config_path) not in (
            os.path.abspath(local_path),
            os.path.abspath(base_path),
        ):
            merged = _deep_merge(merged, _read_yaml(config_path))
        return merged
    except (OSError, yaml.YAMLError) as e:
        logging.error(f"Failed to load configuration: {e}")
        sys.exit(1)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_config(config: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate configuration structure and values.

    Returns:
        Tuple of (is_valid, error_message)
    """
    for section in ['camera', 'detection', 'recording', 'log_path', 'log_level']:
        if section not in config:
            return False, f"Missing required configuration section: {section}"

    camera = config.get('camera') or {}
    if 'device_id' not in camera:
        return False, "Missing camera.device_id"
    device_id = camera['device_id']
    if isinstance(device_id, bool) or not isinstance(device_id, (int, str)):
        return False, "camera.device_id must be an integer (index) or string (URL or path)"
    if isinstance(device_id, int) and device_id < 0:
        return False, "camera.device_id integer must be non-negative"

    if 'resolution' not in camera:
        return False, "Missing camera.resolution"
    resolution = camera['resolution']
    if not isinstance(resolution, list) or len(resolution) != 2:
        return False, "camera.resolution must be a list of [width, height]"
    if not all(isinstance(x, int) and not isinstance(x, bool) and x > 0 for x in resolution):
        return False, "camera.resolution values must be positive integers"

    if 'fps' not in camera:
        return False, "Missing camera.fps"
    if not isinstance(camera['fps'], int) or isinstance(camera['fps'], bool) or camera['fps'] <= 0:
        return False, "camera.fps must be a positive integer"

    detection = config.get('detection') or {}
    detector_type = detection.get('type', DetectorType.MOTION.value)
    if detector_type not in DetectorType.ids():
        return False, f"detection.type must be one of: {', '.join(DetectorType.ids())}"
    sensitivity = detection.get('sensitivity', 70)
    if not _is_number(sensitivity) or not (0 <= sensitivity <= 100):
        return False, "detection.sensitivity must be a number between 0 and 100"
    settings = detection.get('settings')
    if settings is not None and not isinstance(settings, dict):
        return False, "detection.settings must be a mapping of option key to value"
    if detector_type in POSE_DETECTORS:
        pose = detection.get('pose') or {}
        if not isinstance(pose.get('model'), str) or not pose.get('model'):
            return False, f"detection.pose.model is required when detection.type is '{detector_type}'"
        if 'timeout_s' in pose and (not _is_number(pose['timeout_s']) or pose['timeout_s'] <= 0):
            return False, "detection.pose.timeout_s must be a positive number"

    recording = config.get('recording') or {}
    for key in ['duration_s', 'post_rider_delay_s', 'cooldown_s', 'saving_reset_delay_s', 'error_reset_delay_s']:
        if key in recording and (not _is_number(recording[key]) or recording[key] <= 0):
            return False, f"recording.{key} must be a positive number"
    if 'output_dir' in recording and not isinstance(recording['output_dir'], str):
        return False, "recording.output_dir must be a string"

    if config['log_level'] not in VALID_LOG_LEVELS:
        return False, f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}"

    return True, None


def apply_overrides(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Apply command-line overrides on top of the loaded config."""
    if args.source is not None:
        source = args.source
        config.setdefault('camera', {})['device_id'] = int(source) if source.isdigit() else source
    if args.detector is not None:
        config.setdefault('detection', {})['type'] = args.detector
    if args.output_dir is not None:
        config.setdefault('recording', {})['output_dir'] = args.output_dir
    return config


def main():
    """Main application function."""
    parser = argparse.ArgumentParser(description='Rider Monitor - presence-triggered ride recording')
    parser.add_argument('--config', type=str, default='config/config.yaml',
                        help='Path to configuration file')
    parser.add_argument('--source', type=str, default=None,
                        help='Camera index, stream URL or video file (overrides camera.device_id)')
    parser.add_argument('--detector', type=str, default=None, choices=DetectorType.ids(),
                        help='Detector type (overrides detection.type)')
    parser.add_argument('--output-dir', type=str, default=None,
                        help='Directory for recorded rides (overrides recording.output_dir)')
    args = parser.parse_args()

    config = apply_overrides(load_config(args.config), args)

    is_valid, error_msg = validate_config(config)
    if not is_valid:
        logging.error(f"Configuration validation failed: {error_msg}")
        sys.exit(1)

    setup_logging(config['log_path'], config['log_level'])
    logging.info("Starting Rider Monitor")

    typed = Config.from_dict(config)
    logging.info(
        f"Detector: {typed.detection.type}, sensitivity: {typed.detection.sensitivity}, "
        f"output: {typed.recording.output_dir}"
    )

    engine = create_engine_from_config(typed)
    engine.run()

    logging.info("Rider Monitor stopped")


if __name__ == "__main__":
    main()
