#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Fusion Configuration Module
===========================

Handles YAML configuration loading and defines global constants for the
optical-flow + accelerometer displacement fusion.

Configuration Structure:
------------------------
The YAML config file contains:
- features: Shi-Tomasi corner detection (max_corners, quality_level,
  min_distance, block_size)
- optical_flow: Pyramidal Lucas-Kanade (win_size, max_level, criteria)
- calibration: pixel_to_meter conversion factor
- fusion: complementary filter weight (alpha)
- logging: runtime verbosity and rate limit
- output: debug CSV / overlay toggles

Every section is optional; missing keys fall back to the module defaults.

Units:
------
- pixel_to_meter: meters per pixel of average feature flow
- alpha: weight of the inertial term (1 - alpha goes to optical flow)
- Timestamps: seconds

Author: flowfusion project
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import cv2
import yaml

# ========================================
# Debug verbosity control
# ========================================
VERBOSE_DEBUG = False  # Per-frame tracker debug


# =============================================================================
# Default Configuration Variables (will be overridden by load_config)
# =============================================================================

# Corner detection
MAX_CORNERS = 100
QUALITY_LEVEL = 0.3
MIN_DISTANCE = 7
BLOCK_SIZE = 7

# Pyramidal Lucas-Kanade
LK_WIN_SIZE = (15, 15)
LK_MAX_LEVEL = 2
LK_MAX_ITER = 10
LK_EPSILON = 0.03

# Calibration (example value, to be calibrated per camera/lens)
PIXEL_TO_METER = 0.001

# Complementary filter: weight for the inertial term
FUSION_ALPHA = 0.6

# Runtime logging
RUNTIME_VERBOSITY = "quiet"
RUNTIME_LOG_INTERVAL_SEC = 1.0


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load YAML configuration file and convert to flat upper-case format.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Dictionary with configuration parameters:
        - MAX_CORNERS, QUALITY_LEVEL, MIN_DISTANCE, BLOCK_SIZE
        - LK_WIN_SIZE, LK_MAX_LEVEL, LK_MAX_ITER, LK_EPSILON
        - PIXEL_TO_METER
        - FUSION_ALPHA
        - RUNTIME_VERBOSITY, RUNTIME_LOG_INTERVAL_SEC
        - SAVE_DEBUG_DATA, SAVE_OVERLAY_FRAMES

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed

    Example:
        >>> config = load_config("configs/default.yaml")
        >>> print(f"alpha: {config['FUSION_ALPHA']:.2f}")
    """
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ValueError(f"Config root must be a mapping: {config_path}")

    result = {}

    # ========================================
    # Shi-Tomasi corner detection
    # ========================================
    feat = config.get('features', {}) or {}
    result['MAX_CORNERS'] = int(feat.get('max_corners', MAX_CORNERS))
    result['QUALITY_LEVEL'] = float(feat.get('quality_level', QUALITY_LEVEL))
    result['MIN_DISTANCE'] = float(feat.get('min_distance', MIN_DISTANCE))
    result['BLOCK_SIZE'] = int(feat.get('block_size', BLOCK_SIZE))

    # ========================================
    # Pyramidal Lucas-Kanade
    # ========================================
    # Termination: stop when the per-iteration update falls below epsilon
    # or after max_iter iterations, whichever comes first.
    flow = config.get('optical_flow', {}) or {}
    win = flow.get('win_size', list(LK_WIN_SIZE))
    if isinstance(win, (int, float)):
        win = [win, win]
    result['LK_WIN_SIZE'] = (int(win[0]), int(win[1]))
    result['LK_MAX_LEVEL'] = int(flow.get('max_level', LK_MAX_LEVEL))
    criteria = flow.get('criteria', {}) or {}
    result['LK_MAX_ITER'] = int(criteria.get('max_iter', LK_MAX_ITER))
    result['LK_EPSILON'] = float(criteria.get('epsilon', LK_EPSILON))

    # ========================================
    # Calibration
    # ========================================
    calib = config.get('calibration', {}) or {}
    result['PIXEL_TO_METER'] = float(calib.get('pixel_to_meter', PIXEL_TO_METER))

    # ========================================
    # Complementary filter
    # ========================================
    fusion = config.get('fusion', {}) or {}
    result['FUSION_ALPHA'] = float(fusion.get('alpha', FUSION_ALPHA))

    # ========================================
    # Logging / output
    # ========================================
    log_cfg = config.get('logging', {}) or {}
    result['RUNTIME_VERBOSITY'] = str(log_cfg.get('runtime_verbosity', RUNTIME_VERBOSITY))
    result['RUNTIME_LOG_INTERVAL_SEC'] = float(
        log_cfg.get('runtime_log_interval_sec', RUNTIME_LOG_INTERVAL_SEC))

    out = config.get('output', {}) or {}
    result['SAVE_DEBUG_DATA'] = bool(out.get('save_debug_data', False))
    result['SAVE_OVERLAY_FRAMES'] = bool(out.get('save_overlay_frames', False))

    return result


@dataclass
class FusionConfig:
    """
    Typed view of the fusion settings.

    Built from the flat dict returned by load_config() (or from defaults).
    CLI paths and runtime flags are attached by run_fusion.py.
    """
    max_corners: int = MAX_CORNERS
    quality_level: float = QUALITY_LEVEL
    min_distance: float = MIN_DISTANCE
    block_size: int = BLOCK_SIZE

    win_size: Tuple[int, int] = LK_WIN_SIZE
    max_level: int = LK_MAX_LEVEL
    max_iter: int = LK_MAX_ITER
    epsilon: float = LK_EPSILON

    pixel_to_meter: float = PIXEL_TO_METER
    alpha: float = FUSION_ALPHA

    runtime_verbosity: str = RUNTIME_VERBOSITY
    runtime_log_interval_sec: float = RUNTIME_LOG_INTERVAL_SEC

    save_debug_data: bool = False
    save_overlay_frames: bool = False
    output_dir: Optional[str] = None
    config_yaml: Optional[str] = None

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Reject out-of-range tunables."""
        if self.max_corners <= 0:
            raise ValueError(f"max_corners must be positive, got {self.max_corners}")
        if not 0.0 < self.quality_level <= 1.0:
            raise ValueError(f"quality_level must be in (0, 1], got {self.quality_level}")
        if self.min_distance < 0:
            raise ValueError(f"min_distance must be >= 0, got {self.min_distance}")
        if self.block_size <= 0:
            raise ValueError(f"block_size must be positive, got {self.block_size}")
        if self.win_size[0] <= 0 or self.win_size[1] <= 0:
            raise ValueError(f"win_size must be positive, got {self.win_size}")
        if self.max_level < 0:
            raise ValueError(f"max_level must be >= 0, got {self.max_level}")
        if self.max_iter <= 0 or self.epsilon <= 0:
            raise ValueError("criteria max_iter and epsilon must be positive")
        if self.pixel_to_meter <= 0:
            raise ValueError(f"pixel_to_meter must be positive, got {self.pixel_to_meter}")
        if not 0.0 <= self.alpha <= 1.0:
            raise ValueError(f"alpha must be in [0, 1], got {self.alpha}")
        if self.runtime_verbosity not in ("quiet", "verbose"):
            raise ValueError(f"Unknown runtime_verbosity: {self.runtime_verbosity}")

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> 'FusionConfig':
        """Build from the flat upper-case dict produced by load_config()."""
        return cls(
            max_corners=cfg.get('MAX_CORNERS', MAX_CORNERS),
            quality_level=cfg.get('QUALITY_LEVEL', QUALITY_LEVEL),
            min_distance=cfg.get('MIN_DISTANCE', MIN_DISTANCE),
            block_size=cfg.get('BLOCK_SIZE', BLOCK_SIZE),
            win_size=tuple(cfg.get('LK_WIN_SIZE', LK_WIN_SIZE)),
            max_level=cfg.get('LK_MAX_LEVEL', LK_MAX_LEVEL),
            max_iter=cfg.get('LK_MAX_ITER', LK_MAX_ITER),
            epsilon=cfg.get('LK_EPSILON', LK_EPSILON),
            pixel_to_meter=cfg.get('PIXEL_TO_METER', PIXEL_TO_METER),
            alpha=cfg.get('FUSION_ALPHA', FUSION_ALPHA),
            runtime_verbosity=cfg.get('RUNTIME_VERBOSITY', RUNTIME_VERBOSITY),
            runtime_log_interval_sec=cfg.get('RUNTIME_LOG_INTERVAL_SEC', RUNTIME_LOG_INTERVAL_SEC),
            save_debug_data=cfg.get('SAVE_DEBUG_DATA', False),
            save_overlay_frames=cfg.get('SAVE_OVERLAY_FRAMES', False),
        )

    @classmethod
    def from_yaml(cls, config_path: str) -> 'FusionConfig':
        """Load YAML and return the typed config."""
        config = cls.from_dict(load_config(config_path))
        config.config_yaml = config_path
        return config

    def feature_params(self) -> Dict[str, Any]:
        """Keyword arguments for cv2.goodFeaturesToTrack."""
        return dict(
            maxCorners=int(self.max_corners),
            qualityLevel=float(self.quality_level),
            minDistance=float(self.min_distance),
            blockSize=int(self.block_size),
        )

    def lk_params(self) -> Dict[str, Any]:
        """Keyword arguments for cv2.calcOpticalFlowPyrLK."""
        return dict(
            winSize=(int(self.win_size[0]), int(self.win_size[1])),
            maxLevel=int(self.max_level),
            criteria=(cv2.TERM_CRITERIA_EPS | cv2.TERM_CRITERIA_COUNT,
                      int(self.max_iter), float(self.epsilon)),
        )

    def print_summary(self):
        """Print the algorithm settings in effect."""
        print(f"\n[CONFIG] Algorithm settings:")
        print(f"  config_yaml: {self.config_yaml}")
        print(f"  features: max_corners={self.max_corners} quality_level={self.quality_level} "
              f"min_distance={self.min_distance} block_size={self.block_size}")
        print(f"  optical_flow: win_size={self.win_size} max_level={self.max_level} "
              f"criteria=(iter={self.max_iter}, eps={self.epsilon})")
        print(f"  pixel_to_meter: {self.pixel_to_meter}")
        print(f"  alpha: {self.alpha}")
