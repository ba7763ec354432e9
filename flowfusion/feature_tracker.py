#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Feature Tracker Module

Sparse optical-flow front-end:
1. Shi-Tomasi corner detector (cv2.goodFeaturesToTrack)
2. Pyramidal KLT tracking (cv2.calcOpticalFlowPyrLK)
3. Mean pixel displacement over successfully tracked points
4. Full re-detection on every frame

Output is in pixels. Conversion to meters is left to the caller so the
tracker stays independent of the camera/lens calibration.

Author: flowfusion project
"""

from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from .config import FusionConfig, VERBOSE_DEBUG
from .state_container import CycleArena


@dataclass
class PixelDisplacement:
    """Average feature displacement between two frames (pixels)."""
    dx: float = 0.0
    dy: float = 0.0

    @property
    def magnitude(self) -> float:
        """Euclidean length in pixels."""
        return float(np.hypot(self.dx, self.dy))


@dataclass
class TrackResult:
    """Outcome of one track() call."""
    displacement: PixelDisplacement
    num_points: int  # points propagated from the previous frame
    num_tracked: int  # points with status == 1
    num_redetected: int  # size of the new point set

    @property
    def degraded(self) -> bool:
        """True when no point survived and the previous displacement was held."""
        return self.num_tracked == 0


def detect_features(img_gray: np.ndarray, feature_params: dict) -> np.ndarray:
    """
    Detect Shi-Tomasi corners.

    Returns:
        (N, 2) float32 array, empty (0, 2) for a textureless image.
    """
    corners = cv2.goodFeaturesToTrack(img_gray, **feature_params)
    if corners is None or len(corners) == 0:
        return np.empty((0, 2), dtype=np.float32)
    return corners.reshape(-1, 2).astype(np.float32)


class FeatureTracker:
    """
    Frame-to-frame sparse feature tracker.

    Keeps the previous grayscale frame and the points detected in it. Each
    track() propagates those points into the new frame, averages the motion
    of the ones that were tracked, and then replaces the stored frame and
    points with the new frame and a freshly detected point set. Re-seeding
    every frame means there are no long-lived tracks and the feature count
    never decays.

    Usage:
        tracker = FeatureTracker(FusionConfig())
        tracker.initialize(gray0)
        result = tracker.track(gray1)
        print(result.displacement.dx, result.displacement.dy)
    """

    def __init__(self, config: Optional[FusionConfig] = None):
        self.config = config if config is not None else FusionConfig()
        self.feature_params = self.config.feature_params()
        self.lk_params = self.config.lk_params()

        # Tracker state, replaced wholesale every frame
        self.prev_gray: Optional[np.ndarray] = None
        self.prev_points: Optional[np.ndarray] = None

        # Held when a frame has no successfully tracked points
        self.last_displacement = PixelDisplacement()

        self.frame_idx = -1

    @property
    def initialized(self) -> bool:
        return self.prev_gray is not None

    def initialize(self, img_gray: np.ndarray) -> int:
        """Detect the initial point set. Must be called once, before track()."""
        if self.initialized:
            raise RuntimeError("FeatureTracker.initialize() called twice")
        _check_gray(img_gray)

        self.frame_idx = 0
        self._reseed(img_gray)

        if len(self.prev_points) > 0:
            print(f"[TRACK][INIT] Initialized {len(self.prev_points)} features")
        else:
            print("[TRACK][INIT] WARNING: No features detected!")
        return len(self.prev_points)

    def track(self, img_gray: np.ndarray, arena: Optional[CycleArena] = None) -> TrackResult:
        """
        Track the stored points into img_gray.

        Args:
            img_gray: Current grayscale frame (H,W) uint8
            arena: Optional per-cycle arena that takes ownership of the
                intermediate next-points/status/error buffers

        Returns:
            TrackResult whose displacement is the mean (dx, dy) of the tracked
            points, or the previous displacement when none were tracked.
        """
        if not self.initialized:
            raise RuntimeError("FeatureTracker.track() called before initialize()")
        _check_gray(img_gray)

        self.frame_idx += 1
        p0 = self.prev_points
        num_points = len(p0)
        num_tracked = 0

        if num_points > 0:
            p1, st, err = cv2.calcOpticalFlowPyrLK(
                self.prev_gray, img_gray, p0.reshape(-1, 1, 2), None, **self.lk_params)
            if arena is not None:
                arena.hold("next_points", p1)
                arena.hold("status", st)
                arena.hold("error", err)

            if p1 is not None and st is not None:
                good = st.reshape(-1) == 1
                num_tracked = int(np.count_nonzero(good))
                if num_tracked > 0:
                    flow = p1.reshape(-1, 2)[good] - p0.reshape(-1, 2)[good]
                    mean_flow = flow.mean(axis=0)
                    self.last_displacement = PixelDisplacement(
                        dx=float(mean_flow[0]), dy=float(mean_flow[1]))

        if VERBOSE_DEBUG:
            print(f"[TRACK] frame={self.frame_idx} tracked={num_tracked}/{num_points} "
                  f"dx={self.last_displacement.dx:.3f} dy={self.last_displacement.dy:.3f}")

        self._reseed(img_gray)

        return TrackResult(
            displacement=PixelDisplacement(self.last_displacement.dx, self.last_displacement.dy),
            num_points=num_points,
            num_tracked=num_tracked,
            num_redetected=len(self.prev_points),
        )

    def _reseed(self, img_gray: np.ndarray):
        """Replace the stored frame and points with img_gray and its corners."""
        self.prev_gray = img_gray.copy()
        self.prev_points = detect_features(self.prev_gray, self.feature_params)


def _check_gray(img_gray: np.ndarray):
    if img_gray is None:
        raise ValueError("Input image is None")
    if img_gray.ndim != 2:
        raise ValueError("FeatureTracker expects a grayscale image (H,W).")
