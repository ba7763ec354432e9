#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Fusion Data Loaders Module

Frame sources (camera, video file, image sequence) and motion-sample
loading for replay.
"""

import os
import math
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple, Union

import cv2
import numpy as np
import pandas as pd


class AcquisitionError(RuntimeError):
    """A frame or motion source is unavailable. Fatal at startup."""


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class MotionSample:
    """Single device-motion event."""
    t: float  # timestamp (seconds)
    acc: Optional[np.ndarray]  # gravity-compensated [ax,ay,az] m/s², NaN where not reported
    acc_g: Optional[np.ndarray]  # gravity-included [ax,ay,az] m/s², NaN where not reported


@dataclass
class FrameItem:
    """Image file with timestamp."""
    t: float  # timestamp (seconds)
    path: str  # file path


# =============================================================================
# Loader Functions
# =============================================================================

def _optional_vector(row, cols: List[str], present: bool) -> Optional[np.ndarray]:
    if not present:
        return None
    vec = np.array([row[c] for c in cols], dtype=float)
    if not np.any(np.isfinite(vec)):
        return None
    return vec


def load_motion_csv(path: str, time_scale: float = 1.0) -> List[MotionSample]:
    """Load device-motion samples from CSV.

    Columns:
        t                 timestamp (multiplied by time_scale to get seconds)
        ax, ay, az        gravity-compensated acceleration (may be empty)
        ax_g, ay_g, az_g  acceleration including gravity (optional)

    At least one of the two vectors must be present. Empty cells are NaN and
    fall through to the other vector at integration time.
    """
    if not path or not os.path.exists(path):
        raise AcquisitionError(f"Motion CSV not found: {path}")

    df = pd.read_csv(path)

    if "t" not in df.columns:
        raise ValueError("Motion CSV missing timestamp column: t")

    acc_cols = ["ax", "ay", "az"]
    grav_cols = ["ax_g", "ay_g", "az_g"]
    has_acc = all(c in df.columns for c in acc_cols)
    has_grav = all(c in df.columns for c in grav_cols)
    if not has_acc and not has_grav:
        raise ValueError("Motion CSV needs ax,ay,az or ax_g,ay_g,az_g columns")

    df = df.sort_values("t").reset_index(drop=True)
    recs = []
    for _, r in df.iterrows():
        recs.append(MotionSample(
            t=float(r["t"]) * time_scale,
            acc=_optional_vector(r, acc_cols, has_acc),
            acc_g=_optional_vector(r, grav_cols, has_grav),
        ))

    print(f"[Motion] Loaded {len(recs)} samples"
          f"{' (gravity-compensated)' if has_acc else ''}"
          f"{' (including gravity)' if has_grav else ''}")
    return recs


def load_frame_index(images_dir: str, index_csv: str) -> List[FrameItem]:
    """Load image list from directory and index CSV (timestamp + filename)."""
    if not images_dir or not os.path.isdir(images_dir):
        raise AcquisitionError(f"Images directory not found: {images_dir}")
    if not index_csv or not os.path.exists(index_csv):
        raise AcquisitionError(f"Images index CSV not found: {index_csv}")

    df = pd.read_csv(index_csv)

    t_cols = [c for c in df.columns if c.lower() in ("t", "time", "timestamp") or c.lower().startswith("stamp")]
    f_cols = [c for c in df.columns if "file" in c.lower() or "name" in c.lower()]
    tcol = t_cols[0] if t_cols else None
    fcol = f_cols[0] if f_cols else None
    if tcol is None or fcol is None:
        raise ValueError("Images index CSV must have timestamp and filename columns")

    items = []
    skipped = 0
    for _, r in df.iterrows():
        fn = str(r[fcol]).strip()
        candidates = [os.path.join(images_dir, fn), os.path.join(images_dir, os.path.basename(fn)), fn]
        chosen = next((p for p in candidates if os.path.exists(p)), None)
        if chosen is None:
            skipped += 1
            continue
        items.append(FrameItem(float(r[tcol]), chosen))

    items.sort(key=lambda x: x.t)
    print(f"[Frames] Loaded {len(items)} images | Missing: {skipped}")
    return items


# =============================================================================
# Frame conversion
# =============================================================================

def to_gray(frame: np.ndarray) -> np.ndarray:
    """Convert a BGR/BGRA/gray frame to a single-channel uint8 image."""
    if frame is None:
        raise ValueError("Frame is None")
    if frame.ndim == 2:
        gray = frame
    elif frame.ndim == 3 and frame.shape[2] == 1:
        gray = frame[:, :, 0]
    elif frame.ndim == 3 and frame.shape[2] == 3:
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    elif frame.ndim == 3 and frame.shape[2] == 4:
        gray = cv2.cvtColor(frame, cv2.COLOR_BGRA2GRAY)
    else:
        raise ValueError(f"Unsupported frame shape: {frame.shape}")
    if gray.dtype != np.uint8:
        gray = cv2.normalize(gray, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)
    return gray


# =============================================================================
# Frame Sources
# =============================================================================

class VideoFrameSource:
    """
    Camera or video-file frame source backed by cv2.VideoCapture.

    Frame timestamps come from CAP_PROP_POS_MSEC when the backend reports
    them, otherwise frame_index / fps.

    Raises:
        AcquisitionError: if the device/file cannot be opened
    """

    def __init__(self, source: Union[int, str]):
        self.source = source
        if isinstance(source, str) and not source.isdigit() and not os.path.exists(source):
            raise AcquisitionError(f"Video file not found: {source}")
        self.cap = cv2.VideoCapture(int(source) if isinstance(source, str) and source.isdigit() else source)
        if not self.cap.isOpened():
            self.cap.release()
            raise AcquisitionError(f"Cannot open video source: {source}")

        self.fps = float(self.cap.get(cv2.CAP_PROP_FPS) or 0.0)
        self.width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self.height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self._idx = 0
        print(f"[Frames] Opened {source} ({self.width}x{self.height} @ {self.fps:.1f} fps)")

    def read(self) -> Optional[Tuple[float, np.ndarray]]:
        ok, frame = self.cap.read()
        if not ok or frame is None:
            return None
        pos_ms = self.cap.get(cv2.CAP_PROP_POS_MSEC)
        if pos_ms and math.isfinite(pos_ms) and pos_ms > 0:
            t = pos_ms / 1000.0
        elif self.fps > 0:
            t = self._idx / self.fps
        else:
            t = float(self._idx)
        self._idx += 1
        return t, frame

    def __iter__(self) -> Iterator[Tuple[float, np.ndarray]]:
        while True:
            item = self.read()
            if item is None:
                return
            yield item

    def release(self):
        if self.cap is not None:
            self.cap.release()
            self.cap = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False


class ImageSequenceSource:
    """Frame source over a timestamped list of image files."""

    def __init__(self, items: List[FrameItem]):
        if not items:
            raise AcquisitionError("Image sequence is empty")
        self.items = items

    @classmethod
    def from_index(cls, images_dir: str, index_csv: str) -> 'ImageSequenceSource':
        return cls(load_frame_index(images_dir, index_csv))

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[Tuple[float, np.ndarray]]:
        for item in self.items:
            img = cv2.imread(item.path, cv2.IMREAD_COLOR)
            if img is None:
                print(f"[Frames] WARNING: Failed to read image, skipped: {item.path}")
                continue
            yield item.t, img

    def release(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False
