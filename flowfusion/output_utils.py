#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Fusion Output Utilities Module

Handles CSV output, debug logs and frame overlays for the fusion loop.
Includes the per-frame estimate log, optional debug CSV writers, overlay
rendering of the displacement readout, and run statistics.

Author: flowfusion project
"""

import os
from typing import Any, Dict, Optional

import cv2
import numpy as np
import pandas as pd


ESTIMATE_COLUMNS = (
    "t,frame,fused_m,flow_m,accel_m,avg_dx_px,avg_dy_px,"
    "ax,ay,az,num_points,num_tracked,degraded"
)


# =============================================================================
# Estimate log
# =============================================================================

def init_output_csvs(output_dir: str) -> Dict[str, str]:
    """
    Initialize output CSV files.

    Args:
        output_dir: Output directory path

    Returns:
        Dictionary of CSV file paths
    """
    os.makedirs(output_dir, exist_ok=True)

    paths = {}

    paths['estimates_csv'] = os.path.join(output_dir, "estimates.csv")
    with open(paths['estimates_csv'], "w", newline="") as f:
        f.write(ESTIMATE_COLUMNS + "\n")

    return paths


def log_estimate(estimates_csv: Optional[str], estimate: Any):
    """Append one FusionEstimate row."""
    if estimates_csv is None:
        return
    acc = estimate.last_acceleration
    with open(estimates_csv, "a", newline="") as f:
        f.write(f"{estimate.t:.6f},{estimate.frame},"
                f"{estimate.fused_displacement:.9f},{estimate.flow_displacement:.9f},"
                f"{estimate.accel_displacement:.9f},"
                f"{estimate.avg_flow_px[0]:.4f},{estimate.avg_flow_px[1]:.4f},"
                f"{acc[0]:.6f},{acc[1]:.6f},{acc[2]:.6f},"
                f"{estimate.num_points},{estimate.num_tracked},{int(estimate.degraded)}\n")


# =============================================================================
# Debug CSV writers
# =============================================================================

class DebugCSVWriters:
    """
    Manages debug CSV file writers for the fusion loop.

    Creates and manages:
    - Raw motion-sample log (both acceleration vectors + integrated value)
    - Per-frame optical-flow statistics
    """

    def __init__(self, output_dir: str, save_debug_data: bool = False):
        """
        Initialize debug CSV writers.

        Args:
            output_dir: Output directory path
            save_debug_data: Whether to enable debug logging
        """
        self.output_dir = output_dir
        self.enabled = save_debug_data

        self.motion_raw_csv = None
        self.flow_stats_csv = None

        if self.enabled:
            self._init_files()

    def _init_files(self):
        """Initialize all debug CSV files."""
        os.makedirs(self.output_dir, exist_ok=True)

        self.motion_raw_csv = os.path.join(self.output_dir, "debug_motion_raw.csv")
        with open(self.motion_raw_csv, "w", newline="") as f:
            f.write("t,ax,ay,az,ax_g,ay_g,az_g,integrated,accel_m\n")

        self.flow_stats_csv = os.path.join(self.output_dir, "debug_flow_stats.csv")
        with open(self.flow_stats_csv, "w", newline="") as f:
            f.write("frame,t,num_points,num_tracked,num_redetected,tracking_ratio,"
                    "dx_px,dy_px,flow_px,degraded\n")

    def log_motion_raw(self, t: float, acc: Optional[np.ndarray], acc_g: Optional[np.ndarray],
                       integrated: bool, accel_m: float):
        """Log one motion sample as received."""
        if not self.enabled or self.motion_raw_csv is None:
            return
        a = acc if acc is not None else np.full(3, np.nan)
        g = acc_g if acc_g is not None else np.full(3, np.nan)
        with open(self.motion_raw_csv, "a", newline="") as f:
            f.write(f"{t:.6f},{a[0]:.6f},{a[1]:.6f},{a[2]:.6f},"
                    f"{g[0]:.6f},{g[1]:.6f},{g[2]:.6f},{int(integrated)},{accel_m:.9f}\n")

    def log_flow_stats(self, frame: int, t: float, track_result: Any):
        """Log feature tracking statistics for one frame."""
        if not self.enabled or self.flow_stats_csv is None:
            return
        disp = track_result.displacement
        ratio = track_result.num_tracked / max(1, track_result.num_points)
        with open(self.flow_stats_csv, "a", newline="") as f:
            f.write(f"{frame},{t:.6f},{track_result.num_points},{track_result.num_tracked},"
                    f"{track_result.num_redetected},{ratio:.3f},"
                    f"{disp.dx:.4f},{disp.dy:.4f},{disp.magnitude:.4f},"
                    f"{int(track_result.degraded)}\n")


# =============================================================================
# Overlay
# =============================================================================

def draw_estimate_overlay(image: np.ndarray, estimate: Any,
                          features: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Draw tracked features and the displacement readout on a copy of image.

    Args:
        image: Input frame (grayscale or color)
        estimate: FusionEstimate to display
        features: Current point set (Nx2), drawn as green circles

    Returns:
        Annotated BGR image
    """
    if image.ndim == 2:
        vis = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    else:
        vis = image[:, :, :3].copy()

    if features is not None and len(features) > 0:
        for pt in features.reshape(-1, 2):
            cv2.circle(vis, (int(pt[0]), int(pt[1])), 3, (0, 255, 0), 1)

    font = cv2.FONT_HERSHEY_SIMPLEX
    acc = estimate.last_acceleration
    lines = [
        f"Optical Flow: {estimate.avg_flow_px[0]:.2f}, {estimate.avg_flow_px[1]:.2f} (px)",
        f"Acceleration: {acc[0]:.2f}, {acc[1]:.2f}, {acc[2]:.2f} (m/s^2)",
        f"Estimated Displacement: {estimate.fused_displacement:.3f} m",
    ]
    y_offset = 25
    for line in lines:
        cv2.putText(vis, line, (10, y_offset), font, 0.6, (255, 255, 255), 1)
        y_offset += 25

    if estimate.degraded:
        cv2.putText(vis, "TRACKING DEGRADED", (10, y_offset), font, 0.6, (0, 0, 255), 2)

    return vis


def save_frame_with_overlay(image: np.ndarray, estimate: Any, output_dir: str,
                            features: Optional[np.ndarray] = None):
    """Save an annotated frame as overlay_<frame>.jpg."""
    try:
        os.makedirs(output_dir, exist_ok=True)
        vis = draw_estimate_overlay(image, estimate, features)
        output_path = os.path.join(output_dir, f"overlay_{estimate.frame:06d}.jpg")
        cv2.imwrite(output_path, vis)
    except (cv2.error, OSError) as e:
        print(f"[WARNING] Failed to save overlay frame {estimate.frame}: {e}")


# =============================================================================
# Statistics
# =============================================================================

def print_summary(estimates_csv: str):
    """
    Print run statistics from the estimate log.

    Args:
        estimates_csv: Path to estimates.csv
    """
    df = pd.read_csv(estimates_csv)
    if len(df) == 0:
        print("[SUMMARY] No estimates logged")
        return

    print("\n=== Displacement Statistics ===")
    print(f"Frames: {len(df)}  ({df['t'].iloc[-1] - df['t'].iloc[0]:.2f} s)")
    print(f"Degraded frames: {int(df['degraded'].sum())} "
          f"({100.0 * df['degraded'].mean():.1f}%)")
    print("Fused displacement:")
    print(f"  Mean: {df['fused_m'].mean():.4f} m")
    print(f"  Max: {df['fused_m'].max():.4f} m")
    print(f"  Final: {df['fused_m'].iloc[-1]:.4f} m")
    print("Inertial displacement:")
    print(f"  Final: {df['accel_m'].iloc[-1]:.4f} m")
    print("Optical flow:")
    print(f"  Mean |flow|: {np.hypot(df['avg_dx_px'], df['avg_dy_px']).mean():.2f} px/frame")
    print(f"  Mean tracked: {df['num_tracked'].mean():.1f} / {df['num_points'].mean():.1f}")
    print(f"\nEstimates saved to: {estimates_csv}")
