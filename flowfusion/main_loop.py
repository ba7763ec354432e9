"""
Main Fusion Loop Runner

This module provides the FusionLoop class that runs one cycle per video
frame and combines the modular components:

- Frame acquisition and grayscale conversion
- Feature tracking (FeatureTracker)
- Pixel -> meter conversion (pixel_to_meter)
- Complementary fusion with the inertial displacement
- Estimate publication and output logging

Motion samples arrive independently through on_motion_sample() (replay) or
on_motion_event() (live callback). The frame cycle never waits for them; it
fuses whatever displacement the integrator last committed.

Both sources run on one thread: a cycle or a sample handler always runs to
completion before the next one starts, so no locking is needed.

Usage:
    from flowfusion.config import FusionConfig
    from flowfusion.data_loaders import VideoFrameSource, load_motion_csv
    from flowfusion.main_loop import FusionLoop

    loop = FusionLoop(FusionConfig.from_yaml("configs/default.yaml"), output_dir="out/")
    with VideoFrameSource("video.mp4") as frames:
        loop.run(frames, motion=load_motion_csv("motion.csv"))

Author: flowfusion project
"""

import os
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .complementary_filter import ComplementaryFilter
from .config import FusionConfig
from .data_loaders import MotionSample, to_gray
from .feature_tracker import FeatureTracker, TrackResult
from .inertial import InertialIntegrator
from .output_utils import (
    DebugCSVWriters, init_output_csvs, log_estimate,
    draw_estimate_overlay, save_frame_with_overlay, print_summary,
)
from .state_container import CycleArena, RunnerState, TRACKING, UNINITIALIZED


@dataclass
class FusionEstimate:
    """Published output of one frame cycle."""
    t: float
    frame: int
    fused_displacement: float  # meters
    flow_displacement: float  # meters
    accel_displacement: float  # meters
    avg_flow_px: Tuple[float, float] = (0.0, 0.0)
    last_acceleration: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=float))
    num_points: int = 0
    num_tracked: int = 0
    degraded: bool = False
    phase: str = UNINITIALIZED


class FusionLoop:
    """
    Per-frame fusion cycle.

    Two states:
    - UNINITIALIZED: no previous frame yet; the first frame seeds the tracker
    - TRACKING: every later frame is tracked, converted and fused

    Components are owned by the loop instance; a new session is a new loop.
    """

    def __init__(self, config: Optional[FusionConfig] = None,
                 output_dir: Optional[str] = None,
                 tracker: Optional[FeatureTracker] = None,
                 integrator: Optional[InertialIntegrator] = None,
                 clock: Optional[Callable[[], float]] = None):
        """
        Initialize fusion loop.

        Args:
            config: FusionConfig (defaults when None)
            output_dir: Directory for estimates.csv and debug output (None: no files)
            tracker: FeatureTracker to use (built from config when None)
            integrator: InertialIntegrator to use (built with clock when None)
            clock: Time source (seconds) for live events and untimed frames
        """
        self.config = config if config is not None else FusionConfig()
        self.clock = clock if clock is not None else time.monotonic
        self.state = RunnerState()

        self.tracker = tracker if tracker is not None else FeatureTracker(self.config)
        self.integrator = integrator if integrator is not None else InertialIntegrator(self.clock)
        self.filter = ComplementaryFilter(self.config.alpha)

        # Latest per-frame flow displacement (meters); held on degraded frames
        self.flow_displacement = 0.0
        self.avg_flow_px = (0.0, 0.0)

        self.estimate: Optional[FusionEstimate] = None
        self.listeners: List[Callable[[FusionEstimate], None]] = []
        self.last_arena: Optional[CycleArena] = None

        self._stop_requested = False
        self._last_runtime_log_ts = {}

        # Output files
        self.output_dir = output_dir
        self.estimates_csv = None
        self.overlay_dir = None
        if output_dir:
            paths = init_output_csvs(output_dir)
            self.estimates_csv = paths['estimates_csv']
            if self.config.save_overlay_frames:
                self.overlay_dir = os.path.join(output_dir, "overlays")
        self.debug = DebugCSVWriters(output_dir or ".", save_debug_data=bool(output_dir) and self.config.save_debug_data)

    @property
    def phase(self) -> str:
        return self.state.phase

    def _runtime_log(self, key: str, msg: str, force: bool = False):
        """Rate-limited logging for per-frame runtime messages."""
        if force or self.config.runtime_verbosity == "verbose":
            print(msg)
            self._last_runtime_log_ts[key] = time.time()
            return
        now = time.time()
        last = self._last_runtime_log_ts.get(key, -1e9)
        if (now - last) >= self.config.runtime_log_interval_sec:
            print(msg)
            self._last_runtime_log_ts[key] = now

    # =========================================================================
    # Motion input
    # =========================================================================

    def on_motion_sample(self, sample: MotionSample) -> bool:
        """Deliver one timestamped motion sample (replay path)."""
        updated = self.integrator.on_sample(sample.t, sample.acc, sample.acc_g)
        self.state.counters.motion_samples += 1
        self.debug.log_motion_raw(sample.t, sample.acc, sample.acc_g, updated,
                                  self.integrator.displacement())
        return updated

    def on_motion_event(self, acceleration: Optional[Sequence[Optional[float]]],
                        acceleration_including_gravity: Optional[Sequence[Optional[float]]] = None) -> bool:
        """Live sensor callback; timestamped by the injected clock."""
        return self.on_motion_sample(MotionSample(
            t=self.clock(),
            acc=None if acceleration is None else np.asarray(acceleration, dtype=float),
            acc_g=None if acceleration_including_gravity is None
            else np.asarray(acceleration_including_gravity, dtype=float),
        ))

    # =========================================================================
    # Frame cycle
    # =========================================================================

    def step(self, frame: np.ndarray, t: Optional[float] = None) -> FusionEstimate:
        """
        Run one frame cycle and publish the estimate.

        Args:
            frame: Camera frame (BGR, BGRA or grayscale)
            t: Frame timestamp in seconds (clock() when None)

        Returns:
            The published FusionEstimate
        """
        t = self.clock() if t is None else float(t)
        st = self.state
        st.indices.frame_idx += 1
        st.counters.frames += 1
        if st.timing.t0 is None:
            st.timing.t0 = t
        st.timing.last_t = t

        with CycleArena() as arena:
            self.last_arena = arena
            arena.hold("frame", frame)
            gray = arena.hold("gray", to_gray(frame))

            result: Optional[TrackResult] = None
            if st.phase == UNINITIALIZED:
                self.tracker.initialize(gray)
                st.phase = TRACKING
                print(f"[FUSION] Tracking started at t={t:.3f}s")
            else:
                result = self.tracker.track(gray, arena=arena)
                self._apply_track_result(result, t)

            estimate = self._publish(t, result)

            if self.overlay_dir is not None:
                save_frame_with_overlay(frame, estimate, self.overlay_dir, self.tracker.prev_points)
            arena.hold("estimate", estimate)

        st.counters.arena_releases += 1
        return estimate

    def _apply_track_result(self, result: TrackResult, t: float):
        st = self.state
        self.debug.log_flow_stats(st.indices.frame_idx, t, result)

        if result.degraded:
            st.counters.degraded_frames += 1
            st.counters.consecutive_degraded += 1
            self._runtime_log(
                "degraded",
                f"[TRACK] WARNING: Frame {st.indices.frame_idx} - no points tracked "
                f"({result.num_points} attempted), holding flow={self.flow_displacement:.4f} m")
            return

        st.counters.consecutive_degraded = 0
        disp = result.displacement
        self.avg_flow_px = (disp.dx, disp.dy)
        self.flow_displacement = disp.magnitude * self.config.pixel_to_meter

    def _publish(self, t: float, result: Optional[TrackResult]) -> FusionEstimate:
        accel = self.integrator.displacement()
        fused = self.filter.fuse(accel, self.flow_displacement)

        estimate = FusionEstimate(
            t=t,
            frame=self.state.indices.frame_idx,
            fused_displacement=fused,
            flow_displacement=self.flow_displacement,
            accel_displacement=accel,
            avg_flow_px=self.avg_flow_px,
            last_acceleration=self.integrator.last_acceleration,
            num_points=0 if result is None else result.num_points,
            num_tracked=0 if result is None else result.num_tracked,
            degraded=False if result is None else result.degraded,
            phase=self.state.phase,
        )
        self.estimate = estimate
        log_estimate(self.estimates_csv, estimate)
        for listener in self.listeners:
            listener(estimate)

        self._runtime_log(
            "estimate",
            f"[FUSION] t={t:8.3f}s frame={estimate.frame:5d} | fused={fused:+.4f} m "
            f"(accel={accel:+.4f}, flow={self.flow_displacement:.4f}) "
            f"tracked={estimate.num_tracked}/{estimate.num_points}")
        return estimate

    # =========================================================================
    # Scheduling
    # =========================================================================

    def stop(self):
        """Request the loop to finish after the current cycle."""
        self._stop_requested = True

    def run(self, frames: Iterable[Tuple[float, np.ndarray]],
            motion: Optional[Sequence[MotionSample]] = None,
            max_frames: Optional[int] = None,
            display: bool = False,
            window_name: str = "flowfusion") -> Optional[FusionEstimate]:
        """
        Run cycles until the frame source is exhausted or stop() is called.

        Replay ordering: every motion sample with t <= frame t is delivered
        before that frame's cycle, so each cycle fuses the latest committed
        inertial displacement.

        Args:
            frames: Iterable of (t, frame)
            motion: Time-sorted motion samples on the same clock as frames
            max_frames: Stop after this many frames
            display: Show the annotated frame; the next cycle is scheduled on
                the display refresh (cv2.waitKey). 'q'/ESC stops.
            window_name: OpenCV window title

        Returns:
            The last published estimate
        """
        motion = motion or []
        idx = self.state.indices
        idx.motion_idx = 0  # replay cursor into this call's motion list
        self._stop_requested = False
        tic = time.time()

        print("=" * 70)
        print("Fusion Loop Starting")
        print("=" * 70)
        self.config.print_summary()

        try:
            for t, frame in frames:
                while idx.motion_idx < len(motion) and motion[idx.motion_idx].t <= t:
                    self.on_motion_sample(motion[idx.motion_idx])
                    idx.motion_idx += 1

                estimate = self.step(frame, t)

                if display:
                    vis = draw_estimate_overlay(frame, estimate, self.tracker.prev_points)
                    cv2.imshow(window_name, vis)
                    key = cv2.waitKey(1) & 0xFF
                    if key in (ord('q'), 27):
                        self.stop()

                if max_frames is not None and self.state.counters.frames >= max_frames:
                    self.stop()
                if self._stop_requested:
                    break
        finally:
            if display:
                cv2.destroyWindow(window_name)

        toc = time.time()
        self.print_summary()
        print(f"\n=== Finished in {toc - tic:.2f} seconds ===")
        return self.estimate

    def print_summary(self):
        """Print run counters and, when written, the estimate statistics."""
        c = self.state.counters
        print(f"\n[SUMMARY] frames={c.frames} degraded={c.degraded_frames} "
              f"motion_samples={c.motion_samples} "
              f"dropped_motion={self.integrator.state.num_dropped}")
        if self.estimate is not None:
            print(f"[SUMMARY] final fused={self.estimate.fused_displacement:+.4f} m "
                  f"accel={self.estimate.accel_displacement:+.4f} m "
                  f"flow={self.estimate.flow_displacement:.4f} m")
        if self.estimates_csv is not None and c.frames > 0:
            print_summary(self.estimates_csv)


def run_fusion(config: FusionConfig, frames: Iterable[Tuple[float, np.ndarray]],
               motion: Optional[Sequence[MotionSample]] = None,
               output_dir: Optional[str] = None, **kwargs) -> Optional[FusionEstimate]:
    """
    Convenience function to run the fusion loop.

    Args:
        config: FusionConfig instance
        frames: Iterable of (t, frame)
        motion: Optional motion samples
        output_dir: Output directory
    """
    loop = FusionLoop(config, output_dir=output_dir)
    return loop.run(frames, motion=motion, **kwargs)
