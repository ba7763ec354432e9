#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Inertial Integration Module
===========================

Naive double integration of accelerometer samples into a scalar
displacement along the device x-axis.

Integration Model:
------------------
Each sample is a single explicit step with no velocity state carried over:

    dt = t_k - t_{k-1}
    d += 0.5 * ax_k * dt^2

i.e. constant acceleration over the interval starting from zero velocity.
This drifts and compounds offset error with irregular or noisy sampling;
the complementary filter relies on optical flow to bound it.

Acceleration Source:
--------------------
Gravity-compensated acceleration is used per axis when the sensor reports
it, otherwise the gravity-included value. No orientation-based gravity
removal is attempted, so the fallback carries a systematic bias.

Only ax contributes to the displacement; ay and az are recorded for display.

Author: flowfusion project
"""

import math
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

import numpy as np


def _axis_value(vec: Optional[Sequence[Optional[float]]], idx: int) -> Optional[float]:
    """Return vec[idx] as float, or None when missing/NaN."""
    if vec is None:
        return None
    try:
        v = vec[idx]
    except (IndexError, TypeError):
        return None
    if v is None:
        return None
    v = float(v)
    if not math.isfinite(v):
        return None
    return v


def select_acceleration(acceleration: Optional[Sequence[Optional[float]]],
                        acceleration_including_gravity: Optional[Sequence[Optional[float]]] = None
                        ) -> Optional[np.ndarray]:
    """
    Pick the acceleration vector to integrate, axis by axis.

    Args:
        acceleration: Gravity-compensated [ax, ay, az] (m/s²), entries may be None
        acceleration_including_gravity: Raw [ax, ay, az] (m/s²), entries may be None

    Returns:
        [ax, ay, az] float array, or None when no x value is available from
        either vector. Missing y/z entries become NaN.
    """
    out = np.full(3, np.nan, dtype=float)
    for i in range(3):
        v = _axis_value(acceleration, i)
        if v is None:
            v = _axis_value(acceleration_including_gravity, i)
        if v is not None:
            out[i] = v
    if not math.isfinite(out[0]):
        return None
    return out


@dataclass
class InertialState:
    """Integrator state. displacement is signed and never reset."""
    displacement: float = 0.0  # meters
    last_timestamp: Optional[float] = None  # seconds
    last_acceleration: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=float))
    num_samples: int = 0  # samples accepted (including warm-up)
    num_dropped: int = 0  # samples with no usable x value


class InertialIntegrator:
    """
    Accumulates displacement from timestamped accelerometer samples.

    The first sample only records its timestamp (no dt yet). The integrator
    tolerates never receiving a sample: displacement then stays 0.

    Usage:
        integ = InertialIntegrator()
        integ.on_sample(0.0, [2.0, 0.0, 0.0])  # warm-up
        integ.on_sample(1.0, [2.0, 0.0, 0.0])
        integ.displacement()  # -> 1.0

        # Live event callback: timestamp comes from the injected clock
        integ = InertialIntegrator(clock=time.monotonic)
        integ.on_motion_event(acc, acc_with_gravity)
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self.clock = clock if clock is not None else time.monotonic
        self.state = InertialState()

    def on_sample(self, timestamp: float,
                  acceleration: Optional[Sequence[Optional[float]]],
                  acceleration_including_gravity: Optional[Sequence[Optional[float]]] = None) -> bool:
        """
        Integrate one sample.

        Args:
            timestamp: Sample time (seconds)
            acceleration: Gravity-compensated [ax, ay, az] (m/s²) or None
            acceleration_including_gravity: Raw [ax, ay, az] (m/s²) or None

        Returns:
            True if the displacement was updated. False for the warm-up
            sample and for dropped samples.
        """
        acc = select_acceleration(acceleration, acceleration_including_gravity)
        if acc is None:
            self.state.num_dropped += 1
            if self.state.num_dropped == 1:
                print("[IMU] WARNING: Sample without x acceleration dropped")
            return False

        st = self.state
        st.num_samples += 1
        st.last_acceleration = acc

        if st.last_timestamp is None:
            st.last_timestamp = float(timestamp)
            return False

        dt = float(timestamp) - st.last_timestamp
        st.last_timestamp = float(timestamp)

        st.displacement += 0.5 * acc[0] * dt * dt
        return True

    def on_motion_event(self, acceleration: Optional[Sequence[Optional[float]]],
                        acceleration_including_gravity: Optional[Sequence[Optional[float]]] = None) -> bool:
        """Sensor callback: timestamp the event with the injected clock."""
        return self.on_sample(self.clock(), acceleration, acceleration_including_gravity)

    def displacement(self) -> float:
        """Current accumulated displacement (meters, signed)."""
        return float(self.state.displacement)

    @property
    def last_acceleration(self) -> np.ndarray:
        return self.state.last_acceleration.copy()
