"""Structured runtime state and per-cycle buffer scoping for FusionLoop."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

# Loop states
UNINITIALIZED = "UNINITIALIZED"
TRACKING = "TRACKING"


@dataclass
class IndexState:
    """Progress indices across input streams."""

    frame_idx: int = -1
    motion_idx: int = 0  # position in the motion list of the current run()


@dataclass
class CounterState:
    """Per-run counters reported in the summary."""

    frames: int = 0
    degraded_frames: int = 0
    consecutive_degraded: int = 0
    motion_samples: int = 0
    arena_releases: int = 0


@dataclass
class TimingState:
    """Timestamps of the first and latest processed frame (seconds)."""

    t0: Optional[float] = None
    last_t: float = 0.0


@dataclass
class RunnerState:
    """
    Structured state container.

    Groups indices, counters and timing. The tracker and integrator own
    their own algorithm state; this holds only what the loop itself needs.
    """

    phase: str = UNINITIALIZED
    indices: IndexState = field(default_factory=IndexState)
    counters: CounterState = field(default_factory=CounterState)
    timing: TimingState = field(default_factory=TimingState)


class CycleArena:
    """
    Holds the buffers created during one frame cycle.

    Used as a context manager; every held buffer is dropped on exit,
    including early returns and exceptions.

        with CycleArena() as arena:
            gray = arena.hold("gray", to_gray(frame))
    """

    def __init__(self):
        self._buffers: Dict[str, Any] = {}
        self.released = False

    def hold(self, name: str, buf: Any) -> Any:
        if self.released:
            raise RuntimeError("CycleArena already released")
        self._buffers[name] = buf
        return buf

    def get(self, name: str, default: Any = None) -> Any:
        return self._buffers.get(name, default)

    def names(self):
        return list(self._buffers.keys())

    def __len__(self) -> int:
        return len(self._buffers)

    def release(self):
        self._buffers.clear()
        self.released = True

    def __enter__(self) -> 'CycleArena':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
