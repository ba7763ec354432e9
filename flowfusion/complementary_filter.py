"""Static complementary filter blending inertial and optical-flow displacement."""

from .config import FUSION_ALPHA


def fuse(accel_displacement: float, flow_displacement: float,
         alpha: float = FUSION_ALPHA) -> float:
    """alpha * accel + (1 - alpha) * flow."""
    return alpha * accel_displacement + (1.0 - alpha) * flow_displacement


class ComplementaryFilter:
    """
    Fixed-weight blend of two displacement estimates.

    The inertial term is accurate at high frequency but drifts; the visual
    term is bounded but noisy and scale-uncertain. alpha weights the
    inertial term.
    """

    def __init__(self, alpha: float = FUSION_ALPHA):
        if not 0.0 <= alpha <= 1.0:
            raise ValueError(f"alpha must be in [0, 1], got {alpha}")
        self.alpha = float(alpha)

    def fuse(self, accel_displacement: float, flow_displacement: float) -> float:
        return fuse(accel_displacement, flow_displacement, self.alpha)
