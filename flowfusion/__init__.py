"""
flowfusion (Optical-Flow / Accelerometer Displacement Fusion) Package

Estimates a device's relative linear displacement by blending sparse
optical flow with naively double-integrated accelerometer samples through a
static complementary filter.

Version: 1.0.0

Submodules:
- config: YAML configuration loading and default tunables
- feature_tracker: Shi-Tomasi + pyramidal KLT tracker (pixel displacement)
- inertial: Accelerometer double integration (x-axis displacement)
- complementary_filter: Fixed-weight fusion law
- state_container: Loop state and per-cycle buffer arena
- data_loaders: Frame sources and motion-sample CSV loading
- output_utils: Estimate CSV, debug CSVs, overlays, statistics
- main_loop: FusionLoop per-frame orchestrator

Usage:
    # Import specific modules (lazy loading)
    from flowfusion import config
    from flowfusion import main_loop

    # Or import specific functions
    from flowfusion.config import load_config, FusionConfig
    from flowfusion.feature_tracker import FeatureTracker
    from flowfusion.inertial import InertialIntegrator
    from flowfusion.complementary_filter import fuse, ComplementaryFilter
    from flowfusion.data_loaders import VideoFrameSource, load_motion_csv
    from flowfusion.main_loop import FusionLoop, FusionEstimate
"""

__version__ = "1.0.0"

# Lazy module imports - access as flowfusion.config, flowfusion.main_loop, etc.
# This avoids importing OpenCV/pandas until a submodule is used
import importlib

# Available submodules
_SUBMODULES = {
    "config", "feature_tracker", "inertial", "complementary_filter",
    "state_container", "data_loaders", "output_utils", "main_loop",
}


def __getattr__(name):
    """Lazy module loading to avoid importing all dependencies at once."""
    if name in _SUBMODULES:
        module = importlib.import_module(f".{name}", __name__)
        globals()[name] = module  # Cache in globals to avoid repeated import
        return module
    raise AttributeError(f"module 'flowfusion' has no attribute '{name}'")


def __dir__():
    """List available submodules."""
    return list(_SUBMODULES)


__all__ = list(_SUBMODULES)
