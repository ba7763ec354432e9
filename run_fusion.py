#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Fusion Standalone Entry Point (run_fusion.py)

Runs the optical-flow + accelerometer displacement fusion using the
flowfusion/ package.

Configuration Model:
--------------------
    YAML config is the single source of truth for algorithm settings.
    CLI provides only paths and runtime flags.

    YAML controls:
    - Corner detection (features.*)
    - Pyramidal KLT (optical_flow.*)
    - pixel_to_meter calibration, fusion alpha
    - Logging verbosity

    CLI provides:
    - Frame source: one of --video, --camera, --images_dir + --images_index
    - Optional: --motion (replayed motion samples), --output
    - Runtime flags: --save_debug_data, --save_overlay_frames, --display

Usage:
    python run_fusion.py --config configs/default.yaml --video clip.mp4 \\
        --motion motion.csv --output out/

    # Live camera with on-screen readout:
    python run_fusion.py --camera 0 --display
"""

import argparse
import os
import sys

# Add workspace to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

DEFAULT_CONFIG = os.path.join(os.path.dirname(os.path.abspath(__file__)), "configs", "default.yaml")


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Optical-flow / accelerometer displacement fusion",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Replay a recorded clip with motion samples:
  python run_fusion.py --video clip.mp4 --motion motion.csv --output out/

  # Image sequence with debug output:
  python run_fusion.py --images_dir imgs/ --images_index imgs/index.csv \\
      --motion motion.csv --output out/ --save_debug_data
        """
    )

    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument("--video", type=str, help="Path to video file")
    src.add_argument("--camera", type=int, help="Camera device index")
    src.add_argument("--images_dir", type=str, help="Directory containing images")

    parser.add_argument("--images_index", type=str, default=None,
                        help="CSV with timestamp and filename columns (with --images_dir)")
    parser.add_argument("--config", type=str, default=DEFAULT_CONFIG,
                        help="Path to YAML config file")
    parser.add_argument("--motion", type=str, default=None,
                        help="Path to motion CSV (t, ax, ay, az[, ax_g, ay_g, az_g])")
    parser.add_argument("--motion_time_scale", type=float, default=1.0,
                        help="Multiplier converting motion CSV t to seconds (0.001 for ms)")
    parser.add_argument("--motion_offset", type=float, default=0.0,
                        help="Seconds added to motion timestamps to align with frames")
    parser.add_argument("--output", type=str, default=None, help="Output directory")
    parser.add_argument("--max_frames", type=int, default=None, help="Stop after N frames")

    parser.add_argument("--save_debug_data", action="store_true",
                        help="Save debug CSV files (debug_*.csv)")
    parser.add_argument("--save_overlay_frames", action="store_true",
                        help="Save annotated frames to <output>/overlays")
    parser.add_argument("--display", action="store_true",
                        help="Show annotated frames in a window")

    args = parser.parse_args(argv)
    if args.images_dir and not args.images_index:
        parser.error("--images_dir requires --images_index")
    return args


def main(argv=None):
    """Main entry point - load YAML config, open sources and run the loop."""
    args = parse_args(argv)

    from flowfusion import __version__
    from flowfusion.config import FusionConfig
    from flowfusion.data_loaders import (
        AcquisitionError, VideoFrameSource, ImageSequenceSource, load_motion_csv
    )
    from flowfusion.main_loop import FusionLoop

    print("=" * 70)
    print(f"flowfusion {__version__}")
    print("=" * 70)

    # =================================================================
    # Step 1: Load YAML config
    # =================================================================
    print(f"\nLoading config: {args.config}")
    config = FusionConfig.from_yaml(args.config)
    if args.save_debug_data:
        config.save_debug_data = True
    if args.save_overlay_frames:
        config.save_overlay_frames = True
    config.output_dir = args.output

    # =================================================================
    # Step 2: Acquire sources (failure aborts before the loop)
    # =================================================================
    frames = None
    try:
        if args.video:
            frames = VideoFrameSource(args.video)
        elif args.camera is not None:
            frames = VideoFrameSource(args.camera)
        else:
            frames = ImageSequenceSource.from_index(args.images_dir, args.images_index)

        motion = []
        if args.motion:
            motion = load_motion_csv(args.motion, time_scale=args.motion_time_scale)
            for m in motion:
                m.t += args.motion_offset
    except AcquisitionError as e:
        if frames is not None:
            frames.release()
        print(f"❌ Acquisition failed: {e}")
        return 1

    if args.output:
        os.makedirs(args.output, exist_ok=True)
        cli_log_path = os.path.join(args.output, "cli_command.txt")
        with open(cli_log_path, 'w') as f:
            f.write(f"# flowfusion CLI Command\n")
            f.write(f"# Config: {args.config}\n")
            f.write(f"# Version: {__version__}\n\n")
            cli_args = argv if argv is not None else sys.argv[1:]
            f.write(" ".join([sys.argv[0]] + list(cli_args)) + "\n")

    # =================================================================
    # Step 3: Run
    # =================================================================
    loop = FusionLoop(config, output_dir=args.output)
    with frames:
        loop.run(frames, motion=motion, max_frames=args.max_frames, display=args.display)

    print("=" * 70)
    print("✅ Fusion completed")
    if args.output:
        print(f"   Output: {args.output}")
    print("=" * 70)
    return 0


if __name__ == "__main__":
    sys.exit(main())
