#!/usr/bin/env python3
"""
Script for visualizing displacement estimates from estimates.csv
"""

import argparse
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd


def load_estimates(csv_path):
    """Load per-frame estimates from CSV."""
    print(f"Loading estimates from: {csv_path}")
    df = pd.read_csv(csv_path)
    print(f"Loaded {len(df)} frames")
    if len(df) > 0:
        print(f"Time range: {df['t'].min():.2f}s to {df['t'].max():.2f}s")
    return df


def plot_displacement(df, output_path=None, show=True):
    """
    Plot fused / inertial / optical-flow displacement and tracking health.

    Parameters:
    -----------
    df : pandas.DataFrame
        Contents of estimates.csv
    output_path : str or None
        Save the figure here when given
    show : bool
        Open an interactive window
    """
    t = df['t'].values
    degraded = df['degraded'].values.astype(bool)

    fig, axes = plt.subplots(3, 1, figsize=(14, 10), sharex=True)

    # Plot 1: displacement terms
    axes[0].plot(t, df['fused_m'].values, 'k-', linewidth=1.2, label='Fused')
    axes[0].plot(t, df['accel_m'].values, 'r-', linewidth=0.6, alpha=0.7, label='Inertial')
    axes[0].plot(t, df['flow_m'].values, 'b-', linewidth=0.6, alpha=0.7, label='Optical flow')
    if np.any(degraded):
        axes[0].scatter(t[degraded], df['fused_m'].values[degraded], c='orange', s=8,
                        label='Tracking degraded', zorder=3)
    axes[0].set_ylabel('Displacement (m)')
    axes[0].set_title('Displacement Estimates')
    axes[0].legend()
    axes[0].grid(True, alpha=0.3)

    # Plot 2: average pixel flow
    axes[1].plot(t, df['avg_dx_px'].values, label='dx', linewidth=0.6)
    axes[1].plot(t, df['avg_dy_px'].values, label='dy', linewidth=0.6)
    axes[1].set_ylabel('Flow (px/frame)')
    axes[1].set_title('Average Feature Flow')
    axes[1].legend()
    axes[1].grid(True, alpha=0.3)

    # Plot 3: tracked points
    axes[2].plot(t, df['num_points'].values, 'g-', linewidth=0.6, label='Attempted')
    axes[2].plot(t, df['num_tracked'].values, 'm-', linewidth=0.6, label='Tracked')
    axes[2].set_xlabel('Time (s)')
    axes[2].set_ylabel('Points')
    axes[2].set_title('Feature Tracking')
    axes[2].legend()
    axes[2].grid(True, alpha=0.3)

    plt.tight_layout()

    if output_path:
        print(f"Saving plot to: {output_path}")
        plt.savefig(output_path, dpi=150, bbox_inches='tight')

    if show:
        plt.show()
    return fig


def main():
    parser = argparse.ArgumentParser(
        description='Plot displacement estimates from estimates.csv',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python plot_displacement.py -i out/estimates.csv
  python plot_displacement.py -i out/estimates.csv -o displacement.png --no-show
        """
    )

    parser.add_argument('-i', '--input', type=str, default='out/estimates.csv',
                        help='Path to estimates.csv file')
    parser.add_argument('-o', '--output', type=str,
                        help='Output path for the plot (optional)')
    parser.add_argument('--no-show', action='store_true',
                        help='Do not display plots (only save to file)')

    args = parser.parse_args()

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: Input file not found: {input_path}")
        return

    df = load_estimates(input_path)
    plot_displacement(df, args.output, show=not args.no_show)
    print("\nDone!")


if __name__ == '__main__':
    main()
