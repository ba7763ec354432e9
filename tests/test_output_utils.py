import numpy as np
import pandas as pd

from flowfusion.feature_tracker import PixelDisplacement, TrackResult
from flowfusion.main_loop import FusionEstimate
from flowfusion.output_utils import (
    ESTIMATE_COLUMNS,
    DebugCSVWriters,
    draw_estimate_overlay,
    init_output_csvs,
    log_estimate,
    save_frame_with_overlay,
)


def _estimate(frame=3, degraded=False):
    return FusionEstimate(
        t=1.5,
        frame=frame,
        fused_displacement=0.602,
        flow_displacement=0.005,
        accel_displacement=1.0,
        avg_flow_px=(5.0, 0.0),
        last_acceleration=np.array([2.0, 0.0, 9.8]),
        num_points=40,
        num_tracked=38,
        degraded=degraded,
    )


def test_estimate_csv_roundtrip(tmp_path):
    paths = init_output_csvs(str(tmp_path / "out"))
    log_estimate(paths["estimates_csv"], _estimate())
    log_estimate(None, _estimate())

    df = pd.read_csv(paths["estimates_csv"])
    assert list(df.columns) == ESTIMATE_COLUMNS.split(",")
    assert len(df) == 1
    assert df["fused_m"].iloc[0] == 0.602
    assert df["az"].iloc[0] == 9.8
    assert df["degraded"].iloc[0] == 0


def test_debug_writers_disabled_create_nothing(tmp_path):
    dbg = DebugCSVWriters(str(tmp_path), save_debug_data=False)
    dbg.log_motion_raw(0.0, np.zeros(3), None, False, 0.0)

    assert dbg.motion_raw_csv is None
    assert list(tmp_path.iterdir()) == []


def test_debug_writers_rows(tmp_path):
    dbg = DebugCSVWriters(str(tmp_path), save_debug_data=True)
    dbg.log_motion_raw(0.5, None, np.array([1.0, 2.0, 9.8]), True, 0.25)
    dbg.log_flow_stats(4, 0.5, TrackResult(PixelDisplacement(3.0, 4.0), 10, 5, 12))

    motion = pd.read_csv(dbg.motion_raw_csv)
    assert np.isnan(motion["ax"].iloc[0])
    assert motion["ax_g"].iloc[0] == 1.0
    assert motion["integrated"].iloc[0] == 1

    flow = pd.read_csv(dbg.flow_stats_csv)
    assert flow["tracking_ratio"].iloc[0] == 0.5
    assert flow["flow_px"].iloc[0] == 5.0
    assert flow["degraded"].iloc[0] == 0


def test_overlay_draws_on_copy():
    img = np.zeros((120, 400), dtype=np.uint8)
    vis = draw_estimate_overlay(img, _estimate(degraded=True),
                                features=np.array([[10.0, 10.0]], dtype=np.float32))

    assert vis.shape == (120, 400, 3)
    assert vis.any()
    assert not img.any()


def test_save_overlay_frame(tmp_path):
    img = np.zeros((120, 400, 3), dtype=np.uint8)
    save_frame_with_overlay(img, _estimate(frame=7), str(tmp_path / "overlays"))

    assert (tmp_path / "overlays" / "overlay_000007.jpg").exists()
