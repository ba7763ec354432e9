import cv2
import numpy as np
import pytest

from flowfusion.data_loaders import (
    AcquisitionError,
    ImageSequenceSource,
    VideoFrameSource,
    load_frame_index,
    load_motion_csv,
    to_gray,
)
from flowfusion.inertial import InertialIntegrator


def test_motion_csv_sorted_and_scaled(tmp_path):
    path = tmp_path / "motion.csv"
    path.write_text(
        "t,ax,ay,az,ax_g,ay_g,az_g\n"
        "1000,2.0,0.0,0.0,2.1,0.0,9.8\n"
        "0,2.0,0.0,0.0,2.1,0.0,9.8\n"
        "2000,,,,2.1,0.1,9.8\n"
    )
    recs = load_motion_csv(str(path), time_scale=0.001)

    assert [r.t for r in recs] == [0.0, 1.0, 2.0]
    np.testing.assert_allclose(recs[0].acc, [2.0, 0.0, 0.0])
    assert recs[2].acc is None
    np.testing.assert_allclose(recs[2].acc_g, [2.1, 0.1, 9.8])


def test_motion_csv_feeds_integrator(tmp_path):
    path = tmp_path / "motion.csv"
    path.write_text("t,ax_g,ay_g,az_g\n0.0,2.0,0.0,9.8\n1.0,2.0,0.0,9.8\n")
    integ = InertialIntegrator()
    for r in load_motion_csv(str(path)):
        assert r.acc is None
        integ.on_sample(r.t, r.acc, r.acc_g)

    assert integ.displacement() == pytest.approx(1.0)


def test_motion_csv_errors(tmp_path):
    with pytest.raises(AcquisitionError):
        load_motion_csv(str(tmp_path / "missing.csv"))

    bad = tmp_path / "bad.csv"
    bad.write_text("time,ax,ay,az\n0,1,1,1\n")
    with pytest.raises(ValueError):
        load_motion_csv(str(bad))

    no_vec = tmp_path / "novec.csv"
    no_vec.write_text("t,ax\n0,1\n")
    with pytest.raises(ValueError):
        load_motion_csv(str(no_vec))


def _write_sequence(tmp_path, n=3):
    img_dir = tmp_path / "imgs"
    img_dir.mkdir()
    rows = ["timestamp,filename"]
    for k in reversed(range(n)):
        img = np.full((40, 60, 3), 20 * k, dtype=np.uint8)
        name = f"img_{k:03d}.png"
        cv2.imwrite(str(img_dir / name), img)
        rows.append(f"{0.1 * k},{name}")
    rows.append("9.9,missing.png")
    index = tmp_path / "index.csv"
    index.write_text("\n".join(rows) + "\n")
    return str(img_dir), str(index)


def test_frame_index_sorted_and_missing_skipped(tmp_path):
    img_dir, index = _write_sequence(tmp_path)
    items = load_frame_index(img_dir, index)

    assert len(items) == 3
    assert [round(i.t, 3) for i in items] == [0.0, 0.1, 0.2]
    assert items[0].path.endswith("img_000.png")


def test_image_sequence_source_yields_frames(tmp_path):
    img_dir, index = _write_sequence(tmp_path)
    with ImageSequenceSource.from_index(img_dir, index) as src:
        frames = list(src)

    assert len(frames) == 3
    t, img = frames[2]
    assert t == pytest.approx(0.2)
    assert img.shape == (40, 60, 3)
    assert int(img[0, 0, 0]) == 40


def test_image_sequence_errors(tmp_path):
    with pytest.raises(AcquisitionError):
        load_frame_index(str(tmp_path / "nodir"), str(tmp_path / "index.csv"))
    with pytest.raises(AcquisitionError):
        load_frame_index(str(tmp_path), str(tmp_path / "index.csv"))
    with pytest.raises(AcquisitionError):
        ImageSequenceSource([])


def test_video_source_missing_file(tmp_path):
    with pytest.raises(AcquisitionError):
        VideoFrameSource(str(tmp_path / "clip.mp4"))


def test_to_gray_channel_layouts():
    bgr = np.zeros((4, 5, 3), dtype=np.uint8)
    bgra = np.zeros((4, 5, 4), dtype=np.uint8)
    single = np.zeros((4, 5, 1), dtype=np.uint8)

    for frame in (bgr, bgra, single, bgr[:, :, 0]):
        gray = to_gray(frame)
        assert gray.shape == (4, 5)
        assert gray.dtype == np.uint8

    floats = np.linspace(0.0, 1.0, 20, dtype=np.float32).reshape(4, 5)
    gray = to_gray(floats)
    assert gray.dtype == np.uint8
    assert int(gray.max()) == 255

    with pytest.raises(ValueError):
        to_gray(None)
    with pytest.raises(ValueError):
        to_gray(np.zeros((4, 5, 2), dtype=np.uint8))
