import pytest

from flowfusion.complementary_filter import ComplementaryFilter, fuse


def test_default_weights():
    assert fuse(1.0, 0.0) == pytest.approx(0.6)
    assert fuse(0.0, 1.0) == pytest.approx(0.4)
    assert fuse(0.0, 0.0) == 0.0


def test_equal_inputs_pass_through():
    for a in (-3.2, 0.0, 0.005, 1.0, 42.0):
        assert fuse(a, a) == pytest.approx(a)
        assert fuse(a, a, alpha=0.25) == pytest.approx(a)


def test_linear_in_both_inputs():
    a1, f1 = 0.3, -1.2
    a2, f2 = -2.0, 0.7
    k = 3.5

    assert fuse(a1 + a2, f1 + f2) == pytest.approx(fuse(a1, f1) + fuse(a2, f2))
    assert fuse(k * a1, k * f1) == pytest.approx(k * fuse(a1, f1))


def test_alpha_bounds_select_one_source():
    assert fuse(2.0, 5.0, alpha=1.0) == 2.0
    assert fuse(2.0, 5.0, alpha=0.0) == 5.0


def test_filter_matches_function():
    filt = ComplementaryFilter(0.25)
    assert filt.fuse(4.0, 8.0) == pytest.approx(fuse(4.0, 8.0, alpha=0.25))
    assert filt.fuse(4.0, 8.0) == pytest.approx(7.0)


@pytest.mark.parametrize("alpha", [-0.1, 1.5])
def test_filter_rejects_out_of_range_alpha(alpha):
    with pytest.raises(ValueError):
        ComplementaryFilter(alpha)
