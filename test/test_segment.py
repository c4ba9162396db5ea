# test/test_segment.py
import pytest

from segreplay.core import Segment, InvalidSegment


def test_segment_basic():
    seg = Segment(index=2, t_start=1.0, t_last=1.9, n_samples=10)
    assert seg.duration == pytest.approx(0.9)
    assert seg.end_time(0.1) == pytest.approx(2.0)


def test_single_sample_segment():
    seg = Segment(index=0, t_start=5.0, t_last=5.0, n_samples=1)
    assert seg.duration == 0.0
    assert seg.offset_of(7.0, 1.0) == 0


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(index=-1, t_start=0.0, t_last=1.0, n_samples=2),
        dict(index=0, t_start=0.0, t_last=1.0, n_samples=0),
        dict(index=0, t_start=1.0, t_last=0.0, n_samples=2),
        dict(index=0, t_start=float("nan"), t_last=1.0, n_samples=2),
        dict(index=0, t_start=0.0, t_last=1.0, n_samples=1),
    ],
)
def test_segment_rejects_invalid(kwargs):
    with pytest.raises(InvalidSegment):
        Segment(**kwargs)


def test_offset_of_floors_and_clamps():
    seg = Segment(index=0, t_start=10.0, t_last=19.0, n_samples=10)
    assert seg.offset_of(9.0, 1.0) == 0
    assert seg.offset_of(10.0, 1.0) == 0
    assert seg.offset_of(12.5, 1.0) == 2
    assert seg.offset_of(13.0, 1.0) == 3
    assert seg.offset_of(50.0, 1.0) == 9


def test_offset_of_on_sample_instant_with_float_error():
    seg = Segment(index=0, t_start=0.0, t_last=0.009, n_samples=10)
    # 0.003 / 0.001 lands just below 3 in binary floating point
    assert seg.offset_of(0.003, 0.001) == 3


def test_gap_to_following():
    a = Segment(index=0, t_start=0.0, t_last=9.0, n_samples=10)
    b = Segment(index=1, t_start=20.0, t_last=29.0, n_samples=10)
    assert a.gap_to(b) == 11.0
