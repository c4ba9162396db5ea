# test/test_store.py
import numpy as np
import pytest

from segreplay.core import (
    MemorySegmentStore,
    LazyTimeSeries,
    TimeSeries,
    NumericKind,
    uniform_node,
    ChannelNotFound,
    SegmentNotFound,
    StorageError,
    InvalidTimeSeries,
)


def _store():
    return MemorySegmentStore(
        {
            "ip": uniform_node([0.0, 20.0], [10, 5], 1.0),
            "mode": uniform_node([0.0], [4], 0.5, dtype="int16"),
        }
    )


def test_store_dict_like_access():
    store = _store()
    assert len(store) == 2
    assert set(store) == {"ip", "mode"}
    assert "ip" in store and "nope" not in store
    assert list(store.keys()) == ["ip", "mode"]
    assert len(store["ip"]) == 2


def test_store_missing_node_raises_channel_not_found():
    store = _store()
    with pytest.raises(ChannelNotFound):
        store["nope"]
    with pytest.raises(KeyError):
        store.segment_count("nope")


def test_segment_count_and_range():
    store = _store()
    assert store.segment_count("ip") == 2
    seg = store.segment_range("ip", 1)
    assert seg.index == 1
    assert seg.t_start == 20.0
    assert seg.t_last == 24.0
    assert seg.n_samples == 5


def test_segment_range_out_of_bounds():
    store = _store()
    with pytest.raises(SegmentNotFound) as exc:
        store.segment_range("ip", 2)
    assert exc.value.node == "ip"
    assert exc.value.segment == 2


def test_fetch_samples():
    store = _store()
    run = store.fetch_samples("ip", 1, 2, 2)
    assert np.allclose(run.time, [22.0, 23.0])
    # values count up across the whole node
    assert np.allclose(run.values, [12.0, 13.0])


def test_fetch_samples_past_end_is_a_storage_error():
    store = _store()
    with pytest.raises(StorageError):
        store.fetch_samples("ip", 1, 5, 1)


def test_node_kind():
    store = _store()
    assert store.node_kind("ip") is NumericKind.FLOAT64
    assert store.node_kind("mode") is NumericKind.INT16


def test_store_rejects_overlapping_segments():
    runs = uniform_node([0.0, 5.0], [10, 10], 1.0)
    with pytest.raises(InvalidTimeSeries):
        MemorySegmentStore({"ip": runs})


def test_store_rejects_out_of_order_segments():
    runs = uniform_node([20.0, 0.0], [5, 5], 1.0)
    with pytest.raises(InvalidTimeSeries):
        MemorySegmentStore({"ip": runs})


def test_store_rejects_mixed_dtypes():
    runs = [
        TimeSeries.uniform(0.0, 1.0, np.zeros(3, dtype=np.float32)),
        TimeSeries.uniform(5.0, 1.0, np.zeros(3, dtype=np.float64)),
    ]
    with pytest.raises(InvalidTimeSeries):
        MemorySegmentStore({"ip": runs})


def test_store_rejects_empty_node_and_bad_entries():
    with pytest.raises(InvalidTimeSeries):
        MemorySegmentStore({"ip": []})
    with pytest.raises(InvalidTimeSeries):
        MemorySegmentStore({"ip": [np.arange(3.0)]})
    with pytest.raises(InvalidTimeSeries):
        MemorySegmentStore({"": uniform_node([0.0], [2], 1.0)})


def test_store_accepts_lazy_segments():
    calls = {"n": 0}

    def loader():
        calls["n"] += 1
        return np.arange(3.0), np.array([5.0, 6.0, 7.0])

    store = MemorySegmentStore({"ip": [LazyTimeSeries(loader=loader)]})
    assert store.segment_range("ip", 0).n_samples == 3
    assert store.fetch_samples("ip", 0, 1, 1).values[0] == 6.0
    assert calls["n"] == 1


def test_with_node_returns_new_store():
    store = _store()
    bigger = store.with_node("extra", uniform_node([0.0], [3], 1.0))
    assert "extra" in bigger
    assert "extra" not in store


def test_uniform_node_with_explicit_values():
    runs = uniform_node([0.0, 10.0], [2, 2], 1.0, dtype="uint8", values=[[1, 2], [3, 4]])
    assert runs[1].values.tolist() == [3, 4]
    assert runs[1].dtype == np.uint8
    assert runs[1].t_start == 10.0


def test_uniform_node_rejects_length_mismatch():
    with pytest.raises(InvalidTimeSeries):
        uniform_node([0.0, 1.0], [2], 1.0)
