# test/test_mdf_store.py
import numpy as np
import pytest
import yaml
from asammdf import MDF, Signal

from segreplay.core import (
    ChannelNotFound,
    NumericKind,
    SegmentNotFound,
    StorageError,
)
from segreplay.io.load import load_engine
from segreplay.io.mdf_store import MdfSegmentStore

pytestmark = pytest.mark.integration


@pytest.fixture
def mdf_file(tmp_path):
    """Two data groups for 'ip' with a 10 ms hole between them, plus 'vloop'."""
    t = np.arange(10) * 0.001
    mdf = MDF()
    mdf.append([Signal(samples=np.arange(10, dtype=np.int16), timestamps=t, name="ip", unit="kA")])
    mdf.append(
        [Signal(samples=np.arange(10, 20, dtype=np.int16), timestamps=0.02 + t, name="ip", unit="kA")]
    )
    mdf.append([Signal(samples=np.linspace(0.0, 1.0, 50), timestamps=np.arange(50) * 0.002, name="vloop")])
    path = tmp_path / "shot.mf4"
    mdf.save(path, overwrite=True)
    mdf.close()
    return path


@pytest.fixture
def store(mdf_file):
    with MdfSegmentStore(str(mdf_file)) as s:
        yield s


def test_store_lists_nodes_but_not_time_bases(store):
    assert len(store) == 2
    assert set(store.keys()) == {"ip", "vloop"}
    assert "time" not in store
    assert [seg.group_index for seg in store.node("ip").segments] == [0, 1]


def test_segments_follow_data_groups(store):
    assert store.segment_count("ip") == 2
    assert store.segment_count("vloop") == 1

    first = store.segment_range("ip", 0)
    second = store.segment_range("ip", 1)
    assert first.t_start == pytest.approx(0.0)
    assert first.t_last == pytest.approx(0.009)
    assert second.t_start == pytest.approx(0.02)
    assert second.n_samples == 10


def test_fetch_samples_and_kind(store):
    run = store.fetch_samples("ip", 1, 2, 3)
    assert run.values.tolist() == [12, 13, 14]
    assert np.allclose(run.time, [0.022, 0.023, 0.024])
    assert store.node_kind("ip") is NumericKind.INT16
    assert store.node_kind("vloop") is NumericKind.FLOAT64


def test_segments_are_loaded_lazily(store):
    node = store.node("ip")
    assert not any(seg.series.loaded for seg in node.segments)

    store.segment_range("ip", 1)
    assert node.segments[1].series.loaded
    assert not node.segments[0].series.loaded

    store.fetch_samples("ip", 0, 0, 1)
    assert node.segments[0].series.loaded


def test_lookup_errors(store):
    with pytest.raises(ChannelNotFound):
        store.segment_count("missing")
    with pytest.raises(SegmentNotFound):
        store.segment_range("ip", 2)
    with pytest.raises(SegmentNotFound):
        store.fetch_samples("ip", 0, 10, 1)


def test_open_missing_file_is_a_storage_error(tmp_path):
    with pytest.raises(StorageError):
        MdfSegmentStore(str(tmp_path / "nope.mf4"))


def test_replay_from_yaml_configuration(mdf_file, tmp_path):
    config = {
        "source": mdf_file.name,
        "frequency": 100,
        "signals": {"ip": {"elements": 10, "resampling": "raw", "holes": "zero_fill"}},
        "time": {"type": "uint32"},
    }
    path = tmp_path / "engine.yaml"
    path.write_text(yaml.safe_dump(config), encoding="utf-8")

    reader = load_engine(str(path))
    try:
        buffers = reader.allocate_buffers()
        assert buffers["ip"].dtype == np.int16

        seen = []
        times = []
        for result in reader.iter_cycles(buffers):
            seen.append(buffers["ip"].tolist())
            times.append(result.time_value)

        assert seen == [list(range(10)), [0] * 10, list(range(10, 20)), [0] * 10]
        assert times == [0, 10000, 20000, 30000]
        assert not reader.more_data
    finally:
        reader.store.close()
