"""Tests for the simulation clock and the checkpoint manager."""

import os
import xml.etree.ElementTree as ET

import numpy as np
import pytest

from fem_fsi.core.mesh import BoxMesh
from fem_fsi.solvers.checkpoint import CheckpointManager
from fem_fsi.solvers.time import Time


class TestTime:
    def test_increment(self):
        time = Time(end=1.0, delta_t=0.25)
        for _ in range(3):
            time.increment()
        assert time.get_timestep() == 3
        assert time.current() == pytest.approx(0.75)
        assert time.end() == 1.0

    def test_intervals(self):
        time = Time(end=1.0, delta_t=0.1, output_interval=2, refinement_interval=3, save_interval=0)
        hits = []
        for _ in range(6):
            time.increment()
            hits.append((time.time_to_output(), time.time_to_refine(), time.time_to_save()))
        assert [h[0] for h in hits] == [False, True, False, True, False, True]
        assert [h[1] for h in hits] == [False, False, True, False, False, True]
        assert not any(h[2] for h in hits)

    def test_reset(self):
        time = Time(end=1.0, delta_t=0.1)
        time.reset(current=0.5, timestep=5)
        time.increment()
        assert time.get_timestep() == 6
        assert time.current() == pytest.approx(0.6)

    def test_invalid(self):
        with pytest.raises(ValueError):
            Time(end=1.0, delta_t=0.0)
        with pytest.raises(ValueError):
            Time(end=-1.0, delta_t=0.1)


class TestCheckpointManager:
    def test_output_and_pvd(self, tmp_path):
        manager = CheckpointManager(str(tmp_path / "out"))
        mesh = BoxMesh.create_unit_square(2, 2)
        for step, t in enumerate([0.0, 0.1, 0.2]):
            path = manager.write_output(
                "solid", mesh, t, step, point_data={"u": np.zeros((mesh.node_count, 2))}
            )
            assert os.path.isfile(path)

        assert manager.written_times("solid") == [0.0, 0.1, 0.2]
        root = ET.parse(tmp_path / "out" / "solid.pvd").getroot()
        datasets = root.find("Collection").findall("DataSet")
        assert [d.get("file") for d in datasets] == [
            "solid-00000.vtu",
            "solid-00001.vtu",
            "solid-00002.vtu",
        ]

    def test_rewriting_a_step_replaces_the_entry(self, tmp_path):
        manager = CheckpointManager(str(tmp_path))
        mesh = BoxMesh.create_unit_square(1, 1)
        manager.write_output("fluid", mesh, 0.0, 0)
        manager.write_output("fluid", mesh, 0.0, 0)
        assert manager.written_times("fluid") == [0.0]

    def test_save_find_and_load(self, tmp_path):
        manager = CheckpointManager(str(tmp_path))
        assert manager.find_latest() is None

        manager.save(0.1, 10, 0.01, {"u": np.arange(4.0)})
        path = manager.save(0.2, 20, 0.01, {"u": np.arange(4.0) * 2})
        assert os.path.basename(path) == "0.2"

        latest = manager.find_latest()
        assert latest.time == pytest.approx(0.2)
        assert latest.time_step == 20

        data = manager.load(latest.path)
        assert data["t"] == pytest.approx(0.2)
        assert isinstance(data["time_step"], int)
        np.testing.assert_array_equal(data["u"], [0.0, 2.0, 4.0, 6.0])

    def test_large_times_are_found(self, tmp_path):
        manager = CheckpointManager(str(tmp_path))
        manager.save(5.0e5, 1, 5.0e5, {"u": np.zeros(2)})
        path = manager.save(1.0e6, 2, 5.0e5, {"u": np.ones(2)})
        assert os.path.basename(path) == "1e+06"

        latest = manager.find_latest()
        assert latest.time == pytest.approx(1.0e6)
        assert latest.time_step == 2
        assert len(manager.snapshots()) == 2

    def test_load_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            CheckpointManager(str(tmp_path)).load(str(tmp_path / "0.5"))
