"""
Result files of a coupled run.

Two kinds of files are produced in the output folder:

* visualization output: ``<name>-<step>.vtu`` per field set and step, listed
  with their physical times in the ParaView collection ``<name>.pvd``;
* state snapshots: ``<time>/state.npz`` holding the clock and the solution
  arrays, for post-processing or for seeding a new run.
"""

import logging
import os
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np

from fem_fsi.core.mesh import MeshModel, write_mesh

logger = logging.getLogger(__name__)

# Snapshot folders are named after the time: "0", "0.015", "2e-05", "1e+06", ...
TIME_FOLDER_PATTERN = re.compile(r"^(\d+(?:\.\d+)?(?:e[-+]?\d+)?)$")
SNAPSHOT_FILE = "state.npz"
CLOCK_KEYS = ("t", "time_step", "dt")


@dataclass
class CheckpointInfo:
    """A snapshot found on disk."""

    time: float
    time_step: int
    path: str


class CheckpointManager:
    """
    Writes VTU/PVD output and npz snapshots into one folder.

    Parameters
    ----------
    output_folder : str
        Created if missing.
    time_precision : int
        Significant digits of the snapshot folder names.
    """

    def __init__(self, output_folder: str, time_precision: int = 6):
        self.output_folder = output_folder
        self.time_precision = time_precision
        # name -> {vtu file: time}
        self._collections: Dict[str, Dict[str, float]] = {}
        os.makedirs(self.output_folder, exist_ok=True)

    # =========================================================================
    # Visualization output
    # =========================================================================

    def write_output(
        self,
        name: str,
        mesh: MeshModel,
        t: float,
        time_step: int,
        point_data: Optional[Dict[str, np.ndarray]] = None,
        cell_data: Optional[Dict[str, np.ndarray]] = None,
        reference: bool = False,
    ) -> str:
        """
        Write the field set ``name`` at step ``time_step`` and list it in ``<name>.pvd``.

        Writing the same step twice replaces the earlier entry.

        Returns
        -------
        str
            Path of the VTU file.
        """
        vtu_file = f"{name}-{time_step:05d}.vtu"
        path = os.path.join(self.output_folder, vtu_file)
        write_mesh(mesh, path, point_data=point_data, cell_data=cell_data, reference=reference)

        self._collections.setdefault(name, {})[vtu_file] = t
        self._write_collection(name)
        logger.debug("Wrote %s at t=%.6g", path, t)
        return path

    def _write_collection(self, name: str) -> None:
        root = ET.Element("VTKFile", type="Collection", version="1.0")
        collection = ET.SubElement(root, "Collection")
        entries = sorted(self._collections[name].items(), key=lambda item: item[1])
        for vtu_file, t in entries:
            ET.SubElement(collection, "DataSet", timestep=repr(t), part="0", file=vtu_file)
        ET.ElementTree(root).write(
            os.path.join(self.output_folder, f"{name}.pvd"), xml_declaration=True, encoding="utf-8"
        )

    def written_times(self, name: str) -> List[float]:
        """Times of the steps written for ``name``, in writing order."""
        return list(self._collections.get(name, {}).values())

    # =========================================================================
    # Snapshots
    # =========================================================================

    def save(self, t: float, time_step: int, dt: float, state: Dict[str, np.ndarray]) -> str:
        """
        Store the clock and ``state`` under ``<output_folder>/<t>/state.npz``.

        Returns
        -------
        str
            The snapshot folder.
        """
        folder = os.path.join(self.output_folder, f"{t:.{self.time_precision}g}")
        os.makedirs(folder, exist_ok=True)
        np.savez_compressed(
            os.path.join(folder, SNAPSHOT_FILE), t=t, time_step=time_step, dt=dt, **state
        )
        logger.info("Snapshot of step %d (t=%.6g s) saved to %s", time_step, t, folder)
        return folder

    def snapshots(self) -> List[CheckpointInfo]:
        """Snapshots in the output folder, oldest first."""
        found = []
        for entry in sorted(os.listdir(self.output_folder)):
            snapshot = os.path.join(self.output_folder, entry, SNAPSHOT_FILE)
            if not TIME_FOLDER_PATTERN.match(entry) or not os.path.isfile(snapshot):
                continue
            with np.load(snapshot) as data:
                step = int(data["time_step"])
            found.append(CheckpointInfo(float(entry), step, os.path.dirname(snapshot)))
        found.sort(key=lambda info: info.time)
        return found

    def find_latest(self) -> Optional[CheckpointInfo]:
        """Most recent snapshot, or None when the folder holds none."""
        found = self.snapshots()
        return found[-1] if found else None

    def load(self, path: str) -> Dict[str, Any]:
        """
        Read a snapshot folder written by ``save``.

        Returns
        -------
        dict
            Stored arrays, with ``t``, ``time_step`` and ``dt`` as Python scalars.

        Raises
        ------
        FileNotFoundError
            If ``path`` holds no snapshot.
        """
        snapshot = os.path.join(path, SNAPSHOT_FILE)
        if not os.path.isfile(snapshot):
            raise FileNotFoundError(f"No snapshot in {path}")

        with np.load(snapshot) as data:
            state = {key: data[key] for key in data.files}
        for key in CLOCK_KEYS:
            state[key] = state[key].item()

        logger.info("Loaded snapshot of step %d (t=%.6g s) from %s", state["time_step"], state["t"], path)
        return state
