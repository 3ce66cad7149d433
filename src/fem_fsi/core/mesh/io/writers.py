"""
Mesh I/O writers module.

This module exports the active cells of a MeshModel through meshio
(VTU, VTK, XDMF, ...), optionally with point and cell data.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional

import meshio
import numpy as np

if TYPE_CHECKING:
    from fem_fsi.core.mesh.model import MeshModel


def _pad_to_3d(array: np.ndarray) -> np.ndarray:
    """VTK readers expect 3-component points and vectors."""
    array = np.asarray(array, dtype=float)
    if array.ndim == 2 and array.shape[1] == 2:
        return np.hstack([array, np.zeros((array.shape[0], 1))])
    return array


def to_meshio(
    mesh: "MeshModel",
    point_data: Optional[Dict[str, np.ndarray]] = None,
    cell_data: Optional[Dict[str, np.ndarray]] = None,
    reference: bool = False,
) -> meshio.Mesh:
    """
    Build a meshio.Mesh from the active cells.

    Parameters
    ----------
    mesh : MeshModel
        Mesh to export.
    point_data : dict, optional
        Nodal fields, each (n_nodes,) or (n_nodes x n_comp).
    cell_data : dict, optional
        Per-active-cell fields, each (n_active,) or (n_active x n_comp).
    reference : bool
        Export the reference configuration instead of the current one.
    """
    points = _pad_to_3d(mesh.reference_coords if reference else mesh.coords)
    cells = [(mesh.element_type.name, mesh.connectivity)]
    return meshio.Mesh(
        points,
        cells,
        point_data={k: _pad_to_3d(v) for k, v in (point_data or {}).items()},
        cell_data={k: [np.asarray(v)] for k, v in (cell_data or {}).items()},
    )


def write_meshio(mesh: "MeshModel", filename: str, **kwargs) -> None:
    """Write mesh and fields using meshio library."""
    file_format = kwargs.pop("file_format", None)
    meshio.write(filename, to_meshio(mesh, **kwargs), file_format=file_format)


def write_mesh(mesh: "MeshModel", filename: str, **kwargs) -> None:
    """
    Write the mesh to a file.

    The format is inferred from the file extension by meshio.
    """
    if mesh.elements_count == 0:
        raise ValueError("Mesh has no active elements.")
    Path(filename).parent.mkdir(parents=True, exist_ok=True)
    write_meshio(mesh, filename, **kwargs)
