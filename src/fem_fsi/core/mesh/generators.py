"""
Mesh generators module.

This module contains the structured generator for axis-aligned boxes:
- BoxMesh: 2D rectangles of QUAD4 cells and 3D boxes of HEXA8 cells
"""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING, Sequence

import numpy as np

from fem_fsi.core.mesh.entities import ElementType, MeshElement

if TYPE_CHECKING:
    from fem_fsi.core.mesh.model import MeshModel


class BoxMesh:
    """
    Generates structured meshes of an axis-aligned box.

    Nodes are numbered lexicographically with x running fastest.  Cell nodes
    follow the QUAD4/HEXA8 ordering (counter-clockwise bottom face, then the
    top face in 3D).

    Attributes
    ----------
    lower : np.ndarray
        Lower corner of the box
    upper : np.ndarray
        Upper corner of the box
    divisions : tuple of int
        Number of cells along each axis
    """

    def __init__(self, lower: Sequence[float], upper: Sequence[float], divisions: Sequence[int]):
        self.lower = np.asarray(lower, dtype=float)
        self.upper = np.asarray(upper, dtype=float)
        self.divisions = tuple(int(n) for n in divisions)

        if self.lower.shape != self.upper.shape or self.lower.size not in (2, 3):
            raise ValueError("Box corners must both be 2D or 3D points")
        if len(self.divisions) != self.lower.size:
            raise ValueError("One division count is required per axis")
        if np.any(self.upper <= self.lower):
            raise ValueError(f"Degenerate box: lower={self.lower}, upper={self.upper}")
        if min(self.divisions) < 1:
            raise ValueError(f"Divisions must be positive, got {self.divisions}")

    @property
    def dim(self) -> int:
        return self.lower.size

    def generate(self) -> "MeshModel":
        """Generates and returns a MeshModel with the structured mesh"""
        # Import here to avoid circular imports
        from fem_fsi.core.mesh.model import MeshModel

        axes = [
            np.linspace(lo, hi, n + 1)
            for lo, hi, n in zip(self.lower, self.upper, self.divisions)
        ]
        grid = np.meshgrid(*axes, indexing="ij")
        coords = np.column_stack([g.ravel(order="F") for g in grid])

        return MeshModel(coords, self._create_elements())

    def _node_index(self, index) -> int:
        stride = 1
        node = 0
        for i, n in zip(index, self.divisions):
            node += i * stride
            stride *= n + 1
        return node

    def _create_elements(self):
        if self.dim == 2:
            corners = ((0, 0), (1, 0), (1, 1), (0, 1))
            element_type = ElementType.quad
        else:
            corners = (
                (0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0),
                (0, 0, 1), (1, 0, 1), (1, 1, 1), (0, 1, 1),
            )
            element_type = ElementType.hexahedron

        elements = []
        # x fastest, matching the node numbering
        for cell in itertools.product(*(range(n) for n in reversed(self.divisions))):
            cell = tuple(reversed(cell))
            node_ids = [
                self._node_index(tuple(c + o for c, o in zip(cell, corner)))
                for corner in corners
            ]
            elements.append(MeshElement(node_ids, element_type))
        return elements

    @classmethod
    def create_rectangle(
        cls, width: float, height: float, nx: int, ny: int, origin=(0.0, 0.0)
    ) -> "MeshModel":
        """Helper method to create rectangular mesh"""
        lower = np.asarray(origin, dtype=float)
        return cls(lower, lower + [width, height], (nx, ny)).generate()

    @classmethod
    def create_unit_square(cls, nx: int, ny: int) -> "MeshModel":
        """Helper method to create unit square mesh"""
        return cls((0.0, 0.0), (1.0, 1.0), (nx, ny)).generate()

    @classmethod
    def create_box(
        cls,
        lower: Sequence[float],
        upper: Sequence[float],
        nx: int,
        ny: int,
        nz: int,
    ) -> "MeshModel":
        """Creates a box with specified corners"""
        return cls(lower, upper, (nx, ny, nz)).generate()
