"""Trilinear hexahedral element (HEXA8) for 3D finite-strain analysis.

Node ordering:
        7-------6
       /|      /|
      / |     / |
     4-------5  |
     |  3----|--2
     | /     | /
     |/      |/
     0-------1

Natural coordinates: xi, eta, zeta in [-1, 1]
"""

import numpy as np

from fem_fsi.elements.elements import ReferenceElement


class HEXA8(ReferenceElement):
    """8-node linear hexahedron (brick) element."""

    name = "HEXA8"
    dim = 3
    vertices = np.array(
        [
            [-1.0, -1.0, -1.0],
            [1.0, -1.0, -1.0],
            [1.0, 1.0, -1.0],
            [-1.0, 1.0, -1.0],
            [-1.0, -1.0, 1.0],
            [1.0, -1.0, 1.0],
            [1.0, 1.0, 1.0],
            [-1.0, 1.0, 1.0],
        ]
    )
    # Outward-oriented faces: xi-, xi+, eta-, eta+, zeta-, zeta+
    faces = (
        (0, 4, 7, 3),
        (1, 2, 6, 5),
        (0, 1, 5, 4),
        (3, 7, 6, 2),
        (0, 3, 2, 1),
        (4, 5, 6, 7),
    )
    face_axes = ((0, -1), (0, 1), (1, -1), (1, 1), (2, -1), (2, 1))

    def shape_functions(self, points: np.ndarray) -> np.ndarray:
        """Trilinear shape functions."""
        points = np.atleast_2d(points)
        xi, eta, zeta = points[:, 0], points[:, 1], points[:, 2]
        return 0.125 * np.column_stack(
            [
                (1 - xi) * (1 - eta) * (1 - zeta),  # N0
                (1 + xi) * (1 - eta) * (1 - zeta),  # N1
                (1 + xi) * (1 + eta) * (1 - zeta),  # N2
                (1 - xi) * (1 + eta) * (1 - zeta),  # N3
                (1 - xi) * (1 - eta) * (1 + zeta),  # N4
                (1 + xi) * (1 - eta) * (1 + zeta),  # N5
                (1 + xi) * (1 + eta) * (1 + zeta),  # N6
                (1 - xi) * (1 + eta) * (1 + zeta),  # N7
            ]
        )

    def shape_function_derivatives(self, points: np.ndarray) -> np.ndarray:
        """Derivatives of trilinear shape functions."""
        points = np.atleast_2d(points)
        xi, eta, zeta = points[:, 0], points[:, 1], points[:, 2]
        signs = self.vertices
        derivatives = np.empty((points.shape[0], 8, 3))
        for a in range(8):
            sx, sy, sz = signs[a]
            derivatives[:, a, 0] = 0.125 * sx * (1 + sy * eta) * (1 + sz * zeta)
            derivatives[:, a, 1] = 0.125 * sy * (1 + sx * xi) * (1 + sz * zeta)
            derivatives[:, a, 2] = 0.125 * sz * (1 + sx * xi) * (1 + sy * eta)
        return derivatives
