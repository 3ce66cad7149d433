"""Bilinear quadrilateral element (QUAD4) for 2D finite-strain analysis.

Node numbering convention:

    3-------2
    |       |
    |       |
    0-------1

Local faces (edges) follow the boundary counter-clockwise:
    0: 0-1 (eta = -1)   1: 1-2 (xi = +1)   2: 2-3 (eta = +1)   3: 3-0 (xi = -1)
"""

import numpy as np

from fem_fsi.elements.elements import ReferenceElement


class QUAD4(ReferenceElement):
    """4-node Bilinear Quadrilateral Element"""

    name = "QUAD4"
    dim = 2
    vertices = np.array([[-1.0, -1.0], [1.0, -1.0], [1.0, 1.0], [-1.0, 1.0]])
    faces = ((0, 1), (1, 2), (2, 3), (3, 0))
    face_axes = ((1, -1), (0, 1), (1, 1), (0, -1))

    def shape_functions(self, points: np.ndarray) -> np.ndarray:
        """Bilinear shape functions

        N0 = 0.25(1 - xi)(1 - eta)
        N1 = 0.25(1 + xi)(1 - eta)
        N2 = 0.25(1 + xi)(1 + eta)
        N3 = 0.25(1 - xi)(1 + eta)
        """
        points = np.atleast_2d(points)
        xi, eta = points[:, 0], points[:, 1]
        return 0.25 * np.column_stack(
            [
                (1 - xi) * (1 - eta),
                (1 + xi) * (1 - eta),
                (1 + xi) * (1 + eta),
                (1 - xi) * (1 + eta),
            ]
        )

    def shape_function_derivatives(self, points: np.ndarray) -> np.ndarray:
        points = np.atleast_2d(points)
        xi, eta = points[:, 0], points[:, 1]
        dN_dxi = 0.25 * np.column_stack([-(1 - eta), (1 - eta), (1 + eta), -(1 + eta)])
        dN_deta = 0.25 * np.column_stack([-(1 - xi), -(1 + xi), (1 + xi), (1 - xi)])
        return np.stack([dN_dxi, dN_deta], axis=-1)
