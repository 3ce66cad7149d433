"""Mapped shape-function data on physical cells and faces.

``ElementValues`` evaluates, for one cell at a time, everything the assembly
loops need at the quadrature points: shape values, physical gradients,
Jacobian-weighted quadrature weights and the physical point positions.
``FaceValues`` does the same on one face and adds outward unit normals
(Nanson's formula ``n dA = det(J) J^-T N dA_ref``).
"""

from typing import Optional

import numpy as np

from fem_fsi.elements.elements import ReferenceElement


def _jacobians(coords: np.ndarray, dN_dxi: np.ndarray):
    """Jacobian (dx/dxi), determinant and inverse at every point."""
    jac = np.einsum("ai,qad->qid", coords, dN_dxi)
    det_J = np.linalg.det(jac)
    if np.any(det_J <= 0.0):
        raise ValueError(f"Non-positive Jacobian determinant in element mapping: {det_J.min()}")
    return jac, det_J, np.linalg.inv(jac)


class ElementValues:
    """
    Cell quadrature data for one reference element and quadrature order.

    Parameters
    ----------
    element : ReferenceElement
        Reference element (QUAD4, HEXA8).
    order : int
        Number of Gauss points per direction.

    Attributes
    ----------
    N : np.ndarray
        Shape values at quadrature points (n_q x n_nodes)
    dN_dx : np.ndarray
        Physical gradients after ``reinit`` (n_q x n_nodes x dim)
    JxW : np.ndarray
        Jacobian-weighted quadrature weights after ``reinit`` (n_q,)
    quadrature_points : np.ndarray
        Physical quadrature points after ``reinit`` (n_q x dim)
    """

    def __init__(self, element: ReferenceElement, order: int):
        self.element = element
        self.order = order
        self.points, self.weights = element.integration_points(order)
        self.N = element.shape_functions(self.points)
        self.dN_dxi = element.shape_function_derivatives(self.points)
        self.dN_dx: Optional[np.ndarray] = None
        self.JxW: Optional[np.ndarray] = None
        self.quadrature_points: Optional[np.ndarray] = None

    @property
    def n_quadrature_points(self) -> int:
        return len(self.weights)

    def reinit(self, coords: np.ndarray) -> "ElementValues":
        _, det_J, inv_J = _jacobians(coords, self.dN_dxi)
        self.dN_dx = np.einsum("qad,qdi->qai", self.dN_dxi, inv_J)
        self.JxW = det_J * self.weights
        self.quadrature_points = self.N @ coords
        return self


class FaceValues:
    """
    Face quadrature data for one reference element and quadrature order.

    Attributes
    ----------
    N : np.ndarray
        Shape values of all cell nodes at the face points (n_q x n_nodes)
    dN_dx : np.ndarray
        Physical gradients of the cell shape functions (n_q x n_nodes x dim)
    JxW : np.ndarray
        Surface-measure-weighted quadrature weights (n_q,)
    normals : np.ndarray
        Outward unit normals (n_q x dim)
    quadrature_points : np.ndarray
        Physical face points (n_q x dim)
    """

    def __init__(self, element: ReferenceElement, order: int):
        self.element = element
        self.order = order
        self._rules = []
        for face in range(element.face_count):
            points, weights = element.face_integration_points(face, order)
            self._rules.append(
                (
                    points,
                    weights,
                    element.shape_functions(points),
                    element.shape_function_derivatives(points),
                )
            )
        self.face: Optional[int] = None
        self.N: Optional[np.ndarray] = None
        self.dN_dx: Optional[np.ndarray] = None
        self.JxW: Optional[np.ndarray] = None
        self.normals: Optional[np.ndarray] = None
        self.quadrature_points: Optional[np.ndarray] = None

    @property
    def n_quadrature_points(self) -> int:
        return len(self._rules[0][1])

    def reinit(self, coords: np.ndarray, face: int) -> "FaceValues":
        _, weights, N, dN_dxi = self._rules[face]
        _, det_J, inv_J = _jacobians(coords, dN_dxi)
        reference_normal = self.element.reference_normal(face)
        area_vectors = det_J[:, None] * np.einsum("qdi,d->qi", inv_J, reference_normal)
        area = np.linalg.norm(area_vectors, axis=1)

        self.face = face
        self.N = N
        self.dN_dx = np.einsum("qad,qdi->qai", dN_dxi, inv_J)
        self.JxW = area * weights
        self.normals = area_vectors / area[:, None]
        self.quadrature_points = N @ coords
        return self
