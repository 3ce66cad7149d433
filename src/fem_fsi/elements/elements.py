from abc import ABC, abstractmethod
from itertools import product
from typing import Dict, Optional, Tuple

import numpy as np


def gauss_legendre(order: int, dim: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Tensor-product Gauss-Legendre rule on the reference cube [-1, 1]^dim.

    Points are ordered with the first coordinate running fastest.

    Returns
    -------
    points : np.ndarray
        Quadrature points (n_points x dim)
    weights : np.ndarray
        Integration weights (n_points,)
    """
    if order < 1:
        raise ValueError(f"Quadrature order must be >= 1, got {order}")
    if dim == 0:
        return np.zeros((1, 0)), np.ones(1)
    g, w = np.polynomial.legendre.leggauss(order)
    points = np.array([p[::-1] for p in product(g, repeat=dim)])
    weights = np.array([np.prod(p) for p in product(w, repeat=dim)])
    return points, weights


class ReferenceElement(ABC):
    """
    Isoparametric Lagrange element on the reference cube [-1, 1]^dim.

    Subclasses provide the shape functions, their derivatives, the vertex
    layout and the local face numbering.  Instances carry no physical data;
    see ``ElementValues`` for the mapped quantities.

    Attributes
    ----------
    vertices : np.ndarray
        Reference coordinates of the element nodes (n_nodes x dim)
    faces : Tuple[Tuple[int, ...], ...]
        Local node indices of every face, ordered counter-clockwise when
        seen from outside the element
    face_axes : Tuple[Tuple[int, int], ...]
        ``(axis, side)`` pair of the reference plane holding each face
    """

    name: str = ""
    dim: int = 0
    vertices: np.ndarray = np.zeros((0, 0))
    faces: Tuple[Tuple[int, ...], ...] = ()
    face_axes: Tuple[Tuple[int, int], ...] = ()

    def __init__(self):
        self._face_rules: Dict[Tuple[int, int], Tuple[np.ndarray, np.ndarray]] = {}

    @property
    def node_count(self) -> int:
        return len(self.vertices)

    @property
    def face_count(self) -> int:
        return len(self.faces)

    @abstractmethod
    def shape_functions(self, points: np.ndarray) -> np.ndarray:
        """Shape function values (n_points x n_nodes)."""

    @abstractmethod
    def shape_function_derivatives(self, points: np.ndarray) -> np.ndarray:
        """Shape function derivatives w.r.t. reference coordinates (n_points x n_nodes x dim)."""

    def integration_points(self, order: int) -> Tuple[np.ndarray, np.ndarray]:
        return gauss_legendre(order, self.dim)

    def face_integration_points(self, face: int, order: int) -> Tuple[np.ndarray, np.ndarray]:
        """
        Gauss rule on one face, expressed in cell reference coordinates.

        Weights integrate over the reference face (measure 2^(dim-1)).
        """
        key = (face, order)
        if key not in self._face_rules:
            axis, side = self.face_axes[face]
            face_points, weights = gauss_legendre(order, self.dim - 1)
            points = np.insert(face_points, axis, float(side), axis=1)
            self._face_rules[key] = (points, weights)
        return self._face_rules[key]

    def reference_normal(self, face: int) -> np.ndarray:
        axis, side = self.face_axes[face]
        normal = np.zeros(self.dim)
        normal[axis] = side
        return normal

    def contains(self, xi: np.ndarray, tolerance: float = 1e-10) -> bool:
        return bool(np.all(np.abs(xi) <= 1.0 + tolerance))

    def map_points(self, coords: np.ndarray, points: np.ndarray) -> np.ndarray:
        """Physical position of reference points for an element with nodal ``coords``."""
        return self.shape_functions(points) @ coords

    def inverse_map(
        self, coords: np.ndarray, x: np.ndarray, max_iterations: int = 25, tol: float = 1e-13
    ) -> Optional[np.ndarray]:
        """
        Reference coordinates of physical point ``x`` (Newton iteration).

        Returns None if the Jacobian becomes singular or the iteration does
        not settle.
        """
        xi = np.zeros(self.dim)
        scale = max(np.ptp(coords, axis=0).max(), 1e-300)
        for _ in range(max_iterations):
            N = self.shape_functions(xi[None, :])[0]
            dN = self.shape_function_derivatives(xi[None, :])[0]
            residual = N @ coords - x
            jacobian = coords.T @ dN
            try:
                delta = np.linalg.solve(jacobian, residual)
            except np.linalg.LinAlgError:
                return None
            xi = xi - delta
            if np.linalg.norm(delta) < tol or np.linalg.norm(residual) < tol * scale:
                return xi
            if np.any(np.abs(xi) > 10.0):
                # Far outside the reference cell; no need to converge tightly
                return xi
        return xi if np.all(np.isfinite(xi)) else None

    def __repr__(self):
        return f"<{type(self).__name__} nodes={self.node_count} dim={self.dim}>"


class ElementFactory:
    _cache: Dict[int, ReferenceElement] = {}

    @staticmethod
    def get_element(element_type) -> ReferenceElement:
        from fem_fsi.core.mesh.entities import ElementType

        from .QUAD import QUAD4
        from .SOLID import HEXA8

        ELEMENT_MAP = {ElementType.quad: QUAD4, ElementType.hexahedron: HEXA8}

        element_type = ElementType(element_type)
        if element_type not in ElementFactory._cache:
            try:
                ElementFactory._cache[element_type] = ELEMENT_MAP[element_type]()
            except KeyError:
                raise ValueError(f"No finite element available for {element_type.name}") from None
        return ElementFactory._cache[element_type]
