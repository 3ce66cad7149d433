"""
MeshModel class module.

This module contains the MeshModel class that represents a hierarchically
refined quadrilateral/hexahedral mesh with a fixed reference configuration
and a current (possibly displaced) configuration.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np

from fem_fsi.core.mesh.entities import (
    BOUNDARY_NAMES,
    ELEMENT_DIMENSION,
    BoundaryFace,
    ElementType,
    MeshElement,
    NodeSet,
)
from fem_fsi.elements import ElementFactory, ReferenceElement

logger = logging.getLogger(__name__)

# Decimal places used to identify coincident nodes
KEY_DECIMALS = 10


class MeshModel:
    """
    Represents a mesh composed of nodes and hierarchically refined cells.

    Node coordinates are stored twice: ``reference_coords`` is the immutable
    reference configuration used for every finite element computation, and
    ``coords`` is the current configuration used for geometric queries
    (point location, interpolation).  Moving the mesh never touches the
    reference array.

    Parameters
    ----------
    coords : np.ndarray
        Node coordinates (n_nodes x dim).
    elements : list of MeshElement
        Coarse cells of the mesh.

    Attributes
    ----------
    elements : list of MeshElement
        All cells of the refinement hierarchy (active and inactive).
    node_sets : dict
        Boundary node sets keyed by boundary name.
    boundary_faces : list of BoundaryFace
        Faces of active cells lying on the domain boundary.
    """

    def __init__(self, coords: np.ndarray, elements: List[MeshElement]):
        coords = np.array(coords, dtype=float)
        if coords.ndim != 2 or coords.shape[1] not in (2, 3):
            raise ValueError(f"Node coordinates must be (n_nodes x 2|3), got {coords.shape}")
        if not elements:
            raise ValueError("A mesh needs at least one element")

        self.dim = coords.shape[1]
        self.element_type = ElementType(elements[0].element_type)
        if ELEMENT_DIMENSION[self.element_type] != self.dim:
            raise ValueError(
                f"{self.element_type.name} elements require {ELEMENT_DIMENSION[self.element_type]}D coordinates"
            )
        self.reference_element: ReferenceElement = ElementFactory.get_element(self.element_type)

        self._set_reference(coords)
        self.coords = coords.copy()
        self.elements: List[MeshElement] = []
        for element in elements:
            if element.element_type != self.element_type:
                raise ValueError("Mixed element types are not supported")
            if max(element.node_ids) >= len(coords):
                raise ValueError(f"Element {element} references a missing node")
            self._append_element(element)

        self.node_sets: Dict[str, NodeSet] = {}
        self.boundary_faces: List[BoundaryFace] = []
        self._active: Optional[List[MeshElement]] = None
        self._connectivity: Optional[np.ndarray] = None
        self._bounds: Optional[Tuple[np.ndarray, np.ndarray]] = None
        self._constraints: Optional[Dict[int, List[Tuple[int, float]]]] = None
        self._update_topology()

    # =========================================================================
    # Configuration
    # =========================================================================

    def _set_reference(self, coords: np.ndarray) -> None:
        self._reference_coords = np.array(coords, dtype=float)
        self._reference_coords.setflags(write=False)
        self._node_index = {self._key(x): i for i, x in enumerate(self._reference_coords)}

    @property
    def reference_coords(self) -> np.ndarray:
        """Read-only reference configuration (n_nodes x dim)."""
        return self._reference_coords

    def set_displacement(self, displacement: np.ndarray) -> None:
        """
        Place the current configuration at ``reference + displacement``.

        Parameters
        ----------
        displacement : np.ndarray
            Nodal displacement, either (n_nodes x dim) or flat (n_nodes*dim,)
            with node-major ordering.
        """
        u = np.asarray(displacement, dtype=float).reshape(self.node_count, self.dim)
        self.coords = self._reference_coords + u
        self._bounds = None

    def reset_configuration(self) -> None:
        """Restore the current configuration to the reference one exactly."""
        self.coords = self._reference_coords.copy()
        self._bounds = None

    @property
    def is_displaced(self) -> bool:
        return not np.array_equal(self.coords, self._reference_coords)

    # =========================================================================
    # Queries
    # =========================================================================

    @staticmethod
    def _key(x: np.ndarray) -> Tuple[float, ...]:
        return tuple(np.round(np.asarray(x, dtype=float), KEY_DECIMALS) + 0.0)

    def find_node(self, x: np.ndarray) -> Optional[int]:
        """Index of the node at reference position ``x``, if any."""
        return self._node_index.get(self._key(x))

    @property
    def node_count(self) -> int:
        return len(self._reference_coords)

    @property
    def active_elements(self) -> List[MeshElement]:
        if self._active is None:
            self._active = [e for e in self.elements if e.active]
        return self._active

    @property
    def elements_count(self) -> int:
        """Number of active cells."""
        return len(self.active_elements)

    @property
    def n_levels(self) -> int:
        return max(e.level for e in self.elements) + 1

    @property
    def connectivity(self) -> np.ndarray:
        """Node indices of the active cells (n_active x nodes_per_cell)."""
        if self._connectivity is None:
            self._connectivity = np.array(
                [e.node_ids for e in self.active_elements], dtype=np.int64
            )
        return self._connectivity

    def element_coords(self, element: MeshElement, reference: bool = True) -> np.ndarray:
        source = self._reference_coords if reference else self.coords
        return source[list(element.node_ids)]

    def cell_centers(self, reference: bool = False) -> np.ndarray:
        """Vertex average of every active cell (n_active x dim)."""
        source = self._reference_coords if reference else self.coords
        return source[self.connectivity].mean(axis=1)

    @property
    def bounding_box(self) -> Tuple[np.ndarray, np.ndarray]:
        return self._reference_coords.min(axis=0), self._reference_coords.max(axis=0)

    def get_node_set(self, name: str) -> NodeSet:
        if name not in self.node_sets:
            raise KeyError(f"Node set '{name}' not found. Available: {list(self.node_sets)}")
        return self.node_sets[name]

    def get_boundary_faces(self, name: str) -> List[BoundaryFace]:
        return [face for face in self.boundary_faces if face.boundary == name]

    # =========================================================================
    # Point location and interpolation
    # =========================================================================

    def _element_bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        if self._bounds is None:
            cell_coords = self.coords[self.connectivity]
            lower = cell_coords.min(axis=1)
            upper = cell_coords.max(axis=1)
            pad = 1e-10 * np.maximum(upper - lower, 1e-300)
            self._bounds = (lower - pad, upper + pad)
        return self._bounds

    def find_element(
        self, point: np.ndarray, tolerance: float = 1e-10
    ) -> Optional[Tuple[MeshElement, np.ndarray]]:
        """
        Locate the active cell containing ``point`` in the current configuration.

        Candidates are filtered by their bounding boxes and then checked with
        the inverse isoparametric map.

        Returns
        -------
        (MeshElement, np.ndarray) or None
            Containing cell and reference coordinates of the point, or None
            when the point lies outside the mesh.
        """
        point = np.asarray(point, dtype=float)
        lower, upper = self._element_bounds()
        candidates = np.nonzero(np.all((point >= lower) & (point <= upper), axis=1))[0]
        active = self.active_elements
        ref = self.reference_element
        for idx in candidates:
            element = active[idx]
            xi = ref.inverse_map(self.coords[self.connectivity[idx]], point)
            if xi is not None and ref.contains(xi, tolerance):
                return element, xi
        return None

    def point_in_mesh(self, point: np.ndarray) -> bool:
        return self.find_element(point) is not None

    def evaluate(
        self, field: np.ndarray, point: np.ndarray
    ) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """
        Value and gradient of a nodal field at a physical point.

        Parameters
        ----------
        field : np.ndarray
            Nodal values, (n_nodes,) or (n_nodes x n_components).
        point : np.ndarray
            Physical point in the current configuration.

        Returns
        -------
        (value, gradient) or None
            ``value`` has shape (n_components,) and ``gradient`` has shape
            (n_components x dim), with the leading axis dropped for scalar
            fields.  None when the point is outside the mesh.
        """
        located = self.find_element(point)
        if located is None:
            return None
        element, xi = located
        nodes = list(element.node_ids)
        coords = self.coords[nodes]
        ref = self.reference_element
        N = ref.shape_functions(xi[None, :])[0]
        dN_dxi = ref.shape_function_derivatives(xi[None, :])[0]
        dN_dx = dN_dxi @ np.linalg.inv(coords.T @ dN_dxi)
        values = np.asarray(field)[nodes]
        return N @ values, values.T @ dN_dx

    def point_value(self, field: np.ndarray, point: np.ndarray) -> Optional[np.ndarray]:
        result = self.evaluate(field, point)
        return None if result is None else result[0]

    # =========================================================================
    # Refinement
    # =========================================================================

    def refine_global(self, times: int = 1) -> None:
        for _ in range(times):
            for element in self.active_elements:
                element.refine_flag = True
                element.coarsen_flag = False
            self.execute_coarsening_and_refinement()

    def _vertex_neighbors(self) -> Dict[int, List[MeshElement]]:
        neighbors: Dict[int, List[MeshElement]] = {}
        for element in self.active_elements:
            for node in element.node_ids:
                neighbors.setdefault(node, []).append(element)
        return neighbors

    def _touching(self, element: MeshElement, vertex_map) -> set:
        touching = set()
        for node in element.node_ids:
            touching.update(vertex_map.get(node, ()))
        touching.discard(element)
        return touching

    def prepare_coarsening_and_refinement(self) -> List[MeshElement]:
        """
        Make the adaptation flags consistent with a one-level jump rule.

        Cells sharing a vertex may differ by at most one refinement level
        after adaptation.  Refinement flags are propagated to coarser
        neighbours and coarsening flags are dropped wherever they would break
        the rule.

        Returns
        -------
        list of MeshElement
            Parents whose children will be removed.
        """
        active = self.active_elements
        vertex_map = self._vertex_neighbors()

        for element in active:
            if element.refine_flag:
                element.coarsen_flag = False

        changed = True
        while changed:
            changed = False
            for element in active:
                if not element.refine_flag:
                    continue
                for neighbor in self._touching(element, vertex_map):
                    if neighbor.level <= element.level:
                        neighbor.coarsen_flag = False
                    if neighbor.level < element.level and not neighbor.refine_flag:
                        neighbor.refine_flag = True
                        changed = True

        parents = []
        seen = set()
        for element in active:
            parent = element.parent
            if not element.coarsen_flag or parent is None or id(parent) in seen:
                continue
            seen.add(id(parent))
            children = parent.children
            if not all(c.active and c.coarsen_flag and not c.refine_flag for c in children):
                continue
            child_level = parent.level + 1
            allowed = True
            for child in children:
                for neighbor in self._touching(child, vertex_map):
                    if neighbor in children:
                        continue
                    if neighbor.level > child_level or (
                        neighbor.level == child_level and neighbor.refine_flag
                    ):
                        allowed = False
                        break
                if not allowed:
                    break
            if allowed:
                parents.append(parent)

        coarsened = {id(c) for p in parents for c in p.children}
        for element in active:
            if element.coarsen_flag and id(element) not in coarsened:
                element.coarsen_flag = False
        return parents

    def execute_coarsening_and_refinement(self) -> Tuple[int, int]:
        """
        Apply the refine/coarsen flags of the active cells.

        Returns
        -------
        (int, int)
            Number of refined cells and number of removed parents' families.
        """
        parents = self.prepare_coarsening_and_refinement()
        to_refine = [e for e in self.active_elements if e.refine_flag]

        removed = set()
        for parent in parents:
            removed.update(id(c) for c in parent.children)
            parent.children = []

        self._new_reference: List[np.ndarray] = []
        self._new_current: List[np.ndarray] = []
        for element in to_refine:
            self._refine_element(element)

        if self._new_reference:
            coords_ref = np.vstack([self._reference_coords, np.array(self._new_reference)])
            coords_cur = np.vstack([self.coords, np.array(self._new_current)])
        else:
            coords_ref = np.array(self._reference_coords)
            coords_cur = self.coords
        del self._new_reference, self._new_current

        self.elements = [e for e in self.elements if id(e) not in removed]
        for element in self.elements:
            element.clear_flags()
        self._compact(coords_ref, coords_cur)
        self._update_topology()

        if to_refine or parents:
            logger.debug(
                "Mesh adapted: %d cells refined, %d families coarsened, %d active cells",
                len(to_refine),
                len(parents),
                self.elements_count,
            )
        return len(to_refine), len(parents)

    def _append_element(self, element: MeshElement) -> None:
        element.id = len(self.elements)
        self.elements.append(element)

    def _new_node(self, x_ref: np.ndarray, x_cur: np.ndarray) -> int:
        key = self._key(x_ref)
        node = self._node_index.get(key)
        if node is None:
            node = self.node_count + len(self._new_reference)
            self._node_index[key] = node
            self._new_reference.append(x_ref)
            self._new_current.append(x_cur)
        return node

    def _refine_element(self, element: MeshElement) -> None:
        ref = self.reference_element
        vertices = ref.vertices
        parent_nodes = list(element.node_ids)
        x_ref = self._reference_coords[parent_nodes]
        x_cur = self.coords[parent_nodes]

        children = []
        for corner in range(ref.node_count):
            offset = (vertices[corner] + 1.0) / 2.0
            xi = -1.0 + offset + (vertices + 1.0) / 2.0
            N = ref.shape_functions(xi)
            positions_ref = N @ x_ref
            positions_cur = N @ x_cur
            node_ids = []
            for a in range(ref.node_count):
                match = np.nonzero(np.all(vertices == xi[a], axis=1))[0]
                if match.size:
                    node_ids.append(parent_nodes[match[0]])
                else:
                    node_ids.append(self._new_node(positions_ref[a], positions_cur[a]))
            child = MeshElement(node_ids, element.element_type, element.level + 1, element)
            children.append(child)
            self._append_element(child)
        element.children = children
        element.refine_flag = False

    def _compact(self, coords_ref: np.ndarray, coords_cur: np.ndarray) -> None:
        used = np.zeros(len(coords_ref), dtype=bool)
        for element in self.elements:
            used[list(element.node_ids)] = True
        new_index = np.cumsum(used) - 1
        for idx, element in enumerate(self.elements):
            element.id = idx
            element.node_ids = tuple(int(new_index[n]) for n in element.node_ids)
        self._set_reference(coords_ref[used])
        self.coords = np.array(coords_cur[used])

    # =========================================================================
    # Topology
    # =========================================================================

    def _update_topology(self) -> None:
        self._active = None
        self._connectivity = None
        self._bounds = None
        self._constraints = None
        self._find_boundary()

    def _find_boundary(self) -> None:
        lower, upper = self.bounding_box
        tol = 1e-10 * max(np.max(upper - lower), 1e-300)
        ref = self.reference_element
        self.boundary_faces = []
        node_sets: Dict[str, NodeSet] = {}
        for element in self.active_elements:
            for face, local_nodes in enumerate(ref.faces):
                axis, side = ref.face_axes[face]
                nodes = tuple(element.node_ids[i] for i in local_nodes)
                face_coords = self._reference_coords[list(nodes)]
                plane = lower[axis] if side < 0 else upper[axis]
                # Faces are axis-aligned in the reference box, so the face axis
                # matches the boundary plane normal
                if np.all(np.abs(face_coords[:, axis] - plane) <= tol):
                    name = BOUNDARY_NAMES[(axis, side)]
                    self.boundary_faces.append(BoundaryFace(element, face, nodes, name))
                    node_set = node_sets.setdefault(name, NodeSet(name))
                    for node in nodes:
                        node_set.add_node(node)
        self.node_sets = node_sets

    @property
    def hanging_node_constraints(self) -> Dict[int, List[Tuple[int, float]]]:
        """
        Constraints ``u[node] = sum(w * u[master])`` for hanging nodes.

        A hanging node sits at the midpoint of an edge (or the centre of a
        face in 3D) of a coarser active neighbour.  Masters are always
        unconstrained nodes.
        """
        if self._constraints is None:
            self._constraints = self._build_constraints()
        return self._constraints

    def _build_constraints(self) -> Dict[int, List[Tuple[int, float]]]:
        ref = self.reference_element
        raw: Dict[int, List[Tuple[int, float]]] = {}

        def check(nodes: Tuple[int, ...]) -> None:
            center = self._reference_coords[list(nodes)].mean(axis=0)
            node = self.find_node(center)
            if node is not None and node not in nodes:
                weight = 1.0 / len(nodes)
                raw[node] = [(n, weight) for n in nodes]

        for element in self.active_elements:
            for local_nodes in ref.faces:
                nodes = tuple(element.node_ids[i] for i in local_nodes)
                check(nodes)
                if self.dim == 3:
                    for k in range(len(nodes)):
                        check((nodes[k], nodes[(k + 1) % len(nodes)]))

        resolved: Dict[int, List[Tuple[int, float]]] = {}

        def resolve(node: int, depth: int = 0) -> List[Tuple[int, float]]:
            if node in resolved:
                return resolved[node]
            if depth > 32:
                raise RuntimeError(f"Cyclic hanging node constraint at node {node}")
            expanded: Dict[int, float] = {}
            for master, weight in raw[node]:
                if master in raw:
                    for m, w in resolve(master, depth + 1):
                        expanded[m] = expanded.get(m, 0.0) + weight * w
                else:
                    expanded[master] = expanded.get(master, 0.0) + weight
            resolved[node] = sorted(expanded.items())
            return resolved[node]

        for node in raw:
            resolve(node)
        return resolved

    def distribute_constraints(self, field: np.ndarray) -> np.ndarray:
        """Overwrite hanging-node values of a nodal field in place."""
        for node, masters in self.hanging_node_constraints.items():
            field[node] = sum(w * field[m] for m, w in masters)
        return field

    def __repr__(self) -> str:
        return (
            f"<MeshModel dim={self.dim} nodes={self.node_count} "
            f"active_cells={self.elements_count} levels={self.n_levels}>"
        )
