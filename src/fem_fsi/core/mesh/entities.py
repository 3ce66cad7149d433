"""
Mesh entities module.

This module contains the fundamental building blocks for mesh representation:
- ElementType: Supported cell shapes (VTK numbering)
- MeshElement: A cell of the refinement hierarchy defined by node indices
- NodeSet: A named collection of node indices
- BoundaryFace: A cell face lying on the domain boundary
"""

from enum import IntEnum
from typing import Iterable, List, Optional, Set, Tuple


class ElementType(IntEnum):
    """Enumeration of supported element types.

    Values correspond to VTK cell type constants.
    """

    quad = 9
    hexahedron = 12


# Spatial dimension of each element type
ELEMENT_DIMENSION = {
    ElementType.quad: 2,
    ElementType.hexahedron: 3,
}

# Boundary names per (axis, side) of an axis-aligned box
BOUNDARY_NAMES = {
    (0, -1): "left",
    (0, 1): "right",
    (1, -1): "bottom",
    (1, 1): "top",
    (2, -1): "back",
    (2, 1): "front",
}


class MeshElement:
    """
    Represents a cell of a hierarchically refined mesh.

    A cell is *active* while it has no children.  Refinement replaces an
    active cell by ``2^dim`` children one level finer; coarsening removes the
    children again.

    Attributes
    ----------
    id : int
        Index of the element in ``MeshModel.elements``.
    node_ids : tuple of int
        Node indices in reference-element order.
    element_type : ElementType
        Type of the element.
    level : int
        Refinement level (0 for cells of the coarse mesh).
    parent : MeshElement or None
        Cell this one was created from.
    children : list of MeshElement
        Cells created by refining this one (empty when active).
    refine_flag, coarsen_flag : bool
        Adaptation requests consumed by
        ``MeshModel.execute_coarsening_and_refinement``.
    """

    def __init__(
        self,
        node_ids: Iterable[int],
        element_type: ElementType,
        level: int = 0,
        parent: Optional["MeshElement"] = None,
    ):
        self.id = -1
        self.node_ids: Tuple[int, ...] = tuple(int(n) for n in node_ids)
        self.element_type = ElementType(element_type)
        self.level = level
        self.parent = parent
        self.children: List["MeshElement"] = []
        self.refine_flag = False
        self.coarsen_flag = False

    @property
    def active(self) -> bool:
        return not self.children

    @property
    def node_count(self) -> int:
        return len(self.node_ids)

    def clear_flags(self) -> None:
        self.refine_flag = False
        self.coarsen_flag = False

    def __repr__(self):
        return (
            f"<MeshElement id={self.id} type={self.element_type.name} "
            f"level={self.level} node_ids={self.node_ids}>"
        )


class NodeSet:
    """
    Represents a named set of nodes within the mesh.

    Used to group nodes for applying boundary conditions.

    Attributes
    ----------
    name : str
        Name of the node set.
    node_ids : set of int
        Node indices in the set.
    """

    def __init__(self, name: str, node_ids: Optional[Iterable[int]] = None):
        self.name = name
        self.node_ids: Set[int] = set(node_ids) if node_ids is not None else set()

    def add_node(self, node_id: int):
        self.node_ids.add(int(node_id))

    @property
    def node_count(self) -> int:
        return len(self.node_ids)

    def __repr__(self):
        return f"<NodeSet '{self.name}': {self.node_count} nodes>"


class BoundaryFace:
    """
    A face of an active cell lying on the boundary of the domain.

    Attributes
    ----------
    element : MeshElement
        Active cell owning the face.
    face : int
        Local face index in the reference element.
    node_ids : tuple of int
        Global node indices of the face.
    boundary : str
        Name of the boundary the face belongs to.
    """

    def __init__(self, element: MeshElement, face: int, node_ids: Tuple[int, ...], boundary: str):
        self.element = element
        self.face = face
        self.node_ids = node_ids
        self.boundary = boundary

    def __repr__(self):
        return f"<BoundaryFace element={self.element.id} face={self.face} '{self.boundary}'>"
