"""
Mesh package for fem_fsi.

This package provides hierarchical quadrilateral/hexahedral meshes:
- Mesh entities (MeshElement, NodeSet, BoundaryFace, ElementType)
- Mesh model (MeshModel) with refinement, point location and interpolation
- Structured box generator (BoxMesh)
- meshio-based writers

Usage
-----
>>> from fem_fsi.core.mesh import BoxMesh
>>> mesh = BoxMesh.create_rectangle(width=1.0, height=0.2, nx=10, ny=2)
>>> mesh.refine_global(1)
>>> mesh.point_in_mesh([0.5, 0.1])
True
"""

# Core entities
from fem_fsi.core.mesh.entities import (
    BOUNDARY_NAMES,
    ELEMENT_DIMENSION,
    BoundaryFace,
    ElementType,
    MeshElement,
    NodeSet,
)

# Mesh generators
from fem_fsi.core.mesh.generators import BoxMesh

# I/O functions
from fem_fsi.core.mesh.io import to_meshio, write_mesh, write_meshio

# Main mesh model
from fem_fsi.core.mesh.model import MeshModel

__all__ = [
    # Entities
    "MeshElement",
    "NodeSet",
    "BoundaryFace",
    "ElementType",
    "ELEMENT_DIMENSION",
    "BOUNDARY_NAMES",
    # Model
    "MeshModel",
    # Generators
    "BoxMesh",
    # Writers
    "write_mesh",
    "write_meshio",
    "to_meshio",
]
