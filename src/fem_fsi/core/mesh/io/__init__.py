"""
Mesh I/O subpackage.

This package provides functions for writing meshes and nodal/cell fields.
"""

from fem_fsi.core.mesh.io.writers import to_meshio, write_mesh, write_meshio

__all__ = [
    "write_mesh",
    "write_meshio",
    "to_meshio",
]
