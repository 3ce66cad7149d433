"""
FSI (Fluid-Structure Interaction) coupling module.

This module provides the partitioned coupling between the hyperelastic solid
solver and a fluid solver on an overlapping, adaptively refined mesh.
"""

from .coordinator import FSICoordinator, point_in_mesh

__all__ = [
    # Coupling
    "FSICoordinator",
    # Geometric queries
    "point_in_mesh",
]
