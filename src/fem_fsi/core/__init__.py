"""
Core module for fem-fsi.

Provides mesh handling, materials, boundary conditions, assembly, and configuration.
"""

from .config import FSISimulationConfig
from .material import (
    MATERIAL_MODELS,
    HyperelasticMaterial,
    MaterialModel,
    NeoHookean,
    create_material,
)

__all__ = [
    "FSISimulationConfig",
    "MATERIAL_MODELS",
    "HyperelasticMaterial",
    "MaterialModel",
    "NeoHookean",
    "create_material",
]
