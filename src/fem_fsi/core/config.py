"""
FSI Simulation Configuration Module.

This module provides a YAML-based configuration system for partitioned FSI
simulations, allowing users to define complete simulations without writing
Python code.

Example YAML configuration:
    material:
      type: "NeoHookean"
      C: [0.5e6, 2.0e6]
      rho: 1000.0

    solid:
      lower: [0.4, 0.0]
      upper: [0.6, 0.5]
      cells: [2, 5]
      dirichlet:
        - boundary: "bottom"

    fluid:
      lower: [0.0, 0.0]
      upper: [2.0, 1.0]
      cells: [8, 4]
      viscosity: 1.0e-3
      inflow_velocity: [0.1, 0.0]

    solver:
      time_step: 0.01
      end_time: 0.1
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from fem_fsi.core.material import MATERIAL_MODELS, HyperelasticMaterial

BOUNDARIES_2D = ("left", "right", "bottom", "top")
BOUNDARIES_3D = BOUNDARIES_2D + ("back", "front")


# =============================================================================
# Configuration Data Classes
# =============================================================================


@dataclass
class MaterialConfig:
    """Constitutive law configuration."""

    type: str = "NeoHookean"
    C: List[float] = field(default_factory=list)
    rho: Optional[float] = None
    name: str = "Solid"

    def __post_init__(self):
        if self.type not in MATERIAL_MODELS:
            raise ValueError(
                f"Invalid material type: {self.type}. Valid: {list(MATERIAL_MODELS)}"
            )
        if not self.C:
            raise ValueError(f"{self.type} material requires constants C")
        if any(c <= 0 for c in self.C):
            raise ValueError(f"Material constants must be positive: {self.C}")
        if self.rho is None:
            raise ValueError(f"{self.type} material requires a density rho")
        if self.rho <= 0:
            raise ValueError(f"rho must be positive: {self.rho}")

    def to_material(self) -> HyperelasticMaterial:
        return HyperelasticMaterial(type=self.type, C=list(self.C), rho=self.rho, name=self.name)


@dataclass
class DirichletBCConfig:
    """Dirichlet boundary condition configuration."""

    boundary: str
    value: float = 0.0
    components: Optional[List[int]] = None  # Optional: specific displacement components


@dataclass
class TractionBCConfig:
    """Reference traction applied on a boundary of the solid."""

    boundary: str
    value: List[float] = field(default_factory=list)


@dataclass
class SolidConfig:
    """Solid domain and discretization configuration."""

    lower: List[float]
    upper: List[float]
    cells: List[int]
    polynomial_degree: int = 1
    quadrature_order: int = 2
    global_refinement: int = 0
    dirichlet: List[DirichletBCConfig] = field(default_factory=list)
    traction: List[TractionBCConfig] = field(default_factory=list)

    def __post_init__(self):
        _validate_box("solid", self.lower, self.upper, self.cells)
        if self.polynomial_degree != 1:
            raise ValueError(
                f"Only polynomial_degree 1 is supported, got {self.polynomial_degree}"
            )
        if self.quadrature_order < 1:
            raise ValueError(f"quadrature_order must be >= 1: {self.quadrature_order}")
        if self.global_refinement < 0:
            raise ValueError(f"global_refinement must be >= 0: {self.global_refinement}")
        names = BOUNDARIES_2D if self.dim == 2 else BOUNDARIES_3D
        for bc in list(self.dirichlet) + list(self.traction):
            if bc.boundary not in names:
                raise ValueError(f"Unknown boundary '{bc.boundary}'. Valid: {list(names)}")
        for bc in self.dirichlet:
            if bc.components is not None and any(not 0 <= c < self.dim for c in bc.components):
                raise ValueError(f"Invalid components {bc.components} for {self.dim}D solid")
        for bc in self.traction:
            if len(bc.value) != self.dim:
                raise ValueError(f"Traction on '{bc.boundary}' needs {self.dim} components")

    @property
    def dim(self) -> int:
        return len(self.lower)


@dataclass
class FluidConfig:
    """Fluid domain configuration (prescribed uniform flow)."""

    lower: List[float]
    upper: List[float]
    cells: List[int]
    viscosity: float = 1.0e-3
    inflow_velocity: List[float] = field(default_factory=list)
    pressure: float = 0.0
    quadrature_order: int = 2
    global_refinement: int = 0

    def __post_init__(self):
        _validate_box("fluid", self.lower, self.upper, self.cells)
        if self.viscosity < 0:
            raise ValueError(f"viscosity must be non-negative: {self.viscosity}")
        if not self.inflow_velocity:
            self.inflow_velocity = [0.0] * self.dim
        if len(self.inflow_velocity) != self.dim:
            raise ValueError(f"inflow_velocity needs {self.dim} components")
        if self.quadrature_order < 1:
            raise ValueError(f"quadrature_order must be >= 1: {self.quadrature_order}")
        if self.global_refinement < 0:
            raise ValueError(f"global_refinement must be >= 0: {self.global_refinement}")

    @property
    def dim(self) -> int:
        return len(self.lower)


@dataclass
class NewmarkConfig:
    """Newmark-β integration parameters."""

    beta: float = 0.25
    gamma: float = 0.5

    def __post_init__(self):
        if self.beta <= 0:
            raise ValueError(f"Newmark beta must be positive: {self.beta}")
        if self.gamma <= 0:
            raise ValueError(f"Newmark gamma must be positive: {self.gamma}")


@dataclass
class SolverConfig:
    """Time stepping and Newton-Raphson configuration."""

    time_step: float
    end_time: float
    max_iterations: int = 10
    tol_u: float = 1.0e-6
    tol_f: float = 1.0e-6
    newmark: NewmarkConfig = field(default_factory=NewmarkConfig)
    n_workers: int = 1

    def __post_init__(self):
        if self.time_step <= 0:
            raise ValueError(f"time_step must be positive: {self.time_step}")
        if self.end_time <= 0:
            raise ValueError(f"end_time must be positive: {self.end_time}")
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1: {self.max_iterations}")
        if self.tol_u <= 0 or self.tol_f <= 0:
            raise ValueError(f"Tolerances must be positive: tol_u={self.tol_u}, tol_f={self.tol_f}")
        if self.n_workers < 1:
            raise ValueError(f"n_workers must be >= 1: {self.n_workers}")


@dataclass
class CouplingConfig:
    """Partitioned coupling and adaptive refinement configuration.

    Examples
    --------
    coupling:
      gravity: [0.0, -9.81]
      refinement_interval: 5
      refinement_distance: 0.1
      extra_refinement_levels: 2
    """

    gravity: List[float] = field(default_factory=list)
    refinement_interval: int = 0
    refinement_distance: float = 0.1
    extra_refinement_levels: int = 2

    def __post_init__(self):
        if self.refinement_interval < 0:
            raise ValueError(f"refinement_interval must be >= 0: {self.refinement_interval}")
        if self.refinement_distance <= 0:
            raise ValueError(f"refinement_distance must be positive: {self.refinement_distance}")
        if self.extra_refinement_levels < 0:
            raise ValueError(
                f"extra_refinement_levels must be >= 0: {self.extra_refinement_levels}"
            )


@dataclass
class OutputConfig:
    """Output and checkpoint configuration."""

    folder: str = "results"
    output_interval: int = 1
    save_interval: int = 0
    write_initial_state: bool = True

    def __post_init__(self):
        if self.output_interval < 0 or self.save_interval < 0:
            raise ValueError("Output and save intervals must be >= 0")


def _validate_box(label: str, lower, upper, cells) -> None:
    if len(lower) not in (2, 3):
        raise ValueError(f"{label} box must be 2D or 3D, got {len(lower)} coordinates")
    if len(upper) != len(lower) or len(cells) != len(lower):
        raise ValueError(f"{label} box: lower, upper and cells must have the same length")
    if any(hi <= lo for lo, hi in zip(lower, upper)):
        raise ValueError(f"{label} box is degenerate: lower={lower}, upper={upper}")
    if any(int(n) < 1 for n in cells):
        raise ValueError(f"{label} cells must be positive: {cells}")


@dataclass
class FSISimulationConfig:
    """Complete FSI simulation configuration."""

    material: MaterialConfig
    solid: SolidConfig
    fluid: FluidConfig
    solver: SolverConfig
    coupling: CouplingConfig = field(default_factory=CouplingConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    def __post_init__(self):
        if self.solid.dim != self.fluid.dim:
            raise ValueError(
                f"Solid ({self.solid.dim}D) and fluid ({self.fluid.dim}D) dimensions differ"
            )
        if not self.coupling.gravity:
            self.coupling.gravity = [0.0] * self.dim
        if len(self.coupling.gravity) != self.dim:
            raise ValueError(f"gravity needs {self.dim} components")

    @property
    def dim(self) -> int:
        return self.solid.dim

    @property
    def global_refinements(self) -> List[int]:
        """Global refinement counts as ``[fluid, solid]``."""
        return [self.fluid.global_refinement, self.solid.global_refinement]

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "FSISimulationConfig":
        """Load configuration from YAML file.

        Parameters
        ----------
        yaml_path : str or Path
            Path to the YAML configuration file.

        Returns
        -------
        FSISimulationConfig
            Validated configuration object.

        Raises
        ------
        FileNotFoundError
            If the YAML file does not exist.
        ValueError
            If the configuration is invalid.
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        with open(yaml_path, "r") as f:
            data = yaml.safe_load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Configuration file is empty or malformed: {yaml_path}")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FSISimulationConfig":
        """Create configuration from dictionary.

        Raises
        ------
        KeyError
            If a required section is missing.
        ValueError
            If a value is invalid.
        """
        for section in ("material", "solid", "fluid", "solver"):
            if section not in data:
                raise KeyError(f"Missing required configuration section: '{section}'")

        material_config = MaterialConfig(**data["material"])

        solid_data = dict(data["solid"])
        solid_data["dirichlet"] = [DirichletBCConfig(**bc) for bc in solid_data.get("dirichlet", [])]
        solid_data["traction"] = [TractionBCConfig(**bc) for bc in solid_data.get("traction", [])]
        solid_config = SolidConfig(**solid_data)

        fluid_config = FluidConfig(**data["fluid"])

        solver_data = dict(data["solver"])
        solver_data["newmark"] = NewmarkConfig(**(solver_data.get("newmark") or {}))
        solver_config = SolverConfig(**solver_data)

        coupling_config = CouplingConfig(**(data.get("coupling") or {}))
        output_config = OutputConfig(**(data.get("output") or {}))

        return cls(
            material=material_config,
            solid=solid_config,
            fluid=fluid_config,
            solver=solver_config,
            coupling=coupling_config,
            output=output_config,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for serialization."""
        return {
            "material": {
                "type": self.material.type,
                "name": self.material.name,
                "C": list(self.material.C),
                "rho": self.material.rho,
            },
            "solid": {
                "lower": list(self.solid.lower),
                "upper": list(self.solid.upper),
                "cells": list(self.solid.cells),
                "polynomial_degree": self.solid.polynomial_degree,
                "quadrature_order": self.solid.quadrature_order,
                "global_refinement": self.solid.global_refinement,
                "dirichlet": [
                    {"boundary": bc.boundary, "value": bc.value, "components": bc.components}
                    for bc in self.solid.dirichlet
                ],
                "traction": [
                    {"boundary": bc.boundary, "value": list(bc.value)}
                    for bc in self.solid.traction
                ],
            },
            "fluid": {
                "lower": list(self.fluid.lower),
                "upper": list(self.fluid.upper),
                "cells": list(self.fluid.cells),
                "viscosity": self.fluid.viscosity,
                "inflow_velocity": list(self.fluid.inflow_velocity),
                "pressure": self.fluid.pressure,
                "quadrature_order": self.fluid.quadrature_order,
                "global_refinement": self.fluid.global_refinement,
            },
            "solver": {
                "time_step": self.solver.time_step,
                "end_time": self.solver.end_time,
                "max_iterations": self.solver.max_iterations,
                "tol_u": self.solver.tol_u,
                "tol_f": self.solver.tol_f,
                "newmark": {
                    "beta": self.solver.newmark.beta,
                    "gamma": self.solver.newmark.gamma,
                },
                "n_workers": self.solver.n_workers,
            },
            "coupling": {
                "gravity": list(self.coupling.gravity),
                "refinement_interval": self.coupling.refinement_interval,
                "refinement_distance": self.coupling.refinement_distance,
                "extra_refinement_levels": self.coupling.extra_refinement_levels,
            },
            "output": {
                "folder": self.output.folder,
                "output_interval": self.output.output_interval,
                "save_interval": self.output.save_interval,
                "write_initial_state": self.output.write_initial_state,
            },
        }

    def save_yaml(self, yaml_path: Union[str, Path]) -> None:
        """Save configuration to YAML file.

        Parameters
        ----------
        yaml_path : str or Path
            Path to the output YAML file.
        """
        with open(yaml_path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    def validate(self) -> List[str]:
        """Validate the complete configuration.

        Returns
        -------
        list of str
            List of validation warnings (empty if all OK).
        """
        warnings = []

        if not self.solid.dirichlet:
            warnings.append("Solid has no Dirichlet boundary; rigid body motion is unconstrained")

        inside = all(
            fl <= sl and su <= fu
            for fl, fu, sl, su in zip(
                self.fluid.lower, self.fluid.upper, self.solid.lower, self.solid.upper
            )
        )
        if not inside:
            warnings.append("Solid box is not contained in the fluid box")

        if self.solver.time_step > self.solver.end_time:
            warnings.append("time_step is larger than end_time; no step will be taken")

        if self.coupling.refinement_interval and self.coupling.extra_refinement_levels == 0:
            warnings.append("Adaptive refinement is enabled but no extra levels are allowed")

        return warnings

    def __str__(self) -> str:
        """Human-readable string representation."""
        lines = [
            "FSI Simulation Configuration",
            "=" * 40,
            f"Material: {self.material.type} ({self.material.name})",
            f"  C={self.material.C}, rho={self.material.rho}",
            f"Solid: {self.solid.dim}D box {self.solid.lower} → {self.solid.upper}, "
            f"cells={self.solid.cells}",
            f"Fluid: box {self.fluid.lower} → {self.fluid.upper}, cells={self.fluid.cells}, "
            f"viscosity={self.fluid.viscosity}",
            f"  Time: 0 → {self.solver.end_time}s (dt={self.solver.time_step}s)",
            f"  Newton: max_iterations={self.solver.max_iterations}, "
            f"tol_u={self.solver.tol_u}, tol_f={self.solver.tol_f}",
            f"Boundary Conditions: {len(self.solid.dirichlet)} Dirichlet, "
            f"{len(self.solid.traction)} traction",
            f"Refinement: global={self.global_refinements}, "
            f"interval={self.coupling.refinement_interval}",
        ]
        return "\n".join(lines)
