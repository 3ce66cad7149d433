"""
Generic FSI Simulation Runner.

This module provides a generic runner that executes FSI simulations
based on YAML configuration files, without requiring any Python code editing.

Example usage:
    from fem_fsi.solvers.fsi_runner import FSIRunner

    runner = FSIRunner("simulation.yaml")
    runner.run()

Or from command line:
    fem-fsi simulation.yaml
"""

import logging
from pathlib import Path
from typing import Optional, Union

from ..core.bc import BodyForce, DirichletBoundary, TractionCondition
from ..core.config import FSISimulationConfig
from ..core.mesh import BoxMesh, MeshModel
from .checkpoint import CheckpointManager
from .fluid import PrescribedFlowSolver
from .fsi import FSICoordinator
from .hyperelastic import NonlinearSolidSolver
from .time import Time

logger = logging.getLogger(__name__)


class FSIRunner:
    """
    Generic FSI simulation runner that executes simulations from YAML configuration.

    This class handles:
    - Generating the solid and fluid box meshes
    - Creating the material and the solid solver with its boundary conditions
    - Creating the prescribed-flow fluid solver
    - Wiring both into an ``FSICoordinator`` and running it

    Parameters
    ----------
    config : FSISimulationConfig or str or Path
        Configuration object or path to YAML configuration file.
    working_dir : str or Path, optional
        Directory the output folder is resolved against. If None, uses the
        current directory.

    Attributes
    ----------
    config : FSISimulationConfig
        The validated simulation configuration.
    coordinator : FSICoordinator
        The coupled solver after setup.

    Examples
    --------
    >>> runner = FSIRunner("simulation.yaml")
    >>> coordinator = runner.run()
    >>> coordinator.solid.compute_volume()
    """

    def __init__(
        self,
        config: Union[FSISimulationConfig, str, Path],
        working_dir: Optional[Union[str, Path]] = None,
    ):
        if isinstance(config, (str, Path)):
            self.config_path = Path(config)
            self.config = FSISimulationConfig.from_yaml(config)
        else:
            self.config_path = None
            self.config = config

        self.working_dir = Path(working_dir) if working_dir else Path.cwd()
        self.solid_mesh: Optional[MeshModel] = None
        self.fluid_mesh: Optional[MeshModel] = None
        self.coordinator: Optional[FSICoordinator] = None

    def run(self) -> FSICoordinator:
        """
        Execute the complete FSI simulation pipeline.

        Returns
        -------
        FSICoordinator
            The coordinator after running (for accessing results).

        Raises
        ------
        RuntimeError
            If a solid time step does not converge.
        """
        self._print_header()
        self._validate_config()

        self.coordinator = self.build()
        logger.info("Starting solver...")
        self.coordinator.run()

        logger.info("Simulation completed successfully!")
        return self.coordinator

    def build(self) -> FSICoordinator:
        """Create meshes, solvers and the coordinator without running."""
        self.solid_mesh, self.fluid_mesh = self._setup_meshes()
        solid = self._create_solid_solver()
        self._apply_boundary_conditions(solid)
        fluid = self._create_fluid_solver()
        return self._create_coordinator(solid, fluid)

    def _print_header(self) -> None:
        logger.info("=" * 70)
        logger.info("  FEM-FSI SIMULATION RUNNER")
        logger.info("=" * 70)
        logger.info("  Configuration: %s", self.config_path or "Provided object")
        logger.info("  Material: %s", self.config.material.type)
        logger.info("  Dimension: %dD", self.config.dim)
        logger.info("=" * 70)

    def _validate_config(self) -> None:
        """Validate configuration before running."""
        warnings = self.config.validate()
        if warnings:
            for warning in warnings:
                logger.warning("Configuration warning: %s", warning)

    def _time(self) -> Time:
        solver = self.config.solver
        output = self.config.output
        return Time(
            end=solver.end_time,
            delta_t=solver.time_step,
            output_interval=output.output_interval,
            refinement_interval=self.config.coupling.refinement_interval,
            save_interval=output.save_interval,
        )

    def _setup_meshes(self):
        logger.info("[1/4] Setting up meshes...")
        solid_cfg = self.config.solid
        fluid_cfg = self.config.fluid
        solid_mesh = BoxMesh(solid_cfg.lower, solid_cfg.upper, solid_cfg.cells).generate()
        fluid_mesh = BoxMesh(fluid_cfg.lower, fluid_cfg.upper, fluid_cfg.cells).generate()
        logger.info("      Solid: %s", solid_mesh)
        logger.info("      Fluid: %s", fluid_mesh)
        logger.info("      Solid node sets: %s", list(solid_mesh.node_sets.keys()))
        return solid_mesh, fluid_mesh

    def _create_solid_solver(self) -> NonlinearSolidSolver:
        logger.info("[2/4] Creating solid solver...")
        solver_cfg = self.config.solver
        material = self.config.material.to_material()
        logger.info("      Material: %s C=%s rho=%s", material.type, material.C, material.rho)
        return NonlinearSolidSolver(
            self.solid_mesh,
            material,
            self._time(),
            quadrature_order=self.config.solid.quadrature_order,
            max_iterations=solver_cfg.max_iterations,
            tol_u=solver_cfg.tol_u,
            tol_f=solver_cfg.tol_f,
            beta=solver_cfg.newmark.beta,
            gamma=solver_cfg.newmark.gamma,
            n_workers=solver_cfg.n_workers,
        )

    def _apply_boundary_conditions(self, solid: NonlinearSolidSolver) -> None:
        """Apply boundary conditions to the solid solver."""
        dirichlet = [
            DirichletBoundary(bc.boundary, bc.components, bc.value)
            for bc in self.config.solid.dirichlet
        ]
        for bc in dirichlet:
            logger.info("      Dirichlet BC: %r", bc)
        solid.add_dirichlet_conditions(dirichlet)

        tractions = [TractionCondition(bc.boundary, bc.value) for bc in self.config.solid.traction]
        for bc in tractions:
            logger.info("      Traction: '%s' = %s", bc.boundary, bc.value.tolist())
        solid.add_traction_conditions(tractions)

        gravity = self.config.coupling.gravity
        if any(gravity):
            solid.add_body_forces([BodyForce(gravity)])
            logger.info("      Body force: %s", gravity)

    def _create_fluid_solver(self) -> PrescribedFlowSolver:
        logger.info("[3/4] Creating fluid solver...")
        fluid_cfg = self.config.fluid
        logger.info(
            "      Uniform flow %s, viscosity=%s", fluid_cfg.inflow_velocity, fluid_cfg.viscosity
        )
        return PrescribedFlowSolver.uniform(
            self.fluid_mesh,
            self._time(),
            fluid_cfg.viscosity,
            fluid_cfg.inflow_velocity,
            pressure=fluid_cfg.pressure,
            quadrature_order=fluid_cfg.quadrature_order,
        )

    def _create_coordinator(self, solid, fluid) -> FSICoordinator:
        logger.info("[4/4] Creating coupling...")
        output_cfg = self.config.output
        folder = Path(output_cfg.folder)
        if not folder.is_absolute():
            folder = self.working_dir / folder
        checkpoint = None
        if output_cfg.output_interval or output_cfg.save_interval or output_cfg.write_initial_state:
            checkpoint = CheckpointManager(str(folder))
        coupling = self.config.coupling
        return FSICoordinator(
            solid,
            fluid,
            self._time(),
            gravity=coupling.gravity,
            global_refinements=self.config.global_refinements,
            refinement_distance=coupling.refinement_distance,
            extra_refinement_levels=coupling.extra_refinement_levels,
            checkpoint=checkpoint,
            write_initial_state=output_cfg.write_initial_state,
        )

    def preview_config(self) -> str:
        """Get a preview of the configuration.

        Returns
        -------
        str
            Human-readable configuration summary.
        """
        return str(self.config)


def run_from_yaml(
    yaml_path: Union[str, Path], working_dir: Optional[str] = None
) -> FSICoordinator:
    """
    Convenience function to run FSI simulation from YAML file.

    Parameters
    ----------
    yaml_path : str or Path
        Path to the YAML configuration file.
    working_dir : str, optional
        Working directory for the simulation.

    Returns
    -------
    FSICoordinator
        The coordinator after running.

    Examples
    --------
    >>> from fem_fsi.solvers.fsi_runner import run_from_yaml
    >>> coordinator = run_from_yaml("simulation.yaml")
    """
    runner = FSIRunner(yaml_path, working_dir)
    return runner.run()
