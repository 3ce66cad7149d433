"""
Partitioned fluid-structure coupling.

The solid is Lagrangian and lives on its own reference mesh; the fluid mesh
is fixed and overlaps the solid (immersed approach).  Every coupling step
samples fields of one mesh at physical points of the other, which requires
the solid in its deformed position.  ``FSICoordinator.deformed_solid`` places
the solid mesh at ``reference + displacement`` for the duration of such a
computation and restores the reference configuration afterwards.

One coupling step is a single Gauss-Seidel pass:

    find_solid_bc -> solid step -> find_fluid_bc -> fluid step -> time + 1

with no sub-iteration to interface equilibrium.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional, Sequence

import numpy as np
from scipy.spatial import cKDTree

from fem_fsi.core.mesh import MeshModel
from fem_fsi.elements import FaceValues
from fem_fsi.solvers.checkpoint import CheckpointManager
from fem_fsi.solvers.fluid import FluidSolver, SolutionTransfer
from fem_fsi.solvers.hyperelastic import NonlinearSolidSolver
from fem_fsi.solvers.time import Time

logger = logging.getLogger(__name__)

BANNER_WIDTH = 70


def point_in_mesh(mesh: MeshModel, point: np.ndarray) -> bool:
    """True if ``point`` lies in an active cell of ``mesh`` (current configuration)."""
    return mesh.point_in_mesh(point)


def sym(tensor: np.ndarray) -> np.ndarray:
    return 0.5 * (tensor + tensor.T)


class FSICoordinator:
    """
    Couples a ``NonlinearSolidSolver`` with a ``FluidSolver``.

    Parameters
    ----------
    solid : NonlinearSolidSolver
        Solid solver; its mesh must be in the reference configuration.
    fluid : FluidSolver
        Fluid solver on the fixed background mesh.
    time : Time
        Clock of the coupled problem (drives output, refinement and saves).
    gravity : Sequence[float]
        Body acceleration prescribed in the fluid.
    global_refinements : Sequence[int]
        Initial uniform refinement levels ``[fluid, solid]``.
    refinement_distance : float
        Fluid cells whose centre is closer than this to a solid cell centre
        are refined during adaptation; the rest are coarsened.
    extra_refinement_levels : int
        Levels above the initial fluid level allowed during adaptation.
    checkpoint : CheckpointManager, optional
        Writes output and state snapshots when given.
    write_initial_state : bool
        Write output of the initial state before the first step.
    """

    def __init__(
        self,
        solid: NonlinearSolidSolver,
        fluid: FluidSolver,
        time: Time,
        gravity: Optional[Sequence[float]] = None,
        global_refinements: Sequence[int] = (0, 0),
        refinement_distance: float = 0.1,
        extra_refinement_levels: int = 2,
        checkpoint: Optional[CheckpointManager] = None,
        write_initial_state: bool = True,
    ):
        if solid.dim != fluid.dim:
            raise ValueError(f"Solid is {solid.dim}D but fluid is {fluid.dim}D")
        if len({id(time), id(solid.time), id(fluid.time)}) != 3:
            raise ValueError("Solid, fluid and coordinator each advance their own Time")
        self.solid = solid
        self.fluid = fluid
        self.time = time
        self.dim = solid.dim
        self.gravity = np.zeros(self.dim) if gravity is None else np.asarray(gravity, dtype=float)
        if self.gravity.shape != (self.dim,):
            raise ValueError(f"Gravity needs {self.dim} components, got {self.gravity.shape}")
        self.global_refinements = tuple(int(g) for g in global_refinements)
        self.refinement_distance = float(refinement_distance)
        self.extra_refinement_levels = int(extra_refinement_levels)
        self.checkpoint = checkpoint
        self.write_initial_state = write_initial_state

    # =========================================================================
    # Solid configuration
    # =========================================================================

    def move_solid_mesh(self, forward: bool) -> None:
        """
        Move the solid mesh to its deformed (``forward``) or reference position.

        The reference coordinates are never modified, so the reverse move
        restores them exactly.
        """
        mesh = self.solid.mesh
        if forward:
            mesh.set_displacement(self.solid.nodal(self.solid.current_displacement))
        else:
            mesh.reset_configuration()

    @contextmanager
    def deformed_solid(self) -> Iterator[MeshModel]:
        """Context in which the solid mesh sits in its deformed position."""
        self.move_solid_mesh(True)
        try:
            yield self.solid.mesh
        finally:
            self.move_solid_mesh(False)

    # =========================================================================
    # Coupling data
    # =========================================================================

    def update_indicator(self) -> None:
        """
        Mark fluid cells covered by the solid.

        A cell is covered when all of its vertices are inside the deformed
        solid; every quadrature point of the cell inherits the flag.
        """
        fluid_mesh = self.fluid.mesh
        n_covered = 0
        with self.deformed_solid() as solid_mesh:
            for c, element in enumerate(fluid_mesh.active_elements):
                vertices = fluid_mesh.element_coords(element, reference=False)
                covered = all(point_in_mesh(solid_mesh, v) for v in vertices)
                for prop in self.fluid.cell_property[c]:
                    prop.indicator = covered
                n_covered += covered
        logger.debug("Indicator: %d of %d fluid cells covered", n_covered, fluid_mesh.elements_count)

    def find_fluid_bc(self) -> None:
        """
        Compute the fictitious body data seen by the fluid inside the solid.

        At every fluid quadrature point covered by the deformed solid:

        * ``fsi_acceleration = gravity - a_solid``
        * ``fsi_stress = -p I + mu sym(grad v) - sigma_solid``

        Points outside the solid get a false indicator and zero data.
        """
        fluid = self.fluid
        solid = self.solid
        I = np.eye(self.dim)
        acceleration = solid.nodal(solid.current_acceleration)
        stress = solid.stress.reshape(solid.mesh.node_count, self.dim * self.dim)

        n_covered = 0
        with self.deformed_solid() as solid_mesh:
            for c, element in enumerate(fluid.mesh.active_elements):
                points = fluid.quadrature_points(c, element)
                _, grad_v, pressure, _ = fluid.cell_values(c)
                for q, prop in enumerate(fluid.cell_property[c]):
                    prop.reset()
                    located = solid_mesh.find_element(points[q])
                    prop.indicator = located is not None
                    if located is None:
                        continue
                    n_covered += 1
                    a_solid = solid_mesh.point_value(acceleration, points[q])
                    sigma_solid = solid_mesh.point_value(stress, points[q]).reshape(self.dim, self.dim)
                    prop.fsi_acceleration = self.gravity - a_solid
                    prop.fsi_stress = (
                        -pressure[q] * I + fluid.viscosity * sym(grad_v[q]) - sigma_solid
                    )
        logger.debug("find_fluid_bc: %d fluid quadrature points inside the solid", n_covered)

    def find_solid_bc(self) -> None:
        """
        Fluid traction on the solid faces exposed to the fluid.

        For each boundary face without a Dirichlet condition, the traction
        ``(-p I + mu sym(grad v)) n`` is evaluated at every face quadrature
        point of the deformed solid.  Points outside the fluid mesh get a
        zero traction.
        """
        solid = self.solid
        fluid = self.fluid
        fluid_mesh = fluid.mesh
        face_values = FaceValues(solid.fe, solid.quadrature_order)
        nfq = face_values.n_quadrature_points
        I = np.eye(self.dim)

        for prop in solid.cell_property.values():
            prop.reset()

        active = solid.mesh.active_elements
        n_missed = 0
        with self.deformed_solid() as solid_mesh:
            for c, face in solid.coupling_faces:
                coords = solid_mesh.element_coords(active[c], reference=False)
                face_values.reinit(coords, face)
                traction = solid.cell_property[c].fsi_traction
                for q in range(nfq):
                    result = fluid_mesh.evaluate(fluid.present_solution, face_values.quadrature_points[q])
                    if result is None:
                        n_missed += 1
                        continue
                    value, gradient = result
                    grad_v = gradient[: self.dim]
                    sigma = -value[self.dim] * I + fluid.viscosity * sym(grad_v)
                    traction[face * nfq + q] = sigma @ face_values.normals[q]
        if n_missed:
            logger.debug("find_solid_bc: %d face points outside the fluid mesh", n_missed)

    def update_solid_displacement(self) -> None:
        """Advect the solid vertices with the fluid velocity over one time step."""
        solid = self.solid
        dt = self.time.get_delta_t()
        displacement = solid.nodal(solid.current_displacement).copy()
        with self.deformed_solid() as solid_mesh:
            for node, x in enumerate(solid_mesh.coords):
                value = self.fluid.mesh.point_value(self.fluid.present_solution, x)
                if value is not None:
                    displacement[node] += value[: self.dim] * dt
        solid.solution = displacement.ravel()
        solid.update_qph(np.zeros_like(solid.solution))
        solid.compute_stress()

    # =========================================================================
    # Mesh adaptation
    # =========================================================================

    def refine_mesh(self, min_grid_level: int, max_grid_level: int) -> None:
        """
        Adapt the fluid mesh around the deformed solid.

        Fluid cells within ``refinement_distance`` of a solid cell centre
        are refined and the others coarsened, limited to
        ``[min_grid_level, max_grid_level]``.  The fluid solution is carried
        over to the new mesh.
        """
        fluid = self.fluid
        mesh = fluid.mesh
        with self.deformed_solid() as solid_mesh:
            tree = cKDTree(solid_mesh.cell_centers())
        distance, _ = tree.query(mesh.cell_centers())

        for element, d in zip(mesh.active_elements, distance):
            if d < self.refinement_distance:
                element.refine_flag = True
            else:
                element.coarsen_flag = True
            if element.level >= max_grid_level:
                element.refine_flag = False
            if element.level <= min_grid_level:
                element.coarsen_flag = False

        transfer = SolutionTransfer(mesh)
        transfer.prepare_for_coarsening_and_refinement(fluid.present_solution)
        n_refined, n_coarsened = mesh.execute_coarsening_and_refinement()

        fluid.setup_dofs()
        fluid.make_constraints()
        fluid.initialize_system()
        fluid.present_solution = transfer.interpolate()
        fluid.distribute_constraints()
        logger.info(
            "Refinement: %d cells refined, %d families coarsened, %d active fluid cells",
            n_refined,
            n_coarsened,
            mesh.elements_count,
        )

    # =========================================================================
    # Output
    # =========================================================================

    def output(self) -> None:
        if self.checkpoint is None:
            return
        t = self.time.current()
        step = self.time.get_timestep()
        solid = self.solid
        self.checkpoint.write_output(
            "solid",
            solid.mesh,
            t,
            step,
            point_data={
                "displacement": solid.nodal(solid.current_displacement),
                "velocity": solid.nodal(solid.current_velocity),
                "acceleration": solid.nodal(solid.current_acceleration),
                "stress": solid.stress.reshape(solid.mesh.node_count, -1),
            },
            reference=True,
        )
        self.checkpoint.write_output(
            "fluid",
            self.fluid.mesh,
            t,
            step,
            point_data={"velocity": self.fluid.velocity, "pressure": self.fluid.pressure},
            cell_data={"indicator": self.fluid.indicator_field()},
        )

    def save(self) -> Optional[str]:
        if self.checkpoint is None:
            return None
        solid = self.solid
        return self.checkpoint.save(
            self.time.current(),
            self.time.get_timestep(),
            self.time.get_delta_t(),
            {
                "solid_displacement": solid.current_displacement,
                "solid_velocity": solid.current_velocity,
                "solid_acceleration": solid.current_acceleration,
                "fluid_coords": self.fluid.mesh.reference_coords,
                "fluid_solution": self.fluid.present_solution,
            },
        )

    # =========================================================================
    # Time loop
    # =========================================================================

    def setup(self) -> None:
        """Initial refinement and system setup of both solvers."""
        fluid_levels, solid_levels = self.global_refinements

        self.solid.mesh.refine_global(solid_levels)
        self.solid.setup_dofs()
        self.solid.initialize_system()

        self.fluid.mesh.refine_global(fluid_levels)
        self.fluid.setup_dofs()
        self.fluid.make_constraints()
        self.fluid.initialize_system()

        logger.info(
            "Number of active solid cells: %d, fluid cells: %d",
            self.solid.mesh.elements_count,
            self.fluid.mesh.elements_count,
        )
        logger.info(
            "Number of degrees of freedom: %d (solid) + %d (fluid)",
            self.solid.assembler.dofs_count,
            self.fluid.n_dofs,
        )

    def run(self) -> None:
        """
        Run the coupled simulation until the end time.

        Raises
        ------
        RuntimeError
            If a solid step does not converge.
        ValueError
            If an element of the solid inverts.
        """
        self.setup()
        self.update_indicator()

        logger.info("═" * BANNER_WIDTH)
        logger.info(
            "  FSI SIMULATION  │  dt = %.6g s  │  end = %.6g s",
            self.time.get_delta_t(),
            self.time.end(),
        )
        logger.info("═" * BANNER_WIDTH)

        if self.write_initial_state and self.time.get_timestep() == 0:
            self.output()

        fluid_levels = self.global_refinements[0]
        first_step = True
        while self.time.end() - self.time.current() > 1e-12:
            self.find_solid_bc()
            self.solid.run_one_step(first_step)
            self.find_fluid_bc()
            self.fluid.run_one_step(first_step)
            first_step = False
            self.time.increment()

            logger.info(
                "Step %d @ t = %.6g s  (%d Newton iterations)",
                self.time.get_timestep(),
                self.time.current(),
                self.solid.newton_iterations,
            )

            if self.time.time_to_refine():
                self.refine_mesh(fluid_levels, fluid_levels + self.extra_refinement_levels)
            if self.time.time_to_output():
                self.output()
            if self.time.time_to_save():
                self.save()

        logger.info("═" * BANNER_WIDTH)
        logger.info(
            "  FSI SIMULATION COMPLETED  │  %d steps  │  t = %.6g s",
            self.time.get_timestep(),
            self.time.current(),
        )
        logger.info("═" * BANNER_WIDTH)
