"""
Fluid side of the partitioned coupling.

Only the contract consumed by the coupling is modelled here: the fluid mesh,
its mixed solution ``(velocity, pressure)`` stored per node, the coupling data
attached to every volume quadrature point and the setup hooks called after
mesh adaptation.  ``PrescribedFlowSolver`` is a reference implementation
driven by user supplied fields.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from fem_fsi.core.mesh import MeshElement, MeshModel, write_mesh
from fem_fsi.elements import ElementValues
from fem_fsi.solvers.time import Time

logger = logging.getLogger(__name__)

VelocityField = Callable[[np.ndarray, float], np.ndarray]
PressureField = Callable[[np.ndarray, float], np.ndarray]


@dataclass
class FluidCellProperty:
    """Coupling data of one fluid quadrature point."""

    dim: int
    indicator: bool = False
    fsi_acceleration: Optional[np.ndarray] = None
    fsi_stress: Optional[np.ndarray] = None

    def __post_init__(self):
        if self.fsi_acceleration is None:
            self.fsi_acceleration = np.zeros(self.dim)
        if self.fsi_stress is None:
            self.fsi_stress = np.zeros((self.dim, self.dim))

    def reset(self) -> None:
        self.fsi_acceleration = np.zeros(self.dim)
        self.fsi_stress = np.zeros((self.dim, self.dim))


class FluidSolver(ABC):
    """
    Abstract fluid solver on a fixed, adaptively refined mesh.

    Parameters
    ----------
    mesh : MeshModel
        Fluid mesh (never displaced).
    time : Time
        Clock of the fluid; advanced by ``run_one_step``.
    viscosity : float
        Dynamic viscosity.
    quadrature_order : int
        Gauss points per direction of the volume rule.

    Attributes
    ----------
    present_solution : np.ndarray
        Nodal solution (n_nodes x (dim + 1)): velocity components then pressure.
    solution_increment : np.ndarray
        Change of ``present_solution`` over the last step.
    cell_property : Dict[int, List[FluidCellProperty]]
        Coupling data per active cell index and quadrature point.
    constraints : dict
        Hanging-node constraints of the current mesh.
    """

    def __init__(self, mesh: MeshModel, time: Time, viscosity: float, quadrature_order: int = 2):
        if viscosity < 0:
            raise ValueError(f"viscosity must be non-negative: {viscosity}")
        self.mesh = mesh
        self.dim = mesh.dim
        self.time = time
        self.viscosity = viscosity
        self.fe = mesh.reference_element
        self.volume_quadrature_order = quadrature_order
        self.fe_values = ElementValues(self.fe, quadrature_order)
        self.n_q_points = self.fe_values.n_quadrature_points
        self.present_solution = np.zeros((mesh.node_count, self.dim + 1))
        self.solution_increment = np.zeros_like(self.present_solution)
        self.cell_property: Dict[int, List[FluidCellProperty]] = {}
        self.constraints: Dict = {}

    @property
    def n_components(self) -> int:
        return self.dim + 1

    @property
    def n_dofs(self) -> int:
        return self.mesh.node_count * self.n_components

    def setup_dofs(self) -> None:
        """Resize the solution storage to the current mesh."""
        shape = (self.mesh.node_count, self.n_components)
        if self.present_solution.shape != shape:
            self.present_solution = np.zeros(shape)
            self.solution_increment = np.zeros(shape)
        logger.info(
            "Fluid triangulation: %d active cells, %d DOFs",
            self.mesh.elements_count,
            self.n_dofs,
        )

    def make_constraints(self) -> None:
        self.constraints = self.mesh.hanging_node_constraints
        logger.debug("Fluid mesh has %d hanging nodes", len(self.constraints))

    def initialize_system(self) -> None:
        """Reset the per-quadrature-point coupling data."""
        self.solution_increment = np.zeros((self.mesh.node_count, self.n_components))
        self.cell_property = {
            c: [FluidCellProperty(self.dim) for _ in range(self.n_q_points)]
            for c in range(self.mesh.elements_count)
        }

    def distribute_constraints(self) -> None:
        self.mesh.distribute_constraints(self.present_solution)

    def quadrature_points(self, cell: int, element: Optional[MeshElement] = None) -> np.ndarray:
        """Physical volume quadrature points of active cell ``cell``."""
        element = element if element is not None else self.mesh.active_elements[cell]
        return self.fe.map_points(self.mesh.element_coords(element, reference=False), self.fe_values.points)

    def cell_values(self, cell: int):
        """Values and gradients of the solution at the quadrature points of ``cell``.

        Returns
        -------
        velocity : np.ndarray
            (n_q x dim)
        grad_v : np.ndarray
            (n_q x dim x dim), ``grad_v[q, i, j] = d v_i / d x_j``
        pressure : np.ndarray
            (n_q,)
        increment : np.ndarray
            Velocity increment (n_q x dim)
        """
        element = self.mesh.active_elements[cell]
        fv = ElementValues(self.fe, self.volume_quadrature_order).reinit(
            self.mesh.element_coords(element, reference=False)
        )
        nodes = list(element.node_ids)
        local = self.present_solution[nodes]
        velocity = fv.N @ local[:, : self.dim]
        grad_v = np.einsum("ai,qaj->qij", local[:, : self.dim], fv.dN_dx)
        pressure = fv.N @ local[:, self.dim]
        increment = fv.N @ self.solution_increment[nodes, : self.dim]
        return velocity, grad_v, pressure, increment

    @property
    def velocity(self) -> np.ndarray:
        return self.present_solution[:, : self.dim]

    @property
    def pressure(self) -> np.ndarray:
        return self.present_solution[:, self.dim]

    def indicator_field(self) -> np.ndarray:
        """Fraction of solid-covered quadrature points per active cell."""
        return np.array(
            [
                np.mean([p.indicator for p in self.cell_property.get(c, [])] or [0.0])
                for c in range(self.mesh.elements_count)
            ]
        )

    def write_output(self, filename: str) -> None:
        write_mesh(
            self.mesh,
            filename,
            point_data={"velocity": self.velocity, "pressure": self.pressure},
            cell_data={
                "indicator": self.indicator_field(),
                "level": np.array([e.level for e in self.mesh.active_elements], dtype=float),
            },
        )

    @abstractmethod
    def run_one_step(self, first_step: bool = False) -> None:
        """Advance the fluid one time step."""
        ...


class PrescribedFlowSolver(FluidSolver):
    """
    Fluid whose state is given by analytic fields.

    Parameters
    ----------
    velocity : callable
        ``velocity(points, t)`` returning (n_points x dim).
    pressure : callable, optional
        ``pressure(points, t)`` returning (n_points,); zero when omitted.
    """

    def __init__(
        self,
        mesh: MeshModel,
        time: Time,
        viscosity: float,
        velocity: VelocityField,
        pressure: Optional[PressureField] = None,
        quadrature_order: int = 2,
    ):
        super().__init__(mesh, time, viscosity, quadrature_order)
        self.velocity_function = velocity
        self.pressure_function = pressure

    @classmethod
    def uniform(
        cls,
        mesh: MeshModel,
        time: Time,
        viscosity: float,
        velocity: Sequence[float],
        pressure: float = 0.0,
        quadrature_order: int = 2,
    ) -> "PrescribedFlowSolver":
        """Uniform flow with constant pressure."""
        velocity = np.asarray(velocity, dtype=float)
        if velocity.shape != (mesh.dim,):
            raise ValueError(f"Uniform velocity needs {mesh.dim} components")
        return cls(
            mesh,
            time,
            viscosity,
            velocity=lambda x, t: np.tile(velocity, (len(x), 1)),
            pressure=lambda x, t: np.full(len(x), float(pressure)),
            quadrature_order=quadrature_order,
        )

    def evaluate(self, t: float) -> np.ndarray:
        points = self.mesh.coords
        solution = np.zeros((self.mesh.node_count, self.n_components))
        solution[:, : self.dim] = self.velocity_function(points, t)
        if self.pressure_function is not None:
            solution[:, self.dim] = self.pressure_function(points, t)
        return solution

    def initialize_system(self) -> None:
        super().initialize_system()
        self.present_solution = self.evaluate(self.time.current())

    def run_one_step(self, first_step: bool = False) -> None:
        self.time.increment()
        new_solution = self.evaluate(self.time.current())
        self.solution_increment = new_solution - self.present_solution
        self.present_solution = new_solution
        self.distribute_constraints()


class SolutionTransfer:
    """
    Carries a nodal solution across mesh adaptation.

    Values at nodes that survive the adaptation are copied; values at new
    nodes are interpolated from the old mesh.
    """

    def __init__(self, mesh: MeshModel):
        self.mesh = mesh
        self._old_mesh: Optional[MeshModel] = None
        self._old_solution: Optional[np.ndarray] = None

    def prepare_for_coarsening_and_refinement(self, solution: np.ndarray) -> None:
        mesh = self.mesh
        self._old_mesh = MeshModel(
            mesh.coords.copy(),
            [MeshElement(e.node_ids, e.element_type) for e in mesh.active_elements],
        )
        self._old_solution = np.array(solution, copy=True)

    def interpolate(self) -> np.ndarray:
        if self._old_mesh is None:
            raise RuntimeError("prepare_for_coarsening_and_refinement() was not called")
        old_mesh, old = self._old_mesh, self._old_solution
        new = np.zeros((self.mesh.node_count,) + old.shape[1:])
        missed = 0
        for node, x in enumerate(self.mesh.coords):
            old_node = old_mesh.find_node(x)
            if old_node is not None:
                new[node] = old[old_node]
                continue
            value = old_mesh.point_value(old, x)
            if value is None:
                missed += 1
            else:
                new[node] = value
        if missed:
            logger.debug("Solution transfer: %d nodes outside the old mesh set to zero", missed)
        self._old_mesh = self._old_solution = None
        return new
