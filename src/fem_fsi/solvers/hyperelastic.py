"""
Incremental finite-strain solid solver.

The solid is described in the total Lagrangian setting: every integral is
evaluated on the reference mesh and the constitutive response is read from
one ``QuadraturePointState`` per quadrature point.  Each time step is solved
with a Newton-Raphson loop on the displacement increment, updating the
quadrature point states after every iteration so that the next tangent
reflects the latest displacement guess.

Dynamics (FSI mode) use Newmark-β with a consistent reference mass matrix:

    a_{n+1} = (Δu - dt v_n - dt² (1/2 - β) a_n) / (β dt²)
    v_{n+1} = v_n + dt ((1 - γ) a_n + γ a_{n+1})
"""

import copy
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.sparse import csr_matrix
from scipy.sparse.linalg import spsolve

from fem_fsi.core.assembler import MeshAssembler
from fem_fsi.core.bc import (
    BodyForce,
    BoundaryConditionManager,
    DirichletBoundary,
    DirichletCondition,
    TractionCondition,
)
from fem_fsi.core.material import HyperelasticMaterial, MaterialModel, create_material
from fem_fsi.core.mesh import MeshModel, write_mesh
from fem_fsi.elements import ElementValues, FaceValues
from fem_fsi.solvers.time import Time

logger = logging.getLogger(__name__)

CONV_TABLE_WIDTH = 100


class SolverState(Enum):
    """Stage of the current Newton time step."""

    INITIALIZED = "initialized"
    ASSEMBLING = "assembling"
    SOLVING = "solving"
    CONVERGED = "converged"
    DIVERGED = "diverged"


class QuadraturePointState:
    """
    History data of one quadrature point.

    Owns one constitutive model instance and caches the quantities the
    assembly loops read: the inverse deformation gradient, the Kirchhoff
    stress, the spatial tangent and the volumetric energy derivatives.
    """

    def __init__(self):
        self._material: Optional[MaterialModel] = None
        self._F_inv: Optional[np.ndarray] = None
        self._tau: Optional[np.ndarray] = None
        self._Jc: Optional[np.ndarray] = None
        self._dPsi_vol_dJ: Optional[float] = None
        self._d2Psi_vol_dJ2: Optional[float] = None

    def setup(self, material: HyperelasticMaterial, dim: int) -> "QuadraturePointState":
        """Create the material model and place the point in the undeformed state."""
        self._material = create_material(material, dim)
        self.update(np.zeros((dim, dim)))
        return self

    def update(self, grad_u: np.ndarray) -> None:
        """Recompute every cached quantity for ``F = I + grad_u``."""
        if self._material is None:
            raise RuntimeError("QuadraturePointState.update() called before setup()")
        F = np.eye(self._material.dim) + np.asarray(grad_u, dtype=float)
        self._material.update_data(F)
        self._F_inv = np.linalg.inv(F)
        self._tau = np.array(self._material.tau)
        self._Jc = np.array(self._material.Jc)
        self._dPsi_vol_dJ = self._material.dPsi_vol_dJ
        self._d2Psi_vol_dJ2 = self._material.d2Psi_vol_dJ2

    def _require_setup(self):
        if self._material is None:
            raise RuntimeError("QuadraturePointState accessed before setup()")

    def det_F(self) -> float:
        self._require_setup()
        return self._material.det_F

    @property
    def material(self) -> MaterialModel:
        self._require_setup()
        return self._material

    @property
    def rho(self) -> float:
        return self.material.rho

    @property
    def F(self) -> np.ndarray:
        return self.material.F

    @property
    def F_inv(self) -> np.ndarray:
        self._require_setup()
        return self._F_inv

    @property
    def tau(self) -> np.ndarray:
        self._require_setup()
        return self._tau

    @property
    def Jc(self) -> np.ndarray:
        self._require_setup()
        return self._Jc

    @property
    def dPsi_vol_dJ(self) -> float:
        self._require_setup()
        return self._dPsi_vol_dJ

    @property
    def d2Psi_vol_dJ2(self) -> float:
        self._require_setup()
        return self._d2Psi_vol_dJ2


@dataclass
class ErrorPair:
    """Norm of a full vector and of its displacement block."""

    norm: float = 1.0
    u: float = 1.0

    def normalized(self, baseline: "ErrorPair") -> "ErrorPair":
        # A zero baseline leaves the ratio un-normalized
        return ErrorPair(
            norm=self.norm / baseline.norm if baseline.norm != 0.0 else self.norm,
            u=self.u / baseline.u if baseline.u != 0.0 else self.u,
        )


@dataclass
class SolidCellProperty:
    """Coupling data of one solid cell.

    ``fsi_traction[f * n_face_q + q]`` is the fluid traction at quadrature
    point ``q`` of local face ``f``.
    """

    fsi_traction: np.ndarray

    def reset(self) -> None:
        self.fsi_traction[:] = 0.0


class NonlinearSolidSolver:
    """
    Newton-Raphson solver for a hyperelastic solid.

    Parameters
    ----------
    mesh : MeshModel
        Reference mesh of the solid.
    material : HyperelasticMaterial
        Constitutive law and its constants.
    time : Time
        Clock of the solid; advanced by ``run_one_step`` and ``run_statics``.
    quadrature_order : int
        Gauss points per direction for cells and faces.
    max_iterations : int
        Maximum Newton iterations per time step.
    tol_u, tol_f : float
        Tolerances on the normalized update and residual norms.
    beta, gamma : float
        Newmark-β parameters.
    n_workers : int
        Threads used by element loops (1 runs serially).

    Attributes
    ----------
    state : SolverState
        Stage of the last (or current) Newton step.
    newton_iterations : int
        Newton passes used by the last converged step.
    cell_property : Dict[int, SolidCellProperty]
        Coupling data per active cell index.
    stress : np.ndarray
        Nodal Cauchy stress (n_nodes x dim x dim) of the last converged step.
    """

    def __init__(
        self,
        mesh: MeshModel,
        material: HyperelasticMaterial,
        time: Time,
        quadrature_order: int = 2,
        max_iterations: int = 10,
        tol_u: float = 1e-6,
        tol_f: float = 1e-6,
        beta: float = 0.25,
        gamma: float = 0.5,
        n_workers: int = 1,
    ):
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")
        self.mesh = mesh
        self.dim = mesh.dim
        self.material = material
        self.time = time
        self.quadrature_order = quadrature_order
        self.max_iterations = max_iterations
        self.tol_u = tol_u
        self.tol_f = tol_f
        self.beta = beta
        self.gamma = gamma
        self.fe = mesh.reference_element
        self.fe_values = ElementValues(self.fe, quadrature_order)
        self.fe_face_values = FaceValues(self.fe, quadrature_order)
        self.n_q_points = self.fe_values.n_quadrature_points
        self.n_face_q_points = self.fe_face_values.n_quadrature_points
        self.assembler = MeshAssembler(mesh, self.dim, n_workers)

        self.dirichlet_conditions: List[Union[DirichletBoundary, DirichletCondition]] = []
        self.body_forces: List[BodyForce] = []
        self.traction_conditions: List[TractionCondition] = []

        self.state = SolverState.INITIALIZED
        self.transient = True
        self.newton_iterations = 0
        self.bc_manager: Optional[BoundaryConditionManager] = None
        self.quadrature_point_history: List[List[QuadraturePointState]] = []
        self.cell_property: Dict[int, SolidCellProperty] = {}
        self.coupling_faces: List[Tuple[int, int]] = []
        self.dirichlet_faces: List[Tuple[int, int]] = []

        self.solution = np.zeros(0)
        self.velocity = np.zeros(0)
        self.acceleration = np.zeros(0)
        self.stress = np.zeros((0, self.dim, self.dim))
        self.M: Optional[csr_matrix] = None
        self._cell_data: List[Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]] = []
        self._face_data: List[Tuple[int, int, str, np.ndarray, np.ndarray]] = []
        self._cell_index: Dict[int, int] = {}
        self._rho = create_material(material, self.dim).rho

    # =========================================================================
    # Problem definition
    # =========================================================================

    def add_dirichlet_conditions(
        self, bcs: Sequence[Union[DirichletBoundary, DirichletCondition]]
    ) -> None:
        """
        Set the Dirichlet conditions (prescribed total displacement).

        ``DirichletBoundary`` entries are resolved on every ``setup_dofs``
        and therefore survive refinement; raw ``DirichletCondition`` DOF
        lists are used as given.
        """
        self.dirichlet_conditions = list(bcs)

    def add_body_forces(self, bcs: Sequence[BodyForce]) -> None:
        """Body accelerations; the force density is ``rho0 * value``."""
        self.body_forces = list(bcs)

    def add_traction_conditions(self, bcs: Sequence[TractionCondition]) -> None:
        for bc in bcs:
            if len(bc.value) != self.dim:
                raise ValueError(f"Traction on '{bc.boundary}' needs {self.dim} components")
        self.traction_conditions = list(bcs)

    # =========================================================================
    # Setup
    # =========================================================================

    def setup_dofs(self) -> None:
        """Distribute DOFs on the current mesh and resolve the constraints."""
        self.assembler.reinit()
        n_dofs = self.assembler.dofs_count
        self.bc_manager = BoundaryConditionManager(n_dofs)
        conditions = [
            bc.resolve(self.mesh, self.dim) if isinstance(bc, DirichletBoundary) else bc
            for bc in self.dirichlet_conditions
        ]
        self.bc_manager.apply_dirichlet(conditions)

        self._cell_index = {id(e): c for c, e in enumerate(self.mesh.active_elements)}
        constrained = self.bc_manager.constrained_mask.reshape(-1, self.dim)
        self.coupling_faces = []
        self.dirichlet_faces = []
        for bf in self.mesh.boundary_faces:
            key = (self._cell_index[id(bf.element)], bf.face)
            if np.all(constrained[list(bf.node_ids)]):
                self.dirichlet_faces.append(key)
            else:
                self.coupling_faces.append(key)

        logger.info(
            "Solid triangulation: %d active cells, %d DOFs (%d constrained)",
            self.mesh.elements_count,
            n_dofs,
            len(self.bc_manager.fixed_dofs),
        )

    def initialize_system(self) -> None:
        """Allocate solution vectors, geometric data, mass matrix and point history."""
        if self.bc_manager is None:
            raise RuntimeError("setup_dofs() must be called before initialize_system()")
        n_dofs = self.assembler.dofs_count
        self.solution = np.zeros(n_dofs)
        self.velocity = np.zeros(n_dofs)
        self.acceleration = np.zeros(n_dofs)
        self.stress = np.zeros((self.mesh.node_count, self.dim, self.dim))

        self._cell_data = []
        for c, element in enumerate(self.mesh.active_elements):
            fv = self.fe_values.reinit(self.mesh.element_coords(element))
            self._cell_data.append(
                (self.assembler.dof_indices(c), fv.N, fv.dN_dx.copy(), fv.JxW.copy())
            )

        self._face_data = []
        for bf in self.mesh.boundary_faces:
            c = self._cell_index[id(bf.element)]
            ffv = self.fe_face_values.reinit(self.mesh.element_coords(bf.element), bf.face)
            self._face_data.append((c, bf.face, bf.boundary, ffv.N, ffv.JxW.copy()))

        self.M = self.assembler.assemble_matrix(
            self.assembler.map_elements(self._local_mass)
        )
        self._setup_qph()

        n_traction = self.fe.face_count * self.n_face_q_points
        self.cell_property = {
            c: SolidCellProperty(np.zeros((n_traction, self.dim)))
            for c in range(self.mesh.elements_count)
        }
        self.state = SolverState.INITIALIZED

    def _setup_qph(self) -> None:
        logger.debug("Setting up quadrature point data...")
        self.quadrature_point_history = [
            [QuadraturePointState().setup(self.material, self.dim) for _ in range(self.n_q_points)]
            for _ in range(self.mesh.elements_count)
        ]

    # =========================================================================
    # Element kernels
    # =========================================================================

    def _local_mass(self, c: int, element) -> Tuple[np.ndarray, np.ndarray]:
        dofs, N, _, JxW = self._cell_data[c]
        m = self._rho * np.einsum("q,qa,qb->ab", JxW, N, N)
        return dofs, np.kron(m, np.eye(self.dim))

    def _local_residual(self, c: int, element) -> Tuple[np.ndarray, np.ndarray]:
        dofs, _, dN_dX, JxW = self._cell_data[c]
        f_int = np.zeros((self.fe.node_count, self.dim))
        for q, state in enumerate(self.quadrature_point_history[c]):
            Gx = dN_dX[q] @ state.F_inv
            f_int += (Gx @ state.tau) * JxW[q]
        return dofs, -f_int.ravel()

    def _local_tangent(self, c: int, element) -> Tuple[np.ndarray, np.ndarray]:
        dofs, _, dN_dX, JxW = self._cell_data[c]
        n = self.fe.node_count * self.dim
        k = np.zeros((self.fe.node_count, self.dim, self.fe.node_count, self.dim))
        I = np.eye(self.dim)
        for q, state in enumerate(self.quadrature_point_history[c]):
            Gx = dN_dX[q] @ state.F_inv
            k_mat = np.einsum("aj,ijkl,bl->aibk", Gx, state.Jc, Gx)
            k_geo = np.einsum("aj,jl,bl->ab", Gx, state.tau, Gx)
            k += (k_mat + np.einsum("ab,ik->aibk", k_geo, I)) * JxW[q]
        return dofs, k.reshape(n, n)

    def _update_local_qph(self, c: int, u_total: np.ndarray) -> None:
        dofs, _, dN_dX, _ = self._cell_data[c]
        u_e = u_total[dofs].reshape(self.fe.node_count, self.dim)
        for q, state in enumerate(self.quadrature_point_history[c]):
            state.update(u_e.T @ dN_dX[q])

    # =========================================================================
    # Global assembly
    # =========================================================================

    def _external_force(self, load_factor: float = 1.0) -> np.ndarray:
        blocks = []
        for body in self.body_forces:
            g = np.asarray(body.value, dtype=float)
            for dofs, N, _, JxW in self._cell_data:
                blocks.append((dofs, self._rho * np.outer(N.T @ JxW, g).ravel()))

        for tc in self.traction_conditions:
            for c, _, boundary, N, JxW in self._face_data:
                if boundary == tc.boundary:
                    local = load_factor * np.outer(N.T @ JxW, tc.value)
                    blocks.append((self._cell_data[c][0], local.ravel()))

        coupling = set(self.coupling_faces)
        nfq = self.n_face_q_points
        for c, face, _, N, JxW in self._face_data:
            if (c, face) not in coupling:
                continue
            traction = self.cell_property[c].fsi_traction[face * nfq : (face + 1) * nfq]
            if np.any(traction):
                blocks.append((self._cell_data[c][0], (N.T @ (traction * JxW[:, None])).ravel()))

        return self.assembler.assemble_vector(blocks)

    def _acceleration(self, solution_delta: np.ndarray) -> np.ndarray:
        dt = self.time.get_delta_t()
        return (
            solution_delta - dt * self.velocity - dt**2 * (0.5 - self.beta) * self.acceleration
        ) / (self.beta * dt**2)

    def assemble_residual(self, solution_delta: np.ndarray, f_ext: np.ndarray) -> np.ndarray:
        """Out-of-balance force ``f_ext - f_int - M a`` at the current state."""
        blocks = self.assembler.map_elements(self._local_residual)
        residual = f_ext + self.assembler.assemble_vector(blocks)
        if self.transient:
            residual -= self.M @ self._acceleration(solution_delta)
        return residual

    def assemble_tangent(self) -> csr_matrix:
        blocks = self.assembler.map_elements(self._local_tangent)
        K = self.assembler.assemble_matrix(blocks)
        if self.transient:
            dt = self.time.get_delta_t()
            K = K + self.M / (self.beta * dt**2)
        return K

    def update_qph(self, solution_delta: np.ndarray) -> None:
        """Propagate the displacement ``u_n + solution_delta`` to every quadrature point."""
        u_total = self.solution + solution_delta
        self.assembler.map_elements(lambda c, e: self._update_local_qph(c, u_total))

    # =========================================================================
    # Newton-Raphson
    # =========================================================================

    def _error(self, vector: np.ndarray) -> ErrorPair:
        free = self.bc_manager.reduce_vector(vector)
        norm = float(np.linalg.norm(free))
        # Pure displacement formulation: the displacement block is the whole vector
        return ErrorPair(norm=norm, u=norm)

    def _solve_linear_system(
        self,
        K: csr_matrix,
        residual: np.ndarray,
        prescribed: Optional[np.ndarray],
    ) -> Tuple[np.ndarray, int, float]:
        K_red, F_red = self.bc_manager.reduced_system(
            K, residual, fixed_values=prescribed, homogeneous=prescribed is None
        )
        if F_red.size:
            du_red = np.atleast_1d(spsolve(K_red.tocsc(), F_red))
            lin_res = float(np.linalg.norm(K_red @ du_red - F_red))
        else:
            du_red = np.zeros(0)
            lin_res = 0.0
        du = self.bc_manager.expand_solution(
            du_red, fixed_values=prescribed, homogeneous=prescribed is None
        )
        return du, 1, lin_res

    def solve_nonlinear_timestep(self, solution_delta: np.ndarray) -> int:
        """
        Solve one load/time step for the displacement increment.

        ``solution_delta`` is updated in place.

        Returns
        -------
        int
            Number of Newton passes used.

        Raises
        ------
        RuntimeError
            If the step does not converge within ``max_iterations``.
        """
        self.state = SolverState.INITIALIZED
        logger.info("Timestep %d @ %.6gs", self.time.get_timestep(), self.time.current())

        load_factor = 1.0 if self.transient else self.time.current() / max(self.time.end(), 1e-300)
        f_ext = self._external_force(load_factor)

        fixed = self.bc_manager.fixed_dof_indices
        prescribed = self.bc_manager.fixed_values - (self.solution + solution_delta)[fixed]

        error_residual_0 = ErrorPair()
        error_update_0 = ErrorPair()
        error_residual_norm = ErrorPair()
        error_update_norm = ErrorPair()
        error_residual = error_update = ErrorPair()

        self._print_conv_header()
        for newton_iteration in range(self.max_iterations):
            self.state = SolverState.ASSEMBLING
            residual = self.assemble_residual(solution_delta, f_ext)
            error_residual = self._error(residual)

            if newton_iteration == 0:
                error_residual_0 = copy.copy(error_residual)
                if error_residual.norm == 0.0 and not np.any(prescribed):
                    # Already in equilibrium
                    error_update = ErrorPair(0.0, 0.0)
                    error_update_0 = ErrorPair(0.0, 0.0)
                    self._converged(1, error_residual, error_residual_0, error_update, error_update_0)
                    return self.newton_iterations

            error_residual_norm = error_residual.normalized(error_residual_0)

            if (
                newton_iteration > 0
                and error_update_norm.u <= self.tol_u
                and error_residual_norm.u <= self.tol_f
            ):
                self._converged(
                    newton_iteration + 1,
                    error_residual,
                    error_residual_0,
                    error_update,
                    error_update_0,
                )
                return self.newton_iterations

            K = self.assemble_tangent()
            self.state = SolverState.SOLVING
            newton_update, lin_it, lin_res = self._solve_linear_system(
                K, residual, prescribed if newton_iteration == 0 else None
            )

            error_update = self._error(newton_update)
            if newton_iteration == 0:
                error_update_0 = copy.copy(error_update)
                if error_residual_0.norm == 0.0:
                    # Displacement-driven step: forces are measured against
                    # the reactions of the prescribed increment
                    reaction = float(np.linalg.norm(K @ newton_update))
                    if reaction > 0.0:
                        error_residual_0 = ErrorPair(norm=reaction, u=reaction)
            error_update_norm = error_update.normalized(error_update_0)

            solution_delta += newton_update
            self.update_qph(solution_delta)

            logger.info(
                " %2d | %7d  %.3e  %.3e  %.3e  %.3e  %.3e",
                newton_iteration,
                lin_it,
                lin_res,
                error_residual_norm.norm,
                error_residual_norm.u,
                error_update_norm.norm,
                error_update_norm.u,
            )

        self.state = SolverState.DIVERGED
        logger.error(
            "Newton iteration did not converge in %d iterations (residual %.3e, update %.3e)",
            self.max_iterations,
            error_residual_norm.u,
            error_update_norm.u,
        )
        raise RuntimeError("No convergence in nonlinear solver!")

    def _converged(self, iterations, residual, residual_0, update, update_0) -> None:
        self.state = SolverState.CONVERGED
        self.newton_iterations = iterations
        logger.info(" CONVERGED! (%d iterations)", iterations)
        self._print_conv_footer(residual.normalized(residual_0), update.normalized(update_0))

    def _print_conv_header(self) -> None:
        splitter = "_" * CONV_TABLE_WIDTH
        logger.info(splitter)
        logger.info(
            "    SOLVER STEP  |  LIN_IT   LIN_RES    RES_NORM    RES_U      NU_NORM    NU_U"
        )
        logger.info(splitter)

    def _print_conv_footer(self, residual: ErrorPair, update: ErrorPair) -> None:
        logger.info("_" * CONV_TABLE_WIDTH)
        logger.info("Relative errors: displacement %.3e, force %.3e", update.u, residual.u)

    # =========================================================================
    # Time stepping
    # =========================================================================

    def _initial_acceleration(self) -> None:
        """Acceleration consistent with the loads at the start of the motion."""
        transient = self.transient
        self.transient = False
        residual = self.assemble_residual(np.zeros_like(self.solution), self._external_force())
        self.transient = transient
        M_red, F_red = self.bc_manager.reduced_system(self.M, residual, homogeneous=True)
        if F_red.size and np.any(F_red):
            a_red = np.atleast_1d(spsolve(M_red.tocsc(), F_red))
            self.acceleration = self.bc_manager.expand_solution(a_red, homogeneous=True)

    def run_one_step(self, first_step: bool = False) -> None:
        """
        Advance the solid one time step (Newmark-β, FSI tractions included).

        Raises
        ------
        RuntimeError
            If the Newton iteration does not converge.
        """
        self.transient = True
        if first_step:
            self._initial_acceleration()
        self.time.increment()

        solution_delta = np.zeros_like(self.solution)
        self.solve_nonlinear_timestep(solution_delta)

        dt = self.time.get_delta_t()
        acceleration = self._acceleration(solution_delta)
        self.velocity = self.velocity + dt * (
            (1.0 - self.gamma) * self.acceleration + self.gamma * acceleration
        )
        self.acceleration = acceleration
        self.solution = self.solution + solution_delta
        self.compute_stress()

    def run_statics(self, output_folder: Optional[str] = None) -> None:
        """
        Quasi-static load stepping until the end time.

        Loads are scaled by ``t / end``; no inertia is included. The step
        landing on ``end`` is solved, so the last step carries the full load.
        """
        self.transient = False
        if output_folder:
            self.write_output(f"{output_folder}/solid-{self.time.get_timestep():04d}.vtu")
        self.time.increment()
        while self.time.current() <= self.time.end() + 1e-12:
            solution_delta = np.zeros_like(self.solution)
            self.solve_nonlinear_timestep(solution_delta)
            self.solution = self.solution + solution_delta
            self.compute_stress()
            if output_folder:
                self.write_output(f"{output_folder}/solid-{self.time.get_timestep():04d}.vtu")
            self.time.increment()

    # =========================================================================
    # Post-processing
    # =========================================================================

    def compute_volume(self) -> float:
        """Current volume ``sum(det F * JxW)`` over the reference mesh."""
        volume = 0.0
        for c, (_, _, _, JxW) in enumerate(self._cell_data):
            for q, state in enumerate(self.quadrature_point_history[c]):
                volume += state.det_F() * JxW[q]
        return volume

    def compute_stress(self) -> np.ndarray:
        """Nodal Cauchy stress averaged from the quadrature points."""
        stress = np.zeros((self.mesh.node_count, self.dim, self.dim))
        count = np.zeros(self.mesh.node_count)
        connectivity = self.mesh.connectivity
        for c, states in enumerate(self.quadrature_point_history):
            sigma = np.mean([s.tau / s.det_F() for s in states], axis=0)
            stress[connectivity[c]] += sigma
            count[connectivity[c]] += 1
        self.stress = stress / np.maximum(count, 1)[:, None, None]
        return self.stress

    @property
    def current_displacement(self) -> np.ndarray:
        return self.solution

    @property
    def current_velocity(self) -> np.ndarray:
        return self.velocity

    @property
    def current_acceleration(self) -> np.ndarray:
        return self.acceleration

    def nodal(self, vector: np.ndarray) -> np.ndarray:
        """View a DOF vector as (n_nodes x dim)."""
        return np.asarray(vector).reshape(-1, self.dim)

    def write_output(self, filename: str) -> None:
        """Write displacement, velocity, acceleration and stress to a meshio file."""
        write_mesh(
            self.mesh,
            filename,
            point_data={
                "displacement": self.nodal(self.solution),
                "velocity": self.nodal(self.velocity),
                "acceleration": self.nodal(self.acceleration),
                "stress": self.stress.reshape(self.mesh.node_count, -1),
            },
            reference=True,
        )
