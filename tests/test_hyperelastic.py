"""Tests for the Newton-Raphson hyperelastic solid solver.

Analytical reference (small strain, 2D decoupled Neo-Hookean):
    sigma = kappa tr(eps) I + 2 mu dev(eps)

Uniaxial traction t on the right edge of an L x H block with roller supports
on the left and bottom edges gives a homogeneous state with
    u_x(L) = t L (kappa + mu) / (4 mu kappa)
"""

import numpy as np
import pytest

from fem_fsi.core.bc import BodyForce, DirichletBoundary, TractionCondition
from fem_fsi.core.material import HyperelasticMaterial
from fem_fsi.core.mesh import BoxMesh
from fem_fsi.solvers.hyperelastic import ErrorPair, NonlinearSolidSolver, SolverState
from fem_fsi.solvers.time import Time

MU = 1.0e6
KAPPA = 2.0e6


# =============================================================================
# Test Fixtures
# =============================================================================


@pytest.fixture
def material():
    return HyperelasticMaterial(type="NeoHookean", C=[MU, KAPPA], rho=1000.0)


def _uniaxial_solver(material, traction=100.0, length=2.0, height=1.0, **kwargs):
    mesh = BoxMesh.create_rectangle(width=length, height=height, nx=4, ny=2)
    solver = NonlinearSolidSolver(mesh, material, Time(end=1.0, delta_t=1.0), **kwargs)
    solver.add_dirichlet_conditions(
        [DirichletBoundary("left", components=[0]), DirichletBoundary("bottom", components=[1])]
    )
    solver.add_traction_conditions([TractionCondition("right", [traction, 0.0])])
    solver.setup_dofs()
    solver.initialize_system()
    return solver


def _clamped_square(material, **kwargs):
    mesh = BoxMesh.create_unit_square(2, 2)
    solver = NonlinearSolidSolver(mesh, material, Time(end=0.01, delta_t=0.01), **kwargs)
    solver.add_dirichlet_conditions([DirichletBoundary("left")])
    solver.setup_dofs()
    solver.initialize_system()
    return solver


# =============================================================================
# Setup
# =============================================================================


class TestSetup:
    def test_constrained_dofs(self, material):
        solver = _uniaxial_solver(material)
        mesh = solver.mesh
        fixed = set(solver.bc_manager.fixed_dofs)
        left = mesh.get_node_set("left").node_ids
        bottom = mesh.get_node_set("bottom").node_ids
        assert fixed == {2 * n for n in left} | {2 * n + 1 for n in bottom}

    def test_coupling_faces_exclude_clamped_faces(self, material):
        solver = _clamped_square(material)
        boundaries = {
            (solver._cell_index[id(bf.element)], bf.face): bf.boundary
            for bf in solver.mesh.boundary_faces
        }
        assert {boundaries[key] for key in solver.dirichlet_faces} == {"left"}
        assert "left" not in {boundaries[key] for key in solver.coupling_faces}
        assert len(solver.coupling_faces) == 6

    def test_initialize_requires_setup(self, material):
        solver = NonlinearSolidSolver(
            BoxMesh.create_unit_square(1, 1), material, Time(end=1.0, delta_t=1.0)
        )
        with pytest.raises(RuntimeError):
            solver.initialize_system()

    def test_mass_matrix_total_mass(self, material):
        solver = _clamped_square(material)
        ones = np.tile([1.0, 0.0], solver.mesh.node_count)
        assert ones @ solver.M @ ones == pytest.approx(1000.0)

    def test_invalid_iteration_budget(self, material):
        with pytest.raises(ValueError):
            NonlinearSolidSolver(
                BoxMesh.create_unit_square(1, 1),
                material,
                Time(end=1.0, delta_t=1.0),
                max_iterations=0,
            )


# =============================================================================
# Newton-Raphson
# =============================================================================


class TestNewtonRaphson:
    def test_uniaxial_traction_matches_closed_form(self, material):
        traction, length = 100.0, 2.0
        solver = _uniaxial_solver(material, traction=traction, length=length)
        solver.run_statics()

        assert solver.state == SolverState.CONVERGED
        assert 1 < solver.newton_iterations <= 10
        u = solver.nodal(solver.current_displacement)
        right = sorted(solver.mesh.get_node_set("right").node_ids)
        expected = traction * length * (KAPPA + MU) / (4.0 * MU * KAPPA)
        np.testing.assert_allclose(u[right, 0], expected, rtol=1e-3)

    def test_uniaxial_state_is_homogeneous(self, material):
        solver = _uniaxial_solver(material)
        solver.run_statics()
        u = solver.nodal(solver.current_displacement)
        x = solver.mesh.reference_coords
        strain = u[:, 0] / x[:, 0].clip(min=1e-12)
        np.testing.assert_allclose(strain[x[:, 0] > 0], strain[x[:, 0] > 0][0], rtol=1e-6)
        # Lateral contraction
        top = sorted(solver.mesh.get_node_set("top").node_ids)
        assert np.all(u[top, 1] < 0)

    def test_parallel_assembly_matches_serial(self, material):
        serial = _uniaxial_solver(material)
        parallel = _uniaxial_solver(material, n_workers=4)
        serial.run_statics()
        parallel.run_statics()
        np.testing.assert_allclose(
            parallel.current_displacement, serial.current_displacement, rtol=1e-12, atol=1e-18
        )
        assert parallel.newton_iterations == serial.newton_iterations

    def test_zero_load_converges_in_one_iteration(self, material):
        solver = _clamped_square(material)
        solver.run_one_step(first_step=True)

        assert solver.state == SolverState.CONVERGED
        assert solver.newton_iterations == 1
        np.testing.assert_array_equal(solver.current_displacement, 0.0)
        np.testing.assert_array_equal(solver.current_velocity, 0.0)
        assert solver.time.get_timestep() == 1

    def test_divergence_is_fatal(self, material):
        solver = _uniaxial_solver(material, max_iterations=1)
        with pytest.raises(RuntimeError, match="No convergence in nonlinear solver!"):
            solver.run_statics()
        assert solver.state == SolverState.DIVERGED
        np.testing.assert_array_equal(solver.current_displacement, 0.0)

    def test_prescribed_displacement_is_reached(self, material):
        mesh = BoxMesh.create_unit_square(2, 2)
        solver = NonlinearSolidSolver(mesh, material, Time(end=1.0, delta_t=1.0))
        solver.add_dirichlet_conditions(
            [
                DirichletBoundary("left", components=[0]),
                DirichletBoundary("bottom", components=[1]),
                DirichletBoundary("right", components=[0], value=1.0e-3),
            ]
        )
        solver.setup_dofs()
        solver.initialize_system()
        solver.run_statics()

        u = solver.nodal(solver.current_displacement)
        right = sorted(mesh.get_node_set("right").node_ids)
        np.testing.assert_allclose(u[right, 0], 1.0e-3, rtol=1e-12)
        # Free lateral contraction for a stretched plane block
        top = sorted(mesh.get_node_set("top").node_ids)
        assert np.all(u[top, 1] < 0)

    def test_prescribed_stretch_of_stiff_material_converges(self):
        steel = HyperelasticMaterial(type="NeoHookean", C=[8.0e10, 1.6e11], rho=7850.0)
        mesh = BoxMesh.create_unit_square(8, 8)
        solver = NonlinearSolidSolver(mesh, steel, Time(end=1.0, delta_t=1.0))
        solver.add_dirichlet_conditions(
            [
                DirichletBoundary("left", components=[0]),
                DirichletBoundary("bottom", components=[1]),
                DirichletBoundary("right", components=[0], value=1.0e-3),
            ]
        )
        solver.setup_dofs()
        solver.initialize_system()
        solver.run_statics()

        assert solver.state == SolverState.CONVERGED
        u = solver.nodal(solver.current_displacement)
        right = sorted(mesh.get_node_set("right").node_ids)
        np.testing.assert_allclose(u[right, 0], 1.0e-3, rtol=1e-12)

    def test_quadrature_states_follow_converged_displacement(self, material):
        solver = _uniaxial_solver(material)
        solver.run_statics()
        states = [s for cell in solver.quadrature_point_history for s in cell]
        stretch = states[0].F[0, 0]
        assert stretch > 1.0
        for state in states:
            np.testing.assert_allclose(state.F[0, 0], stretch, rtol=1e-8)
            np.testing.assert_allclose(state.tau[0, 0] / state.det_F(), 100.0, rtol=1e-3)

    def test_error_pair_zero_baseline(self):
        ratio = ErrorPair(norm=2.0, u=3.0).normalized(ErrorPair(norm=0.0, u=4.0))
        assert ratio.norm == 2.0
        assert ratio.u == pytest.approx(0.75)


# =============================================================================
# Dynamics and post-processing
# =============================================================================


class TestDynamics:
    def test_gravity_accelerates_free_end(self, material):
        solver = _clamped_square(material)
        solver.add_body_forces([BodyForce([0.0, -9.81])])
        solver.run_one_step(first_step=True)
        u = solver.nodal(solver.current_displacement)
        right = sorted(solver.mesh.get_node_set("right").node_ids)
        assert np.all(u[right, 1] < 0)
        assert np.all(solver.nodal(solver.current_velocity)[right, 1] < 0)

    def test_volume_is_conserved_without_load(self, material):
        solver = _clamped_square(material)
        assert solver.compute_volume() == pytest.approx(1.0)
        solver.run_one_step(first_step=True)
        assert solver.compute_volume() == pytest.approx(1.0)

    def test_volume_changes_under_compression(self, material):
        solver = _uniaxial_solver(material, traction=-1.0e4)
        solver.run_statics()
        assert solver.compute_volume() < 2.0

    def test_nodal_stress_from_uniaxial_state(self, material):
        solver = _uniaxial_solver(material)
        solver.run_statics()
        np.testing.assert_allclose(solver.stress[:, 0, 0], 100.0, rtol=1e-3)
        np.testing.assert_allclose(solver.stress[:, 1, 1], 0.0, atol=1e-2)

    def test_write_output(self, material, tmp_path):
        solver = _uniaxial_solver(material)
        solver.run_statics(output_folder=str(tmp_path))
        assert (tmp_path / "solid-0000.vtu").exists()
        assert (tmp_path / "solid-0001.vtu").exists()

    def test_statics_solves_the_step_at_end_time(self, material, tmp_path):
        solver = _uniaxial_solver(material)
        solver.time = Time(end=1.0, delta_t=0.25)
        solver.run_statics(output_folder=str(tmp_path))

        assert (tmp_path / "solid-0004.vtu").exists()
        assert not (tmp_path / "solid-0005.vtu").exists()
        u = solver.nodal(solver.current_displacement)
        right = sorted(solver.mesh.get_node_set("right").node_ids)
        expected = 100.0 * 2.0 * (KAPPA + MU) / (4.0 * MU * KAPPA)
        np.testing.assert_allclose(u[right, 0], expected, rtol=1e-3)
