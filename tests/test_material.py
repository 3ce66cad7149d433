"""Test suite for the finite-strain constitutive models.

Covers the Neo-Hookean law (reference state, closed-form tangent at the
reference configuration, finite-difference consistency of the tangent), the
material factory and the quadrature point history built on top of it.
"""

import numpy as np
import pytest

from fem_fsi.core.material import (
    DEFAULT_POISSON_RATIO,
    HyperelasticMaterial,
    NeoHookean,
    create_material,
    identity_tensors,
)
from fem_fsi.solvers.hyperelastic import QuadraturePointState


# =============================================================================
# Test Fixtures
# =============================================================================


@pytest.fixture
def rubber():
    """Neo-Hookean rubber-like material with explicit bulk modulus."""
    return HyperelasticMaterial(type="NeoHookean", C=[1.0e6, 5.0e6], rho=1100.0, name="rubber")


@pytest.fixture(params=[2, 3])
def dim(request):
    return request.param


# =============================================================================
# Neo-Hookean model
# =============================================================================


class TestNeoHookean:
    def test_accessors_before_update_raise(self, rubber):
        model = create_material(rubber, 2)
        with pytest.raises(RuntimeError):
            model.tau
        with pytest.raises(RuntimeError):
            model.Jc
        with pytest.raises(RuntimeError):
            model.det_F

    def test_reference_state_is_stress_free(self, rubber, dim):
        model = create_material(rubber, dim)
        model.update_data(np.eye(dim))
        assert model.det_F == pytest.approx(1.0)
        np.testing.assert_allclose(model.tau, 0.0, atol=1e-9)
        assert model.dPsi_vol_dJ == pytest.approx(0.0, abs=1e-12)
        assert model.d2Psi_vol_dJ2 == pytest.approx(5.0e6)

    def test_reference_tangent(self, rubber, dim):
        """At F = I the tangent reduces to kappa I(x)I + 2 mu P."""
        model = create_material(rubber, dim)
        model.update_data(np.eye(dim))
        I, S, IxI = identity_tensors(dim)
        expected = 5.0e6 * IxI + 2.0 * 1.0e6 * (S - IxI / dim)
        np.testing.assert_allclose(model.Jc, expected, rtol=1e-12, atol=1e-6)

    def test_tangent_symmetries(self, rubber, dim):
        model = create_material(rubber, dim)
        F = np.eye(dim) + 0.1 * np.arange(dim * dim).reshape(dim, dim) / (dim * dim)
        model.update_data(F)
        Jc = model.Jc
        np.testing.assert_allclose(Jc, Jc.transpose(1, 0, 2, 3), atol=1e-6)
        np.testing.assert_allclose(Jc, Jc.transpose(0, 1, 3, 2), atol=1e-6)
        np.testing.assert_allclose(Jc, Jc.transpose(2, 3, 0, 1), atol=1e-6)

    def test_kirchhoff_stress_is_symmetric(self, rubber, dim):
        model = create_material(rubber, dim)
        F = np.eye(dim)
        F[0, 1] = 0.2
        model.update_data(F)
        np.testing.assert_allclose(model.tau, model.tau.T, atol=1e-9)

    def test_pure_volumetric_stretch(self, rubber, dim):
        """Uniform stretch: no deviatoric stress, tau = J p I."""
        model = create_material(rubber, dim)
        lam = 1.01
        model.update_data(lam * np.eye(dim))
        J = lam**dim
        p = 0.5 * 5.0e6 * (J - 1.0 / J)
        np.testing.assert_allclose(model.tau, J * p * np.eye(dim), rtol=1e-10)

    def test_tangent_matches_finite_difference(self, rubber):
        """Jc is the linearization of tau along the Lie derivative.

        For a perturbation F -> (I + eps h) F:
            d tau = Jc : sym(h) + h tau + tau h^T
        """
        dim = 2
        model = create_material(rubber, dim)
        F = np.array([[1.05, 0.1], [0.02, 0.97]])
        h = np.array([[0.3, -0.2], [0.1, 0.4]])
        eps = 1e-7

        model.update_data(F)
        tau0, Jc = model.tau.copy(), model.Jc.copy()
        model.update_data((np.eye(dim) + eps * h) @ F)
        dtau_fd = (model.tau - tau0) / eps

        sym_h = 0.5 * (h + h.T)
        dtau = np.einsum("ijkl,kl->ij", Jc, sym_h) + h @ tau0 + tau0 @ h.T
        np.testing.assert_allclose(dtau_fd, dtau, rtol=1e-4, atol=1.0)

    def test_non_positive_jacobian_raises(self, rubber):
        model = create_material(rubber, 2)
        with pytest.raises(ValueError, match="Non-positive Jacobian"):
            model.update_data(np.diag([1.0, -1.0]))

    def test_default_bulk_modulus(self):
        model = NeoHookean.from_constants([1.0e6], rho=1000.0, dim=3)
        nu = DEFAULT_POISSON_RATIO
        assert model.kappa == pytest.approx(2.0e6 * (1 + nu) / (3 * (1 - 2 * nu)))


class TestMaterialFactory:
    def test_unknown_type_raises(self):
        with pytest.raises(ValueError, match="not implemented"):
            create_material(HyperelasticMaterial(type="Ogden", C=[1.0], rho=1.0), 2)

    def test_missing_constants_raise(self):
        with pytest.raises(ValueError, match="shear modulus"):
            create_material(HyperelasticMaterial(type="NeoHookean", C=[], rho=1.0), 2)

    def test_missing_density_raises(self):
        with pytest.raises(ValueError, match="density"):
            create_material(HyperelasticMaterial(type="NeoHookean", C=[1.0]), 2)

    def test_unsupported_dimension(self, rubber):
        with pytest.raises(ValueError):
            create_material(rubber, 1)


# =============================================================================
# Quadrature point history
# =============================================================================


class TestQuadraturePointState:
    def test_access_before_setup_raises(self):
        state = QuadraturePointState()
        with pytest.raises(RuntimeError):
            state.update(np.zeros((2, 2)))
        with pytest.raises(RuntimeError):
            state.tau
        with pytest.raises(RuntimeError):
            state.det_F()

    def test_setup_places_point_in_reference_state(self, rubber, dim):
        state = QuadraturePointState().setup(rubber, dim)
        np.testing.assert_array_equal(state.F, np.eye(dim))
        np.testing.assert_array_equal(state.F_inv, np.eye(dim))
        assert state.det_F() == pytest.approx(1.0)
        np.testing.assert_allclose(state.tau, 0.0, atol=1e-9)
        assert state.rho == pytest.approx(1100.0)

    def test_update_stores_inverse_deformation_gradient(self, rubber):
        state = QuadraturePointState().setup(rubber, 2)
        grad_u = np.array([[0.1, 0.05], [-0.02, 0.03]])
        state.update(grad_u)
        np.testing.assert_allclose(state.F @ state.F_inv, np.eye(2), atol=1e-14)
        assert state.det_F() == pytest.approx(np.linalg.det(np.eye(2) + grad_u))

    def test_update_is_idempotent(self, rubber, dim):
        state = QuadraturePointState().setup(rubber, dim)
        grad_u = 0.01 * np.arange(dim * dim, dtype=float).reshape(dim, dim)
        state.update(grad_u)
        first = (state.F_inv.copy(), state.tau.copy(), state.Jc.copy(), state.dPsi_vol_dJ)
        state.update(grad_u)
        np.testing.assert_array_equal(state.F_inv, first[0])
        np.testing.assert_array_equal(state.tau, first[1])
        np.testing.assert_array_equal(state.Jc, first[2])
        assert state.dPsi_vol_dJ == first[3]

    def test_states_do_not_share_material(self, rubber):
        a = QuadraturePointState().setup(rubber, 2)
        b = QuadraturePointState().setup(rubber, 2)
        a.update(np.diag([0.1, 0.0]))
        assert a.material is not b.material
        np.testing.assert_allclose(b.tau, 0.0, atol=1e-9)
