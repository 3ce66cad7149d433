"""Tests for the reference elements and the mapped element/face values."""

import numpy as np
import pytest

from fem_fsi.core.mesh import ElementType
from fem_fsi.elements import (
    HEXA8,
    QUAD4,
    ElementFactory,
    ElementValues,
    FaceValues,
    gauss_legendre,
)


@pytest.fixture(params=[QUAD4, HEXA8], ids=["QUAD4", "HEXA8"])
def element(request):
    return request.param()


def _box_coords(element, lower, upper):
    lower = np.asarray(lower, dtype=float)
    upper = np.asarray(upper, dtype=float)
    return lower + (element.vertices + 1.0) / 2.0 * (upper - lower)


class TestGaussLegendre:
    @pytest.mark.parametrize("order", [1, 2, 3])
    def test_weights_sum_to_reference_measure(self, order):
        for dim in (1, 2, 3):
            _, weights = gauss_legendre(order, dim)
            assert weights.sum() == pytest.approx(2.0**dim)

    def test_integrates_cubic_exactly_with_two_points(self):
        points, weights = gauss_legendre(2, 2)
        value = np.sum(weights * points[:, 0] ** 2 * points[:, 1] ** 2)
        assert value == pytest.approx(4.0 / 9.0)

    def test_invalid_order(self):
        with pytest.raises(ValueError):
            gauss_legendre(0, 2)


class TestReferenceElement:
    def test_partition_of_unity(self, element):
        points, _ = element.integration_points(3)
        np.testing.assert_allclose(element.shape_functions(points).sum(axis=1), 1.0)
        np.testing.assert_allclose(
            element.shape_function_derivatives(points).sum(axis=1), 0.0, atol=1e-14
        )

    def test_kronecker_property(self, element):
        np.testing.assert_allclose(
            element.shape_functions(element.vertices), np.eye(element.node_count), atol=1e-14
        )

    def test_inverse_map_round_trip(self, element):
        coords = _box_coords(element, [0.0] * element.dim, [2.0, 1.0, 0.5][: element.dim])
        coords = coords + 0.05 * np.sin(np.arange(coords.size)).reshape(coords.shape)
        xi = np.full(element.dim, 0.3)
        x = element.map_points(coords, xi[None, :])[0]
        np.testing.assert_allclose(element.inverse_map(coords, x), xi, atol=1e-10)

    def test_contains(self, element):
        assert element.contains(np.zeros(element.dim))
        assert element.contains(np.ones(element.dim))
        assert not element.contains(np.full(element.dim, 1.01))

    def test_factory(self):
        assert isinstance(ElementFactory.get_element(ElementType.quad), QUAD4)
        assert isinstance(ElementFactory.get_element(ElementType.hexahedron), HEXA8)
        assert ElementFactory.get_element(9) is ElementFactory.get_element(ElementType.quad)


class TestElementValues:
    def test_jxw_sums_to_cell_measure(self, element):
        upper = [2.0, 0.5, 3.0][: element.dim]
        fv = ElementValues(element, 2).reinit(_box_coords(element, [0.0] * element.dim, upper))
        assert fv.JxW.sum() == pytest.approx(np.prod(upper))

    def test_gradients_reproduce_linear_field(self, element):
        coords = _box_coords(element, [0.0] * element.dim, [1.0, 2.0, 1.5][: element.dim])
        a = np.array([0.3, -1.2, 2.0][: element.dim])
        fv = ElementValues(element, 2).reinit(coords)
        values = coords @ a
        grads = np.einsum("a,qai->qi", values, fv.dN_dx)
        np.testing.assert_allclose(grads, np.tile(a, (fv.n_quadrature_points, 1)), atol=1e-12)

    def test_inverted_cell_raises(self):
        element = QUAD4()
        coords = _box_coords(element, [0.0, 0.0], [1.0, 1.0])[[1, 0, 3, 2]]
        with pytest.raises(ValueError, match="Non-positive Jacobian"):
            ElementValues(element, 2).reinit(coords)


class TestFaceValues:
    def test_outward_normals_and_areas(self, element):
        upper = np.array([2.0, 1.0, 0.5][: element.dim])
        coords = _box_coords(element, [0.0] * element.dim, upper)
        ffv = FaceValues(element, 2)
        for face in range(element.face_count):
            ffv.reinit(coords, face)
            axis, side = element.face_axes[face]
            expected = np.zeros(element.dim)
            expected[axis] = side
            np.testing.assert_allclose(ffv.normals, np.tile(expected, (len(ffv.JxW), 1)), atol=1e-14)
            assert ffv.JxW.sum() == pytest.approx(np.prod(np.delete(upper, axis)))
            np.testing.assert_allclose(
                ffv.quadrature_points[:, axis], 0.0 if side < 0 else upper[axis], atol=1e-14
            )
