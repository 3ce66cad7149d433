"""Tests for the hierarchical mesh: generation, configurations, point location,
adaptation, hanging-node constraints and output."""

import meshio
import numpy as np
import pytest

from fem_fsi.core.mesh import BoxMesh, ElementType, MeshElement, MeshModel, write_mesh
from fem_fsi.solvers.fluid import SolutionTransfer


@pytest.fixture
def square():
    return BoxMesh.create_unit_square(2, 2)


def _linear(points):
    return 1.0 + 2.0 * points[:, 0] + 3.0 * points[:, 1]


def _max_level_jump(mesh):
    neighbors = {}
    for element in mesh.active_elements:
        for node in element.node_ids:
            neighbors.setdefault(node, []).append(element.level)
    return max(max(levels) - min(levels) for levels in neighbors.values())


class TestBoxMesh:
    def test_rectangle_counts(self):
        mesh = BoxMesh.create_rectangle(width=2.0, height=1.0, nx=4, ny=2)
        assert mesh.node_count == 15
        assert mesh.elements_count == 8
        assert mesh.element_type == ElementType.quad
        np.testing.assert_allclose(mesh.bounding_box[1], [2.0, 1.0])

    def test_boundary_node_sets(self, square):
        assert set(square.node_sets) == {"left", "right", "bottom", "top"}
        left = square.get_node_set("left").node_ids
        np.testing.assert_allclose(square.reference_coords[sorted(left), 0], 0.0)
        assert len(left) == 3
        assert len(square.get_boundary_faces("top")) == 2

    def test_missing_node_set(self, square):
        with pytest.raises(KeyError):
            square.get_node_set("front")

    def test_box_3d(self):
        mesh = BoxMesh.create_box((0, 0, 0), (1, 1, 1), 2, 2, 2)
        assert mesh.node_count == 27
        assert mesh.elements_count == 8
        assert len(mesh.boundary_faces) == 24
        assert set(mesh.node_sets) == {"left", "right", "bottom", "top", "back", "front"}

    def test_cells_have_positive_orientation(self, square):
        from fem_fsi.elements import ElementValues

        fv = ElementValues(square.reference_element, 2)
        for element in square.active_elements:
            fv.reinit(square.element_coords(element))
            assert np.all(fv.JxW > 0)

    def test_invalid_box(self):
        with pytest.raises(ValueError):
            BoxMesh((0.0, 0.0), (1.0, 0.0), (2, 2))
        with pytest.raises(ValueError):
            BoxMesh((0.0, 0.0), (1.0, 1.0), (0, 2))

    def test_mixed_dimensions_rejected(self):
        with pytest.raises(ValueError):
            MeshModel(np.zeros((4, 3)), [MeshElement([0, 1, 2, 3], ElementType.quad)])


class TestConfiguration:
    def test_reference_is_read_only(self, square):
        with pytest.raises(ValueError):
            square.reference_coords[0, 0] = 5.0

    def test_set_displacement_and_reset(self, square):
        reference = square.reference_coords.copy()
        u = np.random.default_rng(0).normal(scale=0.01, size=reference.shape)
        square.set_displacement(u.ravel())
        np.testing.assert_allclose(square.coords, reference + u)
        assert square.is_displaced
        np.testing.assert_array_equal(square.reference_coords, reference)

        square.reset_configuration()
        np.testing.assert_array_equal(square.coords, reference)
        assert not square.is_displaced

    def test_point_location_follows_current_configuration(self, square):
        assert not square.point_in_mesh([1.05, 0.5])
        square.set_displacement(np.tile([0.1, 0.0], (square.node_count, 1)))
        assert square.point_in_mesh([1.05, 0.5])
        assert not square.point_in_mesh([0.05, 0.5])


class TestPointLocation:
    def test_find_element(self, square):
        element, xi = square.find_element([0.75, 0.25])
        assert element.id == 1
        np.testing.assert_allclose(xi, [0.0, 0.0], atol=1e-12)

    def test_points_on_boundary_are_inside(self, square):
        assert square.point_in_mesh([0.0, 0.0])
        assert square.point_in_mesh([1.0, 0.5])

    def test_outside_returns_none(self, square):
        assert square.find_element([1.5, 0.5]) is None
        assert square.evaluate(np.zeros(square.node_count), [-0.1, 0.5]) is None
        assert square.point_value(np.zeros(square.node_count), [2.0, 2.0]) is None

    def test_evaluate_linear_field(self, square):
        field = _linear(square.reference_coords)
        value, gradient = square.evaluate(field, [0.3, 0.7])
        assert value == pytest.approx(1.0 + 0.6 + 2.1)
        np.testing.assert_allclose(gradient, [2.0, 3.0], atol=1e-12)

    def test_evaluate_vector_field(self, square):
        field = np.column_stack([_linear(square.reference_coords), square.reference_coords[:, 0]])
        value, gradient = square.evaluate(field, [0.6, 0.1])
        np.testing.assert_allclose(value, [1.0 + 1.2 + 0.3, 0.6])
        np.testing.assert_allclose(gradient, [[2.0, 3.0], [1.0, 0.0]], atol=1e-12)


class TestRefinement:
    def test_refine_global(self, square):
        square.refine_global(1)
        assert square.elements_count == 16
        assert square.node_count == 25
        assert square.n_levels == 2
        assert square.hanging_node_constraints == {}

    def test_refined_nodes_keep_their_configuration(self, square):
        square.set_displacement(np.tile([0.5, 0.0], (square.node_count, 1)))
        square.refine_global(1)
        np.testing.assert_allclose(square.coords - square.reference_coords, np.tile([0.5, 0.0], (25, 1)))

    def test_local_refinement_creates_hanging_nodes(self, square):
        square.active_elements[0].refine_flag = True
        n_refined, n_coarsened = square.execute_coarsening_and_refinement()
        assert (n_refined, n_coarsened) == (1, 0)
        assert square.elements_count == 7
        assert square.node_count == 14

        constraints = square.hanging_node_constraints
        hanging = {tuple(np.round(square.reference_coords[n], 12)) for n in constraints}
        assert hanging == {(0.5, 0.25), (0.25, 0.5)}
        for masters in constraints.values():
            assert sum(w for _, w in masters) == pytest.approx(1.0)
            assert all(m not in constraints for m, _ in masters)

    def test_distribute_constraints_keeps_linear_field_conforming(self, square):
        square.active_elements[0].refine_flag = True
        square.execute_coarsening_and_refinement()
        field = _linear(square.reference_coords)
        field[list(square.hanging_node_constraints)] = 0.0
        square.distribute_constraints(field)
        np.testing.assert_allclose(field, _linear(square.reference_coords))

    def test_coarsening_restores_parent(self, square):
        parent = square.active_elements[0]
        parent.refine_flag = True
        square.execute_coarsening_and_refinement()
        for child in parent.children:
            child.coarsen_flag = True
        n_refined, n_coarsened = square.execute_coarsening_and_refinement()
        assert (n_refined, n_coarsened) == (0, 1)
        assert square.elements_count == 4
        assert square.node_count == 9
        assert parent.active

    def test_one_level_jump_is_enforced(self):
        mesh = BoxMesh.create_unit_square(4, 4)
        corner = mesh.active_elements[0]
        corner.refine_flag = True
        mesh.execute_coarsening_and_refinement()
        # The child touching the interior neighbours
        corner.children[2].refine_flag = True
        mesh.execute_coarsening_and_refinement()
        assert mesh.n_levels == 3
        assert _max_level_jump(mesh) <= 1

    def test_coarsening_blocked_by_finer_neighbour(self):
        mesh = BoxMesh.create_unit_square(2, 2)
        mesh.refine_global(1)
        first = mesh.active_elements[0].parent
        # Refine a child of the first parent, then try to coarsen the second parent
        first.children[1].refine_flag = True
        mesh.execute_coarsening_and_refinement()
        second = mesh.elements[1]
        for child in second.children:
            child.coarsen_flag = True
        mesh.execute_coarsening_and_refinement()
        assert not second.active
        assert _max_level_jump(mesh) <= 1


class TestSolutionTransfer:
    def test_linear_field_survives_adaptation(self, square):
        transfer = SolutionTransfer(square)
        transfer.prepare_for_coarsening_and_refinement(_linear(square.reference_coords))
        square.active_elements[3].refine_flag = True
        square.execute_coarsening_and_refinement()
        np.testing.assert_allclose(transfer.interpolate(), _linear(square.reference_coords))

    def test_interpolate_without_prepare(self, square):
        with pytest.raises(RuntimeError):
            SolutionTransfer(square).interpolate()


class TestWriters:
    def test_write_vtu_with_fields(self, square, tmp_path):
        path = tmp_path / "out" / "mesh.vtu"
        write_mesh(
            square,
            str(path),
            point_data={"u": np.ones((square.node_count, 2))},
            cell_data={"level": np.zeros(square.elements_count)},
        )
        result = meshio.read(str(path))
        assert len(result.points) == square.node_count
        assert result.points.shape[1] == 3
        assert result.point_data["u"].shape == (square.node_count, 3)
