"""Tests for the sparse assembler and Dirichlet elimination."""

import numpy as np
import pytest
from scipy.sparse import csr_matrix

from fem_fsi.core.assembler import MeshAssembler
from fem_fsi.core.bc import BoundaryConditionManager, DirichletBoundary, DirichletCondition
from fem_fsi.core.mesh import BoxMesh


@pytest.fixture
def mesh():
    return BoxMesh.create_unit_square(2, 2)


class TestMeshAssembler:
    def test_dof_layout_is_node_major(self, mesh):
        assembler = MeshAssembler(mesh, 2)
        assert assembler.dofs_count == 18
        nodes = mesh.connectivity[0]
        np.testing.assert_array_equal(
            assembler.dof_indices(0), np.column_stack([2 * nodes, 2 * nodes + 1]).ravel()
        )
        np.testing.assert_array_equal(assembler.node_dofs([3], component=1), [7])

    def test_shared_nodes_are_summed(self, mesh):
        assembler = MeshAssembler(mesh, 1)
        blocks = [(assembler.dof_indices(c), np.ones(4)) for c in range(mesh.elements_count)]
        vector = assembler.assemble_vector(blocks)
        # Corner, edge and centre node valences on a 2x2 grid
        assert sorted(vector) == [1.0] * 4 + [2.0] * 4 + [4.0]

    def test_matrix_assembly_is_symmetric(self, mesh):
        assembler = MeshAssembler(mesh, 1)
        local = np.eye(4) + 0.5
        K = assembler.assemble_matrix(
            (assembler.dof_indices(c), local) for c in range(mesh.elements_count)
        )
        assert K.shape == (9, 9)
        assert abs(K - K.T).max() == 0.0
        assert K.sum() == pytest.approx(4 * local.sum())

    def test_map_elements_preserves_cell_order(self, mesh):
        assembler = MeshAssembler(mesh, 1, n_workers=3)
        assert assembler.map_elements(lambda c, e: (c, e.id)) == [
            (c, e.id) for c, e in enumerate(mesh.active_elements)
        ]

    def test_reinit_after_refinement(self, mesh):
        assembler = MeshAssembler(mesh, 2)
        mesh.refine_global(1)
        assembler.reinit()
        assert assembler.dofs_count == 50
        assert len(assembler.map_elements(lambda c, e: c)) == 16

    def test_invalid_arguments(self, mesh):
        with pytest.raises(ValueError):
            MeshAssembler(mesh, 0)
        with pytest.raises(ValueError):
            MeshAssembler(mesh, 1, n_workers=0)


class TestBoundaryConditionManager:
    def test_reduced_system_with_prescribed_values(self):
        K = csr_matrix(np.array([[2.0, -1.0, 0.0], [-1.0, 2.0, -1.0], [0.0, -1.0, 2.0]]))
        manager = BoundaryConditionManager(3)
        manager.apply_dirichlet([DirichletCondition([0], 1.0), DirichletCondition([2], 3.0)])

        K_red, F_red = manager.reduced_system(K, np.zeros(3))
        assert K_red.shape == (1, 1)
        np.testing.assert_allclose(F_red, [4.0])
        u = manager.expand_solution(np.linalg.solve(K_red.toarray(), F_red))
        np.testing.assert_allclose(u, [1.0, 2.0, 3.0])

    def test_homogeneous_reduction_ignores_values(self):
        K = csr_matrix(np.eye(2) * 2.0 + 1.0)
        manager = BoundaryConditionManager(2)
        manager.apply_dirichlet([DirichletCondition([0], 5.0)])
        _, F_red = manager.reduced_system(K, np.array([1.0, 1.0]), homogeneous=True)
        np.testing.assert_allclose(F_red, [1.0])
        np.testing.assert_allclose(manager.expand_solution(np.array([0.5]), homogeneous=True), [0.0, 0.5])

    def test_conflicting_values_raise(self):
        manager = BoundaryConditionManager(4)
        with pytest.raises(ValueError, match="Conflicting"):
            manager.apply_dirichlet([DirichletCondition([1], 0.0), DirichletCondition([1], 1.0)])

    def test_out_of_range_dof(self):
        with pytest.raises(ValueError):
            BoundaryConditionManager(2).apply_dirichlet([DirichletCondition([2])])

    def test_override_values_shape(self):
        manager = BoundaryConditionManager(3)
        manager.apply_dirichlet([DirichletCondition([0, 1])])
        with pytest.raises(ValueError):
            manager.expand_solution(np.zeros(1), fixed_values=np.zeros(3))

    def test_named_boundary_resolution(self, mesh):
        condition = DirichletBoundary("bottom", components=[1], value=0.25).resolve(mesh, 2)
        bottom = mesh.get_node_set("bottom").node_ids
        assert condition.dofs == tuple(sorted(2 * n + 1 for n in bottom))
        assert condition.value == 0.25
        full = DirichletBoundary("left").resolve(mesh, 2)
        assert len(full.dofs) == 6

    def test_named_boundary_survives_refinement(self, mesh):
        bc = DirichletBoundary("left")
        mesh.refine_global(1)
        assert len(bc.resolve(mesh, 2).dofs) == 10
