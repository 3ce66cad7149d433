from concurrent import futures
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, TypeVar

import numpy as np
from scipy.sparse import coo_matrix, csr_matrix

from fem_fsi.core.mesh import MeshElement, MeshModel

T = TypeVar("T")

# (global dofs, local matrix) or (global dofs, local vector)
MatrixBlock = Tuple[np.ndarray, np.ndarray]
VectorBlock = Tuple[np.ndarray, np.ndarray]


class MeshAssembler:
    def __init__(self, mesh: MeshModel, dofs_per_node: int, n_workers: int = 1):
        """
        Element-parallel finite element assembler on scipy sparse matrices.

        Element tasks run on a thread pool and only return local
        contributions; the global matrix or vector is built afterwards in a
        single reduction step, so workers never touch shared storage.

        Parameters
        ----------
        mesh : MeshModel
            The computational mesh containing nodes and elements
        dofs_per_node : int
            Number of solution components per node
        n_workers : int
            Number of worker threads (1 runs serially)

        Attributes
        ----------
        dofs_count : int
            Total number of degrees of freedom in the system
        """
        if dofs_per_node < 1:
            raise ValueError(f"dofs_per_node must be positive, got {dofs_per_node}")
        if n_workers < 1:
            raise ValueError(f"n_workers must be >= 1, got {n_workers}")
        self.mesh = mesh
        self.dofs_per_node = dofs_per_node
        self.n_workers = n_workers
        self._dofs_array: Optional[np.ndarray] = None
        self.reinit()

    def reinit(self) -> None:
        """Rebuild the element-to-DOF connectivity after the mesh changed."""
        conn = self.mesh.connectivity
        comps = np.arange(self.dofs_per_node)
        self._dofs_array = (conn[:, :, None] * self.dofs_per_node + comps).reshape(len(conn), -1)

    @property
    def dofs_count(self) -> int:
        return self.mesh.node_count * self.dofs_per_node

    def dof_indices(self, cell: int) -> np.ndarray:
        """Global DOFs of active cell ``cell`` (node-major, ``node * n_comp + c``)."""
        return self._dofs_array[cell]

    def node_dofs(self, node_ids: Iterable[int], component: Optional[int] = None) -> np.ndarray:
        nodes = np.fromiter(node_ids, dtype=np.int64)
        if component is not None:
            return nodes * self.dofs_per_node + component
        return (nodes[:, None] * self.dofs_per_node + np.arange(self.dofs_per_node)).ravel()

    def map_elements(
        self,
        task: Callable[[int, MeshElement], T],
        cells: Optional[Sequence[int]] = None,
    ) -> List[T]:
        """
        Run ``task(cell_index, element)`` over active cells.

        Results are returned in cell order regardless of completion order.
        """
        active = self.mesh.active_elements
        cells = range(len(active)) if cells is None else cells
        if self.n_workers == 1:
            return [task(c, active[c]) for c in cells]
        with futures.ThreadPoolExecutor(max_workers=self.n_workers) as executor:
            return list(executor.map(lambda c: task(c, active[c]), cells))

    def assemble_matrix(self, blocks: Iterable[MatrixBlock]) -> csr_matrix:
        """Sum local matrices into a global CSR matrix (duplicates are added)."""
        rows, cols, vals = [], [], []
        for dofs, local in blocks:
            rows.append(np.repeat(dofs, len(dofs)))
            cols.append(np.tile(dofs, len(dofs)))
            vals.append(np.asarray(local).ravel())
        n = self.dofs_count
        if not rows:
            return csr_matrix((n, n))
        return coo_matrix(
            (np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))), shape=(n, n)
        ).tocsr()

    def assemble_vector(self, blocks: Iterable[VectorBlock]) -> np.ndarray:
        """Sum local vectors into a global vector."""
        out = np.zeros(self.dofs_count)
        for dofs, local in blocks:
            np.add.at(out, dofs, local)
        return out
