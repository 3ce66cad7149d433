"""
Finite Element Method Boundary Condition Manager for 2D/3D Finite-Strain Problems.
"""

from typing import Dict, Iterable, Optional, Tuple

import numpy as np
from scipy.sparse import csr_matrix


class BodyForce:
    """Represents a body force per unit mass (e.g. gravity).

    Parameters
    ----------
    value : Iterable[float]
        Acceleration vector, one entry per spatial dimension.

    Attributes
    ----------
    value : ndarray
        Body acceleration applied at every quadrature point.
    """

    def __init__(self, value: Iterable[float]):
        self.value = np.asarray(value, dtype=float)


class TractionCondition:
    """Represents a reference traction (Neumann condition) on a named boundary.

    Parameters
    ----------
    boundary : str
        Name of the boundary (``left``, ``right``, ``bottom``, ``top``,
        ``back``, ``front``).
    value : Iterable[float]
        Traction vector per unit reference area.
    """

    def __init__(self, boundary: str, value: Iterable[float]):
        self.boundary = boundary
        self.value = np.asarray(value, dtype=float)


class DirichletCondition:
    """Represents a Dirichlet boundary condition (fixed DOFs) in a FEM system.

    Parameters
    ----------
    dofs : Iterable[int]
        Global degree of freedom indices (0-based) where the condition is applied.
    value : float
        Fixed displacement value imposed on the specified DOFs.

    Attributes
    ----------
    dofs : tuple[int]
        Sorted unique global DOF indices where the condition is applied.
    value : float
        Prescribed displacement value at the specified DOFs.

    Examples
    --------
    >>> bc = DirichletCondition([0, 1], 0.0)  # Fix DOFs 0 and 1 at 0 displacement
    """

    def __init__(self, dofs: Iterable[int], value: float = 0.0):
        self.dofs = tuple(sorted(set(int(d) for d in dofs)))
        self.value = float(value)


class DirichletBoundary:
    """Dirichlet condition attached to a named boundary of the mesh.

    Unlike ``DirichletCondition`` it survives mesh refinement: the DOFs are
    resolved from the boundary node set every time the system is set up.

    Parameters
    ----------
    boundary : str
        Name of the node set.
    components : Iterable[int], optional
        Constrained displacement components (all when omitted).
    value : float
        Prescribed total displacement of the constrained components.
    """

    def __init__(self, boundary: str, components: Optional[Iterable[int]] = None, value: float = 0.0):
        self.boundary = boundary
        self.components = None if components is None else tuple(int(c) for c in components)
        self.value = float(value)

    def resolve(self, mesh, dofs_per_node: int) -> DirichletCondition:
        nodes = sorted(mesh.get_node_set(self.boundary).node_ids)
        components = range(dofs_per_node) if self.components is None else self.components
        dofs = [node * dofs_per_node + c for node in nodes for c in components]
        return DirichletCondition(dofs, self.value)

    def __repr__(self):
        return f"<DirichletBoundary '{self.boundary}' components={self.components} value={self.value}>"


class BoundaryConditionManager:
    """Eliminates Dirichlet DOFs from a sparse system.

    The manager keeps the set of constrained DOFs and their prescribed
    values; the reduced system only contains free DOFs, and the prescribed
    values enter the reduced right-hand side through the coupling block.

    Parameters
    ----------
    n_dof : int
        Total number of degrees of freedom

    Attributes
    ----------
    free_dofs : np.ndarray
        Indices of unconstrained degrees of freedom
    fixed_dofs : Dict[int, float]
        Constrained DOFs with prescribed values
    """

    def __init__(self, n_dof: int):
        self.n_dof = n_dof
        self._fixed_dofs: Dict[int, float] = {}
        self._free: np.ndarray = np.arange(n_dof)
        self._fixed: np.ndarray = np.zeros(0, dtype=np.int64)
        self._fixed_values: np.ndarray = np.zeros(0)

    def apply_dirichlet(self, conditions: Iterable[DirichletCondition]) -> None:
        """Register Dirichlet boundary conditions.

        Parameters
        ----------
        conditions : Iterable[DirichletCondition]
            Boundary conditions to apply

        Raises
        ------
        ValueError
            If invalid DOFs are specified or conflicting values are provided
        """
        fixed_dofs = {}
        for bc in conditions:
            for dof in bc.dofs:
                self._validate_dof(dof)
                if dof in fixed_dofs and not np.isclose(fixed_dofs[dof], bc.value):
                    raise ValueError(
                        f"Conflicting values for DOF {dof}: {fixed_dofs[dof]} vs {bc.value}"
                    )
                fixed_dofs[dof] = bc.value

        self._fixed_dofs = fixed_dofs
        self._fixed = np.array(sorted(fixed_dofs), dtype=np.int64)
        self._fixed_values = np.array([fixed_dofs[d] for d in self._fixed], dtype=float)
        self._free = np.setdiff1d(np.arange(self.n_dof), self._fixed)

    def _validate_dof(self, dof: int) -> None:
        """Validate DOF index."""
        if not 0 <= dof < self.n_dof:
            raise ValueError(f"DOF {dof} out of range [0, {self.n_dof - 1}]")

    def _values(self, fixed_values: Optional[np.ndarray], homogeneous: bool) -> np.ndarray:
        if homogeneous:
            return np.zeros(self._fixed.size)
        if fixed_values is None:
            return self._fixed_values
        fixed_values = np.asarray(fixed_values, dtype=float)
        if fixed_values.shape != self._fixed.shape:
            raise ValueError(
                f"Expected {self._fixed.size} prescribed values, got {fixed_values.shape}"
            )
        return fixed_values

    def reduced_system(
        self,
        K: csr_matrix,
        F: np.ndarray,
        fixed_values: Optional[np.ndarray] = None,
        homogeneous: bool = False,
    ) -> Tuple[csr_matrix, np.ndarray]:
        """Get the reduced system on the free DOFs.

        Parameters
        ----------
        K : csr_matrix
            Global matrix
        F : np.ndarray
            Global right-hand side
        fixed_values : np.ndarray, optional
            Values at the fixed DOFs (ordered as ``fixed_dof_indices``)
            overriding the registered ones
        homogeneous : bool
            Treat every prescribed value as zero

        Returns
        -------
        Tuple[csr_matrix, np.ndarray]
            (K_red, F_red) with ``F_red = F_free - K_free,fixed @ u_fixed``
        """
        K = csr_matrix(K)
        K_red = K[self._free][:, self._free]
        F_red = np.asarray(F, dtype=float)[self._free]
        values = self._values(fixed_values, homogeneous)
        if values.size and np.any(values):
            F_red = F_red - K[self._free][:, self._fixed] @ values
        return K_red, F_red

    def expand_solution(
        self,
        u_red: np.ndarray,
        fixed_values: Optional[np.ndarray] = None,
        homogeneous: bool = False,
    ) -> np.ndarray:
        """Expand reduced solution vector to full system DOFs.

        Parameters
        ----------
        u_red : np.ndarray
            Solution vector from reduced system
        fixed_values : np.ndarray, optional
            Values inserted at the fixed DOFs instead of the registered ones
        homogeneous : bool
            Insert zeros instead of the prescribed values

        Returns
        -------
        np.ndarray
            Full solution vector with fixed DOFs inserted
        """
        u_full = np.zeros(self.n_dof)
        u_full[self._free] = u_red
        u_full[self._fixed] = self._values(fixed_values, homogeneous)
        return u_full

    def reduce_vector(self, vector: np.ndarray) -> np.ndarray:
        """Restrict a full vector to the free DOFs."""
        return np.asarray(vector)[self._free]

    @property
    def free_dofs(self) -> np.ndarray:
        """Indices of unconstrained degrees of freedom."""
        return self._free

    @property
    def fixed_dofs(self) -> Dict[int, float]:
        """Dictionary of constrained DOFs with prescribed values."""
        return self._fixed_dofs.copy()

    @property
    def fixed_dof_indices(self) -> np.ndarray:
        """Sorted indices of constrained degrees of freedom."""
        return self._fixed

    @property
    def fixed_values(self) -> np.ndarray:
        """Prescribed values ordered as ``fixed_dof_indices``."""
        return self._fixed_values

    @property
    def constrained_mask(self) -> np.ndarray:
        mask = np.zeros(self.n_dof, dtype=bool)
        mask[self._fixed] = True
        return mask
