"""Finite-strain constitutive models.

Models are written in the spatial (Eulerian) setting and return the Kirchhoff
stress ``tau = J sigma`` together with the spatial tangent modulus ``Jc`` that
linearizes ``tau`` along the Lie derivative.  All tensors are dense numpy
arrays of shape ``(dim, dim)`` and ``(dim, dim, dim, dim)``.

Formulation (decoupled volumetric/isochoric split):
    Psi(b) = Psi_vol(J) + Psi_iso(b_bar),   b_bar = J^(-2/dim) F F^T
    tau    = J p I + dev(tau_bar),          p = dPsi_vol/dJ

where:
    F: Deformation gradient
    J: det(F)
    b: Left Cauchy-Green tensor
    p: Hydrostatic pressure
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Type

import numpy as np

# Poisson ratio used to derive the bulk modulus when only mu is given
DEFAULT_POISSON_RATIO = 0.4


def identity_tensors(dim: int):
    """Second-order identity, symmetric fourth-order identity and I (x) I."""
    I = np.eye(dim)
    S = 0.5 * (np.einsum("ik,jl->ijkl", I, I) + np.einsum("il,jk->ijkl", I, I))
    IxI = np.einsum("ij,kl->ijkl", I, I)
    return I, S, IxI


@dataclass
class HyperelasticMaterial:
    """
    Material definition selected by a named constitutive law.

    Parameters
    ----------
    type : str
        Name of the constitutive law (e.g. ``"NeoHookean"``).
    C : List[float]
        Material constants in the order expected by the law.
    rho : float
        Reference density.
    name : str
        Label used in logs and output.
    """

    type: str
    C: List[float] = field(default_factory=list)
    rho: Optional[float] = None
    name: str = "Material"


class MaterialModel(ABC):
    """
    Constitutive law evaluated at a single material point.

    ``update_data`` must be called before any of the stress or tangent
    accessors; reading them earlier raises ``RuntimeError``.
    """

    def __init__(self, dim: int, rho: float):
        if dim not in (2, 3):
            raise ValueError(f"Unsupported spatial dimension: {dim}")
        self.dim = dim
        self.rho = rho
        self._F: Optional[np.ndarray] = None
        self._J: Optional[float] = None
        self._tau: Optional[np.ndarray] = None
        self._Jc: Optional[np.ndarray] = None
        self._dPsi_vol_dJ: Optional[float] = None
        self._d2Psi_vol_dJ2: Optional[float] = None

    @classmethod
    @abstractmethod
    def from_constants(cls, C: List[float], rho: Optional[float], dim: int) -> "MaterialModel":
        """Build the model from its ordered constant list."""

    @abstractmethod
    def update_data(self, F: np.ndarray) -> None:
        """Store ``F`` and recompute every derived quantity."""

    def _require_update(self) -> None:
        if self._F is None:
            raise RuntimeError(
                f"{type(self).__name__} accessed before update_data() was called"
            )

    @property
    def F(self) -> np.ndarray:
        self._require_update()
        return self._F

    @property
    def det_F(self) -> float:
        self._require_update()
        return self._J

    @property
    def tau(self) -> np.ndarray:
        """Kirchhoff stress."""
        self._require_update()
        return self._tau

    @property
    def Jc(self) -> np.ndarray:
        """Spatial tangent modulus scaled by J."""
        self._require_update()
        return self._Jc

    @property
    def dPsi_vol_dJ(self) -> float:
        self._require_update()
        return self._dPsi_vol_dJ

    @property
    def d2Psi_vol_dJ2(self) -> float:
        self._require_update()
        return self._d2Psi_vol_dJ2


class NeoHookean(MaterialModel):
    """
    Compressible Neo-Hookean solid with a decoupled volumetric response.

    Strain energy:
        Psi = mu/2 (tr(b_bar) - dim) + kappa/4 (J^2 - 1 - 2 ln J)

    Parameters
    ----------
    mu : float
        Shear modulus.
    kappa : float
        Bulk modulus.
    rho : float
        Reference density.
    dim : int
        Spatial dimension (2 or 3).
    """

    def __init__(self, mu: float, kappa: float, rho: float, dim: int):
        super().__init__(dim, rho)
        if mu <= 0:
            raise ValueError(f"Shear modulus must be positive: {mu}")
        if kappa <= 0:
            raise ValueError(f"Bulk modulus must be positive: {kappa}")
        self.mu = mu
        self.kappa = kappa
        self._I, self._S, self._IxI = identity_tensors(dim)
        self._P = self._S - self._IxI / dim

    @classmethod
    def from_constants(cls, C: List[float], rho: Optional[float], dim: int) -> "NeoHookean":
        """
        Create from ``C = [mu]`` or ``C = [mu, kappa]``.

        When the bulk modulus is omitted it follows from ``mu`` and
        ``DEFAULT_POISSON_RATIO``.
        """
        if not C:
            raise ValueError("NeoHookean material requires the shear modulus C[0]")
        if rho is None:
            raise ValueError("NeoHookean material requires the density rho")
        mu = float(C[0])
        if len(C) > 1:
            kappa = float(C[1])
        else:
            nu = DEFAULT_POISSON_RATIO
            kappa = 2.0 * mu * (1.0 + nu) / (3.0 * (1.0 - 2.0 * nu))
        return cls(mu=mu, kappa=kappa, rho=float(rho), dim=dim)

    def update_data(self, F: np.ndarray) -> None:
        F = np.array(F, dtype=float)
        if F.shape != (self.dim, self.dim):
            raise ValueError(f"Deformation gradient must be {self.dim}x{self.dim}, got {F.shape}")
        J = np.linalg.det(F)
        if J <= 0:
            raise ValueError(f"Non-positive Jacobian det(F) = {J}")

        dim = self.dim
        I = self._I
        b_bar = J ** (-2.0 / dim) * (F @ F.T)
        tau_bar = self.mu * b_bar
        tau_iso = tau_bar - (np.trace(tau_bar) / dim) * I

        p = 0.5 * self.kappa * (J - 1.0 / J)
        dp_dJ = 0.5 * self.kappa * (1.0 + 1.0 / (J * J))

        Jc_vol = J * (p + J * dp_dJ) * self._IxI - 2.0 * J * p * self._S
        Jc_iso = (2.0 / dim) * np.trace(tau_bar) * self._P - (2.0 / dim) * (
            np.einsum("ij,kl->ijkl", tau_iso, I) + np.einsum("ij,kl->ijkl", I, tau_iso)
        )

        self._F = F
        self._J = J
        self._dPsi_vol_dJ = p
        self._d2Psi_vol_dJ2 = dp_dJ
        self._tau = J * p * I + tau_iso
        self._Jc = Jc_vol + Jc_iso


MATERIAL_MODELS: Dict[str, Type[MaterialModel]] = {
    "NeoHookean": NeoHookean,
}


def create_material(material: HyperelasticMaterial, dim: int) -> MaterialModel:
    """
    Instantiate the constitutive law named by ``material.type``.

    Raises
    ------
    ValueError
        If the type is not implemented or required constants are missing.
    """
    try:
        model_class = MATERIAL_MODELS[material.type]
    except KeyError:
        raise ValueError(
            f"Material type '{material.type}' is not implemented. "
            f"Available: {list(MATERIAL_MODELS)}"
        ) from None
    return model_class.from_constants(list(material.C or []), material.rho, dim)
