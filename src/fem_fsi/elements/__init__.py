from .elements import ElementFactory, ReferenceElement, gauss_legendre
from .QUAD import QUAD4
from .SOLID import HEXA8
from .values import ElementValues, FaceValues

__all__ = [
    "ElementFactory",
    "ReferenceElement",
    "gauss_legendre",
    "QUAD4",
    "HEXA8",
    "ElementValues",
    "FaceValues",
]
