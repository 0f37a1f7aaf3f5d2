"""Equation systems integrated by :mod:`rkflow.algorithms.integrators`."""

from .base import _DynamicalSystem, _DynamicalSystemProtocol
from .expandable import EquationsMapper, ExpandableSystem
from .rhs import RHSSystem, create_rhs_system

__all__ = [
    "_DynamicalSystem",
    "_DynamicalSystemProtocol",
    "EquationsMapper",
    "ExpandableSystem",
    "RHSSystem",
    "create_rhs_system",
]
