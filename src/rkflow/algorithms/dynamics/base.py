"""Provide the equation-system interfaces consumed by the integrators.

An equation system only has to expose its state dimension and a right-hand
side ``rhs(t, y)``; the integrators never require anything else.
"""

from abc import ABC, abstractmethod
from typing import Callable, Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class _DynamicalSystemProtocol(Protocol):
    """
    Protocol defining the interface for dynamical systems.
    
    This protocol specifies the minimum interface that any dynamical system
    must implement to be compatible with the integrator framework. The
    right-hand side must be a pure function of ``(t, y)`` for dense output
    to be meaningful.
    """
    
    @property
    def dim(self) -> int:
        """Dimension of the state space."""
        ...
    
    @property
    def rhs(self) -> Callable[[float, np.ndarray], np.ndarray]:
        ...


class _DynamicalSystem(ABC):
    """
    Abstract base class for dynamical systems.
    
    This class provides common functionality for all dynamical systems
    while requiring subclasses to implement the specific dynamics.
    """
    
    def __init__(self, dim: int):
        """
        Initialize the dynamical system.
        
        Parameters
        ----------
        dim : int
            Dimension of the state space
        """
        if dim <= 0:
            raise ValueError(f"Dimension must be positive, got {dim}")
        self._dim = dim
    
    @property
    def dim(self) -> int:
        """Dimension of the state space."""
        return self._dim
    
    @property
    @abstractmethod
    def rhs(self) -> Callable[[float, np.ndarray], np.ndarray]:
        pass
    
