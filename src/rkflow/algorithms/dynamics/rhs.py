from typing import Callable

import numpy as np

from rkflow.algorithms.dynamics.base import _DynamicalSystem


class RHSSystem(_DynamicalSystem):
    def __init__(self, rhs_func: Callable[[float, np.ndarray], np.ndarray], dim: int, name: str = "Generic RHS"):
        """Wrap an arbitrary RHS into a _DynamicalSystem instance.

        The callable is used as is. Unlike the stage kernels it is not
        JIT-compiled, so it may close over arbitrary Python state (switches
        toggled by event handlers, counters, ...).
        """
        super().__init__(dim)
        self._rhs_func = rhs_func
        self.name = name
    
    @property
    def rhs(self) -> Callable[[float, np.ndarray], np.ndarray]:
        return self._rhs_func
    
    def __repr__(self) -> str:
        return f"RHSSystem(name='{self.name}', dim={self.dim})"


def create_rhs_system(rhs_func: Callable[[float, np.ndarray], np.ndarray], dim: int, name: str = "Generic RHS"):
    return RHSSystem(rhs_func, dim, name)
