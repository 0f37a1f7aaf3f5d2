"""Compose a primary equation system with secondary equations.

The integrators only see one flat *complete* state vector. The
:class:`EquationsMapper` knows how that vector is split between the primary
equations and each set of secondary equations, and
:class:`ExpandableSystem` evaluates all of them in one right-hand side call.

Secondary equations receive the primary state and its derivative, which is
what is needed for variational equations, quadratures of the primary
solution and similar add-ons.
"""

from typing import Callable, List, Protocol, Sequence, runtime_checkable

import numpy as np

from rkflow.algorithms.dynamics.base import _DynamicalSystemProtocol
from rkflow.algorithms.types.states import ODEState, ODEStateAndDerivative
from rkflow.algorithms.utils.exceptions import DimensionMismatchError


@runtime_checkable
class _SecondaryEquationsProtocol(Protocol):
    """Interface of secondary equations ``s' = rhs(t, y, y', s)``."""

    @property
    def dim(self) -> int:
        ...

    @property
    def rhs(self) -> Callable[[float, np.ndarray, np.ndarray, np.ndarray], np.ndarray]:
        ...


class EquationsMapper:
    """Map a complete state vector to primary and secondary parts.

    Parameters
    ----------
    dimensions : sequence of int
        Dimension of the primary equations followed by the dimensions of the
        secondary equations, in registration order.
    """

    def __init__(self, dimensions: Sequence[int]):
        dims = tuple(int(d) for d in dimensions)
        if not dims:
            raise ValueError("At least the primary dimension is required")
        if any(d <= 0 for d in dims):
            raise ValueError(f"Dimensions must be positive, got {dims}")
        self._dims = dims
        self._starts = tuple(int(s) for s in np.concatenate(([0], np.cumsum(dims))))

    @property
    def number_of_equations(self) -> int:
        return len(self._dims)

    @property
    def total_dimension(self) -> int:
        return self._starts[-1]

    def dimension(self, index: int) -> int:
        return self._dims[index]

    def extract(self, complete: np.ndarray, index: int) -> np.ndarray:
        """Return the slice of *complete* belonging to equation set *index*."""
        self._check_complete(complete)
        return complete[self._starts[index]:self._starts[index + 1]]

    def complete_state(self, state: ODEState) -> np.ndarray:
        """Flatten *state* into a complete state vector, checking dimensions."""
        if state.primary_dimension != self._dims[0]:
            raise DimensionMismatchError(
                f"Initial state dimension {state.primary_dimension} != system dimension {self._dims[0]}"
            )
        if state.number_of_secondary_states != len(self._dims) - 1:
            raise DimensionMismatchError(
                f"Got {state.number_of_secondary_states} secondary states, "
                f"expected {len(self._dims) - 1}"
            )
        for i, s in enumerate(state.secondary_states, start=1):
            if s.size != self._dims[i]:
                raise DimensionMismatchError(
                    f"Secondary state {i} dimension {s.size} != equations dimension {self._dims[i]}"
                )
        return state.complete_state

    def map_state(self, t: float, y: np.ndarray) -> ODEState:
        primary = self.extract(y, 0)
        secondary = tuple(self.extract(y, i) for i in range(1, len(self._dims)))
        return ODEState(t, primary, secondary)

    def map_state_and_derivative(self, t: float, y: np.ndarray, y_dot: np.ndarray) -> ODEStateAndDerivative:
        self._check_complete(y_dot)
        n = len(self._dims)
        return ODEStateAndDerivative(
            time=t,
            primary_state=self.extract(y, 0),
            secondary_states=tuple(self.extract(y, i) for i in range(1, n)),
            primary_derivative=self.extract(y_dot, 0),
            secondary_derivatives=tuple(self.extract(y_dot, i) for i in range(1, n)),
        )

    def _check_complete(self, arr: np.ndarray) -> None:
        if len(arr) != self.total_dimension:
            raise DimensionMismatchError(
                f"Complete vector dimension {len(arr)} != mapper dimension {self.total_dimension}"
            )

    def __repr__(self) -> str:
        return f"EquationsMapper(dimensions={self._dims})"


class ExpandableSystem:
    """Primary equations plus any number of secondary equations.

    Parameters
    ----------
    primary : :class:`~rkflow.algorithms.dynamics.base._DynamicalSystemProtocol`
        The main equation system.

    Examples
    --------
    Integrating the quadrature ``s' = y`` alongside ``y' = -y``::

        class Quadrature:
            dim = 1
            def rhs(self, t, y, y_dot, s):
                return y.copy()

        system = ExpandableSystem(create_rhs_system(lambda t, y: -y, dim=1))
        system.add_secondary_equations(Quadrature())
    """

    def __init__(self, primary: _DynamicalSystemProtocol):
        if not hasattr(primary, "rhs") or not hasattr(primary, "dim"):
            raise ValueError("Primary system must expose 'dim' and 'rhs'")
        self._primary = primary
        self._secondaries: List[_SecondaryEquationsProtocol] = []
        self._mapper = EquationsMapper([primary.dim])

    @property
    def primary(self) -> _DynamicalSystemProtocol:
        return self._primary

    @property
    def mapper(self) -> EquationsMapper:
        return self._mapper

    @property
    def dim(self) -> int:
        """Dimension of the complete state vector."""
        return self._mapper.total_dimension

    def add_secondary_equations(self, secondary: _SecondaryEquationsProtocol) -> int:
        """Register *secondary* and return its index in the mapper (>= 1)."""
        if not hasattr(secondary, "rhs") or not hasattr(secondary, "dim"):
            raise ValueError("Secondary equations must expose 'dim' and 'rhs'")
        self._secondaries.append(secondary)
        self._mapper = EquationsMapper([self._primary.dim] + [s.dim for s in self._secondaries])
        return len(self._secondaries)

    def compute_derivatives(self, t: float, y: np.ndarray) -> np.ndarray:
        """Evaluate primary and secondary right-hand sides on a complete state."""
        primary = self._mapper.extract(y, 0)
        primary_dot = np.asarray(self._primary.rhs(t, primary))
        if primary_dot.shape != (self._primary.dim,):
            raise DimensionMismatchError(
                f"Right-hand side returned shape {primary_dot.shape}, expected ({self._primary.dim},)"
            )
        if not self._secondaries:
            return primary_dot

        parts = [primary_dot]
        for index, secondary in enumerate(self._secondaries, start=1):
            s = self._mapper.extract(y, index)
            s_dot = np.asarray(secondary.rhs(t, primary, primary_dot, s))
            if s_dot.shape != (secondary.dim,):
                raise DimensionMismatchError(
                    f"Secondary equations {index} returned shape {s_dot.shape}, expected ({secondary.dim},)"
                )
            parts.append(s_dot)
        return np.concatenate(parts)

    def __repr__(self) -> str:
        return f"ExpandableSystem(primary={self._primary!r}, secondaries={len(self._secondaries)})"


def _as_expandable(system) -> ExpandableSystem:
    """Return *system* unchanged if already expandable, else wrap it."""
    if isinstance(system, ExpandableSystem):
        return system
    return ExpandableSystem(system)
