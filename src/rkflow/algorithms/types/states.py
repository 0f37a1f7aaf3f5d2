"""Immutable integration states exchanged between the integrators, the event
machinery and the step handlers.

States are split into a *primary* part (the equation system being solved)
and zero or more *secondary* parts (extra equations riding along, see
:class:`~rkflow.algorithms.dynamics.expandable.ExpandableSystem`). Arrays are
copied and flagged read-only when a state is built, so a state captured at a
step boundary can never change afterwards.
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from rkflow.algorithms.utils.exceptions import DimensionMismatchError


def _frozen_array(values) -> np.ndarray:
    arr = np.array(values, copy=True)
    arr = np.atleast_1d(arr)
    if arr.ndim != 1:
        raise ValueError(f"State vectors must be one-dimensional, got shape {arr.shape}")
    if not np.issubdtype(arr.dtype, np.inexact):
        arr = arr.astype(np.float64)
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True, eq=False)
class ODEState:
    """State of an ODE at a given time.

    Parameters
    ----------
    time : float
        Value of the independent variable.
    primary_state : numpy.ndarray
        State of the primary equations.
    secondary_states : tuple of numpy.ndarray, default ()
        States of the secondary equations, in registration order.
    """

    time: float
    primary_state: np.ndarray
    secondary_states: Tuple[np.ndarray, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "time", float(self.time))
        object.__setattr__(self, "primary_state", _frozen_array(self.primary_state))
        object.__setattr__(self, "secondary_states",
                           tuple(_frozen_array(s) for s in self.secondary_states))

    @property
    def primary_dimension(self) -> int:
        return self.primary_state.size

    @property
    def number_of_secondary_states(self) -> int:
        return len(self.secondary_states)

    @property
    def complete_dimension(self) -> int:
        return self.primary_state.size + sum(s.size for s in self.secondary_states)

    @property
    def complete_state(self) -> np.ndarray:
        """Primary and secondary states concatenated in a fresh array."""
        return np.concatenate((self.primary_state,) + self.secondary_states)


@dataclass(frozen=True, eq=False)
class ODEStateAndDerivative(ODEState):
    """State of an ODE together with its time derivative.

    Parameters
    ----------
    time, primary_state, secondary_states
        See :class:`ODEState`.
    primary_derivative : numpy.ndarray
        Time derivative of the primary state. Required.
    secondary_derivatives : tuple of numpy.ndarray, default ()
        Time derivatives of the secondary states.
    """

    primary_derivative: np.ndarray = None
    secondary_derivatives: Tuple[np.ndarray, ...] = ()

    def __post_init__(self):
        super().__post_init__()
        if self.primary_derivative is None:
            raise ValueError("primary_derivative is required")
        object.__setattr__(self, "primary_derivative", _frozen_array(self.primary_derivative))
        object.__setattr__(self, "secondary_derivatives",
                           tuple(_frozen_array(s) for s in self.secondary_derivatives))

        if self.primary_derivative.size != self.primary_state.size:
            raise DimensionMismatchError(
                f"Primary derivative dimension {self.primary_derivative.size} "
                f"!= primary state dimension {self.primary_state.size}"
            )
        if len(self.secondary_derivatives) != len(self.secondary_states):
            raise DimensionMismatchError(
                f"Got {len(self.secondary_derivatives)} secondary derivatives "
                f"for {len(self.secondary_states)} secondary states"
            )
        for s, ds in zip(self.secondary_states, self.secondary_derivatives):
            if s.size != ds.size:
                raise DimensionMismatchError(
                    f"Secondary derivative dimension {ds.size} != secondary state dimension {s.size}"
                )

    @property
    def complete_derivative(self) -> np.ndarray:
        """Primary and secondary derivatives concatenated in a fresh array."""
        return np.concatenate((self.primary_derivative,) + self.secondary_derivatives)
