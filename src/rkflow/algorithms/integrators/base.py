"""Provide abstract interfaces for numerical time integration.

References
----------
Hairer, E., Norsett, S. P., & Wanner, G. (1993). "Solving Ordinary
Differential Equations I: Non-stiff Problems".
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional, Tuple, Union

import numpy as np

from rkflow.algorithms.dynamics.base import _DynamicalSystemProtocol
from rkflow.algorithms.dynamics.expandable import (EquationsMapper,
                                                   ExpandableSystem)
from rkflow.algorithms.integrators.controller import _EventController
from rkflow.algorithms.integrators.events import EventDetector
from rkflow.algorithms.integrators.handlers import (StepHandler,
                                                    _as_step_handler)
from rkflow.algorithms.types.states import ODEState, ODEStateAndDerivative
from rkflow.algorithms.utils.exceptions import (DimensionMismatchError,
                                                TooManyEvaluationsError)
from rkflow.utils.log_config import logger


class _EvaluationCounter:
    """Wrap an :class:`~rkflow.algorithms.dynamics.expandable.ExpandableSystem`
    and count the derivative evaluations.

    Parameters
    ----------
    equations : :class:`~rkflow.algorithms.dynamics.expandable.ExpandableSystem`
        Equations to evaluate.
    max_evaluations : int or None
        Evaluation budget, unlimited when None.
    """

    def __init__(self, equations: ExpandableSystem, max_evaluations: Optional[int] = None):
        self._equations = equations
        self._max_evaluations = max_evaluations
        self.count = 0

    @property
    def mapper(self) -> EquationsMapper:
        return self._equations.mapper

    @property
    def dim(self) -> int:
        return self._equations.dim

    def compute_derivatives(self, t: float, y: np.ndarray) -> np.ndarray:
        if self._max_evaluations is not None and self.count >= self._max_evaluations:
            msg = f"Maximal number of derivative evaluations ({self._max_evaluations}) exceeded"
            logger.error(msg)
            raise TooManyEvaluationsError(msg)
        self.count += 1
        return self._equations.compute_derivatives(t, y)


class _Integrator(ABC):
    """Define the minimal interface that every concrete integrator must satisfy.

    Parameters
    ----------
    name : str
        Human-readable identifier of the method.
    max_evaluations : int, optional
        Maximal number of derivative evaluations per integration. Unlimited
        by default.
    **options
        Extra keyword arguments left untouched and stored in
        :attr:`~rkflow.algorithms.integrators.base._Integrator.options` for later use by subclasses.

    Notes
    -----
    Subclasses *must* implement the abstract members :func:`~rkflow.algorithms.integrators.base._Integrator.order` and
    :func:`~rkflow.algorithms.integrators.base._Integrator.integrate`.

    Step handlers and event detectors are registered on the integrator and
    used by every subsequent call to ``integrate``. Integrators are not
    reentrant: do not call ``integrate`` on the same instance from a handler.
    """

    def __init__(self, name: str, max_evaluations: Optional[int] = None, **options):
        self.name = name
        self.options = options
        self._step_handlers = []
        self._event_detectors = []
        self._counter = None
        self.max_evaluations = max_evaluations

    @property
    @abstractmethod
    def order(self) -> Optional[int]:
        """Order of accuracy of the integrator.

        Returns
        -------
        int or None
            Order of the method, or None if not applicable
        """
        pass

    @abstractmethod
    def integrate(
        self,
        system: Union[_DynamicalSystemProtocol, ExpandableSystem],
        initial_state: ODEState,
        t_final: float,
    ) -> ODEStateAndDerivative:
        """Integrate the equations from *initial_state* up to *t_final*.

        Parameters
        ----------
        system : :class:`~rkflow.algorithms.dynamics.base._DynamicalSystemProtocol` or :class:`~rkflow.algorithms.dynamics.expandable.ExpandableSystem`
            Equations to integrate.
        initial_state : :class:`~rkflow.algorithms.types.states.ODEState`
            Initial time and state.
        t_final : float
            Target time, may be before the initial time.

        Returns
        -------
        :class:`~rkflow.algorithms.types.states.ODEStateAndDerivative`
            State at ``t_final``, or at the event that stopped the
            integration.
        """
        pass

    @property
    def max_evaluations(self) -> Optional[int]:
        return self._max_evaluations

    @max_evaluations.setter
    def max_evaluations(self, value: Optional[int]) -> None:
        if value is not None:
            value = int(value)
            if value < 0:
                raise ValueError(f"max_evaluations must be non-negative, got {value}")
        self._max_evaluations = value

    @property
    def evaluations(self) -> int:
        """Number of derivative evaluations of the last integration."""
        return 0 if self._counter is None else self._counter.count

    def add_step_handler(self, handler: Union[StepHandler, Callable]) -> StepHandler:
        """Register a step handler (or a callable ``(interpolator, is_last)``)."""
        handler = _as_step_handler(handler)
        self._step_handlers.append(handler)
        return handler

    def get_step_handlers(self) -> Tuple[StepHandler, ...]:
        return tuple(self._step_handlers)

    def clear_step_handlers(self) -> None:
        self._step_handlers = []

    def add_event_detector(self, detector: EventDetector) -> None:
        """Register an event detector. Registration order breaks ties
        between simultaneous events."""
        if not isinstance(detector, EventDetector):
            raise TypeError(f"Expected an EventDetector, got {type(detector).__name__}")
        self._event_detectors.append(detector)

    def get_event_detectors(self) -> Tuple[EventDetector, ...]:
        return tuple(self._event_detectors)

    def clear_event_detectors(self) -> None:
        self._event_detectors = []

    def validate_system(self, system: _DynamicalSystemProtocol) -> None:
        """Check that *system* complies with :class:`~rkflow.algorithms.dynamics.base._DynamicalSystemProtocol`.

        Parameters
        ----------
        system : :class:`~rkflow.algorithms.dynamics.base._DynamicalSystemProtocol`
            Candidate system whose suitability is being tested.

        Raises
        ------
        ValueError
            If the required attribute ``rhs`` is absent.
        """
        if not hasattr(system, 'rhs'):
            raise ValueError(f"System must implement 'rhs' method for {self.name}")

    def sanity_checks(self, equations: ExpandableSystem, initial_state: ODEState, t_final: float) -> None:
        """Validate an integration task before any evaluation.

        Raises
        ------
        TypeError
            If *initial_state* is not an :class:`~rkflow.algorithms.types.states.ODEState`.
        ValueError
            If a time is not finite.
        :class:`~rkflow.algorithms.utils.exceptions.DimensionMismatchError`
            If the state does not match the equations.
        """
        self.validate_system(equations.primary)
        if not isinstance(initial_state, ODEState):
            raise TypeError(f"initial_state must be an ODEState, got {type(initial_state).__name__}")
        if not np.isfinite(initial_state.time) or not np.isfinite(t_final):
            raise ValueError(f"Integration bounds must be finite, got [{initial_state.time}, {t_final}]")
        try:
            equations.mapper.complete_state(initial_state)
        except DimensionMismatchError as exc:
            logger.error(f"{self.name}: {exc}")
            raise

    def _start_integration(
        self,
        equations: ExpandableSystem,
        initial_state: ODEState,
        t_final: float,
    ) -> Tuple[_EvaluationCounter, ODEStateAndDerivative]:
        """Reset the counters and compute the initial derivative."""
        counted = _EvaluationCounter(equations, self._max_evaluations)
        self._counter = counted
        y0 = equations.mapper.complete_state(initial_state)
        t0 = initial_state.time
        y_dot0 = counted.compute_derivatives(t0, y0)
        return counted, equations.mapper.map_state_and_derivative(t0, y0, y_dot0)

    def _make_controller(self, counted: _EvaluationCounter) -> _EventController:
        return _EventController(self._event_detectors, self._step_handlers, counted)

    def __str__(self):
        return f"RKFLOW-{self.name}"

    def __repr__(self):
        return f"{self.__class__.__name__}(name='{self.name}', options={self.options})"
