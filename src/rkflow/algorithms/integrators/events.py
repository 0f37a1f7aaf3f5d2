"""Discrete events: switching functions, their handlers and root location.

An event is a root of a user supplied switching function ``g(state)``. The
integrators sample ``g`` along each step through the step interpolator,
locate sign changes with SciPy's bracketing Brent solver and let the event
handler decide what happens next (see :class:`Action`).

Notes
-----
Switching functions must honour the sign alternation contract: once an
event has been triggered, ``g`` has the sign it crossed to, and it keeps
that sign until the next event. Handlers resetting the state must keep this
true for the new state (a bouncing ball detector typically folds the sign
of ``g`` with a per-bounce flag). When the contract is broken the solver
receives an interval that does not bracket a root and
:class:`~rkflow.algorithms.utils.exceptions.NoBracketingError` is raised.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional, Union

import numpy as np
from scipy.optimize import root_scalar

from rkflow.algorithms.integrators.configs import _EventConfig
from rkflow.algorithms.integrators.interpolators import \
    RungeKuttaStateInterpolator
from rkflow.algorithms.types.states import ODEState, ODEStateAndDerivative
from rkflow.algorithms.utils.exceptions import (NoBracketingError,
                                                TooManyEvaluationsError)
from rkflow.utils.log_config import logger


class Action(Enum):
    """What the integrator does after an event."""

    CONTINUE = "continue"
    RESET_DERIVATIVES = "reset_derivatives"
    RESET_STATE = "reset_state"
    STOP = "stop"


class EventHandler(ABC):
    """React to the events of a detector."""

    def init(self, initial_state: ODEStateAndDerivative, t_final: float, detector: "EventDetector") -> None:
        """Called once at the start of each integration."""

    @abstractmethod
    def event_occurred(self, state: ODEStateAndDerivative, detector: "EventDetector", increasing: bool) -> Action:
        """Handle an event.

        Parameters
        ----------
        state : :class:`~rkflow.algorithms.types.states.ODEStateAndDerivative`
            State at the event.
        detector : :class:`EventDetector`
            Detector that triggered.
        increasing : bool
            True if ``g`` increases with physical time at the event, whatever
            the integration direction.

        Returns
        -------
        :class:`Action`
        """

    def reset_state(self, detector: "EventDetector", state: ODEStateAndDerivative) -> ODEState:
        """Return the state to restart from after :attr:`Action.RESET_STATE`.

        The default keeps the state unchanged.
        """
        return state


class StopOnEvent(EventHandler):
    def event_occurred(self, state, detector, increasing):
        return Action.STOP


class ContinueOnEvent(EventHandler):
    def event_occurred(self, state, detector, increasing):
        return Action.CONTINUE


class _CallableEventHandler(EventHandler):
    """Adapt ``fn(state, detector, increasing) -> Action`` and an optional
    ``reset(detector, state) -> ODEState`` to :class:`EventHandler`."""

    def __init__(self, fn: Callable, reset: Optional[Callable] = None):
        self._fn = fn
        self._reset = reset

    def event_occurred(self, state, detector, increasing):
        return self._fn(state, detector, increasing)

    def reset_state(self, detector, state):
        if self._reset is None:
            return state
        return self._reset(detector, state)


class EventDetector(ABC):
    """Base class of switching functions.

    Parameters
    ----------
    cfg : :class:`~rkflow.algorithms.integrators.configs._EventConfig`, optional
        Sampling, solver and direction settings. Defaults to
        ``_EventConfig()``.
    handler : :class:`EventHandler` or callable, optional
        Called on each event. Defaults to :class:`StopOnEvent` when
        ``cfg.terminal`` is true and :class:`ContinueOnEvent` otherwise.
    """

    def __init__(
        self,
        cfg: Optional[_EventConfig] = None,
        handler: Union[EventHandler, Callable, None] = None,
    ):
        self._cfg = cfg if cfg is not None else _EventConfig()
        if handler is None:
            handler = StopOnEvent() if self._cfg.terminal else ContinueOnEvent()
        elif not isinstance(handler, EventHandler):
            if not callable(handler):
                raise TypeError(f"Event handler must be an EventHandler or a callable, got {type(handler).__name__}")
            handler = _CallableEventHandler(handler)
        self._handler = handler

    @property
    def cfg(self) -> _EventConfig:
        return self._cfg

    @property
    def handler(self) -> EventHandler:
        return self._handler

    @property
    def max_check_interval(self) -> float:
        return self._cfg.max_check_interval

    @property
    def convergence(self) -> float:
        return self._cfg.convergence

    @property
    def max_iteration_count(self) -> int:
        return int(self._cfg.max_iteration_count)

    @property
    def direction(self) -> int:
        return self._cfg.direction

    def init(self, initial_state: ODEStateAndDerivative, t_final: float) -> None:
        """Called once at the start of each integration."""

    @abstractmethod
    def g(self, state: ODEStateAndDerivative) -> float:
        """Evaluate the switching function."""

    def convergence_failure(self, lower: float, upper: float, estimate: float) -> float:
        """Called when the root solver did not converge on ``[lower, upper]``.

        The default raises. Override to accept a best-effort root instead.

        Raises
        ------
        :class:`~rkflow.algorithms.utils.exceptions.TooManyEvaluationsError`
        """
        msg = (
            f"Event root not converged within {self.max_iteration_count} iterations "
            f"on [{lower}, {upper}] (last estimate {estimate})"
        )
        logger.error(msg)
        raise TooManyEvaluationsError(msg)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(cfg={self._cfg}, handler={self._handler.__class__.__name__})"


class FunctionEventDetector(EventDetector):
    """Event detector wrapping a plain ``g(t, y)`` on the primary state.

    Examples
    --------
    >>> detector = FunctionEventDetector(lambda t, y: y[0] - 1.0,
    ...                                  cfg=EventConfig(direction=+1))
    """

    def __init__(
        self,
        g: Callable[[float, np.ndarray], float],
        cfg: Optional[_EventConfig] = None,
        handler: Union[EventHandler, Callable, None] = None,
    ):
        super().__init__(cfg=cfg, handler=handler)
        self._g = g

    def g(self, state: ODEStateAndDerivative) -> float:
        return float(self._g(state.time, state.primary_state))


class _EventState:
    """Book-keeping of one detector during an integration.

    Tracks the sign of ``g`` expected at the start of the current step,
    finds the first sign change inside a step and reports it as the pending
    event.
    """

    def __init__(self, detector: EventDetector):
        self._detector = detector
        self._t0 = None
        self._g0_positive = None
        self._forward = True
        self._pending = False
        self._pending_time = None
        self._increasing = None
        self._previous_event_time = None

    @property
    def detector(self) -> EventDetector:
        return self._detector

    @property
    def event_time(self) -> float:
        """Time of the pending event, ``+inf`` (in the integration direction)
        when there is none."""
        if self._pending:
            return self._pending_time
        return np.inf if self._forward else -np.inf

    def init(self, initial_state: ODEStateAndDerivative, t_final: float) -> None:
        self._t0 = None
        self._g0_positive = None
        self._forward = t_final >= initial_state.time
        self._pending = False
        self._pending_time = None
        self._increasing = None
        self._previous_event_time = None
        self._detector.init(initial_state, t_final)
        self._detector.handler.init(initial_state, t_final, self._detector)

    def _g(self, state: ODEStateAndDerivative) -> float:
        return float(self._detector.g(state))

    def reinitialize_begin(self, interpolator: RungeKuttaStateInterpolator) -> None:
        """Set the expected sign of ``g`` from the first step start."""
        self._forward = interpolator.forward
        s0 = interpolator.previous_state
        self._t0 = s0.time
        g0 = self._g(s0)
        if g0 == 0.0:
            # Starting exactly on a root, use the sign just after the start.
            epsilon = max(self._detector.convergence, abs(np.spacing(self._t0)))
            t_start = self._t0 + (0.5 if self._forward else -0.5) * epsilon
            g0 = self._g(interpolator.state_at(t_start))
        self._g0_positive = g0 >= 0.0

    def evaluate_step(self, interpolator: RungeKuttaStateInterpolator) -> bool:
        """Look for the first event inside the exposed part of the step.

        Returns
        -------
        bool
            True if an event was found, its time is then :attr:`event_time`.
        """
        self._pending = False
        self._pending_time = None
        self._forward = interpolator.forward
        convergence = self._detector.convergence

        t_start = interpolator.previous_state.time
        t_end = interpolator.current_state.time
        dt = t_end - t_start
        if abs(dt) < convergence:
            # Nothing meaningful can be located on such a small interval.
            return False

        n = max(1, int(np.ceil(abs(dt) / self._detector.max_check_interval)))
        h = dt / n

        ta = t_start
        i = 0
        while i < n:
            tb = t_end if i == n - 1 else t_start + (i + 1) * h
            gb = self._g(interpolator.state_at(tb))
            if self._g0_positive != (gb >= 0.0):
                root = self._find_root(interpolator, ta, tb, gb)
                if (self._previous_event_time is not None
                        and abs(root - self._previous_event_time) <= convergence):
                    # Same root as the last event, retry past it.
                    ta = self._skip_past_event(interpolator, ta, tb)
                    if ta is None:
                        ta = tb
                        i += 1
                    continue
                self._pending = True
                self._pending_time = root
                self._increasing = not self._g0_positive
                logger.debug(
                    f"{self._detector.__class__.__name__}: sign change in [{ta}, {tb}], root at t={root}"
                )
                return True
            ta = tb
            i += 1
        return False

    def _skip_past_event(self, interpolator, ta: float, tb: float) -> Optional[float]:
        step = self._detector.convergence if self._forward else -self._detector.convergence
        while True:
            ta_next = ta + step
            ta = ta_next if ta_next != ta else np.nextafter(ta, tb)
            if (ta >= tb) if self._forward else (ta <= tb):
                return None
            if self._g0_positive == (self._g(interpolator.state_at(ta)) >= 0.0):
                return ta

    def _find_root(self, interpolator: RungeKuttaStateInterpolator, ta: float, tb: float, gb: float) -> float:
        def f(t):
            return self._g(interpolator.state_at(t))

        ga = f(ta)
        if ga * gb > 0.0 or np.isnan(ga) or np.isnan(gb):
            msg = (
                f"Switching function of {self._detector.__class__.__name__} does not bracket "
                f"a root on [{ta}, {tb}] (g={ga}, {gb}); its sign alternation contract is broken"
            )
            logger.error(msg)
            raise NoBracketingError(msg)

        lower, upper = (ta, tb) if ta <= tb else (tb, ta)
        sol = root_scalar(
            f,
            bracket=(lower, upper),
            method="brentq",
            xtol=self._detector.convergence,
            maxiter=self._detector.max_iteration_count,
        )
        if sol.converged:
            root = sol.root
        else:
            root = self._detector.convergence_failure(lower, upper, sol.root)
            logger.warning(
                f"Using best-effort event time t={root} after {sol.iterations} solver iterations"
            )
        return self._after_crossing(f, root, tb)

    def _after_crossing(self, f, root: float, tb: float) -> float:
        """Move *root* forward until ``g`` is on the post-crossing side,
        never past *tb*."""
        t = root
        step = self._detector.convergence if self._forward else -self._detector.convergence
        for _ in range(self._detector.max_iteration_count):
            if t == tb or (f(t) >= 0.0) != self._g0_positive:
                return t
            t_next = min(t + step, tb) if self._forward else max(t + step, tb)
            if t_next == t:
                t_next = np.nextafter(t, tb)
            t = t_next
        return tb

    def do_event(self, state: ODEStateAndDerivative) -> Action:
        """Acknowledge the pending event at *state* and return the action."""
        increasing = self._increasing
        self._g0_positive = increasing
        self._t0 = state.time
        self._previous_event_time = state.time
        self._pending = False
        self._pending_time = None

        # Increase with physical time, whatever the integration direction.
        physical_increasing = increasing == self._forward
        direction = self._detector.direction
        if direction != 0 and physical_increasing != (direction > 0):
            logger.debug(
                f"{self._detector.__class__.__name__}: crossing at t={state.time} filtered by direction {direction}"
            )
            return Action.CONTINUE

        action = self._detector.handler.event_occurred(state, self._detector, physical_increasing)
        if not isinstance(action, Action):
            raise TypeError(f"Event handlers must return an Action, got {action!r}")
        logger.debug(f"{self._detector.__class__.__name__}: event at t={state.time}, action {action.name}")
        return action

    def reset_state(self, state: ODEStateAndDerivative) -> ODEState:
        return self._detector.handler.reset_state(self._detector, state)

    def step_accepted(self, state: ODEStateAndDerivative) -> None:
        """Resynchronise the expected sign of ``g`` at a committed state."""
        self._t0 = state.time
        self._pending = False
        self._pending_time = None
        g0 = self._g(state)
        if g0 != 0.0:
            self._g0_positive = g0 > 0.0
