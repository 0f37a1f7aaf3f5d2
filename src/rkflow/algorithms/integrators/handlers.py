"""Step handlers: observers of the committed steps of an integration."""

import bisect
from abc import ABC, abstractmethod
from typing import Callable, List

import numpy as np

from rkflow.algorithms.integrators.interpolators import \
    RungeKuttaStateInterpolator
from rkflow.algorithms.integrators.types import _Solution
from rkflow.algorithms.types.states import ODEStateAndDerivative
from rkflow.algorithms.utils.config import FINAL_TIME_ULPS


class StepHandler(ABC):
    """Receive every committed piece of step.

    A step split by events is reported as several pieces, each one an
    interpolator restricted to the piece. ``is_last`` is true for the piece
    ending the integration.
    """

    def init(self, initial_state: ODEStateAndDerivative, t_final: float) -> None:
        """Called once before the first step."""

    @abstractmethod
    def handle_step(self, interpolator: RungeKuttaStateInterpolator, is_last: bool) -> None:
        """Handle one committed piece of step."""

    def finish(self, final_state: ODEStateAndDerivative) -> None:
        """Called once with the state returned by the integration."""


class _FunctionStepHandler(StepHandler):
    def __init__(self, fn: Callable[[RungeKuttaStateInterpolator, bool], None]):
        self._fn = fn

    def handle_step(self, interpolator, is_last):
        self._fn(interpolator, is_last)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({getattr(self._fn, '__name__', self._fn)!r})"


def _as_step_handler(handler) -> StepHandler:
    if isinstance(handler, StepHandler):
        return handler
    if callable(handler):
        return _FunctionStepHandler(handler)
    raise TypeError(f"Step handler must be a StepHandler or a callable, got {type(handler).__name__}")


class DenseOutputModel(StepHandler):
    """Keep every step interpolator to evaluate the solution anywhere in the
    integrated range afterwards.

    Examples
    --------
    >>> model = DenseOutputModel()
    >>> integrator.add_step_handler(model)
    >>> integrator.integrate(system, ODEState(0.0, y0), 10.0)
    >>> sol = model.sample(np.linspace(0.0, 10.0, 101))
    """

    def __init__(self):
        self._steps: List[RungeKuttaStateInterpolator] = []
        self._keys: List[float] = []
        self._forward = True

    def init(self, initial_state, t_final):
        self._steps = []
        self._keys = []
        self._forward = t_final >= initial_state.time

    def handle_step(self, interpolator, is_last):
        self._steps.append(interpolator)
        self._keys.append(self._key(interpolator.current_state.time))

    def _key(self, t: float) -> float:
        return t if self._forward else -t

    def __len__(self) -> int:
        return len(self._steps)

    @property
    def initial_time(self) -> float:
        self._check_not_empty()
        return self._steps[0].previous_state.time

    @property
    def final_time(self) -> float:
        self._check_not_empty()
        return self._steps[-1].current_state.time

    def _check_not_empty(self) -> None:
        if not self._steps:
            raise ValueError("Dense output model is empty, run an integration first")

    def state_at(self, time: float) -> ODEStateAndDerivative:
        """Interpolated state at *time*.

        Raises
        ------
        ValueError
            If *time* lies outside the integrated range (by more than a few
            ulps, ends are extrapolated through the nearest step).
        """
        self._check_not_empty()
        lo, hi = sorted((self.initial_time, self.final_time))
        tol = FINAL_TIME_ULPS * np.spacing(max(abs(lo), abs(hi)))
        if time < lo - tol or time > hi + tol:
            raise ValueError(f"Time {time} outside the integrated range [{lo}, {hi}]")
        index = bisect.bisect_left(self._keys, self._key(time))
        index = min(index, len(self._steps) - 1)
        return self._steps[index].state_at(time)

    def sample(self, times) -> _Solution:
        """Sample the primary state and derivative at *times*."""
        times = np.asarray(times, dtype=float)
        states = [self.state_at(t) for t in times]
        return _Solution(
            times=times.copy(),
            states=np.array([s.primary_state for s in states]),
            derivatives=np.array([s.primary_derivative for s in states]),
        )


class StepNormalizer(StepHandler):
    """Adapt committed steps to a fixed sampling grid.

    Parameters
    ----------
    h : float
        Grid spacing, its sign is ignored (the grid follows the integration
        direction).
    handler : callable
        ``handler(state, is_last)`` called at ``t0``, ``t0 + h``, ... and at
        the final time, or an object with such a ``handle_step`` method.

    Notes
    -----
    Grid points are computed as ``t0 + k * h`` to avoid accumulating
    rounding errors. The final state is always reported with
    ``is_last=True``, even when it is not on the grid.
    """

    def __init__(self, h: float, handler):
        h = float(h)
        if not np.isfinite(h) or h == 0.0:
            raise ValueError(f"Normalizer step must be finite and non-zero, got {h}")
        self._h = abs(h)
        if hasattr(handler, "handle_step"):
            self._handler = handler.handle_step
            self._handler_init = getattr(handler, "init", None)
        elif callable(handler):
            self._handler = handler
            self._handler_init = None
        else:
            raise TypeError(f"Fixed step handler must be callable, got {type(handler).__name__}")
        self._first = None
        self._last = None
        self._count = 0

    def init(self, initial_state, t_final):
        self._first = None
        self._last = None
        self._count = 0
        if self._handler_init is not None:
            self._handler_init(initial_state, t_final)

    def _tolerance(self) -> float:
        return 1e-10 * self._h

    def handle_step(self, interpolator, is_last):
        forward = interpolator.forward
        h = self._h if forward else -self._h
        tol = self._tolerance()

        if self._last is None:
            self._first = interpolator.previous_state
            self._last = self._first
            self._count = 0

        t_end = interpolator.current_state.time
        next_time = self._first.time + (self._count + 1) * h
        while (next_time <= t_end + tol) if forward else (next_time >= t_end - tol):
            self._handler(self._last, False)
            self._count += 1
            self._last = interpolator.state_at(next_time)
            next_time = self._first.time + (self._count + 1) * h

        if is_last:
            final = interpolator.current_state
            if abs(final.time - self._last.time) > tol:
                self._handler(self._last, False)
                self._last = final
            self._handler(self._last, True)
