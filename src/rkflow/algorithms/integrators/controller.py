"""Split accepted steps at events and dispatch them to the step handlers."""

from typing import List, Sequence, Tuple

import numpy as np

from rkflow.algorithms.integrators.events import (Action, EventDetector,
                                                  _EventState)
from rkflow.algorithms.integrators.interpolators import \
    RungeKuttaStateInterpolator
from rkflow.algorithms.types.states import ODEStateAndDerivative
from rkflow.algorithms.utils.config import FINAL_TIME_ULPS
from rkflow.utils.log_config import logger


def _reached(t: float, t_final: float, t_start: float) -> bool:
    scale = max(abs(t_final), abs(t_start))
    return abs(t - t_final) <= FINAL_TIME_ULPS * np.spacing(scale)


def _retimed(state: ODEStateAndDerivative, time: float) -> ODEStateAndDerivative:
    return ODEStateAndDerivative(
        time=time,
        primary_state=state.primary_state,
        secondary_states=state.secondary_states,
        primary_derivative=state.primary_derivative,
        secondary_derivatives=state.secondary_derivatives,
    )


class _EventController:
    """Process the events of every detector over one accepted step.

    Parameters
    ----------
    detectors : sequence of :class:`~rkflow.algorithms.integrators.events.EventDetector`
        Detectors in registration order, which breaks ties between events
        at the same time.
    step_handlers : sequence of :class:`~rkflow.algorithms.integrators.handlers.StepHandler`
        Handlers receiving every committed piece of step.
    equations
        Equations (with evaluation counting) used to recompute the
        derivative after a reset.
    """

    def __init__(self, detectors: Sequence[EventDetector], step_handlers: Sequence, equations):
        self._states = [_EventState(d) for d in detectors]
        self._handlers = list(step_handlers)
        self._equations = equations
        self._t_start = None
        self._first = True

    def init(self, initial_state: ODEStateAndDerivative, t_final: float) -> None:
        self._t_start = initial_state.time
        self._first = True
        for state in self._states:
            state.init(initial_state, t_final)
        for handler in self._handlers:
            handler.init(initial_state, t_final)

    def finish(self, final_state: ODEStateAndDerivative) -> None:
        for handler in self._handlers:
            handler.finish(final_state)

    def _handle_step(self, interpolator: RungeKuttaStateInterpolator, is_last: bool) -> None:
        for handler in self._handlers:
            handler.handle_step(interpolator, is_last)

    def accept_step(
        self,
        interpolator: RungeKuttaStateInterpolator,
        t_final: float,
    ) -> Tuple[ODEStateAndDerivative, bool]:
        """Commit a step, splitting it at the events it contains.

        Parameters
        ----------
        interpolator : :class:`~rkflow.algorithms.integrators.interpolators.RungeKuttaStateInterpolator`
            Interpolator of the tentative step.
        t_final : float
            Target time of the integration.

        Returns
        -------
        state : :class:`~rkflow.algorithms.types.states.ODEStateAndDerivative`
            State the next step starts from.
        is_last : bool
            True if the integration is over (target reached or stopped).
        """
        previous = interpolator.global_previous_state
        current = interpolator.global_current_state
        sign = 1.0 if interpolator.forward else -1.0

        if self._first:
            for state in self._states:
                state.reinitialize_begin(interpolator)
            self._first = False

        occurring: List[Tuple[_EventState, int]] = [
            (state, index) for index, state in enumerate(self._states)
            if state.evaluate_step(interpolator)
        ]

        while occurring:
            occurring.sort(key=lambda item: (sign * item[0].event_time, item[1]))
            state, index = occurring.pop(0)

            event_state = interpolator.state_at(state.event_time)
            restricted = interpolator.restrict_step(previous, event_state)

            action = state.do_event(event_state)
            if action is Action.STOP:
                logger.debug(f"Integration stopped by event detector #{index} at t={event_state.time}")
                self._handle_step(restricted, True)
                return event_state, True

            if event_state.time != previous.time:
                self._handle_step(restricted, False)

            if action in (Action.RESET_STATE, Action.RESET_DERIVATIVES):
                reset = self._reset(state, event_state, action)
                for other in self._states:
                    if other is not state:
                        other.step_accepted(reset)
                return reset, False

            # CONTINUE: the pending events of the other detectors are not
            # earlier than this one and stay valid, only the triggered
            # detector looks at the rest of the step again.
            previous = event_state
            remaining = interpolator.restrict_step(event_state, current)
            if state.evaluate_step(remaining):
                occurring.append((state, index))

        for state in self._states:
            state.step_accepted(current)

        is_last = _reached(current.time, t_final, self._t_start)
        if is_last and current.time != t_final:
            # Rounding left the last step end a few ulps short of the target.
            current = _retimed(current, t_final)
        if is_last or current.time != previous.time:
            self._handle_step(interpolator.restrict_step(previous, current), is_last)
        return current, is_last

    def _reset(self, state: _EventState, event_state: ODEStateAndDerivative, action: Action) -> ODEStateAndDerivative:
        mapper = self._equations.mapper
        t = event_state.time
        if action is Action.RESET_STATE:
            new_state = state.reset_state(event_state)
            y = mapper.complete_state(new_state)
            logger.debug(f"State reset at t={t}")
        else:
            y = event_state.complete_state
            logger.debug(f"Derivatives reset at t={t}")
        y_dot = self._equations.compute_derivatives(t, y)
        return mapper.map_state_and_derivative(t, y, y_dot)
