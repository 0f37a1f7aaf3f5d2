"""Provide fixed-step explicit Runge-Kutta integrators.

A single generic stepper drives every method: the coefficients come from a
:class:`~rkflow.algorithms.integrators.tableau.ButcherTableau` value and the
named methods are just predefined tableaus. A convenience factory selects
one by order or by name.

References
----------
Hairer, E.; Norsett, S.; Wanner, G. (1993). "Solving Ordinary Differential
Equations I".

Gill, S. (1951). "A process for the step-by-step integration of
differential equations in an automatic digital computing machine".
"""

from typing import Optional, Tuple, Union

import numpy as np

from rkflow.algorithms.dynamics.base import _DynamicalSystemProtocol
from rkflow.algorithms.dynamics.expandable import (ExpandableSystem,
                                                   _as_expandable)
from rkflow.algorithms.integrators.base import _Integrator
from rkflow.algorithms.integrators.controller import _reached
from rkflow.algorithms.integrators.interpolators import \
    RungeKuttaStateInterpolator
from rkflow.algorithms.integrators.kernels import _stage_state
from rkflow.algorithms.integrators.tableau import (CLASSICAL_RK4, EULER,
                                                   LUTHER, MIDPOINT,
                                                   ButcherTableau,
                                                   get_tableau)
from rkflow.algorithms.types.states import ODEState, ODEStateAndDerivative
from rkflow.algorithms.utils.exceptions import DimensionMismatchError
from rkflow.utils.log_config import logger


class _RungeKuttaStepper:
    """Take one explicit Runge-Kutta step for a given tableau.

    Parameters
    ----------
    tableau : :class:`~rkflow.algorithms.integrators.tableau.ButcherTableau`
        Method coefficients.

    Notes
    -----
    The stepper holds no per-step state: :meth:`advance` is a pure function
    of its arguments and may be called for any equations and step.
    """

    def __init__(self, tableau: ButcherTableau):
        if not isinstance(tableau, ButcherTableau):
            raise TypeError(f"Expected a ButcherTableau, got {type(tableau).__name__}")
        self._tableau = tableau

    @property
    def tableau(self) -> ButcherTableau:
        return self._tableau

    def advance(
        self,
        equations,
        step_start: ODEStateAndDerivative,
        h: float,
    ) -> Tuple[np.ndarray, ODEStateAndDerivative, RungeKuttaStateInterpolator]:
        """Advance *step_start* by *h*.

        Parameters
        ----------
        equations
            Object with ``mapper`` and ``compute_derivatives(t, y)``, usually
            an :class:`~rkflow.algorithms.dynamics.expandable.ExpandableSystem`.
        step_start : :class:`~rkflow.algorithms.types.states.ODEStateAndDerivative`
            Start of the step, its derivative is reused as the first stage.
        h : float
            Signed step size.

        Returns
        -------
        y_dot_k : numpy.ndarray of shape (stages, dim)
            Stage derivatives.
        step_end : :class:`~rkflow.algorithms.types.states.ODEStateAndDerivative`
            End of the step with its derivative.
        interpolator : :class:`~rkflow.algorithms.integrators.interpolators.RungeKuttaStateInterpolator`
            Dense output over the step.

        Notes
        -----
        Exactly ``stages`` derivative evaluations are made: ``stages - 1``
        for the stages and one at the step end.
        """
        tableau = self._tableau
        a = tableau.a_matrix
        c = tableau.c_array
        stages = tableau.stages

        t0 = step_start.time
        y = step_start.complete_state
        y_dot0 = step_start.complete_derivative
        dtype = np.result_type(y, y_dot0, np.float64)
        y = y.astype(dtype, copy=False)

        y_dot_k = np.empty((stages, y.size), dtype=dtype)
        y_dot_k[0] = y_dot0
        for k in range(1, stages):
            y_tmp = _stage_state(y, h, a[k - 1], y_dot_k, k)
            y_dot_k[k] = equations.compute_derivatives(t0 + c[k - 1] * h, y_tmp)

        t_end = t0 + h
        y_end = _stage_state(y, h, tableau.b_array, y_dot_k, stages)
        y_dot_end = equations.compute_derivatives(t_end, y_end)
        step_end = equations.mapper.map_state_and_derivative(t_end, y_end, y_dot_end)

        interpolator = RungeKuttaStateInterpolator(
            tableau, h > 0.0, y_dot_k, step_start, step_end, step_start, step_end, equations.mapper
        )
        return y_dot_k, step_end, interpolator

    def single_step(
        self,
        system: Union[_DynamicalSystemProtocol, ExpandableSystem],
        t0: float,
        y0: np.ndarray,
        t: float,
    ) -> np.ndarray:
        """Take one step from ``(t0, y0)`` straight to *t*.

        No step handler, event detector or evaluation counting is involved,
        and the end derivative is not computed.

        Returns
        -------
        numpy.ndarray
            Complete state at *t*.
        """
        equations = _as_expandable(system)
        y = np.asarray(y0)
        if y.ndim != 1 or y.size != equations.dim:
            raise DimensionMismatchError(
                f"Initial state dimension {y.size} != system dimension {equations.dim}"
            )
        tableau = self._tableau
        a = tableau.a_matrix
        c = tableau.c_array
        h = float(t) - float(t0)

        y_dot0 = equations.compute_derivatives(t0, y)
        dtype = np.result_type(y, y_dot0, np.float64)
        y = y.astype(dtype, copy=False)
        y_dot_k = np.empty((tableau.stages, y.size), dtype=dtype)
        y_dot_k[0] = y_dot0
        for k in range(1, tableau.stages):
            y_tmp = _stage_state(y, h, a[k - 1], y_dot_k, k)
            y_dot_k[k] = equations.compute_derivatives(t0 + c[k - 1] * h, y_tmp)
        return _stage_state(y, h, tableau.b_array, y_dot_k, tableau.stages)


class _FixedStepRK(_Integrator):
    """Implement an explicit fixed-step Runge-Kutta scheme.

    Parameters
    ----------
    tableau : :class:`~rkflow.algorithms.integrators.tableau.ButcherTableau`
        Coefficients of the method.
    step : float
        Nominal step size, its sign is ignored (the integration direction
        follows from the requested final time).
    **options
        Additional keyword options forwarded to the base :class:`~rkflow.algorithms.integrators.base._Integrator`
        (e.g. ``max_evaluations``).

    Notes
    -----
    Every step has the nominal size except the last one, which is shortened
    so that the integration ends exactly on the target time. Steps are also
    cut short by events.
    """

    def __init__(self, tableau: ButcherTableau, step: float, **options):
        step = float(step)
        if not np.isfinite(step) or step == 0.0:
            raise ValueError(f"Step size must be finite and non-zero, got {step}")
        self._stepper = _RungeKuttaStepper(tableau)
        self._step = abs(step)
        super().__init__(tableau.name, **options)

    @property
    def order(self) -> int:
        """Return the formal order of accuracy of the method.

        Returns
        -------
        int
            The order of accuracy of the Runge-Kutta method.
        """
        return self._stepper.tableau.order

    @property
    def tableau(self) -> ButcherTableau:
        return self._stepper.tableau

    @property
    def step(self) -> float:
        return self._step

    def single_step(self, system, t0: float, y0: np.ndarray, t: float) -> np.ndarray:
        """See :meth:`_RungeKuttaStepper.single_step`."""
        return self._stepper.single_step(system, t0, y0, t)

    def integrate(
        self,
        system: Union[_DynamicalSystemProtocol, ExpandableSystem],
        initial_state: ODEState,
        t_final: float,
    ) -> ODEStateAndDerivative:
        """Integrate a dynamical system using a fixed-step Runge-Kutta method."""
        equations = _as_expandable(system)
        t_final = float(t_final)
        self.sanity_checks(equations, initial_state, t_final)

        counted, step_start = self._start_integration(equations, initial_state, t_final)
        if step_start.time == t_final:
            logger.debug(f"{self.name}: zero-length integration span at t={t_final}")
            return step_start

        forward = t_final > step_start.time
        nominal = self._step if forward else -self._step
        logger.debug(
            f"{self.name}: integrating from t={step_start.time} to t={t_final} with step {nominal}"
        )

        controller = self._make_controller(counted)
        controller.init(step_start, t_final)

        t_start = step_start.time
        is_last = False
        n_steps = 0
        while not is_last:
            h = nominal
            next_t = step_start.time + h
            overshoot = (next_t >= t_final) if forward else (next_t <= t_final)
            if overshoot or _reached(next_t, t_final, t_start):
                h = t_final - step_start.time
            _, _, interpolator = self._stepper.advance(counted, step_start, h)
            step_start, is_last = controller.accept_step(interpolator, t_final)
            n_steps += 1

        controller.finish(step_start)
        logger.debug(
            f"{self.name}: finished at t={step_start.time} after {n_steps} steps "
            f"and {counted.count} evaluations"
        )
        return step_start


class RungeKutta:
    """Implement a factory class for creating fixed-step Runge-Kutta integrators.

    Methods are selected by order (1: Euler, 2: midpoint, 4: classical,
    6: Luther) or by name through *method* (``"euler"``, ``"midpoint"``,
    ``"rk4"``, ``"gill"``, ``"3/8"``, ``"luther"``), or given directly as a
    :class:`~rkflow.algorithms.integrators.tableau.ButcherTableau`.

    Examples
    --------
    >>> rk4 = RungeKutta(order=4, step=0.01)
    >>> gill = RungeKutta(method="gill", step=0.01)
    >>> custom = RungeKutta(tableau=my_tableau, step=0.01)
    """
    _map = {1: EULER, 2: MIDPOINT, 4: CLASSICAL_RK4, 6: LUTHER}

    def __new__(
        cls,
        order: int = 4,
        step: float = 1e-2,
        method: Optional[str] = None,
        tableau: Optional[ButcherTableau] = None,
        **opts,
    ):
        """Create a fixed-step Runge-Kutta integrator.

        Parameters
        ----------
        order : int, default 4
            Order of the Runge-Kutta method. Must be 1, 2, 4 or 6. Ignored
            when *method* or *tableau* is given.
        step : float, default 1e-2
            Nominal step size.
        method : str, optional
            Name of a predefined tableau.
        tableau : :class:`~rkflow.algorithms.integrators.tableau.ButcherTableau`, optional
            Custom tableau.
        **opts
            Additional options passed to the integrator constructor.

        Returns
        -------
        :class:`~rkflow.algorithms.integrators.rk._FixedStepRK`
            A fixed-step Runge-Kutta integrator instance.

        Raises
        ------
        ValueError
            If the order or the method name is not supported.
        """
        if tableau is None:
            if method is not None:
                tableau = get_tableau(method)
            elif order in cls._map:
                tableau = cls._map[order]
            else:
                raise ValueError("RK order must be 1, 2, 4, or 6")
        return _FixedStepRK(tableau, step, **opts)
