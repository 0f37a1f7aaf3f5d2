"""Dense output for explicit Runge-Kutta steps.

The interpolator of a step keeps the stage derivatives computed while taking
the step and rebuilds the solution anywhere inside (or slightly outside) it
without calling the equations again. Event location and the step handlers
only ever see the solution through these objects.

References
----------
Hairer, E., Norsett, S. P., & Wanner, G. (1993). "Solving Ordinary
Differential Equations I: Non-stiff Problems", section II.6.
"""

import numpy as np

from rkflow.algorithms.dynamics.expandable import EquationsMapper
from rkflow.algorithms.integrators.kernels import (_combine_stages,
                                                   _stage_state)
from rkflow.algorithms.integrators.tableau import ButcherTableau
from rkflow.algorithms.types.states import ODEStateAndDerivative


class RungeKuttaStateInterpolator:
    """Interpolator over one Runge-Kutta step.

    Parameters
    ----------
    tableau : :class:`~rkflow.algorithms.integrators.tableau.ButcherTableau`
        Method that produced the step.
    forward : bool
        Integration direction.
    y_dot_k : numpy.ndarray of shape (stages, dim)
        Stage derivatives of the step.
    global_previous_state, global_current_state : :class:`~rkflow.algorithms.types.states.ODEStateAndDerivative`
        Start and end of the whole step.
    soft_previous_state, soft_current_state : :class:`~rkflow.algorithms.types.states.ODEStateAndDerivative`
        Start and end of the part of the step currently exposed to callers,
        see :meth:`restrict_step`.
    mapper : :class:`~rkflow.algorithms.dynamics.expandable.EquationsMapper`
        Splits complete state vectors into primary and secondary parts.

    Notes
    -----
    With ``theta = (t - t0) / h`` the state is rebuilt from the nearest
    step end: ``y0 + h * sum_l B_l(theta) * k_l`` for ``theta <= 0.5`` and
    ``y1 - h * sum_l (b_l - B_l(theta)) * k_l`` otherwise, which keeps both
    ends exact. Tableaus without dense output coefficients fall back to a
    cubic Hermite interpolant built on the step end points.
    """

    def __init__(
        self,
        tableau: ButcherTableau,
        forward: bool,
        y_dot_k: np.ndarray,
        global_previous_state: ODEStateAndDerivative,
        global_current_state: ODEStateAndDerivative,
        soft_previous_state: ODEStateAndDerivative,
        soft_current_state: ODEStateAndDerivative,
        mapper: EquationsMapper,
    ):
        self._tableau = tableau
        self._forward = bool(forward)
        self._y_dot_k = y_dot_k
        self._y_dot_k.flags.writeable = False
        self._global_previous = global_previous_state
        self._global_current = global_current_state
        self._soft_previous = soft_previous_state
        self._soft_current = soft_current_state
        self._mapper = mapper

        dtype = y_dot_k.dtype
        self._y0 = global_previous_state.complete_state.astype(dtype, copy=False)
        self._y1 = global_current_state.complete_state.astype(dtype, copy=False)

    @property
    def tableau(self) -> ButcherTableau:
        return self._tableau

    @property
    def forward(self) -> bool:
        return self._forward

    @property
    def y_dot_k(self) -> np.ndarray:
        return self._y_dot_k

    @property
    def mapper(self) -> EquationsMapper:
        return self._mapper

    @property
    def global_previous_state(self) -> ODEStateAndDerivative:
        return self._global_previous

    @property
    def global_current_state(self) -> ODEStateAndDerivative:
        return self._global_current

    @property
    def previous_state(self) -> ODEStateAndDerivative:
        """Start of the exposed part of the step."""
        return self._soft_previous

    @property
    def current_state(self) -> ODEStateAndDerivative:
        """End of the exposed part of the step."""
        return self._soft_current

    @property
    def is_previous_state_interpolated(self) -> bool:
        return self._soft_previous is not self._global_previous

    @property
    def is_current_state_interpolated(self) -> bool:
        return self._soft_current is not self._global_current

    def restrict_step(
        self,
        previous_state: ODEStateAndDerivative,
        current_state: ODEStateAndDerivative,
    ) -> "RungeKuttaStateInterpolator":
        """Return a copy of the interpolator exposing only
        ``[previous_state, current_state]``.

        The global step and the stage derivatives are shared, so the
        restricted interpolator gives the same values as the original one.
        """
        return RungeKuttaStateInterpolator(
            self._tableau,
            self._forward,
            self._y_dot_k,
            self._global_previous,
            self._global_current,
            previous_state,
            current_state,
            self._mapper,
        )

    def state_at(self, time: float) -> ODEStateAndDerivative:
        """Interpolate the state and its derivative at *time*.

        Parameters
        ----------
        time : float
            Any time; values outside the step are extrapolated.

        Returns
        -------
        :class:`~rkflow.algorithms.types.states.ODEStateAndDerivative`
            The stored end states are returned unchanged at the step ends.
        """
        time = float(time)
        if time == self._global_current.time:
            return self._global_current
        if time == self._global_previous.time:
            return self._global_previous

        t0 = self._global_previous.time
        h = self._global_current.time - t0
        theta = (time - t0) / h

        if not self._tableau.has_dense_output:
            y, y_dot = self._hermite(theta, h)
        else:
            stages = self._tableau.stages
            weights, weight_derivatives = self._tableau.dense_weights(theta)
            if theta <= 0.5:
                y = _stage_state(self._y0, h, weights, self._y_dot_k, stages)
            else:
                y = _stage_state(self._y1, -h, self._tableau.b_array - weights, self._y_dot_k, stages)
            y_dot = _combine_stages(weight_derivatives, self._y_dot_k, stages)

        return self._mapper.map_state_and_derivative(time, y, y_dot)

    def _hermite(self, s: float, h: float):
        f0 = self._global_previous.complete_derivative
        f1 = self._global_current.complete_derivative

        s2 = s * s
        s3 = s2 * s
        h00 = 2 * s3 - 3 * s2 + 1
        h10 = s3 - 2 * s2 + s
        h01 = -2 * s3 + 3 * s2
        h11 = s3 - s2
        y = h00 * self._y0 + h10 * h * f0 + h01 * self._y1 + h11 * h * f1

        dh00 = (6 * s2 - 6 * s) / h
        dh10 = 3 * s2 - 4 * s + 1
        dh01 = (-6 * s2 + 6 * s) / h
        dh11 = 3 * s2 - 2 * s
        y_dot = dh00 * self._y0 + dh10 * f0 + dh01 * self._y1 + dh11 * f1
        return y, y_dot

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(method='{self._tableau.name}', "
            f"t0={self._soft_previous.time}, t1={self._soft_current.time})"
        )
