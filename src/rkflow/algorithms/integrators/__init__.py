"""Fixed-step explicit Runge-Kutta integration with events and dense output."""

from .configs import _EventConfig as EventConfig
from .events import (Action, ContinueOnEvent, EventDetector, EventHandler,
                     FunctionEventDetector, StopOnEvent)
from .handlers import DenseOutputModel, StepHandler, StepNormalizer
from .interpolators import RungeKuttaStateInterpolator
from .rk import RungeKutta
from .rk import _FixedStepRK as FixedStepRungeKutta
from .rk import _RungeKuttaStepper as RungeKuttaStepper
from .tableau import (CLASSICAL_RK4, EULER, GILL, LUTHER, MIDPOINT,
                      THREE_EIGHTHS, ButcherTableau, get_tableau)

__all__ = [
    "Action",
    "ButcherTableau",
    "CLASSICAL_RK4",
    "ContinueOnEvent",
    "DenseOutputModel",
    "EULER",
    "EventConfig",
    "EventDetector",
    "EventHandler",
    "FixedStepRungeKutta",
    "FunctionEventDetector",
    "GILL",
    "LUTHER",
    "MIDPOINT",
    "RungeKutta",
    "RungeKuttaStateInterpolator",
    "RungeKuttaStepper",
    "StepHandler",
    "StepNormalizer",
    "StopOnEvent",
    "THREE_EIGHTHS",
    "get_tableau",
]
