""" Public API for the :mod:`~rkflow.algorithms` package.
"""

from .dynamics.expandable import EquationsMapper, ExpandableSystem
from .dynamics.rhs import create_rhs_system
from .integrators import (Action, ButcherTableau, DenseOutputModel,
                          EventConfig, EventDetector, EventHandler,
                          FunctionEventDetector, RungeKutta, StepHandler,
                          StepNormalizer, get_tableau)
from .types.states import ODEState, ODEStateAndDerivative
from .utils.exceptions import (ConvergenceError, DimensionMismatchError,
                               InvalidTableauError, NoBracketingError,
                               RKFlowError, TooManyEvaluationsError)

__all__ = [
    "Action",
    "ButcherTableau",
    "ConvergenceError",
    "DenseOutputModel",
    "DimensionMismatchError",
    "EquationsMapper",
    "EventConfig",
    "EventDetector",
    "EventHandler",
    "ExpandableSystem",
    "FunctionEventDetector",
    "InvalidTableauError",
    "NoBracketingError",
    "ODEState",
    "ODEStateAndDerivative",
    "RKFlowError",
    "RungeKutta",
    "StepHandler",
    "StepNormalizer",
    "TooManyEvaluationsError",
    "create_rhs_system",
    "get_tableau",
]
