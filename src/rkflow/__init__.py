"""rkflow: fixed-step explicit Runge-Kutta integration with discrete events
and dense output."""

from .algorithms import *  # noqa: F401,F403
from .algorithms import __all__

__version__ = "0.1.0"
