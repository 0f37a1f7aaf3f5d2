from dataclasses import dataclass

import numpy as np

from rkflow.algorithms.utils.config import (EVENT_CONVERGENCE, EVENT_MAX_ITER,
                                            MAX_CHECK_INTERVAL)


@dataclass(frozen=True)
class _EventConfig:
    """Configuration of a switching function g(state).

    Parameters
    ----------
    max_check_interval : float, default inf
        Maximal time interval between two samples of g inside a step. With
        the default, g is only sampled at the step end, so a pair of roots
        inside one step goes unnoticed.
    convergence : float, default 1e-12
        Absolute time tolerance of the root solver.
    max_iteration_count : int, default 100
        Maximal number of iterations of the root solver.
    direction : int, default 0
        Crossing direction to report:
        - 0: any sign change
        - +1: only increasing crossings
        - -1: only decreasing crossings
        Crossings in the other direction are treated as
        :attr:`~rkflow.algorithms.integrators.events.Action.CONTINUE`
        without calling the handler.
    terminal : bool, default True
        Selects the default handler when none is given: stop at the first
        event when True, continue otherwise.
    """

    max_check_interval: float = MAX_CHECK_INTERVAL
    convergence: float = EVENT_CONVERGENCE
    max_iteration_count: int = EVENT_MAX_ITER
    direction: int = 0
    terminal: bool = True

    def __post_init__(self):
        if not (self.max_check_interval > 0.0):
            raise ValueError(f"max_check_interval must be positive, got {self.max_check_interval}")
        if not (np.isfinite(self.convergence) and self.convergence > 0.0):
            raise ValueError(f"convergence must be positive and finite, got {self.convergence}")
        if int(self.max_iteration_count) < 1:
            raise ValueError(f"max_iteration_count must be at least 1, got {self.max_iteration_count}")
        if self.direction not in (-1, 0, 1):
            raise ValueError(f"direction must be -1, 0 or +1, got {self.direction}")
