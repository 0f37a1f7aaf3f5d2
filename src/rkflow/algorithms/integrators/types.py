from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass
class _Solution:
    """
    Container for sampled integration results.

    Attributes
    ----------
    times : numpy.ndarray
        Array of time points, shape (n_points,)
    states : numpy.ndarray
        Array of primary state vectors, shape (n_points, n_dim)
    derivatives : numpy.ndarray or None, optional
        Array of time derivatives evaluated at the stored time points,
        shape (n_points, n_dim).
    """
    times: np.ndarray
    states: np.ndarray
    derivatives: Optional[np.ndarray] = None

    def __post_init__(self):
        if len(self.times) != len(self.states):
            raise ValueError(
                f"Times and states must have same length: "
                f"{len(self.times)} != {len(self.states)}"
            )
        if self.derivatives is not None and len(self.derivatives) != len(self.times):
            raise ValueError(
                "If provided, derivatives must have the same length as times "
                f"({len(self.derivatives)} != {len(self.times)})"
            )

    def __len__(self) -> int:
        return len(self.times)
