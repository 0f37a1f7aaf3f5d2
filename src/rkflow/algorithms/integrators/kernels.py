"""Numba kernels combining stage derivatives.

Sums are accumulated strictly left to right and zero coefficients are not
skipped, so a NaN or infinite stage derivative always reaches the result.
:data:`~rkflow.algorithms.utils.config.FASTMATH` must stay off for the same
reason.
"""

import numba
import numpy as np

from rkflow.algorithms.utils.config import FASTMATH


@numba.njit(cache=False, fastmath=FASTMATH)
def _combine_stages(coeffs, y_dot_k, n):
    """Return ``sum_{l < n} coeffs[l] * y_dot_k[l]``, with ``n >= 1``."""
    dim = y_dot_k.shape[1]
    out = np.empty(dim, dtype=y_dot_k.dtype)
    for j in range(dim):
        acc = y_dot_k[0, j] * coeffs[0]
        for l in range(1, n):
            acc = acc + y_dot_k[l, j] * coeffs[l]
        out[j] = acc
    return out


@numba.njit(cache=False, fastmath=FASTMATH)
def _stage_state(y, h, coeffs, y_dot_k, n):
    """Return ``y + h * sum_{l < n} coeffs[l] * y_dot_k[l]``, with ``n >= 1``."""
    dim = y.shape[0]
    out = np.empty(dim, dtype=y_dot_k.dtype)
    for j in range(dim):
        acc = y_dot_k[0, j] * coeffs[0]
        for l in range(1, n):
            acc = acc + y_dot_k[l, j] * coeffs[l]
        out[j] = y[j] + h * acc
    return out
