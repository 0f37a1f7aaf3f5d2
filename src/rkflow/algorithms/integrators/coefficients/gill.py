import numpy as np

_SQRT2 = np.sqrt(2.0)

C = np.array([0.0, 1.0 / 2.0, 1.0 / 2.0, 1.0], dtype=np.float64)

A = np.array([
    [0.0, 0.0, 0.0, 0.0],
    [1.0 / 2.0, 0.0, 0.0, 0.0],
    [(_SQRT2 - 1.0) / 2.0, (2.0 - _SQRT2) / 2.0, 0.0, 0.0],
    [0.0, -_SQRT2 / 2.0, (2.0 + _SQRT2) / 2.0, 0.0],
], dtype=np.float64)

B = np.array([1.0 / 6.0, (2.0 - _SQRT2) / 6.0, (2.0 + _SQRT2) / 6.0, 1.0 / 6.0], dtype=np.float64)

# Same extension as the classical method with the middle weight split
# between stages 2 and 3 like B.
_ONE_MINUS_INV_SQRT2 = 1.0 - 1.0 / _SQRT2
_ONE_PLUS_INV_SQRT2 = 1.0 + 1.0 / _SQRT2

P = np.array([
    [1.0, -3.0 / 2.0, 2.0 / 3.0],
    [0.0, _ONE_MINUS_INV_SQRT2, -2.0 / 3.0 * _ONE_MINUS_INV_SQRT2],
    [0.0, _ONE_PLUS_INV_SQRT2, -2.0 / 3.0 * _ONE_PLUS_INV_SQRT2],
    [0.0, -1.0 / 2.0, 2.0 / 3.0],
], dtype=np.float64)
