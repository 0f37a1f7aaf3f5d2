import numpy as np

C = np.array([0.0, 1.0 / 2.0, 1.0 / 2.0, 1.0], dtype=np.float64)

A = np.array([
    [0.0, 0.0, 0.0, 0.0],
    [1.0 / 2.0, 0.0, 0.0, 0.0],
    [0.0, 1.0 / 2.0, 0.0, 0.0],
    [0.0, 0.0, 1.0, 0.0],
], dtype=np.float64)

B = np.array([1.0 / 6.0, 1.0 / 3.0, 1.0 / 3.0, 1.0 / 6.0], dtype=np.float64)

# Third order continuous extension, rows give the coefficients of
# theta, theta**2, theta**3 in the weight of each stage.
P = np.array([
    [1.0, -3.0 / 2.0, 2.0 / 3.0],
    [0.0, 1.0, -2.0 / 3.0],
    [0.0, 1.0, -2.0 / 3.0],
    [0.0, -1.0 / 2.0, 2.0 / 3.0],
], dtype=np.float64)
