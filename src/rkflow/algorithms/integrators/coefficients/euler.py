import numpy as np

C = np.array([0.0], dtype=np.float64)

A = np.array([[0.0]], dtype=np.float64)

B = np.array([1.0], dtype=np.float64)

# Dense output: linear interpolation.
P = np.array([[1.0]], dtype=np.float64)
