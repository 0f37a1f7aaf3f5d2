"""Package-wide numerical settings."""

# Numba's fastmath would break IEEE NaN/inf/signed-zero propagation in the
# stage accumulation kernels, keep it off.
FASTMATH = False

# Default event detection settings
MAX_CHECK_INTERVAL = float("inf")
EVENT_CONVERGENCE = 1e-12
EVENT_MAX_ITER = 100

# Number of ulps of the final time within which the last step is considered
# to have reached it.
FINAL_TIME_ULPS = 4
