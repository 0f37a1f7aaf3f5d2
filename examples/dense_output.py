"""Example script: compare the predefined tableaus on the harmonic oscillator
and evaluate the solution between steps from the dense output.

Run with
    python examples/dense_output.py
"""

import os
import sys

import numpy as np

sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from rkflow import DenseOutputModel, ODEState, RungeKutta, create_rhs_system
from rkflow.algorithms.integrators.tableau import available_tableaus
from rkflow.utils.log_config import logger


def main() -> None:
    system = create_rhs_system(lambda t, y: np.array([y[1], -y[0]]), dim=2, name="oscillator")
    times = np.linspace(0.0, 2.0 * np.pi, 50)

    for method in ("euler", "midpoint", "rk4", "gill", "3/8", "luther"):
        integrator = RungeKutta(method=method, step=0.1)
        model = integrator.add_step_handler(DenseOutputModel())
        final = integrator.integrate(system, ODEState(0.0, [1.0, 0.0]), 2.0 * np.pi)

        sol = model.sample(times)
        err_final = abs(final.primary_state[0] - 1.0)
        err_dense = np.max(np.abs(sol.states[:, 0] - np.cos(times)))
        logger.info(
            "%-22s order %d: final error %.3e, dense output error %.3e (%d evaluations)",
            integrator.name, integrator.order, err_final, err_dense, integrator.evaluations,
        )

    logger.info("Available tableaus: %s", ", ".join(available_tableaus()))


if __name__ == "__main__":
    main()
