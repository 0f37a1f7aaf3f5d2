"""Example script: a ball bouncing on the ground, integrated with the 3/8 rule.

Each impact is located by an event detector and the velocity is reversed
and damped by a state reset. The trajectory is sampled on a regular grid.

Run with
    python examples/bouncing_ball.py
"""

import os
import sys

import numpy as np

sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from rkflow import (Action, EventDetector, EventHandler, ODEState,
                    RungeKutta, StepNormalizer, create_rhs_system)
from rkflow.utils.log_config import logger

GRAVITY = 9.81
RESTITUTION = 0.8


class Ground(EventDetector):
    """Impact detector. The height is folded with a per-bounce sign so that
    g keeps the sign it crossed to after the reset."""

    def __init__(self):
        super().__init__(handler=Bounce())
        self.sign = 1.0

    def init(self, initial_state, t_final):
        self.sign = 1.0

    def g(self, state):
        return self.sign * state.primary_state[0]


class Bounce(EventHandler):
    def event_occurred(self, state, detector, increasing):
        logger.info("Impact at t=%.6f, speed %.4f", state.time, abs(state.primary_state[1]))
        return Action.RESET_STATE

    def reset_state(self, detector, state):
        detector.sign = -detector.sign
        height, velocity = state.primary_state
        return ODEState(state.time, [abs(height), -RESTITUTION * velocity])


def main() -> None:
    system = create_rhs_system(lambda t, y: np.array([y[1], -GRAVITY]), dim=2, name="bouncing ball")

    integrator = RungeKutta(method="3/8", step=1e-2)
    integrator.add_event_detector(Ground())

    samples = []
    integrator.add_step_handler(StepNormalizer(0.25, lambda state, is_last: samples.append(state)))

    final = integrator.integrate(system, ODEState(0.0, [1.0, 0.0]), 3.0)

    for state in samples:
        logger.info("t=%.2f  height=%.4f  velocity=%.4f", state.time, *state.primary_state)
    logger.info("Final state %s after %d derivative evaluations", final, integrator.evaluations)


if __name__ == "__main__":
    main()
