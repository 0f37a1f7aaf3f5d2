import numpy as np
import pytest

from rkflow.algorithms.dynamics.rhs import create_rhs_system
from rkflow.algorithms.integrators import RungeKutta
from rkflow.algorithms.integrators.configs import _EventConfig
from rkflow.algorithms.integrators.events import (Action, EventDetector,
                                                  EventHandler,
                                                  FunctionEventDetector)
from rkflow.algorithms.integrators.handlers import StepHandler
from rkflow.algorithms.types.states import ODEState
from rkflow.algorithms.utils.exceptions import (NoBracketingError,
                                                TooManyEvaluationsError)


def _slope_system(slope):
    return create_rhs_system(lambda t, y: np.array([slope]), dim=1, name="slope")


class _Recorder(EventHandler):
    """Record (time, increasing) of every event and answer with a fixed action."""

    def __init__(self, action=Action.CONTINUE, label=None, log=None):
        self.action = action
        self.label = label
        self.events = []
        self.log = log

    def event_occurred(self, state, detector, increasing):
        self.events.append((state.time, increasing))
        if self.log is not None:
            self.log.append(self.label)
        return self.action


def test_rk4_event_positive_crossing():
    # dy/dt = 1, y(t) = y0 + t; event at y = 1 -> t_hit = 1 - y0
    def g(t, y):
        return float(y[0] - 1.0)

    rk4 = RungeKutta(order=4, step=0.1)
    rk4.add_event_detector(FunctionEventDetector(g, _EventConfig(direction=+1, terminal=True)))
    final = rk4.integrate(_slope_system(1.0), ODEState(0.0, [0.0]), 2.0)

    assert abs(final.time - 1.0) < 1e-10
    assert abs(final.primary_state[0] - 1.0) < 1e-10


def test_rk4_event_negative_crossing():
    # dy/dt = -1, y(t) = y0 - t; event at y = 1 -> t_hit = y0 - 1
    def g(t, y):
        return float(y[0] - 1.0)

    rk4 = RungeKutta(order=4, step=0.1)
    rk4.add_event_detector(FunctionEventDetector(g, _EventConfig(direction=-1, terminal=True)))
    final = rk4.integrate(_slope_system(-1.0), ODEState(0.0, [1.5]), 2.0)

    assert abs(final.time - 0.5) < 1e-10
    assert abs(final.primary_state[0] - 1.0) < 1e-10


def test_rk4_event_strict_direction_no_hit():
    # dy/dt = 1, starting below plane; request decreasing direction -> no hit
    def g(t, y):
        return float(y[0] - 1.0)

    rk4 = RungeKutta(order=4, step=0.1)
    rk4.add_event_detector(FunctionEventDetector(g, _EventConfig(direction=-1, terminal=True)))
    final = rk4.integrate(_slope_system(1.0), ODEState(0.0, [0.0]), 1.5)

    assert abs(final.time - 1.5) < 1e-12
    assert abs(final.primary_state[0] - 1.5) < 1e-8


def test_rk4_start_on_plane_moving_away_no_hit():
    # Start exactly on plane and move away in + direction -> no strict crossing
    def g(t, y):
        return float(y[0] - 1.0)

    rk4 = RungeKutta(order=4, step=0.1)
    rk4.add_event_detector(FunctionEventDetector(g, _EventConfig(direction=+1, terminal=True)))
    final = rk4.integrate(_slope_system(1.0), ODEState(0.0, [1.0]), 0.5)

    assert abs(final.time - 0.5) < 1e-12
    assert abs(final.primary_state[0] - 1.5) < 1e-8


def test_rk4_event_any_direction_crossing():
    def g(t, y):
        return float(y[0] - 1.0)

    rk4 = RungeKutta(order=4, step=0.1)
    rk4.add_event_detector(FunctionEventDetector(g, _EventConfig(direction=0, terminal=True)))
    final = rk4.integrate(_slope_system(1.0), ODEState(0.0, [0.25]), 5.0)

    assert abs(final.time - 0.75) < 1e-10
    assert abs(final.primary_state[0] - 1.0) < 1e-10


def test_rk4_event_filtered_by_direction_no_hit():
    # Decreasing crossing should be ignored when direction=+1
    def g(t, y):
        return float(y[0] - 1.0)

    rk4 = RungeKutta(order=4, step=0.1)
    rk4.add_event_detector(FunctionEventDetector(g, _EventConfig(direction=+1, terminal=True)))
    final = rk4.integrate(_slope_system(-1.0), ODEState(0.0, [2.0]), 3.0)

    assert abs(final.time - 3.0) < 1e-12
    assert abs(final.primary_state[0] + 1.0) < 1e-8


def test_rk4_event_always_positive_no_hit():
    def g(t, y):
        return float(y[0] - 1.0)

    rk4 = RungeKutta(order=4, step=0.1)
    rk4.add_event_detector(FunctionEventDetector(g))
    final = rk4.integrate(_slope_system(0.0), ODEState(0.0, [2.0]), 1.0)

    assert abs(final.time - 1.0) < 1e-12
    assert abs(final.primary_state[0] - 2.0) < 1e-12


def test_rk4_event_stiff_relaxation_positive_crossing():
    # Stiff(ish) relaxation to y=1 from y0=0: y(t) = 1 - exp(-lambda t)
    lam = 100.0
    y_target = 0.999
    sys = create_rhs_system(lambda t, y: np.array([lam * (1.0 - y[0])]), dim=1, name="stiff_relax")

    rk4 = RungeKutta(order=4, step=1e-3)
    rk4.add_event_detector(FunctionEventDetector(lambda t, y: y[0] - y_target, _EventConfig(direction=+1)))
    final = rk4.integrate(sys, ODEState(0.0, [0.0]), 1.0)

    t_expected = -np.log(1.0 - y_target) / lam
    assert abs(final.time - t_expected) < 1e-6
    assert abs(final.primary_state[0] - y_target) < 1e-8


def test_rk4_event_crossing_very_early_from_near_plane():
    eps = 1e-9
    rk4 = RungeKutta(order=4, step=0.1)
    rk4.add_event_detector(FunctionEventDetector(lambda t, y: y[0] - 1.0, _EventConfig(direction=+1)))
    final = rk4.integrate(_slope_system(1.0), ODEState(0.0, [1.0 - eps]), 1.0)

    assert abs(final.time - eps) < 1e-9
    assert abs(final.primary_state[0] - 1.0) < 1e-10


def test_endpoint_zero_is_detected():
    # g hits exactly zero at the end of the only step.
    rk4 = RungeKutta(order=4, step=0.25)
    rk4.add_event_detector(FunctionEventDetector(lambda t, y: t - 1.0, _EventConfig(direction=+1)))
    final = rk4.integrate(_slope_system(1.0), ODEState(0.0, [0.0]), 2.0)

    assert final.time == 1.0
    assert abs(final.primary_state[0] - 1.0) < 1e-12


class _Journal(StepHandler):
    def __init__(self):
        self.calls = []

    def init(self, initial_state, t_final):
        self.calls.append(("init", initial_state.time, t_final))

    def handle_step(self, interpolator, is_last):
        self.calls.append(("step", interpolator.current_state.time, is_last))

    def finish(self, final_state):
        self.calls.append(("finish", final_state.time))


def test_stop_ends_integration_and_notifies_handlers():
    journal = _Journal()
    rk4 = RungeKutta(order=4, step=0.1)
    rk4.add_step_handler(journal)
    rk4.add_event_detector(FunctionEventDetector(lambda t, y: t - 0.35))
    final = rk4.integrate(_slope_system(1.0), ODEState(0.0, [0.0]), 1.0)

    assert abs(final.time - 0.35) < 1e-10
    assert journal.calls[0] == ("init", 0.0, 1.0)
    steps = [c for c in journal.calls if c[0] == "step"]
    assert [c[2] for c in steps] == [False, False, False, True]
    assert abs(steps[-1][1] - 0.35) < 1e-10
    assert journal.calls[-1] == ("finish", final.time)


def test_continue_reports_every_root_inside_the_range():
    recorder = _Recorder()
    rk4 = RungeKutta(order=4, step=0.1)
    rk4.add_event_detector(FunctionEventDetector(lambda t, y: np.sin(np.pi * t), handler=recorder))
    final = rk4.integrate(_slope_system(1.0), ODEState(0.0, [0.0]), 3.5)

    assert abs(final.time - 3.5) < 1e-12
    times = [t for t, _ in recorder.events]
    assert np.allclose(times, [1.0, 2.0, 3.0], atol=1e-9)
    assert [inc for _, inc in recorder.events] == [False, True, False]


def test_event_time_does_not_depend_on_the_step_size():
    sys = create_rhs_system(lambda t, y: np.array([y[1], -y[0]]), dim=2, name="oscillator")
    times = []
    for step in (0.2, 0.1, 0.05):
        rk4 = RungeKutta(order=4, step=step)
        rk4.add_event_detector(FunctionEventDetector(lambda t, y: y[0]))
        times.append(rk4.integrate(sys, ODEState(0.0, [1.0, 0.0]), 10.0).time)

    for t in times:
        assert abs(t - np.pi / 2.0) < 1e-4
    assert abs(times[2] - np.pi / 2.0) < 1e-5


def test_backward_integration_reports_physical_direction():
    recorder = _Recorder(action=Action.STOP)
    rk4 = RungeKutta(order=4, step=0.1)
    rk4.add_event_detector(
        FunctionEventDetector(lambda t, y: y[0] - 1.0, _EventConfig(direction=+1), handler=recorder)
    )
    final = rk4.integrate(_slope_system(1.0), ODEState(2.0, [2.0]), 0.0)

    assert abs(final.time - 1.0) < 1e-10
    assert recorder.events[0][1]


def test_zero_detectors_and_silent_detector_give_identical_results():
    sys = create_rhs_system(lambda t, y: np.array([y[1], -y[0]]), dim=2, name="oscillator")

    plain = RungeKutta(method="gill", step=0.1)
    reference = plain.integrate(sys, ODEState(0.0, [1.0, 0.0]), 5.0)

    watched = RungeKutta(method="gill", step=0.1)
    watched.add_event_detector(FunctionEventDetector(lambda t, y: 3.0 + y[0]))
    result = watched.integrate(sys, ODEState(0.0, [1.0, 0.0]), 5.0)

    assert result.time == reference.time
    assert np.array_equal(result.primary_state, reference.primary_state)
    assert watched.evaluations == plain.evaluations


def test_simultaneous_events_follow_registration_order():
    def run(labels):
        log = []
        rk4 = RungeKutta(order=4, step=0.1)
        for label in labels:
            rk4.add_event_detector(
                FunctionEventDetector(lambda t, y: t - 0.55, handler=_Recorder(label=label, log=log))
            )
        rk4.integrate(_slope_system(1.0), ODEState(0.0, [0.0]), 1.0)
        return log

    assert run(["first", "second"]) == ["first", "second"]
    assert run(["second", "first"]) == ["second", "first"]


def test_max_check_interval_finds_roots_hidden_inside_a_step():
    def g(t, y):
        return (t - 0.3) * (t - 0.6)

    coarse = _Recorder()
    rk = RungeKutta(order=4, step=1.0)
    rk.add_event_detector(FunctionEventDetector(g, handler=coarse))
    rk.integrate(_slope_system(1.0), ODEState(0.0, [0.0]), 1.0)
    assert coarse.events == []

    fine = _Recorder()
    rk = RungeKutta(order=4, step=1.0)
    rk.add_event_detector(FunctionEventDetector(g, _EventConfig(max_check_interval=0.1), handler=fine))
    rk.integrate(_slope_system(1.0), ODEState(0.0, [0.0]), 1.0)
    assert np.allclose([t for t, _ in fine.events], [0.3, 0.6], atol=1e-10)


class _BouncingBall(EventDetector):
    """Ground impact detector, the sign of g is flipped at each bounce to
    honour the alternation contract once the height is reset."""

    def __init__(self, restitution):
        super().__init__(_EventConfig(), handler=_BounceHandler(restitution))
        self.sign = 1.0
        self.bounces = []

    def init(self, initial_state, t_final):
        self.sign = 1.0
        self.bounces = []

    def g(self, state):
        return self.sign * state.primary_state[0]


class _BounceHandler(EventHandler):
    def __init__(self, restitution):
        self.restitution = restitution

    def event_occurred(self, state, detector, increasing):
        detector.bounces.append(state.time)
        return Action.RESET_STATE

    def reset_state(self, detector, state):
        detector.sign = -detector.sign
        h, v = state.primary_state
        return ODEState(state.time, [abs(h), -self.restitution * v])


def test_reset_state_bouncing_ball():
    gravity, e = 9.81, 0.8
    sys = create_rhs_system(lambda t, y: np.array([y[1], -gravity]), dim=2, name="ball")
    ball = _BouncingBall(e)
    rk4 = RungeKutta(order=4, step=0.01)
    rk4.add_event_detector(ball)
    final = rk4.integrate(sys, ODEState(0.0, [1.0, 0.0]), 1.5)

    t1 = np.sqrt(2.0 / gravity)
    v1 = e * gravity * t1
    t2 = t1 + 2.0 * v1 / gravity
    v2 = e * v1
    assert np.allclose(ball.bounces, [t1, t2], atol=1e-9)

    dt = 1.5 - t2
    assert abs(final.time - 1.5) < 1e-12
    assert abs(final.primary_state[0] - (v2 * dt - 0.5 * gravity * dt ** 2)) < 1e-8
    assert abs(final.primary_state[1] - (v2 - gravity * dt)) < 1e-8


def test_reset_derivatives_after_switching_the_equations():
    slope = {"value": 1.0}
    sys = create_rhs_system(lambda t, y: np.array([slope["value"]]), dim=1, name="switched")

    def switch(state, detector, increasing):
        slope["value"] = -1.0
        return Action.RESET_DERIVATIVES

    rk4 = RungeKutta(order=4, step=0.25)
    rk4.add_event_detector(FunctionEventDetector(lambda t, y: t - 1.0, handler=switch))
    final = rk4.integrate(sys, ODEState(0.0, [0.0]), 2.0)

    assert final.time == 2.0
    assert abs(final.primary_state[0]) < 1e-12
    assert final.primary_derivative[0] == -1.0


def test_broken_sign_alternation_raises_no_bracketing():
    class Shift(EventHandler):
        def event_occurred(self, state, detector, increasing):
            # Moving the threshold breaks the sign alternation contract.
            detector.offset = -0.5
            return Action.CONTINUE

    class Shifting(EventDetector):
        def __init__(self):
            super().__init__(handler=Shift())
            self.offset = 0.0

        def g(self, state):
            return state.primary_state[0] - 1.0 + self.offset

    detector = Shifting()
    rk = RungeKutta(order=4, step=0.3)
    rk.add_event_detector(detector)
    with pytest.raises(NoBracketingError):
        rk.integrate(_slope_system(1.0), ODEState(0.0, [0.0]), 2.0)


def test_slow_root_solver_raises_too_many_evaluations():
    cfg = _EventConfig(max_iteration_count=1)
    rk = RungeKutta(order=4, step=2.0)
    rk.add_event_detector(FunctionEventDetector(lambda t, y: y[0] ** 3 - 2.0, cfg))
    with pytest.raises(TooManyEvaluationsError):
        rk.integrate(_slope_system(1.0), ODEState(0.0, [0.0]), 2.0)


def test_best_effort_root_can_be_accepted():
    class Lenient(FunctionEventDetector):
        def __init__(self, g, cfg):
            super().__init__(g, cfg)
            self.failures = []

        def convergence_failure(self, lower, upper, estimate):
            self.failures.append((lower, upper))
            return estimate

    detector = Lenient(lambda t, y: y[0] ** 3 - 2.0, _EventConfig(max_iteration_count=1))
    rk = RungeKutta(order=4, step=2.0)
    rk.add_event_detector(detector)
    final = rk.integrate(_slope_system(1.0), ODEState(0.0, [0.0]), 2.0)

    assert detector.failures == [(0.0, 2.0)]
    assert 0.0 < final.time <= 2.0


def test_handler_must_return_an_action():
    rk = RungeKutta(order=4, step=0.1)
    rk.add_event_detector(FunctionEventDetector(lambda t, y: t - 0.5, handler=lambda s, d, inc: "stop"))
    with pytest.raises(TypeError):
        rk.integrate(_slope_system(1.0), ODEState(0.0, [0.0]), 1.0)


def test_event_config_validation():
    with pytest.raises(ValueError):
        _EventConfig(direction=2)
    with pytest.raises(ValueError):
        _EventConfig(convergence=0.0)
    with pytest.raises(ValueError):
        _EventConfig(max_check_interval=-1.0)
    with pytest.raises(ValueError):
        _EventConfig(max_iteration_count=0)
    with pytest.raises(TypeError):
        RungeKutta(order=4).add_event_detector(lambda t, y: y[0])


@pytest.mark.parametrize("step", [0.07, 1.0, 10.0])
def test_stop_lands_on_the_event_for_any_step_size(step):
    # Steps far larger than the event time must still end on the root.
    cfg = _EventConfig()
    rk4 = RungeKutta(order=4, step=step)
    rk4.add_event_detector(FunctionEventDetector(lambda t, y: t - 0.3, cfg))
    final = rk4.integrate(_slope_system(1.0), ODEState(0.0, [0.0]), 100.0)

    assert abs(final.time - 0.3) <= cfg.convergence
    assert abs(final.primary_state[0] - 0.3) <= 1e-11


def test_simultaneous_continue_events_give_no_empty_pieces():
    journal = _Journal()
    rk4 = RungeKutta(order=4, step=0.1)
    rk4.add_step_handler(journal)
    for _ in range(2):
        rk4.add_event_detector(FunctionEventDetector(lambda t, y: t - 0.55, handler=_Recorder()))
    rk4.integrate(_slope_system(1.0), ODEState(0.0, [0.0]), 1.0)

    ends = [0.0] + [c[1] for c in journal.calls if c[0] == "step"]
    flags = [c[2] for c in journal.calls if c[0] == "step"]
    assert len(flags) == 11
    assert all(b > a for a, b in zip(ends, ends[1:]))
    assert flags == [False] * 10 + [True]
