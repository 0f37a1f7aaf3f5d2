import numpy as np
import pytest

from rkflow.algorithms.dynamics.expandable import (EquationsMapper,
                                                   ExpandableSystem)
from rkflow.algorithms.dynamics.rhs import create_rhs_system
from rkflow.algorithms.integrators import RungeKutta
from rkflow.algorithms.types.states import ODEState, ODEStateAndDerivative
from rkflow.algorithms.utils.exceptions import DimensionMismatchError


class _Quadrature:
    """s' = y, integrating the primary state."""

    dim = 1

    def rhs(self, t, y, y_dot, s):
        return y.copy()


def _decay_system():
    return create_rhs_system(lambda t, y: -y, dim=1, name="decay")


def test_mapper_splits_and_joins():
    mapper = EquationsMapper([2, 1, 3])
    y = np.arange(6.0)

    assert mapper.number_of_equations == 3
    assert mapper.total_dimension == 6
    assert np.array_equal(mapper.extract(y, 0), [0.0, 1.0])
    assert np.array_equal(mapper.extract(y, 1), [2.0])
    assert np.array_equal(mapper.extract(y, 2), [3.0, 4.0, 5.0])

    state = mapper.map_state(0.5, y)
    assert state.time == 0.5
    assert state.number_of_secondary_states == 2
    assert np.array_equal(mapper.complete_state(state), y)


def test_mapper_rejects_wrong_dimensions():
    mapper = EquationsMapper([2])
    with pytest.raises(DimensionMismatchError):
        mapper.complete_state(ODEState(0.0, np.zeros(3)))
    with pytest.raises(DimensionMismatchError):
        mapper.map_state(0.0, np.zeros(5))


def test_states_are_read_only_copies():
    y = np.array([1.0, 2.0])
    state = ODEState(0.0, y)
    y[0] = 10.0

    assert state.primary_state[0] == 1.0
    with pytest.raises(ValueError):
        state.primary_state[0] = 3.0


def test_state_with_derivative_checks_dimensions():
    with pytest.raises(ValueError):
        ODEStateAndDerivative(0.0, np.zeros(2))
    with pytest.raises(DimensionMismatchError):
        ODEStateAndDerivative(0.0, np.zeros(2), primary_derivative=np.zeros(3))

    state = ODEStateAndDerivative(
        1.0, [1.0], secondary_states=([2.0, 3.0],),
        primary_derivative=[4.0], secondary_derivatives=([5.0, 6.0],),
    )
    assert state.complete_dimension == 3
    assert np.array_equal(state.complete_state, [1.0, 2.0, 3.0])
    assert np.array_equal(state.complete_derivative, [4.0, 5.0, 6.0])


def test_integer_states_are_promoted_to_float():
    state = ODEState(0, [1, 2])
    assert state.primary_state.dtype == np.float64
    assert isinstance(state.time, float)


def test_compute_derivatives_with_secondary_equations():
    system = ExpandableSystem(_decay_system())
    index = system.add_secondary_equations(_Quadrature())

    assert index == 1
    assert system.dim == 2
    y_dot = system.compute_derivatives(0.0, np.array([2.0, 0.0]))
    assert np.array_equal(y_dot, [-2.0, 2.0])


def test_rhs_with_wrong_length_is_rejected():
    bad = create_rhs_system(lambda t, y: np.zeros(2), dim=1, name="bad")
    system = ExpandableSystem(bad)
    with pytest.raises(DimensionMismatchError):
        system.compute_derivatives(0.0, np.array([1.0]))


def test_secondary_quadrature_is_integrated_alongside():
    system = ExpandableSystem(_decay_system())
    system.add_secondary_equations(_Quadrature())
    rk4 = RungeKutta(order=4, step=0.01)

    final = rk4.integrate(system, ODEState(0.0, [1.0], ([0.0],)), 1.0)

    assert abs(final.primary_state[0] - np.exp(-1.0)) < 1e-9
    assert abs(final.secondary_states[0][0] - (1.0 - np.exp(-1.0))) < 1e-9
    assert abs(final.secondary_derivatives[0][0] - final.primary_state[0]) < 1e-15


def test_missing_secondary_state_is_rejected():
    system = ExpandableSystem(_decay_system())
    system.add_secondary_equations(_Quadrature())
    rk4 = RungeKutta(order=4, step=0.1)
    with pytest.raises(DimensionMismatchError):
        rk4.integrate(system, ODEState(0.0, [1.0]), 1.0)
