"""Butcher tableaus for explicit Runge-Kutta methods.

A tableau is a plain value: the stepper in
:mod:`~rkflow.algorithms.integrators.rk` is generic and every method is just
a different :class:`~rkflow.algorithms.integrators.tableau.ButcherTableau`
instance. The coefficients of the predefined methods live in
:mod:`~rkflow.algorithms.integrators.coefficients.*` in the usual square
``(A, B, C)`` layout and are converted here to the compact triangular form.

References
----------
Butcher, J. C. (2008). "Numerical Methods for Ordinary Differential
Equations".

Luther, H. A. (1968). "An explicit sixth-order Runge-Kutta formula".
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from rkflow.algorithms.integrators.coefficients.euler import A as EULER_A
from rkflow.algorithms.integrators.coefficients.euler import B as EULER_B
from rkflow.algorithms.integrators.coefficients.euler import C as EULER_C
from rkflow.algorithms.integrators.coefficients.euler import P as EULER_P
from rkflow.algorithms.integrators.coefficients.gill import A as GILL_A
from rkflow.algorithms.integrators.coefficients.gill import B as GILL_B
from rkflow.algorithms.integrators.coefficients.gill import C as GILL_C
from rkflow.algorithms.integrators.coefficients.gill import P as GILL_P
from rkflow.algorithms.integrators.coefficients.luther import A as LUTHER_A
from rkflow.algorithms.integrators.coefficients.luther import B as LUTHER_B
from rkflow.algorithms.integrators.coefficients.luther import C as LUTHER_C
from rkflow.algorithms.integrators.coefficients.luther import P as LUTHER_P
from rkflow.algorithms.integrators.coefficients.midpoint import \
    A as MIDPOINT_A
from rkflow.algorithms.integrators.coefficients.midpoint import \
    B as MIDPOINT_B
from rkflow.algorithms.integrators.coefficients.midpoint import \
    C as MIDPOINT_C
from rkflow.algorithms.integrators.coefficients.midpoint import \
    P as MIDPOINT_P
from rkflow.algorithms.integrators.coefficients.rk4 import A as RK4_A
from rkflow.algorithms.integrators.coefficients.rk4 import B as RK4_B
from rkflow.algorithms.integrators.coefficients.rk4 import C as RK4_C
from rkflow.algorithms.integrators.coefficients.rk4 import P as RK4_P
from rkflow.algorithms.integrators.coefficients.three_eighths import \
    A as THREE_EIGHTHS_A
from rkflow.algorithms.integrators.coefficients.three_eighths import \
    B as THREE_EIGHTHS_B
from rkflow.algorithms.integrators.coefficients.three_eighths import \
    C as THREE_EIGHTHS_C
from rkflow.algorithms.integrators.coefficients.three_eighths import \
    P as THREE_EIGHTHS_P
from rkflow.algorithms.utils.exceptions import InvalidTableauError
from rkflow.utils.log_config import logger


def _as_floats(values, what: str) -> Tuple[float, ...]:
    try:
        return tuple(float(v) for v in values)
    except TypeError as exc:
        raise InvalidTableauError(f"Tableau {what} must be a sequence of numbers") from exc


def _fail(name: str, message: str) -> None:
    msg = f"Invalid Butcher tableau '{name}': {message}"
    logger.error(msg)
    raise InvalidTableauError(msg)


@dataclass(frozen=True)
class ButcherTableau:
    """Coefficients of an explicit Runge-Kutta method.

    Parameters
    ----------
    name : str
        Human-readable identifier of the method.
    c : sequence of float
        Time nodes of stages 1 .. s-1 (the node of stage 0 is always 0, so
        it is not stored). Length ``stages - 1``.
    a : sequence of sequence of float
        Stage coefficients, row ``i`` (for stage ``i + 1``) holds exactly
        ``i + 1`` entries. Length ``stages - 1``.
    b : sequence of float
        Weights of the stage derivatives in the end state. Its length
        defines the number of stages.
    order : int
        Formal order of accuracy of the method.
    p : sequence of sequence of float, optional
        Dense output matrix of shape ``(stages, degree)``. The weight of
        stage ``l`` at the fraction ``theta`` of the step is
        ``B_l(theta) = sum_j p[l][j] * theta**(j + 1)``.

    Raises
    ------
    :class:`~rkflow.algorithms.utils.exceptions.InvalidTableauError`
        If the lengths of ``a``, ``b``, ``c`` and ``p`` are not consistent.

    Notes
    -----
    Order conditions are not checked, a tableau only needs to be
    structurally valid.
    """

    name: str
    c: Tuple[float, ...]
    a: Tuple[Tuple[float, ...], ...]
    b: Tuple[float, ...]
    order: int
    p: Optional[Tuple[Tuple[float, ...], ...]] = None

    def __post_init__(self):
        b = _as_floats(self.b, "b")
        c = _as_floats(self.c, "c")
        a = tuple(_as_floats(row, "a row") for row in self.a)
        p = None if self.p is None else tuple(_as_floats(row, "p row") for row in self.p)

        stages = len(b)
        if stages < 1:
            _fail(self.name, "at least one stage is required")
        if len(c) != stages - 1:
            _fail(self.name, f"c has {len(c)} entries, expected {stages - 1}")
        if len(a) != stages - 1:
            _fail(self.name, f"a has {len(a)} rows, expected {stages - 1}")
        for i, row in enumerate(a):
            if len(row) != i + 1:
                _fail(self.name, f"row {i} of a has {len(row)} entries, expected {i + 1}")
        if p is not None:
            if len(p) != stages:
                _fail(self.name, f"p has {len(p)} rows, expected {stages}")
            degree = len(p[0])
            if degree < 1 or any(len(row) != degree for row in p):
                _fail(self.name, "p rows must all have the same non-zero length")
        if int(self.order) < 1:
            _fail(self.name, f"order must be positive, got {self.order}")

        object.__setattr__(self, "b", b)
        object.__setattr__(self, "c", c)
        object.__setattr__(self, "a", a)
        object.__setattr__(self, "p", p)
        object.__setattr__(self, "order", int(self.order))

        # Array views used by the kernels. The stage matrix is padded to a
        # square so that row k - 1 can be passed for stage k.
        a_matrix = np.zeros((max(stages - 1, 1), max(stages - 1, 1)), dtype=np.float64)
        for i, row in enumerate(a):
            a_matrix[i, :len(row)] = row
        arrays = {
            "_a_matrix": a_matrix,
            "_b_array": np.array(b, dtype=np.float64),
            "_c_array": np.array(c, dtype=np.float64),
            "_p_array": None if p is None else np.array(p, dtype=np.float64),
        }
        for key, arr in arrays.items():
            if arr is not None:
                arr.flags.writeable = False
            object.__setattr__(self, key, arr)

    @classmethod
    def from_matrix(
        cls,
        name: str,
        A: np.ndarray,
        B: np.ndarray,
        C: np.ndarray,
        order: int,
        P: Optional[np.ndarray] = None,
    ) -> "ButcherTableau":
        """Build a tableau from the square ``(A, B, C)`` layout.

        Parameters
        ----------
        name : str
            Identifier of the method.
        A : numpy.ndarray of shape (s, s)
            Strictly lower triangular stage matrix.
        B : numpy.ndarray of shape (s,)
            Weights.
        C : numpy.ndarray of shape (s,)
            Nodes, ``C[0]`` must be zero.
        order : int
            Formal order of the method.
        P : numpy.ndarray of shape (s, degree), optional
            Dense output matrix.

        Returns
        -------
        :class:`~rkflow.algorithms.integrators.tableau.ButcherTableau`
        """
        A = np.asarray(A, dtype=np.float64)
        B = np.asarray(B, dtype=np.float64)
        C = np.asarray(C, dtype=np.float64)
        s = B.size
        if A.shape != (s, s) or C.shape != (s,):
            _fail(name, f"expected A of shape {(s, s)} and C of shape {(s,)}, got {A.shape} and {C.shape}")
        if C[0] != 0.0:
            _fail(name, "the first node must be zero for an explicit method")
        if np.any(np.triu(A) != 0.0):
            _fail(name, "A must be strictly lower triangular for an explicit method")
        rows = tuple(tuple(A[i, :i]) for i in range(1, s))
        p = None if P is None else tuple(tuple(row) for row in np.asarray(P, dtype=np.float64))
        return cls(name=name, c=tuple(C[1:]), a=rows, b=tuple(B), order=order, p=p)

    @property
    def stages(self) -> int:
        """Number of stages, which is also the number of derivative
        evaluations per step."""
        return len(self.b)

    @property
    def has_dense_output(self) -> bool:
        return self.p is not None

    @property
    def a_matrix(self) -> np.ndarray:
        return self._a_matrix

    @property
    def b_array(self) -> np.ndarray:
        return self._b_array

    @property
    def c_array(self) -> np.ndarray:
        return self._c_array

    @property
    def p_array(self) -> Optional[np.ndarray]:
        return self._p_array

    def dense_weights(self, theta: float) -> Tuple[np.ndarray, np.ndarray]:
        """Return the stage weights ``B_l(theta)`` and their derivatives
        ``B_l'(theta)`` for the dense output.

        Parameters
        ----------
        theta : float
            Fraction of the step, 0 at the step start and 1 at its end.

        Returns
        -------
        weights, weight_derivatives : numpy.ndarray of shape (stages,)

        Raises
        ------
        ValueError
            If the tableau has no dense output matrix.
        """
        if self._p_array is None:
            raise ValueError(f"Tableau '{self.name}' has no dense output coefficients")
        degree = self._p_array.shape[1]
        powers = np.arange(1, degree + 1)
        weights = self._p_array @ (theta ** powers)
        weight_derivatives = self._p_array @ (powers * theta ** (powers - 1))
        return weights, weight_derivatives

    def __str__(self) -> str:
        return f"{self.name} ({self.stages} stages, order {self.order})"


EULER = ButcherTableau.from_matrix("Euler", EULER_A, EULER_B, EULER_C, order=1, P=EULER_P)

MIDPOINT = ButcherTableau.from_matrix("midpoint", MIDPOINT_A, MIDPOINT_B, MIDPOINT_C, order=2, P=MIDPOINT_P)

CLASSICAL_RK4 = ButcherTableau.from_matrix(
    "classical Runge-Kutta", RK4_A, RK4_B, RK4_C, order=4, P=RK4_P
)

GILL = ButcherTableau.from_matrix("Gill", GILL_A, GILL_B, GILL_C, order=4, P=GILL_P)

THREE_EIGHTHS = ButcherTableau.from_matrix(
    "3/8", THREE_EIGHTHS_A, THREE_EIGHTHS_B, THREE_EIGHTHS_C, order=4, P=THREE_EIGHTHS_P
)

LUTHER = ButcherTableau.from_matrix("Luther", LUTHER_A, LUTHER_B, LUTHER_C, order=6, P=LUTHER_P)


_TABLEAUS = {
    "euler": EULER,
    "midpoint": MIDPOINT,
    "rk4": CLASSICAL_RK4,
    "classical": CLASSICAL_RK4,
    "gill": GILL,
    "3/8": THREE_EIGHTHS,
    "three_eighths": THREE_EIGHTHS,
    "luther": LUTHER,
}


def get_tableau(name: str) -> ButcherTableau:
    """Look up a predefined tableau by name (case-insensitive).

    Accepted names are ``"euler"``, ``"midpoint"``, ``"rk4"`` (alias
    ``"classical"``), ``"gill"``, ``"3/8"`` (alias ``"three_eighths"``) and
    ``"luther"``.
    """
    key = str(name).strip().lower()
    if key not in _TABLEAUS:
        raise ValueError(
            f"Unknown Butcher tableau '{name}', available: {sorted(set(_TABLEAUS))}"
        )
    return _TABLEAUS[key]


def available_tableaus() -> Sequence[str]:
    return tuple(_TABLEAUS)
