"""
Custom exceptions for the algorithms package.
"""

class RKFlowError(Exception):
    """Base exception for rkflow errors.
    
    Parameters
    ----------
    message : str
        The error message.
    """

    def __init__(self, message: str):
        super().__init__(message)


class DimensionMismatchError(RKFlowError):
    """Raised when a state or derivative vector has the wrong length.

    Parameters
    ----------
    message : str
        The error message.
    """

    def __init__(self, message: str):
        super().__init__(message)


class InvalidTableauError(RKFlowError):
    """Raised when Butcher tableau coefficients have inconsistent shapes."""

    def __init__(self, message: str):
        super().__init__(message)


class NoBracketingError(RKFlowError):
    """Raised when an event switching function does not bracket a root.

    This is the symptom of a switching function that does not change sign
    across an event as the event machinery expects (see
    :class:`~rkflow.algorithms.integrators.events.EventDetector`).

    Parameters
    ----------
    message : str
        The error message.
    """

    def __init__(self, message: str):
        super().__init__(message)


class ConvergenceError(RKFlowError):
    """Raised when an algorithm fails to converge.
    
    Parameters
    ----------
    message : str
        The error message.
    """

    def __init__(self, message: str):
        super().__init__(message)


class TooManyEvaluationsError(ConvergenceError):
    """Raised when an evaluation or iteration budget is exhausted."""

    def __init__(self, message: str):
        super().__init__(message)
