"""
Exception hierarchy for SLIDE.

Every error raised by the model derives from SlideError and from the
closest built-in exception, so callers can catch either.
"""


class SlideError(Exception):
    """Base class for all SLIDE errors."""


class ShapeMismatch(SlideError, ValueError):
    """An array-valued input does not match the grid it is meant for."""

    def __init__(self, name, expected, got, message=None):
        self.name = name
        self.expected = tuple(expected)
        self.got = tuple(got)
        super().__init__(
            message or f"'{name}' has shape {self.got}, expected {self.expected}"
        )


class InvalidState(SlideError, ValueError):
    """A precondition on the model state is violated (e.g. negative thickness)."""


class NonConvergence(SlideError, RuntimeError):
    """
    The nonlinear velocity iteration ran out of iterations.

    Parameters
    ----------
    message : str
        Description of the failure
    info : SolveInfo, optional
        Iteration record of the failed solve
    """

    def __init__(self, message, info=None):
        self.info = info
        super().__init__(message)


class UnstableStep(SlideError, RuntimeError):
    """
    A thickness update is inconsistent with the scheme's stability bound.

    Parameters
    ----------
    message : str
        Description of the failure
    dt : float, optional
        Requested time step
    max_dt : float, optional
        Largest stable time step for the current velocity field
    """

    def __init__(self, message, dt=None, max_dt=None):
        self.dt = dt
        self.max_dt = max_dt
        super().__init__(message)


class IOFailure(SlideError, OSError):
    """An output or restart file could not be written or read."""

    def __init__(self, message, path=None):
        self.path = path
        super().__init__(message)
