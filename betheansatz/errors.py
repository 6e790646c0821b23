"""Exception and warning classes raised by the Bethe-Ansatz solvers."""


class BetheAnsatzError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(BetheAnsatzError, ValueError):
    """Invalid or missing run parameters, detected before any computation."""


class IntegrationNonConvergence(BetheAnsatzError, RuntimeError):
    """The quadrature routine could not reach the requested tolerance."""


class SolverNonConvergence(BetheAnsatzError, RuntimeError):
    """The self-consistency iteration hit its iteration cap."""

    def __init__(self, message, residuals=None):
        super().__init__(message)
        self.residuals = list(residuals) if residuals is not None else []


class LogFileWarning(UserWarning):
    """A per-worker log file could not be opened or written."""
