"""Exceptions raised by the SIR tutorial models."""


class IntegrationError(RuntimeError):
    """Raised when the ODE integrator reports a failed solve."""
