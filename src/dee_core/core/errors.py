"""Custom exception types for the Differentiable Eikonal Engine."""


class DEEError(Exception):
    """Base exception for all engine errors."""

    pass


class ConfigError(DEEError):
    """Prescription and settings errors."""

    pass


class TraceError(DEEError):
    """Ray tracing errors (vignetted chief ray, no valid rays, afocal systems)."""

    pass


class VariableError(DEEError):
    """Design-variable binding errors."""

    pass


class DesignError(DEEError):
    """Inverse design errors."""

    pass


__all__ = [
    "DEEError",
    "ConfigError",
    "TraceError",
    "VariableError",
    "DesignError",
]
