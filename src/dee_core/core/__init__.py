"""Core module with units, errors, logging, precision and config."""

__all__ = [
    "units",
    "errors",
    "logging",
    "precision",
    "config",
]
