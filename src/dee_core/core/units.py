"""Unit conversion utilities for the eikonal engine.

Lens data and optical path lengths are kept in millimetres. Wavelengths
arrive in nanometres and are converted so that W and lambda share a unit.
"""

import math


def nm_to_mm(value: float | int) -> float:
    """Convert nanometres to millimetres."""
    return float(value) / 1.0e6


def mm_to_nm(value: float | int) -> float:
    """Convert millimetres to nanometres."""
    return float(value) * 1.0e6


def um_to_mm(value: float | int) -> float:
    """Convert micrometres to millimetres."""
    return float(value) / 1000.0


def mm_to_um(value: float | int) -> float:
    """Convert millimetres to micrometres."""
    return float(value) * 1000.0


def deg_to_rad(value: float | int) -> float:
    """Convert degrees to radians."""
    return float(value) * math.pi / 180.0


def rad_to_deg(value: float | int) -> float:
    """Convert radians to degrees."""
    return float(value) * 180.0 / math.pi


__all__ = [
    "nm_to_mm",
    "mm_to_nm",
    "um_to_mm",
    "mm_to_um",
    "deg_to_rad",
    "rad_to_deg",
]
