"""Analytic reference cases for the eikonal engine."""

from .cases import (
    CaseResult,
    bridge_identity_case,
    cartesian_ellipsoid_case,
    flat_plate_case,
    gradient_case,
    run_all,
    thick_lens_case,
)

__all__ = [
    "CaseResult",
    "bridge_identity_case",
    "flat_plate_case",
    "thick_lens_case",
    "cartesian_ellipsoid_case",
    "gradient_case",
    "run_all",
]
