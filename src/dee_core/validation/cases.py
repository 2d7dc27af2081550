"""Analytic test cases for validating traced eikonals and their derivatives.

Each case builds a system with a closed-form answer, evaluates it with the
engine and reports the deviation against a tolerance.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import torch

from ..bridge import phase_derivative, quantum_phase
from ..eikonal import chief_ray_opl, effective_focal_length, rms_wavefront
from ..engine import DesignVariable, DifferentiableEikonalEngine, rms_wavefront_merit
from ..surfaces import LensSystem, make_surface, stack_surfaces


@dataclass
class CaseResult:
    """Outcome of one reference case."""

    name: str
    passed: bool
    value: float
    reference: float
    tolerance: float

    @property
    def error(self) -> float:
        return abs(self.value - self.reference)


def _result(name: str, value: float, reference: float, tolerance: float) -> CaseResult:
    return CaseResult(
        name=name,
        passed=abs(value - reference) <= tolerance,
        value=float(value),
        reference=float(reference),
        tolerance=tolerance,
    )


def plano_convex_singlet(
    radius_mm: float = 50.0,
    thickness_mm: float = 5.0,
    n_glass: float = 1.5168,
    back_distance_mm: float = 93.0,
    pupil_radius_mm: float = 8.0,
    wavelength_mm: float = 5.5e-4,
) -> LensSystem:
    """Plano-convex singlet, curved side towards an object at infinity."""
    s0 = make_surface(1.0 / radius_mm, thickness_mm, 1.0, n_glass, 12.5)
    s1 = make_surface(0.0, back_distance_mm, n_glass, 1.0, 12.5)
    return LensSystem(
        stack_surfaces([s0, s1]), pupil_radius=pupil_radius_mm, wavelength=wavelength_mm
    )


def cartesian_ellipsoid(
    radius_mm: float = 50.0, n_glass: float = 1.5, pupil_radius_mm: float = 10.0
) -> LensSystem:
    """Single refracting ellipsoid with k = -1/n^2, image plane at its far focus."""
    focus = n_glass * radius_mm / (n_glass - 1.0)
    s0 = make_surface(1.0 / radius_mm, focus, 1.0, n_glass, 25.0, conic=-1.0 / n_glass**2)
    return LensSystem(stack_surfaces([s0]), pupil_radius=pupil_radius_mm)


def bridge_identity_case(wavelength_mm: float = 6.328e-4) -> CaseResult:
    """One wave of path is 2*pi of phase, and dphi/dW = 2*pi/lambda."""
    phase = quantum_phase(wavelength_mm, wavelength_mm)
    slope = float(phase_derivative(1.0, wavelength_mm))
    value = abs(phase - 2.0 * math.pi) + abs(slope * wavelength_mm - 2.0 * math.pi)
    return _result("bridge identity", value, 0.0, 1e-12)


def flat_plate_case(thickness_mm: float = 10.0, n_glass: float = 1.5, gap_mm: float = 20.0) -> CaseResult:
    """Axial OPL through a plane-parallel plate is sum(n_i * t_i)."""
    system = LensSystem(
        stack_surfaces(
            [
                make_surface(0.0, thickness_mm, 1.0, n_glass),
                make_surface(0.0, gap_mm, n_glass, 1.0),
            ]
        )
    )
    with torch.no_grad():
        opl = float(chief_ray_opl(system))
    return _result("flat plate OPL", opl, n_glass * thickness_mm + gap_mm, 1e-10)


def thick_lens_case(
    r1_mm: float = 50.0, r2_mm: float = -50.0, thickness_mm: float = 5.0, n_glass: float = 1.5168
) -> CaseResult:
    """Paraxial EFL against the lensmaker thick-lens formula."""
    c1, c2 = 1.0 / r1_mm, 1.0 / r2_mm
    power = (n_glass - 1.0) * (c1 - c2) + thickness_mm * (n_glass - 1.0) ** 2 * c1 * c2 / n_glass
    system = LensSystem(
        stack_surfaces(
            [
                make_surface(c1, thickness_mm, 1.0, n_glass),
                make_surface(c2, 100.0, n_glass, 1.0),
            ]
        )
    )
    with torch.no_grad():
        efl = float(effective_focal_length(system))
    return _result("thick lens EFL", efl, 1.0 / power, 1e-9)


def cartesian_ellipsoid_case() -> CaseResult:
    """A refracting ellipsoid with e = 1/n is free of spherical aberration."""
    system = cartesian_ellipsoid()
    with torch.no_grad():
        rms = float(rms_wavefront(system, 0.0, samples=31))
    return _result("cartesian ellipsoid RMS OPD", rms, 0.0, 1e-9)


def gradient_case(step: float = 1e-6) -> CaseResult:
    """Autodiff gradient of the wavefront merit agrees with central differences."""
    system = plano_convex_singlet()
    engine = DifferentiableEikonalEngine(
        system,
        [DesignVariable(0, "curvature"), DesignVariable(0, "conic"), DesignVariable(1, "thickness")],
        merit=rms_wavefront_merit(0.0, samples=15),
    )
    err = engine.check_gradient(engine.x0, step)
    return _result("autodiff vs finite differences", err, 0.0, 1e-5)


def run_all() -> list[CaseResult]:
    """Run every reference case."""
    return [
        bridge_identity_case(),
        flat_plate_case(),
        thick_lens_case(),
        cartesian_ellipsoid_case(),
        gradient_case(),
    ]
