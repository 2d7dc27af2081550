"""Forward analysis and inverse design: the two directions of the W/MN duality.

``analyze`` goes from a prescription to its eikonal (Walther's direction);
``solve`` goes from a target eikonal merit back to a prescription
(Matsui-Nariai's direction) with SciPy driven by exact engine gradients.
"""

from __future__ import annotations

import math
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Sequence

import numpy as np
import torch
from scipy.optimize import minimize

from .bridge import in_waves, quantum_phase
from .core.errors import DesignError, TraceError
from .core.logging import get_logger
from .eikonal import (
    back_focal_distance,
    chief_ray_opl,
    effective_focal_length,
    image_point,
    rms_wavefront,
)
from .engine import DifferentiableEikonalEngine
from .surfaces import LensSystem

logger = get_logger(__name__)

# scipy.optimize.minimize methods that accept bounds
BOUNDED_METHODS = {"L-BFGS-B", "TNC", "SLSQP", "Powell", "trust-constr", "Nelder-Mead"}


@dataclass
class FieldReport:
    """Eikonal summary for one field point."""

    field: float
    chief_opl_mm: float
    chief_phase_rad: float
    rms_opd_mm: float
    rms_opd_waves: float
    image_point_mm: list[float]


@dataclass
class AnalysisReport:
    """Forward analysis of a lens system."""

    wavelength_mm: float
    efl_mm: float | None
    bfd_mm: float | None
    fields: list[FieldReport] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def analyze(system: LensSystem, fields: Sequence[float] = (0.0,), samples: int = 21) -> AnalysisReport:
    """Trace a system and report its eikonal quantities.

    Args:
        system: Lens system
        fields: Field angles (rad) or object heights (mm)
        samples: Pupil grid samples across the diameter

    Returns:
        AnalysisReport; EFL and BFD are None for afocal systems
    """
    with torch.no_grad():
        try:
            efl = float(effective_focal_length(system))
            bfd = float(back_focal_distance(system))
        except TraceError:
            efl = bfd = None

        report = AnalysisReport(wavelength_mm=float(system.wavelength), efl_mm=efl, bfd_mm=bfd)
        for f in fields:
            opl = chief_ray_opl(system, f)
            rms = float(rms_wavefront(system, f, samples))
            report.fields.append(
                FieldReport(
                    field=float(f),
                    chief_opl_mm=float(opl),
                    chief_phase_rad=float(quantum_phase(opl, system.wavelength)),
                    rms_opd_mm=rms,
                    rms_opd_waves=float(in_waves(rms, system.wavelength)),
                    image_point_mm=[float(v) for v in image_point(system, f)],
                )
            )

    logger.info(
        "analysis complete",
        {"efl_mm": efl, "bfd_mm": bfd, "num_fields": len(report.fields)},
    )
    return report


@dataclass
class DesignResult:
    """Outcome of an inverse design run."""

    x: np.ndarray
    merit: float
    initial_merit: float
    iterations: int
    evaluations: int
    success: bool
    message: str
    system: LensSystem
    elapsed_s: float = 0.0

    def to_dict(self, names: Sequence[str] | None = None) -> dict[str, Any]:
        values = [float(v) for v in self.x]
        out: dict[str, Any] = {
            "merit": self.merit,
            "initial_merit": self.initial_merit,
            "iterations": self.iterations,
            "evaluations": self.evaluations,
            "success": self.success,
            "message": self.message,
            "elapsed_s": self.elapsed_s,
        }
        if names is not None:
            out["variables"] = dict(zip(names, values))
        else:
            out["x"] = values
        return out


def solve(
    engine: DifferentiableEikonalEngine,
    x0: Sequence[float] | None = None,
    method: str = "L-BFGS-B",
    maxiter: int = 200,
    tol: float = 1e-14,
    strict: bool = False,
) -> DesignResult:
    """Minimize the engine's merit over its design variables.

    Args:
        engine: Configured engine
        x0: Starting design vector; defaults to the engine's nominal system
        method: scipy.optimize.minimize method
        maxiter: Iteration cap
        tol: Convergence tolerance passed to SciPy
        strict: Raise DesignError when SciPy reports failure

    Returns:
        DesignResult with the optimized, detached lens system

    Raises:
        DesignError: If the starting merit is not finite, or on failure when strict
    """
    x0 = engine.x0 if x0 is None else np.asarray(x0, dtype=np.float64)
    if x0.shape != (len(engine.variables),):
        raise DesignError(f"x0 must have shape ({len(engine.variables)},), got {x0.shape}")

    f0 = engine.value(x0)
    if not math.isfinite(f0):
        raise DesignError(f"Initial merit is not finite: {f0}")

    bounds = engine.variables.bounds() if method in BOUNDED_METHODS else None
    logger.info(
        "inverse design started",
        {"method": method, "initial_merit": f0, "variables": engine.variables.names},
    )

    start = time.perf_counter()
    evals_before = engine.evaluations
    res = minimize(
        engine.value_and_gradient,
        x0,
        jac=True,
        method=method,
        bounds=bounds,
        tol=tol,
        options={"maxiter": maxiter},
    )
    elapsed = time.perf_counter() - start

    x = np.asarray(res.x, dtype=np.float64)
    with torch.no_grad():
        system = engine.system_at(x)
        system = system.with_surfaces(system.surfaces.detach().clone())

    result = DesignResult(
        x=x,
        merit=float(res.fun),
        initial_merit=f0,
        iterations=int(getattr(res, "nit", 0)),
        evaluations=engine.evaluations - evals_before,
        success=bool(res.success),
        message=str(res.message),
        system=system,
        elapsed_s=elapsed,
    )
    logger.info("inverse design finished", result.to_dict(engine.variables.names))

    if strict and not result.success:
        raise DesignError(f"Inverse design did not converge: {result.message}")
    return result


__all__ = [
    "FieldReport",
    "AnalysisReport",
    "analyze",
    "DesignResult",
    "solve",
]
