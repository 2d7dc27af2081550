"""The Differentiable Eikonal Engine.

Binds a flat design vector ``x`` to entries of a lens prescription and
differentiates scalar eikonal merits with respect to it. Gradients and
Hessians come from torch autograd; finite differences are kept only as a
cross-check.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

import numpy as np
import torch

from .bridge import quantum_phase
from .core.errors import VariableError
from .core.logging import get_logger
from .core.precision import DEFAULT_DTYPE
from .eikonal import chief_ray_opl, effective_focal_length, wavefront_variance
from .surfaces import PARAM_COLUMNS, LensSystem

logger = get_logger(__name__)

Merit = Callable[[LensSystem], torch.Tensor]


@dataclass(frozen=True)
class DesignVariable:
    """One free prescription entry.

    Attributes:
        surface: Zero-based surface index
        param: 'curvature', 'thickness' or 'conic'
        lower: Optional lower bound
        upper: Optional upper bound
    """

    surface: int
    param: str
    lower: float | None = None
    upper: float | None = None


class VariableSet:
    """Maps a flat design vector onto a surfaces tensor."""

    def __init__(self, variables: Sequence[DesignVariable], num_surfaces: int):
        if not variables:
            raise VariableError("At least one design variable is required")
        seen = set()
        for v in variables:
            if v.param not in PARAM_COLUMNS:
                raise VariableError(
                    f"Unknown parameter '{v.param}'. Allowed: {sorted(PARAM_COLUMNS)}"
                )
            if not 0 <= v.surface < num_surfaces:
                raise VariableError(
                    f"Surface index {v.surface} out of range for {num_surfaces} surfaces"
                )
            key = (v.surface, v.param)
            if key in seen:
                raise VariableError(f"Duplicate design variable {key}")
            seen.add(key)
            if v.lower is not None and v.upper is not None and v.lower > v.upper:
                raise VariableError(f"Lower bound exceeds upper bound for {key}")

        self.variables = list(variables)
        self.num_surfaces = num_surfaces
        self._rows = torch.tensor([v.surface for v in self.variables], dtype=torch.long)
        self._cols = torch.tensor([PARAM_COLUMNS[v.param] for v in self.variables], dtype=torch.long)

    def __len__(self) -> int:
        return len(self.variables)

    @property
    def names(self) -> list[str]:
        return [f"s{v.surface}.{v.param}" for v in self.variables]

    def apply(self, surfaces: torch.Tensor, x: torch.Tensor) -> torch.Tensor:
        """Return a new surfaces tensor with the design values written in."""
        rows = self._rows.to(surfaces.device)
        cols = self._cols.to(surfaces.device)
        return surfaces.index_put((rows, cols), x.to(dtype=surfaces.dtype))

    def initial(self, system: LensSystem) -> np.ndarray:
        """Current design values read from a system."""
        s = system.surfaces.detach()
        return s[self._rows.to(s.device), self._cols.to(s.device)].cpu().numpy().astype(np.float64)

    def bounds(self) -> list[tuple[float | None, float | None]] | None:
        """SciPy-style bounds, or None when no variable is bounded.

        Thicknesses without an explicit lower bound are held at or above zero.
        """
        pairs = [
            (0.0 if v.param == "thickness" and v.lower is None else v.lower, v.upper)
            for v in self.variables
        ]
        if all(lo is None and hi is None for lo, hi in pairs):
            return None
        return pairs


class DifferentiableEikonalEngine:
    """Evaluate and differentiate an eikonal merit over design variables.

    Args:
        system: Nominal lens system
        variables: Design variables (VariableSet or list of DesignVariable)
        merit: Callable mapping a LensSystem to a scalar tensor; defaults to the
            on-axis chief-ray optical path length
    """

    def __init__(
        self,
        system: LensSystem,
        variables: VariableSet | Sequence[DesignVariable],
        merit: Merit | None = None,
    ):
        if not isinstance(variables, VariableSet):
            variables = VariableSet(variables, system.num_surfaces)
        self.system = system
        self.variables = variables
        self.merit = merit if merit is not None else chief_opl_merit()
        self.evaluations = 0

    @property
    def x0(self) -> np.ndarray:
        return self.variables.initial(self.system)

    def _to_tensor(self, x) -> torch.Tensor:  # type: ignore[no-untyped-def]
        return torch.as_tensor(np.asarray(x, dtype=np.float64), dtype=DEFAULT_DTYPE).to(
            self.system.device
        )

    def system_at(self, x) -> LensSystem:  # type: ignore[no-untyped-def]
        """Lens system with the design vector applied."""
        xt = x if isinstance(x, torch.Tensor) else self._to_tensor(x)
        return self.system.with_surfaces(self.variables.apply(self.system.surfaces.detach(), xt))

    def _merit_tensor(self, xt: torch.Tensor) -> torch.Tensor:
        self.evaluations += 1
        return self.merit(self.system_at(xt))

    def value(self, x) -> float:  # type: ignore[no-untyped-def]
        """Merit at x."""
        with torch.no_grad():
            return float(self._merit_tensor(self._to_tensor(x)))

    def value_and_gradient(self, x) -> tuple[float, np.ndarray]:  # type: ignore[no-untyped-def]
        """Merit and its exact gradient as float64 numpy, the form SciPy expects."""
        xt = self._to_tensor(x).requires_grad_(True)
        m = self._merit_tensor(xt)
        (grad,) = torch.autograd.grad(m, xt)
        value = float(m.detach())
        grad_np = grad.detach().cpu().numpy()
        logger.debug(
            "merit evaluated",
            {"merit": value, "grad_norm": float(np.linalg.norm(grad_np)), "x": np.asarray(x)},
        )
        return value, grad_np

    def gradient(self, x) -> np.ndarray:  # type: ignore[no-untyped-def]
        """d merit / dx by reverse-mode autodiff."""
        return self.value_and_gradient(x)[1]

    def hessian(self, x) -> np.ndarray:  # type: ignore[no-untyped-def]
        """Second derivatives of the merit, shape (n, n)."""
        xt = self._to_tensor(x)
        h = torch.autograd.functional.hessian(self._merit_tensor, xt)
        return h.detach().cpu().numpy()

    def phase(self, x) -> float:  # type: ignore[no-untyped-def]
        """Merit mapped through the bridge identity (radians when the merit is a path)."""
        return float(quantum_phase(self.value(x), self.system.wavelength))

    def phase_gradient(self, x) -> np.ndarray:  # type: ignore[no-untyped-def]
        """Gradient of 2*pi*merit/lambda, differentiated through the bridge."""
        xt = self._to_tensor(x).requires_grad_(True)
        phi = quantum_phase(self._merit_tensor(xt), self.system.wavelength)
        (grad,) = torch.autograd.grad(phi, xt)
        return grad.detach().cpu().numpy()

    def finite_difference_gradient(self, x, step: float = 1e-6) -> np.ndarray:  # type: ignore[no-untyped-def]
        """Central-difference gradient."""
        x = np.asarray(x, dtype=np.float64)
        grad = np.zeros_like(x)
        for i in range(x.size):
            e = np.zeros_like(x)
            e[i] = step
            grad[i] = (self.value(x + e) - self.value(x - e)) / (2.0 * step)
        return grad

    def check_gradient(self, x, step: float = 1e-6) -> float:  # type: ignore[no-untyped-def]
        """Max deviation between autodiff and finite differences, relative to the largest component."""
        g_ad = self.gradient(x)
        g_fd = self.finite_difference_gradient(x, step)
        scale = max(float(np.max(np.abs(g_fd))), 1e-300)
        err = float(np.max(np.abs(g_ad - g_fd))) / scale
        logger.info("gradient check", {"relative_error": err, "step": step})
        return err


def chief_opl_merit(field: float = 0.0) -> Merit:
    """Chief-ray optical path length (mm)."""

    def merit(system: LensSystem) -> torch.Tensor:
        return chief_ray_opl(system, field)

    return merit


def rms_wavefront_merit(field: float = 0.0, samples: int = 21, in_waves: bool = True) -> Merit:
    """Squared RMS wavefront error, in waves^2 or mm^2.

    The square keeps the merit smooth at a perfect wavefront.
    """

    def merit(system: LensSystem) -> torch.Tensor:
        var = wavefront_variance(system, field, samples)
        if in_waves:
            return var / system.wavelength**2
        return var

    return merit


def efl_merit(target: float) -> Merit:
    """Squared relative deviation of the effective focal length from a target."""
    if target == 0:
        raise VariableError("Target focal length must be non-zero")

    def merit(system: LensSystem) -> torch.Tensor:
        return ((effective_focal_length(system) - target) / target) ** 2

    return merit


def combined_merit(
    efl_mm: float | None = None,
    w_efl: float = 1.0,
    w_wavefront: float = 1.0,
    fields: Sequence[float] = (0.0,),
    samples: int = 21,
) -> Merit:
    """Weighted sum of the focal-length term and per-field wavefront terms."""
    terms: list[tuple[float, Merit]] = []
    if efl_mm is not None and w_efl > 0:
        terms.append((w_efl, efl_merit(efl_mm)))
    if w_wavefront > 0:
        for f in fields:
            terms.append((w_wavefront / len(fields), rms_wavefront_merit(f, samples)))
    if not terms:
        raise VariableError("Merit has no active terms")

    def merit(system: LensSystem) -> torch.Tensor:
        total = None
        for weight, term in terms:
            value = weight * term(system)
            total = value if total is None else total + value
        return total

    return merit


__all__ = [
    "DesignVariable",
    "VariableSet",
    "DifferentiableEikonalEngine",
    "chief_opl_merit",
    "rms_wavefront_merit",
    "efl_merit",
    "combined_merit",
]
