"""Scalar eikonal quantities of a lens system.

The eikonal W here is the optical path length from the object reference
(object point, or the incoming plane wavefront through the first vertex) to
the image side. Wavefront errors are optical path differences against the
chief ray, both measured to a reference sphere centred on the chief-ray image
point:

    OPD(p) = OPL(ray through p) - OPL(chief ray)

so a positive OPD means the ray lags the chief ray.
"""

from __future__ import annotations

import numpy as np
import torch

from .bridge import in_waves
from .core.errors import TraceError
from .pupil import chief_point, pupil_grid, pupil_points
from .surfaces import CURVATURE, N_AFTER, N_BEFORE, THICKNESS, LensSystem
from .trace import launch_rays, trace_surfaces, transfer_to_image

# |C| below this is treated as an afocal system
AFOCAL_TOL = 1e-15


def chief_ray_opl(system: LensSystem, field: float = 0.0) -> torch.Tensor:
    """Optical path length of the chief ray to the image plane.

    Raises:
        TraceError: If the chief ray is vignetted
    """
    bundle = transfer_to_image(
        system, trace_surfaces(system, launch_rays(system, chief_point(system.device), field))
    )
    if not bool(bundle.valid[0]):
        raise TraceError(f"Chief ray vignetted at field {field}")
    return bundle.opl[0]


def image_point(system: LensSystem, field: float = 0.0) -> torch.Tensor:
    """Chief-ray intersection with the image plane, shape (3,)."""
    bundle = transfer_to_image(
        system, trace_surfaces(system, launch_rays(system, chief_point(system.device), field))
    )
    if not bool(bundle.valid[0]):
        raise TraceError(f"Chief ray vignetted at field {field}")
    return bundle.position[0]


def wavefront(
    system: LensSystem, field: float, pupil_xy: torch.Tensor
) -> tuple[torch.Tensor, torch.Tensor]:
    """Optical path difference across the pupil.

    Args:
        system: Lens system
        field: Field angle (rad) or object height (mm)
        pupil_xy: (M, 2) normalized pupil coordinates

    Returns:
        (opd, valid): OPD in mm and validity mask, both shape (M,)

    Raises:
        TraceError: If the chief ray is vignetted
    """
    pts = torch.cat([chief_point(system.device), pupil_xy.to(system.device)], dim=0)
    last = trace_surfaces(system, launch_rays(system, pts, field))
    image = transfer_to_image(system, last)
    if not bool(image.valid[0]):
        raise TraceError(f"Chief ray vignetted at field {field}")

    center = image.position[0]
    radius = torch.linalg.norm(center - last.position[0])

    # Near intersection of each ray with the reference sphere
    w = last.position - center
    b = torch.sum(last.direction * w, dim=-1)
    disc = b * b - (torch.sum(w * w, dim=-1) - radius * radius)
    on_sphere = disc >= 0.0
    sign = torch.where(b >= 0.0, torch.ones_like(b), -torch.ones_like(b))
    s = -b + sign * torch.sqrt(torch.clamp(disc, min=1e-30))

    opl = last.opl + system.image_index * s
    opd = opl[1:] - opl[0]
    valid = image.valid[1:] & on_sphere[1:]
    opd = torch.where(valid, opd, torch.zeros_like(opd))
    return opd, valid


def wavefront_variance(system: LensSystem, field: float = 0.0, samples: int = 21) -> torch.Tensor:
    """Piston-removed mean-square OPD (mm^2) over valid pupil samples."""
    opd, valid = wavefront(system, field, pupil_points(samples, device=system.device))
    weight = valid.to(opd.dtype)
    count = weight.sum()
    if float(count) == 0.0:
        raise TraceError(f"No valid rays reach the image at field {field}")
    mean = torch.sum(weight * opd) / count
    return torch.sum(weight * (opd - mean) ** 2) / count


def rms_wavefront(system: LensSystem, field: float = 0.0, samples: int = 21) -> torch.Tensor:
    """RMS wavefront error in mm, piston removed."""
    return torch.sqrt(wavefront_variance(system, field, samples))


def wavefront_map(system: LensSystem, field: float = 0.0, samples: int = 65) -> np.ndarray:
    """OPD map in waves on a square pupil grid, NaN outside the pupil or for lost rays."""
    with torch.no_grad():
        px, py, inside = pupil_grid(samples, device=system.device)
        pts = torch.stack([px[inside], py[inside]], dim=-1)
        opd, valid = wavefront(system, field, pts)
        waves = in_waves(opd, system.wavelength)
        values = torch.where(valid, waves, torch.full_like(waves, float("nan")))
        out = torch.full((samples, samples), float("nan"), dtype=waves.dtype, device=waves.device)
        out[inside] = values
    return out.cpu().numpy()


def _matrix(a: torch.Tensor, b: torch.Tensor, c: torch.Tensor, d: torch.Tensor) -> torch.Tensor:
    return torch.stack([torch.stack([a, b]), torch.stack([c, d])])


def paraxial_matrix(system: LensSystem) -> torch.Tensor:
    """Reduced-angle (y, n*u) system matrix from the first to the last surface."""
    s = system.surfaces
    one = s.new_ones(())
    zero = s.new_zeros(())
    m = _matrix(one, zero, zero, one)
    for i in range(system.num_surfaces):
        power = (s[i, N_AFTER] - s[i, N_BEFORE]) * s[i, CURVATURE]
        m = _matrix(one, zero, -power, one) @ m
        if i < system.num_surfaces - 1:
            m = _matrix(one, s[i, THICKNESS] / s[i, N_AFTER], zero, one) @ m
    return m


def effective_focal_length(system: LensSystem) -> torch.Tensor:
    """EFL = -1/C of the reduced system matrix.

    Raises:
        TraceError: For an afocal system
    """
    m = paraxial_matrix(system)
    if abs(float(m[1, 0].detach())) < AFOCAL_TOL:
        raise TraceError("System is afocal; effective focal length is undefined")
    return -1.0 / m[1, 0]


def back_focal_distance(system: LensSystem) -> torch.Tensor:
    """Distance from the last vertex to the paraxial focus, -A*n'/C."""
    m = paraxial_matrix(system)
    if abs(float(m[1, 0].detach())) < AFOCAL_TOL:
        raise TraceError("System is afocal; back focal distance is undefined")
    return -m[0, 0] * system.image_index / m[1, 0]


__all__ = [
    "chief_ray_opl",
    "image_point",
    "wavefront",
    "wavefront_variance",
    "rms_wavefront",
    "wavefront_map",
    "paraxial_matrix",
    "effective_focal_length",
    "back_focal_distance",
]
