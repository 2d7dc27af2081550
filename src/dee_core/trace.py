"""Differentiable real-ray tracing through sequential conic surfaces.

Every operation is a torch expression on float64 tensors, so optical path
lengths carry gradients with respect to the prescription. Rays that miss a
surface, fall outside a clear aperture, travel backwards between surfaces or
are totally internally reflected are flagged in ``valid`` but keep finite
coordinates; masking happens downstream.
"""

from __future__ import annotations

from dataclasses import dataclass

import torch

from .surfaces import (
    APERTURE_RADIUS,
    CONIC,
    CURVATURE,
    N_AFTER,
    N_BEFORE,
    LensSystem,
)

# Floor for square-root arguments; keeps derivatives finite at grazing incidence
SQRT_EPS = 1e-30


def _safe_sqrt(x: torch.Tensor) -> torch.Tensor:
    return torch.sqrt(torch.clamp(x, min=SQRT_EPS))


def _dot(a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
    return torch.sum(a * b, dim=-1)


@dataclass
class RayBundle:
    """A bundle of M rays.

    Attributes:
        position: (M, 3) current points in mm
        direction: (M, 3) unit direction cosines
        opl: (M,) accumulated optical path length in mm
        valid: (M,) bool, False once a ray is vignetted or fails to refract
    """

    position: torch.Tensor
    direction: torch.Tensor
    opl: torch.Tensor
    valid: torch.Tensor

    def __len__(self) -> int:
        return int(self.position.shape[0])


def launch_rays(system: LensSystem, pupil_xy: torch.Tensor, field: float = 0.0) -> RayBundle:
    """Create rays aimed through normalized pupil points on the first vertex plane.

    For an object at infinity ``field`` is the field angle in radians (in the
    y-z plane) and rays start on the plane wavefront through the first vertex,
    where the OPL is zero. For a finite object ``field`` is the object height
    in mm and rays start at the object point.

    Args:
        system: Lens system
        pupil_xy: (M, 2) normalized pupil coordinates
        field: Field angle (rad) or object height (mm)

    Returns:
        RayBundle before the first surface
    """
    pupil_xy = pupil_xy.to(dtype=system.surfaces.dtype, device=system.device)
    m = pupil_xy.shape[0]
    xy = pupil_xy * system.pupil_radius
    target = torch.cat([xy, xy.new_zeros((m, 1))], dim=-1)

    if system.is_infinite_conjugate:
        theta = torch.as_tensor(field, dtype=target.dtype, device=target.device)
        d = torch.stack([torch.zeros_like(theta), torch.sin(theta), torch.cos(theta)])
        direction = d.expand(m, 3)
        # Project pupil points onto the wavefront plane through the origin
        position = target - _dot(target, direction).unsqueeze(-1) * direction
    else:
        obj = torch.tensor(
            [0.0, float(field), -float(system.object_distance)],
            dtype=target.dtype,
            device=target.device,
        )
        delta = target - obj
        direction = delta / torch.linalg.norm(delta, dim=-1, keepdim=True)
        position = obj.expand(m, 3)

    opl = target.new_zeros(m)
    valid = torch.ones(m, dtype=torch.bool, device=target.device)
    return RayBundle(position=position, direction=direction, opl=opl, valid=valid)


def intersect(
    position: torch.Tensor,
    direction: torch.Tensor,
    z_vertex: torch.Tensor,
    curvature: torch.Tensor,
    conic: torch.Tensor,
) -> tuple[torch.Tensor, torch.Tensor]:
    """Distance along each ray to a conic surface with vertex at z_vertex.

    Solves c(x^2 + y^2 + (1+k) z^2) - 2z = 0 for the local ray
    p(t) = o + t d. The root taken is (-b - sqrt(disc)) / a, which reduces
    to t = -o_z/d_z for a flat surface. It is evaluated as
    c / (-b + sqrt(disc)) when b <= 0 and directly when b > 0, so neither
    branch subtracts nearly equal numbers.

    Returns:
        (t, hit): signed distances (M,) and mask of rays that meet the surface
    """
    ox = position[:, 0]
    oy = position[:, 1]
    oz = position[:, 2] - z_vertex
    dx = direction[:, 0]
    dy = direction[:, 1]
    dz = direction[:, 2]
    q = 1.0 + conic

    a = curvature * (dx * dx + dy * dy + q * dz * dz)
    b = curvature * (ox * dx + oy * dy + q * oz * dz) - dz
    c = curvature * (ox * ox + oy * oy + q * oz * oz) - 2.0 * oz

    disc = b * b - a * c
    root = _safe_sqrt(disc)
    forward = b <= 0.0
    numer = torch.where(forward, c, -b - root)
    denom = torch.where(forward, -b + root, a)
    tiny = torch.finfo(denom.dtype).tiny
    ok = torch.abs(denom) > tiny
    hit = (disc >= 0.0) & ok
    denom = torch.where(ok, denom, torch.full_like(denom, tiny))
    return numer / denom, hit


def surface_normal(local: torch.Tensor, curvature: torch.Tensor, conic: torch.Tensor) -> torch.Tensor:
    """Unit surface normal at local points (vertex at origin), oriented along +z."""
    nx = -curvature * local[:, 0]
    ny = -curvature * local[:, 1]
    nz = 1.0 - curvature * (1.0 + conic) * local[:, 2]
    n = torch.stack([nx, ny, nz], dim=-1)
    return n / torch.linalg.norm(n, dim=-1, keepdim=True)


def refract(
    direction: torch.Tensor, normal: torch.Tensor, n1: torch.Tensor, n2: torch.Tensor
) -> tuple[torch.Tensor, torch.Tensor]:
    """Vector form of Snell's law.

    Args:
        direction: (M, 3) incident unit directions
        normal: (M, 3) unit normals on the same side as the direction
        n1: Index before the surface
        n2: Index after the surface

    Returns:
        (refracted, ok): unit directions and mask (False on total internal reflection)
    """
    mu = n1 / n2
    cos_i = _dot(direction, normal)
    k = 1.0 - mu * mu * (1.0 - cos_i * cos_i)
    ok = k >= 0.0
    out = mu * direction + (_safe_sqrt(k) - mu * cos_i).unsqueeze(-1) * normal
    return out, ok


def trace_surfaces(system: LensSystem, bundle: RayBundle) -> RayBundle:
    """Trace a bundle through every surface; returns rays just after the last one."""
    s = system.surfaces
    vertex_z = system.vertex_z
    position, direction, opl, valid = bundle.position, bundle.direction, bundle.opl, bundle.valid

    for i in range(system.num_surfaces):
        c = s[i, CURVATURE]
        k = s[i, CONIC]
        n1 = s[i, N_BEFORE]
        n2 = s[i, N_AFTER]

        t, hit = intersect(position, direction, vertex_z[i], c, k)
        if i > 0:
            # A backwards segment means the surfaces cross
            hit = hit & (t >= 0.0)
        position = position + t.unsqueeze(-1) * direction
        opl = opl + n1 * t

        local = torch.cat([position[:, :2], (position[:, 2] - vertex_z[i]).unsqueeze(-1)], dim=-1)
        r2 = local[:, 0] ** 2 + local[:, 1] ** 2
        inside = r2 <= s[i, APERTURE_RADIUS] ** 2

        normal = surface_normal(local, c, k)
        direction, ok = refract(direction, normal, n1, n2)
        valid = valid & hit & inside & ok

    return RayBundle(position=position, direction=direction, opl=opl, valid=valid)


def transfer_to_image(system: LensSystem, bundle: RayBundle) -> RayBundle:
    """Propagate rays from the last surface to the image plane."""
    dz = bundle.direction[:, 2]
    ok = dz > 0.0
    dz = torch.where(ok, dz, torch.ones_like(dz))
    t = (system.image_z - bundle.position[:, 2]) / dz
    ok = ok & (t >= 0.0)
    position = bundle.position + t.unsqueeze(-1) * bundle.direction
    opl = bundle.opl + system.image_index * t
    return RayBundle(
        position=position, direction=bundle.direction, opl=opl, valid=bundle.valid & ok
    )


def trace_to_image(system: LensSystem, bundle: RayBundle) -> RayBundle:
    """Trace through all surfaces and on to the image plane."""
    return transfer_to_image(system, trace_surfaces(system, bundle))


def trace_pupil(system: LensSystem, pupil_xy: torch.Tensor, field: float = 0.0) -> RayBundle:
    """Launch rays through normalized pupil points and trace them to the image plane."""
    return trace_to_image(system, launch_rays(system, pupil_xy, field))


__all__ = [
    "RayBundle",
    "launch_rays",
    "intersect",
    "surface_normal",
    "refract",
    "trace_surfaces",
    "transfer_to_image",
    "trace_to_image",
    "trace_pupil",
]
