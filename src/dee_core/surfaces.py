"""Sequential lens systems as stacked parameter tensors.

Each surface is a row of a (num_surfaces, NUM_SURFACE_PARAMS) float64 tensor
so that the whole prescription is a single leaf for autograd. The first
surface vertex sits at z = 0; the last row's thickness is the distance to the
image plane. Units are millimetres.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

import torch

from .core.precision import DEFAULT_DTYPE, as_tensor

# Column layout shared by every module
CURVATURE = 0  # 1/radius, 0 for a flat surface
THICKNESS = 1  # axial distance to the next surface (or image plane)
N_BEFORE = 2  # refractive index on the incoming side
N_AFTER = 3  # refractive index on the outgoing side
APERTURE_RADIUS = 4  # clear semi-diameter
CONIC = 5  # 0 sphere, -1 paraboloid, (-1, 0) prolate ellipsoid

NUM_SURFACE_PARAMS = 6

PARAM_COLUMNS = {
    "curvature": CURVATURE,
    "thickness": THICKNESS,
    "conic": CONIC,
}


def make_surface(
    curvature: float = 0.0,
    thickness: float = 0.0,
    n_before: float = 1.0,
    n_after: float = 1.0,
    aperture_radius: float = 25.0,
    conic: float = 0.0,
) -> torch.Tensor:
    """Return a single surface row of length NUM_SURFACE_PARAMS."""
    return torch.tensor(
        [curvature, thickness, n_before, n_after, aperture_radius, conic], dtype=DEFAULT_DTYPE
    )


def stack_surfaces(rows: list[torch.Tensor]) -> torch.Tensor:
    """Stack surface rows into a (num_surfaces, NUM_SURFACE_PARAMS) tensor."""
    if not rows:
        raise ValueError("A lens system needs at least one surface")
    return torch.stack(list(rows), dim=0)


def sag(curvature: torch.Tensor, conic: torch.Tensor, r2: torch.Tensor) -> torch.Tensor:
    """Conic surface sag z(r) = c r^2 / (1 + sqrt(1 - (1+k) c^2 r^2)).

    The square-root argument is clamped at zero beyond the conic's edge.
    """
    arg = torch.clamp(1.0 - (1.0 + conic) * curvature**2 * r2, min=0.0)
    return curvature * r2 / (1.0 + torch.sqrt(arg))


@dataclass
class LensSystem:
    """A sequential, rotationally symmetric lens system.

    Attributes:
        surfaces: (N, NUM_SURFACE_PARAMS) float64 prescription tensor
        object_distance: Distance from object to first vertex, None for infinity
        pupil_radius: Entrance pupil semi-diameter at the first surface
        wavelength: Vacuum wavelength in millimetres
    """

    surfaces: torch.Tensor
    object_distance: float | None = None
    pupil_radius: float = 5.0
    wavelength: float = 5.5e-4

    def __post_init__(self) -> None:
        self.surfaces = as_tensor(self.surfaces)
        if self.surfaces.dim() != 2 or self.surfaces.shape[1] != NUM_SURFACE_PARAMS:
            raise ValueError(
                f"surfaces must have shape (N, {NUM_SURFACE_PARAMS}), got {tuple(self.surfaces.shape)}"
            )

    @property
    def num_surfaces(self) -> int:
        return int(self.surfaces.shape[0])

    @property
    def device(self) -> torch.device:
        return self.surfaces.device

    @property
    def vertex_z(self) -> torch.Tensor:
        """Axial vertex positions; the first surface is at z = 0."""
        thickness = self.surfaces[:, THICKNESS]
        return torch.cat([thickness.new_zeros(1), torch.cumsum(thickness[:-1], dim=0)])

    @property
    def image_z(self) -> torch.Tensor:
        return torch.sum(self.surfaces[:, THICKNESS])

    @property
    def object_index(self) -> torch.Tensor:
        return self.surfaces[0, N_BEFORE]

    @property
    def image_index(self) -> torch.Tensor:
        return self.surfaces[-1, N_AFTER]

    @property
    def is_infinite_conjugate(self) -> bool:
        return self.object_distance is None

    def with_surfaces(self, surfaces: torch.Tensor) -> LensSystem:
        """Copy of this system with a new prescription tensor."""
        return replace(self, surfaces=surfaces)


__all__ = [
    "CURVATURE",
    "THICKNESS",
    "N_BEFORE",
    "N_AFTER",
    "APERTURE_RADIUS",
    "CONIC",
    "NUM_SURFACE_PARAMS",
    "PARAM_COLUMNS",
    "make_surface",
    "stack_surfaces",
    "sag",
    "LensSystem",
]
