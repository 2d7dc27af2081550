"""Pupil sampling in normalized coordinates.

Points live on [-1, 1]^2 and are scaled by the entrance pupil radius when
rays are launched. Odd sample counts put a grid point on the chief ray.
"""

from __future__ import annotations

import torch

from .core.errors import TraceError
from .core.precision import DEFAULT_DTYPE


def pupil_grid(
    samples: int, device: torch.device | str | None = None
) -> tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
    """Square grid over the normalized pupil.

    Args:
        samples: Grid samples across the pupil diameter
        device: Torch device

    Returns:
        (px, py, inside): (samples, samples) coordinates and unit-disc mask,
        indexed [row=y, col=x]

    Raises:
        TraceError: If fewer than 3 samples are requested
    """
    if samples < 3:
        raise TraceError(f"Pupil sampling needs at least 3 samples, got {samples}")
    axis = torch.linspace(-1.0, 1.0, samples, dtype=DEFAULT_DTYPE, device=device)
    py, px = torch.meshgrid(axis, axis, indexing="ij")
    inside = (px * px + py * py) <= 1.0 + 1e-12
    return px, py, inside


def pupil_points(samples: int, device: torch.device | str | None = None) -> torch.Tensor:
    """Normalized pupil points inside the unit disc, shape (M, 2)."""
    px, py, inside = pupil_grid(samples, device=device)
    return torch.stack([px[inside], py[inside]], dim=-1)


def chief_point(device: torch.device | str | None = None) -> torch.Tensor:
    """The pupil centre, shape (1, 2)."""
    return torch.zeros((1, 2), dtype=DEFAULT_DTYPE, device=device)


__all__ = [
    "pupil_grid",
    "pupil_points",
    "chief_point",
]
