"""Precision policy for the eikonal engine.

Gradients and Hessians of optical path lengths are taken in float64 on every
device. Path differences of a few nanometres over paths of hundreds of
millimetres are below float32 resolution.
"""

from __future__ import annotations

import torch

from .errors import ConfigError

DEFAULT_DTYPE = torch.float64


def resolve_device(name: str | torch.device | None = "auto") -> torch.device:
    """Map a device name to a torch device.

    Args:
        name: 'auto', 'cpu', 'cuda' or 'cuda:N'. 'auto' picks CUDA when present.

    Returns:
        Torch device

    Raises:
        ConfigError: If CUDA is requested but unavailable
    """
    if isinstance(name, torch.device):
        return name
    if name is None or name == "auto":
        return torch.device("cuda" if torch.cuda.is_available() else "cpu")
    if str(name).startswith("cuda") and not torch.cuda.is_available():
        raise ConfigError(f"Device '{name}' requested but CUDA is not available")
    try:
        return torch.device(name)
    except RuntimeError as e:
        raise ConfigError(f"Unknown device '{name}': {e}") from e


def as_tensor(value, device: torch.device | str | None = None) -> torch.Tensor:  # type: ignore[no-untyped-def]
    """Convert a value to a float64 tensor on the requested device.

    Tensors that already carry autograd history are cast, not copied, so the
    graph is kept.
    """
    if device is not None and not isinstance(device, torch.device):
        device = resolve_device(device)
    if isinstance(value, torch.Tensor):
        return value.to(dtype=DEFAULT_DTYPE, device=device if device is not None else value.device)
    return torch.as_tensor(value, dtype=DEFAULT_DTYPE, device=device)


def assert_double(tensor: torch.Tensor, name: str = "tensor") -> None:
    """Assert that a tensor is float64.

    Raises:
        AssertionError: If the tensor is not float64
    """
    assert tensor.dtype == DEFAULT_DTYPE, f"{name} must be float64, got {tensor.dtype}"


__all__ = [
    "DEFAULT_DTYPE",
    "resolve_device",
    "as_tensor",
    "assert_double",
]
