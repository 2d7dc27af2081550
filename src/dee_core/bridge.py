"""The bridge identity between classical eikonal and quantum phase.

    phi_quantum = 2 * pi * W / lambda

W is an optical path length (the eikonal) and lambda the vacuum wavelength in
the same unit. Functions accept floats, numpy arrays and torch tensors; tensor
inputs stay on the autograd graph.
"""

from __future__ import annotations

import math

import numpy as np
import torch

TWO_PI = 2.0 * math.pi


def _check_wavelength(wavelength) -> None:  # type: ignore[no-untyped-def]
    if isinstance(wavelength, torch.Tensor):
        bad = bool(torch.any(wavelength <= 0))
    else:
        bad = bool(np.any(np.asarray(wavelength) <= 0))
    if bad:
        raise ValueError(f"Wavelength must be positive, got {wavelength}")


def quantum_phase(W, wavelength):  # type: ignore[no-untyped-def]
    """Phase in radians accumulated along an optical path of length W.

    Args:
        W: Optical path length (eikonal)
        wavelength: Vacuum wavelength, same unit as W

    Returns:
        2*pi*W/wavelength, with the type of W

    Raises:
        ValueError: If wavelength is not positive
    """
    _check_wavelength(wavelength)
    return TWO_PI * W / wavelength


def eikonal_from_phase(phi, wavelength):  # type: ignore[no-untyped-def]
    """Inverse of the bridge identity: W = phi*lambda/(2*pi)."""
    _check_wavelength(wavelength)
    return phi * wavelength / TWO_PI


def wavenumber(wavelength, index=1.0):  # type: ignore[no-untyped-def]
    """Wavenumber k = 2*pi*n/lambda in a medium of refractive index n."""
    _check_wavelength(wavelength)
    return TWO_PI * index / wavelength


def in_waves(W, wavelength):  # type: ignore[no-untyped-def]
    """Express an optical path (difference) in waves."""
    _check_wavelength(wavelength)
    return W / wavelength


def phase_derivative(W, wavelength) -> torch.Tensor:  # type: ignore[no-untyped-def]
    """dphi/dW obtained by automatic differentiation of the bridge identity.

    Args:
        W: Optical path length(s) at which to differentiate
        wavelength: Vacuum wavelength, same unit as W

    Returns:
        Tensor of the same shape as W; every entry equals 2*pi/wavelength
    """
    _check_wavelength(wavelength)
    w = torch.as_tensor(W, dtype=torch.float64).detach().clone().requires_grad_(True)
    phi = quantum_phase(w, wavelength)
    (grad,) = torch.autograd.grad(phi.sum(), w)
    return grad


__all__ = [
    "TWO_PI",
    "quantum_phase",
    "eikonal_from_phase",
    "wavenumber",
    "in_waves",
    "phase_derivative",
]
