"""Tests for the bridge identity phi = 2*pi*W/lambda."""

import math

import numpy as np
import pytest
import torch

from dee_core.bridge import (
    eikonal_from_phase,
    in_waves,
    phase_derivative,
    quantum_phase,
    wavenumber,
)

HENE_MM = 6.328e-4


def test_one_wave_is_two_pi():
    assert quantum_phase(HENE_MM, HENE_MM) == pytest.approx(2.0 * math.pi, rel=1e-15)


def test_scalar_identity():
    W = 0.125
    assert quantum_phase(W, HENE_MM) == pytest.approx(2.0 * math.pi * W / HENE_MM, rel=1e-15)


def test_array_identity():
    W = np.array([0.0, HENE_MM / 2, HENE_MM, 3 * HENE_MM])
    phi = quantum_phase(W, HENE_MM)
    np.testing.assert_allclose(phi, [0.0, math.pi, 2 * math.pi, 6 * math.pi], rtol=1e-14)


def test_tensor_stays_on_graph():
    W = torch.tensor([0.1, 0.2], dtype=torch.float64, requires_grad=True)
    phi = quantum_phase(W, HENE_MM)
    phi.sum().backward()
    expected = torch.full_like(W, 2.0 * math.pi / HENE_MM)
    torch.testing.assert_close(W.grad, expected)


def test_phase_derivative_by_autodiff():
    slope = phase_derivative(np.array([1.0, 250.0]), HENE_MM)
    expected = torch.full((2,), 2.0 * math.pi / HENE_MM, dtype=torch.float64)
    torch.testing.assert_close(slope, expected)


def test_inverse_identity():
    W = 3.75
    phi = quantum_phase(W, HENE_MM)
    assert eikonal_from_phase(phi, HENE_MM) == pytest.approx(W, rel=1e-14)


def test_wavenumber_and_waves():
    assert wavenumber(HENE_MM, 1.5) == pytest.approx(2.0 * math.pi * 1.5 / HENE_MM)
    assert in_waves(2 * HENE_MM, HENE_MM) == pytest.approx(2.0)


@pytest.mark.parametrize("bad", [0.0, -5.5e-4])
def test_non_positive_wavelength_rejected(bad):
    with pytest.raises(ValueError, match="positive"):
        quantum_phase(1.0, bad)
    with pytest.raises(ValueError):
        phase_derivative(1.0, bad)


def test_tensor_wavelength_checked():
    with pytest.raises(ValueError):
        quantum_phase(torch.tensor(1.0), torch.tensor([5e-4, -1.0]))
