"""Tests for eikonal quantities: chief OPL, wavefront and paraxial data."""

import math
import warnings

import numpy as np
import pytest
import torch

from dee_core.core.errors import TraceError
from dee_core.eikonal import (
    back_focal_distance,
    chief_ray_opl,
    effective_focal_length,
    image_point,
    paraxial_matrix,
    rms_wavefront,
    wavefront,
    wavefront_map,
    wavefront_variance,
)
from dee_core.pupil import pupil_points
from dee_core.surfaces import APERTURE_RADIUS, LensSystem, make_surface, stack_surfaces


def test_flat_plate_axial_opl(flat_plate):
    assert float(chief_ray_opl(flat_plate)) == pytest.approx(1.5 * 10.0 + 20.0, abs=1e-12)


def test_flat_plate_oblique_opl(flat_plate):
    theta = 0.2
    cos_glass = math.sqrt(1.0 - (math.sin(theta) / 1.5) ** 2)
    expected = 1.5 * 10.0 / cos_glass + 20.0 / math.cos(theta)
    assert float(chief_ray_opl(flat_plate, theta)) == pytest.approx(expected, abs=1e-10)


def test_chief_ray_vignetted():
    system = LensSystem(
        stack_surfaces(
            [
                make_surface(0.0, 10.0, 1.0, 1.5, aperture_radius=1.0),
                make_surface(0.0, 20.0, 1.5, 1.0, aperture_radius=1.0),
            ]
        ),
        pupil_radius=0.5,
    )
    with pytest.raises(TraceError, match="vignetted"):
        chief_ray_opl(system, math.radians(30.0))


def test_image_point_on_axis(singlet):
    p = image_point(singlet)
    torch.testing.assert_close(p[:2], torch.zeros(2, dtype=torch.float64))
    assert float(p[2]) == pytest.approx(98.0)


def test_chief_opd_is_zero(singlet):
    opd, valid = wavefront(singlet, 0.0, torch.zeros((1, 2), dtype=torch.float64))
    assert bool(valid[0])
    assert abs(float(opd[0])) < 1e-12


def test_ellipsoid_is_stigmatic(ellipsoid):
    rms = float(rms_wavefront(ellipsoid, 0.0, samples=31))
    assert rms < 1e-9


def test_singlet_has_rotationally_symmetric_aberration(singlet):
    pts = torch.tensor([[0.6, 0.0], [0.0, 0.6], [-0.6, 0.0]], dtype=torch.float64)
    opd, valid = wavefront(singlet, 0.0, pts)
    assert bool(valid.all())
    assert float(opd[0]) == pytest.approx(float(opd[1]), abs=1e-12)
    assert float(opd[0]) == pytest.approx(float(opd[2]), abs=1e-12)
    assert float(rms_wavefront(singlet)) > 1e-6


def test_wavefront_variance_gradient(singlet):
    surfaces = singlet.surfaces.clone().requires_grad_(True)
    var = wavefront_variance(singlet.with_surfaces(surfaces), 0.0, samples=11)
    var.backward()
    assert bool(torch.isfinite(surfaces.grad).all())
    assert float(surfaces.grad[0, 5]) != 0.0


def test_wavefront_map(singlet):
    opd = wavefront_map(singlet, 0.0, samples=17)
    assert opd.shape == (17, 17)
    assert np.isnan(opd[0, 0])
    assert abs(opd[8, 8]) < 1e-9
    assert np.isfinite(opd[8, 0])


def test_thick_lens_focal_length():
    n, c1, c2, t = 1.5168, 1 / 50.0, -1 / 50.0, 5.0
    system = LensSystem(
        stack_surfaces([make_surface(c1, t, 1.0, n), make_surface(c2, 100.0, n, 1.0)])
    )
    power = (n - 1) * (c1 - c2) + t * (n - 1) ** 2 * c1 * c2 / n
    assert float(effective_focal_length(system)) == pytest.approx(1.0 / power, rel=1e-12)


def test_paraxial_matrix_determinant(singlet):
    # Reduced-angle matrices are unimodular when object and image media match
    m = paraxial_matrix(singlet)
    assert float(torch.linalg.det(m)) == pytest.approx(1.0, abs=1e-12)


def test_single_surface_back_focus(ellipsoid):
    assert float(back_focal_distance(ellipsoid)) == pytest.approx(150.0, rel=1e-12)


def test_afocal_plate_has_no_focal_length(flat_plate):
    with pytest.raises(TraceError, match="afocal"):
        effective_focal_length(flat_plate)
    with pytest.raises(TraceError, match="afocal"):
        back_focal_distance(flat_plate)


def test_focal_length_gradient():
    n = 1.5
    c = torch.tensor(0.02, dtype=torch.float64, requires_grad=True)
    surfaces = torch.stack(
        [
            torch.stack([c, *[torch.tensor(v, dtype=torch.float64) for v in (5.0, 1.0, n, 25.0, 0.0)]]),
            torch.tensor([0.0, 90.0, n, 1.0, 25.0, 0.0], dtype=torch.float64),
        ]
    )
    efl = effective_focal_length(LensSystem(surfaces))
    efl.backward()
    # Plano-convex: EFL = 1/((n-1)c), dEFL/dc = -1/((n-1)c^2)
    assert float(c.grad) == pytest.approx(-1.0 / ((n - 1) * 0.02**2), rel=1e-12)


def test_no_valid_pupil_rays():
    # Only the chief ray clears the 0.1 mm aperture; the 4x4 grid has no centre sample
    system = LensSystem(
        stack_surfaces([make_surface(1 / 50.0, 150.0, 1.0, 1.5, aperture_radius=0.1)]),
        pupil_radius=5.0,
    )
    with pytest.raises(TraceError, match="No valid rays"):
        wavefront_variance(system, 0.0, samples=4)
    with pytest.raises(TraceError, match="No valid rays"):
        rms_wavefront(system, 0.0, samples=4)


def test_vignetted_rays_leave_variance(singlet):
    surfaces = singlet.surfaces.clone()
    surfaces[0, APERTURE_RADIUS] = 4.0
    stopped = singlet.with_surfaces(surfaces)

    pts = pupil_points(21)
    opd_full, valid_full = wavefront(singlet, 0.0, pts)
    opd, valid = wavefront(stopped, 0.0, pts)
    assert bool(valid_full.all())
    assert bool(valid.any()) and not bool(valid.all())
    assert bool((opd[~valid] == 0.0).all())
    torch.testing.assert_close(opd[valid], opd_full[valid])

    kept = opd_full[valid]
    expected = torch.mean((kept - kept.mean()) ** 2)
    assert float(wavefront_variance(stopped, 0.0, samples=21)) == pytest.approx(
        float(expected), rel=1e-10
    )
    assert float(wavefront_variance(stopped)) < float(wavefront_variance(singlet))


def _finite_surface(image_distance):
    # R = 50 mm into n = 1.5 with the object 200 mm away: paraxial image at 300 mm
    return LensSystem(
        stack_surfaces([make_surface(1 / 50.0, image_distance, 1.0, 1.5)]),
        object_distance=200.0,
        pupil_radius=2.0,
    )


def test_finite_object_through_refracting_surface():
    system = _finite_surface(300.0)
    assert float(chief_ray_opl(system)) == pytest.approx(200.0 + 1.5 * 300.0, abs=1e-10)

    h = 0.1
    u_glass = math.asin(math.sin(math.atan(h / 200.0)) / 1.5)
    p = image_point(system, h)
    assert float(p[1]) == pytest.approx(-300.0 * math.tan(u_glass), abs=1e-12)
    assert float(p[2]) == pytest.approx(300.0)

    opd, valid = wavefront(system, h, pupil_points(11))
    assert bool(valid.all())
    assert bool(torch.isfinite(opd).all())


def test_finite_object_focus_beats_defocus():
    focused = float(rms_wavefront(_finite_surface(300.0), 0.0, samples=15))
    defocused = float(rms_wavefront(_finite_surface(280.0), 0.0, samples=15))
    assert focused > 0.0
    assert focused < 0.1 * defocused


def test_focal_length_with_grad_raises_no_warning(singlet):
    surfaces = singlet.surfaces.clone().requires_grad_(True)
    system = singlet.with_surfaces(surfaces)
    with warnings.catch_warnings():
        warnings.simplefilter("error", UserWarning)
        total = effective_focal_length(system) + back_focal_distance(system)
        total.backward()
    assert bool(torch.isfinite(surfaces.grad).all())
