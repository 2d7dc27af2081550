"""Tests for the differentiable ray trace."""

import math

import pytest
import torch

from dee_core.core.errors import TraceError
from dee_core.eikonal import chief_ray_opl
from dee_core.surfaces import LensSystem, make_surface, sag, stack_surfaces
from dee_core.trace import intersect, launch_rays, refract, surface_normal, trace_pupil

ABS_TOL = 1e-12


def _t(values):
    return torch.tensor(values, dtype=torch.float64)


def test_sag_sphere():
    c = _t(0.02)
    r2 = _t(25.0)
    expected = 50.0 - math.sqrt(50.0**2 - 25.0)
    assert float(sag(c, _t(0.0), r2)) == pytest.approx(expected, abs=ABS_TOL)


def test_sag_paraboloid():
    c = _t(0.02)
    r2 = _t(100.0)
    assert float(sag(c, _t(-1.0), r2)) == pytest.approx(0.5 * 0.02 * 100.0, abs=ABS_TOL)


def test_intersect_flat_surface():
    pos = _t([[1.0, 2.0, -5.0]])
    d = _t([[0.0, 0.0, 1.0]])
    t, hit = intersect(pos, d, _t(0.0), _t(0.0), _t(0.0))
    assert bool(hit[0])
    assert float(t[0]) == pytest.approx(5.0, abs=ABS_TOL)


def test_intersect_sphere_on_and_off_axis():
    pos = _t([[0.0, 0.0, -10.0], [0.0, 5.0, -10.0]])
    d = _t([[0.0, 0.0, 1.0], [0.0, 0.0, 1.0]])
    c = _t(0.02)
    t, hit = intersect(pos, d, _t(0.0), c, _t(0.0))
    assert bool(hit.all())
    assert float(t[0]) == pytest.approx(10.0, abs=ABS_TOL)
    assert float(t[1]) == pytest.approx(10.0 + float(sag(c, _t(0.0), _t(25.0))), abs=ABS_TOL)


def test_intersect_miss():
    # Ray passes beside a small sphere of radius 1 mm
    pos = _t([[0.0, 5.0, -10.0]])
    d = _t([[0.0, 0.0, 1.0]])
    _, hit = intersect(pos, d, _t(0.0), _t(1.0), _t(0.0))
    assert not bool(hit[0])


def test_normal_is_unit_and_axial_at_vertex():
    local = _t([[0.0, 0.0, 0.0], [0.0, 3.0, float(sag(_t(0.02), _t(0.0), _t(9.0)))]])
    n = surface_normal(local, _t(0.02), _t(0.0))
    torch.testing.assert_close(n[0], _t([0.0, 0.0, 1.0]))
    torch.testing.assert_close(torch.linalg.norm(n, dim=-1), _t([1.0, 1.0]))
    # Sphere normal points towards the centre of curvature at (0, 0, 50)
    centre_dir = _t([0.0, 0.0, 50.0]) - local[1]
    centre_dir = centre_dir / torch.linalg.norm(centre_dir)
    torch.testing.assert_close(n[1], centre_dir)


def test_refract_snell():
    theta = 0.3
    d = _t([[0.0, math.sin(theta), math.cos(theta)]])
    n = _t([[0.0, 0.0, 1.0]])
    out, ok = refract(d, n, _t(1.0), _t(1.5))
    assert bool(ok[0])
    assert float(out[0, 1]) == pytest.approx(math.sin(theta) / 1.5, abs=ABS_TOL)
    assert float(torch.linalg.norm(out[0])) == pytest.approx(1.0, abs=ABS_TOL)


def test_refract_total_internal_reflection():
    s = 0.9
    d = _t([[0.0, s, math.sqrt(1 - s * s)]])
    n = _t([[0.0, 0.0, 1.0]])
    _, ok = refract(d, n, _t(1.5), _t(1.0))
    assert not bool(ok[0])


def test_launch_infinite_starts_on_wavefront(flat_plate):
    pts = _t([[0.0, 0.0], [1.0, 0.0], [0.0, -1.0], [0.3, 0.4]])
    bundle = launch_rays(flat_plate, pts, field=0.1)
    dots = torch.sum(bundle.position * bundle.direction, dim=-1)
    torch.testing.assert_close(dots, torch.zeros(4, dtype=torch.float64))
    torch.testing.assert_close(bundle.opl, torch.zeros(4, dtype=torch.float64))
    assert len(bundle) == 4


def test_launch_finite_starts_at_object():
    system = LensSystem(
        stack_surfaces([make_surface(0.0, 50.0, 1.0, 1.0)]), object_distance=100.0, pupil_radius=3.0
    )
    bundle = launch_rays(system, _t([[0.0, 0.0], [1.0, 0.0]]), field=2.0)
    torch.testing.assert_close(bundle.position[0], _t([0.0, 2.0, -100.0]))
    torch.testing.assert_close(torch.linalg.norm(bundle.direction, dim=-1), _t([1.0, 1.0]))


def test_finite_object_chief_opl():
    system = LensSystem(
        stack_surfaces([make_surface(0.0, 50.0, 1.0, 1.0)]), object_distance=100.0, pupil_radius=3.0
    )
    bundle = trace_pupil(system, _t([[0.0, 0.0], [1.0, 0.0]]))
    assert float(bundle.opl[0]) == pytest.approx(150.0, abs=ABS_TOL)
    assert float(bundle.opl[1]) == pytest.approx(math.hypot(100.0, 3.0) * 1.5, abs=1e-10)


def test_aperture_vignetting():
    system = LensSystem(
        stack_surfaces([make_surface(0.0, 10.0, 1.0, 1.5, aperture_radius=5.0)]),
        pupil_radius=8.0,
    )
    bundle = trace_pupil(system, _t([[0.0, 0.0], [0.5, 0.0], [1.0, 0.0]]))
    assert bundle.valid.tolist() == [True, True, False]
    assert bool(torch.isfinite(bundle.opl).all())


def test_trace_is_differentiable(singlet):
    surfaces = singlet.surfaces.clone().requires_grad_(True)
    system = singlet.with_surfaces(surfaces)
    bundle = trace_pupil(system, _t([[0.0, 0.5]]))
    bundle.opl.sum().backward()
    assert surfaces.grad is not None
    assert bool(torch.isfinite(surfaces.grad).all())
    assert float(surfaces.grad[0, 0]) != 0.0


def test_intersect_concave_surface_far_away():
    # b > 0 here; the root must still be the near intersection
    pos = _t([[0.0, 5.0, -1.0e6]])
    d = _t([[0.0, 0.0, 1.0]])
    c = _t(-0.02)
    t, hit = intersect(pos, d, _t(0.0), c, _t(0.0))
    assert bool(hit[0])
    expected = 1.0e6 + float(sag(c, _t(0.0), _t(25.0)))
    assert float(t[0]) == pytest.approx(expected, abs=1e-4)


def test_intersect_root_continuous_when_c_vanishes():
    # Starting on the vertex and heading back into a concave sphere of radius 50:
    # the roots are 0 and 100, and the branch for b > 0 yields the far one
    pos = _t([[0.0, 0.0, 0.0]])
    d = _t([[0.0, 0.0, -1.0]])
    t, hit = intersect(pos, d, _t(0.0), _t(-0.02), _t(0.0))
    assert bool(hit[0])
    assert float(t[0]) == pytest.approx(100.0, abs=ABS_TOL)


def test_negative_thickness_between_surfaces_is_invalid():
    system = LensSystem(
        stack_surfaces(
            [
                make_surface(0.0, -5.0, 1.0, 1.5),
                make_surface(0.0, 20.0, 1.5, 1.0),
            ]
        ),
        pupil_radius=2.0,
    )
    bundle = trace_pupil(system, _t([[0.0, 0.0], [0.5, 0.0]]))
    assert bundle.valid.tolist() == [False, False]
    assert bool(torch.isfinite(bundle.opl).all())


def test_image_plane_behind_last_surface_is_invalid():
    system = LensSystem(stack_surfaces([make_surface(0.0, -5.0, 1.0, 1.5)]), pupil_radius=2.0)
    bundle = trace_pupil(system, _t([[0.0, 0.0]]))
    assert not bool(bundle.valid[0])
    with pytest.raises(TraceError, match="vignetted"):
        chief_ray_opl(system)
