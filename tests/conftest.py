import os
import random
import sys
from pathlib import Path

import numpy as np
import pytest
import torch

from dee_core.surfaces import LensSystem, make_surface, stack_surfaces
from dee_core.validation.cases import cartesian_ellipsoid, plano_convex_singlet

EXAMPLES_DIR = Path(__file__).resolve().parent.parent / "examples"


def pytest_configure(config: pytest.Config) -> None:  # noqa: ARG001
    config.addinivalue_line("markers", "gpu: marks tests that require a CUDA GPU")


@pytest.fixture(autouse=True)
def seed_rng() -> None:
    random.seed(0)
    np.random.seed(0)
    torch.manual_seed(0)
    os.environ["PYTHONHASHSEED"] = "0"


@pytest.fixture()
def device() -> str:
    return "cuda" if torch.cuda.is_available() else "cpu"


@pytest.fixture()
def python() -> str:
    return sys.executable


@pytest.fixture()
def examples_dir() -> Path:
    return EXAMPLES_DIR


@pytest.fixture()
def flat_plate() -> LensSystem:
    """10 mm of n=1.5 glass followed by a 20 mm air gap to the image plane."""
    return LensSystem(
        stack_surfaces(
            [
                make_surface(0.0, 10.0, 1.0, 1.5),
                make_surface(0.0, 20.0, 1.5, 1.0),
            ]
        ),
        pupil_radius=5.0,
    )


@pytest.fixture()
def singlet() -> LensSystem:
    return plano_convex_singlet()


@pytest.fixture()
def ellipsoid() -> LensSystem:
    return cartesian_ellipsoid()
