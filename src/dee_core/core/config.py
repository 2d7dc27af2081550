"""Lens prescription models and I/O.

Pydantic models for surfaces, object, pupil, design variables and targets with
YAML/JSON I/O. Lengths are millimetres; the wavelength is accepted in
nanometres and converted when the tensor system is built.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Literal

import torch
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .errors import ConfigError
from .precision import DEFAULT_DTYPE, resolve_device
from .units import deg_to_rad, nm_to_mm


class SurfaceSpec(BaseModel):
    """One refracting surface.

    The index is the refractive index of the medium after the surface; the
    medium before it comes from the previous surface (or the object space).
    """

    radius_mm: float | None = Field(default=None, description="Vertex radius, None for flat")
    curvature_per_mm: float | None = Field(
        default=None, description="Vertex curvature 1/R (alternative to radius_mm)"
    )
    thickness_mm: float = Field(description="Axial distance to the next surface or image plane")
    index: float = Field(default=1.0, description="Refractive index after the surface")
    conic: float = Field(default=0.0, description="Conic constant")
    aperture_radius_mm: float = Field(default=25.0, description="Clear semi-diameter")

    @field_validator("thickness_mm")
    @classmethod
    def validate_thickness(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"Thickness must be non-negative, got {v}")
        return v

    @field_validator("index")
    @classmethod
    def validate_index(cls, v: float) -> float:
        if not 1.0 <= v <= 5.0:
            raise ValueError(f"Refractive index must be between 1.0 and 5.0, got {v}")
        return v

    @field_validator("aperture_radius_mm")
    @classmethod
    def validate_aperture(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Aperture radius must be positive, got {v}")
        return v

    @model_validator(mode="after")
    def validate_shape(self) -> SurfaceSpec:
        """Radius and curvature are alternatives."""
        if self.radius_mm is not None and self.curvature_per_mm is not None:
            raise ValueError("Specify either radius_mm or curvature_per_mm, not both")
        if self.radius_mm == 0:
            raise ValueError("radius_mm must be non-zero; use null for a flat surface")
        return self

    @property
    def curvature(self) -> float:
        if self.curvature_per_mm is not None:
            return self.curvature_per_mm
        if self.radius_mm is None:
            return 0.0
        return 1.0 / self.radius_mm


class ObjectSpec(BaseModel):
    """Object space and field points."""

    distance_mm: float | None = Field(
        default=None, description="Object distance to the first vertex, None for infinity"
    )
    index: float = Field(default=1.0, description="Refractive index of object space")
    field_angles_deg: list[float] | None = Field(
        default=None, description="Field angles for an object at infinity"
    )
    field_heights_mm: list[float] | None = Field(
        default=None, description="Object heights for a finite object"
    )

    @field_validator("distance_mm")
    @classmethod
    def validate_distance(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError(f"Object distance must be positive, got {v}")
        return v

    @model_validator(mode="after")
    def validate_fields(self) -> ObjectSpec:
        if self.distance_mm is None and self.field_heights_mm is not None:
            raise ValueError("field_heights_mm requires a finite object distance")
        if self.distance_mm is not None and self.field_angles_deg is not None:
            raise ValueError("field_angles_deg applies only to an object at infinity")
        for angle in self.field_angles_deg or []:
            if not -89.0 < angle < 89.0:
                raise ValueError(f"Field angle must be within (-89, 89) degrees, got {angle}")
        return self

    def fields(self) -> list[float]:
        """Field values in trace units: radians at infinity, mm for a finite object."""
        if self.distance_mm is None:
            return [deg_to_rad(a) for a in (self.field_angles_deg or [0.0])]
        return [float(h) for h in (self.field_heights_mm or [0.0])]


class PupilSpec(BaseModel):
    """Entrance pupil at the first surface."""

    radius_mm: float = Field(default=5.0, description="Entrance pupil semi-diameter")
    samples: int = Field(default=21, description="Grid samples across the pupil diameter")

    @field_validator("radius_mm")
    @classmethod
    def validate_radius(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Pupil radius must be positive, got {v}")
        return v

    @field_validator("samples")
    @classmethod
    def validate_samples(cls, v: int) -> int:
        if not 3 <= v <= 1025:
            raise ValueError(f"Pupil samples must be between 3 and 1025, got {v}")
        return v


class VariableSpec(BaseModel):
    """A free prescription entry for sensitivity and design."""

    surface: int = Field(description="Zero-based surface index")
    param: Literal["curvature", "thickness", "conic"] = Field(description="Parameter name")
    lower: float | None = Field(default=None, description="Lower bound")
    upper: float | None = Field(default=None, description="Upper bound")


class TargetSpec(BaseModel):
    """Inverse design targets and weights."""

    efl_mm: float | None = Field(default=None, description="Target effective focal length")
    w_efl: float = Field(default=1.0, ge=0.0, description="Weight of the focal length term")
    w_wavefront: float = Field(default=1.0, ge=0.0, description="Weight of the wavefront term")


class LensConfig(BaseModel):
    """Complete lens prescription and engine settings."""

    name: str = Field(default="lens", description="Prescription name")
    wavelength_nm: float = Field(default=550.0, description="Vacuum wavelength in nanometres")
    surfaces: list[SurfaceSpec] = Field(default_factory=list, description="Surfaces in order")
    object: ObjectSpec = Field(default_factory=ObjectSpec, description="Object space")
    pupil: PupilSpec = Field(default_factory=PupilSpec, description="Entrance pupil")
    variables: list[VariableSpec] = Field(default_factory=list, description="Design variables")
    target: TargetSpec = Field(default_factory=TargetSpec, description="Design targets")
    device: str = Field(default="cpu", description="Torch device: cpu, cuda or auto")

    @field_validator("wavelength_nm")
    @classmethod
    def validate_wavelength(cls, v: float) -> float:
        if not 100 <= v <= 20000:
            raise ValueError(f"Wavelength must be between 100 and 20000 nm, got {v}")
        return v

    @model_validator(mode="after")
    def validate_lens(self) -> LensConfig:
        if not self.surfaces:
            raise ValueError("Lens must have at least one surface")
        for v in self.variables:
            if not 0 <= v.surface < len(self.surfaces):
                raise ValueError(
                    f"Variable surface {v.surface} out of range for {len(self.surfaces)} surfaces"
                )
        if self.pupil.radius_mm > self.surfaces[0].aperture_radius_mm:
            raise ValueError(
                f"Pupil radius {self.pupil.radius_mm} exceeds first surface aperture "
                f"{self.surfaces[0].aperture_radius_mm}"
            )
        return self

    @property
    def wavelength_mm(self) -> float:
        return nm_to_mm(self.wavelength_nm)

    def surfaces_tensor(self, device: torch.device | str | None = None) -> torch.Tensor:
        """Stack the prescription into the engine's (N, 6) layout."""
        rows = []
        n_before = self.object.index
        for s in self.surfaces:
            rows.append([s.curvature, s.thickness_mm, n_before, s.index, s.aperture_radius_mm, s.conic])
            n_before = s.index
        return torch.tensor(rows, dtype=DEFAULT_DTYPE, device=device)

    def to_system(self, device: torch.device | str | None = None):  # type: ignore[no-untyped-def]
        """Build the tensor LensSystem on the configured (or given) device."""
        from ..surfaces import LensSystem

        dev = resolve_device(device if device is not None else self.device)
        return LensSystem(
            surfaces=self.surfaces_tensor(dev),
            object_distance=self.object.distance_mm,
            pupil_radius=self.pupil.radius_mm,
            wavelength=self.wavelength_mm,
        )

    def design_variables(self):  # type: ignore[no-untyped-def]
        """Design variables as engine DesignVariable objects."""
        from ..engine import DesignVariable

        return [DesignVariable(v.surface, v.param, v.lower, v.upper) for v in self.variables]

    def with_system(self, system) -> LensConfig:  # type: ignore[no-untyped-def]
        """Copy of this config with curvature, thickness and conic read back from a system."""
        s = system.surfaces.detach().cpu().tolist()
        surfaces = []
        for spec, row in zip(self.surfaces, s):
            curvature, thickness, conic = row[0], row[1], row[5]
            surfaces.append(
                spec.model_copy(
                    update={
                        "radius_mm": None if curvature == 0 else 1.0 / curvature,
                        "curvature_per_mm": None,
                        "thickness_mm": thickness,
                        "conic": conic,
                    }
                )
            )
        return self.model_copy(update={"surfaces": surfaces})


def _read_data(path: Path) -> dict:
    with open(path, encoding="utf-8") as f:
        if path.suffix.lower() in [".yaml", ".yml"]:
            return yaml.safe_load(f) or {}
        if path.suffix.lower() == ".json":
            return json.load(f)
        content = f.read()
    try:
        return yaml.safe_load(content) or {}
    except yaml.YAMLError:
        return json.loads(content)


def load_config(path: str | Path) -> LensConfig:
    """Load a lens prescription from YAML or JSON.

    Args:
        path: Path to configuration file

    Returns:
        Validated LensConfig

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigError: If the content cannot be parsed or is invalid
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = _read_data(path)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"Failed to parse {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config root must be a mapping, got {type(data).__name__}")

    try:
        return LensConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config {path}:\n{e}") from e


def save_config(cfg: LensConfig, path: str | Path) -> None:
    """Save a prescription to YAML or JSON, chosen by suffix."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    data = cfg.model_dump(mode="json", exclude_none=True)

    with open(path, "w", encoding="utf-8") as f:
        if path.suffix.lower() in [".yaml", ".yml"]:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        else:
            json.dump(data, f, indent=2)


def round_trip_config(cfg: LensConfig) -> LensConfig:
    """Serialize through YAML and validate again."""
    data = cfg.model_dump(mode="json", exclude_none=True)
    yaml_str = yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    return LensConfig(**yaml.safe_load(yaml_str))


__all__ = [
    "SurfaceSpec",
    "ObjectSpec",
    "PupilSpec",
    "VariableSpec",
    "TargetSpec",
    "LensConfig",
    "load_config",
    "save_config",
    "round_trip_config",
]
