"""TIFF and JSON output for eikonal results.

Wavefront maps are written as 32-bit float TIFF images in waves, with the
metadata embedded as JSON in the ImageDescription tag.
"""

from __future__ import annotations

import json
import platform
from datetime import datetime
from pathlib import Path
from typing import Any

import numpy as np
import tifffile
import torch


def _prepare_metadata(data: np.ndarray, user_metadata: dict[str, Any] | None) -> dict[str, Any]:
    from .. import __version__

    meta: dict[str, Any] = {
        "units": "waves",
        "shape": list(data.shape),
        "dtype": "float32",
        "pupil_axes": "YX, normalized [-1, 1]",
        "timestamp": datetime.now().isoformat(),
        "software": {"dee_core": __version__, "torch": torch.__version__},
        "system": {
            "platform": platform.platform(),
            "python_version": platform.python_version(),
        },
    }
    if user_metadata:
        for key, value in user_metadata.items():
            if key not in meta:
                meta[key] = value
    return meta


def write_wavefront_tiff(
    filename: str | Path,
    opd_waves: np.ndarray,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Write a wavefront map to a float32 TIFF.

    Args:
        filename: Output filename
        opd_waves: 2-D OPD map in waves; NaN marks points outside the pupil
        metadata: Extra metadata (wavelength, field, pupil radius, ...)

    Raises:
        ValueError: If the map is not 2-D
    """
    data = np.asarray(opd_waves)
    if data.ndim != 2:
        raise ValueError(f"Wavefront map must be 2-D, got shape {data.shape}")

    filename = Path(filename)
    filename.parent.mkdir(parents=True, exist_ok=True)
    meta = _prepare_metadata(data, metadata)
    tifffile.imwrite(
        filename,
        data.astype(np.float32),
        description=json.dumps(meta, default=str),
        metadata=None,
    )


def read_wavefront_tiff(filename: str | Path) -> tuple[np.ndarray, dict[str, Any]]:
    """Read a wavefront TIFF written by write_wavefront_tiff.

    Returns:
        (map, metadata); metadata falls back to {'description': raw} for foreign files
    """
    with tifffile.TiffFile(filename) as tif:
        data = tif.asarray()
        description = tif.pages[0].description
    metadata: dict[str, Any] = {}
    if description:
        try:
            metadata = json.loads(description)
        except json.JSONDecodeError:
            metadata = {"description": description}
    return data, metadata


def save_report(report: Any, filename: str | Path) -> None:
    """Write a report (dataclass with to_dict, or a dict) as JSON."""
    data = report.to_dict() if hasattr(report, "to_dict") else report
    filename = Path(filename)
    filename.parent.mkdir(parents=True, exist_ok=True)
    filename.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
