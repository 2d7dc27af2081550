"""File output: wavefront maps and analysis reports."""

from .tiff import read_wavefront_tiff, save_report, write_wavefront_tiff

__all__ = [
    "write_wavefront_tiff",
    "read_wavefront_tiff",
    "save_report",
]
