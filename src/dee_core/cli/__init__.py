"""Command line interface for the eikonal engine."""

from .main import build_parser, main

__all__ = ["build_parser", "main"]
