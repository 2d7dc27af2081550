"""Differentiable Eikonal Engine.

Companion code for "The Eikonal Bridge": differentiable optical path length
computations for sequential lens systems, the bridge identity between the
classical eikonal and quantum phase, and gradient-driven inverse design.
"""

__version__ = "0.1.0"

__all__ = [
    "bridge",
    "cli",
    "core",
    "design",
    "eikonal",
    "engine",
    "io",
    "pupil",
    "surfaces",
    "trace",
    "validation",
]
