"""Harbinger - watch a git branch for divergence and merge conflicts."""

__version__ = "0.3.0"
