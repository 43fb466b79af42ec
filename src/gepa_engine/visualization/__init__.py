"""Visualization of optimization progress."""

from .lineage import LineageVisualizer

__all__ = ["LineageVisualizer"]
