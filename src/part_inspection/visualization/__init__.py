"""Visualization module for the part inspection package."""

from .overlay import ResultVisualizer

__all__ = ["ResultVisualizer"]
