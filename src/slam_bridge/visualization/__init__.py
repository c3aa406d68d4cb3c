"""Visualization of bridge output."""

from .rerun_visualizer import RerunVisualizer

__all__ = ["RerunVisualizer"]
