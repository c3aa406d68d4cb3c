"""Rigid transforms and frame conventions."""

from .frames import OPTICAL_TO_BODY, FrameConvention
from .pose import SE3

__all__ = [
    "SE3",
    "FrameConvention",
    "OPTICAL_TO_BODY",
]
