"""I/O utilities for SLAM datasets."""

from .euroc import EurocCameraReader, EurocImuReader, EurocStereoReader

__all__ = [
    "EurocCameraReader",
    "EurocStereoReader",
    "EurocImuReader",
]
