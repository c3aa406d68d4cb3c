"""Rigid transforms shared by the engine interface and the published messages."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.spatial.transform import Rotation


@dataclass
class SE3:
    """Rotation plus translation.

    Named after the frames it relates: ``T_map_robot`` takes a point given
    in ``robot`` coordinates to ``map`` coordinates,

        p_map = T_map_robot.rotation @ p_robot + T_map_robot.translation

    so chaining reads left to right, ``T_map_odom @ T_odom_robot``.

    Attributes:
        rotation: (3, 3) proper rotation matrix
        translation: (3,) offset of the child origin in the parent frame
    """

    rotation: np.ndarray
    translation: np.ndarray

    def __post_init__(self) -> None:
        self.rotation = np.asarray(self.rotation, dtype=np.float64)
        self.translation = np.asarray(self.translation, dtype=np.float64).reshape(-1)

        if self.rotation.shape != (3, 3):
            raise ValueError(f"Rotation must be 3x3, got {self.rotation.shape}")
        if self.translation.shape != (3,):
            raise ValueError(f"Translation must be (3,), got {self.translation.shape}")

    @classmethod
    def identity(cls) -> SE3:
        return cls(np.eye(3), np.zeros(3))

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> SE3:
        """Build from a 4x4 homogeneous matrix ``[[R, t], [0, 1]]``."""
        T = np.asarray(T, dtype=np.float64)
        if T.shape != (4, 4):
            raise ValueError(f"Transform must be 4x4, got {T.shape}")
        return cls(T[:3, :3], T[:3, 3])

    @classmethod
    def from_quaternion(cls, quaternion: np.ndarray, translation: np.ndarray) -> SE3:
        """Build from a quaternion and a translation.

        Args:
            quaternion: (x, y, z, w), the order used by every message in
                this package. Need not be unit length.
            translation: (3,) translation

        Raises:
            ValueError: If the quaternion does not have 4 components
        """
        q = np.asarray(quaternion, dtype=np.float64).reshape(-1)
        if q.shape != (4,):
            raise ValueError(f"Quaternion must have 4 components, got {q.shape}")
        return cls(Rotation.from_quat(q).as_matrix(), translation)

    def to_matrix(self) -> np.ndarray:
        T = np.eye(4)
        T[:3, :3] = self.rotation
        T[:3, 3] = self.translation
        return T

    def to_quaternion(self) -> np.ndarray:
        """Rotation as an (x, y, z, w) quaternion."""
        return Rotation.from_matrix(self.rotation).as_quat()

    def inverse(self) -> SE3:
        """Swap parent and child: ``T_a_b.inverse()`` is ``T_b_a``."""
        R_t = self.rotation.T
        return SE3(R_t, -(R_t @ self.translation))

    def compose(self, other: SE3) -> SE3:
        """Chain two transforms, ``T_a_b.compose(T_b_c)`` giving ``T_a_c``."""
        return SE3(
            self.rotation @ other.rotation,
            self.rotation @ other.translation + self.translation,
        )

    def __matmul__(self, other: SE3) -> SE3:
        return self.compose(other)

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        """Map points from the child frame to the parent frame.

        Args:
            points: (N, 3) array, or a single (3,) point

        Returns:
            (N, 3) array
        """
        points = np.asarray(points, dtype=np.float64)
        if points.ndim == 1:
            points = points[np.newaxis, :]
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError(f"Points must be Nx3, got {points.shape}")
        return points @ self.rotation.T + self.translation

    def is_close(self, other: SE3, atol: float = 1e-9) -> bool:
        return bool(
            np.allclose(self.rotation, other.rotation, atol=atol)
            and np.allclose(self.translation, other.translation, atol=atol)
        )

    @property
    def position(self) -> np.ndarray:
        """Copy of the translation, i.e. where the child origin sits."""
        return self.translation.copy()

    def __repr__(self) -> str:
        x, y, z = self.translation
        return f"SE3(position=[{x:.3f}, {y:.3f}, {z:.3f}])"
