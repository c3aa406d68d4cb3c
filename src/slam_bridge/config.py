"""Bridge configuration.

All recognized options live in :class:`BridgeConfig` with their defaults.
A YAML file may provide any subset of them, either at the top level or
under a ``slam_bridge:`` section.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError


@dataclass
class BridgeConfig:
    """Runtime options of the stereo SLAM bridge.

    Attributes:
        left_image_topic_name: Left camera image channel
        right_image_topic_name: Right camera image channel
        imu_topic_name: Inertial sample channel
        odom_topic_name: Odometry channel
        visualization: Stream map output to the Rerun viewer
        ros_visualization: Publish the periodic ``map_points`` cloud
        robot_base_frame: Child frame of the direct map->robot transform
        global_frame: Map frame of every published transform and snapshot
        odom_frame: Child frame of the composed map->odom transform
        robot_x: Initial robot x offset in the map frame
        robot_y: Initial robot y offset in the map frame
        no_odometry_mode: Derive map->robot directly instead of map->odom
        publish_tf: Broadcast the map transform after each successful track
        map_data_publish_frequency: Map data publication interval (ms)
        landmark_publish_frequency: Map point cloud publication interval (ms)
        sync_queue_size: Unmatched images buffered per stereo channel
        sync_slop: Maximum stamp difference of a stereo pair (s)
        landmark_max_count: Max landmarks returned by a visibility query
        landmark_radius: Visibility query radius
        landmark_fov: Visibility query field-of-view parameter
        odom_warning_period: Minimum seconds between odometry mode warnings
    """

    left_image_topic_name: str = "left/image_raw"
    right_image_topic_name: str = "right/image_raw"
    imu_topic_name: str = "imu"
    odom_topic_name: str = "odom"

    visualization: bool = True
    ros_visualization: bool = True

    robot_base_frame: str = "base_link"
    global_frame: str = "map"
    odom_frame: str = "odom"
    robot_x: float = 1.0
    robot_y: float = 1.0

    no_odometry_mode: bool = True
    publish_tf: bool = True

    map_data_publish_frequency: int = 1000
    landmark_publish_frequency: int = 1000

    sync_queue_size: int = 10
    sync_slop: float = 0.05

    landmark_max_count: int = 1000
    landmark_radius: float = 5.0
    landmark_fov: float = 2.0

    odom_warning_period: float = 4.0

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ConfigError: If any option is out of range
        """
        if self.map_data_publish_frequency <= 0:
            raise ConfigError(
                f"map_data_publish_frequency must be > 0 ms, "
                f"got {self.map_data_publish_frequency}"
            )
        if self.landmark_publish_frequency <= 0:
            raise ConfigError(
                f"landmark_publish_frequency must be > 0 ms, "
                f"got {self.landmark_publish_frequency}"
            )
        if self.sync_queue_size < 1:
            raise ConfigError(
                f"sync_queue_size must be >= 1, got {self.sync_queue_size}"
            )
        if self.sync_slop < 0:
            raise ConfigError(f"sync_slop must be >= 0, got {self.sync_slop}")
        if self.landmark_max_count < 0:
            raise ConfigError(
                f"landmark_max_count must be >= 0, got {self.landmark_max_count}"
            )
        if self.landmark_radius <= 0:
            raise ConfigError(
                f"landmark_radius must be > 0, got {self.landmark_radius}"
            )
        for name in ("global_frame", "odom_frame", "robot_base_frame"):
            if not getattr(self, name):
                raise ConfigError(f"{name} must not be empty")

    @property
    def map_data_interval(self) -> float:
        """Map data publication interval in seconds."""
        return self.map_data_publish_frequency / 1000.0

    @property
    def landmark_interval(self) -> float:
        """Map point cloud publication interval in seconds."""
        return self.landmark_publish_frequency / 1000.0

    @property
    def sync_slop_ns(self) -> int:
        return int(round(self.sync_slop * 1e9))

    @classmethod
    def from_dict(cls, values: dict[str, Any]) -> BridgeConfig:
        """Build a config from a mapping, rejecting unknown keys.

        Raises:
            ConfigError: On unknown keys or mistyped values
        """
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(values) - set(known))
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

        kwargs = {
            key: _coerce(key, value, type(known[key].default))
            for key, value in values.items()
        }
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: str | Path) -> BridgeConfig:
        """Load configuration from a YAML file.

        Args:
            path: YAML file; options may be nested under ``slam_bridge:``

        Raises:
            FileNotFoundError: If the file does not exist
            ConfigError: If the file is not a mapping or holds invalid options
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f)

        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError(f"Expected a mapping in {path}, got {type(data).__name__}")

        section = data.get("slam_bridge", data)
        if not isinstance(section, dict):
            raise ConfigError(f"'slam_bridge' section in {path} must be a mapping")
        return cls.from_dict(section)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _coerce(key: str, value: Any, target: type) -> Any:
    """Convert a YAML scalar to the option's type."""
    if target is bool:
        if isinstance(value, bool):
            return value
        raise ConfigError(f"{key} must be a boolean, got {value!r}")
    if target is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{key} must be an integer, got {value!r}")
        return value
    if target is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"{key} must be a number, got {value!r}")
        return float(value)
    if not isinstance(value, str):
        raise ConfigError(f"{key} must be a string, got {value!r}")
    return value
