"""EuRoC MAV dataset readers producing transport messages.

Each camera is read as its own stream so that replayed left and right
images go through the stereo synchronizer exactly like live camera
messages do.
"""

from __future__ import annotations

import bisect
from pathlib import Path
from typing import Iterator

import cv2
import numpy as np

from ..messages import Header, ImageMessage, ImuMessage


def _csv_rows(csv_path: Path) -> Iterator[tuple[str, list[str]]]:
    """Yield (raw line, stripped fields) for every data row of a EuRoC csv.

    Blank lines and ``#`` comment/header lines are skipped.
    """
    with open(csv_path, "r") as f:
        for raw in f:
            row = raw.strip()
            if row and not row.startswith("#"):
                yield row, [field.strip() for field in row.split(",")]


def _parse_image_csv(csv_path: Path) -> list[tuple[int, str]]:
    """Parse a camera data.csv into stamp-sorted (timestamp_ns, filename) pairs.

    Rows look like ``1403636579763555584,1403636579763555584.png``.

    Raises:
        ValueError: On a row that is not ``timestamp,filename``
    """
    entries = []
    for row, fields in _csv_rows(csv_path):
        try:
            stamp, filename = fields
            entries.append((int(stamp), filename))
        except ValueError as e:
            raise ValueError(
                f"Invalid line in {csv_path}: '{row}'\n"
                f"Rows must read timestamp_ns,filename"
            ) from e

    return sorted(entries, key=lambda entry: entry[0])


class EurocCameraReader:
    """Reader for one EuRoC camera (``cam0`` or ``cam1``).

    Images are loaded lazily as grayscale ``mono8`` messages.

    Args:
        dataset_path: Path to the mav0 directory
        camera: Camera directory name
        frame_id: Frame id stamped on the messages (defaults to ``camera``)

    Raises:
        FileNotFoundError: If the camera directories or data.csv are missing
        ValueError: If data.csv lists no images or is malformed
    """

    def __init__(
        self,
        dataset_path: str | Path,
        camera: str = "cam0",
        frame_id: str | None = None,
    ) -> None:
        self.dataset_path = Path(dataset_path)
        self.camera = camera
        self.frame_id = frame_id or camera
        self.camera_path = self.dataset_path / camera
        self.data_path = self.camera_path / "data"

        csv_path = self._check_layout()
        self._entries = _parse_image_csv(csv_path)
        if not self._entries:
            raise ValueError(f"No images found in {csv_path}")

    def _check_layout(self) -> Path:
        """Return the camera's data.csv once the directory layout is confirmed."""
        if not self.dataset_path.exists():
            raise FileNotFoundError(f"Dataset path does not exist: {self.dataset_path}")
        if not self.camera_path.exists():
            raise FileNotFoundError(
                f"{self.camera} directory not found: {self.camera_path}\n"
                f"A EuRoC sequence keeps each camera under mav0/{self.camera}/"
            )
        if not self.data_path.exists():
            raise FileNotFoundError(
                f"{self.camera}/data directory not found: {self.data_path}"
            )

        csv_path = self.camera_path / "data.csv"
        if not csv_path.exists():
            raise FileNotFoundError(
                f"{self.camera}/data.csv not found: {csv_path}\n"
                f"It lists the stamp and file name of every image."
            )
        return csv_path

    def load(self, index: int) -> ImageMessage:
        """Load the image at ``index``.

        Raises:
            FileNotFoundError: If the listed image file is missing
            ValueError: If OpenCV cannot decode it
        """
        stamp_ns, filename = self._entries[index]
        path = self.data_path / filename
        if not path.exists():
            raise FileNotFoundError(f"{self.camera} image not found: {path}")

        image = cv2.imread(str(path), cv2.IMREAD_GRAYSCALE)
        if image is None:
            raise ValueError(f"Failed to load {self.camera} image: {path}")

        return ImageMessage(Header(stamp_ns, self.frame_id), image, encoding="mono8")

    @property
    def timestamps(self) -> list[int]:
        return [stamp for stamp, _ in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ImageMessage]:
        for index in range(len(self)):
            yield self.load(index)


class EurocStereoReader:
    """Left (cam0) and right (cam1) camera streams of a EuRoC sequence."""

    def __init__(self, dataset_path: str | Path = "data/euroc/MH_01_easy/mav0") -> None:
        self.dataset_path = Path(dataset_path)
        self.left = EurocCameraReader(self.dataset_path, "cam0", frame_id="left")
        self.right = EurocCameraReader(self.dataset_path, "cam1", frame_id="right")

    def __len__(self) -> int:
        return min(len(self.left), len(self.right))


class EurocImuReader:
    """All samples of imu0/data.csv, loaded up front.

    Rows with fewer than seven fields or unparsable numbers are skipped.

    Example usage:
        reader = EurocImuReader("data/euroc/MH_01_easy/mav0")
        for msg in reader.get_measurements_between(t_start, t_end):
            print(msg.header.stamp_ns, msg.angular_velocity)
    """

    def __init__(self, dataset_path: str | Path, frame_id: str = "imu") -> None:
        csv_path = Path(dataset_path) / "imu0" / "data.csv"
        if not csv_path.exists():
            raise FileNotFoundError(
                f"IMU data not found: {csv_path}\n"
                f"A EuRoC sequence keeps inertial samples in mav0/imu0/data.csv"
            )

        self._messages: list[ImuMessage] = []
        for _, fields in _csv_rows(csv_path):
            if len(fields) < 7:
                continue
            try:
                stamp_ns = int(fields[0])
                values = np.array(fields[1:7], dtype=np.float64)
            except ValueError:
                continue
            self._messages.append(
                ImuMessage(Header(stamp_ns, frame_id), values[:3], values[3:])
            )

        # Sorted stamps for bisect range queries
        self._stamps = [msg.header.stamp_ns for msg in self._messages]

    def get_measurements_between(self, start_ns: int, end_ns: int) -> list[ImuMessage]:
        """IMU messages with start_ns <= stamp < end_ns."""
        lo = bisect.bisect_left(self._stamps, start_ns)
        hi = bisect.bisect_left(self._stamps, end_ns)
        return self._messages[lo:hi]

    @property
    def start_timestamp(self) -> int | None:
        return self._stamps[0] if self._stamps else None

    @property
    def end_timestamp(self) -> int | None:
        return self._stamps[-1] if self._stamps else None

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[ImuMessage]:
        return iter(self._messages)
