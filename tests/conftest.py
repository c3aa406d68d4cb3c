"""Shared fixtures: fake engine, recording transport, mock EuRoC dataset."""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from pathlib import Path

import cv2
import numpy as np
import pytest

from slam_bridge import (
    SE3,
    BridgeConfig,
    EngineKeyframe,
    EngineMapPoint,
    Header,
    ImageMessage,
    InProcessTransport,
    SlamEngine,
    StereoFramePair,
    StereoSlamNode,
)


class FakeEngine(SlamEngine):
    """Scriptable engine that records calls and concurrent entries.

    Attributes:
        succeed: Default outcome of track_stereo
        script: Per-call outcomes, consumed before falling back to ``succeed``
        pose: T_world_camera returned on success
        delay: Seconds each locked call sleeps (to provoke overlap)
        entered: Set whenever a locked call enters the engine
        gate: When set to an Event, track_stereo waits on it before returning
    """

    def __init__(
        self,
        succeed: bool = True,
        keyframes: list[EngineKeyframe] | None = None,
        points: list[EngineMapPoint] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.succeed = succeed
        self.script: list[bool] = []
        self.pose = SE3.identity()
        self.keyframes_data = keyframes or []
        self.points_data = points or []
        self.delay = delay
        self.entered = threading.Event()
        self.gate: threading.Event | None = None

        self.imu_samples = []
        self.calls: list[str] = []
        self.call_args: dict[str, tuple] = {}
        self.closed = False
        self.max_concurrent = 0
        self._active = 0
        self._guard = threading.Lock()

    @contextmanager
    def _enter(self, name: str, *args):
        with self._guard:
            self._active += 1
            self.max_concurrent = max(self.max_concurrent, self._active)
            self.calls.append(name)
            self.call_args[name] = args
        self.entered.set()
        try:
            if self.delay:
                time.sleep(self.delay)
            yield
        finally:
            with self._guard:
                self._active -= 1

    def track_stereo(self, left, right, timestamp_s):
        with self._enter("track_stereo", left, right, timestamp_s):
            if self.gate is not None:
                self.gate.wait(5.0)
            ok = self.script.pop(0) if self.script else self.succeed
            return self.pose if ok else None

    def grab_imu(self, sample):
        self.imu_samples.append(sample)

    def keyframes(self, current_map_only):
        with self._enter("keyframes", current_map_only):
            return list(self.keyframes_data)

    def map_points(self, tracked_points_only, keyframe_id=None):
        with self._enter("map_points", tracked_points_only, keyframe_id):
            return list(self.points_data)

    def current_map_points(self):
        with self._enter("current_map_points"):
            if not self.points_data:
                return np.empty((0, 3))
            return np.stack([p.position for p in self.points_data])

    def points_visible_from(self, pose, max_count, max_distance, fov):
        # Ignores max_count on purpose: the caller must cap the result.
        with self._enter("points_visible_from", pose, max_count, max_distance, fov):
            return [
                p
                for p in self.points_data
                if np.linalg.norm(p.position - pose.translation) <= max_distance
            ]

    def shutdown(self):
        self.closed = True


class RecordingTransport(InProcessTransport):
    """In-process transport that remembers everything published."""

    def __init__(self) -> None:
        super().__init__()
        self.published: list[tuple[str, object]] = []

    def publish(self, channel, message):
        self.published.append((channel, message))
        super().publish(channel, message)

    def messages(self, channel: str) -> list:
        return [msg for ch, msg in self.published if ch == channel]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_image(stamp_ns: int, value: int = 0, frame_id: str = "left") -> ImageMessage:
    return ImageMessage(
        header=Header(stamp_ns=stamp_ns, frame_id=frame_id),
        data=np.full((8, 8), value, dtype=np.uint8),
    )


def make_pair(stamp_ns: int, skew_ns: int = 0) -> StereoFramePair:
    return StereoFramePair(
        left=make_image(stamp_ns, frame_id="left"),
        right=make_image(stamp_ns + skew_ns, frame_id="right"),
    )


def make_points(positions) -> list[EngineMapPoint]:
    return [EngineMapPoint(id=i, position=p) for i, p in enumerate(positions)]


@contextmanager
def engine_busy(gateway, engine: FakeEngine):
    """Keep a tracking step inside the engine while the block runs.

    The step runs on a worker thread that is released on exit.
    """
    release = threading.Event()
    engine.gate = release
    engine.entered.clear()
    worker = threading.Thread(target=gateway.track, args=(make_pair(0),))
    worker.start()
    try:
        assert engine.entered.wait(2.0), "tracking step never reached the engine"
        yield worker
    finally:
        release.set()
        worker.join(5.0)
        engine.gate = None


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> BridgeConfig:
    """Direct mode, no viewer, no map offset, long timer intervals."""
    return BridgeConfig(
        visualization=False,
        robot_x=0.0,
        robot_y=0.0,
        map_data_publish_frequency=60_000,
        landmark_publish_frequency=60_000,
    )


@pytest.fixture
def node(engine, transport, config, clock):
    n = StereoSlamNode(engine, transport, config, clock=lambda: 42, monotonic=clock)
    yield n
    n.shutdown()


@pytest.fixture
def euroc_dataset(tmp_path: Path) -> Path:
    """Mock EuRoC sequence with 3 stereo frames and IMU samples.

    The right camera is stamped 1ms after the left one.
    """
    mav0 = tmp_path / "mav0"
    cam0_data = mav0 / "cam0" / "data"
    cam1_data = mav0 / "cam1" / "data"
    cam0_data.mkdir(parents=True)
    cam1_data.mkdir(parents=True)
    (mav0 / "imu0").mkdir()

    timestamps = [1403636579763555584, 1403636579813555456, 1403636579863555328]
    right_offset = 1_000_000

    cam0_csv = "#timestamp [ns],filename\n"
    cam1_csv = "#timestamp [ns],filename\n"
    for i, ts in enumerate(timestamps):
        cv2.imwrite(str(cam0_data / f"{ts}.png"), np.full((100, 100), i * 50, dtype=np.uint8))
        right_ts = ts + right_offset
        cv2.imwrite(
            str(cam1_data / f"{right_ts}.png"),
            np.full((100, 100), i * 50 + 25, dtype=np.uint8),
        )
        cam0_csv += f"{ts},{ts}.png\n"
        cam1_csv += f"{right_ts},{right_ts}.png\n"

    (mav0 / "cam0" / "data.csv").write_text(cam0_csv)
    (mav0 / "cam1" / "data.csv").write_text(cam1_csv)

    imu_csv = "#timestamp [ns],w_x,w_y,w_z,a_x,a_y,a_z\n"
    start = timestamps[0] - 10_000_000
    for k in range(25):
        ts = start + k * 5_000_000
        imu_csv += f"{ts},0.01,0.02,0.03,9.8,0.1,0.2\n"
    (mav0 / "imu0" / "data.csv").write_text(imu_csv)

    return mav0
