"""Command line entry point.

Replays a EuRoC sequence through a stereo SLAM node backed by a
user-supplied engine:

    slam-bridge replay data/euroc/MH_01_easy/mav0 --engine my_pkg.engines:create

The ``--engine`` target is imported and called with no arguments; it must
return a :class:`slam_bridge.engine.SlamEngine`.
"""

from __future__ import annotations

import argparse
import importlib
import logging
import sys
from pathlib import Path
from typing import Sequence

from .config import BridgeConfig
from .engine import SlamEngine
from .exceptions import ConfigError
from .io import EurocImuReader, EurocStereoReader
from .node import StereoSlamNode
from .replay import DatasetReplay
from .transport import InProcessTransport

logger = logging.getLogger(__name__)


def load_engine(target: str) -> SlamEngine:
    """Import ``module:attribute`` and call it to build an engine.

    Raises:
        ConfigError: If the target is malformed or does not build an engine
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(f"Engine must be given as 'module:factory', got {target!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import engine module {module_name!r}: {e}") from e

    factory = getattr(module, attr, None)
    if factory is None:
        raise ConfigError(f"Module {module_name!r} has no attribute {attr!r}")

    engine = factory()
    if not isinstance(engine, SlamEngine):
        raise ConfigError(f"{target} returned {type(engine).__name__}, not a SlamEngine")
    return engine


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="slam-bridge",
        description="Stereo SLAM bridge",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    replay = sub.add_parser("replay", help="Replay a EuRoC sequence")
    replay.add_argument("dataset", type=Path, help="Path to the mav0 directory")
    replay.add_argument(
        "--engine", required=True, help="Engine factory as module:attribute"
    )
    replay.add_argument(
        "--config", type=Path, default=None, help="YAML configuration file"
    )
    replay.add_argument(
        "--max-frames",
        type=int,
        default=None,
        help="Max stereo frames to replay (default: all)",
    )
    replay.add_argument(
        "--rate",
        type=float,
        default=0.0,
        help="Playback speed, 1.0 is real time (default: 0, as fast as possible)",
    )
    replay.add_argument(
        "--no-imu", action="store_true", help="Do not replay imu0/data.csv"
    )
    replay.add_argument(
        "--spawn-viewer",
        action="store_true",
        help="Spawn the Rerun viewer when visualization is enabled",
    )
    return parser


def run_replay(args: argparse.Namespace) -> int:
    config = BridgeConfig.from_yaml(args.config) if args.config else BridgeConfig()
    engine = load_engine(args.engine)

    stereo = EurocStereoReader(args.dataset)
    imu = None
    if not args.no_imu:
        try:
            imu = EurocImuReader(args.dataset)
        except FileNotFoundError:
            logger.warning("No IMU data in %s, replaying cameras only", args.dataset)

    visualizer = None
    if config.visualization:
        from .visualization import RerunVisualizer

        visualizer = RerunVisualizer("slam-bridge", spawn=args.spawn_viewer)

    transport = InProcessTransport()
    with StereoSlamNode(engine, transport, config, visualizer=visualizer) as node:
        replay = DatasetReplay(stereo, transport, config, imu=imu, rate=args.rate)
        replay.run(max_frames=args.max_frames)
        logger.info(
            "Tracked: %s, stereo frames: %d, transforms: %d",
            node.tracked,
            node.num_frames,
            node.num_transforms,
        )
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return run_replay(args)
    except (ConfigError, FileNotFoundError, ValueError) as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
