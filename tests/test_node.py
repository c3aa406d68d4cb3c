"""End-to-end tests for StereoSlamNode over the in-process transport."""

import threading

import numpy as np
import pytest

from conftest import FakeEngine, make_image, make_pair, make_points
from slam_bridge import (
    SE3,
    BridgeConfig,
    GetLandmarksInViewRequest,
    GetMapRequest,
    Header,
    ImuMessage,
    OdometryMessage,
    Pose,
    StereoSlamNode,
)
from slam_bridge.scheduler import MAP_DATA_CHANNEL, MAP_POINTS_CHANNEL
from slam_bridge.services import GET_LANDMARKS_IN_VIEW_SERVICE, GET_MAP_DATA_SERVICE
from slam_bridge.transport import TF_CHANNEL

MS = 1_000_000


def send_stereo(transport, stamp_ns: int, skew_ns: int = 0) -> None:
    transport.publish("left/image_raw", make_image(stamp_ns, frame_id="left"))
    transport.publish("right/image_raw", make_image(stamp_ns + skew_ns, frame_id="right"))


def send_odom(transport, stamp_ns: int, x: float = 0.0) -> None:
    transport.publish(
        "odom",
        OdometryMessage(
            header=Header(stamp_ns, "odom"),
            pose=Pose(position=[x, 0.0, 0.0]),
            child_frame_id="base_link",
        ),
    )


class TestStereoPath:
    """Test suite for stereo tracking and transform broadcast."""

    def test_pair_tracked_and_transform_broadcast(self, node, engine, transport):
        """A synchronized pair yields one tracking step and one map->robot transform."""
        engine.pose = SE3(np.eye(3), [0.0, 0.0, 1.0])
        node.start()
        send_stereo(transport, 1000 * MS, skew_ns=5 * MS)

        assert engine.calls.count("track_stereo") == 1
        assert engine.call_args["track_stereo"][2] == pytest.approx(1.0)
        assert node.tracked

        [tf] = transport.messages(TF_CHANNEL)
        assert tf.header.frame_id == "map"
        assert tf.child_frame_id == "base_link"
        assert tf.header.stamp_ns == 1000 * MS
        np.testing.assert_allclose(tf.transform.translation, [1.0, 0.0, 0.0], atol=1e-12)

    def test_unpaired_images_not_tracked(self, node, engine, transport):
        node.start()
        transport.publish("left/image_raw", make_image(1000 * MS))
        transport.publish("right/image_raw", make_image(1200 * MS))

        assert "track_stereo" not in engine.calls

    def test_transform_only_after_success(self, node, engine, transport):
        """Each successful track yields exactly one transform; failures yield none."""
        engine.script = [False, True, False, True, True]
        node.start()
        for i in range(5):
            send_stereo(transport, (i + 1) * 100 * MS)

        tfs = transport.messages(TF_CHANNEL)
        assert [tf.header.stamp_ns for tf in tfs] == [200 * MS, 400 * MS, 500 * MS]
        assert node.num_frames == 5
        assert node.num_transforms == 3

    def test_publish_tf_disabled(self, engine, transport, config, clock):
        config.publish_tf = False
        with StereoSlamNode(engine, transport, config, monotonic=clock) as node:
            send_stereo(transport, 100 * MS)
            assert node.tracked

        assert transport.messages(TF_CHANNEL) == []

    def test_robot_offset(self, engine, transport):
        config = BridgeConfig(visualization=False)
        with StereoSlamNode(engine, transport, config):
            send_stereo(transport, 100 * MS)

        [tf] = transport.messages(TF_CHANNEL)
        np.testing.assert_allclose(tf.transform.translation, [1.0, 1.0, 0.0])

    def test_imu_forwarded(self, node, engine, transport):
        node.start()
        transport.publish("imu", ImuMessage(Header(5, "imu"), [0, 0, 1], [0, 0, 9.8]))

        assert len(engine.imu_samples) == 1
        assert node.ingest.num_imu == 1


class TestComposedMode:
    """Test suite for map->odom broadcast with odometry."""

    @pytest.fixture
    def odom_node(self, engine, transport, config, clock):
        config.no_odometry_mode = False
        n = StereoSlamNode(engine, transport, config, monotonic=clock)
        n.start()
        yield n
        n.shutdown()

    def test_no_transform_without_odometry(self, odom_node, transport):
        send_stereo(transport, 100 * MS)

        assert odom_node.tracked
        assert transport.messages(TF_CHANNEL) == []

    def test_map_to_odom_broadcast(self, odom_node, engine, transport):
        engine.pose = SE3(np.eye(3), [0.0, 0.0, 2.0])
        send_stereo(transport, 100 * MS)
        send_odom(transport, 150 * MS, x=0.5)
        send_stereo(transport, 200 * MS)

        [tf] = transport.messages(TF_CHANNEL)
        assert tf.child_frame_id == "odom"
        assert tf.header.stamp_ns == 150 * MS
        np.testing.assert_allclose(tf.transform.translation, [1.5, 0.0, 0.0], atol=1e-9)
        assert odom_node.ingest.num_odom_used == 1

    def test_odometry_before_tracking_ignored(self, odom_node, transport):
        send_odom(transport, 50 * MS)
        send_stereo(transport, 100 * MS)

        assert transport.messages(TF_CHANNEL) == []


class TestPublications:
    """Test suite for the timers and services wired by the node."""

    def test_timers_gated_on_tracking(self, engine, transport, config, clock):
        engine.points_data = make_points([[0, 0, 1]])
        node = StereoSlamNode(engine, transport, config, monotonic=clock)

        assert not node.scheduler.run_map_data_once()

        node.start()
        send_stereo(transport, 100 * MS)
        clock.advance(1.0)
        assert node.scheduler.run_map_data_once()
        assert node.scheduler.run_point_cloud_once()
        node.shutdown()

        [data] = transport.messages(MAP_DATA_CHANNEL)
        assert data.num_points == 1
        assert node.scheduler.last_frequency == pytest.approx(1.0)

    def test_never_tracked_publishes_nothing(self, node, engine, transport):
        """While every tracking step fails, no transform, map data or point cloud goes out."""
        engine.succeed = False
        engine.points_data = make_points([[0, 0, 1], [0, 0, 2]])
        node.start()
        for i in range(10):
            send_stereo(transport, (i + 1) * 100 * MS)

        assert engine.calls.count("track_stereo") == 10
        assert not node.tracked
        assert transport.messages(TF_CHANNEL) == []

        assert not node.scheduler.run_map_data_once()
        assert not node.scheduler.run_point_cloud_once()
        assert transport.messages(MAP_DATA_CHANNEL) == []
        assert transport.messages(MAP_POINTS_CHANNEL) == []
        assert node.num_frames == 10
        assert node.num_transforms == 0

    def test_ros_visualization_disabled(self, engine, transport, config):
        config.ros_visualization = False
        node = StereoSlamNode(engine, transport, config)

        assert [t.name for t in node.scheduler.tasks] == ["map-data"]

    def test_services_registered(self, node, engine, transport):
        engine.points_data = make_points([[0, 0, 1], [0, 0, 2]])
        node.start()

        response = transport.call_service(GET_MAP_DATA_SERVICE, GetMapRequest())
        assert response.data.num_points == 2
        assert response.data.header.stamp_ns == 42

        response = transport.call_service(
            GET_LANDMARKS_IN_VIEW_SERVICE, GetLandmarksInViewRequest(pose=Pose())
        )
        assert len(response.map_points) == 2

    def test_services_available_before_tracking(self, node, engine, transport):
        node.start()
        response = transport.call_service(GET_MAP_DATA_SERVICE, GetMapRequest())

        assert response.data.num_points == 0
        assert not node.tracked


class TestLifecycle:
    """Test suite for start and shutdown."""

    def test_start_subscribes(self, node, transport):
        node.start()
        node.start()

        for channel in ("left/image_raw", "right/image_raw", "imu", "odom"):
            assert transport.num_subscribers(channel) == 1
        assert node.is_running

    def test_shutdown(self, node, engine, transport):
        node.start()
        node.shutdown()

        assert not node.is_running
        assert engine.closed
        for channel in ("left/image_raw", "right/image_raw", "imu", "odom"):
            assert transport.num_subscribers(channel) == 0
        with pytest.raises(KeyError, match="No such service"):
            transport.call_service(GET_MAP_DATA_SERVICE, GetMapRequest())

        # Late deliveries after shutdown are absorbed.
        node.on_left_image(make_image(1))
        node.on_right_image(make_image(1))
        assert "track_stereo" not in engine.calls

    def test_visualizer_attached_only_when_enabled(self, engine, transport, config):
        class Recorder:
            def __init__(self):
                self.events = []

            def attach(self, transport):
                self.events.append("attach")

            def detach(self):
                self.events.append("detach")

        viz = Recorder()
        with StereoSlamNode(engine, transport, config, visualizer=viz):
            pass
        assert viz.events == []

        config.visualization = True
        with StereoSlamNode(FakeEngine(), transport, config, visualizer=viz):
            pass
        assert viz.events == ["attach", "detach"]

    def test_concurrent_inputs(self, engine, transport, config, clock):
        """Stereo, IMU, odometry, timers and services running together never overlap in the engine."""
        engine.delay = 0.001
        engine.points_data = make_points([[0, 0, 1]])
        config.no_odometry_mode = False
        config.map_data_publish_frequency = 2
        config.landmark_publish_frequency = 3

        def stereo():
            for i in range(30):
                send_stereo(transport, (i + 1) * 50 * MS)

        def odom():
            for i in range(30):
                send_odom(transport, (i + 1) * 50 * MS)

        def imu():
            for i in range(100):
                transport.publish("imu", ImuMessage(Header(i, "imu"), [0, 0, 0], [0, 0, 9.8]))

        def queries():
            for _ in range(10):
                transport.call_service(
                    GET_LANDMARKS_IN_VIEW_SERVICE, GetLandmarksInViewRequest(pose=Pose())
                )

        with StereoSlamNode(engine, transport, config, monotonic=clock) as node:
            threads = [threading.Thread(target=f) for f in (stereo, odom, imu, queries)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

        assert engine.max_concurrent == 1
        assert node.num_frames == 30
        assert len(engine.imu_samples) == 100

    def test_counters_under_concurrent_stereo(self, node, engine):
        """Frame and transform counters stay exact when stereo pairs arrive from many threads."""
        node.start()
        n_threads, per_thread = 8, 25

        def feed(offset):
            for i in range(per_thread):
                node.on_stereo(make_pair((offset * per_thread + i + 1) * MS))

        threads = [threading.Thread(target=feed, args=(k,)) for k in range(n_threads)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert engine.calls.count("track_stereo") == n_threads * per_thread
        assert node.num_frames == n_threads * per_thread
        assert node.num_transforms == n_threads * per_thread
