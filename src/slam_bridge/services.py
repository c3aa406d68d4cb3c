"""Request/response services: map data and landmarks in view."""

from __future__ import annotations

import logging
import time
from typing import Callable

from .conversions import msgs_to_point_cloud
from .exceptions import InvalidRequestError
from .gateway import EngineGateway
from .messages import (
    GetLandmarksInViewRequest,
    GetLandmarksInViewResponse,
    GetMapRequest,
    GetMapResponse,
    Header,
    PoseStamped,
)
from .transport import Transport

logger = logging.getLogger(__name__)

GET_MAP_DATA_SERVICE = "orb_slam3_get_map_data"
GET_LANDMARKS_IN_VIEW_SERVICE = "orb_slam3_get_landmarks_in_view"
VISIBLE_LANDMARKS_CHANNEL = "visible_landmarks"
VISIBLE_LANDMARKS_POSE_CHANNEL = "visible_landmarks_pose"


class MapDataService:
    """Returns a map snapshot on request."""

    def __init__(self, gateway: EngineGateway) -> None:
        self._gateway = gateway

    def __call__(self, request: GetMapRequest) -> GetMapResponse:
        logger.info(
            "GetMap service called (tracked_points_only=%s, keyframe_id=%s)",
            request.tracked_points_only,
            request.keyframe_id,
        )
        data = self._gateway.snapshot_map(
            current_map_only=False,
            tracked_points_only=request.tracked_points_only,
            keyframe_id=request.keyframe_id,
        )
        return GetMapResponse(data=data)


class LandmarkVisibilityQuery:
    """Landmarks visible from a queried pose.

    Besides the response, the result is published as a point cloud on
    ``visible_landmarks`` and the queried pose is echoed on
    ``visible_landmarks_pose``. Those publications are best effort: a
    failure is logged and the response is returned regardless.

    Args:
        gateway: Engine access point
        transport: Destination of the diagnostic publications
        global_frame: Frame of the diagnostic messages
        max_count: Maximum landmarks per response
        radius: Maximum landmark distance from the pose
        fov: Field-of-view parameter passed to the engine
        clock: Returns the current time in nanoseconds
    """

    def __init__(
        self,
        gateway: EngineGateway,
        transport: Transport,
        global_frame: str = "map",
        max_count: int = 1000,
        radius: float = 5.0,
        fov: float = 2.0,
        clock: Callable[[], int] = time.time_ns,
    ) -> None:
        self._gateway = gateway
        self._transport = transport
        self._global_frame = global_frame
        self.max_count = max_count
        self.radius = radius
        self.fov = fov
        self._clock = clock

    def __call__(self, request: GetLandmarksInViewRequest) -> GetLandmarksInViewResponse:
        """Answer a visibility query.

        Raises:
            InvalidRequestError: If the pose is missing or not finite
        """
        pose = getattr(request, "pose", None)
        if pose is None or not pose.is_finite():
            raise InvalidRequestError(f"Invalid query pose: {pose!r}")

        logger.info("GetLandmarksInView service called")
        landmarks = self._gateway.visible_landmarks(
            pose, self.max_count, self.radius, self.fov
        )[: self.max_count]

        header = Header(stamp_ns=self._clock(), frame_id=self._global_frame)
        cloud = msgs_to_point_cloud(landmarks, header)
        logger.debug("Visible landmarks cloud size: %d", len(cloud))
        self._publish(VISIBLE_LANDMARKS_CHANNEL, cloud)
        self._publish(VISIBLE_LANDMARKS_POSE_CHANNEL, PoseStamped(header=header, pose=pose))

        return GetLandmarksInViewResponse(map_points=landmarks)

    def _publish(self, channel: str, message: object) -> None:
        try:
            self._transport.publish(channel, message)
        except Exception:
            logger.exception("Failed to publish on '%s'", channel)
