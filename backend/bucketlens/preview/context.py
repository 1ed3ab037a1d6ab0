"""Application-scoped preview wiring.

The cache, storage adapter and viewer builder are created once at startup and
shared by every session's controller.
"""
from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable

from starlette.requests import Request

from bucketlens.common.storage import MinioStorageAdapter, StorageAdapter
from bucketlens.config import Settings
from bucketlens.preview.cache import PreviewCache
from bucketlens.preview.controller import PreviewController
from bucketlens.preview.pointcloud import PointCloudViewerBuilder
from bucketlens.preview.policy import PreviewLimits

logger = logging.getLogger(__name__)


class PreviewSessions:
    """One controller per client session, keyed by an opaque id.

    A session untouched for longer than ``idle_ttl_sec`` is closed and
    dropped the next time the registry is used.
    """

    def __init__(self, idle_ttl_sec: float = 1800.0, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.idle_ttl_sec = idle_ttl_sec
        self._clock = clock
        self._controllers: dict[str, PreviewController] = {}
        self._last_seen: dict[str, float] = {}

    def add(self, controller: PreviewController) -> str:
        self.expire_idle()
        session_id = uuid.uuid4().hex
        self._controllers[session_id] = controller
        self._last_seen[session_id] = self._clock()
        return session_id

    def get(self, session_id: str) -> PreviewController | None:
        self.expire_idle()
        controller = self._controllers.get(session_id)
        if controller is not None:
            self._last_seen[session_id] = self._clock()
        return controller

    def remove(self, session_id: str) -> bool:
        controller = self._controllers.pop(session_id, None)
        self._last_seen.pop(session_id, None)
        if controller is None:
            return False
        controller.close()
        return True

    def expire_idle(self) -> int:
        cutoff = self._clock() - self.idle_ttl_sec
        expired = [session_id for session_id, seen in self._last_seen.items() if seen < cutoff]
        for session_id in expired:
            self.remove(session_id)
        if expired:
            logger.info("preview_sessions_expired count=%d remaining=%d", len(expired), len(self._controllers))
        return len(expired)

    def close_all(self) -> None:
        for session_id in list(self._controllers):
            self.remove(session_id)

    def __len__(self) -> int:
        return len(self._controllers)


@dataclass
class PreviewContext:
    storage: StorageAdapter
    viewer: PointCloudViewerBuilder
    limits: PreviewLimits = field(default_factory=PreviewLimits)
    cache: PreviewCache = field(default_factory=PreviewCache)
    sessions: PreviewSessions = field(default_factory=PreviewSessions)
    default_container: str = ""

    def new_controller(self) -> PreviewController:
        return PreviewController(self.storage, self.cache, limits=self.limits)

    def close(self) -> None:
        logger.info("closing preview sessions", extra={"sessions": len(self.sessions)})
        self.sessions.close_all()


def build_preview_context(settings: Settings) -> PreviewContext:
    return PreviewContext(
        storage=MinioStorageAdapter(url_expiry_sec=settings.preview_url_expiry_sec),
        viewer=PointCloudViewerBuilder(
            settings.point_cloud_viewer_url(),
            timeout_sec=settings.point_cloud_viewer_timeout_sec,
        ),
        limits=PreviewLimits.from_settings(settings),
        sessions=PreviewSessions(idle_ttl_sec=settings.preview_session_idle_sec),
        default_container=(settings.minio_default_bucket or "").strip(),
    )


def get_preview_context(request: Request) -> PreviewContext:
    return request.app.state.preview
