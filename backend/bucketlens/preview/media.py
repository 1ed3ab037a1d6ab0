from __future__ import annotations

from bucketlens.preview.types import HandlerId, MediaContent, PointCloudContent


def build_media_preview(handler_id: HandlerId, url: str) -> MediaContent:
    if handler_id not in ("image", "video"):
        raise ValueError(f"Not a media handler: {handler_id}")
    return MediaContent(media_type=handler_id, url=url)


def build_point_cloud_preview(url: str) -> PointCloudContent:
    return PointCloudContent(url=url)
