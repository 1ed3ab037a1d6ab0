from __future__ import annotations

from bucketlens.preview.policy import DEFAULT_LIMITS, PreviewLimits
from bucketlens.preview.table import build_table_preview
from bucketlens.preview.text import build_markup_preview, build_text_preview
from bucketlens.preview.types import BuildResult, HandlerId


def build_buffered_content(
    handler_id: HandlerId,
    data: bytes,
    *,
    key: str,
    byte_limit: int,
    object_size: int | None,
    limits: PreviewLimits = DEFAULT_LIMITS,
) -> BuildResult:
    """Run the builder matching ``handler_id`` over a fetched byte prefix."""
    if handler_id == "text":
        return build_text_preview(data, key=key, byte_limit=byte_limit, object_size=object_size, limits=limits)
    if handler_id == "table":
        return build_table_preview(data, key=key, byte_limit=byte_limit, object_size=object_size, limits=limits)
    if handler_id == "markup":
        return build_markup_preview(data, byte_limit=byte_limit, object_size=object_size, limits=limits)
    raise ValueError(f"No buffered builder for handler: {handler_id}")
