"""Type definitions shared by the preview registry, builders and controller."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, ClassVar, Literal, Union

HandlerId = Literal["image", "video", "point-cloud", "table", "markup", "text", "unsupported"]
PreviewStatus = Literal["idle", "loading", "ready", "blocked", "error"]
BlockedReason = Literal["manual", "too-large", "unsupported"]
LoadMode = Literal["auto", "manual"]
MediaType = Literal["image", "video"]


@dataclass(frozen=True)
class ObjectSelection:
    """Object picked by the user; ``size`` comes from listing metadata."""

    container: str
    key: str
    size: int | None = None
    is_folder: bool = False


@dataclass(frozen=True)
class LoadPolicy:
    blocked_reason: BlockedReason | None
    can_manual_load: bool
    load_mode: LoadMode | None


@dataclass(frozen=True)
class MediaContent:
    kind: ClassVar[str] = "media"

    media_type: MediaType
    url: str


@dataclass(frozen=True)
class TextContent:
    kind: ClassVar[str] = "text"

    text: str
    line_count: int
    truncated: bool
    language: str | None = None


@dataclass(frozen=True)
class TableContent:
    kind: ClassVar[str] = "table"

    columns: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]
    truncated_rows: bool
    truncated_columns: bool
    raw_text: str
    delimiter: str


@dataclass(frozen=True)
class MarkupContent:
    kind: ClassVar[str] = "markup"

    html: str
    text: str
    line_count: int
    truncated: bool


@dataclass(frozen=True)
class PointCloudContent:
    kind: ClassVar[str] = "point-cloud"

    url: str


PreviewContent = Union[MediaContent, TextContent, TableContent, MarkupContent, PointCloudContent]


@dataclass(frozen=True)
class BuildResult:
    """Output of a buffered builder (text, table, markup)."""

    content: PreviewContent
    is_truncated: bool
    message: str | None = None


@dataclass(frozen=True)
class CacheKey:
    container: str
    key: str
    handler_id: HandlerId
    load_mode: LoadMode


@dataclass(frozen=True)
class CacheEntry:
    content: PreviewContent
    is_truncated: bool
    message: str | None = None


@dataclass
class PreviewState:
    """Snapshot of what the presentation layer should show.

    ``content`` is set only while ``status == "ready"`` and ``error`` only
    while ``status == "error"``.
    """

    handler_id: HandlerId = "unsupported"
    status: PreviewStatus = "idle"
    download_url: str | None = None
    content: PreviewContent | None = None
    message: str | None = None
    blocked_reason: BlockedReason | None = None
    can_manual_load: bool = False
    is_truncated: bool = False
    error: str | None = None


@dataclass(frozen=True)
class PreviewActions:
    """Callables offered to the presentation layer for the current state."""

    load_preview: Callable[[], object] | None = None
    retry: Callable[[], object] | None = None
