from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import Field

from bucketlens.common.schemas import CamelModel
from bucketlens.preview.types import (
    BlockedReason,
    HandlerId,
    MarkupContent,
    MediaContent,
    MediaType,
    PointCloudContent,
    PreviewActions,
    PreviewContent,
    PreviewState,
    PreviewStatus,
    TableContent,
    TextContent,
)


class MediaContentSchema(CamelModel):
    kind: Literal["media"] = "media"
    media_type: MediaType
    url: str


class TextContentSchema(CamelModel):
    kind: Literal["text"] = "text"
    text: str
    line_count: int
    truncated: bool
    language: str | None = None


class TableContentSchema(CamelModel):
    kind: Literal["table"] = "table"
    columns: list[str]
    rows: list[list[str]]
    truncated_rows: bool
    truncated_columns: bool
    raw_text: str
    delimiter: str


class MarkupContentSchema(CamelModel):
    kind: Literal["markup"] = "markup"
    html: str
    text: str
    line_count: int
    truncated: bool


class PointCloudContentSchema(CamelModel):
    kind: Literal["point-cloud"] = "point-cloud"
    url: str


PreviewContentSchema = Annotated[
    Union[
        MediaContentSchema,
        TextContentSchema,
        TableContentSchema,
        MarkupContentSchema,
        PointCloudContentSchema,
    ],
    Field(discriminator="kind"),
]


class PreviewStateSchema(CamelModel):
    handler_id: HandlerId
    status: PreviewStatus
    download_url: str | None = None
    content: PreviewContentSchema | None = None
    message: str | None = None
    blocked_reason: BlockedReason | None = None
    can_manual_load: bool = False
    is_truncated: bool = False
    error: str | None = None


class PreviewActionsSchema(CamelModel):
    load_preview: bool = False
    retry: bool = False


class PreviewSessionResponse(CamelModel):
    session_id: str
    state: PreviewStateSchema
    actions: PreviewActionsSchema


class SelectionRequest(CamelModel):
    container: str | None = None
    key: str = Field(min_length=1)
    size: int | None = Field(default=None, ge=0)
    is_folder: bool = False


def content_to_schema(content: PreviewContent) -> PreviewContentSchema:
    """Map a built content value onto its wire model.

    This is the one place every content kind must be handled.
    """
    if isinstance(content, MediaContent):
        return MediaContentSchema(media_type=content.media_type, url=content.url)
    if isinstance(content, TextContent):
        return TextContentSchema(
            text=content.text,
            line_count=content.line_count,
            truncated=content.truncated,
            language=content.language,
        )
    if isinstance(content, TableContent):
        return TableContentSchema(
            columns=list(content.columns),
            rows=[list(row) for row in content.rows],
            truncated_rows=content.truncated_rows,
            truncated_columns=content.truncated_columns,
            raw_text=content.raw_text,
            delimiter=content.delimiter,
        )
    if isinstance(content, MarkupContent):
        return MarkupContentSchema(
            html=content.html,
            text=content.text,
            line_count=content.line_count,
            truncated=content.truncated,
        )
    if isinstance(content, PointCloudContent):
        return PointCloudContentSchema(url=content.url)
    raise TypeError(f"Unhandled preview content: {content!r}")


def state_to_schema(state: PreviewState) -> PreviewStateSchema:
    return PreviewStateSchema(
        handler_id=state.handler_id,
        status=state.status,
        download_url=state.download_url,
        content=content_to_schema(state.content) if state.content is not None else None,
        message=state.message,
        blocked_reason=state.blocked_reason,
        can_manual_load=state.can_manual_load,
        is_truncated=state.is_truncated,
        error=state.error,
    )


def actions_to_schema(actions: PreviewActions) -> PreviewActionsSchema:
    return PreviewActionsSchema(
        load_preview=actions.load_preview is not None,
        retry=actions.retry is not None,
    )
