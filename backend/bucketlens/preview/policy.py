"""Size and consent driven load policy for inline previews."""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from bucketlens.preview.registry import is_url_handler
from bucketlens.preview.types import BlockedReason, HandlerId, LoadMode, LoadPolicy

if TYPE_CHECKING:
    from bucketlens.config import Settings

# Soft cap: larger text-like objects need explicit consent.
AUTO_PREVIEW_BYTES = 256 * 1024
# Hard cap: larger text-like objects are never fetched.
MANUAL_PREVIEW_BYTES = 2 * 1024 * 1024
MAX_RENDERED_TEXT_CHARS = 200_000
MAX_RENDERED_LINES = 5_000
MAX_TABLE_ROWS = 500
MAX_TABLE_COLUMNS = 50


@dataclass(frozen=True)
class PreviewLimits:
    auto_load_bytes: int = AUTO_PREVIEW_BYTES
    max_bytes: int = MANUAL_PREVIEW_BYTES
    max_chars: int = MAX_RENDERED_TEXT_CHARS
    max_lines: int = MAX_RENDERED_LINES
    max_table_rows: int = MAX_TABLE_ROWS
    max_table_columns: int = MAX_TABLE_COLUMNS

    def __post_init__(self) -> None:
        if self.max_bytes <= self.auto_load_bytes:
            raise ValueError("max_bytes must be greater than auto_load_bytes")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "PreviewLimits":
        return cls(
            auto_load_bytes=settings.preview_auto_load_bytes,
            max_bytes=settings.preview_max_bytes,
            max_chars=settings.preview_max_chars,
            max_lines=settings.preview_max_lines,
            max_table_rows=settings.preview_max_table_rows,
            max_table_columns=settings.preview_max_table_columns,
        )

    def byte_cap(self, load_mode: LoadMode) -> int:
        return self.max_bytes if load_mode == "manual" else self.auto_load_bytes


DEFAULT_LIMITS = PreviewLimits()

UNSUPPORTED_POLICY = LoadPolicy(blocked_reason="unsupported", can_manual_load=False, load_mode=None)
TOO_LARGE_POLICY = LoadPolicy(blocked_reason="too-large", can_manual_load=False, load_mode=None)
MANUAL_POLICY = LoadPolicy(blocked_reason="manual", can_manual_load=True, load_mode=None)


def decide(
    handler_id: HandlerId,
    size: int | None,
    manual_requested: bool,
    limits: PreviewLimits = DEFAULT_LIMITS,
) -> LoadPolicy:
    """Decide whether a preview may load and in which mode.

    The hard cap always wins over consent. An unknown size never blocks.
    """
    if handler_id == "unsupported":
        return UNSUPPORTED_POLICY

    # Media and point clouds stream from a URL, so their size is irrelevant.
    if is_url_handler(handler_id):
        return LoadPolicy(blocked_reason=None, can_manual_load=False, load_mode="auto")

    if size is not None:
        if size > limits.max_bytes:
            return TOO_LARGE_POLICY
        if size > limits.auto_load_bytes and not manual_requested:
            return MANUAL_POLICY

    return LoadPolicy(
        blocked_reason=None,
        can_manual_load=False,
        load_mode="manual" if manual_requested else "auto",
    )


def fetch_budget(size: int | None, load_mode: LoadMode, limits: PreviewLimits = DEFAULT_LIMITS) -> int:
    """Number of leading bytes to fetch; never more than the object holds."""
    limit = limits.byte_cap(load_mode)
    if size is None:
        return limit
    return max(0, min(size, limit))


def _format_bytes(value: int) -> str:
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:g} {unit}"
        value = round(value / 1024, 2)
    return f"{value:g} GB"


def blocked_message(reason: BlockedReason, limits: PreviewLimits = DEFAULT_LIMITS) -> str:
    if reason == "manual":
        return "Inline preview is available on demand for this file size."
    if reason == "too-large":
        return f"Inline preview is disabled for files larger than {_format_bytes(limits.max_bytes)}."
    return "Inline preview is not available for this file type."
