"""Text and markup preview builders.

Both decode the fetched prefix leniently and cap what gets rendered. A preview
is flagged as truncated whenever it shows less than the whole object, whether
because only a prefix was fetched or because a rendering cap kicked in.
"""
from __future__ import annotations

import codecs
import re

from bucketlens.preview.policy import DEFAULT_LIMITS, PreviewLimits
from bucketlens.preview.registry import get_language_hint
from bucketlens.preview.types import BuildResult, MarkupContent, TextContent

LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")

TEXT_TRUNCATED_MESSAGE = "Preview truncated to keep rendering responsive."
MARKUP_TRUNCATED_MESSAGE = "Preview truncated. The full file may contain additional content."


def is_partial_fetch(fetched: int, byte_limit: int, object_size: int | None) -> bool:
    """Whether the fetched prefix is shorter than the object it came from."""
    if object_size is not None:
        return fetched < object_size
    # Unknown size: a completely filled budget most likely cut the object short.
    return fetched == byte_limit and fetched > 0


def decode_preview_bytes(data: bytes, *, partial: bool = False) -> str:
    """Decode UTF-8 without ever raising.

    Invalid sequences become U+FFFD. For a partial fetch an incomplete
    multi-byte sequence at the very end is dropped instead of replaced.
    """
    decoder = codecs.getincrementaldecoder("utf-8-sig")(errors="replace")
    return decoder.decode(data, final=not partial)


def count_lines(text: str) -> int:
    if not text:
        return 0
    return len(LINE_BREAK_RE.findall(text)) + 1


def truncate_by_lines(text: str, max_lines: int) -> tuple[str, bool, int]:
    """Cut ``text`` at the last line break that keeps it within ``max_lines``.

    Returns ``(text, truncated, line_count)``.
    """
    if not text:
        return "", False, 0

    line_count = 1
    for match in LINE_BREAK_RE.finditer(text):
        line_count += 1
        if line_count > max_lines:
            return text[: match.start()], True, max_lines
    return text, False, line_count


def _decode_and_cap(
    data: bytes,
    byte_limit: int,
    object_size: int | None,
    limits: PreviewLimits,
) -> tuple[str, bool]:
    partial = is_partial_fetch(len(data), byte_limit, object_size)
    text = decode_preview_bytes(data, partial=partial)
    truncated = partial
    if len(text) > limits.max_chars:
        text = text[: limits.max_chars]
        truncated = True
    return text, truncated


def build_text_preview(
    data: bytes,
    *,
    key: str,
    byte_limit: int,
    object_size: int | None = None,
    limits: PreviewLimits = DEFAULT_LIMITS,
) -> BuildResult:
    text, truncated = _decode_and_cap(data, byte_limit, object_size, limits)
    text, lines_truncated, line_count = truncate_by_lines(text, limits.max_lines)
    truncated = truncated or lines_truncated

    return BuildResult(
        content=TextContent(
            text=text,
            line_count=line_count,
            truncated=truncated,
            language=get_language_hint(key),
        ),
        is_truncated=truncated,
        message=TEXT_TRUNCATED_MESSAGE if truncated else None,
    )


def build_markup_preview(
    data: bytes,
    *,
    byte_limit: int,
    object_size: int | None = None,
    limits: PreviewLimits = DEFAULT_LIMITS,
) -> BuildResult:
    """Keep the decoded markup both for sandboxed rendering and as source text.

    The line count is capped for display only; the markup itself is never cut
    mid-document beyond the character cap.
    """
    text, truncated = _decode_and_cap(data, byte_limit, object_size, limits)
    line_count = min(count_lines(text), limits.max_lines)

    return BuildResult(
        content=MarkupContent(html=text, text=text, line_count=line_count, truncated=truncated),
        is_truncated=truncated,
        message=MARKUP_TRUNCATED_MESSAGE if truncated else None,
    )
