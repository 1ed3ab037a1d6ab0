"""CSV/TSV table preview builder."""
from __future__ import annotations

import csv
import io
import logging
from typing import Iterator

from bucketlens.preview.policy import DEFAULT_LIMITS, PreviewLimits
from bucketlens.preview.registry import get_object_extension
from bucketlens.preview.text import decode_preview_bytes, is_partial_fetch
from bucketlens.preview.types import BuildResult, TableContent

logger = logging.getLogger(__name__)

DELIMITER_CANDIDATES = ",\t;|"
SNIFF_SAMPLE_CHARS = 4096


def detect_delimiter(text: str, key: str) -> str:
    """Tab for ``.tsv``; otherwise sniff the sample, falling back to comma."""
    if get_object_extension(key) == "tsv":
        return "\t"
    sample = text[:SNIFF_SAMPLE_CHARS]
    if not sample.strip():
        return ","
    try:
        return csv.Sniffer().sniff(sample, delimiters=DELIMITER_CANDIDATES).delimiter
    except csv.Error:
        return ","


def _drop_partial_tail(text: str) -> str:
    """Drop the trailing line of a cut-off prefix; it is most likely incomplete."""
    cut = max(text.rfind("\n"), text.rfind("\r"))
    if cut <= 0:
        return text
    return text[:cut]


def _is_blank(row: list[str]) -> bool:
    return not any(cell.strip() for cell in row)


def _iter_records(text: str, delimiter: str, problems: list[str]) -> Iterator[list[str]]:
    """Yield parsed rows, skipping (and recording) the ones the reader rejects."""
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter, quotechar='"', doublequote=True, strict=True)
    while True:
        try:
            row = next(reader)
        except StopIteration:
            return
        except csv.Error as exc:
            problems.append(f"Row near line {reader.line_num} could not be parsed ({exc}).")
            continue
        if _is_blank(row):
            continue
        yield row


def _table_message(problems: list[str], truncated_rows: bool, truncated_columns: bool) -> str | None:
    if problems:
        return f"{problems[0]} Raw text is available below."
    if truncated_rows and truncated_columns:
        return "Preview limited to the first rows and columns for performance."
    if truncated_rows:
        return "Preview limited to the first rows for performance."
    if truncated_columns:
        return "Preview limited to the first columns for readability."
    return None


def parse_table_text(
    raw_text: str,
    key: str,
    *,
    partial: bool = False,
    limits: PreviewLimits = DEFAULT_LIMITS,
) -> BuildResult:
    """Parse delimited text into a capped table.

    Never raises on malformed input: rows the reader rejects are skipped and
    the first problem is reported in the message so the caller can fall back
    to ``raw_text``.
    """
    delimiter = detect_delimiter(raw_text, key)
    parse_text = _drop_partial_tail(raw_text) if partial else raw_text

    problems: list[str] = []
    records = _iter_records(parse_text, delimiter, problems)
    header = next(records, [])

    data_rows: list[list[str]] = []
    truncated_rows = partial
    for row in records:
        if len(data_rows) >= limits.max_table_rows:
            truncated_rows = True
            break
        data_rows.append(row)

    total_columns = max([len(header)] + [len(row) for row in data_rows])
    truncated_columns = total_columns > limits.max_table_columns
    visible_columns = min(total_columns, limits.max_table_columns)

    columns = tuple(
        (header[index].strip() if index < len(header) else "") or f"Column {index + 1}"
        for index in range(visible_columns)
    )
    rows = tuple(
        tuple(row[index] if index < len(row) else "" for index in range(visible_columns))
        for row in data_rows
    )

    if problems:
        logger.info("table preview parsed with problems", extra={"key": key, "problems": len(problems)})

    return BuildResult(
        content=TableContent(
            columns=columns,
            rows=rows,
            truncated_rows=truncated_rows,
            truncated_columns=truncated_columns,
            raw_text=raw_text,
            delimiter=delimiter,
        ),
        is_truncated=truncated_rows or truncated_columns,
        message=_table_message(problems, truncated_rows, truncated_columns),
    )


def build_table_preview(
    data: bytes,
    *,
    key: str,
    byte_limit: int,
    object_size: int | None = None,
    limits: PreviewLimits = DEFAULT_LIMITS,
) -> BuildResult:
    partial = is_partial_fetch(len(data), byte_limit, object_size)
    raw_text = decode_preview_bytes(data, partial=partial)
    return parse_table_text(raw_text, key, partial=partial, limits=limits)
