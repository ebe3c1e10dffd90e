"""CSV input/output for QuAL scoring.

Reads an uploaded dataset, pulls the narrative feedback out of one or more
columns per row, and writes the dataset back with four score columns
appended.
"""

import csv
import io
import logging
from typing import Sequence

from config import settings
from models.schemas.qual_score import CompositeScore

logger = logging.getLogger(__name__)

SCORE_COLUMNS = ["QuAL Score", "Evidence Score", "Suggestion Given", "Suggestion Linked"]


class ColumnNotFound(ValueError):
    def __init__(self, missing: list[str], available: list[str]) -> None:
        self.missing = missing
        self.available = available
        super().__init__(
            f"Column(s) not found: {', '.join(missing)}. Available: {', '.join(available)}"
        )


def parse_feedback_columns(raw: str | None) -> list[str]:
    """Split a comma-separated column list; fall back to the configured default."""
    if not raw or not raw.strip():
        return list(settings.default_feedback_columns)
    return [c.strip() for c in raw.split(",") if c.strip()]


def parse_csv(text: str) -> tuple[list[str], list[dict[str, str]]]:
    """Parse CSV text into (column names, rows). A leading BOM is dropped."""
    if text.startswith("\ufeff"):
        text = text[1:]
    reader = csv.DictReader(io.StringIO(text))
    try:
        columns = list(reader.fieldnames or [])
        rows = [{col: (row.get(col) or "") for col in columns} for row in reader]
    except csv.Error as e:
        raise ValueError(f"Malformed CSV: {e}") from e
    return columns, rows


def extract_comments(
    rows: Sequence[dict[str, str]],
    feedback_columns: Sequence[str],
    columns: Sequence[str] | None = None,
) -> tuple[list[int], list[str]]:
    """Build one comment per row from its feedback columns.

    Non-empty values are joined with a space. Rows without any feedback are
    skipped; the returned row indices map each comment back to its row.
    """
    if columns is not None:
        missing = [c for c in feedback_columns if c not in columns]
        if missing:
            raise ColumnNotFound(missing, list(columns))

    row_indices: list[int] = []
    comments: list[str] = []
    for i, row in enumerate(rows):
        parts = [(row.get(c) or "").strip() for c in feedback_columns]
        text = " ".join(p for p in parts if p)
        if text:
            row_indices.append(i)
            comments.append(text)
    return row_indices, comments


def _score_cells(score: CompositeScore | None) -> list[str]:
    if score is None:
        return ["", "", "", ""]
    return [str(score.qual), score.q1, score.q2i, score.q3i]


def attach_scores(
    columns: Sequence[str],
    rows: Sequence[dict[str, str]],
    row_indices: Sequence[int],
    scores: Sequence[CompositeScore | None],
) -> tuple[list[str], list[dict[str, str]]]:
    """Append the four score columns. Rows that were not scored get blanks."""
    if len(row_indices) != len(scores):
        raise ValueError(f"Got {len(scores)} scores for {len(row_indices)} scored rows")

    by_row = dict(zip(row_indices, scores))
    out_columns = list(columns) + [c for c in SCORE_COLUMNS if c not in columns]
    out_rows = []
    for i, row in enumerate(rows):
        merged = dict(row)
        merged.update(zip(SCORE_COLUMNS, _score_cells(by_row.get(i))))
        out_rows.append(merged)
    return out_columns, out_rows


def _neutralise(value: str) -> str:
    # '#' breaks some spreadsheet imports of the downloaded file
    return value.replace("#", settings.hash_replacement)


def write_csv(columns: Sequence[str], rows: Sequence[dict[str, str]]) -> str:
    """Serialise rows to CSV text with standard quoting."""
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow([_neutralise(c) for c in columns])
    for row in rows:
        writer.writerow([_neutralise(str(row.get(c, "") or "")) for c in columns])
    logger.debug("Wrote %d rows x %d columns", len(rows), len(columns))
    return buf.getvalue()
