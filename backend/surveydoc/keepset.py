"""Row survival for filtered work tables."""

from __future__ import annotations

from typing import Iterable

from surveydoc.docx.table import Row, RowKind


def _next_boundary(rows: list[Row], after: int, kinds: set[RowKind], default: int) -> int:
    for row in rows:
        if row.raw_index > after and row.kind in kinds:
            return row.raw_index
    return default


def resolve(rows: list[Row], explicit_keep: Iterable[int], always_keep: Iterable[int]) -> set[int]:
    """Return the raw indices of rows that survive filtering.

    Sub-headers come back only when a kept non-header row sits under them;
    a major header comes back exactly when something is kept under it.
    """
    ordered = sorted(rows, key=lambda row: row.raw_index)
    end = ordered[-1].raw_index + 1 if ordered else 0
    header_indices = {row.raw_index for row in ordered if row.kind.is_header}
    keep = set(always_keep) | set(explicit_keep)

    for row in ordered:
        if row.kind is not RowKind.SUB_HEADER:
            continue
        boundary = _next_boundary(ordered, row.raw_index, {RowKind.SUB_HEADER, RowKind.MAJOR_HEADER}, end)
        if any(row.raw_index < index < boundary and index not in header_indices for index in keep):
            keep.add(row.raw_index)

    for row in ordered:
        if row.kind is not RowKind.MAJOR_HEADER:
            continue
        boundary = _next_boundary(ordered, row.raw_index, {RowKind.MAJOR_HEADER}, end)
        if any(row.raw_index < index < boundary for index in keep):
            keep.add(row.raw_index)
        else:
            keep.discard(row.raw_index)

    return keep


def filter_rows(rows: list[Row], keep: set[int]) -> list[Row]:
    return [row for row in sorted(rows, key=lambda row: row.raw_index) if row.raw_index in keep]
