from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable, Mapping
from typing import Any


Row = Mapping[str, Any]


def group_by_key(
    rows: Iterable[Row],
    column: str,
    key_fn: Callable[[Any], Hashable] | None = None,
) -> dict[Hashable, list[Row]]:
    """Bucket *rows* by the value of *column* in a single pass.

    Buckets keep executor order, so the first row of a bucket is the first
    row the executor returned for that key.  Rows without *column* are
    skipped.  When *key_fn* is given the bucket key is ``key_fn(value)``,
    which lets ``1`` and ``"1"`` land in the same bucket.

    Example:
        >>> group_by_key([{"id": 1, "league_id": "L1"}, {"id": 2, "league_id": "L1"}], "league_id")
        {'L1': [{'id': 1, 'league_id': 'L1'}, {'id': 2, 'league_id': 'L1'}]}
    """
    grouped: dict[Hashable, list[Row]] = {}
    for row in rows:
        if column not in row:
            continue

        value = row[column]
        grouped.setdefault(key_fn(value) if key_fn else value, []).append(row)

    return grouped
