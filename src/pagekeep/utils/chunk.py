"""Batch a list of row ids into groups of at most *size* items.

Bulk deletes are sent as ``id=in.(...)`` filters in the request URL, so very
long id lists are split to keep each URL within server limits.
"""

from __future__ import annotations

from collections.abc import Sequence


def chunk_ids(ids: Sequence[str], size: int = 100) -> list[list[str]]:
    """Split *ids* into consecutive batches of at most ``size``.

    Parameters
    ----------
    ids:
        Row ids in the order they should be processed.
    size:
        Maximum number of ids per batch.

    Returns
    -------
    list[list[str]]
        An empty input returns an empty list (not ``[[]]``).

    Raises
    ------
    ValueError
        If *size* is less than 1.

    Examples
    --------
    >>> chunk_ids(["a", "b", "c"], size=2)
    [['a', 'b'], ['c']]
    """
    if size < 1:
        raise ValueError(f"size must be >= 1, got {size}")

    if not ids:
        return []

    return [list(ids[i : i + size]) for i in range(0, len(ids), size)]
