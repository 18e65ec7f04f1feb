"""Positional line diff between two versions of a page.

Lines are compared index by index after splitting on ``"\\n"``.  This is
not a minimal edit script: a line inserted near the top shifts every later
comparison, so the rest of the text shows up as removed/added pairs.
"""

from __future__ import annotations

from typing import Protocol

from pagekeep.models import DiffLine, DiffLineType, DiffResult


class _Versioned(Protocol):
    title: str
    content: str
    version: int


def diff_lines(text_a: str, text_b: str) -> list[DiffLine]:
    """Compare two texts line by line, position by position.

    For each index ``i``:

    * both sides equal -> one ``unchanged`` line;
    * only *text_a* has a line -> ``removed``;
    * only *text_b* has a line -> ``added``;
    * both present but different -> ``removed`` (a's line) then ``added``
      (b's line).

    Line numbers are 1-based and advance independently on each side.
    """
    lines_a = text_a.split("\n")
    lines_b = text_b.split("\n")
    result: list[DiffLine] = []
    num_a = num_b = 0

    for i in range(max(len(lines_a), len(lines_b))):
        line_a = lines_a[i] if i < len(lines_a) else None
        line_b = lines_b[i] if i < len(lines_b) else None

        if line_a is not None and line_a == line_b:
            num_a += 1
            num_b += 1
            result.append(DiffLine(DiffLineType.UNCHANGED, line_a, num_a, num_b))
            continue
        if line_a is not None:
            num_a += 1
            result.append(DiffLine(DiffLineType.REMOVED, line_a, num_a, None))
        if line_b is not None:
            num_b += 1
            result.append(DiffLine(DiffLineType.ADDED, line_b, None, num_b))

    return result


def diff_versions(a: _Versioned, b: _Versioned) -> DiffResult:
    """Compare two versions of a page.

    Parameters
    ----------
    a, b:
        Anything with ``title``, ``content`` and ``version``: a
        :class:`~pagekeep.models.PageVersion` or the live
        :class:`~pagekeep.models.Page`.

    Returns
    -------
    DiffResult
        The line records plus whether the title changed.
    """
    return DiffResult(
        version_a=a.version,
        version_b=b.version,
        lines=diff_lines(a.content, b.content),
        title_changed=a.title != b.title,
    )
