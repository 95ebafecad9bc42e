"""Line-level diff of two source texts."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

# Above this many DP cells the quadratic table is too large to build
LCS_CELL_LIMIT = 5_000_000


class LineChange(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class DiffLine:
    """One line of the edit script. Line numbers are 1-based; None on the side the line is absent from."""
    type: LineChange
    content: str
    line_a: Optional[int] = None
    line_b: Optional[int] = None


def diff_lines(text_a: str, text_b: str, cell_limit: int = LCS_CELL_LIMIT) -> List[DiffLine]:
    """Edit script turning ``text_a`` into ``text_b``.

    Uses a full longest-common-subsequence table while ``m * n`` stays within
    ``cell_limit``, and a linear, non-minimal heuristic above it.
    """
    lines_a = text_a.split("\n")
    lines_b = text_b.split("\n")

    if len(lines_a) * len(lines_b) > cell_limit:
        logger.info(
            f"Line diff of {len(lines_a)}x{len(lines_b)} lines exceeds {cell_limit} cells, "
            f"using linear fallback"
        )
        return _linear_diff(lines_a, lines_b)

    return _lcs_diff(lines_a, lines_b)


def _lcs_diff(lines_a: List[str], lines_b: List[str]) -> List[DiffLine]:
    m, n = len(lines_a), len(lines_b)
    dp = [[0] * (n + 1) for _ in range(m + 1)]
    for i in range(1, m + 1):
        row, prev = dp[i], dp[i - 1]
        line = lines_a[i - 1]
        for j in range(1, n + 1):
            if line == lines_b[j - 1]:
                row[j] = prev[j - 1] + 1
            else:
                row[j] = row[j - 1] if row[j - 1] >= prev[j] else prev[j]

    result: List[DiffLine] = []
    i, j = m, n
    while i > 0 or j > 0:
        if i > 0 and j > 0 and lines_a[i - 1] == lines_b[j - 1]:
            result.append(DiffLine(LineChange.UNCHANGED, lines_a[i - 1], i, j))
            i -= 1
            j -= 1
        elif j > 0 and (i == 0 or dp[i][j - 1] >= dp[i - 1][j]):
            # Ties go to the insertion so additions render before removals
            result.append(DiffLine(LineChange.ADDED, lines_b[j - 1], None, j))
            j -= 1
        else:
            result.append(DiffLine(LineChange.REMOVED, lines_a[i - 1], i, None))
            i -= 1

    result.reverse()
    return result


def _linear_diff(lines_a: List[str], lines_b: List[str]) -> List[DiffLine]:
    """Single forward pass; every input line is emitted exactly once but the script is not minimal."""
    set_a = set(lines_a)
    set_b = set(lines_b)
    result: List[DiffLine] = []
    i = j = 0

    while i < len(lines_a) or j < len(lines_b):
        if i >= len(lines_a):
            result.append(DiffLine(LineChange.ADDED, lines_b[j], None, j + 1))
            j += 1
        elif j >= len(lines_b):
            result.append(DiffLine(LineChange.REMOVED, lines_a[i], i + 1, None))
            i += 1
        elif lines_a[i] == lines_b[j]:
            result.append(DiffLine(LineChange.UNCHANGED, lines_a[i], i + 1, j + 1))
            i += 1
            j += 1
        elif lines_a[i] not in set_b:
            result.append(DiffLine(LineChange.REMOVED, lines_a[i], i + 1, None))
            i += 1
        elif lines_b[j] not in set_a:
            result.append(DiffLine(LineChange.ADDED, lines_b[j], None, j + 1))
            j += 1
        else:
            result.append(DiffLine(LineChange.REMOVED, lines_a[i], i + 1, None))
            result.append(DiffLine(LineChange.ADDED, lines_b[j], None, j + 1))
            i += 1
            j += 1

    return result


def summarize_lines(diff: List[DiffLine]) -> Tuple[int, int]:
    """(added, removed) line counts of an edit script."""
    added = sum(1 for line in diff if line.type is LineChange.ADDED)
    removed = sum(1 for line in diff if line.type is LineChange.REMOVED)
    return added, removed

