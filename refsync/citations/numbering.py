"""Citation number list codec.

Parses marker number lists such as "4, 5", "7-8" or "4,7–9" into integers and
formats integer sets back into compressed comma/range notation.

Parsing is permissive: malformed segments are skipped, and a range whose end is
below its start ("9-4") or beyond MAX_POSITION expands to nothing.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

from refsync.config import RENUMBERING, STORAGE


# Hyphen, en dash, em dash.
RANGE_DASHES = "-–—"

_RANGE_RE = re.compile(rf"^(\d+)\s*[{RANGE_DASHES}]\s*(\d+)$")
_SINGLE_RE = re.compile(r"^\d+$")

# Largest position a sort key can hold.
MAX_POSITION = 10 ** STORAGE.SORT_KEY_WIDTH - 1


def parse_number_list(text: str) -> List[int]:
    """Expand a marker number list into integers, in order of appearance.

    Duplicates are kept so callers can remap every occurrence.
    """
    numbers: List[int] = []
    if not text:
        return numbers

    for segment in text.split(","):
        part = segment.strip()
        if not part:
            continue

        range_match = _RANGE_RE.match(part)
        if range_match:
            start, end = int(range_match.group(1)), int(range_match.group(2))
            if end > MAX_POSITION:
                continue
            numbers.extend(range(start, end + 1))
            continue

        if _SINGLE_RE.match(part):
            numbers.append(int(part))

    return numbers


def unique_sorted(numbers: Iterable[int]) -> List[int]:
    return sorted(set(numbers))


def _runs(numbers: List[int]) -> List[List[int]]:
    runs: List[List[int]] = []
    for n in numbers:
        if runs and n == runs[-1][-1] + 1:
            runs[-1].append(n)
        else:
            runs.append([n])
    return runs


def format_number_list(numbers: Iterable[int], min_range_run: Optional[int] = None) -> str:
    """Format integers as sorted, de-duplicated, range-compressed text.

    Args:
        numbers: Any iterable of integers.
        min_range_run: Shortest consecutive run written as "start-end";
            shorter runs are written as comma-separated numbers.
            Defaults to RENUMBERING.MIN_RANGE_RUN.

    Examples (default settings):
        {4, 5, 6, 8} -> "4-6,8"
        {1, 2} -> "1,2"
        {} -> ""
    """
    threshold = RENUMBERING.MIN_RANGE_RUN if min_range_run is None else max(2, int(min_range_run))

    tokens: List[str] = []
    for run in _runs(unique_sorted(numbers)):
        if len(run) >= threshold:
            tokens.append(f"{run[0]}-{run[-1]}")
        else:
            tokens.extend(str(n) for n in run)
    return ",".join(tokens)

