"""Citation text rewriter.

Applies a PositionMap to citation marker text: every bracket or parenthesis
marker is decoded, each number is remapped, and the surviving numbers are
re-encoded in compressed notation inside the original delimiters.

Rules per marker span:
- every number maps to DELETED -> the span becomes "[orphaned]" / "(orphaned)"
- some numbers map to DELETED -> those numbers are dropped
- numbers the map does not cover are kept as-is by a reordering map and
  dropped like DELETED by a deletion map
- every number maps to itself -> the span is emitted verbatim
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from loguru import logger

from refsync.citations.markers import MarkerSpan, PlainText, Span, render_spans, tokenize_markers
from refsync.citations.models import Citation
from refsync.citations.numbering import format_number_list
from refsync.citations.position_map import DELETED, PositionMap
from refsync.config import RENUMBERING


@dataclass(frozen=True)
class RewriteResult:
    text: str
    changed: bool
    orphaned_spans: int = 0

    @property
    def orphaned(self) -> bool:
        return self.orphaned_spans > 0


def _rewrite_span(
    span: MarkerSpan,
    position_map: PositionMap,
    orphan_marker: str,
    drop_unmapped: bool = False,
) -> tuple[MarkerSpan | PlainText, bool]:
    numbers = span.numbers
    if not numbers:
        return span, False

    remapped: List[object] = []
    for n in numbers:
        target = position_map.lookup(n)
        if target is None:
            target = DELETED if drop_unmapped else n
        remapped.append(target)

    if all(old == new for old, new in zip(numbers, remapped)):
        return span, False

    surviving = [t for t in remapped if t is not DELETED]
    if not surviving:
        return PlainText(span.wrap(orphan_marker)), True

    return PlainText(span.wrap(format_number_list(surviving))), False


def rewrite_text(
    text: str,
    position_map: PositionMap,
    *,
    orphan_marker: Optional[str] = None,
) -> RewriteResult:
    """Rewrite every numeric marker in text through position_map."""
    marker = orphan_marker or RENUMBERING.ORPHAN_MARKER
    drop_unmapped = bool(position_map.deleted_positions)
    out: List[Span] = []
    orphaned = 0

    for span in tokenize_markers(text):
        if isinstance(span, MarkerSpan):
            new_span, was_orphaned = _rewrite_span(span, position_map, marker, drop_unmapped)
            orphaned += int(was_orphaned)
            out.append(new_span)
        else:
            out.append(span)

    new_text = render_spans(out)
    return RewriteResult(text=new_text, changed=new_text != text, orphaned_spans=orphaned)


def rewrite_citation(
    citation: Citation,
    position_map: PositionMap,
    *,
    orphan_marker: Optional[str] = None,
) -> RewriteResult:
    """Rewrite one citation; non-numeric citation kinds pass through unchanged."""
    if not citation.is_numeric:
        return RewriteResult(text=citation.raw_text, changed=False)

    result = rewrite_text(citation.raw_text, position_map, orphan_marker=orphan_marker)
    if result.changed:
        logger.debug(f"Citation {citation.id}: '{citation.raw_text}' -> '{result.text}'")
    return result
