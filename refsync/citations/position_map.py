"""Position mapping builder.

Computes old-position -> new-position maps over a document's current reference
ordering for a single move, the three bulk sorts, and deletion. A deleted
position maps to the DELETED sentinel.

All builders are pure: they read references (and, for appearance order,
citations and links) and return a new PositionMap.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Literal, Mapping, Optional, Sequence, Set, Union

from refsync.citations.markers import marker_numbers
from refsync.citations.models import Citation, CitationLink, Reference
from refsync.errors import InvalidPositionError, InvalidRequestError, NotFoundError


class _Sentinel(Enum):
    DELETED = "DELETED"

    def __repr__(self) -> str:
        return self.value


DELETED = _Sentinel.DELETED

Target = Union[int, _Sentinel]
YearOrder = Literal["asc", "desc"]


@dataclass(frozen=True)
class PositionMap:
    """Old position -> new position (or DELETED)."""

    mapping: Mapping[int, Target]

    def __post_init__(self) -> None:
        object.__setattr__(self, "mapping", dict(sorted(self.mapping.items())))

    def __len__(self) -> int:
        return len(self.mapping)

    def lookup(self, old_position: int) -> Optional[Target]:
        """Target for old_position, or None when the position is not covered."""
        return self.mapping.get(old_position)

    @property
    def deleted_positions(self) -> List[int]:
        return [old for old, new in self.mapping.items() if new is DELETED]

    def is_identity(self) -> bool:
        return all(old == new for old, new in self.mapping.items())

    def is_total(self) -> bool:
        """Check the bijection property over 1..N.

        Without deletions, targets must be exactly 1..N. With one deletion,
        the remaining targets must be exactly 1..N-1.
        """
        n = len(self.mapping)
        if sorted(self.mapping) != list(range(1, n + 1)):
            return False
        deleted = self.deleted_positions
        if len(deleted) > 1:
            return False
        live = sorted(t for t in self.mapping.values() if t is not DELETED)
        return live == list(range(1, n - len(deleted) + 1))

    def as_number_dict(self) -> Dict[int, Optional[int]]:
        """Plain dict with None for deleted positions."""
        return {old: (None if new is DELETED else new) for old, new in self.mapping.items()}

    @classmethod
    def identity(cls, size: int) -> "PositionMap":
        return cls({i: i for i in range(1, size + 1)})


def _map_from_new_order(references: Sequence[Reference], new_order: Sequence[Reference]) -> PositionMap:
    if len(new_order) != len(references):
        raise ValueError("new order must contain every reference exactly once")
    return PositionMap({ref.position: idx for idx, ref in enumerate(new_order, start=1)})


def _find_reference(references: Sequence[Reference], reference_id: str) -> Reference:
    for ref in references:
        if ref.id == reference_id:
            return ref
    raise NotFoundError(f"Reference {reference_id} not found")


def build_move_map(references: Sequence[Reference], reference_id: str, new_position: int) -> PositionMap:
    """Move one reference to new_position; references in between shift by one."""
    moving = _find_reference(references, reference_id)
    n = len(references)
    if not isinstance(new_position, int) or isinstance(new_position, bool) or not 1 <= new_position <= n:
        raise InvalidPositionError(f"Position {new_position} is outside 1..{n}")

    order = [ref for ref in references if ref.id != moving.id]
    order.insert(new_position - 1, moving)
    return _map_from_new_order(references, order)


def build_alphabetical_map(references: Sequence[Reference]) -> PositionMap:
    """Order by first author's surname, case-insensitive; no author sorts last."""

    def key(ref: Reference):
        surname = ref.first_author_surname()
        return (surname is None, (surname or "").casefold(), ref.position)

    return _map_from_new_order(references, sorted(references, key=key))


def build_year_map(references: Sequence[Reference], order: YearOrder = "desc") -> PositionMap:
    """Order by parsed year; missing or non-numeric years sort last."""
    if order not in ("asc", "desc"):
        raise InvalidRequestError(f"Unsupported year order: {order}")

    def key(ref: Reference):
        year = ref.year_value()
        if year is None:
            return (True, 0, ref.position)
        return (False, -year if order == "desc" else year, ref.position)

    return _map_from_new_order(references, sorted(references, key=key))


def build_appearance_map(
    references: Sequence[Reference],
    citations: Iterable[Citation],
    citation_links: Iterable[CitationLink] = (),
) -> PositionMap:
    """Order by first appearance of each reference among numeric citations.

    Citations are scanned by (paragraph index, start offset). Within one
    citation, numbers count in textual order, followed by linked references
    the text did not mention. Uncited references keep their relative order
    after all cited ones.
    """
    by_position = {ref.position: ref for ref in references}
    by_id = {ref.id: ref for ref in references}

    links_by_citation: Dict[str, List[str]] = {}
    for link in citation_links:
        links_by_citation.setdefault(link.citation_id, []).append(link.reference_id)

    numeric = sorted((c for c in citations if c.is_numeric), key=lambda c: c.document_order_key())

    seen: Set[str] = set()
    order: List[Reference] = []

    def visit(ref: Optional[Reference]) -> None:
        if ref is not None and ref.id not in seen:
            seen.add(ref.id)
            order.append(ref)

    for citation in numeric:
        for number in marker_numbers(citation.raw_text):
            visit(by_position.get(number))

        linked = [by_id[rid] for rid in links_by_citation.get(citation.id, []) if rid in by_id]
        for ref in sorted(linked, key=lambda r: r.position):
            visit(ref)

    for ref in references:
        visit(ref)

    return _map_from_new_order(references, order)


def build_delete_map(references: Sequence[Reference], reference_id: str) -> PositionMap:
    """Deleted position -> DELETED; higher positions shift down by one."""
    target = _find_reference(references, reference_id)
    mapping: Dict[int, Target] = {}
    for ref in references:
        if ref.id == target.id:
            mapping[ref.position] = DELETED
        elif ref.position > target.position:
            mapping[ref.position] = ref.position - 1
        else:
            mapping[ref.position] = ref.position
    return PositionMap(mapping)
