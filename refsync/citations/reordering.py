"""Reference reordering engine.

Orchestrates move / sort / delete requests over an immutable DocumentSnapshot
and returns an immutable ChangeSet: the renumbered reference list, the
per-reference old -> new numbers, and the before/after text of every numeric
citation whose markers change. No I/O happens here; committing a ChangeSet is
the job of `refsync.citations.service.commit_change_set`.

Every validation error is raised before any mapping is computed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from loguru import logger

from refsync.citations.models import DocumentSnapshot, Reference
from refsync.citations.position_map import (
    DELETED,
    PositionMap,
    YearOrder,
    build_alphabetical_map,
    build_appearance_map,
    build_delete_map,
    build_move_map,
    build_year_map,
)
from refsync.citations.rewriter import rewrite_citation, rewrite_text
from refsync.errors import InvalidPositionError, InvalidRequestError, NotFoundError


OP_MOVE = "move"
OP_SORT_ALPHABETICAL = "sort_alphabetical"
OP_SORT_YEAR = "sort_year"
OP_SORT_APPEARANCE = "sort_appearance"
OP_DELETE = "delete"


@dataclass(frozen=True)
class ReferenceChange:
    reference_id: str
    old_position: int
    new_position: Optional[int]
    affected_citation_ids: Tuple[str, ...] = ()

    @property
    def deleted(self) -> bool:
        return self.new_position is None

    def to_api_dict(self) -> Dict[str, object]:
        return {
            "referenceId": self.reference_id,
            "oldNumber": self.old_position,
            "newNumber": self.new_position,
            "affectedCitations": list(self.affected_citation_ids),
        }


@dataclass(frozen=True)
class CitationUpdate:
    citation_id: str
    before_text: str
    after_text: str
    orphaned: bool = False


@dataclass(frozen=True)
class ChangeSet:
    """Computed, not-yet-committed result of one engine operation."""

    operation: str
    document_id: str
    base_version: int
    position_map: PositionMap
    references: Tuple[Reference, ...]
    reference_changes: Tuple[ReferenceChange, ...] = ()
    citation_updates: Tuple[CitationUpdate, ...] = ()
    full_text: Optional[str] = None
    full_text_changed: bool = False
    deleted_reference: Optional[Reference] = None

    @property
    def is_empty(self) -> bool:
        return not self.reference_changes and not self.citation_updates and not self.full_text_changed

    @property
    def orphaned_citation_ids(self) -> List[str]:
        return [u.citation_id for u in self.citation_updates if u.orphaned]

    def grouped_updates(self) -> Dict[Tuple[str, str], List[str]]:
        """Citation ids grouped by identical (before, after) text pairs."""
        groups: Dict[Tuple[str, str], List[str]] = {}
        for update in self.citation_updates:
            groups.setdefault((update.before_text, update.after_text), []).append(update.citation_id)
        return groups

    def updates_by_new_text(self) -> Dict[str, List[str]]:
        """Citation ids grouped by target text, for batched writes."""
        groups: Dict[str, List[str]] = {}
        for update in self.citation_updates:
            groups.setdefault(update.after_text, []).append(update.citation_id)
        return groups

    def distinct_text_changes(self) -> List[Tuple[str, str]]:
        """Each distinct before -> after transformation once, in first-seen order."""
        return list(self.grouped_updates().keys())

    def number_mapping(self) -> Dict[int, Optional[int]]:
        return self.position_map.as_number_dict()


def _build_change_set(
    snapshot: DocumentSnapshot,
    operation: str,
    position_map: PositionMap,
    *,
    deleted_reference: Optional[Reference] = None,
) -> ChangeSet:
    if len(position_map) != snapshot.reference_count or not position_map.is_total():
        raise ValueError(f"{operation}: position map is not a bijection over 1..{snapshot.reference_count}")

    updated: List[Reference] = []
    reference_changes: List[ReferenceChange] = []

    for ref in snapshot.references:
        target = position_map.lookup(ref.position)
        if target is None:
            target = ref.position

        if target is DELETED:
            reference_changes.append(
                ReferenceChange(
                    reference_id=ref.id,
                    old_position=ref.position,
                    new_position=None,
                    affected_citation_ids=tuple(snapshot.linked_citation_ids(ref.id)),
                )
            )
            continue

        updated.append(ref.with_position(target))
        if target != ref.position:
            reference_changes.append(
                ReferenceChange(
                    reference_id=ref.id,
                    old_position=ref.position,
                    new_position=target,
                    affected_citation_ids=tuple(snapshot.linked_citation_ids(ref.id)),
                )
            )

    citation_updates: List[CitationUpdate] = []
    for citation in snapshot.numeric_citations():
        result = rewrite_citation(citation, position_map)
        if result.changed:
            citation_updates.append(
                CitationUpdate(
                    citation_id=citation.id,
                    before_text=citation.raw_text,
                    after_text=result.text,
                    orphaned=result.orphaned,
                )
            )

    full_text = snapshot.full_text
    full_text_changed = False
    if full_text:
        text_result = rewrite_text(full_text, position_map)
        full_text = text_result.text
        full_text_changed = text_result.changed

    change_set = ChangeSet(
        operation=operation,
        document_id=snapshot.document_id,
        base_version=snapshot.version,
        position_map=position_map,
        references=tuple(sorted(updated, key=lambda r: r.position)),
        reference_changes=tuple(reference_changes),
        citation_updates=tuple(citation_updates),
        full_text=full_text,
        full_text_changed=full_text_changed,
        deleted_reference=deleted_reference,
    )
    logger.info(
        f"[Reference Reordering] {operation} on {snapshot.document_id}: "
        f"{len(reference_changes)} references renumbered, {len(citation_updates)} citations rewritten"
    )
    return change_set


def _no_op(snapshot: DocumentSnapshot, operation: str) -> ChangeSet:
    return ChangeSet(
        operation=operation,
        document_id=snapshot.document_id,
        base_version=snapshot.version,
        position_map=PositionMap.identity(snapshot.reference_count),
        references=snapshot.references,
        full_text=snapshot.full_text,
    )


def move_reference(snapshot: DocumentSnapshot, reference_id: str, new_position: int) -> ChangeSet:
    """Move one reference to a 1-based target position.

    Raises:
        NotFoundError: reference_id is not in the snapshot.
        InvalidPositionError: new_position is outside 1..N.
    """
    if snapshot.reference_by_id(reference_id) is None:
        raise NotFoundError(f"Reference {reference_id} not found")
    n = snapshot.reference_count
    if not isinstance(new_position, int) or isinstance(new_position, bool) or not 1 <= new_position <= n:
        raise InvalidPositionError(f"Position {new_position} is outside 1..{n}")

    logger.info(f"[Reference Reordering] Moving reference {reference_id} to position {new_position}")
    position_map = build_move_map(snapshot.references, reference_id, new_position)
    if position_map.is_identity():
        return _no_op(snapshot, OP_MOVE)
    return _build_change_set(snapshot, OP_MOVE, position_map)


def sort_alphabetically(snapshot: DocumentSnapshot) -> ChangeSet:
    """Sort by first author's surname (case-insensitive, stable)."""
    if snapshot.reference_count <= 1:
        return _no_op(snapshot, OP_SORT_ALPHABETICAL)
    return _build_change_set(snapshot, OP_SORT_ALPHABETICAL, build_alphabetical_map(snapshot.references))


def sort_by_year(snapshot: DocumentSnapshot, order: YearOrder = "desc") -> ChangeSet:
    """Sort by publication year, newest first unless order='asc'."""
    if order not in ("asc", "desc"):
        raise InvalidRequestError(f"Unsupported year order: {order}")
    if snapshot.reference_count <= 1:
        return _no_op(snapshot, OP_SORT_YEAR)
    return _build_change_set(snapshot, OP_SORT_YEAR, build_year_map(snapshot.references, order))


def sort_by_appearance(snapshot: DocumentSnapshot) -> ChangeSet:
    """Sort by first appearance among numeric citations in document order."""
    if snapshot.reference_count <= 1:
        return _no_op(snapshot, OP_SORT_APPEARANCE)
    position_map = build_appearance_map(snapshot.references, snapshot.citations, snapshot.citation_links)
    return _build_change_set(snapshot, OP_SORT_APPEARANCE, position_map)


def delete_reference(snapshot: DocumentSnapshot, reference_id: str) -> ChangeSet:
    """Delete one reference; later references shift down, its citations orphan.

    Raises:
        NotFoundError: reference_id is not in the snapshot.
    """
    target = snapshot.reference_by_id(reference_id)
    if target is None:
        raise NotFoundError(f"Reference {reference_id} not found")

    logger.info(f"[Reference Reordering] Deleting reference {reference_id} at position {target.position}")
    position_map = build_delete_map(snapshot.references, reference_id)
    return _build_change_set(snapshot, OP_DELETE, position_map, deleted_reference=target)
