"""Citation reference service.

Document-level operations on a reference list: reorder (single move or bulk
sort), delete, edit, resequence by appearance, change-log reset and citation
link rebuild. Each operation reads a fresh snapshot, computes a ChangeSet with
the pure engine in `refsync.citations.reordering`, and commits it in one
document transaction. Transient storage failures (lock timeouts, a document
that changed between read and commit) are retried against a fresh snapshot;
validation errors are not.

Every public method returns a JSON-ready dict with camelCase keys.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, TypeVar

from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from refsync.citations.markers import marker_numbers
from refsync.citations.models import (
    ChangeRecord,
    ChangeType,
    CitationLink,
    DocumentSnapshot,
    Reference,
    make_change_record,
)
from refsync.citations.numbering import MAX_POSITION
from refsync.citations.reordering import (
    ChangeSet,
    delete_reference as compute_delete,
    move_reference,
    sort_alphabetically,
    sort_by_appearance,
    sort_by_year,
)
from refsync.citations.store import DocumentStore, DocumentTransaction
from refsync.config import RENUMBERING, RETRY
from refsync.errors import (
    InvalidDocumentError,
    InvalidRequestError,
    NotFoundError,
    TransientStorageError,
)
from refsync.tracing import operation_span, safe_set_current_span_attributes
from refsync.utils.schema_validation import validate_edit_reference_request, validate_reorder_request
from refsync.utils.validation import validate_identifier


T = TypeVar("T")

_EDIT_FIELD_MAP = {
    "authors": "authors",
    "year": "year",
    "title": "title",
    "journalName": "journal_name",
    "volume": "volume",
    "issue": "issue",
    "pages": "pages",
    "doi": "doi",
    "url": "url",
    "publisher": "publisher",
}

# Empty string clears these fields.
_CLEARABLE_FIELDS = ("doi", "url")


@dataclass(frozen=True)
class CommitResult:
    version: int
    references_written: int = 0
    citations_written: int = 0
    changes_written: int = 0
    changes_invalidated: int = 0
    links_removed: int = 0


def _check_sort_key_capacity(reference_count: int) -> None:
    if reference_count > MAX_POSITION:
        raise InvalidRequestError(
            f"Document has {reference_count} references; at most {MAX_POSITION} are supported"
        )


def _delete_records(base: DocumentSnapshot, deleted: Reference, applied_by: str) -> List[ChangeRecord]:
    """DELETE audit records: one for the list entry, one per linked citation."""
    records = [
        make_change_record(
            change_type=ChangeType.DELETE,
            before_text=f"[{deleted.position}] {deleted.display_text()}",
            after_text="",
            applied_by=applied_by,
        )
    ]

    linked = set(base.linked_citation_ids(deleted.id))
    for citation in base.citations:
        if citation.id not in linked or not citation.raw_text:
            continue
        locator = {
            "citationId": citation.id,
            "startOffset": citation.start_offset,
            "endOffset": citation.end_offset,
        }
        records.append(
            make_change_record(
                change_type=ChangeType.DELETE,
                citation_id=citation.id,
                before_text=citation.raw_text,
                after_text=json.dumps(locator, sort_keys=True),
                applied_by="system",
            )
        )
    return records


def commit_change_set(
    store: DocumentStore,
    document_id: str,
    change_set: ChangeSet,
    expected_version: Optional[int] = None,
    *,
    applied_by: str = "system",
    extra_changes: Iterable[ChangeRecord] = (),
) -> CommitResult:
    """Persist a ChangeSet as one all-or-nothing document transaction.

    Steps, in order: remove the deleted reference and its links (deletes
    only), write reference sort keys, write citation raw text batched by
    identical target text, rewrite the full text, mark prior RENUMBER records
    reverted, then write one RENUMBER record per distinct before -> after
    text plus any DELETE and extra records.

    Raises:
        TransientStorageError: lock timeout, write failure or stale snapshot.
        InvalidRequestError: more references than the sort key width allows.
    """
    if change_set.document_id != document_id:
        raise InvalidDocumentError("Change set does not belong to this document")
    _check_sort_key_capacity(len(change_set.references))

    version = change_set.base_version if expected_version is None else expected_version
    extra = list(extra_changes)

    with store.transaction(document_id, expected_version=version) as tx:
        base = tx.snapshot()

        links_removed = 0
        if change_set.deleted_reference is not None:
            links_removed = tx.remove_reference(change_set.deleted_reference.id)

        references_written = tx.write_reference_positions(change_set.references)

        citations_written = 0
        for after_text, citation_ids in change_set.updates_by_new_text().items():
            citations_written += tx.write_citation_texts(citation_ids, after_text)

        if change_set.full_text_changed:
            tx.write_full_text(change_set.full_text)

        renumber = [
            make_change_record(change_type=ChangeType.RENUMBER, before_text=before, after_text=after)
            for before, after in change_set.distinct_text_changes()
        ]
        renumber.extend(r for r in extra if r.change_type == ChangeType.RENUMBER)
        others = [r for r in extra if r.change_type != ChangeType.RENUMBER]
        if change_set.deleted_reference is not None:
            others = _delete_records(base, change_set.deleted_reference, applied_by) + others

        invalidated = tx.invalidate_changes(ChangeType.RENUMBER) if renumber else 0
        written = tx.insert_changes(renumber + others)

        new_version = tx.base_version + 1

    logger.info(
        f"[Consistency] Committed {change_set.operation} on {document_id} (v{new_version}): "
        f"{references_written} references, {citations_written} citations, "
        f"{written} change records, {invalidated} superseded"
    )
    return CommitResult(
        version=new_version,
        references_written=references_written,
        citations_written=citations_written,
        changes_written=written,
        changes_invalidated=invalidated,
        links_removed=links_removed,
    )


def _author_to_text(author: Any) -> str:
    if isinstance(author, dict):
        parts = [author.get("lastName"), author.get("firstName"), author.get("suffix")]
        return ", ".join(str(p).strip() for p in parts if p and str(p).strip())
    return str(author).strip()


def _normalize_edit_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """camelCase request body -> stored snake_case fields."""
    out: Dict[str, Any] = {}
    for key, value in fields.items():
        stored_key = _EDIT_FIELD_MAP[key]
        if key == "authors":
            value = [_author_to_text(a) for a in value]
        elif key in _CLEARABLE_FIELDS and value == "":
            value = None
        out[stored_key] = value
    return out


def _reference_listing(snapshot: DocumentSnapshot, references: Iterable[Reference]) -> List[Dict[str, Any]]:
    link_counts: Dict[str, int] = {}
    for link in snapshot.citation_links:
        link_counts[link.reference_id] = link_counts.get(link.reference_id, 0) + 1

    return [
        {
            "id": ref.id,
            "position": ref.position,
            "number": ref.position,
            "rawText": ref.display_text(),
            "citationCount": link_counts.get(ref.id, 0),
        }
        for ref in references
    ]


class CitationReferenceService:
    """Tenant-scoped reference list operations over a DocumentStore."""

    def __init__(self, store: DocumentStore, *, max_attempts: int = RETRY.MAX_ATTEMPTS):
        self.store = store
        self.max_attempts = max_attempts

    def _with_retry(self, label: str, fn: Callable[[], T]) -> T:
        @retry(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=RETRY.WAIT_MIN, min=RETRY.WAIT_MIN, max=RETRY.WAIT_MAX),
            retry=retry_if_exception_type(TransientStorageError),
            before_sleep=lambda retry_state: logger.warning(
                f"[CitationReference] {label} retry {retry_state.attempt_number}/{self.max_attempts} "
                f"after {retry_state.outcome.exception()}"
            ),
            reraise=True,
        )
        def _attempt() -> T:
            return fn()

        return _attempt()

    @staticmethod
    def _require_id(value: Any, field: str) -> str:
        try:
            return validate_identifier(value, field)
        except ValueError as e:
            raise InvalidRequestError(str(e)) from e

    def _load(self, document_id: str, tenant_id: str) -> DocumentSnapshot:
        return self.store.load_snapshot_for_tenant(document_id, tenant_id)

    def _locate_reference(self, document_id: str, tenant_id: str, reference_id: str) -> None:
        """Check that reference_id is visible to tenant_id and lives in document_id.

        References owned by another tenant read as missing, with the same
        message as a reference that does not exist.
        """
        if self.store.exists(document_id):
            snapshot = self.store.load_snapshot(document_id)
            if snapshot.tenant_id == tenant_id and snapshot.reference_by_id(reference_id) is not None:
                return

        owner = self.store.find_reference(reference_id)
        if owner is None or owner[1] != tenant_id:
            raise NotFoundError("Reference not found")
        if owner[0] != document_id:
            raise InvalidDocumentError("Reference does not belong to this document")

    # ------------------------------------------------------------------
    # Reorder
    # ------------------------------------------------------------------

    def reorder(self, document_id: str, tenant_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """Move one reference or sort the whole list.

        body is either {"referenceId", "newPosition"} or
        {"sortBy": "alphabetical" | "year" | "appearance", "order"?}.
        """
        self._require_id(document_id, "document_id")
        if not isinstance(body, dict) or not body:
            raise InvalidRequestError("Invalid reordering parameters")
        try:
            validate_reorder_request(body)
        except ValueError as e:
            raise InvalidRequestError(f"Invalid reordering parameters: {e}") from e

        def compute(snapshot: DocumentSnapshot) -> ChangeSet:
            sort_by = body.get("sortBy")
            if sort_by == "alphabetical":
                return sort_alphabetically(snapshot)
            if sort_by == "year":
                return sort_by_year(snapshot, body.get("order", RENUMBERING.DEFAULT_YEAR_ORDER))
            if sort_by == "appearance":
                return sort_by_appearance(snapshot)
            return move_reference(snapshot, body["referenceId"], body["newPosition"])

        def cycle() -> Tuple[DocumentSnapshot, ChangeSet]:
            snapshot = self._load(document_id, tenant_id)
            change_set = compute(snapshot)
            if not change_set.is_empty:
                commit_change_set(self.store, document_id, change_set, applied_by="user")
            return snapshot, change_set

        logger.info(f"[CitationReference] Reordering references for {document_id}: {body}")
        with operation_span("reorder", document_id):
            snapshot, change_set = self._with_retry("reorder", cycle)
            changes = [c.to_api_dict() for c in change_set.reference_changes]
            safe_set_current_span_attributes(
                {
                    "refsync.reorder.kind": body.get("sortBy") or "move",
                    "refsync.references_renumbered": len(changes),
                    "refsync.citations_rewritten": len(change_set.citation_updates),
                }
            )

        return {
            "message": "References reordered successfully",
            "changes": changes,
            "updatedCount": len(changes),
            "citationsUpdated": len(change_set.citation_updates),
            "references": _reference_listing(snapshot, change_set.references),
        }

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_reference(self, document_id: str, tenant_id: str, reference_id: str) -> Dict[str, Any]:
        """Delete a reference, renumber the rest and orphan its citations."""
        self._require_id(document_id, "document_id")
        self._require_id(reference_id, "reference_id")
        logger.info(f"[CitationReference] Deleting reference {reference_id} from document {document_id}")

        def cycle() -> Tuple[DocumentSnapshot, ChangeSet]:
            self._locate_reference(document_id, tenant_id, reference_id)
            snapshot = self._load(document_id, tenant_id)
            change_set = compute_delete(snapshot, reference_id)
            commit_change_set(self.store, document_id, change_set, applied_by="user")
            return snapshot, change_set

        with operation_span("delete_reference", document_id):
            snapshot, change_set = self._with_retry("delete", cycle)
            affected = snapshot.linked_citation_ids(reference_id)
            safe_set_current_span_attributes(
                {
                    "refsync.citations_rewritten": len(change_set.citation_updates),
                    "refsync.citations_orphaned": len(change_set.orphaned_citation_ids),
                }
            )

        deleted = change_set.deleted_reference
        return {
            "message": "Reference deleted successfully",
            "deletedReferenceId": reference_id,
            "deletedPosition": deleted.position if deleted else None,
            "affectedCitations": len(affected),
            "remainingReferences": len(change_set.references),
        }

    # ------------------------------------------------------------------
    # Edit
    # ------------------------------------------------------------------

    def edit_reference(
        self,
        document_id: str,
        tenant_id: str,
        reference_id: str,
        fields: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Update structured fields of one reference and log a REFERENCE_EDIT record."""
        self._require_id(document_id, "document_id")
        self._require_id(reference_id, "reference_id")
        if not isinstance(fields, dict):
            raise InvalidRequestError("Request body must be an object")
        try:
            validate_edit_reference_request(fields)
        except ValueError as e:
            raise InvalidRequestError(str(e)) from e

        updates = _normalize_edit_fields(fields)
        logger.info(f"[CitationReference] Editing reference {reference_id} in document {document_id}")

        def cycle() -> Reference:
            self._locate_reference(document_id, tenant_id, reference_id)
            with self.store.transaction(document_id) as tx:
                self._check_tenant(tx, tenant_id)
                before = tx.snapshot().reference_by_id(reference_id)
                if before is None:
                    raise NotFoundError("Reference not found")
                tx.update_reference_fields(reference_id, updates)
                after = tx.snapshot().reference_by_id(reference_id)
                if after.structured_text() != before.structured_text():
                    tx.insert_changes(
                        [
                            make_change_record(
                                change_type=ChangeType.REFERENCE_EDIT,
                                before_text=before.structured_text(),
                                after_text=after.structured_text(),
                                applied_by="user",
                            )
                        ]
                    )
            return after

        with operation_span("edit_reference", document_id):
            reference = self._with_retry("edit", cycle)
            safe_set_current_span_attributes({"refsync.edit.fields": ",".join(sorted(fields))})

        return {"message": "Reference updated successfully", "reference": reference.to_api_dict()}

    # ------------------------------------------------------------------
    # Resequence
    # ------------------------------------------------------------------

    def resequence_by_appearance(self, document_id: str, tenant_id: str) -> Dict[str, Any]:
        """Renumber references in order of first citation in the text."""
        self._require_id(document_id, "document_id")
        logger.info(f"[CitationReference] Resequencing references by appearance for {document_id}")

        def cycle() -> ChangeSet:
            snapshot = self._load(document_id, tenant_id)
            change_set = sort_by_appearance(snapshot)
            if change_set.is_empty:
                return change_set

            reference_records = []
            for change in change_set.reference_changes:
                ref = snapshot.reference_by_id(change.reference_id)
                text = ref.display_text()
                reference_records.append(
                    make_change_record(
                        change_type=ChangeType.RENUMBER,
                        before_text=f"[{change.old_position}] {text}",
                        after_text=f"[{change.new_position}] {text}",
                    )
                )
            commit_change_set(self.store, document_id, change_set, extra_changes=reference_records)
            return change_set

        with operation_span("resequence", document_id):
            change_set = self._with_retry("resequence", cycle)
            safe_set_current_span_attributes(
                {
                    "refsync.references_renumbered": len(change_set.reference_changes),
                    "refsync.citations_rewritten": len(change_set.citation_updates),
                }
            )

        logger.info(
            f"[CitationReference] Resequenced: {len(change_set.reference_changes)} references, "
            f"{len(change_set.citation_updates)} citations for document {document_id}"
        )
        return {
            "message": "References resequenced by appearance order",
            "mapping": {str(old): new for old, new in change_set.number_mapping().items()},
            "citationsUpdated": len(change_set.citation_updates),
        }

    # ------------------------------------------------------------------
    # Change log and links
    # ------------------------------------------------------------------

    @staticmethod
    def _check_tenant(tx: DocumentTransaction, tenant_id: str) -> None:
        if tx.record.get("tenant_id") != tenant_id:
            raise NotFoundError("Document not found")

    def reset_changes(self, document_id: str, tenant_id: str) -> Dict[str, Any]:
        """Remove every change record of a document."""
        self._require_id(document_id, "document_id")
        logger.info(f"[CitationReference] Resetting citation changes for {document_id}")

        def cycle() -> int:
            self._load(document_id, tenant_id)
            with self.store.transaction(document_id) as tx:
                self._check_tenant(tx, tenant_id)
                return tx.clear_changes()

        with operation_span("reset_changes", document_id):
            deleted = self._with_retry("reset", cycle)
            safe_set_current_span_attributes({"refsync.changes_deleted": deleted})

        logger.info(f"[CitationReference] Deleted {deleted} change records for document {document_id}")
        return {
            "message": f"Reset complete. Deleted {deleted} change records.",
            "deletedCount": deleted,
        }

    def create_citation_links(self, document_id: str, tenant_id: str) -> Dict[str, Any]:
        """Rebuild the link table from the numbers in numeric citation text."""
        self._require_id(document_id, "document_id")
        logger.info(f"[CitationReference] Creating citation-reference links for {document_id}")

        def cycle() -> int:
            self._load(document_id, tenant_id)
            with self.store.transaction(document_id) as tx:
                self._check_tenant(tx, tenant_id)
                snapshot = tx.snapshot()
                by_position = {ref.position: ref.id for ref in snapshot.references}
                links: List[CitationLink] = []
                for citation in snapshot.citations_in_document_order():
                    if not citation.is_numeric:
                        continue
                    for number in marker_numbers(citation.raw_text):
                        reference_id = by_position.get(number)
                        if reference_id is not None:
                            links.append(CitationLink(citation_id=citation.id, reference_id=reference_id))
                return tx.replace_citation_links(links)

        with operation_span("create_citation_links", document_id):
            created = self._with_retry("create_links", cycle)
            safe_set_current_span_attributes({"refsync.links_created": created})

        logger.info(f"[CitationReference] Created {created} citation-reference links for document {document_id}")
        return {
            "message": f"Created {created} citation-reference links",
            "linksCreated": created,
        }

    def list_references(self, document_id: str, tenant_id: str) -> Dict[str, Any]:
        """Current reference list with citation counts."""
        self._require_id(document_id, "document_id")
        snapshot = self._load(document_id, tenant_id)
        return {
            "documentId": snapshot.document_id,
            "version": snapshot.version,
            "references": _reference_listing(snapshot, snapshot.references),
        }
