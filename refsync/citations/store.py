"""
Document Store
==============
Filesystem-first store for per-document reference lists, citations, the
citation/reference link table and the change log.

Design goals:
- One JSON file per document under <store>/documents/<document_id>.json
- Single writer per document, enforced with a per-document file lock
- All-or-nothing commits: a transaction stages every write in memory and
  publishes the whole document with one atomic rename
- Schema validation on read and before publish

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

import copy
import json
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from filelock import FileLock, Timeout
from loguru import logger

from refsync.citations.models import (
    ChangeRecord,
    ChangeType,
    CitationLink,
    DocumentSnapshot,
    Reference,
    format_sort_key,
)
from refsync.config import STORAGE, TIMEOUTS
from refsync.errors import NotFoundError, StaleSnapshotError, TransientStorageError
from refsync.utils.schema_validation import validate_document_record
from refsync.utils.validation import validate_identifier, validate_store_folder


@dataclass(frozen=True)
class DocumentPaths:
    """Resolved paths for one document under the store folder."""

    document_path: Path
    lock_path: Path


class DocumentTransaction:
    """Staged writes against one locked document.

    Nothing is visible to readers until the owning store publishes the
    transaction; raising inside the `with` block discards every staged write.
    """

    def __init__(self, document_id: str, record: Dict[str, Any]):
        self.document_id = document_id
        self._record = copy.deepcopy(record)
        self.base_version = int(record.get("version", 0))

    @property
    def record(self) -> Dict[str, Any]:
        return self._record

    def snapshot(self) -> DocumentSnapshot:
        return DocumentSnapshot.from_record(self._record)

    def _reference_rows(self) -> Dict[str, Dict[str, Any]]:
        return {row["id"]: row for row in self._record["references"]}

    def write_reference_positions(self, references: Iterable[Reference]) -> int:
        """Write sort keys for the given references. Returns rows updated."""
        rows = self._reference_rows()
        updated = 0
        for ref in references:
            row = rows.get(ref.id)
            if row is None:
                raise NotFoundError(f"Reference {ref.id} not found")
            key = format_sort_key(ref.position)
            if row["sort_key"] != key:
                row["sort_key"] = key
                updated += 1
        self._record["references"].sort(key=lambda r: int(r["sort_key"]))
        return updated

    def update_reference_fields(self, reference_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        row = self._reference_rows().get(reference_id)
        if row is None:
            raise NotFoundError(f"Reference {reference_id} not found")
        for key, value in fields.items():
            if key in ("id", "sort_key"):
                continue
            row[key] = value
        return dict(row)

    def remove_reference(self, reference_id: str) -> int:
        """Remove a reference row and its link rows. Returns links removed."""
        before = len(self._record["references"])
        self._record["references"] = [r for r in self._record["references"] if r["id"] != reference_id]
        if len(self._record["references"]) == before:
            raise NotFoundError(f"Reference {reference_id} not found")

        links = self._record["citation_links"]
        kept = [link for link in links if link["reference_id"] != reference_id]
        self._record["citation_links"] = kept
        return len(links) - len(kept)

    def write_citation_texts(self, citation_ids: Iterable[str], raw_text: str) -> int:
        """Set the same raw text on a batch of citations."""
        ids = set(citation_ids)
        updated = 0
        for row in self._record["citations"]:
            if row["id"] in ids:
                row["raw_text"] = raw_text
                updated += 1
        if updated != len(ids):
            raise NotFoundError("Citation not found")
        return updated

    def write_full_text(self, full_text: Optional[str]) -> None:
        self._record["full_text"] = full_text

    def replace_citation_links(self, links: Iterable[CitationLink]) -> int:
        rows = [link.to_dict() for link in links]
        unique: List[Dict[str, Any]] = []
        seen = set()
        for row in rows:
            key = (row["citation_id"], row["reference_id"])
            if key not in seen:
                seen.add(key)
                unique.append(row)
        self._record["citation_links"] = unique
        return len(unique)

    def invalidate_changes(self, change_type: ChangeType = ChangeType.RENUMBER) -> int:
        """Mark every non-reverted change of change_type as reverted."""
        count = 0
        for row in self._record["changes"]:
            if row["change_type"] == change_type.value and not row["is_reverted"]:
                row["is_reverted"] = True
                count += 1
        return count

    def insert_changes(self, records: Iterable[ChangeRecord]) -> int:
        rows = [r.to_dict() for r in records]
        self._record["changes"].extend(rows)
        return len(rows)

    def clear_changes(self) -> int:
        count = len(self._record["changes"])
        self._record["changes"] = []
        return count


class DocumentStore:
    """Filesystem document store.

    Documents live under `<store_folder>/documents/<document_id>.json`, each
    guarded by `<document_id>.json.lock`.
    """

    def __init__(
        self,
        store_folder: str | Path = STORAGE.DATA_DIR,
        documents_subdir: str = "documents",
        lock_timeout_seconds: int = TIMEOUTS.FILE_LOCK,
    ):
        self.store_folder = validate_store_folder(store_folder, create=True)
        self.documents_dir = self.store_folder / documents_subdir
        self.lock_timeout_seconds = lock_timeout_seconds

    def paths(self, document_id: str) -> DocumentPaths:
        validate_identifier(document_id, "document_id")
        document_path = self.documents_dir / f"{document_id}.json"
        lock_path = document_path.with_suffix(document_path.suffix + ".lock")
        return DocumentPaths(document_path=document_path, lock_path=lock_path)

    def ensure_exists(self) -> Path:
        self.documents_dir.mkdir(parents=True, exist_ok=True)
        return self.documents_dir

    def exists(self, document_id: str) -> bool:
        return self.paths(document_id).document_path.exists()

    def iter_document_ids(self) -> Iterator[str]:
        if not self.documents_dir.exists():
            return
        for path in sorted(self.documents_dir.glob("*.json")):
            yield path.stem

    def _read_record(self, paths: DocumentPaths) -> Dict[str, Any]:
        if not paths.document_path.exists():
            raise NotFoundError("Document not found")
        try:
            with open(paths.document_path, "r", encoding="utf-8") as f:
                record = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {paths.document_path}: {e}")
        except OSError as e:
            raise TransientStorageError(f"Failed to read document: {e}") from e

        validate_document_record(record)
        return record

    def _publish(self, paths: DocumentPaths, record: Dict[str, Any]) -> None:
        validate_document_record(record)
        payload = json.dumps(record, ensure_ascii=False, indent=2, sort_keys=True) + "\n"

        tmp_name: Optional[str] = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=paths.document_path.parent,
                prefix=f".{paths.document_path.name}.",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp_name = f.name
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, paths.document_path)
            tmp_name = None
        except OSError as e:
            raise TransientStorageError(f"Failed to write document {paths.document_path.name}: {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

    def create_document(self, record: Dict[str, Any], *, overwrite: bool = False) -> DocumentPaths:
        """Validate and write a new document record (e.g. extraction output)."""
        validate_document_record(record)
        document_id = str(record["document_id"])
        paths = self.paths(document_id)
        self.ensure_exists()

        try:
            with FileLock(paths.lock_path, timeout=self.lock_timeout_seconds):
                if paths.document_path.exists() and not overwrite:
                    raise ValueError(f"Document already exists: {document_id}")
                self._publish(paths, record)
        except Timeout as e:
            raise TransientStorageError(
                f"Timed out acquiring document lock {paths.lock_path} after {self.lock_timeout_seconds}s"
            ) from e

        logger.info(f"Created document {document_id} with {len(record['references'])} references")
        return paths

    def load_record(self, document_id: str) -> Dict[str, Any]:
        return self._read_record(self.paths(document_id))

    def load_snapshot(self, document_id: str) -> DocumentSnapshot:
        return DocumentSnapshot.from_record(self.load_record(document_id))

    def load_snapshot_for_tenant(self, document_id: str, tenant_id: str) -> DocumentSnapshot:
        """Load a snapshot; another tenant's document reads as missing."""
        snapshot = self.load_snapshot(document_id)
        if snapshot.tenant_id != tenant_id:
            raise NotFoundError("Document not found")
        return snapshot

    def find_reference(self, reference_id: str) -> Optional[Tuple[str, str]]:
        """Locate a reference by id. Returns (document_id, tenant_id) or None."""
        for document_id in self.iter_document_ids():
            try:
                record = self.load_record(document_id)
            except TransientStorageError:
                raise
            except ValueError as e:
                logger.debug(f"Skipping unreadable document {document_id} in reference lookup: {e}")
                continue
            if any(r["id"] == reference_id for r in record["references"]):
                return str(record["document_id"]), str(record["tenant_id"])
        return None

    @contextmanager
    def transaction(self, document_id: str, expected_version: Optional[int] = None) -> Iterator[DocumentTransaction]:
        """Open a single-writer transaction on one document.

        Args:
            document_id: Document to lock.
            expected_version: When given, the stored version must match or
                StaleSnapshotError is raised before any write is staged.

        On normal exit the staged record is published with version + 1.
        """
        paths = self.paths(document_id)
        lock = FileLock(paths.lock_path, timeout=self.lock_timeout_seconds)
        try:
            lock.acquire()
        except Timeout as e:
            raise TransientStorageError(
                f"Timed out acquiring document lock {paths.lock_path} after {self.lock_timeout_seconds}s"
            ) from e

        try:
            record = self._read_record(paths)
            stored_version = int(record.get("version", 0))
            if expected_version is not None and stored_version != expected_version:
                raise StaleSnapshotError(
                    f"Document {document_id} changed since it was read "
                    f"(expected version {expected_version}, found {stored_version})"
                )

            tx = DocumentTransaction(document_id, record)
            yield tx

            staged = tx.record
            staged["version"] = stored_version + 1
            self._publish(paths, staged)
            logger.debug(f"Committed document {document_id} at version {staged['version']}")
        finally:
            lock.release()
