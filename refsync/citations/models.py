"""Reference engine data model.

Immutable records for one document's reference list, in-text citations, the
citation/reference link table and the change (audit) log, plus the snapshot
that bundles them for a single engine operation.

Stored records use snake_case keys and persist a reference's position as a
zero-padded `sort_key` string.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from refsync.config import STORAGE


class CitationType(str, Enum):
    NUMERIC = "NUMERIC"
    FOOTNOTE = "FOOTNOTE"
    ENDNOTE = "ENDNOTE"
    AUTHOR_YEAR = "AUTHOR_YEAR"


class ChangeType(str, Enum):
    RENUMBER = "RENUMBER"
    DELETE = "DELETE"
    REFERENCE_EDIT = "REFERENCE_EDIT"


def _utc_now_iso_z() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def format_sort_key(position: int, width: int = STORAGE.SORT_KEY_WIDTH) -> str:
    """Encode a 1-based position as a fixed-width sort key.

    Raises:
        ValueError: If position is not positive or does not fit the width.
    """
    if not isinstance(position, int) or position < 1:
        raise ValueError(f"position must be a positive integer, got {position!r}")
    key = str(position).zfill(width)
    if len(key) > width:
        raise ValueError(f"position {position} exceeds sort key width {width}")
    return key


def parse_sort_key(sort_key: str) -> int:
    return int(sort_key)


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


@dataclass(frozen=True)
class Reference:
    """One entry of a document's ordered bibliography."""

    id: str
    position: int
    authors: Tuple[str, ...] = ()
    year: Optional[str] = None
    title: Optional[str] = None
    journal_name: Optional[str] = None
    volume: Optional[str] = None
    issue: Optional[str] = None
    pages: Optional[str] = None
    doi: Optional[str] = None
    url: Optional[str] = None
    publisher: Optional[str] = None
    formatted_text: Optional[str] = None

    @property
    def sort_key(self) -> str:
        return format_sort_key(self.position)

    def with_position(self, position: int) -> "Reference":
        return replace(self, position=position)

    def structured_text(self) -> str:
        authors = ", ".join(self.authors) or "Unknown"
        return f"{authors} ({self.year or 'n.d.'}). {self.title or 'Untitled'}"

    def display_text(self) -> str:
        """Human-readable rendering; falls back to authors, year and title."""
        if self.formatted_text:
            return self.formatted_text
        return self.structured_text()

    def first_author_surname(self) -> Optional[str]:
        """Surname of the first author, or None when there is no author.

        "Smith, J." and "Smith J" both yield "Smith".
        """
        if not self.authors:
            return None
        first = self.authors[0].strip()
        if not first:
            return None
        if "," in first:
            surname = first.split(",", 1)[0].strip()
        else:
            surname = first.split()[0]
        return surname or None

    def year_value(self) -> Optional[int]:
        """Leading integer of the year field, or None when not numeric."""
        if not self.year:
            return None
        match = re.match(r"\s*(\d+)", self.year)
        if not match:
            return None
        return int(match.group(1))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sort_key": self.sort_key,
            "authors": list(self.authors),
            "year": self.year,
            "title": self.title,
            "journal_name": self.journal_name,
            "volume": self.volume,
            "issue": self.issue,
            "pages": self.pages,
            "doi": self.doi,
            "url": self.url,
            "publisher": self.publisher,
            "formatted_text": self.formatted_text,
        }

    def to_api_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "authors": list(self.authors),
            "year": self.year,
            "title": self.title,
            "journalName": self.journal_name,
            "volume": self.volume,
            "issue": self.issue,
            "pages": self.pages,
            "doi": self.doi,
            "url": self.url,
            "publisher": self.publisher,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Reference":
        return cls(
            id=str(data["id"]),
            position=parse_sort_key(str(data["sort_key"])),
            authors=tuple(str(a) for a in data.get("authors") or ()),
            year=_optional_str(data.get("year")),
            title=_optional_str(data.get("title")),
            journal_name=_optional_str(data.get("journal_name")),
            volume=_optional_str(data.get("volume")),
            issue=_optional_str(data.get("issue")),
            pages=_optional_str(data.get("pages")),
            doi=_optional_str(data.get("doi")),
            url=_optional_str(data.get("url")),
            publisher=_optional_str(data.get("publisher")),
            formatted_text=_optional_str(data.get("formatted_text")),
        )


@dataclass(frozen=True)
class Citation:
    """One in-text citation marker occurrence."""

    id: str
    raw_text: str
    citation_type: CitationType = CitationType.NUMERIC
    paragraph_index: Optional[int] = None
    start_offset: int = 0
    end_offset: int = 0

    @property
    def is_numeric(self) -> bool:
        return self.citation_type == CitationType.NUMERIC

    def document_order_key(self) -> Tuple[int, int]:
        return (self.paragraph_index or 0, self.start_offset)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "raw_text": self.raw_text,
            "citation_type": self.citation_type.value,
            "paragraph_index": self.paragraph_index,
            "start_offset": self.start_offset,
            "end_offset": self.end_offset,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Citation":
        return cls(
            id=str(data["id"]),
            raw_text=str(data.get("raw_text") or ""),
            citation_type=CitationType(data.get("citation_type", CitationType.NUMERIC.value)),
            paragraph_index=data.get("paragraph_index"),
            start_offset=int(data.get("start_offset") or 0),
            end_offset=int(data.get("end_offset") or 0),
        )


@dataclass(frozen=True)
class CitationLink:
    citation_id: str
    reference_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"citation_id": self.citation_id, "reference_id": self.reference_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CitationLink":
        return cls(citation_id=str(data["citation_id"]), reference_id=str(data["reference_id"]))


@dataclass(frozen=True)
class ChangeRecord:
    """Audit entry capturing a before/after text pair."""

    id: str
    change_type: ChangeType
    before_text: str
    after_text: str
    citation_id: Optional[str] = None
    applied_by: str = "system"
    is_reverted: bool = False
    created_at: str = field(default_factory=_utc_now_iso_z)

    def reverted(self) -> "ChangeRecord":
        return replace(self, is_reverted=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "citation_id": self.citation_id,
            "change_type": self.change_type.value,
            "before_text": self.before_text,
            "after_text": self.after_text,
            "applied_by": self.applied_by,
            "is_reverted": self.is_reverted,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChangeRecord":
        return cls(
            id=str(data["id"]),
            change_type=ChangeType(data["change_type"]),
            before_text=str(data.get("before_text") or ""),
            after_text=str(data.get("after_text") or ""),
            citation_id=data.get("citation_id"),
            applied_by=str(data.get("applied_by") or "system"),
            is_reverted=bool(data.get("is_reverted", False)),
            created_at=str(data.get("created_at") or _utc_now_iso_z()),
        )


def make_change_record(
    *,
    change_type: ChangeType,
    before_text: str,
    after_text: str,
    citation_id: Optional[str] = None,
    applied_by: str = "system",
) -> ChangeRecord:
    """Create a new, non-reverted change record with a fresh id."""
    return ChangeRecord(
        id=uuid.uuid4().hex,
        change_type=change_type,
        before_text=before_text,
        after_text=after_text,
        citation_id=citation_id,
        applied_by=applied_by,
    )


@dataclass(frozen=True)
class DocumentSnapshot:
    """Immutable view of one document as read from the store.

    References are ordered by position.
    """

    document_id: str
    tenant_id: str
    version: int
    references: Tuple[Reference, ...]
    citations: Tuple[Citation, ...] = ()
    citation_links: Tuple[CitationLink, ...] = ()
    changes: Tuple[ChangeRecord, ...] = ()
    full_text: Optional[str] = None

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.references, key=lambda r: r.position))
        object.__setattr__(self, "references", ordered)

    @property
    def reference_count(self) -> int:
        return len(self.references)

    def reference_by_id(self, reference_id: str) -> Optional[Reference]:
        for ref in self.references:
            if ref.id == reference_id:
                return ref
        return None

    def numeric_citations(self) -> List[Citation]:
        return [c for c in self.citations if c.is_numeric]

    def citations_in_document_order(self) -> List[Citation]:
        return sorted(self.citations, key=lambda c: c.document_order_key())

    def linked_citation_ids(self, reference_id: str) -> List[str]:
        return [link.citation_id for link in self.citation_links if link.reference_id == reference_id]

    def to_record(self) -> Dict[str, Any]:
        return {
            "schema_version": "1.0",
            "document_id": self.document_id,
            "tenant_id": self.tenant_id,
            "version": self.version,
            "full_text": self.full_text,
            "references": [r.to_dict() for r in self.references],
            "citations": [c.to_dict() for c in self.citations],
            "citation_links": [link.to_dict() for link in self.citation_links],
            "changes": [ch.to_dict() for ch in self.changes],
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "DocumentSnapshot":
        return cls(
            document_id=str(record["document_id"]),
            tenant_id=str(record["tenant_id"]),
            version=int(record.get("version", 0)),
            references=tuple(Reference.from_dict(r) for r in record.get("references", [])),
            citations=tuple(Citation.from_dict(c) for c in record.get("citations", [])),
            citation_links=tuple(CitationLink.from_dict(link) for link in record.get("citation_links", [])),
            changes=tuple(ChangeRecord.from_dict(ch) for ch in record.get("changes", [])),
            full_text=record.get("full_text"),
        )


def new_document_record(
    *,
    document_id: str,
    tenant_id: str,
    references: Iterable[Reference] = (),
    citations: Iterable[Citation] = (),
    citation_links: Iterable[CitationLink] = (),
    full_text: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a version-0 document record, e.g. from extraction output."""
    snapshot = DocumentSnapshot(
        document_id=document_id,
        tenant_id=tenant_id,
        version=0,
        references=tuple(references),
        citations=tuple(citations),
        citation_links=tuple(citation_links),
        full_text=full_text,
    )
    return snapshot.to_record()
