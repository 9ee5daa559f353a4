"""
Shared test fixtures
====================

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from pathlib import Path

import pytest

from refsync.citations.models import (
    Citation,
    CitationLink,
    CitationType,
    DocumentSnapshot,
    Reference,
    new_document_record,
)
from refsync.citations.service import CitationReferenceService
from refsync.citations.store import DocumentStore


DOC_ID = "doc-1"
TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"

FULL_TEXT = "Intro [1] then [2, 3].\nLater (1,3) and (Smith, 2010).\nFinally [2]."


def sample_references():
    return [
        Reference(id="r1", position=1, authors=("Smith, J.",), year="2010", title="Alpha"),
        Reference(id="r2", position=2, authors=("Adams, B.",), year="2023", title="Beta"),
        Reference(id="r3", position=3, authors=("Jones, K.",), year="2015", title="Gamma"),
    ]


def sample_citations():
    return [
        Citation(id="c1", raw_text="[1]", paragraph_index=0, start_offset=6, end_offset=9),
        Citation(id="c2", raw_text="[2, 3]", paragraph_index=0, start_offset=15, end_offset=21),
        Citation(id="c3", raw_text="(1,3)", paragraph_index=1, start_offset=6, end_offset=11),
        Citation(
            id="c4",
            raw_text="(Smith, 2010)",
            citation_type=CitationType.AUTHOR_YEAR,
            paragraph_index=1,
            start_offset=16,
            end_offset=29,
        ),
        Citation(id="c5", raw_text="[2]", paragraph_index=2, start_offset=8, end_offset=11),
    ]


def sample_links():
    pairs = [("c1", "r1"), ("c2", "r2"), ("c2", "r3"), ("c3", "r1"), ("c3", "r3"), ("c5", "r2")]
    return [CitationLink(citation_id=c, reference_id=r) for c, r in pairs]


def sample_record(document_id: str = DOC_ID, tenant_id: str = TENANT, full_text: str = FULL_TEXT):
    return new_document_record(
        document_id=document_id,
        tenant_id=tenant_id,
        references=sample_references(),
        citations=sample_citations(),
        citation_links=sample_links(),
        full_text=full_text,
    )


@pytest.fixture
def temp_project_folder(tmp_path) -> Path:
    folder = tmp_path / "store"
    folder.mkdir()
    return folder


@pytest.fixture
def store(temp_project_folder) -> DocumentStore:
    return DocumentStore(str(temp_project_folder))


@pytest.fixture
def seeded_store(store) -> DocumentStore:
    store.create_document(sample_record())
    return store


@pytest.fixture
def service(seeded_store) -> CitationReferenceService:
    return CitationReferenceService(seeded_store, max_attempts=2)


@pytest.fixture
def make_record():
    return sample_record


@pytest.fixture
def snapshot() -> DocumentSnapshot:
    return DocumentSnapshot.from_record(sample_record())
