"""Tests for JSON Schema validation helpers."""

import pytest

from refsync.utils.schema_validation import (
    validate_document_record,
    validate_edit_reference_request,
    validate_reorder_request,
)


@pytest.mark.unit
def test_sample_record_is_valid(make_record):
    record = make_record()
    validate_document_record(record)


@pytest.mark.unit
def test_duplicate_reference_ids_rejected(make_record):
    record = make_record()
    record["references"][1]["id"] = "r1"
    with pytest.raises(ValueError, match="duplicate reference id"):
        validate_document_record(record)


@pytest.mark.unit
def test_link_to_unknown_reference_rejected(make_record):
    record = make_record()
    record["citation_links"].append({"citation_id": "c1", "reference_id": "missing"})
    with pytest.raises(ValueError, match="unknown entity"):
        validate_document_record(record)


@pytest.mark.unit
def test_bad_sort_key_format_rejected(make_record):
    record = make_record()
    record["references"][0]["sort_key"] = "1"
    with pytest.raises(ValueError):
        validate_document_record(record)


@pytest.mark.unit
def test_inverted_offsets_rejected(make_record):
    record = make_record()
    record["citations"][0]["end_offset"] = 0
    with pytest.raises(ValueError, match="end_offset"):
        validate_document_record(record)


@pytest.mark.unit
@pytest.mark.parametrize(
    "body",
    [
        {"referenceId": "r1", "newPosition": 2},
        {"sortBy": "alphabetical"},
        {"sortBy": "year", "order": "asc"},
        {"sortBy": "appearance"},
    ],
)
def test_valid_reorder_requests(body):
    validate_reorder_request(body)


@pytest.mark.unit
def test_reorder_request_cannot_mix_move_and_sort():
    with pytest.raises(ValueError, match="Validation failed"):
        validate_reorder_request({"referenceId": "r1", "newPosition": 2, "sortBy": "year"})


@pytest.mark.unit
@pytest.mark.parametrize(
    "body",
    [
        {"authors": ["Smith, J."]},
        {"authors": [{"lastName": "Smith", "firstName": "J", "suffix": "Jr."}]},
        {"year": "2021"},
        {"year": None},
        {"doi": "10.1000/xyz123"},
        {"doi": ""},
        {"url": "https://example.org/paper"},
        {"url": ""},
        {"publisher": "Press", "pages": "1-10"},
    ],
)
def test_valid_edit_requests(body):
    validate_edit_reference_request(body)


@pytest.mark.unit
def test_edit_author_object_requires_last_name():
    with pytest.raises(ValueError):
        validate_edit_reference_request({"authors": [{"firstName": "J"}]})
