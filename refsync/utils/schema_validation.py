"""
Schema Validation Utilities
===========================
JSON Schema loading and validation helpers.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

from jsonschema import Draft202012Validator, FormatChecker
from jsonschema.exceptions import ValidationError


@lru_cache(maxsize=32)
def _load_schema(schema_filename: str) -> Dict[str, Any]:
    """Load a schema JSON file from refsync/schemas.

    Args:
        schema_filename: File name under refsync/schemas (for example 'document.schema.json').

    Raises:
        FileNotFoundError: When schema file is missing.
        ValueError: When schema file is not valid JSON or not a JSON object.
    """
    schemas_dir = Path(__file__).resolve().parent.parent / "schemas"
    schema_path = (schemas_dir / schema_filename).resolve()
    if not schema_path.is_relative_to(schemas_dir.resolve()):
        raise ValueError(f"Schema path escapes schemas directory: {schema_filename}")
    if not schema_path.exists():
        raise FileNotFoundError(f"Schema not found: {schema_filename}")

    try:
        with open(schema_path, "r", encoding="utf-8") as f:
            schema = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ValueError(f"Failed to load schema {schema_filename}: {e}")

    if not isinstance(schema, dict):
        raise ValueError(f"Schema {schema_filename} must be a JSON object")
    return schema


def validate_against_schema(payload: Any, schema_filename: str) -> None:
    """Validate payload against a JSON Schema.

    Args:
        payload: Any JSON-serializable object.
        schema_filename: File name under refsync/schemas.

    Raises:
        ValueError: When payload fails validation.
    """
    schema = _load_schema(schema_filename)
    validator = Draft202012Validator(schema, format_checker=FormatChecker())

    errors = sorted(validator.iter_errors(payload), key=lambda e: list(e.path))
    if not errors:
        return

    error: ValidationError = errors[0]
    path = "/".join(str(p) for p in error.path)
    prefix = f"Validation failed at '{path}': " if path else "Validation failed: "
    raise ValueError(prefix + error.message)


def validate_document_record(record: Dict[str, Any]) -> None:
    """Validate a stored document record.

    Uses refsync/schemas/document.schema.json, then checks constraints the
    schema cannot express: unique ids and dense reference sort keys.
    """
    validate_against_schema(record, "document.schema.json")
    _validate_document_identity(record)


def _validate_document_identity(record: Dict[str, Any]) -> None:
    ref_ids = [r["id"] for r in record.get("references", [])]
    if len(ref_ids) != len(set(ref_ids)):
        raise ValueError("Validation failed at 'references': duplicate reference id")

    cit_ids = [c["id"] for c in record.get("citations", [])]
    if len(cit_ids) != len(set(cit_ids)):
        raise ValueError("Validation failed at 'citations': duplicate citation id")

    positions = sorted(int(r["sort_key"]) for r in record.get("references", []))
    if positions != list(range(1, len(positions) + 1)):
        raise ValueError("Validation failed at 'references': sort keys must be a dense 1..N sequence")

    known_refs = set(ref_ids)
    known_cits = set(cit_ids)
    for link in record.get("citation_links", []):
        if link["reference_id"] not in known_refs or link["citation_id"] not in known_cits:
            raise ValueError("Validation failed at 'citation_links': link points at an unknown entity")

    for citation in record.get("citations", []):
        start = citation.get("start_offset")
        end = citation.get("end_offset")
        if isinstance(start, int) and isinstance(end, int) and end < start:
            raise ValueError("Validation failed at 'citations': end_offset must be >= start_offset")


def validate_reorder_request(body: Dict[str, Any]) -> None:
    """Validate a reorder request body (single move or sortBy)."""
    validate_against_schema(body, "reorder_request.schema.json")


def validate_edit_reference_request(body: Dict[str, Any]) -> None:
    """Validate an edit-reference request body."""
    validate_against_schema(body, "edit_reference.schema.json")
