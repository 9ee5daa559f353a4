"""
Utility Functions
=================
Common utilities for path and identifier validation and JSON Schema checks.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from .validation import (
    is_safe_path,
    validate_identifier,
    validate_store_folder,
)

from .schema_validation import (
    validate_against_schema,
    validate_document_record,
    validate_reorder_request,
    validate_edit_reference_request,
)

__all__ = [
    # Validation
    "is_safe_path",
    "validate_identifier",
    "validate_store_folder",
    # Schema validation
    "validate_against_schema",
    "validate_document_record",
    "validate_reorder_request",
    "validate_edit_reference_request",
]
