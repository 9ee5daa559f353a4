"""
Validation Utilities
====================
Security-focused validation for store paths and entity identifiers.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

import re
from pathlib import Path
from typing import Optional, Union
from loguru import logger


# Identifiers become file names in the document store.
_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:-]{0,127}$")


def is_safe_path(path: Union[str, Path], base_dir: Optional[Union[str, Path]] = None) -> bool:
    """
    Check if a path is safe (no path traversal, no escape from base_dir).

    Args:
        path: Path to validate
        base_dir: Optional base directory that path must be under

    Returns:
        True if path is safe, False otherwise
    """
    try:
        resolved = Path(path).resolve()

        if ".." in Path(path).parts:
            logger.warning(f"Potential path traversal detected: {path}")
            return False

        if base_dir:
            base_resolved = Path(base_dir).resolve()
            try:
                resolved.relative_to(base_resolved)
            except ValueError:
                logger.warning(f"Path {resolved} is not under base directory {base_resolved}")
                return False

        return True

    except (OSError, ValueError) as e:
        logger.warning(f"Path validation error for {path}: {e}")
        return False


def validate_identifier(value: object, field: str = "id") -> str:
    """
    Validate an entity identifier (document, reference or citation id).

    Args:
        value: Candidate identifier
        field: Field name used in the error message

    Returns:
        The identifier as a string

    Raises:
        ValueError: If the identifier is empty or unsafe as a file name
    """
    if not isinstance(value, str) or not value:
        raise ValueError(f"{field} must be a non-empty string")
    if "/" in value or "\\" in value:
        raise ValueError(f"{field} must not contain path separators")
    if ".." in value:
        raise ValueError(f"{field} must not contain '..'")
    if not _IDENTIFIER_RE.match(value):
        raise ValueError(f"{field} contains unsupported characters")
    return value


def validate_store_folder(store_folder: Union[str, Path], create: bool = True) -> Path:
    """
    Validate the document store root folder.

    Args:
        store_folder: Path to the store root
        create: Create the folder when it does not exist

    Returns:
        Validated Path object

    Raises:
        ValueError: If the path is unsafe or not a directory
        FileNotFoundError: If the folder is missing and create is False
    """
    if not store_folder:
        raise ValueError("Store folder cannot be empty")

    path = Path(store_folder)
    if not is_safe_path(path):
        raise ValueError(f"Store folder validation failed: {store_folder}")

    if not path.exists():
        if not create:
            raise FileNotFoundError(f"Store folder does not exist: {store_folder}")
        path.mkdir(parents=True, exist_ok=True)

    if not path.is_dir():
        raise ValueError(f"Store folder is not a directory: {store_folder}")

    return path
