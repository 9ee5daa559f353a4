"""
Centralized Configuration
=========================
Centralized configuration values and constants for the reference engine.

This module provides:
- Timeout configuration for storage operations
- Storage layout and sort key settings
- Renumbering and retry policy defaults

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class TimeoutConfig:
    """Centralized timeout configuration in seconds."""

    # Per-document lock acquisition
    FILE_LOCK: int = int(os.getenv("REFSYNC_FILE_LOCK_TIMEOUT", "30"))


@dataclass(frozen=True)
class StorageConfig:
    """Document store configuration."""

    DATA_DIR: str = os.getenv("REFSYNC_DATA_DIR", "data")

    # Reference positions are persisted as zero-padded strings so that lexical
    # and numeric order agree. Width 4 caps a document at 9999 references.
    SORT_KEY_WIDTH: int = 4


@dataclass(frozen=True)
class RenumberingConfig:
    """Citation renumbering configuration."""

    ORPHAN_MARKER: str = os.getenv("REFSYNC_ORPHAN_MARKER", "orphaned")

    # Shortest run of consecutive numbers written as "start-end".
    # With 3, {1,2} formats as "1,2" and {1,2,3} as "1-3".
    # Set to 2 to compress pairs as well ({1,2} -> "1-2").
    MIN_RANGE_RUN: int = int(os.getenv("REFSYNC_MIN_RANGE_RUN", "3"))

    DEFAULT_YEAR_ORDER: str = "desc"


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy for transient storage failures."""

    MAX_ATTEMPTS: int = int(os.getenv("REFSYNC_RETRY_MAX_ATTEMPTS", "3"))
    WAIT_MIN: float = float(os.getenv("REFSYNC_RETRY_WAIT_MIN", "0.1"))
    WAIT_MAX: float = float(os.getenv("REFSYNC_RETRY_WAIT_MAX", "2"))


@dataclass(frozen=True)
class TracingConfig:
    """Tracing configuration."""

    SERVICE_NAME: str = "refsync-reference-engine"
    OTLP_ENDPOINT: str = os.getenv("OTLP_ENDPOINT", "http://localhost:4318/v1/traces")
    ENABLED: bool = os.getenv("ENABLE_TRACING", "false").lower() == "true"


# Global singleton instances
TIMEOUTS = TimeoutConfig()
STORAGE = StorageConfig()
RENUMBERING = RenumberingConfig()
RETRY = RetryConfig()
TRACING = TracingConfig()
