"""Object storage helpers."""

from .evidence import EvidenceStorage, EvidenceStorageError, StoredEvidence  # noqa: F401
