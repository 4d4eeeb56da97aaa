from functools import lru_cache

from rewards_api.services.storage import EvidenceStorage


@lru_cache
def get_evidence_storage() -> EvidenceStorage:
    """Shared evidence storage client; override in tests with a stubbed S3 client."""

    return EvidenceStorage()
