"""S3-backed storage for spotlight claim evidence."""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable
from uuid import UUID, uuid4

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from rewards_api.core.settings import Settings, get_settings


_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_.\-]+")
_MISSING_OBJECT_CODES = {"404", "NoSuchKey", "NotFound"}


class EvidenceStorageError(RuntimeError):
    """Raised when the evidence bucket rejects or cannot serve a request."""


@dataclass(slots=True)
class StoredEvidence:
    """Location of an uploaded evidence object."""

    key: str
    bucket: str
    size: int
    uploaded_at: datetime


class EvidenceStorage:
    """Upload, probe and delete evidence objects keyed by member and spotlight."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        s3_client_factory: Callable[[], object] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._bucket = (self._settings.spotlight_evidence_bucket or "").strip()
        self._prefix = (self._settings.spotlight_evidence_prefix or "").strip("/")
        self._acl = (self._settings.spotlight_evidence_acl or "private").strip() or "private"
        self._cache_control = self._settings.spotlight_evidence_cache_control
        self._s3_client_factory = s3_client_factory
        self._client = None

    @property
    def bucket(self) -> str:
        return self._bucket

    @property
    def configured(self) -> bool:
        return bool(self._bucket)

    def build_key(
        self,
        user_id: UUID,
        spotlight_id: UUID,
        filename: str | None,
        *,
        now: datetime | None = None,
    ) -> str:
        """Return ``[prefix/]user/spotlight/<epoch-ms>-<nonce>-<safe name>``.

        The nonce keeps two uploads from the same member in the same millisecond
        apart even when they carry the same filename.
        """

        moment = now or datetime.now(timezone.utc)
        stamp = int(moment.timestamp() * 1000)
        nonce = uuid4().hex[:8]
        parts = [
            self._prefix,
            str(user_id),
            str(spotlight_id),
            f"{stamp}-{nonce}-{self.sanitize(filename)}",
        ]
        return "/".join(part for part in parts if part)

    async def upload(self, key: str, payload: bytes, *, content_type: str | None = None) -> StoredEvidence:
        client = self._require_client()
        try:
            await asyncio.to_thread(
                client.put_object,
                Bucket=self._bucket,
                Key=key,
                Body=payload,
                ContentType=content_type or "application/octet-stream",
                CacheControl=self._cache_control,
                ACL=self._acl,
                IfNoneMatch="*",
            )
        except (ClientError, BotoCoreError) as exc:
            raise EvidenceStorageError(f"Evidence upload failed ({_describe(exc)})") from exc

        logger.info("Uploaded spotlight evidence", bucket=self._bucket, key=key, size=len(payload))
        return StoredEvidence(
            key=key,
            bucket=self._bucket,
            size=len(payload),
            uploaded_at=datetime.now(timezone.utc),
        )

    async def delete(self, key: str) -> None:
        client = self._require_client()
        try:
            await asyncio.to_thread(client.delete_object, Bucket=self._bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise EvidenceStorageError(f"Evidence delete failed ({_describe(exc)})") from exc
        logger.info("Deleted spotlight evidence", bucket=self._bucket, key=key)

    async def exists(self, key: str) -> bool:
        client = self._require_client()
        try:
            await asyncio.to_thread(client.head_object, Bucket=self._bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_OBJECT_CODES:
                return False
            raise EvidenceStorageError(f"Evidence lookup failed ({_describe(exc)})") from exc
        except BotoCoreError as exc:
            raise EvidenceStorageError(f"Evidence lookup failed ({_describe(exc)})") from exc
        return True

    async def check_bucket(self) -> None:
        """Raise ``EvidenceStorageError`` unless the bucket answers ``HeadBucket``."""

        client = self._require_client()
        try:
            await asyncio.to_thread(client.head_bucket, Bucket=self._bucket)
        except (ClientError, BotoCoreError) as exc:
            raise EvidenceStorageError(f"Bucket check failed ({_describe(exc)})") from exc

    @staticmethod
    def sanitize(filename: str | None) -> str:
        cleaned = _UNSAFE_FILENAME_CHARS.sub("_", (filename or "").strip())
        return cleaned or "evidence"

    def _require_client(self):
        if not self._bucket:
            raise EvidenceStorageError("Evidence bucket not configured")
        if self._client is None:
            self._client = self._build_client()
        return self._client

    def _build_client(self):
        if self._s3_client_factory is not None:
            return self._s3_client_factory()

        config = None
        if self._settings.spotlight_evidence_force_path_style:
            config = Config(s3={"addressing_style": "path"})
        return boto3.client(
            "s3",
            region_name=self._settings.spotlight_evidence_region,
            endpoint_url=self._settings.spotlight_evidence_endpoint or None,
            config=config,
        )


def _error_code(exc: ClientError) -> str | None:
    return exc.response.get("Error", {}).get("Code")


def _describe(exc: Exception) -> str:
    if isinstance(exc, ClientError):
        return _error_code(exc) or "unknown error"
    return str(exc)


__all__ = ["EvidenceStorage", "EvidenceStorageError", "StoredEvidence"]
