import sys
from pathlib import Path

import pytest
import pytest_asyncio
from botocore.exceptions import ClientError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

import rewards_api.models  # noqa: E402,F401
from rewards_api.api.dependencies.storage import get_evidence_storage  # noqa: E402
from rewards_api.app import create_app  # noqa: E402
from rewards_api.core.settings import Settings  # noqa: E402
from rewards_api.db.base import Base  # noqa: E402
from rewards_api.db.session import get_session  # noqa: E402
from rewards_api.observability.rewards import get_rewards_store  # noqa: E402
from rewards_api.services.storage import EvidenceStorage  # noqa: E402


class FakeS3Client:
    """In-memory stand-in for the boto3 S3 client calls used by evidence storage."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], dict] = {}
        self.deleted: list[str] = []
        self.fail_put = False
        self.fail_delete = False
        self.fail_head_bucket = False

    def put_object(self, *, Bucket: str, Key: str, Body: bytes, **kwargs) -> dict:
        if self.fail_put:
            raise _client_error("InternalError", "PutObject")
        if kwargs.get("IfNoneMatch") == "*" and (Bucket, Key) in self.objects:
            raise _client_error("PreconditionFailed", "PutObject")
        self.objects[(Bucket, Key)] = {"Body": Body, **kwargs}
        return {"ETag": '"stub"'}

    def delete_object(self, *, Bucket: str, Key: str) -> dict:
        if self.fail_delete:
            raise _client_error("AccessDenied", "DeleteObject")
        self.objects.pop((Bucket, Key), None)
        self.deleted.append(Key)
        return {}

    def head_object(self, *, Bucket: str, Key: str) -> dict:
        if (Bucket, Key) not in self.objects:
            raise _client_error("404", "HeadObject")
        return {"ContentLength": len(self.objects[(Bucket, Key)]["Body"])}

    def head_bucket(self, *, Bucket: str) -> dict:
        if self.fail_head_bucket:
            raise _client_error("403", "HeadBucket")
        return {}


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture(autouse=True)
def reset_rewards_store():
    store = get_rewards_store()
    store.reset()
    yield store
    store.reset()


@pytest.fixture
def fake_s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def evidence_storage(fake_s3) -> EvidenceStorage:
    return EvidenceStorage(
        settings=Settings(spotlight_evidence_bucket="test-evidence", spotlight_evidence_prefix="claims"),
        s3_client_factory=lambda: fake_s3,
    )


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory, evidence_storage):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_evidence_storage] = lambda: evidence_storage

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()
