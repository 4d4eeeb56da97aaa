import asyncio
import datetime as dt

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from rewards_api.core.errors import (
    ClaimNotFound,
    ClaimRecordFailed,
    EvidenceUploadFailed,
    InvalidClaimTransition,
    ModerationForbidden,
    SpotlightNotFound,
)
from rewards_api.core.settings import settings
from rewards_api.models.rewards import AwardEvent, SpotlightCandidate, SpotlightClaimRequest, SpotlightClaimStatus
from rewards_api.models.user import User, UserRoleEnum
from rewards_api.services.rewards import PointsLedger, SpotlightCatalog, SpotlightClaimService


async def _seed(session, *, points_reward: int = 250):
    member = User(email="member@example.com")
    moderator = User(email="mod@example.com", role=UserRoleEnum.MODERATOR.value)
    spotlight = SpotlightCandidate(
        title="Try Acme Notes",
        tool_name="Acme Notes",
        cta_url="https://acme.example/notes",
        points_reward=points_reward,
    )
    session.add_all([member, moderator, spotlight])
    await session.commit()
    return member, moderator, spotlight


async def _count(session, model) -> int:
    return await session.scalar(select(func.count()).select_from(model))


@pytest.mark.asyncio
async def test_submit_claim_uploads_and_records_pending(session_factory, evidence_storage, fake_s3) -> None:
    async with session_factory() as session:
        member, _, spotlight = await _seed(session)
        service = SpotlightClaimService(session, storage=evidence_storage)

        claim = await service.submit_claim(
            member.id,
            spotlight.id,
            external_email="  me@acme.example ",
            evidence=b"png-bytes",
            filename="my proof (1).png",
            content_type="image/png",
        )

        assert claim.status == SpotlightClaimStatus.PENDING
        assert claim.external_email == "me@acme.example"
        assert claim.evidence_uri.startswith(f"claims/{member.id}/{spotlight.id}/")
        assert claim.evidence_uri.endswith("-my_proof_1_.png")
        assert ("test-evidence", claim.evidence_uri) in fake_s3.objects
        assert fake_s3.objects[("test-evidence", claim.evidence_uri)]["ContentType"] == "image/png"
        assert await PointsLedger(session).get_balance(member.id) == 0


@pytest.mark.asyncio
async def test_failed_insert_deletes_uploaded_evidence(
    session_factory, evidence_storage, fake_s3, monkeypatch, reset_rewards_store
) -> None:
    async with session_factory() as session:
        member, _, spotlight = await _seed(session)
        member_id, spotlight_id = member.id, spotlight.id

        async def failing_commit():
            raise OperationalError("INSERT INTO spotlight_claim_requests", {}, Exception("database is locked"))

        monkeypatch.setattr(session, "commit", failing_commit)
        service = SpotlightClaimService(session, storage=evidence_storage)

        with pytest.raises(ClaimRecordFailed) as excinfo:
            await service.submit_claim(
                member_id,
                spotlight_id,
                external_email="me@acme.example",
                evidence=b"png-bytes",
                filename="proof.png",
            )

    assert isinstance(excinfo.value.__cause__, OperationalError)
    assert fake_s3.objects == {}
    assert len(fake_s3.deleted) == 1

    async with session_factory() as session:
        assert await _count(session, SpotlightClaimRequest) == 0

    assert reset_rewards_store.snapshot().claims == {"record_failed": 1}


@pytest.mark.asyncio
async def test_failed_compensation_still_surfaces_record_failure(
    session_factory, evidence_storage, fake_s3, monkeypatch, reset_rewards_store
) -> None:
    async with session_factory() as session:
        member, _, spotlight = await _seed(session)
        member_id, spotlight_id = member.id, spotlight.id
        fake_s3.fail_delete = True

        async def failing_commit():
            raise OperationalError("INSERT INTO spotlight_claim_requests", {}, Exception("disk I/O error"))

        monkeypatch.setattr(session, "commit", failing_commit)

        with pytest.raises(ClaimRecordFailed):
            await SpotlightClaimService(session, storage=evidence_storage).submit_claim(
                member_id,
                spotlight_id,
                external_email="me@acme.example",
                evidence=b"png-bytes",
            )

    assert len(fake_s3.objects) == 1
    assert reset_rewards_store.snapshot().claims == {"orphaned_evidence": 1, "record_failed": 1}


@pytest.mark.asyncio
async def test_cancelled_commit_deletes_uploaded_evidence(
    session_factory, evidence_storage, fake_s3, monkeypatch, reset_rewards_store
) -> None:
    async with session_factory() as session:
        member, _, spotlight = await _seed(session)
        member_id, spotlight_id = member.id, spotlight.id

        async def cancelled_commit():
            raise asyncio.CancelledError()

        monkeypatch.setattr(session, "commit", cancelled_commit)

        with pytest.raises(asyncio.CancelledError):
            await SpotlightClaimService(session, storage=evidence_storage).submit_claim(
                member_id,
                spotlight_id,
                external_email="me@acme.example",
                evidence=b"png-bytes",
                filename="proof.png",
            )

    assert fake_s3.objects == {}
    assert len(fake_s3.deleted) == 1

    async with session_factory() as session:
        assert await _count(session, SpotlightClaimRequest) == 0

    assert reset_rewards_store.snapshot().claims == {"abandoned": 1}


@pytest.mark.asyncio
async def test_same_millisecond_submissions_keep_both_evidence_files(
    session_factory, evidence_storage, fake_s3, monkeypatch
) -> None:
    moment = dt.datetime(2026, 3, 14, 12, 0, tzinfo=dt.timezone.utc)
    build_key = evidence_storage.build_key
    monkeypatch.setattr(
        evidence_storage,
        "build_key",
        lambda user_id, spotlight_id, filename: build_key(user_id, spotlight_id, filename, now=moment),
    )

    async with session_factory() as session:
        member, _, spotlight = await _seed(session)
        service = SpotlightClaimService(session, storage=evidence_storage)

        first = await service.submit_claim(
            member.id, spotlight.id, external_email="me@acme.example", evidence=b"first", filename="proof.png"
        )
        second = await service.submit_claim(
            member.id, spotlight.id, external_email="me@acme.example", evidence=b"second", filename="proof.png"
        )

        assert first.evidence_uri != second.evidence_uri
        assert fake_s3.objects[("test-evidence", first.evidence_uri)]["Body"] == b"first"
        assert fake_s3.objects[("test-evidence", second.evidence_uri)]["Body"] == b"second"
        assert await _count(session, SpotlightClaimRequest) == 2


@pytest.mark.asyncio
async def test_key_collision_is_rejected_instead_of_overwriting(
    session_factory, evidence_storage, fake_s3, monkeypatch
) -> None:
    monkeypatch.setattr(evidence_storage, "build_key", lambda user_id, spotlight_id, filename: "claims/fixed-key")

    async with session_factory() as session:
        member, _, spotlight = await _seed(session)
        service = SpotlightClaimService(session, storage=evidence_storage)

        await service.submit_claim(member.id, spotlight.id, external_email="me@acme.example", evidence=b"first")
        with pytest.raises(EvidenceUploadFailed):
            await service.submit_claim(member.id, spotlight.id, external_email="me@acme.example", evidence=b"second")

        assert fake_s3.objects[("test-evidence", "claims/fixed-key")]["Body"] == b"first"
        assert await _count(session, SpotlightClaimRequest) == 1


@pytest.mark.asyncio
async def test_upload_failure_creates_no_claim(session_factory, evidence_storage, fake_s3) -> None:
    async with session_factory() as session:
        member, _, spotlight = await _seed(session)
        fake_s3.fail_put = True

        with pytest.raises(EvidenceUploadFailed):
            await SpotlightClaimService(session, storage=evidence_storage).submit_claim(
                member.id,
                spotlight.id,
                external_email="me@acme.example",
                evidence=b"png-bytes",
            )

        assert await _count(session, SpotlightClaimRequest) == 0


@pytest.mark.asyncio
async def test_submit_claim_validates_before_uploading(
    session_factory, evidence_storage, fake_s3, monkeypatch
) -> None:
    monkeypatch.setattr(settings, "spotlight_evidence_max_bytes", 4)

    async with session_factory() as session:
        member, _, spotlight = await _seed(session)
        service = SpotlightClaimService(session, storage=evidence_storage)

        with pytest.raises(ValueError):
            await service.submit_claim(member.id, spotlight.id, external_email="   ", evidence=b"ok")
        with pytest.raises(ValueError):
            await service.submit_claim(member.id, spotlight.id, external_email="me@acme.example", evidence=b"")
        with pytest.raises(ValueError):
            await service.submit_claim(member.id, spotlight.id, external_email="me@acme.example", evidence=b"too big")
        with pytest.raises(SpotlightNotFound):
            await service.submit_claim(member.id, member.id, external_email="me@acme.example", evidence=b"ok")

    assert fake_s3.objects == {}


@pytest.mark.asyncio
async def test_latest_claim_status_returns_newest_request(session_factory, evidence_storage) -> None:
    async with session_factory() as session:
        member, _, spotlight = await _seed(session)
        service = SpotlightClaimService(session, storage=evidence_storage)

        assert await service.get_latest_claim_status(member.id, spotlight.id) is None

        await service.submit_claim(member.id, spotlight.id, external_email="old@acme.example", evidence=b"1")
        newest = await service.submit_claim(member.id, spotlight.id, external_email="new@acme.example", evidence=b"2")

        latest = await service.get_latest_claim_status(member.id, spotlight.id)
        assert latest is not None
        assert latest.id == newest.id
        assert latest.external_email == "new@acme.example"


@pytest.mark.asyncio
async def test_approval_awards_spotlight_reward_once(session_factory, evidence_storage, reset_rewards_store) -> None:
    async with session_factory() as session:
        member, moderator, spotlight = await _seed(session, points_reward=250)
        service = SpotlightClaimService(session, storage=evidence_storage)
        claim = await service.submit_claim(member.id, spotlight.id, external_email="me@acme.example", evidence=b"1")

        approved = await service.review_claim(claim.id, reviewer=moderator, decision="approved", note="Looks good")
        repeated = await service.review_claim(claim.id, reviewer=moderator, decision=SpotlightClaimStatus.APPROVED)

        assert approved.status == SpotlightClaimStatus.APPROVED
        assert approved.reviewed_by_user_id == moderator.id
        assert approved.review_note == "Looks good"
        assert repeated.id == approved.id
        assert await PointsLedger(session).get_balance(member.id) == 250
        assert await _count(session, AwardEvent) == 1

        with pytest.raises(InvalidClaimTransition):
            await service.review_claim(claim.id, reviewer=moderator, decision="rejected")

    snapshot = reset_rewards_store.snapshot()
    assert snapshot.claims == {"submitted": 1, "approved": 1}
    assert snapshot.points_awarded == {"spotlight_claim": 250}


@pytest.mark.asyncio
async def test_rejection_awards_nothing(session_factory, evidence_storage) -> None:
    async with session_factory() as session:
        member, moderator, spotlight = await _seed(session)
        service = SpotlightClaimService(session, storage=evidence_storage)
        claim = await service.submit_claim(member.id, spotlight.id, external_email="me@acme.example", evidence=b"1")

        rejected = await service.review_claim(claim.id, reviewer=moderator, decision="rejected", note="Blurry")

        assert rejected.status == SpotlightClaimStatus.REJECTED
        assert await PointsLedger(session).get_balance(member.id) == 0

        with pytest.raises(InvalidClaimTransition):
            await service.review_claim(claim.id, reviewer=moderator, decision="approved")

        pending = await service.list_claims(status=SpotlightClaimStatus.PENDING)
        assert pending == []
        assert [item.id for item in await service.list_claims(status=SpotlightClaimStatus.REJECTED)] == [claim.id]


@pytest.mark.asyncio
async def test_review_requires_moderator_and_existing_claim(session_factory, evidence_storage) -> None:
    async with session_factory() as session:
        member, moderator, spotlight = await _seed(session)
        service = SpotlightClaimService(session, storage=evidence_storage)
        claim = await service.submit_claim(member.id, spotlight.id, external_email="me@acme.example", evidence=b"1")

        with pytest.raises(ModerationForbidden):
            await service.review_claim(claim.id, reviewer=member, decision="approved")
        with pytest.raises(ClaimNotFound):
            await service.review_claim(spotlight.id, reviewer=moderator, decision="approved")
        with pytest.raises(ValueError):
            await service.review_claim(claim.id, reviewer=moderator, decision="pending")

        assert (await service.get_latest_claim_status(member.id, spotlight.id)).status == SpotlightClaimStatus.PENDING


@pytest.mark.asyncio
async def test_concurrent_approval_awards_once(session_factory, evidence_storage, monkeypatch) -> None:
    async with session_factory() as session:
        member, moderator, spotlight = await _seed(session, points_reward=100)
        claim = await SpotlightClaimService(session, storage=evidence_storage).submit_claim(
            member.id, spotlight.id, external_email="me@acme.example", evidence=b"1"
        )
        member_id, claim_id = member.id, claim.id

    async with session_factory() as slow_session:
        slow_service = SpotlightClaimService(slow_session, storage=evidence_storage)
        stale_claim = await slow_service._get_claim(claim_id)
        slow_moderator = await slow_session.get(User, moderator.id)
        await slow_session.commit()

        async with session_factory() as fast_session:
            fast_moderator = await fast_session.get(User, moderator.id)
            await SpotlightClaimService(fast_session, storage=evidence_storage).review_claim(
                claim_id, reviewer=fast_moderator, decision="approved"
            )

        async def stale_lookup(_claim_id):
            return stale_claim

        monkeypatch.setattr(slow_service, "_get_claim", stale_lookup)
        result = await slow_service.review_claim(claim_id, reviewer=slow_moderator, decision="approved")

        assert result.status == SpotlightClaimStatus.APPROVED
        assert await PointsLedger(slow_session).get_balance(member_id) == 100
        assert await _count(slow_session, AwardEvent) == 1


@pytest.mark.asyncio
async def test_catalog_returns_newest_active_spotlight(session_factory) -> None:
    async with session_factory() as session:
        catalog = SpotlightCatalog(session)
        assert await catalog.get_active_spotlight() is None

        older = SpotlightCandidate(title="Older", tool_name="Old", points_reward=10)
        session.add(older)
        await session.commit()
        newer = SpotlightCandidate(title="Newer", tool_name="New", points_reward=20)
        retired = SpotlightCandidate(title="Retired", tool_name="Gone", points_reward=30, is_active=False)
        session.add_all([newer])
        await session.commit()
        session.add(retired)
        await session.commit()

        active = await catalog.get_active_spotlight()
        assert active is not None
        assert active.id == newer.id
        assert (await catalog.get_spotlight(older.id)).title == "Older"
