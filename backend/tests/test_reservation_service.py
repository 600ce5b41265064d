import pytest
from pydantic import ValidationError
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    InviteTokenError,
    RateLimited,
    ReservationNotFound,
    StorageUnavailable,
    TokenExhausted,
    TokenInvalid,
    TokenRevoked,
)
from app.core.rate_limit import RateLimiter
from app.models.invite import InviteLink, InviteRedemption
from app.models.log_models import AuditLog
from app.models.reservation import ReservationRequest, ReservationStatus, Signature, SignatureType
from app.schemas.reservation import HostReservationCreate, LegacyReservationCreate, parse_reservation
from app.services.invite_service import InviteService
from app.services import notification_service
from app.services.notification_service import NotificationService
from app.services.reservation_service import ReservationService


class ConsumeThenFail(InviteService):
    """Consumes for real, then fails as if a later write in the transaction broke."""

    async def consume_for_reservation(self, token, reservation_id, now=None):
        await super().consume_for_reservation(token, reservation_id, now)
        raise RuntimeError("disk full")


@pytest.fixture
def reservation_service(db, invite_service, rate_limiter):
    return ReservationService(db, invite_service, rate_limiter)


async def _count(session_factory, model):
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


def test_payload_shapes_are_discriminated(host_payload, legacy_payload):
    assert isinstance(parse_reservation(host_payload), HostReservationCreate)
    assert isinstance(parse_reservation(legacy_payload), LegacyReservationCreate)


def test_host_payload_requires_consents(host_payload):
    host_payload["privacyAccepted"] = False
    with pytest.raises(ValidationError):
        parse_reservation(host_payload)


def test_invalid_signature_is_rejected(legacy_payload):
    legacy_payload["signature"] = "data:image/png;base64,@@@not-base64@@@"
    with pytest.raises(ValidationError):
        parse_reservation(legacy_payload)


def test_shapes_normalize_to_same_columns(host_payload, legacy_payload):
    host = parse_reservation(host_payload).normalized()
    legacy = parse_reservation(legacy_payload).normalized()

    assert host.guest_name == "Erika Mustermann"
    assert host.guest_city == "Berlin"
    assert host.extras == ["DJ"]
    assert legacy.guest_name == "Max Mustermann"
    assert legacy.guest_street is None
    assert legacy.event_end_time == "23:00"
    assert host.signature.startswith(b"\x89PNG")
    assert set(host.model_dump()) == set(legacy.model_dump())


@pytest.mark.asyncio
async def test_create_reservation_consumes_invite(reservation_service, invite_service, host_payload, session_factory):
    token, invite = await invite_service.issue("gesellschaften")

    reservation = await reservation_service.create_reservation(parse_reservation(host_payload), token)

    async with session_factory() as session:
        stored = (await session.execute(
            select(ReservationRequest).where(ReservationRequest.id == reservation.id)
        )).scalar_one()
        consumed = (await session.execute(select(InviteLink).where(InviteLink.id == invite.id))).scalar_one()
        signature = (await session.execute(select(Signature))).scalar_one()
        redemption = (await session.execute(select(InviteRedemption))).scalar_one()

    assert stored.guest_email == "erika@example.com"
    assert stored.invite_link_id == invite.id
    assert consumed.use_count == 1
    assert consumed.used_by_reservation_id == reservation.id
    assert signature.type == SignatureType.HOST
    assert signature.reservation_id == reservation.id
    assert redemption.reservation_id == reservation.id


@pytest.mark.asyncio
async def test_legacy_shape_is_accepted(reservation_service, invite_service, legacy_payload):
    token, _ = await invite_service.issue("gesellschaften")
    reservation = await reservation_service.create_reservation(parse_reservation(legacy_payload), token)
    assert reservation.guest_name == "Max Mustermann"
    assert reservation.payment_method == "Barzahlung"


@pytest.mark.asyncio
async def test_reused_token_creates_nothing(reservation_service, invite_service, host_payload, legacy_payload, session_factory):
    token, _ = await invite_service.issue("gesellschaften")
    await reservation_service.create_reservation(parse_reservation(host_payload), token)

    with pytest.raises(TokenExhausted):
        await reservation_service.create_reservation(parse_reservation(legacy_payload), token)

    assert await _count(session_factory, ReservationRequest) == 1
    assert await _count(session_factory, Signature) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("token", [None, "", "forged"])
async def test_missing_or_unknown_token_creates_nothing(reservation_service, host_payload, session_factory, token):
    with pytest.raises(TokenInvalid):
        await reservation_service.create_reservation(parse_reservation(host_payload), token)
    assert await _count(session_factory, ReservationRequest) == 0


@pytest.mark.asyncio
async def test_revoked_token_creates_nothing(reservation_service, invite_service, host_payload, session_factory):
    token, invite = await invite_service.issue("gesellschaften")
    await invite_service.revoke(invite.id)

    with pytest.raises(TokenRevoked):
        await reservation_service.create_reservation(parse_reservation(host_payload), token)
    assert await _count(session_factory, ReservationRequest) == 0


@pytest.mark.asyncio
async def test_failure_after_consume_rolls_back_consumption(db, codec, invite_service, rate_limiter, host_payload, session_factory):
    token, invite = await invite_service.issue("gesellschaften")
    # rollback expires every instance in the session, so keep the plain id
    invite_id = invite.id
    service = ReservationService(db, ConsumeThenFail(db, codec), rate_limiter)

    with pytest.raises(RuntimeError):
        await service.create_reservation(parse_reservation(host_payload), token)

    async with session_factory() as session:
        stored = (await session.execute(select(InviteLink).where(InviteLink.id == invite_id))).scalar_one()
    assert stored.use_count == 0
    assert stored.used_by_reservation_id is None
    assert await _count(session_factory, ReservationRequest) == 0
    assert await _count(session_factory, Signature) == 0
    assert await _count(session_factory, InviteRedemption) == 0
    assert (await invite_service.validate(token)).valid is True


@pytest.mark.asyncio
async def test_rate_limit_by_guest_email(db, invite_service, host_payload):
    service = ReservationService(db, invite_service, RateLimiter(max_hits=1, window_seconds=60))
    token_a, _ = await invite_service.issue("gesellschaften")
    token_b, _ = await invite_service.issue("gesellschaften")

    await service.create_reservation(parse_reservation(host_payload), token_a)
    with pytest.raises(RateLimited):
        await service.create_reservation(parse_reservation(host_payload), token_b)
    # the second token was never touched
    assert (await invite_service.validate(token_b)).valid is True


@pytest.mark.asyncio
async def test_staff_notification_after_commit(db, invite_service, rate_limiter, host_payload, transport, monkeypatch):
    monkeypatch.setattr(notification_service.settings, "ADMIN_NOTIFICATION_EMAILS", "team@example.com")
    service = ReservationService(db, invite_service, rate_limiter, notifications=NotificationService(db, transport))
    token, _ = await invite_service.issue("gesellschaften")

    reservation = await service.create_reservation(parse_reservation(host_payload), token)

    transport.deliver.assert_awaited_once()
    to, subject, _ = transport.deliver.await_args.args
    assert to == ["team@example.com"]
    assert reservation.guest_name in subject


def test_token_errors_share_base():
    for error in (TokenInvalid, TokenRevoked, TokenExhausted):
        assert issubclass(error, InviteTokenError)


async def _locked_commit(self):
    raise OperationalError("COMMIT", {}, Exception("database is locked"))


@pytest.mark.asyncio
async def test_locked_database_at_commit_is_storage_unavailable(reservation_service, invite_service, host_payload, session_factory, monkeypatch):
    token, _ = await invite_service.issue("gesellschaften")
    monkeypatch.setattr(AsyncSession, "commit", _locked_commit)

    with pytest.raises(StorageUnavailable):
        await reservation_service.create_reservation(parse_reservation(host_payload), token)

    monkeypatch.undo()
    assert await _count(session_factory, ReservationRequest) == 0
    assert await _count(session_factory, InviteRedemption) == 0
    assert (await invite_service.validate(token)).valid is True


async def _reservation(reservation_service, invite_service, payload):
    token, _ = await invite_service.issue("gesellschaften")
    return await reservation_service.create_reservation(parse_reservation(payload), token)


@pytest.mark.asyncio
async def test_update_status_records_audit(reservation_service, invite_service, host_payload, staff_user, db):
    reservation = await _reservation(reservation_service, invite_service, host_payload)

    updated = await reservation_service.update_status(
        reservation.id, ReservationStatus.CONFIRMED, user_id=staff_user.id, notes="Anzahlung erhalten"
    )

    assert updated.status == ReservationStatus.CONFIRMED
    assert updated.internal_notes == "Anzahlung erhalten"
    entry = (await db.execute(select(AuditLog).where(AuditLog.action == "STATUS:CONFIRMED"))).scalar_one()
    assert entry.reservation_id == reservation.id
    assert entry.user_id == staff_user.id


@pytest.mark.asyncio
async def test_update_status_keeps_notes_when_omitted(reservation_service, invite_service, host_payload):
    reservation = await _reservation(reservation_service, invite_service, host_payload)
    await reservation_service.update_status(reservation.id, ReservationStatus.DECLINED, notes="ausgebucht")
    updated = await reservation_service.update_status(reservation.id, ReservationStatus.CANCELLED)
    assert updated.status == ReservationStatus.CANCELLED
    assert updated.internal_notes == "ausgebucht"


@pytest.mark.asyncio
async def test_staff_signature_is_replaced_not_duplicated(reservation_service, invite_service, host_payload, db):
    reservation = await _reservation(reservation_service, invite_service, host_payload)

    await reservation_service.attach_staff_signature(reservation.id, b"first")
    await reservation_service.attach_staff_signature(reservation.id, b"second")

    staff = (await db.execute(
        select(Signature)
        .where(Signature.reservation_id == reservation.id, Signature.type == SignatureType.STAFF)
        .execution_options(populate_existing=True)
    )).scalars().all()
    assert [s.image_data for s in staff] == [b"second"]
    actions = (await db.execute(select(AuditLog.action).where(AuditLog.reservation_id == reservation.id))).scalars().all()
    assert actions.count("SIGNATURE:STAFF") == 2


@pytest.mark.asyncio
async def test_staff_actions_on_unknown_reservation(reservation_service):
    with pytest.raises(ReservationNotFound):
        await reservation_service.update_status("missing", ReservationStatus.CONFIRMED)
    with pytest.raises(ReservationNotFound):
        await reservation_service.attach_staff_signature("missing", b"sig")
