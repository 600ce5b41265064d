import math
from datetime import datetime
from typing import Any, List, Optional, Sequence, Tuple
from urllib.parse import quote

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import storage_errors
from app.core.errors import (
    InviteNotFound,
    InviteNotResendable,
    TokenExhausted,
    TokenInvalid,
    TOKEN_ERRORS_BY_REASON,
)
from app.core.tokens import TokenCodec
from app.models.invite import InviteLink
from app.models.log_models import AuditLog
from app.schemas.invite import InviteInvalid, InviteSpec, InviteValid, InviteValidation
from app.services.interfaces import InviteRepository
from app.services.invite_store import InviteStore
from app.services.notification_service import NotificationService
from app.utils.clock import utcnow
from app.utils.logger import get_logger

logger = get_logger("invites")
settings = get_settings()

# Sentinel: "use the configured default expiry". Passing None means "never expires".
DEFAULT_EXPIRY: Any = object()

SECONDS_PER_DAY = 24 * 60 * 60


def rejection_reason(invite: InviteLink, now: datetime) -> Optional[str]:
    """Why the invite cannot be redeemed right now, or None if it can.

    Revocation is reported before expiry, expiry before exhaustion.
    """
    if invite.is_revoked:
        return "revoked"
    if invite.expires_at is not None and invite.expires_at <= now:
        return "expired"
    if invite.use_count >= invite.max_uses:
        return "used"
    return None


def invite_status(invite: InviteLink, now: Optional[datetime] = None) -> str:
    return rejection_reason(invite, now or utcnow()) or "active"


def remaining_days(expires_at: Optional[datetime], now: datetime) -> Optional[int]:
    if expires_at is None:
        return None
    return max(1, math.ceil((expires_at - now).total_seconds() / SECONDS_PER_DAY))


def build_invite_link(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/request?token={quote(token, safe='')}"


class InviteService:
    def __init__(
        self,
        db: AsyncSession,
        codec: TokenCodec,
        store: Optional[InviteRepository] = None,
        notifications: Optional[NotificationService] = None,
        default_expiry_days: Optional[int] = None,
    ):
        self.db = db
        self.codec = codec
        self.store = store or InviteStore(db)
        self.notifications = notifications
        self.default_expiry_days = (
            default_expiry_days if default_expiry_days is not None else settings.INVITE_DEFAULT_EXPIRY_DAYS
        )

    async def issue(
        self,
        form_key: str,
        created_by_user_id: Optional[int] = None,
        recipient_email: Optional[str] = None,
        expires_in_days: Any = DEFAULT_EXPIRY,
        note: Optional[str] = None,
        max_uses: int = 1,
        audit_action: str = "INVITE:ISSUED",
    ) -> Tuple[str, InviteLink]:
        """
        Create an invite and return its plaintext token together with the record.

        The token is only available here; storage keeps its hash.
        """
        if expires_in_days is DEFAULT_EXPIRY:
            expires_in_days = self.default_expiry_days

        token = self.codec.generate_token()
        spec = InviteSpec(
            form_key=form_key,
            created_by_user_id=created_by_user_id,
            recipient_email=recipient_email,
            expires_in_days=expires_in_days,
            note=note,
            max_uses=max_uses,
        )
        invite = await self.store.create(spec, self.codec.hash_token(token))
        self.db.add(AuditLog(invite_link_id=invite.id, user_id=created_by_user_id, action=audit_action))
        async with storage_errors("issue invite"):
            await self.db.commit()

        logger.info(f"Invite {invite.id} issued for form '{form_key}' (max_uses={max_uses}, expires_at={invite.expires_at})")
        return token, invite

    async def issue_and_send(
        self,
        form_key: str,
        recipient_email: str,
        created_by_user_id: Optional[int] = None,
        expires_in_days: Any = DEFAULT_EXPIRY,
        note: Optional[str] = None,
        max_uses: int = 1,
    ) -> Tuple[InviteLink, str]:
        token, invite = await self.issue(
            form_key,
            created_by_user_id=created_by_user_id,
            recipient_email=recipient_email,
            expires_in_days=expires_in_days,
            note=note,
            max_uses=max_uses,
        )
        link = build_invite_link(settings.PUBLIC_BASE_URL, token)
        await self._deliver(invite, link)
        return invite, link

    async def validate(self, token: Optional[str]) -> InviteValidation:
        """Read-only check of a token; never takes a use."""
        if not token:
            return InviteInvalid(reason="invalid")
        invite = await self.store.find_by_hash(self.codec.hash_token(token))
        if invite is None:
            return InviteInvalid(reason="invalid")

        reason = rejection_reason(invite, utcnow())
        if reason:
            return InviteInvalid(reason=reason)
        return InviteValid(
            form_key=invite.form_key,
            invite_id=invite.id,
            use_count=invite.use_count,
            max_uses=invite.max_uses,
        )

    async def consume_for_reservation(
        self, token: Optional[str], reservation_id: str, now: Optional[datetime] = None
    ) -> InviteLink:
        """
        Redeem one use of the invite for `reservation_id`.

        Runs inside the caller's transaction and does not commit. The caller commits
        together with the reservation rows, or rolls everything back.
        """
        now = now or utcnow()
        invite = None
        if token:
            invite = await self.store.find_by_hash(self.codec.hash_token(token))
        if invite is None:
            logger.warning(f"Consume rejected for reservation {reservation_id}: unknown token")
            raise TokenInvalid()

        if not await self.store.try_consume(invite.id, invite.max_uses, now, reservation_id):
            # The conditional update already decided; re-read only to name the reason
            current = await self.store.find_by_id(invite.id, refresh=True)
            if current is None:
                raise TokenInvalid()
            reason = rejection_reason(current, now)
            error = TOKEN_ERRORS_BY_REASON.get(reason, TokenExhausted)
            logger.warning(f"Consume of invite {invite.id} rejected for reservation {reservation_id}: {error.code}")
            raise error()

        updated = await self.store.find_by_id(invite.id, refresh=True)
        logger.info(f"Invite {invite.id} consumed by reservation {reservation_id} ({updated.use_count}/{updated.max_uses})")
        return updated

    async def resend(self, invite_id: str, user_id: Optional[int] = None) -> Tuple[InviteLink, str]:
        """
        Mint a fresh invite for the same recipient and mail it.

        The old invite keeps its state; it is not revoked.
        """
        invite = await self.store.find_by_id(invite_id)
        if invite is None:
            raise InviteNotFound(invite_id)
        if not invite.recipient_email:
            raise InviteNotResendable("Invite has no recipient")

        token, new_invite = await self.issue(
            invite.form_key,
            created_by_user_id=user_id,
            recipient_email=invite.recipient_email,
            expires_in_days=remaining_days(invite.expires_at, utcnow()),
            note=invite.note,
            max_uses=invite.max_uses,
            audit_action="INVITE:RESENT",
        )
        link = build_invite_link(settings.PUBLIC_BASE_URL, token)
        await self._deliver(new_invite, link)
        return new_invite, link

    async def list_invites(self, limit: int = 50) -> List[InviteLink]:
        return await self.store.list_recent(limit)

    async def revoke(self, invite_id: str, user_id: Optional[int] = None) -> None:
        if not await self.store.revoke(invite_id):
            raise InviteNotFound(invite_id)
        self.db.add(AuditLog(invite_link_id=invite_id, user_id=user_id, action="INVITE:REVOKED"))
        async with storage_errors("revoke invite"):
            await self.db.commit()
        logger.info(f"Invite {invite_id} revoked")

    async def bulk_revoke(self, ids: Sequence[str], user_id: Optional[int] = None) -> int:
        """Revoke every existing invite among `ids`; unknown ids are ignored."""
        found = await self.store.existing_ids(list(dict.fromkeys(ids)))
        await self.store.revoke_many(found)
        for invite_id in found:
            self.db.add(AuditLog(invite_link_id=invite_id, user_id=user_id, action="INVITE:REVOKED"))
        async with storage_errors("revoke invites"):
            await self.db.commit()
        logger.info(f"Revoked {len(found)} invites")
        return len(found)

    async def bulk_delete(self, ids: Sequence[str], user_id: Optional[int] = None) -> int:
        found = await self.store.existing_ids(list(dict.fromkeys(ids)))
        count = await self.store.delete_many(found)
        for invite_id in found:
            self.db.add(AuditLog(invite_link_id=invite_id, user_id=user_id, action="INVITE:DELETED"))
        async with storage_errors("delete invites"):
            await self.db.commit()
        logger.info(f"Deleted {count} invites")
        return count

    async def _deliver(self, invite: InviteLink, link: str) -> None:
        if self.notifications is None or not invite.recipient_email:
            return
        await self.notifications.send_invite(invite.recipient_email, link, invite.expires_at, invite.id)
