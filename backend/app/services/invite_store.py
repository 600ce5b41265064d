from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from sqlalchemy import select, update, delete, or_, case
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import storage_errors
from app.models.invite import InviteLink, InviteRedemption
from app.models.log_models import EmailLog
from app.models.reservation import ReservationRequest
from app.schemas.invite import InviteSpec
from app.utils.clock import utcnow


class InviteStore:
    """
    Persistence for invite links on top of an AsyncSession.

    Nothing here commits. Writes are flushed into the caller's transaction so that
    consuming an invite and inserting the reservation it authorizes commit or roll
    back together.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, spec: InviteSpec, token_hash: str, now: Optional[datetime] = None) -> InviteLink:
        now = now or utcnow()
        expires_at = None
        if spec.expires_in_days is not None:
            expires_at = now + timedelta(days=spec.expires_in_days)

        invite = InviteLink(
            form_key=spec.form_key,
            token_hash=token_hash,
            created_by_user_id=spec.created_by_user_id,
            recipient_email=spec.recipient_email,
            note=spec.note,
            expires_at=expires_at,
            max_uses=spec.max_uses,
            use_count=0,
            is_revoked=False,
            created_at=now,
        )
        async with storage_errors("create invite"):
            self.db.add(invite)
            await self.db.flush()
        return invite

    async def find_by_hash(self, token_hash: str, refresh: bool = False) -> Optional[InviteLink]:
        stmt = select(InviteLink).where(InviteLink.token_hash == token_hash)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        async with storage_errors("find invite"):
            result = await self.db.execute(stmt)
            return result.scalar_one_or_none()

    async def find_by_id(self, invite_id: str, refresh: bool = False) -> Optional[InviteLink]:
        stmt = select(InviteLink).where(InviteLink.id == invite_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        async with storage_errors("find invite"):
            result = await self.db.execute(stmt)
            return result.scalar_one_or_none()

    async def list_recent(self, limit: int = 50) -> List[InviteLink]:
        stmt = select(InviteLink).order_by(InviteLink.created_at.desc()).limit(limit)
        async with storage_errors("list invites"):
            result = await self.db.execute(stmt)
            return list(result.scalars().all())

    async def existing_ids(self, ids: Sequence[str]) -> List[str]:
        if not ids:
            return []
        stmt = select(InviteLink.id).where(InviteLink.id.in_(ids))
        async with storage_errors("find invites"):
            result = await self.db.execute(stmt)
            return list(result.scalars().all())

    async def revoke(self, invite_id: str) -> bool:
        """Mark one invite revoked. Returns False only when the invite does not exist."""
        if not await self.existing_ids([invite_id]):
            return False
        # rowcount may be 0 on engines that only count changed rows
        await self.revoke_many([invite_id])
        return True

    async def revoke_many(self, ids: Sequence[str]) -> int:
        if not ids:
            return 0
        stmt = update(InviteLink).where(InviteLink.id.in_(ids)).values(is_revoked=True)
        async with storage_errors("revoke invites"):
            result = await self.db.execute(stmt)
        return result.rowcount

    async def delete_many(self, ids: Sequence[str]) -> int:
        """
        Delete invites and detach everything that points at them.

        Reservations and email log rows keep existing with their invite reference
        cleared; the redemption history of a deleted invite goes with it.
        """
        if not ids:
            return 0
        async with storage_errors("delete invites"):
            await self.db.execute(
                update(ReservationRequest)
                .where(ReservationRequest.invite_link_id.in_(ids))
                .values(invite_link_id=None)
            )
            await self.db.execute(
                update(EmailLog)
                .where(EmailLog.invite_link_id.in_(ids))
                .values(invite_link_id=None)
            )
            await self.db.execute(
                delete(InviteRedemption).where(InviteRedemption.invite_link_id.in_(ids))
            )
            result = await self.db.execute(delete(InviteLink).where(InviteLink.id.in_(ids)))
        return result.rowcount

    async def try_consume(self, invite_id: str, expected_max_uses: int, now: datetime, reservation_id: str) -> bool:
        """
        Take one use of the invite in a single conditional UPDATE.

        The row only changes if, at write time, it is not revoked, not expired and
        still below its quota. Concurrent callers are serialized by the database,
        so at most `max_uses` of them ever see a row affected.
        """
        stmt = (
            update(InviteLink)
            .where(
                InviteLink.id == invite_id,
                InviteLink.is_revoked.is_(False),
                InviteLink.max_uses == expected_max_uses,
                InviteLink.use_count < expected_max_uses,
                or_(InviteLink.expires_at.is_(None), InviteLink.expires_at > now),
            )
            .values(
                use_count=InviteLink.use_count + 1,
                used_by_reservation_id=reservation_id,
                used_at=case(
                    (InviteLink.use_count + 1 >= expected_max_uses, now),
                    else_=InviteLink.used_at,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        async with storage_errors("consume invite"):
            result = await self.db.execute(stmt)
            if result.rowcount != 1:
                return False
            self.db.add(InviteRedemption(invite_link_id=invite_id, reservation_id=reservation_id, consumed_at=now))
            await self.db.flush()
        return True
