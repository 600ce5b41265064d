from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import storage_errors
from app.core.errors import RateLimited, ReservationNotFound, StorageUnavailable
from app.core.rate_limit import RateLimiter
from app.models.invite import new_id
from app.models.log_models import AuditLog
from app.models.reservation import ReservationRequest, ReservationStatus, Signature, SignatureType
from app.schemas.reservation import HostReservationCreate, LegacyReservationCreate
from app.services.invite_service import InviteService
from app.services.notification_service import NotificationService
from app.utils.logger import get_logger

logger = get_logger("reservations")


class ReservationService:
    def __init__(
        self,
        db: AsyncSession,
        invites: InviteService,
        rate_limiter: RateLimiter,
        notifications: Optional[NotificationService] = None,
    ):
        self.db = db
        self.invites = invites
        self.rate_limiter = rate_limiter
        self.notifications = notifications

    async def create_reservation(
        self,
        payload: Union[HostReservationCreate, LegacyReservationCreate],
        invite_token: Optional[str],
    ) -> ReservationRequest:
        """
        Persist a reservation request authorized by an invite token.

        The reservation row, the host signature and the invite consumption are
        committed in one transaction; if any of them fails nothing is kept.
        Token problems are raised as InviteTokenError subclasses.
        """
        data = payload.normalized()
        if not self.rate_limiter.hit(f"request:{data.guest_email.lower()}"):
            logger.warning(f"Rate limit hit for {data.guest_email}")
            raise RateLimited()

        fields = data.model_dump(exclude={"signature"})
        reservation = ReservationRequest(id=new_id(), **fields)
        try:
            async with storage_errors("insert reservation"):
                self.db.add(reservation)
                await self.db.flush()
            self.db.add(Signature(reservation_id=reservation.id, type=SignatureType.HOST, image_data=data.signature))

            invite = await self.invites.consume_for_reservation(invite_token, reservation.id)
            reservation.invite_link_id = invite.id

            self.db.add(AuditLog(reservation_id=reservation.id, invite_link_id=invite.id, action="RESERVATION:CREATED"))
            async with storage_errors("commit reservation"):
                await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Reservation {reservation.id} created via invite {reservation.invite_link_id}")

        if self.notifications is not None:
            try:
                await self.notifications.send_reservation_notice(reservation)
            except StorageUnavailable:
                # The reservation is already committed; only the mail log row was lost
                logger.error(f"Could not record staff notice for reservation {reservation.id}")
        return reservation

    async def _get(self, reservation_id: str) -> ReservationRequest:
        async with storage_errors("load reservation"):
            reservation = await self.db.get(ReservationRequest, reservation_id)
        if reservation is None:
            raise ReservationNotFound(reservation_id)
        return reservation

    async def update_status(
        self,
        reservation_id: str,
        status: ReservationStatus,
        user_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> ReservationRequest:
        reservation = await self._get(reservation_id)
        reservation.status = status
        if notes is not None:
            reservation.internal_notes = notes
        self.db.add(AuditLog(reservation_id=reservation_id, user_id=user_id, action=f"STATUS:{status.value}"))
        async with storage_errors("update reservation status"):
            await self.db.commit()
        logger.info(f"Reservation {reservation_id} set to {status.value}")
        return reservation

    async def attach_staff_signature(self, reservation_id: str, image_data: bytes, user_id: Optional[int] = None) -> Signature:
        """Store the staff countersignature, replacing an earlier one."""
        await self._get(reservation_id)
        async with storage_errors("load signature"):
            result = await self.db.execute(
                select(Signature).where(
                    Signature.reservation_id == reservation_id,
                    Signature.type == SignatureType.STAFF,
                )
            )
            signature = result.scalar_one_or_none()

        if signature is None:
            signature = Signature(reservation_id=reservation_id, type=SignatureType.STAFF, image_data=image_data)
            self.db.add(signature)
        else:
            signature.image_data = image_data
        self.db.add(AuditLog(reservation_id=reservation_id, user_id=user_id, action="SIGNATURE:STAFF"))
        async with storage_errors("store staff signature"):
            await self.db.commit()
        logger.info(f"Staff signature stored for reservation {reservation_id}")
        return signature
