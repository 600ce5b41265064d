from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.errors import InviteTokenError, RateLimited, ReservationNotFound
from app.core.rate_limit import RateLimiter, get_rate_limiter
from app.core.tokens import TokenCodec, get_token_codec
from app.models.user import User
from app.routers.auth import get_current_user
from app.schemas.reservation import (
    ReservationCreated,
    ReservationOut,
    ReservationStatusUpdate,
    StaffSignatureIn,
    decode_signature,
    parse_reservation,
)
from app.services.interfaces import MailTransport
from app.services.invite_service import InviteService
from app.services.notification_service import NotificationService, get_mail_transport
from app.services.reservation_service import ReservationService

router = APIRouter(prefix="/reservations", tags=["reservations"])
admin_router = APIRouter(prefix="/admin/reservations", tags=["reservations"])


def get_reservation_service(
    db: AsyncSession = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    transport: Optional[MailTransport] = Depends(get_mail_transport),
) -> ReservationService:
    notifications = NotificationService(db, transport)
    return ReservationService(db, InviteService(db, codec), rate_limiter, notifications=notifications)


@router.post("", response_model=ReservationCreated, status_code=201)
async def create_reservation(
    body: dict = Body(...),
    token: Optional[str] = Query(None, description="Invite token from the link"),
    service: ReservationService = Depends(get_reservation_service),
):
    try:
        payload = parse_reservation(body)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False, include_context=False))

    try:
        reservation = await service.create_reservation(payload, token)
    except InviteTokenError:
        # Guests only learn that the invitation is unusable, not why
        return JSONResponse(status_code=410, content={"success": False, "error": "TOKEN_INVALID"})
    except RateLimited:
        return JSONResponse(status_code=429, content={"success": False, "error": RateLimited.code})

    return ReservationCreated(reservation_id=reservation.id)


@admin_router.patch("/{reservation_id}/status", response_model=ReservationOut)
async def update_reservation_status(
    reservation_id: str,
    payload: ReservationStatusUpdate,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_user),
):
    try:
        return await service.update_status(
            reservation_id, payload.status, user_id=current_user.id, notes=payload.notes
        )
    except ReservationNotFound:
        raise HTTPException(status_code=404, detail="Reservation not found")


@admin_router.put("/{reservation_id}/signatures/staff")
async def put_staff_signature(
    reservation_id: str,
    payload: StaffSignatureIn,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_user),
):
    try:
        await service.attach_staff_signature(
            reservation_id, decode_signature(payload.signature), user_id=current_user.id
        )
    except ReservationNotFound:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return {"status": "ok"}
