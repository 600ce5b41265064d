from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db
from app.core.errors import InviteNotFound, InviteNotResendable
from app.core.tokens import TokenCodec, get_token_codec
from app.models.invite import InviteLink
from app.models.user import User
from app.routers.auth import get_current_user
from app.schemas.invite import CountOut, InviteCreate, InviteCreated, InviteIds, InviteOut, ValidateResponse
from app.services.interfaces import MailTransport
from app.services.invite_service import InviteService, DEFAULT_EXPIRY, invite_status
from app.services.notification_service import NotificationService, get_mail_transport
from app.utils.clock import utcnow

router = APIRouter(tags=["invites"])
settings = get_settings()

# Public validation answers with 404 for unknown tokens and 410 for dead ones
VALIDATION_STATUS = {"invalid": 404, "expired": 410, "revoked": 410, "used": 410}


def get_invite_service(
    db: AsyncSession = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
    transport: Optional[MailTransport] = Depends(get_mail_transport),
) -> InviteService:
    return InviteService(db, codec, notifications=NotificationService(db, transport))


def _invite_out(invite: InviteLink, now) -> InviteOut:
    data = {column.key: getattr(invite, column.key) for column in InviteLink.__table__.columns}
    return InviteOut(**data, status=invite_status(invite, now))


@router.get("/invites/validate", response_model=ValidateResponse, response_model_exclude_none=True)
async def validate_invite(
    token: str = Query("", description="Invite token from the link"),
    service: InviteService = Depends(get_invite_service),
):
    result = await service.validate(token)
    if not result.valid:
        return JSONResponse(
            status_code=VALIDATION_STATUS.get(result.reason, 400),
            content={"valid": False, "reason": result.reason},
        )
    return ValidateResponse(valid=True, form_key=result.form_key)


@router.post("/admin/invites", response_model=InviteCreated)
async def create_invite(
    payload: InviteCreate,
    service: InviteService = Depends(get_invite_service),
    current_user: User = Depends(get_current_user),
):
    invite, link = await service.issue_and_send(
        payload.form_key or settings.INVITE_DEFAULT_FORM_KEY,
        recipient_email=str(payload.recipient_email),
        created_by_user_id=current_user.id,
        expires_in_days=payload.expires_in_days if payload.expires_in_days is not None else DEFAULT_EXPIRY,
        note=payload.note,
        max_uses=payload.max_uses or 1,
    )
    return InviteCreated(invite_id=invite.id, link=link)


@router.get("/admin/invites", response_model=List[InviteOut])
async def list_invites(
    limit: int = Query(50, ge=1, le=200),
    service: InviteService = Depends(get_invite_service),
    current_user: User = Depends(get_current_user),
):
    now = utcnow()
    return [_invite_out(invite, now) for invite in await service.list_invites(limit)]


@router.post("/admin/invites/bulk-revoke", response_model=CountOut)
async def bulk_revoke_invites(
    payload: InviteIds,
    service: InviteService = Depends(get_invite_service),
    current_user: User = Depends(get_current_user),
):
    return CountOut(count=await service.bulk_revoke(payload.ids, user_id=current_user.id))


@router.post("/admin/invites/bulk-delete", response_model=CountOut)
async def bulk_delete_invites(
    payload: InviteIds,
    service: InviteService = Depends(get_invite_service),
    current_user: User = Depends(get_current_user),
):
    return CountOut(count=await service.bulk_delete(payload.ids, user_id=current_user.id))


@router.post("/admin/invites/{invite_id}/revoke")
async def revoke_invite(
    invite_id: str,
    service: InviteService = Depends(get_invite_service),
    current_user: User = Depends(get_current_user),
):
    try:
        await service.revoke(invite_id, user_id=current_user.id)
    except InviteNotFound:
        raise HTTPException(status_code=404, detail="Invite not found")
    return {"status": "ok"}


@router.post("/admin/invites/{invite_id}/resend", response_model=InviteCreated)
async def resend_invite(
    invite_id: str,
    service: InviteService = Depends(get_invite_service),
    current_user: User = Depends(get_current_user),
):
    try:
        invite, link = await service.resend(invite_id, user_id=current_user.id)
    except InviteNotFound:
        raise HTTPException(status_code=404, detail="Invite not found")
    except InviteNotResendable as e:
        raise HTTPException(status_code=400, detail=str(e))
    return InviteCreated(invite_id=invite.id, link=link)
