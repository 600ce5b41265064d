from datetime import datetime
from typing import Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class InviteSpec(BaseModel):
    """Everything the store needs to persist a new invite (the token hash is passed separately)."""
    form_key: str
    created_by_user_id: Optional[int] = None
    recipient_email: Optional[str] = None
    # None means the invite never expires; negative offsets produce an already expired invite
    expires_in_days: Optional[int] = None
    note: Optional[str] = None
    max_uses: int = Field(default=1, ge=1)


class InviteValid(BaseModel):
    valid: Literal[True] = True
    form_key: str
    invite_id: str
    use_count: int
    max_uses: int


class InviteInvalid(BaseModel):
    valid: Literal[False] = False
    reason: Literal["invalid", "expired", "revoked", "used"]


InviteValidation = Union[InviteValid, InviteInvalid]


class InviteCreate(CamelModel):
    recipient_email: EmailStr
    form_key: Optional[str] = None
    expires_in_days: Optional[int] = Field(default=None, ge=1, le=365)
    note: Optional[str] = Field(default=None, max_length=2000)
    max_uses: Optional[int] = Field(default=None, ge=1, le=1000)


class InviteCreated(CamelModel):
    invite_id: str
    link: str


class InviteOut(CamelModel):
    id: str
    form_key: str
    recipient_email: Optional[str] = None
    note: Optional[str] = None
    expires_at: Optional[datetime] = None
    max_uses: int
    use_count: int
    used_at: Optional[datetime] = None
    used_by_reservation_id: Optional[str] = None
    is_revoked: bool
    created_at: datetime
    status: Literal["active", "expired", "revoked", "used"]


class ValidateResponse(CamelModel):
    valid: bool
    form_key: Optional[str] = None
    reason: Optional[str] = None


class InviteIds(BaseModel):
    ids: list[str] = Field(min_length=1, max_length=500)


class CountOut(BaseModel):
    count: int
