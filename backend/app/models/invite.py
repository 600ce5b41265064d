import uuid
from datetime import datetime
from typing import Optional, List
from sqlalchemy import String, ForeignKey, DateTime, Text, Integer, Boolean, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.core.database import Base
from app.utils.clock import utcnow


def new_id() -> str:
    return str(uuid.uuid4())


class InviteLink(Base):
    __tablename__ = "invite_links"
    __table_args__ = (
        CheckConstraint("max_uses >= 1", name="ck_invite_links_max_uses"),
        CheckConstraint("use_count >= 0 AND use_count <= max_uses", name="ck_invite_links_use_count"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    form_key: Mapped[str] = mapped_column(String(64), index=True)
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True)

    created_by_user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    recipient_email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    max_uses: Mapped[int] = mapped_column(Integer, default=1)
    use_count: Mapped[int] = mapped_column(Integer, default=0)
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    # Last reservation that consumed a use; the full history lives in invite_redemptions
    used_by_reservation_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    is_revoked: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    redemptions: Mapped[List["InviteRedemption"]] = relationship(
        back_populates="invite", cascade="all, delete-orphan", passive_deletes=True
    )


class InviteRedemption(Base):
    __tablename__ = "invite_redemptions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    invite_link_id: Mapped[str] = mapped_column(ForeignKey("invite_links.id", ondelete="CASCADE"), index=True)
    reservation_id: Mapped[str] = mapped_column(String(36), index=True)
    consumed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    invite: Mapped["InviteLink"] = relationship(back_populates="redemptions")
