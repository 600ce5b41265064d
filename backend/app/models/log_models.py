import enum
from datetime import datetime
from typing import Optional
from sqlalchemy import String, ForeignKey, DateTime, Text, Enum
from sqlalchemy.orm import Mapped, mapped_column
from app.core.database import Base
from app.utils.clock import utcnow

class EmailStatus(str, enum.Enum):
    SENT = "SENT"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"

class EmailLog(Base):
    __tablename__ = "email_logs"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    invite_link_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("invite_links.id", ondelete="SET NULL"), nullable=True, index=True
    )
    reservation_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("reservation_requests.id", ondelete="SET NULL"), nullable=True, index=True
    )
    to: Mapped[str] = mapped_column(String)
    subject: Mapped[str] = mapped_column(String)
    status: Mapped[EmailStatus] = mapped_column(Enum(EmailStatus))
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    reservation_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("reservation_requests.id", ondelete="SET NULL"), nullable=True, index=True
    )
    invite_link_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
