import enum
from datetime import datetime, date
from typing import Optional, List
from sqlalchemy import String, ForeignKey, DateTime, Date, Text, Integer, Float, JSON, Enum, LargeBinary, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.core.database import Base
from app.models.invite import new_id
from app.utils.clock import utcnow

class ReservationStatus(str, enum.Enum):
    NEW = "NEW"
    CONFIRMED = "CONFIRMED"
    DECLINED = "DECLINED"
    CANCELLED = "CANCELLED"

class SignatureType(str, enum.Enum):
    HOST = "HOST"
    STAFF = "STAFF"

class ReservationRequest(Base):
    __tablename__ = "reservation_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    status: Mapped[ReservationStatus] = mapped_column(Enum(ReservationStatus), default=ReservationStatus.NEW)

    guest_name: Mapped[str] = mapped_column(String)
    guest_email: Mapped[str] = mapped_column(String, index=True)
    guest_phone: Mapped[str] = mapped_column(String)
    guest_street: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    guest_postal_code: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    guest_city: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    event_date: Mapped[date] = mapped_column(Date)
    event_type: Mapped[str] = mapped_column(String)
    event_start_time: Mapped[str] = mapped_column(String(5))
    event_end_time: Mapped[str] = mapped_column(String(5), default="22:30")
    start_meal: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    number_of_guests: Mapped[int] = mapped_column(Integer)
    payment_method: Mapped[str] = mapped_column(String)
    extras: Mapped[list] = mapped_column(JSON, default=list)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price_estimate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    total_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    # Staff-only remarks set alongside status changes
    internal_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Invite that authorized this request; cleared when the invite is deleted
    invite_link_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("invite_links.id", ondelete="SET NULL"), nullable=True, index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    signatures: Mapped[List["Signature"]] = relationship(back_populates="reservation", cascade="all, delete-orphan")

class Signature(Base):
    __tablename__ = "signatures"
    __table_args__ = (UniqueConstraint("reservation_id", "type", name="uq_signatures_reservation_type"),)

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    reservation_id: Mapped[str] = mapped_column(ForeignKey("reservation_requests.id", ondelete="CASCADE"))
    type: Mapped[SignatureType] = mapped_column(Enum(SignatureType))
    image_data: Mapped[bytes] = mapped_column(LargeBinary)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    reservation: Mapped["ReservationRequest"] = relationship(back_populates="signatures")
