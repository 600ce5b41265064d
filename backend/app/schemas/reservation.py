import base64
import binascii
import re
from datetime import date, datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Discriminator, EmailStr, Field, Tag, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from app.models.reservation import ReservationStatus

PHONE_RE = re.compile(r"^[0-9+()/\s-]{5,}$")
TIME_RE = r"^\d{2}:\d{2}$"
DATA_URL_RE = re.compile(r"^data:image/(png|jpeg);base64,")


def decode_signature(data_url: str) -> bytes:
    """Decode a signature pad data URL (or bare base64) into image bytes."""
    raw = DATA_URL_RE.sub("", data_url.strip())
    try:
        decoded = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError):
        raise ValueError("Signature is not valid base64 image data")
    if not decoded:
        raise ValueError("Signature is empty")
    return decoded


class NormalizedReservation(BaseModel):
    """Column values shared by both accepted request shapes."""
    guest_name: str
    guest_email: str
    guest_phone: str
    guest_street: Optional[str] = None
    guest_postal_code: Optional[str] = None
    guest_city: Optional[str] = None
    event_date: date
    event_type: str
    event_start_time: str
    event_end_time: str
    start_meal: Optional[str] = None
    number_of_guests: int
    payment_method: str
    extras: list[str] = []
    notes: Optional[str] = None
    price_estimate: Optional[float] = None
    total_price: Optional[float] = None
    signature: bytes


class _ReservationBase(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    event_date: date
    event_start_time: str = Field(pattern=TIME_RE)
    event_end_time: str = Field(default="22:30", pattern=TIME_RE)
    number_of_guests: int = Field(ge=1)
    payment_method: Literal["Rechnung", "Barzahlung"]
    price_estimate: Optional[float] = Field(default=None, ge=0)
    total_price: Optional[float] = Field(default=None, ge=0)
    signature: str = Field(min_length=10)

    @field_validator("signature")
    @classmethod
    def validate_signature(cls, v: str) -> str:
        decode_signature(v)
        return v


class HostReservationCreate(_ReservationBase):
    """Current form: host name split in two, full address, explicit consents."""
    host_first_name: str = Field(min_length=2)
    host_last_name: str = Field(min_length=2)
    host_street: str = Field(min_length=3)
    host_postal_code: str = Field(min_length=4)
    host_city: str = Field(min_length=2)
    host_phone: str
    host_email: EmailStr
    event_type: str = Field(min_length=2)
    start_meal: str = Field(min_length=1)
    selected_extras: list[str] = []
    notes: Optional[str] = None
    privacy_accepted: Literal[True]
    terms_accepted: Literal[True]

    @field_validator("host_phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        if not PHONE_RE.match(v):
            raise ValueError("Bitte eine gültige Telefonnummer angeben")
        return v

    def normalized(self) -> NormalizedReservation:
        return NormalizedReservation(
            guest_name=f"{self.host_first_name} {self.host_last_name}",
            guest_email=str(self.host_email),
            guest_phone=self.host_phone,
            guest_street=self.host_street,
            guest_postal_code=self.host_postal_code,
            guest_city=self.host_city,
            event_date=self.event_date,
            event_type=self.event_type,
            event_start_time=self.event_start_time,
            event_end_time=self.event_end_time,
            start_meal=self.start_meal,
            number_of_guests=self.number_of_guests,
            payment_method=self.payment_method,
            extras=self.selected_extras,
            notes=self.notes,
            price_estimate=self.price_estimate,
            total_price=self.total_price,
            signature=decode_signature(self.signature),
        )


class LegacyReservationCreate(_ReservationBase):
    """Older clients: a single guest name and a free extras list."""
    guest_name: str = Field(min_length=2)
    guest_email: EmailStr
    guest_phone: str = Field(min_length=5)
    event_type: str = Field(min_length=2)
    extras: list[str] = []
    internal_notes: Optional[str] = None

    def normalized(self) -> NormalizedReservation:
        return NormalizedReservation(
            guest_name=self.guest_name,
            guest_email=str(self.guest_email),
            guest_phone=self.guest_phone,
            event_date=self.event_date,
            event_type=self.event_type,
            event_start_time=self.event_start_time,
            event_end_time=self.event_end_time,
            number_of_guests=self.number_of_guests,
            payment_method=self.payment_method,
            extras=self.extras,
            notes=self.internal_notes,
            price_estimate=self.price_estimate,
            total_price=self.total_price,
            signature=decode_signature(self.signature),
        )


def reservation_shape(value: Any) -> str:
    if isinstance(value, dict):
        return "legacy" if ("guestName" in value or "guest_name" in value) else "host"
    return "legacy" if isinstance(value, LegacyReservationCreate) else "host"


ReservationCreate = Annotated[
    Union[
        Annotated[HostReservationCreate, Tag("host")],
        Annotated[LegacyReservationCreate, Tag("legacy")],
    ],
    Discriminator(reservation_shape),
]


class ReservationCreated(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = True
    reservation_id: str


reservation_adapter = TypeAdapter(ReservationCreate)


def parse_reservation(data: Any) -> Union[HostReservationCreate, LegacyReservationCreate]:
    return reservation_adapter.validate_python(data)


class ReservationStatusUpdate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: ReservationStatus
    notes: Optional[str] = Field(default=None, max_length=5000)


class StaffSignatureIn(BaseModel):
    signature: str = Field(min_length=10)

    @field_validator("signature")
    @classmethod
    def validate_signature(cls, v: str) -> str:
        decode_signature(v)
        return v


class ReservationOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    status: ReservationStatus
    guest_name: str
    guest_email: str
    event_date: date
    number_of_guests: int
    internal_notes: Optional[str] = None
    invite_link_id: Optional[str] = None
    created_at: datetime
