from .user import User, Role
from .invite import InviteLink, InviteRedemption
from .reservation import ReservationRequest, ReservationStatus, Signature, SignatureType
from .log_models import EmailLog, EmailStatus, AuditLog
