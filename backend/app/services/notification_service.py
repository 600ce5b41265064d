import asyncio
from datetime import datetime
from functools import partial
from html import escape
from typing import List, Optional

import resend
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import storage_errors
from app.models.log_models import EmailLog, EmailStatus
from app.services.interfaces import MailTransport
from app.utils.logger import get_logger

logger = get_logger("notifications")
settings = get_settings()


class ResendTransport:
    """Delivers mail through the Resend API."""

    def __init__(self, api_key: str, from_email: str):
        resend.api_key = api_key
        self.from_email = from_email

    async def deliver(self, to: List[str], subject: str, html: str) -> None:
        params = {
            "from": self.from_email,
            "to": to,
            "subject": subject,
            "html": html,
        }
        # The SDK is synchronous
        send = partial(resend.Emails.send, params)
        await asyncio.get_running_loop().run_in_executor(None, send)


def get_mail_transport() -> Optional[MailTransport]:
    if not settings.RESEND_API_KEY:
        return None
    return ResendTransport(settings.RESEND_API_KEY, settings.RESEND_FROM_EMAIL)


class NotificationService:
    def __init__(self, db: AsyncSession, transport: Optional[MailTransport] = None):
        self.db = db
        self.transport = transport

    async def send_invite(self, to: str, link: str, expires_at: Optional[datetime], invite_id: str) -> bool:
        """
        Mails an invite link. A failed delivery is recorded and logged but never
        raised: the invite stays valid and staff can resend it.
        """
        subject = "Ihre Einladung zur Reservierungsanfrage"
        expiry_line = ""
        if expires_at:
            expiry_line = f"<p>Der Link ist gültig bis {expires_at.strftime('%d.%m.%Y')}.</p>"
        html = f"""
          <div style="font-family: system-ui, sans-serif; padding: 16px;">
            <p>Guten Tag,</p>
            <p>über den folgenden Link können Sie Ihre Reservierungsanfrage stellen:</p>
            <p><a href="{escape(link)}">{escape(link)}</a></p>
            {expiry_line}
          </div>
        """
        return await self._send([to], subject, html, invite_link_id=invite_id)

    async def send_reservation_notice(self, reservation) -> bool:
        recipients = settings.admin_notification_recipients
        if not recipients:
            return False
        subject = f"Neue Reservierungsanfrage {reservation.guest_name}"
        html = (
            f"<p>Neue Anfrage von {escape(reservation.guest_name)} ({escape(reservation.guest_email)}) "
            f"für den {reservation.event_date.strftime('%d.%m.%Y')}.</p>"
        )
        return await self._send(recipients, subject, html, reservation_id=reservation.id)

    async def _send(
        self,
        to: List[str],
        subject: str,
        html: str,
        invite_link_id: Optional[str] = None,
        reservation_id: Optional[str] = None,
    ) -> bool:
        log = EmailLog(
            invite_link_id=invite_link_id,
            reservation_id=reservation_id,
            to=",".join(to),
            subject=subject,
        )
        if self.transport is None:
            logger.warning(f"Mail transport not configured, skipping '{subject}' to {log.to}")
            log.status = EmailStatus.SKIPPED
        else:
            try:
                await self.transport.deliver(to, subject, html)
                log.status = EmailStatus.SENT
                logger.info(f"Mail '{subject}' sent to {log.to}")
            except Exception as e:
                logger.error(f"Mail '{subject}' to {log.to} failed: {type(e).__name__}: {e}")
                log.status = EmailStatus.FAILED
                log.error = str(e)

        self.db.add(log)
        async with storage_errors("record email delivery"):
            await self.db.commit()
        return log.status == EmailStatus.SENT
