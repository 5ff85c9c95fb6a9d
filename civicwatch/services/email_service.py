import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import List, Optional, Sequence

from python_http_client.exceptions import HTTPError
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Email, Mail

from civicwatch.core.config import Settings
from civicwatch.core.exceptions import DeliveryError, NoValidRecipientsError
from civicwatch.models.authority_model import Authority
from civicwatch.utils.validators import clean_recipients, validate_email

logger = logging.getLogger(__name__)


@dataclass
class OutgoingEmail:
    from_email: str
    recipients: List[str]
    subject: str
    text: str

    @property
    def to_header(self) -> str:
        return ", ".join(self.recipients)


# --------------------------------------------------------------------
# ✅ Transports
# --------------------------------------------------------------------
class SmtpMailTransport:
    """SMTP delivery; smtplib blocks, so each send runs in a worker thread."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        user: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def _build_message(self, email: OutgoingEmail) -> EmailMessage:
        message = EmailMessage()
        message["From"] = email.from_email
        message["To"] = email.to_header
        message["Subject"] = email.subject
        message.set_content(email.text)
        return message

    def _send_sync(self, email: OutgoingEmail) -> None:
        message = self._build_message(email)
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.user:
                server.login(self.user, self.password)
            server.send_message(message, from_addr=email.from_email, to_addrs=email.recipients)

    async def send(self, email: OutgoingEmail) -> None:
        try:
            await asyncio.to_thread(self._send_sync, email)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"SMTP send to {email.to_header} failed: {e}") from e


class SendGridMailTransport:
    """SendGrid delivery with every recipient in a single personalization."""

    def __init__(self, api_key: Optional[str]):
        if not api_key:
            logger.error("❌ SENDGRID_API_KEY is not set; SendGrid sends will fail")
        self.api_key = api_key

    def _send_sync(self, email: OutgoingEmail):
        message = Mail(
            from_email=Email(email.from_email),
            to_emails=email.recipients,
            subject=email.subject,
            plain_text_content=email.text,
        )
        return SendGridAPIClient(self.api_key).send(message)

    async def send(self, email: OutgoingEmail) -> None:
        if not self.api_key:
            raise DeliveryError("SendGrid API key is not configured")
        try:
            response = await asyncio.to_thread(self._send_sync, email)
        except HTTPError as e:
            raise DeliveryError(f"SendGrid rejected send to {email.to_header}: {e}") from e
        except Exception as e:
            raise DeliveryError(f"SendGrid send to {email.to_header} failed: {e}") from e

        logger.info(f"📨 SendGrid response status: {response.status_code}")
        if response.status_code not in (200, 202):
            raise DeliveryError(f"SendGrid API returned {response.status_code} for {email.to_header}")


def create_mail_transport(settings: Settings):
    backend = settings.mail_backend
    if backend == "sendgrid":
        return SendGridMailTransport(settings.sendgrid_api_key)
    if backend != "smtp":
        logger.warning(f"⚠️ Unknown MAIL_BACKEND '{backend}', using smtp")
    return SmtpMailTransport(
        host=settings.smtp_host,
        port=settings.smtp_port,
        user=settings.smtp_user,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
    )


# --------------------------------------------------------------------
# ✅ Notifier
# --------------------------------------------------------------------
class Notifier:
    """Sends one message jointly addressed to every resolved authority. No retries."""

    def __init__(self, transport, from_email: str, dry_run: bool = False):
        self.transport = transport
        self.from_email = from_email
        self.dry_run = dry_run

    async def notify(self, subject: str, body: str, authorities: Sequence[Authority]) -> List[str]:
        recipients = clean_recipients(auth.email for auth in authorities)
        if not recipients:
            raise NoValidRecipientsError(len(authorities))

        for address in recipients:
            if not validate_email(address):
                logger.warning(f"⚠️ Recipient address looks malformed: {address}")

        email = OutgoingEmail(
            from_email=self.from_email,
            recipients=recipients,
            subject=subject,
            text=body,
        )

        if self.dry_run:
            logger.info(f"🧪 Email dry-run enabled. Would send to {email.to_header} subject='{subject}'.")
            return recipients

        logger.info(f"📤 Sending email FROM {self.from_email} TO {email.to_header} with subject: {subject}")
        await self.transport.send(email)
        logger.info(f"📧 Email sent to {len(recipients)} authority/authorities")
        return recipients
