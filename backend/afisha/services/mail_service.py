import logging
import smtplib
from email.message import EmailMessage
from afisha.core.config import settings
from afisha.core.exceptions import MailDeliveryError

logger = logging.getLogger(__name__)


class MailService:
    """
    Plain-text mail over SMTP over SSL.

    With delivery disabled (the default outside production) messages are
    written to the log instead, so registration codes are visible locally.
    """

    def __init__(self, enabled: bool, host: str, port: int, user: str, password: str, sender: str):
        self.enabled = enabled
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender

    @classmethod
    def from_settings(cls, config=settings) -> "MailService":
        return cls(
            enabled=config.MAIL_ENABLED,
            host=config.SMTP_HOST,
            port=config.SMTP_PORT,
            user=config.SMTP_USER,
            password=config.SMTP_PASSWORD,
            sender=config.MAIL_FROM or config.SMTP_USER,
        )

    def send(self, to: str, subject: str, body: str) -> None:
        if not self.enabled:
            logger.info("Mail delivery disabled, to=%s subject=%s body=%s", to, subject, body)
            return

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to
        msg.set_content(body)

        try:
            with smtplib.SMTP_SSL(self.host, self.port) as smtp:
                if self.user:
                    smtp.login(self.user, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send email to %s: %s", to, exc)
            raise MailDeliveryError(str(exc)) from exc

        logger.info("Sent mail to=%s subject=%s", to, subject)


mail_service = MailService.from_settings()
