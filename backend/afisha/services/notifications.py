import logging
from typing import List
from afisha.core.exceptions import MailDeliveryError

logger = logging.getLogger(__name__)


class Notifier:
    """
    Sends notifications after a state change has been committed.

    A failed delivery never undoes the change: it is logged and kept in
    ``warnings`` so the route can report it alongside the successful result.
    """

    def __init__(self, mailer):
        self.mailer = mailer
        self.warnings: List[str] = []

    def notify(self, to: str, subject: str, body: str) -> bool:
        try:
            self.mailer.send(to, subject, body)
        except MailDeliveryError as exc:
            logger.warning("Notification '%s' to %s not delivered: %s", subject, to, exc)
            self.warnings.append(f"Не удалось отправить письмо на {to}")
            return False
        return True
