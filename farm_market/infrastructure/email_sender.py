import asyncio
import logging
import smtplib
from email.message import EmailMessage

from farm_market.application.interfaces import EmailSender

logger = logging.getLogger(__name__)


class SMTPEmailSender(EmailSender):
    def __init__(self, host: str, port: int, user: str, password: str, from_address: str = "", use_tls: bool = True):
        self._host = host
        self._port = port
        self._user = user
        self._password = password
        self._from = from_address or user
        self._use_tls = use_tls

    async def send(self, to: str, subject: str, html: str) -> bool:
        # smtplib блокирующий, уводим в поток
        try:
            await asyncio.to_thread(self._send_sync, to, subject, html)
            logger.info(f"Письмо отправлено: {to} ({subject})")
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Ошибка отправки письма на {to}: {e}")
            return False

    def _send_sync(self, to: str, subject: str, html: str) -> None:
        message = EmailMessage()
        message["From"] = self._from
        message["To"] = to
        message["Subject"] = subject
        message.set_content("Откройте письмо в клиенте с поддержкой HTML.")
        message.add_alternative(html, subtype="html")

        with smtplib.SMTP(self._host, self._port, timeout=10) as smtp:
            if self._use_tls:
                smtp.starttls()
            if self._user:
                smtp.login(self._user, self._password)
            smtp.send_message(message)
