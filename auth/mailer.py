"""
Outgoing mail for account activation codes.
Sends over SMTP (STARTTLS) or, with the "noop" backend, only logs.
"""
import logging
import smtplib
from email.message import EmailMessage

logger = logging.getLogger(__name__)


class Mailer:
    def __init__(self, backend="smtp", host="localhost", port=587, user="", password="", sender="") -> None:
        self.backend = backend
        self._host = host
        self._port = port
        self._user = user
        self._password = password
        self._sender = sender or user

    def send_otp(self, to_email: str, otp: str) -> bool:
        """Send the OTP mail; returns False instead of raising when delivery fails."""
        if self.backend == "noop":
            logger.info("Mail backend=noop; skip OTP mail to %s", to_email)
            return True

        msg = EmailMessage()
        msg["From"] = self._sender
        msg["To"] = to_email
        msg["Subject"] = "Your OTP Code"
        msg.set_content(f"Your OTP for registration is: {otp}")

        try:
            with smtplib.SMTP(self._host, self._port, timeout=10) as smtp:
                smtp.starttls()
                if self._user:
                    smtp.login(self._user, self._password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("SMTP send to %s failed: %s", to_email, exc)
            return False
        logger.info("OTP mail sent to %s", to_email)
        return True
