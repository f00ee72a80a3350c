"""
HTML email delivery over SMTP.

The SMTP conversation is blocking, so it runs in a worker thread
(asyncio.to_thread) and never stalls the event loop.

Usage:
    sender = EmailSender.from_settings()
    await sender.send_email(
        "user@example.com",
        "Welcome",
        "<p>Hello!</p>",
        cc="boss@example.com, team@example.com",
    )
"""

import asyncio
import smtplib
from collections.abc import Iterable
from email.message import EmailMessage

from pydantic import EmailStr, TypeAdapter, ValidationError as PydanticValidationError

from jela_shared.config.logging import email_logger as logger, mask_email
from jela_shared.config.settings import settings
from jela_shared.utils.exceptions import EmailAddressError

_address_adapter = TypeAdapter(EmailStr)


def parse_address(address: str | None) -> str:
    """
    Validate and normalize a single email address.

    Raises:
        EmailAddressError: The address is empty or malformed.
    """
    if address is None or not address.strip():
        raise EmailAddressError(address, "address is empty")
    try:
        return _address_adapter.validate_python(address.strip())
    except PydanticValidationError as e:
        raise EmailAddressError(address, e.errors()[0].get("msg", "invalid address")) from e


def split_addresses(addresses: str | Iterable[str] | None) -> list[str]:
    """Comma separated string or iterable -> list of non-blank entries."""
    if addresses is None:
        return []
    if isinstance(addresses, str):
        addresses = addresses.split(",")
    return [address.strip() for address in addresses if address and address.strip()]


class EmailSender:
    """Sends HTML messages through one SMTP server with one sender address."""

    def __init__(
        self,
        smtp_server: str,
        smtp_port: int,
        smtp_user: str,
        smtp_password: str,
        sender: str,
        enable_ssl: bool = True,
        timeout: int = 30,
    ):
        self._smtp_server = smtp_server
        self._smtp_port = smtp_port
        self._smtp_user = smtp_user
        self._smtp_password = smtp_password
        self._enable_ssl = enable_ssl
        self._timeout = timeout
        self._sender = parse_address(sender)

    @classmethod
    def from_settings(cls) -> "EmailSender":
        return cls(
            smtp_server=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_user=settings.smtp_user,
            smtp_password=settings.smtp_password,
            sender=settings.smtp_sender,
            enable_ssl=settings.smtp_use_ssl,
            timeout=settings.smtp_timeout,
        )

    @property
    def sender(self) -> str:
        return self._sender

    def build_message(
        self,
        recipient: str,
        subject: str,
        body_html: str,
        cc: str | Iterable[str] | None = None,
        bcc: str | Iterable[str] | None = None,
    ) -> EmailMessage:
        """
        Build the message. Invalid CC/BCC entries are skipped.

        Raises:
            EmailAddressError: The recipient is invalid.
        """
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = parse_address(recipient)
        message["Subject"] = subject

        cc_addresses = self._valid_addresses(cc, "cc")
        if cc_addresses:
            message["Cc"] = ", ".join(cc_addresses)
        bcc_addresses = self._valid_addresses(bcc, "bcc")
        if bcc_addresses:
            # send_message() delivers to Bcc and strips the header
            message["Bcc"] = ", ".join(bcc_addresses)

        message.set_content(body_html, subtype="html")
        return message

    async def send_email(
        self,
        recipient: str,
        subject: str,
        body_html: str,
        cc: str | Iterable[str] | None = None,
        bcc: str | Iterable[str] | None = None,
    ) -> None:
        """
        Send an HTML email.

        Raises:
            EmailAddressError: The recipient is invalid.
            smtplib.SMTPException: Connecting, authenticating or delivering
                failed. There are no retries.
            OSError: The server could not be reached.
        """
        message = self.build_message(recipient, subject, body_html, cc, bcc)
        await asyncio.to_thread(self._deliver, message)
        logger.info(
            "Email sent",
            recipient=mask_email(message["To"]),
            subject=subject,
        )

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self._smtp_server, self._smtp_port, timeout=self._timeout) as client:
            if self._enable_ssl:
                client.starttls()
            if self._smtp_user:
                client.login(self._smtp_user, self._smtp_password)
            client.send_message(message)

    @staticmethod
    def _valid_addresses(addresses: str | Iterable[str] | None, field: str) -> list[str]:
        valid = []
        for address in split_addresses(addresses):
            try:
                valid.append(parse_address(address))
            except EmailAddressError as e:
                logger.debug(
                    f"Skipping invalid {field.upper()} address",
                    address=mask_email(address),
                    reason=e.reason,
                )
        return valid
