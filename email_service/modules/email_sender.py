"""
Email Delivery Module
Renders form notifications and delivers them over SMTP with retry

Before anything touches the network the recipient is checked against the
simulation policy:
- development mode: only addresses in an allow-listed domain are really
  sent, everything else is logged and reported as delivered
- production: obvious test addresses (@example.com, @test.com,
  @example.org) are still simulated
Real delivery is attempted up to MAX_ATTEMPTS times with a capped linear
backoff between attempts.
"""

import logging
import smtplib
import socket
import ssl
import time
from email.message import Message
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate, make_msgid
from typing import Callable, Optional

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from .email_data import AanmeldingEmailData, ContactEmailData
from .exceptions import DeliveryError
from .html_normalizer import process_html
from .templates import (
    AANMELDING_ADMIN_TEMPLATE,
    AANMELDING_USER_TEMPLATE,
    CONTACT_ADMIN_TEMPLATE,
    CONTACT_USER_TEMPLATE,
    TemplateRenderer,
)
from ..utils.config import SENDER_ACCOUNT, ConfigurationError, EmailAccountConfig, ServiceConfig
from ..utils.sanitization import redact_email, sanitize_for_logging
from ..utils.security import create_mail_ssl_context


MAX_ATTEMPTS = 3
MAX_BACKOFF = 5.0
SMTP_TIMEOUT = 30.0
IMPLICIT_TLS_PORT = 465

TEST_DOMAINS = ("@example.com", "@test.com", "@example.org")

CONTACT_ADMIN_SUBJECT = "Nieuw contactformulier ontvangen"
CONTACT_USER_SUBJECT = "Bedankt voor je bericht"
AANMELDING_ADMIN_SUBJECT = "Nieuwe aanmelding ontvangen"
AANMELDING_USER_SUBJECT = "Bedankt voor je aanmelding"


# 2s after the first failure, 4s after the second, never more than MAX_BACKOFF
BACKOFF_WAIT = wait_incrementing(start=2.0, increment=2.0, max=MAX_BACKOFF)


def classify_smtp_error(error: BaseException) -> str:
    """
    Coarse error class used for logging

    Returns one of "authentication", "tls", "network" or "protocol".
    """
    if isinstance(error, smtplib.SMTPAuthenticationError):
        return "authentication"
    if "authentication" in str(error).lower():
        return "authentication"
    if isinstance(error, ssl.SSLError):
        return "tls"
    if isinstance(error, (smtplib.SMTPServerDisconnected, smtplib.SMTPConnectError)):
        return "network"
    if isinstance(error, smtplib.SMTPException):
        return "protocol"
    if isinstance(error, (socket.timeout, OSError)):
        return "network"
    return "protocol"


class SMTPTransport:
    """
    Sends one prepared message through the account's SMTP server

    Port 465 uses implicit TLS (SMTP_SSL); any other port connects in plain
    text and upgrades with STARTTLS before authenticating.

    Args:
        timeout: Socket timeout in seconds
        verify_ssl: Validate the server certificate
    """

    def __init__(self, timeout: float = SMTP_TIMEOUT, verify_ssl: bool = False):
        self.timeout = timeout
        self.verify_ssl = verify_ssl

    def send(self, account: EmailAccountConfig, message: Message) -> None:
        context = create_mail_ssl_context(self.verify_ssl)

        if account.smtp_port == IMPLICIT_TLS_PORT:
            with smtplib.SMTP_SSL(
                account.smtp_host, account.smtp_port, context=context, timeout=self.timeout
            ) as smtp:
                smtp.login(account.email, account.password)
                smtp.send_message(message)
        else:
            with smtplib.SMTP(account.smtp_host, account.smtp_port, timeout=self.timeout) as smtp:
                smtp.ehlo()
                smtp.starttls(context=context)
                smtp.ehlo()
                smtp.login(account.email, account.password)
                smtp.send_message(message)


class EmailSender:
    """
    Delivery engine for contact and registration notifications

    Args:
        config: Service configuration
        renderer: Template renderer for the HTML bodies
        transport: Object with send(account, message); SMTPTransport by default
        sleep: Backoff sleep function, injectable for tests
    """

    def __init__(
        self,
        config: ServiceConfig,
        renderer: Optional[TemplateRenderer] = None,
        transport: Optional[SMTPTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.renderer = renderer or TemplateRenderer(config.template_dir)
        self.transport = transport or SMTPTransport()
        self.sleep = sleep
        self.logger = logging.getLogger(f"EmailSender.{SENDER_ACCOUNT}")

    def send_contact_email(self, data: ContactEmailData) -> int:
        """Send the admin notification or the submitter confirmation of a contact form"""
        if data.to_admin:
            template_name, subject = CONTACT_ADMIN_TEMPLATE, CONTACT_ADMIN_SUBJECT
        else:
            template_name, subject = CONTACT_USER_TEMPLATE, CONTACT_USER_SUBJECT

        recipient = self._recipient(data)
        self.logger.info(
            f"Sending {'admin' if data.to_admin else 'user'} email to: "
            f"{redact_email(recipient)} using template: {template_name}"
        )
        return self.send(template_name, subject, recipient, data)

    def send_aanmelding_email(self, data: AanmeldingEmailData) -> int:
        """Send the admin notification or the volunteer confirmation of a registration"""
        if data.to_admin:
            template_name, subject = AANMELDING_ADMIN_TEMPLATE, AANMELDING_ADMIN_SUBJECT
        else:
            template_name, subject = AANMELDING_USER_TEMPLATE, AANMELDING_USER_SUBJECT

        recipient = self._recipient(data)
        self.logger.info(
            f"Preparing {'admin' if data.to_admin else 'user'} registration email - "
            f"Template: {template_name}, Rol: {sanitize_for_logging(data.aanmelding.rol)}, "
            f"Afstand: {sanitize_for_logging(data.aanmelding.afstand)}"
        )
        return self.send(template_name, subject, recipient, data)

    def send(self, template_name: str, subject: str, recipient: str, data) -> int:
        """
        Render a template and deliver it

        Returns:
            Number of delivery attempts made (0 when simulated)

        Raises:
            TemplateNotFoundError: template_name is not registered
            DeliveryError: all attempts failed
        """
        body = self.renderer.render(template_name, data)
        self.logger.debug(f"Generated email body for template {template_name} ({len(body)} chars)")
        return self.send_email(recipient, subject, body)

    def send_email(self, to: str, subject: str, html_body: str) -> int:
        """
        Deliver an HTML email, honouring the simulation policy

        Returns:
            Number of delivery attempts made (0 when simulated)

        Raises:
            ConfigurationError: the sender account is not configured
            DeliveryError: invalid recipient, or all attempts failed
        """
        to = (to or "").strip()
        if not to or "\n" in to or "\r" in to:
            raise DeliveryError(f"invalid recipient address: {sanitize_for_logging(to)!r}")

        self.logger.info(
            f"Starting email send process to: {redact_email(to)} "
            f"with subject: {sanitize_for_logging(subject)}"
        )

        if self.should_simulate(to):
            return 0

        account = self.config.sender_account
        if account is None:
            self.logger.error(f"Email configuration not found for {SENDER_ACCOUNT} account")
            raise ConfigurationError(f"email configuration not found for {SENDER_ACCOUNT} account")

        message = self._build_message(account, to, subject, html_body)
        return self._deliver(account, message, to)

    def should_simulate(self, to: str) -> bool:
        """True when delivery to this address is only logged"""
        address = to.lower()

        if self.config.dev_mode:
            for domain in self.config.dev_allowed_domains:
                if address.endswith("@" + domain.lower()):
                    return False
            self.logger.info(f"DEV MODE: Simulating email delivery to {redact_email(to)}")
            return True

        if address.endswith(TEST_DOMAINS):
            self.logger.info(
                f"Detected test email address: {redact_email(to)}. Simulating successful delivery."
            )
            return True

        return False

    def _deliver(self, account: EmailAccountConfig, message: Message, to: str) -> int:
        mode = "SSL" if account.smtp_port == IMPLICIT_TLS_PORT else "STARTTLS"
        retrying = Retrying(
            stop=stop_after_attempt(MAX_ATTEMPTS),
            wait=BACKOFF_WAIT,
            retry=retry_if_exception_type(Exception),
            sleep=self.sleep,
            after=self._log_failed_attempt,
            before_sleep=self._log_backoff,
            reraise=False,
        )

        attempts = 0
        try:
            for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    self.logger.info(
                        f"Attempt {attempts}/{MAX_ATTEMPTS}: Connecting to SMTP server "
                        f"{account.smtp_host}:{account.smtp_port} with {mode}..."
                    )
                    self.transport.send(account, message)
        except RetryError as e:
            last_error = e.last_attempt.exception()
            self.logger.error(f"Failed to send email after {MAX_ATTEMPTS} attempts: {last_error}")
            raise DeliveryError(
                f"failed to send email after {MAX_ATTEMPTS} attempts: {last_error}",
                attempts=MAX_ATTEMPTS,
                last_error=last_error,
            ) from last_error

        self.logger.info(f"Successfully sent email to: {redact_email(to)}")
        return attempts

    def _log_failed_attempt(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()
        kind = classify_smtp_error(error)
        self.logger.warning(
            f"Attempt {retry_state.attempt_number}/{MAX_ATTEMPTS} failed ({kind} error): {error}"
        )
        if kind == "authentication":
            self.logger.warning("Authentication error detected. Please verify SMTP credentials.")

    def _log_backoff(self, retry_state: RetryCallState) -> None:
        self.logger.info(f"Waiting {retry_state.next_action.sleep:.0f}s before next attempt")

    @staticmethod
    def _build_message(
        account: EmailAccountConfig,
        to: str,
        subject: str,
        html_body: str,
    ) -> MIMEMultipart:
        """multipart/alternative with a plain-text rendering of the HTML"""
        message = MIMEMultipart("alternative")
        message["From"] = account.email
        message["To"] = to
        message["Subject"] = subject
        message["Date"] = formatdate(localtime=True)
        message["Message-ID"] = make_msgid(domain=account.email.rpartition("@")[2] or None)

        message.attach(MIMEText(process_html(html_body), "plain", "utf-8"))
        message.attach(MIMEText(html_body, "html", "utf-8"))
        return message

    def _recipient(self, data) -> str:
        if data.to_admin and not data.admin_email:
            return self.config.admin_email
        return data.recipient
