"""
Email Service
Facade used by the HTTP layer: fetching, stats, mark-as-read and the form
notification mails
"""

import logging
from typing import Callable, Dict, List, Optional

from .email_data import (
    AanmeldingEmailData,
    ContactEmailData,
    EmailFetchOptions,
    EmailMessage,
    FetchResult,
)
from .email_fetcher import EmailFetcher
from .email_sender import EmailSender, SMTPTransport
from .html_normalizer import process_html
from .imap_connection import IMAPConnection
from .templates import TemplateRenderer
from ..utils.caching import AccountCache
from ..utils.config import ServiceConfig


class EmailService:
    """
    Owns the per-account caches and wires fetcher and sender together

    The caches live exactly as long as the service instance.

    Args:
        config: Service configuration
        renderer: Template renderer (Jinja2 over the template directory by default)
        transport: SMTP transport (SMTPTransport by default)
        connection_factory: IMAP adapter factory (IMAPConnection by default)
    """

    def __init__(
        self,
        config: ServiceConfig,
        renderer: Optional[TemplateRenderer] = None,
        transport: Optional[SMTPTransport] = None,
        connection_factory: Optional[Callable[..., IMAPConnection]] = None,
    ):
        self.config = config
        self.logger = logging.getLogger("EmailService")

        self.caches: Dict[str, AccountCache] = {
            name: AccountCache(config.cache.max_entries) for name in config.accounts
        }
        for name in self.caches:
            self.logger.debug(f"Initialized cache for account: {name}")

        self.fetcher = EmailFetcher(
            config,
            self.caches,
            connection_factory=connection_factory or IMAPConnection,
        )
        self.sender = EmailSender(
            config,
            renderer=renderer or TemplateRenderer(config.template_dir),
            transport=transport,
        )
        self.logger.info(f"Email service ready with {len(config.accounts)} accounts")

    def fetch_emails(self, options: Optional[EmailFetchOptions] = None) -> List[EmailMessage]:
        return self.fetcher.fetch_emails(options)

    def fetch_emails_with_status(self, options: Optional[EmailFetchOptions] = None) -> FetchResult:
        return self.fetcher.fetch_emails_with_status(options)

    def get_email_stats(self) -> Dict[str, int]:
        """Total and unread counts over all accounts"""
        emails = self.fetch_emails()
        unread = sum(1 for e in emails if not e.read)
        return {"total": len(emails), "unread": unread}

    def mark_email_as_read(self, email_id: str) -> None:
        self.fetcher.mark_as_read(email_id)

    def send_contact_email(self, data: ContactEmailData) -> int:
        return self.sender.send_contact_email(data)

    def send_aanmelding_email(self, data: AanmeldingEmailData) -> int:
        return self.sender.send_aanmelding_email(data)

    @staticmethod
    def process_html(html: str) -> str:
        """Plain-text rendering of an HTML body"""
        return process_html(html)

    def clear_caches(self) -> None:
        for cache in self.caches.values():
            cache.clear()
