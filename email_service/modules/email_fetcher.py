"""
Email Fetch Orchestrator
Fetches the INBOX of every configured account concurrently and merges the
results

One worker thread per account. All workers share a single deadline derived
from the configured fetch timeout; a worker that hits it gives up on its
account and reports a timeout, discarding whatever it had parsed so far.
An account failure only removes that account from the result; the cycle
fails as a whole only when every account failed.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Optional, Tuple

from .email_data import AccountFetchStatus, EmailFetchOptions, EmailMessage, FetchResult
from .email_parser import EmailParser
from .exceptions import (
    AllAccountsFailedError,
    FetchError,
    FetchTimeoutError,
    InvalidEmailIDError,
    UnknownAccountError,
)
from .imap_connection import IMAPConnection
from ..utils.caching import AccountCache
from ..utils.config import EmailAccountConfig, ServiceConfig


# Upper bound for a single IMAP socket operation; the fetch deadline may
# shorten it further
IMAP_TIMEOUT = 30.0


def compute_sequence_range(total: int, limit: int = 0, offset: int = 0) -> Optional[Tuple[int, int]]:
    """
    IMAP sequence range holding the requested slice of a mailbox

    The newest ``limit`` messages are fetched, skipping the newest
    ``offset`` ones. Without a limit the whole mailbox is fetched.

    Returns:
        (start, end) inclusive, or None when nothing is to be fetched

    Example:
        >>> compute_sequence_range(100, limit=10, offset=5)
        (86, 95)
    """
    if total <= 0:
        return None
    if limit <= 0:
        return 1, total
    if offset >= total:
        return None

    end = total - max(offset, 0)
    start = max(1, end - limit + 1)
    return start, end


def filter_emails(
    emails: List[EmailMessage],
    options: Optional[EmailFetchOptions] = None,
) -> List[EmailMessage]:
    """
    Apply the read-status filter, then offset and limit

    An offset at or past the end yields an empty list.
    """
    if options is None:
        return list(emails)

    filtered = list(emails)
    if options.read is not None:
        filtered = [e for e in filtered if e.read == options.read]

    start = max(options.offset, 0)
    if start >= len(filtered):
        return []

    end = len(filtered)
    if options.limit > 0:
        end = min(start + options.limit, len(filtered))

    return filtered[start:end]


def parse_email_id(email_id: str) -> Tuple[str, int]:
    """
    Split "<account>:<sequence>" into its parts

    Raises:
        InvalidEmailIDError: not exactly two parts, or a non-numeric sequence
    """
    parts = str(email_id).split(":")
    if len(parts) != 2 or not parts[0]:
        raise InvalidEmailIDError("invalid email ID format")

    account_name, seq_str = parts
    if not seq_str.isdigit() or int(seq_str) < 1:
        raise InvalidEmailIDError(f"invalid message number: {seq_str!r}")
    return account_name, int(seq_str)


class EmailFetcher:
    """
    Concurrent multi-account fetcher with per-account caching

    Args:
        config: Service configuration
        caches: One AccountCache per configured account name
        connection_factory: Builds the IMAP adapter for an account
        parser_factory: Builds the message parser for an account
    """

    def __init__(
        self,
        config: ServiceConfig,
        caches: Dict[str, AccountCache],
        connection_factory: Callable[..., IMAPConnection] = IMAPConnection,
        parser_factory: Callable[[str], EmailParser] = EmailParser,
    ):
        self.config = config
        self.caches = caches
        self.connection_factory = connection_factory
        self.parser_factory = parser_factory
        self.logger = logging.getLogger("EmailFetcher")

        missing = set(config.accounts) - set(caches)
        for name in missing:
            self.caches[name] = AccountCache(config.cache.max_entries)

    def fetch_emails(self, options: Optional[EmailFetchOptions] = None) -> List[EmailMessage]:
        """
        Fetch emails from all accounts

        Raises:
            AllAccountsFailedError: every account failed
        """
        return self.fetch_emails_with_status(options).emails

    def fetch_emails_with_status(self, options: Optional[EmailFetchOptions] = None) -> FetchResult:
        """
        Fetch emails from all accounts, reporting the outcome per account

        Raises:
            AllAccountsFailedError: every account failed
        """
        options = options or EmailFetchOptions()
        accounts = self.config.accounts

        if not accounts:
            self.logger.warning("No email accounts configured; nothing to fetch")
            return FetchResult(emails=[], statuses={})

        cached = self._read_full_cache()
        if cached is not None:
            emails, statuses = cached
            self.logger.debug(f"Serving {len(emails)} emails from cache")
            return FetchResult(emails=filter_emails(emails, options), statuses=statuses)

        deadline = time.monotonic() + self.config.fetch_timeout

        all_emails: List[EmailMessage] = []
        results_lock = threading.Lock()
        fetched: Dict[str, List[EmailMessage]] = {}
        errors: Dict[str, Exception] = {}

        def fetch_task(account: EmailAccountConfig) -> None:
            emails = self._fetch_account(account, options, deadline)
            with results_lock:
                fetched[account.name] = emails
                all_emails.extend(emails)

        with ThreadPoolExecutor(
            max_workers=len(accounts), thread_name_prefix="email-fetch"
        ) as executor:
            futures = {
                executor.submit(fetch_task, account): name
                for name, account in accounts.items()
            }
            for future in as_completed(futures):
                name = futures[future]
                try:
                    future.result()
                except FetchError as e:
                    self.logger.error(f"Account {name}: Failed to fetch emails: {e}")
                    errors[name] = e
                except Exception as e:
                    self.logger.error(
                        f"Account {name}: Unexpected error while fetching: {e}", exc_info=True
                    )
                    errors[name] = e

        if len(errors) == len(accounts):
            raise AllAccountsFailedError(errors)

        statuses: Dict[str, AccountFetchStatus] = {}
        for name in accounts:
            if name in errors:
                statuses[name] = AccountFetchStatus(account=name, ok=False, error=str(errors[name]))
                continue
            emails = fetched.get(name, [])
            statuses[name] = AccountFetchStatus(account=name, ok=True, count=len(emails))
            if self.config.cache.enabled:
                dropped = self.caches[name].replace(emails)
                if dropped:
                    self.logger.warning(
                        f"Account {name}: cache limit reached, dropped {dropped} oldest emails"
                    )

        if errors:
            self.logger.warning(
                f"Fetched from {len(accounts) - len(errors)}/{len(accounts)} accounts; "
                f"failed: {', '.join(sorted(errors))}"
            )
        self.logger.info(f"Fetched {len(all_emails)} emails total")

        return FetchResult(emails=filter_emails(all_emails, options), statuses=statuses)

    def mark_as_read(self, email_id: str) -> None:
        """
        Set \\Seen on the server and in the cached copy

        The identifier is validated before any connection is made.

        Raises:
            InvalidEmailIDError: malformed identifier
            UnknownAccountError: account is not configured
            FetchError: the IMAP update failed
        """
        account_name, seq = parse_email_id(email_id)

        account = self.config.accounts.get(account_name)
        if account is None:
            raise UnknownAccountError(account_name)

        with self.connection_factory(account, timeout=IMAP_TIMEOUT) as connection:
            connection.select_inbox()
            connection.mark_seen(seq)

        self.logger.info(f"Marked {email_id} as read")

        if self.config.cache.enabled and account_name in self.caches:
            self.caches[account_name].mark_read(email_id)

    def _read_full_cache(self) -> Optional[Tuple[List[EmailMessage], Dict[str, AccountFetchStatus]]]:
        """
        Union of all cached lists when every account's cache is fresh

        A single stale or empty cache makes this return None, which sends
        the caller into a refetch of every account.
        """
        if not self.config.cache.enabled:
            return None

        emails: List[EmailMessage] = []
        statuses: Dict[str, AccountFetchStatus] = {}
        for name in self.config.accounts:
            cache = self.caches[name]
            if not cache.is_fresh(self.config.cache.duration):
                return None
            cached, _ = cache.read()
            if not cached:
                return None
            emails.extend(cached)
            statuses[name] = AccountFetchStatus(
                account=name, ok=True, count=len(cached), from_cache=True
            )
        return emails, statuses

    def _fetch_account(
        self,
        account: EmailAccountConfig,
        options: EmailFetchOptions,
        deadline: float,
    ) -> List[EmailMessage]:
        """Fetch and parse one account's slice of its INBOX"""
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise FetchTimeoutError(account.name)

        self.logger.info(f"{account.name}: Starting fetch")
        parser = self.parser_factory(account.name)

        with self.connection_factory(account, timeout=min(IMAP_TIMEOUT, remaining)) as connection:
            total = connection.select_inbox()
            if total == 0:
                self.logger.info(f"{account.name}: Inbox empty")
                return []

            seq_range = compute_sequence_range(total, options.limit, options.offset)
            if seq_range is None:
                return []

            start, end = seq_range
            self.logger.info(f"{account.name}: Fetching messages {start}-{end} of {total}")
            raw_messages = connection.fetch_range(start, end, deadline=deadline)

        emails = []
        for seq, flags, raw_email in raw_messages:
            if time.monotonic() >= deadline:
                raise FetchTimeoutError(account.name)
            emails.append(parser.parse_message(seq, raw_email, flags))

        self.logger.info(f"{account.name}: Completed. Processed {len(emails)} messages")
        return emails
