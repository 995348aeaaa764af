"""
IMAP Connection Module
Handles the IMAP session of one account: login, INBOX selection, ranged
fetching and flag updates

PATTERN RECOGNITION: This follows the Adapter pattern - it wraps Python's
imaplib so the fetch orchestrator deals in sequence numbers, flags and raw
message bytes instead of untagged IMAP responses.

Unlike parsing, connection problems are not recovered here: every failure
raises FetchError so the orchestrator can mark the account as failed for
this cycle.
"""

import imaplib
import logging
import socket
import ssl
import time
from typing import Any, List, Optional, Tuple

from .exceptions import FetchError, FetchTimeoutError
from ..utils.config import EmailAccountConfig
from ..utils.sanitization import redact_email
from ..utils.security import create_mail_ssl_context


logger = logging.getLogger(__name__)

INBOX = "INBOX"
FETCH_BATCH_SIZE = 10
# BODY.PEEK keeps the server from setting \Seen as a side effect of fetching
FETCH_ITEMS = "(FLAGS BODY.PEEK[])"

AUTH_KEYWORDS = (
    "authentication failed", "login failed", "invalid credentials",
    "logon failure", "authenticate", "authentication",
)

# (sequence number, flags, raw message bytes)
FetchedMessage = Tuple[int, List[bytes], bytes]


class IMAPConnection:
    """
    Manages the IMAP session of a single account

    Args:
        config: Account configuration
        timeout: Socket timeout in seconds for connect and commands
        verify_ssl: Validate the server certificate
    """

    def __init__(
        self,
        config: EmailAccountConfig,
        timeout: float = 30.0,
        verify_ssl: bool = False,
    ):
        self.config = config
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.connection: Optional[imaplib.IMAP4_SSL] = None
        self.logger = logging.getLogger(f"IMAPConnection.{config.name}")

    def __enter__(self) -> "IMAPConnection":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    def connect(self) -> None:
        """
        Open the TLS connection and authenticate

        Raises:
            FetchError: connection or login failed
        """
        self.logger.info(
            f"Connecting to {self.config.imap_host}:{self.config.imap_port}"
        )
        try:
            self.connection = imaplib.IMAP4_SSL(
                self.config.imap_host,
                self.config.imap_port,
                ssl_context=create_mail_ssl_context(self.verify_ssl),
                timeout=self.timeout,
            )
        except (OSError, ssl.SSLError, imaplib.IMAP4.error) as e:
            self.connection = None
            raise FetchError(self.config.name, f"IMAP connection failed: {e}") from e

        try:
            self.connection.login(self.config.email, self.config.password)
        except imaplib.IMAP4.error as e:
            if self._is_auth_error(str(e)):
                self.logger.warning(
                    "Authentication error detected. Please verify the credentials "
                    f"for {redact_email(self.config.email)}"
                )
            self.disconnect()
            raise FetchError(self.config.name, f"IMAP login failed: {e}") from e
        except OSError as e:
            self.disconnect()
            raise FetchError(self.config.name, f"IMAP login failed: {e}") from e

        self.logger.info(f"Successfully connected to {redact_email(self.config.email)}")

    def disconnect(self) -> None:
        """Close the IMAP connection gracefully"""
        if not self.connection:
            return

        try:
            self.connection.logout()
            self.logger.debug("Disconnected from IMAP server")
        except Exception as e:
            # Connection may already be closed
            self.logger.debug(f"Logout failed: {e}")
        finally:
            self.connection = None

    def select_inbox(self) -> int:
        """
        Select INBOX read-write

        Returns:
            Number of messages in the mailbox
        """
        connection = self._require_connection()
        try:
            status, data = connection.select(INBOX, readonly=False)
        except (imaplib.IMAP4.error, OSError) as e:
            raise FetchError(self.config.name, f"IMAP select inbox failed: {e}") from e

        if status != "OK":
            raise FetchError(self.config.name, f"IMAP select inbox failed: {status}")

        try:
            return int(data[0])
        except (IndexError, TypeError, ValueError) as e:
            raise FetchError(
                self.config.name, f"Unexpected SELECT response: {data!r}"
            ) from e

    def fetch_range(
        self,
        start: int,
        end: int,
        deadline: Optional[float] = None,
    ) -> List[FetchedMessage]:
        """
        Fetch flags and full bodies for sequence numbers start..end

        The range is fetched in batches; the deadline (a time.monotonic()
        value) is checked before every batch and also bounds the socket
        timeout, so a slow server cannot hold the task past it.

        Raises:
            FetchTimeoutError: deadline reached before the range completed
            FetchError: server rejected the FETCH
        """
        connection = self._require_connection()
        messages: List[FetchedMessage] = []

        for batch_start in range(start, end + 1, FETCH_BATCH_SIZE):
            batch_end = min(batch_start + FETCH_BATCH_SIZE - 1, end)
            self._apply_deadline(deadline)

            seq_set = f"{batch_start}:{batch_end}"
            try:
                status, data = connection.fetch(seq_set, FETCH_ITEMS)
            except socket.timeout as e:
                raise FetchTimeoutError(self.config.name) from e
            except (imaplib.IMAP4.error, OSError) as e:
                raise FetchError(self.config.name, f"IMAP fetch failed: {e}") from e

            if status != "OK":
                raise FetchError(self.config.name, f"IMAP fetch failed for {seq_set}: {status}")

            messages.extend(self._parse_fetch_response(data))

        return messages

    def mark_seen(self, seq: int) -> None:
        """Add the \\Seen flag to one message"""
        connection = self._require_connection()
        try:
            status, _ = connection.store(str(seq), "+FLAGS", "(\\Seen)")
        except (imaplib.IMAP4.error, OSError) as e:
            raise FetchError(self.config.name, f"failed to mark message as read: {e}") from e

        if status != "OK":
            raise FetchError(self.config.name, f"failed to mark message as read: {status}")

    def _parse_fetch_response(self, data: List[Any]) -> List[FetchedMessage]:
        """
        Turn imaplib FETCH data into (seq, flags, raw) tuples

        imaplib returns each message as a (header, literal) tuple followed
        by a bytes tail. FLAGS may appear in either, depending on the order
        the server answers in.
        """
        parsed: List[FetchedMessage] = []
        for item in data or []:
            if isinstance(item, tuple) and len(item) >= 2:
                header, raw_bytes = item[0], item[1]
                try:
                    seq = int(header.split()[0])
                except (IndexError, ValueError) as e:
                    self.logger.warning(f"Skipping unparseable FETCH header {header!r}: {e}")
                    continue
                if not isinstance(raw_bytes, bytes):
                    self.logger.warning(
                        f"Unexpected payload type for message {seq}: {type(raw_bytes)}"
                    )
                    continue
                parsed.append((seq, list(imaplib.ParseFlags(header)), raw_bytes))
            elif isinstance(item, bytes) and parsed and not parsed[-1][1]:
                trailing = imaplib.ParseFlags(item)
                if trailing:
                    seq, _, raw_bytes = parsed[-1]
                    parsed[-1] = (seq, list(trailing), raw_bytes)
        return parsed

    def _apply_deadline(self, deadline: Optional[float]) -> None:
        if deadline is None:
            return
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise FetchTimeoutError(self.config.name)
        sock = getattr(self.connection, "sock", None)
        if sock is not None:
            sock.settimeout(min(remaining, self.timeout))

    def _require_connection(self) -> imaplib.IMAP4:
        if self.connection is None:
            raise FetchError(self.config.name, "not connected")
        return self.connection

    @staticmethod
    def _is_auth_error(error_msg: str) -> bool:
        msg_lower = error_msg.lower()
        return any(k in msg_lower for k in AUTH_KEYWORDS)
