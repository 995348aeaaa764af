"""
Unit tests for IMAPConnection

All network I/O (imaplib, socket, ssl) is mocked so the tests run without
real credentials or network access.
"""

import imaplib
import socket
import ssl
import time
import unittest
from unittest.mock import MagicMock, patch

from conftest import make_account
from email_service.modules.exceptions import FetchError, FetchTimeoutError
from email_service.modules.imap_connection import FETCH_ITEMS, IMAPConnection


class TestIMAPConnectionConnect(unittest.TestCase):
    """Tests for IMAPConnection.connect()"""

    def setUp(self):
        self.config = make_account("info")
        self.conn = IMAPConnection(self.config)
        self.conn.logger = MagicMock()

    @patch("email_service.modules.imap_connection.create_mail_ssl_context")
    @patch("email_service.modules.imap_connection.imaplib.IMAP4_SSL")
    def test_connect_success(self, mock_imap4_ssl, mock_ssl_ctx):
        mock_imap = MagicMock()
        mock_imap4_ssl.return_value = mock_imap

        self.conn.connect()

        mock_ssl_ctx.assert_called_once_with(False)
        mock_imap4_ssl.assert_called_once_with(
            self.config.imap_host,
            self.config.imap_port,
            ssl_context=mock_ssl_ctx.return_value,
            timeout=30.0,
        )
        mock_imap.login.assert_called_once_with(self.config.email, self.config.password)
        self.assertIs(self.conn.connection, mock_imap)

    @patch("email_service.modules.imap_connection.imaplib.IMAP4_SSL")
    def test_connection_failure_raises_fetch_error(self, mock_imap4_ssl):
        mock_imap4_ssl.side_effect = socket.gaierror("Name or service not known")

        with self.assertRaises(FetchError) as ctx:
            self.conn.connect()

        self.assertIn("IMAP connection failed", str(ctx.exception))
        self.assertEqual(ctx.exception.account, "info")
        self.assertIsNone(self.conn.connection)

    @patch("email_service.modules.imap_connection.imaplib.IMAP4_SSL")
    def test_ssl_failure_raises_fetch_error(self, mock_imap4_ssl):
        mock_imap4_ssl.side_effect = ssl.SSLError("handshake failure")

        with self.assertRaises(FetchError):
            self.conn.connect()

    @patch("email_service.modules.imap_connection.imaplib.IMAP4_SSL")
    def test_login_failure_logs_auth_hint(self, mock_imap4_ssl):
        mock_imap = MagicMock()
        mock_imap.login.side_effect = imaplib.IMAP4.error("[AUTHENTICATIONFAILED] Authentication failed.")
        mock_imap4_ssl.return_value = mock_imap

        with self.assertRaises(FetchError) as ctx:
            self.conn.connect()

        self.assertIn("IMAP login failed", str(ctx.exception))
        warnings = " ".join(str(c) for c in self.conn.logger.warning.call_args_list)
        self.assertIn("Authentication error detected", warnings)
        self.assertNotIn(self.config.password, warnings)
        mock_imap.logout.assert_called_once()
        self.assertIsNone(self.conn.connection)

    @patch("email_service.modules.imap_connection.imaplib.IMAP4_SSL")
    def test_context_manager_disconnects(self, mock_imap4_ssl):
        mock_imap = MagicMock()
        mock_imap4_ssl.return_value = mock_imap

        with IMAPConnection(self.config) as conn:
            self.assertIs(conn.connection, mock_imap)

        mock_imap.logout.assert_called_once()

    def test_disconnect_swallows_logout_errors(self):
        mock_imap = MagicMock()
        mock_imap.logout.side_effect = OSError("socket closed")
        self.conn.connection = mock_imap

        self.conn.disconnect()

        self.assertIsNone(self.conn.connection)


class TestIMAPConnectionCommands(unittest.TestCase):
    """Tests for select / fetch / store on a connected session"""

    def setUp(self):
        self.conn = IMAPConnection(make_account("inschrijving"))
        self.conn.logger = MagicMock()
        self.imap = MagicMock()
        self.conn.connection = self.imap

    def test_select_inbox_returns_count(self):
        self.imap.select.return_value = ("OK", [b"42"])

        self.assertEqual(self.conn.select_inbox(), 42)
        self.imap.select.assert_called_once_with("INBOX", readonly=False)

    def test_select_inbox_failure(self):
        self.imap.select.return_value = ("NO", [b"Mailbox doesn't exist"])

        with self.assertRaises(FetchError):
            self.conn.select_inbox()

    def test_commands_require_connection(self):
        self.conn.connection = None
        with self.assertRaises(FetchError):
            self.conn.select_inbox()

    def test_fetch_range_parses_flags_and_bodies(self):
        self.imap.fetch.return_value = ("OK", [
            (b"1 (FLAGS (\\Seen) BODY[] {5}", b"body1"),
            b")",
            (b"2 (FLAGS () BODY[] {5}", b"body2"),
            b")",
        ])

        messages = self.conn.fetch_range(1, 2)

        self.imap.fetch.assert_called_once_with("1:2", FETCH_ITEMS)
        self.assertEqual(messages, [
            (1, [b"\\Seen"], b"body1"),
            (2, [], b"body2"),
        ])

    def test_fetch_range_reads_trailing_flags(self):
        self.imap.fetch.return_value = ("OK", [
            (b"3 (BODY[] {5}", b"body3"),
            b" FLAGS (\\Seen \\Flagged))",
        ])

        messages = self.conn.fetch_range(3, 3)

        self.assertEqual(messages, [(3, [b"\\Seen", b"\\Flagged"], b"body3")])

    def test_fetch_range_uses_batches_of_ten(self):
        self.imap.fetch.return_value = ("OK", [])

        self.conn.fetch_range(1, 25)

        ranges = [c.args[0] for c in self.imap.fetch.call_args_list]
        self.assertEqual(ranges, ["1:10", "11:20", "21:25"])

    def test_fetch_uses_peek(self):
        self.assertIn("BODY.PEEK[]", FETCH_ITEMS)

    def test_fetch_range_skips_unparseable_header(self):
        self.imap.fetch.return_value = ("OK", [
            (b"garbage", b"x"),
            (b"4 (FLAGS () BODY[] {1}", b"y"),
        ])

        messages = self.conn.fetch_range(4, 4)

        self.assertEqual([m[0] for m in messages], [4])

    def test_fetch_failure(self):
        self.imap.fetch.return_value = ("NO", [b"error"])

        with self.assertRaises(FetchError):
            self.conn.fetch_range(1, 1)

    def test_expired_deadline_raises_timeout(self):
        with self.assertRaises(FetchTimeoutError):
            self.conn.fetch_range(1, 5, deadline=time.monotonic() - 1)

        self.imap.fetch.assert_not_called()

    def test_socket_timeout_is_bounded_by_deadline(self):
        self.imap.fetch.return_value = ("OK", [])

        self.conn.fetch_range(1, 1, deadline=time.monotonic() + 2)

        timeout = self.imap.sock.settimeout.call_args.args[0]
        self.assertLessEqual(timeout, 2)
        self.assertGreater(timeout, 0)

    def test_socket_timeout_during_fetch(self):
        self.imap.fetch.side_effect = socket.timeout("timed out")

        with self.assertRaises(FetchTimeoutError):
            self.conn.fetch_range(1, 1, deadline=time.monotonic() + 5)

    def test_mark_seen(self):
        self.imap.store.return_value = ("OK", [b"1 (FLAGS (\\Seen))"])

        self.conn.mark_seen(12)

        self.imap.store.assert_called_once_with("12", "+FLAGS", "(\\Seen)")

    def test_mark_seen_failure(self):
        self.imap.store.return_value = ("NO", [b"denied"])

        with self.assertRaises(FetchError):
            self.conn.mark_seen(12)


if __name__ == '__main__':
    unittest.main()
