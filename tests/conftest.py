"""Pytest configuration.

The application code lives in the top-level `email_service/` package.
Depending on how pytest is invoked (e.g., via the `pytest` console_script) and
the active import mode, the repository root may not be on `sys.path`, which
breaks imports like `from email_service.modules...`.

This file makes test imports robust by explicitly adding the repo root to
`sys.path` during test collection, and provides shared fixtures.
"""

from __future__ import annotations

import sys
import time
from pathlib import Path

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]

# NOTE: Insert at the front so local imports win over any similarly named
# third-party packages.
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from email_service.utils.config import (  # noqa: E402
    CacheConfig,
    EmailAccountConfig,
    ServiceConfig,
)


def make_account(name: str = "info", **overrides) -> EmailAccountConfig:
    """Return an EmailAccountConfig suitable for unit tests."""
    defaults = dict(
        name=name,
        email=f"{name}@dekoninklijkeloop.nl",
        password="secret",
        imap_host="imap.example.nl",
        imap_port=993,
        smtp_host="smtp.example.nl",
        smtp_port=587,
    )
    defaults.update(overrides)
    return EmailAccountConfig(**defaults)


def make_service_config(account_names=("info",), **overrides) -> ServiceConfig:
    """Return a ServiceConfig with one account per name."""
    defaults = dict(
        accounts={name: make_account(name) for name in account_names},
        cache=CacheConfig(enabled=True, duration=300.0, max_entries=1000),
        fetch_timeout=10.0,
        admin_email="admin@dekoninklijkeloop.nl",
    )
    defaults.update(overrides)
    return ServiceConfig(**defaults)


@pytest.fixture
def service_config():
    return make_service_config(("info", "inschrijving"))


def build_raw_email(
    subject: str = "Test",
    sender: str = "Jan <jan@voorbeeld.nl>",
    body: str = "Hallo",
    content_type: str = "text/plain",
    charset: str = "utf-8",
) -> bytes:
    """Small single-part RFC 822 message."""
    return (
        f"From: {sender}\r\n"
        f"To: info@dekoninklijkeloop.nl\r\n"
        f"Subject: {subject}\r\n"
        f"Date: Mon, 01 Apr 2024 10:00:00 +0200\r\n"
        f"Message-ID: <abc@voorbeeld.nl>\r\n"
        f"MIME-Version: 1.0\r\n"
        f"Content-Type: {content_type}; charset={charset}\r\n"
        f"\r\n"
        f"{body}\r\n"
    ).encode(charset)


class FakeMailbox:
    """In-memory INBOX standing in for one IMAP account"""

    def __init__(self, count=0, error=None, seen=(), delay=0.0):
        self.raws = [build_raw_email(subject=f"bericht {i}") for i in range(1, count + 1)]
        self.error = error
        self.seen = set(seen)
        self.delay = delay
        self.connects = 0
        self.ranges = []
        self.stored = []


class FakeIMAPConnection:

    def __init__(self, mailbox, timeout=None):
        self.mailbox = mailbox
        self.timeout = timeout

    def __enter__(self):
        self.mailbox.connects += 1
        if self.mailbox.error is not None:
            raise self.mailbox.error
        return self

    def __exit__(self, exc_type, exc, tb):
        return None

    def select_inbox(self):
        return len(self.mailbox.raws)

    def fetch_range(self, start, end, deadline=None):
        self.mailbox.ranges.append((start, end))
        if self.mailbox.delay:
            time.sleep(self.mailbox.delay)
        return [
            (seq, [b"\\Seen"] if seq in self.mailbox.seen else [], self.mailbox.raws[seq - 1])
            for seq in range(start, end + 1)
        ]

    def mark_seen(self, seq):
        self.mailbox.stored.append(seq)


def connection_factory(mailboxes):
    def factory(account, timeout=None):
        return FakeIMAPConnection(mailboxes[account.name], timeout=timeout)
    return factory
