"""
Sanitization Utility Module
Provides functions to sanitize inputs for safe logging and display.
"""

import re
import unicodedata

ANSI_ESCAPE_PATTERN = re.compile(r'\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])')


def sanitize_for_logging(text: str, max_length: int = 255) -> str:
    """
    Sanitize text for safe logging to prevent Log Injection (CRLF) and terminal manipulation.

    Subjects, folder names and attachment filenames come straight out of
    untrusted mail, so anything derived from a message passes through here
    before it reaches a log line.

    Args:
        text: The input string to sanitize.
        max_length: Maximum allowed length for the log entry (truncates if longer).

    Returns:
        Sanitized string safe for logging.
    """
    if not text:
        return ""

    text = unicodedata.normalize('NFKC', str(text))

    # Escape line breaks so one header cannot forge several log entries
    text = text.replace('\n', '\\n').replace('\r', '\\r')

    text = ANSI_ESCAPE_PATTERN.sub('', text)

    # Remaining non-printable control characters (tab is harmless)
    text = "".join(ch for ch in text if ch == '\t' or ord(ch) >= 32)

    if len(text) > max_length:
        text = text[:max_length] + "..."

    return text


def redact_email(address: str) -> str:
    """
    Mask the local part of an address for logs: 'jan.jansen@x.nl' -> 'j***@x.nl'.

    Values without an '@' are sanitized but otherwise left alone.
    """
    if not address:
        return ""

    address = sanitize_for_logging(address)
    local, sep, domain = address.rpartition("@")
    if not sep or not local:
        return address

    return f"{local[0]}***@{domain}"
