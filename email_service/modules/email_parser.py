"""
Email Parser Module
Decomposes raw fetched messages into EmailMessage objects

Untrusted bytes come in here. Every failure below the message level
(a bad charset, a broken part, an unparseable document) is logged and
degraded to best-effort content; parse_message itself never raises, so one
malformed mail cannot abort an account's fetch.
"""

import email
import logging
from datetime import datetime, timezone
from email.header import decode_header, make_header
from email.message import Message
from email.utils import getaddresses, parsedate_to_datetime
from typing import Iterable, List, Optional, Tuple, Union

from .charset_decoder import decode_text, recover_text
from .email_data import EmailAttachment, EmailMessage
from .form_fields import extract_form_fields, format_form_fields
from .html_normalizer import normalize_text, process_html
from ..utils.sanitization import sanitize_for_logging


logger = logging.getLogger(__name__)

SEEN_FLAG = "\\Seen"
UNNAMED_ATTACHMENT = "unnamed-attachment"

MAX_SUBJECT_LENGTH = 1024
MAX_MIME_PARTS = 100

HEADER_ALLOWLIST = (
    "From", "To", "Cc", "Bcc", "Subject", "Date",
    "Message-ID", "In-Reply-To", "References",
    "Content-Type", "Content-Transfer-Encoding", "MIME-Version",
    "Received", "Return-Path", "Delivered-To", "Reply-To", "Sender",
    "Authentication-Results", "DKIM-Signature",
)

# header name -> metadata key
METADATA_HEADERS = (
    ("X-Mailer", "x_mailer"),
    ("X-Priority", "priority"),
    ("List-Id", "list_id"),
)


def _header_param(header: str, key: str) -> Optional[str]:
    """
    Pull one parameter out of a raw header value

    Handles quoted values and unquoted values terminated by ';'.
    """
    if not header:
        return None
    start = header.lower().find(key)
    if start == -1:
        return None

    value = header[start + len(key):]
    if value.startswith('"'):
        end = value.find('"', 1)
        if end != -1:
            return value[1:end]
    end = value.find(";")
    if end != -1:
        value = value[:end]
    return value.strip().strip('"')


def extract_filename(disposition: str, content_type: str) -> str:
    """
    Attachment filename from Content-Disposition, then Content-Type

    Returns "unnamed-attachment" when neither header names the file.
    """
    filename = _header_param(disposition, "filename=")
    if filename:
        return filename

    filename = _header_param(content_type, "name=")
    if filename:
        return filename

    return UNNAMED_ATTACHMENT


def _normalize_flags(flags: Iterable[Union[bytes, str]]) -> List[str]:
    normalized = []
    for flag in flags or ():
        if isinstance(flag, bytes):
            flag = flag.decode("ascii", errors="replace")
        normalized.append(flag)
    return normalized


class EmailParser:
    """
    Parses raw message bytes for one account into EmailMessage objects

    Args:
        account_name: Configured account name; becomes the id prefix
        folder: Mailbox the messages come from
    """

    def __init__(self, account_name: str, folder: str = "INBOX"):
        self.account_name = account_name
        self.folder = folder
        self.logger = logging.getLogger(f"EmailParser.{account_name}")

    def parse_message(
        self,
        seq: Union[int, str],
        raw_email: bytes,
        flags: Iterable[Union[bytes, str]] = (),
    ) -> EmailMessage:
        """
        Parse one fetched message

        Args:
            seq: IMAP sequence number of the message
            raw_email: Full RFC 822 message bytes (BODY[])
            flags: IMAP flags returned with the message

        Returns:
            EmailMessage, possibly with recovered text only
        """
        email_id = f"{self.account_name}:{seq}"
        flag_list = _normalize_flags(flags)

        try:
            msg = email.message_from_bytes(raw_email)
        except Exception as e:
            self.logger.warning(f"Could not parse message {email_id}: {e}")
            return self._recover_message(email_id, raw_email, flag_list)

        if not msg.keys():
            self.logger.warning(
                f"Message {email_id} has no recognizable headers; recovering raw text"
            )
            return self._recover_message(email_id, raw_email, flag_list)

        try:
            return self._build_message(email_id, msg, raw_email, flag_list)
        except Exception as e:
            self.logger.error(f"Error decomposing message {email_id}: {e}")
            return self._recover_message(email_id, raw_email, flag_list)

    def _build_message(
        self,
        email_id: str,
        msg: Message,
        raw_email: bytes,
        flags: List[str],
    ) -> EmailMessage:
        subject = self._extract_subject(msg, email_id)
        self.logger.debug(f"Processing: {sanitize_for_logging(subject)}")

        text_body, html_body, attachments = self._extract_content(msg, email_id)

        if text_body.strip():
            body = normalize_text(text_body)
        else:
            body = process_html(html_body)

        fields = extract_form_fields(body)
        if fields:
            body = format_form_fields(fields)

        from_addresses = self._extract_addresses(msg, "From")
        sender = from_addresses[0] if from_addresses else self._decode_header_value(msg.get("From", ""))

        if attachments:
            self.logger.debug(f"Found {len(attachments)} attachments in {email_id}")

        return EmailMessage(
            id=email_id,
            sender=sender,
            subject=subject,
            body=body,
            html=html_body,
            account=self.account_name,
            message_id=str(msg.get("Message-ID", "")).strip(),
            created_at=self._extract_date(msg),
            read=SEEN_FLAG in flags,
            metadata=self._extract_metadata(msg, raw_email, flags, attachments),
            to=self._extract_addresses(msg, "To"),
            cc=self._extract_addresses(msg, "Cc"),
            bcc=self._extract_addresses(msg, "Bcc"),
            reply_to=self._extract_addresses(msg, "Reply-To"),
            in_reply_to=self._decode_header_value(msg.get("In-Reply-To", "")).strip(),
            references=str(msg.get("References", "")).split(),
            attachments=attachments,
            headers=self._extract_headers(msg),
        )

    def _recover_message(
        self,
        email_id: str,
        raw_email: bytes,
        flags: List[str],
    ) -> EmailMessage:
        """Best-effort message for content the MIME parser could not handle"""
        return EmailMessage(
            id=email_id,
            sender="",
            subject="",
            body=recover_text(raw_email or b""),
            account=self.account_name,
            created_at=datetime.now(timezone.utc).isoformat(),
            read=SEEN_FLAG in flags,
            metadata={
                "folder": self.folder,
                "size": str(len(raw_email or b"")),
                "flags": " ".join(flags),
                "recovered": "true",
            },
        )

    def _extract_headers(self, msg: Message) -> dict:
        headers = {}
        for name in HEADER_ALLOWLIST:
            value = msg.get(name)
            if value is None:
                continue
            decoded = self._decode_header_value(value).strip()
            if decoded:
                headers[name] = decoded
        return headers

    def _extract_subject(self, msg: Message, email_id: str) -> str:
        subject = self._decode_header_value(msg.get("Subject", ""))

        if len(subject) > MAX_SUBJECT_LENGTH:
            subject = subject[:MAX_SUBJECT_LENGTH]
            self.logger.warning(
                f"Subject truncated to {MAX_SUBJECT_LENGTH} chars for email {email_id}"
            )

        return subject

    @staticmethod
    def _extract_date(msg: Message) -> str:
        """RFC 3339 timestamp of the Date header, current time if unusable"""
        date_str = msg.get("Date", "")
        try:
            date = parsedate_to_datetime(str(date_str))
        except (TypeError, ValueError, IndexError):
            date = None

        if date is None:
            date = datetime.now(timezone.utc)
        elif date.tzinfo is None:
            date = date.replace(tzinfo=timezone.utc)
        return date.isoformat()

    def _extract_metadata(
        self,
        msg: Message,
        raw_email: bytes,
        flags: List[str],
        attachments: List[EmailAttachment],
    ) -> dict:
        metadata = {
            "folder": self.folder,
            "size": str(len(raw_email)),
            "flags": " ".join(flags),
            "content_type": msg.get_content_type(),
            "attachment_count": str(len(attachments)),
        }
        for header, key in METADATA_HEADERS:
            value = self._decode_header_value(msg.get(header, "")).strip()
            if value:
                metadata[key] = value
        return metadata

    def _extract_content(
        self,
        msg: Message,
        email_id: str,
    ) -> Tuple[str, str, List[EmailAttachment]]:
        """
        Walk the MIME tree and sort parts into text, HTML and attachments

        Returns:
            Tuple of (text_body, html_body, attachments)
        """
        text_parts: List[str] = []
        html_parts: List[str] = []
        attachments: List[EmailAttachment] = []

        part_count = 0
        for part in msg.walk():
            part_count += 1
            if part_count > MAX_MIME_PARTS:
                self.logger.warning(
                    f"Email {email_id} exceeds max MIME parts ({MAX_MIME_PARTS}). "
                    f"Truncating remaining parts."
                )
                break

            if part.is_multipart():
                continue

            content_type = part.get_content_type()
            disposition = str(part.get("Content-Disposition", ""))
            content_id = str(part.get("Content-ID", "")).strip()

            if "attachment" in disposition.lower():
                attachments.append(self._extract_attachment(part, email_id))
            elif content_id and content_type.startswith("image/"):
                attachments.append(self._extract_attachment(part, email_id))
            elif content_type == "text/html":
                html = self._decode_part_payload(part, email_id)
                if html:
                    html_parts.append(html)
            elif content_type == "text/plain":
                text = self._decode_part_payload(part, email_id)
                if text:
                    text_parts.append(text)
            else:
                self.logger.debug(f"Ignoring {content_type} part in {email_id}")

        return "\n".join(text_parts), "\n".join(html_parts), attachments

    def _extract_attachment(self, part: Message, email_id: str) -> EmailAttachment:
        disposition = str(part.get("Content-Disposition", ""))
        raw_content_type = str(part.get("Content-Type", ""))

        filename = extract_filename(disposition, raw_content_type)
        if filename == UNNAMED_ATTACHMENT:
            # RFC 2231 (filename*=) is only understood by the stdlib parser
            filename = part.get_filename() or UNNAMED_ATTACHMENT
        filename = self._decode_header_value(filename) or UNNAMED_ATTACHMENT

        try:
            payload = part.get_payload(decode=True) or b""
        except Exception as e:
            self.logger.warning(
                f"Could not decode attachment {sanitize_for_logging(filename)} in {email_id}: {e}"
            )
            payload = b""

        return EmailAttachment(
            filename=filename,
            content_type=part.get_content_type(),
            size=len(payload),
            content=payload,
            content_id=str(part.get("Content-ID", "")).strip().strip("<>"),
        )

    def _decode_part_payload(self, part: Message, email_id: str) -> str:
        try:
            payload = part.get_payload(decode=True)
        except Exception as e:
            self.logger.warning(f"Could not decode {part.get_content_type()} part in {email_id}: {e}")
            return ""
        if not payload:
            return ""
        return decode_text(payload, part.get_content_charset())

    @staticmethod
    def _decode_header_value(value) -> str:
        """Decode an RFC 2047 header value, returning it unchanged on failure"""
        if not value:
            return ""
        try:
            return str(make_header(decode_header(str(value))))
        except Exception:
            return str(value)

    @classmethod
    def _extract_addresses(cls, msg: Message, header: str) -> List[str]:
        """Bare addresses from every occurrence of an address header"""
        values = [str(v) for v in msg.get_all(header, [])]
        if not values:
            return []
        addresses = []
        for _, address in getaddresses(values):
            if address:
                addresses.append(address)
        return addresses
