"""
Email Data Model
Dataclasses for fetched mailbox items and outbound form notifications
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class EmailAttachment:
    """
    Attachment or inline image belonging to exactly one EmailMessage

    A non-empty content_id marks a resource referenced from the HTML body
    (typically an embedded image).
    """
    filename: str
    content_type: str
    size: int
    content: bytes = b""
    content_id: str = ""

    @property
    def is_inline(self) -> bool:
        return bool(self.content_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "content_type": self.content_type,
            "size": self.size,
            "content_id": self.content_id,
        }


@dataclass
class EmailMessage:
    """
    Decoded representation of one mailbox item

    ``id`` is "<account>:<sequence number>" and is unique across all
    configured accounts for the lifetime of a cache entry. ``read`` mirrors
    the \\Seen flag as of the last fetch or mark-as-read call.
    """
    id: str
    sender: str
    subject: str
    body: str
    account: str
    html: str = ""
    message_id: str = ""
    created_at: str = ""
    read: bool = False
    metadata: Dict[str, str] = field(default_factory=dict)
    to: List[str] = field(default_factory=list)
    cc: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)
    reply_to: List[str] = field(default_factory=list)
    in_reply_to: str = ""
    references: List[str] = field(default_factory=list)
    attachments: List[EmailAttachment] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe mapping; attachment bytes are left out"""
        return {
            "id": self.id,
            "sender": self.sender,
            "subject": self.subject,
            "body": self.body,
            "html": self.html,
            "account": self.account,
            "message_id": self.message_id,
            "created_at": self.created_at,
            "read": self.read,
            "metadata": dict(self.metadata),
            "to": list(self.to),
            "cc": list(self.cc),
            "bcc": list(self.bcc),
            "reply_to": list(self.reply_to),
            "in_reply_to": self.in_reply_to,
            "references": list(self.references),
            "attachments": [a.to_dict() for a in self.attachments],
            "headers": dict(self.headers),
        }


@dataclass
class EmailFetchOptions:
    """Paging and filtering for a fetch; limit 0 means no limit"""
    limit: int = 0
    offset: int = 0
    read: Optional[bool] = None


@dataclass
class AccountFetchStatus:
    """Outcome of one account's task within a fetch cycle"""
    account: str
    ok: bool
    count: int = 0
    error: str = ""
    from_cache: bool = False


@dataclass
class FetchResult:
    """Aggregated emails plus the per-account outcome that produced them"""
    emails: List[EmailMessage]
    statuses: Dict[str, AccountFetchStatus] = field(default_factory=dict)

    @property
    def failed_accounts(self) -> List[str]:
        return [name for name, status in self.statuses.items() if not status.ok]

    @property
    def partial(self) -> bool:
        """True when at least one account failed but results were still returned"""
        return bool(self.failed_accounts)


# ----------------------------------------------------------------------
# Outbound notifications
# ----------------------------------------------------------------------

@dataclass
class ContactFormulier:
    """Contact form submission as received from the website"""
    naam: str
    email: str
    bericht: str
    privacy_akkoord: bool = False


@dataclass
class AanmeldingFormulier:
    """Volunteer registration as received from the website"""
    naam: str
    email: str
    telefoon: str = ""
    rol: str = ""
    afstand: str = ""
    ondersteuning: str = ""
    bijzonderheden: str = ""
    terms: bool = False


@dataclass
class ContactEmailData:
    """Contact notification; goes to admin_email when to_admin is set, otherwise to the submitter"""
    contact: ContactFormulier
    to_admin: bool = False
    admin_email: str = ""

    @property
    def recipient(self) -> str:
        return self.admin_email if self.to_admin else self.contact.email


@dataclass
class AanmeldingEmailData:
    """Registration notification; goes to admin_email when to_admin is set, otherwise to the volunteer"""
    aanmelding: AanmeldingFormulier
    to_admin: bool = False
    admin_email: str = ""

    @property
    def recipient(self) -> str:
        return self.admin_email if self.to_admin else self.aanmelding.email
