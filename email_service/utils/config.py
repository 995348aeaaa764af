"""
Configuration Management Module
Handles loading and validation of environment variables and settings
"""

import logging
import os
from typing import Dict, List, Optional
from dataclasses import dataclass, field
from dotenv import load_dotenv

from ..modules.exceptions import EmailServiceError


logger = logging.getLogger(__name__)

DEFAULT_IMAP_HOST = "imap.hostnet.nl"
DEFAULT_IMAP_PORT = 993
DEFAULT_SMTP_HOST = "smtp.hostnet.nl"
DEFAULT_SMTP_PORT = 587  # STARTTLS

DEFAULT_DEV_ALLOWED_DOMAINS = ["dekoninklijkeloop.nl", "localhost", "127.0.0.1"]

# The account whose address is used as From header for all outbound mail
SENDER_ACCOUNT = "info"


class ConfigurationError(EmailServiceError):
    """Raised when the service configuration is missing or inconsistent"""


@dataclass
class EmailAccountConfig:
    """Connection parameters for a single mailbox"""
    name: str
    email: str
    password: str
    imap_host: str = DEFAULT_IMAP_HOST
    imap_port: int = DEFAULT_IMAP_PORT
    smtp_host: str = DEFAULT_SMTP_HOST
    smtp_port: int = DEFAULT_SMTP_PORT


@dataclass
class CacheConfig:
    """Per-account email cache policy"""
    enabled: bool = True
    duration: float = 300.0  # seconds
    max_entries: int = 1000


@dataclass
class SystemConfig:
    """Logging and miscellaneous settings"""
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_format: str = "text"


@dataclass
class ServiceConfig:
    """Everything the email service needs, read-only after construction"""
    accounts: Dict[str, EmailAccountConfig]
    cache: CacheConfig = field(default_factory=CacheConfig)
    fetch_timeout: float = 120.0  # seconds
    dev_mode: bool = False
    dev_allowed_domains: List[str] = field(
        default_factory=lambda: list(DEFAULT_DEV_ALLOWED_DOMAINS)
    )
    admin_email: str = ""
    template_dir: Optional[str] = None
    system: SystemConfig = field(default_factory=SystemConfig)

    @property
    def sender_account(self) -> Optional[EmailAccountConfig]:
        return self.accounts.get(SENDER_ACCOUNT)


class Config:
    """Main configuration class"""

    def __init__(self, env_file: str = ".env"):
        """
        Initialize configuration from environment file

        Args:
            env_file: Path to environment file (default: .env). Variables
                already present in the process environment take precedence.
        """
        load_dotenv(env_file)

        self.service = self._load_service_config()

    @property
    def accounts(self) -> Dict[str, EmailAccountConfig]:
        return self.service.accounts

    def _load_service_config(self) -> ServiceConfig:
        """Build the ServiceConfig from the environment"""
        dev_mode = self._get_bool("DEV_MODE", False)
        if dev_mode:
            logger.info(
                "Running in DEVELOPMENT mode - emails to external domains will be simulated"
            )

        return ServiceConfig(
            accounts=self._load_accounts(),
            cache=CacheConfig(
                enabled=self._get_bool("EMAIL_CACHE_ENABLED", True),
                duration=float(self._get_int("EMAIL_CACHE_DURATION", 300)),
                max_entries=self._get_int("EMAIL_CACHE_MAX_ENTRIES", 1000),
            ),
            fetch_timeout=float(self._get_int("EMAIL_FETCH_TIMEOUT", 120)),
            dev_mode=dev_mode,
            dev_allowed_domains=self._parse_list(
                os.getenv("DEV_ALLOWED_DOMAINS", ""), DEFAULT_DEV_ALLOWED_DOMAINS
            ),
            admin_email=os.getenv("ADMIN_EMAIL", ""),
            template_dir=os.getenv("TEMPLATE_DIR") or None,
            system=SystemConfig(
                log_level=os.getenv("LOG_LEVEL", "INFO"),
                log_file=os.getenv("LOG_FILE") or None,
                log_format=os.getenv("LOG_FORMAT", "text").lower(),
            ),
        )

    def _load_accounts(self) -> Dict[str, EmailAccountConfig]:
        """Load the info / inschrijving / noreply mailboxes"""
        smtp_host = os.getenv("SMTP_HOST") or DEFAULT_SMTP_HOST
        smtp_port = self._get_int("SMTP_PORT", DEFAULT_SMTP_PORT)
        imap_host = os.getenv("IMAP_HOST") or DEFAULT_IMAP_HOST
        imap_port = self._get_int("IMAP_PORT", DEFAULT_IMAP_PORT)

        logger.info(f"Using SMTP configuration - Host: {smtp_host}, Port: {smtp_port}")
        if smtp_port == 465:
            logger.info("Using implicit SSL/TLS for SMTP")
        elif smtp_port == 587:
            logger.info("Using STARTTLS for SMTP")
        else:
            logger.warning(f"Unusual SMTP port {smtp_port}, please verify configuration")

        candidates = [
            (SENDER_ACCOUNT, os.getenv("SMTP_USER", ""), os.getenv("SMTP_PASSWORD", "")),
            (
                "inschrijving",
                os.getenv("INSCHRIJVING_EMAIL", "inschrijving@dekoninklijkeloop.nl"),
                os.getenv("INSCHRIJVING_EMAIL_PASSWORD", ""),
            ),
            (
                "noreply",
                os.getenv("NOREPLY_EMAIL", "noreply@dekoninklijkeloop.nl"),
                os.getenv("NOREPLY_EMAIL_PASSWORD", ""),
            ),
        ]

        accounts = {}
        for name, address, password in candidates:
            if name != SENDER_ACCOUNT and not password:
                logger.warning(f"No password configured for account '{name}'; skipping")
                continue
            accounts[name] = EmailAccountConfig(
                name=name,
                email=address,
                password=password,
                imap_host=imap_host,
                imap_port=imap_port,
                smtp_host=smtp_host,
                smtp_port=smtp_port,
            )
        return accounts

    @staticmethod
    def _parse_list(value: str, default: List[str]) -> List[str]:
        """Normalize a comma separated string into a clean list."""
        items = [
            item.strip()
            for item in value.replace("\n", ",").split(",")
            if item.strip()
        ]
        return items or list(default)

    @staticmethod
    def _get_bool(key: str, default: bool = False) -> bool:
        """Convert environment variable to boolean"""
        value = os.getenv(key, str(default)).lower()
        return value in ('true', '1', 'yes', 'on')

    @staticmethod
    def _get_int(key: str, default: int) -> int:
        """Read an integer environment variable, falling back on bad input"""
        value = os.getenv(key)
        if not value:
            return default
        try:
            return int(value)
        except ValueError:
            logger.warning(f"Invalid integer for {key}: {value!r}; using {default}")
            return default

    def validate(self) -> bool:
        """
        Validate configuration

        Returns:
            True if configuration is valid

        Raises:
            ConfigurationError: If configuration is invalid
        """
        service = self.service

        if not service.accounts:
            raise ConfigurationError("No email accounts configured.")

        sender = service.sender_account
        if sender is None or not sender.email or not sender.password:
            raise ConfigurationError(
                f"Missing credentials for the '{SENDER_ACCOUNT}' account (SMTP_USER/SMTP_PASSWORD)"
            )

        if service.cache.duration <= 0:
            raise ConfigurationError("EMAIL_CACHE_DURATION must be positive")

        if service.cache.max_entries <= 0:
            raise ConfigurationError("EMAIL_CACHE_MAX_ENTRIES must be positive")

        if service.fetch_timeout <= 0:
            raise ConfigurationError("EMAIL_FETCH_TIMEOUT must be positive")

        return True
