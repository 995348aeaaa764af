"""
Email Service Exceptions

Configuration-class errors (bad identifiers, unknown accounts, missing
templates) are raised immediately and never retried. Network failures are
wrapped in FetchError / DeliveryError once their retry policy is exhausted.
"""

from typing import Dict


class EmailServiceError(Exception):
    """Base class for all errors raised by the email service"""


class InvalidEmailIDError(EmailServiceError, ValueError):
    """Email identifier is not of the form '<account>:<sequence>'"""


class UnknownAccountError(EmailServiceError, KeyError):
    """Email identifier refers to an account that is not configured"""

    def __init__(self, account: str):
        super().__init__(f"unknown account: {account}")
        self.account = account

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


class TemplateNotFoundError(EmailServiceError, LookupError):
    """Requested email template is not registered"""

    def __init__(self, template_name: str):
        super().__init__(f"template not found: {template_name}")
        self.template_name = template_name


class FetchError(EmailServiceError):
    """Fetching from a single account failed"""

    def __init__(self, account: str, message: str):
        super().__init__(f"account {account}: {message}")
        self.account = account


class FetchTimeoutError(FetchError, TimeoutError):
    """The shared fetch deadline expired before the account finished"""

    def __init__(self, account: str):
        super().__init__(account, "fetch deadline exceeded")


class AllAccountsFailedError(EmailServiceError):
    """Every configured account failed during a fetch cycle"""

    def __init__(self, errors: Dict[str, Exception]):
        self.errors = dict(errors)
        details = "; ".join(f"{name}: {err}" for name, err in self.errors.items())
        super().__init__(f"all accounts failed: {details}")


class DeliveryError(EmailServiceError):
    """SMTP delivery failed after the retry budget was exhausted"""

    def __init__(self, message: str, attempts: int = 0, last_error: Exception = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class TemplateRenderError(EmailServiceError):
    """A registered template failed to render with the given data"""
