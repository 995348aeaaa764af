"""
TLS helpers shared by the IMAP and SMTP clients

SECURITY STORY: Certificate verification is off by default because the
mail provider's chain does not validate against the system trust store.
Traffic is still encrypted (TLS 1.2+), but the server identity is not
checked. Pass ``verify=True`` to enforce it.
"""

import logging
import ssl


logger = logging.getLogger(__name__)


def create_mail_ssl_context(verify: bool = False) -> ssl.SSLContext:
    """
    Create the SSL context used for IMAP and SMTP connections

    Args:
        verify: Validate the server certificate and hostname

    Returns:
        TLS 1.2+ client context
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.minimum_version = ssl.TLSVersion.TLSv1_2

    if verify:
        context.check_hostname = True
        context.verify_mode = ssl.CERT_REQUIRED
        context.load_default_certs()
    else:
        # check_hostname must be cleared before verify_mode can be lowered
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        logger.debug("Mail server certificate verification disabled")

    return context
