"""
TLS client policy shared by all monitored hosts.
"""

import ssl
from dataclasses import dataclass, field

from domain_cert_monitor.logger import get_logger
from domain_cert_monitor.trust import TrustStore

DEFAULT_CONNECT_TIMEOUT = 10.0

logger = get_logger("policy")


@dataclass(frozen=True)
class ConnectionPolicy:
    """
    TLS client configuration bound to a trust store.

    Certificate verification is disabled on purpose: the monitor has to
    complete the handshake with expired, self-signed or otherwise invalid
    certificates so it can report on them. The trust store is still loaded
    into the context as reference material.
    """

    trust_store: TrustStore
    context: ssl.SSLContext = field(compare=False, repr=False)
    timeout: float = DEFAULT_CONNECT_TIMEOUT

    @property
    def verifies_certificates(self) -> bool:
        return self.context.verify_mode != ssl.CERT_NONE or self.context.check_hostname


def create_ssl_context(trust_store: TrustStore) -> ssl.SSLContext:
    """Create a client SSL context that loads the roots but skips verification."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)

    if trust_store.use_system_roots:
        context.load_default_certs(ssl.Purpose.SERVER_AUTH)

    if trust_store.extra_roots:
        context.load_verify_locations(cadata=trust_store.pem_bundle())

    # check_hostname has to be cleared before verify_mode can drop to CERT_NONE
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def build_connection_policy(
    trust_store: TrustStore, timeout: float = DEFAULT_CONNECT_TIMEOUT
) -> ConnectionPolicy:
    """
    Build the connection policy for a trust store.

    Args:
        trust_store: Roots to bind to the TLS context
        timeout: Default handshake timeout in seconds

    Returns:
        ConnectionPolicy
    """
    policy = ConnectionPolicy(
        trust_store=trust_store, context=create_ssl_context(trust_store), timeout=timeout
    )
    logger.debug(f"Connection policy created - Timeout: {timeout}s, Verification: disabled")
    return policy
