"""
Monitored host and its most recently retrieved leaf certificate.
"""

import socket
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes

from domain_cert_monitor.errors import CertificateDecodeError, ConnectFailure, NoCertificateError
from domain_cert_monitor.logger import get_logger, log_cert_fetched, log_fetch_error
from domain_cert_monitor.policy import ConnectionPolicy

HTTPS_PORT = 443

# Expiry of a certificate that was never fetched
ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class LeafCertificate:
    """Decoded end-entity certificate presented by a server."""

    subject: str = ""
    issuer: str = ""
    common_name: str = ""
    issuer_name: str = ""
    serial_number: int = 0
    not_before: datetime = ZERO_TIME
    not_after: datetime = ZERO_TIME
    san_list: Tuple[str, ...] = field(default_factory=tuple)
    signature_algorithm: str = ""
    key_algorithm: str = ""
    key_size: int = 0
    fingerprint_sha256: str = ""
    der: bytes = field(default=b"", repr=False)

    @property
    def is_empty(self) -> bool:
        return not self.der

    @classmethod
    def from_der(cls, der: bytes) -> "LeafCertificate":
        """
        Decode a DER certificate.

        Keys of a type cryptography cannot load are reported by OID with
        a key size of 0.

        Raises:
            ValueError: The data is not a valid X.509 certificate
            UnsupportedAlgorithm: The certificate cannot be decoded at all
        """
        cert = x509.load_der_x509_certificate(der)

        try:
            public_key = cert.public_key()
        except UnsupportedAlgorithm:
            key_algorithm = cert.public_key_algorithm_oid.dotted_string
            key_size = 0
        else:
            key_algorithm = type(public_key).__name__
            key_size = getattr(public_key, "key_size", 0)

        signature_oid = cert.signature_algorithm_oid

        return cls(
            subject=cert.subject.rfc4514_string(),
            issuer=cert.issuer.rfc4514_string(),
            common_name=_get_name_attribute(cert.subject, x509.NameOID.COMMON_NAME),
            issuer_name=_get_issuer_name(cert),
            serial_number=cert.serial_number,
            not_before=cert.not_valid_before_utc,
            not_after=cert.not_valid_after_utc,
            san_list=tuple(_get_san_list(cert)),
            signature_algorithm=getattr(signature_oid, "_name", signature_oid.dotted_string),
            key_algorithm=key_algorithm,
            key_size=key_size,
            fingerprint_sha256=cert.fingerprint(hashes.SHA256()).hex(),
            der=der,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject": self.subject,
            "issuer": self.issuer,
            "common_name": self.common_name,
            "issuer_name": self.issuer_name,
            "serial": str(self.serial_number),
            "not_before": self.not_before.isoformat(),
            "not_after": self.not_after.isoformat(),
            "expiration_timestamp": self.not_after.timestamp(),
            "san_list": list(self.san_list),
            "san_count": len(self.san_list),
            "signature_algorithm": self.signature_algorithm,
            "key_algorithm": self.key_algorithm,
            "key_size": self.key_size,
            "fingerprint_sha256": self.fingerprint_sha256,
        }


EMPTY_CERTIFICATE = LeafCertificate()


def _get_name_attribute(name: x509.Name, oid: x509.ObjectIdentifier) -> str:
    attrs = name.get_attributes_for_oid(oid)
    if attrs:
        value = attrs[0].value
        return value if isinstance(value, str) else value.decode("utf-8")
    return ""


def _get_issuer_name(cert: x509.Certificate) -> str:
    """Issuer common name, falling back to the organization."""
    return _get_name_attribute(cert.issuer, x509.NameOID.COMMON_NAME) or _get_name_attribute(
        cert.issuer, x509.NameOID.ORGANIZATION_NAME
    )


def _get_san_list(cert: x509.Certificate) -> List[str]:
    try:
        san_ext = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return []
    return [str(name.value) for name in san_ext.value]


class Host:
    """
    One monitored domain.

    Holds the last leaf certificate successfully fetched from
    ``<domain_name>:443``. Before the first fetch the certificate is
    EMPTY_CERTIFICATE, whose expiry is the zero time, so every expiry
    query reports the host as long expired.
    """

    def __init__(self, domain_name: str, policy: ConnectionPolicy):
        if not domain_name:
            raise ValueError("domain_name must not be empty")

        self._domain_name = domain_name
        self._policy = policy
        self.certificate: LeafCertificate = EMPTY_CERTIFICATE
        self.last_fetch: Optional[datetime] = None
        self.logger = get_logger("host")

    @property
    def domain_name(self) -> str:
        return self._domain_name

    @property
    def policy(self) -> ConnectionPolicy:
        return self._policy

    @property
    def fetched(self) -> bool:
        return not self.certificate.is_empty

    def __repr__(self) -> str:
        return f"Host(domain_name={self._domain_name!r}, fetched={self.fetched})"

    def fetch(self, timeout: Optional[float] = None) -> LeafCertificate:
        """
        Retrieve the leaf certificate the host currently presents.

        Args:
            timeout: Handshake timeout in seconds, defaults to the policy timeout

        Returns:
            The new certificate, which also replaces ``self.certificate``

        Raises:
            ConnectFailure: DNS, TCP or TLS negotiation failed
            NoCertificateError: The peer sent no certificate
            CertificateDecodeError: The peer certificate could not be decoded
        """
        if timeout is None:
            timeout = self._policy.timeout

        try:
            with socket.create_connection((self._domain_name, HTTPS_PORT), timeout=timeout) as sock:
                with self._policy.context.wrap_socket(
                    sock, server_hostname=self._domain_name
                ) as tls_sock:
                    der = tls_sock.getpeercert(binary_form=True)
        except OSError as e:
            error = ConnectFailure(self._domain_name, HTTPS_PORT, e)
            log_fetch_error(self.logger, self._domain_name, error)
            raise error from e

        if not der:
            error = NoCertificateError(self._domain_name)
            log_fetch_error(self.logger, self._domain_name, error)
            raise error

        try:
            certificate = LeafCertificate.from_der(der)
        except (ValueError, UnsupportedAlgorithm) as e:
            error = CertificateDecodeError(self._domain_name, e)
            log_fetch_error(self.logger, self._domain_name, error)
            raise error from e

        self.certificate = certificate
        self.last_fetch = datetime.now(timezone.utc)
        log_cert_fetched(
            self.logger, self._domain_name, certificate.common_name, self.seconds_until_expiry()
        )
        return certificate

    def time_until_expiry(self, now: Optional[datetime] = None) -> timedelta:
        """Signed interval from now until the certificate's not-after time."""
        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return self.certificate.not_after.astimezone(timezone.utc) - now.astimezone(timezone.utc)

    def seconds_until_expiry(self, now: Optional[datetime] = None) -> float:
        return self.time_until_expiry(now).total_seconds()

    def minutes_until_expiry(self, now: Optional[datetime] = None) -> float:
        return self.time_until_expiry(now).total_seconds() / 60

    def hours_until_expiry(self, now: Optional[datetime] = None) -> float:
        return self.time_until_expiry(now).total_seconds() / 3600

    def days_until_expiry(self, now: Optional[datetime] = None) -> float:
        return self.time_until_expiry(now).total_seconds() / 86400
