"""
Trusted root certificate pool for Domain Certificate Monitor.
"""

import re
import ssl
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding

from domain_cert_monitor.errors import ConfigReadError, MalformedCAFileError
from domain_cert_monitor.logger import get_logger

logger = get_logger("trust")

PEM_CERTIFICATE_PATTERN = re.compile(
    # A block never spans a second BEGIN line
    rb"-----BEGIN CERTIFICATE-----\r?\n(?:(?!-----BEGIN ).)+?\r?\n-----END CERTIFICATE-----",
    re.DOTALL,
)


@dataclass(frozen=True)
class TrustStore:
    """
    Set of root certificates used as handshake context.

    The operating system roots are kept inside OpenSSL and only counted
    here; operator-supplied roots are held as decoded certificates.
    """

    use_system_roots: bool = False
    system_root_count: int = 0
    extra_roots: Tuple[x509.Certificate, ...] = field(default_factory=tuple)
    sources: Tuple[str, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return self.system_root_count + len(self.extra_roots)

    def pem_bundle(self) -> str:
        """Return the extra roots as one concatenated PEM string."""
        return "".join(cert.public_bytes(Encoding.PEM).decode("ascii") for cert in self.extra_roots)

    def subjects(self) -> List[str]:
        """RFC 4514 subjects of the extra roots, in load order."""
        return [cert.subject.rfc4514_string() for cert in self.extra_roots]


def load_system_roots() -> Tuple[bool, int]:
    """
    Probe the operating system's default trust store.

    Returns:
        Tuple of (available, number of roots OpenSSL reports)
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    try:
        context.load_default_certs(ssl.Purpose.SERVER_AUTH)
    except (ssl.SSLError, OSError) as e:
        logger.warning(f"System trust store unavailable, using empty root pool: {e}")
        return False, 0

    # Roots loaded lazily from a capath directory are not counted by OpenSSL
    count = context.cert_store_stats().get("x509_ca", 0)
    return True, count


def parse_pem_certificates(
    data: bytes, path: str = "<memory>", strict: bool = False
) -> List[x509.Certificate]:
    """
    Decode every PEM certificate block found in data.

    Blocks that fail to decode are skipped unless strict is set.

    Raises:
        MalformedCAFileError: strict is set and a block is invalid or
            no certificate was found at all
    """
    certificates = []
    blocks = PEM_CERTIFICATE_PATTERN.findall(data)

    for index, block in enumerate(blocks):
        try:
            certificates.append(x509.load_pem_x509_certificate(block))
        except ValueError as e:
            if strict:
                raise MalformedCAFileError(
                    path, e, f"Malformed certificate block {index} in {path}: {e}"
                ) from e
            logger.warning(
                f"Skipping malformed certificate block {index} in {path}: {e}",
                extra={"ca_path": path, "error_type": "malformed_pem"},
            )

    if not certificates:
        if strict:
            raise MalformedCAFileError(path, None, f"No PEM certificates found in {path}")
        logger.warning(f"No PEM certificates found in {path}", extra={"ca_path": path})

    return certificates


def build_trust_store(
    extra_ca_paths: Optional[Sequence[str]] = None, strict: bool = False
) -> TrustStore:
    """
    Build the root pool from the system store plus extra PEM files.

    Args:
        extra_ca_paths: PEM files to append, in order
        strict: Treat malformed PEM content as an error

    Returns:
        TrustStore

    Raises:
        ConfigReadError: An extra CA file could not be read
    """
    use_system_roots, system_root_count = load_system_roots()

    extra_roots: List[x509.Certificate] = []
    sources: List[str] = []

    for ca_path in extra_ca_paths or ():
        try:
            data = Path(ca_path).read_bytes()
        except OSError as e:
            raise ConfigReadError(str(ca_path), e) from e

        loaded = parse_pem_certificates(data, str(ca_path), strict=strict)
        extra_roots.extend(loaded)
        sources.append(str(ca_path))
        logger.debug(f"Loaded {len(loaded)} root certificate(s) from {ca_path}")

    store = TrustStore(
        use_system_roots=use_system_roots,
        system_root_count=system_root_count,
        extra_roots=tuple(extra_roots),
        sources=tuple(sources),
    )
    logger.info(
        f"Trust store built - System roots: {system_root_count}, "
        f"Additional roots: {len(extra_roots)} from {len(sources)} file(s)"
    )
    return store
