"""
Shared fixtures for Domain Certificate Monitor tests.
"""

import socket
import ssl
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Tuple
from unittest.mock import MagicMock

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

from domain_cert_monitor.policy import ConnectionPolicy
from domain_cert_monitor.trust import TrustStore


def generate_certificate(
    cn: str = "test.example.com",
    not_before: Optional[datetime] = None,
    not_after: Optional[datetime] = None,
    issuer_cn: Optional[str] = None,
    key_type: str = "rsa",
) -> Tuple[x509.Certificate, object]:
    """Generate a self-signed certificate and its private key."""
    if key_type == "ec":
        private_key = ec.generate_private_key(ec.SECP256R1())
    else:
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    now = datetime.now(timezone.utc)
    not_before = not_before or now - timedelta(days=1)
    not_after = not_after or now + timedelta(days=90)

    subject = x509.Name(
        [
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Test Org"),
            x509.NameAttribute(NameOID.COMMON_NAME, cn),
        ]
    )
    issuer = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, issuer_cn)]) if issuer_cn else subject

    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(cn)]), critical=False)
        .sign(private_key, hashes.SHA256())
    )
    return cert, private_key


def write_pem(path: Path, *certs: x509.Certificate) -> Path:
    path.write_bytes(b"".join(cert.public_bytes(serialization.Encoding.PEM) for cert in certs))
    return path


def write_key(path: Path, key) -> Path:
    path.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    return path


def der_bytes(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.DER)


def make_mock_policy(peer_der: Optional[bytes] = None, timeout: float = 5.0):
    """
    Build a policy whose SSL context hands back a fake TLS socket.

    Returns:
        Tuple of (policy, mock context, mock TLS socket)
    """
    tls_sock = MagicMock()
    tls_sock.getpeercert.return_value = peer_der

    context = MagicMock(spec=ssl.SSLContext)
    context.wrap_socket.return_value.__enter__.return_value = tls_sock

    policy = ConnectionPolicy(trust_store=TrustStore(), context=context, timeout=timeout)
    return policy, context, tls_sock


class LocalTLSServer:
    """TLS server on 127.0.0.1 that completes handshakes and hangs up."""

    def __init__(self, cert_path: Path, key_path: Path):
        self.context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        self.context.load_cert_chain(str(cert_path), str(key_path))

        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.listen(5)
        self.sock.settimeout(0.2)
        self.port = self.sock.getsockname()[1]
        self.handshakes = 0

        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)

    def _serve(self) -> None:
        while not self._stop.is_set():
            try:
                conn, _ = self.sock.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            conn.settimeout(5)
            try:
                with self.context.wrap_socket(conn, server_side=True):
                    self.handshakes += 1
            except OSError:
                conn.close()

    def __enter__(self) -> "LocalTLSServer":
        self._thread.start()
        return self

    def __exit__(self, *exc) -> None:
        self._stop.set()
        self._thread.join(timeout=5)
        self.sock.close()


@pytest.fixture
def leaf_certificate():
    """A valid certificate for leaf.example.com expiring in 90 days."""
    cert, _ = generate_certificate("leaf.example.com", issuer_cn="Test Issuing CA")
    return cert


@pytest.fixture
def ca_file(tmp_path: Path) -> Path:
    """PEM file holding two root certificates."""
    root1, _ = generate_certificate("Test Root One")
    root2, _ = generate_certificate("Test Root Two")
    return write_pem(tmp_path / "roots.pem", root1, root2)


@pytest.fixture
def tls_server_factory(tmp_path: Path):
    """Start local TLS servers presenting a given certificate."""
    servers = []

    def factory(cert: x509.Certificate, key) -> LocalTLSServer:
        index = len(servers)
        cert_path = write_pem(tmp_path / f"server{index}.pem", cert)
        key_path = write_key(tmp_path / f"server{index}.key", key)
        server = LocalTLSServer(cert_path, key_path).__enter__()
        servers.append(server)
        return server

    yield factory

    for server in servers:
        server.__exit__(None, None, None)
