"""
Tests for trust store building.
"""

import ssl
from pathlib import Path
from unittest.mock import patch

import pytest
from conftest import generate_certificate, write_pem

from domain_cert_monitor.errors import ConfigReadError, MalformedCAFileError
from domain_cert_monitor.trust import (
    TrustStore,
    build_trust_store,
    load_system_roots,
    parse_pem_certificates,
)

BROKEN_BLOCK = b"-----BEGIN CERTIFICATE-----\nbm90IGEgY2VydGlmaWNhdGU=\n-----END CERTIFICATE-----\n"


class TestSystemRoots:
    """Test probing of the operating system store."""

    def test_system_store_available(self):
        with patch("domain_cert_monitor.trust.ssl.SSLContext") as mock_context:
            mock_context.return_value.cert_store_stats.return_value = {"x509_ca": 140}
            assert load_system_roots() == (True, 140)

    def test_system_store_unavailable_falls_back_to_empty(self):
        with patch("domain_cert_monitor.trust.ssl.SSLContext") as mock_context:
            mock_context.return_value.load_default_certs.side_effect = ssl.SSLError("no store")
            assert load_system_roots() == (False, 0)

    def test_build_never_fails_without_system_store(self):
        with patch("domain_cert_monitor.trust.load_system_roots", return_value=(False, 0)):
            store = build_trust_store()

        assert isinstance(store, TrustStore)
        assert store.use_system_roots is False
        assert len(store) == 0


class TestBuildTrustStore:
    """Test appending operator supplied roots."""

    def test_no_extra_paths(self):
        store = build_trust_store(None)
        assert store.extra_roots == ()
        assert store.sources == ()

    def test_empty_extra_path_list(self):
        store = build_trust_store([])
        assert store.extra_roots == ()

    def test_extra_roots_loaded_in_path_order(self, tmp_path: Path):
        root_a, _ = generate_certificate("Root A")
        root_b, _ = generate_certificate("Root B")
        root_c, _ = generate_certificate("Root C")
        first = write_pem(tmp_path / "first.pem", root_b, root_a)
        second = write_pem(tmp_path / "second.pem", root_c)

        store = build_trust_store([str(first), str(second)])

        assert store.subjects() == [
            root_b.subject.rfc4514_string(),
            root_a.subject.rfc4514_string(),
            root_c.subject.rfc4514_string(),
        ]
        assert store.sources == (str(first), str(second))
        assert len(store) == store.system_root_count + 3

    def test_missing_file_raises_config_read_error(self, tmp_path: Path, ca_file: Path):
        missing = tmp_path / "missing.pem"

        with pytest.raises(ConfigReadError) as exc_info:
            build_trust_store([str(ca_file), str(missing)])

        assert exc_info.value.path == str(missing)
        assert isinstance(exc_info.value.cause, FileNotFoundError)
        assert str(missing) in str(exc_info.value)

    def test_directory_path_raises_config_read_error(self, tmp_path: Path):
        with pytest.raises(ConfigReadError):
            build_trust_store([str(tmp_path)])

    def test_malformed_block_skipped(self, tmp_path: Path):
        root, _ = generate_certificate("Good Root")
        path = write_pem(tmp_path / "mixed.pem", root)
        path.write_bytes(BROKEN_BLOCK + path.read_bytes())

        store = build_trust_store([str(path)])

        assert store.subjects() == [root.subject.rfc4514_string()]

    def test_truncated_block_does_not_hide_next_certificate(self, tmp_path: Path):
        root, _ = generate_certificate("After Truncation Root")
        path = write_pem(tmp_path / "truncated.pem", root)
        path.write_bytes(
            b"-----BEGIN CERTIFICATE-----\nnot base64 and no footer\n" + path.read_bytes()
        )

        store = build_trust_store([str(path)])

        assert store.subjects() == [root.subject.rfc4514_string()]

    def test_file_without_certificates_is_not_an_error(self, tmp_path: Path):
        path = tmp_path / "notes.txt"
        path.write_text("this is not PEM\n")

        store = build_trust_store([str(path)])

        assert store.extra_roots == ()
        assert store.sources == (str(path),)

    def test_strict_mode_rejects_malformed_block(self, tmp_path: Path):
        path = tmp_path / "broken.pem"
        path.write_bytes(BROKEN_BLOCK)

        with pytest.raises(MalformedCAFileError) as exc_info:
            build_trust_store([str(path)], strict=True)

        assert exc_info.value.path == str(path)

    def test_strict_mode_rejects_empty_file(self, tmp_path: Path):
        path = tmp_path / "empty.pem"
        path.write_bytes(b"")

        with pytest.raises(ConfigReadError):
            build_trust_store([str(path)], strict=True)

    def test_pem_bundle_round_trips(self, ca_file: Path):
        store = build_trust_store([str(ca_file)])

        bundle = store.pem_bundle()

        assert bundle.count("-----BEGIN CERTIFICATE-----") == 2
        assert len(parse_pem_certificates(bundle.encode("ascii"))) == 2


def test_parse_handles_crlf_line_endings():
    root, _ = generate_certificate("CRLF Root")
    from cryptography.hazmat.primitives.serialization import Encoding

    data = root.public_bytes(Encoding.PEM).replace(b"\n", b"\r\n")

    assert len(parse_pem_certificates(data)) == 1
