"""Pytest fixtures for certrenew test suite."""

import logging
import logging.handlers
import os
import warnings
from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.x509.oid import NameOID

from certrenew.crypto import generate_ecdsa_key, private_key_to_pem

# Suppress InsecureRequestWarning for pebble
warnings.filterwarnings("ignore", message="Unverified HTTPS request")

# Default URLs for local pebble setup
PEBBLE_DIRECTORY_URL = os.environ.get("PEBBLE_DIRECTORY_URL", "https://localhost:14000/dir")
CHALLTESTSRV_URL = os.environ.get("CHALLTESTSRV_URL", "http://localhost:8055")

CertFactory = Callable[..., tuple[str, str]]


def make_certificate(
    domains: list[str],
    not_before: datetime,
    not_after: datetime,
    common_name: str | None = None,
    with_intermediate: bool = False,
) -> tuple[str, str]:
    """Create a self-signed leaf (optionally followed by an issuer cert).

    Returns:
        Tuple of (PEM chain, PEM private key).
    """
    key = generate_ecdsa_key()
    subject_attrs = []
    if common_name is not None or domains:
        subject_attrs.append(x509.NameAttribute(NameOID.COMMON_NAME, common_name or domains[0]))

    builder = (
        x509.CertificateBuilder()
        .subject_name(x509.Name(subject_attrs))
        .issuer_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Test Issuer")]))
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
    )
    if domains:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(d) for d in domains]),
            critical=False,
        )
    leaf = builder.sign(key, hashes.SHA256())
    chain = leaf.public_bytes(serialization.Encoding.PEM).decode()

    if with_intermediate:
        issuer_key = generate_ecdsa_key()
        issuer_name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Test Issuer")])
        intermediate = (
            x509.CertificateBuilder()
            .subject_name(issuer_name)
            .issuer_name(issuer_name)
            .public_key(issuer_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(not_after + timedelta(days=365))
            .sign(issuer_key, hashes.SHA256())
        )
        chain += intermediate.public_bytes(serialization.Encoding.PEM).decode()

    return chain, private_key_to_pem(key)


@pytest.fixture
def cert_factory() -> CertFactory:
    """Build PEM chains valid from ``issued_days_ago`` to ``expires_in_days``.

    ``not_before`` and ``not_after`` pin the validity window to fixed times.

    Usage:
        def test_something(cert_factory):
            chain, key = cert_factory(["example.com"], expires_in_days=10)
    """

    def factory(
        domains: list[str] | None = None,
        expires_in_days: float = 60,
        issued_days_ago: float = 30,
        not_before: datetime | None = None,
        not_after: datetime | None = None,
        **kwargs,
    ) -> tuple[str, str]:
        now = datetime.now(UTC).replace(microsecond=0)
        return make_certificate(
            domains if domains is not None else ["example.com"],
            not_before=not_before or now - timedelta(days=issued_days_ago),
            not_after=not_after or now + timedelta(days=expires_in_days),
            **kwargs,
        )

    return factory


@pytest.fixture
def account_key_pem() -> str:
    """A fresh P-256 account key in PEM form."""
    return private_key_to_pem(generate_ecdsa_key("P-256"))


@pytest.fixture(scope="session")
def pebble_directory_url() -> str:
    """Return the Pebble ACME directory URL."""
    return PEBBLE_DIRECTORY_URL


@pytest.fixture(scope="session")
def challtestsrv_url() -> str:
    """Return the pebble-challtestsrv management API URL."""
    return CHALLTESTSRV_URL


@pytest.fixture(scope="session")
def pebble(pebble_directory_url: str, challtestsrv_url: str) -> str:
    """Skip unless Pebble and pebble-challtestsrv are reachable.

    Pebble uses a self-signed TLS certificate, so verification is disabled.
    """
    try:
        httpx.get(pebble_directory_url, verify=False, timeout=2).raise_for_status()
        httpx.get(challtestsrv_url, timeout=2)
    except httpx.HTTPError as e:
        pytest.skip(f"pebble not reachable: {e}")
    return pebble_directory_url


class LogCapture:
    """Helper class to capture and inspect log records."""

    def __init__(self, handler: logging.handlers.MemoryHandler) -> None:
        self._handler = handler

    @property
    def records(self) -> list[logging.LogRecord]:
        """Get all captured log records."""
        return self._handler.buffer

    def get_records(
        self, level: int | None = None, name: str | None = None
    ) -> list[logging.LogRecord]:
        """Get log records filtered by level and/or logger name.

        Args:
            level: Filter by log level (e.g., logging.INFO).
            name: Filter by logger name prefix (e.g., "certrenew.orchestrator").

        Returns:
            List of matching log records.
        """
        records = self.records
        if level is not None:
            records = [r for r in records if r.levelno == level]
        if name is not None:
            records = [r for r in records if r.name.startswith(name)]
        return records

    def get_messages(self, level: int | None = None, name: str | None = None) -> list[str]:
        """Get log messages filtered by level and/or logger name."""
        return [r.getMessage() for r in self.get_records(level, name)]

    def clear(self) -> None:
        """Clear all captured log records."""
        self._handler.buffer.clear()


@pytest.fixture
def log_capture() -> Generator[LogCapture]:
    """Capture logs from the certrenew library during a test.

    Usage:
        def test_something(log_capture):
            # do something that logs
            assert "Saved certificate" in log_capture.get_messages(logging.INFO)
    """
    # Create a memory handler to capture logs
    handler = logging.handlers.MemoryHandler(capacity=1000)
    handler.setLevel(logging.DEBUG)

    # Attach to the certrenew root logger
    root_logger = logging.getLogger("certrenew")
    original_level = root_logger.level
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(handler)

    try:
        yield LogCapture(handler)
    finally:
        root_logger.removeHandler(handler)
        root_logger.setLevel(original_level)
        handler.close()
