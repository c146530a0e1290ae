"""Build, describe and encode certificate records."""

from collections.abc import Sequence
from datetime import datetime

import toml
from pydantic import ValidationError

from certrenew.crypto import certificate_primary_name, load_leaf_certificate
from certrenew.exceptions import ParseError
from certrenew.models import CertificateRecord

RECORD_FORMAT = "toml"


def build_record(
    domains: Sequence[str],
    chain_pem: str,
    key_pem: str,
    identifier: str | None = None,
    attempted_at: datetime | None = None,
) -> CertificateRecord:
    """Turn freshly issued material into a certificate record.

    Issue and expiry times come from the leaf certificate. The identifier
    defaults to the leaf's primary name (common name, then first DNS SAN),
    then to the first domain.

    Args:
        domains: Configured domain set, stored in the given order.
        chain_pem: Issued PEM chain, leaf first.
        key_pem: PEM private key matching the leaf.
        identifier: Explicit identifier, stable across renewals.
        attempted_at: Start time of the renewal attempt.

    Returns:
        The new certificate record.

    Raises:
        ParseError: If the chain or its leaf cannot be decoded or parsed,
            or the resulting record is inconsistent.
    """
    leaf = load_leaf_certificate(chain_pem)

    if identifier is None:
        identifier = certificate_primary_name(leaf) or (domains[0] if domains else None)
    if not identifier:
        raise ParseError("cannot determine certificate identifier")

    try:
        return CertificateRecord(
            identifier=identifier,
            domains=list(domains),
            certificate_chain=chain_pem,
            private_key=key_pem,
            issued_at=leaf.not_valid_before_utc,
            expires_at=leaf.not_valid_after_utc,
            last_renewal_attempt_at=attempted_at,
        )
    except ValidationError as e:
        raise ParseError(f"issued certificate is not a valid record: {e}") from e


def describe_record(record: CertificateRecord) -> str:
    """Human-readable audit description for the stored version."""
    expires = record.expires_at.strftime("%Y-%m-%dT%H:%M:%SZ")
    return f"Obtained certificate for domains: {', '.join(record.domains)} (expires {expires})"


def encode_record(record: CertificateRecord) -> bytes:
    """Serialize a record as a TOML document."""
    data = record.model_dump(mode="json", exclude_none=True)
    return toml.dumps(data).encode("utf-8")


def decode_record(payload: bytes | str, format: str = RECORD_FORMAT) -> CertificateRecord:
    """Parse a stored record payload.

    Raises:
        ParseError: If the format is unsupported or the payload is invalid.
    """
    if format != RECORD_FORMAT:
        raise ParseError(f"unsupported record format: {format!r}")
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    try:
        return CertificateRecord.model_validate(toml.loads(payload))
    except (toml.TomlDecodeError, ValidationError) as e:
        raise ParseError(f"invalid certificate record: {e}") from e
