"""Key and certificate helpers for the renewal pipeline."""

import re

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from certrenew.exceptions import ParseError

# Curve accepted for ACME account keys (ES256)
ACCOUNT_KEY_CURVE = "secp256r1"

# Only the leading label is read here; decoding is left to cryptography
_PEM_BEGIN = re.compile(rb"-----BEGIN (?P<label>[A-Z0-9 ]+)-----")


def generate_ecdsa_key(curve: str = "P-256") -> ec.EllipticCurvePrivateKey:
    """Generate an ECDSA private key.

    Args:
        curve: Curve name ("P-256" or "P-384").

    Returns:
        ECDSA private key.

    Raises:
        ValueError: If curve is not supported.
    """
    curves = {
        "P-256": ec.SECP256R1(),
        "P-384": ec.SECP384R1(),
    }
    if curve not in curves:
        raise ValueError(f"Unsupported curve: {curve}. Supported: {list(curves.keys())}")

    return ec.generate_private_key(curves[curve])


def private_key_to_pem(key: ec.EllipticCurvePrivateKey) -> str:
    """Serialize a private key as an unencrypted PEM string."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


def load_account_key(pem_data: str) -> ec.EllipticCurvePrivateKey:
    """Load an ACME account key from PEM-encoded data.

    Args:
        pem_data: PEM-encoded private key string.

    Returns:
        The elliptic-curve private key.

    Raises:
        ValueError: If the PEM data is invalid, encrypted, not an EC key,
            or not on the P-256 curve.
    """
    try:
        key = serialization.load_pem_private_key(pem_data.encode("utf-8"), password=None)
    except TypeError as e:
        # TypeError is raised when encrypted key is loaded without password
        raise ValueError("Encrypted account keys are not supported") from e
    except ValueError as e:
        raise ValueError(f"Invalid PEM data: {e}") from e

    if not isinstance(key, ec.EllipticCurvePrivateKey):
        raise ValueError(f"Unsupported key type: {type(key).__name__}, expected an EC key")
    if key.curve.name != ACCOUNT_KEY_CURVE:
        raise ValueError(f"Unsupported curve: {key.curve.name}, expected {ACCOUNT_KEY_CURVE}")

    return key


def leading_pem_label(pem_data: str | bytes) -> str | None:
    """Return the label of the first PEM BEGIN line, or None if there is none."""
    if isinstance(pem_data, str):
        pem_data = pem_data.encode("utf-8", errors="replace")
    match = _PEM_BEGIN.search(pem_data)
    return match.group("label").decode("ascii") if match else None


def load_leaf_certificate(chain_pem: str | bytes) -> x509.Certificate:
    """Parse the leaf (first) certificate of a PEM chain.

    Args:
        chain_pem: PEM chain, leaf first.

    Returns:
        The parsed leaf certificate.

    Raises:
        ParseError: If the leading block is missing, is not a certificate,
            or does not parse as X.509.
    """
    if isinstance(chain_pem, str):
        chain_pem = chain_pem.encode("utf-8", errors="replace")
    label = leading_pem_label(chain_pem)
    if label is None:
        raise ParseError("failed to decode PEM block from certificate chain")
    if label != "CERTIFICATE":
        raise ParseError(f"leading PEM block is {label!r}, expected 'CERTIFICATE'")
    try:
        return x509.load_pem_x509_certificate(chain_pem)
    except ValueError as e:
        raise ParseError(f"failed to parse leaf certificate: {e}") from e


def certificate_primary_name(cert: x509.Certificate) -> str | None:
    """Get the primary name declared by a certificate.

    Uses the subject common name, falling back to the first DNS subject
    alternative name.
    """
    common_names = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if common_names:
        value = common_names[0].value
        return value.decode() if isinstance(value, bytes) else value

    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return None
    names = san.value.get_values_for_type(x509.DNSName)
    return names[0] if names else None


def leaf_only(chain_pem: str) -> str:
    """Strip intermediates from a PEM chain, keeping the leaf."""
    return load_leaf_certificate(chain_pem).public_bytes(serialization.Encoding.PEM).decode()


def create_csr(
    key: ec.EllipticCurvePrivateKey,
    domains: list[str],
) -> x509.CertificateSigningRequest:
    """Create a Certificate Signing Request (CSR).

    Args:
        key: Private key to sign the CSR.
        domains: List of domain names to include in the CSR.

    Returns:
        Certificate Signing Request.

    Raises:
        ValueError: If domains list is empty.
    """
    if not domains:
        raise ValueError("At least one domain is required")

    # Use first domain as Common Name
    subject = x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, domains[0]),
        ]
    )

    # Build SAN extension with all domains
    san = x509.SubjectAlternativeName([x509.DNSName(domain) for domain in domains])

    builder = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(subject)
        .add_extension(san, critical=False)
    )

    return builder.sign(key, hashes.SHA256())
