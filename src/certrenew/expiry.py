"""Renewal decision based on the current certificate's expiry."""

from datetime import UTC, datetime

from cryptography import x509

from certrenew._logging import get_logger
from certrenew.crypto import load_leaf_certificate
from certrenew.exceptions import ParseError

logger = get_logger(__name__)

DEFAULT_RENEW_BEFORE_DAYS = 30


def days_until_expiry(certificate: x509.Certificate, now: datetime | None = None) -> float:
    """Fractional days between ``now`` and the certificate's not-after.

    A naive ``now`` is taken to be UTC.
    """
    if now is None:
        now = datetime.now(UTC)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return (certificate.not_valid_after_utc - now).total_seconds() / 86400


def needs_renewal(
    chain_pem: str | bytes | None,
    threshold_days: float = DEFAULT_RENEW_BEFORE_DAYS,
    now: datetime | None = None,
) -> bool:
    """Decide whether the certificate in ``chain_pem`` must be renewed.

    An absent chain, or one whose leaf cannot be decoded or parsed, always
    needs renewal. Decode failures are logged as warnings and never raised.

    Args:
        chain_pem: Current certificate chain (leaf first), or None.
        threshold_days: Renew when fewer days than this remain.
        now: Reference time (defaults to the current UTC time; naive means UTC).

    Returns:
        True if the certificate should be renewed.
    """
    if not chain_pem:
        logger.debug("No existing certificate, renewal needed")
        return True

    try:
        certificate = load_leaf_certificate(chain_pem)
    except ParseError as e:
        logger.warning(
            "Existing certificate cannot be parsed, assuming renewal is needed",
            extra={"error": str(e)},
        )
        return True

    days_left = days_until_expiry(certificate, now)
    renew = days_left < threshold_days
    logger.debug(
        "Checked certificate expiry",
        extra={
            "days_left": round(days_left, 2),
            "threshold_days": threshold_days,
            "renew": renew,
        },
    )
    return renew
