"""DNS propagation checks for challenge TXT records."""

import time
from collections.abc import Sequence

import dns.exception
from dns import resolver

from certrenew._logging import get_logger

logger = get_logger(__name__)

POLL_INTERVAL = 5  # seconds


def txt_record_visible(
    name: str,
    expected: str,
    nameservers: Sequence[str] | None = None,
    lifetime: float = 5,
) -> bool:
    """Check whether ``expected`` is one of the TXT values at ``name``.

    Args:
        name: Record name, e.g. "_acme-challenge.example.com".
        expected: The TXT value to look for.
        nameservers: Resolver addresses to query; system resolvers if None.
        lifetime: Timeout for a single query in seconds.
    """
    if nameservers:
        res = resolver.Resolver(configure=False)
        res.nameservers = list(nameservers)
    else:
        res = resolver.Resolver()

    try:
        answers = res.resolve(name, "TXT", lifetime=lifetime, search=False)
    except (resolver.NXDOMAIN, resolver.NoAnswer):
        logger.debug("TXT record not present yet", extra={"record_name": name})
        return False
    except dns.exception.DNSException as e:
        logger.debug("TXT lookup failed", extra={"record_name": name, "error": str(e)})
        return False

    expected_bytes = expected.encode()
    # A single TXT record can hold several strings
    for answer in answers:
        if expected_bytes in answer.strings:
            return True
    return False


def wait_for_txt_record(
    name: str,
    expected: str,
    timeout: float = 120,
    interval: float = POLL_INTERVAL,
    nameservers: Sequence[str] | None = None,
) -> bool:
    """Poll DNS until the TXT value appears or ``timeout`` seconds pass.

    Returns:
        True once the value is visible, False on timeout.
    """
    deadline = time.monotonic() + timeout
    while True:
        if txt_record_visible(name, expected, nameservers=nameservers):
            logger.debug("TXT record propagated", extra={"record_name": name})
            return True
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.warning(
                "TXT record did not propagate in time",
                extra={"record_name": name, "timeout": timeout},
            )
            return False
        time.sleep(min(interval, remaining))
