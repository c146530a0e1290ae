"""Abstract base class for DNS-01 challenge solvers."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from certrenew.providers.propagation import wait_for_txt_record

CHALLENGE_LABEL = "_acme-challenge"


def challenge_record_name(domain: str) -> str:
    """Fully qualified TXT record name for a domain, without trailing dot.

    Wildcard identifiers are validated on their base domain.
    """
    domain = domain.rstrip(".")
    if domain.startswith("*."):
        domain = domain[2:]
    return f"{CHALLENGE_LABEL}.{domain}"


class ChallengeSolver(ABC):
    """Abstract interface for DNS-01 challenge solvers.

    Solvers publish and remove the TXT records used for ACME DNS-01
    validation. They are handed to the issuance client, which calls them
    while obtaining a certificate.
    """

    #: Registry name of the provider
    name: str = ""

    @classmethod
    @abstractmethod
    def from_credentials(cls, credentials: Mapping[str, Any]) -> "ChallengeSolver":
        """Build a solver from a configured credential bundle.

        Must validate the bundle without touching the network.

        Raises:
            ValueError: If the bundle is missing or malformed.
        """
        ...

    @abstractmethod
    def present(self, domain: str, validation: str) -> None:
        """Publish the challenge TXT record.

        Creates a TXT record at _acme-challenge.{domain} holding
        ``validation``.

        Args:
            domain: The identifier being validated (may be a wildcard).
            validation: The TXT record value.

        Raises:
            DnsProviderError: If record creation fails.
        """
        ...

    @abstractmethod
    def cleanup(self, domain: str, validation: str) -> None:
        """Remove the challenge TXT record published by :meth:`present`.

        Raises:
            DnsProviderError: If record deletion fails.
        """
        ...

    def wait_for_propagation(self, domain: str, validation: str, timeout: float = 120) -> bool:
        """Wait until the TXT record is visible via DNS queries.

        Args:
            domain: The identifier being validated.
            validation: The expected TXT value.
            timeout: Maximum time to wait in seconds.

        Returns:
            True if the record propagated, False on timeout.
        """
        return wait_for_txt_record(challenge_record_name(domain), validation, timeout=timeout)
