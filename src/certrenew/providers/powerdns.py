"""PowerDNS solver for ACME DNS-01 challenges."""

from collections.abc import Mapping
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field

from certrenew._logging import get_logger
from certrenew.exceptions import DnsProviderError
from certrenew.providers.base import ChallengeSolver, challenge_record_name

logger = get_logger(__name__)


class PowerDnsCredentials(BaseModel):
    """Credential bundle for the ``powerdns`` provider."""

    api_url: str = Field(min_length=1)
    api_key: str = Field(min_length=1, repr=False)
    server_id: str = "localhost"
    timeout: int = Field(default=30, gt=0)

    model_config = ConfigDict(extra="forbid")


class PowerDnsSolver(ChallengeSolver):
    """Challenge solver for a PowerDNS authoritative server.

    This solver manages TXT records for ACME DNS-01 challenges
    via the PowerDNS HTTP API.

    Args:
        api_url: Base URL of the PowerDNS API (e.g., "http://localhost:8081").
        api_key: API key for X-API-Key authentication header.
        server_id: PowerDNS server ID (default: "localhost").
        timeout: HTTP request timeout in seconds (default: 30).
    """

    name = "powerdns"

    def __init__(
        self,
        api_url: str,
        api_key: str,
        server_id: str = "localhost",
        timeout: int = 30,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.server_id = server_id
        self.timeout = timeout
        self._published: dict[str, list[str]] = {}

    @classmethod
    def from_credentials(cls, credentials: Mapping[str, Any]) -> "PowerDnsSolver":
        creds = PowerDnsCredentials.model_validate(dict(credentials))
        return cls(
            api_url=creds.api_url,
            api_key=creds.api_key,
            server_id=creds.server_id,
            timeout=creds.timeout,
        )

    @property
    def _zones_url(self) -> str:
        return f"{self.api_url}/api/v1/servers/{self.server_id}/zones"

    def _find_zone(self, domain: str) -> str:
        """Find the most specific zone containing the given domain.

        Args:
            domain: The full domain name to find zone for.

        Returns:
            The zone name (with trailing dot).

        Raises:
            DnsProviderError: If no matching zone is found.
        """
        # Normalize domain (ensure trailing dot for zone name)
        domain = domain.rstrip(".") + "."

        response = httpx.get(
            self._zones_url,
            headers={"X-API-Key": self.api_key},
            timeout=self.timeout,
        )
        if response.status_code != 200:
            self._handle_response(response, domain)

        candidates = [
            zone["name"]
            for zone in response.json()
            if domain == zone["name"] or domain.endswith("." + zone["name"])
        ]
        if not candidates:
            raise DnsProviderError(f"No zone found for domain: {domain}")

        zone = max(candidates, key=len)
        logger.debug("Zone found", extra={"domain": domain, "zone": zone})
        return zone

    def _handle_response(self, response: httpx.Response, zone: str) -> None:
        """Handle PowerDNS API response status codes.

        Args:
            response: The httpx Response object.
            zone: The zone name (for error messages).

        Raises:
            DnsProviderError: For API errors with descriptive messages.
        """
        if response.status_code == 204:
            logger.debug(
                "PowerDNS API request successful",
                extra={"zone": zone, "status_code": response.status_code},
            )
            return  # Success

        # Try to extract error detail from response body
        try:
            error_data = response.json()
            detail = error_data.get("error", response.text)
        except ValueError:
            detail = response.text or "Unknown error"

        status_messages = {
            400: f"Bad Request: {detail}",
            401: f"Unauthorized: {detail}",
            404: f"Zone not found: {detail}",
            422: f"Unprocessable Entity: {detail}",
            500: f"Server Error: {detail}",
        }

        message = status_messages.get(
            response.status_code,
            f"Unexpected error ({response.status_code}): {detail}",
        )
        logger.error(
            "PowerDNS API error",
            extra={"zone": zone, "status_code": response.status_code, "detail": detail},
        )
        raise DnsProviderError(message, status_code=response.status_code)

    def _change_record(
        self, domain: str, values: list[str], changetype: str
    ) -> None:
        """Execute a TXT rrset change via PowerDNS API.

        Args:
            domain: The identifier being validated.
            values: All TXT values the rrset should hold (REPLACE only).
            changetype: PowerDNS changetype - "REPLACE" or "DELETE".

        Raises:
            ValueError: If changetype is invalid.
            DnsProviderError: If zone not found or API error.
        """
        if changetype not in ("REPLACE", "DELETE"):
            raise ValueError(f"Invalid changetype: {changetype}. Must be 'REPLACE' or 'DELETE'.")

        record_name = challenge_record_name(domain) + "."
        zone = self._find_zone(record_name)

        rrset: dict = {
            "name": record_name,
            "type": "TXT",
            "changetype": changetype,
        }

        if changetype == "REPLACE":
            rrset["ttl"] = 60
            rrset["records"] = [{"content": f'"{value}"', "disabled": False} for value in values]

        response = httpx.patch(
            f"{self._zones_url}/{zone}",
            headers={
                "X-API-Key": self.api_key,
                "Content-Type": "application/json",
            },
            json={"rrsets": [rrset]},
            timeout=self.timeout,
        )
        self._handle_response(response, zone)

    def present(self, domain: str, validation: str) -> None:
        # A wildcard and its base domain share one record name
        values = self._published.setdefault(challenge_record_name(domain), [])
        if validation not in values:
            values.append(validation)
        self._change_record(domain, values, "REPLACE")
        logger.info(
            "TXT record created",
            extra={"domain": domain, "record_name": challenge_record_name(domain)},
        )

    def cleanup(self, domain: str, validation: str) -> None:
        values = self._published.get(challenge_record_name(domain), [])
        if validation in values:
            values.remove(validation)
        if values:
            self._change_record(domain, values, "REPLACE")
        else:
            self._published.pop(challenge_record_name(domain), None)
            self._change_record(domain, [], "DELETE")
        logger.info(
            "TXT record deleted",
            extra={"domain": domain, "record_name": challenge_record_name(domain)},
        )

    def wait_for_propagation(self, domain: str, validation: str, timeout: float = 120) -> bool:
        """Return immediately.

        Record updates are synchronous on the authoritative server: a 204
        from the API means the record is being served.
        """
        return True
