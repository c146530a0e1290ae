"""Cloudflare solver for ACME DNS-01 challenges."""

import re
from collections.abc import Mapping
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from certrenew._logging import get_logger
from certrenew.exceptions import DnsProviderError
from certrenew.providers.base import ChallengeSolver, challenge_record_name

logger = get_logger(__name__)

# Cloudflare zone/record IDs are hex strings
_CF_ID_RE = re.compile(r"^[a-f0-9]{32}$")


class CloudflareCredentials(BaseModel):
    """Credential bundle for the ``cloudflare`` provider.

    Requires an API token with DNS:Edit permission for the zone.
    """

    api_token: str = Field(min_length=1, repr=False)
    zone_id: str = ""
    timeout: float = Field(default=30.0, gt=0)

    model_config = ConfigDict(extra="forbid")

    @field_validator("zone_id")
    @classmethod
    def _check_zone_id(cls, value: str) -> str:
        if value and not _CF_ID_RE.match(value):
            raise ValueError("Invalid zone_id format")
        return value


class CloudflareSolver(ChallengeSolver):
    """Challenge solver using the Cloudflare DNS API.

    Args:
        api_token: Cloudflare API token with DNS:Edit permission.
        zone_id: Optional zone ID (auto-detected from the domain otherwise).
        timeout: HTTP request timeout in seconds.
    """

    name = "cloudflare"
    BASE_URL = "https://api.cloudflare.com/client/v4"

    def __init__(self, api_token: str, zone_id: str = "", timeout: float = 30.0):
        self.api_token = api_token
        self.zone_id = zone_id
        self.timeout = timeout
        # (record name, value) -> (zone id, record id)
        self._records: dict[tuple[str, str], tuple[str, str]] = {}

    @classmethod
    def from_credentials(cls, credentials: Mapping[str, Any]) -> "CloudflareSolver":
        creds = CloudflareCredentials.model_validate(dict(credentials))
        return cls(api_token=creds.api_token, zone_id=creds.zone_id, timeout=creds.timeout)

    def _client(self) -> httpx.Client:
        """Create an httpx client with fixed base URL."""
        return httpx.Client(
            base_url=self.BASE_URL,
            headers={
                "Authorization": f"Bearer {self.api_token}",
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
        )

    def _parse_response(self, response: httpx.Response) -> dict:
        """Check a Cloudflare API response for errors.

        Raises:
            DnsProviderError: If the response reports failure.
        """
        try:
            data = response.json()
        except ValueError:
            detail = response.text or "empty response"
            raise DnsProviderError(
                f"Cloudflare API error ({response.status_code}): {detail}",
                status_code=response.status_code,
            ) from None

        if not data.get("success", False):
            errors = data.get("errors", [])
            error_msg = "; ".join(e.get("message", "Unknown error") for e in errors)
            error_msg = error_msg or "Unknown error"
            logger.error(
                "Cloudflare API error",
                extra={"status_code": response.status_code, "detail": error_msg},
            )
            raise DnsProviderError(
                f"Cloudflare API error: {error_msg}", status_code=response.status_code
            )
        return data

    def _find_zone_id(self, client: httpx.Client, domain: str) -> str:
        """Get the zone ID for a domain.

        Tries progressively shorter parent names, most specific first.

        Raises:
            DnsProviderError: If no zone matches.
        """
        if self.zone_id:
            return self.zone_id

        parts = domain.rstrip(".").split(".")
        for i in range(len(parts) - 1):
            zone_name = ".".join(parts[i:])
            data = self._parse_response(client.get("/zones", params={"name": zone_name}))
            zones = data.get("result", [])
            if zones:
                zone_id = zones[0]["id"]
                logger.debug("Zone found", extra={"domain": domain, "zone": zone_name})
                return zone_id

        raise DnsProviderError(f"No zone found for domain: {domain}")

    def present(self, domain: str, validation: str) -> None:
        record_name = challenge_record_name(domain)
        with self._client() as client:
            zone_id = self._find_zone_id(client, record_name)
            data = self._parse_response(
                client.post(
                    f"/zones/{zone_id}/dns_records",
                    json={
                        "type": "TXT",
                        "name": record_name,
                        "content": validation,
                        "ttl": 120,
                    },
                )
            )
        record_id = data["result"]["id"]
        self._records[(record_name, validation)] = (zone_id, record_id)
        logger.info(
            "TXT record created",
            extra={"domain": domain, "record_name": record_name},
        )

    def cleanup(self, domain: str, validation: str) -> None:
        record_name = challenge_record_name(domain)
        with self._client() as client:
            known = self._records.pop((record_name, validation), None)
            if known:
                targets = [known]
            else:
                zone_id = self._find_zone_id(client, record_name)
                data = self._parse_response(
                    client.get(
                        f"/zones/{zone_id}/dns_records",
                        params={"type": "TXT", "name": record_name, "content": validation},
                    )
                )
                targets = [(zone_id, record["id"]) for record in data.get("result", [])]

            for zone_id, record_id in targets:
                if not _CF_ID_RE.match(record_id):
                    raise DnsProviderError("Invalid record_id format")
                self._parse_response(client.delete(f"/zones/{zone_id}/dns_records/{record_id}"))

        logger.info(
            "TXT record deleted",
            extra={"domain": domain, "record_name": record_name, "count": len(targets)},
        )
