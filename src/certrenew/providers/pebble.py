"""Pebble solver for pebble-challtestsrv."""

from collections.abc import Mapping
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field

from certrenew.providers.base import ChallengeSolver, challenge_record_name


class PebbleCredentials(BaseModel):
    """Settings for the ``pebble`` provider."""

    challtestsrv_url: str = Field(min_length=1)

    model_config = ConfigDict(extra="forbid")


class PebbleSolver(ChallengeSolver):
    """Challenge solver for pebble-challtestsrv.

    This solver is used for testing against the Pebble ACME server
    and its associated challenge test server. It communicates with
    pebble-challtestsrv to set up DNS records that Pebble will query
    during challenge validation.

    Args:
        challtestsrv_url: Base URL of the pebble-challtestsrv management API.
    """

    name = "pebble"

    def __init__(self, challtestsrv_url: str):
        self.challtestsrv_url = challtestsrv_url.rstrip("/")

    @classmethod
    def from_credentials(cls, credentials: Mapping[str, Any]) -> "PebbleSolver":
        settings = PebbleCredentials.model_validate(dict(credentials))
        return cls(challtestsrv_url=settings.challtestsrv_url)

    def present(self, domain: str, validation: str) -> None:
        response = httpx.post(
            f"{self.challtestsrv_url}/set-txt",
            json={
                "host": challenge_record_name(domain) + ".",
                "value": validation,
            },
        )
        response.raise_for_status()

    def cleanup(self, domain: str, validation: str) -> None:
        response = httpx.post(
            f"{self.challtestsrv_url}/clear-txt",
            json={
                "host": challenge_record_name(domain) + ".",
            },
        )
        response.raise_for_status()

    def wait_for_propagation(self, domain: str, validation: str, timeout: float = 120) -> bool:
        """Return immediately; pebble-challtestsrv serves records directly."""
        return True
