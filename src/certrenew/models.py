"""Pydantic models for renewal configuration, records and results."""

import json
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# =============================================================================
# Enums
# =============================================================================


class RenewalPhase(StrEnum):
    """Phases of a renewal run."""

    IDLE = "idle"
    VALIDATING_CONFIG = "validating_config"
    RESOLVING_PROVIDER = "resolving_provider"
    CHECKING_EXPIRY = "checking_expiry"
    REGISTERING_ACCOUNT = "registering_account"
    OBTAINING = "obtaining"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class RenewalOutcome(StrEnum):
    """How a successful run ended."""

    DISABLED = "disabled"
    NOT_DUE = "not_due"
    RENEWED = "renewed"


# =============================================================================
# Pydantic Models
# =============================================================================


def _utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class RenewalConfig(BaseModel):
    """Renewal configuration, loaded once per run.

    Every field is required unless ``disabled`` is set. Missing fields do not
    fail model construction; they are reported by :meth:`problems` so that a
    disabled configuration with placeholders still loads.
    """

    disabled: bool = False
    email: str = ""
    domains: list[str] = Field(default_factory=list)
    providers: dict[str, dict[str, Any]] = Field(default_factory=dict)
    active_provider: str = ""
    ca_directory_url: str = ""
    account_private_key: str = Field(default="", repr=False)

    model_config = ConfigDict(frozen=True)

    @property
    def primary_domain(self) -> str | None:
        """The first configured domain, used as the certificate identifier."""
        return self.domains[0] if self.domains else None

    def missing_fields(self) -> list[str]:
        """Names of required fields that are empty."""
        required = (
            "email",
            "domains",
            "providers",
            "active_provider",
            "ca_directory_url",
            "account_private_key",
        )
        return [name for name in required if not getattr(self, name)]

    def problems(self) -> list[str]:
        """Describe every validation issue, or return an empty list.

        Checks required fields, empty domain entries, duplicates, and that
        each ``*.base`` wildcard has ``base`` listed as well. Whether the
        active provider exists in ``providers`` is checked during provider
        resolution.
        """
        problems = [f"missing required field: {name}" for name in self.missing_fields()]

        seen: set[str] = set()
        for domain in self.domains:
            if not domain.strip():
                problems.append("empty domain entry")
                continue
            if domain in seen:
                problems.append(f"duplicate domain: {domain}")
            seen.add(domain)

        for domain in self.domains:
            if domain.startswith("*."):
                base = domain[2:]
                if base not in seen:
                    problems.append(f"wildcard {domain} requires base domain {base} in domains")

        return problems


class CertificateRecord(BaseModel):
    """A stored certificate, produced once per successful issuance."""

    identifier: str = Field(min_length=1)
    domains: list[str]
    certificate_chain: str = ""
    private_key: str = Field(default="", repr=False)
    issued_at: datetime
    expires_at: datetime
    last_renewal_attempt_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(frozen=True)

    @field_validator(
        "issued_at",
        "expires_at",
        "last_renewal_attempt_at",
        "created_at",
        "updated_at",
    )
    @classmethod
    def _normalize_utc(cls, value: datetime | None) -> datetime | None:
        return _utc(value)

    @model_validator(mode="after")
    def _check_invariants(self) -> "CertificateRecord":
        if self.expires_at <= self.issued_at:
            raise ValueError("expires_at must be later than issued_at")
        if bool(self.certificate_chain) != bool(self.private_key):
            raise ValueError("certificate_chain and private_key must be set together")
        return self

    @property
    def domains_json(self) -> str:
        """Domain list serialized as a JSON array."""
        return json.dumps(self.domains)

    def days_remaining(self, now: datetime | None = None) -> float:
        """Days until expiry, relative to ``now`` (defaults to current UTC time)."""
        now = _utc(now) or datetime.now(UTC)
        return (self.expires_at - now).total_seconds() / 86400


class IssuedCertificate(BaseModel):
    """Result of a successful obtain call."""

    domain: str
    domains: list[str]
    certificate_chain: str
    private_key: str = Field(repr=False)
    certificate_url: str | None = None


class StoredPayload(BaseModel):
    """One version written to a store scope."""

    scope: str
    version: int
    payload: bytes = Field(repr=False)
    format: str
    description: str = ""
    created_at: datetime

    model_config = ConfigDict(frozen=True)


class RenewalResult(BaseModel):
    """Result of a renewal run that did not fail."""

    outcome: RenewalOutcome
    phase: RenewalPhase = RenewalPhase.DONE
    record: CertificateRecord | None = None
    days_remaining: float | None = None

    @property
    def renewed(self) -> bool:
        return self.outcome == RenewalOutcome.RENEWED
