"""Certificate renewal exceptions."""

from collections.abc import Sequence
from datetime import datetime


class RenewalError(Exception):
    """Base exception for a failed renewal run.

    Carries the phase in which the run failed and the domain set it was
    working on. The orchestrator fills both in when a component raises
    without them, so the final message always names the failing phase.
    """

    def __init__(
        self,
        detail: str,
        phase: str | None = None,
        domains: Sequence[str] | None = None,
    ):
        self.detail = detail
        self.phase = phase
        self.domains = list(domains) if domains else []
        super().__init__(detail)

    def __str__(self) -> str:
        message = self.detail
        if self.phase:
            message = f"{self.phase}: {message}"
        if self.domains:
            message = f"{message} (domains: {', '.join(self.domains)})"
        return message


class ConfigurationError(RenewalError):
    """Missing or invalid renewal configuration. Raised before any network call."""

    pass


class UnsupportedProviderError(ConfigurationError):
    """No challenge solver is registered under the requested provider name."""

    def __init__(self, provider: str, available: Sequence[str] = (), **kwargs):
        self.provider = provider
        self.available = list(available)
        detail = f"unsupported provider: {provider!r}"
        if self.available:
            detail = f"{detail} (available: {', '.join(self.available)})"
        super().__init__(detail, **kwargs)


class ProviderConstructionError(RenewalError):
    """A provider rejected its credential bundle while building the solver."""

    def __init__(self, provider: str, detail: str, **kwargs):
        self.provider = provider
        super().__init__(f"cannot construct {provider!r} provider: {detail}", **kwargs)


class ProtocolError(RenewalError):
    """Account registration or certificate issuance failed.

    Covers network errors, protocol rejections, rate limiting and challenge
    timeouts. The run is not retried; rescheduling is up to the caller.
    """

    pass


class ParseError(RenewalError):
    """Certificate PEM data cannot be decoded or parsed."""

    pass


class PersistenceError(RenewalError):
    """Saving the record failed after the CA issued the certificate.

    The certificate exists at the CA but is not recorded, so identifier and
    expiry are kept on the exception for manual recovery.
    """

    def __init__(
        self,
        detail: str,
        identifier: str,
        expires_at: datetime | None = None,
        **kwargs,
    ):
        self.identifier = identifier
        self.expires_at = expires_at
        super().__init__(detail, **kwargs)


class DnsProviderError(ValueError):
    """Error returned by a DNS provider API."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class StoreError(Exception):
    """Error raised by a persistence gateway implementation."""

    pass


class RecordNotFoundError(StoreError):
    """The requested scope holds no version yet."""

    def __init__(self, scope: str):
        self.scope = scope
        super().__init__(f"no version stored in scope {scope!r}")
