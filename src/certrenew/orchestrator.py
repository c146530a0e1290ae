"""Renewal orchestration: one run renews (at most) one certificate.

A run walks the phases of :class:`~certrenew.models.RenewalPhase` in order::

    validating_config -> resolving_provider -> checking_expiry
        -> registering_account -> obtaining -> persisting -> done

and ends in ``failed`` when any phase raises. The account key and challenge
provider are resolved on every run, including runs that turn out not due.
Nothing is kept between runs except what the store persisted.
"""

import logging
from datetime import UTC, datetime

from certrenew._logging import RenewalLogAdapter, Timer, get_logger
from certrenew.crypto import load_account_key
from certrenew.exceptions import (
    ConfigurationError,
    ParseError,
    PersistenceError,
    ProtocolError,
    RecordNotFoundError,
    RenewalError,
)
from certrenew.expiry import DEFAULT_RENEW_BEFORE_DAYS, needs_renewal
from certrenew.issuer import (
    DEFAULT_PROPAGATION_TIMEOUT,
    AcmeIssuer,
    IssuanceClient,
    IssuerFactory,
)
from certrenew.models import (
    CertificateRecord,
    RenewalConfig,
    RenewalOutcome,
    RenewalPhase,
    RenewalResult,
)
from certrenew.providers import ProviderRegistry, default_registry
from certrenew.records import RECORD_FORMAT, build_record, describe_record, encode_record
from certrenew.storage import CERTIFICATE_SCOPE, PersistenceGateway, load_latest_certificate

default_logger = get_logger(__name__)


class RenewalOrchestrator:
    """Drives a single certificate renewal.

    Args:
        config: Renewal configuration for this run.
        store: Gateway used to read the current certificate and save the new one.
        issuer_factory: Builds the issuance client; called with
            ``directory_url``, ``account_key``, ``solver`` and
            ``propagation_timeout`` keywords.
        registry: Challenge provider registry.
        logger: Logger for this run; records carry identifier, domains and
            phase as ``extra`` fields.
        renew_before_days: Renew when fewer days than this remain.
        propagation_timeout: Seconds the solver may wait for each TXT record.
        certificate_scope: Scope holding certificate records.

    Raises:
        ConfigurationError: If ``config`` or ``store`` is missing.
    """

    def __init__(
        self,
        config: RenewalConfig,
        store: PersistenceGateway,
        *,
        issuer_factory: IssuerFactory = AcmeIssuer,
        registry: ProviderRegistry | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        renew_before_days: float = DEFAULT_RENEW_BEFORE_DAYS,
        propagation_timeout: float = DEFAULT_PROPAGATION_TIMEOUT,
        certificate_scope: str = CERTIFICATE_SCOPE,
    ):
        if config is None:
            raise ConfigurationError("renewal orchestrator requires a config")
        if store is None:
            raise ConfigurationError("renewal orchestrator requires a store")

        self.config = config
        self.store = store
        self.issuer_factory = issuer_factory
        self.registry = registry if registry is not None else default_registry
        self.renew_before_days = renew_before_days
        self.propagation_timeout = propagation_timeout
        self.certificate_scope = certificate_scope
        self.phase = RenewalPhase.IDLE

        self.log = RenewalLogAdapter(
            logger or default_logger,
            job_handler="cert_renewal",
            identifier=config.primary_domain,
            domains=list(config.domains),
        )

    def _enter(self, phase: RenewalPhase) -> None:
        self.phase = phase
        self.log.bind(phase=phase.value)
        self.log.debug("Entering phase")

    def run(self, force: bool = False) -> RenewalResult:
        """Execute one renewal attempt.

        Args:
            force: Skip the expiry check and always obtain a new certificate.

        Returns:
            The run result: disabled, not due, or renewed with its record.

        Raises:
            RenewalError: Any fatal failure, tagged with the phase it
                happened in and the configured domain set. Other exceptions
                are re-raised unchanged once the run is marked failed.
        """
        try:
            return self._run(force)
        except RenewalError as e:
            e.phase = e.phase or self.phase.value
            e.domains = e.domains or list(self.config.domains)
            self._fail(e, e.phase)
            raise
        except Exception as e:
            self._fail(e, self.phase.value)
            raise

    def _fail(self, error: Exception, failed_phase: str) -> None:
        self._enter(RenewalPhase.FAILED)
        self.log.error(
            "Certificate renewal failed",
            extra={"error": str(error), "failed_phase": failed_phase},
        )

    def _run(self, force: bool) -> RenewalResult:
        config = self.config
        attempted_at = datetime.now(UTC)

        self._enter(RenewalPhase.VALIDATING_CONFIG)
        if config.disabled:
            self._enter(RenewalPhase.DONE)
            self.log.info("Certificate renewal disabled, nothing to do")
            return RenewalResult(outcome=RenewalOutcome.DISABLED)

        problems = config.problems()
        if problems:
            raise ConfigurationError("; ".join(problems))

        self._enter(RenewalPhase.RESOLVING_PROVIDER)
        try:
            account_key = load_account_key(config.account_private_key)
        except ValueError as e:
            raise ConfigurationError(f"failed to parse ACME account private key: {e}") from e

        provider = config.active_provider
        if provider not in config.providers:
            raise ConfigurationError(
                f"active provider {provider!r} not found in configured providers"
            )
        solver = self.registry.resolve(provider, config.providers[provider])
        self.log.bind(provider=provider)

        self._enter(RenewalPhase.CHECKING_EXPIRY)
        existing = None if force else self._existing_certificate()
        if existing is not None and not self._due(existing):
            days = existing.days_remaining()
            self._enter(RenewalPhase.DONE)
            self.log.info(
                "Certificate not due for renewal",
                extra={
                    "days_remaining": round(days, 2),
                    "expires_at": existing.expires_at.isoformat(),
                },
            )
            return RenewalResult(
                outcome=RenewalOutcome.NOT_DUE, record=existing, days_remaining=days
            )

        self._enter(RenewalPhase.REGISTERING_ACCOUNT)
        self.log.info("Attempting certificate renewal")
        try:
            issuer = self.issuer_factory(
                directory_url=config.ca_directory_url,
                account_key=account_key,
                solver=solver,
                propagation_timeout=self.propagation_timeout,
            )
        except Exception as e:
            raise ProtocolError(f"failed to create ACME client: {e}") from e

        try:
            record = self._issue(issuer, attempted_at)
        finally:
            self._close(issuer)

        self._persist(record)
        self._enter(RenewalPhase.DONE)
        self.log.info(
            "Certificate renewal completed",
            extra={"expires_at": record.expires_at.isoformat()},
        )
        return RenewalResult(
            outcome=RenewalOutcome.RENEWED,
            record=record,
            days_remaining=record.days_remaining(),
        )

    def _close(self, issuer: IssuanceClient) -> None:
        """Close the issuance client; a failing close never changes the run's outcome."""
        try:
            issuer.close()
        except Exception as e:
            self.log.warning("Failed to close ACME client", extra={"error": str(e)})

    def _existing_certificate(self) -> CertificateRecord | None:
        """Read the current certificate, or None when there is none usable.

        Read and decode failures fall back to renewing.
        """
        try:
            return load_latest_certificate(self.store, self.certificate_scope)
        except RecordNotFoundError:
            self.log.info("No stored certificate, first issuance")
        except ParseError as e:
            self.log.warning(
                "Stored certificate record is invalid, renewing", extra={"error": str(e)}
            )
        except Exception as e:
            self.log.warning("Failed to read stored certificate, renewing", extra={"error": str(e)})
        return None

    def _due(self, existing: CertificateRecord) -> bool:
        if existing.domains != list(self.config.domains):
            self.log.info(
                "Configured domains differ from stored certificate, renewing",
                extra={"stored_domains": existing.domains},
            )
            return True
        return needs_renewal(existing.certificate_chain, self.renew_before_days)

    def _issue(self, issuer: IssuanceClient, attempted_at: datetime) -> CertificateRecord:
        config = self.config

        try:
            account_url = issuer.register_account(config.email)
        except Exception as e:
            raise ProtocolError(f"ACME registration failed for {config.email}: {e}") from e
        self.log.info("ACME account registered/retrieved", extra={"account_url": account_url})

        self._enter(RenewalPhase.OBTAINING)
        try:
            with Timer() as t:
                issued = issuer.obtain(list(config.domains), bundle=True)
        except Exception as e:
            raise ProtocolError(f"failed to obtain certificate: {e}") from e
        self.log.info(
            "Obtained certificate",
            extra={"certificate_url": issued.certificate_url, "elapsed_ms": round(t.elapsed_ms)},
        )

        self._enter(RenewalPhase.PERSISTING)
        return build_record(
            config.domains,
            issued.certificate_chain,
            issued.private_key,
            identifier=config.primary_domain,
            attempted_at=attempted_at,
        )

    def _persist(self, record: CertificateRecord) -> None:
        description = describe_record(record)
        self.log.info(
            "Saving obtained certificate",
            extra={"scope": self.certificate_scope, "format": RECORD_FORMAT},
        )
        try:
            self.store.save(
                self.certificate_scope, encode_record(record), RECORD_FORMAT, description
            )
        except Exception as e:
            # Issued at the CA but not recorded: keep what manual recovery needs
            self.log.error(
                "Certificate issued but could not be saved",
                extra={
                    "scope": self.certificate_scope,
                    "expires_at": record.expires_at.isoformat(),
                    "error": str(e),
                },
            )
            raise PersistenceError(
                f"certificate issued but not saved: {e}",
                identifier=record.identifier,
                expires_at=record.expires_at,
            ) from e
        self.log.info("Saved certificate", extra={"scope": self.certificate_scope})
