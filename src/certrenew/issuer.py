"""Issuance client contract and its adapter over the ``acme`` library.

The renewal pipeline needs exactly two blocking operations from an ACME
client: register-or-retrieve the account, and obtain a certificate for a
domain set. :class:`AcmeIssuer` provides both on top of
``acme.client.ClientV2``; order creation, JWS signing, nonces and polling
stay inside that library.
"""

from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable

import josepy as jose
from acme import challenges, client, errors, messages
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from certrenew._logging import get_logger
from certrenew.crypto import create_csr, generate_ecdsa_key, leaf_only, private_key_to_pem
from certrenew.models import IssuedCertificate
from certrenew.providers.base import ChallengeSolver, challenge_record_name

logger = get_logger(__name__)

# ACME directory URLs
LETSENCRYPT_STAGING = "https://acme-staging-v02.api.letsencrypt.org/directory"
LETSENCRYPT_PRODUCTION = "https://acme-v02.api.letsencrypt.org/directory"

DEFAULT_PROPAGATION_TIMEOUT = 600  # seconds
USER_AGENT = "certrenew/0.1.0"


class PropagationTimeoutError(TimeoutError):
    """A challenge TXT record did not become visible in time."""

    def __init__(self, domain: str, timeout: float):
        self.domain = domain
        self.timeout = timeout
        super().__init__(
            f"TXT record {challenge_record_name(domain)} did not propagate within {timeout}s"
        )


@runtime_checkable
class IssuanceClient(Protocol):
    """Blocking ACME operations used by the renewal orchestrator."""

    def register_account(self, email: str) -> str:
        """Register a new account or retrieve the one bound to the key.

        Returns:
            The account URL.
        """
        ...

    def obtain(self, domains: Sequence[str], bundle: bool = True) -> IssuedCertificate:
        """Obtain a certificate covering ``domains``.

        Args:
            domains: Domain set, the first being the primary name.
            bundle: Include intermediates in the returned chain.
        """
        ...

    def close(self) -> None: ...


IssuerFactory = Callable[..., IssuanceClient]


class AcmeIssuer:
    """Issuance client backed by ``acme.client.ClientV2``.

    Args:
        directory_url: URL of the ACME directory endpoint.
        account_key: EC P-256 account key.
        solver: DNS-01 challenge solver.
        propagation_timeout: Seconds to wait for each TXT record to appear.
        verify_ssl: Verify the ACME server's TLS certificate.
        finalize_timeout: Seconds to wait for validation and finalization.
    """

    def __init__(
        self,
        directory_url: str,
        account_key: ec.EllipticCurvePrivateKey,
        solver: ChallengeSolver,
        propagation_timeout: float = DEFAULT_PROPAGATION_TIMEOUT,
        verify_ssl: bool = True,
        finalize_timeout: float = 180,
    ):
        self.directory_url = directory_url
        self.solver = solver
        self.propagation_timeout = propagation_timeout
        self.finalize_timeout = finalize_timeout

        self._jwk = jose.JWKEC(key=account_key)
        self._net = client.ClientNetwork(
            self._jwk,
            alg=jose.ES256,
            user_agent=USER_AGENT,
            verify_ssl=verify_ssl,
        )
        self._client: client.ClientV2 | None = None
        self._account_url: str | None = None

    def close(self) -> None:
        """Close the underlying HTTP session."""
        session = getattr(self._net, "session", None)
        if session is not None:
            session.close()

    def __enter__(self) -> "AcmeIssuer":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    @property
    def acme_client(self) -> client.ClientV2:
        """ACME client (directory fetched on first use)."""
        if self._client is None:
            directory = messages.Directory.from_json(self._net.get(self.directory_url).json())
            self._client = client.ClientV2(directory, net=self._net)
        return self._client

    @property
    def account_url(self) -> str | None:
        """Get the account URL (set after registration)."""
        return self._account_url

    def register_account(self, email: str) -> str:
        """Register a new account or find the existing one for the key.

        Args:
            email: Contact email address.

        Returns:
            The account URL.
        """
        registration = messages.NewRegistration.from_data(
            email=email,
            terms_of_service_agreed=True,
        )
        try:
            regr = self.acme_client.new_account(registration)
            logger.info("ACME account registered", extra={"email": email})
        except errors.ConflictError as e:
            # Same key, same account: look it up and bind it to the session
            regr = messages.RegistrationResource(uri=e.location, body=messages.Registration())
            regr = self.acme_client.query_registration(regr)
            logger.info("ACME account already exists", extra={"email": email})

        self._account_url = regr.uri
        return regr.uri

    def obtain(self, domains: Sequence[str], bundle: bool = True) -> IssuedCertificate:
        """Obtain a certificate for ``domains`` via DNS-01.

        This is the main high-level method that:
        1. Generates a P-256 certificate key and CSR
        2. Creates the order
        3. Presents every pending DNS-01 challenge and waits for propagation
        4. Answers the challenges, then polls and finalizes the order
        5. Removes every presented TXT record, even on failure

        Args:
            domains: List of domain names for the certificate.
            bundle: Keep intermediates in the returned chain.

        Returns:
            The issued chain and its private key.

        Raises:
            PropagationTimeoutError: If a TXT record never became visible.
            acme.errors.Error: On protocol failures, including timeouts.
            messages.Error: On problem documents returned by the CA.
        """
        domains = list(domains)
        cert_key = generate_ecdsa_key("P-256")
        csr = create_csr(cert_key, domains)
        csr_pem = csr.public_bytes(serialization.Encoding.PEM)

        order = self.acme_client.new_order(csr_pem)
        logger.info("Order created", extra={"domains": domains, "order_url": order.uri})

        presented: list[tuple[str, str]] = []
        try:
            pending = []
            for authz in order.authorizations:
                if authz.body.status == messages.STATUS_VALID:
                    continue
                challb = self._dns_challenge(authz)
                domain = authz.body.identifier.value
                if authz.body.wildcard:
                    domain = f"*.{domain}"
                validation = challb.chall.validation(self._jwk)
                self.solver.present(domain, validation)
                presented.append((domain, validation))
                pending.append((challb, domain, validation))

            timeout = self.propagation_timeout
            for _challb, domain, validation in pending:
                if not self.solver.wait_for_propagation(domain, validation, timeout):
                    raise PropagationTimeoutError(domain, timeout)

            for challb, _domain, _validation in pending:
                self.acme_client.answer_challenge(challb, challb.response(self._jwk))

            deadline = datetime.now() + timedelta(seconds=self.finalize_timeout)
            order = self.acme_client.poll_and_finalize(order, deadline)
        finally:
            for domain, validation in presented:
                try:
                    self.solver.cleanup(domain, validation)
                except Exception as e:
                    logger.warning(
                        "Failed to clean up challenge record",
                        extra={"domain": domain, "error": str(e)},
                    )

        chain = order.fullchain_pem if bundle else leaf_only(order.fullchain_pem)
        logger.info("Certificate issued", extra={"domains": domains})
        return IssuedCertificate(
            domain=domains[0],
            domains=domains,
            certificate_chain=chain,
            private_key=private_key_to_pem(cert_key),
            certificate_url=order.body.certificate,
        )

    @staticmethod
    def _dns_challenge(authz: messages.AuthorizationResource) -> messages.ChallengeBody:
        """Get the DNS-01 challenge of an authorization.

        Raises:
            ValueError: If the authorization offers no DNS-01 challenge.
        """
        for challb in authz.body.challenges:
            if isinstance(challb.chall, challenges.DNS01):
                return challb
        raise ValueError(
            f"Challenge type 'dns-01' not found in authorization for {authz.body.identifier.value}"
        )
