"""DNS-01 challenge solvers and the provider registry."""

from collections.abc import Callable, Mapping
from typing import Any

from certrenew._logging import get_logger
from certrenew.exceptions import ProviderConstructionError, UnsupportedProviderError
from certrenew.providers.base import ChallengeSolver, challenge_record_name
from certrenew.providers.cloudflare import CloudflareSolver
from certrenew.providers.pebble import PebbleSolver
from certrenew.providers.powerdns import PowerDnsSolver

logger = get_logger(__name__)

SolverFactory = Callable[[Mapping[str, Any]], ChallengeSolver]


class ProviderRegistry:
    """Maps provider names to solver constructors.

    Adding a provider means registering a factory; the orchestrator only
    ever calls :meth:`resolve`.
    """

    def __init__(self, factories: Mapping[str, SolverFactory] | None = None):
        self._factories: dict[str, SolverFactory] = dict(factories or {})

    def register(self, name: str, factory: SolverFactory) -> None:
        """Register ``factory`` under ``name``, replacing any previous entry."""
        if not name:
            raise ValueError("Provider name must not be empty")
        self._factories[name] = factory

    def names(self) -> list[str]:
        return sorted(self._factories)

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    def resolve(self, name: str, credentials: Mapping[str, Any] | None) -> ChallengeSolver:
        """Build the solver for ``name`` from its credential bundle.

        Args:
            name: Provider name.
            credentials: The provider's credential bundle.

        Returns:
            A ready challenge solver. No network call has been made.

        Raises:
            UnsupportedProviderError: If no factory is registered for ``name``.
            ProviderConstructionError: If the factory rejects the credentials.
        """
        factory = self._factories.get(name)
        if factory is None:
            raise UnsupportedProviderError(name, available=self.names())

        try:
            solver = factory(credentials or {})
        except (ValueError, TypeError) as e:
            raise ProviderConstructionError(name, str(e)) from e

        logger.debug("Challenge solver resolved", extra={"provider": name})
        return solver


default_registry = ProviderRegistry(
    {
        CloudflareSolver.name: CloudflareSolver.from_credentials,
        PowerDnsSolver.name: PowerDnsSolver.from_credentials,
        PebbleSolver.name: PebbleSolver.from_credentials,
    }
)


def resolve_provider(name: str, credentials: Mapping[str, Any] | None) -> ChallengeSolver:
    """Resolve ``name`` against the default registry."""
    return default_registry.resolve(name, credentials)


__all__ = [
    "ChallengeSolver",
    "CloudflareSolver",
    "PebbleSolver",
    "PowerDnsSolver",
    "ProviderRegistry",
    "SolverFactory",
    "challenge_record_name",
    "default_registry",
    "resolve_provider",
]
