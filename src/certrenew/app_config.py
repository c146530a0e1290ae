"""Publish a stored certificate into the application configuration scope."""

import toml

from certrenew._logging import get_logger
from certrenew.exceptions import ConfigurationError
from certrenew.models import CertificateRecord
from certrenew.storage import APP_CONFIG_SCOPE, PersistenceGateway

logger = get_logger(__name__)

APP_CONFIG_FORMAT = "toml"


def apply_certificate_to_app_config(
    store: PersistenceGateway,
    record: CertificateRecord,
    scope: str = APP_CONFIG_SCOPE,
) -> dict:
    """Embed the record's chain and key in the application configuration.

    Reads the latest application configuration, sets ``server.cert_data``
    and ``server.key_data`` and saves the result as a new version. Other
    keys are left untouched.

    Args:
        store: Store holding the application configuration.
        record: Certificate to publish; must carry chain and key.
        scope: Application configuration scope.

    Returns:
        The updated configuration document.

    Raises:
        RecordNotFoundError: If no application configuration exists.
        ConfigurationError: If the stored configuration is not TOML, or the
            record carries no certificate material.
    """
    if not record.certificate_chain:
        raise ConfigurationError(f"certificate {record.identifier!r} has no chain to publish")

    stored = store.latest(scope)
    if stored.format != APP_CONFIG_FORMAT:
        raise ConfigurationError(
            f"unsupported configuration format {stored.format!r} in scope {scope!r}"
        )
    try:
        document = toml.loads(stored.payload.decode("utf-8"))
    except toml.TomlDecodeError as e:
        raise ConfigurationError(f"invalid TOML in scope {scope!r}: {e}") from e

    server = document.setdefault("server", {})
    server["cert_data"] = record.certificate_chain
    server["key_data"] = record.private_key

    expires = record.expires_at.strftime("%Y-%m-%dT%H:%M:%SZ")
    description = f"Updated TLS cert/key data for {record.identifier} (expires {expires})"
    store.save(scope, toml.dumps(document).encode("utf-8"), APP_CONFIG_FORMAT, description)

    logger.info(
        "Application configuration updated with new certificate",
        extra={"scope": scope, "identifier": record.identifier, "expires_at": expires},
    )
    return document
