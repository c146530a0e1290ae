"""Unit tests for publishing certificates into the application configuration."""

from datetime import UTC, datetime

import pytest
import toml

from certrenew.app_config import apply_certificate_to_app_config
from certrenew.exceptions import ConfigurationError, RecordNotFoundError
from certrenew.models import CertificateRecord
from certrenew.records import build_record
from certrenew.storage import APP_CONFIG_SCOPE, MemoryStore

APP_TOML = """
[server]
listen = "0.0.0.0:443"

[database]
url = "postgres://db"
"""


@pytest.fixture
def record(cert_factory) -> CertificateRecord:
    chain, key = cert_factory(["example.com"])
    return build_record(["example.com"], chain, key)


class TestApplyCertificate:
    """Tests for apply_certificate_to_app_config."""

    def test_sets_cert_and_key(self, record):
        """server.cert_data and server.key_data hold the record's material."""
        store = MemoryStore()
        store.save(APP_CONFIG_SCOPE, APP_TOML.encode(), "toml", "initial")

        apply_certificate_to_app_config(store, record)

        document = toml.loads(store.latest(APP_CONFIG_SCOPE).payload.decode())
        assert document["server"]["cert_data"] == record.certificate_chain
        assert document["server"]["key_data"] == record.private_key

    def test_other_keys_untouched(self, record):
        """Unrelated settings survive the update."""
        store = MemoryStore()
        store.save(APP_CONFIG_SCOPE, APP_TOML.encode(), "toml", "initial")

        document = apply_certificate_to_app_config(store, record)

        assert document["server"]["listen"] == "0.0.0.0:443"
        assert document["database"]["url"] == "postgres://db"

    def test_saved_as_new_version(self, record):
        """The update is appended with an audit description."""
        store = MemoryStore()
        store.save(APP_CONFIG_SCOPE, APP_TOML.encode(), "toml", "initial")

        apply_certificate_to_app_config(store, record)

        history = store.history(APP_CONFIG_SCOPE)
        assert len(history) == 2
        assert history[-1].description.startswith("Updated TLS cert/key data for example.com")

    def test_missing_server_table_created(self, record):
        """A document without [server] gains one."""
        store = MemoryStore()
        store.save(APP_CONFIG_SCOPE, b'name = "app"\n', "toml", "initial")

        document = apply_certificate_to_app_config(store, record)

        assert set(document["server"]) == {"cert_data", "key_data"}

    def test_no_app_config_raises(self, record):
        """An empty scope propagates RecordNotFoundError."""
        with pytest.raises(RecordNotFoundError):
            apply_certificate_to_app_config(MemoryStore(), record)

    def test_wrong_format_raises(self, record):
        """Non-TOML configurations are rejected."""
        store = MemoryStore()
        store.save(APP_CONFIG_SCOPE, b"{}", "yaml", "")

        with pytest.raises(ConfigurationError, match="unsupported configuration format"):
            apply_certificate_to_app_config(store, record)

    def test_record_without_chain_raises(self):
        """A record with no material cannot be published."""
        empty = CertificateRecord(
            identifier="example.com",
            domains=["example.com"],
            issued_at=datetime(2026, 1, 1, tzinfo=UTC),
            expires_at=datetime(2026, 4, 1, tzinfo=UTC),
        )

        with pytest.raises(ConfigurationError, match="has no chain"):
            apply_certificate_to_app_config(MemoryStore(), empty)
