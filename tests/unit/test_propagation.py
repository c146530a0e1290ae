"""Unit tests for DNS propagation checks."""

import logging
from types import SimpleNamespace
from unittest.mock import MagicMock

import dns.exception
import pytest
from dns import resolver

from certrenew.providers import base, propagation
from certrenew.providers.propagation import txt_record_visible, wait_for_txt_record


def txt(*strings: bytes) -> SimpleNamespace:
    return SimpleNamespace(strings=strings)


@pytest.fixture
def fake_resolver(monkeypatch) -> MagicMock:
    """Replace dns.resolver.Resolver with a mock; returns the instance."""
    instance = MagicMock()
    factory = MagicMock(return_value=instance)
    monkeypatch.setattr(propagation.resolver, "Resolver", factory)
    instance.factory = factory
    return instance


class TestTxtRecordVisible:
    """Tests for txt_record_visible."""

    def test_value_present(self, fake_resolver):
        """Matching TXT strings mean visible."""
        fake_resolver.resolve.return_value = [txt(b"other"), txt(b"expected")]

        assert txt_record_visible("_acme-challenge.example.com", "expected") is True
        fake_resolver.resolve.assert_called_once_with(
            "_acme-challenge.example.com", "TXT", lifetime=5, search=False
        )

    def test_value_absent(self, fake_resolver):
        """Other values do not count."""
        fake_resolver.resolve.return_value = [txt(b"stale")]

        assert txt_record_visible("_acme-challenge.example.com", "expected") is False

    @pytest.mark.parametrize(
        "error",
        [resolver.NXDOMAIN(), resolver.NoAnswer(), dns.exception.Timeout()],
    )
    def test_lookup_errors_mean_not_visible(self, fake_resolver, error):
        """Resolver errors are never raised."""
        fake_resolver.resolve.side_effect = error

        assert txt_record_visible("_acme-challenge.example.com", "expected") is False

    def test_custom_nameservers(self, fake_resolver):
        """Explicit nameservers bypass the system configuration."""
        fake_resolver.resolve.return_value = [txt(b"expected")]

        txt_record_visible("_acme-challenge.example.com", "expected", nameservers=["192.0.2.53"])

        fake_resolver.factory.assert_called_once_with(configure=False)
        assert fake_resolver.nameservers == ["192.0.2.53"]


class TestWaitForTxtRecord:
    """Tests for wait_for_txt_record polling."""

    def test_returns_once_visible(self, monkeypatch):
        """Polls until the record shows up."""
        checks = iter([False, False, True])
        sleeps = []
        monkeypatch.setattr(propagation, "txt_record_visible", lambda *a, **kw: next(checks))
        monkeypatch.setattr(propagation.time, "sleep", sleeps.append)

        assert wait_for_txt_record("_acme-challenge.example.com", "v", timeout=60, interval=2) is True
        assert sleeps == [2, 2]

    def test_times_out(self, monkeypatch, log_capture):
        """Gives up after the timeout and logs a warning."""
        monkeypatch.setattr(propagation, "txt_record_visible", lambda *a, **kw: False)

        assert wait_for_txt_record("_acme-challenge.example.com", "v", timeout=0) is False
        assert "TXT record did not propagate in time" in log_capture.get_messages(logging.WARNING)

    def test_solver_default_uses_record_name(self, monkeypatch):
        """The base solver waits on the _acme-challenge name of the domain."""
        calls = []

        def fake_wait(name, expected, timeout):
            calls.append((name, expected, timeout))
            return True

        monkeypatch.setattr(base, "wait_for_txt_record", fake_wait)

        class Solver(base.ChallengeSolver):
            name = "test"

            @classmethod
            def from_credentials(cls, credentials):
                return cls()

            def present(self, domain, validation):
                pass

            def cleanup(self, domain, validation):
                pass

        assert Solver().wait_for_propagation("*.example.com", "v", timeout=10) is True
        assert calls == [("_acme-challenge.example.com", "v", 10)]
