"""Shared fixtures for microca tests."""

import os

import pytest

from microca.ca.key_manager import KeyManager
from microca.ca.models import Issuer
from microca.shared.config import Settings


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch):
    """Keep MICROCA_* variables from the host out of the tests."""
    for name in list(os.environ):
        if name.startswith("MICROCA_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_settings(tmp_path):
    """Factory for settings whose authority files live under ``tmp_path``."""

    def _make(**overrides) -> Settings:
        values = {
            "CA_KEY_PATH": tmp_path / "microca-key.pem",
            "CA_CERT_PATH": tmp_path / "microca.pem",
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    """ECDSA P256 settings with one domain."""
    return make_settings(DOMAINS=["svc.local"])


@pytest.fixture
def issuer(settings) -> Issuer:
    """A freshly bootstrapped ECDSA authority."""
    return KeyManager(settings).load_or_generate()
