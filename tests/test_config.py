import logging

import pytest

from conftest import FakeAuthClient, MemoryKeyring

from jamf_device_manager.auth_coordinator import AuthCoordinator
from jamf_device_manager.config import ConfigError, load_config
from jamf_device_manager.credential_store import CredentialStore, PreferencesStore, SecretStore
from jamf_device_manager.logging_utils import log_level, mask, setup_logging
from jamf_device_manager.models import Credentials


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("JAMF_DEVICE_MANAGER_CONFIG", "JAMF_URL", "JAMF_VERIFY_SSL"):
        monkeypatch.delenv(name, raising=False)


def test_defaults_when_no_file(tmp_path):
    config = load_config(str(tmp_path / "missing.yml"))
    assert config.server_url is None
    assert config.safety_margin == 10.0
    assert config.inter_item_delay == 0.1
    assert config.search_batch_size == 20
    assert config.dashboard_cache_ttl == 300
    assert config.config_path is None


def test_file_values_and_env_precedence(tmp_path, monkeypatch):
    path = tmp_path / "config.yml"
    path.write_text(
        "server_url: https://file.example.com/\n"
        "auth:\n  safety_margin: 30\n"
        "bulk:\n  inter_item_delay: 0.5\n"
        "search:\n  concurrency: 3\n"
        "http:\n  verify_ssl: true\n",
        encoding="utf-8",
    )
    config = load_config(str(path))
    assert config.server_url == "https://file.example.com"
    assert config.safety_margin == 30.0
    assert config.inter_item_delay == 0.5
    assert config.search_concurrency == 3

    monkeypatch.setenv("JAMF_URL", "https://env.example.com")
    monkeypatch.setenv("JAMF_VERIFY_SSL", "false")
    config = load_config(str(path))
    assert config.server_url == "https://env.example.com"
    assert config.verify_ssl is False


def test_invalid_yaml_raises(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("auth: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(str(path))


def test_non_mapping_raises(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("- one\n- two\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(str(path))


def test_invalid_numbers_raise(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("search:\n  batch_size: 0\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(str(path))


def test_credential_store_round_trip(tmp_path):
    backend = MemoryKeyring()
    store = CredentialStore(PreferencesStore(tmp_path / "prefs.yml"), SecretStore("svc", backend=backend))

    store.save(Credentials("https://jamf.example.com", "cid", "secret", persist=True))
    assert backend.passwords == {("svc", "cid"): "secret"}
    loaded = store.load()
    assert loaded == Credentials("https://jamf.example.com", "cid", "secret", persist=True)

    store.save(Credentials("https://jamf.example.com", "cid", "secret", persist=False))
    assert backend.passwords == {}
    loaded = store.load()
    assert loaded.client_secret == ""
    assert loaded.client_id == "cid"

    # Deleting an absent secret is not an error.
    store.save(Credentials("https://jamf.example.com", "cid", "", persist=False))



def test_client_id_change_removes_previous_secret(tmp_path, clock):
    backend = MemoryKeyring()
    store = CredentialStore(PreferencesStore(tmp_path / "prefs.yml"), SecretStore("svc", backend=backend))
    coordinator = AuthCoordinator(FakeAuthClient(clock=clock), credential_store=store)

    coordinator.update_credentials("https://jamf.example.com", "old", "s1", True)
    coordinator.update_credentials("https://jamf.example.com", "new", "s2", True)

    assert backend.passwords == {("svc", "new"): "s2"}
    assert store.load().client_secret == "s2"


def test_unreadable_preferences_are_ignored(tmp_path):
    path = tmp_path / "prefs.yml"
    path.write_text("{bad", encoding="utf-8")
    assert PreferencesStore(path).load() == {}


def test_mask():
    assert mask("abcdef123") == "*****f123"
    assert mask("abc") == "***"
    assert mask(None) == "<empty>"


def test_log_level_flags():
    assert log_level() == logging.INFO
    assert log_level(verbose=True) == logging.DEBUG
    assert log_level(quiet=True) == logging.WARNING
    assert log_level(verbose=True, quiet=True) == logging.INFO


def test_setup_logging_applies_level_to_package():
    package = logging.getLogger("jamf_device_manager")
    original = package.level
    try:
        logger = setup_logging(quiet=True, logger_name="jamf_device_manager.cli")

        assert logger.name == "jamf_device_manager.cli"
        assert package.level == logging.WARNING
        assert logging.getLogger("jamf_device_manager.dashboard").getEffectiveLevel() == logging.WARNING
    finally:
        package.setLevel(original)
