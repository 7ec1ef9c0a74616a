"""Tests for settings sources, defaults and sub-model validation."""

from __future__ import annotations

from pathlib import Path

import pydantic
import pytest

from omgexec.config import (
    HttpConfig,
    PortsConfig,
    ProvisioningConfig,
    Settings,
    StateConfig,
    get_settings,
    reset_settings,
)


@pytest.fixture(autouse=True)
def _isolated(tmp_path, monkeypatch):
    """Run from an empty directory so no stray omgexec.toml or .env is picked up."""
    monkeypatch.chdir(tmp_path)
    for name in ("OMGEXEC_HTTP__MAX_ATTEMPTS", "OMGEXEC_RUNTIME__CLI", "OMGEXEC_STATE__PATH"):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


class TestDefaults:
    def test_values(self):
        s = Settings()
        assert s.runtime.cli == "docker"
        assert (s.ports.low, s.ports.high) == (2000, 17000)
        assert s.http.max_attempts == 10
        assert s.http.host == "localhost"
        assert s.events.container_host == "host.docker.internal"
        assert s.provisioning.keepalive_command == ["tail", "-f", "/dev/null"]

    def test_state_path_is_expanded(self):
        assert StateConfig().path == Path.home() / ".omg.json"

    def test_default_state_file_is_per_user(self, tmp_path):
        path = Settings().state.path
        assert path.is_absolute()
        assert path == Path.home() / ".omg.json"
        assert not path.is_relative_to(tmp_path)

    def test_env_state_path_is_expanded(self, monkeypatch):
        monkeypatch.setenv("OMGEXEC_STATE__PATH", "~/state/omg.json")
        assert Settings().state.path == Path.home() / "state" / "omg.json"


class TestSources:
    def test_env_overrides_nested_field(self, monkeypatch):
        monkeypatch.setenv("OMGEXEC_HTTP__MAX_ATTEMPTS", "3")
        assert Settings().http.max_attempts == 3

    def test_toml_file(self, tmp_path):
        (tmp_path / "omgexec.toml").write_text('[runtime]\ncli = "podman"\n')
        assert Settings().runtime.cli == "podman"

    def test_env_beats_toml(self, tmp_path, monkeypatch):
        (tmp_path / "omgexec.toml").write_text('[runtime]\ncli = "podman"\n')
        monkeypatch.setenv("OMGEXEC_RUNTIME__CLI", "nerdctl")
        assert Settings().runtime.cli == "nerdctl"

    def test_unknown_section_key_rejected(self, tmp_path):
        (tmp_path / "omgexec.toml").write_text("[http]\nretries = 3\n")
        with pytest.raises(pydantic.ValidationError):
            Settings()


class TestValidators:
    def test_attempts_clamped_to_one(self):
        assert HttpConfig(max_attempts=0).max_attempts == 1
        assert ProvisioningConfig(max_start_attempts=-2).max_start_attempts == 1

    @pytest.mark.parametrize(("low", "high"), [(0, 10), (5000, 5000), (100, 70000)])
    def test_bad_port_range(self, low, high):
        with pytest.raises(pydantic.ValidationError, match="Invalid port range"):
            PortsConfig(low=low, high=high)


def test_get_settings_is_cached():
    assert get_settings() is get_settings()
    first = get_settings()
    reset_settings()
    assert get_settings() is not first
