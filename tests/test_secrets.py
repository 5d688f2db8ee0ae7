"""Tests for secure secret loading from .env files."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from combat_agent.config.secrets import (
    BRIDGE_TOKEN_ENV,
    get_bridge_token,
    load_environment_secrets,
)


@pytest.fixture
def clean_token(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Ensure the token is unset and restored after the test, even if dotenv sets it."""
    monkeypatch.setenv(BRIDGE_TOKEN_ENV, "placeholder")
    monkeypatch.delenv(BRIDGE_TOKEN_ENV)
    monkeypatch.delenv("COMBATAGENT_ENV_FILE", raising=False)
    return monkeypatch


class TestSecretsLoader:
    """Secret loading behavior for .env files."""

    def test_loads_bridge_token_from_secure_env_file(
        self,
        tmp_path: Path,
        clean_token: pytest.MonkeyPatch,
    ) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(f"{BRIDGE_TOKEN_ENV}=from-dotenv\n")
        os.chmod(env_file, 0o600)

        loaded = load_environment_secrets(env_file=env_file)

        assert loaded == env_file.resolve()
        assert get_bridge_token() == "from-dotenv"

    def test_does_not_override_existing_environment_value(
        self,
        tmp_path: Path,
        clean_token: pytest.MonkeyPatch,
    ) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(f"{BRIDGE_TOKEN_ENV}=from-dotenv\n")
        os.chmod(env_file, 0o600)
        clean_token.setenv(BRIDGE_TOKEN_ENV, "already-set")

        load_environment_secrets(env_file=env_file)

        assert get_bridge_token() == "already-set"

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits differ on Windows")
    def test_rejects_group_or_world_readable_env_file(
        self,
        tmp_path: Path,
        clean_token: pytest.MonkeyPatch,
    ) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(f"{BRIDGE_TOKEN_ENV}=from-dotenv\n")
        os.chmod(env_file, 0o644)

        with pytest.raises(PermissionError):
            load_environment_secrets(env_file=env_file)

        assert get_bridge_token() is None

    def test_missing_explicit_file_raises_in_strict_mode(
        self,
        tmp_path: Path,
        clean_token: pytest.MonkeyPatch,
    ) -> None:
        with pytest.raises(FileNotFoundError):
            load_environment_secrets(env_file=tmp_path / "missing.env")

        assert load_environment_secrets(env_file=tmp_path / "missing.env", strict=False) is None

    def test_directory_path_rejected(
        self,
        tmp_path: Path,
        clean_token: pytest.MonkeyPatch,
    ) -> None:
        with pytest.raises(ValueError):
            load_environment_secrets(env_file=tmp_path)

    def test_env_file_variable_resolved_relative_to_start_dir(
        self,
        tmp_path: Path,
        clean_token: pytest.MonkeyPatch,
    ) -> None:
        env_file = tmp_path / "bridge.env"
        env_file.write_text(f"{BRIDGE_TOKEN_ENV}=relative\n")
        os.chmod(env_file, 0o600)
        clean_token.setenv("COMBATAGENT_ENV_FILE", "bridge.env")

        loaded = load_environment_secrets(start_dir=tmp_path)

        assert loaded == env_file.resolve()
        assert get_bridge_token() == "relative"

    def test_default_env_file_found_in_start_dir(
        self,
        tmp_path: Path,
        clean_token: pytest.MonkeyPatch,
    ) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(f"{BRIDGE_TOKEN_ENV}=discovered\n")
        os.chmod(env_file, 0o600)

        loaded = load_environment_secrets(start_dir=tmp_path)

        assert loaded == env_file.resolve()
        assert get_bridge_token() == "discovered"


class TestBridgeToken:
    """Tests for get_bridge_token."""

    def test_unset(self, clean_token: pytest.MonkeyPatch) -> None:
        assert get_bridge_token() is None

    def test_blank_is_none(self, clean_token: pytest.MonkeyPatch) -> None:
        clean_token.setenv(BRIDGE_TOKEN_ENV, "   ")
        assert get_bridge_token() is None

    def test_stripped(self, clean_token: pytest.MonkeyPatch) -> None:
        clean_token.setenv(BRIDGE_TOKEN_ENV, " secret ")
        assert get_bridge_token() == "secret"
