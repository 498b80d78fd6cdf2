"""Tests for configuration loading and client construction."""

import json

import pydantic
import pytest

from sftpgo_client import config, sftpgoapi
from sftpgo_client.sftpgoapi.types import KeyValue

# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


def test_defaults_without_environment():
    cfg = config.config_from_env({})

    assert cfg.host == sftpgoapi.DEFAULT_HOST
    assert cfg.username is None
    assert cfg.api_key is None
    assert cfg.headers == []
    assert cfg.edition == 0
    assert cfg.timeout == sftpgoapi.DEFAULT_TIMEOUT


def test_values_read_from_environment():
    cfg = config.config_from_env(
        {
            "SFTPGO_HOST": "https://sftpgo.example.com",
            "SFTPGO_USERNAME": "admin",
            "SFTPGO_PASSWORD": "secret",
            "SFTPGO_API_KEY": "key",
            "SFTPGO_EDITION": "1",
        },
    )

    assert cfg.host == "https://sftpgo.example.com"
    assert cfg.username == "admin"
    assert cfg.password.get_secret_value() == "secret"
    assert cfg.api_key.get_secret_value() == "key"
    assert cfg.edition == 1


def test_invalid_edition_falls_back_to_open_source():
    assert config.config_from_env({"SFTPGO_EDITION": "enterprise"}).edition == 0


def test_headers_from_env_skip_incomplete_pairs():
    headers = config.headers_from_env(
        {
            "SFTPGO_HEADERS__0__KEY": " X-Tenant ",
            "SFTPGO_HEADERS__0__VALUE": " acme ",
            "SFTPGO_HEADERS__1__KEY": "X-Empty",
            "SFTPGO_HEADERS__1__VALUE": "   ",
            "SFTPGO_HEADERS__9__KEY": "X-Last",
            "SFTPGO_HEADERS__9__VALUE": "z",
            "SFTPGO_HEADERS__10__KEY": "X-Ignored",
            "SFTPGO_HEADERS__10__VALUE": "y",
        },
    )

    assert headers == [KeyValue(key="X-Tenant", value="acme"), KeyValue(key="X-Last", value="z")]


def test_secrets_hidden_in_repr():
    cfg = config.config_from_env({"SFTPGO_PASSWORD": "hunter2", "SFTPGO_API_KEY": "key-value"})
    assert "hunter2" not in repr(cfg)
    assert "key-value" not in repr(cfg)


# ---------------------------------------------------------------------------
# Config file
# ---------------------------------------------------------------------------


def test_load_config_overrides_environment(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "host": "https://file.example.com",
                "username": None,
                "headers": [{"key": "X-From-File", "value": "1"}],
                "timeout": 5,
            },
        ),
    )
    environ = {
        "SFTPGO_HOST": "https://env.example.com",
        "SFTPGO_USERNAME": "env-admin",
        "SFTPGO_HEADERS__0__KEY": "X-From-Env",
        "SFTPGO_HEADERS__0__VALUE": "1",
    }

    cfg = config.load_config(str(path), environ)

    assert cfg.host == "https://file.example.com"
    assert cfg.username == "env-admin"
    assert [h.key for h in cfg.headers] == ["X-From-File"]
    assert cfg.timeout == 5.0


def test_load_config_empty_headers_keep_environment(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"headers": []}))

    cfg = config.load_config(
        str(path),
        {"SFTPGO_HEADERS__0__KEY": "X-From-Env", "SFTPGO_HEADERS__0__VALUE": "1"},
    )

    assert [h.key for h in cfg.headers] == ["X-From-Env"]


def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        config.load_config(str(tmp_path / "missing.json"), {})


@pytest.mark.parametrize("content", ["[]", '"host"', "null"])
def test_load_config_rejects_non_object_file(tmp_path, content):
    path = tmp_path / "config.json"
    path.write_text(content)

    with pytest.raises(ValueError, match="JSON object"):
        config.load_config(str(path), {})


@pytest.mark.parametrize(
    "overrides",
    [{"edition": 2}, {"timeout": 0}, {"host": ""}],
)
def test_invalid_values_rejected(tmp_path, overrides):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(overrides))

    with pytest.raises(pydantic.ValidationError):
        config.load_config(str(path), {})


# ---------------------------------------------------------------------------
# Client construction
# ---------------------------------------------------------------------------


def test_create_client_with_api_key():
    cfg = config.ClientConfig(
        host="https://sftpgo.example.com/",
        api_key="key",
        edition=1,
        headers=[KeyValue(key="X-Tenant", value="acme")],
    )

    with config.create_client(cfg) as api_client:
        assert api_client.base_url == "https://sftpgo.example.com"
        assert api_client.is_enterprise_edition
        assert api_client.headers == [KeyValue(key="X-Tenant", value="acme")]


def test_create_client_without_credentials_fails():
    with pytest.raises(sftpgoapi.ConfigurationError):
        config.create_client(config.ClientConfig(username="admin"))


def test_create_client_from_config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"username": "admin", "password": "secret", "log_level": "WARNING"}))

    api_client = config.create_client_from_environment({config.CONFIG_ENV_VAR: str(path)})

    with api_client:
        assert isinstance(api_client, sftpgoapi.SftpGoApiClient)
        assert not api_client.is_enterprise_edition
