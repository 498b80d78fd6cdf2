"""Configuration loading and client construction for the SFTPGo API client.

Values come from ``SFTPGO_*`` environment variables and may be overridden
by a JSON configuration file.
"""

import json
import logging
import os
import pathlib
from collections.abc import Mapping
from typing import Any

import pydantic
import structlog

from . import sftpgoapi
from .metrics import ClientMetrics
from .sftpgoapi.types import KeyValue

CONFIG_ENV_VAR = "SFTPGO_CLIENT_CONFIG_PATH"
MAX_ENV_HEADERS = 10
logger = structlog.get_logger(__name__)


class ClientConfig(pydantic.BaseModel):
    """Configuration for the SFTPGo API client."""

    host: str = pydantic.Field(
        sftpgoapi.DEFAULT_HOST,
        description="Base URL for the SFTPGo API",
        min_length=1,
    )
    username: str | None = pydantic.Field(None, description="Admin username")
    password: pydantic.SecretStr | None = pydantic.Field(None, description="Admin password")
    api_key: pydantic.SecretStr | None = pydantic.Field(
        None,
        description="API key, used instead of username and password when set",
    )
    headers: list[KeyValue] = pydantic.Field(
        default_factory=list,
        description="Headers added to every HTTP request",
    )
    edition: int = pydantic.Field(0, description="0 = Open Source, 1 = Enterprise", ge=0, le=1)
    timeout: float = pydantic.Field(
        sftpgoapi.DEFAULT_TIMEOUT,
        description="Request timeout in seconds",
        gt=0,
    )
    log_level: str = pydantic.Field("INFO", description="Logging level")


def configure_logging(log_level_name: str) -> None:
    """Configure structlog for logfmt output."""
    log_level = getattr(logging, log_level_name.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.EventRenamer("msg"),
            structlog.processors.format_exc_info,
            structlog.processors.LogfmtRenderer(
                key_order=("timestamp", "level", "msg"),
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _int_from_env(environ: Mapping[str, str], name: str, default: int) -> int:
    try:
        return int(environ.get(name, ""))
    except ValueError:
        return default


def headers_from_env(environ: Mapping[str, str]) -> list[KeyValue]:
    """Read headers from SFTPGO_HEADERS__<n>__KEY / __VALUE pairs, n in 0..9.

    Pairs with an empty key or value are skipped.
    """
    headers = []
    for idx in range(MAX_ENV_HEADERS):
        key = environ.get(f"SFTPGO_HEADERS__{idx}__KEY", "").strip()
        value = environ.get(f"SFTPGO_HEADERS__{idx}__VALUE", "").strip()
        if key and value:
            headers.append(KeyValue(key=key, value=value))
    return headers


def _env_values(environ: Mapping[str, str]) -> dict[str, Any]:
    return {
        "host": environ.get("SFTPGO_HOST") or sftpgoapi.DEFAULT_HOST,
        "username": environ.get("SFTPGO_USERNAME") or None,
        "password": environ.get("SFTPGO_PASSWORD") or None,
        "api_key": environ.get("SFTPGO_API_KEY") or None,
        "headers": headers_from_env(environ),
        "edition": _int_from_env(environ, "SFTPGO_EDITION", 0),
    }


def config_from_env(environ: Mapping[str, str] | None = None) -> ClientConfig:
    """Build the configuration from SFTPGO_* environment variables."""
    environ = os.environ if environ is None else environ
    return ClientConfig(**_env_values(environ))


def load_config(
    config_path: str,
    environ: Mapping[str, str] | None = None,
) -> ClientConfig:
    """Load configuration from a JSON file on top of environment values.

    Keys set to null in the file keep the environment value. A non-empty
    ``headers`` list replaces the headers read from the environment.
    """
    path = pathlib.Path(config_path)
    if not path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with path.open("r") as f:
        data = json.load(f)

    if not isinstance(data, dict):
        msg = f"Configuration file must hold a JSON object: {config_path}"
        raise ValueError(msg)

    environ = os.environ if environ is None else environ
    values = _env_values(environ)
    for key, value in data.items():
        if value is None or (key == "headers" and not value):
            continue
        values[key] = value

    return ClientConfig(**values)


def create_client(
    config: ClientConfig,
    metrics: ClientMetrics | None = None,
) -> sftpgoapi.SftpGoApiClient:
    """Construct the API client from validated config.

    Raises:
        ConfigurationError: If the config holds no usable credentials.
    """
    logger.debug(
        "Creating SFTPGo client",
        host=config.host,
        username=config.username,
        api_key_set=config.api_key is not None,
        header_names=[h.key for h in config.headers],
        edition=config.edition,
    )
    client = sftpgoapi.SftpGoApiClient(
        base_url=config.host,
        username=config.username,
        password=config.password.get_secret_value() if config.password else None,
        api_key=config.api_key.get_secret_value() if config.api_key else None,
        headers=config.headers,
        edition=config.edition,
        timeout=config.timeout,
        metrics=metrics,
    )
    logger.info("Configured SFTPGo client", host=config.host, success=True)
    return client


def create_client_from_environment(
    environ: Mapping[str, str] | None = None,
) -> sftpgoapi.SftpGoApiClient:
    """Create a client, reading the config file named by CONFIG_ENV_VAR if set."""
    environ = os.environ if environ is None else environ
    config_path = environ.get(CONFIG_ENV_VAR)
    if config_path:
        config = load_config(config_path, environ)
    else:
        config = config_from_env(environ)
    configure_logging(config.log_level)
    return create_client(config)
