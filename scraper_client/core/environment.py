from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from scraper_client.core.errors import ConfigError

DEFAULT_ENV_FILE = "env.json"
ENV_VAR_NAME = "RTCV_SCRAPER_CLIENT_ENV"


class LoginUsersRestriction(str, Enum):
    NONE = "none"
    ONE = "one"
    ONE_OR_MORE = "one_or_more"


class ServerConfig(BaseModel):
    server_location: str = Field(min_length=1)
    api_key_id: str = Field(min_length=1)
    api_key: str = Field(min_length=1)

    @field_validator("server_location")
    @classmethod
    def _require_http_scheme(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("server_location must start with a supported protocol like: http:// or https://")
        return value


class LoginUser(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class ClientEnvironment(BaseModel):
    """Servers to submit to and the users that log in to the scraped site.

    ``primary_server`` decides whether a submission succeeded; every entry of
    ``alternative_servers`` only receives best-effort copies.
    """

    login_users: list[LoginUser] = Field(default_factory=list)
    primary_server: ServerConfig
    alternative_servers: list[ServerConfig] = Field(default_factory=list)

    @field_validator("login_users", "alternative_servers", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def servers(self) -> list[ServerConfig]:
        return [self.primary_server, *self.alternative_servers]


def validate_login_users(environment: ClientEnvironment, restriction: LoginUsersRestriction) -> None:
    count = len(environment.login_users)
    if restriction == LoginUsersRestriction.ONE:
        if count == 0:
            raise ConfigError("expected exactly one login user but got none")
        if count != 1:
            raise ConfigError(f"expected exactly one login user but got {count}")
    elif restriction == LoginUsersRestriction.ONE_OR_MORE and count == 0:
        raise ConfigError("expected one or more login users but got none")


def parse_environment(raw: str | bytes | dict[str, Any]) -> ClientEnvironment:
    try:
        data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
    except json.JSONDecodeError as exc:
        raise ConfigError(f"env is not valid json: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError("env must be a json object")

    try:
        return ClientEnvironment.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"validating env failed: {exc}") from exc


def load_environment(env_file: str | Path = DEFAULT_ENV_FILE, raw_env: str | None = None) -> ClientEnvironment:
    """Read the client environment from ``env_file``, falling back to ``raw_env``.

    ``raw_env`` is the JSON document normally taken from ``$RTCV_SCRAPER_CLIENT_ENV``.
    """

    path = Path(env_file)
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        content = None
    except OSError as exc:
        raise ConfigError(f"unable to read env file {path}: {exc}") from exc

    if content is not None:
        return parse_environment(content)
    if raw_env:
        return parse_environment(raw_env)

    if str(env_file) != DEFAULT_ENV_FILE:
        raise ConfigError(f"no {env_file} file or ${ENV_VAR_NAME} environment variable found, cannot continue")
    raise ConfigError(
        f"no {DEFAULT_ENV_FILE} file or ${ENV_VAR_NAME} environment variable found in {Path.cwd()}, cannot continue"
        " (hint: you can create an env.json for this scraper on the RT-CV dashboard)"
    )
