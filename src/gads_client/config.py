"""Typed client and customer options plus YAML / environment loading."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Optional

import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "GOOGLE_ADS"

REQUIRED_FIELDS = (
    "developer_token",
    "client_id",
    "client_secret",
)

OPTIONAL_FIELDS = (
    "refresh_token",
    "login_customer_id",
    "linked_customer_id",
    "customer_id",
    "json_key_file_path",
    "api_version",
    "endpoint",
)


def load_env(dotenv_path: str | Path | None = None, override: bool = False) -> bool:
    """Load a .env file into the environment.

    Without ``dotenv_path`` the file named by ``GOOGLE_ADS_DOTENV_PATH`` is used,
    else the nearest ``.env`` above the working directory. Variables already
    set win unless ``override`` is true.
    """
    path = dotenv_path or os.getenv("GOOGLE_ADS_DOTENV_PATH") or find_dotenv(usecwd=True)
    if not path:
        return False
    if not Path(path).is_file():
        raise ConfigurationError(f"Environment file not found: {path}")
    loaded = load_dotenv(path, override=override)
    logger.debug("Loaded environment from %s", path)
    return loaded


def normalize_customer_id(value) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value).replace("-", "").strip()


class ClientOptions(BaseModel):
    """Application-level credentials shared by every customer session."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    client_secret: str
    developer_token: str
    service_account_key: Optional[str] = None
    login_customer_id: Optional[str] = None
    api_version: Optional[str] = None
    endpoint: Optional[str] = None

    @field_validator("login_customer_id", mode="before")
    @classmethod
    def _normalize_login_customer_id(cls, value):
        return normalize_customer_id(value)


class CustomerOptions(BaseModel):
    """Identifies one customer session: the target account and how to reach it."""

    model_config = ConfigDict(frozen=True)

    customer_id: str
    refresh_token: Optional[str] = None
    login_customer_id: Optional[str] = None
    linked_customer_id: Optional[str] = None

    @field_validator("customer_id", mode="before")
    @classmethod
    def _normalize_customer_id(cls, value):
        # list_accessible_customers runs without a target customer
        return normalize_customer_id(value) or ""

    @field_validator("login_customer_id", "linked_customer_id", mode="before")
    @classmethod
    def _normalize_optional_ids(cls, value):
        return normalize_customer_id(value)


class ClientSettings(BaseModel):
    """Flat google-ads.yaml style settings."""

    developer_token: str
    client_id: str
    client_secret: str
    refresh_token: Optional[str] = None
    login_customer_id: Optional[str] = None
    linked_customer_id: Optional[str] = None
    customer_id: Optional[str] = None
    json_key_file_path: Optional[Path] = None
    api_version: Optional[str] = None
    endpoint: Optional[str] = None

    @field_validator("login_customer_id", "linked_customer_id", "customer_id", mode="before")
    @classmethod
    def _ensure_string(cls, value):
        return normalize_customer_id(value)

    def client_options(self) -> ClientOptions:
        service_account_key = None
        if self.json_key_file_path is not None:
            try:
                service_account_key = self.json_key_file_path.read_text(encoding="utf-8")
            except OSError as exc:
                raise ConfigurationError(
                    f"Unable to read service account key file {self.json_key_file_path}: {exc}"
                ) from exc
        return ClientOptions(
            client_id=self.client_id,
            client_secret=self.client_secret,
            developer_token=self.developer_token,
            service_account_key=service_account_key,
            login_customer_id=self.login_customer_id,
            api_version=self.api_version,
            endpoint=self.endpoint,
        )

    def customer_options(self, customer_id: str | None = None) -> CustomerOptions:
        target = customer_id or self.customer_id
        if not target:
            raise ConfigurationError("A customer_id is required to open a customer session")
        return CustomerOptions(
            customer_id=target,
            refresh_token=self.refresh_token,
            login_customer_id=self.login_customer_id,
            linked_customer_id=self.linked_customer_id,
        )


def _parse_settings(raw: dict, source: str) -> ClientSettings:
    try:
        return ClientSettings(**raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration in {source}: {exc}") from exc


class ConfigLoader:
    """Loads google-ads.yaml style configuration and validates it with Pydantic."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.config_path = Path(
            path or os.getenv("GOOGLE_ADS_CONFIGURATION_FILE_PATH", "google-ads.yaml")
        )
        if not self.config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")
        self.model = self._parse_yaml()

    def _parse_yaml(self) -> ClientSettings:
        with self.config_path.open("r", encoding="utf-8") as fp:
            raw = yaml.safe_load(fp) or {}
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Configuration file {self.config_path} is not a mapping")
        return _parse_settings(raw, str(self.config_path))


def _env_key(prefix: str, suffix: str) -> str:
    return f"{prefix}_{suffix.upper()}"


def load_from_env(prefix: str = ENV_PREFIX, dotenv: bool = True) -> ClientSettings:
    """Build settings from ``<PREFIX>_DEVELOPER_TOKEN`` style environment variables."""
    if dotenv:
        load_env()
    prefix = prefix.upper()
    values: Dict[str, str] = {}
    missing: list[str] = []
    for field in REQUIRED_FIELDS:
        key = _env_key(prefix, field)
        value = os.getenv(key)
        if not value:
            missing.append(key)
        else:
            values[field] = value

    if missing:
        raise ConfigurationError(
            "Missing Google Ads environment variables: {}".format(", ".join(sorted(missing)))
        )

    for field in OPTIONAL_FIELDS:
        value = os.getenv(_env_key(prefix, field))
        if value:
            values[field] = value
    return _parse_settings(values, f"{prefix}_* environment variables")


__all__ = [
    "ClientOptions",
    "ClientSettings",
    "ConfigLoader",
    "CustomerOptions",
    "load_env",
    "load_from_env",
    "normalize_customer_id",
]
