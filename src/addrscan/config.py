"""Config file."""
from __future__ import annotations

import os
from typing import Any

import yaml
from eth_utils import is_address, to_checksum_address
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from addrscan.domain.errors import ConfigError
from addrscan.domain.value_types import Mode

DEFAULT_CONFIG_PATH = "./config.yaml"

# keys as spelled in older config.yaml files
_LEGACY_KEYS = {
    "url": "rpc_url",
    "address": "address",
    "fromblock": "from_block",
    "toblock": "to_block",
    "filepath": "file_path",
    "transfersonly": "transfers_only",
}


class CollectorConfig(BaseSettings):
    """Collector settings. Negative block bounds mean "unspecified"."""

    rpc_url: str
    address: str
    from_block: int = -1
    to_block: int = -1
    transfers_only: bool = False
    file_path: str = "./.data/output.csv"

    tokens_file: str = "./.data/tokens.json"
    timeout_s: int = Field(20, gt=0)
    channel_size: int = Field(256, gt=0)
    grace_period_s: float = Field(5.0, ge=0)
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="ADDRSCAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("address")
    @classmethod
    def checksum_address(cls, v: str) -> str:
        if not is_address(v):
            raise ValueError(f"not an address: {v!r}")
        return to_checksum_address(v)

    @field_validator("log_level")
    @classmethod
    def upper_level(cls, v: str) -> str:
        return v.upper()

    @property
    def mode(self) -> Mode:
        return "transfers" if self.transfers_only else "transactions"


def read_yaml_config(path: str) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"config {path} must be a mapping")
    out: dict[str, Any] = {}
    for k, v in raw.items():
        key = str(k).lower()
        out[_LEGACY_KEYS.get(key, key)] = v
    return out


def load_config(config_path: str | None = None, **overrides: Any) -> CollectorConfig:
    """
    Precedence (low -> high): defaults, env / .env, YAML file, explicit overrides.
    A missing file is only an error when the path was given explicitly.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    values: dict[str, Any] = {}
    try:
        if os.path.exists(path):
            values = read_yaml_config(path)
        elif config_path:
            raise ConfigError(f"config file not found: {config_path}")
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"invalid config {path}: {e}") from e

    values.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return CollectorConfig(**values)
    except ValidationError as e:
        raise ConfigError(f"invalid config: {e}") from e
