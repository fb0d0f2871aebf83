"""Configuration management for the Context Manager router.

Supports YAML configuration files and environment variable overrides.
Configuration is loaded once and cached for performance.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RouterSettings(BaseSettings):
    """Router and domain connection configuration."""
    name: str = Field(default="Context Manager")
    version: str = Field(default="1.0.0")

    # Inbound MCP transport
    transport: Literal["stdio", "sse"] = Field(default="stdio")
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8080)

    # Domain registry
    domains_path: str = Field(default="config/domains", description="Directory of per-domain YAML files")
    domains_root: str = Field(default="domains", description="Base directory of the built-in domain servers")
    enabled_domains: list[str] = Field(default_factory=list, description="Subset of domains to expose; empty means all")
    data_dir: Optional[str] = Field(default=None, description="Where domain servers persist graph and session files")

    # Features
    descriptions_path: Optional[str] = Field(default=None, description="Override for the tool description directory")
    description_refresh: bool = Field(default=True)
    list_all_entities: bool = Field(default=True)
    session_id_style: Literal["composite", "passthrough"] = Field(default="composite")

    # Timeouts
    connect_timeout: float = Field(default=30.0, gt=0)
    call_timeout: float = Field(default=120.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="ROUTER_",
        env_file=".env",
        extra="ignore"
    )


class Settings(BaseSettings):
    """Main application settings."""
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)

    router: RouterSettings = Field(default_factory=RouterSettings)

    model_config = SettingsConfigDict(
        env_prefix="CONTEXT_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore"
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file; a missing file means defaults."""
        return cls(**load_yaml_config(path))


def load_yaml_config(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file."""
    path = Path(path)
    if not path.exists():
        return {}

    with open(path) as f:
        return yaml.safe_load(f) or {}


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    config_path = os.environ.get("ROUTER_CONFIG_PATH", "config/settings.yaml")
    return Settings.from_yaml(config_path)


def get_domain_configs(domains_path: str = "config/domains") -> dict[str, dict[str, Any]]:
    """Load all per-domain YAML files, keyed by file stem."""
    path = Path(domains_path)
    configs = {}

    if not path.exists():
        return configs

    for config_file in sorted(path.glob("*.yaml")):
        domain_name = config_file.stem
        configs[domain_name] = load_yaml_config(config_file)

    return configs
