"""
Configuration management for softpaq-mirror.

This module provides Pydantic models for the tool configuration (network,
proxy, TLS and reference host settings) and YAML-based configuration loading.
Per-repository state lives in the repository manifest, not here.
"""

from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_REFERENCE_URL = "https://hpia.hpcloud.hp.com/ref"
FALLBACK_REFERENCE_URL = "https://ftp.hp.com/pub/caps-softpaq/cmit/imagepal/ref"


class ProxyConfig(BaseModel):
    """HTTP proxy configuration."""

    http_proxy: Optional[str] = None
    https_proxy: Optional[str] = None
    no_proxy: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None


class SSLConfig(BaseModel):
    """SSL/TLS configuration for HTTPS connections."""

    # Path to CA bundle file (PEM format)
    ca_bundle: Optional[str] = None

    # Disable SSL verification (not recommended for production)
    verify: bool = True

    # Client certificate for mTLS
    client_cert: Optional[str] = None
    client_key: Optional[str] = None


class DownloadConfig(BaseModel):
    """Download configuration for file downloads."""

    timeout: int = 300  # Download timeout in seconds
    retry_pause_seconds: float = 5.0  # Fixed pause between attempts
    chunk_size: int = 65536

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        """Validate timeout value."""
        if v < 1:
            raise ValueError("timeout must be at least 1 second")
        return v

    @field_validator("retry_pause_seconds")
    @classmethod
    def validate_retry_pause(cls, v: float) -> float:
        """Validate retry pause."""
        if v < 0:
            raise ValueError("retry_pause_seconds cannot be negative")
        return v


class ReferenceConfig(BaseModel):
    """Reference catalog host configuration."""

    url: str = DEFAULT_REFERENCE_URL
    fallback_url: Optional[str] = FALLBACK_REFERENCE_URL
    bitness: Literal[32, 64] = 64

    @field_validator("url", "fallback_url")
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        """Normalize base URLs."""
        return v.rstrip("/") if v else v


class ToolConfig(BaseModel):
    """Global softpaq-mirror configuration."""

    download: DownloadConfig = Field(default_factory=DownloadConfig)
    reference: ReferenceConfig = Field(default_factory=ReferenceConfig)
    proxy: Optional[ProxyConfig] = None
    ssl: Optional[SSLConfig] = None

    # Catalog cache directory (defaults to ~/.cache/softpaq-mirror)
    cache_path: Optional[str] = None

    def get_cache_path(self) -> Path:
        """Get catalog cache path (with default)."""
        if self.cache_path:
            return Path(self.cache_path)
        return Path.home() / ".cache" / "softpaq-mirror"


class ConfigLoader:
    """Configuration file loader."""

    def __init__(self, config_path: Path):
        """Initialize config loader.

        Args:
            config_path: Path to configuration file
        """
        self.config_path = config_path

    def load(self) -> ToolConfig:
        """Load configuration from YAML file.

        Returns:
            ToolConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path) as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"YAML syntax error in {self.config_path}:\n{e}")

        try:
            return ToolConfig(**config_data)
        except Exception as e:
            raise ValueError(f"Configuration validation error in {self.config_path}:\n{e}")


def load_config(config_path: Optional[Path] = None) -> ToolConfig:
    """Load configuration from file.

    Priority:
    1. Explicit config_path parameter (--config CLI flag)
    2. SOFTPAQ_MIRROR_CONFIG environment variable
    3. Default locations (/etc/softpaq-mirror/config.yaml,
       ~/.config/softpaq-mirror/config.yaml, ./config.yaml)

    Args:
        config_path: Path to config file. If None, tries the environment or default locations.

    Returns:
        ToolConfig instance

    Raises:
        FileNotFoundError: If an explicitly requested config file is missing
    """
    import os

    default_paths = [
        Path("/etc/softpaq-mirror/config.yaml"),
        Path.home() / ".config" / "softpaq-mirror" / "config.yaml",
        Path("config.yaml"),
    ]

    env_path = os.environ.get("SOFTPAQ_MIRROR_CONFIG")
    if config_path:
        paths_to_try = [config_path]
    elif env_path:
        paths_to_try = [Path(env_path)]
    else:
        paths_to_try = default_paths

    for path in paths_to_try:
        if path.exists():
            return ConfigLoader(path).load()

    if config_path:
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    if env_path:
        raise FileNotFoundError(
            f"Configuration file not found: {env_path} (from SOFTPAQ_MIRROR_CONFIG)"
        )
    return ToolConfig()
