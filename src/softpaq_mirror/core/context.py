from __future__ import annotations

"""
Repository context.

A RepositoryContext names every on-disk location of one repository and the
network settings used to fill it. It is built once per operation and passed
down explicitly.
"""

from dataclasses import dataclass, field
from pathlib import Path

from softpaq_mirror.core.config import (
    DownloadConfig,
    ProxyConfig,
    ReferenceConfig,
    SSLConfig,
    ToolConfig,
)

REPOSITORY_DIR = ".repository"
MANIFEST_FILENAME = "repository.json"
MARK_DIR = "mark"
ACTIVITY_LOG_FILENAME = "activity.log"
REPOSITORY_CACHE_DIR = "cache"


@dataclass(frozen=True)
class RepositoryContext:
    """Paths and settings for a single repository root."""

    root: Path
    cache_path: Path
    download: DownloadConfig = field(default_factory=DownloadConfig)
    reference: ReferenceConfig = field(default_factory=ReferenceConfig)
    proxy: ProxyConfig | None = None
    ssl: SSLConfig | None = None

    @classmethod
    def from_config(cls, root: Path, config: ToolConfig | None = None) -> RepositoryContext:
        """Build a context for root using the tool configuration."""
        config = config or ToolConfig()
        return cls(
            root=Path(root),
            cache_path=config.get_cache_path(),
            download=config.download,
            reference=config.reference,
            proxy=config.proxy,
            ssl=config.ssl,
        )

    @property
    def repository_dir(self) -> Path:
        return self.root / REPOSITORY_DIR

    @property
    def manifest_path(self) -> Path:
        return self.repository_dir / MANIFEST_FILENAME

    @property
    def mark_dir(self) -> Path:
        return self.repository_dir / MARK_DIR

    @property
    def activity_log_path(self) -> Path:
        return self.repository_dir / ACTIVITY_LOG_FILENAME

    @property
    def repository_cache_path(self) -> Path:
        """Cache inside the repository, used by offline cache mode."""
        return self.repository_dir / REPOSITORY_CACHE_DIR

    @property
    def retry_pause(self) -> float:
        return self.download.retry_pause_seconds

    def report_path(self, extension: str) -> Path:
        return self.repository_dir / f"Contents.{extension}"
