"""
Core functionality for softpaq-mirror.

This package provides shared services: configuration, the repository
context, the error taxonomy, downloads, catalog caching and logging.
"""

from softpaq_mirror.core.config import (
    ConfigLoader,
    DownloadConfig,
    ProxyConfig,
    ReferenceConfig,
    SSLConfig,
    ToolConfig,
    load_config,
)
from softpaq_mirror.core.context import RepositoryContext
from softpaq_mirror.core.errors import (
    CatalogUnavailable,
    DownloadFailed,
    ManifestNotFound,
    ManifestParseError,
    NotificationSendFailed,
    Result,
    SignatureInvalid,
    SoftpaqMirrorError,
    SyncError,
)

__all__ = [
    "CatalogUnavailable",
    "ConfigLoader",
    "DownloadConfig",
    "DownloadFailed",
    "ManifestNotFound",
    "ManifestParseError",
    "NotificationSendFailed",
    "ProxyConfig",
    "ReferenceConfig",
    "RepositoryContext",
    "Result",
    "SSLConfig",
    "SignatureInvalid",
    "SoftpaqMirrorError",
    "SyncError",
    "ToolConfig",
    "load_config",
]
