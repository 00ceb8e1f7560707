"""Repository manifest, retention, notifications, reporting and sync."""

from softpaq_mirror.repository.manifest import (
    ErrorHandling,
    ManifestStore,
    NotificationConfig,
    OfflineCacheMode,
    ReportFormat,
    RepositoryManifest,
    Settings,
    initialize_repository,
    load_manifest,
)
from softpaq_mirror.repository.retention import RetentionTracker, cleanup_repository
from softpaq_mirror.repository.sync import SyncReport, sync_repository

__all__ = [
    "ErrorHandling",
    "ManifestStore",
    "NotificationConfig",
    "OfflineCacheMode",
    "ReportFormat",
    "RepositoryManifest",
    "RetentionTracker",
    "Settings",
    "SyncReport",
    "cleanup_repository",
    "initialize_repository",
    "load_manifest",
    "sync_repository",
]
