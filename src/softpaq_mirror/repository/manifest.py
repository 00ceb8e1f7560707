from __future__ import annotations

"""
Repository manifest.

The manifest is a single JSON document at <root>/.repository/repository.json
holding the repository's filters, settings and notification configuration.
It is read once per operation, migrated and default-filled on load, and
written back only through ManifestStore.write(), which re-stamps the
modification fields.
"""

import getpass
import json
import logging
import re
import tempfile
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from softpaq_mirror.core.context import RepositoryContext
from softpaq_mirror.core.errors import ManifestNotFound, ManifestParseError, Result, SyncError
from softpaq_mirror.core.retry import retry_on_lock
from softpaq_mirror.softpaq.filters import matches_exact, matches_ltsc, normalize_filter, normalize_os
from softpaq_mirror.softpaq.models import WILDCARD, Filter

logger = logging.getLogger(__name__)

# PowerShell's ConvertTo-Json date form, e.g. "/Date(1672531200000)/"
LEGACY_DATE_PATTERN = re.compile(r"^/Date\((-?\d+)\)/$")

DEFAULT_MAX_RETRIES = 10


class ErrorHandling(str, Enum):
    FAIL = "Fail"
    LOG_AND_CONTINUE = "LogAndContinue"


class OfflineCacheMode(str, Enum):
    ENABLE = "Enable"
    DISABLE = "Disable"


class ReportFormat(str, Enum):
    CSV = "CSV"
    JSON = "JSON"
    XML = "XML"
    EXCEL_CSV = "ExcelCSV"


class Settings(BaseModel):
    """Repository behavior settings."""

    model_config = ConfigDict(populate_by_name=True)

    on_remote_file_not_found: ErrorHandling = Field(ErrorHandling.FAIL, alias="OnRemoteFileNotFound")
    exclusive_lock_max_retries: int = Field(DEFAULT_MAX_RETRIES, alias="ExclusiveLockMaxRetries")
    offline_cache_mode: OfflineCacheMode = Field(OfflineCacheMode.DISABLE, alias="OfflineCacheMode")
    repository_report: ReportFormat = Field(ReportFormat.CSV, alias="RepositoryReport")

    @field_validator("exclusive_lock_max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if v < 1:
            raise ValueError("ExclusiveLockMaxRetries must be at least 1")
        return v

    @property
    def offline_cache_enabled(self) -> bool:
        return self.offline_cache_mode == OfflineCacheMode.ENABLE


class NotificationConfig(BaseModel):
    """SMTP notification settings."""

    model_config = ConfigDict(populate_by_name=True)

    server: Optional[str] = None
    port: int = 25
    tls: bool = False
    username: Optional[str] = None
    # Stored as provided; never logged
    password: Optional[str] = Field(None, repr=False)
    from_address: Optional[str] = Field(None, alias="from")
    from_name: Optional[str] = Field(None, alias="fromname")
    addresses: List[str] = Field(default_factory=list)

    @field_validator("addresses", mode="before")
    @classmethod
    def dedupe_addresses(cls, v):
        """Drop empty and case-insensitively duplicate addresses."""
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        result: list[str] = []
        seen: set[str] = set()
        for address in v:
            address = str(address).strip()
            if address and address.lower() not in seen:
                seen.add(address.lower())
                result.append(address)
        return result


class RepositoryManifest(BaseModel):
    """The repository.json document."""

    model_config = ConfigDict(populate_by_name=True)

    filters: List[Filter] = Field(default_factory=list, alias="Filters")
    settings: Settings = Field(default_factory=Settings, alias="Settings")
    notifications: Optional[NotificationConfig] = Field(None, alias="Notifications")
    date_created: Optional[datetime] = Field(None, alias="DateCreated")
    created_by: Optional[str] = Field(None, alias="CreatedBy")
    date_last_modified: Optional[datetime] = Field(None, alias="DateLastModified")
    modified_by: Optional[str] = Field(None, alias="ModifiedBy")

    def platforms(self) -> list[str]:
        """Platform ids in first-seen filter order."""
        result: list[str] = []
        for f in self.filters:
            if f.platform not in result:
                result.append(f.platform)
        return result


def current_user() -> str:
    try:
        return getpass.getuser()
    except (OSError, KeyError):
        return "unknown"


def migrate_manifest_data(data: dict[str, Any]) -> dict[str, Any]:
    """Bring a raw manifest document up to the current schema.

    Fills missing or null sections with defaults and converts legacy
    PowerShell date strings to ISO 8601.
    """
    data = dict(data)
    if data.get("Filters") is None:
        data["Filters"] = []
    if data.get("Settings") is None:
        data["Settings"] = {}

    for key in ("DateCreated", "DateLastModified"):
        value = data.get(key)
        if isinstance(value, str):
            match = LEGACY_DATE_PATTERN.match(value.strip())
            if match:
                millis = int(match.group(1))
                data[key] = datetime.fromtimestamp(millis / 1000, tz=timezone.utc).isoformat()
    return data


class ManifestStore:
    """Reads and writes the manifest of one repository."""

    def __init__(self, ctx: RepositoryContext):
        self.ctx = ctx
        self.path = ctx.manifest_path

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> RepositoryManifest:
        """Load and migrate the manifest.

        Raises:
            ManifestNotFound: If the repository has no manifest
            ManifestParseError: If the manifest is not valid JSON or fails validation
        """
        if not self.exists():
            raise ManifestNotFound(self.path)

        try:
            data = json.loads(self.path.read_text(encoding="utf-8-sig"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ManifestParseError(self.path, str(e)) from e

        if not isinstance(data, dict):
            raise ManifestParseError(self.path, "top-level value is not an object")

        try:
            return RepositoryManifest.model_validate(migrate_manifest_data(data))
        except ValidationError as e:
            raise ManifestParseError(self.path, str(e)) from e

    def write(self, manifest: RepositoryManifest) -> RepositoryManifest:
        """Stamp and persist the manifest.

        The document is written to a temporary file and moved into place,
        retrying while another process holds the file.
        """
        manifest.date_last_modified = datetime.now(timezone.utc)
        manifest.modified_by = current_user()
        payload = manifest.model_dump_json(by_alias=True, indent=2)

        def _write() -> None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.path.parent, suffix=".tmp", delete=False
            ) as tmp:
                tmp.write(payload)
                tmp_path = Path(tmp.name)
            try:
                tmp_path.replace(self.path)
            finally:
                tmp_path.unlink(missing_ok=True)

        retry_on_lock(
            _write,
            manifest.settings.exclusive_lock_max_retries,
            self.ctx.retry_pause,
            f"Writing {self.path.name}",
        )
        return manifest

    def initialize(self) -> RepositoryManifest:
        """Create an empty repository at the context root.

        Raises:
            FileExistsError: If the root already holds a manifest
        """
        if self.exists():
            raise FileExistsError(f"Repository already initialized: {self.ctx.root}")

        self.ctx.mark_dir.mkdir(parents=True, exist_ok=True)
        now = datetime.now(timezone.utc)
        manifest = RepositoryManifest(date_created=now, created_by=current_user())
        self.write(manifest)
        logger.info(f"Initialized repository at {self.ctx.root}")
        return manifest

    def add_filter(self, filter_: Filter, current_os_version: str | None = None) -> bool:
        """Normalize and add a filter unless an identical one exists.

        Returns:
            True if the filter was added
        """
        manifest = self.load()
        normalized = normalize_filter(filter_, current_os_version)
        if any(matches_exact(existing, normalized) for existing in manifest.filters):
            logger.info(f"Filter for platform {normalized.platform} already exists, not adding")
            return False

        manifest.filters.append(normalized)
        self.write(manifest)
        logger.info(f"Added filter for platform {normalized.platform} ({normalized.operating_system})")
        return True

    def remove_filter(
        self,
        platform: str,
        operating_system: str | None = None,
        category: list[str] | None = None,
        release_type: list[str] | None = None,
        characteristic: list[str] | None = None,
        prefer_ltsc: bool | None = None,
        current_os_version: str | None = None,
    ) -> int:
        """Remove the filters of a platform matching every given criterion.

        Criteria left as None match any value.

        Returns:
            Number of filters removed
        """
        manifest = self.load()
        platform = platform.strip().lower()
        wanted = Filter(
            platform=platform,
            category=category,
            release_type=release_type,
            characteristic=characteristic,
        )
        os_value = (
            normalize_os(operating_system, current_os_version) if operating_system is not None else None
        )

        def same(a, b) -> bool:
            if a == WILDCARD or b == WILDCARD:
                return a == b
            return set(a) == set(b)

        def selected(f: Filter) -> bool:
            if f.platform != platform:
                return False
            if os_value is not None and f.operating_system.lower() != os_value.lower():
                return False
            if category is not None and not same(f.category, wanted.category):
                return False
            if release_type is not None and not same(f.release_type, wanted.release_type):
                return False
            if characteristic is not None and not same(f.characteristic, wanted.characteristic):
                return False
            if not matches_ltsc(prefer_ltsc, f.prefer_ltsc):
                return False
            return True

        kept = [f for f in manifest.filters if not selected(f)]
        removed = len(manifest.filters) - len(kept)
        if removed:
            manifest.filters = kept
            self.write(manifest)
            logger.info(f"Removed {removed} filter(s) for platform {platform}")
        return removed

    def set_setting(self, name: str, value: Any) -> Settings:
        """Change one setting by its manifest name (e.g. "OnRemoteFileNotFound").

        Raises:
            ValueError: On unknown settings or invalid values
        """
        manifest = self.load()
        current = manifest.settings.model_dump(by_alias=True)
        if name not in current:
            raise ValueError(f"Unknown setting: {name}. Must be one of {sorted(current)}")
        current[name] = value
        try:
            manifest.settings = Settings.model_validate(current)
        except ValidationError as e:
            raise ValueError(f"Invalid value for {name}: {value!r}") from e
        self.write(manifest)
        logger.info(f"Setting {name} = {value}")
        return manifest.settings

    def set_notification(self, **fields: Any) -> NotificationConfig:
        """Create or update the notification configuration.

        Keyword arguments use the model field names (server, port, tls,
        username, password, from_address, from_name, addresses).
        """
        manifest = self.load()
        base = manifest.notifications.model_dump() if manifest.notifications else {}
        base.update({k: v for k, v in fields.items() if v is not None})
        manifest.notifications = NotificationConfig.model_validate(base)
        self.write(manifest)
        logger.info(f"Notification server set to {manifest.notifications.server}")
        return manifest.notifications

    def clear_notification(self) -> None:
        manifest = self.load()
        manifest.notifications = None
        self.write(manifest)

    def add_recipient(self, address: str) -> NotificationConfig:
        manifest = self.load()
        config = manifest.notifications or NotificationConfig()
        manifest.notifications = NotificationConfig.model_validate(
            {**config.model_dump(), "addresses": config.addresses + [address]}
        )
        self.write(manifest)
        return manifest.notifications

    def remove_recipient(self, address: str) -> NotificationConfig | None:
        manifest = self.load()
        if manifest.notifications is None:
            return None
        remaining = [a for a in manifest.notifications.addresses if a.lower() != address.strip().lower()]
        manifest.notifications = manifest.notifications.model_copy(update={"addresses": remaining})
        self.write(manifest)
        return manifest.notifications


def load_manifest(ctx: RepositoryContext) -> Result[RepositoryManifest]:
    """Load the manifest of ctx.root without raising.

    Returns:
        Result holding the manifest, or a "manifest" SyncError
    """
    try:
        return Result.success(ManifestStore(ctx).load())
    except (ManifestNotFound, ManifestParseError) as e:
        logger.error(str(e))
        return Result.failure(SyncError.from_exception("manifest", e))


def initialize_repository(ctx: RepositoryContext) -> RepositoryManifest:
    """Create .repository/, the mark directory and an empty manifest.

    Raises:
        FileExistsError: If ctx.root is already a repository
    """
    return ManifestStore(ctx).initialize()
