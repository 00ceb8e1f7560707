from __future__ import annotations

"""
Error taxonomy for softpaq-mirror.

Exceptions are raised where a failure ends the current operation. Failures
that must be routed through the OnRemoteFileNotFound policy are carried as
SyncError values inside a Result instead.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


class SoftpaqMirrorError(Exception):
    """Base class for all softpaq-mirror errors."""


class ManifestNotFound(SoftpaqMirrorError):
    """The repository root has no manifest."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"Repository manifest not found: {path}")


class ManifestParseError(SoftpaqMirrorError):
    """The manifest exists but cannot be parsed or validated."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Could not parse repository manifest {path}: {reason}")


class CatalogUnavailable(SoftpaqMirrorError):
    """No reference host yielded the requested catalog."""

    def __init__(
        self, platform: str, operating_system: str, version: str, reason: str = "", not_found: bool = False
    ):
        self.platform = platform
        self.operating_system = operating_system
        self.version = version
        # True only when every host answered 404, i.e. the catalog is not published
        self.not_found = not_found
        message = f"Reference catalog unavailable for platform {platform} ({operating_system} {version})"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class DownloadFailed(SoftpaqMirrorError):
    """A remote file could not be downloaded."""

    def __init__(self, url: str, reason: str, status_code: int | None = None):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Download of {url} failed: {reason}")

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


class SignatureInvalid(SoftpaqMirrorError):
    """A downloaded binary does not match the digest its metadata declares."""

    def __init__(self, softpaq_id: str, reason: str):
        self.softpaq_id = softpaq_id
        self.reason = reason
        super().__init__(f"Signature check failed for {softpaq_id}: {reason}")


class NotificationSendFailed(SoftpaqMirrorError):
    """The SMTP transport rejected or failed to deliver a notification."""


@dataclass(frozen=True)
class SyncError:
    """A failure that happened during sync, scoped to a platform or package."""

    kind: str  # manifest, catalog, download, offline-cache
    message: str
    platform: str | None = None
    softpaq_id: str | None = None
    exception: BaseException | None = None

    @classmethod
    def from_exception(
        cls,
        kind: str,
        exc: BaseException,
        platform: str | None = None,
        softpaq_id: str | None = None,
    ) -> SyncError:
        return cls(
            kind=kind,
            message=str(exc),
            platform=platform,
            softpaq_id=softpaq_id,
            exception=exc,
        )

    def to_exception(self) -> BaseException:
        """Return the original exception, or wrap the message in one."""
        if self.exception is not None:
            return self.exception
        return SoftpaqMirrorError(self.message)


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of an operation: either a value or a SyncError."""

    value: T | None = None
    error: SyncError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: SyncError) -> Result[T]:
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error.to_exception()
        return self.value  # type: ignore[return-value]
