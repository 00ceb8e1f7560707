from __future__ import annotations

"""
Repository synchronization.

A sync runs in four phases against one loaded manifest snapshot:

1. Build the package list of every platform from its reference catalogs.
2. Flush the retention markers and mark every selected SoftPaq.
3. Refresh the offline cache files, when enabled.
4. Download and verify each SoftPaq.

Platform and package failures are handed to dispatch_policy(), which
either aborts the sync (Fail) or logs, notifies and continues
(LogAndContinue). The contents report is written even after a failure.
"""

import logging
from dataclasses import dataclass, field

import requests

from softpaq_mirror.core.cache import CatalogCache
from softpaq_mirror.core.context import RepositoryContext
from softpaq_mirror.core.downloader import DownloadManager
from softpaq_mirror.core.errors import CatalogUnavailable, SoftpaqMirrorError, SyncError
from softpaq_mirror.core.output import OutputLevel, SyncOutputter
from softpaq_mirror.repository.manifest import ErrorHandling, RepositoryManifest, Settings
from softpaq_mirror.repository.notifications import NotificationDispatcher
from softpaq_mirror.repository.report import write_report
from softpaq_mirror.repository.retention import RetentionTracker
from softpaq_mirror.softpaq.catalog import ReferenceCatalogResolver, reference_hosts
from softpaq_mirror.softpaq.cva import SignatureVerifier
from softpaq_mirror.softpaq.orchestrator import DownloadOrchestrator, PackageState
from softpaq_mirror.softpaq.packages import (
    PackageListBuilder,
    dedupe_records,
    group_filters_by_platform,
    merge_platform_filters,
)
from softpaq_mirror.softpaq.models import SoftpaqRecord

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Result of a repository sync."""

    success: bool = False
    platforms_processed: list[str] = field(default_factory=list)
    platforms_failed: list[str] = field(default_factory=list)
    packages_total: int = 0
    packages_downloaded: int = 0
    packages_skipped: int = 0
    signature_failures: list[str] = field(default_factory=list)
    bytes_downloaded: int = 0
    errors: list[SyncError] = field(default_factory=list)
    # The error that aborted the sync, if any
    error: SyncError | None = None
    report_path: str | None = None

    @property
    def partial(self) -> bool:
        """True when the sync completed but skipped something."""
        return self.success and bool(self.errors)


def dispatch_policy(
    error: SyncError,
    settings: Settings,
    notifier: NotificationDispatcher,
    ctx: RepositoryContext,
) -> None:
    """Apply the OnRemoteFileNotFound policy to a failure.

    Raises:
        The failure's exception when the policy is Fail
    """
    if settings.on_remote_file_not_found == ErrorHandling.FAIL:
        raise error.to_exception()

    scope = error.softpaq_id or error.platform or "repository"
    logger.error(f"[{error.kind}] {scope}: {error.message} (continuing)")
    notifier.notify_failure(error.message, error.exception, str(ctx.root))


def sync_repository(
    manifest: RepositoryManifest,
    ctx: RepositoryContext,
    reference_url: str | None = None,
    offline_cache_mode: bool | None = None,
    session: requests.Session | None = None,
    verifier: SignatureVerifier | None = None,
    outputter: SyncOutputter | None = None,
) -> SyncReport:
    """Synchronize a repository with the reference catalogs.

    Args:
        manifest: Loaded manifest snapshot
        ctx: Repository context
        reference_url: Reference host (default: ctx.reference.url)
        offline_cache_mode: Override of the manifest's OfflineCacheMode
        session: HTTP session to use (default: one built from ctx)
        verifier: Binary verifier (default: CVA digest check)
        outputter: Console output (default: quiet)

    Returns:
        SyncReport; success is False when the sync was aborted
    """
    output = outputter or SyncOutputter(OutputLevel.QUIET)
    settings = manifest.settings
    max_retries = settings.exclusive_lock_max_retries
    offline = settings.offline_cache_enabled if offline_cache_mode is None else offline_cache_mode
    reference_url = (reference_url or ctx.reference.url).rstrip("/")
    hosts = reference_hosts(reference_url, ctx.reference.fallback_url)

    downloader = DownloadManager(ctx.download, ctx.proxy, ctx.ssl, session=session)
    cache = CatalogCache(ctx.repository_cache_path if offline else ctx.cache_path)
    resolver = ReferenceCatalogResolver(downloader, cache, hosts, ctx.reference.bitness, max_retries)
    builder = PackageListBuilder(resolver)
    tracker = RetentionTracker(ctx, max_retries)
    orchestrator = DownloadOrchestrator(ctx, downloader, max_retries, verifier)
    notifier = NotificationDispatcher(manifest.notifications)

    report = SyncReport()
    output.header(str(ctx.root), reference_url, offline_cache="enabled" if offline else "disabled")
    logger.info(f"Starting sync of {ctx.root} from {reference_url}")

    try:
        output.phase("Building package list", number=1)
        if not manifest.filters:
            logger.warning("Repository has no filters, nothing to synchronize")

        records: list[SoftpaqRecord] = []
        for platform, filters in group_filters_by_platform(manifest.filters).items():
            query = merge_platform_filters(platform, filters)
            output.verbose(
                f"Platform {platform}: {len(filters)} filter(s), {len(query.targets)} catalog target(s)"
            )
            try:
                platform_records = builder.build_platform(query)
            except CatalogUnavailable as e:
                report.platforms_failed.append(platform)
                error = SyncError.from_exception("catalog", e, platform=platform)
                report.errors.append(error)
                output.warning(str(e))
                dispatch_policy(error, settings, notifier, ctx)
                continue
            report.platforms_processed.append(platform)
            output.info(f"Platform {platform}: {len(platform_records)} SoftPaq(s) selected")
            records.extend(platform_records)

        records = dedupe_records(records)
        report.packages_total = len(records)

        output.phase("Marking SoftPaqs for retention", number=2)
        tracker.flush()
        tracker.mark_all(record.id for record in records)

        if offline:
            output.phase("Refreshing offline cache", number=3)
            for result in orchestrator.fetch_offline_cache(hosts, manifest.platforms()):
                if not result.ok:
                    report.errors.append(result.error)
                    dispatch_policy(result.error, settings, notifier, ctx)

        output.phase("Downloading SoftPaqs", number=4 if offline else 3)
        output.start_progress(len(records), "Downloading", "softpaqs")
        try:
            for index, record in enumerate(records, start=1):
                result = orchestrator.download_package(record)
                if not result.ok:
                    report.errors.append(result.error)
                    output.package(record.id, "failed", index, len(records))
                    dispatch_policy(result.error, settings, notifier, ctx)
                    continue

                outcome = result.value
                report.bytes_downloaded += outcome.bytes_downloaded
                if outcome.state is PackageState.SKIPPED:
                    report.packages_skipped += 1
                elif outcome.state is PackageState.DONE:
                    report.packages_downloaded += 1
                elif outcome.state is PackageState.SIGNATURE_INVALID:
                    report.signature_failures.append(record.id)
                output.package(record.id, outcome.state.value, index, len(records))
        finally:
            output.finish_progress()

        report.success = True

    except (SoftpaqMirrorError, OSError) as e:
        report.success = False
        # Keep the scope of a failure re-raised by dispatch_policy
        report.error = next((err for err in report.errors if err.exception is e), None)
        if report.error is None:
            report.error = SyncError.from_exception("sync", e)
        logger.error(f"Sync aborted: {e}")
        output.error(f"Sync aborted: {e}")
        notifier.notify_failure(f"Sync of {ctx.root} aborted: {e}", e, str(ctx.root))

    try:
        report.report_path = str(write_report(ctx, settings.repository_report))
    except OSError as e:
        logger.error(f"Could not write repository report: {e}")

    logger.info(
        f"Sync finished: success={report.success}, {report.packages_downloaded} downloaded, "
        f"{report.packages_skipped} up to date, {len(report.signature_failures)} failed verification, "
        f"{len(report.errors)} error(s)"
    )
    output.summary(
        packages=report.packages_total,
        downloaded=report.packages_downloaded,
        up_to_date=report.packages_skipped,
        failed_verification=len(report.signature_failures),
        errors=len(report.errors),
    )
    return report
