from __future__ import annotations

"""
Per-package download orchestration.

Each SoftPaq moves through a fixed sequence of states:

    NEED_METADATA -> METADATA_DOWNLOADED -> CHECK_EXISTING
        -> SKIPPED                      (binary on disk and valid)
        -> NEED_BINARY -> BINARY_DOWNLOADED -> VERIFY_SIGNATURE
            -> DONE
            -> SIGNATURE_INVALID        (binary and metadata deleted)

Metadata is always downloaded again; the binary only when it is missing or
does not verify. Download errors are returned as failed Results so the
caller can apply the OnRemoteFileNotFound policy.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from softpaq_mirror.core.context import RepositoryContext
from softpaq_mirror.core.downloader import DownloadManager
from softpaq_mirror.core.errors import DownloadFailed, Result, SignatureInvalid, SyncError
from softpaq_mirror.softpaq.cva import CvaDigestVerifier, CvaMetadata, SignatureVerifier, is_valid
from softpaq_mirror.softpaq.models import SoftpaqRecord

logger = logging.getLogger(__name__)

PLATFORM_LIST_FILENAME = "platformList.cab"
KNOWLEDGE_BASE_PATH = "kb/v1/kb.cab"


class PackageState(Enum):
    """Download state of one SoftPaq."""

    NEED_METADATA = "need-metadata"
    METADATA_DOWNLOADED = "metadata-downloaded"
    CHECK_EXISTING = "check-existing"
    SKIPPED = "skipped"
    NEED_BINARY = "need-binary"
    BINARY_DOWNLOADED = "binary-downloaded"
    VERIFY_SIGNATURE = "verify-signature"
    DONE = "done"
    SIGNATURE_INVALID = "signature-invalid"


@dataclass
class PackageOutcome:
    """Final state of one package download."""

    softpaq_id: str
    state: PackageState
    binary_downloaded: bool = False
    bytes_downloaded: int = 0


class DownloadOrchestrator:
    """Downloads and verifies SoftPaq artifacts into a repository root."""

    def __init__(
        self,
        ctx: RepositoryContext,
        downloader: DownloadManager,
        max_retries: int = 1,
        verifier: SignatureVerifier | None = None,
    ):
        """Initialize orchestrator.

        Args:
            ctx: Repository context
            downloader: Download manager
            max_retries: Attempts per network operation
            verifier: Binary verifier (default: CVA digest check)
        """
        self.ctx = ctx
        self.downloader = downloader
        self.max_retries = max_retries
        self.verifier = verifier or CvaDigestVerifier()

    def artifact_paths(self, softpaq_id: str) -> tuple[Path, Path]:
        """Return (metadata path, binary path) inside the repository root."""
        return self.ctx.root / f"{softpaq_id}.cva", self.ctx.root / f"{softpaq_id}.exe"

    def download_package(self, record: SoftpaqRecord) -> Result[PackageOutcome]:
        """Bring one SoftPaq up to date in the repository.

        Args:
            record: Catalog record of the SoftPaq

        Returns:
            Result holding the PackageOutcome, or a "download" SyncError when
            a remote file could not be fetched
        """
        cva_path, exe_path = self.artifact_paths(record.id)
        outcome = PackageOutcome(softpaq_id=record.id, state=PackageState.NEED_METADATA)
        metadata: CvaMetadata | None = None

        try:
            while True:
                state = outcome.state
                logger.debug(f"{record.id}: {state.value}")

                if state is PackageState.NEED_METADATA:
                    outcome.bytes_downloaded += self.downloader.download_file(
                        record.artifact_url("cva"), cva_path, self.max_retries
                    )
                    outcome.state = PackageState.METADATA_DOWNLOADED

                elif state is PackageState.METADATA_DOWNLOADED:
                    try:
                        metadata = CvaMetadata.from_file(cva_path)
                    except ValueError as e:
                        self._discard(record.id, cva_path, exe_path, str(e))
                        outcome.state = PackageState.SIGNATURE_INVALID
                        continue
                    outcome.state = PackageState.CHECK_EXISTING

                elif state is PackageState.CHECK_EXISTING:
                    if exe_path.exists() and is_valid(self.verifier, exe_path, metadata):
                        outcome.state = PackageState.SKIPPED
                    else:
                        if exe_path.exists():
                            logger.info(f"{exe_path.name} on disk does not verify, downloading again")
                        outcome.state = PackageState.NEED_BINARY

                elif state is PackageState.NEED_BINARY:
                    outcome.bytes_downloaded += self.downloader.download_file(
                        record.artifact_url("exe"), exe_path, self.max_retries
                    )
                    outcome.binary_downloaded = True
                    outcome.state = PackageState.BINARY_DOWNLOADED

                elif state is PackageState.BINARY_DOWNLOADED:
                    outcome.state = PackageState.VERIFY_SIGNATURE

                elif state is PackageState.VERIFY_SIGNATURE:
                    try:
                        self.verifier.verify(exe_path, metadata)
                    except SignatureInvalid as e:
                        self._discard(record.id, cva_path, exe_path, e.reason)
                        outcome.state = PackageState.SIGNATURE_INVALID
                        continue
                    outcome.state = PackageState.DONE

                else:
                    break

        except DownloadFailed as e:
            return Result.failure(SyncError.from_exception("download", e, softpaq_id=record.id))

        logger.info(f"{record.id}: {outcome.state.value}")
        return Result.success(outcome)

    def _discard(self, softpaq_id: str, cva_path: Path, exe_path: Path, reason: str) -> None:
        """Delete both artifacts so the next sync retries from scratch."""
        exe_path.unlink(missing_ok=True)
        cva_path.unlink(missing_ok=True)
        logger.warning(f"{softpaq_id} failed verification and was removed, will retry next sync: {reason}")

    def fetch_offline_cache(self, hosts: list[str], platforms: list[str]) -> list[Result[Path]]:
        """Download the auxiliary files used by offline image assistants.

        Fetches the global platform list, each platform's advisory data, and
        the shared knowledge-base bundle into the repository cache. Each file
        tries the hosts in order and fails independently.

        Args:
            hosts: Reference base URLs in the order to try them
            platforms: Platform ids of the repository

        Returns:
            One Result per file
        """
        relative_paths = [PLATFORM_LIST_FILENAME]
        relative_paths += [f"{platform}/{platform}_cds.cab" for platform in platforms]
        relative_paths.append(KNOWLEDGE_BASE_PATH)
        return [self._fetch_cache_file(hosts, path) for path in relative_paths]

    def _fetch_cache_file(self, hosts: list[str], relative_path: str) -> Result[Path]:
        if not hosts:
            raise ValueError("No reference hosts configured")
        dest = self.ctx.repository_cache_path / relative_path
        last_error: DownloadFailed | None = None
        for host in hosts:
            url = f"{host}/{relative_path}"
            try:
                self.downloader.download_file(url, dest, self.max_retries)
            except DownloadFailed as e:
                logger.info(f"Offline cache file not available at {url}: {e.reason}")
                last_error = e
                continue
            logger.info(f"Offline cache: {relative_path} updated")
            return Result.success(dest)

        return Result.failure(SyncError.from_exception("offline-cache", last_error))
