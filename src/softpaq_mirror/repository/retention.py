from __future__ import annotations

"""
Mark-and-sweep retention.

Every sync deletes all marker files and creates one zero-byte marker per
selected SoftPaq before any download starts. Cleanup later deletes every
SoftPaq artifact in the repository root whose id has no marker.
"""

import logging
import re
from collections.abc import Iterable
from pathlib import Path

from softpaq_mirror.core.context import RepositoryContext
from softpaq_mirror.core.retry import retry_on_lock

logger = logging.getLogger(__name__)

MARK_SUFFIX = ".mark"

# sp123456.exe, sp123456.cva, sp123456.html
ARTIFACT_PATTERN = re.compile(r"^(sp\d+)\.(exe|cva|html)$", re.IGNORECASE)


def parse_artifact_id(filename: str) -> str | None:
    """Return the SoftPaq id encoded in an artifact filename, if any."""
    match = ARTIFACT_PATTERN.match(filename)
    return match.group(1).lower() if match else None


class RetentionTracker:
    """Marker files recording which SoftPaqs are currently in scope."""

    def __init__(self, ctx: RepositoryContext, max_retries: int = 1):
        self.ctx = ctx
        self.mark_dir = ctx.mark_dir
        self.max_retries = max_retries

    def marker_path(self, softpaq_id: str) -> Path:
        return self.mark_dir / f"{softpaq_id.lower()}{MARK_SUFFIX}"

    def flush(self) -> int:
        """Delete all markers before a new cycle.

        Returns:
            Number of markers deleted
        """
        if not self.mark_dir.exists():
            return 0

        deleted = 0
        for marker in self.mark_dir.glob(f"*{MARK_SUFFIX}"):
            retry_on_lock(
                lambda m=marker: m.unlink(missing_ok=True),
                self.max_retries,
                self.ctx.retry_pause,
                f"Deleting marker {marker.name}",
            )
            deleted += 1
        logger.debug(f"Flushed {deleted} marker(s)")
        return deleted

    def mark(self, softpaq_id: str) -> Path:
        """Create or refresh the marker of one SoftPaq."""
        marker = self.marker_path(softpaq_id)

        def _touch() -> None:
            self.mark_dir.mkdir(parents=True, exist_ok=True)
            marker.touch(exist_ok=True)

        retry_on_lock(_touch, self.max_retries, self.ctx.retry_pause, f"Marking {softpaq_id}")
        return marker

    def mark_all(self, softpaq_ids: Iterable[str]) -> int:
        count = 0
        for softpaq_id in softpaq_ids:
            self.mark(softpaq_id)
            count += 1
        logger.info(f"Marked {count} SoftPaq(s) for retention")
        return count

    def marked_ids(self) -> set[str]:
        if not self.mark_dir.exists():
            return set()
        return {marker.name[: -len(MARK_SUFFIX)] for marker in self.mark_dir.glob(f"*{MARK_SUFFIX}")}

    def cleanup(self) -> int:
        """Delete SoftPaq artifacts that have no marker.

        Files that are not SoftPaq artifacts are left alone.

        Returns:
            Number of files deleted
        """
        if not self.ctx.root.exists():
            return 0

        marked = self.marked_ids()
        deleted = 0
        for path in sorted(self.ctx.root.iterdir()):
            if not path.is_file():
                continue
            softpaq_id = parse_artifact_id(path.name)
            if softpaq_id is None or softpaq_id in marked:
                continue
            retry_on_lock(
                lambda p=path: p.unlink(missing_ok=True),
                self.max_retries,
                self.ctx.retry_pause,
                f"Deleting {path.name}",
            )
            deleted += 1
            logger.info(f"Removed unreferenced artifact {path.name}")

        logger.info(f"Cleanup removed {deleted} file(s)")
        return deleted


def cleanup_repository(ctx: RepositoryContext, max_retries: int = 1) -> int:
    """Delete every artifact in ctx.root that the last sync did not mark."""
    return RetentionTracker(ctx, max_retries).cleanup()
