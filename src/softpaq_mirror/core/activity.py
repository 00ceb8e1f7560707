from __future__ import annotations

"""Append-only activity log kept under the repository root."""

import logging
from types import TracebackType

from softpaq_mirror.core.context import RepositoryContext

ACTIVITY_FORMAT = "[%(asctime)s] %(levelname)s - %(message)s"


class ActivityLog:
    """Mirror softpaq_mirror log records into <root>/.repository/activity.log.

    Use as a context manager around a repository operation:

        with ActivityLog(ctx):
            sync_repository(manifest, ctx)
    """

    def __init__(self, ctx: RepositoryContext, level: int = logging.INFO):
        self.ctx = ctx
        self.level = level
        self.handler: logging.FileHandler | None = None
        self._logger = logging.getLogger("softpaq_mirror")
        self._previous_level: int | None = None

    def __enter__(self) -> ActivityLog:
        self.ctx.repository_dir.mkdir(parents=True, exist_ok=True)
        self.handler = logging.FileHandler(self.ctx.activity_log_path, mode="a", encoding="utf-8")
        self.handler.setLevel(self.level)
        self.handler.setFormatter(logging.Formatter(ACTIVITY_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S"))
        self._logger.addHandler(self.handler)

        # Records below the handler level must still reach it
        if self._logger.getEffectiveLevel() > self.level:
            self._previous_level = self._logger.level
            self._logger.setLevel(self.level)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self.handler is not None:
            self._logger.removeHandler(self.handler)
            self.handler.close()
            self.handler = None
        if self._previous_level is not None:
            self._logger.setLevel(self._previous_level)
            self._previous_level = None
