"""Tests for the repository activity log."""

import logging

from softpaq_mirror.core.activity import ActivityLog


def test_activity_log_appends(repo_ctx):
    logger = logging.getLogger("softpaq_mirror.repository.sync")

    with ActivityLog(repo_ctx):
        logger.info("first sync")
    with ActivityLog(repo_ctx):
        logger.warning("second sync")
    logger.info("outside any operation")

    lines = repo_ctx.activity_log_path.read_text().splitlines()
    assert len(lines) == 2
    assert lines[0].startswith("[")
    assert "INFO - first sync" in lines[0]
    assert "WARNING - second sync" in lines[1]


def test_activity_log_restores_level(repo_ctx):
    package_logger = logging.getLogger("softpaq_mirror")
    previous = package_logger.level

    with ActivityLog(repo_ctx, level=logging.DEBUG):
        assert package_logger.getEffectiveLevel() == logging.DEBUG

    assert package_logger.level == previous
    assert not any(isinstance(h, logging.FileHandler) for h in package_logger.handlers)
