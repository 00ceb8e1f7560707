"""Tests for configuration management."""

import tempfile
from pathlib import Path

import pytest

from softpaq_mirror.core.config import (
    DEFAULT_REFERENCE_URL,
    FALLBACK_REFERENCE_URL,
    ConfigLoader,
    DownloadConfig,
    ReferenceConfig,
    SSLConfig,
    ToolConfig,
    load_config,
)
from softpaq_mirror.core.context import RepositoryContext


def test_download_config_defaults():
    """Test download config with defaults."""
    config = DownloadConfig()
    assert config.timeout == 300
    assert config.retry_pause_seconds == 5.0
    assert config.chunk_size == 65536


def test_download_config_validation():
    """Test download config rejects invalid values."""
    with pytest.raises(ValueError, match="timeout must be at least 1 second"):
        DownloadConfig(timeout=0)

    with pytest.raises(ValueError, match="retry_pause_seconds cannot be negative"):
        DownloadConfig(retry_pause_seconds=-1)


def test_reference_config_defaults():
    """Test reference hosts default to HP's public hosts."""
    config = ReferenceConfig()
    assert config.url == DEFAULT_REFERENCE_URL
    assert config.fallback_url == FALLBACK_REFERENCE_URL
    assert config.bitness == 64


def test_reference_config_strips_trailing_slash():
    config = ReferenceConfig(url="https://mirror.example.com/ref/")
    assert config.url == "https://mirror.example.com/ref"


def test_reference_config_bitness_validation():
    with pytest.raises(ValueError):
        ReferenceConfig(bitness=16)


def test_tool_config_cache_path():
    """Test cache path getter."""
    assert ToolConfig().get_cache_path() == Path.home() / ".cache" / "softpaq-mirror"
    assert ToolConfig(cache_path="/var/cache/softpaq").get_cache_path() == Path("/var/cache/softpaq")


def test_config_loader_basic():
    """Test basic configuration loading."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "config.yaml"

        config_yaml = """
download:
  timeout: 60
  retry_pause_seconds: 2

reference:
  url: https://mirror.example.com/ref/
  bitness: 32

ssl:
  verify: false

cache_path: /tmp/softpaq-cache
"""
        config_path.write_text(config_yaml)

        config = ConfigLoader(config_path).load()

        assert config.download.timeout == 60
        assert config.download.retry_pause_seconds == 2.0
        assert config.reference.url == "https://mirror.example.com/ref"
        assert config.reference.bitness == 32
        assert config.ssl == SSLConfig(verify=False)
        assert config.get_cache_path() == Path("/tmp/softpaq-cache")


def test_config_loader_empty_file():
    """An empty file yields the defaults."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "config.yaml"
        config_path.write_text("")

        config = ConfigLoader(config_path).load()
        assert config == ToolConfig()


def test_config_loader_yaml_error():
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "config.yaml"
        config_path.write_text("download: [unclosed\n")

        with pytest.raises(ValueError, match="YAML syntax error"):
            ConfigLoader(config_path).load()


def test_config_loader_validation_error():
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "config.yaml"
        config_path.write_text("download:\n  timeout: 0\n")

        with pytest.raises(ValueError, match="Configuration validation error"):
            ConfigLoader(config_path).load()


def test_config_loader_file_not_found():
    """Test loading non-existent config file."""
    loader = ConfigLoader(Path("/non/existent/config.yaml"))

    with pytest.raises(FileNotFoundError):
        loader.load()


def test_load_config_explicit_path_missing():
    with pytest.raises(FileNotFoundError):
        load_config(Path("/non/existent/config.yaml"))


def test_load_config_from_environment(tmp_path, monkeypatch):
    """SOFTPAQ_MIRROR_CONFIG is used when no path is given."""
    config_path = tmp_path / "env.yaml"
    config_path.write_text("download:\n  timeout: 42\n")
    monkeypatch.setenv("SOFTPAQ_MIRROR_CONFIG", str(config_path))

    assert load_config().download.timeout == 42


def test_load_config_environment_missing(tmp_path, monkeypatch):
    monkeypatch.setenv("SOFTPAQ_MIRROR_CONFIG", str(tmp_path / "missing.yaml"))

    with pytest.raises(FileNotFoundError, match="SOFTPAQ_MIRROR_CONFIG"):
        load_config()


def test_load_config_default_paths(tmp_path, monkeypatch):
    """Test load_config with default path fallback."""
    monkeypatch.delenv("SOFTPAQ_MIRROR_CONFIG", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.chdir(tmp_path)

    config = load_config(config_path=None)

    assert isinstance(config, ToolConfig)
    assert config.reference.url == DEFAULT_REFERENCE_URL


def test_repository_context_paths(tmp_path):
    """Every repository path hangs off <root>/.repository."""
    config = ToolConfig(cache_path=str(tmp_path / "cache"), download=DownloadConfig(retry_pause_seconds=1.5))
    ctx = RepositoryContext.from_config(tmp_path / "repo", config)

    assert ctx.manifest_path == tmp_path / "repo" / ".repository" / "repository.json"
    assert ctx.mark_dir == tmp_path / "repo" / ".repository" / "mark"
    assert ctx.activity_log_path == tmp_path / "repo" / ".repository" / "activity.log"
    assert ctx.repository_cache_path == tmp_path / "repo" / ".repository" / "cache"
    assert ctx.report_path("json") == tmp_path / "repo" / ".repository" / "Contents.json"
    assert ctx.cache_path == tmp_path / "cache"
    assert ctx.retry_pause == 1.5
