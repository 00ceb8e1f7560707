"""Tests for the reference catalog cache."""

from datetime import datetime, timezone

import pytest
from cabarchive import CabArchive, CabFile

from conftest import build_catalog_cab, catalog_entry
from softpaq_mirror.core.cache import CatalogCache


@pytest.fixture
def cache(tmp_path):
    return CatalogCache(tmp_path / "cache")


def test_cab_and_xml_paths(cache, tmp_path):
    cab = cache.cab_path("83b2", "83b2_64_10.0.22h2.cab")
    assert cab == tmp_path / "cache" / "83b2" / "83b2_64_10.0.22h2.cab"
    assert cache.xml_path(cab).name == "83b2_64_10.0.22h2.xml"


def test_store_mirrors_remote_mtime(cache):
    cab = cache.cab_path("83b2", "83b2_64_10.0.22h2.cab")
    remote_mtime = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    cache.store(cab, b"cab-bytes", remote_mtime)

    assert cab.read_bytes() == b"cab-bytes"
    assert cab.stat().st_mtime == remote_mtime.timestamp()
    assert not cab.with_suffix(".tmp").exists()


def test_is_current(cache):
    cab = cache.cab_path("83b2", "83b2_64_10.0.22h2.cab")
    remote_mtime = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    assert not cache.is_current(cab, remote_mtime)

    cache.store(cab, b"cab-bytes", remote_mtime)

    assert cache.is_current(cab, remote_mtime)
    assert not cache.is_current(cab, datetime(2024, 4, 1, tzinfo=timezone.utc))
    # Unknown upstream time always downloads
    assert not cache.is_current(cab, None)


def test_store_invalidates_extracted_xml(cache):
    cab = cache.cab_path("83b2", "83b2_64_10.0.22h2.cab")
    cache.store(cab, build_catalog_cab([catalog_entry("sp1")]), None)
    xml_file = cache.extract_xml(cab)
    assert xml_file.exists()

    cache.store(cab, build_catalog_cab([catalog_entry("sp2")]), None)

    assert not xml_file.exists()


def test_load_xml_extracts_from_cab(cache):
    cab = cache.cab_path("83b2", "83b2_64_10.0.22h2.cab")
    cache.store(cab, build_catalog_cab([catalog_entry("sp1"), catalog_entry("sp2")]), None)

    root = cache.load_xml(cab)

    assert root.tag == "ImagePal"
    assert [e.findtext("Id") for e in root.findall("Solutions/UpdateInfo")] == ["sp1", "sp2"]
    assert cache.xml_path(cab).exists()


def test_load_xml_reextracts_corrupt_xml(cache):
    cab = cache.cab_path("83b2", "83b2_64_10.0.22h2.cab")
    cache.store(cab, build_catalog_cab([catalog_entry("sp1")]), None)
    cache.xml_path(cab).write_text("<ImagePal><Solutions>")

    root = cache.load_xml(cab)

    assert root.find("Solutions/UpdateInfo/Id").text == "sp1"


def test_extract_xml_corrupt_cab(cache):
    cab = cache.cab_path("83b2", "83b2_64_10.0.22h2.cab")
    cache.store(cab, b"this is not a cabinet", None)

    with pytest.raises(ValueError, match="Corrupt catalog archive"):
        cache.load_xml(cab)


def test_extract_xml_without_xml_member(cache):
    archive = CabArchive()
    archive["readme.txt"] = CabFile(b"nothing to see")
    cab = cache.cab_path("83b2", "83b2_64_10.0.22h2.cab")
    cache.store(cab, archive.save(), None)

    with pytest.raises(ValueError, match="contains no XML document"):
        cache.extract_xml(cab)


def test_discard(cache):
    cab = cache.cab_path("83b2", "83b2_64_10.0.22h2.cab")
    cache.store(cab, build_catalog_cab([catalog_entry("sp1")]), None)
    cache.extract_xml(cab)

    cache.discard(cab)

    assert not cab.exists()
    assert not cache.xml_path(cab).exists()
