"""Tests for reference catalog resolution."""

import xml.etree.ElementTree as ET

import pytest

from conftest import build_catalog_xml, catalog_entry
from softpaq_mirror.core.cache import CatalogCache
from softpaq_mirror.core.config import DEFAULT_REFERENCE_URL, DownloadConfig, FALLBACK_REFERENCE_URL
from softpaq_mirror.core.downloader import DownloadManager
from softpaq_mirror.core.errors import CatalogUnavailable
from softpaq_mirror.softpaq.catalog import (
    ReferenceCatalogResolver,
    catalog_filename,
    parse_catalog,
    reference_hosts,
)


@pytest.fixture
def resolver(reference, tmp_path):
    downloader = DownloadManager(DownloadConfig(retry_pause_seconds=0), session=reference.session)
    cache = CatalogCache(tmp_path / "cache")
    hosts = reference_hosts(DEFAULT_REFERENCE_URL, FALLBACK_REFERENCE_URL)
    return ReferenceCatalogResolver(downloader, cache, hosts, bitness=64, max_retries=2)


def test_reference_hosts():
    assert reference_hosts(DEFAULT_REFERENCE_URL + "/", FALLBACK_REFERENCE_URL) == [
        DEFAULT_REFERENCE_URL,
        FALLBACK_REFERENCE_URL,
    ]
    # A custom host never falls back
    assert reference_hosts("https://mirror.example.com/ref", FALLBACK_REFERENCE_URL) == [
        "https://mirror.example.com/ref"
    ]
    assert reference_hosts(DEFAULT_REFERENCE_URL, None) == [DEFAULT_REFERENCE_URL]


def test_catalog_filename():
    assert catalog_filename("83b2", 64, "win10", "22H2") == "83b2_64_10.0.22h2.cab"
    assert catalog_filename("83b2", 64, "win10", "20H2") == "83b2_64_10.0.2009.cab"
    assert catalog_filename("8549", 32, "win11", "23H2", ltsc=True) == "8549_32_11.0.23h2.e.cab"


def test_candidates_order(resolver):
    urls = [c.url for c in resolver.candidates("83b2", "win10", "21H2", prefer_ltsc=True)]
    assert urls == [
        f"{DEFAULT_REFERENCE_URL}/83b2/83b2_64_10.0.21h2.e.cab",
        f"{FALLBACK_REFERENCE_URL}/83b2/83b2_64_10.0.21h2.e.cab",
        f"{DEFAULT_REFERENCE_URL}/83b2/83b2_64_10.0.21h2.cab",
        f"{FALLBACK_REFERENCE_URL}/83b2/83b2_64_10.0.21h2.cab",
    ]


def test_parse_catalog_skips_malformed_entries():
    root = ET.fromstring(build_catalog_xml([catalog_entry("sp1"), {"Name": "no id"}, catalog_entry("sp2")]))
    assert [r.id for r in parse_catalog(root)] == ["sp1", "sp2"]


def test_parse_catalog_rejects_other_documents():
    with pytest.raises(ValueError, match="Unexpected catalog root"):
        parse_catalog(ET.fromstring("<Something/>"))


def test_resolve_from_primary(resolver, reference):
    reference.add_catalog("83b2", "83b2_64_10.0.22h2.cab", [catalog_entry("sp1"), catalog_entry("sp2")])

    records = resolver.resolve("83b2", "win10", "22H2")

    assert [r.id for r in records] == ["sp1", "sp2"]


def test_resolve_falls_back_to_secondary_host(resolver, reference):
    url = reference.add_catalog(
        "83b2", "83b2_64_10.0.22h2.cab", [catalog_entry("sp7")], host=FALLBACK_REFERENCE_URL
    )

    records = resolver.resolve("83b2", "win10", "22H2")

    assert [r.id for r in records] == ["sp7"]
    assert reference.get_count(url) == 1
    # 404 on the primary is not retried
    assert reference.get_count(f"{DEFAULT_REFERENCE_URL}/83b2/83b2_64_10.0.22h2.cab") == 1


def test_resolve_prefers_ltsc(resolver, reference):
    reference.add_catalog("83b2", "83b2_64_10.0.21h2.e.cab", [catalog_entry("sp100")])
    reference.add_catalog("83b2", "83b2_64_10.0.21h2.cab", [catalog_entry("sp200")])

    assert [r.id for r in resolver.resolve("83b2", "win10", "21H2", prefer_ltsc=True)] == ["sp100"]
    assert [r.id for r in resolver.resolve("83b2", "win10", "21H2")] == ["sp200"]


def test_resolve_ltsc_degrades_to_regular(resolver, reference):
    reference.add_catalog("83b2", "83b2_64_10.0.21h2.cab", [catalog_entry("sp200")])

    assert [r.id for r in resolver.resolve("83b2", "win10", "21H2", prefer_ltsc=True)] == ["sp200"]


def test_resolve_unavailable(resolver):
    with pytest.raises(CatalogUnavailable) as exc_info:
        resolver.resolve("83b2", "win10", "22H2")

    assert exc_info.value.platform == "83b2"
    assert exc_info.value.version == "22H2"


def test_resolve_uses_cache_when_unchanged(resolver, reference):
    url = reference.add_catalog("83b2", "83b2_64_10.0.22h2.cab", [catalog_entry("sp1")])
    reference.last_modified[url] = "Fri, 01 Mar 2024 12:00:00 GMT"

    resolver.resolve("83b2", "win10", "22H2")
    records = resolver.resolve("83b2", "win10", "22H2")

    assert [r.id for r in records] == ["sp1"]
    assert reference.get_count(url) == 1


def test_resolve_discards_corrupt_catalog(resolver, reference):
    url = f"{DEFAULT_REFERENCE_URL}/83b2/83b2_64_10.0.22h2.cab"
    reference.files[url] = b"garbage"
    fallback = reference.add_catalog(
        "83b2", "83b2_64_10.0.22h2.cab", [catalog_entry("sp3")], host=FALLBACK_REFERENCE_URL
    )

    records = resolver.resolve("83b2", "win10", "22H2")

    assert [r.id for r in records] == ["sp3"]
    assert reference.get_count(fallback) == 1


def test_resolve_unpublished_sets_not_found(resolver):
    with pytest.raises(CatalogUnavailable) as exc_info:
        resolver.resolve("83b2", "win10", "22H2", prefer_ltsc=True)

    assert exc_info.value.not_found


def test_resolve_host_error_keeps_catalog_required(resolver, reference):
    """A host error on any candidate means the catalog may well exist."""
    reference.unavailable.add(f"{DEFAULT_REFERENCE_URL}/83b2/83b2_64_10.0.22h2.cab")

    with pytest.raises(CatalogUnavailable) as exc_info:
        resolver.resolve("83b2", "win10", "22H2")

    assert not exc_info.value.not_found
