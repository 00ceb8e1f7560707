from __future__ import annotations

"""
Reference catalog resolution.

A reference catalog is a CAB-compressed ImagePal XML document listing the
SoftPaqs published for one platform and OS release. This module builds the
candidate catalog URLs (LTSC first when preferred, primary host before the
fallback host), acquires the first available one through the catalog cache,
and parses it into SoftpaqRecord objects.
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass

from softpaq_mirror.core.cache import CatalogCache
from softpaq_mirror.core.config import DEFAULT_REFERENCE_URL
from softpaq_mirror.core.downloader import DownloadManager
from softpaq_mirror.core.errors import CatalogUnavailable, DownloadFailed
from softpaq_mirror.softpaq.filters import catalog_os_version
from softpaq_mirror.softpaq.models import SoftpaqRecord

logger = logging.getLogger(__name__)


def reference_hosts(reference_url: str, fallback_url: str | None) -> list[str]:
    """Return the reference hosts to try, in order.

    Only the well-known default host falls back; a custom reference URL is
    used on its own.
    """
    primary = reference_url.rstrip("/")
    if fallback_url and primary == DEFAULT_REFERENCE_URL:
        return [primary, fallback_url.rstrip("/")]
    return [primary]


def catalog_filename(platform: str, bitness: int, os_name: str, version: str, ltsc: bool = False) -> str:
    """Build the canonical catalog file name.

    Example: catalog_filename("83b2", 64, "win10", "22H2") -> "83b2_64_10.0.22h2.cab"
    """
    suffix = ".e.cab" if ltsc else ".cab"
    return f"{platform}_{bitness}_{catalog_os_version(os_name, version)}{suffix}"


@dataclass(frozen=True)
class CatalogCandidate:
    """One URL a catalog may be fetched from."""

    url: str
    filename: str
    ltsc: bool


def parse_catalog(root: ET.Element) -> list[SoftpaqRecord]:
    """Parse an ImagePal document into SoftPaq records.

    Args:
        root: Root element of the catalog XML

    Returns:
        Records in catalog order; malformed entries are skipped

    Raises:
        ValueError: If the document is not an ImagePal catalog
    """
    if root.tag != "ImagePal":
        raise ValueError(f"Unexpected catalog root element: {root.tag}")

    records = []
    for element in root.findall("Solutions/UpdateInfo"):
        try:
            records.append(SoftpaqRecord.from_update_info(element))
        except ValueError as e:
            logger.warning(f"Skipping malformed catalog entry: {e}")
    return records


class ReferenceCatalogResolver:
    """Fetches and parses reference catalogs with host fallback."""

    def __init__(
        self,
        downloader: DownloadManager,
        cache: CatalogCache,
        hosts: list[str],
        bitness: int = 64,
        max_retries: int = 1,
    ):
        """Initialize resolver.

        Args:
            downloader: Download manager
            cache: Catalog cache
            hosts: Reference base URLs in the order to try them
            bitness: OS bitness used in catalog names
            max_retries: Attempts per GET for transient errors
        """
        self.downloader = downloader
        self.cache = cache
        self.hosts = hosts
        self.bitness = bitness
        self.max_retries = max_retries

    def candidates(
        self, platform: str, os_name: str, version: str, prefer_ltsc: bool = False
    ) -> list[CatalogCandidate]:
        """List catalog URLs in the order they are attempted.

        With prefer_ltsc the LTSC variant is tried on every host before
        degrading to the regular variant.
        """
        variants = [True, False] if prefer_ltsc else [False]
        result = []
        for ltsc in variants:
            filename = catalog_filename(platform, self.bitness, os_name, version, ltsc)
            for host in self.hosts:
                result.append(CatalogCandidate(f"{host}/{platform}/{filename}", filename, ltsc))
        return result

    def _acquire(self, platform: str, candidate: CatalogCandidate) -> ET.Element:
        """Bring a candidate catalog into the cache and return its parsed XML.

        Raises:
            DownloadFailed: If the catalog cannot be downloaded
            ValueError: If the catalog is corrupt
        """
        cab_path = self.cache.cab_path(platform, candidate.filename)
        remote_mtime = self.downloader.last_modified(candidate.url)

        if self.cache.is_current(cab_path, remote_mtime):
            logger.debug(f"Catalog {candidate.filename} unchanged upstream, using cached copy")
        else:
            content = self.downloader.fetch(candidate.url, max_retries=self.max_retries)
            self.cache.store(cab_path, content, remote_mtime)

        try:
            return self.cache.load_xml(cab_path)
        except ValueError:
            self.cache.discard(cab_path)
            raise

    def resolve(
        self, platform: str, os_name: str, version: str, prefer_ltsc: bool = False
    ) -> list[SoftpaqRecord]:
        """Return the catalog entries for a platform and OS release.

        Args:
            platform: 4-hex-digit platform id
            os_name: "win10" or "win11"
            version: Feature version, e.g. "22H2"
            prefer_ltsc: Try the LTSC catalog first

        Returns:
            Parsed catalog records

        Raises:
            CatalogUnavailable: If no host yields the catalog; its not_found
                flag is set only when every candidate answered 404
        """
        last_error = ""
        not_found = True
        for candidate in self.candidates(platform, os_name, version, prefer_ltsc):
            try:
                root = self._acquire(platform, candidate)
                records = parse_catalog(root)
            except DownloadFailed as e:
                last_error = str(e)
                not_found = not_found and e.not_found
                logger.info(f"Catalog not available at {candidate.url}: {e.reason}")
                continue
            except ValueError as e:
                last_error = str(e)
                not_found = False
                logger.warning(f"Discarding unusable catalog from {candidate.url}: {e}")
                continue

            if prefer_ltsc and not candidate.ltsc:
                logger.info(f"No LTSC catalog for {platform} {os_name} {version}, using regular catalog")
            logger.info(f"Loaded {len(records)} entries from {candidate.url}")
            return records

        raise CatalogUnavailable(platform, os_name, version, last_error, not_found=not_found)
