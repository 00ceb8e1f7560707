from __future__ import annotations

"""
Reference catalog cache.

Catalog CABs are cached under {cache_path}/{platform}/ with the upstream
Last-Modified time mirrored onto the file's mtime, so an unchanged catalog is
never downloaded twice. The XML document inside each CAB is extracted next
to it and re-extracted whenever it is missing or not well-formed.
"""

import logging
import os
import xml.etree.ElementTree as ET
from datetime import datetime
from pathlib import Path

from cabarchive import CabArchive

logger = logging.getLogger(__name__)


class CatalogCache:
    """Local store of downloaded catalog CABs and their extracted XML."""

    def __init__(self, cache_path: Path):
        """Initialize catalog cache.

        Args:
            cache_path: Directory for cache storage
        """
        self.cache_path = cache_path

    def cab_path(self, platform: str, filename: str) -> Path:
        return self.cache_path / platform / filename

    @staticmethod
    def xml_path(cab_path: Path) -> Path:
        return cab_path.with_suffix(".xml")

    def is_current(self, cab_path: Path, remote_mtime: datetime | None) -> bool:
        """Check whether the cached CAB matches the upstream modification time.

        Args:
            cab_path: Cached CAB location
            remote_mtime: Upstream Last-Modified (None = unknown)

        Returns:
            True if the cached copy can be used without downloading
        """
        if remote_mtime is None or not cab_path.exists():
            return False
        local_mtime = cab_path.stat().st_mtime
        return abs(local_mtime - remote_mtime.timestamp()) < 1.0

    def store(self, cab_path: Path, content: bytes, remote_mtime: datetime | None) -> Path:
        """Write a downloaded CAB into the cache.

        Args:
            cab_path: Cache location
            content: CAB bytes
            remote_mtime: Upstream Last-Modified to mirror onto the file

        Returns:
            Path to cached CAB
        """
        cab_path.parent.mkdir(parents=True, exist_ok=True)

        # Write to cache (atomic via temp file + rename)
        temp_file = cab_path.with_suffix(".tmp")
        try:
            temp_file.write_bytes(content)
            temp_file.replace(cab_path)
        finally:
            temp_file.unlink(missing_ok=True)

        if remote_mtime is not None:
            ts = remote_mtime.timestamp()
            os.utime(cab_path, (ts, ts))

        # A new CAB invalidates whatever was extracted from the old one
        self.xml_path(cab_path).unlink(missing_ok=True)
        logger.info(f"Cached catalog {cab_path.name} ({len(content) / 1024:.1f} KB)")
        return cab_path

    def extract_xml(self, cab_path: Path) -> Path:
        """Extract the XML document embedded in a cached CAB.

        Args:
            cab_path: Cached CAB location

        Returns:
            Path to the extracted XML file

        Raises:
            ValueError: If the CAB is corrupt or holds no XML document
        """
        archive = CabArchive()
        try:
            archive.parse(cab_path.read_bytes())
        except Exception as e:
            raise ValueError(f"Corrupt catalog archive {cab_path.name}: {e}") from e

        for name, cab_file in archive.items():
            if name.lower().endswith(".xml"):
                xml_file = self.xml_path(cab_path)
                xml_file.write_bytes(cab_file.buf)
                stat = cab_path.stat()
                os.utime(xml_file, (stat.st_atime, stat.st_mtime))
                logger.debug(f"Extracted {name} from {cab_path.name}")
                return xml_file

        raise ValueError(f"Catalog archive {cab_path.name} contains no XML document")

    def load_xml(self, cab_path: Path) -> ET.Element:
        """Return the parsed catalog for a cached CAB.

        The extracted XML is reused when it is well-formed; otherwise it is
        extracted again from the CAB.

        Raises:
            ValueError: If no well-formed XML can be obtained from the CAB
        """
        xml_file = self.xml_path(cab_path)
        if xml_file.exists():
            try:
                return ET.parse(xml_file).getroot()
            except ET.ParseError as e:
                logger.warning(f"Cached catalog {xml_file.name} is corrupt, re-extracting: {e}")
                xml_file.unlink(missing_ok=True)

        xml_file = self.extract_xml(cab_path)
        try:
            return ET.parse(xml_file).getroot()
        except ET.ParseError as e:
            xml_file.unlink(missing_ok=True)
            raise ValueError(f"Catalog {xml_file.name} is not well-formed: {e}") from e

    def discard(self, cab_path: Path) -> None:
        """Remove a cached CAB and its extracted XML."""
        cab_path.unlink(missing_ok=True)
        self.xml_path(cab_path).unlink(missing_ok=True)
