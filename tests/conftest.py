"""
Shared fixtures for softpaq-mirror tests.

HTTP is served from an in-memory FakeReference through a Mock session, and
catalog CABs are built on the fly with cabarchive.
"""

import hashlib
import xml.etree.ElementTree as ET
from pathlib import Path
from unittest.mock import Mock

import pytest
import requests
from cabarchive import CabArchive, CabFile

from softpaq_mirror.core.config import DEFAULT_REFERENCE_URL, DownloadConfig, ReferenceConfig
from softpaq_mirror.core.context import RepositoryContext

SOFTPAQ_BASE = "https://ftp.hp.com/pub/softpaq/sp1-500"


def make_response(body: bytes = b"", status_code: int = 200, headers: dict | None = None) -> Mock:
    """Build a Mock requests.Response."""
    response = Mock()
    response.status_code = status_code
    response.content = body
    response.headers = headers or {}
    response.iter_content = Mock(side_effect=lambda chunk_size=None: iter([body]))
    response.raise_for_status = Mock()
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Error", response=response)
    return response


class FakeReference:
    """Maps URLs to response bodies and serves them through a Mock session."""

    def __init__(self):
        self.files: dict[str, bytes] = {}
        self.last_modified: dict[str, str] = {}
        # URLs answering 503, as during an outage
        self.unavailable: set[str] = set()
        self.session = Mock()
        self.session.get.side_effect = self._get
        self.session.head.side_effect = self._head

    def _get(self, url, stream=False, timeout=None, **kwargs):
        if url in self.unavailable:
            return make_response(b"", 503)
        if url not in self.files:
            return make_response(b"", 404)
        return make_response(self.files[url])

    def _head(self, url, timeout=None, allow_redirects=True, **kwargs):
        if url in self.unavailable:
            return make_response(b"", 503)
        if url not in self.files:
            return make_response(b"", 404)
        headers = {}
        if url in self.last_modified:
            headers["Last-Modified"] = self.last_modified[url]
        return make_response(b"", 200, headers)

    def get_count(self, url: str) -> int:
        """Number of GET requests made for url."""
        return sum(1 for call in self.session.get.call_args_list if call.args[0] == url)

    def add_catalog(
        self,
        platform: str,
        filename: str,
        entries: list[dict],
        host: str = DEFAULT_REFERENCE_URL,
    ) -> str:
        url = f"{host}/{platform}/{filename}"
        self.files[url] = build_catalog_cab(entries)
        return url

    def add_softpaq(self, softpaq_id: str, binary: bytes, base: str = SOFTPAQ_BASE, **metadata) -> dict:
        """Publish a SoftPaq's CVA and EXE and return its catalog entry."""
        self.files[f"{base}/{softpaq_id}.cva"] = build_cva(softpaq_id, binary, **metadata)
        self.files[f"{base}/{softpaq_id}.exe"] = binary
        return catalog_entry(
            softpaq_id,
            category=metadata.get("category", "Driver - Network"),
            base=base,
        )


def catalog_entry(
    softpaq_id: str,
    category: str = "Driver - Network",
    release_type: str = "Recommended",
    base: str = SOFTPAQ_BASE,
    ssm: bool = True,
    dpb: bool = False,
    uwp: bool = False,
) -> dict:
    entry = {
        "Id": softpaq_id,
        "Name": f"Test SoftPaq {softpaq_id}",
        "Category": category,
        "Version": "1.0.0",
        "Vendor": "HP",
        "ReleaseType": release_type,
        "SSM": "true" if ssm else "false",
        "DPB": "true" if dpb else "false",
        # Catalogs list URLs without a scheme
        "Url": f"{base.removeprefix('https://')}/{softpaq_id}.exe",
        "CvaFileUrl": f"{base.removeprefix('https://')}/{softpaq_id}.cva",
        "Size": "1024",
        "DateReleased": "2024-01-15",
    }
    if uwp:
        entry["ContentTypes"] = "UWP"
    return entry


def build_catalog_xml(entries: list[dict]) -> bytes:
    root = ET.Element("ImagePal")
    solutions = ET.SubElement(root, "Solutions")
    for entry in entries:
        info = ET.SubElement(solutions, "UpdateInfo")
        for tag, value in entry.items():
            ET.SubElement(info, tag).text = value
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def build_catalog_cab(entries: list[dict], member: str = "catalog.xml") -> bytes:
    archive = CabArchive()
    archive[member] = CabFile(build_catalog_xml(entries))
    return archive.save()


def build_cva(
    softpaq_id: str,
    binary: bytes,
    title: str = "Intel Network Driver",
    vendor: str = "Intel",
    version: str = "1.0.0",
    revision: str = "A",
    category: str = "Driver - Network",
    digest: str = "sha256",
) -> bytes:
    lines = [
        "[CVA File Information]",
        "CVATimeStamp=20240115T120000",
        "",
        "[Softpaq]",
        f"SoftpaqNumber={softpaq_id.upper()}",
        "",
        "[General]",
        f"VendorName={vendor}",
        f"Version={version}",
        f"Revision={revision}",
        f"Category={category}",
        "",
        "[Software Title]",
        f"US={title}",
        "",
        "[Private]",
    ]
    if digest == "sha256":
        lines.append(f"SoftPaqSHA256={hashlib.sha256(binary).hexdigest().upper()}")
    elif digest == "md5":
        lines.append(f"SoftPaqMD5={hashlib.md5(binary).hexdigest()}")
    return ("\r\n".join(lines) + "\r\n").encode("utf-8")


@pytest.fixture
def repo_ctx(tmp_path: Path) -> RepositoryContext:
    """Repository context with a zero retry pause."""
    root = tmp_path / "repo"
    root.mkdir()
    return RepositoryContext(
        root=root,
        cache_path=tmp_path / "cache",
        download=DownloadConfig(retry_pause_seconds=0),
        reference=ReferenceConfig(),
    )


@pytest.fixture
def reference() -> FakeReference:
    return FakeReference()
