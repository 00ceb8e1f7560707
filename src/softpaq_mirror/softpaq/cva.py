from __future__ import annotations

"""
CVA metadata files and binary verification.

A CVA is an INI-style document published next to every SoftPaq binary. It
names the package and declares the digest the binary must have.
"""

import configparser
import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from softpaq_mirror.core.errors import SignatureInvalid

logger = logging.getLogger(__name__)


@dataclass
class CvaMetadata:
    """Fields of a CVA file used by sync and reporting."""

    softpaq_id: str
    title: str = ""
    vendor: str = ""
    version: str = ""
    revision: str = ""
    category: str = ""
    sha256: str | None = None
    md5: str | None = None

    @classmethod
    def from_text(cls, text: str, fallback_id: str = "") -> CvaMetadata:
        """Parse CVA content.

        Raises:
            ValueError: If the content is not a parseable CVA
        """
        parser = configparser.ConfigParser(strict=False, interpolation=None, allow_no_value=True)
        try:
            parser.read_string(text)
        except configparser.Error as e:
            raise ValueError(f"Malformed CVA: {e}") from e

        if not parser.sections():
            raise ValueError("Malformed CVA: no sections")

        # Section names vary in case between CVA generations
        sections = {name.lower(): name for name in parser.sections()}

        def get(section: str, key: str) -> str:
            name = sections.get(section.lower())
            if name is None:
                return ""
            value = parser.get(name, key, fallback=None)
            return value.strip() if value else ""

        softpaq_id = (get("Softpaq", "SoftpaqNumber") or fallback_id).lower()
        if not softpaq_id:
            raise ValueError("Malformed CVA: no SoftpaqNumber")

        return cls(
            softpaq_id=softpaq_id,
            title=get("Software Title", "US"),
            vendor=get("General", "VendorName"),
            version=get("General", "Version"),
            revision=get("General", "Revision"),
            category=get("General", "Category"),
            sha256=get("Private", "SoftPaqSHA256").lower() or None,
            md5=get("Private", "SoftPaqMD5").lower() or None,
        )

    @classmethod
    def from_file(cls, path: Path) -> CvaMetadata:
        """Parse a CVA file.

        CVAs are mostly ASCII, but older ones use a Windows code page.

        Raises:
            ValueError: If the file is not a parseable CVA
        """
        raw = path.read_bytes()
        try:
            text = raw.decode("utf-8-sig")
        except UnicodeDecodeError:
            text = raw.decode("latin-1")
        return cls.from_text(text, fallback_id=path.stem)


class SignatureVerifier(Protocol):
    """Checks a downloaded binary against its metadata."""

    def verify(self, binary: Path, metadata: CvaMetadata) -> None:
        """Raise SignatureInvalid if binary does not match metadata."""
        ...


def file_digest(path: Path, algorithm: str) -> str:
    """Calculate a hex digest of a file, reading in 64kb chunks."""
    digest = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


class CvaDigestVerifier:
    """Verify binaries against the digest their CVA declares.

    SoftPaqSHA256 is preferred; SoftPaqMD5 is used for CVAs that predate it.
    A CVA that declares neither cannot vouch for its binary.
    """

    def verify(self, binary: Path, metadata: CvaMetadata) -> None:
        if not binary.exists():
            raise SignatureInvalid(metadata.softpaq_id, f"{binary.name} does not exist")

        if metadata.sha256:
            algorithm, expected = "sha256", metadata.sha256
        elif metadata.md5:
            algorithm, expected = "md5", metadata.md5
        else:
            raise SignatureInvalid(metadata.softpaq_id, "metadata declares no digest")

        actual = file_digest(binary, algorithm)
        if actual != expected:
            raise SignatureInvalid(
                metadata.softpaq_id,
                f"{algorithm} mismatch: expected {expected[:16]}..., got {actual[:16]}...",
            )
        logger.debug(f"{binary.name}: {algorithm} verified")


def is_valid(verifier: SignatureVerifier, binary: Path, metadata: CvaMetadata) -> bool:
    try:
        verifier.verify(binary, metadata)
    except SignatureInvalid as e:
        logger.debug(str(e))
        return False
    return True
