from __future__ import annotations

"""
SoftPaq models.

This module contains the Pydantic model for a repository filter rule and the
record type for one SoftPaq parsed from a reference catalog.
"""

import re
import xml.etree.ElementTree as ET
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

WILDCARD = "*"

PLATFORM_PATTERN = re.compile(r"^[0-9a-f]{4}$")

SetOrWildcard = Union[List[str], Literal["*"]]


class Filter(BaseModel):
    """One selection rule of a repository manifest.

    Set-valued fields hold either a list of lowercase values or the wildcard
    "*". The operating system is "*", "win10:<version>", "win11:<version>",
    or a per-OS wildcard such as "win10:*".
    """

    model_config = ConfigDict(populate_by_name=True)

    platform: str
    operating_system: str = Field(WILDCARD, alias="operatingSystem")
    category: SetOrWildcard = WILDCARD
    release_type: SetOrWildcard = Field(WILDCARD, alias="releaseType")
    characteristic: SetOrWildcard = WILDCARD
    prefer_ltsc: Optional[bool] = Field(None, alias="preferLTSC")

    @field_validator("platform")
    @classmethod
    def validate_platform(cls, v: str) -> str:
        """Validate the 4-hex-digit platform id."""
        v = v.strip().lower()
        if not PLATFORM_PATTERN.match(v):
            raise ValueError(f"Invalid platform id: {v!r}. Must be 4 hexadecimal digits")
        return v

    @field_validator("category", "release_type", "characteristic", mode="before")
    @classmethod
    def coerce_set(cls, v):
        """Accept None, "*", a single value, or a list of values."""
        if v is None:
            return WILDCARD
        if isinstance(v, str):
            v = v.strip()
            if v == WILDCARD or v == "":
                return WILDCARD
            v = [part for part in v.split(",")]
        values: list[str] = []
        for item in v:
            item = str(item).strip().lower()
            if item == WILDCARD:
                return WILDCARD
            if item and item not in values:
                values.append(item)
        return values or WILDCARD

    @field_validator("operating_system", mode="before")
    @classmethod
    def coerce_os(cls, v):
        if v is None or str(v).strip() == "":
            return WILDCARD
        return str(v).strip()

    def to_manifest(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class SoftpaqRecord(BaseModel):
    """A SoftPaq entry from an ImagePal reference catalog.

    Maps UpdateInfo child elements to Pydantic fields:
    - Id, Name, Category, Version, Vendor, ReleaseType
    - SSM, DPB: boolean flags ("true"/"false")
    - ContentTypes: present for UWP-bearing packages
    - Url, ReleaseNotesUrl, CvaFileUrl
    - Size (bytes), DateReleased
    """

    id: str = Field(..., description="SoftPaq id, e.g. sp123456")
    name: str = ""
    category: str = ""
    version: str = ""
    vendor: str = ""
    release_type: str = ""
    ssm: bool = False
    dpb: bool = False
    uwp: bool = False
    url: str = ""
    release_notes_url: str = ""
    metadata_url: str = ""
    size_bytes: int = 0
    release_date: str = ""

    @classmethod
    def from_update_info(cls, element: ET.Element) -> SoftpaqRecord:
        """Create a record from an <UpdateInfo> element.

        Raises:
            ValueError: If the element carries no Id
        """

        def text(tag: str) -> str:
            child = element.find(tag)
            if child is None or child.text is None:
                return ""
            return child.text.strip()

        softpaq_id = text("Id").lower()
        if not softpaq_id:
            raise ValueError("UpdateInfo entry without Id")

        size = text("Size")
        return cls(
            id=softpaq_id,
            name=text("Name"),
            category=text("Category"),
            version=text("Version"),
            vendor=text("Vendor"),
            release_type=text("ReleaseType"),
            ssm=text("SSM").lower() == "true",
            dpb=text("DPB").lower() == "true",
            uwp=element.find("ContentTypes") is not None,
            url=_with_scheme(text("Url")),
            release_notes_url=_with_scheme(text("ReleaseNotesUrl")),
            metadata_url=_with_scheme(text("CvaFileUrl")),
            size_bytes=int(size) if size.isdigit() else 0,
            release_date=text("DateReleased"),
        )

    @property
    def base_url(self) -> str:
        """Catalog URL with the filename stripped."""
        return self.url.rsplit("/", 1)[0] if "/" in self.url else self.url

    def artifact_url(self, extension: str) -> str:
        return f"{self.base_url}/{self.id}.{extension}"


def _with_scheme(url: str) -> str:
    # Catalog URLs are often host-relative ("ftp.hp.com/pub/softpaq/...")
    if url and "://" not in url:
        return f"https://{url}"
    return url
