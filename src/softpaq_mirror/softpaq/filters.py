from __future__ import annotations

"""
SoftPaq filter logic.

This module normalizes repository filter rules and provides the predicates
used to compare filters with each other (exact match, for de-duplication)
and with catalog entries (wildcard match, for selection).
"""

import logging
import platform as _platform
import re

from softpaq_mirror.softpaq.models import WILDCARD, Filter, SoftpaqRecord

logger = logging.getLogger(__name__)

OPERATING_SYSTEMS = ("win10", "win11")

# Feature updates that wildcard OS filters expand to, oldest first. Explicit
# versions outside this table are accepted as written.
KNOWN_OS_VERSIONS: dict[str, tuple[str, ...]] = {
    "win10": ("1809", "1903", "1909", "2004", "20H2", "21H1", "21H2", "22H2"),
    "win11": ("21H2", "22H2", "23H2", "24H2", "25H2"),
}

# Catalog file names use the numeric build tag for these releases
LEGACY_CATALOG_VERSIONS = {"20H2": "2009", "21H1": "2104"}

# Release ids ("1909") and half-year feature versions ("22H2")
OS_VERSION_PATTERN = re.compile(r"^(\d{4}|\d{2}H[12])$")

CATEGORIES = (
    "bios",
    "firmware",
    "driver",
    "software",
    "os",
    "manageability",
    "diagnostic",
    "utility",
    "driverpack",
    "dock",
    "uwppack",
)
RELEASE_TYPES = ("critical", "recommended", "routine")
CHARACTERISTICS = ("ssm", "dpb", "uwp")

# (bucket, predicate on lowercased catalog category); first match wins
_CATEGORY_RULES = (
    ("driverpack", lambda c: "driver pack" in c),
    ("uwppack", lambda c: "uwp pack" in c),
    ("manageability", lambda c: c.startswith("manageability")),
    ("dock", lambda c: "dock" in c),
    ("bios", lambda c: c.startswith("bios")),
    ("firmware", lambda c: c.startswith("firmware")),
    ("diagnostic", lambda c: c.startswith("diagnostic")),
    ("utility", lambda c: c.startswith("utility")),
    ("os", lambda c: c.startswith("operating system") or c == "os"),
    ("driver", lambda c: c.startswith("driver")),
)


def detect_os_version() -> tuple[str, str] | None:
    """Return the (os, feature version) of the running Windows host.

    Returns:
        Tuple like ("win10", "22H2"), or None when not running on Windows or
        the version cannot be read
    """
    if _platform.system() != "Windows":
        return None

    import winreg

    key_path = r"SOFTWARE\Microsoft\Windows NT\CurrentVersion"
    try:
        with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, key_path) as key:
            try:
                version = winreg.QueryValueEx(key, "DisplayVersion")[0]
            except FileNotFoundError:
                version = winreg.QueryValueEx(key, "ReleaseId")[0]
            build = int(winreg.QueryValueEx(key, "CurrentBuild")[0])
    except (OSError, ValueError) as e:
        logger.debug(f"Could not read Windows version from registry: {e}")
        return None

    os_name = "win11" if build >= 22000 else "win10"
    return os_name, str(version).upper()


def normalize_os(value: str | None, current_os_version: str | None = None) -> str:
    """Normalize an operating system filter value.

    "*" and empty values become the wildcard. A bare "win10"/"win11" is bound
    to the current OS version, so the filter keeps meaning the same release
    after the host is upgraded.

    Args:
        value: Raw value ("*", "win10", "win11:22h2", "win10:*")
        current_os_version: Version to bind bare OS names to; detected from
            the host when omitted

    Raises:
        ValueError: On unknown operating systems, or when a bare OS name
            cannot be bound to a version
    """
    if value is None or value.strip() in ("", WILDCARD):
        return WILDCARD

    os_name, _, version = value.strip().partition(":")
    os_name = os_name.lower()
    if os_name not in OPERATING_SYSTEMS:
        raise ValueError(f"Unsupported operating system: {value!r}. Must be one of {OPERATING_SYSTEMS}")

    if not version:
        if current_os_version is None:
            detected = detect_os_version()
            current_os_version = detected[1] if detected else None
        if not current_os_version:
            raise ValueError(
                f"Cannot determine the current version for {os_name}; specify it as {os_name}:<version>"
            )
        version = current_os_version

    version = version.strip().upper()
    if version != WILDCARD and not OS_VERSION_PATTERN.match(version):
        raise ValueError(
            f"Invalid {os_name} version: {version}. Must look like 22H2 or 1909, or be '*'"
        )
    return f"{os_name}:{version}"


def _validate_set(name: str, values, allowed: tuple[str, ...]) -> None:
    if values == WILDCARD:
        return
    unknown = [v for v in values if v not in allowed]
    if unknown:
        raise ValueError(f"Invalid {name}: {unknown}. Must be one of {allowed} or '*'")


def normalize_filter(filter_: Filter, current_os_version: str | None = None) -> Filter:
    """Return a normalized copy of a filter.

    Resolution happens when the filter is created, not at sync time.

    Raises:
        ValueError: If any field holds an unsupported value
    """
    normalized = filter_.model_copy(
        update={"operating_system": normalize_os(filter_.operating_system, current_os_version)}
    )
    _validate_set("category", normalized.category, CATEGORIES)
    _validate_set("release type", normalized.release_type, RELEASE_TYPES)
    _validate_set("characteristic", normalized.characteristic, CHARACTERISTICS)
    return normalized


def _as_set(value):
    return value if value == WILDCARD else frozenset(value)


def matches_exact(a: Filter, b: Filter) -> bool:
    """Field-wise equality of two filters (set fields compare unordered)."""
    return (
        a.platform == b.platform
        and a.operating_system.lower() == b.operating_system.lower()
        and _as_set(a.category) == _as_set(b.category)
        and _as_set(a.release_type) == _as_set(b.release_type)
        and _as_set(a.characteristic) == _as_set(b.characteristic)
        and a.prefer_ltsc == b.prefer_ltsc
    )


def matches_wild(filter_value, candidate: str) -> bool:
    """Check a filter value against a candidate value.

    Matches when the values are equal, when the filter value is the wildcard
    (or unset), or when the filter value is an OS-scoped wildcard such as
    "win10:*" and the candidate belongs to that OS. List filter values match
    when any member matches.
    """
    if filter_value is None or filter_value == WILDCARD:
        return True
    if isinstance(filter_value, (list, tuple, set, frozenset)):
        return any(matches_wild(v, candidate) for v in filter_value)

    filter_value = str(filter_value).lower()
    candidate = candidate.lower()
    if filter_value == candidate:
        return True
    if filter_value.endswith(":*"):
        return candidate.startswith(filter_value[:-1])
    return False


def matches_ltsc(filter_value: bool | None, candidate: bool | None) -> bool:
    return filter_value is None or filter_value == candidate


def expand_os_targets(operating_system: str) -> list[tuple[str, str]]:
    """Expand an OS filter value into concrete (os, version) pairs.

    A concrete "osname:version" is returned as is, whether or not the
    version is in KNOWN_OS_VERSIONS. "*" and "osname:*" expand over the
    known versions.

    Args:
        operating_system: Normalized OS filter value

    Returns:
        List of (os, version) pairs in catalog order
    """
    if not is_os_wildcard(operating_system):
        os_name, _, version = operating_system.partition(":")
        if not version:
            return []
        return [(os_name.strip().lower(), version.strip().upper())]

    targets = [
        (os_name, version)
        for os_name in OPERATING_SYSTEMS
        for version in KNOWN_OS_VERSIONS[os_name]
    ]
    return [
        (os_name, version)
        for os_name, version in targets
        if matches_wild(operating_system, f"{os_name}:{version}")
    ]


def is_os_wildcard(operating_system: str) -> bool:
    return operating_system == WILDCARD or operating_system.endswith(":*")


def catalog_os_version(os_name: str, version: str) -> str:
    """Return the OS version token used in catalog file names.

    Example: ("win10", "20H2") -> "10.0.2009", ("win11", "23H2") -> "11.0.23h2"
    """
    major = os_name.lower().removeprefix("win")
    version = version.upper()
    token = LEGACY_CATALOG_VERSIONS.get(version, version).lower()
    return f"{major}.0.{token}"


def classify_category(category: str) -> str:
    """Classify a catalog category string into a filter bucket.

    Args:
        category: Catalog category, e.g. "Driver - Network" or "BIOS"

    Returns:
        One of CATEGORIES; "software" when nothing more specific applies
    """
    value = category.strip().lower()
    for bucket, predicate in _CATEGORY_RULES:
        if predicate(value):
            return bucket
    return "software"


def has_characteristics(record: SoftpaqRecord, required) -> bool:
    """Check that a record has every requested characteristic (AND semantics)."""
    if required == WILDCARD:
        return True
    flags = {"ssm": record.ssm, "dpb": record.dpb, "uwp": record.uwp}
    return all(flags.get(name, False) for name in required)
