from __future__ import annotations

"""
Package list construction.

Filters are grouped per platform and merged into one PlatformQuery per
platform. A wildcard in any filter of a group makes that dimension a
wildcard for the whole group; otherwise the groups' values are unioned.
Each query is resolved against the reference catalogs of its OS targets
and the matching records are collected, unique by SoftPaq id.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from softpaq_mirror.core.errors import CatalogUnavailable
from softpaq_mirror.softpaq.catalog import ReferenceCatalogResolver
from softpaq_mirror.softpaq.filters import (
    classify_category,
    expand_os_targets,
    has_characteristics,
    is_os_wildcard,
    matches_wild,
)
from softpaq_mirror.softpaq.models import WILDCARD, Filter, SoftpaqRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OsTarget:
    """A concrete OS release whose catalog must be resolved."""

    os_name: str
    version: str
    prefer_ltsc: bool = False
    # True when the target only exists because a wildcard was expanded
    expanded: bool = False


@dataclass
class PlatformQuery:
    """Merged selection criteria for one platform."""

    platform: str
    targets: list[OsTarget] = field(default_factory=list)
    categories: object = WILDCARD
    release_types: object = WILDCARD
    characteristics: object = WILDCARD


def group_filters_by_platform(filters: Iterable[Filter]) -> dict[str, list[Filter]]:
    """Group filters by platform, keeping first-seen platform order."""
    groups: dict[str, list[Filter]] = {}
    for f in filters:
        groups.setdefault(f.platform, []).append(f)
    return groups


def _merge_set(values: list) -> object:
    if any(v == WILDCARD for v in values):
        return WILDCARD
    merged: list[str] = []
    for value in values:
        for item in value:
            if item not in merged:
                merged.append(item)
    return merged


def merge_platform_filters(platform: str, filters: list[Filter]) -> PlatformQuery:
    """Merge all filters of one platform into a single query.

    Args:
        platform: Platform id shared by the filters
        filters: Normalized filters of that platform

    Returns:
        PlatformQuery with most-permissive union semantics
    """
    targets: dict[tuple[str, str], OsTarget] = {}

    if any(f.operating_system == WILDCARD for f in filters):
        os_values = [WILDCARD]
        ltsc = any(bool(f.prefer_ltsc) for f in filters)
        for os_name, version in expand_os_targets(WILDCARD):
            targets[(os_name, version)] = OsTarget(os_name, version, ltsc, expanded=True)
        # Releases named explicitly stay required, known or not
        for f in filters:
            if is_os_wildcard(f.operating_system):
                continue
            for os_name, version in expand_os_targets(f.operating_system):
                targets[(os_name, version)] = OsTarget(os_name, version, ltsc, expanded=False)
    else:
        os_values = [f.operating_system for f in filters]
        for f in filters:
            expanded = is_os_wildcard(f.operating_system)
            for os_name, version in expand_os_targets(f.operating_system):
                key = (os_name, version)
                previous = targets.get(key)
                if previous is None:
                    targets[key] = OsTarget(os_name, version, bool(f.prefer_ltsc), expanded)
                else:
                    targets[key] = OsTarget(
                        os_name,
                        version,
                        previous.prefer_ltsc or bool(f.prefer_ltsc),
                        previous.expanded and expanded,
                    )

    logger.debug(f"Platform {platform}: OS values {os_values} -> {len(targets)} catalog target(s)")
    return PlatformQuery(
        platform=platform,
        targets=list(targets.values()),
        categories=_merge_set([f.category for f in filters]),
        release_types=_merge_set([f.release_type for f in filters]),
        characteristics=_merge_set([f.characteristic for f in filters]),
    )


def select_entries(entries: Iterable[SoftpaqRecord], query: PlatformQuery) -> list[SoftpaqRecord]:
    """Apply a query's category, release type and characteristic criteria.

    Args:
        entries: Catalog records
        query: Merged platform query

    Returns:
        Records passing every criterion
    """
    selected = []
    for entry in entries:
        if not matches_wild(query.categories, classify_category(entry.category)):
            continue
        if not matches_wild(query.release_types, entry.release_type):
            continue
        if not has_characteristics(entry, query.characteristics):
            continue
        selected.append(entry)
    return selected


def dedupe_records(records: Iterable[SoftpaqRecord]) -> list[SoftpaqRecord]:
    """Return records unique by id, keeping the first occurrence."""
    seen: set[str] = set()
    result = []
    for record in records:
        if record.id in seen:
            continue
        seen.add(record.id)
        result.append(record)
    return result


class PackageListBuilder:
    """Builds the SoftPaq selection of each configured platform."""

    def __init__(self, resolver: ReferenceCatalogResolver):
        self.resolver = resolver

    def build_platform(self, query: PlatformQuery) -> list[SoftpaqRecord]:
        """Resolve a platform query into the SoftPaqs it selects.

        A wildcard-expanded target whose catalog is not published (404 on
        every host) is skipped, since not every platform ships for every OS
        release. Any other catalog failure, or a missing catalog for an
        explicitly requested release, is an error.

        Raises:
            CatalogUnavailable: If a catalog cannot be obtained, the query has
                no OS targets, or no expanded target has a catalog
        """
        if not query.targets:
            raise CatalogUnavailable(query.platform, "*", "*", "no OS release to resolve")

        records: list[SoftpaqRecord] = []
        resolved = 0
        for target in query.targets:
            try:
                entries = self.resolver.resolve(
                    query.platform, target.os_name, target.version, target.prefer_ltsc
                )
            except CatalogUnavailable as e:
                if not (target.expanded and e.not_found):
                    raise
                logger.debug(
                    f"No catalog published for {query.platform} {target.os_name} {target.version}, skipping"
                )
                continue
            resolved += 1
            selected = select_entries(entries, query)
            logger.info(
                f"Platform {query.platform} {target.os_name} {target.version}: "
                f"{len(selected)} of {len(entries)} SoftPaqs selected"
            )
            records.extend(selected)

        if resolved == 0:
            raise CatalogUnavailable(
                query.platform, "*", "*", "no catalog found for any OS release", not_found=True
            )

        return dedupe_records(records)
