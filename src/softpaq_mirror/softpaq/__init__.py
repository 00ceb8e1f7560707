"""SoftPaq selection, catalog resolution and download."""

from softpaq_mirror.softpaq.catalog import ReferenceCatalogResolver
from softpaq_mirror.softpaq.models import Filter, SoftpaqRecord
from softpaq_mirror.softpaq.orchestrator import DownloadOrchestrator, PackageState
from softpaq_mirror.softpaq.packages import PackageListBuilder

__all__ = [
    "DownloadOrchestrator",
    "Filter",
    "PackageListBuilder",
    "PackageState",
    "ReferenceCatalogResolver",
    "SoftpaqRecord",
]
