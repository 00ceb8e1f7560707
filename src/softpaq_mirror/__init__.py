from __future__ import annotations

"""
softpaq-mirror - HP SoftPaq Repository Synchronization

A CLI tool that keeps a local directory in sync with the subset of HP's
SoftPaq catalog selected by per-platform filters, with mark-and-sweep
retention, failure notifications and a contents report.
"""

__version__ = "0.1.0"
__license__ = "MIT"

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _version

try:
    __version__ = _version("softpaq-mirror")
except PackageNotFoundError:
    # Package not installed yet
    pass
