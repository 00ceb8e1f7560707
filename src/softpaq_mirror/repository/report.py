from __future__ import annotations

"""
Repository contents report.

One row per SoftPaq, built from the CVA files in the repository root and
the size and timestamp of the binary next to each one.
"""

import csv
import io
import json
import logging
import xml.etree.ElementTree as ET
from dataclasses import asdict, dataclass, fields
from datetime import datetime
from pathlib import Path

from softpaq_mirror.core.context import RepositoryContext
from softpaq_mirror.repository.manifest import ReportFormat
from softpaq_mirror.softpaq.cva import CvaMetadata
from softpaq_mirror.softpaq.filters import classify_category

logger = logging.getLogger(__name__)

REPORT_EXTENSIONS = {
    ReportFormat.CSV: "csv",
    ReportFormat.EXCEL_CSV: "csv",
    ReportFormat.JSON: "json",
    ReportFormat.XML: "xml",
}


@dataclass
class ReportRecord:
    """One row of the repository report."""

    softpaq_id: str
    vendor: str
    title: str
    type: str
    version: str
    downloaded: str
    size: str


def collect_records(root: Path) -> list[ReportRecord]:
    """Build report rows from the CVA files in root.

    A CVA without its binary yields empty size and timestamp fields.
    Unreadable CVAs are skipped.
    """
    records = []
    cva_files = sorted(p for p in root.iterdir() if p.is_file() and p.suffix.lower() == ".cva")
    for cva_path in cva_files:
        try:
            metadata = CvaMetadata.from_file(cva_path)
        except (OSError, ValueError) as e:
            logger.warning(f"Skipping {cva_path.name} in report: {e}")
            continue

        version = metadata.version
        if metadata.revision:
            version = f"{version} Rev.{metadata.revision}"

        downloaded = ""
        size = ""
        binary = cva_path.with_suffix(".exe")
        if binary.exists():
            stat = binary.stat()
            downloaded = datetime.fromtimestamp(stat.st_mtime).isoformat(timespec="seconds")
            size = str(stat.st_size)

        records.append(
            ReportRecord(
                softpaq_id=metadata.softpaq_id,
                vendor=metadata.vendor,
                title=metadata.title,
                type=classify_category(metadata.category),
                version=version,
                downloaded=downloaded,
                size=size,
            )
        )
    return records


def _render_csv(records: list[ReportRecord]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=[f.name for f in fields(ReportRecord)])
    writer.writeheader()
    for record in records:
        writer.writerow(asdict(record))
    return buffer.getvalue()


def render(records: list[ReportRecord], report_format: ReportFormat) -> bytes:
    """Serialize report rows.

    Args:
        records: Report rows
        report_format: Output format

    Returns:
        Encoded report
    """
    report_format = ReportFormat(report_format)

    if report_format == ReportFormat.CSV:
        return _render_csv(records).encode("utf-8")

    if report_format == ReportFormat.EXCEL_CSV:
        # Excel honors the separator hint and needs the BOM to detect UTF-8
        return ("sep=,\r\n" + _render_csv(records)).encode("utf-8-sig")

    if report_format == ReportFormat.JSON:
        return json.dumps([asdict(r) for r in records], indent=2).encode("utf-8")

    root = ET.Element("SoftPaqs")
    for record in records:
        item = ET.SubElement(root, "SoftPaq")
        for key, value in asdict(record).items():
            ET.SubElement(item, key).text = value
    ET.indent(root)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def build_report(root: Path, report_format: ReportFormat = ReportFormat.CSV) -> bytes:
    """Build the contents report of a repository root."""
    return render(collect_records(root), report_format)


def write_report(ctx: RepositoryContext, report_format: ReportFormat = ReportFormat.CSV) -> Path:
    """Write the contents report to <root>/.repository/Contents.<ext>."""
    report_format = ReportFormat(report_format)
    path = ctx.report_path(REPORT_EXTENSIONS[report_format])
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(build_report(ctx.root, report_format))
    logger.info(f"Repository report written to {path}")
    return path
