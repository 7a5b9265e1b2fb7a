"""
Lead export and import.

Leads are written to CSV or Excel through pandas, and read back from CSV
files with loosely named headers.
"""

import logging
from datetime import date
from pathlib import Path
from typing import IO, Any, Dict, Iterable, List, Optional, Union

import pandas as pd  # type: ignore[import-untyped]

from .config import ExportFormat, get_config
from .models import Lead, LeadStatus, LeadTemperature
from .timeutil import local_today, to_local, utc_now

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "First Name",
    "Last Name",
    "Email",
    "Phone",
    "Source",
    "Status",
    "Temperature",
    "Budget",
    "Address",
    "Tags",
    "Created At",
]

TAG_SEPARATORS = {ExportFormat.CSV: "; ", ExportFormat.EXCEL: ", "}
FILE_EXTENSIONS = {ExportFormat.CSV: "csv", ExportFormat.EXCEL: "xlsx"}

IMPORT_SOURCE = "CSV Import"
IMPORT_TAG = "Imported"
PLACEHOLDER_PHONE = "000-000-0000"
# Estimated deal value of an imported lead, as a share of the budget
ESTIMATED_COMMISSION_RATE = 0.03


def default_export_filename(
    fmt: Union[ExportFormat, str] = ExportFormat.CSV, today: Optional[date] = None
) -> str:
    """``agent_desk_leads_2026-01-31.csv`` style file name."""
    fmt = ExportFormat(fmt)
    today = today or local_today()
    prefix = get_config().export_filename_prefix
    return f"{prefix}_{today.isoformat()}.{FILE_EXTENSIONS[fmt]}"


def leads_to_dataframe(
    leads: Iterable[Lead], fmt: Union[ExportFormat, str] = ExportFormat.CSV
) -> pd.DataFrame:
    """
    Tabulate leads with the export columns.

    CSV carries the full creation timestamp, Excel only the local date.
    """
    fmt = ExportFormat(fmt)
    rows = []
    for lead in leads:
        if fmt is ExportFormat.EXCEL:
            created = to_local(lead.created_at).date().isoformat()
        else:
            created = lead.created_at.isoformat()
        rows.append(
            [
                lead.first_name,
                lead.last_name,
                lead.email,
                lead.phone,
                lead.source,
                lead.status.value,
                lead.temperature.value,
                lead.budget,
                lead.property_address or "",
                TAG_SEPARATORS[fmt].join(lead.tags or []),
                created,
            ]
        )
    return pd.DataFrame(rows, columns=EXPORT_COLUMNS)


def export_leads(
    leads: Iterable[Lead],
    output: Optional[Union[str, Path]] = None,
    fmt: Union[ExportFormat, str, None] = None,
    directory: Union[str, Path] = ".",
) -> Path:
    """
    Write leads to a CSV or Excel file.

    Args:
        leads: Leads in the order they should appear
        output: Target file, defaults to a dated file name in ``directory``
        fmt: Export format, defaults to the configured format
        directory: Directory for the default file name

    Returns:
        Path of the written file
    """
    fmt = ExportFormat(fmt or get_config().export_format)
    path = Path(output) if output else Path(directory) / default_export_filename(fmt)

    df = leads_to_dataframe(leads, fmt)
    if fmt is ExportFormat.EXCEL:
        df.to_excel(path, index=False, engine="openpyxl")
    else:
        df.to_csv(path, index=False)

    logger.info("Exported %d leads to %s", len(df), path)
    return path


def _normalize_header(header: str) -> str:
    return str(header).strip().replace('"', "").lower().replace(" ", "")


def _parse_int(value: str) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _parse_enum(value: str, enum_class: Any, default: Any, line: int) -> Any:
    if not value:
        return default
    try:
        return enum_class(value.strip().upper())
    except ValueError:
        logger.warning(
            "Line %d: unknown %s %r, using %s",
            line,
            enum_class.__name__,
            value,
            default.value,
        )
        return default


def read_leads_csv(source: Union[str, Path, IO[str]]) -> List[Dict[str, Any]]:
    """
    Read leads from a CSV file into rows for ``LeadService.import_leads``.

    Headers are matched case-insensitively with spaces removed, so both
    ``First Name`` and ``firstname`` work. A single ``name`` column is split
    into first and last name. Missing values get import defaults; blank
    lines are skipped.

    Returns:
        Lead field dictionaries
    """
    df = pd.read_csv(
        source, dtype=str, keep_default_na=False, skip_blank_lines=True
    )
    df.columns = [_normalize_header(c) for c in df.columns]

    stamp = int(utc_now().timestamp() * 1000)
    rows: List[Dict[str, Any]] = []
    for index, record in enumerate(df.to_dict(orient="records"), start=1):
        values = {k: (v or "").strip() for k, v in record.items()}
        if not any(values.values()):
            continue

        name_parts = values.get("name", "").split(" ")
        first_name = values.get("firstname") or name_parts[0] or "Imported"
        last_name = (
            values.get("lastname") or " ".join(name_parts[1:]).strip() or "Lead"
        )
        tags = values.get("tags", "")
        budget = _parse_int(values.get("budget", ""))
        line = index + 1

        rows.append(
            {
                "first_name": first_name,
                "last_name": last_name,
                "email": values.get("email") or f"imported.{stamp}.{index}@example.com",
                "phone": values.get("phone") or PLACEHOLDER_PHONE,
                "status": _parse_enum(
                    values.get("status", ""), LeadStatus, LeadStatus.NEW, line
                ),
                "temperature": _parse_enum(
                    values.get("temperature", ""),
                    LeadTemperature,
                    LeadTemperature.NORMAL,
                    line,
                ),
                "source": values.get("source") or IMPORT_SOURCE,
                "tags": (
                    [t.strip() for t in tags.split(";") if t.strip()]
                    if tags
                    else [IMPORT_TAG]
                ),
                "property_address": (
                    values.get("address") or values.get("propertyaddress") or ""
                ),
                "budget": budget,
                "estimated_deal_value": budget * ESTIMATED_COMMISSION_RATE,
            }
        )

    logger.info("Read %d leads from CSV", len(rows))
    return rows
