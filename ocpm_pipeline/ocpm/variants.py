"""
Variant builder.

Every Variant_* sheet becomes one variant: A2 holds the frequency, and each
row from 2 with a value in column B is one step referencing an event
(B name, C start day, D end day, E automation share).
"""

import logging
from typing import Any, Dict, List, Mapping

import pandas as pd

from .catalog import EntityCatalog, ReconciliationReport
from .config import (
    DEFAULT_VARIANT_AUTOMATION,
    DEFAULT_VARIANT_DAY,
    DEFAULT_VARIANT_FREQUENCY,
    UNRESOLVED_VARIANT_ID,
    VARIANT_SHEET_PREFIX,
)
from .transforms import alnum_name, cell, frame_rows, is_blank, new_id, tidy_number, to_float

logger = logging.getLogger(__name__)

# Column positions inside a Variant_* sheet
NAME_COL, START_COL, END_COL, AUTOMATION_COL = 1, 2, 3, 4


def variant_name(sheet_name: str) -> str:
    """Variant_Fast_Track -> Fast_Track; names without "_" are kept."""
    parts = sheet_name.split("_")
    return "_".join(parts[1:]) if len(parts) > 1 else sheet_name


def number_or(raw: Any, fallback: float) -> float:
    value = to_float(raw)
    return fallback if value is None else value


def normalize_automation(value: float) -> float:
    """Negative shares floor to 0, others scale x100."""
    return 0 if value < 0 else tidy_number(value * 100)


def normalize_day(value: float) -> float:
    """Start/end days under 1 become 1."""
    return 1 if value < 1 else tidy_number(value)


def build_variant(sheet_name: str, df: pd.DataFrame) -> Dict[str, Any]:
    rows = frame_rows(df)
    frequency = number_or(cell(rows[1], 0), DEFAULT_VARIANT_FREQUENCY) if len(rows) > 1 else DEFAULT_VARIANT_FREQUENCY

    items = []
    for row in rows[1:]:
        name_cell = cell(row, NAME_COL)
        if is_blank(name_cell):
            continue
        items.append({
            "id": new_id(),
            "referencedId": UNRESOLVED_VARIANT_ID,
            "activityId": None,
            "automation": normalize_automation(number_or(cell(row, AUTOMATION_COL), DEFAULT_VARIANT_AUTOMATION)),
            "startDate": normalize_day(number_or(cell(row, START_COL), DEFAULT_VARIANT_DAY)),
            "endDate": normalize_day(number_or(cell(row, END_COL), DEFAULT_VARIANT_DAY)),
            "referencedName": alnum_name(name_cell),
        })

    return {
        "id": new_id(),
        "name": variant_name(sheet_name),
        "frequency": tidy_number(frequency),
        "items": items,
    }


def link_referenced_ids(variants: List[Dict[str, Any]], event_index: Mapping[str, str], report: ReconciliationReport) -> None:
    """Fill referencedId from the event catalog; unmatched steps keep "0"."""
    for variant in variants:
        for item in variant["items"]:
            current = item.get("referencedId") or UNRESOLVED_VARIANT_ID
            if str(current) != UNRESOLVED_VARIANT_ID:
                item["referencedId"] = str(current)
                continue
            found = event_index.get(alnum_name(item.get("referencedName", "")))
            if found:
                item["referencedId"] = found
            else:
                item["referencedId"] = UNRESOLVED_VARIANT_ID
                report.add("event", item.get("referencedName"))


def build_variants(
    sheets: Dict[str, pd.DataFrame],
    catalog: EntityCatalog,
    prefix: str = VARIANT_SHEET_PREFIX,
) -> tuple:
    """
    Build the variants document from all Variant_* sheets.

    Returns:
        Tuple of ({"variants": {"items": [...], "randomConfigs": []}}, report)
    """
    report = ReconciliationReport()
    variants = [
        build_variant(sheet, df)
        for sheet, df in sheets.items()
        if sheet.startswith(prefix)
    ]
    logger.info(f"  Parsed {len(variants)} variant sheets")

    link_referenced_ids(variants, catalog.index("events", alnum_name), report)
    return {"variants": {"items": variants, "randomConfigs": []}}, report
