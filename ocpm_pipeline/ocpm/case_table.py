#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
OCPM Case Table Module
Builds case-table dimensions from the workbook and resolves their references.

Pipeline (each stage returns a new dimension list):
  1. build_dimensions           - one dimension per CaseTable_* sheet
  2. resolve_references         - ATTRIBUTE columns -> sibling dimension/item ids
  3. merge_metadata             - Metadata_* sheets -> metadata columns and values
  4. reconcile_entities         - dimension names -> catalog attribute ids
     reconcile_variants         - VARIANT columns -> variant group ids
  5. synthesize_missing_dimensions - empty dimensions for uncovered attributes
"""

import copy
import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Tuple

import pandas as pd

from .catalog import EntityCatalog, ReconciliationReport, VariantCatalog
from .config import (
    ATTRIBUTE_HEADER_PREFIX,
    CASE_TABLE_PREFIX,
    METADATA_PREFIX,
    VARIANT_HEADER_PREFIX,
    WHEREIS_MARKER,
)
from .models import (
    Dimension,
    Distribution,
    DistributionItem,
    DistributionType,
    Item,
    MetadataColumn,
    MetadataValue,
)
from .transforms import (
    cell,
    clean,
    column_key,
    column_letter,
    frame_rows,
    is_empty_row,
    is_identifier,
    match_key,
    parse_metadata,
    parse_number,
    sanitize_document,
    strip_prefix,
)

logger = logging.getLogger(__name__)

# Column A holds the item value, column B the standard distribution weight
VALUE_COLUMN = 0
STD_DISTRIBUTION_COLUMN = 1
FIRST_DISTRIBUTION_COLUMN = 2
FIRST_METADATA_COLUMN = 1


class DuplicateColumn(NamedTuple):
    sheet: str
    column: str
    header: str


class DuplicateMetadataColumnError(ValueError):
    """Two or more metadata columns on one sheet clean to the same name."""

    def __init__(self, duplicates: List[DuplicateColumn]):
        lines = [f"  - sheet '{d.sheet}' column {d.column}: '{d.header}'" for d in duplicates]
        super().__init__("Duplicate metadata column names:\n" + "\n".join(lines))
        self.duplicates = duplicates


# ---------------------------------------------------------------------------
# HEADER PARSING
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HeaderDescriptor:
    type: DistributionType
    alias: str
    reference: Optional[str]


def parse_distribution_header(raw: Any) -> Optional[HeaderDescriptor]:
    """
    Parse a case-table distribution column header.

    VARIANT_<name>   -> VARIANT, alias and pending reference <name>
    ATTRIBUTE_<name> -> ATTRIBUTE, alias <name>, reference left for resolution
    <name>           -> VARIANT, alias and pending reference <name>

    Returns None for headers that clean to an empty string.
    """
    name = clean(raw)
    if not name:
        return None
    rest = strip_prefix(name, VARIANT_HEADER_PREFIX)
    if rest is not None:
        return HeaderDescriptor(DistributionType.VARIANT, rest, rest or None)
    rest = strip_prefix(name, ATTRIBUTE_HEADER_PREFIX)
    if rest is not None:
        return HeaderDescriptor(DistributionType.ATTRIBUTE, rest, None)
    return HeaderDescriptor(DistributionType.VARIANT, name, name)


# ---------------------------------------------------------------------------
# 1. SHEET CLASSIFIER & DIMENSION BUILDER
# ---------------------------------------------------------------------------

def classify_sheets(
    sheet_names: List[str],
    case_table_prefix: str = CASE_TABLE_PREFIX,
    metadata_prefix: str = METADATA_PREFIX,
) -> Tuple[List[Tuple[str, str]], List[Tuple[str, str]]]:
    """
    Partition sheet names into case-table and metadata sheets.

    Returns:
        Tuple of ([(sheet, dimension name)], [(sheet, dimension name)]) in
        workbook order; other sheets are ignored
    """
    case_sheets: List[Tuple[str, str]] = []
    metadata_sheets: List[Tuple[str, str]] = []
    for sheet in sheet_names:
        rest = strip_prefix(sheet, case_table_prefix)
        target = case_sheets
        if rest is None:
            rest = strip_prefix(sheet, metadata_prefix)
            target = metadata_sheets
        if rest is None:
            continue
        name = clean(rest)
        if not name:
            logger.debug(f"Sheet '{sheet}' has no dimension name after its prefix, skipping")
            continue
        target.append((sheet, name))
    return case_sheets, metadata_sheets


def build_dimension(name: str, df: pd.DataFrame) -> Dimension:
    """
    Build one dimension from a case-table sheet.

    Args:
        name: Cleaned dimension name
        df: Raw sheet (header=None)

    Returns:
        Dimension with items and distribution items; a sheet without data
        rows yields an empty dimension
    """
    dimension = Dimension(name=name, referenced_id=name)
    rows = frame_rows(df)
    if len(rows) < 2:
        return dimension

    header = rows[0]
    for col in range(FIRST_DISTRIBUTION_COLUMN, len(header)):
        desc = parse_distribution_header(header[col])
        if desc is None:
            continue
        dimension.distribution_items.append(
            DistributionItem(
                type=desc.type,
                alias=desc.alias,
                referenced_id=desc.reference,
                source_column=col,
            )
        )

    for row in rows[1:]:
        if is_empty_row(row):
            continue
        value = clean(cell(row, VALUE_COLUMN))
        if not value:
            continue
        item = Item(value=value, std_distribution=parse_number(cell(row, STD_DISTRIBUTION_COLUMN)))
        item.distributions = [
            Distribution(di.id, parse_number(cell(row, di.source_column)))
            for di in dimension.distribution_items
        ]
        dimension.items.append(item)

    return dimension


def build_dimensions(
    sheets: Dict[str, pd.DataFrame],
    case_table_prefix: str = CASE_TABLE_PREFIX,
) -> List[Dimension]:
    """Build one dimension per case-table sheet, in sheet order."""
    case_sheets, _ = classify_sheets(list(sheets.keys()), case_table_prefix, metadata_prefix="")
    dimensions = []
    for sheet, name in case_sheets:
        dimension = build_dimension(name, sheets[sheet])
        logger.debug(
            f"Dimension '{name}' from '{sheet}': {len(dimension.items)} items, "
            f"{len(dimension.distribution_items)} distribution columns"
        )
        dimensions.append(dimension)
    return dimensions


def _dimension_index(dimensions: List[Dimension]) -> Dict[str, Dimension]:
    index: Dict[str, Dimension] = {}
    for dim in dimensions:
        index.setdefault(match_key(dim.name), dim)
    return index


# ---------------------------------------------------------------------------
# 2. CROSS-DIMENSION REFERENCE RESOLVER
# ---------------------------------------------------------------------------

def resolve_alias(alias: str, dimensions: Dict[str, Dimension]) -> Tuple[Optional[str], Optional[str]]:
    """
    Resolve an ATTRIBUTE alias to (dimension id, item id).

    "<dimension>WHEREIS<item>" addresses an item inside another dimension;
    a plain alias names a dimension only.
    """
    if not alias:
        return None, None
    pos = alias.upper().find(WHEREIS_MARKER)
    if pos < 0:
        target = dimensions.get(match_key(alias))
        return (target.id if target else None), None

    target = dimensions.get(match_key(alias[:pos]))
    if target is None:
        return None, None
    item = target.find_item(match_key(alias[pos + len(WHEREIS_MARKER):]))
    return target.id, (item.id if item else None)


def resolve_references(dimensions: List[Dimension]) -> List[Dimension]:
    dims = copy.deepcopy(dimensions)
    index = _dimension_index(dims)
    for dim in dims:
        for di in dim.distribution_items:
            if di.type is not DistributionType.ATTRIBUTE:
                continue
            di.referenced_id, di.referenced_item_id = resolve_alias(di.alias, index)
            if di.alias and di.referenced_id is None:
                logger.debug(f"ATTRIBUTE column '{di.alias}' on '{dim.name}' matches no dimension")
    return dims


# ---------------------------------------------------------------------------
# 3. METADATA MERGER
# ---------------------------------------------------------------------------

def parse_metadata_columns(sheet_name: str, header: List[Any]) -> List[MetadataColumn]:
    """
    Parse metadata column descriptors from a metadata sheet header.

    Raises:
        DuplicateMetadataColumnError: when two columns clean to the same name
    """
    columns: List[MetadataColumn] = []
    groups: Dict[str, List[MetadataColumn]] = {}
    for col in range(FIRST_METADATA_COLUMN, len(header)):
        name = clean(header[col])
        if not name:
            continue
        column = MetadataColumn(name=name, source_column=col, header=str(header[col]))
        columns.append(column)
        groups.setdefault(column_key(name), []).append(column)

    duplicates = [
        DuplicateColumn(sheet_name, column_letter(c.source_column), c.header)
        for group in groups.values()
        if len(group) > 1
        for c in group
    ]
    if duplicates:
        raise DuplicateMetadataColumnError(duplicates)
    return columns


def merge_metadata(
    dimensions: List[Dimension],
    sheets: Dict[str, pd.DataFrame],
    metadata_prefix: str = METADATA_PREFIX,
) -> List[Dimension]:
    """
    Attach metadata columns and per-item values from Metadata_* sheets.

    Every item of a dimension with metadata receives one value per column,
    None where the sheet has no row or cell for it.
    """
    dims = copy.deepcopy(dimensions)
    index = _dimension_index(dims)
    _, metadata_sheets = classify_sheets(list(sheets.keys()), case_table_prefix="", metadata_prefix=metadata_prefix)

    for sheet, name in metadata_sheets:
        dim = index.get(match_key(name))
        if dim is None:
            logger.debug(f"Metadata sheet '{sheet}' matches no dimension, skipping")
            continue
        rows = frame_rows(sheets[sheet])
        if not rows:
            continue

        columns = parse_metadata_columns(sheet, rows[0])
        if dim.attribute_metadata_items:
            logger.warning(f"Metadata sheet '{sheet}' replaces earlier metadata columns of '{dim.name}'")
        dim.attribute_metadata_items = columns
        for item in dim.items:
            item.attributes_metadata = [MetadataValue(c.id) for c in columns]

        matched = 0
        for row in rows[1:]:
            if is_empty_row(row):
                continue
            key = match_key(cell(row, 0))
            if not key:
                continue
            item = dim.find_item(key)
            if item is None:
                logger.debug(f"Metadata row '{cell(row, 0)}' on '{sheet}' matches no item")
                continue
            item.attributes_metadata = [
                MetadataValue(c.id, parse_metadata(cell(row, c.source_column))) for c in columns
            ]
            matched += 1
        logger.debug(f"Merged {len(columns)} metadata columns into '{dim.name}' ({matched} rows)")

    return dims


# ---------------------------------------------------------------------------
# 4. CATALOG RECONCILER
# ---------------------------------------------------------------------------

def iter_distribution_items(obj: Any) -> Iterator[DistributionItem]:
    """Yield every DistributionItem reachable from obj."""
    if isinstance(obj, DistributionItem):
        yield obj
    elif dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        for f in dataclasses.fields(obj):
            yield from iter_distribution_items(getattr(obj, f.name))
    elif isinstance(obj, dict):
        for value in obj.values():
            yield from iter_distribution_items(value)
    elif isinstance(obj, (list, tuple)):
        for value in obj:
            yield from iter_distribution_items(value)


def reconcile_entities(
    dimensions: List[Dimension],
    catalog: EntityCatalog,
    report: ReconciliationReport,
) -> List[Dimension]:
    """Replace dimension referencedId names with catalog attribute ids."""
    dims = copy.deepcopy(dimensions)
    resolved = 0
    for dim in dims:
        if is_identifier(dim.referenced_id):
            continue
        found = catalog.attribute_index.get(match_key(dim.referenced_id))
        if found:
            dim.referenced_id = found
            resolved += 1
        else:
            report.add("attribute", dim.referenced_id)
    logger.info(f"  Resolved {resolved} dimensions to catalog attributes")
    return dims


def reconcile_variants(
    dimensions: List[Dimension],
    variant_catalog: Optional[VariantCatalog],
    report: ReconciliationReport,
) -> List[Dimension]:
    """Replace VARIANT column references with variant group ids when a catalog is present."""
    dims = copy.deepcopy(dimensions)
    if variant_catalog is None:
        logger.info("  No usable variant catalog, skipping variant reconciliation")
        return dims
    resolved = 0
    for di in iter_distribution_items(dims):
        if di.type is not DistributionType.VARIANT:
            continue
        ref = di.referenced_id
        if not ref or is_identifier(ref):
            continue
        found = variant_catalog.group_index.get(match_key(ref))
        if found:
            di.referenced_id = found
            resolved += 1
        else:
            report.add("variant", ref)
    logger.info(f"  Resolved {resolved} variant references")
    return dims


# ---------------------------------------------------------------------------
# 5. MISSING-DIMENSION SYNTHESIZER
# ---------------------------------------------------------------------------

def synthesize_missing_dimensions(dimensions: List[Dimension], catalog: EntityCatalog) -> List[Dimension]:
    """Add an empty dimension for every catalog attribute without one."""
    dims = copy.deepcopy(dimensions)
    existing = {match_key(d.name) for d in dims}
    added = 0
    for attr in catalog.attributes:
        key = match_key(attr.name)
        if key in existing:
            continue
        dims.append(Dimension(name=attr.name, referenced_id=attr.id))
        existing.add(key)
        added += 1
    logger.info(f"  Synthesized {added} placeholder dimensions")
    return dims


# ---------------------------------------------------------------------------
# ORCHESTRATION
# ---------------------------------------------------------------------------

def case_table_document(dimensions: List[Dimension]) -> Dict[str, Any]:
    """Serialize dimensions and apply the final string sanitization."""
    document = {
        "caseTableCreator": {
            "dimensionList": [d.to_dict() for d in dimensions],
            "selectedDimensions": [],
        }
    }
    return sanitize_document(document)


@dataclass
class CaseTableResult:
    dimensions: List[Dimension]
    report: ReconciliationReport
    document: Dict[str, Any]


def build_case_table(
    sheets: Dict[str, pd.DataFrame],
    catalog: EntityCatalog,
    variant_catalog: Optional[VariantCatalog] = None,
    params: Optional[Dict[str, Any]] = None,
) -> CaseTableResult:
    """
    Run the full case-table pipeline.

    Args:
        sheets: Raw workbook sheets
        catalog: Entity catalog lookups
        variant_catalog: Variant group lookups, or None to skip variant reconciliation
        params: Parameters from config.load_params()

    Returns:
        CaseTableResult with the final dimensions, unresolved names and output document
    """
    params = params or {}
    case_prefix = params.get("case_table_prefix", CASE_TABLE_PREFIX)
    metadata_prefix = params.get("metadata_prefix", METADATA_PREFIX)
    report = ReconciliationReport()

    logger.info("Step 1/5: Building dimensions from case-table sheets...")
    dimensions = build_dimensions(sheets, case_prefix)
    logger.info(f"  Built {len(dimensions)} dimensions")

    logger.info("Step 2/5: Resolving cross-dimension references...")
    dimensions = resolve_references(dimensions)

    logger.info("Step 3/5: Merging metadata sheets...")
    dimensions = merge_metadata(dimensions, sheets, metadata_prefix)

    logger.info("Step 4/5: Reconciling against catalogs...")
    dimensions = reconcile_entities(dimensions, catalog, report)
    dimensions = reconcile_variants(dimensions, variant_catalog, report)

    logger.info("Step 5/5: Synthesizing missing dimensions...")
    dimensions = synthesize_missing_dimensions(dimensions, catalog)

    report.log_summary(params.get("unresolved_sample_size", 10))
    return CaseTableResult(dimensions=dimensions, report=report, document=case_table_document(dimensions))
