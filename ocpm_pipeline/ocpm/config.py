#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
OCPM Configuration
Defines sheet names, prefixes, default file names and parameter loading.
"""

import logging
import os
import re
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# SHEET NAMING CONVENTIONS
# ---------------------------------------------------------------------------

CASE_TABLE_PREFIX = "CaseTable_"
METADATA_PREFIX = "Metadata_"
VARIANT_SHEET_PREFIX = "Variant_"

ATTRIBUTE_OBJECT_SHEET = "A2O"
EVENT_OBJECT_SHEET = "PE2"
OBJECT_OBJECT_SHEET = "O2O"
GENERAL_SHEET = "General"

# Header prefixes on case-table distribution columns
VARIANT_HEADER_PREFIX = "VARIANT_"
ATTRIBUTE_HEADER_PREFIX = "ATTRIBUTE_"
WHEREIS_MARKER = "WHEREIS"

# ---------------------------------------------------------------------------
# DEFAULT FILE NAMES (working directory)
# ---------------------------------------------------------------------------

DEFAULT_FILES = {
    "workbook": "input.xlsx",
    "entities": "entities.json",
    "variant_catalog": "variantCatalog.json",
    "case_table": "caseTable.json",
    "attribute_objects": "attributeObjects.json",
    "event_objects": "eventObjects.json",
    "object_objects": "objectObjects.json",
    "variants": "variants.json",
    "dataset": "output.json",
}

# ---------------------------------------------------------------------------
# IDENTIFIERS
# ---------------------------------------------------------------------------

# Canonical random identifier (8-4-4-4-12 hex, version 1-5, RFC 4122 variant)
IDENTIFIER_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

UNRESOLVED_VARIANT_ID = "0"

# ---------------------------------------------------------------------------
# NUMERIC DEFAULTS
# ---------------------------------------------------------------------------

# Event->object cardinality values above this are capped
MAX_OBJECT_RANGE = 9

# Variant sheet defaults when a cell is blank
DEFAULT_VARIANT_FREQUENCY = 0
DEFAULT_VARIANT_AUTOMATION = 80
DEFAULT_VARIANT_DAY = 0

# Dataset assembly fallback for a catalog without a "general" block
DEFAULT_GENERAL_WINDOW_DAYS = 90
DEFAULT_TIME_UNIT = "MINUTES"
DEFAULT_N_CASES = 10000

DDG_TYPE = "OBJECT_CENTRIC"


def get_default_params() -> Dict[str, Any]:
    """Return default parameters."""
    return {
        "case_table_prefix": CASE_TABLE_PREFIX,
        "metadata_prefix": METADATA_PREFIX,
        "variant_sheet_prefix": VARIANT_SHEET_PREFIX,
        "sheets": {
            "attribute_objects": ATTRIBUTE_OBJECT_SHEET,
            "event_objects": EVENT_OBJECT_SHEET,
            "object_objects": OBJECT_OBJECT_SHEET,
            "general": GENERAL_SHEET,
        },
        "unresolved_sample_size": 10,
    }


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def load_params(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load parameters from a YAML file on top of the defaults.

    Args:
        config_path: Path to a params YAML file (optional)

    Returns:
        Parameter dictionary; defaults when the file is absent or empty
    """
    params = get_default_params()
    if not config_path:
        return params
    if not os.path.exists(config_path):
        logger.warning(f"Config file not found: {config_path}, using defaults")
        return params
    with open(config_path, "r", encoding="utf-8") as f:
        loaded = yaml.safe_load(f) or {}
    if not isinstance(loaded, dict):
        logger.warning(f"Config file {config_path} is not a mapping, using defaults")
        return params
    return _merge(params, loaded)
