#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
OCPM I/O Module
Handles loading the input workbook and JSON documents and writing outputs.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from . import __version__

logger = logging.getLogger(__name__)


class InputFileError(ValueError):
    """A required input file is missing or cannot be parsed."""


class MissingSheetError(ValueError):
    """A sheet required by a builder is absent from the workbook."""

    def __init__(self, sheet_name: str, xlsx_path: str = ""):
        where = f" in {xlsx_path}" if xlsx_path else ""
        super().__init__(f"Sheet '{sheet_name}' not found{where}")
        self.sheet_name = sheet_name


class EmptySheetError(ValueError):
    """A required sheet exists but has no rows."""


def load_workbook(xlsx_path: str) -> Dict[str, pd.DataFrame]:
    """
    Load every sheet of a workbook as a raw grid.

    Args:
        xlsx_path: Path to the Excel file

    Returns:
        Dict of sheet name -> DataFrame read with header=None, in workbook order
    """
    path = Path(xlsx_path)
    if not path.exists():
        raise InputFileError(f"Input workbook not found: {path}")
    try:
        xl = pd.ExcelFile(path, engine="openpyxl")
    except Exception as e:
        raise InputFileError(f"Cannot open Excel file {path}: {e}") from e

    sheets: Dict[str, pd.DataFrame] = {}
    with xl:
        for sheet_name in xl.sheet_names:
            df = pd.read_excel(xl, sheet_name=sheet_name, header=None, dtype=object)
            sheets[sheet_name] = df
            logger.debug(f"Loaded sheet '{sheet_name}' with {len(df)} rows")
    logger.info(f"Loaded {len(sheets)} sheets from {path.name}")
    return sheets


def require_sheet(sheets: Dict[str, pd.DataFrame], sheet_name: str, xlsx_path: str = "") -> pd.DataFrame:
    if sheet_name not in sheets:
        raise MissingSheetError(sheet_name, xlsx_path)
    return sheets[sheet_name]


def load_json(json_path: str, required: bool = True) -> Optional[Any]:
    """
    Load a JSON document.

    Args:
        json_path: Path to the JSON file
        required: Raise when the file is missing instead of returning None

    Returns:
        Parsed document, or None for a missing optional file
    """
    path = Path(json_path)
    if not path.exists():
        if required:
            raise InputFileError(f"Required file not found: {path}")
        logger.debug(f"Optional file not found: {path}")
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InputFileError(f"Failed to read/parse {path}: {e}") from e


def write_json(json_path: str, document: Any) -> str:
    """Write a document as indented UTF-8 JSON and return the path."""
    path = Path(json_path)
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=2, ensure_ascii=False, default=str)
    logger.debug(f"Wrote {path}")
    return str(path)


def create_runlog(
    command: str,
    inputs: Dict[str, str],
    output_path: str,
    counts: Dict[str, int],
    unresolved: Dict[str, List[str]],
    start_time: datetime,
    end_time: datetime,
) -> Dict[str, Any]:
    """
    Create a run log dictionary with execution metadata.

    Args:
        command: CLI command that produced the output
        inputs: Input role -> path
        output_path: Written output file
        counts: Summary counters (dimensions, items, ...)
        unresolved: Reference kind -> names left unresolved
        start_time: Pipeline start time
        end_time: Pipeline end time

    Returns:
        Run log dictionary
    """
    return {
        "pipeline": "ocpm",
        "command": command,
        "version": __version__,
        "inputs": inputs,
        "output": output_path,
        "counts": counts,
        "unresolved": unresolved,
        "start_time": start_time.isoformat(),
        "end_time": end_time.isoformat(),
        "duration_seconds": (end_time - start_time).total_seconds(),
    }
