#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
OCPM CLI Module
Command-line interface for building the OCPM dataset fragments and the
combined dataset document.
"""

import argparse
import logging
import os
import sys
from datetime import datetime
from pathlib import Path

import yaml

from .case_table import DuplicateMetadataColumnError, build_case_table
from .catalog import CatalogError, EntityCatalog, VariantCatalog
from .config import DEFAULT_FILES, load_params
from .dataset import assemble_dataset
from .entities import ColumnNotFoundError, build_entities
from .io import (
    EmptySheetError,
    InputFileError,
    MissingSheetError,
    create_runlog,
    load_json,
    load_workbook,
    write_json,
)
from .relations import build_attribute_objects, build_event_objects, build_object_objects
from .variants import build_variants

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

FATAL_ERRORS = (
    InputFileError,
    MissingSheetError,
    EmptySheetError,
    CatalogError,
    ColumnNotFoundError,
    DuplicateMetadataColumnError,
    yaml.YAMLError,
)


def _banner(title: str, args: argparse.Namespace) -> None:
    logger.info("=" * 60)
    logger.info(title)
    logger.info("=" * 60)
    if getattr(args, "input", None):
        logger.info(f"Input:  {args.input}")
    logger.info(f"Output: {args.output}")
    logger.info("-" * 60)


def _load_catalog(path: str) -> EntityCatalog:
    return EntityCatalog.from_document(load_json(path, required=True))


def _load_variant_catalog(path: str):
    try:
        document = load_json(path, required=False)
    except InputFileError as e:
        logger.warning(f"{e}; skipping variant reconciliation")
        return None
    if document is None:
        logger.warning(f"Variant catalog {path} not found, skipping variant reconciliation")
        return None
    catalog = VariantCatalog.from_document(document)
    if catalog is None:
        logger.warning(f"Variant catalog {path} has no 'groups' list, skipping variant reconciliation")
    return catalog


# ---------------------------------------------------------------------------
# COMMANDS
# ---------------------------------------------------------------------------

def run_entities(args: argparse.Namespace, params: dict) -> str:
    _banner("OCPM: Entity Catalog", args)
    sheets = load_workbook(args.input)
    document = build_entities(sheets, params)
    return write_json(args.output, document)


def run_case_table(args: argparse.Namespace, params: dict) -> str:
    _banner("OCPM: Case Table", args)
    start_time = datetime.now()

    sheets = load_workbook(args.input)
    catalog = _load_catalog(args.entities)
    variant_catalog = _load_variant_catalog(args.variant_catalog)

    result = build_case_table(sheets, catalog, variant_catalog, params)
    output_path = write_json(args.output, result.document)

    if args.runlog:
        end_time = datetime.now()
        runlog = create_runlog(
            command="case-table",
            inputs={
                "workbook": args.input,
                "entities": args.entities,
                "variant_catalog": args.variant_catalog,
            },
            output_path=output_path,
            counts={
                "dimensions": len(result.dimensions),
                "items": sum(len(d.items) for d in result.dimensions),
                "unresolved": result.report.count(),
            },
            unresolved=result.report.unresolved,
            start_time=start_time,
            end_time=end_time,
        )
        logger.info(f"Runlog: {write_json(args.runlog, runlog)}")
    return output_path


def _run_relation(builder, title: str, sheet_key: str):
    def run(args: argparse.Namespace, params: dict) -> str:
        _banner(title, args)
        sheets = load_workbook(args.input)
        catalog = _load_catalog(args.entities)
        document, report = builder(sheets, catalog, params["sheets"][sheet_key])
        report.log_summary(params.get("unresolved_sample_size", 10))
        return write_json(args.output, document)
    return run


run_attribute_objects = _run_relation(build_attribute_objects, "OCPM: Attribute -> Object", "attribute_objects")
run_event_objects = _run_relation(build_event_objects, "OCPM: Event -> Object", "event_objects")
run_object_objects = _run_relation(build_object_objects, "OCPM: Object -> Object", "object_objects")


def run_variants(args: argparse.Namespace, params: dict) -> str:
    _banner("OCPM: Variants", args)
    sheets = load_workbook(args.input)
    catalog = _load_catalog(args.entities)
    document, report = build_variants(sheets, catalog, params.get("variant_sheet_prefix"))
    report.log_summary(params.get("unresolved_sample_size", 10))
    return write_json(args.output, document)


def run_dataset(args: argparse.Namespace, params: dict) -> str:
    _banner("OCPM: Dataset Assembly", args)
    dataset_id = args.id or os.environ.get("NEW_ID")
    if not dataset_id:
        raise InputFileError("A dataset id is required: pass --id or set NEW_ID")

    document = assemble_dataset(
        dataset_id=dataset_id,
        name=args.name,
        data_pool=args.data_pool,
        data_model=args.data_model,
        entities=load_json(args.entities),
        variants=load_json(args.variants),
        case_table=load_json(args.case_table),
        event_objects=load_json(args.event_objects),
        object_objects=load_json(args.object_objects),
        attribute_objects=load_json(args.attribute_objects),
    )
    return write_json(args.output, document)


# ---------------------------------------------------------------------------
# PARSER
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--entities", "-e",
        default=DEFAULT_FILES["entities"],
        help="Entity catalog JSON (default: %(default)s)",
    )
    common.add_argument("--config", "-c", default=None, help="Path to params YAML")
    common.add_argument("--verbose", "-v", action="store_true", help="Enable verbose (debug) logging")

    workbook = argparse.ArgumentParser(add_help=False)
    workbook.add_argument(
        "--input", "-i",
        default=DEFAULT_FILES["workbook"],
        help="Input Excel workbook (default: %(default)s)",
    )

    parser = argparse.ArgumentParser(
        description="OCPM dataset builder: workbook + entity catalog -> JSON fragments -> dataset",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m ocpm.cli entities --input input.xlsx
  python -m ocpm.cli case-table --input input.xlsx --entities entities.json --runlog runlog.json
  python -m ocpm.cli variants --input input.xlsx --config ocpm_pipeline/config/params.yaml
  NEW_ID=<uuid> python -m ocpm.cli dataset --name test01 --data-pool default --data-model testing
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    def add(name, help_text, output_key, handler, parents):
        p = sub.add_parser(name, help=help_text, parents=parents)
        p.add_argument(
            "--output", "-o",
            default=DEFAULT_FILES[output_key],
            help="Output JSON (default: %(default)s)",
        )
        p.set_defaults(handler=handler)
        return p

    add("entities", "Build the entity catalog from PE2/A2O/General", "entities", run_entities, [common, workbook])

    p = add("case-table", "Build case-table dimensions", "case_table", run_case_table, [common, workbook])
    p.add_argument(
        "--variant-catalog",
        default=DEFAULT_FILES["variant_catalog"],
        help="Optional variant catalog JSON (default: %(default)s)",
    )
    p.add_argument("--runlog", default=None, help="Write a JSON run log to this path")

    add("attribute-objects", "Map attributes to objects (A2O)", "attribute_objects", run_attribute_objects, [common, workbook])
    add("event-objects", "Map events to objects (PE2)", "event_objects", run_event_objects, [common, workbook])
    add("object-objects", "Map objects to objects (O2O)", "object_objects", run_object_objects, [common, workbook])
    add("variants", "Build variants from Variant_ sheets", "variants", run_variants, [common, workbook])

    p = add("dataset", "Assemble the combined dataset document", "dataset", run_dataset, [common])
    p.add_argument("--name", required=True, help="Dataset name")
    p.add_argument("--data-pool", required=True, help="Target data pool")
    p.add_argument("--data-model", required=True, help="Target data model")
    p.add_argument("--id", default=None, help="Dataset id (default: $NEW_ID)")
    p.add_argument("--variants", default=DEFAULT_FILES["variants"])
    p.add_argument("--case-table", default=DEFAULT_FILES["case_table"])
    p.add_argument("--event-objects", default=DEFAULT_FILES["event_objects"])
    p.add_argument("--object-objects", default=DEFAULT_FILES["object_objects"])
    p.add_argument("--attribute-objects", default=DEFAULT_FILES["attribute_objects"])
    return parser


def main(argv=None) -> int:
    """Main CLI entrypoint."""
    args = build_parser().parse_args(argv)

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    start_time = datetime.now()
    try:
        params = load_params(args.config)
        output_path = args.handler(args, params)
    except FATAL_ERRORS as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    except Exception as e:
        logger.exception(f"{args.command} failed with error: {e}")
        return 1

    duration = (datetime.now() - start_time).total_seconds()
    logger.info("-" * 60)
    logger.info(f"Wrote {Path(output_path)} in {duration:.1f} seconds")
    logger.info("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
