"""Tests for the case-table dimension pipeline."""

import pandas as pd
import pytest

from ocpm.case_table import (
    DuplicateMetadataColumnError,
    build_case_table,
    build_dimensions,
    classify_sheets,
    merge_metadata,
    parse_distribution_header,
    reconcile_entities,
    reconcile_variants,
    resolve_references,
    synthesize_missing_dimensions,
)
from ocpm.catalog import EntityCatalog, ReconciliationReport, VariantCatalog
from ocpm.models import DistributionType

REGION_ID = "11111111-1111-4111-8111-111111111111"
CHANNEL_ID = "22222222-2222-4222-9222-222222222222"
PEAK_ID = "33333333-3333-4333-a333-333333333333"
OFFPEAK_ID = "44444444-4444-4444-b444-444444444444"


def sheet(rows):
    return pd.DataFrame(rows, dtype=object)


def region_sheets():
    return {
        "CaseTable_Region": sheet([
            ["Value", "StdDist", "VARIANT_Peak", "ATTRIBUTE_Channel"],
            ["north", 2, 5, "online"],
        ]),
    }


def entity_catalog():
    return EntityCatalog.from_document({
        "entitiesDefinitions": {
            "attributes": [
                {"id": REGION_ID, "name": "Region"},
                {"id": CHANNEL_ID, "name": "Channel"},
            ],
            "events": [],
            "objects": [],
        }
    })


def assert_aligned(dimensions):
    for dim in dimensions:
        for item in dim.items:
            assert len(item.distributions) == len(dim.distribution_items)
            assert len(item.attributes_metadata) == len(dim.attribute_metadata_items)


def test_region_example():
    dims = build_dimensions(region_sheets())

    assert len(dims) == 1
    region = dims[0]
    assert region.name == "Region"
    assert region.referenced_id == "Region"
    assert [di.type for di in region.distribution_items] == [DistributionType.VARIANT, DistributionType.ATTRIBUTE]
    assert [di.alias for di in region.distribution_items] == ["Peak", "Channel"]

    assert len(region.items) == 1
    item = region.items[0]
    assert item.value == "north"
    assert item.std_distribution == 2
    assert [d.distribution_item_id for d in item.distributions] == [di.id for di in region.distribution_items]
    assert item.distributions[0].value == 5
    assert item.distributions[1].value is None


def test_header_parser():
    assert parse_distribution_header("VARIANT_Peak").type is DistributionType.VARIANT
    attr = parse_distribution_header("ATTRIBUTE_Region WHEREIS north")
    assert attr.type is DistributionType.ATTRIBUTE
    assert attr.alias == "RegionWHEREISnorth"
    assert attr.reference is None
    plain = parse_distribution_header("Night Shift")
    assert (plain.type, plain.alias, plain.reference) == (DistributionType.VARIANT, "NightShift", "NightShift")
    assert parse_distribution_header("  ") is None


def test_classify_sheets_ignores_other_sheets():
    case, meta = classify_sheets(["PE2", "CaseTable_Region", "Metadata_Region", "casetable_Store", "CaseTable_"])
    assert case == [("CaseTable_Region", "Region"), ("casetable_Store", "Store")]
    assert meta == [("Metadata_Region", "Region")]


def test_sheet_without_rows_gives_empty_dimension():
    dims = build_dimensions({"CaseTable_Empty": sheet([["Value", "StdDist", "VARIANT_Peak"]])})
    assert len(dims) == 1
    assert dims[0].name == "Empty"
    assert dims[0].items == []


def test_blank_rows_and_blank_values_are_skipped():
    dims = build_dimensions({
        "CaseTable_Region": sheet([
            ["Value", "StdDist"],
            ["north", -1],
            [None, None],
            ["  ", 4],
            ["south", None],
        ])
    })
    assert [i.value for i in dims[0].items] == ["north", "south"]
    assert dims[0].items[0].std_distribution == 1
    assert dims[0].items[1].std_distribution is None


def whereis_sheets():
    sheets = region_sheets()
    sheets["CaseTable_Store"] = sheet([
        ["Value", "StdDist", "ATTRIBUTE_RegionWHEREISnorth", "ATTRIBUTE_RegionWHEREISsouth",
         "ATTRIBUTE_Region", "ATTRIBUTE_CountryWHEREISnorth"],
        ["s1", 1, 1, 1, 1, 1],
    ])
    return sheets


def test_whereis_resolves_dimension_and_item():
    dims = build_dimensions(whereis_sheets())
    resolved = resolve_references(dims)
    region, store = resolved
    north = region.items[0]

    refs = [(di.referenced_id, di.referenced_item_id) for di in store.distribution_items]
    assert refs[0] == (region.id, north.id)
    assert refs[1] == (region.id, None)
    assert refs[2] == (region.id, None)
    assert refs[3] == (None, None)


def test_resolve_references_returns_new_list():
    dims = build_dimensions(whereis_sheets())
    resolve_references(dims)
    assert all(di.referenced_id is None for di in dims[1].distribution_items)


def test_metadata_merge_keeps_alignment():
    sheets = {
        "CaseTable_Region": sheet([
            ["Value", "StdDist", "VARIANT_Peak"],
            ["north", 2, 5],
            ["south", 1, 3],
        ]),
        "Metadata_Region": sheet([
            ["Value", "Owner", "Budget"],
            ["NORTH", " Ann ", 0],
            ["unknown", "x", 1],
            [None, "x", 5],
            ["  ", "y", 6],
        ]),
        "Metadata_Nowhere": sheet([["Value", "Owner"], ["a", "b"]]),
    }
    dims = merge_metadata(build_dimensions(sheets), sheets)

    region = dims[0]
    assert [c.name for c in region.attribute_metadata_items] == ["Owner", "Budget"]
    north, south = region.items
    assert [m.value for m in north.attributes_metadata] == ["Ann", "1"]
    assert [m.value for m in south.attributes_metadata] == [None, None]
    assert [m.metadata_column_id for m in south.attributes_metadata] == [c.id for c in region.attribute_metadata_items]
    assert_aligned(dims)


def test_metadata_rows_without_item_value_are_skipped():
    sheets = {
        "CaseTable_Region": sheet([["Value", "StdDist"], ["north", 2]]),
        "Metadata_Region": sheet([
            ["Value", "Owner", "Budget"],
            [None, "x", 5],
            ["north", "Ann", 10],
            ["", "y", 6],
        ]),
    }
    dims = merge_metadata(build_dimensions(sheets), sheets)
    assert [m.value for m in dims[0].items[0].attributes_metadata] == ["Ann", "10"]

    sheets["Metadata_Region"] = sheet([["Value", "Owner", "Budget"], [None, "x", 5]])
    dims = merge_metadata(build_dimensions(sheets), sheets)
    assert [m.value for m in dims[0].items[0].attributes_metadata] == [None, None]


def test_duplicate_metadata_columns_abort():
    sheets = {
        "CaseTable_Product": sheet([["Value", "StdDist"], ["p1", 1]]),
        "Metadata_Product": sheet([["Value", "Cost_A", "CostA", "Owner"], ["p1", 1, 2, "x"]]),
    }
    dims = build_dimensions(sheets)
    with pytest.raises(DuplicateMetadataColumnError) as exc:
        merge_metadata(dims, sheets)

    assert [(d.column, d.header) for d in exc.value.duplicates] == [("B", "Cost_A"), ("C", "CostA")]
    assert "Cost_A" in str(exc.value)
    assert "CostA" in str(exc.value)
    assert "Metadata_Product" in str(exc.value)


def test_duplicate_metadata_columns_are_case_insensitive():
    sheets = {
        "CaseTable_Product": sheet([["Value", "StdDist"], ["p1", 1]]),
        "Metadata_Product": sheet([["Value", "cost", "COST"]]),
    }
    with pytest.raises(DuplicateMetadataColumnError):
        merge_metadata(build_dimensions(sheets), sheets)


def test_reconcile_entities_reports_unresolved():
    dims = build_dimensions(whereis_sheets())
    report = ReconciliationReport()
    reconciled = reconcile_entities(dims, entity_catalog(), report)

    assert reconciled[0].referenced_id == REGION_ID
    assert reconciled[1].referenced_id == "Store"
    assert report.unresolved == {"attribute": ["Store"]}
    # Input list is untouched
    assert dims[0].referenced_id == "Region"


def test_reconcile_variants():
    sheets = {
        "CaseTable_Region": sheet([
            ["Value", "StdDist", "VARIANT_Peak", "OffPeak", "VARIANT_Night", "ATTRIBUTE_Channel"],
            ["north", 2, 5, 1, 1, 1],
        ]),
    }
    variant_catalog = VariantCatalog.from_document({
        "groups": [
            {"id": PEAK_ID, "name": "Peak", "groups": [{"id": OFFPEAK_ID, "name": "Off Peak"}]},
        ]
    })
    report = ReconciliationReport()
    dims = reconcile_variants(build_dimensions(sheets), variant_catalog, report)

    refs = [di.referenced_id for di in dims[0].distribution_items]
    assert refs == [PEAK_ID, OFFPEAK_ID, "Night", None]
    assert report.unresolved == {"variant": ["Night"]}


def test_reconcile_variants_skipped_without_catalog():
    assert VariantCatalog.from_document([{"id": PEAK_ID, "name": "Peak"}]) is None
    report = ReconciliationReport()
    dims = reconcile_variants(build_dimensions(region_sheets()), None, report)
    assert dims[0].distribution_items[0].referenced_id == "Peak"
    assert report.count() == 0


def test_synthesizer_is_idempotent():
    catalog = entity_catalog()
    once = synthesize_missing_dimensions(build_dimensions(region_sheets()), catalog)
    assert [d.name for d in once] == ["Region", "Channel"]
    assert once[1].referenced_id == CHANNEL_ID
    assert once[1].items == []

    twice = synthesize_missing_dimensions(once, catalog)
    assert len(twice) == len(once)


def test_build_case_table_document():
    sheets = region_sheets()
    sheets["CaseTable_Sales_Channel"] = sheet([["Value", "StdDist"], ["web_shop", 0]])
    sheets["Metadata_Region"] = sheet([["Value", "Owner"], ["north", "Ann"]])

    result = build_case_table(sheets, entity_catalog())

    assert_aligned(result.dimensions)
    creator = result.document["caseTableCreator"]
    assert creator["selectedDimensions"] == []
    names = [d["name"] for d in creator["dimensionList"]]
    assert names == ["Region", "SalesChannel", "Channel"]

    region = creator["dimensionList"][0]
    assert region["referencedId"] == REGION_ID
    assert region["defaultItem"] is False
    assert region["items"][0]["stdDistribution"] == 2
    assert region["items"][0]["attributesMetadata"][0]["value"] == "Ann"
    assert region["distributionItems"][0]["type"] == "VARIANT"

    sales = creator["dimensionList"][1]
    assert sales["items"][0]["value"] == "webshop"
    assert sales["items"][0]["stdDistribution"] == 1
    assert result.report.unresolved == {"attribute": ["Sales_Channel"]}
