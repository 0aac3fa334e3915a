"""End-to-end tests: workbook on disk -> CLI commands -> JSON files."""

import json
import logging

import pandas as pd
import pytest

from ocpm.cli import main


def write_workbook(path, sheets):
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for name, rows in sheets.items():
            pd.DataFrame(rows, dtype=object).to_excel(writer, sheet_name=name, header=False, index=False)
    return str(path)


def base_sheets():
    return {
        "General": [["Start", "End", "Unit", "Cases"], [20240101, 20240331, "minutes", 250]],
        "PE2": [
            ["activity", "automation", "Order", "Item"],
            ["Create Order", 0.5, 1, 3],
            ["Ship Goods", 0.2, 1, None],
        ],
        "A2O": [
            ["attribute", "Order", "Item"],
            ["Region", 1, None],
            ["Channel", 1, 1],
        ],
        "O2O": [
            ["object", "Order", "Item"],
            ["Order", "1", "n"],
        ],
        "CaseTable_Region": [
            ["Value", "StdDist", "VARIANT_Peak", "ATTRIBUTE_Channel WHEREIS web"],
            ["north", 2, 5, 1],
            ["south", 0, None, 3],
        ],
        "CaseTable_Channel": [
            ["Value", "StdDist"],
            ["web", 1],
        ],
        "Metadata_Region": [
            ["Value", "Owner", "Budget"],
            ["north", "Ann", 1200],
        ],
        "Variant_Fast_Track": [
            ["frequency", "activity", "start", "end", "automation"],
            [40, "Create Order", 1, 2, 0.9],
            [None, "Ship Goods", 2, 5, -0.5],
        ],
    }


def read_json(path):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture
def workdir(tmp_path):
    write_workbook(tmp_path / "input.xlsx", base_sheets())
    return tmp_path


def run(workdir, *args):
    return main([args[0], "--input", str(workdir / "input.xlsx"), "--entities", str(workdir / "entities.json"), *args[1:]])


def test_full_run(workdir, monkeypatch):
    assert run(workdir, "entities", "--output", str(workdir / "entities.json")) == 0
    entities = read_json(workdir / "entities.json")
    attr_ids = {a["name"]: a["id"] for a in entities["entitiesDefinitions"]["attributes"]}
    object_ids = {o["name"]: o["id"] for o in entities["entitiesDefinitions"]["objects"]}
    event_ids = {e["name"]: e["id"] for e in entities["entitiesDefinitions"]["events"]}
    assert entities["general"]["timeUnit"] == "MINUTES"

    assert run(
        workdir, "case-table",
        "--output", str(workdir / "caseTable.json"),
        "--variant-catalog", str(workdir / "variantCatalog.json"),
        "--runlog", str(workdir / "runlog.json"),
    ) == 0
    dims = read_json(workdir / "caseTable.json")["caseTableCreator"]["dimensionList"]
    region, channel = dims
    assert region["referencedId"] == attr_ids["Region"]
    assert channel["referencedId"] == attr_ids["Channel"]
    assert [i["stdDistribution"] for i in region["items"]] == [2, 1]
    whereis = region["distributionItems"][1]
    assert whereis["referencedId"] == channel["id"]
    assert whereis["referencedItemId"] == channel["items"][0]["id"]
    assert [m["value"] for m in region["items"][0]["attributesMetadata"]] == ["Ann", "1200"]
    assert [m["value"] for m in region["items"][1]["attributesMetadata"]] == [None, None]

    runlog = read_json(workdir / "runlog.json")
    assert runlog["command"] == "case-table"
    assert runlog["counts"]["dimensions"] == 2

    assert run(workdir, "attribute-objects", "--output", str(workdir / "attributeObjects.json")) == 0
    attrs = read_json(workdir / "attributeObjects.json")["ocpmRelations"]["attributes"]
    assert attrs[1]["targetObjects"] == [object_ids["Order"], object_ids["Item"]]

    assert run(workdir, "event-objects", "--output", str(workdir / "eventObjects.json")) == 0
    events = read_json(workdir / "eventObjects.json")["ocpmRelations"]["events"]
    assert [o["ocpmObjectId"] for o in events[0]["objects"]] == [object_ids["Order"], object_ids["Item"]]

    assert run(workdir, "object-objects", "--output", str(workdir / "objectObjects.json")) == 0
    objects = read_json(workdir / "objectObjects.json")["ocpmRelations"]["objects"]
    assert objects[0]["relations"][0]["sourceEntityId"] == object_ids["Order"]
    assert objects[0]["relations"][0]["targetEntityId"] == object_ids["Item"]

    assert run(workdir, "variants", "--output", str(workdir / "variants.json")) == 0
    variant = read_json(workdir / "variants.json")["variants"]["items"][0]
    assert variant["name"] == "Fast_Track"
    assert [i["referencedId"] for i in variant["items"]] == [event_ids["CreateOrder"], event_ids["ShipGoods"]]
    assert [i["automation"] for i in variant["items"]] == [90, 0]

    monkeypatch.setenv("NEW_ID", "dataset-0001")
    assert main([
        "dataset",
        "--name", "test01", "--data-pool", "default", "--data-model", "testing",
        "--entities", str(workdir / "entities.json"),
        "--variants", str(workdir / "variants.json"),
        "--case-table", str(workdir / "caseTable.json"),
        "--event-objects", str(workdir / "eventObjects.json"),
        "--object-objects", str(workdir / "objectObjects.json"),
        "--attribute-objects", str(workdir / "attributeObjects.json"),
        "--output", str(workdir / "output.json"),
    ]) == 0
    dataset = read_json(workdir / "output.json")
    assert dataset["dataSetConfig"]["id"] == "dataset-0001"
    assert dataset["general"] == entities["general"]
    assert len(dataset["caseTableCreator"]["dimensionList"]) == 2
    assert len(dataset["ocpmRelations"]["attributes"]) == 2


def test_dataset_requires_an_id(workdir, monkeypatch):
    monkeypatch.delenv("NEW_ID", raising=False)
    assert main([
        "dataset", "--name", "n", "--data-pool", "p", "--data-model", "m",
        "--entities", str(workdir / "entities.json"),
    ]) == 1


def test_duplicate_metadata_columns_exit_non_zero(tmp_path, caplog):
    sheets = base_sheets()
    sheets["Metadata_Region"] = [["Value", "Cost_A", "CostA"], ["north", 1, 2]]
    write_workbook(tmp_path / "input.xlsx", sheets)
    assert run(tmp_path, "entities", "--output", str(tmp_path / "entities.json")) == 0

    with caplog.at_level(logging.ERROR):
        code = run(tmp_path, "case-table", "--output", str(tmp_path / "caseTable.json"))
    assert code == 1
    assert "Cost_A" in caplog.text
    assert "CostA" in caplog.text
    assert not (tmp_path / "caseTable.json").exists()


def test_missing_inputs_exit_non_zero(tmp_path):
    assert run(tmp_path, "entities", "--output", str(tmp_path / "entities.json")) == 1

    write_workbook(tmp_path / "input.xlsx", {"PE2": [["activity"], ["Create Order"]]})
    assert run(tmp_path, "entities", "--output", str(tmp_path / "entities.json")) == 1
    assert run(tmp_path, "case-table", "--output", str(tmp_path / "caseTable.json")) == 1


def test_unparseable_variant_catalog_is_skipped(workdir, caplog):
    assert run(workdir, "entities", "--output", str(workdir / "entities.json")) == 0
    (workdir / "variantCatalog.json").write_text("{not json", encoding="utf-8")

    with caplog.at_level(logging.WARNING):
        code = run(
            workdir, "case-table",
            "--output", str(workdir / "caseTable.json"),
            "--variant-catalog", str(workdir / "variantCatalog.json"),
        )
    assert code == 0
    assert "skipping variant reconciliation" in caplog.text

    region = read_json(workdir / "caseTable.json")["caseTableCreator"]["dimensionList"][0]
    peak = region["distributionItems"][0]
    assert peak["type"] == "VARIANT"
    assert peak["referencedId"] == "Peak"


def test_malformed_params_yaml_exits_non_zero(workdir, caplog):
    bad = workdir / "params.yaml"
    bad.write_text("sheets: event_objects: PE2\n", encoding="utf-8")

    with caplog.at_level(logging.ERROR):
        code = run(workdir, "entities", "--output", str(workdir / "entities.json"), "--config", str(bad))
    assert code == 1
    assert "entities failed" in caplog.text
    assert not (workdir / "entities.json").exists()
