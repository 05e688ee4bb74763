"""Unit tests for lineage_engine.parser.script_decoder."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
import yaml
from lineage_engine.errors import MalformedScript
from lineage_engine.models.job import FieldMappingNode, ResultTableNode
from lineage_engine.parser.script_decoder import decode_job, decode_script, load_job_file
from pydantic import ValidationError

# ---------------------------------------------------------------------------
# decode_script
# ---------------------------------------------------------------------------


class TestDecodeScript:
    def test_decodes_both_node_kinds_in_order(self, orders_job: dict[str, Any]):
        nodes = decode_script(orders_job)
        assert [type(n) for n in nodes] == [ResultTableNode, ResultTableNode, FieldMappingNode]
        assert nodes[0].table_name == "orders"
        assert nodes[2].table_name == "orders_daily"

    def test_numeric_ids_become_strings(self, orders_job: dict[str, Any]):
        nodes = decode_script(orders_job)
        assert nodes[0].datasource_id == "1"
        assert nodes[2].datasource_id == "2"

    def test_accepts_json_text(self, orders_job: dict[str, Any]):
        nodes = decode_script(json.dumps(orders_job))
        assert len(nodes) == 3

    def test_accepts_yaml_text(self, orders_job: dict[str, Any]):
        nodes = decode_script(yaml.safe_dump(orders_job))
        assert len(nodes) == 3

    def test_accepts_bare_node_list(self, orders_job: dict[str, Any]):
        nodes = decode_script(orders_job["nodes"])
        assert len(nodes) == 3

    def test_empty_field_mapping_is_result_table(self):
        nodes = decode_script({"nodes": [{"datasourceId": 1, "tableName": "t", "fieldMapping": []}]})
        assert isinstance(nodes[0], ResultTableNode)

    def test_null_field_mapping_is_result_table(self):
        nodes = decode_script({"nodes": [{"datasourceId": 1, "tableName": "t", "fieldMapping": None}]})
        assert isinstance(nodes[0], ResultTableNode)

    def test_entry_fields_decoded(self, orders_job: dict[str, Any]):
        mapping = decode_script(orders_job)[2]
        first, second, _ = mapping.field_mapping
        assert first.target_field == "order_id"
        assert first.source_field == "id"
        assert first.transform_function == "CAST(id AS BIGINT)"
        assert first.source_datasource_id is None
        assert second.source_field is None
        assert second.effective_source_field == "amount"

    def test_empty_script_is_malformed(self):
        with pytest.raises(MalformedScript, match="empty"):
            decode_script("   ")

    def test_unparseable_text_is_malformed(self):
        with pytest.raises(MalformedScript):
            decode_script("{not: [valid")

    def test_missing_nodes_key_is_malformed(self):
        with pytest.raises(MalformedScript, match="nodes"):
            decode_script({"etlName": "x"})

    def test_nodes_not_array_is_malformed(self):
        with pytest.raises(MalformedScript, match="array"):
            decode_script({"nodes": "orders"})

    def test_node_missing_table_name_is_malformed(self):
        with pytest.raises(MalformedScript) as excinfo:
            decode_script({"nodes": [{"datasourceId": 1}]})
        assert excinfo.value.details

    def test_entry_missing_target_field_is_malformed(self):
        doc = {
            "nodes": [
                {"datasourceId": 1, "tableName": "t", "fieldMapping": [{"sourceTableName": "s"}]},
            ]
        }
        with pytest.raises(MalformedScript):
            decode_script(doc)

    def test_invalid_utf8_is_malformed(self):
        with pytest.raises(MalformedScript, match="UTF-8"):
            decode_script(b"\xff\xfe\xfd")


# ---------------------------------------------------------------------------
# decode_job / load_job_file
# ---------------------------------------------------------------------------


class TestDecodeJob:
    def test_inline_nodes(self, orders_job: dict[str, Any]):
        job = decode_job(orders_job)
        assert job.job_id == "job-1"
        assert job.etl_name == "orders_daily_etl"
        assert len(job.result_table_nodes) == 2
        assert len(job.mapping_nodes) == 1

    def test_encoded_script_string(self, orders_job: dict[str, Any]):
        doc = {"id": 9, "etlName": "encoded", "script": json.dumps({"nodes": orders_job["nodes"]})}
        job = decode_job(doc)
        assert job.job_id == "9"
        assert len(job.nodes) == 3

    def test_job_id_override(self, orders_job: dict[str, Any]):
        assert decode_job(orders_job, job_id="override").job_id == "override"

    def test_missing_etl_name_is_malformed(self, orders_job: dict[str, Any]):
        del orders_job["etlName"]
        with pytest.raises(MalformedScript):
            decode_job(orders_job)

    def test_non_object_document_is_malformed(self):
        with pytest.raises(MalformedScript, match="object"):
            decode_job("[1, 2, 3]")

    def test_job_is_immutable(self, orders_job: dict[str, Any]):
        job = decode_job(orders_job)
        with pytest.raises(ValidationError):
            job.etl_name = "other"  # type: ignore[misc]


class TestLoadJobFile:
    def test_json_file(self, tmp_path: Path, orders_job: dict[str, Any]):
        path = tmp_path / "orders.json"
        path.write_text(json.dumps(orders_job), encoding="utf-8")
        assert load_job_file(path).etl_name == "orders_daily_etl"

    def test_yaml_file_uses_stem_when_id_missing(self, tmp_path: Path, orders_job: dict[str, Any]):
        del orders_job["id"]
        path = tmp_path / "nightly.yaml"
        path.write_text(yaml.safe_dump(orders_job), encoding="utf-8")
        assert load_job_file(path).job_id == "nightly"

    def test_missing_file_is_malformed(self, tmp_path: Path):
        with pytest.raises(MalformedScript, match="Cannot read"):
            load_job_file(tmp_path / "nope.json")
