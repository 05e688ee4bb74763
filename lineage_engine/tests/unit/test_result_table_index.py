"""Unit tests for lineage_engine.resolver.result_table_index."""

from __future__ import annotations

import pytest
from lineage_engine.parser.script_decoder import decode_script
from lineage_engine.resolver.result_table_index import ResultTableDescriptor, build_result_table_index


class TestBuildResultTableIndex:
    def test_indexes_only_result_tables(self, orders_job):
        index = build_result_table_index(decode_script(orders_job))
        assert set(index) == {"orders", "customers"}
        assert index["orders"] == ResultTableDescriptor(datasource_id="1", table_name="orders")

    def test_last_declaration_wins(self):
        nodes = decode_script(
            {
                "nodes": [
                    {"datasourceId": 1, "tableName": "orders"},
                    {"datasourceId": 7, "tableName": "orders"},
                ]
            }
        )
        assert build_result_table_index(nodes)["orders"].datasource_id == "7"

    def test_empty_script_gives_empty_index(self):
        assert dict(build_result_table_index(())) == {}

    def test_index_is_read_only(self, orders_job):
        index = build_result_table_index(decode_script(orders_job))
        with pytest.raises(TypeError):
            index["x"] = ResultTableDescriptor("1", "x")  # type: ignore[index]
