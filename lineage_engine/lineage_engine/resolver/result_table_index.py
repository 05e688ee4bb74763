"""First pass: index the result tables declared by a script.

Result tables are the nodes without a field mapping.  The index lets the
second pass recover the datasource of a source table when a mapping entry
leaves ``sourceDatasourceId`` out.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from lineage_engine.models.job import LineageNode, ResultTableNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResultTableDescriptor:
    datasource_id: str
    table_name: str


ResultTableIndex = Mapping[str, ResultTableDescriptor]


def build_result_table_index(nodes: Iterable[LineageNode]) -> ResultTableIndex:
    """Collect result-table descriptors keyed by table name.

    When the same table name is declared more than once the *last*
    declaration wins; later declarations in a script are taken as more
    authoritative.  The returned mapping is read-only.
    """
    index: dict[str, ResultTableDescriptor] = {}
    for node in nodes:
        if not isinstance(node, ResultTableNode):
            continue
        previous = index.get(node.table_name)
        if previous is not None and previous.datasource_id != node.datasource_id:
            logger.debug(
                "Result table '%s' redeclared: datasource %s replaces %s",
                node.table_name,
                node.datasource_id,
                previous.datasource_id,
            )
        index[node.table_name] = ResultTableDescriptor(
            datasource_id=node.datasource_id,
            table_name=node.table_name,
        )
    return MappingProxyType(index)
