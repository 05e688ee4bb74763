"""Decode ETL transform scripts into lineage nodes.

A script is a structured document holding a ``nodes`` array.  It may
arrive already parsed (a mapping or a list of node mappings) or as JSON
or YAML text.  Job documents wrap the script together with the job ``id``
and ``etlName``; the script itself may be inlined under ``nodes`` or
carried as an encoded string under ``script``::

    {"id": 7, "etlName": "orders_daily",
     "nodes": [{"datasourceId": 1, "tableName": "orders"}, ...]}

Every decode failure surfaces as :class:`~lineage_engine.errors.MalformedScript`
and no partial node list is ever returned.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from pydantic import TypeAdapter, ValidationError

from lineage_engine.errors import MalformedScript
from lineage_engine.models.job import ETLJobDefinition, LineageNode
from lineage_engine.telemetry.profiling import profile_operation

logger = logging.getLogger(__name__)

_NODES_ADAPTER: TypeAdapter[tuple[LineageNode, ...]] = TypeAdapter(tuple[LineageNode, ...])

_YAML_SUFFIXES: frozenset[str] = frozenset({".yaml", ".yml"})


# ---------------------------------------------------------------------------
# Raw document handling
# ---------------------------------------------------------------------------


def _parse_text(text: str | bytes) -> Any:
    """Parse JSON text, falling back to YAML (a superset) on failure."""
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedScript(f"Script is not valid UTF-8: {exc}") from exc
    if not text.strip():
        raise MalformedScript("Script is empty")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise MalformedScript(f"Script is neither valid JSON nor YAML: {exc}") from exc


def _validation_details(exc: ValidationError) -> list[dict[str, object]]:
    return [
        {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"], "type": err["type"]}
        for err in exc.errors()
    ]


def _extract_nodes(document: Any) -> Any:
    if isinstance(document, Mapping):
        if "nodes" not in document:
            raise MalformedScript("Script document has no 'nodes' array")
        return document["nodes"]
    return document


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


@profile_operation("script.decode")
def decode_script(raw: str | bytes | Mapping[str, Any] | Sequence[Any]) -> tuple[LineageNode, ...]:
    """Decode a transform script into an ordered tuple of lineage nodes.

    Parameters
    ----------
    raw:
        JSON/YAML text, a parsed mapping with a ``nodes`` key, or the
        parsed node list itself.

    Returns
    -------
    tuple[LineageNode, ...]
        Nodes in script order.  Nodes without a (non-empty) ``fieldMapping``
        decode to :class:`ResultTableNode`, the rest to :class:`FieldMappingNode`.

    Raises
    ------
    MalformedScript
        If the document cannot be parsed into the expected node shape.
    """
    document = _parse_text(raw) if isinstance(raw, (str, bytes)) else raw
    nodes = _extract_nodes(document)

    if isinstance(nodes, (str, bytes)) or not isinstance(nodes, Sequence):
        raise MalformedScript(f"'nodes' must be an array, got {type(nodes).__name__}")

    try:
        decoded = _NODES_ADAPTER.validate_python(nodes)
    except ValidationError as exc:
        details = _validation_details(exc)
        raise MalformedScript(f"Invalid lineage node(s): {len(details)} problem(s)", details) from exc

    logger.debug("Decoded %d lineage node(s)", len(decoded))
    return decoded


def decode_job(document: str | bytes | Mapping[str, Any], *, job_id: str | None = None) -> ETLJobDefinition:
    """Decode a full job document (id, etlName and script).

    The script may be inlined under ``nodes`` or supplied as encoded text
    under ``script``.  *job_id* overrides or supplies the job identifier.

    Raises
    ------
    MalformedScript
        If the job envelope or its script cannot be decoded.
    """
    parsed = _parse_text(document) if isinstance(document, (str, bytes)) else document
    if not isinstance(parsed, Mapping):
        raise MalformedScript(f"Job document must be an object, got {type(parsed).__name__}")

    payload: dict[str, Any] = dict(parsed)
    if "nodes" not in payload and isinstance(payload.get("script"), (str, bytes)):
        payload["nodes"] = decode_script(payload["script"])
    else:
        payload["nodes"] = decode_script(payload)
    payload.pop("script", None)
    if job_id is not None:
        payload["id"] = job_id

    try:
        return ETLJobDefinition.model_validate(payload)
    except ValidationError as exc:
        details = _validation_details(exc)
        raise MalformedScript(f"Invalid job definition: {len(details)} problem(s)", details) from exc


def load_job_file(path: Path) -> ETLJobDefinition:
    """Read and decode a job document from a JSON or YAML file.

    When the document has no ``id`` the file stem is used.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise MalformedScript(f"Cannot read job file {path}: {exc}") from exc

    if path.suffix.lower() in _YAML_SUFFIXES:
        try:
            parsed = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise MalformedScript(f"Invalid YAML in {path}: {exc}") from exc
    else:
        parsed = _parse_text(text)

    if isinstance(parsed, Mapping) and "id" not in parsed:
        return decode_job(parsed, job_id=path.stem)
    return decode_job(parsed)
