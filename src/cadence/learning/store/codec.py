"""Flat row encoding for the SQLite gateway.

The only place where structured fields become strings: nested values
(context, tags, adaptation history, payloads, action logs) are
JSON-encoded into TEXT columns and booleans become integers. Each
``*_to_storage`` has a ``*_from_storage`` inverse that rebuilds an object
equal to the original.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from cadence.core.errors import PersistenceError
from cadence.learning.insights import Insight
from cadence.learning.metrics import MetricSummary
from cadence.learning.patterns import PatternModel
from cadence.learning.records import ExecutionRecord

SQLParam = str | int | float | bytes | None

EXECUTION_JSON_FIELDS = ("context",)
EXECUTION_BOOL_FIELDS = ("success", "blocked", "parallel")
PATTERN_JSON_FIELDS = ("adaptation_history", "related_patterns", "metadata")
INSIGHT_JSON_FIELDS = (
    "payload",
    "affected_hooks",
    "related_patterns",
    "automatic_actions",
    "validation_results",
    "user_feedback",
)
INSIGHT_BOOL_FIELDS = ("applied",)
METRIC_JSON_FIELDS = ("tags", "dimensions", "context")


def encode_json(value: Any) -> str:
    try:
        return json.dumps(value, sort_keys=True)
    except (TypeError, ValueError) as e:
        raise PersistenceError(f"Cannot serialize value for storage: {e}") from e


def decode_json(text: str | None, default: Any) -> Any:
    if text is None or text == "":
        return default
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise PersistenceError(f"Corrupt JSON column in store: {e}") from e


def _flatten(
    data: dict[str, Any],
    json_fields: tuple[str, ...],
    bool_fields: tuple[str, ...] = (),
) -> dict[str, SQLParam]:
    row: dict[str, SQLParam] = {}
    for key, value in data.items():
        if key in json_fields:
            row[key] = encode_json(value)
        elif key in bool_fields:
            row[key] = 1 if value else 0
        else:
            row[key] = value
    return row


def _expand(
    row: Mapping[str, Any],
    json_fields: tuple[str, ...],
    bool_fields: tuple[str, ...] = (),
    defaults: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    defaults = defaults or {}
    data: dict[str, Any] = {}
    for key in row.keys():
        value = row[key]
        if key in json_fields:
            data[key] = decode_json(value, defaults.get(key))
        elif key in bool_fields:
            data[key] = bool(value)
        else:
            data[key] = value
    return data


def _rebuild(kind: str, builder: Any, data: dict[str, Any]) -> Any:
    try:
        return builder(data)
    except (KeyError, TypeError, ValueError) as e:
        raise PersistenceError(f"Cannot rebuild {kind} from stored row: {e}") from e


def execution_to_storage(record: ExecutionRecord) -> dict[str, SQLParam]:
    return _flatten(record.to_dict(), EXECUTION_JSON_FIELDS, EXECUTION_BOOL_FIELDS)


def execution_from_storage(row: Mapping[str, Any]) -> ExecutionRecord:
    data = _expand(row, EXECUTION_JSON_FIELDS, EXECUTION_BOOL_FIELDS, {"context": {}})
    return _rebuild("execution", ExecutionRecord.from_dict, data)


def pattern_to_storage(model: PatternModel) -> dict[str, SQLParam]:
    row = _flatten(model.to_dict(), PATTERN_JSON_FIELDS)
    row["id"] = model.pattern_id
    return row


def pattern_from_storage(row: Mapping[str, Any]) -> PatternModel:
    data = _expand(
        row,
        PATTERN_JSON_FIELDS,
        defaults={"adaptation_history": [], "related_patterns": [], "metadata": {}},
    )
    data.pop("id", None)
    return _rebuild("pattern", PatternModel.from_dict, data)


def insight_to_storage(insight: Insight) -> dict[str, SQLParam]:
    return _flatten(insight.to_dict(), INSIGHT_JSON_FIELDS, INSIGHT_BOOL_FIELDS)


def insight_from_storage(row: Mapping[str, Any]) -> Insight:
    data = _expand(
        row,
        INSIGHT_JSON_FIELDS,
        INSIGHT_BOOL_FIELDS,
        {
            "payload": {},
            "affected_hooks": [],
            "related_patterns": [],
            "automatic_actions": [],
            "validation_results": [],
            "user_feedback": [],
        },
    )
    return _rebuild("insight", Insight.from_dict, data)


def metric_to_storage(sample: MetricSummary) -> dict[str, SQLParam]:
    return _flatten(sample.to_dict(), METRIC_JSON_FIELDS)


def metric_from_storage(row: Mapping[str, Any]) -> MetricSummary:
    data = _expand(
        row, METRIC_JSON_FIELDS, defaults={"tags": [], "dimensions": {}, "context": {}}
    )
    return _rebuild("metric", MetricSummary.from_dict, data)


__all__ = [
    "SQLParam",
    "decode_json",
    "encode_json",
    "execution_from_storage",
    "execution_to_storage",
    "insight_from_storage",
    "insight_to_storage",
    "metric_from_storage",
    "metric_to_storage",
    "pattern_from_storage",
    "pattern_to_storage",
]
