"""Helpers for rendering query rows on the command line."""
from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, Iterable, List

import proto
from google.protobuf import json_format
from tabulate import tabulate


def row_to_dict(row: Any) -> dict:
    """Flatten a GoogleAdsRow (or nested mapping) into dotted column names."""
    if isinstance(row, proto.Message):
        row = json_format.MessageToDict(type(row).pb(row), preserving_proto_field_name=True)
    flat: dict = {}

    def _walk(value: Any, prefix: str) -> None:
        if isinstance(value, Mapping) and value:
            for key, item in value.items():
                _walk(item, f"{prefix}.{key}" if prefix else str(key))
        else:
            flat[prefix] = value

    _walk(row, "")
    return flat


def format_rows(rows: Iterable[Any], output_format: str = "table") -> str:
    payload: List[dict] = [row_to_dict(row) for row in rows]
    if not payload:
        return "No rows returned."
    if output_format == "json":
        return json.dumps(payload, indent=2, default=str)

    headers: List[str] = []
    for row in payload:
        for key in row:
            if key not in headers:
                headers.append(key)
    table_data = [[row.get(header, "-") for header in headers] for row in payload]
    return tabulate(table_data, headers=headers, tablefmt="plain")


__all__ = ["format_rows", "row_to_dict"]
