"""Builds request payloads for search and mutate calls.

Payloads are plain dicts in the field naming of the generated request types,
so they can be handed to any proto-plus request constructor. Unset fields are
left out entirely.
"""
from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Callable, Optional

import proto
from google.api_core import protobuf_helpers
from google.protobuf import field_mask_pb2
from google.protobuf import message as pb_message

from .services import to_snake_case

OPERATION_KINDS = ("create", "update", "remove")
EXEMPT_KEYS_FIELD = "exempt_policy_violation_keys"
# identifies the updated row, never one of the updated fields
UNMASKED_FIELDS = frozenset({"resource_name"})


def snake_case_keys(value: Any) -> Any:
    """Recursively convert camelCase mapping keys to snake_case."""
    if isinstance(value, Mapping):
        return {to_snake_case(str(key)): snake_case_keys(item) for key, item in value.items()}
    if isinstance(value, list):
        return [snake_case_keys(item) for item in value]
    return value


def _is_default(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, (str, bytes, list, tuple, Mapping)):
        return len(value) == 0
    if isinstance(value, (int, float)):
        return value == 0
    return False


def _dict_field_paths(entity: Mapping, prefix: str = ""):
    for key, value in entity.items():
        path = f"{prefix}{key}"
        if isinstance(value, Mapping):
            yield from _dict_field_paths(value, f"{path}.")
        elif not _is_default(value):
            yield path


def get_field_mask(entity: Any) -> field_mask_pb2.FieldMask:
    """Field mask of every field of ``entity`` that differs from its default."""
    if isinstance(entity, proto.Message):
        paths = protobuf_helpers.field_mask(None, type(entity).pb(entity)).paths
    elif isinstance(entity, pb_message.Message):
        paths = protobuf_helpers.field_mask(None, entity).paths
    elif isinstance(entity, Mapping):
        paths = _dict_field_paths(snake_case_keys(entity))
    else:
        raise TypeError(f"Cannot derive a field mask from {type(entity).__name__}")
    return field_mask_pb2.FieldMask(
        paths=[path for path in paths if path not in UNMASKED_FIELDS]
    )


def _check_kind(kind: str) -> None:
    if kind not in OPERATION_KINDS:
        raise ValueError(f"Unsupported operation {kind!r}; expected one of {OPERATION_KINDS}")


def _prepare(entity: Any) -> Any:
    # copy so exemption keys can be moved without touching the caller's object
    if isinstance(entity, Mapping):
        return snake_case_keys(copy.deepcopy(dict(entity)))
    return entity


def _resource_name(entity: Any) -> str:
    if isinstance(entity, str):
        return entity
    if isinstance(entity, Mapping):
        name = entity.get("resource_name") or entity.get("resourceName")
    else:
        name = getattr(entity, "resource_name", None)
    if not name:
        raise ValueError("remove operations need a resource name")
    return name


def build_operations(
    kind: str, entities: Sequence[Any], message: Optional[type] = None
) -> list[dict]:
    """Wrap entities in per-service operation envelopes.

    ``message`` is the generated resource type; when given, dict entities are
    checked against it and the update mask is derived from the typed message,
    so an unknown field raises ValueError instead of becoming a mask path.
    """
    _check_kind(kind)
    operations = []
    for entity in entities:
        if kind == "remove":
            operations.append({"remove": _resource_name(entity)})
            continue

        payload = _prepare(entity)
        operation: dict[str, Any] = {kind: payload}
        if kind == "create":
            if isinstance(payload, dict):
                keys = payload.pop(EXEMPT_KEYS_FIELD, None)
                if keys:
                    operation[EXEMPT_KEYS_FIELD] = list(keys)
        else:
            operation["update_mask"] = get_field_mask(_typed(message, payload))
        operations.append(operation)
    return operations


def _typed(message: Optional[type], payload: Any) -> Any:
    if message is None or not isinstance(payload, dict):
        return payload
    try:
        return message(payload)
    except (ValueError, TypeError, KeyError) as exc:
        raise ValueError(f"Invalid {message.__name__} update: {exc}") from exc


@dataclass
class MutateOperation:
    """One entry of a GoogleAdsService.Mutate batch."""

    entity: str
    resource: Any
    operation: str = "create"
    exempt_policy_violation_keys: Optional[list] = None

    @classmethod
    def coerce(cls, value: "MutateOperation | Mapping[str, Any]") -> "MutateOperation":
        if isinstance(value, cls):
            return value
        return cls(
            entity=value["entity"],
            resource=value["resource"],
            operation=value.get("operation") or "create",
            exempt_policy_violation_keys=value.get(EXEMPT_KEYS_FIELD),
        )


def build_mutate_operations(
    mutations: Sequence["MutateOperation | Mapping[str, Any]"],
    resource_type: Optional[Callable[[str], Optional[type]]] = None,
) -> list[dict]:
    """Tag each mutation with its entity operation key, preserving caller order.

    ``resource_type`` maps an entity name to its generated type for update
    mask derivation.
    """
    mutate_operations = []
    for item in mutations:
        mutation = MutateOperation.coerce(item)
        message = None
        if mutation.operation == "update" and resource_type is not None:
            message = resource_type(mutation.entity)
        [envelope] = build_operations(mutation.operation, [mutation.resource], message)
        if mutation.operation == "create" and mutation.exempt_policy_violation_keys:
            envelope[EXEMPT_KEYS_FIELD] = list(mutation.exempt_policy_violation_keys)
        key = to_snake_case(f"{mutation.entity}Operation")
        mutate_operations.append({key: envelope})
    return mutate_operations


def _options(options: Optional[Mapping[str, Any]]) -> dict:
    return {
        to_snake_case(key): value
        for key, value in (options or {}).items()
        if value is not None
    }


def build_search_request(
    customer_id: str, query: str, options: Optional[Mapping[str, Any]] = None
) -> dict:
    return {"customer_id": customer_id, "query": query, **_options(options)}


def build_search_stream_request(
    customer_id: str, query: str, options: Optional[Mapping[str, Any]] = None
) -> dict:
    return {"customer_id": customer_id, "query": query, **_options(options)}


def build_mutate_request(
    customer_id: str,
    mutate_operations: list[dict],
    options: Optional[Mapping[str, Any]] = None,
) -> dict:
    return {"customer_id": customer_id, "mutate_operations": mutate_operations, **_options(options)}


def build_request(
    customer_id: str,
    operations: list[dict],
    options: Optional[Mapping[str, Any]] = None,
) -> dict:
    return {"customer_id": customer_id, "operations": operations, **_options(options)}


__all__ = [
    "MutateOperation",
    "build_mutate_operations",
    "build_mutate_request",
    "build_operations",
    "build_request",
    "build_search_request",
    "build_search_stream_request",
    "get_field_mask",
    "snake_case_keys",
]
