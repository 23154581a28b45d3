# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 Reconciler Serialization - Mapping between plain data and model records.

Desired states arrive as JSON documents (CLI files, API payloads) and
snapshots are persisted as JSON in the vault. Both directions are driven by
the dataclass type hints of the model, so new record fields need no extra
mapping code.
"""

import json
import types
from dataclasses import fields, is_dataclass
from datetime import date
from enum import Enum
from typing import Any, Dict, Type, TypeVar, Union, get_args, get_origin, get_type_hints

from s3recon.exceptions import ValidationError
from s3recon.model import DesiredState, RecordedState

T = TypeVar("T")


def to_primitive(value: Any) -> Any:
    """Convert a record tree to JSON-compatible data, dropping unset fields."""
    if is_dataclass(value) and not isinstance(value, type):
        result: Dict[str, Any] = {}
        for f in fields(value):
            item = getattr(value, f.name)
            if item is None:
                continue
            result[f.name] = to_primitive(item)
        return result
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_primitive(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_primitive(v) for v in value]
    return value


def _is_optional(tp: Any) -> bool:
    return get_origin(tp) in (Union, types.UnionType)


def from_primitive(tp: Any, data: Any, path: str = "") -> Any:
    """
    Build a value of type tp from JSON-compatible data.

    Raises:
        ValidationError: On unknown fields, missing required fields or
            records rejecting their values
    """
    if _is_optional(tp):
        if data is None:
            return None
        candidates = [arg for arg in get_args(tp) if arg is not type(None)]
        return from_primitive(candidates[0], data, path)

    origin = get_origin(tp)
    if origin is tuple:
        item_type = get_args(tp)[0]
        if isinstance(data, (str, dict)):
            raise ValidationError(f"{path or 'value'} must be a list")
        return tuple(
            from_primitive(item_type, item, f"{path}[{index}]")
            for index, item in enumerate(data or [])
        )
    if origin is dict or tp is dict:
        if not isinstance(data or {}, dict):
            raise ValidationError(f"{path or 'value'} must be a mapping")
        return {str(k): v for k, v in (data or {}).items()}

    if is_dataclass(tp):
        return _record_from_dict(tp, data, path)

    # JSON documents (policy, routing rules) may be given inline
    if tp is str and isinstance(data, (dict, list)):
        return json.dumps(data)
    return data


def _record_from_dict(cls: Type[T], data: Any, path: str) -> T:
    if not isinstance(data, dict):
        raise ValidationError(
            f"{path or cls.__name__} must be a mapping",
            details={"value": repr(data)},
        )

    hints = get_type_hints(cls)
    known = {f.name for f in fields(cls) if f.init}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValidationError(
            f"Unknown fields for {cls.__name__}",
            details={"path": path or cls.__name__, "fields": unknown},
        )

    kwargs = {
        name: from_primitive(hints[name], value, f"{path}.{name}" if path else name)
        for name, value in data.items()
    }
    try:
        return cls(**kwargs)
    except TypeError as exc:
        raise ValidationError(
            f"Incomplete {cls.__name__}: {exc}",
            details={"path": path or cls.__name__},
        ) from exc


def desired_state_from_dict(data: Dict[str, Any]) -> DesiredState:
    return from_primitive(DesiredState, data)


def recorded_state_from_dict(data: Dict[str, Any]) -> RecordedState:
    return from_primitive(RecordedState, data)


def state_to_dict(state: Any) -> Dict[str, Any]:
    """Serialize a DesiredState or RecordedState."""
    return to_primitive(state)


def state_to_json(state: Any) -> str:
    return json.dumps(state_to_dict(state), sort_keys=True)


def load_desired_state(path: str) -> DesiredState:
    """Read a desired state from a JSON file."""
    with open(path, "r", encoding="utf-8") as fh:
        try:
            data = json.load(fh)
        except ValueError as exc:
            raise ValidationError(
                f"Desired state file is not valid JSON: {path}",
            ) from exc
    return desired_state_from_dict(data)


__all__ = [
    "to_primitive",
    "from_primitive",
    "desired_state_from_dict",
    "recorded_state_from_dict",
    "state_to_dict",
    "state_to_json",
    "load_desired_state",
]
