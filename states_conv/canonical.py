from __future__ import annotations

import json
from typing import Any

import yaml

from .constants import DOCUMENT_FIELDS, LEGACY_TIMEOUT_KEY, STATE_FIELDS
from .errors import MalformedDocument
from .fragment import Fragment
from .model import Document, State, StateKind


def _encode_value(value: Any, value_type: str) -> Any:
    if value_type == "fragment":
        return value.value
    if value_type == "fragments":
        return [f.value for f in value]
    return value


def encode_state(state: State) -> dict[str, Any]:
    """Encode one state; the name is carried by the enclosing States mapping."""
    data: dict[str, Any] = {"Type": state.kind.value}
    for attr, _, key, value_type in STATE_FIELDS:
        value = getattr(state, attr)
        if value is None:
            continue
        data[key] = _encode_value(value, value_type)
    if state.branches is not None:
        data["Branches"] = [encode_document(b) for b in state.branches]
    if state.iterator is not None:
        data["Iterator"] = encode_document(state.iterator)
    return data


def encode_document(doc: Document) -> dict[str, Any]:
    """Encode a document into the canonical tree form (a JSON-ready dict)."""
    data: dict[str, Any] = {}
    for attr, _, key, _ in DOCUMENT_FIELDS:
        value = getattr(doc, attr)
        if value is not None:
            data[key] = value
    data["StartAt"] = doc.start_at
    data["States"] = {state.name: encode_state(state) for state in doc.states}
    return data


def _type_name(value: Any) -> str:
    return "null" if value is None else type(value).__name__


def _expect(value: Any, value_type: str, path: str) -> Any:
    if value_type == "string":
        if not isinstance(value, str):
            raise MalformedDocument(f"expected a string, got {_type_name(value)}", path)
        return value
    if value_type == "number":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise MalformedDocument(f"expected a number, got {_type_name(value)}", path)
        if isinstance(value, float):
            if not value.is_integer():
                raise MalformedDocument(f"expected a whole number, got {value!r}", path)
            return int(value)
        return value
    if value_type == "bool":
        if not isinstance(value, bool):
            raise MalformedDocument(f"expected a boolean, got {_type_name(value)}", path)
        return value
    if value_type == "fragment":
        return Fragment(value)
    if value_type == "fragments":
        if not isinstance(value, list):
            raise MalformedDocument(f"expected an array, got {_type_name(value)}", path)
        return [Fragment(item) for item in value]
    raise AssertionError(f"unhandled value type {value_type!r}")


def decode_state(name: str, data: Any, path: str) -> State:
    if not isinstance(data, dict):
        raise MalformedDocument(f"state must be an object, got {_type_name(data)}", path)

    type_name = data.get("Type")
    if not isinstance(type_name, str):
        raise MalformedDocument("missing string `Type`", f"{path}/Type")
    try:
        kind = StateKind(type_name)
    except ValueError:
        valid = ", ".join(k.value for k in StateKind)
        raise MalformedDocument(
            f"unknown state type {type_name!r} (valid: {valid})", f"{path}/Type"
        ) from None

    state = State(name=name, kind=kind)
    for attr, _, key, value_type in STATE_FIELDS:
        if key in data:
            setattr(state, attr, _expect(data[key], value_type, f"{path}/{key}"))

    if "Branches" in data:
        branches = data["Branches"]
        if not isinstance(branches, list):
            raise MalformedDocument(
                f"expected an array, got {_type_name(branches)}", f"{path}/Branches"
            )
        state.branches = [
            decode_document(b, f"{path}/Branches/{i}") for i, b in enumerate(branches)
        ]
    if "Iterator" in data:
        state.iterator = decode_document(data["Iterator"], f"{path}/Iterator")
    return state


def decode_document(data: Any, path: str = "") -> Document:
    """Decode the canonical tree form.

    States are appended in the mapping's iteration order; `StartAt` is not
    checked against them.
    """
    if not isinstance(data, dict):
        raise MalformedDocument(
            f"document must be an object, got {_type_name(data)}", path or "/"
        )

    start_at = data.get("StartAt")
    if not isinstance(start_at, str):
        raise MalformedDocument("missing string `StartAt`", f"{path}/StartAt")

    states = data.get("States")
    if not isinstance(states, dict):
        raise MalformedDocument("missing object `States`", f"{path}/States")

    doc = Document(start_at=start_at)
    for attr, _, key, value_type in DOCUMENT_FIELDS:
        if key in data:
            setattr(doc, attr, _expect(data[key], value_type, f"{path}/{key}"))
    if doc.timeout_seconds is None and LEGACY_TIMEOUT_KEY in data:
        doc.timeout_seconds = _expect(
            data[LEGACY_TIMEOUT_KEY], "number", f"{path}/{LEGACY_TIMEOUT_KEY}"
        )

    for name, state_data in states.items():
        doc.states.append(decode_state(name, state_data, f"{path}/States/{name}"))
    return doc


def dumps_json(doc: Document, indent: int = 2) -> str:
    return json.dumps(encode_document(doc), indent=indent, ensure_ascii=False) + "\n"


def loads_json(text: str) -> Document:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedDocument(f"invalid JSON: {e}") from e
    return decode_document(data)


def dumps_yaml(doc: Document) -> str:
    return yaml.safe_dump(
        encode_document(doc), sort_keys=False, allow_unicode=True, default_flow_style=False
    )


def loads_yaml(text: str) -> Document:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise MalformedDocument(f"invalid YAML: {e}") from e
    return decode_document(data)
