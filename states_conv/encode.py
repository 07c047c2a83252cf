from __future__ import annotations

from typing import Any

from .blocklang.writer import BodyWriter
from .constants import (
    BRANCH_BLOCK,
    DOCUMENT_FIELDS,
    ITERATOR_BLOCK,
    STATE_BLOCK,
    STATE_FIELDS,
    STATE_NAMESPACE,
    STATE_REFERENCE_FIELDS,
)
from .errors import UnknownStateReference
from .model import Document, State


def _reference(
    body: BodyWriter, attr: str, target: str, index: dict[str, State], where: str
) -> None:
    state = index.get(target)
    if state is None:
        raise UnknownStateReference(target, where)
    body.set_traversal(attr, STATE_NAMESPACE, state.kind.keyword, state.name)


def _field_value(value: Any, value_type: str) -> Any:
    # Fragments travel as JSON text so any payload survives the block syntax.
    if value_type == "fragment":
        return value.to_json()
    if value_type == "fragments":
        return [f.to_json() for f in value]
    return value


def encode_state(
    body: BodyWriter, state: State, index: dict[str, State], where: str
) -> None:
    for attr, block_attr, key, value_type in STATE_FIELDS:
        value = getattr(state, attr)
        if value is None:
            continue
        if attr in STATE_REFERENCE_FIELDS:
            _reference(body, block_attr, value, index, f"{where}/{key}")
        else:
            body.set_attribute(block_attr, _field_value(value, value_type))

    for i, branch in enumerate(state.branches or ()):
        encode_body(body.append_block(BRANCH_BLOCK), branch, f"{where}/Branches/{i}")
    if state.iterator is not None:
        encode_body(body.append_block(ITERATOR_BLOCK), state.iterator, f"{where}/Iterator")


def encode_body(body: BodyWriter, doc: Document, where: str = "") -> None:
    """Write one scope into `body`.

    Raises UnknownStateReference as soon as start_at, next or default names a
    state missing from the scope; `where` prefixes the reported location.
    """
    index = doc.state_index()
    for attr, block_attr, _, _ in DOCUMENT_FIELDS:
        value = getattr(doc, attr)
        if value is not None:
            body.set_attribute(block_attr, value)
    _reference(body, "start_at", doc.start_at, index, f"{where}/StartAt")

    for state in doc.states:
        block = body.append_block(STATE_BLOCK, (state.kind.keyword, state.name))
        encode_state(block, state, index, f"{where}/States/{state.name}")


def encode_block(doc: Document) -> str:
    body = BodyWriter()
    encode_body(body, doc)
    return body.render()
