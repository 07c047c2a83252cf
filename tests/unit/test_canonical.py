from pathlib import Path

import pytest

from states_conv.canonical import (
    decode_document,
    dumps_json,
    dumps_yaml,
    encode_document,
    loads_json,
    loads_yaml,
)
from states_conv.errors import MalformedDocument
from states_conv.fragment import Fragment
from states_conv.model import Document, State, StateKind


FIXTURE_DIR = Path(__file__).resolve().parents[1] / "fixtures" / "asl"


def read_fixture(name: str) -> str:
    return (FIXTURE_DIR / name).read_text(encoding="utf-8")


@pytest.mark.parametrize("name", ["sample", "parallel", "others"])
def test_json_round_trip_is_byte_stable(name):
    text = read_fixture(f"{name}.asl.json")
    assert dumps_json(loads_json(text)) == text


@pytest.mark.parametrize("name", ["sample", "parallel", "others"])
def test_yaml_round_trip_preserves_document(name):
    doc = loads_json(read_fixture(f"{name}.asl.json"))
    assert loads_yaml(dumps_yaml(doc)) == doc


def test_decode_keeps_mapping_order_and_names():
    doc = loads_json(read_fixture("sample.asl.json"))
    assert doc.start_at == "FirstState"
    assert [s.name for s in doc.states] == [
        "FirstState",
        "ChoiceState",
        "FirstMatchState",
        "SecondMatchState",
        "DefaultState",
        "NextState",
    ]
    choice = doc.find("ChoiceState")
    assert choice.kind is StateKind.CHOICE
    assert choice.default == "DefaultState"
    assert [rule.get("Next") for rule in choice.choices] == ["FirstMatchState", "SecondMatchState"]


def test_decode_nested_scopes():
    doc = loads_json(read_fixture("others.asl.json"))
    mapped = doc.states[0]
    assert mapped.kind is StateKind.MAP
    assert mapped.max_concurrency == 0
    assert mapped.iterator.start_at == "Validate"
    validate = mapped.iterator.find("Validate")
    assert validate.parameters == Fragment({"input.$": "$"})
    assert len(validate.retry) == 2
    assert mapped.iterator.find("Success").kind is StateKind.SUCCEED


def test_set_but_empty_values_survive():
    doc = Document(
        start_at="A",
        states=[
            State(
                name="A",
                kind=StateKind.PASS,
                comment="",
                seconds=0,
                end=False,
                retry=[],
                result=Fragment({}),
            )
        ],
    )
    data = encode_document(doc)
    assert data["States"]["A"] == {
        "Type": "Pass",
        "Comment": "",
        "Seconds": 0,
        "End": False,
        "Retry": [],
        "Result": {},
    }
    assert decode_document(data) == doc


def test_unset_fields_are_omitted():
    doc = Document(start_at="A", states=[State(name="A", kind=StateKind.SUCCEED)])
    assert encode_document(doc) == {"StartAt": "A", "States": {"A": {"Type": "Succeed"}}}


def test_document_fields_emitted_as_plain_values():
    doc = Document(
        start_at="A",
        states=[State(name="A", kind=StateKind.SUCCEED)],
        version="1.0",
        comment="hello",
        timeout_seconds=30,
    )
    data = encode_document(doc)
    assert data["Comment"] == "hello"
    assert data["TimeoutSeconds"] == 30
    assert data["Version"] == "1.0"


def test_legacy_timeout_key_is_accepted():
    doc = decode_document(
        {"StartAt": "A", "TimeSeconds": 5, "States": {"A": {"Type": "Succeed"}}}
    )
    assert doc.timeout_seconds == 5


def test_start_at_is_not_resolved_by_the_codec():
    doc = decode_document({"StartAt": "Missing", "States": {"A": {"Type": "Pass"}}})
    assert encode_document(doc)["StartAt"] == "Missing"


def test_unknown_keys_are_ignored():
    doc = decode_document(
        {"StartAt": "A", "States": {"A": {"Type": "Pass", "Whatever": 1}}, "Extra": True}
    )
    assert doc.states[0] == State(name="A", kind=StateKind.PASS)


@pytest.mark.parametrize(
    "data, path",
    [
        ({"States": {}}, "/StartAt"),
        ({"StartAt": "A"}, "/States"),
        ({"StartAt": "A", "States": {"A": []}}, "/States/A"),
        ({"StartAt": "A", "States": {"A": {}}}, "/States/A/Type"),
        ({"StartAt": "A", "States": {"A": {"Type": "Tsak"}}}, "/States/A/Type"),
        ({"StartAt": "A", "States": {"A": {"Type": "Wait", "Seconds": "10"}}}, "/States/A/Seconds"),
        ({"StartAt": "A", "States": {"A": {"Type": "Pass", "End": 1}}}, "/States/A/End"),
        ({"StartAt": "A", "States": {"A": {"Type": "Task", "Retry": {}}}}, "/States/A/Retry"),
        (
            {"StartAt": "A", "States": {"A": {"Type": "Parallel", "Branches": [{"StartAt": 1}]}}},
            "/States/A/Branches/0/StartAt",
        ),
    ],
)
def test_malformed_documents_report_json_pointer(data, path):
    with pytest.raises(MalformedDocument) as exc:
        decode_document(data)
    assert exc.value.path == path


def test_loads_json_wraps_syntax_errors():
    with pytest.raises(MalformedDocument, match="invalid JSON"):
        loads_json("{")


def test_loads_yaml_rejects_non_mapping():
    with pytest.raises(MalformedDocument):
        loads_yaml("- just\n- a list\n")
