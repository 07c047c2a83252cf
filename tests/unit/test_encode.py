from pathlib import Path

import pytest

from states_conv.canonical import loads_json
from states_conv.decode import decode_block
from states_conv.encode import encode_block
from states_conv.errors import UnknownStateReference
from states_conv.fragment import Fragment
from states_conv.model import Document, State, StateKind


FIXTURE_DIR = Path(__file__).resolve().parents[1] / "fixtures" / "asl"


def read_fixture(name: str) -> str:
    return (FIXTURE_DIR / name).read_text(encoding="utf-8")


@pytest.mark.parametrize("name", ["sample", "parallel", "others"])
def test_encoder_output_matches_fixture(name):
    doc = loads_json(read_fixture(f"{name}.asl.json"))
    assert encode_block(doc) == read_fixture(f"{name}.asl.hcl")


@pytest.mark.parametrize("name", ["sample", "parallel", "others"])
def test_block_round_trip(name):
    doc = loads_json(read_fixture(f"{name}.asl.json"))
    assert decode_block(encode_block(doc)).document == doc


def test_two_state_example_text():
    doc = Document(
        start_at="A",
        states=[
            State(name="A", kind=StateKind.TASK, next="B"),
            State(name="B", kind=StateKind.PASS, end=True),
        ],
    )
    assert encode_block(doc) == (
        "start_at = state.task.A\n"
        "\n"
        'state "task" "A" {\n'
        "  next = state.pass.B\n"
        "}\n"
        "\n"
        'state "pass" "B" {\n'
        "  end = true\n"
        "}\n"
    )


def test_names_that_are_not_identifiers_use_index_form():
    doc = Document(
        start_at="first step",
        states=[State(name="first step", kind=StateKind.SUCCEED)],
    )
    text = encode_block(doc)
    assert 'start_at = state.succeed["first step"]' in text
    assert 'state "succeed" "first step" {' in text
    assert decode_block(text).document == doc


def test_strings_survive_template_syntax():
    doc = Document(
        start_at="P",
        states=[
            State(
                name="P",
                kind=StateKind.PASS,
                comment='uses ${not_a_var} and %{ if } "quoted"\n\\',
                result=Fragment({"msg": "${x}"}),
                end=True,
            )
        ],
    )
    assert decode_block(encode_block(doc)).document == doc


def test_set_but_empty_values_round_trip():
    doc = Document(
        start_at="P",
        states=[
            State(
                name="P",
                kind=StateKind.PASS,
                comment="",
                seconds=0,
                end=False,
                retry=[],
                parameters=Fragment({}),
                result=Fragment(None),
            )
        ],
        timeout_seconds=0,
    )
    text = encode_block(doc)
    assert "retry      = []" in text
    assert 'result     = "null"' in text
    assert decode_block(text).document == doc


@pytest.mark.parametrize(
    "doc, where",
    [
        (
            Document(start_at="Nope", states=[State(name="A", kind=StateKind.PASS)]),
            "/StartAt",
        ),
        (
            Document(start_at="A", states=[State(name="A", kind=StateKind.TASK, next="B")]),
            "/States/A/Next",
        ),
        (
            Document(
                start_at="P",
                states=[
                    State(
                        name="P",
                        kind=StateKind.PARALLEL,
                        branches=[
                            Document(
                                start_at="X",
                                states=[State(name="X", kind=StateKind.CHOICE, default="P")],
                            )
                        ],
                    )
                ],
            ),
            "/States/P/Branches/0/States/X/Default",
        ),
    ],
)
def test_unknown_reference_fails_fast(doc, where):
    with pytest.raises(UnknownStateReference) as exc:
        encode_block(doc)
    assert exc.value.where == where
    assert str(exc.value).startswith(where)
