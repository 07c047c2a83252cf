from types import MappingProxyType

import pytest

from states_conv.blocklang.expressions import (
    BUILTIN_FUNCTIONS,
    UNKNOWN,
    EvalContext,
    is_wholly_known,
)
from states_conv.blocklang.grammar import parse_expression


def context(**variables):
    return EvalContext(functions=BUILTIN_FUNCTIONS).child(variables)


def evaluate(text, ctx=None):
    expr, diags = parse_expression(text, filename="expr.hcl")
    assert diags == []
    return expr.evaluate(ctx or context())


@pytest.mark.parametrize(
    "text, expected",
    [
        ("1", 1),
        ("-2.5", -2.5),
        ("true", True),
        ("null", None),
        ('"a\\tb"', "a\tb"),
        ('"\\u00e9"', "é"),
        ('"$${x}"', "${x}"),
        ('"%%{x}"', "%{x}"),
        ('"%{x}"', "%{x}"),
        ("[1, 2, 3,]", [1, 2, 3]),
        ("[]", []),
        ('{a = 1, "b" : [true]}', {"a": 1, "b": [True]}),
        ("{a = 1\n b = 2}", {"a": 1, "b": 2}),
        ("(3)", 3),
    ],
)
def test_literal_values(text, expected):
    value, diags = evaluate(text)
    assert diags == []
    assert value == expected


def test_traversal_and_index():
    ctx = context(state={"task": {"Hello": "Hello", "my-state": "my-state"}})
    assert evaluate("state.task.Hello", ctx)[0] == "Hello"
    assert evaluate('state.task["my-state"]', ctx)[0] == "my-state"
    assert evaluate("[10, 20][1]", ctx)[0] == 20


def test_template_concatenates_primitives():
    ctx = context(local={"n": 3, "ok": True, "name": "x"})
    value, diags = evaluate('"${local.name}-${local.n}-${local.ok}"', ctx)
    assert diags == []
    assert value == "x-3-true"


def test_lone_interpolation_keeps_value_type():
    ctx = context(local={"items": [1, 2]})
    assert evaluate('"${local.items}"', ctx)[0] == [1, 2]


def test_heredoc_strips_indentation_for_dash_form():
    value, _ = evaluate("<<-EOT\n    first\n      second\n    EOT\n")
    assert value == "first\n  second\n"
    value, _ = evaluate("<<EOT\nkeep \\n as is\nEOT")
    assert value == "keep \\n as is\n"


def test_unknown_values_propagate_without_diagnostics():
    ctx = context(local={"a": UNKNOWN})
    value, diags = evaluate('"x${local.a}"', ctx)
    assert value is UNKNOWN
    assert diags == []
    value, diags = evaluate("jsonencode([local.a])", ctx)
    assert value is UNKNOWN
    assert diags == []
    assert not is_wholly_known({"k": [1, UNKNOWN]})


def test_jsonencode_and_jsondecode():
    assert evaluate('jsonencode({a = [1, "b"]})')[0] == '{"a":[1,"b"]}'
    assert evaluate('jsondecode("{\\"a\\": 1}")')[0] == {"a": 1}


def test_jsonencode_accepts_read_only_mappings():
    ctx = context(local=MappingProxyType({"v": MappingProxyType({"x": 1})}))
    assert evaluate("jsonencode(local.v)", ctx)[0] == '{"x":1}'


def test_unknown_variable_suggests_closest_name():
    ctx = context(local={})
    value, diags = evaluate("locl.x", ctx)
    assert value is UNKNOWN
    assert [d.code for d in diags] == ["UnknownVariable"]
    assert 'Did you mean "local"?' in diags[0].detail
    assert diags[0].subject.filename == "expr.hcl"


def test_unsupported_attribute():
    ctx = context(state={"task": {"Hello": "Hello"}})
    _, diags = evaluate("state.task.Helo", ctx)
    assert [d.code for d in diags] == ["UnsupportedAttribute"]
    assert 'Did you mean "Hello"?' in diags[0].detail


def test_invalid_index():
    _, diags = evaluate("[1][5]")
    assert [d.code for d in diags] == ["InvalidIndex"]


def test_unknown_function():
    _, diags = evaluate("jsonencod(1)")
    assert [d.code for d in diags] == ["UnknownFunction"]
    assert 'Did you mean "jsonencode"?' in diags[0].detail


def test_function_call_error():
    _, diags = evaluate('jsondecode("{")')
    assert [d.code for d in diags] == ["FunctionCallError"]
    _, diags = evaluate("jsondecode(1)")
    assert [d.code for d in diags] == ["FunctionCallError"]


def test_template_rejects_structured_values():
    ctx = context(local={"items": [1]})
    _, diags = evaluate('"x${local.items}"', ctx)
    assert [d.code for d in diags] == ["InvalidTemplate"]


def test_invalid_escape_is_reported():
    expr, diags = parse_expression('"a\\qb"', filename="expr.hcl")
    assert [d.code for d in diags] == ["InvalidTemplate"]


def test_syntax_error_is_a_diagnostic():
    expr, diags = parse_expression("[1, ", filename="expr.hcl")
    assert expr is None
    assert [d.code for d in diags] == ["SyntaxError"]


def test_child_context_reads_through_to_parent():
    parent = EvalContext(variables={"a": 1}, functions=BUILTIN_FUNCTIONS)
    child = parent.child({"b": 2})
    assert child.lookup_variable("a") == (True, 1)
    assert child.lookup_variable("b") == (True, 2)
    assert parent.lookup_variable("b") == (False, None)
    assert child.lookup_function("jsonencode") is not None
    assert child.variable_names() == {"a", "b"}
