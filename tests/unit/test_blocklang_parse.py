from states_conv.blocklang.expressions import EvalContext
from states_conv.blocklang.syntax import (
    AttributeSchema,
    BlockHeaderSchema,
    BodySchema,
    merge_bodies,
    parse_json,
    parse_native,
)
from states_conv.blocklang.writer import BodyWriter, format_value, hcl_string, traversal


SCHEMA = BodySchema(
    attributes=(AttributeSchema("name", required=True), AttributeSchema("size")),
    blocks=(BlockHeaderSchema("item", ("kind", "id")), BlockHeaderSchema("extra")),
)


def values(content):
    ctx = EvalContext()
    return {name: attr.expr.evaluate(ctx)[0] for name, attr in content.attributes.items()}


def test_native_body_content():
    body, diags = parse_native(
        '# comment\nname = "x"\nsize = 2\n\nitem "a" "b" {\n  v = 1\n}\n',
        "doc.hcl",
    )
    assert diags == []
    content, diags = body.content(SCHEMA)
    assert diags == []
    assert values(content) == {"name": "x", "size": 2}
    assert [(b.type, b.labels) for b in content.blocks] == [("item", ["a", "b"])]
    block = content.blocks[0]
    assert str(block.subject) == "doc.hcl:5,1-13"
    attrs, diags = block.body.just_attributes()
    assert diags == []
    assert list(attrs) == ["v"]


def test_labels_may_be_identifiers_or_escaped_strings():
    body, _ = parse_native('name = "x"\nitem task "a\\"b" {}\n', "doc.hcl")
    content, diags = body.content(SCHEMA)
    assert diags == []
    assert content.blocks[0].labels == ["task", 'a"b']


def test_schema_violations_become_diagnostics():
    body, _ = parse_native(
        'nme = 1\nname = "a"\nname = "b"\nitem = 1\nitems "x" "y" {}\nitem "x" {}\nsize {}\n',
        "doc.hcl",
    )
    _, diags = body.content(SCHEMA)
    codes = [d.code for d in diags]
    assert codes == [
        "UnsupportedArgument",
        "DuplicateArgument",
        "UnsupportedArgument",
        "UnsupportedBlockType",
        "InvalidLabels",
        "UnsupportedBlockType",
    ]
    assert 'Did you mean "name"?' in diags[0].detail
    assert "doc.hcl:2,1-11" in diags[1].detail
    assert 'define a block of type "item"' in diags[2].detail
    assert 'Did you mean "item"?' in diags[3].detail
    assert diags[4].summary == "Missing id label"
    assert 'define argument "size"' in diags[5].detail


def test_missing_required_argument_points_at_body_end():
    body, _ = parse_native("size = 1\n", "doc.hcl")
    _, diags = body.content(SCHEMA)
    assert [d.code for d in diags] == ["MissingArgument"]
    assert diags[0].subject.filename == "doc.hcl"


def test_extraneous_label():
    body, _ = parse_native('name = "a"\nextra "x" {}\n', "doc.hcl")
    _, diags = body.content(SCHEMA)
    assert [(d.code, d.summary) for d in diags] == [("InvalidLabels", "Extraneous label")]


def test_just_attributes_rejects_blocks():
    body, _ = parse_native("a = 1\nb {}\n", "doc.hcl")
    attrs, diags = body.just_attributes()
    assert list(attrs) == ["a"]
    assert [d.code for d in diags] == ["UnexpectedBlock"]


def test_syntax_error_reports_position():
    body, diags = parse_native('name = "x"\nitem "a" {\n  v = \n}\n', "doc.hcl")
    assert body is None
    assert [d.code for d in diags] == ["SyntaxError"]
    assert diags[0].subject.start_line == 4


def test_comments_are_ignored():
    body, diags = parse_native(
        'name = "x" // trailing\n/* block\ncomment */ size = 1 # hash\n', "doc.hcl"
    )
    assert diags == []
    content, _ = body.content(SCHEMA)
    assert values(content) == {"name": "x", "size": 1}


def test_json_body_uses_schema_for_blocks():
    body, diags = parse_json(
        '{"//": "note", "name": "x", "item": {"a": {"b": {"v": 1}, "c": [{"v": 2}, {"v": 3}]}}}',
        "doc.hcl.json",
    )
    assert diags == []
    content, diags = body.content(SCHEMA)
    assert diags == []
    assert values(content) == {"name": "x"}
    assert [b.labels for b in content.blocks] == [["a", "b"], ["a", "c"], ["a", "c"]]
    assert [b.path for b in content.blocks] == ["/item/a/b", "/item/a/c/0", "/item/a/c/1"]


def test_json_body_label_errors():
    body, _ = parse_json('{"name": "x", "item": {"a": 1}}', "doc.hcl.json")
    _, diags = body.content(SCHEMA)
    assert [d.code for d in diags] == ["InvalidLabels"]
    assert diags[0].path == "/item/a"


def test_invalid_json_is_located():
    body, diags = parse_json('{"name": }', "doc.hcl.json")
    assert body is None
    assert [d.code for d in diags] == ["InvalidJSON"]
    assert diags[0].subject.start_line == 1


def test_merged_bodies_check_required_once_and_reject_duplicates():
    first, _ = parse_native('name = "x"\n', "a.hcl")
    second, _ = parse_native("size = 1\n", "b.hcl")
    content, diags = merge_bodies([first, second]).content(SCHEMA)
    assert diags == []
    assert values(content) == {"name": "x", "size": 1}

    third, _ = parse_native("size = 2\n", "c.hcl")
    _, diags = merge_bodies([second, third]).content(SCHEMA)
    assert sorted(d.code for d in diags) == ["DuplicateArgument", "MissingArgument"]


def test_writer_aligns_attributes_and_separates_blocks():
    body = BodyWriter()
    body.set_attribute("comment", "hi")
    body.set_traversal("start_at", "state", "task", "A")
    block = body.append_block("state", ("task", "A"))
    block.set_attribute("end", True)
    block.set_attribute("retry", ["{}"])
    assert body.render() == (
        'comment  = "hi"\n'
        "start_at = state.task.A\n"
        "\n"
        'state "task" "A" {\n'
        "  end   = true\n"
        "  retry = [\n"
        '    "{}",\n'
        "  ]\n"
        "}\n"
    )


def test_writer_quoting():
    assert hcl_string('a"b\\c\n${x}%{y}') == '"a\\"b\\\\c\\n$${x}%%{y}"'
    assert traversal("state", "task", "my state") == 'state.task["my state"]'
    assert traversal("state", "task", "true") == 'state.task["true"]'
    assert format_value([]) == "[]"
    assert format_value(None) == "null"
    assert format_value(2.0) == "2"
