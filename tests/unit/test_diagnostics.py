from states_conv.diagnostics import (
    Diagnostic,
    DiagnosticSink,
    SourceRange,
    did_you_mean,
    format_diagnostic,
    levenshtein,
    split_messages,
    suggest,
)


def test_levenshtein():
    assert levenshtein("tsak", "task") == 2
    assert levenshtein("", "abc") == 3
    assert levenshtein("kitten", "sitting") == 3


def test_suggest_prefers_closest_then_first():
    assert suggest("tsak", ["task", "choice"]) == "task"
    assert suggest("ab", ["ax", "ay"]) == "ax"
    assert suggest("xyzzy", ["task", "map"]) is None
    assert did_you_mean("mapp", ["map"]) == ' Did you mean "map"?'
    assert did_you_mean("zzz", ["map"]) == ""


def test_source_range_str():
    assert str(SourceRange("a.hcl", 2, 3, 2, 9)) == "a.hcl:2,3-9"
    assert str(SourceRange("a.hcl", 2, 3, 4, 1)) == "a.hcl:2,3-4,1"


def test_sink_escalates_and_ignores():
    sink = DiagnosticSink(ignore=frozenset({"Noise"}), escalate=frozenset({"Loud"}))
    sink.emit("warning", "Noise", "ignored")
    sink.emit("warning", "Loud", "escalated")
    sink.emit("warning", "Other", "kept")
    assert [(d.code, d.severity) for d in sink.items] == [("Loud", "error"), ("Other", "warning")]
    assert sink.has_errors()

    strict = DiagnosticSink(strict=True)
    strict.emit("warning", "Other", "kept")
    assert strict.items[0].severity == "error"


def test_split_messages():
    diags = [
        Diagnostic("error", "X", "Bad thing", "details here", path="/States/A"),
        Diagnostic("warning", "Y", "Odd thing"),
    ]
    errors, warnings = split_messages(diags)
    assert errors == ["/States/A: Bad thing; details here"]
    assert warnings == ["<input>: Odd thing"]


def test_format_diagnostic_marks_source():
    diag = Diagnostic(
        "error",
        "InvalidStateType",
        "Invalid state type",
        'The state type "tsak" is invalid. Did you mean "task"?',
        subject=SourceRange("asl.hcl", 2, 7, 2, 13),
    )
    text = format_diagnostic(diag, {"asl.hcl": 'start_at = "A"\nstate "tsak" "A" {}\n'})
    assert text.splitlines() == [
        "error: Invalid state type",
        "",
        "  on asl.hcl:2,7-13:",
        '   2: state "tsak" "A" {}',
        "            ^^^^^^",
        "",
        'The state type "tsak" is invalid. Did you mean "task"?',
    ]
