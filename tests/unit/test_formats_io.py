from pathlib import Path

import pytest

from states_conv.canonical import loads_json
from states_conv.decode import DecodeConfig
from states_conv.errors import DecodeError, UnsupportedFormat
from states_conv.formats import Format, detect_format, get_format, list_formats
from states_conv.io import load_document, load_document_text
from states_conv.writer import RenderConfig, render_document, write_document


FIXTURE_DIR = Path(__file__).resolve().parents[1] / "fixtures" / "asl"


@pytest.mark.parametrize(
    "name, fmt",
    [
        ("asl", Format.HCL),
        ("asl.hcl", Format.HCL),
        ("asl.hcl.json", Format.HCL),
        ("asl.json", Format.JSON),
        ("asl.yml", Format.YAML),
        ("asl.YAML", Format.YAML),
        ("graph.gv", Format.DOT),
        ("graph.dot", Format.DOT),
        ("graph.mmd", Format.MERMAID),
        ("README.md", Format.MERMAID),
    ],
)
def test_detect_format(name, fmt):
    assert detect_format(Path(name)) is fmt


def test_detect_format_directory_and_unknown(tmp_path):
    assert detect_format(tmp_path) is Format.HCL
    with pytest.raises(UnsupportedFormat):
        detect_format(tmp_path / "notes.txt")


def test_get_format_aliases():
    assert get_format("JSON") is Format.JSON
    assert get_format("yml") is Format.YAML
    assert get_format("graphviz") is Format.DOT
    assert get_format("mmd") is Format.MERMAID
    with pytest.raises(UnsupportedFormat, match="xml is unknown format"):
        get_format("xml")


def test_list_formats():
    lines = list_formats()
    assert "JSON [*.json]" in lines
    assert "HCL (HashiCorp configuration language) [*.hcl, *.hcl.json]" in lines
    assert "DOT (text/vnd.graphviz, output only) [*.gv, *.dot]" in lines


def test_load_document_by_extension():
    expected = loads_json((FIXTURE_DIR / "sample.asl.json").read_text(encoding="utf-8"))
    for name in ("sample.asl.json", "sample.asl.hcl", "advanced.asl.hcl"):
        assert load_document(FIXTURE_DIR / name).document == expected


def test_load_directory_merges_native_and_json_syntax():
    expected = loads_json((FIXTURE_DIR / "parallel.asl.json").read_text(encoding="utf-8"))
    result = load_document(FIXTURE_DIR / "split")
    assert result.diagnostics == ()
    assert result.document == expected


def test_load_empty_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_document(tmp_path)


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_document(tmp_path / "missing.hcl")


def test_graph_formats_are_output_only():
    with pytest.raises(UnsupportedFormat):
        load_document_text("digraph {}", Format.DOT)


def test_load_text_passes_config():
    text = 'locals {\n  a = local.a\n}\nstart_at = state.pass.P\nstate "pass" "P" {}\n'
    assert load_document_text(text, Format.HCL).warnings
    with pytest.raises(DecodeError):
        load_document_text(text, Format.HCL, config=DecodeConfig(strict=True))


def test_render_document_formats():
    doc = loads_json((FIXTURE_DIR / "parallel.asl.json").read_text(encoding="utf-8"))
    assert render_document(doc, Format.HCL) == (FIXTURE_DIR / "parallel.asl.hcl").read_text(
        encoding="utf-8"
    )
    assert render_document(doc, Format.YAML).startswith("Comment: Parallel Example.\n")
    assert render_document(doc, Format.DOT, RenderConfig(graph_name="P")).startswith(
        'digraph "P" {'
    )
    assert render_document(doc, Format.MERMAID).startswith("flowchart TB\n")


def test_write_document_wraps_mermaid_markdown(tmp_path):
    doc = loads_json((FIXTURE_DIR / "parallel.asl.json").read_text(encoding="utf-8"))
    target = tmp_path / "out" / "flow.md"
    write_document(target, doc, Format.MERMAID)
    text = target.read_text(encoding="utf-8")
    assert text.startswith("# Parallel Example.\n\n```mermaid\nflowchart TB\n")
    assert text.endswith("```\n")

    plain = tmp_path / "flow.mmd"
    write_document(plain, doc, Format.MERMAID)
    assert plain.read_text(encoding="utf-8").startswith("flowchart TB\n")
