# states_conv/cli.py
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from .constants import GRAPH_NAME_DEFAULT
from .decode import DecodeConfig
from .diagnostics import Diagnostic, format_diagnostic, split_messages
from .errors import DecodeError, MalformedDocument, StatesConvError, UnsupportedFormat
from .formats import Format, detect_format, format_spec, get_format, list_formats
from .io import load_document, load_document_text
from .writer import RenderConfig, render_document, write_document


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="states-conv",
        description=(
            "Convert Amazon States Language documents between JSON/YAML, HCL "
            "block syntax and graph (DOT, Mermaid) output."
        ),
    )
    parser.add_argument(
        "path",
        nargs="?",
        type=Path,
        help="Input file or directory of *.hcl/*.json files. Reads stdin when omitted.",
    )
    parser.add_argument(
        "-f",
        "--from-format",
        type=str,
        default="",
        help="Input format (required when reading stdin; detected from the path otherwise).",
    )
    parser.add_argument(
        "-t",
        "--to-format",
        type=str,
        default="",
        help="Output format (default: implied by --output, else json).",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Output destination. If unspecified, output to stdout.",
    )
    parser.add_argument(
        "-l",
        "--list",
        action="store_true",
        help="Display the list of formats and exit.",
    )
    parser.add_argument(
        "--graph-name",
        type=str,
        default=GRAPH_NAME_DEFAULT,
        help="Graph name for DOT/Mermaid output.",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail on decode warnings (e.g., unresolved local values). Errors always fail.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Print progress and show source excerpts for diagnostics.",
    )
    return parser


def _target_format(args: argparse.Namespace) -> Format:
    if args.to_format:
        return get_format(args.to_format)
    if args.output is not None:
        try:
            return detect_format(args.output)
        except UnsupportedFormat:
            return Format.JSON
    return Format.JSON


def _print_diagnostics(
    diags: Sequence[Diagnostic], sources: dict[str, str], verbose: bool
) -> None:
    if verbose:
        for diag in diags:
            print(format_diagnostic(diag, sources), file=sys.stderr)
        return
    errors, warnings = split_messages(diags)
    for warning in warnings:
        print(f"warning: {warning}", file=sys.stderr)
    for error in errors:
        print(f"error: {error}", file=sys.stderr)


def main(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entrypoint."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    def info(message: str) -> None:
        if args.verbose:
            print(f"info: {message}", file=sys.stderr)

    if args.list:
        for line in list_formats():
            print(line)
        return

    try:
        to_fmt = _target_format(args)
        from_fmt = get_format(args.from_format) if args.from_format else None
    except UnsupportedFormat as e:
        print(f"error: {e}", file=sys.stderr)
        raise SystemExit(2)
    info(f"convert to {format_spec(to_fmt).description}")

    config = DecodeConfig(strict=args.strict)
    try:
        if args.path is None:
            if from_fmt is None:
                print(
                    "error: --from-format or -f option is required, when load from stdin",
                    file=sys.stderr,
                )
                raise SystemExit(2)
            info("load from stdin")
            result = load_document_text(sys.stdin.read(), from_fmt, config=config)
        else:
            info(f"load from {args.path}")
            result = load_document(args.path, from_fmt, config)
    except DecodeError as e:
        _print_diagnostics(e.diagnostics, e.sources, args.verbose)
        raise SystemExit(2)
    except (MalformedDocument, UnsupportedFormat, FileNotFoundError) as e:
        print(f"error: {e}", file=sys.stderr)
        raise SystemExit(2)

    _print_diagnostics(result.warnings, {}, args.verbose)

    cfg = RenderConfig(graph_name=args.graph_name)
    try:
        if args.output is None:
            sys.stdout.write(render_document(result.document, to_fmt, cfg))
        else:
            write_document(args.output, result.document, to_fmt, cfg)
            info(f"wrote {args.output}")
    except StatesConvError as e:
        print(f"error: {e}", file=sys.stderr)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
