# states_conv/io.py
from __future__ import annotations

from pathlib import Path
from typing import Optional

from .canonical import loads_json, loads_yaml
from .constants import DEFAULT_HCL_FILENAME, DIRECTORY_SOURCE_SUFFIXES
from .decode import DecodeConfig, DecodeResult, decode_sources
from .errors import UnsupportedFormat
from .formats import Format, detect_format, format_spec


def _directory_sources(path: Path) -> dict[str, str]:
    """Read every block-form file of a directory, in deterministic (name) order."""
    sources: dict[str, str] = {}
    for part_path in sorted(path.iterdir()):
        if not part_path.is_file() or part_path.suffix not in DIRECTORY_SOURCE_SUFFIXES:
            continue
        sources[str(part_path)] = part_path.read_text(encoding="utf-8")
    if not sources:
        raise FileNotFoundError(
            f"no {' or '.join(DIRECTORY_SOURCE_SUFFIXES)} files in {path}"
        )
    return sources


def load_document_text(
    text: str,
    fmt: Format,
    filename: Optional[str] = None,
    config: Optional[DecodeConfig] = None,
) -> DecodeResult:
    """Decode in-memory text (stdin); block form defaults to native syntax."""
    if not format_spec(fmt).readable:
        raise UnsupportedFormat(f"{fmt} format can not be loaded; it is output only")
    if fmt == Format.JSON:
        return DecodeResult(loads_json(text))
    if fmt == Format.YAML:
        return DecodeResult(loads_yaml(text))
    return decode_sources({filename or DEFAULT_HCL_FILENAME: text}, config)


def load_document(
    path: Path,
    fmt: Optional[Format] = None,
    config: Optional[DecodeConfig] = None,
) -> DecodeResult:
    """Load a document from a file, or from a directory of block-form files."""
    if not path.exists():
        raise FileNotFoundError(str(path))

    fmt = fmt or detect_format(path)
    if fmt == Format.HCL and path.is_dir():
        return decode_sources(_directory_sources(path), config)

    text = path.read_text(encoding="utf-8")
    return load_document_text(text, fmt, filename=str(path), config=config)
