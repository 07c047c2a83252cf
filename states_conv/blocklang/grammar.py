# states_conv/blocklang/grammar.py
from __future__ import annotations

from functools import lru_cache
from typing import Optional, Union

from lark import Lark, Token, Tree
from lark.exceptions import UnexpectedCharacters, UnexpectedInput, UnexpectedToken

from ..diagnostics import Diagnostic, SourceRange
from .expressions import (
    Call,
    Expression,
    GetAttr,
    Index,
    Literal,
    ObjectExpr,
    TemplateExpr,
    TupleExpr,
    Variable,
)

# A quoted string may hold `${...}` interpolations, which may themselves hold
# quoted strings and one level of braces (object constructors).
_QUOTED = r'"(?:[^"\\\n]|\\.)*"'
_INTERPOLATION = (
    r'\$\{(?:[^{}"\n]|' + _QUOTED + r'|\{(?:[^{}"\n]|' + _QUOTED + r')*\})*\}'
)
_STRING_LIT = r'"(?:[^"\\\n$]|\\.|\$\$\{|\$(?!\{)|' + _INTERPOLATION + r')*"'

GRAMMAR = r"""
body: (attribute | block)*

attribute: IDENTIFIER "=" expression
block: IDENTIFIER label* "{" body "}"
label: STRING_LIT | IDENTIFIER

?expression: postfix

?postfix: term
    | postfix "." IDENTIFIER -> get_attr
    | postfix "[" expression "]" -> index

?term: STRING_LIT -> string
    | HEREDOC -> heredoc
    | NUMBER -> number
    | IDENTIFIER -> variable
    | IDENTIFIER "(" _arguments? ")" -> call
    | "[" _arguments? "]" -> tuple
    | "{" _object_items? "}" -> object
    | "(" expression ")"

_arguments: expression ("," expression)* ","?
_object_items: object_item (","? object_item)* ","?
object_item: object_key ("=" | ":") expression
object_key: IDENTIFIER | STRING_LIT

IDENTIFIER: /[A-Za-z_][A-Za-z0-9_-]*/
NUMBER: /-?[0-9]+(?:\.[0-9]+)?(?:[eE][+-]?[0-9]+)?/
STRING_LIT: /""" + _STRING_LIT + r"""/
HEREDOC: /<<-?(?P<tag>[A-Za-z_][A-Za-z0-9_]*)[ \t]*\r?\n(?:.*?\n)??[ \t]*(?P=tag)(?![A-Za-z0-9_])/s

%ignore /[ \t\f\r\n]+/
%ignore /#[^\n]*/
%ignore /\/\/[^\n]*/
%ignore /\/\*(?:.|\n)*?\*\//
"""

_TOKEN_NAMES = {
    "LBRACE": '"{"',
    "RBRACE": '"}"',
    "LSQB": '"["',
    "RSQB": '"]"',
    "LPAR": '"("',
    "RPAR": '")"',
    "EQUAL": '"="',
    "COLON": '":"',
    "COMMA": '","',
    "DOT": '"."',
    "IDENTIFIER": "identifier",
    "STRING_LIT": "string",
    "HEREDOC": "heredoc",
    "NUMBER": "number",
}

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", '"': '"', "\\": "\\"}


@lru_cache(maxsize=1)
def get_parser() -> Lark:
    return Lark(
        GRAMMAR,
        parser="lalr",
        start=["body", "expression"],
        propagate_positions=True,
    )


def _shift(line: int, column: int, base_line: int, base_column: int) -> tuple[int, int]:
    """Translate a position relative to a fragment into file coordinates."""
    if line == 1:
        return base_line, base_column + column - 1
    return base_line + line - 1, column


def _text_position(text: str, offset: int, line: int, column: int) -> tuple[int, int]:
    prefix = text[:offset]
    newlines = prefix.count("\n")
    if newlines == 0:
        return line, column + offset
    return line + newlines, offset - prefix.rfind("\n")


def syntax_diagnostic(
    err: UnexpectedInput,
    filename: str,
    line: int = 1,
    column: int = 1,
    path: str = "",
) -> Diagnostic:
    if isinstance(err, UnexpectedCharacters):
        detail = f'Unexpected character "{err.char}".'
    elif isinstance(err, UnexpectedToken) and err.token.type != "$END":
        expected = sorted({_TOKEN_NAMES.get(t, t.lower()) for t in err.expected})
        detail = f'Unexpected "{err.token}".'
        if expected:
            detail += f" Expected one of: {', '.join(expected)}."
    else:
        detail = "Unexpected end of input."

    subject = None
    err_line = getattr(err, "line", -1)
    err_column = getattr(err, "column", -1)
    if filename and err_line is not None and err_line > 0:
        start_line, start_column = _shift(err_line, err_column, line, column)
        subject = SourceRange(filename, start_line, start_column, start_line, start_column + 1)
    return Diagnostic(
        severity="error",
        code="SyntaxError",
        summary="Invalid syntax",
        detail=detail,
        subject=subject,
        path=path,
    )


def _decode_escape(text: str, i: int) -> tuple[Optional[str], int]:
    """Decode the backslash escape at text[i]; (None, 2) when invalid."""
    nxt = text[i + 1 : i + 2]
    if nxt in _ESCAPES:
        return _ESCAPES[nxt], 2
    for marker, width in (("u", 4), ("U", 8)):
        if nxt == marker:
            digits = text[i + 2 : i + 2 + width]
            if len(digits) == width and all(c in "0123456789abcdefABCDEF" for c in digits):
                return chr(int(digits, 16)), 2 + width
    return None, 2


def _closing_brace(text: str, start: int) -> int:
    depth = 1
    in_string = False
    j = start
    while j < len(text):
        ch = text[j]
        if in_string:
            if ch == "\\":
                j += 1
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return j
        j += 1
    return -1


def unquote(text: str) -> str:
    """Decode a quoted literal (a block label): escapes only, no interpolation."""
    body = text[1:-1] if len(text) >= 2 and text[0] == '"' else text
    out: list[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\":
            decoded, width = _decode_escape(body, i)
            out.append(body[i + 1 : i + 2] if decoded is None else decoded)
            i += width
        elif body.startswith("$${", i) or body.startswith("%%{", i):
            out.append(body[i + 1 : i + 3])
            i += 3
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def parse_expression(
    text: str,
    *,
    filename: str = "",
    line: int = 1,
    column: int = 1,
    path: str = "",
) -> tuple[Optional[Expression], list[Diagnostic]]:
    """Parse one expression; `line`/`column` locate text[0] in its file."""
    try:
        tree = get_parser().parse(text, start="expression")
    except UnexpectedInput as e:
        return None, [syntax_diagnostic(e, filename, line, column, path)]
    builder = ExpressionBuilder(filename, line, column, path)
    expr = builder.build(tree)
    return expr, builder.diagnostics


def parse_template(
    text: str,
    *,
    rng: Optional[SourceRange] = None,
    filename: str = "",
    line: int = 1,
    column: int = 1,
    path: str = "",
    escapes: bool = True,
) -> tuple[TemplateExpr, list[Diagnostic]]:
    """Split template text into literal parts and `${...}` interpolations.

    `$${` and `%%{` produce a literal `${` / `%{`. Backslash escapes are only
    decoded for quoted strings (`escapes=True`); heredocs and JSON syntax
    strings take their text as is.
    """
    diags: list[Diagnostic] = []
    parts: list[Union[str, Expression]] = []
    buf: list[str] = []

    def here(offset: int) -> Optional[SourceRange]:
        if not filename:
            return None
        at_line, at_column = _text_position(text, offset, line, column)
        return SourceRange(filename, at_line, at_column, at_line, at_column + 1)

    i = 0
    while i < len(text):
        ch = text[i]
        if escapes and ch == "\\":
            decoded, width = _decode_escape(text, i)
            if decoded is None:
                diags.append(
                    Diagnostic(
                        severity="error",
                        code="InvalidTemplate",
                        summary="Invalid escape sequence",
                        detail=f'The symbol "{text[i:i + 2]}" is not a valid escape sequence.',
                        subject=here(i),
                        path=path,
                    )
                )
                decoded = text[i + 1 : i + 2]
            buf.append(decoded)
            i += width
            continue
        if text.startswith("$${", i) or text.startswith("%%{", i):
            buf.append(text[i + 1 : i + 3])
            i += 3
            continue
        if text.startswith("${", i):
            end = _closing_brace(text, i + 2)
            if end < 0:
                diags.append(
                    Diagnostic(
                        severity="error",
                        code="InvalidTemplate",
                        summary="Unterminated template interpolation",
                        detail="There is no closing brace for this interpolation sequence.",
                        subject=here(i),
                        path=path,
                    )
                )
                buf.append(text[i:])
                break
            if buf:
                parts.append("".join(buf))
                buf = []
            inner_line, inner_column = _text_position(text, i + 2, line, column)
            expr, inner_diags = parse_expression(
                text[i + 2 : end],
                filename=filename,
                line=inner_line,
                column=inner_column,
                path=path,
            )
            diags.extend(inner_diags)
            if expr is not None:
                parts.append(expr)
            i = end + 1
            continue
        buf.append(ch)
        i += 1

    if buf:
        parts.append("".join(buf))
    return TemplateExpr(tuple(parts), rng=rng, path=path), diags


def _heredoc_body(token_text: str) -> str:
    header, _, rest = token_text.partition("\n")
    lines = rest.split("\n")[:-1]  # last line holds the closing marker
    if header.startswith("<<-"):
        indents = [len(ln) - len(ln.lstrip(" \t")) for ln in lines if ln.strip()]
        cut = min(indents) if indents else 0
        lines = [ln[cut:] for ln in lines]
    return "".join(ln + "\n" for ln in lines)


class ExpressionBuilder:
    """Builds expression nodes from parse trees.

    Positions in the tree are relative to the parsed text; `line`/`column`
    locate its first character in the file.
    """

    def __init__(self, filename: str, line: int = 1, column: int = 1, path: str = ""):
        self.filename = filename
        self.line = line
        self.column = column
        self.path = path
        self.diagnostics: list[Diagnostic] = []

    def range_of(self, item: Union[Tree, Token]) -> Optional[SourceRange]:
        pos = item.meta if isinstance(item, Tree) else item
        if not self.filename:
            return None
        if getattr(pos, "empty", False) or getattr(pos, "line", None) is None:
            return None
        start_line, start_column = _shift(pos.line, pos.column, self.line, self.column)
        end_line, end_column = _shift(pos.end_line, pos.end_column, self.line, self.column)
        return SourceRange(self.filename, start_line, start_column, end_line, end_column)

    def build(self, node: Tree) -> Expression:
        handler = getattr(self, f"_build_{node.data}", None)
        if handler is None:
            raise AssertionError(f"unhandled expression node {node.data!r}")
        return handler(node)

    def _children(self, node: Tree) -> list[Union[Tree, Token]]:
        return [c for c in node.children if c is not None]

    def _template(self, token: Token, rng: Optional[SourceRange]) -> Expression:
        start_line, start_column = _shift(token.line, token.column, self.line, self.column)
        expr, diags = parse_template(
            token[1:-1],
            rng=rng,
            filename=self.filename,
            line=start_line,
            column=start_column + 1,
            path=self.path,
        )
        self.diagnostics.extend(diags)
        return expr

    def _build_string(self, node: Tree) -> Expression:
        return self._template(node.children[0], self.range_of(node))

    def _build_heredoc(self, node: Tree) -> Expression:
        token = node.children[0]
        start_line, _ = _shift(token.line, token.column, self.line, self.column)
        expr, diags = parse_template(
            _heredoc_body(str(token)),
            rng=self.range_of(node),
            filename=self.filename,
            line=start_line + 1,
            column=1,
            path=self.path,
            escapes=False,
        )
        self.diagnostics.extend(diags)
        return expr

    def _build_number(self, node: Tree) -> Expression:
        text = str(node.children[0])
        value: Union[int, float]
        if any(c in text for c in ".eE"):
            value = float(text)
        else:
            value = int(text)
        return Literal(value, rng=self.range_of(node), path=self.path)

    def _build_variable(self, node: Tree) -> Expression:
        return Variable(str(node.children[0]), rng=self.range_of(node), path=self.path)

    def _build_call(self, node: Tree) -> Expression:
        children = self._children(node)
        name = str(children[0])
        args = tuple(self.build(c) for c in children[1:])
        return Call(name, args, rng=self.range_of(node), path=self.path)

    def _build_tuple(self, node: Tree) -> Expression:
        items = tuple(self.build(c) for c in self._children(node))
        return TupleExpr(items, rng=self.range_of(node), path=self.path)

    def _build_object(self, node: Tree) -> Expression:
        items = []
        for item in self._children(node):
            key_node, value_node = item.children
            key_token = key_node.children[0]
            if key_token.type == "IDENTIFIER":
                key: Expression = Literal(
                    str(key_token), rng=self.range_of(key_token), path=self.path
                )
            else:
                key = self._template(key_token, self.range_of(key_token))
            items.append((key, self.build(value_node)))
        return ObjectExpr(tuple(items), rng=self.range_of(node), path=self.path)

    def _build_get_attr(self, node: Tree) -> Expression:
        source, name = node.children
        return GetAttr(self.build(source), str(name), rng=self.range_of(node), path=self.path)

    def _build_index(self, node: Tree) -> Expression:
        source, key = node.children
        return Index(
            self.build(source), self.build(key), rng=self.range_of(node), path=self.path
        )
