"""
Lexer for the template language.

The template text is cut into text runs and actions (``{{ ... }}``); each
action is then split into tokens. Trim markers (``{{- `` and `` -}}``)
strip the whitespace of the adjacent text and comments (``{{/* */}}``)
produce nothing.
"""

import re
from dataclasses import dataclass
from enum import Enum

LEFT_DELIM = "{{"
RIGHT_DELIM = "}}"
LEFT_COMMENT = "/*"
RIGHT_COMMENT = "*/"
_TRIM_CHARS = " \t\r\n"


class TemplateSyntaxError(Exception):
    """Raised by the lexer and the parser; carries the template line."""

    def __init__(self, message: str, line: int):
        super().__init__(message)
        self.message = message
        self.line = line


class TokenType(Enum):
    FIELD = "field"
    DOT = "dot"
    VARIABLE = "variable"
    IDENTIFIER = "identifier"
    STRING = "string"
    RAW_STRING = "raw string"
    CHAR = "char"
    NUMBER = "number"
    LEFT_PAREN = "("
    RIGHT_PAREN = ")"
    PIPE = "|"
    DECLARE = ":="
    ASSIGN = "="
    COMMA = ","


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str
    pos: int
    line: int
    space_before: bool = False


@dataclass(frozen=True)
class TextItem:
    text: str
    pos: int
    line: int


@dataclass(frozen=True)
class ActionItem:
    tokens: tuple[Token, ...]
    pos: int
    line: int


# Order matters: fields before numbers so ".5" is never read as a field,
# and numbers before the lone dot.
_TOKEN_RE = re.compile(
    r"""
    (?P<space>\s+)
  | (?P<declare>:=)
  | (?P<assign>=)
  | (?P<pipe>\|)
  | (?P<lparen>\()
  | (?P<rparen>\))
  | (?P<comma>,)
  | (?P<string>"(?:[^"\\\n]|\\.)*")
  | (?P<raw>`[^`]*`)
  | (?P<char>'(?:[^'\\\n]|\\.)+')
  | (?P<number>[+-]?(?:0[xX][0-9a-fA-F_]+|0[oO][0-7_]+|0[bB][01_]+|(?:\d[\d_]*)?\.?\d[\d_]*(?:[eE][+-]?\d+)?))
  | (?P<field>\.[A-Za-z_][A-Za-z0-9_]*)
  | (?P<dot>\.)
  | (?P<variable>\$[A-Za-z0-9_]*)
  | (?P<identifier>[A-Za-z_][A-Za-z0-9_]*)
    """,
    re.VERBOSE,
)

_GROUP_TYPES = {
    "declare": TokenType.DECLARE,
    "assign": TokenType.ASSIGN,
    "pipe": TokenType.PIPE,
    "lparen": TokenType.LEFT_PAREN,
    "rparen": TokenType.RIGHT_PAREN,
    "comma": TokenType.COMMA,
    "string": TokenType.STRING,
    "raw": TokenType.RAW_STRING,
    "char": TokenType.CHAR,
    "number": TokenType.NUMBER,
    "field": TokenType.FIELD,
    "dot": TokenType.DOT,
    "variable": TokenType.VARIABLE,
    "identifier": TokenType.IDENTIFIER,
}


def _line_at(text: str, pos: int) -> int:
    return text.count("\n", 0, pos) + 1


def _has_left_trim(text: str, pos: int) -> bool:
    return len(text) > pos + 1 and text[pos] == "-" and text[pos + 1] in _TRIM_CHARS


def _find_action_end(text: str, start: int) -> int:
    """Index of the closing delimiter, skipping over quoted strings."""
    i = start
    n = len(text)
    while i < n:
        c = text[i]
        if c == '"' or c == "'":
            j = i + 1
            while j < n and text[j] != c:
                if text[j] == "\\":
                    j += 1
                elif text[j] == "\n":
                    raise TemplateSyntaxError("unterminated quoted string", _line_at(text, i))
                j += 1
            if j >= n:
                raise TemplateSyntaxError("unterminated quoted string", _line_at(text, i))
            i = j + 1
            continue
        if c == "`":
            j = text.find("`", i + 1)
            if j < 0:
                raise TemplateSyntaxError("unterminated raw quoted string", _line_at(text, i))
            i = j + 1
            continue
        if text.startswith(RIGHT_DELIM, i):
            return i
        i += 1
    raise TemplateSyntaxError("unclosed action", _line_at(text, start))


def tokenize(text: str, start: int, end: int) -> tuple[Token, ...]:
    """Split the inside of one action into tokens."""
    tokens: list[Token] = []
    pos = start
    space_before = False
    while pos < end:
        match = _TOKEN_RE.match(text, pos, end)
        if match is None:
            raise TemplateSyntaxError(
                f"unexpected {text[pos]!r} in command",
                _line_at(text, pos)
            )
        kind = match.lastgroup
        if kind == "space":
            space_before = True
        else:
            tokens.append(Token(
                _GROUP_TYPES[kind],
                match.group(),
                pos,
                _line_at(text, pos),
                space_before
            ))
            space_before = False
        pos = match.end()
    return tuple(tokens)


def scan(text: str) -> list[TextItem | ActionItem]:
    """
    Cut template text into text runs and tokenized actions.

    Raises:
        TemplateSyntaxError: On unclosed actions, comments or strings
    """
    items: list[TextItem | ActionItem] = []
    pos = 0
    trim_next = False

    while True:
        open_at = text.find(LEFT_DELIM, pos)
        segment_end = len(text) if open_at < 0 else open_at
        segment = text[pos:segment_end]
        if trim_next:
            segment = segment.lstrip(_TRIM_CHARS)

        inner = open_at + len(LEFT_DELIM)
        trim_left = open_at >= 0 and _has_left_trim(text, inner)
        if trim_left:
            segment = segment.rstrip(_TRIM_CHARS)
            inner += 2
        if segment:
            items.append(TextItem(segment, pos, _line_at(text, pos)))
        if open_at < 0:
            return items

        # Comments may only follow the delimiter directly (or its trim marker)
        if text.startswith(LEFT_COMMENT, inner):
            comment_end = text.find(RIGHT_COMMENT, inner + len(LEFT_COMMENT))
            if comment_end < 0:
                raise TemplateSyntaxError("unclosed comment", _line_at(text, open_at))
            after = comment_end + len(RIGHT_COMMENT)
            if text.startswith(" -" + RIGHT_DELIM, after):
                trim_next = True
                pos = after + 2 + len(RIGHT_DELIM)
            elif text.startswith(RIGHT_DELIM, after):
                trim_next = False
                pos = after + len(RIGHT_DELIM)
            else:
                raise TemplateSyntaxError(
                    "comment ends before closing delimiter",
                    _line_at(text, open_at)
                )
            continue

        close_at = _find_action_end(text, inner)
        content_end = close_at
        trim_next = False
        if close_at - 2 >= inner and text[close_at - 1] == "-" and text[close_at - 2] in _TRIM_CHARS:
            trim_next = True
            content_end = close_at - 1

        items.append(ActionItem(
            tokenize(text, inner, content_end),
            inner,
            _line_at(text, inner)
        ))
        pos = close_at + len(RIGHT_DELIM)
