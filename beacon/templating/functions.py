"""
Functions available to templates and value formatting.

Two groups are provided: the template language's builtins (``len``,
``index``, ``printf``, comparisons, ...) and the alerting helpers
(``toUpper``, ``join``, ``reReplaceAll``, ...). Values print the way the
template language prints them, so rendered output is stable across
Python versions.
"""

import html as html_module
import re
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from urllib.parse import quote_plus


class TemplateFuncError(Exception):
    """Raised by a template function; reported as ``error calling <name>: ...``."""


class _Missing:
    """Result of reading a missing map key; prints as ``<no value>``."""

    _instance: "_Missing | None" = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "<no value>"


MISSING = _Missing()


def go_type_name(value: Any) -> str:
    """Type name as the template language reports it in errors."""
    if value is None or value is MISSING:
        return "<nil>"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float64"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Mapping):
        return "map[string]interface {}" if type(value) is dict else type(value).__name__
    if isinstance(value, (list, tuple)):
        return "[]interface {}" if type(value) in (list, tuple) else type(value).__name__
    return type(value).__name__


def format_float(value: float) -> str:
    """Shortest round-tripping %g form: 1e+06, 123456, 0.0001, 1e-05."""
    if value != value:
        return "NaN"
    if value in (float("inf"), float("-inf")):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "-0" if str(value).startswith("-") else "0"

    sign, digits, exponent = Decimal(repr(value)).normalize().as_tuple()
    digit_text = "".join(str(d) for d in digits)
    # decimal exponent of the leading digit
    exp = len(digit_text) + exponent - 1
    prefix = "-" if sign else ""
    if exp < -4 or exp >= 6:
        mantissa = digit_text[0]
        if len(digit_text) > 1:
            mantissa += "." + digit_text[1:]
        return f"{prefix}{mantissa}e{'-' if exp < 0 else '+'}{abs(exp):02d}"
    if exponent >= 0:
        return prefix + digit_text + "0" * exponent
    point = len(digit_text) + exponent
    if point <= 0:
        return prefix + "0." + "0" * (-point) + digit_text
    return prefix + digit_text[:point] + "." + digit_text[point:]


def format_time(value: datetime) -> str:
    """Time in the ``2006-01-02 15:04:05.999999999 -0700 MST`` layout."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.strftime("%Y-%m-%d %H:%M:%S")
    if value.microsecond:
        text += f".{value.microsecond:06d}".rstrip("0")
    offset = value.strftime("%z") or "+0000"
    zone = value.tzname() or ""
    if zone in ("UTC", "UTC+00:00"):
        zone = "UTC"
    return f"{text} {offset} {zone}".rstrip()


def format_value(value: Any, nested: bool = False) -> str:
    """Render a value the way ``{{ . }}`` prints it."""
    if value is MISSING or value is None:
        return "<nil>" if nested else "<no value>"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return format_float(value)
    if isinstance(value, str):
        return value
    if isinstance(value, datetime):
        return format_time(value)
    if isinstance(value, Mapping):
        items = " ".join(
            f"{format_value(k, True)}:{format_value(value[k], True)}" for k in sorted(value)
        )
        return f"map[{items}]"
    if isinstance(value, (list, tuple)) and not hasattr(value, "_fields"):
        return "[" + " ".join(format_value(v, True) for v in value) + "]"
    fields = getattr(type(value), "template_fields", None)
    if fields:
        return "{" + " ".join(format_value(getattr(value, attr), True) for attr in fields.values()) + "}"
    return str(value)


def truth(value: Any) -> bool:
    """Truthiness as used by if, with, and, or and not."""
    if value is None or value is MISSING:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, (str, Sequence, Mapping)):
        return len(value) > 0
    return True


# Builtins

def _len(item: Any) -> int:
    if isinstance(item, (str, Sequence, Mapping)):
        return len(item)
    raise TemplateFuncError(f"len of type {go_type_name(item)}")


def _index(item: Any, *indexes: Any) -> Any:
    for idx in indexes:
        if item is None or item is MISSING:
            raise TemplateFuncError("index of untyped nil")
        if isinstance(item, Mapping):
            if idx in item:
                item = item[idx]
            else:
                item = "" if _is_string_map(item) else MISSING
            continue
        if isinstance(item, (str, Sequence)):
            if not isinstance(idx, int) or isinstance(idx, bool):
                raise TemplateFuncError(f"cannot index slice/array with type {go_type_name(idx)}")
            # strings index by byte
            container = item.encode("utf-8") if isinstance(item, str) else item
            if not 0 <= idx < len(container):
                raise TemplateFuncError(f"index out of range: {idx}")
            item = container[idx]
            continue
        raise TemplateFuncError(f"can't index item of type {go_type_name(item)}")
    return item


def _is_string_map(item: Mapping) -> bool:
    # label and annotation sets read missing keys as ""
    return getattr(type(item), "template_fields", None) is not None


def _slice(item: Any, *indexes: Any) -> Any:
    if not isinstance(item, (str, list, tuple)):
        raise TemplateFuncError(f"can't slice item of type {go_type_name(item)}")
    if len(indexes) > 2:
        raise TemplateFuncError("too many slice indexes: " + str(len(indexes)))
    for idx in indexes:
        if not isinstance(idx, int) or isinstance(idx, bool):
            raise TemplateFuncError(f"cannot index slice/array with type {go_type_name(idx)}")
    start = indexes[0] if indexes else 0
    end = indexes[1] if len(indexes) > 1 else len(item)
    if not 0 <= start <= end <= len(item):
        raise TemplateFuncError(f"index out of range: {start if start > len(item) else end}")
    return item[start:end]


def _sprint(*args: Any) -> str:
    """Operands are joined with a space when neither side is a string."""
    out = []
    for i, arg in enumerate(args):
        if i > 0 and not isinstance(arg, str) and not isinstance(args[i - 1], str):
            out.append(" ")
        out.append(format_value(arg, nested=True))
    return "".join(out)


def _sprintln(*args: Any) -> str:
    return " ".join(format_value(a, nested=True) for a in args) + "\n"


_VERB_RE = re.compile(r"%([-+# 0]*)(\d+)?(?:\.(\d+))?([a-zA-Z%])")

# Widths and precisions above this are reported as BADWIDTH/BADPREC
MAX_FORMAT_WIDTH = 1_000_000


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    escaped = escaped.replace("\n", "\\n").replace("\t", "\\t").replace("\r", "\\r")
    return f'"{escaped}"'


def _pad(text: str, flags: str, width: str | None) -> str:
    if not width:
        return text
    size = int(width)
    if "-" in flags:
        return text.ljust(size)
    if "0" in flags and text[:1].lstrip("+-").isdigit():
        sign = text[0] if text[0] in "+-" else ""
        return sign + text[len(sign):].rjust(size - len(sign), "0")
    return text.rjust(size)


def _format_verb(verb: str, flags: str, width: str | None, precision: str | None, arg: Any) -> str:
    if verb in "vs":
        text = format_value(arg, nested=True)
        if precision is not None and verb == "s":
            text = text[:int(precision)]
        return _pad(text, flags, width)
    if verb == "q":
        return _pad(_quote(arg) if isinstance(arg, str) else format_value(arg, True), flags, width)
    if verb == "t":
        if not isinstance(arg, bool):
            return f"%!t({go_type_name(arg)}={format_value(arg, True)})"
        return _pad(format_value(arg), flags, width)
    if verb in "dxXobc":
        if isinstance(arg, str) and verb in "xX":
            text = arg.encode("utf-8").hex()
            return _pad(text.upper() if verb == "X" else text, flags, width)
        if not isinstance(arg, int) or isinstance(arg, bool):
            return f"%!{verb}({go_type_name(arg)}={format_value(arg, True)})"
        if verb == "c":
            # invalid code points print as the replacement character
            valid = 0 <= arg <= 0x10FFFF and not 0xD800 <= arg <= 0xDFFF
            return _pad(chr(arg) if valid else "\ufffd", flags, width)
        spec = ("+" if "+" in flags else "") + {"d": "d", "x": "x", "X": "X", "o": "o", "b": "b"}[verb]
        return _pad(format(arg, spec), flags, width)
    if verb in "eEfFgG":
        if isinstance(arg, bool) or not isinstance(arg, (int, float)):
            return f"%!{verb}({go_type_name(arg)}={format_value(arg, True)})"
        if verb in "gG" and precision is None:
            text = format_float(float(arg))
            if "+" in flags and not text.startswith("-"):
                text = "+" + text
            return _pad(text, flags, width)
        prec = 6 if precision is None else int(precision)
        spec = ("+" if "+" in flags else "") + f".{prec}{verb}"
        return _pad(format(float(arg), spec), flags, width)
    return f"%!{verb}({go_type_name(arg)}={format_value(arg, True)})"


def _sprintf(fmt: str, *args: Any) -> str:
    out: list[str] = []
    arg_index = 0
    pos = 0
    for match in _VERB_RE.finditer(fmt):
        out.append(fmt[pos:match.start()])
        pos = match.end()
        flags, width, precision, verb = match.groups()
        if width is not None and int(width) > MAX_FORMAT_WIDTH:
            out.append("%!(BADWIDTH)")
            width = None
        if precision is not None and int(precision) > MAX_FORMAT_WIDTH:
            out.append("%!(BADPREC)")
            precision = None
        if verb == "%":
            out.append("%")
            continue
        if arg_index >= len(args):
            out.append(f"%!{verb}(MISSING)")
            continue
        out.append(_format_verb(verb, flags, width, precision, args[arg_index]))
        arg_index += 1
    out.append(fmt[pos:])
    if arg_index < len(args):
        extra = ", ".join(f"{go_type_name(a)}={format_value(a, True)}" for a in args[arg_index:])
        out.append(f"%!(EXTRA {extra})")
    return "".join(out)


def _basic_kind(value: Any) -> str:
    if value is None or value is MISSING:
        return "nil"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return "other"


def _eq(arg1: Any, *others: Any) -> bool:
    if not others:
        raise TemplateFuncError("missing argument for comparison")
    kind1 = _basic_kind(arg1)
    for arg in others:
        kind = _basic_kind(arg)
        if kind1 == "other" or kind == "other":
            if kind1 != kind:
                raise TemplateFuncError("incompatible types for comparison")
        elif kind1 != kind and "nil" not in (kind1, kind):
            raise TemplateFuncError("incompatible types for comparison")
        if _none_to_missing(arg1) == _none_to_missing(arg):
            return True
    return False


def _none_to_missing(value: Any) -> Any:
    return MISSING if value is None else value


def _ne(arg1: Any, arg2: Any) -> bool:
    return not _eq(arg1, arg2)


def _ordered(arg1: Any, arg2: Any) -> tuple[Any, Any]:
    kind1, kind2 = _basic_kind(arg1), _basic_kind(arg2)
    if kind1 not in ("number", "string") or kind2 not in ("number", "string"):
        raise TemplateFuncError("invalid type for comparison")
    if kind1 != kind2:
        raise TemplateFuncError("incompatible types for comparison")
    return arg1, arg2


def _lt(arg1: Any, arg2: Any) -> bool:
    a, b = _ordered(arg1, arg2)
    return a < b


def _le(arg1: Any, arg2: Any) -> bool:
    a, b = _ordered(arg1, arg2)
    return a <= b


def _gt(arg1: Any, arg2: Any) -> bool:
    a, b = _ordered(arg1, arg2)
    return a > b


def _ge(arg1: Any, arg2: Any) -> bool:
    a, b = _ordered(arg1, arg2)
    return a >= b


def _not(arg: Any) -> bool:
    return not truth(arg)


def _html(*args: Any) -> str:
    text = _sprint(*args)
    text = html_module.escape(text, quote=False)
    return text.replace('"', "&#34;").replace("'", "&#39;").replace("\x00", "\ufffd")


_JS_ESCAPES = {
    "\\": "\\\\", "'": "\\'", '"': '\\"', "<": "\\u003C", ">": "\\u003E",
    "&": "\\u0026", "=": "\\u003D", "\n": "\\u000A", "\r": "\\u000D", "\t": "\\u0009",
}


def _js(*args: Any) -> str:
    text = _sprint(*args)
    return "".join(_JS_ESCAPES.get(c, c if ord(c) >= 0x20 else f"\\u{ord(c):04X}") for c in text)


def _urlquery(*args: Any) -> str:
    return quote_plus(_sprint(*args))


# Alerting helpers

def _to_upper(text: str) -> str:
    return text.upper()


def _to_lower(text: str) -> str:
    return text.lower()


def _title(text: str) -> str:
    """Capitalize the first letter of every word, leaving the rest as is."""
    return re.sub(r"\b(\w)", lambda m: m.group(1).upper(), text)


def _join(sep: str, items: Sequence[str]) -> str:
    if isinstance(items, str) or not isinstance(items, Sequence):
        raise TemplateFuncError(f"wrong type for value; expected []string; got {go_type_name(items)}")
    return sep.join(format_value(i, nested=True) for i in items)


def _match(pattern: str, text: str) -> bool:
    try:
        return re.search(pattern, text) is not None
    except re.error as e:
        raise TemplateFuncError(f"error parsing regexp: {e}") from e


_GROUP_REF_RE = re.compile(r"\$(\d+|\{\w+\})")


def _re_replace_all(pattern: str, repl: str, text: str) -> str:
    """Replace every match; ``$1`` and ``${name}`` refer to capture groups."""
    def expand(m: re.Match[str]) -> str:
        ref = m.group(1).strip("{}")
        return f"\\g<{ref}>"

    python_repl = _GROUP_REF_RE.sub(expand, repl.replace("\\", "\\\\"))
    try:
        return re.sub(pattern, python_repl, text)
    except re.error as e:
        raise TemplateFuncError(f"error parsing regexp: {e}") from e


def _safe_html(text: str) -> str:
    return text


def _string_slice(*items: str) -> list[str]:
    return list(items)


def _trim_space(text: str) -> str:
    return text.strip()


BUILTINS: dict[str, Callable[..., Any]] = {
    "and": lambda *args: args[-1],
    "or": lambda *args: args[-1],
    "not": _not,
    "len": _len,
    "index": _index,
    "slice": _slice,
    "print": _sprint,
    "printf": _sprintf,
    "println": _sprintln,
    "eq": _eq,
    "ne": _ne,
    "lt": _lt,
    "le": _le,
    "gt": _gt,
    "ge": _ge,
    "html": _html,
    "js": _js,
    "urlquery": _urlquery,
}

HELPERS: dict[str, Callable[..., Any]] = {
    "toUpper": _to_upper,
    "toLower": _to_lower,
    "title": _title,
    "join": _join,
    "match": _match,
    "reReplaceAll": _re_replace_all,
    "safeHtml": _safe_html,
    "stringSlice": _string_slice,
    "trimSpace": _trim_space,
}

# and/or are evaluated lazily by the executor; the entries above only make
# the names known to the parser.
SHORT_CIRCUIT = frozenset({"and", "or"})

DEFAULT_FUNCS: Mapping[str, Callable[..., Any]] = {**BUILTINS, **HELPERS}
