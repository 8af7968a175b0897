"""
Textual property trees.

A tree is written as a sequence of parenthesized groups:

    (name percex/springy) (robot icub) (index (name index) (centers (0.1 0.2)))

In Python a tree is a dict. Values are str, int, float, lists (possibly nested,
numeric) or dicts (subgroups). A group whose payload is itself made of
`(word ...)` groups parses back to a dict, so lists whose first element is a
bare word are not representable.
"""

import re
from typing import Any

import numpy as np

from percex.errors import ConfigError

_BARE_WORD = re.compile(r"^[A-Za-z_/][A-Za-z0-9_/.\-+:]*$")
_TOKEN = re.compile(r'\s*(?:(\()|(\))|"((?:[^"\\]|\\.)*)"|([^\s()"]+))')


# ============================================================
# Formatting
# ============================================================

def _format_atom(value: Any) -> str:
    if isinstance(value, (bool, np.bool_)):
        return "1" if value else "0"
    if isinstance(value, (int, np.integer)):
        return str(int(value))
    if isinstance(value, (float, np.floating)):
        return repr(float(value))
    text = str(value)
    if _BARE_WORD.match(text) and _parse_atom(text) == text:
        return text
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def format_value(value: Any) -> str:
    """Format a scalar, list or array in property notation."""
    if isinstance(value, np.ndarray):
        value = value.tolist()
    if isinstance(value, (list, tuple)):
        return "(" + " ".join(format_value(v) for v in value) + ")"
    if isinstance(value, dict):
        return format_property(value)
    return _format_atom(value)


def _format_entry(key: str, value: Any) -> str:
    if isinstance(value, dict):
        if not value:
            return f"({key})"
        return f"({key} {format_property(value)})"
    return f"({key} {format_value(value)})"


def format_property(tree: dict) -> str:
    """Format a property tree as text."""
    return " ".join(_format_entry(str(key), value) for key, value in tree.items())


# ============================================================
# Parsing
# ============================================================

def _parse_atom(text: str) -> Any:
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return text


def _tokenize(text: str) -> list:
    tokens = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        match = _TOKEN.match(text, pos)
        if match is None:
            raise ConfigError(f"Malformed property text at offset {pos}: {text[pos:pos + 20]!r}")
        open_, close, quoted, atom = match.groups()
        if open_:
            tokens.append("(")
        elif close:
            tokens.append(")")
        elif quoted is not None:
            tokens.append(("str", re.sub(r"\\(.)", r"\1", quoted)))
        else:
            tokens.append(("atom", atom))
        pos = match.end()
    return tokens


def _read_lists(tokens: list) -> list:
    """Turn tokens into nested Python lists."""
    stack: list[list] = [[]]
    for token in tokens:
        if token == "(":
            stack.append([])
        elif token == ")":
            if len(stack) == 1:
                raise ConfigError("Unbalanced ')' in property text")
            finished = stack.pop()
            stack[-1].append(finished)
        else:
            kind, text = token
            stack[-1].append(text if kind == "str" else _parse_atom(text))
    if len(stack) != 1:
        raise ConfigError("Unbalanced '(' in property text")
    return stack[0]


def _is_entry(item: Any) -> bool:
    return isinstance(item, list) and len(item) > 0 and isinstance(item[0], str)


def _entries_to_dict(items: list) -> dict:
    tree = {}
    for item in items:
        if not _is_entry(item):
            raise ConfigError(f"Expected a (key value) group, got {item!r}")
        key, rest = item[0], item[1:]
        tree[key] = _entry_value(rest)
    return tree


def _entry_value(rest: list) -> Any:
    if not rest:
        return {}
    if all(_is_entry(item) for item in rest):
        return _entries_to_dict(rest)
    if len(rest) == 1:
        return rest[0]
    return rest


def parse_property(text: str) -> dict:
    """Parse property text into a tree. Raises ConfigError on bad input."""
    return _entries_to_dict(_read_lists(_tokenize(text)))
