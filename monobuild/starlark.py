"""Narrow editor for list arguments of Starlark function calls.

This is not a Starlark parser. It understands exactly one shape, a
top-level call with a named list argument:

    web_library(
        name = "foo",
        deps = [
            "//a:a",
            "//b:b",  # comments after items stay with their item
        ],
    )

The first call that starts a line with the given name is used; nested or
repeated calls of the same name are out of contract. Every edit rewrites
only the bracketed body of the matched list, so the rest of the file is
preserved byte for byte. Multi-line lists keep one item per line with the
existing indentation; single-line lists stay on one line.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field

_OPEN = "([{"
_CLOSE = ")]}"
_DEFAULT_INDENT = "    "


def _skip_string(code: str, i: int) -> int:
    """Index just past the string literal starting at code[i]."""
    quote = code[i]
    if code.startswith(quote * 3, i):
        end = code.find(quote * 3, i + 3)
        return len(code) if end == -1 else end + 3
    j = i + 1
    while j < len(code):
        c = code[j]
        if c == "\\":
            j += 2
            continue
        if c == quote or c == "\n":
            return j + 1
        j += 1
    return j


def _skip_comment(code: str, i: int) -> int:
    """Index of the newline ending the comment at code[i]."""
    end = code.find("\n", i)
    return len(code) if end == -1 else end


def _find_closing(code: str, start: int) -> int | None:
    """Index of the bracket closing the one opened just before start."""
    depth = 1
    i = start
    while i < len(code):
        c = code[i]
        if c in "\"'":
            i = _skip_string(code, i)
            continue
        if c == "#":
            i = _skip_comment(code, i)
            continue
        if c in _OPEN:
            depth += 1
        elif c in _CLOSE:
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return None


def _nesting(code: str, start: int, stop: int) -> int | None:
    """Bracket depth at stop, or None if stop is inside a string or comment."""
    depth = 0
    i = start
    while i < stop:
        c = code[i]
        if c in "\"'":
            i = _skip_string(code, i)
            if i > stop:
                return None
            continue
        if c == "#":
            i = _skip_comment(code, i)
            if i > stop:
                return None
            continue
        if c in _OPEN:
            depth += 1
        elif c in _CLOSE:
            depth -= 1
        i += 1
    return depth


def _split_comment(line: str) -> tuple[str, str]:
    """Split a line into its code part and its trailing comment."""
    i = 0
    while i < len(line):
        c = line[i]
        if c in "\"'":
            i = _skip_string(line, i)
            continue
        if c == "#":
            return line[:i], line[i:]
        i += 1
    return line, ""


def _split_top_level(text: str) -> list[str]:
    """Split text on commas that are not nested or quoted."""
    parts: list[str] = []
    depth = 0
    last = 0
    i = 0
    while i < len(text):
        c = text[i]
        if c in "\"'":
            i = _skip_string(text, i)
            continue
        if c in _OPEN:
            depth += 1
        elif c in _CLOSE:
            depth -= 1
        elif c == "," and depth == 0:
            parts.append(text[last:i])
            last = i + 1
        i += 1
    parts.append(text[last:])
    return parts


def _values(text: str) -> tuple[list[str], bool]:
    """Item values in text, and whether the last one has a trailing comma."""
    values = [p.strip() for p in _split_top_level(text)]
    trailing = len(values) > 1 and values[-1] == ""
    return [v for v in values if v], trailing


def find_call(code: str, caller: str) -> tuple[int, int] | None:
    """Locate the arguments of the first top-level ``caller(...)`` call.

    Returns:
        (start, end) offsets of the text between the parentheses, or None.
    """
    pattern = re.compile(rf"^[ \t]*{re.escape(caller)}\s*\(", re.MULTILINE)
    for m in pattern.finditer(code):
        if _nesting(code, 0, m.start()) != 0:
            continue
        end = _find_closing(code, m.end())
        if end is None:
            return None
        return m.end(), end
    return None


def _find_list(code: str, caller: str, arg_name: str) -> tuple[int, int] | None:
    """Locate the body of ``arg_name = [...]`` directly inside the call."""
    call = find_call(code, caller)
    if call is None:
        return None
    start, end = call
    pattern = re.compile(rf"(?<![\w.]){re.escape(arg_name)}\s*=\s*\[")
    for m in pattern.finditer(code, start, end):
        if _nesting(code, start, m.start()) != 0:
            continue
        close = _find_closing(code, m.end())
        if close is None or close > end:
            return None
        return m.end(), close
    return None


@dataclass
class _Item:
    value: str
    indent: str = ""
    comma: bool = True
    # Whitespace and comment following the item on its line
    tail: str = ""


@dataclass
class _ListBody:
    """Parsed body of a list literal, able to render itself back."""

    multiline: bool
    # Multi-line: one entry per line, _Item or raw text for other lines
    entries: list[_Item | str] = field(default_factory=list)
    # Single-line layout
    lead: str = ""
    trail: str = ""
    sep: str = ", "
    trailing_comma: bool = False

    @classmethod
    def parse(cls, body: str) -> _ListBody:
        if "\n" not in body:
            inner = body.strip()
            values, trailing = _values(inner)
            sep = ", "
            m = re.search(r",\s*", inner)
            if len(values) > 1 and m:
                sep = m.group(0)
            return cls(
                multiline=False,
                entries=[_Item(v) for v in values],
                lead=body[: len(body) - len(body.lstrip())],
                trail=body[len(body.rstrip()) :],
                sep=sep,
                trailing_comma=trailing,
            )

        entries: list[_Item | str] = []
        for line in body.split("\n"):
            code_part, comment = _split_comment(line)
            if not code_part.strip():
                entries.append(line)
                continue
            indent = code_part[: len(code_part) - len(code_part.lstrip())]
            values, trailing = _values(code_part)
            tail = code_part[len(code_part.rstrip()) :] + comment
            for k, value in enumerate(values):
                last = k == len(values) - 1
                entries.append(
                    _Item(
                        value,
                        indent=indent,
                        comma=trailing or not last,
                        tail=tail if last else "",
                    )
                )
        return cls(multiline=True, entries=entries)

    def items(self) -> list[_Item]:
        return [e for e in self.entries if isinstance(e, _Item)]

    def values(self) -> list[str]:
        return [i.value for i in self.items()]

    def add(self, value: str) -> None:
        if not self.multiline:
            self.entries.append(_Item(value))
            return
        items = [(n, e) for n, e in enumerate(self.entries) if isinstance(e, _Item)]
        if items:
            n, last = items[-1]
            self.entries.insert(
                n + 1,
                _Item(value, indent=self._item_indent(), comma=last.comma),
            )
        else:
            self.entries.insert(
                len(self.entries) - 1, _Item(value, indent=self._item_indent())
            )

    def remove(self, value: str) -> None:
        self.entries = [
            e for e in self.entries if not (isinstance(e, _Item) and e.value == value)
        ]

    def sort(self) -> None:
        slots = [(n, e) for n, e in enumerate(self.entries) if isinstance(e, _Item)]
        ordered = sorted(self.items(), key=lambda i: i.value)
        for (n, slot), item in zip(slots, ordered):
            self.entries[n] = _Item(
                item.value, indent=slot.indent, comma=slot.comma, tail=item.tail
            )

    def _item_indent(self) -> str:
        # Prefer an item that starts its own line
        for n, e in enumerate(self.entries):
            if isinstance(e, _Item) and n > 0:
                return e.indent
        closing = self.entries[-1] if self.entries else ""
        if isinstance(closing, str) and not closing.strip():
            return closing + _DEFAULT_INDENT
        return _DEFAULT_INDENT

    def render(self) -> str:
        if not self.multiline:
            values = self.values()
            comma = "," if self.trailing_comma and values else ""
            return self.lead + self.sep.join(values) + comma + self.trail

        last = max(
            (n for n, e in enumerate(self.entries) if isinstance(e, _Item)),
            default=-1,
        )
        lines: list[str] = []
        for n, e in enumerate(self.entries):
            if isinstance(e, str):
                lines.append(e)
                continue
            comma = "," if e.comma or n != last else ""
            lines.append(f"{e.indent}{e.value}{comma}{e.tail}")
        return "\n".join(lines)


def _edit(
    code: str, caller: str, arg_name: str, change: Callable[[_ListBody], None]
) -> str:
    span = _find_list(code, caller, arg_name)
    if span is None:
        return code
    start, end = span
    body = _ListBody.parse(code[start:end])
    change(body)
    return code[:start] + body.render() + code[end:]


def get_call_arg_items(code: str, caller: str, arg_name: str) -> list[str]:
    """Return the raw items of a call's list argument, quotes included.

    Example:
        get_call_arg_items(code, "web_library", "deps") → ['"//a:a"', '"//b:b"']
    """
    span = _find_list(code, caller, arg_name)
    if span is None:
        return []
    start, end = span
    return _ListBody.parse(code[start:end]).values()


def add_call_arg_item(code: str, caller: str, arg_name: str, value: str) -> str:
    """Append an item to a call's list argument."""
    return _edit(code, caller, arg_name, lambda body: body.add(value))


def remove_call_arg_item(code: str, caller: str, arg_name: str, value: str) -> str:
    """Remove every item equal to value from a call's list argument."""
    return _edit(code, caller, arg_name, lambda body: body.remove(value))


def sort_call_arg_items(code: str, caller: str, arg_name: str) -> str:
    """Sort a call's list argument lexicographically.

    Comments after an item move with the item; indentation stays with the
    line.
    """
    return _edit(code, caller, arg_name, lambda body: body.sort())
