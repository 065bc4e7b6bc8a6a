"""Label set literals — parse `{job="x", env="prod"}` into an immutable LabelSet."""

import re
from dataclasses import dataclass

_NAME_RE = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")
_METRIC_NAME_RE = re.compile(r"[a-zA-Z_:][a-zA-Z0-9_:]*")

_SIMPLE_ESCAPES = {
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
    "\\": "\\",
    '"': '"',
    "'": "'",
}

# escape letter -> number of hex digits that follow it
_HEX_ESCAPES = {"x": 2, "u": 4, "U": 8}


class ParseError(ValueError):
    """Raised when a label set expression is not a valid literal."""

    def __init__(self, message: str, pos: int):
        super().__init__(f"{message} at position {pos}")
        self.pos = pos


@dataclass(frozen=True)
class LabelSet:
    """Immutable label name -> value mapping, sorted by name."""

    pairs: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_dict(cls, labels: dict) -> "LabelSet":
        return cls(tuple(sorted((str(k), str(v)) for k, v in labels.items())))

    def as_dict(self) -> dict[str, str]:
        return dict(self.pairs)

    def items(self):
        return iter(self.pairs)

    def __getitem__(self, name: str) -> str:
        for key, value in self.pairs:
            if key == name:
                return value
        raise KeyError(name)

    def __iter__(self):
        return (key for key, _ in self.pairs)

    def __len__(self) -> int:
        return len(self.pairs)

    def __str__(self) -> str:
        body = ", ".join(
            f'{key}="{_quote(value)}"' for key, value in self.pairs
        )
        return "{" + body + "}"


def _quote(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
    )


def default_labels(tool_name: str) -> str:
    """Return the default label set expression for a tool."""
    return '{job="%s"}' % tool_name


def _check_encodable(value: str, pos: int) -> str:
    # lone surrogates reach here from undecodable argv bytes
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        raise ParseError("label value is not valid UTF-8", pos) from None
    return value


class _Parser:
    """Single-pass scanner over a label set expression."""

    def __init__(self, text: str):
        self._text = text
        self._pos = 0

    def parse(self) -> LabelSet:
        pairs: dict[str, str] = {}

        self._skip_ws()
        match = _METRIC_NAME_RE.match(self._text, self._pos)
        if match:
            pairs["__name__"] = match.group(0)
            self._pos = match.end()
            self._skip_ws()

        if self._peek() == "{":
            self._pos += 1
            self._parse_matchers(pairs)
        elif not pairs:
            raise ParseError("expected '{' or metric name", self._pos)

        self._skip_ws()
        if self._pos != len(self._text):
            raise ParseError(
                f"unexpected character {self._text[self._pos]!r}", self._pos
            )
        if not pairs:
            raise ParseError("at least one label pair is required", 0)

        return LabelSet(tuple(sorted(pairs.items())))

    def _parse_matchers(self, pairs: dict[str, str]):
        while True:
            self._skip_ws()
            if self._peek() == "}":
                self._pos += 1
                return

            name_pos = self._pos
            match = _NAME_RE.match(self._text, self._pos)
            if not match:
                if self._peek() == "":
                    raise ParseError("unclosed label set, expected '}'", self._pos)
                raise ParseError("expected label name", self._pos)
            name = match.group(0)
            self._pos = match.end()

            self._skip_ws()
            if self._peek() != "=":
                raise ParseError("expected '=' after label name", self._pos)
            self._pos += 1
            if self._peek() in ("=", "~"):
                raise ParseError("only '=' is allowed in a label set", self._pos)

            self._skip_ws()
            value = self._parse_string()

            if name in pairs:
                raise ParseError(f"duplicate label name {name!r}", name_pos)
            pairs[name] = value

            self._skip_ws()
            ch = self._peek()
            if ch == ",":
                self._pos += 1
            elif ch == "}":
                self._pos += 1
                return
            elif ch == "":
                raise ParseError("unclosed label set, expected '}'", self._pos)
            else:
                raise ParseError("expected ',' or '}'", self._pos)

    def _parse_string(self) -> str:
        start = self._pos
        quote = self._peek()
        if quote not in ('"', "'", "`"):
            raise ParseError("expected quoted label value", start)
        self._pos += 1

        if quote == "`":
            end = self._text.find("`", self._pos)
            if end < 0:
                raise ParseError("unterminated raw string", start)
            value = self._text[self._pos:end]
            self._pos = end + 1
            return _check_encodable(value, start)

        out = []
        while True:
            ch = self._peek()
            if ch == "" or ch == "\n":
                raise ParseError("unterminated quoted string", start)
            self._pos += 1
            if ch == quote:
                return _check_encodable("".join(out), start)
            if ch == "\\":
                out.append(self._parse_escape(start))
            else:
                out.append(ch)

    def _parse_escape(self, start: int) -> str:
        ch = self._peek()
        if ch == "":
            raise ParseError("unterminated quoted string", start)
        self._pos += 1

        if ch in _SIMPLE_ESCAPES:
            return _SIMPLE_ESCAPES[ch]
        if ch in _HEX_ESCAPES:
            return self._read_code_point(self._pos - 2, _HEX_ESCAPES[ch], 16)
        if ch in "01234567":
            self._pos -= 1
            return self._read_code_point(self._pos - 1, 3, 8)
        raise ParseError(f"unknown escape sequence '\\{ch}'", self._pos - 2)

    def _read_code_point(self, escape_pos: int, width: int, base: int) -> str:
        digits = self._text[self._pos:self._pos + width]
        try:
            if len(digits) != width:
                raise ValueError(digits)
            code = int(digits, base)
            value = chr(code)
        except ValueError:
            raise ParseError("invalid escape sequence", escape_pos) from None
        if 0xD800 <= code <= 0xDFFF:
            raise ParseError("escape sequence is an invalid code point", escape_pos)
        self._pos += width
        return value

    def _peek(self) -> str:
        if self._pos < len(self._text):
            return self._text[self._pos]
        return ""

    def _skip_ws(self):
        while self._peek() in (" ", "\t", "\r", "\n"):
            self._pos += 1


def parse_labels(expr: str) -> LabelSet:
    """Parse a label set literal such as `{job="lokitee", env='dev'}`.

    A leading metric name (`up{job="x"}`) is kept as the `__name__` label.
    Raises ParseError on malformed input, duplicate names, or an empty set.
    """
    return _Parser(expr).parse()
