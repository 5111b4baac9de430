"""Path pattern compilation.

Compiles Express-style path templates into a regex plus an ordered list of
parameter keys::

    /users/:id            -> id
    /files/:parts*        -> parts (zero or more segments)
    /files/:parts+        -> parts (one or more segments)
    /items/:id(\\d+)      -> id, custom pattern
    /archive/(\\d+)/:slug  -> 0, slug
    /icons{/:size}?       -> optional group with prefix

Keys line up 1:1 with the regex capture groups. Unnamed captures are keyed by
increasing integers starting at 0.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict

from metarouter.errors import PatternError

_DELIMITER = "/#?"
_PREFIXES = "./"
_NAME_CHARS = frozenset("0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz_")
_DEFAULT_PATTERN = f"[^{re.escape(_DELIMITER)}]+?"
_DELIMITER_RE = f"[{re.escape(_DELIMITER)}]"

EVERYTHING = "/"


class MatchOptions(BaseModel):
    """Compile options for a single route pattern."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    sensitive: bool = False
    strict: bool = False
    end: bool = True
    start: bool = True


@dataclass(frozen=True, slots=True)
class Key:
    """A parameter in a compiled pattern."""

    name: str | int
    prefix: str = ""
    suffix: str = ""
    pattern: str = ""
    modifier: str = ""

    @property
    def repeat(self) -> bool:
        return self.modifier in ("*", "+")

    @property
    def optional(self) -> bool:
        return self.modifier in ("?", "*")


@dataclass(frozen=True, slots=True)
class CompiledPattern:
    path: str
    regex: re.Pattern[str]
    keys: tuple[Key, ...]

    @property
    def everything(self) -> bool:
        return self.path == EVERYTHING


@dataclass(frozen=True, slots=True)
class _Token:
    type: str
    index: int
    value: str


def _lex(text: str) -> list[_Token]:
    tokens: list[_Token] = []
    i = 0
    size = len(text)

    while i < size:
        char = text[i]

        if char in "*+?":
            tokens.append(_Token("MODIFIER", i, char))
            i += 1
            continue

        if char == "\\":
            if i + 1 >= size:
                raise PatternError(f"Dangling escape at {i}")
            tokens.append(_Token("ESCAPED_CHAR", i, text[i + 1]))
            i += 2
            continue

        if char == "{":
            tokens.append(_Token("OPEN", i, char))
            i += 1
            continue

        if char == "}":
            tokens.append(_Token("CLOSE", i, char))
            i += 1
            continue

        if char == ":":
            j = i + 1
            while j < size and text[j] in _NAME_CHARS:
                j += 1
            if j == i + 1:
                raise PatternError(f"Missing parameter name at {i}")
            tokens.append(_Token("NAME", i, text[i + 1 : j]))
            i = j
            continue

        if char == "(":
            pattern, end = _lex_group(text, i)
            tokens.append(_Token("PATTERN", i, pattern))
            i = end
            continue

        tokens.append(_Token("CHAR", i, char))
        i += 1

    tokens.append(_Token("END", i, ""))
    return tokens


def _lex_group(text: str, start: int) -> tuple[str, int]:
    """Read a ``(...)`` group starting at *start*; return its body and the next index."""
    count = 1
    j = start + 1
    size = len(text)
    pattern: list[str] = []

    if j < size and text[j] == "?":
        raise PatternError(f'Pattern cannot start with "?" at {j}')

    while j < size:
        char = text[j]
        if char == "\\":
            pattern.append(text[j : j + 2])
            j += 2
            continue
        if char == ")":
            count -= 1
            if count == 0:
                break
        elif char == "(":
            count += 1
            if j + 1 >= size or text[j + 1] != "?":
                raise PatternError(f"Capturing groups are not allowed at {j}")
        pattern.append(char)
        j += 1

    if count:
        raise PatternError(f"Unbalanced pattern at {start}")
    if not pattern:
        raise PatternError(f"Missing pattern at {start}")
    return "".join(pattern), j + 1


class _Parser:
    __slots__ = ("_i", "_tokens")

    def __init__(self, tokens: list[_Token]) -> None:
        self._tokens = tokens
        self._i = 0

    def try_consume(self, kind: str) -> str | None:
        token = self._tokens[self._i]
        if token.type == kind:
            self._i += 1
            return token.value
        return None

    def must_consume(self, kind: str) -> str:
        value = self.try_consume(kind)
        if value is not None:
            return value
        token = self._tokens[self._i]
        raise PatternError(f"Unexpected {token.type} at {token.index}, expected {kind}")

    def consume_text(self) -> str:
        parts: list[str] = []
        while True:
            value = self.try_consume("CHAR")
            if value is None:
                value = self.try_consume("ESCAPED_CHAR")
            if value is None:
                return "".join(parts)
            parts.append(value)

    @property
    def done(self) -> bool:
        return self._i >= len(self._tokens)


def parse(text: str) -> list[str | Key]:
    """Split *text* into literal strings and parameter keys."""
    parser = _Parser(_lex(text))
    result: list[str | Key] = []
    counter = 0
    path = ""

    while not parser.done:
        char = parser.try_consume("CHAR")
        name = parser.try_consume("NAME")
        pattern = parser.try_consume("PATTERN")

        if name is not None or pattern is not None:
            prefix = char or ""
            if prefix not in _PREFIXES:
                path += prefix
                prefix = ""
            if path:
                result.append(path)
                path = ""
            if not name:
                name_or_index: str | int = counter
                counter += 1
            else:
                name_or_index = name
            result.append(
                Key(
                    name=name_or_index,
                    prefix=prefix,
                    pattern=pattern or _DEFAULT_PATTERN,
                    modifier=parser.try_consume("MODIFIER") or "",
                )
            )
            continue

        value = char if char is not None else parser.try_consume("ESCAPED_CHAR")
        if value is not None:
            path += value
            continue

        if path:
            result.append(path)
            path = ""

        if parser.try_consume("OPEN") is not None:
            prefix = parser.consume_text()
            name = parser.try_consume("NAME") or ""
            pattern = parser.try_consume("PATTERN") or ""
            suffix = parser.consume_text()
            parser.must_consume("CLOSE")

            if name:
                name_or_index = name
            elif pattern:
                name_or_index = counter
                counter += 1
            else:
                name_or_index = ""
            if name and not pattern:
                pattern = _DEFAULT_PATTERN
            result.append(
                Key(
                    name=name_or_index,
                    prefix=prefix,
                    suffix=suffix,
                    pattern=pattern,
                    modifier=parser.try_consume("MODIFIER") or "",
                )
            )
            continue

        parser.must_consume("END")

    return result


def _tokens_to_regex(tokens: list[str | Key], options: MatchOptions) -> tuple[str, tuple[Key, ...]]:
    keys: list[Key] = []
    parts = ["^"] if options.start else []

    for token in tokens:
        if isinstance(token, str):
            parts.append(re.escape(token))
            continue

        prefix = re.escape(token.prefix)
        suffix = re.escape(token.suffix)

        if not token.pattern:
            parts.append(f"(?:{prefix}{suffix}){token.modifier}")
            continue

        keys.append(token)
        if prefix or suffix:
            if token.repeat:
                mod = "?" if token.modifier == "*" else ""
                parts.append(
                    f"(?:{prefix}((?:{token.pattern})(?:{suffix}{prefix}(?:{token.pattern}))*){suffix}){mod}"
                )
            else:
                parts.append(f"(?:{prefix}({token.pattern}){suffix}){token.modifier}")
        else:
            if token.repeat:
                raise PatternError(f'Can not repeat "{token.name}" without a prefix and suffix')
            parts.append(f"({token.pattern}){token.modifier}")

    if options.end:
        if not options.strict:
            parts.append(f"{_DELIMITER_RE}?")
        parts.append(r"\Z")
    else:
        last = tokens[-1] if tokens else None
        if isinstance(last, str):
            end_delimited = last[-1] in _DELIMITER
        else:
            end_delimited = last is None
        if not options.strict:
            parts.append(rf"(?:{_DELIMITER_RE}(?=\Z))?")
        if not end_delimited:
            parts.append(rf"(?={_DELIMITER_RE}|\Z)")

    return "".join(parts), tuple(keys)


def compile_pattern(path: str, options: MatchOptions | None = None) -> CompiledPattern:
    """Compile *path* into a :class:`CompiledPattern`.

    Raises :class:`PatternError` when the template is malformed.
    """
    options = options or MatchOptions()
    source, keys = _tokens_to_regex(parse(path), options)
    flags = 0 if options.sensitive else re.IGNORECASE
    try:
        regex = re.compile(source, flags)
    except re.error as exc:
        raise PatternError(f"Invalid regular expression in pattern: {exc}") from exc
    return CompiledPattern(path=path, regex=regex, keys=keys)
