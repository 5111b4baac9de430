"""Tests for path pattern compilation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from metarouter.errors import PatternError
from metarouter.pattern import Key, MatchOptions, compile_pattern, parse


def _groups(path: str, target: str, **options: bool) -> tuple[str | None, ...] | None:
    pattern = compile_pattern(path, MatchOptions(**options) if options else None)
    m = pattern.regex.match(target)
    return m.groups() if m else None


# =====================================================================
# Parsing
# =====================================================================


class TestParse:
    def test_static_path(self) -> None:
        assert parse("/health") == ["/health"]

    def test_named_param(self) -> None:
        tokens = parse("/users/:id")
        assert tokens[0] == "/users"
        key = tokens[1]
        assert isinstance(key, Key)
        assert key.name == "id"
        assert key.prefix == "/"
        assert key.modifier == ""

    def test_unnamed_params_are_numbered(self) -> None:
        tokens = parse(r"/(\d+)/:slug/(\w+)")
        keys = [t for t in tokens if isinstance(t, Key)]
        assert [k.name for k in keys] == [0, "slug", 1]

    def test_custom_pattern(self) -> None:
        key = parse(r"/items/:id(\d+)")[1]
        assert isinstance(key, Key)
        assert key.pattern == r"\d+"

    def test_group_with_prefix_and_suffix(self) -> None:
        key = parse("/icons{-:size-}?")[1]
        assert isinstance(key, Key)
        assert (key.prefix, key.name, key.suffix, key.modifier) == ("-", "size", "-", "?")

    def test_escaped_characters_are_literal(self) -> None:
        assert parse(r"/a\:b") == ["/a:b"]

    def test_modifiers(self) -> None:
        star, plus = parse("/a/:x*/:y+")[1:]
        assert isinstance(star, Key) and isinstance(plus, Key)
        assert star.repeat and star.optional
        assert plus.repeat and not plus.optional


class TestParseErrors:
    @pytest.mark.parametrize(
        ("path", "message"),
        [
            ("/:", "Missing parameter name"),
            ("/(", "Unbalanced pattern"),
            ("/()", "Missing pattern"),
            ("/(?:a)", "Pattern cannot start with"),
            ("/(a(b))", "Capturing groups are not allowed"),
            ("/?", "Unexpected MODIFIER"),
            ("/{:id", "Unexpected END"),
        ],
    )
    def test_malformed_patterns(self, path: str, message: str) -> None:
        with pytest.raises(PatternError, match=message):
            compile_pattern(path)

    def test_repeat_without_prefix(self) -> None:
        with pytest.raises(PatternError, match="Can not repeat"):
            compile_pattern("/foo:id+")


# =====================================================================
# Matching
# =====================================================================


class TestCompiledPattern:
    def test_named_param(self) -> None:
        assert _groups("/users/:id", "/users/42") == ("42",)
        assert _groups("/users/:id", "/users") is None
        assert _groups("/users/:id", "/users/42/posts") is None

    def test_case_insensitive_by_default(self) -> None:
        assert _groups("/users/:id", "/USERS/42") == ("42",)
        assert _groups("/users/:id", "/USERS/42", sensitive=True) is None

    def test_trailing_delimiter_unless_strict(self) -> None:
        assert _groups("/users/:id", "/users/42/") == ("42",)
        assert _groups("/users/:id", "/users/42/", strict=True) is None

    def test_prefix_match_when_end_false(self) -> None:
        pattern = compile_pattern("/api", MatchOptions(end=False))
        m = pattern.regex.match("/api/users")
        assert m is not None
        assert m.group(0) == "/api"
        assert pattern.regex.match("/apiary") is None

    def test_start_false_allows_leading_text(self) -> None:
        pattern = compile_pattern("/b", MatchOptions(start=False))
        assert pattern.regex.search("/a/b") is not None

    def test_zero_or_more(self) -> None:
        assert _groups("/files/:parts*", "/files") == (None,)
        assert _groups("/files/:parts*", "/files/a/b") == ("a/b",)

    def test_one_or_more(self) -> None:
        assert _groups("/files/:parts+", "/files") is None
        assert _groups("/files/:parts+", "/files/a/b/c") == ("a/b/c",)

    def test_optional_group(self) -> None:
        assert _groups("/icons{/:size}?", "/icons") == (None,)
        assert _groups("/icons{/:size}?", "/icons/32") == ("32",)

    def test_custom_pattern(self) -> None:
        assert _groups(r"/items/:id(\d+)", "/items/7") == ("7",)
        assert _groups(r"/items/:id(\d+)", "/items/abc") is None

    def test_keys_align_with_groups(self) -> None:
        pattern = compile_pattern(r"/archive/(\d+)/:slug")
        assert [k.name for k in pattern.keys] == [0, "slug"]
        assert pattern.regex.groups == len(pattern.keys)

    def test_metacharacters_are_escaped(self) -> None:
        assert _groups("/a.b", "/a.b") == ()
        assert _groups("/a.b", "/axb") is None

    def test_everything_pattern(self) -> None:
        assert compile_pattern("/").everything
        assert not compile_pattern("/x").everything


def test_match_options_reject_unknown_keys() -> None:
    with pytest.raises(ValidationError):
        MatchOptions.model_validate({"ending": False})
