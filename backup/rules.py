"""Glob based exclusion rules evaluated relative to the state directory."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Pattern, Sequence, Tuple

__all__ = ["InclusionFilter", "normalise_relative", "translate_glob"]


def normalise_relative(path: str) -> str:
    """Return ``path`` as a ``/`` separated relative path without ``./`` noise."""

    text = str(path).replace("\\", "/")
    parts = [part for part in text.split("/") if part and part != "."]
    return "/".join(parts)


def translate_glob(pattern: str) -> str:
    """Translate a path glob into an anchored regular expression.

    ``*`` and ``?`` never cross a ``/``. ``**`` spans any number of segments,
    and a trailing ``/**`` also matches the directory itself.
    """

    parts: List[str] = []
    index = 0
    length = len(pattern)
    while index < length:
        char = pattern[index]
        if char == "*":
            if pattern.startswith("**", index):
                index += 2
                if index < length and pattern[index] == "/":
                    index += 1
                    parts.append("(?:.*/)?")
                elif index >= length and parts and parts[-1] == "/":
                    parts.pop()
                    parts.append("(?:/.*)?")
                else:
                    parts.append(".*")
                continue
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        elif char == "[":
            end = pattern.find("]", index + 1)
            if end in (-1, index + 1):
                parts.append(re.escape(char))
            else:
                body = pattern[index + 1 : end].replace("\\", "\\\\")
                if body.startswith("!"):
                    body = "^" + body[1:]
                parts.append("[" + body + "]")
                index = end
        else:
            parts.append(re.escape(char))
        index += 1
    return "^" + "".join(parts) + "$"


@dataclass(frozen=True, slots=True)
class _Rule:
    pattern: str
    regex: Pattern[str]
    dir_only: bool


def _compile(patterns: Iterable[str]) -> Tuple[_Rule, ...]:
    rules: List[_Rule] = []
    for raw in patterns:
        text = str(raw).strip().replace("\\", "/")
        while text.startswith("./"):
            text = text[2:]
        text = text.lstrip("/")
        dir_only = text.endswith("/") and not text.endswith("**/")
        text = text.rstrip("/") if dir_only else text
        if not text:
            continue
        rules.append(_Rule(pattern=str(raw), regex=re.compile(translate_glob(text)), dir_only=dir_only))
    return tuple(rules)


class InclusionFilter:
    """Decide which paths under the state root belong in a snapshot.

    Everything is included unless a rule excludes the path or one of its
    ancestors, so excluding a directory removes its whole subtree.
    """

    def __init__(self, exclude: Sequence[str] = ()) -> None:
        self._patterns = tuple(exclude)
        self._rules = _compile(self._patterns)

    @property
    def patterns(self) -> Tuple[str, ...]:
        return self._patterns

    def _matches(self, candidate: str, *, is_dir: bool) -> bool:
        for rule in self._rules:
            if rule.dir_only and not is_dir:
                continue
            if rule.regex.match(candidate):
                return True
        return False

    def should_include(self, relative_path: str, is_dir: bool = False) -> bool:
        rel = normalise_relative(relative_path)
        if not rel:
            return True
        segments = rel.split("/")
        for depth in range(1, len(segments) + 1):
            candidate = "/".join(segments[:depth])
            ancestor = depth < len(segments)
            if self._matches(candidate, is_dir=is_dir or ancestor):
                return False
        return True

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"InclusionFilter(exclude={list(self._patterns)!r})"
