"""Versioned in-memory prompt store with linting and line diffs."""

from __future__ import annotations

import string
import threading
from bisect import bisect_left
from dataclasses import dataclass, field
from typing import Optional

_ASCII_LOWER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)
_SECRET_MARKERS = ("aws_secret_access_key", "BEGIN PRIVATE KEY", "sk-")


@dataclass(frozen=True)
class Prompt:
    """A versioned prompt artifact."""

    name: str
    version: int = 0
    body: str = ""
    meta: Optional[dict[str, str]] = None


@dataclass(frozen=True)
class Issue:
    """A lint finding."""

    rule: str
    message: str
    offset: int = 0


class LintError(ValueError):
    """Raised when a prompt fails lint checks; ``issues`` lists the findings."""

    def __init__(self, issues: list[Issue]) -> None:
        super().__init__("prompt failed lint checks")
        self.issues = list(issues)


def _contains_secret_like(text: str) -> bool:
    if not text:
        return False
    folded = text.translate(_ASCII_LOWER)
    return any(marker.translate(_ASCII_LOWER) in folded for marker in _SECRET_MARKERS if marker)


def lint(prompt: Prompt) -> list[Issue]:
    """Run basic checks on a prompt and return the issues found."""
    issues: list[Issue] = []
    if not prompt.name:
        issues.append(Issue("name.required", "name is required"))
    if not prompt.body:
        issues.append(Issue("body.required", "body is empty"))
    if _contains_secret_like(prompt.body):
        issues.append(
            Issue("security.secrets", "body appears to contain secrets-like content")
        )
    return issues


def unified_diff(a: str, b: str) -> str:
    """Return a simple line diff of two strings, or an empty string if they are equal."""
    if a == b:
        return ""
    out = ["--- a\n", "+++ b\n"]
    left = a.split("\n")
    right = b.split("\n")
    i = j = 0
    while i < len(left) or j < len(right):
        if i < len(left) and j < len(right) and left[i] == right[j]:
            i += 1
            j += 1
            continue
        if i < len(left):
            out.append(f"-{left[i]}\n")
            i += 1
        if j < len(right):
            out.append(f"+{right[j]}\n")
            j += 1
    return "".join(out)


@dataclass
class PromptStore:
    """Thread-safe in-memory store keeping every version of each prompt."""

    _data: dict[str, list[Prompt]] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    def save(self, prompt: Prompt) -> Prompt:
        """Store a new version (1 for a new name) and return it; raise LintError on lint failure."""
        issues = lint(prompt)
        if issues:
            raise LintError(issues)
        with self._lock:
            versions = self._data.setdefault(prompt.name, [])
            next_version = versions[-1].version + 1 if versions else 1
            stored = Prompt(prompt.name, next_version, prompt.body, prompt.meta)
            versions.append(stored)
            return stored

    def get(self, name: str, version: int = 0) -> Optional[Prompt]:
        """Return a version of a prompt, the latest for ``version <= 0``, or ``None``."""
        with self._lock:
            versions = self._data.get(name)
            if not versions:
                return None
            if version <= 0:
                return versions[-1]
            index = bisect_left(versions, version, key=lambda p: p.version)
            if index < len(versions) and versions[index].version == version:
                return versions[index]
            return None

    def list(self, name: str) -> list[Prompt]:
        """Return all versions of a prompt in ascending order."""
        with self._lock:
            return list(self._data.get(name, ()))

    def diff(self, name: str, v1: int, v2: int) -> str:
        """Diff the bodies of two versions; empty if either is missing."""
        first = self.get(name, v1)
        second = self.get(name, v2)
        if first is None or second is None:
            return ""
        return unified_diff(first.body, second.body)