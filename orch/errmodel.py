"""Compact, categorised errors shared by every layer of the framework."""

from __future__ import annotations

import json
from enum import Enum
from http import HTTPStatus
from typing import Any, Mapping, Optional

_MESSAGE_LIMIT = 512
_CONTEXT_LIMIT = 256


class Category(str, Enum):
    """Broad class of a compact error."""

    VALIDATION = "validation"
    TOOL = "tool"
    NETWORK = "network"
    MODEL = "model"
    POLICY = "policy"
    SYSTEM = "system"


class CompactError(Exception):
    """A small, serialisable error payload with category, code and context."""

    def __init__(
        self,
        category: str,
        code: str,
        message: str,
        context: Optional[Mapping[str, Any]] = None,
        causes: Optional[list[CompactError]] = None,
    ) -> None:
        self.category = category.value if isinstance(category, Category) else str(category)
        self.code = code
        self.message = message
        self.context: Optional[dict[str, Any]] = dict(context) if context else None
        self.causes: list[CompactError] = list(causes or [])
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.code:
            return f"{self.code}: {self.message}"
        return self.message

    def __repr__(self) -> str:
        return (
            f"CompactError(category={self.category!r}, code={self.code!r}, "
            f"message={self.message!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready form, omitting empty context and causes."""
        out: dict[str, Any] = {
            "category": self.category,
            "code": self.code,
            "message": self.message,
        }
        if self.context:
            out["context"] = dict(self.context)
        if self.causes:
            out["causes"] = [cause.to_dict() for cause in self.causes]
        return out


def _truncate(text: str, limit: int) -> str:
    if limit <= 0 or len(text) <= limit:
        return text
    if limit <= 3:
        return text[:limit]
    return text[: limit - 3] + "..."


def _compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def _truncate_context(context: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in context.items():
        if isinstance(value, str):
            out[key] = _truncate(value, _CONTEXT_LIMIT)
            continue
        try:
            encoded = _compact_json(value)
        except (TypeError, ValueError):
            out[key] = value
        else:
            out[key] = _truncate(encoded, _CONTEXT_LIMIT) if encoded else value
    return out


def new(
    category: str,
    code: str,
    message: str,
    context: Optional[Mapping[str, Any]] = None,
    *args: Optional[BaseException],
) -> CompactError:
    """Build a compact error; extra positional arguments are its causes."""
    causes = [from_exception(cause) for cause in args if cause is not None]
    return CompactError(
        category,
        code,
        _truncate(message, _MESSAGE_LIMIT),
        _truncate_context(context) if context else None,
        [cause for cause in causes if cause is not None],
    )


def from_exception(err: Optional[BaseException]) -> Optional[CompactError]:
    """Convert any exception to a compact error, reusing one found in its cause chain."""
    if err is None:
        return None
    current: Optional[BaseException] = err
    while current is not None:
        if isinstance(current, CompactError):
            return current
        current = current.__cause__
    return CompactError(Category.SYSTEM, "internal", _truncate(str(err), _MESSAGE_LIMIT))


def validation(code: str, message: str, context: Optional[Mapping[str, Any]] = None) -> CompactError:
    """Build a validation error."""
    return new(Category.VALIDATION, code, message, context)


def policy(code: str, message: str, context: Optional[Mapping[str, Any]] = None) -> CompactError:
    """Build a policy error."""
    return new(Category.POLICY, code, message, context)


def system(
    code: str,
    message: str,
    context: Optional[Mapping[str, Any]] = None,
    cause: Optional[BaseException] = None,
) -> CompactError:
    """Build a system error, optionally recording the exception that caused it."""
    if cause is not None:
        return new(Category.SYSTEM, code, message, context, cause)
    return new(Category.SYSTEM, code, message, context)


_VALIDATION_STATUS = {
    "not_found": HTTPStatus.NOT_FOUND,
    "conflict": HTTPStatus.CONFLICT,
}

_POLICY_STATUS = {
    "unauthorized": HTTPStatus.UNAUTHORIZED,
    "forbidden": HTTPStatus.FORBIDDEN,
    "method_not_allowed": HTTPStatus.METHOD_NOT_ALLOWED,
}


def http_status(err: Optional[BaseException]) -> int:
    """Map an error's category and code to an HTTP status code."""
    compact = from_exception(err)
    if compact is None:
        return int(HTTPStatus.INTERNAL_SERVER_ERROR)
    if compact.category == Category.VALIDATION:
        return int(_VALIDATION_STATUS.get(compact.code, HTTPStatus.BAD_REQUEST))
    if compact.category == Category.POLICY:
        return int(_POLICY_STATUS.get(compact.code, HTTPStatus.FORBIDDEN))
    if compact.category in (Category.NETWORK, Category.TOOL, Category.MODEL):
        return int(HTTPStatus.BAD_GATEWAY)
    return int(HTTPStatus.INTERNAL_SERVER_ERROR)


def http_envelope(err: Optional[BaseException], trace_id: str = "") -> tuple[int, str]:
    """Return the HTTP status and JSON body ``{"error": ..., "trace_id": ...}`` for an error."""
    compact = from_exception(err)
    if compact is None:
        compact = CompactError(Category.SYSTEM, "internal", "unknown error")
    body = json.dumps(
        {"error": compact.to_dict(), "trace_id": trace_id},
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return http_status(compact), body + "\n"


def is_category(err: Optional[BaseException], category: str) -> bool:
    """Tell whether an error belongs to a category, ignoring case."""
    compact = from_exception(err)
    if compact is None:
        return False
    wanted = category.value if isinstance(category, Category) else str(category)
    return compact.category.casefold() == wanted.casefold()