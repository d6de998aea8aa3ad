"""Built-in tools: sandboxed file reading and HTTP GET."""

from __future__ import annotations

import os
import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

import requests

from orch.tool import Tool, ToolDescriptor, ToolPermission

_FILE_READ_INPUT = (
    b'{"type":"object","properties":{"path":{"type":"string"}},'
    b'"required":["path"],"additionalProperties":false}'
)
_FILE_READ_OUTPUT = (
    b'{"type":"object","properties":{"content":{"type":"string"}},'
    b'"required":["content"],"additionalProperties":false}'
)
_HTTP_GET_INPUT = (
    b'{"type":"object","properties":{"url":{"type":"string","format":"uri"},'
    b'"timeout_ms":{"type":"integer","minimum":1,"maximum":60000}},'
    b'"required":["url"],"additionalProperties":false}'
)
_HTTP_GET_OUTPUT = (
    b'{"type":"object","properties":{"status":{"type":"integer"},"body":{"type":"string"}},'
    b'"required":["status","body"],"additionalProperties":false}'
)

_DEFAULT_TIMEOUT_MS = 10000


@dataclass(frozen=True)
class FileReadTool(Tool):
    """Reads a text file relative to a sandbox directory."""

    root: Optional[Union[str, Path]] = None

    def describe(self) -> ToolDescriptor:
        return ToolDescriptor(
            name="fs.read",
            description="Reads a text file from sandboxed fs",
            input_schema=_FILE_READ_INPUT,
            output_schema=_FILE_READ_OUTPUT,
            permissions=(ToolPermission("fs:read"),),
        )

    def invoke(self, args: dict[str, Any]) -> dict[str, Any]:
        if self.root is None:
            raise RuntimeError("no fs configured")
        raw = (args or {}).get("path")
        path = raw if isinstance(raw, str) else ""
        if not path:
            raise ValueError("path required")
        if (
            posixpath.isabs(path)
            or os.path.isabs(path)
            or posixpath.normpath(path) != path
            or ".." in path
        ):
            raise ValueError("invalid path")
        data = (Path(self.root) / path).read_bytes()
        return {"content": data.decode("utf-8", errors="replace")}


@dataclass(frozen=True)
class HTTPGetTool(Tool):
    """Performs an HTTP GET and returns the status code and body text."""

    def describe(self) -> ToolDescriptor:
        return ToolDescriptor(
            name="http.get",
            description="Performs an HTTP GET request",
            input_schema=_HTTP_GET_INPUT,
            output_schema=_HTTP_GET_OUTPUT,
            permissions=(ToolPermission("network:outbound"),),
        )

    def invoke(self, args: dict[str, Any]) -> dict[str, Any]:
        args = args or {}
        raw_url = args.get("url")
        url = raw_url if isinstance(raw_url, str) else ""
        timeout_ms = _DEFAULT_TIMEOUT_MS
        raw_timeout = args.get("timeout_ms")
        if (
            isinstance(raw_timeout, (int, float))
            and not isinstance(raw_timeout, bool)
            and raw_timeout > 0
        ):
            timeout_ms = int(raw_timeout)
        timeout = timeout_ms / 1000 if timeout_ms > 0 else None
        response = requests.get(url, timeout=timeout)
        try:
            body = response.content.decode("utf-8", errors="replace")
        finally:
            response.close()
        return {"status": response.status_code, "body": body}