"""Output formatters for CLI."""

from __future__ import annotations

import json

import httpx
from pydantic import BaseModel

DRY_RUN_BANNER = "Would have sent the following request:\n---"


def format_json(data: object) -> str:
    """Full JSON passthrough."""
    return json.dumps(data, indent=2)


def to_jsonable(data: object) -> object:
    """Convert decoded records (or lists of them) to plain JSON values."""
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(data, list):
        return [to_jsonable(item) for item in data]
    return data


def format_record(data: object) -> str:
    return format_json(to_jsonable(data))


def format_request(request: httpx.Request) -> str:
    """Render an outgoing request as an HTTP/1.1 style dump."""
    lines = [f"{request.method} {request.url} HTTP/1.1"]
    for key, value in request.headers.raw:
        lines.append(f"{key.decode('latin-1')}: {value.decode('latin-1')}")
    lines.append("")
    body = request.content
    if body:
        lines.append(body.decode("utf-8", errors="replace"))
    return "\n".join(lines)


def format_dry_run(request: httpx.Request) -> str:
    return f"{DRY_RUN_BANNER}\n{format_request(request)}"
