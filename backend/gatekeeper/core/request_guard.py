"""ASGI middleware that bounds and sanitizes request bodies.

Three guards run before any handler sees the request:

- Size cap: bodies of POST, PUT and PATCH requests larger than
  ``max_body_bytes`` are rejected with 400. A declared Content-Length over
  the cap is rejected without reading the body; chunked bodies are counted
  as they arrive.
- Null bytes: PostgreSQL rejects \\x00 in text columns, but Pydantic's str
  validation lets it through. Null bytes are stripped from the query
  string (literal and %00) and from every string in a JSON body.
- Malformed JSON: a body that nests too deeply to parse, or that holds a
  string with no UTF-8 encoding (a lone surrogate escape), is rejected
  with 400.

This is a raw ASGI middleware (not BaseHTTPMiddleware) for direct access
to scope["query_string"] and the receive callable.
"""

from __future__ import annotations

import json
import re
from typing import Any

from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from gatekeeper.core.responses import ErrorDetail, ErrorResponse

_JSON_CONTENT_TYPE = b"application/json"
_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
_PERCENT_NULL_RE = re.compile(rb"%00", re.IGNORECASE)

_MAX_NESTING_DEPTH = 64
"""Maximum JSON nesting depth for recursive null byte stripping."""

_MALFORMED_BODY = "Request body is not valid JSON"


class _BodyTooLarge(Exception):
    pass


class RequestGuardMiddleware:
    """Reject oversized bodies and strip null bytes.

    Args:
        app: The next ASGI application in the middleware chain.
        max_body_bytes: Largest accepted request body.
    """

    def __init__(self, app: ASGIApp, max_body_bytes: int) -> None:
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        query_string = scope.get("query_string", b"")
        if b"\x00" in query_string or b"%00" in query_string.lower():
            cleaned = query_string.replace(b"\x00", b"")
            scope["query_string"] = _PERCENT_NULL_RE.sub(b"", cleaned)

        if scope["method"] not in _BODY_METHODS:
            await self.app(scope, receive, send)
            return

        declared = _content_length(scope)
        if declared is not None and declared > self.max_body_bytes:
            await _reject(scope, receive, send)
            return

        try:
            body = await self._read_body(receive)
        except _BodyTooLarge:
            await _reject(scope, receive, send)
            return

        if body and _is_json_request(scope):
            cleaned = _strip_null_bytes_from_json(body)
            if cleaned is None:
                await _reject(scope, receive, send, _MALFORMED_BODY)
                return
            body = cleaned

        body_sent = False

        async def replay_receive() -> Message:
            nonlocal body_sent
            if not body_sent:
                body_sent = True
                return {"type": "http.request", "body": body, "more_body": False}
            # Body already delivered; defer to the server for disconnects.
            return await receive()

        await self.app(scope, replay_receive, send)

    async def _read_body(self, receive: Receive) -> bytes:
        parts: list[bytes] = []
        total = 0
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                break
            chunk = message.get("body", b"")
            if chunk:
                total += len(chunk)
                if total > self.max_body_bytes:
                    raise _BodyTooLarge
                parts.append(chunk)
            if not message.get("more_body", False):
                break
        return b"".join(parts)


async def _reject(
    scope: Scope,
    receive: Receive,
    send: Send,
    message: str = "Request body too large",
) -> None:
    response = JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=ErrorDetail(
                code="VALIDATION_ERROR",
                message=message,
            )
        ).model_dump(),
    )
    await response(scope, receive, send)


def _content_length(scope: Scope) -> int | None:
    for header_name, header_value in scope.get("headers", []):
        if header_name.lower() == b"content-length":
            try:
                return int(header_value)
            except ValueError:
                return None
    return None


def _is_json_request(scope: Scope) -> bool:
    # FastAPI also parses bodies sent without a Content-Type as JSON
    for header_name, header_value in scope.get("headers", []):
        if header_name.lower() == b"content-type":
            return bool(header_value.startswith(_JSON_CONTENT_TYPE))
    return True


def _strip_null_bytes_from_json(body: bytes) -> bytes | None:
    """Parse JSON body, strip null bytes from all strings, re-serialize.

    JSON encodes null bytes as the \\u0000 escape sequence. After parsing,
    these become actual \\x00 characters in Python strings.

    Args:
        body: Raw JSON body bytes.

    Returns:
        Cleaned JSON body bytes, or the original body if it does not parse
        (the handler then answers 400 for the malformed body). None if the
        body nests too deeply to parse, or a string holds a lone surrogate
        escape such as \\ud800, which parses but has no UTF-8 encoding.
    """
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return body
    except RecursionError:
        return None

    try:
        cleaned = _strip_recursive(data)
    except RecursionError:
        return body

    try:
        return json.dumps(cleaned, ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError, RecursionError):
        return None


def _strip_recursive(value: Any, depth: int = 0) -> Any:
    # Any: JSON values have no common base type
    if depth > _MAX_NESTING_DEPTH:
        return value
    if isinstance(value, str):
        return value.replace("\x00", "")
    if isinstance(value, dict):
        return {
            k.replace("\x00", ""): _strip_recursive(v, depth + 1)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [_strip_recursive(item, depth + 1) for item in value]
    return value
