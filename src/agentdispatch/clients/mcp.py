"""MCP Tool Provider - JSON-RPC over HTTP.

Talks to a Model Context Protocol server's HTTP endpoint:

    initialize                 → opens the session (once, before any other call)
    notifications/initialized  → tells the server the client is ready
    tools/list                 → ToolDescriptors (follows `nextCursor` pagination)
    tools/call                 → raw result payload (`{"content": [...], ...}`)

Servers answer either with a plain JSON body or with a server-sent-event
stream (`event: message` / `data: {...}` lines); both are accepted. The
`Mcp-Session-Id` a server hands out is echoed on every later request.

Discovery is retried up to DISCOVERY_ATTEMPTS times when the server answers
429, waiting `rate_limit_backoff * attempt` seconds in between.

Error Classification:
    - httpx.TimeoutException, httpx.TransportError: transient
    - HTTP 429 and 5xx: transient
    - other HTTP 4xx: permanent
    - JSON-RPC error objects and results flagged `isError`: permanent
"""

from __future__ import annotations

import asyncio
import itertools
import json
from collections.abc import Mapping
from typing import Any

import httpx
import structlog

from ..domain.domain_type import Domain, FailureKind
from ..domain.domain_value import ToolDescriptor
from ..domain.errors import ToolInvocationError
from ..domain.formatter import mcp_content_text

logger = structlog.get_logger()

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2025-03-26"
CLIENT_INFO = {"name": "agent-dispatch", "version": "0.1.0"}
SESSION_HEADER = "Mcp-Session-Id"
MAX_PAGES = 50
DISCOVERY_ATTEMPTS = 3
RATE_LIMIT_BACKOFF = 2.0


class RateLimited(ToolInvocationError):
    """The server answered HTTP 429."""

    def __init__(self, message: str):
        super().__init__(message, FailureKind.TRANSIENT)


def is_transient_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def parse_sse_messages(body: str) -> list[dict[str, Any]]:
    """JSON messages carried by `data:` lines of an SSE body."""
    messages: list[dict[str, Any]] = []
    for line in body.splitlines():
        if not line.startswith("data:"):
            continue
        data = line[len("data:") :].strip()
        if not data:
            continue
        try:
            message = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("mcp.sse.unparsable_line", line=data[:200])
            continue
        if isinstance(message, dict):
            messages.append(message)
    return messages


class McpToolProvider:
    """Tool provider backed by one MCP server.

    Args:
        domain: Domain every tool of this server belongs to
        url: MCP HTTP endpoint
        source_id: Registry id recorded on each descriptor (defaults to url)
        api_key: Optional bearer token
        timeout: Default request timeout in seconds
        rate_limit_backoff: Base wait between discovery attempts after a 429
        client: Optional pre-built httpx.AsyncClient (tests inject a MockTransport)
    """

    def __init__(
        self,
        domain: Domain,
        url: str,
        *,
        source_id: str | None = None,
        api_key: str | None = None,
        timeout: float = 30.0,
        rate_limit_backoff: float = RATE_LIMIT_BACKOFF,
        client: httpx.AsyncClient | None = None,
    ):
        self.domain = domain
        self.url = url
        self.source_id = source_id or url
        self.timeout = timeout
        self.rate_limit_backoff = rate_limit_backoff
        headers = {"Accept": "application/json, text/event-stream"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._headers = headers
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._ids = itertools.count(1)
        self._session_id: str | None = None
        self._initialized = False
        self._session_lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # ToolProvider interface
    # ------------------------------------------------------------------

    async def discover_tools(self, domain: Domain) -> list[ToolDescriptor]:
        for attempt in range(1, DISCOVERY_ATTEMPTS + 1):
            try:
                return await self._list_tools(domain)
            except RateLimited:
                if attempt == DISCOVERY_ATTEMPTS:
                    raise
                delay = self.rate_limit_backoff * attempt
                logger.warning("mcp.tools.rate_limited", source=self.source_id, attempt=attempt, retry_in=delay)
                await asyncio.sleep(delay)
        raise AssertionError("unreachable")

    async def invoke_tool(
        self,
        name: str,
        domain: Domain,
        arguments: Mapping[str, Any],
        timeout: float,
    ) -> dict[str, Any]:
        result = await self._call("tools/call", {"name": name, "arguments": dict(arguments)}, timeout)
        if result.get("isError"):
            detail = mcp_content_text(result) or "tool reported an error"
            raise ToolInvocationError.permanent(f"{name}: {detail}")
        return result

    def classify_error(self, exc: BaseException) -> FailureKind:
        if isinstance(exc, ToolInvocationError):
            return exc.kind
        if isinstance(exc, httpx.HTTPStatusError):
            return FailureKind.TRANSIENT if is_transient_status(exc.response.status_code) else FailureKind.PERMANENT
        if isinstance(exc, httpx.TimeoutException | httpx.TransportError | TimeoutError):
            return FailureKind.TRANSIENT
        return FailureKind.PERMANENT

    async def _list_tools(self, domain: Domain) -> list[ToolDescriptor]:
        tools: list[ToolDescriptor] = []
        cursor: str | None = None
        for _ in range(MAX_PAGES):
            params: dict[str, Any] = {"cursor": cursor} if cursor else {}
            result = await self._call("tools/list", params, self.timeout)
            for raw in result.get("tools", []):
                tools.append(ToolDescriptor.from_mcp(raw, domain=domain, source=self.source_id))
            cursor = result.get("nextCursor")
            if not cursor:
                break
        logger.info("mcp.tools.listed", source=self.source_id, domain=str(domain), tools=len(tools))
        return tools

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def _ensure_session(self, timeout: float) -> None:
        if self._initialized:
            return
        async with self._session_lock:
            if self._initialized:
                return
            params = {"protocolVersion": PROTOCOL_VERSION, "capabilities": {}, "clientInfo": CLIENT_INFO}
            result = await self._send("initialize", params, timeout)
            await self._notify("notifications/initialized", timeout)
            self._initialized = True
            server = result.get("serverInfo") or {}
            logger.info(
                "mcp.session.initialized",
                source=self.source_id,
                server=server.get("name"),
                protocol=result.get("protocolVersion"),
                session=self._session_id is not None,
            )

    # ------------------------------------------------------------------
    # JSON-RPC plumbing
    # ------------------------------------------------------------------

    async def _call(self, method: str, params: dict[str, Any], timeout: float) -> dict[str, Any]:
        await self._ensure_session(timeout)
        return await self._send(method, params, timeout)

    async def _send(self, method: str, params: dict[str, Any], timeout: float) -> dict[str, Any]:
        request_id = next(self._ids)
        body = {"jsonrpc": JSONRPC_VERSION, "id": request_id, "method": method, "params": params}
        response = await self._post(method, body, timeout)

        message = self._decode(response, request_id)
        if "error" in message:
            error = message["error"] or {}
            raise ToolInvocationError.permanent(
                f"{method} error {error.get('code', '?')}: {error.get('message', 'unknown error')}"
            )
        result = message.get("result")
        if not isinstance(result, dict):
            raise ToolInvocationError.permanent(f"{method} returned no result")
        return result

    async def _notify(self, method: str, timeout: float) -> None:
        await self._post(method, {"jsonrpc": JSONRPC_VERSION, "method": method}, timeout)

    async def _post(self, method: str, body: dict[str, Any], timeout: float) -> httpx.Response:
        headers = dict(self._headers)
        if self._session_id:
            headers[SESSION_HEADER] = self._session_id

        try:
            response = await self._client.post(self.url, json=body, headers=headers, timeout=timeout)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise ToolInvocationError.transient(f"{method} to {self.source_id} failed: {exc!r}") from exc

        if response.status_code == 429:
            raise RateLimited(f"{method} returned HTTP 429")
        if response.is_error:
            kind = FailureKind.TRANSIENT if is_transient_status(response.status_code) else FailureKind.PERMANENT
            raise ToolInvocationError(f"{method} returned HTTP {response.status_code}", kind)

        if session := response.headers.get(SESSION_HEADER):
            self._session_id = session
        return response

    def _decode(self, response: httpx.Response, request_id: int) -> dict[str, Any]:
        content_type = response.headers.get("content-type", "")
        if "text/event-stream" in content_type:
            messages = parse_sse_messages(response.text)
        else:
            try:
                payload = response.json()
            except json.JSONDecodeError as exc:
                raise ToolInvocationError.permanent(f"Invalid JSON from {self.source_id}") from exc
            messages = payload if isinstance(payload, list) else [payload]

        for message in messages:
            if isinstance(message, dict) and message.get("id") == request_id:
                return message
        # Some servers omit the id on single responses.
        for message in messages:
            if isinstance(message, dict) and ("result" in message or "error" in message):
                return message
        raise ToolInvocationError.permanent(f"No JSON-RPC response from {self.source_id}")


__all__ = ["McpToolProvider", "RateLimited", "is_transient_status", "parse_sse_messages"]
