"""
HTTP surface: the turn endpoint, the confirmation endpoint and a health probe.

The server is stateless between requests. The conversation history lives in
the browser and comes back with every call; only the tool server connection
is shared, through the :class:`ToolProcessManager`.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any, Optional

from aiohttp import web

from mcp_gate.client import BaseAsyncLLM
from mcp_gate.confirmation import ConfirmationExecutor
from mcp_gate.errors import CompletionError, RequestValidationError, ToolConnectionError
from mcp_gate.orchestrator import TurnOrchestrator
from mcp_gate.tool_process import ToolProcessManager
from mcp_gate.types import PendingConfirmation

__all__ = ["GateServer"]

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


class GateServer:
    """aiohttp application wiring the orchestrator and the executor to HTTP."""

    def __init__(
        self,
        llm: BaseAsyncLLM,
        tools: ToolProcessManager,
        *,
        params: Optional[dict[str, Any]] = None,
        provider: str = "",
        require_stop: bool = True,
        answer_skipped_tools: bool = False,
        host: str = "127.0.0.1",
        port: int = 3000,
    ) -> None:
        self.llm = llm
        self.tools = tools
        self.provider = provider
        self._host = host
        self._port = port
        self.orchestrator = TurnOrchestrator(llm, tools, params=params)
        self.executor = ConfirmationExecutor(
            llm,
            tools,
            params=params,
            require_stop=require_stop,
            answer_skipped_tools=answer_skipped_tools,
        )
        self._app = web.Application(middlewares=[self._request_logging_middleware])
        self._app.on_cleanup.append(self._on_cleanup)
        self._setup_routes()

    @property
    def app(self) -> web.Application:
        return self._app

    # ── Middleware ──

    @web.middleware
    async def _request_logging_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        req_id = request.headers.get("x-request-id", str(uuid.uuid4())[:8])
        request["req_id"] = req_id
        start = time.monotonic()
        logger.info("HTTP %s %s req=%s from=%s", request.method, request.path_qs, req_id, request.remote)
        try:
            response = await handler(request)
            elapsed_ms = (time.monotonic() - start) * 1000
            logger.info(
                "HTTP %s %s req=%s status=%s duration_ms=%.1f",
                request.method, request.path_qs, req_id,
                getattr(response, "status", "?"), elapsed_ms,
            )
            return response
        except Exception:
            elapsed_ms = (time.monotonic() - start) * 1000
            logger.exception("HTTP %s %s req=%s failed duration_ms=%.1f", request.method, request.path_qs, req_id, elapsed_ms)
            raise

    # ── Route setup ──

    def _setup_routes(self) -> None:
        r = self._app.router
        r.add_get("/health", self._handle_health)
        r.add_post("/api/chat", self._handle_chat)
        r.add_post("/api/confirmTool", self._handle_confirm_tool)

    # ── Lifecycle ──

    async def _on_cleanup(self, app: web.Application) -> None:
        logger.info("Server shutting down")
        await self.tools.aclose()
        await self.llm.aclose()

    def run(self) -> None:
        """Serve until interrupted (SIGINT/SIGTERM), then run cleanup."""
        logger.info("mcp-gate listening on %s:%d", self._host, self._port)
        web.run_app(self._app, host=self._host, port=self._port, print=None)

    # ── Handlers ──

    @staticmethod
    def _error(message: str, status: int) -> web.Response:
        return web.json_response({"error": message}, status=status)

    @staticmethod
    async def _read_json(request: web.Request) -> Any:
        try:
            return await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise RequestValidationError(f"Invalid JSON body: {exc}") from exc

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({
            "status": "ok",
            "tool_connection": self.tools.state.value,
            "tools": len(self.tools.tools),
            "provider": self.provider,
            "model": self.llm.model,
        })

    async def _handle_chat(self, request: web.Request) -> web.Response:
        try:
            body = await self._read_json(request)
            if not isinstance(body, dict):
                raise RequestValidationError("Request body must be an object")
            result = await self.orchestrator.ask(body.get("query"), body.get("history"))
        except RequestValidationError as exc:
            return self._error(str(exc), 400)
        except ToolConnectionError as exc:
            return self._error(f"Failed to connect to tool server: {exc}", 502)
        except CompletionError as exc:
            return self._error(f"Error processing query: {exc}", 502)
        return web.json_response(result.to_dict())

    async def _handle_confirm_tool(self, request: web.Request) -> web.StreamResponse:
        try:
            pending = PendingConfirmation.from_dict(await self._read_json(request))
            stream = await self.executor.confirm(pending)
        except RequestValidationError as exc:
            return self._error(str(exc), 400)
        except ToolConnectionError as exc:
            return self._error(f"Failed to connect to tool server: {exc}", 502)

        response = web.StreamResponse(status=200, headers=SSE_HEADERS)
        await response.prepare(request)
        req_id = request.get("req_id", "unknown")

        try:
            async for event in stream:
                await response.write(event.to_sse())
        except ConnectionResetError:
            logger.info("Client disconnected during stream req=%s", req_id)
            return response
        finally:
            await stream.aclose()

        if stream.failed:
            logger.warning("Stream ended with an error event req=%s", req_id)
        await response.write_eof()
        return response
