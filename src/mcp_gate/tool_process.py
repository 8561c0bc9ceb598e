"""
Persistent connection to the tool-execution process.

The tool server is an MCP server spawned as a subprocess and spoken to over
stdio. One connection is shared by every request for the life of the web
process: :class:`ToolProcessManager` creates it lazily, under a lock, and
hands the same :class:`ToolProcessConnection` to every caller afterwards.

The stdio transport and the MCP session are async context managers that
must be entered and exited by the same task, while requests run in their
own short-lived tasks. Each connection therefore runs in a background task
that owns both contexts and parks until :meth:`ToolProcessConnection.aclose`
is called; request tasks only send calls through the session.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
import sys
from contextlib import AsyncExitStack
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.types import Implementation

from mcp_gate.errors import ToolConnectionError
from mcp_gate.types import ToolCatalogEntry

__all__ = [
    "ConnectionState",
    "ToolOutput",
    "ToolConnection",
    "ToolProcessConnection",
    "ToolProcessManager",
    "resolve_command",
]

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


@dataclass(slots=True)
class ToolOutput:
    """Raw outcome of one tool call: the serialized content items and the error flag."""
    text: str
    is_error: bool = False


class ToolConnection(Protocol):
    """What the orchestrator needs from a live tool server connection."""

    path: str
    state: ConnectionState
    tools: list[ToolCatalogEntry]

    async def start(self) -> None: ...

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolOutput: ...

    async def aclose(self) -> None: ...


def _leaf(exc: BaseException) -> BaseException:
    """First leaf of a (possibly nested) exception group, for readable messages."""
    while isinstance(exc, BaseExceptionGroup) and exc.exceptions:
        exc = exc.exceptions[0]
    return exc


def _node() -> str:
    return shutil.which("node") or "node"


def _python() -> str:
    return sys.executable or "python3"


_INTERPRETERS: dict[str, Callable[[], str]] = {
    ".js": _node,
    ".py": _python,
}


def resolve_command(path: str | None) -> tuple[str, list[str]]:
    """
    Return the command and arguments used to launch the tool server script.

    Raises:
        ToolConnectionError: If no path is given or its extension is not a
            recognized script type.
    """
    if not path:
        raise ToolConnectionError("Server script path is required to connect.")

    interpreter = _INTERPRETERS.get(Path(path).suffix.lower())
    if interpreter is None:
        kinds = " or ".join(sorted(_INTERPRETERS))
        raise ToolConnectionError(f"Server script must be a {kinds} file: {path}")
    return interpreter(), [path]


class ToolProcessConnection:
    """One spawned tool server process, its MCP session and its tool catalog."""

    def __init__(
        self,
        path: str,
        *,
        client_name: str = "mcp-gate",
        client_version: str = "0.1.0",
        handshake_timeout: Optional[float] = 30.0,
        on_close: Optional[Callable[["ToolProcessConnection"], None]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.path = path
        self.command, self.args = resolve_command(path)
        self.state = ConnectionState.DISCONNECTED
        self.tools: list[ToolCatalogEntry] = []
        self._client_info = Implementation(name=client_name, version=client_version)
        self._handshake_timeout = handshake_timeout
        self._on_close = on_close
        self._session: Optional[ClientSession] = None
        self._closing = asyncio.Event()
        self._runner: Optional[asyncio.Task] = None
        self.logger = logger or logging.getLogger(__name__)

    def _log(self, message: str, level: int = logging.INFO) -> None:
        self.logger.log(level, f"[tool-server {self.path}] {message}")

    async def start(self) -> None:
        """
        Spawn the process, run the MCP handshake and load the tool catalog.

        Raises:
            ToolConnectionError: If the process cannot be started or the
                handshake fails. The connection is left unusable.
        """
        if self._runner is not None:
            raise RuntimeError("connection already started")

        self.state = ConnectionState.CONNECTING
        self._log(f"Connecting to tool server: {self.command} {' '.join(self.args)}")

        ready: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._runner = asyncio.create_task(self._run(ready), name=f"tool-server:{self.path}")
        try:
            await asyncio.wait_for(ready, self._handshake_timeout)
        except asyncio.TimeoutError as exc:
            await self._stop_runner()
            self.state = ConnectionState.FAILED
            raise ToolConnectionError(
                f"Timed out after {self._handshake_timeout}s waiting for tool server {self.path}",
                exc,
            ) from exc
        except Exception as exc:
            await self._stop_runner()
            self.state = ConnectionState.FAILED
            raise ToolConnectionError(
                f"Failed to connect to tool server {self.path}: {_leaf(exc)}", exc
            ) from exc

    async def _run(self, ready: asyncio.Future[None]) -> None:
        params = StdioServerParameters(command=self.command, args=self.args)
        try:
            async with AsyncExitStack() as stack:
                read, write = await stack.enter_async_context(stdio_client(params))
                session = await stack.enter_async_context(
                    ClientSession(read, write, client_info=self._client_info)
                )
                await session.initialize()
                listed = await session.list_tools()
                self.tools = [
                    ToolCatalogEntry(
                        name=tool.name,
                        description=tool.description or "",
                        input_schema=dict(tool.inputSchema or {}),
                    )
                    for tool in listed.tools
                ]
                self._session = session
                self.state = ConnectionState.CONNECTED
                if not ready.done():
                    ready.set_result(None)

                await self._closing.wait()
        except Exception as exc:
            if not ready.done():
                ready.set_exception(exc)
            else:
                self._log(f"Connection lost: {_leaf(exc)!r}", logging.ERROR)
            self.state = ConnectionState.FAILED
        finally:
            self._session = None
            if self.state is not ConnectionState.FAILED:
                self.state = ConnectionState.DISCONNECTED
            if not ready.done():
                ready.set_exception(ToolConnectionError("Tool server exited during handshake"))
            if self._on_close is not None:
                self._on_close(self)

    async def _stop_runner(self) -> None:
        runner = self._runner
        if runner is None or runner.done():
            return
        runner.cancel()
        try:
            await runner
        except asyncio.CancelledError:
            pass

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolOutput:
        """
        Call one tool on the server.

        Returns:
            The result's content items serialized as a JSON array, and the
            server's error flag.

        Raises:
            ToolConnectionError: If the connection is not open.
        """
        session = self._session
        if session is None or self.state is not ConnectionState.CONNECTED:
            raise ToolConnectionError(f"Tool server connection is {self.state.value}")

        result = await session.call_tool(name, arguments)
        items = [
            item.model_dump(mode="json", by_alias=True, exclude_none=True)
            for item in result.content
        ]
        return ToolOutput(text=json.dumps(items), is_error=bool(result.isError))

    async def aclose(self) -> None:
        """Close the session and terminate the process. Safe to call multiple times."""
        self._closing.set()
        runner = self._runner
        if runner is not None and not runner.done():
            await runner


ConnectionFactory = Callable[..., ToolConnection]


class ToolProcessManager:
    """
    Owner of the single shared tool server connection.

    ``get_connection`` is a single-flight get-or-create: concurrent first
    callers wait on one spawn, and once a connection is cached it is returned
    without any liveness probe. Failures then surface on the next tool call.
    """

    def __init__(
        self,
        server_path: Optional[str] = None,
        *,
        connection_factory: Optional[ConnectionFactory] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.server_path = server_path
        self.logger = logger or logging.getLogger(__name__)
        self._factory: ConnectionFactory = connection_factory or ToolProcessConnection
        self._connection: Optional[ToolConnection] = None
        self._connecting = False
        self._lock = asyncio.Lock()
        self.connect_count = 0

    @property
    def connection(self) -> Optional[ToolConnection]:
        return self._connection

    @property
    def state(self) -> ConnectionState:
        if self._connection is not None:
            return self._connection.state
        if self._connecting:
            return ConnectionState.CONNECTING
        return ConnectionState.DISCONNECTED

    @property
    def tools(self) -> list[ToolCatalogEntry]:
        return list(self._connection.tools) if self._connection is not None else []

    async def get_connection(self, path: Optional[str] = None) -> ToolConnection:
        """
        Return the shared connection, creating it on first use.

        Raises:
            ToolConnectionError: If the path is invalid or the handshake
                fails. Nothing is cached, so the next call retries.
        """
        connection = self._connection
        if connection is not None:
            return connection

        async with self._lock:
            if self._connection is not None:
                return self._connection

            target = path or self.server_path
            self._connecting = True
            try:
                connection = self._factory(target, on_close=self._forget)
                await connection.start()
            except ToolConnectionError:
                self.logger.exception("Failed during tool server connection/handshake for %s", target)
                raise
            except Exception as exc:
                self.logger.exception("Failed during tool server connection/handshake for %s", target)
                raise ToolConnectionError(f"Failed to connect to tool server: {exc}", exc) from exc
            finally:
                self._connecting = False

            self._connection = connection
            self.connect_count += 1
            self.logger.info(
                "Connected to tool server with tools: %s",
                [tool.name for tool in connection.tools],
            )
            return connection

    def _forget(self, connection: ToolConnection) -> None:
        if self._connection is connection:
            self.logger.warning("Tool server connection closed: %s", connection.path)
            self._connection = None

    async def aclose(self) -> None:
        """Shut down the live connection, if any."""
        connection = self._connection
        self._connection = None
        if connection is not None:
            self.logger.info("Shutting down tool server connection")
            await connection.aclose()
