"""Command line entry point: ``mcp-gate`` / ``python -m mcp_gate``."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from mcp_gate.client import create_llm
from mcp_gate.config import Settings
from mcp_gate.providers import Provider
from mcp_gate.server import GateServer
from mcp_gate.tool_process import ToolProcessManager

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcp-gate",
        description="Confirmation-gated chat server in front of an MCP tool server.",
    )
    parser.add_argument("--host", help="listen address (MCP_GATE_HOST)")
    parser.add_argument("--port", type=int, help="listen port (MCP_GATE_PORT)")
    parser.add_argument("--tool-server", help="tool server script, .js or .py (MCP_GATE_TOOL_SERVER)")
    parser.add_argument(
        "--provider",
        choices=[p.value for p in Provider],
        help="completion backend (MCP_GATE_PROVIDER)",
    )
    parser.add_argument("--model", help="model id (MCP_GATE_MODEL)")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser


def build_server(settings: Settings) -> GateServer:
    llm = create_llm(settings.provider, settings.model_name, timeout=settings.timeout)
    tools = ToolProcessManager(settings.tool_server)
    return GateServer(
        llm,
        tools,
        params=settings.completion_params(),
        provider=settings.provider.value,
        require_stop=settings.require_stream_stop,
        answer_skipped_tools=settings.answer_skipped_tools,
        host=settings.host,
        port=settings.port,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = Settings.from_env().override(
            host=args.host,
            port=args.port,
            tool_server=args.tool_server,
            provider=Provider.parse(args.provider) if args.provider else None,
            model=args.model,
        )
        server = build_server(settings)
    except (ValueError, RuntimeError) as exc:
        logger.error("Startup failed: %s", exc)
        return 2

    server.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
