from __future__ import annotations

import argparse
import asyncio
import logging

from mcp_gate import (
    ChatMessage,
    ConfirmationExecutor,
    ConfirmationNeeded,
    Provider,
    ToolProcessManager,
    TurnOrchestrator,
    create_llm,
)
from mcp_gate.providers import DEFAULT_MODELS

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.WARNING)


async def chat_loop(provider: Provider, model: str, tool_server: str) -> None:
    """
    Same two-phase flow as the web server, with the terminal as the browser.

    1) Ask the model; it may request a tool
    2) Show the request and wait for a y/n
    3) On "y", run the tool and print the streamed follow-up
    """
    llm = create_llm(provider, model)
    tools = ToolProcessManager(tool_server)
    params = {"max_tokens": 1024}
    orchestrator = TurnOrchestrator(llm, tools, params=params)
    executor = ConfirmationExecutor(llm, tools, params=params)
    history: list[ChatMessage] = []

    try:
        while True:
            query = input("you> ").strip()
            if not query:
                break

            result = await orchestrator.ask(query, history)
            if not isinstance(result, ConfirmationNeeded):
                print(f"assistant> {result.response['content']}")
                history = result.history
                continue

            pending = result.pending
            if pending.initial_assistant_text:
                print(f"assistant> {pending.initial_assistant_text}")
            answer = input(f"run {pending.name} {pending.input}? [y/N] ")
            if answer.strip().lower() != "y":
                # the unanswered tool_use stays out of the kept history
                print("(cancelled)")
                continue

            print("assistant> ", end="", flush=True)
            async for event in await executor.confirm(pending):
                if event.type == "chunk":
                    print(event.content, end="", flush=True)
                elif event.type == "history":
                    history = event.content
                else:
                    logger.error("stream failed: %s", event.content)
            print()
    finally:
        await tools.aclose()
        await llm.aclose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--provider",
        choices=[p.value for p in Provider],
        default=Provider.ANTHROPIC.value,
    )
    parser.add_argument("--model", default=None)
    parser.add_argument("--tool-server", default="../mcp-server/build/index.js")
    args = parser.parse_args()

    provider = Provider(args.provider)
    asyncio.run(chat_loop(provider, args.model or DEFAULT_MODELS[provider], args.tool_server))
