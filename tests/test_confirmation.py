"""Tests for executing a confirmed tool call and streaming the follow-up."""

import json

import pytest

from fakes import (
    TX_HASH,
    FakeToolServer,
    ScriptedLLM,
    mcp_text_output,
    message_stop,
    text_delta,
)
from mcp_gate.confirmation import SKIPPED_TOOL_MESSAGE, ConfirmationExecutor, parse_tool_output
from mcp_gate.errors import ToolConnectionError
from mcp_gate.tool_process import ToolOutput, ToolProcessManager
from mcp_gate.types import PendingConfirmation


def tool_use(id):
    return {
        "type": "tool_use",
        "id": id,
        "name": "send_payment",
        "input": {"toAddress": "rX", "amount": "10"},
    }


def pending_payment(*extra_tool_ids):
    history = [
        {"role": "user", "content": "Send 10 XRP to rX"},
        {
            "role": "assistant",
            "content": [
                {"type": "text", "text": "Sending."},
                tool_use("toolu_1"),
                *(tool_use(i) for i in extra_tool_ids),
            ],
        },
    ]
    return PendingConfirmation(
        name="send_payment",
        input={"toAddress": "rX", "amount": "10"},
        id="toolu_1",
        messages_history=history,
        initial_assistant_text="Sending.",
    )


def streaming_llm():
    return ScriptedLLM(
        stream_events=[text_delta("Payment "), text_delta("sent."), message_stop()]
    )


async def collect(stream):
    return [event async for event in stream]


class TestParseToolOutput:
    def test_json_object(self):
        assert parse_tool_output(' {"hash": "x"} ') == {"hash": "x"}

    def test_json_array(self):
        assert parse_tool_output('[{"type": "text", "text": "ok"}]') == [{"type": "text", "text": "ok"}]

    def test_invalid_json_kept_raw(self):
        assert parse_tool_output("{oops") == "{oops"

    def test_plain_text_kept_raw(self):
        assert parse_tool_output("done") == "done"


class TestConfirmationExecutor:
    @pytest.mark.asyncio
    async def test_hash_prefix_is_first_chunk(self, manager, tool_server):
        llm = streaming_llm()
        stream = await ConfirmationExecutor(llm, manager).confirm(pending_payment())

        events = await collect(stream)

        assert events[0].type == "chunk"
        assert events[0].content == "Transaction hash: " + "A" * 64 + "\n\n"
        assert [e.content for e in events[1:3]] == ["Payment ", "sent."]
        assert events[-1].type == "history"
        assert tool_server.calls == [("send_payment", {"toAddress": "rX", "amount": "10"})]

    @pytest.mark.asyncio
    async def test_tool_result_appended_to_history(self, manager):
        pending = pending_payment()
        llm = streaming_llm()
        stream = await ConfirmationExecutor(llm, manager, params={"max_tokens": 1024}).confirm(pending)
        events = await collect(stream)

        messages, params = llm.requests[0]
        assert params["stream"] is True
        assert params["max_tokens"] == 1024
        assert messages[:-1] == pending.messages_history
        assert messages[-1] == {
            "role": "user",
            "content": [
                {
                    "type": "tool_result",
                    "tool_use_id": "toolu_1",
                    "content": [{"type": "text", "text": json.dumps({"hash": TX_HASH})}],
                }
            ],
        }

        final = events[-1].content
        assert final[:-1] == messages
        assert final[-1] == {
            "role": "assistant",
            "content": f"Transaction hash: {TX_HASH}\n\nPayment sent.",
        }
        # the pending history itself is not modified
        assert len(pending.messages_history) == 2

    @pytest.mark.asyncio
    async def test_failing_tool_is_reported_to_model(self):
        server = FakeToolServer(error=RuntimeError("insufficient reserve"))
        manager = ToolProcessManager("server.js", connection_factory=server)
        llm = streaming_llm()

        stream = await ConfirmationExecutor(llm, manager).confirm(pending_payment())
        events = await collect(stream)

        block = llm.requests[0][0][-1]["content"][0]
        assert block["is_error"] is True
        assert block["content"] == "Error executing tool: insufficient reserve"
        assert events[0].content == "Transaction hash: N/A\n\n"
        assert events[-1].type == "history"
        assert len(server.calls) == 1

    @pytest.mark.asyncio
    async def test_server_error_flag_is_kept(self):
        server = FakeToolServer(result=mcp_text_output("account not found", is_error=True))
        manager = ToolProcessManager("server.js", connection_factory=server)
        llm = streaming_llm()

        stream = await ConfirmationExecutor(llm, manager).confirm(pending_payment())
        await collect(stream)

        block = llm.requests[0][0][-1]["content"][0]
        assert block["is_error"] is True
        assert block["content"] == [{"type": "text", "text": "account not found"}]

    @pytest.mark.asyncio
    async def test_raw_text_output(self):
        server = FakeToolServer(result=ToolOutput(text=f"Submitted. hash: {TX_HASH}"))
        manager = ToolProcessManager("server.js", connection_factory=server)
        llm = streaming_llm()

        stream = await ConfirmationExecutor(llm, manager).confirm(pending_payment())
        events = await collect(stream)

        assert llm.requests[0][0][-1]["content"][0]["content"] == f"Submitted. hash: {TX_HASH}"
        assert events[0].content == f"Transaction hash: {TX_HASH}\n\n"

    @pytest.mark.asyncio
    async def test_connection_failure_raised_before_streaming(self):
        manager = ToolProcessManager("server.js", connection_factory=FakeToolServer(fail_starts=1))
        llm = streaming_llm()

        with pytest.raises(ToolConnectionError):
            await ConfirmationExecutor(llm, manager).confirm(pending_payment())
        assert llm.requests == []

    @pytest.mark.asyncio
    async def test_skipped_tools_not_answered_by_default(self, manager):
        llm = streaming_llm()
        stream = await ConfirmationExecutor(llm, manager).confirm(pending_payment("toolu_2"))
        await collect(stream)

        assert len(llm.requests[0][0][-1]["content"]) == 1

    @pytest.mark.asyncio
    async def test_skipped_tools_answered_when_enabled(self, manager, tool_server):
        llm = streaming_llm()
        executor = ConfirmationExecutor(llm, manager, answer_skipped_tools=True)

        stream = await executor.confirm(pending_payment("toolu_2", "toolu_3"))
        await collect(stream)

        blocks = llm.requests[0][0][-1]["content"]
        assert [b["tool_use_id"] for b in blocks] == ["toolu_1", "toolu_2", "toolu_3"]
        assert all(b["is_error"] for b in blocks[1:])
        assert blocks[1]["content"] == SKIPPED_TOOL_MESSAGE
        assert len(tool_server.calls) == 1

    @pytest.mark.asyncio
    async def test_stream_failure_becomes_error_event(self, manager):
        llm = ScriptedLLM(stream_events=[text_delta("Pay")], stream_error=RuntimeError("reset"))

        stream = await ConfirmationExecutor(llm, manager).confirm(pending_payment())
        events = await collect(stream)

        assert [e.type for e in events] == ["chunk", "chunk", "error"]
        assert stream.failed
        assert llm.stream_closed

    @pytest.mark.asyncio
    async def test_stream_without_stop_signal(self, manager):
        llm = ScriptedLLM(stream_events=[text_delta("Pay")])

        strict = await ConfirmationExecutor(llm, manager).confirm(pending_payment())
        assert (await collect(strict))[-1].type == "error"

        lenient = await ConfirmationExecutor(llm, manager, require_stop=False).confirm(pending_payment())
        assert (await collect(lenient))[-1].type == "history"
