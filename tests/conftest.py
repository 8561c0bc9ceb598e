import pytest

from fakes import FakeToolServer
from mcp_gate.tool_process import ToolProcessManager


@pytest.fixture
def tool_server():
    return FakeToolServer()


@pytest.fixture
def manager(tool_server):
    return ToolProcessManager("../mcp-server/build/index.js", connection_factory=tool_server)
