"""Tests for the MCP server transport."""
import json
from unittest.mock import MagicMock, patch

import pytest

from typewriter.rpc.boundary import OPERATIONS
from typewriter.server.mcp_server import (
    OP_EXPORT_NOTES,
    OP_SERVER_METRICS,
    TypeWriterMcpServer,
)


class TestMcpServer:
    """Tests for the TypeWriterMcpServer class."""

    @pytest.fixture(autouse=True)
    def server(self, rpc):
        """Build the server with FastMCP mocked out, capturing tools."""
        self.registered_tools = {}
        self.mock_mcp = MagicMock()

        # Capture the decorated tool functions by name
        def mock_tool_decorator(*args, **kwargs):
            def tool_wrapper(func):
                self.registered_tools[kwargs.get("name")] = func
                return func
            return tool_wrapper
        self.mock_mcp.tool = mock_tool_decorator

        with patch("typewriter.server.mcp_server.FastMCP", return_value=self.mock_mcp), \
                patch("typewriter.server.mcp_server.atexit"):
            self.server = TypeWriterMcpServer(rpc)
        yield self.server

    def call(self, name, /, **kwargs):
        return json.loads(self.registered_tools[name](**kwargs))

    def test_every_operation_registered(self):
        assert set(OPERATIONS) <= set(self.registered_tools)
        assert OP_EXPORT_NOTES in self.registered_tools
        assert OP_SERVER_METRICS in self.registered_tools

    def test_call_before_initialize(self):
        result = self.call("get-all-data")
        assert result["success"] is False
        assert "not initialized" in result["error"]

    def test_section_and_note_flow(self):
        assert self.call("initialize") == {"success": True}
        assert self.call("create-section", id="s1", name="Work") == {"success": True}
        assert self.call("create-note", id="n1", section_id="s1", title="Draft") == {"success": True}
        assert self.call("update-note", id="n1", content="<p>hi</p>") == {"success": True}
        assert self.call("update-section", id="s1", is_open=False) == {"success": True}

        data = self.call("get-all-data")["data"]
        assert data[0]["isOpen"] is False
        assert data[0]["notes"][0]["content"] == "<p>hi</p>"

        assert self.call("delete-note", id="n1") == {"success": True}
        assert self.call("delete-section", id="s1") == {"success": True}
        assert self.call("get-all-data") == {"success": True, "data": []}

    def test_update_without_fields_fails(self):
        self.call("initialize")
        self.call("create-section", id="s1", name="Work")
        result = self.call("update-section", id="s1")
        assert result["success"] is False
        assert "No fields supplied" in result["error"]

    def test_export_notes(self, data_dir):
        self.call("initialize")
        self.call("create-section", id="s1", name="Work")
        self.call("create-note", id="n1", section_id="s1", title="Draft", content="<p>body</p>")

        target = data_dir / "export" / "all-notes.txt"
        result = self.call(OP_EXPORT_NOTES, path=str(target), format="txt")
        assert result == {"success": True, "data": {"path": str(target)}}
        assert "Note title: Draft\n\nbody" in target.read_text(encoding="utf-8")

    def test_export_bad_format(self, data_dir):
        self.call("initialize")
        result = self.call(OP_EXPORT_NOTES, path=str(data_dir / "x.pdf"), format="pdf")
        assert result["success"] is False
        assert "Unsupported export format" in result["error"]

    def test_server_metrics_reports_calls(self, collector):
        self.call("initialize")
        self.call("create-section", id="s1", name="Work")
        self.call("create-section", id="s1", name="Duplicate")

        report = self.call(OP_SERVER_METRICS)["data"]
        assert report["summary"]["total_operations"] == 3
        assert report["summary"]["total_errors"] == 1
        assert report["operations"]["create-section"]["error_count"] == 1
        assert isinstance(report["fileLogging"], bool)
        # Reporting is not itself counted
        assert OP_SERVER_METRICS not in report["operations"]

    def test_server_metrics_reset(self, collector):
        self.call("initialize")

        first = self.call(OP_SERVER_METRICS, reset=True)["data"]
        assert first["summary"]["total_operations"] == 1
        assert collector.get_metrics() == {}
        second = self.call(OP_SERVER_METRICS)["data"]
        assert second["summary"]["total_operations"] == 0

    def test_shutdown_closes_storage(self, rpc):
        self.call("initialize")
        self.server._shutdown()
        assert not rpc.engine.is_initialized

    def test_run_delegates_to_fastmcp(self):
        self.server.run()
        self.mock_mcp.run.assert_called_once()
