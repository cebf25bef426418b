"""MCP transport for the TypeWriter notes boundary."""

import atexit
import json
import logging
from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from typewriter.config import config
from typewriter.export import export_tree
from typewriter.models.schema import SectionTree
from typewriter.observability import is_logging_configured, metrics
from typewriter.rpc.boundary import (
    OP_CREATE_NOTE,
    OP_CREATE_SECTION,
    OP_DELETE_NOTE,
    OP_DELETE_SECTION,
    OP_GET_ALL_DATA,
    OP_INITIALIZE,
    OP_UPDATE_NOTE,
    OP_UPDATE_SECTION,
    NotesRpc,
    ok,
)

logger = logging.getLogger(__name__)

OP_EXPORT_NOTES = "export-notes"
OP_SERVER_METRICS = "server-metrics"


def _dump(envelope: Dict[str, Any]) -> str:
    return json.dumps(envelope, ensure_ascii=False)


class TypeWriterMcpServer:
    """Expose each boundary operation as an MCP tool of the same name.

    Tools return the operation's envelope as JSON text. The boundary
    already turns every failure into ``success: false``, so nothing here
    raises into the transport.
    """

    def __init__(self, rpc: Optional[NotesRpc] = None):
        """Initialize the MCP server.

        Args:
            rpc: Boundary to serve. Defaults to one over the configured
                 database, which stays closed until a client calls
                 ``initialize``.
        """
        self.mcp = FastMCP(config.server_name)
        self.rpc = rpc or NotesRpc(collector=metrics)
        # Register shutdown hook for resource cleanup
        atexit.register(self._shutdown)
        self._register_tools()
        logger.info(f"TypeWriter MCP server {config.server_version} initialized")

    def _shutdown(self) -> None:
        """Clean up resources on server exit."""
        self.rpc.close()

    def _register_tools(self) -> None:
        """Register MCP tools."""
        rpc = self.rpc

        @self.mcp.tool(name=OP_INITIALIZE)
        def initialize(key: Optional[str] = None) -> str:
            """Open the notes database, creating it and its schema if needed.
            Args:
                key: Optional encryption key for builds that support one
            """
            return _dump(rpc.invoke(OP_INITIALIZE, key))

        @self.mcp.tool(name=OP_GET_ALL_DATA)
        def get_all_data() -> str:
            """Return every section with its notes, most recently edited first."""
            return _dump(rpc.invoke(OP_GET_ALL_DATA))

        @self.mcp.tool(name=OP_CREATE_SECTION)
        def create_section(id: str, name: str) -> str:
            """Create a new, expanded section.
            Args:
                id: Unique section ID chosen by the caller
                name: Display name
            """
            return _dump(rpc.invoke(OP_CREATE_SECTION, id, name))

        @self.mcp.tool(name=OP_UPDATE_SECTION)
        def update_section(
            id: str, name: Optional[str] = None, is_open: Optional[bool] = None
        ) -> str:
            """Rename a section or change whether it is expanded.
            Args:
                id: Section ID
                name: New display name (optional)
                is_open: New expanded state (optional)
            """
            updates: Dict[str, Any] = {}
            if name is not None:
                updates["name"] = name
            if is_open is not None:
                updates["is_open"] = is_open
            return _dump(rpc.invoke(OP_UPDATE_SECTION, id, updates))

        @self.mcp.tool(name=OP_DELETE_SECTION)
        def delete_section(id: str) -> str:
            """Delete a section and all of its notes.
            Args:
                id: Section ID
            """
            return _dump(rpc.invoke(OP_DELETE_SECTION, id))

        @self.mcp.tool(name=OP_CREATE_NOTE)
        def create_note(id: str, section_id: str, title: str, content: str = "") -> str:
            """Create a note in an existing section.
            Args:
                id: Unique note ID chosen by the caller
                section_id: ID of the owning section
                title: Note title
                content: Initial content (editor markup or plain text)
            """
            return _dump(rpc.invoke(OP_CREATE_NOTE, id, section_id, title, content))

        @self.mcp.tool(name=OP_UPDATE_NOTE)
        def update_note(
            id: str, title: Optional[str] = None, content: Optional[str] = None
        ) -> str:
            """Change a note's title and/or content.
            Args:
                id: Note ID
                title: New title (optional)
                content: New content (optional)
            """
            updates: Dict[str, Any] = {}
            if title is not None:
                updates["title"] = title
            if content is not None:
                updates["content"] = content
            return _dump(rpc.invoke(OP_UPDATE_NOTE, id, updates))

        @self.mcp.tool(name=OP_DELETE_NOTE)
        def delete_note(id: str) -> str:
            """Delete a note.
            Args:
                id: Note ID
            """
            return _dump(rpc.invoke(OP_DELETE_NOTE, id))

        @self.mcp.tool(name=OP_EXPORT_NOTES)
        def export_notes(path: str, format: str = "html") -> str:
            """Write every section and note to a single file.
            Args:
                path: Destination file path
                format: "html" (standalone document) or "txt" (plain text)
            """
            result = rpc.invoke(OP_GET_ALL_DATA)
            if not result.get("success"):
                return _dump(result)
            try:
                sections = [SectionTree.model_validate(s) for s in result["data"]]
                target = export_tree(sections, path, format)
            except Exception as e:
                return _dump(rpc.format_error_response(e))
            return _dump(ok({"path": str(target)}))

        @self.mcp.tool(name=OP_SERVER_METRICS)
        def server_metrics(reset: bool = False) -> str:
            """Report call counts, error rates and timings per operation.
            Args:
                reset: Clear the totals after reporting them
            """
            collector = rpc.collector
            report = {
                "summary": collector.get_summary(),
                "operations": collector.get_metrics(),
                "fileLogging": is_logging_configured(),
            }
            if reset:
                collector.reset()
                logger.info("Operation metrics reset")
            return _dump(ok(report))

    def run(self) -> None:
        """Run the MCP server."""
        self.mcp.run()
