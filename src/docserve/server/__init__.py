"""Protocol dispatcher and transports."""

from docserve.server.app import DocumentServer, build_server
from docserve.server.dispatcher import Dispatcher
from docserve.server.models import McpRequest
from docserve.server.stdio import handle_json_line, serve_stdio

__all__ = [
    "Dispatcher",
    "DocumentServer",
    "McpRequest",
    "build_server",
    "handle_json_line",
    "serve_stdio",
]
