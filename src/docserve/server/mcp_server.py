"""FastMCP server exposing the dispatcher's tools."""

from typing import Any, Optional

from mcp.server.fastmcp import FastMCP

from docserve.server.app import DocumentServer
from docserve.server.models import McpRequest, ToolError


def create_mcp_server(server: DocumentServer) -> FastMCP:
    """Create an MCP server for one document root.

    Design: 1 process = 1 root. Every tool delegates to the dispatcher, so
    argument validation, mode checks and error messages are the same as on
    the JSON-lines transport. Retrieval tools are only registered when the
    operation mode uses RAG.

    Args:
        server: Assembled components for the root

    Returns:
        Configured FastMCP server instance
    """
    mcp = FastMCP(name="docserve")
    dispatcher = server.dispatcher

    async def request(method: str, params: dict[str, Any]) -> dict[str, Any]:
        response = await dispatcher.handle(McpRequest(id=None, method=method, params=params))
        if "error" in response:
            raise ToolError(response["error"]["message"])
        return response["result"]

    async def call(name: str, **arguments: Any) -> str:
        provided = {key: value for key, value in arguments.items() if value is not None}
        result = await request("tools/call", {"name": name, "arguments": provided})
        return "\n".join(block["text"] for block in result["content"])

    @mcp.tool()
    async def list_resources() -> str:
        """List the files under the root that can be read.

        Returns:
            One line per file: URI and MIME type
        """
        result = await request("resources/list", {})
        if not result["resources"]:
            return "No readable files found"
        return "\n".join(f"{r['uri']}  ({r['mimeType']})" for r in result["resources"])

    @mcp.tool()
    async def read_resource(uri: str) -> str:
        """Read a file's extracted text.

        Args:
            uri: Resource URI as shown by list_resources (file:///relative/path)
        """
        result = await request("resources/read", {"uri": uri})
        return result["contents"][0]["text"]

    @mcp.tool()
    async def search_files(query: str, file_types: Optional[list[str]] = None) -> str:
        """Search for files containing specific text (case-insensitive).

        Args:
            query: Text to look for
            file_types: Optional list of extensions to restrict the search to
        """
        return await call("search_files", query=query, file_types=file_types)

    @mcp.tool()
    async def ask_ai(
        question: str,
        context: Optional[str] = None,
        temperature: float = 0.7,
        use_rag: Optional[bool] = None,
    ) -> str:
        """Ask the configured AI provider a question about the documents.

        Args:
            question: Question to ask
            context: Optional extra context to send along
            temperature: Sampling temperature (0.0-1.0)
            use_rag: Retrieve context from the index (default: on when the mode allows it)
        """
        return await call("ask_ai", question=question, context=context, temperature=temperature, use_rag=use_rag)

    @mcp.tool()
    async def analyze_file(file_uri: str, analysis_type: str, use_rag: Optional[bool] = None) -> str:
        """Analyze one file with the AI provider.

        Args:
            file_uri: URI of the file (file:///relative/path)
            analysis_type: summary, key_points, questions, topics, technical, explanation, or free text
            use_rag: Add related content from other documents
        """
        return await call("analyze_file", file_uri=file_uri, analysis_type=analysis_type, use_rag=use_rag)

    if not server.config.mode.uses_rag:
        return mcp

    @mcp.tool()
    async def rag_search(
        query: str,
        top_k: int = 5,
        min_similarity: float = 0.1,
        file_filters: Optional[list[str]] = None,
    ) -> str:
        """Semantic search across the indexed documents.

        Use this to find relevant content by concept, not just keyword.

        Args:
            query: Natural language description of what you're looking for
            top_k: Maximum number of chunks to return
            min_similarity: Minimum cosine similarity (0.0-1.0)
            file_filters: Only search documents whose path contains one of these strings
        """
        return await call(
            "rag_search", query=query, top_k=top_k, min_similarity=min_similarity, file_filters=file_filters
        )

    @mcp.tool()
    async def rag_ask(question: str, top_k: int = 5, temperature: float = 0.7) -> str:
        """Answer a question using the most relevant indexed chunks as context.

        Args:
            question: Question to ask
            top_k: Number of context chunks to retrieve
            temperature: Sampling temperature (0.0-1.0)
        """
        return await call("rag_ask", question=question, top_k=top_k, temperature=temperature)

    @mcp.tool()
    async def reindex_documents(force: bool = True) -> str:
        """Rebuild the vector index.

        Args:
            force: Clear the index first; otherwise only changed files are reprocessed
        """
        return await call("reindex_documents", force=force)

    @mcp.tool()
    async def indexing_report(show_details: bool = True) -> str:
        """Report indexed and non-indexed files with reasons.

        Args:
            show_details: Include per-file samples
        """
        return await call("indexing_report", show_details=show_details)

    return mcp
