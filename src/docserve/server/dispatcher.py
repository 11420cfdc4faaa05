"""Routes protocol requests to resource and tool handlers."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path, PurePosixPath
from typing import Any, Awaitable, Callable, Optional, Sequence

from docserve.ai import AiOperationContext, AiOperationError, AiOperationMiddleware, ProviderHandle
from docserve.config import IndexingConfig, OperationMode
from docserve.extractors import default_extractors, find_extractor
from docserve.indexing import IndexingPipeline, render_report, skip_reason, summarize, walk_files
from docserve.models import RagQuery
from docserve.protocols import FileExtractor
from docserve.server.models import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    RESOURCE_NOT_FOUND,
    TOOL_ERROR,
    McpRequest,
    ResourcePathError,
    ToolArgumentError,
    ToolError,
    error_response,
    result_response,
    text_result,
)
from docserve.server.resources import resolve_resource, resource_uri
from docserve.server.tools import (
    TOOLS,
    AnalyzeFileArgs,
    AskAiArgs,
    IndexingReportArgs,
    RagAskArgs,
    RagSearchArgs,
    ReindexDocumentsArgs,
    SearchFilesArgs,
    parse_arguments,
    tool_definitions,
)
from docserve.storage import VectorStore

logger = logging.getLogger(__name__)

ANALYSIS_PROMPTS = {
    "summary": "Please provide a concise summary of the following content:",
    "key_points": "Please extract the key points from the following content:",
    "questions": "Based on the following content, what questions might someone have?",
    "topics": "What are the main topics covered in the following content?",
    "technical": "Provide a technical analysis of the following content:",
    "explanation": "Please explain the following content in simple terms:",
}

SNIPPET_LENGTH = 200


def _snippet(text: str) -> str:
    flat = text[:SNIPPET_LENGTH].replace("\n", " ")
    return flat + "..." if len(text) > SNIPPET_LENGTH else flat


class Dispatcher:
    """Answers ``resources/list``, ``resources/read``, ``tools/list`` and ``tools/call``.

    ``handle`` never raises: every failure becomes an error response. A
    reindex holds an exclusive lock for its whole run; a second reindex
    request made meanwhile is refused.
    """

    def __init__(
        self,
        root: Path | str,
        store: VectorStore,
        pipeline: IndexingPipeline,
        middleware: AiOperationMiddleware,
        providers: ProviderHandle,
        extractors: Sequence[FileExtractor] | None = None,
        mode: OperationMode = OperationMode.HYBRID,
        indexing_config: IndexingConfig | None = None,
        generation_timeout_ms: int = 300_000,
    ):
        self.root = Path(root).resolve()
        self.store = store
        self.pipeline = pipeline
        self.middleware = middleware
        self.providers = providers
        self.extractors = list(extractors) if extractors is not None else default_extractors()
        self.mode = mode
        self.indexing_config = indexing_config or IndexingConfig()
        self.generation_timeout_ms = generation_timeout_ms
        self._reindex_lock = asyncio.Lock()

        self._methods: dict[str, Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]] = {
            "resources/list": self._list_resources,
            "resources/read": self._read_resource,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
        }
        self._tools: dict[str, Callable[[Any], Awaitable[dict[str, Any]]]] = {
            "search_files": self._search_files,
            "ask_ai": self._ask_ai,
            "analyze_file": self._analyze_file,
            "rag_search": self._rag_search,
            "rag_ask": self._rag_ask,
            "reindex_documents": self._reindex_documents,
            "indexing_report": self._indexing_report,
        }

    async def handle(self, request: McpRequest) -> dict[str, Any]:
        """Dispatch one request and return the response object."""
        handler = self._methods.get(request.method)
        if handler is None:
            return error_response(request.id, METHOD_NOT_FOUND, f"Method not found: {request.method}")

        try:
            return result_response(request.id, await handler(request.params))
        except ToolArgumentError as exc:
            return error_response(request.id, INVALID_PARAMS, str(exc))
        except ResourcePathError as exc:
            return error_response(request.id, RESOURCE_NOT_FOUND, str(exc))
        except ToolError as exc:
            return error_response(request.id, TOOL_ERROR, str(exc))
        except Exception as exc:
            logger.exception(f"Error handling {request.method} request")
            return error_response(request.id, INTERNAL_ERROR, str(exc) or type(exc).__name__)

    # Resources

    def _unservable(self, path: Path) -> Optional[str]:
        """Why ``path`` is not offered as a resource, or None if it is."""
        try:
            file_stat = path.stat()
        except OSError as exc:
            return str(exc)
        return skip_reason(path, file_stat, self.indexing_config.max_file_bytes, self.store.path)

    async def _list_resources(self, params: dict[str, Any]) -> dict[str, Any]:
        files = await asyncio.to_thread(lambda: list(walk_files(self.root)))
        resources = []
        for path in files:
            extractor = find_extractor(self.extractors, path)
            if extractor is None or self._unservable(path):
                continue
            relative = path.relative_to(self.root).as_posix()
            resources.append(
                {
                    "uri": resource_uri(relative),
                    "name": path.name,
                    "description": f"File: {relative}",
                    "mimeType": extractor.mime_type,
                }
            )
        return {"resources": resources}

    async def _read_resource(self, params: dict[str, Any]) -> dict[str, Any]:
        uri = params.get("uri")
        if not isinstance(uri, str) or not uri:
            raise ToolArgumentError("resources/read requires a 'uri' string")
        _, extractor, text = await self._load(uri)
        return {"contents": [{"uri": uri, "mimeType": extractor.mime_type, "text": text}]}

    async def _load(self, uri: str) -> tuple[str, FileExtractor, str]:
        path, relative = resolve_resource(self.root, uri)
        extractor = find_extractor(self.extractors, path)
        if extractor is None:
            raise ResourcePathError(f"Unsupported file type: {path.suffix or path.name}")
        reason = self._unservable(path)
        if reason is not None:
            raise ResourcePathError(f"{reason}: {uri}")
        return relative, extractor, await extractor.extract_text(path)

    # Tools

    async def _list_tools(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"tools": tool_definitions(self.mode)}

    async def _call_tool(self, params: dict[str, Any]) -> dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise ToolArgumentError("tools/call requires a non-empty 'name'")

        spec = TOOLS.get(name)
        if spec is None:
            raise ToolArgumentError(f"Unknown tool: {name}")
        if spec.requires_rag and not self.mode.uses_rag:
            raise ToolError(f"{name} is not available in MCP-only mode")

        args = parse_arguments(spec, params.get("arguments"))
        logger.debug(f"Calling tool {name}")
        try:
            return await self._tools[name](args)
        except (ToolArgumentError, ResourcePathError, ToolError):
            raise
        except AiOperationError as exc:
            raise ToolError(f"{name} failed ({exc.error_type.value}): {exc}") from exc
        except Exception as exc:
            logger.exception(f"Tool {name} failed")
            raise ToolError(f"{name} failed: {exc}") from exc

    async def _search_files(self, args: SearchFilesArgs) -> dict[str, Any]:
        extensions = {t.lower() if t.startswith(".") else f".{t.lower()}" for t in args.file_types if t}
        needle = args.query.lower()
        files = await asyncio.to_thread(lambda: list(walk_files(self.root)))

        matches = []
        for path in files:
            if extensions and path.suffix.lower() not in extensions:
                continue
            extractor = find_extractor(self.extractors, path)
            if extractor is None or self._unservable(path):
                continue
            try:
                content = await extractor.extract_text(path)
            except Exception as exc:
                logger.warning(f"Error searching file {path}: {exc}")
                continue
            count = content.lower().count(needle)
            if count:
                matches.append((path.relative_to(self.root).as_posix(), count))

        lines = [f"Found {len(matches)} files containing '{args.query}':"]
        lines.extend(f"- {relative} ({count} matches)" for relative, count in matches)
        return text_result("\n".join(lines))

    async def _ask_ai(self, args: AskAiArgs) -> dict[str, Any]:
        context = args.context
        if self._rag_enabled(args.use_rag):
            results = await self.store.search(RagQuery(args.question, top_k=3, min_similarity=0.1))
            if results:
                rag_context = "\n\n".join(f"[From {r.chunk.document_path}] {r.chunk.text}" for r in results)
                context = (
                    f"{context}\n\nAdditional context from documents:\n{rag_context}" if context else rag_context
                )

        answer = await self._generate("ask_ai", args.question, context or None, args.temperature)
        return text_result(answer)

    async def _analyze_file(self, args: AnalyzeFileArgs) -> dict[str, Any]:
        relative, _, content = await self._load(args.file_uri)
        prompt = ANALYSIS_PROMPTS.get(
            args.analysis_type, f"Please analyze the following content for {args.analysis_type}:"
        )

        context = content
        use_rag = self._rag_enabled(args.use_rag)
        if use_rag:
            query = RagQuery(f"{args.analysis_type} {PurePosixPath(relative).stem}", top_k=3, min_similarity=0.2)
            related = [r for r in await self.store.search(query) if r.chunk.document_path != relative]
            if related:
                rag_context = "\n\n".join(
                    f"[Related content from {r.chunk.document_path}] {r.chunk.text}" for r in related
                )
                context = f"{content}\n\nRelated information from other documents:\n{rag_context}"

        analysis = await self._generate("analyze_file", prompt, context, 0.3)
        mode = "RAG-Enhanced" if use_rag else "Standard"
        return text_result(
            f"File: {args.file_uri}\nAnalysis Type: {args.analysis_type}\nMode: {mode}\n\n{analysis}"
        )

    async def _rag_search(self, args: RagSearchArgs) -> dict[str, Any]:
        query = RagQuery(
            args.query,
            top_k=args.top_k,
            min_similarity=args.min_similarity,
            file_filters=tuple(args.file_filters),
        )
        results = await self.store.search(query)

        lines = [f"RAG Search Results for: '{args.query}'", f"Found {len(results)} relevant chunks:", ""]
        for result in results:
            lines.append(f"{result.chunk.document_path} (Similarity: {result.similarity:.3f})")
            lines.append(f"   {_snippet(result.chunk.text)}")
            lines.append("")
        return text_result("\n".join(lines))

    async def _rag_ask(self, args: RagAskArgs) -> dict[str, Any]:
        results = await self.store.search(RagQuery(args.question, top_k=args.top_k, min_similarity=0.1))
        context = "\n\n".join(
            f"[From {r.chunk.document_path} - Similarity: {r.similarity:.3f}]\n{r.chunk.text}" for r in results
        )
        answer = await self._generate("rag_ask", args.question, context or None, args.temperature)
        return text_result(f"RAG-Enhanced Response (using {len(results)} context chunks):\n\n{answer}")

    async def _reindex_documents(self, args: ReindexDocumentsArgs) -> dict[str, Any]:
        if self._reindex_lock.locked():
            raise ToolError("reindex_documents failed: a reindex is already in progress")

        async with self._reindex_lock:
            result = await (self.pipeline.reindex() if args.force else self.pipeline.run())
            chunk_count = await self.store.get_chunk_count()

        text = (
            f"Successfully reindexed {chunk_count} chunks from {len(result.indexed_files)} files "
            f"in {result.duration:.2f}s."
        )
        details = [f"{len(result.skipped_files)} skipped", f"{len(result.failed_files)} failed"]
        if not args.force:
            details.insert(0, f"{len(result.unchanged_files)} unchanged")
        return text_result(f"{text} ({', '.join(details)})")

    async def _indexing_report(self, args: IndexingReportArgs) -> dict[str, Any]:
        chunk_count = await self.store.get_chunk_count()
        indexed_files = await self.store.get_indexed_files()
        last_result = self.pipeline.last_result
        summary = summarize(last_result, self.indexing_config) if last_result is not None else None
        report = render_report(
            self.root,
            chunk_count,
            indexed_files,
            summary,
            show_details=args.show_details,
            max_not_indexed=self.indexing_config.max_not_indexed_files,
        )
        return text_result(report)

    # Helpers

    def _rag_enabled(self, requested: Optional[bool]) -> bool:
        if not self.mode.uses_rag:
            return False
        return True if requested is None else requested

    async def _generate(self, tool: str, prompt: str, context: Optional[str], temperature: float) -> str:
        """Run a generation call on the pinned provider through the middleware."""
        async with self.providers.acquire() as provider:
            if not await provider.is_available():
                raise ToolError(
                    f"{tool} failed: {provider.provider_name} is not available. "
                    f"Please ensure the provider is running at {provider.base_url}"
                )

            full_prompt = f"{context}\n\n{prompt}" if context else prompt
            result = await self.middleware.execute(
                lambda: provider.generate(prompt, context, temperature),
                tool,
                f"{provider.provider_type}:{provider.base_url}",
                AiOperationContext(prompt=full_prompt, timeout_ms=self.generation_timeout_ms),
            )
            return result.unwrap()
