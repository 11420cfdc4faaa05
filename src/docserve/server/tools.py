"""Tool catalogue: one argument model per tool, validated at the boundary."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from docserve.config import OperationMode
from docserve.server.models import ToolArgumentError


class ToolArgs(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


class SearchFilesArgs(ToolArgs):
    query: str = Field(..., min_length=1, description="Search query")
    file_types: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("file_types", "fileTypes"),
        description="File extensions to search (e.g. .md); empty searches every supported file",
    )


class AskAiArgs(ToolArgs):
    question: str = Field(..., min_length=1, description="Question to ask the AI")
    context: str = Field(default="", description="Optional context or file content to provide to the AI")
    temperature: float = Field(default=0.7, ge=0.0, le=1.0, description="Temperature for AI response (0.0-1.0)")
    use_rag: Optional[bool] = Field(
        default=None, description="Whether to use RAG for context retrieval (default: on when the mode allows it)"
    )


class AnalyzeFileArgs(ToolArgs):
    file_uri: str = Field(..., min_length=1, description="URI of the file to analyze (file:///relative/path)")
    analysis_type: str = Field(
        ..., min_length=1, description="Type of analysis (summary, key_points, questions, topics, technical, explanation)"
    )
    use_rag: Optional[bool] = Field(default=None, description="Whether to use RAG for enhanced context")


class RagSearchArgs(ToolArgs):
    query: str = Field(..., min_length=1, description="Search query for semantic search")
    top_k: int = Field(default=5, ge=1, le=100, description="Number of top results to return")
    min_similarity: float = Field(default=0.1, ge=0.0, le=1.0, description="Minimum similarity threshold (0.0-1.0)")
    file_filters: list[str] = Field(default_factory=list, description="Filter by file names or paths")


class RagAskArgs(ToolArgs):
    question: str = Field(..., min_length=1, description="Question to ask")
    top_k: int = Field(default=5, ge=1, le=100, description="Number of context chunks to retrieve")
    temperature: float = Field(default=0.7, ge=0.0, le=1.0, description="AI response temperature")


class ReindexDocumentsArgs(ToolArgs):
    force: bool = Field(default=True, description="Clear the index and rebuild it from scratch")


class IndexingReportArgs(ToolArgs):
    show_details: bool = Field(default=True, description="Show detailed file lists")


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    args_model: type[ToolArgs]
    requires_rag: bool = False

    def definition(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.args_model.model_json_schema(),
        }


TOOLS: dict[str, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec("search_files", "Search for files containing specific text", SearchFilesArgs),
        ToolSpec(
            "ask_ai",
            "Ask AI a question about file contents using the configured AI provider",
            AskAiArgs,
        ),
        ToolSpec("analyze_file", "Analyze a specific file using AI", AnalyzeFileArgs),
        ToolSpec("rag_search", "Semantic search using RAG vector store", RagSearchArgs, True),
        ToolSpec("rag_ask", "Ask AI with RAG-enhanced context retrieval", RagAskArgs, True),
        ToolSpec("reindex_documents", "Rebuild the RAG vector store index", ReindexDocumentsArgs, True),
        ToolSpec(
            "indexing_report",
            "Get detailed report of indexed and non-indexed files",
            IndexingReportArgs,
            True,
        ),
    )
}


def tool_definitions(mode: OperationMode) -> list[dict[str, Any]]:
    """Tools offered in ``mode``; retrieval tools only when the mode uses RAG."""
    return [spec.definition() for spec in TOOLS.values() if mode.uses_rag or not spec.requires_rag]


def parse_arguments(spec: ToolSpec, arguments: Any) -> ToolArgs:
    """Validate raw tool arguments against the tool's model.

    Raises:
        ToolArgumentError: With one readable line per invalid field
    """
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise ToolArgumentError(f"Arguments for {spec.name} must be an object")
    try:
        return spec.args_model.model_validate(arguments)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'arguments'}: {error['msg']}"
            for error in exc.errors()
        )
        raise ToolArgumentError(f"Invalid arguments for {spec.name}: {problems}") from exc
