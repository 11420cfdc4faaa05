"""Change detection, skip rules and the indexing pipeline."""

from docserve.indexing.changes import FileChangeDetector
from docserve.indexing.filters import skip_reason, walk_files
from docserve.indexing.gateway import EmbeddingGateway
from docserve.indexing.pipeline import IndexingPipeline
from docserve.indexing.report import IndexingSummary, render_report, summarize

__all__ = [
    "FileChangeDetector",
    "EmbeddingGateway",
    "IndexingPipeline",
    "IndexingSummary",
    "render_report",
    "skip_reason",
    "summarize",
    "walk_files",
]
