"""Summaries of indexing runs, for logs and the indexing_report tool."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional

from docserve.config import IndexingConfig
from docserve.models import FailedFile, IndexingResult, SkippedFile

logger = logging.getLogger(__name__)

NO_EXTENSION = "(no extension)"


@dataclass(frozen=True)
class SkipGroup:
    reason: str
    count: int
    samples: tuple[SkippedFile, ...]


@dataclass(frozen=True)
class IndexingSummary:
    """Counts and bounded samples derived from one ``IndexingResult``."""

    completed_at: float
    duration: float
    indexed_count: int
    unchanged_count: int
    skipped_count: int
    failed_count: int
    removed_count: int
    skipped_by_reason: tuple[SkipGroup, ...]
    failed_sample: tuple[FailedFile, ...]
    indexed_by_extension: tuple[tuple[str, int], ...]

    @property
    def total_files(self) -> int:
        return self.indexed_count + self.unchanged_count + self.skipped_count + self.failed_count


def count_by_extension(paths: Iterable[str]) -> tuple[tuple[str, int], ...]:
    """Group paths by lowercased extension, most common first."""
    counts = Counter(PurePosixPath(p).suffix.lower() or NO_EXTENSION for p in paths)
    return tuple(sorted(counts.items(), key=lambda item: (-item[1], item[0])))


def summarize(result: IndexingResult, config: IndexingConfig | None = None) -> IndexingSummary:
    """Group skips by reason and keep bounded samples of skips and failures."""
    config = config or IndexingConfig()

    groups: dict[str, list[SkippedFile]] = {}
    for skipped in result.skipped_files:
        groups.setdefault(skipped.reason, []).append(skipped)

    skipped_by_reason = tuple(
        SkipGroup(reason, len(files), tuple(files[: config.max_files_per_category]))
        for reason, files in sorted(groups.items(), key=lambda item: (-len(item[1]), item[0]))
    )

    return IndexingSummary(
        completed_at=result.completed_at,
        duration=result.duration,
        indexed_count=len(result.indexed_files),
        unchanged_count=len(result.unchanged_files),
        skipped_count=len(result.skipped_files),
        failed_count=len(result.failed_files),
        removed_count=len(result.removed_files),
        skipped_by_reason=skipped_by_reason,
        failed_sample=tuple(result.failed_files[: config.max_failed_files]),
        indexed_by_extension=count_by_extension(result.indexed_files + result.unchanged_files),
    )


def log_summary(summary: IndexingSummary) -> None:
    """Write the run summary to the log; failures at WARNING."""
    logger.info("=== INDEXING SUMMARY ===")
    logger.info(f"Duration: {summary.duration:.2f}s")
    logger.info(f"Successfully indexed: {summary.indexed_count} files")
    logger.info(f"Unchanged: {summary.unchanged_count} files")
    logger.info(f"Skipped: {summary.skipped_count} files")
    logger.info(f"Failed: {summary.failed_count} files")
    if summary.removed_count:
        logger.info(f"Removed: {summary.removed_count} files")

    for group in summary.skipped_by_reason:
        logger.info(f"{group.reason}: {group.count} files")
        for skipped in group.samples:
            logger.info(f"  - {skipped.path} ({skipped.size_bytes:,} bytes)")
        if group.count > len(group.samples):
            logger.info(f"  ... and {group.count - len(group.samples)} more files")

    for failed in summary.failed_sample:
        logger.warning(f"Failed: {failed.path}: {failed.error}")
    if summary.failed_count > len(summary.failed_sample):
        logger.warning(f"... and {summary.failed_count - len(summary.failed_sample)} more failures")


def render_report(
    root: Path,
    chunk_count: int,
    indexed_files: list[str],
    summary: Optional[IndexingSummary] = None,
    show_details: bool = True,
    max_not_indexed: int = 20,
) -> str:
    """Render the text returned by the indexing_report tool.

    Args:
        root: Indexed root directory
        chunk_count: Chunks currently in the store
        indexed_files: Document paths currently in the store
        summary: Summary of the most recent run, if one happened in this process
        show_details: Include per-reason file samples and failures
        max_not_indexed: Cap on the number of not-indexed files listed

    Returns:
        Multi-line report text
    """
    lines = ["=== INDEXING REPORT ===", ""]
    lines.append(f"Root Directory: {root}")
    if summary is not None:
        last_run = datetime.fromtimestamp(summary.completed_at).strftime("%Y-%m-%d %H:%M:%S")
        lines.append(f"Last Run: {last_run} ({summary.duration:.2f}s)")
    lines.append("")

    lines.append("SUMMARY:")
    lines.append(f"  Documents in index: {len(indexed_files)}")
    lines.append(f"  Total chunks: {chunk_count}")
    if summary is not None:
        lines.append(f"  Files found in last run: {summary.total_files}")
        lines.append(f"  Indexed in last run: {summary.indexed_count}")
        lines.append(f"  Unchanged: {summary.unchanged_count}")
        lines.append(f"  Skipped: {summary.skipped_count}")
        lines.append(f"  Failed: {summary.failed_count}")
        if summary.removed_count:
            lines.append(f"  Removed: {summary.removed_count}")
    else:
        lines.append("  No indexing run recorded since the server started.")
    lines.append("")

    if indexed_files:
        lines.append("INDEXED FILES BY TYPE:")
        for extension, count in count_by_extension(indexed_files):
            lines.append(f"  {extension}: {count} files")
        lines.append("")

    if summary is None:
        return "\n".join(lines).rstrip() + "\n"

    if summary.skipped_by_reason:
        lines.append("NOT INDEXED - BY REASON:")
        for group in summary.skipped_by_reason:
            lines.append(f"  {group.reason}: {group.count} files")
        lines.append("")

    if show_details and summary.skipped_by_reason:
        lines.append("NOT INDEXED FILES:")
        listed = 0
        for group in summary.skipped_by_reason:
            for skipped in group.samples:
                if listed >= max_not_indexed:
                    break
                lines.append(f"  {skipped.path} - {skipped.reason}")
                listed += 1
        if summary.skipped_count > listed:
            lines.append(f"  ... and {summary.skipped_count - listed} more files")
        lines.append("")

    if show_details and summary.failed_sample:
        lines.append("FAILED FILES:")
        for failed in summary.failed_sample:
            extractor = f" [{failed.extractor}]" if failed.extractor else ""
            lines.append(f"  {failed.path}{extractor}: {failed.error}")
        if summary.failed_count > len(summary.failed_sample):
            lines.append(f"  ... and {summary.failed_count - len(summary.failed_sample)} more failures")
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"
