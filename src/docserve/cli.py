"""CLI entry point for docserve."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from docserve.config import (
    DEFAULT_CHUNK_OVERLAP,
    DEFAULT_CHUNK_SIZE,
    IndexingConfig,
    OperationMode,
    ServerConfig,
)
from docserve.embedders import EMBEDDERS
from docserve.indexing import render_report, summarize
from docserve.server import DocumentServer, build_server, serve_stdio

logger = logging.getLogger(__name__)


def build_config(args: argparse.Namespace) -> ServerConfig:
    """Turn parsed arguments into a ServerConfig."""
    root = Path(args.root)
    if not root.is_dir():
        logger.error(f"Not a directory: {args.root}")
        sys.exit(1)

    try:
        indexing = IndexingConfig(chunk_size=args.chunk_size, chunk_overlap=args.chunk_overlap)
    except ValueError as exc:
        logger.error(f"Invalid chunking settings: {exc}")
        sys.exit(2)

    return ServerConfig(
        root=root,
        db_path=Path(args.db) if args.db else None,
        mode=OperationMode(getattr(args, "mode", OperationMode.HYBRID.value)),
        embedder=args.embedder,
        embedding_model=args.model,
        ollama_url=args.ollama_url,
        ai_model=args.ai_model,
        indexing=indexing,
    )


async def _index(config: ServerConfig, force: bool) -> None:
    server = build_server(config)
    try:
        pipeline = server.pipeline
        result = await (pipeline.reindex() if force else pipeline.run())
        chunk_count = await server.store.get_chunk_count()
    finally:
        await server.aclose()

    logger.info("")
    logger.info(
        f"Indexed {len(result.indexed_files)} files ({len(result.unchanged_files)} unchanged, "
        f"{len(result.skipped_files)} skipped, {len(result.failed_files)} failed), "
        f"{chunk_count} chunks -> {config.resolved_db_path}"
    )


def index(config: ServerConfig, force: bool = False) -> None:
    """Index a directory into its vector store.

    Args:
        config: Server settings
        force: Clear the store and re-embed every file
    """
    logger.info(f"Indexing {config.root} -> {config.resolved_db_path}")
    asyncio.run(_index(config, force))


async def _serve(config: ServerConfig, transport: str, index_first: bool) -> None:
    server = build_server(config)
    try:
        if index_first and config.mode.uses_rag:
            await server.pipeline.run()

        if transport == "mcp":
            # Import here to avoid loading MCP unless needed
            from docserve.server.mcp_server import create_mcp_server

            await create_mcp_server(server).run_stdio_async()
        else:
            await serve_stdio(server.dispatcher)
    finally:
        await server.aclose()


def serve(config: ServerConfig, transport: str = "jsonl", index_first: bool = True) -> None:
    """Serve a directory over stdio.

    Args:
        config: Server settings
        transport: "jsonl" for one JSON request per line, "mcp" for the MCP protocol
        index_first: Run an incremental index before accepting requests
    """
    logger.info(f"Serving {config.root} via {transport} ({config.mode.value} mode)")
    asyncio.run(_serve(config, transport, index_first))


async def _report(config: ServerConfig, refresh: bool) -> str:
    server = build_server(config)
    try:
        if refresh:
            await server.pipeline.run()
        return await _render(server)
    finally:
        await server.aclose()


async def _render(server: DocumentServer) -> str:
    last_result = server.pipeline.last_result
    summary = summarize(last_result, server.config.indexing) if last_result is not None else None
    return render_report(
        server.pipeline.root,
        await server.store.get_chunk_count(),
        await server.store.get_indexed_files(),
        summary,
        max_not_indexed=server.config.indexing.max_not_indexed_files,
    )


def report(config: ServerConfig, refresh: bool = False) -> None:
    """Print the indexing report for a directory."""
    print(asyncio.run(_report(config, refresh)), end="")


async def _info(config: ServerConfig) -> None:
    db_path = config.resolved_db_path
    server = build_server(config)
    try:
        store = server.store
        metadata = {}
        for key in ["root", "created_at", "embedding_model"]:
            value = store.get_metadata(key)
            if value:
                metadata[key] = value
        document_count = await store.get_document_count()
        chunk_count = await store.get_chunk_count()
    finally:
        await server.aclose()

    print(f"Index: {db_path}")
    print(f"  Size: {db_path.stat().st_size / 1024:.1f} KB")
    print(f"")
    print(f"Metadata:")
    for key, value in metadata.items():
        print(f"  {key}: {value}")
    print(f"")
    print(f"Contents:")
    print(f"  Documents: {document_count}")
    print(f"  Chunks: {chunk_count}")


def info(config: ServerConfig) -> None:
    """Show information about a directory's index."""
    if not config.resolved_db_path.exists():
        logger.error(f"No index found: {config.resolved_db_path}")
        sys.exit(1)
    asyncio.run(_info(config))


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("root", help="Document root directory")
    parser.add_argument("--db", default=None, help="Vector store path (default: ROOT/vectors.db)")
    parser.add_argument(
        "--embedder",
        choices=EMBEDDERS,
        default="sentence-transformers",
        help="Embedding backend (default: sentence-transformers)",
    )
    parser.add_argument("--model", default=None, help="Embedding model name")
    parser.add_argument(
        "--ollama-url",
        default="http://localhost:11434",
        help="Ollama base URL (default: http://localhost:11434)",
    )
    parser.add_argument("--ai-model", default="llama3.2", help="Generation model (default: llama3.2)")
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=DEFAULT_CHUNK_SIZE,
        help=f"Words per chunk (default: {DEFAULT_CHUNK_SIZE})",
    )
    parser.add_argument(
        "--chunk-overlap",
        type=int,
        default=DEFAULT_CHUNK_OVERLAP,
        help=f"Words shared by consecutive chunks (default: {DEFAULT_CHUNK_OVERLAP})",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="docserve",
        description="docserve - retrieval-augmented document server",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # index command
    index_parser = subparsers.add_parser("index", help="Index a directory into its vector store")
    add_common_arguments(index_parser)
    index_parser.add_argument(
        "--force",
        action="store_true",
        help="Clear the index and re-embed every file",
    )

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Serve a directory over stdio")
    add_common_arguments(serve_parser)
    serve_parser.add_argument(
        "--transport",
        choices=["jsonl", "mcp"],
        default="jsonl",
        help="Wire protocol (default: jsonl)",
    )
    serve_parser.add_argument(
        "--mode",
        choices=[m.value for m in OperationMode],
        default=OperationMode.HYBRID.value,
        help="Operation mode (default: hybrid)",
    )
    serve_parser.add_argument(
        "--no-index",
        action="store_true",
        help="Do not index before serving",
    )

    # report command
    report_parser = subparsers.add_parser("report", help="Print the indexing report")
    add_common_arguments(report_parser)
    report_parser.add_argument(
        "--refresh",
        action="store_true",
        help="Run an incremental index first so the report includes skip reasons",
    )

    # info command
    info_parser = subparsers.add_parser("info", help="Show information about an index")
    add_common_arguments(info_parser)

    args = parser.parse_args()

    # Logs go to stderr so stdout stays free for the stdio transport
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        stream=sys.stderr,
    )

    config = build_config(args)
    if args.command == "index":
        index(config, force=args.force)
    elif args.command == "serve":
        serve(config, args.transport, index_first=not args.no_index)
    elif args.command == "report":
        report(config, refresh=args.refresh)
    elif args.command == "info":
        info(config)


if __name__ == "__main__":
    main()
