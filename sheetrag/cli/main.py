"""
SheetRAG CLI. Thin orchestration over the pipeline modules.
Commands: build-index, retrieve. Deterministic filesystem outputs.
"""
from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path

from core.serialization import load_retrieval_plan, write_evidence_output
from pipeline.embedding.embedding_engine import (
    is_test_only_index_version,
    make_embedding_backend,
)
from pipeline.indexing.index_builder import build_vector_index
from sheetrag.logging import append_run_log, configure_logging
from sheetrag.retrieval.retrieval_agent import RetrievalAgent
from storage.block_store import InMemoryBlockStore, load_blocks
from storage.vector_index_store import InMemoryVectorIndex, load_index, save_index

DEFAULT_INDEXES_DIR = "indexes"
DEFAULT_EMBEDDER = "bge"
EMBEDDER_CHOICES = ["bge", "ollama", "fake"]


# Terminal colors (only when stdout is a TTY)
def _color(code: str) -> str:
    return f"\033[{code}m" if sys.stdout.isatty() else ""


C_RESET = _color("0")
C_DIM = _color("2")


def _relative_path_from_cwd(file_path: str | Path) -> Path:
    """Return path relative to cwd if under cwd, else absolute."""
    p = Path(file_path).resolve()
    try:
        return p.relative_to(Path.cwd())
    except ValueError:
        return p


def _default_index_path(indexes_dir: str | Path, index_version: str) -> Path:
    return Path(indexes_dir) / f"{index_version}.json"


def cmd_build_index(args: argparse.Namespace) -> int:
    """build-index --blocks <blocks.json> --index-version <id> [--out <index.json>] [--embedder bge|ollama|fake]."""
    out_path = Path(args.out) if args.out is not None else _default_index_path(args.indexes_dir, args.index_version)
    if out_path.exists() and not args.overwrite:
        print(f"build-index error: index file already exists: {out_path} (use --overwrite to replace)", file=sys.stderr)
        return 1
    if is_test_only_index_version(args.index_version) != (args.embedder == "fake"):
        print(
            "build-index error: index_version_id must start with 'fake' exactly when --embedder fake is used",
            file=sys.stderr,
        )
        return 1
    try:
        blocks = load_blocks(args.blocks)
    except (FileNotFoundError, ValueError) as e:
        print(f"build-index error: {e}", file=sys.stderr)
        return 1
    try:
        backend = make_embedding_backend(args.embedder)
        snapshot = build_vector_index(blocks, backend, args.index_version)
    except (ImportError, ValueError) as e:
        print(f"build-index error: {e}", file=sys.stderr)
        return 1
    if not snapshot.entries:
        print("build-index error: blocks contain no cells", file=sys.stderr)
        return 1
    try:
        save_index(snapshot, out_path)
    except OSError as e:
        print(f"build-index error: cannot write index: {e}", file=sys.stderr)
        return 1
    print(f"{C_DIM}Index written to (relative to cwd): {_relative_path_from_cwd(out_path)}{C_RESET}")
    return 0


def cmd_retrieve(args: argparse.Namespace) -> int:
    """retrieve --blocks <blocks.json> --index <index.json> --plan <plan.json> --sheet-id <id> [--out <evidence.json>]."""
    try:
        store = InMemoryBlockStore(load_blocks(args.blocks))
        snapshot = load_index(args.index)
        plan = load_retrieval_plan(args.plan)
    except (FileNotFoundError, ValueError, json.JSONDecodeError) as e:
        print(f"retrieve error: {e}", file=sys.stderr)
        return 1
    embedder = args.embedder
    if embedder is None:
        embedder = "fake" if is_test_only_index_version(snapshot.index_version_id) else DEFAULT_EMBEDDER
    try:
        backend = make_embedding_backend(embedder)
    except (ImportError, ValueError) as e:
        print(f"retrieve error: {e}", file=sys.stderr)
        return 1
    if backend.embedding_model != snapshot.embedding_model:
        print(
            f"retrieve error: index was built with {snapshot.embedding_model!r}, "
            f"query backend is {backend.embedding_model!r}",
            file=sys.stderr,
        )
        return 1

    agent = RetrievalAgent(store, backend, InMemoryVectorIndex(snapshot))
    t0 = time.perf_counter()
    result = agent.retrieve_with_trace(plan, args.sheet_id)
    elapsed = time.perf_counter() - t0

    print(json.dumps(result.to_serializable(), sort_keys=True, indent=2, ensure_ascii=False))
    if args.out:
        try:
            write_evidence_output(result, args.out)
        except OSError as e:
            print(f"retrieve error: cannot write output: {e}", file=sys.stderr)
            return 1
        print(f"{C_DIM}Output written to (relative to cwd): {_relative_path_from_cwd(args.out)}{C_RESET}", file=sys.stderr)
    if args.run_log and args.run_log.lower() != "none":
        try:
            append_run_log(
                args.run_log,
                result,
                plan_name=Path(args.plan).name,
                index_version=snapshot.index_version_id,
                elapsed_sec=elapsed,
            )
        except OSError as e:
            print(f"{C_DIM}(run log not written: {e}){C_RESET}", file=sys.stderr)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="sheetrag", description="SheetRAG evidence retrieval CLI")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug-level retrieval events on stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_build = subparsers.add_parser("build-index", help="Embed cell blocks into a vector index file")
    p_build.add_argument("--blocks", required=True, help="Path to blocks.json (array of block objects)")
    p_build.add_argument("--index-version", required=True, dest="index_version", help="Index version id (starts with 'fake' iff --embedder fake)")
    p_build.add_argument("--indexes-dir", default=DEFAULT_INDEXES_DIR, dest="indexes_dir", help=f"Directory for index files (default: {DEFAULT_INDEXES_DIR})")
    p_build.add_argument("--out", default=None, help="Path to write index file (default: indexes_dir/<index_version>.json)")
    p_build.add_argument("--overwrite", action="store_true", help="Overwrite existing index file")
    p_build.add_argument("--embedder", choices=EMBEDDER_CHOICES, default=DEFAULT_EMBEDDER, help=f"Embedding backend (default: {DEFAULT_EMBEDDER})")
    p_build.set_defaults(func=cmd_build_index)

    p_retrieve = subparsers.add_parser("retrieve", help="Run a retrieval plan and print row evidence as JSON")
    p_retrieve.add_argument("--blocks", required=True, help="Path to blocks.json")
    p_retrieve.add_argument("--index", required=True, help="Path to index file from build-index")
    p_retrieve.add_argument("--plan", required=True, help="Path to plan.json (array of steps or {steps: [...]})")
    p_retrieve.add_argument("--sheet-id", required=True, dest="sheet_id", help="Sheet id all retrieval is scoped to")
    p_retrieve.add_argument("--out", default=None, help="Also write evidence JSON to this path")
    p_retrieve.add_argument("--embedder", choices=EMBEDDER_CHOICES, default=None, help="Query embedding backend (default: matches index provenance)")
    p_retrieve.add_argument("--run-log", default="none", dest="run_log", help="Append a run summary to this MD file (default: none)")
    p_retrieve.set_defaults(func=cmd_retrieve)

    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
