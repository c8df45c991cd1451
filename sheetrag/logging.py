"""
Run log formatting with retrieval provenance: plan steps with status and counts,
consolidated rows with their contributing cell ids, content preview.
"""
from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from core.schema import EvidenceRetrievalResult
from sheetrag.config import (
    LOG_EVIDENCE_PREVIEW_LENGTH,
    LOG_RETRIEVAL_DETAILS,
    LOG_TOP_K_EVIDENCE,
)

RUN_LOG_HEADER = "# SheetRAG run log\n\n*Appended by `sheetrag retrieve`.*\n\n"


def configure_logging(verbose: bool = False) -> None:
    """Route sheetrag.* loggers to stderr; INFO by default, DEBUG when verbose."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    root = logging.getLogger("sheetrag")
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.propagate = False


def format_run_log_block(
    result: EvidenceRetrievalResult,
    plan_name: str = "",
    index_version: str = "",
    elapsed_sec: float | None = None,
) -> str:
    """
    Format one run log entry. With LOG_RETRIEVAL_DETAILS, include the step table and
    evidence previews with provenance; otherwise only the summary lines.
    """
    ts = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M")
    title = plan_name or "retrieval"
    retrieved = sum(1 for s in result.steps if s.status == "retrieved")
    block = f"## {ts} · {title}\n"
    block += f"- **Sheet:** {result.sheet_id}\n"
    if index_version:
        block += f"- **Index version:** {index_version}\n"
    block += f"- **Steps:** {len(result.steps)} ({retrieved} retrieved, {len(result.steps) - retrieved} ignored)\n"
    block += f"- **Evidence rows:** {len(result.evidence)}\n"
    if elapsed_sec is not None:
        block += f"- **Elapsed:** {elapsed_sec:.2f} s\n"

    if LOG_RETRIEVAL_DETAILS:
        block += "\n### Steps\n"
        for s in result.steps:
            reason = f" ({s.reason})" if s.reason else ""
            block += f"{s.index + 1}. {s.kind or 'unknown'} · {s.status}{reason} · records: {s.record_count}\n"
        block += "\n### Evidence\n"
        top_n = min(LOG_TOP_K_EVIDENCE, len(result.evidence))
        for i, ev in enumerate(result.evidence[:top_n], 1):
            block += f"{i}. **Row {ev.row_id}** · columns: {ev.metadata.column_count}\n"
            preview = ev.content.replace("\n", " ")
            if len(preview) > LOG_EVIDENCE_PREVIEW_LENGTH:
                preview = preview[:LOG_EVIDENCE_PREVIEW_LENGTH] + "..."
            block += f"   Preview: \"{preview}\"\n"
            block += f"   Cells: {', '.join(ev.metadata.cell_ids)}\n"
        if len(result.evidence) > top_n:
            block += f"- ... {len(result.evidence) - top_n} more rows\n"
    return block + "\n"


def append_run_log(
    log_path: Path | str,
    result: EvidenceRetrievalResult,
    plan_name: str = "",
    index_version: str = "",
    elapsed_sec: float | None = None,
) -> None:
    """Append one run entry to the Markdown run log, writing the header on first use."""
    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    write_header = not path.exists()
    block = format_run_log_block(
        result,
        plan_name=plan_name,
        index_version=index_version,
        elapsed_sec=elapsed_sec,
    )
    with open(path, "a", encoding="utf-8") as f:
        if write_header:
            f.write(RUN_LOG_HEADER)
        f.write(block)
