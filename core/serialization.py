"""
Stable JSON serialization for retrieval artifacts.
No runtime-only or transient fields. Output is human-readable and deterministic.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from core.schema import EvidenceRetrievalResult


def _stable_json_dump(obj: Any, path: Path | str) -> None:
    """Write JSON with sorted keys for stable, human-readable output."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, sort_keys=True, indent=2, ensure_ascii=False)


def write_evidence_output(result: EvidenceRetrievalResult, path: Path | str) -> None:
    """Write evidence.json (evidence plus step trace) with stable field order."""
    _stable_json_dump(result.to_serializable(), path)


def load_retrieval_plan(path: Path | str) -> list[dict[str, Any]]:
    """
    Load raw plan steps from JSON: either an array of step objects or {"steps": [...]}.
    Steps are returned unparsed; the retrieval agent parses them leniently.
    Fails loudly on a missing file or a malformed root.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Retrieval plan not found: {path}")
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict) and "steps" in data:
        data = data["steps"]
    if not isinstance(data, list):
        raise ValueError(f"Retrieval plan root must be list or {{steps: [...]}}, got {type(data).__name__}")
    for i, item in enumerate(data):
        if not isinstance(item, dict):
            raise ValueError(f"Plan step at index {i} must be dict, got {type(item).__name__}")
    return data
