"""
Canonical internal schema for SheetRAG retrieval artifacts.
Pure data models: no IO, no side effects. All fields explicit and typed.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------

_UUID_RE = re.compile(
    r"^[a-fA-F0-9]{8}-[a-fA-F0-9]{4}-[a-fA-F0-9]{4}-[a-fA-F0-9]{4}-[a-fA-F0-9]{12}$"
)


def is_valid_block_id(block_id: object) -> bool:
    """True if block_id is a string in strict 8-4-4-4-12 hex UUID syntax."""
    return isinstance(block_id, str) and _UUID_RE.match(block_id) is not None


def _str_tuple(values: Any, name: str, strict: bool = True) -> tuple[Any, ...]:
    if isinstance(values, str) or not isinstance(values, (list, tuple, set, frozenset)):
        raise ValueError(f"{name} must be a list of strings, got {type(values).__name__}")
    if strict:
        for v in values:
            if not isinstance(v, str):
                raise ValueError(f"{name} entries must be str, got {type(v).__name__}")
    if isinstance(values, (set, frozenset)):
        return tuple(sorted(values) if strict else sorted(values, key=repr))
    return tuple(values)


# ---------------------------------------------------------------------------
# Blocks (atomic records)
# ---------------------------------------------------------------------------


class BlockType(str, Enum):
    SHEET = "sheet"
    ROW = "row"
    COLUMN = "column"
    CELL = "cell"


@dataclass(frozen=True)
class ColumnRef:
    """Column descriptor carried by a cell. Either field may be absent."""
    id: str | None = None
    name: str | None = None

    def to_serializable(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class CellProperties:
    column: ColumnRef | None = None
    value: Any = None

    def to_serializable(self) -> dict[str, Any]:
        return {
            "column": self.column.to_serializable() if self.column is not None else None,
            "value": self.value,
        }


@dataclass(frozen=True)
class Block:
    """
    One stored block. Only blocks with type CELL are usable as evidence.
    Read-only snapshot: retrieval never mutates it.
    """
    id: str
    type: BlockType
    parent_id: str | None = None
    sheet_id: str | None = None
    properties: CellProperties = field(default_factory=CellProperties)

    @property
    def is_cell(self) -> bool:
        return self.type is BlockType.CELL

    @property
    def column_id(self) -> str | None:
        column = self.properties.column
        return column.id if column is not None else None

    @property
    def column_name(self) -> str | None:
        column = self.properties.column
        return column.name if column is not None else None

    def to_serializable(self) -> dict[str, Any]:
        """Stable dict for JSON: field order consistent."""
        return {
            "id": self.id,
            "type": self.type.value,
            "parent_id": self.parent_id,
            "sheet_id": self.sheet_id,
            "properties": self.properties.to_serializable(),
        }

    @classmethod
    def from_serializable(cls, data: dict[str, Any]) -> Block:
        """Deserialize from dict. Fails loudly on missing or invalid fields."""
        if not isinstance(data, dict):
            raise ValueError(f"Block must be dict, got {type(data).__name__}")
        for key in ("id", "type"):
            if key not in data:
                raise ValueError(f"Block missing required field: {key!r}")
        block_id = data["id"]
        if not isinstance(block_id, str) or not block_id:
            raise ValueError(f"Block id must be non-empty str, got {block_id!r}")
        try:
            block_type = BlockType(data["type"])
        except ValueError as e:
            raise ValueError(f"Block {block_id} has unknown type {data['type']!r}") from e
        parent_id = data.get("parent_id")
        if parent_id is not None and not isinstance(parent_id, str):
            raise ValueError(f"Block parent_id must be str or null, got {type(parent_id).__name__}")
        raw_props = data.get("properties") or {}
        if not isinstance(raw_props, dict):
            raise ValueError(f"Block properties must be dict, got {type(raw_props).__name__}")
        raw_column = raw_props.get("column")
        column = None
        if raw_column is not None:
            if not isinstance(raw_column, dict):
                raise ValueError(f"Block column must be dict, got {type(raw_column).__name__}")
            for key in ("id", "name"):
                v = raw_column.get(key)
                if v is not None and not isinstance(v, str):
                    raise ValueError(f"Block {block_id} column {key} must be str or null, got {type(v).__name__}")
            column = ColumnRef(id=raw_column.get("id"), name=raw_column.get("name"))
        return cls(
            id=block_id,
            type=block_type,
            parent_id=parent_id or None,
            sheet_id=data.get("sheet_id"),
            properties=CellProperties(column=column, value=raw_props.get("value")),
        )


def value_text(value: Any) -> str:
    """Textual form of a cell value. Absent -> empty string."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, dict)):
        return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return str(value)


# ---------------------------------------------------------------------------
# Retrieval plan steps (tagged variant)
# ---------------------------------------------------------------------------


class StepKind(str, Enum):
    SEMANTIC = "semantic"
    KEYWORD = "keyword"
    SPECIFIC = "specific"


@dataclass(frozen=True)
class StepFilters:
    """Optional row/column restriction for keyword search."""
    row_ids: tuple[str, ...] | None = None
    column_ids: tuple[str, ...] | None = None

    def to_serializable(self) -> dict[str, Any]:
        return {
            "row_ids": list(self.row_ids) if self.row_ids is not None else None,
            "column_ids": list(self.column_ids) if self.column_ids is not None else None,
        }


@dataclass(frozen=True)
class SemanticStep:
    query: str
    reasoning: str = ""
    kind: StepKind = field(default=StepKind.SEMANTIC, init=False)

    def __post_init__(self) -> None:
        if not isinstance(self.query, str) or not self.query:
            raise ValueError("SemanticStep query must be a non-empty string")

    def to_serializable(self) -> dict[str, Any]:
        return {"type": self.kind.value, "query": self.query, "reasoning": self.reasoning}


@dataclass(frozen=True)
class KeywordStep:
    keywords: tuple[str, ...]
    filters: StepFilters = field(default_factory=StepFilters)
    reasoning: str = ""
    kind: StepKind = field(default=StepKind.KEYWORD, init=False)

    def __post_init__(self) -> None:
        keywords = _str_tuple(self.keywords, "KeywordStep keywords")
        if not keywords:
            raise ValueError("KeywordStep keywords must be non-empty")
        object.__setattr__(self, "keywords", keywords)

    def to_serializable(self) -> dict[str, Any]:
        return {
            "type": self.kind.value,
            "keywords": list(self.keywords),
            "filters": self.filters.to_serializable(),
            "reasoning": self.reasoning,
        }


@dataclass(frozen=True)
class SpecificStep:
    """Point lookup by id. Entries that are not UUID strings are kept and dropped at execution."""
    block_ids: tuple[Any, ...]
    reasoning: str = ""
    kind: StepKind = field(default=StepKind.SPECIFIC, init=False)

    def __post_init__(self) -> None:
        block_ids = _str_tuple(self.block_ids, "SpecificStep block_ids", strict=False)
        if not block_ids:
            raise ValueError("SpecificStep block_ids must be non-empty")
        object.__setattr__(self, "block_ids", block_ids)

    def to_serializable(self) -> dict[str, Any]:
        return {"type": self.kind.value, "block_ids": list(self.block_ids), "reasoning": self.reasoning}


RetrievalStep = Union[SemanticStep, KeywordStep, SpecificStep]


def _first_present(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def retrieval_step_from_serializable(data: Any) -> RetrievalStep | None:
    """
    Parse one plan step from a dict. Lenient: returns None for an unrecognized
    kind or a missing/empty required field instead of raising.
    Accepts "type" or "kind" for the discriminator, and camelCase field aliases.
    """
    if not isinstance(data, dict):
        return None
    kind = _first_present(data, "type", "kind")
    reasoning = data.get("reasoning") or ""
    if not isinstance(reasoning, str):
        reasoning = str(reasoning)
    try:
        if kind == StepKind.SEMANTIC.value:
            return SemanticStep(query=data.get("query"), reasoning=reasoning)
        if kind == StepKind.KEYWORD.value:
            raw_filters = data.get("filters") or {}
            if not isinstance(raw_filters, dict):
                return None
            row_ids = _first_present(raw_filters, "row_ids", "rowIds")
            column_ids = _first_present(raw_filters, "column_ids", "columnIds")
            filters = StepFilters(
                row_ids=_str_tuple(row_ids, "filters.row_ids") if row_ids is not None else None,
                column_ids=_str_tuple(column_ids, "filters.column_ids") if column_ids is not None else None,
            )
            return KeywordStep(keywords=data.get("keywords"), filters=filters, reasoning=reasoning)
        if kind == StepKind.SPECIFIC.value:
            return SpecificStep(block_ids=_first_present(data, "block_ids", "blockIds"), reasoning=reasoning)
    except ValueError:
        return None
    return None


@dataclass(frozen=True)
class BlockQuery:
    """Filtered cell query for the block store. Empty or None row/column filters mean no restriction."""
    sheet_id: str
    keywords: tuple[str, ...]
    limit: int
    row_ids: tuple[str, ...] | None = None
    column_ids: tuple[str, ...] | None = None


@dataclass(frozen=True)
class RetrievalConfig:
    """Per-call retrieval limits. Built from sheetrag.config by default."""
    semantic_top_k: int
    keyword_limit: int
    max_workers: int
    vector_scope_key: str = "sheet_id"

    def __post_init__(self) -> None:
        if self.semantic_top_k < 1:
            raise ValueError("semantic_top_k must be >= 1")
        if self.keyword_limit < 1:
            raise ValueError("keyword_limit must be >= 1")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")


# ---------------------------------------------------------------------------
# Step results: explicit success / ignored branches
# ---------------------------------------------------------------------------

STEP_IGNORED_FAILED = "step_failed"
STEP_IGNORED_UNRECOGNIZED = "unrecognized_step"


@dataclass(frozen=True)
class StepRetrieved:
    records: tuple[Block, ...]

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class StepIgnored:
    """A step that contributed nothing: failed or not executable."""
    reason: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return False

    @property
    def records(self) -> tuple[Block, ...]:
        return ()


StepResult = Union[StepRetrieved, StepIgnored]


# ---------------------------------------------------------------------------
# Evidence (output)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EvidenceMetadata:
    column_count: int
    columns: tuple[str | None, ...]
    cell_ids: tuple[str, ...]
    is_row_data: bool = True

    def to_serializable(self) -> dict[str, Any]:
        return {
            "is_row_data": self.is_row_data,
            "column_count": self.column_count,
            "columns": list(self.columns),
            "cell_ids": list(self.cell_ids),
        }


@dataclass(frozen=True)
class Evidence:
    """
    One consolidated row of retrieved cells.
    column_id is the first cell's column after ordering; a row spans many columns,
    so treat it as a representative only.
    """
    block_id: str
    content: str
    row_id: str
    sheet_id: str
    column_id: str | None
    metadata: EvidenceMetadata

    def to_serializable(self) -> dict[str, Any]:
        return {
            "block_id": self.block_id,
            "content": self.content,
            "row_id": self.row_id,
            "sheet_id": self.sheet_id,
            "column_id": self.column_id,
            "metadata": self.metadata.to_serializable(),
        }


@dataclass(frozen=True)
class StepTrace:
    """Trace payload for one executed plan step."""
    index: int
    kind: str | None
    status: str  # "retrieved" | "ignored"
    record_count: int
    reason: str | None = None

    def to_serializable(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "kind": self.kind,
            "status": self.status,
            "record_count": self.record_count,
            "reason": self.reason,
        }


@dataclass
class EvidenceRetrievalResult:
    """Result of a retrieval call: evidence plus per-step trace."""
    sheet_id: str
    evidence: list[Evidence]
    steps: list[StepTrace]

    def to_serializable(self) -> dict[str, Any]:
        return {
            "sheet_id": self.sheet_id,
            "evidence": [e.to_serializable() for e in self.evidence],
            "steps": [s.to_serializable() for s in self.steps],
        }
