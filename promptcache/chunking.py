"""Splitting oversized JSON input into chunks sized for one request each."""

import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from promptcache.config import CacheConfig
from promptcache.errors import InvalidArgumentError
from promptcache.tokens import ApproximateTokenCounter, TokenCounter

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
SortKey = Callable[[Record], Tuple[str, float]]

PRIORITY_RANK = {"HIGH": 3, "MEDIUM": 2, "LOW": 1}


class JsonChunk(BaseModel):
    index: int = Field(description="Zero-based position of the chunk in the input.")
    content: str = Field(default="")
    analysis_type: Optional[str] = Field(default=None)


class ReductionStats(BaseModel):
    original_size_kb: float = 0.0
    filtered_size_kb: float = 0.0
    reduction_percent: float = 0.0


def chunk_json_lines(text: str, target_chunk_size: int) -> List[JsonChunk]:
    """Group lines until their combined length reaches ``target_chunk_size``."""
    if target_chunk_size <= 0:
        raise InvalidArgumentError("target_chunk_size must be positive.")
    if not text:
        return []

    chunks: List[JsonChunk] = []
    current: List[str] = []
    current_size = 0

    for line in text.split("\n"):
        current.append(line)
        current_size += len(line)
        if current_size >= target_chunk_size:
            chunks.append(JsonChunk(index=len(chunks), content="\n".join(current)))
            current = []
            current_size = 0

    if current and "\n".join(current).strip():
        chunks.append(JsonChunk(index=len(chunks), content="\n".join(current)))
    return chunks


# --- Record preprocessing ---


def filter_records(records: Iterable[Record], fields: Iterable[str]) -> List[Record]:
    """Keep only ``fields`` in every record."""
    relevant = set(fields)
    return [
        {key: value for key, value in record.items() if key in relevant}
        for record in records
        if isinstance(record, dict)
    ]


def reduction_stats(original: Any, filtered: Any) -> ReductionStats:
    original_bytes = len(json.dumps(original, ensure_ascii=False))
    filtered_bytes = len(json.dumps(filtered, ensure_ascii=False))
    reduction = (1 - filtered_bytes / original_bytes) * 100 if original_bytes else 0.0
    return ReductionStats(
        original_size_kb=original_bytes / 1024.0,
        filtered_size_kb=filtered_bytes / 1024.0,
        reduction_percent=reduction,
    )


def _default_sort_key(record: Record) -> Tuple[str, float]:
    priority = str(record.get("priority", "MEDIUM")).upper()
    try:
        risk = float(record.get("risk_score", 0.5))
    except (TypeError, ValueError):
        risk = 0.5
    return priority, risk


def chunk_records(
    records: Sequence[Record],
    token_counter: Optional[TokenCounter] = None,
    max_chunk_tokens: int = 8000,
    sort_key: Optional[SortKey] = None,
) -> List[List[Record]]:
    """Order records by priority then risk, and pack them under a token budget.

    A record larger than the budget on its own still gets a chunk of its own.
    """
    if max_chunk_tokens <= 0:
        raise InvalidArgumentError("max_chunk_tokens must be positive.")
    counter = token_counter or ApproximateTokenCounter()
    key_fn = sort_key or _default_sort_key

    def rank(record: Record) -> Tuple[int, float]:
        priority, risk = key_fn(record)
        return PRIORITY_RANK.get(priority, 1), risk

    ordered = sorted(records, key=rank, reverse=True)

    chunks: List[List[Record]] = []
    current: List[Record] = []
    current_tokens = 0
    for record in ordered:
        record_tokens = counter.count_tokens(json.dumps(record, ensure_ascii=False))
        if current and current_tokens + record_tokens > max_chunk_tokens:
            chunks.append(current)
            current = []
            current_tokens = 0
        current.append(record)
        current_tokens += record_tokens

    if current:
        chunks.append(current)
    return chunks


def load_chunks(
    text: str,
    config: Optional[CacheConfig] = None,
    token_counter: Optional[TokenCounter] = None,
) -> List[JsonChunk]:
    """Chunk ``text`` by record when it is a JSON array of objects, by line otherwise."""
    config = config or CacheConfig()
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        data = None

    if isinstance(data, list) and data and all(isinstance(item, dict) for item in data):
        if config.relevant_fields:
            filtered = filter_records(data, config.relevant_fields)
            stats = reduction_stats(data, filtered)
            logger.info(
                "Filtered records to %d fields: %.1f KB -> %.1f KB (%.1f%% reduction).",
                len(config.relevant_fields),
                stats.original_size_kb,
                stats.filtered_size_kb,
                stats.reduction_percent,
            )
            data = filtered
        groups = chunk_records(data, token_counter, config.max_chunk_tokens)
        logger.info("Split %d records into %d token-bounded chunks.", len(data), len(groups))
        return [
            JsonChunk(index=idx, content=json.dumps(group, ensure_ascii=False, indent=2))
            for idx, group in enumerate(groups)
        ]

    chunks = chunk_json_lines(text, config.target_chunk_size)
    logger.info("Split input into %d line-based chunks.", len(chunks))
    return chunks
