"""Read-only reporting over cache metrics and orchestration results."""

import json
import logging
import os
from typing import Optional, Sequence

import numpy as np
from pydantic import BaseModel

from promptcache.fragments import CacheMetrics
from promptcache.orchestrator import OrchestratedResult

logger = logging.getLogger(__name__)


class CostEstimate(BaseModel):
    price_per_million_tokens: float
    cost_without_caching: float
    cost_with_caching: float

    @property
    def cost_savings(self) -> float:
        return self.cost_without_caching - self.cost_with_caching

    @property
    def savings_percent(self) -> float:
        if self.cost_without_caching == 0:
            return 0.0
        return self.cost_savings / self.cost_without_caching * 100


def estimate_cost(metrics: CacheMetrics, price_per_million_tokens: float = 15.0) -> CostEstimate:
    """Price both payload variants at a flat input-token rate."""
    if price_per_million_tokens < 0:
        raise ValueError("price_per_million_tokens cannot be negative.")
    rate = price_per_million_tokens / 1_000_000
    return CostEstimate(
        price_per_million_tokens=price_per_million_tokens,
        cost_without_caching=metrics.tokens_without_caching * rate,
        cost_with_caching=metrics.tokens_with_caching * rate,
    )


def chunk_savings_statistics(savings: Sequence[float]) -> Optional[dict]:
    """Descriptive statistics of per-chunk token savings, or ``None`` when empty."""
    if not savings:
        return None
    values = np.asarray(savings, dtype=float)
    return {
        "mean": float(np.mean(values)),
        "std": float(np.std(values)),
        "min": float(np.min(values)),
        "max": float(np.max(values)),
        "count": int(values.size),
    }


def format_metrics_report(metrics: CacheMetrics, cost: Optional[CostEstimate] = None) -> str:
    lines = [
        "📊 Prompt cache metrics:",
        f"  • Chunks processed: {metrics.chunks}",
        f"  • Tokens without caching: {metrics.tokens_without_caching:,.0f}",
        f"  • Tokens with caching: {metrics.tokens_with_caching:,.0f}",
        f"  • Tokens saved: {metrics.saved_tokens:,.0f} ({metrics.saved_ratio * 100:.1f}%)",
        f"  • Average saved per chunk: {metrics.average_saved_per_chunk:,.0f}",
        f"  • System prompt reuses: {metrics.system_prompt_reuses}",
        f"  • Instruction template reuses: {metrics.instruction_template_reuses}",
    ]
    if metrics.template_mismatches:
        lines.append(f"  ⚠️ Template mismatches: {metrics.template_mismatches}")
    if cost is not None:
        lines.extend(
            [
                f"💰 Cost at ${cost.price_per_million_tokens:.2f} per million input tokens:",
                f"  • Without caching: ${cost.cost_without_caching:.4f}",
                f"  • With caching: ${cost.cost_with_caching:.4f}",
                f"  • Savings: ${cost.cost_savings:.4f} ({cost.savings_percent:.1f}%)",
            ]
        )
    return "\n".join(lines)


def format_result(result: OrchestratedResult) -> str:
    header = "=" * 70
    lines = [
        header,
        "ORCHESTRATED ANALYSIS RESULT",
        header,
        f"Total chunks processed: {result.total_chunks_processed}",
        f"Processing time: {result.duration_seconds:.2f}s",
    ]
    if result.over_budget_chunks:
        lines.append(f"⚠️ Chunks over token budget: {result.over_budget_chunks}")
    lines.extend(["", "Summary:", result.aggregated_summary or "(no chunks)"])
    return "\n".join(lines)


def save_report(result: OrchestratedResult, path: str) -> None:
    """Write the result and its metrics to ``path`` as JSON."""
    data = {
        "total_chunks_processed": result.total_chunks_processed,
        "over_budget_chunks": result.over_budget_chunks,
        "duration_seconds": result.duration_seconds,
        "metrics": result.metrics.as_dict(),
        "savings_statistics": chunk_savings_statistics(
            [analysis.uncached_tokens - analysis.actual_tokens for analysis in result.chunk_analyses]
        ),
        "chunk_analyses": [analysis.model_dump() for analysis in result.chunk_analyses],
        "aggregated_summary": result.aggregated_summary,
    }
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as handle:
        json.dump(data, handle, indent=2, ensure_ascii=False)
    logger.info("Saved report to %s", path)
