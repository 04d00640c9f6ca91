# promptcache/orchestrator.py
"""Chunk orchestration on top of the prompt fragment cache.

The orchestrator owns one cache session per run. For each chunk, in order, it
resolves the system prompt and the category template, builds the minimal
payload, validates the token budget, hands the payload to an analyzer, and
records the chunk's accounting.
"""

import concurrent.futures
import logging
import time
from typing import Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field
from tqdm import tqdm

from promptcache.cache import PromptFragmentCache
from promptcache.chunking import JsonChunk, load_chunks
from promptcache.config import AppConfig, CacheConfig
from promptcache.errors import ChunkProcessingError
from promptcache.fragments import CacheMetrics
from promptcache.llm_utils import query_text
from promptcache.prompts import (
    ANALYSIS_ROTATION,
    DEFAULT_SYSTEM_PROMPT,
    analysis_type_for_chunk,
    build_chunk_message,
    get_instruction_template,
)
from promptcache.tokens import ApproximateTokenCounter, TokenBudgetManager, TokenCounter

logger = logging.getLogger(__name__)


class ChunkPayload(BaseModel):
    """Everything an analyzer needs to issue the request for one chunk."""

    chunk_number: int = Field(description="1-based position of the chunk.")
    total_chunks: int
    analysis_type: str
    system_prompt: str
    instruction_template: str
    chunk_message: str
    send_system_prompt: bool = Field(
        description="True when the system prompt is not yet held by the far end."
    )
    send_instruction_template: bool = Field(
        description="True when this category's template is not yet held by the far end."
    )
    uncached_tokens: int = 0
    actual_tokens: int = 0

    def outbound_text(self) -> str:
        """Compose the minimal payload: unsent fragments followed by the chunk message."""
        parts = []
        if self.send_system_prompt:
            parts.append(self.system_prompt)
        if self.send_instruction_template:
            parts.append(self.instruction_template)
        parts.append(self.chunk_message)
        return "\n\n".join(parts)


class ChunkAnalysis(BaseModel):
    chunk_number: int
    total_chunks: int
    analysis_type: str
    summary: str
    uncached_tokens: int = 0
    actual_tokens: int = 0
    fits_budget: bool = True


class OrchestratedResult(BaseModel):
    chunk_analyses: List[ChunkAnalysis] = Field(default_factory=list)
    aggregated_summary: str = ""
    metrics: CacheMetrics = Field(default_factory=CacheMetrics)
    over_budget_chunks: int = 0
    duration_seconds: float = 0.0

    @property
    def total_chunks_processed(self) -> int:
        return len(self.chunk_analyses)


Analyzer = Callable[[ChunkPayload], str]


class StaticSummaryAnalyzer:
    """Offline analyzer returning a canned summary per analysis type."""

    SUMMARIES: Dict[str, str] = {
        "compliance": "Compliance analysis completed. Key findings: policy adherence verified.",
        "patterns": "Pattern analysis completed. Identified recurring themes.",
        "summary": "Summary analysis completed. Top insights extracted.",
        "history": "Historical analysis completed. Trends identified.",
    }

    def __call__(self, payload: ChunkPayload) -> str:
        return self.SUMMARIES.get(payload.analysis_type, "Analysis completed.")


class LLMChunkAnalyzer:
    """Analyzer that sends each chunk to the configured LLM provider.

    The system message is always ordered system prompt first, template second,
    so repeated requests share a stable prefix that the provider's own context
    caching can serve without billing it again.

    The provider APIs are stateless, so the full prefix goes out on every call.
    ``ChunkPayload.actual_tokens`` and ``ChunkPayload.outbound_text()`` therefore
    describe what prefix caching bills, not the bytes put on the wire.
    """

    def __init__(
        self,
        app_config: Optional[AppConfig] = None,
        temperature: Optional[float] = None,
        max_retries: int = 3,
    ) -> None:
        self.app_config = app_config or AppConfig()
        self.temperature = temperature
        self.max_retries = max_retries

    def __call__(self, payload: ChunkPayload) -> str:
        system_message = f"{payload.system_prompt}\n\n{payload.instruction_template}"
        return query_text(
            payload.chunk_message,
            system_message,
            self.app_config,
            temperature=self.temperature,
            max_retries=self.max_retries,
        )


class ChunkOrchestrator:
    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        analyzer: Optional[Analyzer] = None,
        token_counter: Optional[TokenCounter] = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        rotation: Sequence[str] = ANALYSIS_ROTATION,
    ) -> None:
        self.config = config or CacheConfig()
        self.analyzer = analyzer or StaticSummaryAnalyzer()
        self.token_counter = token_counter or ApproximateTokenCounter()
        self.system_prompt = system_prompt
        self.rotation = tuple(rotation)
        self.budget = TokenBudgetManager(
            self.token_counter,
            context_window=self.config.context_window,
            max_output_tokens=self.config.max_output_tokens,
            safety_margin=self.config.safety_margin,
        )
        logger.info(
            "ChunkOrchestrator initialized (level=%s, context preservation=%s, workers=%d).",
            self.config.optimization_level.value,
            self.config.context_preservation,
            self.config.max_parallel_workers,
        )

    def new_session(self) -> PromptFragmentCache:
        return PromptFragmentCache(system_prompt=self.system_prompt, config=self.config)

    def process(self, text: str, cache: Optional[PromptFragmentCache] = None) -> OrchestratedResult:
        """Chunk ``text`` and analyze every chunk within one cache session."""
        chunks = load_chunks(text, self.config, self.token_counter)
        return self.process_chunks(chunks, cache)

    def process_chunks(
        self, chunks: Sequence[JsonChunk], cache: Optional[PromptFragmentCache] = None
    ) -> OrchestratedResult:
        cache = cache if cache is not None else self.new_session()
        start = time.monotonic()

        if self.config.context_preservation or self.config.max_parallel_workers <= 1:
            analyses = self._run_sequential(chunks, cache)
        else:
            analyses = self._run_parallel(chunks, cache)

        result = OrchestratedResult(
            chunk_analyses=analyses,
            aggregated_summary="\n".join(analysis.summary for analysis in analyses),
            metrics=cache.metrics(),
            over_budget_chunks=sum(1 for analysis in analyses if not analysis.fits_budget),
            duration_seconds=time.monotonic() - start,
        )
        logger.info(
            "Processed %d chunks: %.0f tokens sent of %.0f (%.1f%% saved).",
            result.total_chunks_processed,
            result.metrics.tokens_with_caching,
            result.metrics.tokens_without_caching,
            result.metrics.saved_ratio * 100,
        )
        return result

    # --- Payload construction ---

    def _build_payload(
        self,
        chunk: JsonChunk,
        position: int,
        total: int,
        cache: PromptFragmentCache,
        previous_summary: Optional[str],
    ) -> ChunkPayload:
        analysis_type = chunk.analysis_type or analysis_type_for_chunk(position, self.rotation)
        system = cache.resolve_system_prompt()
        template = cache.resolve_instruction_template(
            analysis_type, get_instruction_template(analysis_type)
        )
        message = build_chunk_message(chunk.content, previous_summary)

        system_tokens = self.token_counter.count_tokens(system.text)
        template_tokens = self.token_counter.count_tokens(template.text)
        message_tokens = self.token_counter.count_tokens(message)
        actual = message_tokens
        if not system.already_sent:
            actual += system_tokens
        if not template.already_sent:
            actual += template_tokens

        return ChunkPayload(
            chunk_number=position + 1,
            total_chunks=total,
            analysis_type=analysis_type,
            system_prompt=system.text,
            instruction_template=template.text,
            chunk_message=message,
            send_system_prompt=not system.already_sent,
            send_instruction_template=not template.already_sent,
            uncached_tokens=system_tokens + template_tokens + message_tokens,
            actual_tokens=actual,
        )

    def _check_budget(self, payload: ChunkPayload) -> bool:
        validation = self.budget.validate_request(
            payload.system_prompt, payload.instruction_template, payload.chunk_message
        )
        if not validation.fits_budget:
            logger.warning(
                "Chunk %d exceeds the token budget by %d tokens (%.1f%% utilization).",
                payload.chunk_number,
                -validation.remaining_tokens,
                validation.utilization_percent,
            )
        return validation.fits_budget

    def _analyze(self, payload: ChunkPayload) -> str:
        try:
            return self.analyzer(payload)
        except Exception as exc:
            logger.error("Error analyzing chunk %d: %s", payload.chunk_number, exc)
            raise ChunkProcessingError(payload.chunk_number, str(exc)) from exc

    def _finish(
        self, payload: ChunkPayload, summary: str, fits: bool, cache: PromptFragmentCache
    ) -> ChunkAnalysis:
        cache.record_chunk(payload.uncached_tokens, payload.actual_tokens)
        return ChunkAnalysis(
            chunk_number=payload.chunk_number,
            total_chunks=payload.total_chunks,
            analysis_type=payload.analysis_type,
            summary=summary,
            uncached_tokens=payload.uncached_tokens,
            actual_tokens=payload.actual_tokens,
            fits_budget=fits,
        )

    # --- Execution strategies ---

    def _run_sequential(
        self, chunks: Sequence[JsonChunk], cache: PromptFragmentCache
    ) -> List[ChunkAnalysis]:
        analyses: List[ChunkAnalysis] = []
        previous_summary: Optional[str] = None
        preserve = self.config.context_preservation
        total = len(chunks)

        for position, chunk in enumerate(tqdm(chunks, desc="Analyzing chunks", disable=total < 2)):
            payload = self._build_payload(
                chunk, position, total, cache, previous_summary if preserve else None
            )
            fits = self._check_budget(payload)
            summary = self._analyze(payload)
            analyses.append(self._finish(payload, summary, fits, cache))
            previous_summary = summary
            logger.debug(
                "Chunk %d/%d (%s): %d of %d tokens sent.",
                payload.chunk_number,
                total,
                payload.analysis_type,
                payload.actual_tokens,
                payload.uncached_tokens,
            )
        return analyses

    def _run_parallel(
        self, chunks: Sequence[JsonChunk], cache: PromptFragmentCache
    ) -> List[ChunkAnalysis]:
        total = len(chunks)
        # Resolution stays in chunk order; only the analyzer calls overlap.
        payloads = [
            self._build_payload(chunk, position, total, cache, None)
            for position, chunk in enumerate(chunks)
        ]
        budget_ok = {payload.chunk_number: self._check_budget(payload) for payload in payloads}

        results: Dict[int, ChunkAnalysis] = {}
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.config.max_parallel_workers
        )
        try:
            futures = {executor.submit(self._analyze, payload): payload for payload in payloads}
            with tqdm(total=total, desc="Analyzing chunks", disable=total < 2) as progress:
                for future in concurrent.futures.as_completed(futures):
                    payload = futures[future]
                    summary = future.result()
                    results[payload.chunk_number] = self._finish(
                        payload, summary, budget_ok[payload.chunk_number], cache
                    )
                    progress.update(1)
        except BaseException:
            # Queued chunks are dropped; calls already running are not awaited.
            executor.shutdown(wait=False, cancel_futures=True)
            raise
        executor.shutdown()

        return [results[number] for number in sorted(results)]
