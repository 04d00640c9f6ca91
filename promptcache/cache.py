"""Session-scoped cache of immutable prompt fragments.

A :class:`PromptFragmentCache` lives for one multi-chunk processing run. For
every chunk the orchestrator resolves the system prompt and the instruction
template of the chunk's category; each resolution says whether the fragment
has already been sent earlier in the session. Fragments move one way,
``Unseen -> Sent``, and are never evicted: their number is bounded by the
categories in use, not by the number of chunks.

Token accounting is recorded once per chunk, after its fragments have been
resolved. All state changes happen under a single lock so that concurrent
first resolutions of one key cannot both observe ``already_sent=False``.
"""

import logging
import math
import numbers
import threading
from typing import Dict, List, Optional

from promptcache.config import CacheConfig
from promptcache.errors import InvalidArgumentError
from promptcache.fragments import (
    CacheMetrics,
    Fragment,
    FragmentKey,
    FragmentKind,
    Resolution,
    make_key,
)
from promptcache.prompts import DEFAULT_SYSTEM_PROMPT

logger = logging.getLogger(__name__)


class PromptFragmentCache:
    def __init__(
        self,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        config: Optional[CacheConfig] = None,
    ) -> None:
        if not isinstance(system_prompt, str) or not system_prompt.strip():
            raise InvalidArgumentError("System prompt must be a non-empty string.")
        self.system_prompt = system_prompt
        self.config = config or CacheConfig()
        self._lock = threading.RLock()
        self._init_state()

    def _init_state(self) -> None:
        self._fragments: Dict[FragmentKey, Fragment] = {}
        self._chunks = 0
        self._tokens_without_caching = 0.0
        self._tokens_with_caching = 0.0
        self._template_mismatches = 0
        self._chunk_savings: List[float] = []

    # --- Resolution ---

    def resolve_system_prompt(self) -> Resolution:
        """Return the system prompt and whether it was already sent this session."""
        return self.resolve(FragmentKind.SYSTEM_PROMPT, text=self.system_prompt)

    def resolve_instruction_template(self, category: str, template_text: str) -> Resolution:
        """Return the cached template for ``category``; the first text supplied wins."""
        return self.resolve(FragmentKind.INSTRUCTION_TEMPLATE, category, template_text)

    def resolve(
        self,
        kind: FragmentKind,
        category: Optional[str] = None,
        text: Optional[str] = None,
    ) -> Resolution:
        kind = FragmentKind(kind)
        if kind is FragmentKind.SYSTEM_PROMPT:
            category = None
            text = self.system_prompt
        else:
            if not isinstance(category, str) or not category.strip():
                raise InvalidArgumentError("Category must be a non-empty string.")
            if not isinstance(text, str):
                raise InvalidArgumentError(
                    f"Template text for category '{category}' must be a string."
                )

        key = make_key(kind, category)
        cacheable = kind in self.config.eligible_kinds

        with self._lock:
            fragment = self._fragments.get(key)
            if fragment is None:
                fragment = Fragment(kind=kind, category=category, content=text)
                self._fragments[key] = fragment
                logger.debug("Stored new %s fragment (category=%s).", kind.value, category)

            mismatch = text != fragment.content
            if mismatch:
                self._template_mismatches += 1
                logger.warning(
                    "Template mismatch for category '%s': keeping the originally cached text.",
                    category,
                )

            already_sent = fragment.sent
            if already_sent:
                fragment.reuse_count += 1
            elif cacheable:
                fragment.sent = True

            return Resolution(
                text=fragment.content,
                already_sent=already_sent,
                kind=kind,
                category=category,
                template_mismatch=mismatch,
            )

    # --- Accounting ---

    def record_chunk(self, payload_size_if_uncached: float, payload_size_actual: float) -> None:
        """Accumulate one chunk's payload sizes (uncached vs. actually sent)."""
        uncached = self._validate_size("payload_size_if_uncached", payload_size_if_uncached)
        actual = self._validate_size("payload_size_actual", payload_size_actual)
        if actual > uncached:
            raise InvalidArgumentError(
                f"Actual payload size ({actual}) exceeds the uncached size ({uncached})."
            )

        with self._lock:
            self._chunks += 1
            self._tokens_without_caching += uncached
            self._tokens_with_caching += actual
            self._chunk_savings.append(uncached - actual)

    @staticmethod
    def _validate_size(name: str, value: float) -> float:
        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            raise InvalidArgumentError(f"{name} must be a number (received {value!r}).")
        if not math.isfinite(value):
            raise InvalidArgumentError(f"{name} must be finite (received {value!r}).")
        if value < 0:
            raise InvalidArgumentError(f"{name} cannot be negative (received {value!r}).")
        return float(value)

    def metrics(self) -> CacheMetrics:
        with self._lock:
            reuses = {kind: 0 for kind in FragmentKind}
            for fragment in self._fragments.values():
                reuses[fragment.kind] += fragment.reuse_count
            return CacheMetrics(
                chunks=self._chunks,
                tokens_without_caching=self._tokens_without_caching,
                tokens_with_caching=self._tokens_with_caching,
                system_prompt_reuses=reuses[FragmentKind.SYSTEM_PROMPT],
                instruction_template_reuses=reuses[FragmentKind.INSTRUCTION_TEMPLATE],
                template_mismatches=self._template_mismatches,
            )

    def chunk_savings(self) -> List[float]:
        with self._lock:
            return list(self._chunk_savings)

    # --- Inspection ---

    def is_sent(self, kind: FragmentKind, category: Optional[str] = None) -> bool:
        with self._lock:
            fragment = self._fragments.get(make_key(kind, category))
            return bool(fragment and fragment.sent)

    def fragments(self) -> List[Fragment]:
        """Return copies of the stored fragments in creation order."""
        with self._lock:
            return [fragment.model_copy() for fragment in self._fragments.values()]

    def reset(self) -> None:
        """Drop all fragments and counters, starting a new session."""
        with self._lock:
            self._init_state()
        logger.debug("Prompt fragment cache reset.")
