"""
LLM Emulator Case Matcher

Routes free-form input text to the configured case that should answer it.

Features:
- Ordered strategy pipeline, stopping at the first strategy with a result
- Exact (normalized) pattern matching
- Template regex matching with {{var}} extraction
- Fuzzy matching (Jaro-Winkler + token overlap)
- Character n-gram "semantic" matching
- Optional embedding-backed matching through a pluggable Embedder
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..common.text import (
    match_exact,
    norm,
    score_fuzzy,
    score_ngram_semantic,
    tokens,
)
from ..common.utils import maybe_await
from .context import RequestContext
from .embeddings import CachingEmbedder, Embedder, cosine_similarity, placeholderize
from .faults import CaseOptions
from .patterns import (
    PLACEHOLDER,
    compile_template_regex,
    extract_vars_loosely,
    render_template,
    validate_template,
)
from .registry import HandlerRegistry, handlers as default_registry

logger = logging.getLogger('llm_emulator.mock.matcher')

DEFAULT_ORDER = ['pattern-regex', 'semantic-embedding', 'pattern', 'fuzzy', 'semantic-ngrams']

STRATEGY_ALIASES = {'semantic-minilm': 'semantic-embedding'}


class SingleArgumentHandler:
    """Handler for a pattern with exactly one placeholder: fn(value, ctx)."""

    def __init__(self, fn: Callable[..., Any], variable: str):
        self.fn = fn
        self.variable = variable

    async def invoke(self, ctx: RequestContext) -> Any:
        value = (ctx.vars or {}).get(self.variable)
        return await maybe_await(self.fn(value, ctx))

    def __repr__(self) -> str:
        return f'SingleArgumentHandler({getattr(self.fn, "__name__", self.fn)!s}, {self.variable!r})'


class ContextHandler:
    """Handler receiving only the request context: fn(ctx)."""

    def __init__(self, fn: Callable[..., Any]):
        self.fn = fn

    async def invoke(self, ctx: RequestContext) -> Any:
        return await maybe_await(self.fn(ctx))

    def __repr__(self) -> str:
        return f'ContextHandler({getattr(self.fn, "__name__", self.fn)!s})'


def make_handler(fn: Callable[..., Any], pattern: str):
    """
    Pick the handler variant for a pattern once, at registration time.

    Exactly one distinct placeholder selects SingleArgumentHandler; zero or
    several select ContextHandler.
    """
    names = list(dict.fromkeys(PLACEHOLDER.findall(pattern or '')))
    if len(names) == 1:
        return SingleArgumentHandler(fn, names[0])
    return ContextHandler(fn)


def reply_template_handler(template: str) -> ContextHandler:
    """Handler that renders a {{var}} reply template with the extracted vars."""

    def reply(ctx: RequestContext) -> str:
        return render_template(template, ctx.vars)

    reply.__name__ = 'reply_template'
    return ContextHandler(reply)


def static_tokens(pattern: str) -> List[str]:
    """Words longer than 2 characters of a pattern with placeholders removed."""
    return [word for word in tokens(PLACEHOLDER.sub(' ', pattern or '')) if len(word) > 2]


def contains_all_words(text: str, words: List[str]) -> bool:
    """True when every word occurs as a whole token of the normalized text."""
    haystack = set(tokens(text))
    return all(word in haystack for word in words)


@dataclass
class Case:
    """A trigger pattern plus the handler producing its reply."""

    pattern: str
    handler: Any
    options: CaseOptions = field(default_factory=CaseOptions)

    def __post_init__(self):
        validate_template(self.pattern)
        if callable(self.handler) and not hasattr(self.handler, 'invoke'):
            self.handler = make_handler(self.handler, self.pattern)
        self.static_tokens = static_tokens(self.pattern)

    @property
    def id(self) -> Optional[str]:
        return self.options.id

    @classmethod
    def from_dict(cls, data: Dict[str, Any], registry: Optional[HandlerRegistry] = None) -> 'Case':
        """
        Create Case from a config dictionary.

        The handler is a callable, a registry id (`handler`), or an inline
        reply template (`reply`).

        Raises:
            ValueError: If the pattern or handler is missing
            TemplateError: If a placeholder name is repeated
            UnknownHandlerError: If a handler id is not registered
        """
        registry = registry or default_registry

        pattern = data.get('pattern')
        if not isinstance(pattern, str) or not pattern:
            raise ValueError(f"Case is missing a 'pattern': {data!r}")

        options = dict(data.get('options') or {})
        for key in ('id', 'latency', 'faults', 'validate'):
            if key in data:
                options.setdefault(key, data[key])

        if data.get('handler') is not None:
            handler = make_handler(registry.resolve_ref(data['handler']), pattern)
        elif data.get('reply') is not None:
            handler = reply_template_handler(str(data['reply']))
        else:
            raise ValueError(f"Case '{pattern}' needs a 'handler' or a 'reply'")

        return cls(pattern=pattern, handler=handler, options=CaseOptions.from_dict(options))


@dataclass
class MatchResult:
    """Result of routing text to a case."""

    chosen: Optional[Case] = None
    mode: str = 'none'
    score: float = 0.0
    vars: Dict[str, str] = field(default_factory=dict)
    pattern: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.chosen is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'matched': self.matched,
            'mode': self.mode,
            'score': round(self.score, 4),
            'vars': self.vars,
            'pattern': self.pattern,
            'case_id': self.chosen.id if self.chosen else None
        }


@dataclass
class MatchingConfig:
    """Matching strategy order and per-strategy thresholds."""

    order: List[str] = field(default_factory=lambda: list(DEFAULT_ORDER))
    fuzzy_threshold: float = 0.4
    ngrams_threshold: float = 0.3
    embedding_threshold: float = 0.72

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'MatchingConfig':
        data = data or {}
        embedding = data.get('embedding') or data.get('minilm') or {}
        return cls(
            order=list(DEFAULT_ORDER if data.get('order') is None else data['order']),
            fuzzy_threshold=float((data.get('fuzzy') or {}).get('threshold', 0.4)),
            ngrams_threshold=float((data.get('ngrams') or {}).get('threshold', 0.3)),
            embedding_threshold=float(embedding.get('threshold', 0.72))
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'order': list(self.order),
            'fuzzy': {'threshold': self.fuzzy_threshold},
            'ngrams': {'threshold': self.ngrams_threshold},
            'embedding': {'threshold': self.embedding_threshold}
        }


class CaseMatcher:
    """
    Matches input text against configured cases.

    Strategies run in the configured order; the first strategy producing a
    case wins. Unknown strategy names are ignored.

    Example:
        matcher = CaseMatcher(cases, MatchingConfig(order=['pattern-regex', 'fuzzy']))
        result = await matcher.route('hello joe')

        if result.matched:
            reply = await run_handler(result.chosen, ctx)
    """

    def __init__(
        self,
        cases: List[Case],
        matching: Optional[MatchingConfig] = None,
        embedder: Optional[Embedder] = None
    ):
        """
        Initialize case matcher.

        Args:
            cases: Cases in configured order
            matching: Strategy order and thresholds
            embedder: Optional embedder for the semantic-embedding strategy
        """
        self.cases = list(cases or [])
        self.matching = matching or MatchingConfig()
        self.embedder = None
        if embedder is not None:
            self.embedder = embedder if isinstance(embedder, CachingEmbedder) else CachingEmbedder(embedder)

        # Compiled template regexes, built once per case
        self._regexes = [compile_template_regex(case.pattern) for case in self.cases]

        self._strategies = {
            'pattern': self._match_pattern,
            'pattern-regex': self._match_pattern_regex,
            'fuzzy': self._match_fuzzy,
            'semantic-ngrams': self._match_ngrams,
        }

    async def route(self, text: str) -> MatchResult:
        """
        Route input text to a case.

        Args:
            text: Latest user utterance

        Returns:
            MatchResult (mode 'none' when nothing matched)
        """
        if not text or not self.cases:
            return MatchResult()

        for name in self.matching.order:
            strategy = STRATEGY_ALIASES.get(name, name)

            if strategy == 'semantic-embedding':
                result = await self._match_embedding(text)
            elif strategy in self._strategies:
                result = self._strategies[strategy](text)
            else:
                logger.debug(f"Ignoring unknown matching strategy: {name}")
                continue

            if result is not None:
                logger.info(f"match mode={result.mode} score={result.score:.3f} pattern={result.pattern!r}")
                return result

        logger.info(f"match.none text={text[:80]!r}")
        return MatchResult()

    def _match_pattern(self, text: str) -> Optional[MatchResult]:
        """Exact match after normalization; first case wins."""
        for case in self.cases:
            if match_exact(text, case.pattern):
                return MatchResult(
                    chosen=case,
                    mode='pattern',
                    score=1.0,
                    vars=extract_vars_loosely(text, case.pattern),
                    pattern=case.pattern
                )
        return None

    def _match_pattern_regex(self, text: str) -> Optional[MatchResult]:
        """Anchored template regex; first case wins."""
        for case, regex in zip(self.cases, self._regexes):
            variables = regex(text)
            if variables is not None:
                return MatchResult(
                    chosen=case,
                    mode='pattern-regex',
                    score=0.9,
                    vars=variables,
                    pattern=case.pattern
                )
        return None

    def _best_scoring(
        self,
        text: str,
        mode: str,
        scorer: Callable[[str, str], float],
        threshold: float
    ) -> Optional[MatchResult]:
        """Strictly-highest score at or above threshold; ties keep the first."""
        best_score = 0.0
        best_case = None

        for case in self.cases:
            if not contains_all_words(text, case.static_tokens):
                continue

            score = scorer(text, case.pattern)
            if score > best_score and score >= threshold:
                best_score = score
                best_case = case

        if best_case is None:
            return None

        return MatchResult(
            chosen=best_case,
            mode=mode,
            score=best_score,
            vars=extract_vars_loosely(text, best_case.pattern),
            pattern=best_case.pattern
        )

    def _match_fuzzy(self, text: str) -> Optional[MatchResult]:
        return self._best_scoring(text, 'fuzzy', score_fuzzy, self.matching.fuzzy_threshold)

    def _match_ngrams(self, text: str) -> Optional[MatchResult]:
        return self._best_scoring(text, 'semantic-ngrams', score_ngram_semantic, self.matching.ngrams_threshold)

    async def _match_embedding(self, text: str) -> Optional[MatchResult]:
        """Embedding cosine similarity; no-op without an embedder."""
        if self.embedder is None:
            return None

        text_vector = await self.embedder.embed(norm(text))
        best_score = 0.0
        best_case = None

        for case in self.cases:
            if not contains_all_words(text, case.static_tokens):
                continue

            case_vector = await self.embedder.embed(placeholderize(case.pattern))
            score = cosine_similarity(text_vector, case_vector)
            if score > best_score and score >= self.matching.embedding_threshold:
                best_score = score
                best_case = case

        if best_case is None:
            return None

        return MatchResult(
            chosen=best_case,
            mode='semantic-embedding',
            score=best_score,
            vars=extract_vars_loosely(text, best_case.pattern),
            pattern=best_case.pattern
        )


async def route_to_case(text: str, config: Any, embedder: Optional[Embedder] = None) -> MatchResult:
    """
    Route text using a config object exposing `cases` and `matching`.

    Convenience wrapper building a one-off CaseMatcher.
    """
    return await CaseMatcher(config.cases, config.matching, embedder).route(text)


async def run_handler(case: Case, ctx: RequestContext) -> str:
    """
    Invoke a case handler and coerce its result to a string.

    None becomes ''; dicts and lists are serialized as JSON.
    """
    result = await case.handler.invoke(ctx)
    if result is None:
        return ''
    if isinstance(result, (dict, list)):
        return json.dumps(result)
    return str(result)
