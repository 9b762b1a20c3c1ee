"""
LLM Emulator Fault Injection

Simulated latency and failures for emulated endpoints.

Features:
- Conditional predicates over env / test tag / provider / model / stream /
  headers / query params
- Per-fault probability (independent trial per matching fault, first wins)
- Mean/p95 latency profiles with conditional overrides and jitter
- HTTP error, timeout, malformed JSON and stream mutation faults
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastapi.responses import JSONResponse, Response

from .context import RequestContext

logger = logging.getLogger('llm_emulator.mock.faults')

HTTP_FAULT_KINDS = {
    'HTTP_400', 'HTTP_401', 'HTTP_403', 'HTTP_404', 'HTTP_409',
    'HTTP_422', 'HTTP_500', 'HTTP_502', 'HTTP_503',
}
STREAM_FAULT_KINDS = {'STREAM_DROP_AFTER', 'STREAM_DUPLICATE_CHUNK'}
FAULT_KINDS = {'TIMEOUT', 'HTTP_429', 'MALFORMED_JSON'} | HTTP_FAULT_KINDS | STREAM_FAULT_KINDS

MALFORMED_JSON_BODY = '{"not":"closed"'

DEFAULT_MEAN_MS = 100
DEFAULT_P95_MS = 300


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key among snake_case / camelCase spellings."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass
class Fault:
    """A configured simulated failure."""

    kind: str
    ratio: float = 1.0
    when: Dict[str, Any] = field(default_factory=dict)
    body: Optional[Any] = None
    retry_after_sec: Optional[int] = None

    # Stream mutation parameters
    after: int = 1
    chunk: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Fault':
        """Create Fault from dictionary."""
        return cls(
            kind=str(data.get('kind', '')).upper(),
            ratio=float(_pick(data, 'ratio', default=1.0)),
            when=data.get('when') or {},
            body=data.get('body'),
            retry_after_sec=_pick(data, 'retry_after_sec', 'retryAfterSec'),
            after=int(_pick(data, 'after', default=1)),
            chunk=int(_pick(data, 'chunk', default=0))
        )


@dataclass
class LatencyOverride:
    """Conditional replacement of a profile's mean/p95."""

    when: Dict[str, Any] = field(default_factory=dict)
    mean_ms: Optional[float] = None
    p95_ms: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LatencyOverride':
        return cls(
            when=data.get('when') or {},
            mean_ms=_pick(data, 'mean_ms', 'meanMs'),
            p95_ms=_pick(data, 'p95_ms', 'p95Ms')
        )


@dataclass
class LatencyProfile:
    """
    Latency profile for a case.

    `distribution` is carried for documentation only; sampling always uses
    the symmetric mean/p95 law in FaultInjector.latency_ms.
    """

    mean_ms: Optional[float] = None
    p95_ms: Optional[float] = None
    jitter_ms: Optional[float] = None
    distribution: Optional[str] = None
    overrides: List[LatencyOverride] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'LatencyProfile':
        data = data or {}
        return cls(
            mean_ms=_pick(data, 'mean_ms', 'meanMs'),
            p95_ms=_pick(data, 'p95_ms', 'p95Ms'),
            jitter_ms=_pick(data, 'jitter_ms', 'jitterMs'),
            distribution=data.get('distribution'),
            overrides=[LatencyOverride.from_dict(o) for o in data.get('overrides', []) or []]
        )


@dataclass
class CaseOptions:
    """Options attached to a case, HTTP mock, or the config defaults."""

    id: Optional[str] = None
    latency: Optional[LatencyProfile] = None
    faults: List[Fault] = field(default_factory=list)
    validate: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'CaseOptions':
        data = data or {}
        latency = data.get('latency')
        if isinstance(latency, dict):
            latency = LatencyProfile.from_dict(latency)
        faults = [
            f if isinstance(f, Fault) else Fault.from_dict(f)
            for f in data.get('faults', []) or []
        ]
        return cls(
            id=data.get('id'),
            latency=latency,
            faults=faults,
            validate=data.get('validate')
        )


def should_apply(when: Optional[Dict[str, Any]], ctx: RequestContext) -> bool:
    """
    Evaluate a `when` predicate against the request context.

    All present conditions must hold; an absent or empty predicate always
    applies. Header names compare case-insensitively.
    """
    if not when:
        return True

    if when.get('env') and ctx.env != when['env']:
        return False
    test_tag = _pick(when, 'test_tag', 'testTag')
    if test_tag and ctx.test_tag != test_tag:
        return False
    if when.get('provider') and ctx.provider != when['provider']:
        return False
    if when.get('model') and ctx.model != when['model']:
        return False
    if isinstance(when.get('stream'), bool) and bool(ctx.stream) != when['stream']:
        return False

    for name, value in (when.get('headers') or {}).items():
        if ctx.header(name) != value:
            return False
    for name, value in (when.get('params') or {}).items():
        if (ctx.params or {}).get(name) != value:
            return False

    return True


class FaultInjector:
    """
    Applies latency and picks/dispatches faults.

    Example:
        injector = FaultInjector(rng=random.Random(42))
        response = await injector.apply_fault_or_latency(case.options, ctx, send)
    """

    def __init__(self, rng: Optional[random.Random] = None):
        """
        Initialize fault injector.

        Args:
            rng: Random source (defaults to the module-level generator)
        """
        self.rng = rng or random.Random()
        self.faults_injected = 0

    def pick_fault(self, faults: Optional[List[Fault]], ctx: RequestContext) -> Optional[Fault]:
        """
        Select a fault: first matching fault whose Bernoulli trial succeeds.

        Each fault whose predicate passes gets one uniform draw and succeeds
        when draw <= ratio. A failed draw moves on to the next fault.
        """
        for fault in faults or []:
            if not should_apply(fault.when, ctx):
                continue
            ratio = 1.0 if fault.ratio is None else fault.ratio
            if ratio <= 0:
                continue
            if self.rng.random() <= ratio:
                return fault
        return None

    def latency_ms(self, profile: Optional[LatencyProfile], ctx: RequestContext) -> int:
        """
        Sample a latency in whole milliseconds.

        base = mean + ((U - 0.5) * (p95 - mean)) / 2, plus U * jitter when
        jitter is set; matching overrides replace mean/p95 in list order
        (last match wins). Never negative.
        """
        profile = profile or LatencyProfile()
        mean = DEFAULT_MEAN_MS if profile.mean_ms is None else profile.mean_ms
        p95 = DEFAULT_P95_MS if profile.p95_ms is None else profile.p95_ms

        for override in profile.overrides:
            if should_apply(override.when, ctx):
                mean = mean if override.mean_ms is None else override.mean_ms
                p95 = p95 if override.p95_ms is None else override.p95_ms

        base = mean + ((self.rng.random() - 0.5) * (p95 - mean)) / 2
        if profile.jitter_ms:
            base += self.rng.random() * profile.jitter_ms

        return max(0, math.floor(base + 0.5))

    async def apply_fault_or_latency(
        self,
        options: Optional[CaseOptions],
        ctx: RequestContext,
        success_sender: Callable[[], Awaitable[Any]]
    ) -> Any:
        """
        Sleep for the sampled latency, then emit a fault or the normal payload.

        Args:
            options: Case options carrying latency profile and faults
            ctx: Request context (tagged with stream faults)
            success_sender: Coroutine factory producing the normal response

        Returns:
            The success sender's result, or a fault Response. TIMEOUT never
            returns.
        """
        options = options or CaseOptions()

        delay = self.latency_ms(options.latency, ctx)
        if delay:
            logger.debug(f"latency {delay}ms provider={ctx.provider} request_id={ctx.request_id}")
            await asyncio.sleep(delay / 1000)

        fault = self.pick_fault(options.faults, ctx)
        if fault is None or fault.kind not in FAULT_KINDS:
            return await success_sender()

        self.faults_injected += 1
        ctx.fault = fault
        logger.warning(f"fault {fault.kind} injected provider={ctx.provider} request_id={ctx.request_id}")

        if fault.kind == 'TIMEOUT':
            # Simulated hang; the client's own deadline ends the request
            await asyncio.Event().wait()

        if fault.kind == 'HTTP_429':
            headers = {}
            if fault.retry_after_sec:
                headers['Retry-After'] = str(fault.retry_after_sec)
            return JSONResponse(
                content={'error': fault.body or {'message': 'rate limited'}},
                status_code=429,
                headers=headers
            )

        if fault.kind in HTTP_FAULT_KINDS:
            code = int(fault.kind.split('_')[1])
            return JSONResponse(
                content=fault.body or {'error': {'message': f'mock error {code}'}},
                status_code=code
            )

        if fault.kind == 'MALFORMED_JSON':
            return Response(content=MALFORMED_JSON_BODY, status_code=200, media_type='application/json')

        # Stream faults: the encoder mutates the stream using ctx.fault
        return await success_sender()
