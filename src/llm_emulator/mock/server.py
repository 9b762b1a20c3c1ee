"""
LLM Emulator Server

FastAPI-based HTTP server emulating LLM provider APIs.

Features:
- OpenAI chat completions (JSON and SSE streaming), responses, embeddings
- Gemini generateContent
- Scripted scenarios keyed by conversation id
- Latency and fault injection per case
- Generic HTTP mocks with ":param" paths
- Contract validation, cassette recording and replay
- Admin API for metrics, config and scenario control
"""

from __future__ import annotations  # Enable forward references for type hints

import asyncio
import json
import logging
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from ..common.url_utils import find_http_mock
from ..common.utils import maybe_await, safe_json_parse
from .context import RequestContext
from .contracts import ContractValidator, ContractViolation
from .embeddings import Embedder
from .faults import CaseOptions, FaultInjector
from .matcher import Case, CaseMatcher, run_handler
from .providers import (
    GEMINI,
    OPENAI_CHAT,
    OPENAI_EMBEDDINGS,
    OPENAI_RESPONSES,
    DEFAULT_EMBEDDING_MODEL,
    DEFAULT_GEMINI_MODEL,
    DEFAULT_MODEL,
    chat_stream_chunks,
    deterministic_embedding,
    embeddings_response,
    encode_text,
    extract_gemini_text,
    extract_openai_chat_text,
    extract_responses_text,
    sse_events,
)
from .recorder import CassetteRecorder
from .scenario import ScenarioEngine, ScenarioStep

if TYPE_CHECKING:
    from ..config import EmulatorConfig

CONTRACT_NAMES = {
    OPENAI_CHAT: 'openai.chat.completions',
    OPENAI_RESPONSES: 'openai.responses',
    OPENAI_EMBEDDINGS: 'openai.embeddings',
    GEMINI: 'gemini.generateContent',
}


@dataclass
class EmulatorMetrics:
    """Track emulator metrics."""

    total_requests: int = 0
    llm_requests: int = 0
    matched_requests: int = 0
    unmatched_requests: int = 0
    scenario_steps: int = 0
    http_mock_requests: int = 0
    cassette_replays: int = 0
    start_time: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        uptime_seconds = (datetime.now() - datetime.fromisoformat(self.start_time)).total_seconds()
        routed = self.matched_requests + self.unmatched_requests
        return {
            'total_requests': self.total_requests,
            'llm_requests': self.llm_requests,
            'matched_requests': self.matched_requests,
            'unmatched_requests': self.unmatched_requests,
            'scenario_steps': self.scenario_steps,
            'http_mock_requests': self.http_mock_requests,
            'cassette_replays': self.cassette_replays,
            'match_rate': round((self.matched_requests / routed * 100) if routed > 0 else 0, 2),
            'uptime_seconds': round(uptime_seconds, 2),
            'start_time': self.start_time
        }


class EmulatorServer:
    """
    FastAPI-based emulator for LLM provider APIs.

    Example:
        config = load_config('config.yaml')
        server = EmulatorServer(config)
        server.start()

        # In tests
        client = TestClient(EmulatorServer(config).app)
    """

    def __init__(
        self,
        config: Optional[EmulatorConfig] = None,
        embedder: Optional[Embedder] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize emulator server.

        Args:
            config: Emulator configuration (defaults if None)
            embedder: Optional embedder for the semantic-embedding strategy
            rng: Random source for latency/faults (seeded from config.seed if None)
        """
        if config is None:
            from ..config import EmulatorConfig
            config = EmulatorConfig()

        self.config = config
        self.metrics = EmulatorMetrics()

        self.logger = logging.getLogger('llm_emulator.mock')
        self.logger.setLevel(getattr(logging, self.config.log_level.upper(), logging.INFO))

        self.matcher = CaseMatcher(config.cases, config.matching, embedder)
        self.scenarios = ScenarioEngine(config.scenarios, config.use_scenario)
        self.injector = FaultInjector(rng or random.Random(config.seed))
        self.contracts = ContractValidator(config.contracts.mode)
        self.recorder = None
        if config.vcr.enabled:
            self.recorder = CassetteRecorder(config.vcr.cassette_dir, config.vcr.redact)

        # Setup FastAPI app
        self.app = self._create_app()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application with routes."""
        app = FastAPI(
            title="LLM Emulator",
            description="Deterministic emulator for LLM provider HTTP APIs",
            version="1.0.0"
        )

        @app.middleware("http")
        async def add_request_id(request: Request, call_next):
            request.state.request_id = str(uuid.uuid4())
            response = await call_next(request)
            response.headers['x-request-id'] = request.state.request_id
            return response

        @app.exception_handler(ContractViolation)
        async def contract_violation(request: Request, exc: ContractViolation):
            self.logger.error(f"contracts.strict {exc}")
            return JSONResponse(
                content={'error': {'message': str(exc), 'type': 'contract_violation'}},
                status_code=500
            )

        @app.get("/health")
        async def health():
            return {'ok': True, 'env': self.config.env}

        # Admin API routes
        if self.config.server.admin_enabled:
            self._add_admin_routes(app, self.config.server.admin_prefix)

        # Provider routes
        async def openai_chat(request: Request):
            return await self._handle_llm(request, OPENAI_CHAT, extract_openai_chat_text)

        async def openai_responses(request: Request):
            return await self._handle_llm(request, OPENAI_RESPONSES, extract_responses_text)

        async def gemini(request: Request, model: str):
            return await self._handle_llm(request, GEMINI, extract_gemini_text, model=model)

        for path in ("/v1/chat/completions", "/chat/completions"):
            app.add_api_route(path, openai_chat, methods=["POST"])
        for path in ("/v1/responses", "/responses"):
            app.add_api_route(path, openai_responses, methods=["POST"])
        for version in ("v1", "v1alpha", "v1beta"):
            app.add_api_route(f"/{version}/models/{{model}}:generateContent", gemini, methods=["POST"])

        @app.post("/v1/embeddings")
        async def embeddings(request: Request):
            return await self._handle_embeddings(request)

        # Catch-all route for generic HTTP mocks
        @app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"])
        async def http_mock(request: Request, path: str):
            return await self._handle_http_mock(request, path)

        return app

    def _add_admin_routes(self, app: FastAPI, prefix: str):
        @app.get(f"{prefix}/metrics")
        async def get_metrics():
            """Get server metrics."""
            content = self.metrics.to_dict()
            content['faults_injected'] = self.injector.faults_injected
            content['contract_violations'] = self.contracts.violations
            content['cassette_writes'] = self.recorder.recorded if self.recorder else 0
            return JSONResponse(content=content)

        @app.post(f"{prefix}/reset")
        async def reset_metrics():
            """Reset metrics."""
            self.metrics = EmulatorMetrics()
            self.injector.faults_injected = 0
            self.contracts.violations = 0
            return JSONResponse(content={'status': 'reset'})

        @app.get(f"{prefix}/config")
        async def get_config():
            """Get current configuration."""
            return JSONResponse(content=self.config.to_dict())

        @app.get(f"{prefix}/scenario")
        async def get_scenario():
            """Active scenario and per-conversation progress."""
            return JSONResponse(content={
                'active': self.scenarios.active_id,
                'available': sorted(self.scenarios.scenarios),
                'sessions': self.scenarios.sessions()
            })

        @app.post(f"{prefix}/scenario")
        async def set_scenario(request: Request):
            """Select the active scenario ({"id": ...}; null clears it)."""
            body = safe_json_parse(await request.body(), default={}) or {}
            scenario_id = body.get('id') if isinstance(body, dict) else None

            if scenario_id is not None and scenario_id not in self.scenarios.scenarios:
                return JSONResponse(
                    content={'error': {'message': f"Unknown scenario '{scenario_id}'"}},
                    status_code=404
                )

            self.scenarios.set_active(scenario_id)
            return JSONResponse(content={'status': 'updated', 'active': scenario_id})

        @app.post(f"{prefix}/scenario/reset")
        async def reset_scenario(request: Request):
            """Reset one conversation ({"session": ...}) or all of them."""
            body = safe_json_parse(await request.body(), default={}) or {}
            session_id = body.get('session') if isinstance(body, dict) else None
            self.scenarios.reset(session_id)
            return JSONResponse(content={'status': 'reset', 'session': session_id})

        @app.get(f"{prefix}/recordings")
        async def get_recordings():
            """List cassette files."""
            return JSONResponse(content={
                'enabled': self.config.vcr.enabled,
                'mode': self.config.vcr.mode,
                'cassette_dir': self.config.vcr.cassette_dir,
                'cassettes': self.recorder.list_cassettes() if self.recorder else []
            })

    async def _json_body(self, request: Request) -> Dict[str, Any]:
        body = safe_json_parse(await request.body(), default={})
        return body if isinstance(body, dict) else {}

    def _context(self, request: Request, provider: str, model: str, text: str, stream: bool) -> RequestContext:
        headers = dict(request.headers)
        return RequestContext(
            env=self.config.env,
            test_tag=self.config.test_tag,
            provider=provider,
            model=model,
            headers=headers,
            params=dict(request.query_params),
            stream=stream,
            text=text,
            request_id=getattr(request.state, 'request_id', None),
            session_id=request.headers.get(self.config.server.session_header) or 'default'
        )

    async def _handle_llm(
        self,
        request: Request,
        provider: str,
        extract_text: Callable[[Dict[str, Any]], str],
        model: Optional[str] = None
    ) -> Response:
        """
        Handle one LLM request: scenario step, or matched case, or fallback.

        Args:
            request: FastAPI Request object
            provider: Provider identifier (e.g. 'openai.chat')
            extract_text: Extracts the latest user utterance from the body
            model: Model from the URL path (Gemini)

        Returns:
            FastAPI Response in the provider's wire shape
        """
        self.metrics.total_requests += 1
        self.metrics.llm_requests += 1

        body = await self._json_body(request)
        contract = CONTRACT_NAMES[provider]
        self.contracts.validate('request', f'{contract}.request', body)

        default_model = DEFAULT_GEMINI_MODEL if provider == GEMINI else DEFAULT_MODEL
        model = model or body.get('model') or default_model
        stream = bool(body.get('stream', self.config.server.stream))
        text = extract_text(body) or ''

        ctx = self._context(request, provider, model, text, stream)
        ctx.messages = body.get('messages')
        self.logger.info(f"req.in provider={provider} request_id={ctx.request_id} model={model} text={text[:80]!r}")

        endpoint = request.url.path
        if self.recorder is not None and self.config.vcr.mode == 'replay':
            cached = await asyncio.to_thread(self.recorder.lookup, endpoint, body)
            if cached is not None:
                self.metrics.cassette_replays += 1
                self.logger.info(f"cassette replay endpoint={endpoint}")
                return JSONResponse(content=cached)

        step = await self.scenarios.next_step(ctx, ctx.session_id)
        if step is not None:
            self.metrics.scenario_steps += 1

            async def send_step():
                return await self._send_step(step, endpoint, body, ctx)

            return await self.injector.apply_fault_or_latency(self.config.defaults.options, ctx, send_step)

        match = await self.matcher.route(text)
        if match.chosen is None:
            self.metrics.unmatched_requests += 1
            options = self.config.defaults.options
        else:
            self.metrics.matched_requests += 1
            ctx.vars = match.vars
            ctx.score = match.score
            ctx.matched_pattern = match.pattern
            options = match.chosen.options

        async def send():
            reply, validate_mode = await self._reply(match.chosen, ctx)
            return await self._send_text(reply, endpoint, body, ctx, validate_mode)

        return await self.injector.apply_fault_or_latency(options, ctx, send)

    async def _reply(self, case: Optional[Case], ctx: RequestContext) -> Tuple[str, Optional[str]]:
        """Handler output (or fallback text) and the case's contract mode override."""
        if case is None:
            return self.config.defaults.fallback, None
        reply = await run_handler(case, ctx)
        return reply, (case.options.validate or {}).get('mode')

    async def _send_step(
        self,
        step: ScenarioStep,
        endpoint: str,
        body: Dict[str, Any],
        ctx: RequestContext
    ) -> Response:
        if step.error:
            code = int(step.error.get('code', 500))
            content = step.error.get('body') or {'error': {'message': f'mock error {code}'}}
            self.logger.info(f"scenario error step status={code}")
            return JSONResponse(content=content, status_code=code)

        if step.kind == 'tools':
            text = json.dumps(step.result)
        else:
            text = step.reply or 'OK'
        return await self._send_text(text, endpoint, body, ctx)

    async def _send_text(
        self,
        text: str,
        endpoint: str,
        body: Dict[str, Any],
        ctx: RequestContext,
        validate_mode: Optional[str] = None
    ) -> Response:
        """Encode, validate and record a text reply."""
        if ctx.stream and ctx.provider == OPENAI_CHAT:
            chunks = chat_stream_chunks(ctx.model, text)
            return StreamingResponse(sse_events(chunks, ctx.fault), media_type='text/event-stream')

        payload = encode_text(ctx.provider, ctx.model, text)
        self.contracts.validate('response', f'{CONTRACT_NAMES[ctx.provider]}.response', payload, validate_mode)
        await self._record(endpoint, ctx.provider, body, payload)
        return JSONResponse(content=payload)

    async def _record(self, endpoint: str, provider: str, request_body: Any, payload: Any, status: int = 200):
        if self.recorder is None or self.config.vcr.mode != 'record':
            return
        await asyncio.to_thread(self.recorder.record, {
            'endpoint': endpoint,
            'provider': provider,
            'request': request_body,
            'response': payload,
            'status': status
        })

    async def _handle_embeddings(self, request: Request) -> Response:
        """Deterministic embeddings for each input string."""
        self.metrics.total_requests += 1
        self.metrics.llm_requests += 1

        body = await self._json_body(request)
        self.contracts.validate('request', 'openai.embeddings.request', body)

        model = body.get('model') or DEFAULT_EMBEDDING_MODEL
        dim = int(body.get('dimensions') or self.config.embedding_dim)
        inputs = body.get('input')
        if not isinstance(inputs, list):
            inputs = [inputs]

        vectors = [
            deterministic_embedding('' if value is None else str(value), self.config.seed, dim)
            for value in inputs
        ]
        payload = embeddings_response(model, vectors)
        self.contracts.validate('response', 'openai.embeddings.response', payload)
        self.logger.info(f"req.in provider={OPENAI_EMBEDDINGS} inputs={len(vectors)} dim={dim}")

        await self._record(request.url.path, OPENAI_EMBEDDINGS, body, payload)
        return JSONResponse(content=payload)

    async def _handle_http_mock(self, request: Request, path: str) -> Response:
        """
        Dispatch a generic HTTP mock, or answer 404.

        Args:
            request: FastAPI Request object
            path: Request path

        Returns:
            Handler body as JSON (wrapped by latency/faults)
        """
        self.metrics.total_requests += 1
        method = request.method
        found = find_http_mock(self.config.http_mocks, method, f'/{path}')

        if found is None:
            self.logger.warning(f"No HTTP mock for {method} /{path}")
            return JSONResponse(
                content={'error': {'message': f'No mock for {method} /{path}', 'type': 'not_found'}},
                status_code=404
            )

        self.metrics.http_mock_requests += 1
        query = dict(request.query_params)
        ctx = RequestContext(
            env=self.config.env,
            test_tag=self.config.test_tag,
            provider='http',
            headers=dict(request.headers),
            params=query,
            vars=found.params,
            request_id=getattr(request.state, 'request_id', None)
        )
        normalized = {
            'method': method,
            'path': f'/{path}',
            'params': found.params,
            'query': query,
            'headers': ctx.headers,
            'body': safe_json_parse(await request.body())
        }

        mock = found.mock
        status = int(mock.options.get('status', 200))

        async def send():
            result = await maybe_await(mock.handler(normalized, ctx))
            return JSONResponse(content=result, status_code=status)

        return await self.injector.apply_fault_or_latency(CaseOptions.from_dict(mock.options), ctx, send)

    def start(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        access_log: bool = True
    ):
        """
        Start the emulator server.

        Args:
            host: Host to bind to (overrides config)
            port: Port to bind to (overrides config)
            access_log: Enable access logging
        """
        actual_host = host or self.config.server.host
        actual_port = port or self.config.server.port

        print("LLM Emulator starting...")
        print(f"   Host: {actual_host}:{actual_port} ({self.config.env})")
        print(f"   Cases: {len(self.config.cases)} | Scenarios: {len(self.config.scenarios)} | HTTP mocks: {len(self.config.http_mocks)}")
        print(f"   Matching order: {', '.join(self.config.matching.order)}")
        if self.config.use_scenario:
            print(f"   Active scenario: {self.config.use_scenario}")
        if self.config.server.admin_enabled:
            print(f"   Admin API: http://{actual_host}:{actual_port}{self.config.server.admin_prefix}/metrics")
        print()

        uvicorn.run(
            self.app,
            host=actual_host,
            port=actual_port,
            log_level=self.config.log_level,
            access_log=access_log
        )

    def get_app(self) -> FastAPI:
        """
        Get the FastAPI app instance for testing or custom deployment.

        Returns:
            FastAPI application instance
        """
        return self.app


def create_emulator_server(
    config_path: Optional[str] = None,
    env: Optional[str] = None,
    seed: Optional[int] = None,
    test_tag: Optional[str] = None,
    port: Optional[int] = None,
    use_scenario: Optional[str] = None,
    embedder: Optional[Embedder] = None
) -> EmulatorServer:
    """
    Convenience function to load a config file and build a server.

    Args:
        config_path: YAML or Python config file (defaults if None)
        env: Environment name override
        seed: Random seed override
        test_tag: Test tag override
        port: Port override
        use_scenario: Active scenario override
        embedder: Optional embedder for semantic-embedding matching

    Returns:
        Configured EmulatorServer instance

    Example:
        server = create_emulator_server('config.yaml', env='chaos', port=11434)
        server.start()
    """
    from ..config import EmulatorConfig, apply_env_overrides, load_config

    config = load_config(config_path) if config_path else EmulatorConfig()
    config = apply_env_overrides(
        config,
        env=env,
        seed=seed,
        test_tag=test_tag,
        port=port,
        use_scenario=use_scenario
    )
    return EmulatorServer(config, embedder=embedder)
