"""
LLM Emulator Mock Module

The decision engine behind the emulated endpoints.

This module provides:
- Template patterns and case matching
- Latency and fault injection
- Linear and graph scenarios
- Handler registry and pluggable embedders
- Provider shapes, contracts and cassettes

The FastAPI server lives in llm_emulator.mock.server.
"""

from .context import RequestContext
from .patterns import (
    TemplateError,
    render_template,
    extract_vars_loosely,
    match_template_loosely,
    compile_template_regex
)
from .matcher import (
    Case,
    CaseMatcher,
    ContextHandler,
    MatchResult,
    MatchingConfig,
    SingleArgumentHandler,
    route_to_case,
    run_handler
)
from .faults import CaseOptions, Fault, FaultInjector, LatencyProfile, should_apply
from .scenario import (
    Branch,
    GraphScenario,
    LinearScenario,
    ScenarioEngine,
    ScenarioStep,
    Session
)
from .registry import HandlerRegistry, UnknownHandlerError, handlers
from .embeddings import Embedder, NgramEmbedder
from .contracts import ContractValidator, ContractViolation
from .recorder import CassetteRecorder

__all__ = [
    # Context
    'RequestContext',

    # Patterns
    'TemplateError',
    'render_template',
    'extract_vars_loosely',
    'match_template_loosely',
    'compile_template_regex',

    # Matcher
    'Case',
    'CaseMatcher',
    'ContextHandler',
    'MatchResult',
    'MatchingConfig',
    'SingleArgumentHandler',
    'route_to_case',
    'run_handler',

    # Faults
    'CaseOptions',
    'Fault',
    'FaultInjector',
    'LatencyProfile',
    'should_apply',

    # Scenarios
    'Branch',
    'GraphScenario',
    'LinearScenario',
    'ScenarioEngine',
    'ScenarioStep',
    'Session',

    # Registry and embedders
    'HandlerRegistry',
    'UnknownHandlerError',
    'handlers',
    'Embedder',
    'NgramEmbedder',

    # Contracts and cassettes
    'ContractValidator',
    'ContractViolation',
    'CassetteRecorder',
]
