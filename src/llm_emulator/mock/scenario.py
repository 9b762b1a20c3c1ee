"""
LLM Emulator Scenario Engine

Scripted multi-turn conversations that short-circuit case matching.

Two scenario shapes:
- Linear: an ordered list of steps, one consumed per request
- Graph: named states with guarded branches chosen from the user's text

Progress is tracked per conversation key (the session header), each key
guarded by its own asyncio.Lock so concurrent requests of one conversation
advance it one at a time.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from ..common.utils import maybe_await
from .context import RequestContext
from .patterns import match_template_loosely, render_template, validate_template
from .registry import HandlerRegistry, handlers as default_registry

logger = logging.getLogger('llm_emulator.mock.scenario')

DEFAULT_SESSION = 'default'


def _delay(data: Dict[str, Any]) -> Optional[int]:
    for key in ('delay_ms', 'delayMs', 'ms'):
        if data.get(key) is not None:
            return int(data[key])
    return None


@dataclass
class ScenarioStep:
    """One scripted turn: a chat reply, a tool result, a wait, or an error."""

    kind: str = 'chat'
    reply: Optional[str] = None
    result: Any = None
    delay_ms: Optional[int] = None
    error: Optional[Dict[str, Any]] = None

    # Filled in for graph steps
    state_id: Optional[str] = None
    vars: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScenarioStep':
        """Create ScenarioStep from dictionary."""
        return cls(
            kind=data.get('kind', 'chat'),
            reply=data.get('reply'),
            result=data.get('result'),
            delay_ms=_delay(data),
            error=data.get('error')
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'reply': self.reply,
            'result': self.result,
            'delay_ms': self.delay_ms,
            'error': self.error,
            'state_id': self.state_id
        }


@dataclass
class BranchTurn:
    """What a dynamic branch reply receives."""

    text: str
    vars: Dict[str, str]
    state_id: str
    branch: 'Branch'
    ctx: RequestContext


@dataclass
class Branch:
    """A conditional transition out of a graph state."""

    when: Optional[str] = None
    guard: Optional[Callable[..., Any]] = None
    kind: str = 'chat'
    reply: Union[str, Callable[..., Any], None] = None
    result: Any = None
    next: Optional[str] = None
    delay_ms: Optional[int] = None
    error: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], registry: Optional[HandlerRegistry] = None) -> 'Branch':
        """
        Create Branch from dictionary.

        `guard` and `reply_handler` may be callables or registry ids.
        """
        registry = registry or default_registry

        when = data.get('when')
        if when is not None:
            validate_template(when)

        reply = data.get('reply')
        reply_handler = data.get('reply_handler', data.get('replyHandler'))
        if reply_handler is not None:
            reply = registry.resolve_ref(reply_handler)

        return cls(
            when=when,
            guard=registry.resolve_ref(data.get('guard')),
            kind=data.get('kind', 'chat'),
            reply=reply,
            result=data.get('result'),
            next=data.get('next'),
            delay_ms=_delay(data),
            error=data.get('error')
        )


@dataclass
class GraphState:
    branches: List[Branch] = field(default_factory=list)
    final: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.final and not self.branches


@dataclass
class LinearScenario:
    id: str
    steps: List[ScenarioStep] = field(default_factory=list)

    mode = 'linear'


@dataclass
class GraphScenario:
    id: str
    start: str
    states: Dict[str, GraphState] = field(default_factory=dict)

    mode = 'graph'


Scenario = Union[LinearScenario, GraphScenario]


def scenario_from_dict(data: Dict[str, Any], registry: Optional[HandlerRegistry] = None) -> Scenario:
    """
    Build a linear or graph scenario from a config dictionary.

    Raises:
        ValueError: If the id is missing or a graph's start state is undefined
    """
    scenario_id = data.get('id')
    if not scenario_id:
        raise ValueError(f"Scenario is missing an 'id': {data!r}")

    if 'states' not in data:
        steps = [ScenarioStep.from_dict(s) for s in data.get('steps', []) or []]
        return LinearScenario(id=scenario_id, steps=steps)

    states = {}
    for state_id, state in (data.get('states') or {}).items():
        state = state or {}
        states[state_id] = GraphState(
            branches=[Branch.from_dict(b, registry) for b in state.get('branches', []) or []],
            final=bool(state.get('final', False))
        )

    start = data.get('start')
    if start not in states:
        raise ValueError(f"Scenario '{scenario_id}' start state '{start}' is not defined")

    return GraphScenario(id=scenario_id, start=start, states=states)


@dataclass
class Session:
    """Progress of one conversation through the active scenario."""

    scenario_id: Optional[str] = None
    mode: str = 'none'
    index: int = 0
    state_id: Optional[str] = None
    done: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'scenario_id': self.scenario_id,
            'mode': self.mode,
            'index': self.index,
            'state_id': self.state_id,
            'done': self.done
        }


class ScenarioEngine:
    """
    Drives the active scenario for each conversation.

    Never raises for missing scenarios, states or branches; those yield
    None (and mark the session done where appropriate).

    Example:
        engine = ScenarioEngine(scenarios, active_id='checkout-flow')
        step = await engine.next_step(ctx, session_id='conv-1')

        if step is not None:
            reply = step.reply
    """

    def __init__(self, scenarios: Optional[List[Scenario]] = None, active_id: Optional[str] = None):
        self.scenarios: Dict[str, Scenario] = {s.id: s for s in scenarios or []}
        self.active_id = active_id
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def active_scenario(self) -> Optional[Scenario]:
        if not self.active_id:
            return None
        return self.scenarios.get(self.active_id)

    def set_active(self, scenario_id: Optional[str]):
        """Select the active scenario (None clears it); sessions reset lazily."""
        self.active_id = scenario_id
        logger.info(f"scenario active={scenario_id}")

    def reset(self, session_id: Optional[str] = None):
        """Clear one session, or all of them when no key is given."""
        if session_id is None:
            self._sessions.clear()
            self._locks = {key: lock for key, lock in self._locks.items() if lock.locked()}
        else:
            self._sessions.pop(session_id, None)
            lock = self._locks.get(session_id)
            if lock is not None and not lock.locked():
                del self._locks[session_id]

    def session(self, session_id: str = DEFAULT_SESSION) -> Optional[Session]:
        return self._sessions.get(session_id)

    def sessions(self) -> Dict[str, Dict[str, Any]]:
        return {key: session.to_dict() for key, session in self._sessions.items()}

    def _lock(self, session_id: str) -> asyncio.Lock:
        if session_id not in self._locks:
            self._locks[session_id] = asyncio.Lock()
        return self._locks[session_id]

    async def next_step(self, ctx: RequestContext, session_id: Optional[str] = None) -> Optional[ScenarioStep]:
        """
        Advance the conversation by one step.

        Args:
            ctx: Request context (ctx.text is used by graph branches)
            session_id: Conversation key (defaults to ctx.session_id)

        Returns:
            The step to answer with, or None when no scenario is active, the
            scenario is finished, or no branch matched
        """
        key = session_id or ctx.session_id or DEFAULT_SESSION

        async with self._lock(key):
            scenario = self.active_scenario()
            if scenario is None:
                return None

            session = self._sessions.get(key)
            if session is None or session.scenario_id != scenario.id:
                session = Session(
                    scenario_id=scenario.id,
                    mode=scenario.mode,
                    state_id=scenario.start if isinstance(scenario, GraphScenario) else None
                )
                self._sessions[key] = session

            if session.done:
                return None

            if isinstance(scenario, GraphScenario):
                return await self._next_graph_step(scenario, session, ctx)
            return await self._next_linear_step(scenario, session)

    async def _next_linear_step(self, scenario: LinearScenario, session: Session) -> Optional[ScenarioStep]:
        steps = scenario.steps

        # Wait steps are slept through and never returned
        while session.index < len(steps) and steps[session.index].kind == 'wait':
            step = steps[session.index]
            logger.info(f"scenario step id={scenario.id} index={session.index} kind=wait ms={step.delay_ms or 0}")
            if step.delay_ms:
                await asyncio.sleep(step.delay_ms / 1000)
            session.index += 1

        if session.index >= len(steps):
            session.done = True
            logger.info(f"scenario complete id={scenario.id}")
            return None

        step = steps[session.index]
        logger.info(f"scenario step id={scenario.id} index={session.index} kind={step.kind}")

        if step.delay_ms:
            await asyncio.sleep(step.delay_ms / 1000)

        session.index += 1
        if session.index >= len(steps):
            session.done = True

        return step

    async def _next_graph_step(
        self,
        scenario: GraphScenario,
        session: Session,
        ctx: RequestContext
    ) -> Optional[ScenarioStep]:
        state = scenario.states.get(session.state_id)
        if state is None or state.is_terminal:
            session.done = True
            logger.info(f"scenario complete id={scenario.id} state={session.state_id}")
            return None

        text = ctx.text or ''
        for branch in state.branches:
            if branch.when is None:
                variables = {}
            else:
                variables = match_template_loosely(text, branch.when)
                if variables is None:
                    continue

            if branch.guard is not None and not await self._guard_allows(scenario, session, branch, variables, ctx):
                continue

            reply = branch.reply
            if callable(reply):
                turn = BranchTurn(text=text, vars=variables, state_id=session.state_id, branch=branch, ctx=ctx)
                reply = await maybe_await(reply(turn))
            elif isinstance(reply, str):
                reply = render_template(reply, variables)

            step = ScenarioStep(
                kind=branch.kind,
                reply=None if reply is None else str(reply),
                result=branch.result,
                delay_ms=branch.delay_ms,
                error=branch.error,
                state_id=session.state_id,
                vars=variables
            )

            if branch.next:
                session.state_id = branch.next
                next_state = scenario.states.get(branch.next)
                if next_state is None or next_state.is_terminal:
                    session.done = True
            elif state.final:
                session.done = True

            logger.info(
                f"scenario step id={scenario.id} state={step.state_id} next={session.state_id} done={session.done}"
            )

            if branch.delay_ms:
                await asyncio.sleep(branch.delay_ms / 1000)

            return step

        logger.info(f"scenario no branch matched id={scenario.id} state={session.state_id}")
        return None

    async def _guard_allows(
        self,
        scenario: GraphScenario,
        session: Session,
        branch: Branch,
        variables: Dict[str, str],
        ctx: RequestContext
    ) -> bool:
        """A guard that raises rejects its branch."""
        try:
            return bool(await maybe_await(branch.guard(variables, ctx)))
        except Exception as e:
            logger.warning(f"scenario guard failed id={scenario.id} state={session.state_id}: {e}")
            return False
