"""
Helpers for writing emulator configuration in Python.

Example (config.py):
    from llm_emulator.config import define, case_when, scenario

    config = define({
        'cases': [
            case_when('what is the capital city of {{state}}', capital, id='capital'),
        ],
        'scenarios': [
            scenario('checkout', steps=[{'kind': 'chat', 'reply': 'Which size?'}]),
        ],
    })
"""

from typing import Any, Callable, Dict, Optional, Union

from ..common.url_utils import HttpMock
from ..mock.faults import CaseOptions
from ..mock.matcher import Case, make_handler
from ..mock.registry import HandlerRegistry, handlers as default_registry
from ..mock.scenario import Scenario, scenario_from_dict
from .emulator_config import EmulatorConfig


def define(config: Dict[str, Any], registry: Optional[HandlerRegistry] = None) -> EmulatorConfig:
    """Build an EmulatorConfig from a dictionary (cases may be prebuilt)."""
    return EmulatorConfig.from_dict(config, registry)


def case_when(
    pattern: str,
    handler: Union[str, Callable[..., Any]],
    registry: Optional[HandlerRegistry] = None,
    **options: Any
) -> Case:
    """
    Case for a pattern answered by a callable or a registered handler id.

    Keyword options: id, latency, faults, validate.
    """
    fn = (registry or default_registry).resolve_ref(handler)
    return Case(pattern=pattern, handler=make_handler(fn, pattern), options=CaseOptions.from_dict(options))


def scenario(scenario_id: str, registry: Optional[HandlerRegistry] = None, **definition: Any) -> Scenario:
    """Linear (steps=...) or graph (start=..., states=...) scenario."""
    return scenario_from_dict({'id': scenario_id, **definition}, registry)


def http_when(
    match: Dict[str, str],
    handler: Union[str, Callable[..., Any]],
    registry: Optional[HandlerRegistry] = None,
    **options: Any
) -> HttpMock:
    """Generic HTTP mock: match={'method': 'GET', 'path': '/users/:id'}."""
    fn = (registry or default_registry).resolve_ref(handler)
    return HttpMock.from_dict({'match': match, 'options': options}, fn)
