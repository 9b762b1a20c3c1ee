"""
LLM Emulator URL Utilities

Path template matching and generic HTTP mock resolution.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional


@dataclass
class HttpMock:
    """A generic (non-LLM) HTTP mock: method + ":param" path template."""

    method: str
    path: str
    handler: Callable[..., Any]
    options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], handler: Callable[..., Any]) -> 'HttpMock':
        """Create HttpMock from a config dictionary ({match: {method, path}, ...})."""
        match = data.get('match', data)
        return cls(
            method=(match.get('method') or '').upper(),
            path=match.get('path', ''),
            handler=handler,
            options=data.get('options', {}) or {}
        )


@dataclass
class HttpMockMatch:
    """Result of resolving a request against configured HTTP mocks."""

    mock: HttpMock
    params: Dict[str, str]


def _segments(path: str) -> List[str]:
    normalized = path if path.startswith('/') else f'/{path}'
    return [s for s in normalized.split('/') if s]


def match_path_pattern(pattern: str, actual_path: str) -> Optional[Dict[str, Dict[str, str]]]:
    """
    Match a path against a ":name" segment template.

    Args:
        pattern: Path template, e.g. "/users/:id"
        actual_path: Request path, e.g. "/users/42"

    Returns:
        {"params": {...}} on success, None when segment counts differ or a
        literal segment is not byte-equal

    Example:
        match_path_pattern("/users/:id", "/users/42")
        # {'params': {'id': '42'}}
    """
    pattern_segments = _segments(pattern)
    path_segments = _segments(actual_path)

    if len(pattern_segments) != len(path_segments):
        return None

    params = {}
    for expected, actual in zip(pattern_segments, path_segments):
        if expected.startswith(':'):
            params[expected[1:]] = actual
        elif expected != actual:
            return None

    return {'params': params}


def find_http_mock(mocks: List[HttpMock], method: str, path: str) -> Optional[HttpMockMatch]:
    """
    Find the first configured mock whose method and path match.

    A mock without a method matches any method; a mock without a path never
    matches. Callers treat None as a 404.

    Args:
        mocks: HTTP mocks in configured order
        method: Request method (case-insensitive)
        path: Request path

    Returns:
        HttpMockMatch or None
    """
    wanted_method = (method or '').upper()
    path = path or '/'

    for mock in mocks or []:
        if mock.method and mock.method.upper() != wanted_method:
            continue
        if not mock.path:
            continue

        result = match_path_pattern(mock.path, path)
        if result is None:
            continue

        return HttpMockMatch(mock=mock, params=result['params'])

    return None
