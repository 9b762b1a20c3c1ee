"""
LLM Emulator Request Context

Per-request facts shared by the matcher, fault injector and scenario engine.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class RequestContext:
    """Context for one incoming request, handed to handlers and predicates."""

    env: str = 'local'
    test_tag: Optional[str] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, str] = field(default_factory=dict)
    stream: bool = False

    # Latest user utterance and what the matcher made of it
    text: str = ''
    vars: Dict[str, str] = field(default_factory=dict)
    messages: Optional[List[Any]] = None
    score: float = 0.0
    matched_pattern: Optional[str] = None

    request_id: Optional[str] = None
    session_id: str = 'default'

    # Stream fault selected by the fault injector, applied by the encoder
    fault: Optional[Any] = None

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None
