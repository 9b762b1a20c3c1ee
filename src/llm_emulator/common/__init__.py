"""
LLM Emulator Common Utilities

Shared text, URL and helper utilities used across emulator modules.
"""

from .text import norm, tokens, jaro_winkler, tok_overlap_score, score_fuzzy, score_ngram_semantic
from .url_utils import HttpMock, HttpMockMatch, match_path_pattern, find_http_mock
from .utils import new_id, safe_json_parse, maybe_await, env_setting

__all__ = [
    'norm',
    'tokens',
    'jaro_winkler',
    'tok_overlap_score',
    'score_fuzzy',
    'score_ngram_semantic',
    'HttpMock',
    'HttpMockMatch',
    'match_path_pattern',
    'find_http_mock',
    'new_id',
    'safe_json_parse',
    'maybe_await',
    'env_setting'
]
