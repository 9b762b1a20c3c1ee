"""
LLM Emulator Provider Shapes

Request text extraction and response encoding for each emulated provider
wire format, plus SSE chunking for streamed chat completions and
deterministic embedding vectors.
"""

import json
import math
import re
import time
from functools import reduce
from typing import Any, Dict, Iterator, List, Optional

from ..common.utils import new_id
from .faults import Fault

OPENAI_CHAT = 'openai.chat'
OPENAI_RESPONSES = 'openai.responses'
OPENAI_EMBEDDINGS = 'openai.embeddings'
GEMINI = 'gemini.generateContent'

DEFAULT_MODEL = 'llm-emulator'
DEFAULT_EMBEDDING_MODEL = 'llm-emulator-embed'
DEFAULT_GEMINI_MODEL = 'models/gemini-mock'

_UINT32 = 0xFFFFFFFF


def _word_count(text: str) -> int:
    return len((text or '').split())


def _part_text(part: Any) -> str:
    if isinstance(part, str):
        return part
    if isinstance(part, dict):
        return str(part.get('text') or '')
    return ''


def extract_openai_chat_text(body: Dict[str, Any]) -> str:
    """Text of the last user message (content parts joined by spaces)."""
    for message in reversed(body.get('messages') or []):
        if not isinstance(message, dict) or message.get('role') != 'user':
            continue
        content = message.get('content')
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            return ' '.join(_part_text(part) for part in content)
        return ''
    return ''


def extract_responses_text(body: Dict[str, Any]) -> str:
    """Responses API `input`: a string, or a list of strings / text items."""
    value = body.get('input')
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return ' '.join(_part_text(item) for item in value)
    return ''


def extract_gemini_text(body: Dict[str, Any]) -> str:
    """Texts of the first content's parts, joined by spaces."""
    contents = body.get('contents') or []
    if not contents or not isinstance(contents[0], dict):
        return ''
    return ' '.join(_part_text(part) for part in contents[0].get('parts') or [])


def openai_chat_response(model: Optional[str], text: str) -> Dict[str, Any]:
    """OpenAI chat.completion payload."""
    words = _word_count(text)
    return {
        'id': new_id('chatcmpl_mock'),
        'object': 'chat.completion',
        'created': int(time.time()),
        'model': model or DEFAULT_MODEL,
        'choices': [
            {
                'index': 0,
                'message': {'role': 'assistant', 'content': text},
                'finish_reason': 'stop'
            }
        ],
        'usage': {
            'prompt_tokens': 0,
            'completion_tokens': words,
            'total_tokens': words
        }
    }


def responses_response(model: Optional[str], text: str) -> Dict[str, Any]:
    """OpenAI responses API payload."""
    words = _word_count(text)
    return {
        'id': new_id('resp_mock'),
        'object': 'response',
        'created': int(time.time()),
        'model': model or DEFAULT_MODEL,
        'output': [
            {
                'id': new_id('msg_mock'),
                'type': 'message',
                'role': 'assistant',
                'content': [{'type': 'output_text', 'text': text}]
            }
        ],
        'usage': {
            'input_tokens': 0,
            'output_tokens': words,
            'total_tokens': words
        }
    }


def embeddings_response(model: Optional[str], vectors: List[List[float]]) -> Dict[str, Any]:
    """OpenAI embeddings list payload."""
    return {
        'object': 'list',
        'model': model or DEFAULT_EMBEDDING_MODEL,
        'data': [
            {'object': 'embedding', 'index': index, 'embedding': vector}
            for index, vector in enumerate(vectors)
        ]
    }


def gemini_response(model: Optional[str], text: str) -> Dict[str, Any]:
    """Gemini generateContent payload."""
    return {
        'candidates': [
            {
                'content': {'role': 'model', 'parts': [{'text': text}]},
                'finishReason': 'STOP',
                'index': 0
            }
        ],
        'modelVersion': model or DEFAULT_GEMINI_MODEL
    }


def encode_text(provider: str, model: Optional[str], text: str) -> Dict[str, Any]:
    """Encode a plain text reply in the given provider's shape."""
    if provider == OPENAI_RESPONSES:
        return responses_response(model, text)
    if provider == GEMINI:
        return gemini_response(model, text)
    return openai_chat_response(model, text)


def deterministic_embedding(text: str, seed: int, dim: int = 1536) -> List[float]:
    """
    Repeatable unit-norm vector for a text and seed.

    The text hash (djb2, x33) is xor-ed with the seed and drives a 32-bit
    linear congruential generator; components are uniform in [-1, 1] before
    L2 normalization.
    """
    text_hash = reduce(lambda acc, ch: (acc * 33 + ord(ch)) & _UINT32, text, 5381)
    state = ((seed & _UINT32) ^ text_hash) & _UINT32

    values = []
    for _ in range(dim):
        state = (state * 1664525 + 1013904223) & _UINT32
        values.append((state / _UINT32) * 2 - 1)

    length = math.sqrt(sum(v * v for v in values)) or 1
    return [v / length for v in values]


def chat_stream_chunks(model: Optional[str], text: str) -> List[Dict[str, Any]]:
    """
    Split a reply into chat.completion.chunk payloads.

    A role chunk, one content chunk per word (trailing whitespace kept), and
    a final chunk carrying finish_reason.
    """
    completion_id = new_id('chatcmpl_mock')
    created = int(time.time())
    model = model or DEFAULT_MODEL

    def chunk(delta: Dict[str, Any], finish_reason: Optional[str] = None) -> Dict[str, Any]:
        return {
            'id': completion_id,
            'object': 'chat.completion.chunk',
            'created': created,
            'model': model,
            'choices': [{'index': 0, 'delta': delta, 'finish_reason': finish_reason}]
        }

    chunks = [chunk({'role': 'assistant'})]
    chunks.extend(chunk({'content': piece}) for piece in re.findall(r'\s*\S+\s*', text or ''))
    chunks.append(chunk({}, 'stop'))
    return chunks


def sse_events(chunks: List[Dict[str, Any]], fault: Optional[Fault] = None) -> Iterator[str]:
    """
    Server-sent event frames for stream chunks, applying stream faults.

    STREAM_DROP_AFTER stops after `fault.after` chunks without [DONE];
    STREAM_DUPLICATE_CHUNK sends chunk `fault.chunk` twice.
    """
    kind = fault.kind if fault is not None else None

    for index, payload in enumerate(chunks):
        if kind == 'STREAM_DROP_AFTER' and index >= fault.after:
            return

        frame = f'data: {json.dumps(payload)}\n\n'
        yield frame
        if kind == 'STREAM_DUPLICATE_CHUNK' and index == fault.chunk:
            yield frame

    yield 'data: [DONE]\n\n'
