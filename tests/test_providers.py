"""
Tests for LLM Emulator Provider Shapes

Tests request text extraction, response encoding, SSE streaming and
deterministic embeddings.
"""

import json
import math

import pytest

from llm_emulator.mock.faults import Fault
from llm_emulator.mock.providers import (
    DEFAULT_GEMINI_MODEL,
    DEFAULT_MODEL,
    GEMINI,
    OPENAI_CHAT,
    OPENAI_RESPONSES,
    chat_stream_chunks,
    deterministic_embedding,
    embeddings_response,
    encode_text,
    extract_gemini_text,
    extract_openai_chat_text,
    extract_responses_text,
    openai_chat_response,
    sse_events,
)


def _payloads(frames):
    return [json.loads(f[len('data: '):]) for f in frames if f != 'data: [DONE]\n\n']


class TestExtractText:
    """Test request text extraction."""

    def test_last_user_message(self):
        body = {'messages': [
            {'role': 'system', 'content': 'be brief'},
            {'role': 'user', 'content': 'first'},
            {'role': 'assistant', 'content': 'ok'},
            {'role': 'user', 'content': 'second'},
        ]}
        assert extract_openai_chat_text(body) == 'second'

    def test_content_parts_joined(self):
        body = {'messages': [{'role': 'user', 'content': [{'type': 'text', 'text': 'hello'}, 'world']}]}
        assert extract_openai_chat_text(body) == 'hello world'

    def test_no_user_message(self):
        assert extract_openai_chat_text({'messages': [{'role': 'system', 'content': 'x'}]}) == ''
        assert extract_openai_chat_text({}) == ''

    def test_responses_input(self):
        assert extract_responses_text({'input': 'generate code'}) == 'generate code'
        assert extract_responses_text({'input': ['a', {'text': 'b'}]}) == 'a b'
        assert extract_responses_text({}) == ''

    def test_gemini_first_content(self):
        body = {'contents': [
            {'role': 'user', 'parts': [{'text': 'hello'}, {'text': 'there'}]},
            {'role': 'user', 'parts': [{'text': 'ignored'}]},
        ]}
        assert extract_gemini_text(body) == 'hello there'
        assert extract_gemini_text({'contents': []}) == ''


class TestEncodeText:
    """Test response payload shapes."""

    def test_chat_shape(self):
        payload = openai_chat_response('gpt-4o-mini', 'one two three')

        assert payload['object'] == 'chat.completion'
        assert payload['id'].startswith('chatcmpl_mock_')
        assert payload['model'] == 'gpt-4o-mini'
        assert payload['choices'][0]['message'] == {'role': 'assistant', 'content': 'one two three'}
        assert payload['choices'][0]['finish_reason'] == 'stop'
        assert payload['usage'] == {'prompt_tokens': 0, 'completion_tokens': 3, 'total_tokens': 3}

    def test_chat_default_model(self):
        assert openai_chat_response(None, 'x')['model'] == DEFAULT_MODEL

    def test_responses_shape(self):
        payload = encode_text(OPENAI_RESPONSES, None, 'hi there')

        assert payload['object'] == 'response'
        assert payload['output'][0]['content'] == [{'type': 'output_text', 'text': 'hi there'}]
        assert payload['usage']['output_tokens'] == 2

    def test_gemini_shape(self):
        payload = encode_text(GEMINI, None, 'hi')

        assert payload['candidates'][0]['content'] == {'role': 'model', 'parts': [{'text': 'hi'}]}
        assert payload['candidates'][0]['finishReason'] == 'STOP'
        assert payload['modelVersion'] == DEFAULT_GEMINI_MODEL

    def test_chat_is_default(self):
        assert encode_text(OPENAI_CHAT, 'm', 'x')['object'] == 'chat.completion'

    def test_embeddings_shape(self):
        payload = embeddings_response(None, [[0.1, 0.2], [0.3, 0.4]])

        assert payload['object'] == 'list'
        assert [item['index'] for item in payload['data']] == [0, 1]
        assert payload['data'][1]['embedding'] == [0.3, 0.4]


class TestDeterministicEmbedding:
    """Test seeded embedding vectors."""

    def test_dimension_and_unit_norm(self):
        vector = deterministic_embedding('hello', seed=42, dim=64)
        assert len(vector) == 64
        assert math.sqrt(sum(v * v for v in vector)) == pytest.approx(1.0)

    def test_repeatable(self):
        assert deterministic_embedding('hello', 42, 32) == deterministic_embedding('hello', 42, 32)

    def test_seed_and_text_dependent(self):
        base = deterministic_embedding('hello', 42, 32)
        assert deterministic_embedding('hello', 43, 32) != base
        assert deterministic_embedding('hellp', 42, 32) != base

    def test_components_bounded(self):
        assert all(-1.0 <= v <= 1.0 for v in deterministic_embedding('x', 1, 16))


class TestStreaming:
    """Test SSE chunking and stream faults."""

    @pytest.fixture
    def chunks(self):
        return chat_stream_chunks('gpt-4o-mini', 'Hello big world')

    def test_chunk_layout(self, chunks):
        assert chunks[0]['choices'][0]['delta'] == {'role': 'assistant'}
        assert chunks[-1]['choices'][0]['finish_reason'] == 'stop'
        assert chunks[-1]['choices'][0]['delta'] == {}
        assert all(c['object'] == 'chat.completion.chunk' for c in chunks)
        assert len({c['id'] for c in chunks}) == 1

    def test_content_reassembles(self, chunks):
        content = ''.join(c['choices'][0]['delta'].get('content', '') for c in chunks)
        assert content == 'Hello big world'
        assert len(chunks) == 5

    def test_events_end_with_done(self, chunks):
        frames = list(sse_events(chunks))

        assert len(frames) == len(chunks) + 1
        assert frames[-1] == 'data: [DONE]\n\n'
        assert all(f.startswith('data: ') and f.endswith('\n\n') for f in frames)
        assert _payloads(frames) == chunks

    def test_drop_after(self, chunks):
        frames = list(sse_events(chunks, Fault(kind='STREAM_DROP_AFTER', after=2)))

        assert len(frames) == 2
        assert 'data: [DONE]\n\n' not in frames

    def test_duplicate_chunk(self, chunks):
        frames = list(sse_events(chunks, Fault(kind='STREAM_DUPLICATE_CHUNK', chunk=1)))

        assert len(frames) == len(chunks) + 2
        assert frames[1] == frames[2]
        assert frames[-1] == 'data: [DONE]\n\n'

    def test_non_stream_fault_ignored(self, chunks):
        frames = list(sse_events(chunks, Fault(kind='HTTP_500')))
        assert len(frames) == len(chunks) + 1
