"""
Tests for LLM Emulator Server

Tests the FastAPI-based emulator including:
- Provider endpoints (chat, responses, Gemini, embeddings)
- SSE streaming and stream faults
- Scenario progression keyed by conversation id
- Generic HTTP mocks
- Contract validation and cassette recording/replay
- Admin API endpoints
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

try:
    from fastapi.testclient import TestClient
    FASTAPI_AVAILABLE = True
except ImportError:
    FASTAPI_AVAILABLE = False

from llm_emulator.config import EmulatorConfig
from llm_emulator.mock.recorder import CassetteRecorder
from llm_emulator.mock.server import EmulatorMetrics, EmulatorServer, create_emulator_server


pytestmark = pytest.mark.skipif(not FASTAPI_AVAILABLE, reason="FastAPI not installed")

ZERO = {'mean_ms': 0, 'p95_ms': 0}


def capital(state, ctx):
    return {'nj': 'Trenton', 'ny': 'Albany'}.get((state or '').lower(), 'Mock Capital')


def get_user(request, ctx):
    return {'id': request['params']['id'], 'name': 'Mock User'}


def _config(**overrides):
    """Emulator config without simulated latency."""
    data = {
        'env': 'test',
        'seed': 42,
        'matching': {'order': ['pattern-regex', 'pattern', 'fuzzy', 'semantic-ngrams']},
        'cases': [
            {'id': 'capital', 'pattern': 'what is the capital city of {{state}}', 'handler': capital, 'latency': ZERO},
            {'id': 'gen-code', 'pattern': 'generate code', 'reply': "print('test')", 'latency': ZERO},
            {'id': 'boom', 'pattern': 'break please', 'reply': 'never', 'latency': ZERO,
             'faults': [{'kind': 'HTTP_503'}]},
            {'id': 'drop', 'pattern': 'drop the stream', 'reply': 'one two three four', 'latency': ZERO,
             'faults': [{'kind': 'STREAM_DROP_AFTER', 'after': 2}]},
        ],
        'scenarios': [
            {
                'id': 'checkout',
                'steps': [
                    {'kind': 'chat', 'reply': 'Which size?'},
                    {'kind': 'tools', 'result': {'sku': 'RJ-001'}},
                    {'kind': 'chat', 'error': {'code': 502, 'body': {'error': 'gateway_unavailable'}}},
                ]
            }
        ],
        'http_mocks': [
            {'match': {'method': 'GET', 'path': '/users/:id'}, 'handler': get_user, 'options': {'latency': ZERO}},
            {'match': {'method': 'POST', 'path': '/items'}, 'options': {'latency': ZERO},
             'response': {'status': 201, 'body': {'created': True}}},
        ],
        'defaults': {'fallback': 'no mock', 'latency': ZERO},
        'embeddings': {'dim': 8},
    }
    data.update(overrides)
    return EmulatorConfig.from_dict(data)


def _chat(text, **extra):
    return {'model': 'gpt-4o-mini', 'messages': [{'role': 'user', 'content': text}], **extra}


def _content(response):
    return response.json()['choices'][0]['message']['content']


def _frames(response):
    return [frame for frame in response.text.split('\n\n') if frame]


@pytest.fixture
def server():
    return EmulatorServer(_config())


@pytest.fixture
def client(server):
    return TestClient(server.app)


class TestEmulatorMetrics:
    """Test EmulatorMetrics dataclass."""

    def test_metrics_initialization(self):
        metrics = EmulatorMetrics()
        assert metrics.total_requests == 0
        assert metrics.matched_requests == 0
        assert metrics.start_time is not None

    def test_metrics_to_dict(self):
        metrics = EmulatorMetrics(matched_requests=3, unmatched_requests=1)
        result = metrics.to_dict()

        assert result['match_rate'] == 75.0
        assert 'uptime_seconds' in result

    def test_match_rate_without_requests(self):
        assert EmulatorMetrics().to_dict()['match_rate'] == 0


class TestEmulatorServer:
    """Test server construction."""

    def test_defaults(self):
        server = EmulatorServer()
        assert server.config.server.port == 11434
        assert server.recorder is None

    def test_get_app(self, server):
        assert server.get_app() is server.app

    def test_create_emulator_server(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text('env: local\ncases:\n  - {pattern: ping, reply: pong}\n')

        server = create_emulator_server(str(path), env='chaos', port=9999)

        assert server.config.env == 'chaos'
        assert server.config.server.port == 9999
        assert len(server.config.cases) == 1

    def test_start_runs_uvicorn(self, server):
        with patch('llm_emulator.mock.server.uvicorn.run') as run:
            server.start(host='0.0.0.0', port=8080)

        run.assert_called_once()
        assert run.call_args.kwargs['host'] == '0.0.0.0'
        assert run.call_args.kwargs['port'] == 8080


class TestProviderEndpoints:
    """Test emulated provider endpoints."""

    def test_health(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.json() == {'ok': True, 'env': 'test'}

    def test_request_id_header(self, client):
        response = client.get('/health')
        assert response.headers['x-request-id']

    def test_chat_matched_case(self, client):
        response = client.post('/v1/chat/completions', json=_chat('what is the capital city of nj'))

        assert response.status_code == 200
        payload = response.json()
        assert payload['object'] == 'chat.completion'
        assert payload['model'] == 'gpt-4o-mini'
        assert _content(response) == 'Trenton'

    def test_chat_without_version_prefix(self, client):
        response = client.post('/chat/completions', json=_chat('generate code'))
        assert _content(response) == "print('test')"

    def test_chat_fallback(self, client, server):
        response = client.post('/v1/chat/completions', json=_chat('tell me a joke'))

        assert response.status_code == 200
        assert _content(response) == 'no mock'
        assert server.metrics.unmatched_requests == 1

    def test_responses(self, client):
        response = client.post('/v1/responses', json={'model': 'gpt-4o-mini', 'input': 'generate code'})

        payload = response.json()
        assert payload['object'] == 'response'
        assert payload['output'][0]['content'][0]['text'] == "print('test')"

    def test_gemini(self, client):
        body = {'contents': [{'role': 'user', 'parts': [{'text': 'generate code'}]}]}
        response = client.post('/v1beta/models/gemini-pro:generateContent', json=body)

        payload = response.json()
        assert response.status_code == 200
        assert payload['candidates'][0]['content']['parts'][0]['text'] == "print('test')"
        assert payload['modelVersion'] == 'gemini-pro'

    def test_embeddings(self, client):
        response = client.post('/v1/embeddings', json={'input': ['a', 'b']})

        data = response.json()['data']
        assert len(data) == 2
        assert len(data[0]['embedding']) == 8
        assert data[0]['embedding'] != data[1]['embedding']

    def test_embeddings_are_deterministic(self, client):
        first = client.post('/v1/embeddings', json={'input': 'hello'}).json()
        second = client.post('/v1/embeddings', json={'input': 'hello'}).json()
        assert first['data'][0]['embedding'] == second['data'][0]['embedding']

    def test_embeddings_dimensions(self, client):
        response = client.post('/v1/embeddings', json={'input': 'hello', 'dimensions': 4})
        assert len(response.json()['data'][0]['embedding']) == 4

    def test_latency_applied(self):
        config = _config(cases=[{'pattern': 'slow', 'reply': 'ok', 'latency': {'mean_ms': 200, 'p95_ms': 200}}])
        client = TestClient(EmulatorServer(config).app)

        with patch('llm_emulator.mock.faults.asyncio.sleep', new_callable=AsyncMock) as sleep:
            response = client.post('/v1/chat/completions', json=_chat('slow'))

        assert _content(response) == 'ok'
        sleep.assert_awaited_once_with(0.2)


class TestStreaming:
    """Test SSE streaming."""

    def test_stream(self, client):
        response = client.post('/v1/chat/completions', json=_chat('generate code', stream=True))

        assert response.status_code == 200
        assert response.headers['content-type'].startswith('text/event-stream')

        frames = _frames(response)
        assert frames[-1] == 'data: [DONE]'
        chunks = [json.loads(f[len('data: '):]) for f in frames[:-1]]
        content = ''.join(c['choices'][0]['delta'].get('content', '') for c in chunks)
        assert content == "print('test')"

    def test_stream_from_server_config(self):
        config = _config(server={'stream': True})
        response = TestClient(EmulatorServer(config).app).post('/v1/chat/completions', json=_chat('generate code'))
        assert response.headers['content-type'].startswith('text/event-stream')

    def test_stream_drop_fault(self, client):
        response = client.post('/v1/chat/completions', json=_chat('drop the stream', stream=True))

        frames = _frames(response)
        assert len(frames) == 2
        assert 'data: [DONE]' not in frames

    def test_stream_fault_ignored_without_stream(self, client):
        response = client.post('/v1/chat/completions', json=_chat('drop the stream'))
        assert _content(response) == 'one two three four'


class TestFaults:
    """Test fault injection through the server."""

    def test_http_fault(self, client):
        response = client.post('/v1/chat/completions', json=_chat('break please'))

        assert response.status_code == 503
        assert response.json() == {'error': {'message': 'mock error 503'}}

        metrics = client.get('/__admin__/metrics').json()
        assert metrics['faults_injected'] == 1

    def test_fault_predicate_on_env(self):
        cases = [{'pattern': 'ping', 'reply': 'pong', 'latency': ZERO,
                  'faults': [{'kind': 'HTTP_500', 'when': {'env': 'chaos'}}]}]

        calm = TestClient(EmulatorServer(_config(cases=cases)).app)
        chaos = TestClient(EmulatorServer(_config(cases=cases, env='chaos')).app)

        assert calm.post('/v1/chat/completions', json=_chat('ping')).status_code == 200
        assert chaos.post('/v1/chat/completions', json=_chat('ping')).status_code == 500

    def test_fault_predicate_on_stream_for_every_provider(self):
        cases = [{'pattern': 'ping', 'reply': 'pong', 'latency': ZERO,
                  'faults': [{'kind': 'HTTP_503', 'when': {'stream': True}}]}]
        client = TestClient(EmulatorServer(_config(cases=cases)).app)
        gemini = {'contents': [{'role': 'user', 'parts': [{'text': 'ping'}]}]}

        assert client.post('/v1/responses', json={'input': 'ping'}).status_code == 200
        assert client.post('/v1/responses', json={'input': 'ping', 'stream': True}).status_code == 503
        assert client.post('/v1beta/models/gemini-pro:generateContent', json=gemini).status_code == 200
        assert client.post('/v1beta/models/gemini-pro:generateContent',
                           json={**gemini, 'stream': True}).status_code == 503

    def test_stream_flag_keeps_json_shape_outside_chat(self, client):
        response = client.post('/v1/responses', json={'input': 'generate code', 'stream': True})

        assert response.headers['content-type'].startswith('application/json')
        assert response.json()['output'][0]['content'][0]['text'] == "print('test')"


class TestScenarios:
    """Test scenario progression through the server."""

    def test_scenario_steps_per_conversation(self, client):
        assert client.post('/__admin__/scenario', json={'id': 'checkout'}).status_code == 200
        headers_a = {'x-conversation-id': 'a'}
        headers_b = {'x-conversation-id': 'b'}

        first = client.post('/v1/chat/completions', json=_chat('hi'), headers=headers_a)
        second = client.post('/v1/chat/completions', json=_chat('red'), headers=headers_a)
        other = client.post('/v1/chat/completions', json=_chat('hi'), headers=headers_b)
        third = client.post('/v1/chat/completions', json=_chat('buy'), headers=headers_a)
        after = client.post('/v1/chat/completions', json=_chat('generate code'), headers=headers_a)

        assert _content(first) == 'Which size?'
        assert json.loads(_content(second)) == {'sku': 'RJ-001'}
        assert _content(other) == 'Which size?'
        assert third.status_code == 502
        assert third.json() == {'error': 'gateway_unavailable'}
        assert _content(after) == "print('test')"

    def test_active_scenario_from_config(self):
        client = TestClient(EmulatorServer(_config(use_scenario='checkout')).app)
        response = client.post('/v1/chat/completions', json=_chat('anything'))
        assert _content(response) == 'Which size?'

    def test_scenario_state(self, client):
        client.post('/__admin__/scenario', json={'id': 'checkout'})
        client.post('/v1/chat/completions', json=_chat('hi'), headers={'x-conversation-id': 'a'})

        state = client.get('/__admin__/scenario').json()

        assert state['active'] == 'checkout'
        assert state['available'] == ['checkout']
        assert state['sessions']['a']['index'] == 1

    def test_unknown_scenario(self, client):
        response = client.post('/__admin__/scenario', json={'id': 'missing'})
        assert response.status_code == 404

    def test_scenario_reset(self, client):
        client.post('/__admin__/scenario', json={'id': 'checkout'})
        client.post('/v1/chat/completions', json=_chat('hi'))

        client.post('/__admin__/scenario/reset', json={})
        response = client.post('/v1/chat/completions', json=_chat('hi'))

        assert _content(response) == 'Which size?'

    def test_clear_scenario(self, client):
        client.post('/__admin__/scenario', json={'id': 'checkout'})
        client.post('/__admin__/scenario', json={'id': None})

        response = client.post('/v1/chat/completions', json=_chat('generate code'))
        assert _content(response) == "print('test')"


class TestHttpMocks:
    """Test generic HTTP mocks."""

    def test_handler_mock(self, client):
        response = client.get('/users/42')
        assert response.status_code == 200
        assert response.json() == {'id': '42', 'name': 'Mock User'}

    def test_static_response_mock(self, client):
        response = client.post('/items', json={'name': 'x'})
        assert response.status_code == 201
        assert response.json() == {'created': True}

    def test_no_mock(self, client):
        response = client.get('/nothing/here')

        assert response.status_code == 404
        assert response.json()['error']['type'] == 'not_found'

    def test_http_mock_metrics(self, client):
        client.get('/users/1')
        assert client.get('/__admin__/metrics').json()['http_mock_requests'] == 1


class TestContracts:
    """Test contract validation through the server."""

    def test_warn_mode_continues(self, client):
        response = client.post('/v1/chat/completions', json={'messages': []})

        assert response.status_code == 200
        assert client.get('/__admin__/metrics').json()['contract_violations'] == 1

    def test_strict_mode_errors(self):
        client = TestClient(EmulatorServer(_config(contracts={'mode': 'strict'})).app)
        response = client.post('/v1/chat/completions', json={'messages': []})

        assert response.status_code == 500
        assert response.json()['error']['type'] == 'contract_violation'


class TestCassettes:
    """Test cassette recording and replay."""

    def test_record(self, tmp_path):
        config = _config(vcr={'enabled': True, 'mode': 'record', 'cassette_dir': str(tmp_path)})
        client = TestClient(EmulatorServer(config).app)

        client.post('/v1/chat/completions', json=_chat('generate code'))
        recordings = client.get('/__admin__/recordings').json()

        assert recordings['cassettes'] == [{'name': '_v1_chat_completions.jsonl', 'entries': 1}]
        assert client.get('/__admin__/metrics').json()['cassette_writes'] == 1

    def test_replay(self, tmp_path):
        body = _chat('generate code')
        CassetteRecorder(str(tmp_path)).record({
            'endpoint': '/v1/chat/completions',
            'request': body,
            'response': {'recorded': True}
        })
        config = _config(vcr={'enabled': True, 'mode': 'replay', 'cassette_dir': str(tmp_path)})
        client = TestClient(EmulatorServer(config).app)

        response = client.post('/v1/chat/completions', json=body)

        assert response.json() == {'recorded': True}
        assert client.get('/__admin__/metrics').json()['cassette_replays'] == 1

    def test_cassette_io_runs_off_the_event_loop(self, tmp_path):
        server = EmulatorServer(_config(vcr={'enabled': True, 'mode': 'record', 'cassette_dir': str(tmp_path)}))
        client = TestClient(server.app)

        with patch('llm_emulator.mock.server.asyncio.to_thread',
                   new_callable=AsyncMock, side_effect=lambda fn, *args: fn(*args)) as to_thread:
            response = client.post('/v1/chat/completions', json=_chat('generate code'))

        assert _content(response) == "print('test')"
        assert to_thread.await_args.args[0] == server.recorder.record
        assert server.recorder.recorded == 1


class TestAdminAPI:
    """Test admin endpoints."""

    def test_metrics(self, client):
        client.post('/v1/chat/completions', json=_chat('generate code'))
        metrics = client.get('/__admin__/metrics').json()

        assert metrics['llm_requests'] == 1
        assert metrics['matched_requests'] == 1
        assert metrics['match_rate'] == 100.0

    def test_reset(self, client):
        client.post('/v1/chat/completions', json=_chat('generate code'))
        assert client.post('/__admin__/reset').json() == {'status': 'reset'}
        assert client.get('/__admin__/metrics').json()['llm_requests'] == 0

    def test_config(self, client):
        config = client.get('/__admin__/config').json()

        assert config['env'] == 'test'
        assert [c['id'] for c in config['cases']] == ['capital', 'gen-code', 'boom', 'drop']

    def test_admin_disabled(self):
        client = TestClient(EmulatorServer(_config(server={'admin_enabled': False})).app)
        assert client.get('/__admin__/metrics').status_code == 404

    def test_custom_admin_prefix(self):
        client = TestClient(EmulatorServer(_config(server={'admin_prefix': '/_emulator'})).app)
        assert client.get('/_emulator/metrics').status_code == 200
