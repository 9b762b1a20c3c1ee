"""
Tests for LLM Emulator URL utilities

Tests ":param" path matching and HTTP mock resolution.
"""

import pytest

from llm_emulator.common.url_utils import HttpMock, find_http_mock, match_path_pattern


def _handler(request, ctx):
    return {'ok': True}


@pytest.fixture
def mocks():
    """HTTP mocks in configured order."""
    return [
        HttpMock(method='GET', path='/users/:id', handler=_handler),
        HttpMock(method='POST', path='/users', handler=_handler),
        HttpMock(method='', path='/any/:thing', handler=_handler),
        HttpMock(method='GET', path='', handler=_handler),
        HttpMock(method='GET', path='/users/:userId', handler=_handler),
    ]


class TestMatchPathPattern:
    """Test path template matching."""

    def test_binds_params(self):
        assert match_path_pattern('/users/:id', '/users/42') == {'params': {'id': '42'}}

    def test_segment_count_mismatch(self):
        assert match_path_pattern('/users/:id', '/users/42/orders') is None
        assert match_path_pattern('/users/:id', '/users') is None

    def test_literal_mismatch(self):
        assert match_path_pattern('/users/:id', '/orders/42') is None

    def test_leading_slash_normalized(self):
        assert match_path_pattern('users/:id', '/users/7') == {'params': {'id': '7'}}

    def test_empty_segments_ignored(self):
        assert match_path_pattern('/a/:b/', '//a//x') == {'params': {'b': 'x'}}

    def test_multiple_params(self):
        result = match_path_pattern('/orgs/:org/repos/:repo', '/orgs/acme/repos/api')
        assert result == {'params': {'org': 'acme', 'repo': 'api'}}


class TestFindHttpMock:
    """Test HTTP mock resolution."""

    def test_first_match_wins(self, mocks):
        found = find_http_mock(mocks, 'GET', '/users/42')
        assert found.mock is mocks[0]
        assert found.params == {'id': '42'}

    def test_method_case_insensitive(self, mocks):
        found = find_http_mock(mocks, 'post', '/users')
        assert found.mock is mocks[1]

    def test_method_mismatch(self, mocks):
        assert find_http_mock(mocks, 'DELETE', '/users') is None

    def test_empty_method_matches_any(self, mocks):
        found = find_http_mock(mocks, 'PATCH', '/any/thing-1')
        assert found.mock is mocks[2]
        assert found.params == {'thing': 'thing-1'}

    def test_no_match_is_none(self, mocks):
        assert find_http_mock(mocks, 'GET', '/nothing/here/at/all') is None

    def test_from_dict(self):
        mock = HttpMock.from_dict({'match': {'method': 'get', 'path': '/health/:x'}}, _handler)
        assert mock.method == 'GET'
        assert mock.path == '/health/:x'
        assert mock.options == {}
