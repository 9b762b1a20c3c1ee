"""
LLM Emulator Client

Small httpx client for driving a running emulator from test suites:
sending chat prompts and controlling scenarios through the admin API.

Example:
    with EmulatorClient('http://127.0.0.1:11434') as emulator:
        emulator.set_scenario('checkout')
        print(emulator.chat('find me a red jacket', conversation_id='t1'))
        print(emulator.metrics()['scenario_steps'])
"""

from typing import Any, Dict, List, Optional

import httpx


class EmulatorClient:
    """Client for the emulator's provider and admin endpoints."""

    def __init__(
        self,
        base_url: str = 'http://127.0.0.1:11434',
        admin_prefix: str = '/__admin__',
        session_header: str = 'x-conversation-id',
        timeout: float = 30.0,
        http: Optional[httpx.Client] = None
    ):
        """
        Initialize client.

        Args:
            base_url: Emulator base URL
            admin_prefix: Admin API prefix configured on the server
            session_header: Header carrying the conversation id
            timeout: Request timeout in seconds
            http: Pre-built httpx.Client (e.g. FastAPI's TestClient)
        """
        self.admin_prefix = admin_prefix
        self.session_header = session_header
        self.http = http or httpx.Client(base_url=base_url, timeout=timeout)

    def __enter__(self) -> 'EmulatorClient':
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        self.http.close()

    def _headers(self, conversation_id: Optional[str]) -> Dict[str, str]:
        return {self.session_header: conversation_id} if conversation_id else {}

    def health(self) -> Dict[str, Any]:
        response = self.http.get('/health')
        response.raise_for_status()
        return response.json()

    def chat(
        self,
        text: str,
        model: str = 'llm-emulator',
        conversation_id: Optional[str] = None,
        system: Optional[str] = None
    ) -> str:
        """
        Send one user message to the chat completions endpoint.

        Returns:
            The assistant message content

        Raises:
            httpx.HTTPStatusError: If the emulator answers with an error status
        """
        messages: List[Dict[str, Any]] = []
        if system:
            messages.append({'role': 'system', 'content': system})
        messages.append({'role': 'user', 'content': text})

        response = self.http.post(
            '/v1/chat/completions',
            json={'model': model, 'messages': messages},
            headers=self._headers(conversation_id)
        )
        response.raise_for_status()
        return response.json()['choices'][0]['message']['content']

    def embed(self, inputs: List[str], dimensions: Optional[int] = None) -> List[List[float]]:
        """Embedding vectors for each input."""
        body: Dict[str, Any] = {'input': inputs}
        if dimensions:
            body['dimensions'] = dimensions

        response = self.http.post('/v1/embeddings', json=body)
        response.raise_for_status()
        return [item['embedding'] for item in response.json()['data']]

    def metrics(self) -> Dict[str, Any]:
        response = self.http.get(f'{self.admin_prefix}/metrics')
        response.raise_for_status()
        return response.json()

    def reset_metrics(self):
        self.http.post(f'{self.admin_prefix}/reset').raise_for_status()

    def set_scenario(self, scenario_id: Optional[str]) -> Dict[str, Any]:
        """Select the active scenario (None clears it)."""
        response = self.http.post(f'{self.admin_prefix}/scenario', json={'id': scenario_id})
        response.raise_for_status()
        return response.json()

    def reset_scenario(self, conversation_id: Optional[str] = None):
        """Restart one conversation, or all of them."""
        body = {'session': conversation_id} if conversation_id else {}
        self.http.post(f'{self.admin_prefix}/scenario/reset', json=body).raise_for_status()

    def scenario_state(self) -> Dict[str, Any]:
        response = self.http.get(f'{self.admin_prefix}/scenario')
        response.raise_for_status()
        return response.json()
