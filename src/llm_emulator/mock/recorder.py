"""
LLM Emulator Cassette Recorder

Append-only JSONL recording of emulated interactions ("cassettes"), one file
per endpoint, with secret redaction and replay lookup.
"""

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..common.utils import safe_json_parse

logger = logging.getLogger('llm_emulator.mock.recorder')

REDACTED = '[REDACTED]'


class CassetteRecorder:
    """
    Records request/response pairs to JSONL cassettes.

    Example:
        recorder = CassetteRecorder('./.cassettes', redact=['Authorization'])
        recorder.record({'endpoint': '/v1/chat/completions', 'request': body, 'response': payload})
        recorder.lookup('/v1/chat/completions', body)
    """

    def __init__(self, cassette_dir: str, redact: Optional[List[str]] = None):
        self.cassette_dir = Path(cassette_dir)
        self.redact = {key.lower() for key in redact or []}
        self.recorded = 0

    def cassette_path(self, endpoint: str) -> Path:
        """File for an endpoint: '/' and ':' become '_'."""
        return self.cassette_dir / f"{re.sub(r'[/:]', '_', endpoint)}.jsonl"

    def redact_value(self, value: Any) -> Any:
        """Replace values of redacted keys (case-insensitive), recursively."""
        if isinstance(value, dict):
            return {
                key: REDACTED if str(key).lower() in self.redact else self.redact_value(item)
                for key, item in value.items()
            }
        if isinstance(value, list):
            return [self.redact_value(item) for item in value]
        return value

    def record(self, entry: Dict[str, Any]) -> bool:
        """
        Append one entry to its endpoint's cassette.

        Args:
            entry: Must contain 'endpoint'; usually 'request' and 'response'

        Returns:
            True if written; write failures are logged and return False
        """
        entry = self.redact_value(dict(entry))
        entry.setdefault('t', datetime.now().isoformat())
        path = self.cassette_path(entry.get('endpoint', 'unknown'))

        try:
            self.cassette_dir.mkdir(parents=True, exist_ok=True)
            with open(path, 'a', encoding='utf-8') as f:
                f.write(json.dumps(entry) + '\n')
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"cassette write failed path={path}: {e}")
            return False

        self.recorded += 1
        logger.debug(f"cassette recorded path={path}")
        return True

    def entries(self, endpoint: str) -> List[Dict[str, Any]]:
        """All parseable entries of an endpoint's cassette, oldest first."""
        path = self.cassette_path(endpoint)
        if not path.exists():
            return []

        with open(path, 'r', encoding='utf-8') as f:
            parsed = [safe_json_parse(line) for line in f if line.strip()]
        return [entry for entry in parsed if isinstance(entry, dict)]

    def lookup(self, endpoint: str, request: Any) -> Optional[Any]:
        """
        Most recently recorded response for an equal (after redaction) request.

        Returns:
            The stored response, or None
        """
        wanted = self.redact_value(request)
        for entry in reversed(self.entries(endpoint)):
            if entry.get('request') == wanted:
                return entry.get('response')
        return None

    def list_cassettes(self) -> List[Dict[str, Any]]:
        """Summary of cassette files on disk."""
        if not self.cassette_dir.exists():
            return []

        summary = []
        for path in sorted(self.cassette_dir.glob('*.jsonl')):
            with open(path, 'r', encoding='utf-8') as f:
                count = sum(1 for line in f if line.strip())
            summary.append({'name': path.name, 'entries': count})
        return summary
