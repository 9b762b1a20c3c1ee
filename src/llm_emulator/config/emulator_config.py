"""
LLM Emulator Configuration

YAML or Python-module configuration with defaults, camelCase key aliases,
and environment/CLI overrides.

Example YAML:
    env: local
    seed: 42
    matching:
      order: [pattern-regex, pattern, fuzzy, semantic-ngrams]
      fuzzy: {threshold: 0.4}
    cases:
      - pattern: "explain {{topic}} simply"
        reply: "This is a simple explanation of {{topic}}."
        latency: {mean_ms: 120, p95_ms: 400}
"""

import dataclasses
import importlib.util
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..common.url_utils import HttpMock
from ..mock.faults import CaseOptions, Fault, LatencyProfile
from ..mock.matcher import Case, MatchingConfig
from ..mock.registry import HandlerRegistry, handlers as default_registry
from ..mock.scenario import Scenario, scenario_from_dict

DEFAULT_FALLBACK = "Sorry, I don't have a mock for that yet."


class ConfigError(ValueError):
    """Raised when a configuration cannot be loaded or is invalid."""


def _get(data: Dict[str, Any], snake: str, camel: Optional[str] = None, default: Any = None) -> Any:
    if snake in data and data[snake] is not None:
        return data[snake]
    if camel and camel in data and data[camel] is not None:
        return data[camel]
    return default


@dataclass
class ServerConfig:
    host: str = '127.0.0.1'
    port: int = 11434
    stream: bool = False
    session_header: str = 'x-conversation-id'
    admin_enabled: bool = True
    admin_prefix: str = '/__admin__'

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ServerConfig':
        data = data or {}
        return cls(
            host=data.get('host', '127.0.0.1'),
            port=int(data.get('port', 11434)),
            stream=bool(data.get('stream', False)),
            session_header=_get(data, 'session_header', 'sessionHeader', 'x-conversation-id'),
            admin_enabled=bool(_get(data, 'admin_enabled', 'adminEnabled', True)),
            admin_prefix=_get(data, 'admin_prefix', 'adminPrefix', '/__admin__')
        )


@dataclass
class ContractsConfig:
    provider: str = 'openai'
    version: str = '2025-06-01'
    mode: str = 'warn'

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ContractsConfig':
        data = data or {}
        mode = data.get('mode', 'warn')
        if mode not in ('warn', 'strict', 'off'):
            raise ConfigError(f"contracts.mode must be warn, strict or off (got '{mode}')")
        return cls(
            provider=data.get('provider', 'openai'),
            version=str(data.get('version', '2025-06-01')),
            mode=mode
        )


@dataclass
class LimitsConfig:
    """Reported through the admin API only; requests are never throttled."""

    tokens_per_minute: int = 120000
    requests_per_minute: int = 1000

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'LimitsConfig':
        data = data or {}
        return cls(
            tokens_per_minute=int(_get(data, 'tokens_per_minute', 'tokensPerMinute', 120000)),
            requests_per_minute=int(_get(data, 'requests_per_minute', 'requestsPerMinute', 1000))
        )


@dataclass
class VcrConfig:
    enabled: bool = False
    mode: str = 'record'
    cassette_dir: str = './.cassettes'
    redact: List[str] = field(default_factory=lambda: ['Authorization', 'api_key'])

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'VcrConfig':
        data = data or {}
        mode = data.get('mode', 'record')
        if mode not in ('record', 'replay'):
            raise ConfigError(f"vcr.mode must be record or replay (got '{mode}')")
        return cls(
            enabled=bool(data.get('enabled', False)),
            mode=mode,
            cassette_dir=_get(data, 'cassette_dir', 'cassetteDir', './.cassettes'),
            redact=list(data.get('redact', ['Authorization', 'api_key']))
        )


@dataclass
class DefaultsConfig:
    """Fallback reply and the options used for scenario steps and unmatched requests."""

    fallback: str = DEFAULT_FALLBACK
    latency: Optional[LatencyProfile] = None
    faults: List[Fault] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'DefaultsConfig':
        data = data or {}
        options = CaseOptions.from_dict(data)
        return cls(
            fallback=data.get('fallback', DEFAULT_FALLBACK),
            latency=options.latency,
            faults=options.faults
        )

    @property
    def options(self) -> CaseOptions:
        return CaseOptions(id='defaults', latency=self.latency, faults=list(self.faults))


@dataclass
class EmulatorConfig:
    """Complete emulator configuration."""

    env: str = 'local'
    seed: int = 42
    test_tag: Optional[str] = None
    use_scenario: Optional[str] = None
    log_level: str = 'info'

    server: ServerConfig = field(default_factory=ServerConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    cases: List[Case] = field(default_factory=list)
    scenarios: List[Scenario] = field(default_factory=list)
    http_mocks: List[HttpMock] = field(default_factory=list)
    contracts: ContractsConfig = field(default_factory=ContractsConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    vcr: VcrConfig = field(default_factory=VcrConfig)
    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)
    embedding_dim: int = 1536

    @classmethod
    def from_yaml(cls, yaml_path: str, registry: Optional[HandlerRegistry] = None) -> 'EmulatorConfig':
        """Load configuration from a YAML file."""
        try:
            with open(yaml_path, 'r') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {yaml_path}: {e}") from e

        return cls.from_dict(data or {}, registry)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], registry: Optional[HandlerRegistry] = None) -> 'EmulatorConfig':
        """
        Create configuration from a dictionary.

        Cases, scenarios and HTTP mocks may already be built objects (from
        the DSL helpers) or plain dictionaries.

        Raises:
            ConfigError: For invalid patterns, unknown handler ids, undefined
                scenario start states, or malformed sections
        """
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration must be a mapping, got {type(data).__name__}")

        registry = registry or default_registry

        try:
            cases = [
                c if isinstance(c, Case) else Case.from_dict(c, registry)
                for c in data.get('cases', []) or []
            ]
            scenarios = [
                s if not isinstance(s, dict) else scenario_from_dict(s, registry)
                for s in data.get('scenarios', []) or []
            ]
            http_mocks = [
                m if isinstance(m, HttpMock) else _http_mock_from_dict(m, registry)
                for m in _get(data, 'http_mocks', 'httpMocks', []) or []
            ]
            seed = int(data.get('seed', 42))
        except ConfigError:
            raise
        except (ValueError, KeyError, TypeError) as e:
            raise ConfigError(str(e)) from e

        return cls(
            env=data.get('env') or 'local',
            seed=seed,
            test_tag=_get(data, 'test_tag', 'testTag'),
            use_scenario=_get(data, 'use_scenario', 'useScenario'),
            log_level=_get(data, 'log_level', 'logLevel', 'info'),
            server=ServerConfig.from_dict(data.get('server')),
            matching=MatchingConfig.from_dict(data.get('matching')),
            cases=cases,
            scenarios=scenarios,
            http_mocks=http_mocks,
            contracts=ContractsConfig.from_dict(data.get('contracts')),
            limits=LimitsConfig.from_dict(data.get('limits')),
            vcr=VcrConfig.from_dict(data.get('vcr')),
            defaults=DefaultsConfig.from_dict(data.get('defaults')),
            embedding_dim=int((data.get('embeddings') or {}).get('dim', 1536))
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly summary (handlers are not serialized)."""
        return {
            'env': self.env,
            'seed': self.seed,
            'test_tag': self.test_tag,
            'use_scenario': self.use_scenario,
            'server': dataclasses.asdict(self.server),
            'matching': self.matching.to_dict(),
            'cases': [{'id': c.id, 'pattern': c.pattern} for c in self.cases],
            'scenarios': [{'id': s.id, 'mode': s.mode} for s in self.scenarios],
            'http_mocks': [{'method': m.method or '*', 'path': m.path} for m in self.http_mocks],
            'contracts': dataclasses.asdict(self.contracts),
            'limits': dataclasses.asdict(self.limits),
            'vcr': dataclasses.asdict(self.vcr),
            'defaults': {'fallback': self.defaults.fallback},
            'embeddings': {'dim': self.embedding_dim}
        }


def _http_mock_from_dict(data: Dict[str, Any], registry: HandlerRegistry) -> HttpMock:
    """HTTP mock from a handler id, or a static `response: {body}`."""
    if data.get('handler') is not None:
        handler = registry.resolve_ref(data['handler'])
    elif 'response' in data:
        body = (data.get('response') or {}).get('body')

        def handler(request, ctx):
            return body
    else:
        raise ConfigError(f"HTTP mock needs a 'handler' or a 'response': {data!r}")

    mock = HttpMock.from_dict(data, handler)
    if not mock.path:
        raise ConfigError(f"HTTP mock is missing match.path: {data!r}")

    status = (data.get('response') or {}).get('status')
    if status is not None:
        mock.options = {**mock.options, 'status': int(status)}
    return mock


def _load_python_config(path: Path, registry: HandlerRegistry) -> EmulatorConfig:
    """Import a Python config module exposing a module-level `config`."""
    spec = importlib.util.spec_from_file_location(f'llm_emulator_config_{path.stem}', path)
    if spec is None or spec.loader is None:
        raise ConfigError(f"Cannot import configuration module: {path}")

    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    config = getattr(module, 'config', None)
    if isinstance(config, EmulatorConfig):
        return config
    if isinstance(config, dict):
        return EmulatorConfig.from_dict(config, registry)

    raise ConfigError(f"{path} must define a module-level 'config' (EmulatorConfig or dict)")


def load_config(path: str, registry: Optional[HandlerRegistry] = None) -> EmulatorConfig:
    """
    Load configuration from a .yaml/.yml or .py file.

    Args:
        path: Configuration file path
        registry: Handler registry for id references (default registry if None)

    Returns:
        EmulatorConfig

    Raises:
        ConfigError: If the file is missing, unsupported, or invalid
    """
    registry = registry or default_registry
    config_path = Path(path)

    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    suffix = config_path.suffix.lower()
    if suffix in ('.yaml', '.yml'):
        return EmulatorConfig.from_yaml(str(config_path), registry)
    if suffix == '.py':
        return _load_python_config(config_path, registry)

    raise ConfigError(f"Unsupported configuration format '{suffix}' (use .yaml, .yml or .py)")


def apply_env_overrides(
    config: EmulatorConfig,
    env: Optional[str] = None,
    seed: Optional[int] = None,
    test_tag: Optional[str] = None,
    port: Optional[int] = None,
    use_scenario: Optional[str] = None,
    environ: Optional[Dict[str, str]] = None
) -> EmulatorConfig:
    """
    Return a copy of the config with CLI overrides applied.

    Arguments left as None fall back to LLM_EMULATOR_ENV / _SEED / _TEST_TAG /
    _PORT / _SCENARIO, then to the loaded values.
    """
    environ = os.environ if environ is None else environ

    def pick(value, name, current, convert=str):
        if value is not None:
            return value
        raw = environ.get(f'LLM_EMULATOR_{name}')
        if raw:
            try:
                return convert(raw)
            except ValueError as e:
                raise ConfigError(f"Invalid LLM_EMULATOR_{name}: {raw!r}") from e
        return current

    server = dataclasses.replace(config.server, port=pick(port, 'PORT', config.server.port, int))
    return dataclasses.replace(
        config,
        env=pick(env, 'ENV', config.env),
        seed=pick(seed, 'SEED', config.seed, int),
        test_tag=pick(test_tag, 'TEST_TAG', config.test_tag),
        use_scenario=pick(use_scenario, 'SCENARIO', config.use_scenario),
        server=server
    )
