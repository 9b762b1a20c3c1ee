"""
LLM Emulator Contracts

Pydantic models describing the request/response payloads of each emulated
provider, and a validator that checks payloads against them.

Modes:
- warn: log violations and continue
- strict: raise ContractViolation
- off: skip validation
"""

import logging
from typing import Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger('llm_emulator.mock.contracts')

CONTRACT_MODES = ('warn', 'strict', 'off')


class ContractViolation(Exception):
    """A payload failed its contract in strict mode."""

    def __init__(self, name: str, errors: str):
        super().__init__(f"Schema violation {name}: {errors}")
        self.name = name
        self.errors = errors


class _Payload(BaseModel):
    model_config = {"extra": "allow"}


# OpenAI chat completions

class ChatMessage(_Payload):
    role: str
    content: Optional[Union[str, List[Any]]] = None


class ChatCompletionRequest(_Payload):
    model: Optional[str] = None
    messages: List[ChatMessage] = Field(min_length=1)
    stream: Optional[bool] = None


class ChatChoice(_Payload):
    index: int
    message: ChatMessage
    finish_reason: Optional[str] = None


class ChatUsage(_Payload):
    prompt_tokens: int = Field(ge=0)
    completion_tokens: int = Field(ge=0)
    total_tokens: int = Field(ge=0)


class ChatCompletionResponse(_Payload):
    id: str
    object: Literal['chat.completion']
    created: int
    model: str
    choices: List[ChatChoice] = Field(min_length=1)
    usage: Optional[ChatUsage] = None


# OpenAI responses

class ResponsesRequest(_Payload):
    model: Optional[str] = None
    input: Union[str, List[Any]]


class OutputContent(_Payload):
    type: str
    text: str


class OutputMessage(_Payload):
    id: str
    type: Literal['message']
    role: str
    content: List[OutputContent]


class ResponsesResponse(_Payload):
    id: str
    object: Literal['response']
    created: int
    model: str
    output: List[OutputMessage] = Field(min_length=1)


# OpenAI embeddings

class EmbeddingsRequest(_Payload):
    model: Optional[str] = None
    input: Union[str, List[str]]
    dimensions: Optional[int] = Field(default=None, gt=0)


class EmbeddingItem(_Payload):
    object: Literal['embedding']
    index: int
    embedding: List[float]


class EmbeddingsResponse(_Payload):
    object: Literal['list']
    data: List[EmbeddingItem]


# Gemini generateContent

class GeminiPart(_Payload):
    text: Optional[str] = None


class GeminiContent(_Payload):
    role: Optional[str] = None
    parts: List[GeminiPart]


class GeminiRequest(_Payload):
    contents: List[GeminiContent] = Field(min_length=1)


class GeminiCandidate(_Payload):
    content: GeminiContent
    finishReason: Optional[str] = None
    index: int = 0


class GeminiResponse(_Payload):
    candidates: List[GeminiCandidate] = Field(min_length=1)
    modelVersion: str


DEFAULT_CONTRACTS: Dict[str, Type[BaseModel]] = {
    'openai.chat.completions.request': ChatCompletionRequest,
    'openai.chat.completions.response': ChatCompletionResponse,
    'openai.responses.request': ResponsesRequest,
    'openai.responses.response': ResponsesResponse,
    'openai.embeddings.request': EmbeddingsRequest,
    'openai.embeddings.response': EmbeddingsResponse,
    'gemini.generateContent.request': GeminiRequest,
    'gemini.generateContent.response': GeminiResponse,
}


def _format_errors(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = '/'.join(str(p) for p in item.get('loc', ()))
        parts.append(f"/{location} {item.get('msg', '')}")
    return '; '.join(parts)


class ContractValidator:
    """
    Validates payloads against named contracts.

    Example:
        validator = ContractValidator(mode='strict')
        validator.validate('request', 'openai.chat.completions.request', body)
    """

    def __init__(self, mode: str = 'warn', contracts: Optional[Dict[str, Type[BaseModel]]] = None):
        """
        Initialize contract validator.

        Args:
            mode: Default mode (warn, strict, off)
            contracts: Extra or replacement contract models by name
        """
        if mode not in CONTRACT_MODES:
            raise ValueError(f"Unknown contracts mode '{mode}' (expected one of {', '.join(CONTRACT_MODES)})")

        self.mode = mode
        self.contracts: Dict[str, Type[BaseModel]] = dict(DEFAULT_CONTRACTS)
        self.contracts.update(contracts or {})
        self.violations = 0

    def register(self, name: str, model: Type[BaseModel]):
        """Register (or replace) the contract model for a name."""
        self.contracts[name] = model

    def validate(self, kind: str, name: str, payload: Any, mode: Optional[str] = None) -> bool:
        """
        Validate a payload.

        Args:
            kind: 'request' or 'response' (for logging)
            name: Contract name, e.g. 'openai.responses.response'
            payload: Decoded JSON payload
            mode: Override of the validator's default mode

        Returns:
            True if valid, skipped, or no contract is known; False for a
            violation in warn mode

        Raises:
            ContractViolation: For a violation in strict mode
        """
        mode = mode or self.mode
        if mode == 'off':
            return True

        model = self.contracts.get(name)
        if model is None:
            logger.debug(f"contracts.miss kind={kind} name={name}")
            return True

        try:
            model.model_validate(payload)
        except ValidationError as e:
            self.violations += 1
            errors = _format_errors(e)
            if mode == 'strict':
                raise ContractViolation(name, errors) from e
            logger.warning(f"contracts.warn kind={kind} name={name} errors={errors}")
            return False

        return True
