# app/services/ai/client.py
"""
Anthropic Messages API wrapper.

- transient failures (429/5xx, connection, timeout) are retried with
  exponential backoff + jitter, up to settings.ai_max_attempts
- a process-wide circuit breaker stops calling out after repeated failures
- everything that goes wrong surfaces as AIError (502 to the client)
"""
import json
import logging
import re
import threading
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, List, Optional, Type, TypeVar, Union

import anthropic
from pydantic import BaseModel, ValidationError as PydanticValidationError

from app.config import settings
from app.core.errors import ExternalServiceError
from app.infra.retry import RETRYABLE_STATUS_CODES, CircuitBreaker, CircuitOpenError, retry_on
from app.observability.metrics import ai_calls_counter

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


@dataclass
class UsageEntry:
    operation: str
    model: str
    input_tokens: int
    output_tokens: int


class UsageRecorder:
    """
    Token counts of the model calls made for one unit of work (an analysis,
    an estimate). Photo analyses run on a thread pool, hence the lock.
    """

    def __init__(self):
        self.entries: List[UsageEntry] = []
        self._lock = threading.Lock()

    def add(self, operation: str, model: str, input_tokens: int, output_tokens: int) -> None:
        with self._lock:
            self.entries.append(UsageEntry(operation, model, input_tokens, output_tokens))


class AIError(ExternalServiceError):
    def __init__(self, message: str, reason: str, retryable: bool = False):
        super().__init__("AI", message, details={"reason": reason, "retryable": retryable})
        self.reason = reason
        self.retryable = retryable


breaker = CircuitBreaker(
    threshold=settings.ai_breaker_threshold,
    cooldown=settings.ai_breaker_cooldown_seconds,
    name="anthropic",
)


@lru_cache(maxsize=1)
def get_anthropic_client() -> anthropic.Anthropic:
    if not settings.anthropic_api_key:
        raise AIError("AI provider is not configured", "NOT_CONFIGURED")
    # retries are handled by retry_on so the breaker sees every failure
    return anthropic.Anthropic(api_key=settings.anthropic_api_key, max_retries=0)


def is_retryable_error(exc: Exception) -> bool:
    if isinstance(exc, anthropic.APIConnectionError):  # includes APITimeoutError
        return True
    if isinstance(exc, anthropic.APIStatusError):
        return exc.status_code in RETRYABLE_STATUS_CODES
    return False


def create_message(
    *,
    content: Union[str, List[dict]],
    operation: str,
    model: str,
    max_tokens: int = 4096,
    timeout: Optional[float] = None,
    usage: Optional[UsageRecorder] = None,
) -> str:
    """Send one user message and return the first text block of the reply."""
    client = get_anthropic_client()
    timeout = timeout or settings.ai_timeout_seconds

    def _call():
        return client.messages.create(
            model=model,
            max_tokens=max_tokens,
            messages=[{"role": "user", "content": content}],
            timeout=timeout,
        )

    try:
        response = retry_on(
            _call,
            attempts=settings.ai_max_attempts,
            base=1.0,
            cap=10.0,
            is_retryable=is_retryable_error,
            breaker=breaker,
        )
    except CircuitOpenError:
        ai_calls_counter.labels(operation=operation, result="circuit_open").inc()
        raise AIError("AI service temporarily unavailable", "CIRCUIT_OPEN", retryable=True)
    except anthropic.APIError as e:
        ai_calls_counter.labels(operation=operation, result="error").inc()
        logger.error("anthropic %s failed: %r", operation, e)
        raise AIError(f"AI request failed: {e}", "API_ERROR", retryable=is_retryable_error(e))

    ai_calls_counter.labels(operation=operation, result="success").inc()
    if usage is not None and getattr(response, "usage", None) is not None:
        usage.add(operation, model, response.usage.input_tokens, response.usage.output_tokens)

    text = next(
        (block.text for block in response.content if getattr(block, "type", None) == "text"),
        None,
    )
    if not text:
        raise AIError("No text response from model", "NO_TEXT_RESPONSE")
    return text


def parse_json_response(text: str, schema: Type[M]) -> M:
    """Pull the first {...} block out of a reply and validate it."""
    match = _JSON_BLOCK.search(text)
    if not match:
        raise AIError("No JSON found in model response", "NO_JSON_RESPONSE")

    try:
        data: Any = json.loads(match.group(0))
    except json.JSONDecodeError:
        raise AIError("Invalid JSON in model response", "INVALID_JSON")

    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        problems = ", ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        logger.error("invalid %s structure from model: %s", schema.__name__, problems)
        raise AIError(f"Invalid {schema.__name__} structure: {problems}", "INVALID_STRUCTURE")
