from typing import List, Dict, Any, Optional, Callable
from dataclasses import dataclass
import random
import time

import openai
from openai import OpenAI
import requests

from ..config import settings
from ..exceptions import ThrottlingError, ThrottlingExhaustedError, UpstreamFatalError
from ..utils.logger import app_logger


Messages = List[Dict[str, str]]


def _raise_for_ollama_status(response: requests.Response):
    if response.status_code == 429:
        raise ThrottlingError(f"Ollama throttled the request: {response.text}")
    if response.status_code in (401, 403):
        raise UpstreamFatalError(f"Ollama rejected the request: {response.status_code}")
    response.raise_for_status()


class OllamaCompletionProvider:
    """Ollama chat completion provider."""

    def __init__(self, host: str = "http://localhost:11434", model: str = "llama3.1"):
        self.host = host
        self.model = model
        self.session = requests.Session()

    def complete(self, system_prompt: str, messages: Messages) -> str:
        response = self.session.post(
            f"{self.host}/api/chat",
            json={
                "model": self.model,
                "messages": [{"role": "system", "content": system_prompt}] + list(messages),
                "stream": False,
            },
        )
        _raise_for_ollama_status(response)
        return response.json()["message"]["content"]


class OllamaEmbeddingProvider:
    """Ollama embedding provider."""

    def __init__(self, host: str = "http://localhost:11434", model: str = "nomic-embed-text",
                 dimension: int = 768):
        self.host = host
        self.model = model
        self.dimension = dimension  # nomic-embed-text dimension
        self.session = requests.Session()

    def embed_text(self, text: str) -> List[float]:
        response = self.session.post(
            f"{self.host}/api/embeddings",
            json={
                "model": self.model,
                "prompt": text
            }
        )
        _raise_for_ollama_status(response)
        return response.json()["embedding"]

    def get_dimension(self) -> int:
        return self.dimension


def _translate_openai_error(error: Exception):
    if isinstance(error, openai.RateLimitError):
        raise ThrottlingError(str(error)) from error
    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        raise UpstreamFatalError(str(error)) from error
    raise error


class OpenAICompletionProvider:
    """OpenAI chat completion provider."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", max_tokens: int = 4096,
                 base_url: Optional[str] = None):
        self.client = OpenAI(api_key=api_key, base_url=base_url)
        self.model = model
        self.max_tokens = max_tokens

    def complete(self, system_prompt: str, messages: Messages) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "system", "content": system_prompt}] + list(messages),
            )
        except openai.OpenAIError as e:
            _translate_openai_error(e)
        return response.choices[0].message.content or ""


class OpenAIEmbeddingProvider:
    """OpenAI embedding provider."""

    def __init__(self, api_key: str, model: str = "text-embedding-3-small", dimension: int = 1536,
                 base_url: Optional[str] = None):
        self.client = OpenAI(api_key=api_key, base_url=base_url)
        self.model = model
        self.dimension = dimension

    def embed_text(self, text: str) -> List[float]:
        try:
            response = self.client.embeddings.create(
                model=self.model,
                input=text
            )
        except openai.OpenAIError as e:
            _translate_openai_error(e)
        return response.data[0].embedding

    def get_dimension(self) -> int:
        return self.dimension


@dataclass
class RetryPolicy:
    """How long to pause after a throttled model call.

    The defaults pause for a fixed interval and retry forever. A multiplier
    above 1 turns the pause into exponential backoff capped at
    `max_pause_seconds`; jitter adds a random extra delay; `max_attempts`
    bounds the number of calls.
    """
    pause_seconds: float = 2.5
    backoff_multiplier: float = 1.0
    max_pause_seconds: float = 60.0
    jitter_seconds: float = 0.0
    max_attempts: Optional[int] = None

    @classmethod
    def from_settings(cls, pause_seconds: Optional[float] = None) -> "RetryPolicy":
        return cls(
            pause_seconds=settings.throttle_pause_seconds if pause_seconds is None else pause_seconds,
            backoff_multiplier=settings.throttle_backoff_multiplier,
            max_pause_seconds=settings.throttle_max_pause_seconds,
            jitter_seconds=settings.throttle_jitter_seconds,
            max_attempts=settings.throttle_max_attempts,
        )

    def pause_for(self, retry_number: int) -> float:
        """Pause before the given retry (1 = first retry)."""
        pause = self.pause_seconds * (self.backoff_multiplier ** (retry_number - 1))
        if self.backoff_multiplier > 1.0:
            pause = min(pause, self.max_pause_seconds)
        if self.jitter_seconds > 0:
            pause += random.uniform(0, self.jitter_seconds)
        return pause

    def exhausted(self, attempts: int) -> bool:
        return self.max_attempts is not None and attempts >= self.max_attempts


class ModelGateway:
    """Text completion and embedding calls behind one throttling pace.

    A throttled call blocks the caller for the policy's pause and is retried
    with the identical arguments. Any other failure propagates on the first
    attempt.
    """

    def __init__(self, completion_provider, embedding_provider,
                 retry_policy: Optional[RetryPolicy] = None,
                 min_interval_seconds: float = 0.0,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.logger = app_logger.bind(component="model_gateway")
        self.completion_provider = completion_provider
        self.embedding_provider = embedding_provider
        self.retry_policy = retry_policy or RetryPolicy()
        self.min_interval_seconds = min_interval_seconds
        self._sleep = sleep
        self._clock = clock
        self._last_call_at: Optional[float] = None

    @property
    def dimension(self) -> int:
        return self.embedding_provider.get_dimension()

    def complete(self, system_prompt: str, messages: Messages) -> str:
        """Request a completion for the conversation."""
        return self._call("completion", self.completion_provider.complete, system_prompt, messages)

    def embed(self, text: str) -> List[float]:
        """Generate embedding for a single text."""
        return self._call("embedding", self.embedding_provider.embed_text, text)

    def _pace(self):
        if self.min_interval_seconds <= 0 or self._last_call_at is None:
            return
        wait = self.min_interval_seconds - (self._clock() - self._last_call_at)
        if wait > 0:
            self._sleep(wait)

    def _call(self, operation: str, func, *args) -> Any:
        attempts = 0
        while True:
            attempts += 1
            self._pace()
            try:
                result = func(*args)
            except ThrottlingError as e:
                self._last_call_at = self._clock()
                if self.retry_policy.exhausted(attempts):
                    raise ThrottlingExhaustedError(
                        f"{operation} still throttled after {attempts} attempts", attempts
                    ) from e
                pause = self.retry_policy.pause_for(attempts)
                self.logger.warning(f"{operation} throttled (attempt {attempts}), sleeping {pause:.2f}s and retrying")
                self._sleep(pause)
                continue
            self._last_call_at = self._clock()
            return result


def create_model_gateway(pause_seconds: Optional[float] = None) -> ModelGateway:
    """Build the gateway for the configured providers."""
    if settings.completion_provider == "ollama":
        completion = OllamaCompletionProvider(host=settings.ollama_host, model=settings.ollama_completion_model)
    elif settings.completion_provider == "openai":
        if not settings.openai_api_key:
            raise ValueError("OpenAI API key is required for OpenAI completions")
        completion = OpenAICompletionProvider(
            api_key=settings.openai_api_key,
            model=settings.openai_completion_model,
            max_tokens=settings.completion_max_tokens,
            base_url=settings.openai_base_url,
        )
    else:
        raise ValueError(f"Unsupported completion provider: {settings.completion_provider}")

    if settings.embedding_provider == "ollama":
        embedding = OllamaEmbeddingProvider(
            host=settings.ollama_host,
            model=settings.ollama_embedding_model,
            dimension=settings.embedding_dimension,
        )
    elif settings.embedding_provider == "openai":
        if not settings.openai_api_key:
            raise ValueError("OpenAI API key is required for OpenAI embeddings")
        embedding = OpenAIEmbeddingProvider(
            api_key=settings.openai_api_key,
            model=settings.openai_embedding_model,
            dimension=settings.embedding_dimension,
            base_url=settings.openai_base_url,
        )
    else:
        raise ValueError(f"Unsupported embedding provider: {settings.embedding_provider}")

    return ModelGateway(
        completion,
        embedding,
        retry_policy=RetryPolicy.from_settings(pause_seconds),
        min_interval_seconds=settings.call_min_interval_seconds,
    )
