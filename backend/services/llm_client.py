"""Resilient completion client for the Groq chat-completions API."""
import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set
from groq import AsyncGroq
from groq import (
    RateLimitError,
    AuthenticationError,
    APIError,
    APIStatusError,
    APIConnectionError,
    APITimeoutError,
)
import logging

from config import COMPLETION_BASE_URL, MAX_COMPLETION_ATTEMPTS, INITIAL_RETRY_DELAY_SECONDS

logger = logging.getLogger(__name__)


@dataclass
class CompletionRequest:
    """One logical request to the completion service."""
    model_id: str
    credential: str = field(repr=False)
    messages: List[Dict[str, str]] = field(default_factory=list)
    max_tokens: int = 1000
    temperature: float = 0.7
    purpose: str = "completion"


@dataclass
class LLMResponse:
    """Response from a completed request."""
    text: str
    tokens_input: int
    tokens_output: int
    latency_ms: int
    model_used: str
    attempts: int = 1


@dataclass
class LLMError:
    """Structured error response from LLM operations."""
    code: str
    message: str
    details: Dict[str, Any]


class LLMClientError(Exception):
    """Custom exception for LLM client errors with structured error information."""

    def __init__(self, error: LLMError):
        self.error = error
        super().__init__(error.message)


class ExhaustedRetriesError(LLMClientError):
    """Raised when every attempt in the retry budget has failed."""

    def __init__(self, last_error: LLMError, attempts: int):
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(LLMError(
            code="EXHAUSTED_RETRIES",
            message=f"Completion request failed after {attempts} attempts: {last_error.message}",
            details={
                "attempts": attempts,
                "last_error_code": last_error.code,
                "last_error": last_error.details,
            }
        ))


class ResilientCompletionClient:
    """
    Issues completion requests with bounded exponential-backoff retry.

    Every failure (error status, transport error, malformed body) is retried
    the same way. The wait after 0-indexed attempt n is
    `initial_delay * 2**n`; after `max_attempts` failures an
    ExhaustedRetriesError carrying the last error is raised. A single
    instance serves every stage; model, credential, messages and sampling
    settings travel in each CompletionRequest.
    """

    def __init__(
        self,
        max_attempts: int = MAX_COMPLETION_ATTEMPTS,
        initial_delay: float = INITIAL_RETRY_DELAY_SECONDS,
        base_url: Optional[str] = COMPLETION_BASE_URL,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        completion_logger=None,
        token_encoder=None
    ):
        """
        Initialize the completion client.

        Args:
            max_attempts: Total attempts per logical request
            initial_delay: Delay in seconds after the first failed attempt
            base_url: Optional override of the Groq API base URL
            sleep: Awaitable sleep used between attempts (asyncio.sleep by default)
            completion_logger: Optional CompletionLogger for the audit log
            token_encoder: Optional tiktoken encoding used to estimate prompt size
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.base_url = base_url
        self._sleep = sleep or asyncio.sleep
        self.completion_logger = completion_logger
        self.token_encoder = token_encoder
        self._clients: Dict[str, AsyncGroq] = {}
        # Sessions currently holding each credential
        self._refs: Dict[str, int] = {}
        self._closing: Set[asyncio.Task] = set()
        logger.info(
            f"ResilientCompletionClient initialized: max_attempts={max_attempts}, "
            f"initial_delay={initial_delay}s"
        )

    def backoff_delay(self, attempt: int) -> float:
        """Delay to wait after the failed 0-indexed `attempt`."""
        return self.initial_delay * (2 ** attempt)

    def acquire(self, credential: str) -> None:
        """Register one more session that uses `credential`."""
        self._refs[credential] = self._refs.get(credential, 0) + 1

    def release(self, credential: str) -> None:
        """
        Drop one session's claim on `credential`.

        The SDK client bound to it is closed once no session holds it.
        """
        remaining = self._refs.get(credential, 0) - 1
        if remaining > 0:
            self._refs[credential] = remaining
            return

        self._refs.pop(credential, None)
        client = self._clients.pop(credential, None)
        if client is not None:
            self._schedule_close(client)

    async def close(self) -> None:
        """Close every cached SDK client."""
        clients = list(self._clients.values())
        self._clients.clear()
        self._refs.clear()
        for client in clients:
            await client.close()
        logger.info(f"Closed {len(clients)} completion client(s)")

    def _schedule_close(self, client: AsyncGroq) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Outside the event loop the pool is reclaimed with the client object
            return
        task = loop.create_task(client.close())
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def complete(self, request: CompletionRequest) -> LLMResponse:
        """
        Run one logical completion request.

        Args:
            request: Model, credential, messages and sampling settings

        Returns:
            LLMResponse with the completion text and usage

        Raises:
            ValueError: If the request has no messages
            ExhaustedRetriesError: If every attempt failed
        """
        if not request.messages:
            raise ValueError("CompletionRequest.messages must not be empty")

        start_time = time.time()
        prompt_tokens_estimate = self._estimate_prompt_tokens(request.messages)
        last_error: Optional[LLMError] = None

        for attempt in range(self.max_attempts):
            try:
                response = await self._attempt(request)
            except LLMClientError as e:
                last_error = e.error
                logger.warning(
                    f"Completion attempt {attempt + 1}/{self.max_attempts} failed: "
                    f"purpose={request.purpose}, model={request.model_id}, "
                    f"code={e.error.code}, error={e.error.message}",
                    extra={"purpose": request.purpose, "error_code": e.error.code, "attempt": attempt + 1}
                )
                if attempt + 1 < self.max_attempts:
                    await self._sleep(self.backoff_delay(attempt))
                continue

            response.attempts = attempt + 1
            response.latency_ms = int((time.time() - start_time) * 1000)
            logger.info(
                f"Completion succeeded: purpose={request.purpose}, model={request.model_id}, "
                f"attempts={response.attempts}, input_tokens={response.tokens_input}, "
                f"output_tokens={response.tokens_output}, latency={response.latency_ms}ms"
            )
            self._audit(request, "success", response.attempts, response.latency_ms,
                        response.tokens_input, response.tokens_output, prompt_tokens_estimate, None)
            return response

        latency_ms = int((time.time() - start_time) * 1000)
        logger.error(
            f"Completion exhausted retries: purpose={request.purpose}, model={request.model_id}, "
            f"attempts={self.max_attempts}, last_code={last_error.code}",
            extra={"purpose": request.purpose, "error_code": last_error.code}
        )
        self._audit(request, "exhausted", self.max_attempts, latency_ms,
                    0, 0, prompt_tokens_estimate, last_error.code)
        raise ExhaustedRetriesError(last_error, self.max_attempts)

    async def _attempt(self, request: CompletionRequest) -> LLMResponse:
        """Single call to the completion service; every failure becomes LLMClientError."""
        start_time = time.time()
        model = request.model_id

        try:
            client = self._client_for(request.credential)
            response = await client.chat.completions.create(
                model=model,
                messages=request.messages,
                max_tokens=request.max_tokens,
                temperature=request.temperature
            )
        except RateLimitError as e:
            raise self._error("RATE_LIMIT_ERROR", "Rate limit exceeded. Please try again in a few moments.",
                              model, start_time, e, status_code=429)
        except AuthenticationError as e:
            raise self._error("AUTHENTICATION_ERROR", "Authentication failed. Please check your API key.",
                              model, start_time, e, status_code=401)
        except APITimeoutError as e:
            raise self._error("TIMEOUT_ERROR", "Request timed out. Please try again.",
                              model, start_time, e)
        except APIConnectionError as e:
            raise self._error("CONNECTION_ERROR", "Could not reach the completion service.",
                              model, start_time, e)
        except APIStatusError as e:
            raise self._error("API_ERROR", f"Completion service returned status {e.status_code}",
                              model, start_time, e, status_code=e.status_code)
        except APIError as e:
            raise self._error("API_ERROR", f"Groq API error: {str(e)}",
                              model, start_time, e)
        except Exception as e:
            raise self._error("UNKNOWN_ERROR", f"Unexpected error during completion: {str(e)}",
                              model, start_time, e, error_type=type(e).__name__)

        try:
            text = response.choices[0].message.content
        except (AttributeError, IndexError, KeyError, TypeError) as e:
            raise self._error("MALFORMED_RESPONSE", "Completion response has no message content",
                              model, start_time, e)
        if not isinstance(text, str):
            raise self._error("MALFORMED_RESPONSE", "Completion response has no message content",
                              model, start_time, None)

        usage = getattr(response, "usage", None)
        return LLMResponse(
            text=text,
            tokens_input=getattr(usage, "prompt_tokens", 0) or 0,
            tokens_output=getattr(usage, "completion_tokens", 0) or 0,
            latency_ms=int((time.time() - start_time) * 1000),
            model_used=model
        )

    def _client_for(self, credential: str) -> AsyncGroq:
        client = self._clients.get(credential)
        if client is None:
            # Retries are owned by this class, not the SDK
            client = AsyncGroq(api_key=credential, base_url=self.base_url, max_retries=0)
            self._clients[credential] = client
        return client

    @staticmethod
    def _error(
        code: str,
        message: str,
        model: str,
        start_time: float,
        original: Optional[BaseException],
        **extra: Any
    ) -> LLMClientError:
        details = {
            "model": model,
            "latency_ms": int((time.time() - start_time) * 1000),
            "original_error": str(original) if original is not None else None,
        }
        details.update(extra)
        return LLMClientError(LLMError(code=code, message=message, details=details))

    def _estimate_prompt_tokens(self, messages: List[Dict[str, str]]) -> int:
        if self.token_encoder is None:
            return 0
        return sum(len(self.token_encoder.encode(m.get("content", ""))) for m in messages)

    def _audit(self, request, outcome, attempts, latency_ms, tokens_input, tokens_output,
               prompt_tokens_estimate, error_code) -> None:
        if self.completion_logger is None:
            return
        self.completion_logger.log_completion(
            purpose=request.purpose,
            model_used=request.model_id,
            outcome=outcome,
            attempts=attempts,
            latency_ms=latency_ms,
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            prompt_tokens_estimate=prompt_tokens_estimate,
            error_code=error_code
        )
