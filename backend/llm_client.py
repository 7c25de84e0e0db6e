"""Anthropic client used to grade open responses."""

import logging
import time
from collections import deque
from collections.abc import Callable

import anthropic
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from backend.config import settings

logger = logging.getLogger(__name__)

# Failures worth another attempt; bad requests and auth errors are not
TRANSIENT_ERRORS = (
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)


class RateLimiter:
    """Sliding-window limit on calls per ``window`` seconds. Blocks when full."""

    def __init__(
        self,
        max_calls: int,
        window: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_calls < 1:
            raise ValueError("max_calls must be at least 1")
        self.max_calls = max_calls
        self.window = window
        self._clock = clock
        self._sleep = sleep
        self._calls: deque[float] = deque()

    def acquire(self) -> None:
        now = self._clock()
        while self._calls and now - self._calls[0] > self.window:
            self._calls.popleft()
        if len(self._calls) >= self.max_calls:
            wait = self.window - (now - self._calls[0])
            if wait > 0:
                logger.info("Grading rate limit reached, sleeping %.1fs", wait)
                self._sleep(wait)
            self._calls.popleft()
        self._calls.append(self._clock())


class LLMClient:
    """Thin wrapper over the Messages API with rate limiting and retries."""

    def __init__(
        self,
        client: anthropic.Anthropic | None = None,
        model: str = settings.anthropic_model,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self.client = client or anthropic.Anthropic(api_key=settings.anthropic_api_key)
        self.model = model
        self.rate_limiter = rate_limiter or RateLimiter(settings.anthropic_rate_limit_rpm)

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(settings.anthropic_max_retries),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        reraise=True,
    )
    def create_message(
        self,
        prompt: str,
        system: str = "",
        max_tokens: int = 1024,
        temperature: float = 0.2,
    ) -> str:
        """Send one user message and return the text of the reply.

        Raises:
            anthropic.APIError: After retries are exhausted, or at once for
                non-transient failures.
        """
        self.rate_limiter.acquire()
        kwargs: dict = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system
        response = self.client.messages.create(**kwargs)
        logger.debug("Grading call: %d in, %d out tokens", response.usage.input_tokens, response.usage.output_tokens)
        return "".join(block.text for block in response.content if block.type == "text")


_llm_client: LLMClient | None = None


def get_llm_client() -> LLMClient:
    """Return the shared client, built on first use so no key is needed at import."""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
