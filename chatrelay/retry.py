import asyncio
from typing import Awaitable, Callable, Optional

import openai
import statsd
from loguru import logger
from tenacity import AsyncRetrying, RetryError, retry_if_exception, stop_after_attempt, wait_exponential

from chatrelay import config
from chatrelay.assistant import ChatMessage, LLMAssistant
from chatrelay.errors import EmptyResponse, InvalidCredentials, RetriesExhausted

_INVALID_KEY_PHRASES = ("api key not valid", "invalid api key", "invalid_api_key")


def is_hard_error(exc: BaseException) -> bool:
    """Errors that no amount of retrying will fix: a rejected request or a bad credential."""
    if isinstance(exc, EmptyResponse):
        return False
    if isinstance(exc, openai.AuthenticationError):
        return True
    if getattr(exc, "status_code", None) == 400 or getattr(exc, "code", None) in (400, "400", "invalid_api_key"):
        return True
    message = str(exc).lower()
    return any(phrase in message for phrase in _INVALID_KEY_PHRASES)


def _is_transient(exc: BaseException) -> bool:
    return not is_hard_error(exc)


def _log_failed_attempt(retry_state):
    exc = retry_state.outcome.exception()
    if isinstance(exc, EmptyResponse):
        logger.warning("Attempt {}: received empty response from AI service", retry_state.attempt_number)
    else:
        logger.opt(exception=exc).error(
            "AI service failure on attempt {}: {}: {}", retry_state.attempt_number, type(exc).__name__, exc
        )


def _log_backoff(retry_state):
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.info("Waiting {:.1f}s before next retry...", wait)


async def send_with_retry(
    assistant: LLMAssistant,
    message: ChatMessage,
    metrics: Optional[statsd.StatsClient] = None,
    max_retries: int = config.MAX_RETRIES,
    base_delay: float = config.RETRY_BASE_DELAY,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> str:
    """
    Send one message through the assistant and return non-blank text.

    Blank answers and ordinary errors are retried up to `max_retries` attempts in
    total, waiting `base_delay`, `base_delay * 2`, ... in between. A hard error
    stops the loop at once and raises InvalidCredentials, running out of attempts
    raises RetriesExhausted.
    """
    retrying = AsyncRetrying(
        retry=retry_if_exception(_is_transient),
        wait=wait_exponential(multiplier=base_delay),
        stop=stop_after_attempt(max_retries),
        after=_log_failed_attempt,
        before_sleep=_log_backoff,
        sleep=sleep,
    )

    text = ""
    try:
        async for attempt in retrying:
            with attempt:
                try:
                    text = await assistant.send_message(message)
                except Exception:
                    if metrics is not None:
                        metrics.incr("errors.generate_response")
                    raise
                if not text or not text.strip():
                    if metrics is not None:
                        metrics.incr("retry.empty_response")
                    raise EmptyResponse()
    except RetryError as exc:
        if metrics is not None:
            metrics.incr("errors.retries_exhausted")
        logger.error("AI service failed after {} attempts", exc.last_attempt.attempt_number)
        raise RetriesExhausted(exc.last_attempt.attempt_number) from exc
    except Exception as exc:
        if not is_hard_error(exc):
            raise
        if metrics is not None:
            metrics.incr("errors.invalid_credentials")
        logger.error("AI service rejected the request: {}", exc)
        raise InvalidCredentials() from exc

    return text
