"""
Answer generation through OpenAI chat completions.

Wraps the shared OpenAI client with retry, a circuit breaker and
classification of SDK failures into the application's Upstream* errors.

Usage:
    service = AnswerService(settings)
    answer = service.generate_answer("What is a verb?", subject="English")
"""

import logging
import threading
from typing import Any, Dict, List, Optional

import openai
import sentry_sdk

from homework_helper.config import Settings
from homework_helper.errors import (
    AnswerServiceNotConfiguredError,
    UpstreamAccessDeniedError,
    UpstreamAuthenticationError,
    UpstreamError,
    UpstreamFailureError,
    UpstreamQuotaExceededError,
    UpstreamRateLimitedError,
    UpstreamTimeoutError,
)
from homework_helper.utils import openai_client
from homework_helper.utils.api_retry import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
    RetryConfig,
    call_with_retry,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful homework assistant. Provide clear, concise, and accurate "
    "answers to student questions. Keep responses educational and easy to "
    "understand. If the question is unclear, ask for clarification."
)

EMPTY_COMPLETION_TEXT = "Sorry, I could not generate a response."

DEFAULT_RETRY_AFTER = 60


def build_user_prompt(question: str, subject: Optional[str] = None, topic: Optional[str] = None) -> str:
    """Prefix the question with its subject/topic when either was given."""
    if not subject and not topic:
        return question
    header = f"Subject: {subject or ''}"
    if topic:
        header += f", Topic: {topic}"
    return f"{header}\n\nQuestion: {question}"


def build_messages(question: str, subject: Optional[str] = None, topic: Optional[str] = None) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": build_user_prompt(question, subject, topic)},
    ]


def _error_code(exc: Exception) -> Optional[str]:
    code = getattr(exc, "code", None)
    if code:
        return code
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        nested = body.get("error") if isinstance(body.get("error"), dict) else body
        return nested.get("code")
    return None


def _retry_after(exc: Exception) -> int:
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None) or {}
    raw = headers.get("retry-after")
    try:
        return int(float(raw)) if raw else DEFAULT_RETRY_AFTER
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER


def classify_openai_error(exc: Exception, model: str) -> UpstreamError:
    """
    Map an OpenAI SDK failure to the error reported to the student.

    Checked in order: invalid key, exhausted quota, model access, rate limit,
    timeout, then anything else as a generic upstream failure.
    """
    status_code = getattr(exc, "status_code", None)
    code = _error_code(exc)
    message = str(exc)

    if status_code == 401 or code == "invalid_api_key":
        return UpstreamAuthenticationError()

    if status_code == 429 and code == "insufficient_quota":
        return UpstreamQuotaExceededError()

    if status_code == 403 or code == "model_not_found" or "does not have access" in message:
        return UpstreamAccessDeniedError(model)

    if status_code == 429 or code == "rate_limit_exceeded":
        return UpstreamRateLimitedError(retry_after=_retry_after(exc))

    if isinstance(exc, (openai.APITimeoutError, TimeoutError)):
        return UpstreamTimeoutError()

    return UpstreamFailureError(getattr(exc, "message", None) or None)


class AnswerService:
    """
    Generates homework answers. One instance lives on the AppContext.
    """

    def __init__(self, settings: Settings, client: Optional[Any] = None):
        self.settings = settings
        self._client = client
        self._client_lock = threading.Lock()
        self.retry_config = RetryConfig(
            max_retries=max(0, settings.ai_max_retries),
            initial_delay=1.0,
            max_delay=10.0,
            retry_on_exceptions=(ConnectionError, TimeoutError, openai.APIConnectionError),
            failure_threshold=5,
            recovery_timeout=60.0,
        )
        self.circuit_breaker = CircuitBreaker(self.retry_config)

    @property
    def model(self) -> str:
        return self.settings.openai_model

    @property
    def is_configured(self) -> bool:
        return self.settings.answer_service_configured

    @property
    def is_healthy(self) -> bool:
        return self.is_configured and self.circuit_breaker.state != CircuitState.OPEN

    @property
    def client(self) -> Any:
        """OpenAI client for this service, built on first use."""
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    self._client = openai_client.create_openai_client(
                        api_key=self.settings.openai_api_key,
                        timeout=self.settings.openai_timeout_seconds,
                    )
        return self._client

    def _complete(self, messages: List[Dict[str, str]]) -> Any:
        return self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=self.settings.openai_max_tokens,
            temperature=self.settings.openai_temperature,
        )

    def generate_answer(self, question: str, subject: Optional[str] = None, topic: Optional[str] = None) -> str:
        """
        Ask the model for an answer.

        Args:
            question: Trimmed question text
            subject: Subject as sent by the client (None when omitted)
            topic: Optional topic

        Raises:
            AnswerServiceNotConfiguredError: OPENAI_API_KEY is not set
            UpstreamError: a classified OpenAI failure
        """
        if not self.is_configured:
            logger.error("OpenAI API key not configured")
            raise AnswerServiceNotConfiguredError()

        messages = build_messages(question, subject, topic)

        try:
            completion = call_with_retry(
                self._complete,
                messages,
                config=self.retry_config,
                circuit_breaker=self.circuit_breaker,
            )
        except CircuitOpenError:
            logger.warning(
                f"Circuit breaker OPEN - rejecting OpenAI request. "
                f"Failures: {self.circuit_breaker.failure_count}"
            )
            raise UpstreamFailureError(
                "The AI service is temporarily unavailable due to repeated failures. "
                "Please try again later."
            )
        except Exception as e:
            error = classify_openai_error(e, self.model)
            logger.error(
                f"OpenAI call failed ({error.code}): {type(e).__name__}: {e}. "
                f"Circuit state: {self.circuit_breaker.state.value}"
            )
            if isinstance(error, UpstreamFailureError):
                sentry_sdk.capture_exception(e)
            raise error from e

        return _completion_text(completion)


def _completion_text(completion: Any) -> str:
    choices = getattr(completion, "choices", None) or []
    if not choices:
        return EMPTY_COMPLETION_TEXT
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    return content or EMPTY_COMPLETION_TEXT
