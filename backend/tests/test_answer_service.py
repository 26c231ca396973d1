"""
Tests for answer generation: prompts, retries, circuit breaker and the
classification of OpenAI failures.
"""

import httpx
import openai
import pytest

from homework_helper.config import Settings
from homework_helper.errors import (
    AnswerServiceNotConfiguredError,
    UpstreamAccessDeniedError,
    UpstreamAuthenticationError,
    UpstreamFailureError,
    UpstreamQuotaExceededError,
    UpstreamRateLimitedError,
    UpstreamTimeoutError,
)
from homework_helper.services.answer_service import (
    EMPTY_COMPLETION_TEXT,
    AnswerService,
    build_user_prompt,
    classify_openai_error,
)
from homework_helper.utils import api_retry

from tests.mocks import MOCK_ANSWER, MockAPIError, MockOpenAIClient

OPENAI_URL = "https://api.openai.com/v1/chat/completions"


@pytest.fixture
def service() -> AnswerService:
    return AnswerService(Settings(openai_api_key="test-key-not-real", ai_max_retries=2))


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    """Retries back off with time.sleep; skip the wait in tests"""
    monkeypatch.setattr(api_retry.time, "sleep", lambda seconds: None)


class TestPrompt:

    @pytest.mark.unit
    def test_bare_question(self):
        assert build_user_prompt("What is a verb?") == "What is a verb?"

    @pytest.mark.unit
    def test_subject_only(self):
        assert build_user_prompt("What is a verb?", subject="English") == (
            "Subject: English\n\nQuestion: What is a verb?"
        )

    @pytest.mark.unit
    def test_topic_only(self):
        assert build_user_prompt("Q", topic="Grammar") == "Subject: , Topic: Grammar\n\nQuestion: Q"


class TestOpenAIClient:

    @pytest.mark.unit
    def test_each_service_uses_its_own_settings(self):
        first = AnswerService(Settings(openai_api_key="key-A", openai_timeout_seconds=5.0))
        second = AnswerService(Settings(openai_api_key="key-B", openai_timeout_seconds=60.0))

        assert first.client.api_key == "key-A"
        assert first.client.timeout.read == 5.0
        assert second.client.api_key == "key-B"
        assert second.client.timeout.read == 60.0
        assert first.client.max_retries == 0

    @pytest.mark.unit
    def test_client_is_built_once(self, service):
        assert service.client is service.client

    @pytest.mark.unit
    def test_injected_client(self):
        client = MockOpenAIClient()
        service = AnswerService(Settings(openai_api_key="k"), client=client)

        assert service.generate_answer("What is a verb?") == MOCK_ANSWER
        assert client.get_call_count() == 1


class TestGenerateAnswer:

    @pytest.mark.unit
    def test_returns_completion_text(self, service, mock_openai):
        assert service.generate_answer("What is a verb?", subject="English") == MOCK_ANSWER

        call = mock_openai.get_last_call()
        assert call["model"] == "gpt-3.5-turbo"
        assert call["max_tokens"] == 1000
        assert call["temperature"] == 0.7

    @pytest.mark.unit
    def test_empty_completion(self, service, mock_openai):
        mock_openai.set_response(None)
        assert service.generate_answer("What is a verb?") == EMPTY_COMPLETION_TEXT

    @pytest.mark.unit
    def test_not_configured(self, mock_openai):
        service = AnswerService(Settings(openai_api_key="  "))
        with pytest.raises(AnswerServiceNotConfiguredError):
            service.generate_answer("What is a verb?")
        assert mock_openai.get_call_count() == 0

    @pytest.mark.unit
    def test_server_errors_are_retried(self, service, mock_openai):
        mock_openai.fail_with(MockAPIError("Bad gateway", 502), MockAPIError("Unavailable", 503))

        assert service.generate_answer("What is a verb?") == MOCK_ANSWER
        assert mock_openai.get_call_count() == 3

    @pytest.mark.unit
    def test_rate_limit_is_not_retried(self, service, mock_openai):
        mock_openai.fail_with(MockAPIError("Rate limit reached", 429))

        with pytest.raises(UpstreamRateLimitedError) as exc:
            service.generate_answer("What is a verb?")

        assert exc.value.retry_after == 60
        assert mock_openai.get_call_count() == 1

    @pytest.mark.unit
    def test_retries_exhausted(self, service, mock_openai):
        mock_openai.fail_with(*[MockAPIError("Server error", 500) for _ in range(3)])

        with pytest.raises(UpstreamFailureError):
            service.generate_answer("What is a verb?")
        assert mock_openai.get_call_count() == 3

    @pytest.mark.unit
    def test_open_circuit_fails_fast(self, mock_openai):
        service = AnswerService(Settings(openai_api_key="k", ai_max_retries=0))
        mock_openai.fail_with(*[MockAPIError("Server error", 500) for _ in range(5)])

        for _ in range(5):
            with pytest.raises(UpstreamFailureError):
                service.generate_answer("What is a verb?")

        assert not service.is_healthy
        with pytest.raises(UpstreamFailureError) as exc:
            service.generate_answer("What is a verb?")
        assert "temporarily unavailable" in exc.value.message
        assert mock_openai.get_call_count() == 5


class TestClassifyOpenAIError:

    def _status_error(self, cls, status, body=None, headers=None):
        response = httpx.Response(status, headers=headers or {}, request=httpx.Request("POST", OPENAI_URL))
        return cls("upstream error", response=response, body=body)

    @pytest.mark.unit
    def test_invalid_key(self):
        error = self._status_error(openai.AuthenticationError, 401, body={"code": "invalid_api_key"})
        assert isinstance(classify_openai_error(error, "gpt-3.5-turbo"), UpstreamAuthenticationError)

    @pytest.mark.unit
    def test_quota(self):
        error = self._status_error(openai.RateLimitError, 429, body={"code": "insufficient_quota"})
        result = classify_openai_error(error, "gpt-3.5-turbo")
        assert isinstance(result, UpstreamQuotaExceededError)
        assert result.status_code == 429

    @pytest.mark.unit
    def test_rate_limit_reads_retry_after(self):
        error = self._status_error(openai.RateLimitError, 429, headers={"retry-after": "7"})
        result = classify_openai_error(error, "gpt-3.5-turbo")
        assert isinstance(result, UpstreamRateLimitedError)
        assert result.to_dict()["retryAfter"] == 7

    @pytest.mark.unit
    def test_model_access(self):
        error = self._status_error(openai.PermissionDeniedError, 403)
        result = classify_openai_error(error, "gpt-4")
        assert isinstance(result, UpstreamAccessDeniedError)
        assert result.to_dict()["attemptedModel"] == "gpt-4"

    @pytest.mark.unit
    def test_model_not_found_code(self):
        error = MockAPIError("The model does not exist", 404, code="model_not_found")
        assert isinstance(classify_openai_error(error, "gpt-5"), UpstreamAccessDeniedError)

    @pytest.mark.unit
    def test_timeout(self):
        error = openai.APITimeoutError(request=httpx.Request("POST", OPENAI_URL))
        result = classify_openai_error(error, "gpt-3.5-turbo")
        assert isinstance(result, UpstreamTimeoutError)
        assert result.status_code == 504

    @pytest.mark.unit
    def test_anything_else_is_generic(self):
        result = classify_openai_error(RuntimeError("boom"), "gpt-3.5-turbo")
        assert isinstance(result, UpstreamFailureError)
        assert result.code == "AI_SERVICE_ERROR"
