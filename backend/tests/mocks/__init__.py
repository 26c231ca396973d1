"""
Mock infrastructure for HomeworkHelper testing.
Provides deterministic mocks for OpenAI.
"""

from .openai_mocks import (
    MOCK_ANSWER,
    MockAPIError,
    MockChatCompletion,
    MockOpenAIClient,
    mock_openai_completion,
)

__all__ = [
    "MOCK_ANSWER",
    "MockAPIError",
    "MockChatCompletion",
    "MockOpenAIClient",
    "mock_openai_completion",
]
