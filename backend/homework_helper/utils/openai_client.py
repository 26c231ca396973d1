"""
OpenAI client factory.

Clients are owned by the AnswerService that creates them, so each service
uses its own key and timeout. The app can still start (and report
answerService "unavailable") when OPENAI_API_KEY is not set.
"""

from typing import Optional

import httpx
from openai import OpenAI

# 30s total request, 10s connect
DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=10.0)


def create_openai_client(api_key: Optional[str], timeout: Optional[float] = None) -> OpenAI:
    """
    Build an OpenAI client for the given key.

    Retries are handled by utils.api_retry, so the SDK's own retries are off.

    Raises:
        ValueError: If no API key is given
    """
    if not api_key or not api_key.strip():
        raise ValueError(
            "OPENAI_API_KEY environment variable is not set. "
            "Please set it before asking questions."
        )
    client_timeout = httpx.Timeout(timeout, connect=10.0) if timeout else DEFAULT_TIMEOUT
    return OpenAI(api_key=api_key, timeout=client_timeout, max_retries=0)
