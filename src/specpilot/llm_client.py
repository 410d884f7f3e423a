"""Language-model completion client.

Talks to an OpenAI-compatible chat completions endpoint. Used by the
judgment client for yes/no evaluation and by the lesson pipeline for
lesson generation.

Every failure surfaces as an ``LLMClientError`` subclass, so callers that
must degrade gracefully only need to catch that one family.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

import requests
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-4"
DEFAULT_TEMPERATURE = 0.3
DEFAULT_MAX_TOKENS = 500
DEFAULT_TIMEOUT = 120

API_KEY_ENV = "LANGUAGE_MODEL_API_KEY"

SYSTEM_PROMPT = (
    "You are an AI assistant helping with software development tasks. "
    "Analyze the provided information and respond concisely and accurately."
)

# Longest slice of a raw error body quoted back to the user
ERROR_BODY_LIMIT = 500


class LLMClientError(Exception):
    """Base error for anything that goes wrong talking to the language model."""

    pass


class LLMAuthError(LLMClientError):
    """The API key is missing or was rejected."""

    pass


class LLMRateLimitError(LLMClientError):
    """The provider throttled the request (HTTP 429)."""

    pass


class LLMServerError(LLMClientError):
    """The provider failed on its side (HTTP 5xx)."""

    pass


class LLMNetworkError(LLMClientError):
    """The endpoint could not be reached or did not answer in time."""

    pass


def resolve_api_key(api_key: Optional[str] = None) -> str:
    """Return the explicit key, or the one from the environment / .env.

    Raises:
        LLMAuthError: If no key is available.
    """
    if api_key:
        return api_key

    load_dotenv()
    key = os.getenv(API_KEY_ENV)
    if not key:
        raise LLMAuthError(
            f"{API_KEY_ENV} environment variable is not set. "
            "Set it in your .env file or pass api_key parameter."
        )
    return key


def error_detail(response: requests.Response) -> str:
    """Best human-readable description of a failed response.

    Providers disagree on the error body: ``{"error": {"message": ...}}``,
    ``{"error": "..."}``, ``{"message": ...}``, bare lists or plain text all
    occur. Anything unrecognized falls back to the raw text.
    """
    fallback = (response.text or "")[:ERROR_BODY_LIMIT]
    try:
        body = response.json()
    except ValueError:
        return fallback

    if not isinstance(body, dict):
        return fallback

    error = body.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    if isinstance(error, str) and error:
        return error
    if isinstance(body.get("message"), str):
        return body["message"]
    return fallback


def raise_for_status(response: requests.Response) -> None:
    """Map an HTTP status to the matching client error. Success passes through."""
    status = response.status_code

    if status in (401, 403):
        raise LLMAuthError(
            f"Invalid API key (HTTP {status}). "
            f"Please check your {API_KEY_ENV} environment variable."
        )
    if status == 429:
        retry_after = response.headers.get("Retry-After", "unknown")
        raise LLMRateLimitError(f"API rate limit exceeded (HTTP 429). Retry after: {retry_after}")
    if status >= 500:
        raise LLMServerError(
            f"Language model API server error (HTTP {status}). Please try again later."
        )
    if not response.ok:
        raise LLMClientError(f"Language model API error {status}: {error_detail(response)}")


def extract_content(data: Any) -> str:
    """Pull the assistant text out of a chat completions body.

    A null content is returned as an empty string.

    Raises:
        LLMClientError: If the body does not have the expected shape.
    """
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise LLMClientError(f"Unexpected language model response format: {exc!r}") from exc

    if content is None:
        return ""
    if not isinstance(content, str):
        raise LLMClientError(
            f"Unexpected language model response format: content is {type(content).__name__}"
        )
    return content


def query_llm(
    messages: List[Dict[str, Any]],
    model: str = DEFAULT_MODEL,
    temperature: float = DEFAULT_TEMPERATURE,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    timeout: int = DEFAULT_TIMEOUT,
    api_key: Optional[str] = None,
    endpoint: str = DEFAULT_ENDPOINT,
) -> str:
    """Send one chat completion request and return the reply text.

    Raises:
        LLMAuthError: Missing or rejected key.
        LLMRateLimitError: HTTP 429.
        LLMServerError: HTTP 5xx.
        LLMNetworkError: Timeout or connection failure.
        LLMClientError: Any other request or response problem.
    """
    key = resolve_api_key(api_key)
    payload = {
        "model": model,
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    headers = {"Authorization": f"Bearer {key}", "Content-Type": "application/json"}

    logger.debug(f"POST {endpoint} model={model} messages={len(messages)}")

    try:
        response = requests.post(endpoint, json=payload, headers=headers, timeout=timeout)
    except requests.Timeout as exc:
        raise LLMNetworkError(f"Language model request timed out after {timeout} seconds") from exc
    except requests.ConnectionError as exc:
        raise LLMNetworkError(f"Failed to connect to language model API: {exc}") from exc
    except requests.RequestException as exc:
        raise LLMClientError(f"Language model request failed: {exc}") from exc

    raise_for_status(response)

    try:
        data = response.json()
    except ValueError as exc:
        raise LLMClientError(f"Language model API returned invalid JSON: {exc}") from exc

    content = extract_content(data)

    usage = data.get("usage") if isinstance(data, dict) else None
    if isinstance(usage, dict):
        logger.debug(
            f"Token usage: {usage.get('prompt_tokens', 0)} prompt, "
            f"{usage.get('completion_tokens', 0)} completion"
        )
    return content


class LLMClient:
    """Holds connection settings and sends chat requests with them."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: int = DEFAULT_TIMEOUT,
        endpoint: str = DEFAULT_ENDPOINT,
    ):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.endpoint = endpoint

    def query(self, messages: List[Dict[str, Any]]) -> str:
        return query_llm(
            messages=messages,
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            timeout=self.timeout,
            api_key=self.api_key,
            endpoint=self.endpoint,
        )

    def chat(self, prompt: str, system_prompt: Optional[str] = SYSTEM_PROMPT) -> str:
        """Ask a single question, framed by ``system_prompt`` unless it is None."""
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return self.query(messages)


class MockLLMClient:
    """Scripted stand-in for LLMClient.

    Replies come from ``responses`` in order; the last one repeats. Set
    ``should_fail`` to raise ``fail_error`` instead.
    """

    def __init__(self, responses: Optional[List[str]] = None):
        self.call_count = 0
        self.prompts: List[str] = []
        self.responses: List[str] = list(responses or ["yes"])
        self.should_fail: bool = False
        self.fail_error: LLMClientError = LLMNetworkError("Mock failure")

    def chat(self, prompt: str, system_prompt: Optional[str] = SYSTEM_PROMPT) -> str:
        self.call_count += 1
        self.prompts.append(prompt)

        if self.should_fail:
            raise self.fail_error

        return self.responses[min(self.call_count - 1, len(self.responses) - 1)]
