"""OpenAI-compatible chat-completion client."""

from typing import Any

import httpx

from mealdeck.config import get_settings
from mealdeck.llm.json_recovery import recover_json
from mealdeck.logging_config import get_logger

logger = get_logger(__name__)


class LlmError(Exception):
    """Base exception for LLM call failures."""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class LlmNotConfiguredError(LlmError):
    """Raised when no API key is configured."""


class LlmClient:
    """
    Minimal chat-completion client.

    One POST per call with a single bounded timeout; no retries and no
    rate limiting. The caller decides whether a failure is fatal.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url if base_url is not None else settings.llm_api_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.llm_api_key
        self.model = model or settings.llm_model
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def is_configured(self) -> bool:
        """Check whether an API key is available."""
        return bool(self.api_key and self.api_key.strip())

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient()
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.is_configured:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @staticmethod
    def build_user_content(
        text: str,
        images: list[tuple[str, str]] | None = None,
    ) -> str | list[dict[str, Any]]:
        """
        Build the user message content.

        Plain text when there are no images; otherwise one ``image_url``
        part per ``(mime_type, base64_data)`` pair followed by the text part.
        """
        if not images:
            return text

        parts: list[dict[str, Any]] = [
            {
                "type": "image_url",
                "image_url": {"url": f"data:{mime};base64,{b64}"},
            }
            for mime, b64 in images
        ]
        parts.append({"type": "text", "text": text})
        return parts

    async def chat_text(
        self,
        system: str,
        user: str,
        temperature: float,
        timeout: float,
        max_tokens: int | None = None,
        images: list[tuple[str, str]] | None = None,
        model: str | None = None,
    ) -> str:
        """
        Send one chat completion and return the raw assistant text.

        Raises:
            LlmNotConfiguredError: If no API key is configured.
            LlmError: On transport errors, timeouts, non-2xx status or a
                response without content.
        """
        if not self.is_configured:
            raise LlmNotConfiguredError("LLM API key is not configured")

        url = f"{self.base_url}/chat/completions"
        body: dict[str, Any] = {
            "model": model or self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": self.build_user_content(user, images)},
            ],
            "temperature": temperature,
            "response_format": {"type": "json_object"},
        }
        if max_tokens is not None:
            body["max_tokens"] = max_tokens

        client = await self._get_client()
        try:
            response = await client.post(url, json=body, headers=self._headers(), timeout=timeout)
        except httpx.TimeoutException as e:
            logger.error(f"LLM request timed out after {timeout}s")
            raise LlmError(f"LLM request timed out after {timeout}s") from e
        except httpx.HTTPError as e:
            logger.error(f"LLM request failed: {e}")
            raise LlmError(f"sending LLM request: {e}") from e

        if not response.is_success:
            logger.error(f"LLM HTTP {response.status_code}: {response.text[:500]}")
            raise LlmError(
                f"LLM HTTP {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            envelope = response.json()
        except ValueError as e:
            raise LlmError(f"decoding LLM envelope: {e}", body=response.text) from e

        content = _extract_content(envelope)
        if content is None:
            raise LlmError("LLM response missing content", body=response.text)

        return content

    async def chat_json(
        self,
        system: str,
        user: str,
        temperature: float,
        timeout: float,
        max_tokens: int | None = None,
        images: list[tuple[str, str]] | None = None,
        model: str | None = None,
    ) -> Any:
        """
        Send one chat completion and recover a JSON value from the reply.

        Raises:
            LlmError: See ``chat_text``.
            JsonRecoveryError: If the reply holds no recoverable JSON.
        """
        content = await self.chat_text(
            system,
            user,
            temperature=temperature,
            timeout=timeout,
            max_tokens=max_tokens,
            images=images,
            model=model,
        )
        return recover_json(content)

    async def __aenter__(self) -> "LlmClient":
        await self._get_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


def _extract_content(envelope: Any) -> str | None:
    """Read ``choices[0].message.content``, falling back to ``choices[0].text``."""
    try:
        choice = envelope["choices"][0]
    except (KeyError, IndexError, TypeError):
        return None

    message = choice.get("message") if isinstance(choice, dict) else None
    if isinstance(message, dict) and isinstance(message.get("content"), str):
        return message["content"]
    if isinstance(choice, dict) and isinstance(choice.get("text"), str):
        return choice["text"]
    return None
