"""OpenAI-compatible chat completion client used for field extraction.

Talks to ``POST {base}/chat/completions`` in JSON mode and probes
credentials with ``GET {base}/models``. The credential is passed per call
because it comes from the operator settings snapshot, not from process
configuration.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from invoicedesk.config import settings
from invoicedesk.errors import CredentialError, ExtractionError, sanitize_message

logger = logging.getLogger(__name__)


class OpenAIClient:
    """Async client for an OpenAI-compatible provider.

    Status mapping:
        401/403          -> CredentialError
        429              -> ExtractionError (quota / rate limit)
        other non-2xx    -> ExtractionError
        transport error  -> ExtractionError
    """

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model = model or settings.llm.openai_model
        self._timeout = timeout or settings.llm.extraction_timeout
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.llm.openai_base_url).rstrip("/"),
            timeout=httpx.Timeout(self._timeout, connect=10.0),
            transport=transport,
        )

    @property
    def model(self) -> str:
        return self._model

    @staticmethod
    def _auth(api_key: str | None) -> dict[str, str]:
        if not api_key:
            raise CredentialError(
                "No provider credential configured",
                user_message="No API key configured. Add one in the settings.",
            )
        return {"Authorization": f"Bearer {api_key}"}

    async def chat_json(
        self,
        system_prompt: str,
        user_prompt: str,
        api_key: str | None,
        temperature: float | None = None,
    ) -> str:
        """Send one JSON-mode chat request and return the message content.

        Returns:
            The raw (unparsed) content string of the first choice.
        """
        headers = self._auth(api_key)
        payload: dict[str, Any] = {
            "model": self._model,
            "temperature": settings.llm.extraction_temperature if temperature is None else temperature,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "response_format": {"type": "json_object"},
        }

        start = time.monotonic()
        try:
            response = await self._client.post("/chat/completions", json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.error("Provider timeout after %dms for model %s", elapsed_ms, self._model)
            raise ExtractionError(
                f"Provider timeout after {elapsed_ms}ms",
                user_message="The extraction provider did not answer in time",
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Provider transport error for model %s: %s", self._model, exc)
            raise ExtractionError(
                f"Provider transport error: {exc}",
                user_message="Could not reach the extraction provider",
            ) from exc

        self._raise_for_status(response)

        try:
            data: dict[str, Any] = response.json()
            content: str = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ExtractionError(
                "Provider returned an empty or malformed response",
                user_message="The extraction provider returned an empty response",
            ) from exc

        elapsed_ms = int((time.monotonic() - start) * 1000)
        usage = data.get("usage") or {}
        logger.info(
            "Provider response: model=%s latency=%dms tokens=%s",
            self._model,
            elapsed_ms,
            usage.get("completion_tokens", "?"),
        )
        return (content or "").strip()

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return
        status = response.status_code
        body = sanitize_message(response.text, limit=200)
        if status in (401, 403):
            raise CredentialError(
                f"Provider rejected the credential ({status}): {body}",
                user_message="The API key was rejected by the provider",
            )
        if status == 429:
            raise ExtractionError(
                f"Provider quota or rate limit exceeded: {body}",
                user_message="Provider quota or rate limit exceeded, try again later",
            )
        raise ExtractionError(
            f"Provider error {status}: {body}",
            user_message=f"Extraction provider error (HTTP {status})",
        )

    async def check_credential(self, api_key: str) -> bool:
        """Probe a credential without spending tokens.

        Returns False when the provider rejects the key.

        Raises:
            CredentialError: If the provider cannot be reached or answers
                with an unexpected status, so validity is unknown.
        """
        try:
            response = await self._client.get("/models", headers=self._auth(api_key))
        except httpx.HTTPError as exc:
            raise CredentialError(
                f"Credential check failed: {exc}",
                user_message="Could not reach the provider to check the API key",
            ) from exc

        if response.status_code in (401, 403):
            return False
        if not response.is_success:
            raise CredentialError(
                f"Credential check returned HTTP {response.status_code}",
                user_message=f"Provider answered HTTP {response.status_code} while checking the key",
            )
        return True

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


# Module-level singleton
llm_client = OpenAIClient()
