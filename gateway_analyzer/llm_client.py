"""Text-generation clients used to write the analyst narrative."""

import logging
from typing import Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)


class NarrativeError(Exception):
    """Base class for text-generation failures."""


class NarrativeTimeoutError(NarrativeError):
    pass


class TransportError(NarrativeError):
    pass


class EmptyResponseError(NarrativeError):
    pass


@runtime_checkable
class TextGenerator(Protocol):
    def summarize(self, prompt: str, max_tokens: int = 500) -> str: ...


class WorkersAIClient:
    """Cloudflare Workers AI REST client.

    POST {base_url}/accounts/{account_id}/ai/run/{model}
    """

    def __init__(
        self,
        account_id: str,
        api_token: str,
        model: str = "@cf/meta/llama-2-7b-chat-int8",
        base_url: str = "https://api.cloudflare.com/client/v4",
        timeout: float = 15.0,
        temperature: float = 0.3,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self._url = f"{base_url.rstrip('/')}/accounts/{account_id}/ai/run/{model}"
        self._client = httpx.Client(
            headers={"Authorization": f"Bearer {api_token}"},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, narrative_config: dict) -> "WorkersAIClient | None":
        """Build a client from the ``narrative`` config section, or None if unset."""
        if not narrative_config.get("enabled", True):
            return None
        account_id = narrative_config.get("account_id")
        api_token = narrative_config.get("api_token")
        if not account_id or not api_token:
            logger.info("Workers AI credentials not configured, using fallback narratives")
            return None
        return cls(
            account_id=account_id,
            api_token=api_token,
            model=narrative_config.get("model", "@cf/meta/llama-2-7b-chat-int8"),
            base_url=narrative_config.get("base_url", "https://api.cloudflare.com/client/v4"),
            timeout=float(narrative_config.get("timeout_seconds", 15.0)),
            temperature=float(narrative_config.get("temperature", 0.3)),
        )

    def summarize(self, prompt: str, max_tokens: int = 500) -> str:
        payload = {
            "prompt": prompt,
            "max_tokens": max_tokens,
            "temperature": self.temperature,
        }
        try:
            resp = self._client.post(self._url, json=payload)
            resp.raise_for_status()
            body = resp.json()
        except httpx.TimeoutException as e:
            raise NarrativeTimeoutError(f"Workers AI timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Workers AI request failed: {e}") from e
        except ValueError as e:
            raise TransportError(f"Workers AI returned malformed JSON: {e}") from e

        result = body.get("result") if isinstance(body, dict) else None
        text = result.get("response") if isinstance(result, dict) else None
        if not isinstance(text, str) or not text.strip():
            raise EmptyResponseError("Workers AI returned an empty response")
        return text.strip()

    def close(self) -> None:
        self._client.close()
