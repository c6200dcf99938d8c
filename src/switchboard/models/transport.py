"""HTTP transport for OpenAI-compatible and Gemini REST endpoints."""

from __future__ import annotations

import logging
from typing import Any, AsyncGenerator, Dict, Mapping, Optional

import httpx

from .. import __version__
from .base import LLMTransportError

logger = logging.getLogger(__name__)

CHAT_COMPLETIONS_PATH = "chat/completions"


def resolve_chat_url(base_url: str) -> str:
    """Append ``/chat/completions`` unless the base URL already points at it."""
    if CHAT_COMPLETIONS_PATH in base_url:
        return base_url
    if base_url.endswith("/"):
        return f"{base_url}{CHAT_COMPLETIONS_PATH}"
    return f"{base_url}/{CHAT_COMPLETIONS_PATH}"


def resolve_embeddings_url(base_url: str) -> str:
    base = base_url.rstrip("/")
    if base.endswith(CHAT_COMPLETIONS_PATH):
        base = base[: -len(CHAT_COMPLETIONS_PATH)].rstrip("/")
    return f"{base}/embeddings"


def build_headers(api_key: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "User-Agent": f"switchboard/{__version__}",
    }


class TransportClient:
    """Sends JSON requests and streams; surfaces failures without retrying."""

    def __init__(
        self,
        headers: Mapping[str, str],
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: logging.Logger = logger,
    ) -> None:
        self.headers = dict(headers)
        self.timeout = timeout
        self.transport = transport
        self.logger = logger

    def _client(self, timeout: Optional[float]) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self.transport)

    async def post_json(self, url: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        async with self._client(self.timeout) as client:
            try:
                resp = await client.post(url, headers=self.headers, json=dict(payload))
            except httpx.HTTPError as exc:
                self.logger.warning("Request to %s failed: %s", url, exc)
                raise LLMTransportError(f"Request failed: {exc}", body=str(exc)) from exc

        if not resp.is_success:
            raise self._status_error(resp, resp.text)
        try:
            return resp.json()
        except ValueError as exc:
            raise LLMTransportError(
                f"Backend returned a non-JSON body (HTTP {resp.status_code})",
                status_code=resp.status_code,
                body=resp.text,
            ) from exc

    async def stream_bytes(self, url: str, payload: Mapping[str, Any]) -> AsyncGenerator[bytes, None]:
        """Yield raw body chunks; the connection is released on every exit path."""
        async with self._client(None) as client:
            try:
                async with client.stream("POST", url, headers=self.headers, json=dict(payload)) as resp:
                    if not resp.is_success:
                        body = (await resp.aread()).decode("utf-8", errors="replace")
                        raise self._status_error(resp, body)
                    async for chunk in resp.aiter_bytes():
                        yield chunk
            except httpx.HTTPError as exc:
                self.logger.warning("Stream from %s failed: %s", url, exc)
                raise LLMTransportError(f"Stream failed: {exc}", body=str(exc)) from exc

    def _status_error(self, resp: httpx.Response, body: str) -> LLMTransportError:
        self.logger.warning(
            "Backend returned HTTP %s",
            resp.status_code,
            extra={"status_code": resp.status_code, "url": str(resp.request.url)},
        )
        return LLMTransportError(
            f"HTTP {resp.status_code}: {resp.reason_phrase}",
            status_code=resp.status_code,
            body=body,
        )
