"""
AI Providers

Content-analysis and embedding capabilities consumed by the pipeline,
plus their OpenAI-backed implementations.
"""

import time
from typing import Any, Dict, List, Optional, Protocol

import httpx
from openai import AsyncOpenAI, OpenAIError

from portfolio_ai.core.exceptions import ConfigurationException, MediaSourceException, ProviderException
from portfolio_ai.core.logging_config import get_logger
from portfolio_ai.models import MediaKind
from portfolio_ai.services.media_sources import MediaSource, is_http_url
from portfolio_ai.services.prometheus_metrics import get_metrics

logger = get_logger(__name__)

VIMEO_OEMBED_URL = "https://vimeo.com/api/oembed.json"


class ContentAnalysisProvider(Protocol):
    async def analyze_media(self, source: MediaSource, prompt: str) -> str:
        ...

    async def generate_text(self, prompt: str) -> str:
        ...


class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> List[float]:
        ...


def create_openai_client(
    api_key: Optional[str],
    base_url: Optional[str] = None,
    timeout: float = 120.0
) -> AsyncOpenAI:
    if not api_key:
        raise ConfigurationException("openai_api_key", "OPENAI_API_KEY is required for analysis")
    return AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)


class OpenAIContentProvider:
    """Chat-completions backed media description and text synthesis."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "gpt-4o-mini",
        synthesis_model: Optional[str] = None,
        max_tokens: int = 1200,
        http_timeout: float = 15.0,
        http_transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.client = client
        self.model = model
        self.synthesis_model = synthesis_model or model
        self.max_tokens = max_tokens
        self.http_timeout = http_timeout
        self.http_transport = http_transport

    def _build_params(self, model: str, messages: List[Dict[str, Any]]) -> Dict[str, Any]:
        params = {"model": model, "messages": messages}

        # Reasoning models take max_completion_tokens and only the default temperature
        if model.startswith(('gpt-5', 'o3', 'o4')):
            params["max_completion_tokens"] = self.max_tokens
        else:
            params["max_tokens"] = self.max_tokens
            params["temperature"] = 0.4
        return params

    async def _complete(self, operation: str, model: str, messages: List[Dict[str, Any]]) -> str:
        metrics = get_metrics()
        started = time.monotonic()

        try:
            response = await self.client.chat.completions.create(**self._build_params(model, messages))
        except OpenAIError as e:
            metrics.record_provider_call(operation, "failure", time.monotonic() - started)
            logger.error(f"OpenAI {operation} call failed: {e}")
            raise ProviderException("openai", str(e), getattr(e, "status_code", None)) from e

        metrics.record_provider_call(operation, "success", time.monotonic() - started)

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise ProviderException("openai", f"{operation} returned an empty response")
        return content.strip()

    async def analyze_media(self, source: MediaSource, prompt: str) -> str:
        if source.kind == MediaKind.IMAGE:
            content = [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": source.url}},
            ]
        else:
            frame_url = await self._video_frame(source)
            description = (
                f"{prompt}\n\nThe attached image is a frame from a video hosted on "
                f"{source.platform} ({source.url}). Base the description on what the frame shows."
            )
            content = [
                {"type": "text", "text": description},
                {"type": "image_url", "image_url": {"url": frame_url}},
            ]

        return await self._complete(
            "analyze_media",
            self.model,
            [{"role": "user", "content": content}]
        )

    async def _video_frame(self, source: MediaSource) -> str:
        """
        URL of a still frame the vision model can look at.

        YouTube sources carry their poster frame; Vimeo thumbnails come from
        the oEmbed endpoint. Direct video files have no frame to offer, so
        they fail rather than being described from the URL alone.
        """
        if source.preview_url:
            return source.preview_url
        if source.platform != "vimeo":
            raise MediaSourceException(
                source.kind.value, source.media_id, "no preview frame available for a direct video file"
            )

        try:
            async with httpx.AsyncClient(timeout=self.http_timeout, transport=self.http_transport) as client:
                response = await client.get(VIMEO_OEMBED_URL, params={"url": source.url, "width": 1280})
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code < 500:
                # Private, deleted or embedding disabled
                raise MediaSourceException(
                    source.kind.value, source.media_id, f"vimeo oEmbed returned {status_code}"
                ) from e
            raise ProviderException("vimeo", f"oEmbed returned {status_code}", status_code) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderException("vimeo", f"oEmbed request failed: {e}") from e

        thumbnail_url = data.get("thumbnail_url") if isinstance(data, dict) else None
        if not is_http_url(thumbnail_url):
            raise MediaSourceException(source.kind.value, source.media_id, "vimeo oEmbed has no thumbnail")
        return thumbnail_url

    async def generate_text(self, prompt: str) -> str:
        return await self._complete(
            "generate_text",
            self.synthesis_model,
            [{"role": "user", "content": prompt}]
        )


class OpenAIEmbeddingProvider:
    """Embeddings endpoint with a fixed output dimension."""

    def __init__(self, client: AsyncOpenAI, model: str = "text-embedding-3-small", dimensions: int = 1536):
        self.client = client
        self.model = model
        self.dimensions = dimensions

    async def embed(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise ProviderException("openai", "cannot embed empty text")

        metrics = get_metrics()
        started = time.monotonic()
        try:
            response = await self.client.embeddings.create(
                model=self.model,
                input=text,
                dimensions=self.dimensions
            )
        except OpenAIError as e:
            metrics.record_provider_call("embed", "failure", time.monotonic() - started)
            logger.error(f"OpenAI embedding call failed: {e}")
            raise ProviderException("openai", str(e), getattr(e, "status_code", None)) from e

        metrics.record_provider_call("embed", "success", time.monotonic() - started)

        vector = list(response.data[0].embedding)
        if len(vector) != self.dimensions:
            raise ProviderException(
                "openai",
                f"embedding has {len(vector)} dimensions, expected {self.dimensions}"
            )
        return vector
