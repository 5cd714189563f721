"""Tagging backends: Gemini, Cloud Vision and the offline demo stub."""

import asyncio
import base64
import json
import random
import re
from abc import abstractmethod
from typing import Any, Awaitable, Callable, List, Optional

import httpx
from google import genai
from google.genai import types

from ..core.error_handling import retry_async, with_error_handling
from ..core.exceptions import TaggingError
from ..core.media_utils import prepare_image_for_tagging
from ..core.models import PipelineConfig
from ..core.protocols import TaggingBackend

VISION_ENDPOINT = "https://vision.googleapis.com/v1/images:annotate"

TAGGING_PROMPT = (
    "You label photos taken at events. Look at this image and return between 5 "
    "and {max_tags} short tags describing the scene, subjects, setting, activity "
    "and mood. Each tag is one to three lowercase words. Respond with a JSON "
    "array of strings only."
)

DEMO_VOCABULARY = {
    "image": ("event", "people", "celebration", "indoor", "photography"),
    "video": ("event", "video", "motion", "celebration"),
}

_CODE_FENCE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")
_LIST_MARKER = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")
_SPLIT = re.compile(r"[,;\n]+")

Sleep = Callable[[float], Awaitable[Any]]


def parse_tag_response(text: Optional[str]) -> List[str]:
    """
    Extract raw tags from a model response.

    Accepts a JSON array, a JSON object with a ``tags`` array, or free text
    split on commas, semicolons and newlines. Blank responses give an empty
    list.

    Raises:
        TaggingError: If the response is JSON of an unexpected shape.
    """
    if not text or not text.strip():
        return []
    cleaned = _CODE_FENCE.sub("", text.strip()).strip()

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        parts = (_LIST_MARKER.sub("", part).strip().strip("\"'") for part in _SPLIT.split(cleaned))
        return [part for part in parts if part]

    if isinstance(parsed, dict):
        parsed = parsed.get("tags")
    if not isinstance(parsed, list):
        raise TaggingError(f"Unexpected tag response shape: {cleaned[:100]!r}")
    return [value for value in parsed if isinstance(value, str)]


class _RetryingBackend(TaggingBackend):
    """Shared retry plumbing for remote classifiers."""

    def __init__(self, config: PipelineConfig, sleep: Sleep = asyncio.sleep):
        self._max_tags = config.max_tags
        self._max_dimension = config.max_dimension
        self._classify_with_retry = retry_async(
            max_attempts=config.retry_attempts,
            initial_delay=config.retry_initial_delay,
            backoff_factor=config.retry_backoff_factor,
            retry_on=(TaggingError,),
            sleep=sleep,
        )(self._classify_once)

    async def classify(self, data: bytes, mime_type: str) -> List[str]:
        data, mime_type = await asyncio.to_thread(
            prepare_image_for_tagging, data, mime_type, self._max_dimension
        )
        return await self._classify_with_retry(data, mime_type)

    @abstractmethod
    async def _classify_once(self, data: bytes, mime_type: str) -> List[str]:
        """Single remote call; failures raise TaggingError."""


class GeminiTaggingBackend(_RetryingBackend):
    """Classifies images with a Gemini model constrained to a JSON string array."""

    name = "gemini"

    def __init__(self, client: genai.Client, config: PipelineConfig, sleep: Sleep = asyncio.sleep):
        super().__init__(config, sleep)
        self._client = client
        self._model = config.gemini_model
        self._prompt = TAGGING_PROMPT.format(max_tags=config.max_tags)

    @with_error_handling(TaggingError)
    async def _classify_once(self, data: bytes, mime_type: str) -> List[str]:
        response = await self._client.aio.models.generate_content(
            model=self._model,
            contents=[types.Part.from_bytes(data=data, mime_type=mime_type), self._prompt],
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=list[str],
                temperature=0.2,
            ),
        )
        return parse_tag_response(response.text)

    async def aclose(self) -> None:
        await self._client.aio.aclose()


class VisionTaggingBackend(_RetryingBackend):
    """Classifies images with Cloud Vision label detection."""

    name = "vision"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        config: PipelineConfig,
        sleep: Sleep = asyncio.sleep,
    ):
        super().__init__(config, sleep)
        self._client = client
        self._api_key = api_key

    @with_error_handling(TaggingError)
    async def _classify_once(self, data: bytes, mime_type: str) -> List[str]:
        body = {
            "requests": [
                {
                    "image": {"content": base64.b64encode(data).decode("ascii")},
                    "features": [{"type": "LABEL_DETECTION", "maxResults": self._max_tags}],
                }
            ]
        }
        response = await self._client.post(
            VISION_ENDPOINT, params={"key": self._api_key}, json=body
        )
        if not response.is_success:
            raise TaggingError(f"Vision API returned HTTP {response.status_code}")

        first = (response.json().get("responses") or [{}])[0]
        if "error" in first:
            raise TaggingError(f"Vision API error: {first['error'].get('message', 'unknown')}")
        return [label.get("description", "") for label in first.get("labelAnnotations", [])]


class DemoTaggingBackend(TaggingBackend):
    """
    Placeholder tags used when no classifier credential is configured.

    Tags are drawn from a small fixed vocabulary keyed by media kind. Pass a
    seed for a reproducible sequence.
    """

    name = "demo"

    def __init__(self, seed: Optional[int] = None):
        self._random = random.Random(seed)

    @property
    def is_demo(self) -> bool:
        return True

    @property
    def requires_media(self) -> bool:
        return False

    async def classify(self, data: bytes, mime_type: str) -> List[str]:
        vocabulary = DEMO_VOCABULARY["video" if mime_type.startswith("video/") else "image"]
        return self._random.sample(vocabulary, self._random.randint(2, 4))
