"""Language-model content extraction."""

from __future__ import annotations

from typing import Protocol

from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel, Field, ValidationError

from knowledge_ingest.core.errors import ExtractionFailed
from knowledge_ingest.core.logging import get_logger

logger = get_logger(__name__)

EXTRACTION_PROMPT = (
    "Cleanup the content in the given text to only have the main content. "
    "Return a json data structure with a 'content' attribute set only."
)


class ExtractedContent(BaseModel):
    """A record containing the main content of a page."""

    content: str = Field(description="The content extracted from the text")


class ContentExtractor(Protocol):
    """Anything that can turn noisy page text into :class:`ExtractedContent`."""

    async def extract(self, text: str) -> ExtractedContent: ...


class OpenAIContentExtractor:
    """Structured extraction through the OpenAI chat completions API."""

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        client: AsyncOpenAI | None = None,
        preamble: str = EXTRACTION_PROMPT,
    ) -> None:
        self.model = model
        self.preamble = preamble
        self._client = client
        self._api_key = api_key

    @property
    def client(self) -> AsyncOpenAI:
        # Created lazily so a missing key only matters once a site is loaded.
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def extract(self, text: str) -> ExtractedContent:
        try:
            client = self.client
            response = await client.chat.completions.create(
                model=self.model,
                response_format={"type": "json_object"},
                temperature=0,
                messages=[
                    {"role": "system", "content": self.preamble},
                    {"role": "user", "content": text},
                ],
            )
        except OpenAIError as exc:
            raise ExtractionFailed(f"model call failed: {exc}") from exc
        raw = response.choices[0].message.content if response.choices else None
        if not raw:
            raise ExtractionFailed("model returned no content")
        try:
            return ExtractedContent.model_validate_json(raw)
        except ValidationError as exc:
            raise ExtractionFailed(f"model output does not match the schema: {exc}") from exc


__all__ = [
    "EXTRACTION_PROMPT",
    "ExtractedContent",
    "ContentExtractor",
    "OpenAIContentExtractor",
]
