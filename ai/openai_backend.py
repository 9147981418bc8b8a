"""OpenAI implementation of the extraction backend.

Documents go through the Files API, extraction and grading use the
Responses API with strict JSON-schema output, and embeddings come from
text-embedding-3-small truncated to the store dimension.
"""
from __future__ import annotations

import logging
from typing import Any, Sequence

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from rxparse.config import EmbeddingSettings, OpenAISettings
from rxparse.schemas import ParserResultScore, Prescription, SamplePrescription

from .backend import EmbeddingError, ExtractionError, ScoringError, UploadError, as_embedding
from .prompts import PARSE_PROMPT, REVIEW_PROMPT, SYSTEM_PROMPT, scoring_request
from .schema import openai_strict_schema

logger = logging.getLogger(__name__)


def _text_format(model: type[BaseModel], description: str) -> dict[str, Any]:
    return {
        "format": {
            "type": "json_schema",
            "name": model.__name__,
            "description": description,
            "schema": openai_strict_schema(model),
            "strict": True,
        }
    }


def _file_message(file_id: str, prompt: str) -> dict[str, Any]:
    return {
        "role": "user",
        "content": [
            {"type": "input_file", "file_id": file_id},
            {"type": "input_text", "text": prompt},
        ],
    }


class OpenAIBackend:
    """Extraction backend backed by the OpenAI API."""

    name = "openai"

    def __init__(
        self,
        config: OpenAISettings,
        embedding_config: EmbeddingSettings,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.config = config
        self.embedding_config = embedding_config
        self.client = client or AsyncOpenAI(api_key=config.api_key)

    async def upload(self, file_name: str, data: bytes, content_type: str) -> str:
        try:
            stored = await self.client.files.create(
                file=(file_name, data, content_type),
                purpose="user_data",
            )
        except openai.OpenAIError as e:
            raise UploadError(str(e)) from e
        logger.debug(f"Uploaded {file_name} as {stored.id}")
        return stored.id

    async def delete(self, locator: str) -> None:
        try:
            await self.client.files.delete(locator)
        except openai.OpenAIError as e:
            raise UploadError(f"failed to delete image: {e}") from e

    def build_first_pass_input(self, locator: str) -> list[dict[str, Any]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            _file_message(locator, PARSE_PROMPT),
        ]

    def build_second_pass_input(
        self,
        locator: str,
        exemplars: Sequence[SamplePrescription],
        prior: Prescription,
    ) -> list[dict[str, Any]]:
        """Conversation replaying each exemplar, then the first answer, then the review request."""
        messages: list[dict[str, Any]] = [{"role": "system", "content": SYSTEM_PROMPT}]
        for sample in exemplars:
            messages.append(_file_message(sample.file_id, PARSE_PROMPT))
            messages.append({"role": "assistant", "content": sample.content})
        messages.append(_file_message(locator, PARSE_PROMPT))
        messages.append({"role": "assistant", "content": prior.canonical_json()})
        messages.append({"role": "user", "content": REVIEW_PROMPT})
        return messages

    async def _extract(self, messages: list[dict[str, Any]]) -> Prescription:
        try:
            resp = await self.client.responses.create(
                model=self.config.model,
                input=messages,
                text=_text_format(Prescription, "Prescription Image Parser Prescription JSON"),
                max_output_tokens=self.config.max_output_tokens,
            )
        except openai.OpenAIError as e:
            raise ExtractionError(f"failed to process image: {e}") from e

        try:
            return Prescription.model_validate_json(resp.output_text)
        except ValidationError as e:
            raise ExtractionError(f"failed to unmarshal response: {e}") from e

    async def extract_first_pass(self, locator: str, content_type: str) -> Prescription:
        return await self._extract(self.build_first_pass_input(locator))

    async def extract_second_pass(
        self,
        locator: str,
        content_type: str,
        exemplars: Sequence[SamplePrescription],
        prior: Prescription,
    ) -> Prescription:
        return await self._extract(self.build_second_pass_input(locator, exemplars, prior))

    async def embed(self, document: Prescription) -> list[float]:
        """Embed a document's canonical JSON, retrying transient API failures."""
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.embedding_config.max_attempts),
                wait=wait_exponential(multiplier=1, min=2, max=10),
                retry=retry_if_exception_type(openai.APIError),
                reraise=True,
            ):
                with attempt:
                    resp = await self.client.embeddings.create(
                        model=self.config.embedding_model,
                        input=document.canonical_json(),
                        dimensions=self.embedding_config.dim,
                        encoding_format="float",
                    )
        except openai.OpenAIError as e:
            raise EmbeddingError(f"failed to generate prescription embedding: {e}") from e

        if not resp.data:
            raise EmbeddingError("failed to generate prescription embedding: empty response")
        return as_embedding(resp.data[0].embedding)

    async def score(self, expected_json: str, output_json: str) -> ParserResultScore:
        try:
            resp = await self.client.responses.create(
                model=self.config.model,
                input=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "input_text", "text": scoring_request(expected_json, output_json)},
                        ],
                    }
                ],
                text=_text_format(ParserResultScore, "Parser Result Score JSON"),
                max_output_tokens=self.config.max_output_tokens,
            )
        except openai.OpenAIError as e:
            raise ScoringError(f"failed to score result: {e}") from e

        try:
            return ParserResultScore.model_validate_json(resp.output_text)
        except ValidationError as e:
            raise ScoringError(f"failed to unmarshal response: {e}") from e
