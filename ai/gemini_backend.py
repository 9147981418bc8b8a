"""Gemini implementation of the extraction backend.

Uses google-generativeai: uploaded files are referenced by URI in
multimodal requests, and the structured-output contract is passed as
response_schema.
"""
from __future__ import annotations

import asyncio
import io
import logging
from typing import Any, Sequence

import google.generativeai as genai
from google.api_core.exceptions import GoogleAPIError
from pydantic import BaseModel, ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from rxparse.config import EmbeddingSettings, GeminiSettings
from rxparse.schemas import ParserResultScore, Prescription, SamplePrescription

from .backend import EmbeddingError, ExtractionError, ScoringError, UploadError, as_embedding
from .prompts import PARSE_PROMPT, REVIEW_PROMPT, SYSTEM_PROMPT, scoring_request
from .schema import gemini_response_schema

logger = logging.getLogger(__name__)


def file_name_from_uri(uri: str) -> str:
    """Map a file URI (.../v1beta/files/abc) to the resource name files/abc."""
    return "files/" + uri.rstrip("/").rsplit("/", 1)[-1]


def _file_turn(uri: str, content_type: str, prompt: str) -> dict[str, Any]:
    return {
        "role": "user",
        "parts": [
            {"file_data": {"mime_type": content_type, "file_uri": uri}},
            {"text": prompt},
        ],
    }


def _model_turn(text: str) -> dict[str, Any]:
    return {"role": "model", "parts": [{"text": text}]}


class GeminiBackend:
    """Extraction backend backed by the Gemini API."""

    name = "gemini"

    def __init__(self, config: GeminiSettings, embedding_config: EmbeddingSettings) -> None:
        self.config = config
        self.embedding_config = embedding_config
        genai.configure(api_key=config.api_key)

    def _model(self, schema_model: type[BaseModel], system_instruction: str | None = None):
        return genai.GenerativeModel(
            model_name=self.config.model,
            system_instruction=system_instruction,
            generation_config=genai.GenerationConfig(
                response_mime_type="application/json",
                response_schema=gemini_response_schema(schema_model),
            ),
        )

    async def upload(self, file_name: str, data: bytes, content_type: str) -> str:
        try:
            stored = await asyncio.to_thread(
                genai.upload_file,
                io.BytesIO(data),
                mime_type=content_type,
                display_name=file_name,
            )
        except GoogleAPIError as e:
            raise UploadError(str(e)) from e
        logger.debug(f"Uploaded {file_name} as {stored.name}")
        return stored.uri

    async def delete(self, locator: str) -> None:
        try:
            await asyncio.to_thread(genai.delete_file, file_name_from_uri(locator))
        except GoogleAPIError as e:
            raise UploadError(f"failed to delete image: {e}") from e

    def build_second_pass_contents(
        self,
        locator: str,
        content_type: str,
        exemplars: Sequence[SamplePrescription],
        prior: Prescription,
    ) -> list[dict[str, Any]]:
        contents: list[dict[str, Any]] = []
        for sample in exemplars:
            contents.append(_file_turn(sample.file_id, sample.mime_type, PARSE_PROMPT))
            contents.append(_model_turn(sample.content))
        contents.append(_file_turn(locator, content_type, PARSE_PROMPT))
        contents.append(_model_turn(prior.canonical_json()))
        contents.append({"role": "user", "parts": [{"text": REVIEW_PROMPT}]})
        return contents

    async def _extract(self, contents: list[dict[str, Any]]) -> Prescription:
        model = self._model(Prescription, system_instruction=SYSTEM_PROMPT)
        try:
            resp = await model.generate_content_async(contents)
            text = resp.text
        except (GoogleAPIError, ValueError) as e:
            # resp.text raises ValueError when the candidate was blocked
            raise ExtractionError(f"failed to process image: {e}") from e

        try:
            return Prescription.model_validate_json(text)
        except ValidationError as e:
            raise ExtractionError(f"failed to unmarshal response: {e}") from e

    async def extract_first_pass(self, locator: str, content_type: str) -> Prescription:
        return await self._extract([_file_turn(locator, content_type, PARSE_PROMPT)])

    async def extract_second_pass(
        self,
        locator: str,
        content_type: str,
        exemplars: Sequence[SamplePrescription],
        prior: Prescription,
    ) -> Prescription:
        return await self._extract(
            self.build_second_pass_contents(locator, content_type, exemplars, prior)
        )

    async def embed(self, document: Prescription) -> list[float]:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.embedding_config.max_attempts),
                wait=wait_exponential(multiplier=1, min=2, max=10),
                retry=retry_if_exception_type(GoogleAPIError),
                reraise=True,
            ):
                with attempt:
                    result = await genai.embed_content_async(
                        model=self.config.embedding_model,
                        content=document.canonical_json(),
                        task_type="semantic_similarity",
                        output_dimensionality=self.embedding_config.dim,
                    )
        except GoogleAPIError as e:
            raise EmbeddingError(f"failed to generate prescription embedding: {e}") from e

        return as_embedding(result["embedding"])

    async def score(self, expected_json: str, output_json: str) -> ParserResultScore:
        model = self._model(ParserResultScore)
        try:
            resp = await model.generate_content_async(scoring_request(expected_json, output_json))
            text = resp.text
        except (GoogleAPIError, ValueError) as e:
            raise ScoringError(f"failed to score result: {e}") from e

        try:
            return ParserResultScore.model_validate_json(text)
        except ValidationError as e:
            raise ScoringError(f"failed to unmarshal response: {e}") from e
