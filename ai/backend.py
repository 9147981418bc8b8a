"""Extraction backend capability shared by the OpenAI and Gemini implementations.

A backend hosts uploaded documents, runs the structured extraction passes,
embeds extracted documents and grades results. Exactly one implementation
is chosen at startup from configuration.
"""
from __future__ import annotations

import logging
from typing import Protocol, Sequence, runtime_checkable

import numpy as np

from rxparse.config import EMBEDDING_DIM, ParserBackend, Settings
from rxparse.schemas import ParserResultScore, Prescription, SamplePrescription

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """Base class for extraction backend failures."""
    pass


class BackendUnavailableError(BackendError):
    """Raised when no extraction backend is configured."""
    pass


class UploadError(BackendError):
    """Raised when a document cannot be uploaded or deleted."""
    pass


class ExtractionError(BackendError):
    """Raised when a structured extraction pass fails."""
    pass


class EmbeddingError(BackendError):
    """Raised when embedding computation fails."""
    pass


class ScoringError(BackendError):
    """Raised when result grading fails."""
    pass


@runtime_checkable
class ExtractionBackend(Protocol):
    """Capability contract for a multimodal extraction service."""

    name: str

    async def upload(self, file_name: str, data: bytes, content_type: str) -> str:
        """Store a document with the service and return its resource locator."""
        ...

    async def delete(self, locator: str) -> None:
        ...

    async def extract_first_pass(self, locator: str, content_type: str) -> Prescription:
        ...

    async def extract_second_pass(
        self,
        locator: str,
        content_type: str,
        exemplars: Sequence[SamplePrescription],
        prior: Prescription,
    ) -> Prescription:
        """Re-extract with exemplars as few-shot context and the first pass as prior answer."""
        ...

    async def embed(self, document: Prescription) -> list[float]:
        ...

    async def score(self, expected_json: str, output_json: str) -> ParserResultScore:
        ...


def as_embedding(values: Sequence[float]) -> list[float]:
    """Validate an embedding returned by a backend.

    Raises:
        EmbeddingError: If the vector is not EMBEDDING_DIM finite floats
    """
    vector = np.asarray(values, dtype=np.float32)
    if vector.ndim != 1 or vector.shape[0] != EMBEDDING_DIM:
        raise EmbeddingError(
            f"expected embedding of dimension {EMBEDDING_DIM}, got shape {vector.shape}"
        )
    if not np.all(np.isfinite(vector)):
        raise EmbeddingError("embedding contains non-finite values")
    return vector.tolist()


def create_backend(settings: Settings) -> ExtractionBackend | None:
    """Build the backend selected by configuration.

    Returns:
        The backend, or None when no backend is configured

    Raises:
        BackendUnavailableError: If the selected backend has no API key
    """
    choice = settings.resolved_backend()
    logger.info(f"Initializing parser backend: {choice.value if choice else 'none'}")

    if choice is ParserBackend.OPENAI:
        if not settings.openai.api_key:
            raise BackendUnavailableError("OPENAI_API_KEY is required for the openai backend")
        from .openai_backend import OpenAIBackend

        return OpenAIBackend(settings.openai, settings.embeddings)

    if choice is ParserBackend.GEMINI:
        if not settings.gemini.api_key:
            raise BackendUnavailableError("GEMINI_API_KEY is required for the gemini backend")
        from .gemini_backend import GeminiBackend

        return GeminiBackend(settings.gemini, settings.embeddings)

    return None
