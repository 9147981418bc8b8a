"""Ingestion of validated sample prescriptions.

A sample is the original document plus its human-reviewed extraction. It is
uploaded to the backend (the stored file is kept as few-shot context),
embedded, and saved to the sample store. Unlike submissions this runs
inline and reports the first error to the caller.
"""
from __future__ import annotations

import logging
from typing import Any

from ai.backend import BackendUnavailableError, ExtractionBackend
from rxparse.datastore import SampleStore
from rxparse.parsers import detect_content_type
from rxparse.pipelines.extraction import read_stream
from rxparse.schemas import Prescription

logger = logging.getLogger(__name__)


class SampleIngestionError(Exception):
    """Raised when a sample cannot be uploaded, embedded or saved."""
    pass


async def ingest_sample(
    backend: ExtractionBackend | None,
    store: SampleStore,
    file_name: str,
    stream: Any,
    document: Prescription,
) -> str:
    """Upload, embed and save one validated sample.

    Returns:
        The backend file locator of the stored sample

    Raises:
        UnsupportedFileTypeError: If the file is not a supported document type
        BackendUnavailableError: If no extraction backend is configured
        SampleIngestionError: If any later step fails
    """
    if backend is None:
        raise BackendUnavailableError("no extraction backend is configured")

    content_type = detect_content_type(file_name)
    logger.info(f"Saving sample prescription {file_name}")

    try:
        data = await read_stream(stream)
    except Exception as e:
        raise SampleIngestionError(f"failed to read file contents: {e}") from e

    try:
        file_id = await backend.upload(file_name, data, content_type)
    except Exception as e:
        raise SampleIngestionError(f"failed to upload image: {e}") from e
    logger.info(f"Uploaded sample {file_name} as {file_id}")

    try:
        vector = await backend.embed(document)
    except Exception as e:
        raise SampleIngestionError(f"failed to generate embedding: {e}") from e

    try:
        await store.save(content_type, file_id, document, vector)
    except Exception as e:
        raise SampleIngestionError(f"failed to save sample prescription: {e}") from e

    logger.info(f"Saved sample prescription {file_name} ({file_id})")
    return file_id
