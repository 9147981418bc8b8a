"""Grading of parser output against a validated expected document."""
from __future__ import annotations

import logging

from ai.backend import BackendUnavailableError, ExtractionBackend
from rxparse.schemas import ParserResultScore

logger = logging.getLogger(__name__)


async def score_result(
    backend: ExtractionBackend | None,
    expected_json: str,
    output_json: str,
) -> ParserResultScore:
    """Score parser output field by field.

    Both arguments are JSON text. The request is sent once; failures are
    raised to the caller as ScoringError.
    """
    if backend is None:
        raise BackendUnavailableError("no extraction backend is configured")

    score = await backend.score(expected_json, output_json)
    logger.info(
        f"Scored result: {score.overall_score_percentage:.2f}% "
        f"({score.total_awarded_points:.2f} / {score.total_possible_points:.2f})"
    )
    return score
