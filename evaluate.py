"""Offline evaluation harness for the extraction pipeline.

Submits one PDF several times through the same pipeline the API uses,
waits for each job, then scores every completed result against a
validated expected JSON document.

Usage:
    python evaluate.py --pdf sample.pdf --json sample.json --iterations 3
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rxparse.config import get_settings
from rxparse.jobs import Job, JobRegistry
from rxparse.logging_config import setup_logging
from rxparse.pipelines.scoring import score_result
from rxparse.schemas import ParserResultScore, Prescription
from rxparse.service import ParserService, build_service

logger = logging.getLogger("evaluate")


async def wait_for_result(
    registry: JobRegistry,
    job_id: str,
    timeout: float,
    poll_interval: float,
) -> Job | None:
    """Poll a job until it is finished or the deadline passes.

    A timeout only stops waiting; the pipeline itself keeps running.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    while True:
        await asyncio.sleep(poll_interval)

        job = registry.get_job(job_id)
        if job is None:
            logger.error(f"Job not found: {job_id}")
            return None
        if job.status.is_terminal:
            return job
        if loop.time() >= deadline:
            logger.error(f"Job processing timeout exceeded ({timeout:.0f}s): {job_id}")
            return job


def format_score(file_name: str, job_id: str, score: ParserResultScore) -> str:
    return (
        f"Filename: {file_name} - Job ID: {job_id}\n"
        f"Score: {score.overall_score_percentage:.2f}% - "
        f"({score.total_awarded_points:.2f} / {int(score.total_possible_points)})\n"
        f"Feedback:\n{score.summary_critique}\n"
    )


async def run_evaluation(
    service: ParserService,
    pdf_path: Path,
    expected_json: str,
    iterations: int,
    timeout: float = 120.0,
    poll_interval: float = 5.0,
) -> list[tuple[str, ParserResultScore]]:
    """Submit the document `iterations` times and score each finished job.

    Returns:
        (job_id, score) for every job that completed and was scored
    """
    file_name = pdf_path.name
    data = pdf_path.read_bytes()

    job_ids = [
        await service.orchestrator.submit_document(file_name, data)
        for _ in range(iterations)
    ]
    jobs = await asyncio.gather(
        *(wait_for_result(service.registry, job_id, timeout, poll_interval) for job_id in job_ids)
    )

    scores: list[tuple[str, ParserResultScore]] = []
    for job_id, job in zip(job_ids, jobs):
        if job is None or not job.status.is_terminal:
            continue
        if job.error:
            logger.error(f"Job {job_id} failed: {job.error}")
            continue
        if not isinstance(job.result, Prescription):
            logger.error(f"Job {job_id} result is not a prescription")
            continue

        try:
            score = await score_result(service.backend, expected_json, job.result.canonical_json())
        except Exception as e:
            logger.error(f"Failed to score job {job_id}: {e}")
            continue

        print(format_score(file_name, job_id, score))
        scores.append((job_id, score))

    return scores


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Evaluate parser accuracy against a validated document")
    parser.add_argument("--pdf", required=True, type=Path, help="test PDF file path")
    parser.add_argument("--json", required=True, type=Path, help="expected JSON file path")
    parser.add_argument("--iterations", type=int, default=1, help="number of iterations to run")
    parser.add_argument("--timeout", type=float, default=120.0, help="seconds to wait for each job")
    parser.add_argument("--poll-interval", type=float, default=5.0, help="seconds between polls")
    args = parser.parse_args(argv)
    if args.iterations < 1:
        parser.error("--iterations must be at least 1")
    return args


async def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    settings = get_settings()
    setup_logging(settings.logging)

    try:
        expected_json = args.json.read_text(encoding="utf-8")
        Prescription.model_validate_json(expected_json)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to read test JSON file: {e}")
        return 1
    if not args.pdf.is_file():
        logger.error(f"Test PDF file not found: {args.pdf}")
        return 1

    service = build_service(settings)
    if service.backend is None:
        logger.error("No parser backend configured (set OPENAI_API_KEY or GEMINI_API_KEY)")
        return 1

    await service.start()
    try:
        scores = await run_evaluation(
            service,
            args.pdf,
            expected_json,
            args.iterations,
            timeout=args.timeout,
            poll_interval=args.poll_interval,
        )
    finally:
        await service.stop()

    return 0 if scores else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
