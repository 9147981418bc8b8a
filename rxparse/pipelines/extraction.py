"""Multi-pass extraction pipeline for submitted prescription documents.

Each submission becomes a job in the registry and a detached asyncio task
that walks the stages in order:

1. Validate the file type, read the bytes and upload them to the backend
2. First-pass extraction (mandatory)
3. Embed the first-pass document
4. Retrieve the nearest validated samples
5. Second-pass refinement with the samples as few-shot context
6. Complete the job and delete the uploaded file

Only stages 1 and 2 can fail a job. Errors in stages 3-5 are logged and the
job completes with the best result obtained so far.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any

from ai.backend import BackendUnavailableError, ExtractionBackend
from rxparse.config import PipelineSettings
from rxparse.datastore import SampleStore
from rxparse.jobs import JobRegistry, JobStatus
from rxparse.parsers import UnsupportedFileTypeError, detect_content_type
from rxparse.schemas import Prescription

logger = logging.getLogger(__name__)

JOB_TYPE_PARSE_PRESCRIPTION = "parse_prescription"

CANCELLED_MESSAGE = "pipeline cancelled during shutdown"


async def read_stream(stream: Any) -> bytes:
    """Read all bytes from raw bytes, a file object or an async reader."""
    if isinstance(stream, (bytes, bytearray)):
        return bytes(stream)
    data = stream.read()
    if inspect.isawaitable(data):
        data = await data
    return bytes(data)


class ExtractionOrchestrator:
    """Runs submitted documents through the extraction pipeline.

    Pipelines run as tracked asyncio tasks. At most
    `max_concurrent_jobs` of them talk to the backend at once; the rest
    wait with their job still pending.
    """

    def __init__(
        self,
        registry: JobRegistry,
        backend: ExtractionBackend | None,
        store: SampleStore,
        config: PipelineSettings | None = None,
    ) -> None:
        self.registry = registry
        self.backend = backend
        self.store = store
        self.config = config or PipelineSettings()
        self._semaphore = asyncio.Semaphore(self.config.max_concurrent_jobs)
        self._tasks: set[asyncio.Task] = set()

    @property
    def active_tasks(self) -> int:
        return len(self._tasks)

    async def submit_document(self, file_name: str, stream: Any) -> str:
        """Create a pending job for the document and schedule its pipeline.

        Args:
            file_name: Original file name, used only to derive the content type
            stream: Document bytes or a readable (sync or async) file object

        Returns:
            The job id

        Raises:
            BackendUnavailableError: If no extraction backend is configured
        """
        if self.backend is None:
            raise BackendUnavailableError("no extraction backend is configured")

        job_id = self.registry.create_job(
            JOB_TYPE_PARSE_PRESCRIPTION,
            f"Processing image: {file_name}",
        )
        task = asyncio.create_task(
            self._run(job_id, file_name, stream),
            name=f"extraction-{job_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.info(f"Submitted {file_name} as job {job_id}")
        return job_id

    async def shutdown(self) -> None:
        """Cancel outstanding pipelines and wait for them to finish."""
        tasks = list(self._tasks)
        if not tasks:
            return
        logger.info(f"Cancelling {len(tasks)} running pipelines")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, job_id: str, file_name: str, stream: Any) -> None:
        try:
            async with self._semaphore:
                await self._run_pipeline(job_id, file_name, stream)
        except asyncio.CancelledError:
            job = self.registry.get_job(job_id)
            if job is not None and not job.status.is_terminal:
                self.registry.update_job(job_id, JobStatus.FAILED, error=CANCELLED_MESSAGE)
            logger.warning(f"Job {job_id} ({file_name}) cancelled")
            raise
        except Exception as e:
            # Stages handle their own errors; this only guards the registry contract
            logger.exception(f"Job {job_id} ({file_name}) crashed: {e}")
            self.registry.update_job(job_id, JobStatus.FAILED, error=f"pipeline error: {e}")

    def _fail(self, job_id: str, file_name: str, message: str) -> None:
        logger.error(f"Job {job_id} ({file_name}) failed: {message}")
        self.registry.update_job(job_id, JobStatus.FAILED, error=message)

    async def _run_pipeline(self, job_id: str, file_name: str, stream: Any) -> None:
        # Stage 1: validate and externalize
        try:
            content_type = detect_content_type(file_name)
        except UnsupportedFileTypeError as e:
            self._fail(job_id, file_name, str(e))
            return

        try:
            data = await read_stream(stream)
        except Exception as e:
            self._fail(job_id, file_name, f"failed to read file contents: {e}")
            return

        try:
            locator = await self.backend.upload(file_name, data, content_type)
        except Exception as e:
            self._fail(job_id, file_name, f"failed to upload file: {e}")
            return

        self.registry.update_job(job_id, JobStatus.PROCESSING)
        logger.info(f"Job {job_id} ({file_name}) uploaded as {locator}")

        try:
            # Stage 2: first pass
            try:
                result = await self.backend.extract_first_pass(locator, content_type)
            except Exception as e:
                self._fail(job_id, file_name, f"failed in first parsing pass: {e}")
                return

            try:
                result = await self._refine(job_id, file_name, locator, content_type, result)
            except asyncio.CancelledError:
                # the first-pass result survives cancellation of the optional stages
                self.registry.update_job(job_id, JobStatus.COMPLETE, result=result)
                logger.warning(f"Job {job_id} ({file_name}) cancelled, keeping first pass")
                raise

            self.registry.update_job(job_id, JobStatus.COMPLETE, result=result)
            logger.info(f"Job {job_id} ({file_name}) complete")
        finally:
            await self._delete_upload(job_id, locator)

    async def _refine(
        self,
        job_id: str,
        file_name: str,
        locator: str,
        content_type: str,
        result: Prescription,
    ) -> Prescription:
        """Run stages 3-5 and return the best result obtained."""
        # Stage 3: embedding
        try:
            vector = await self.backend.embed(result)
        except Exception as e:
            logger.warning(f"Job {job_id} ({file_name}): embedding failed, keeping first pass: {e}")
            return result

        # Stage 4: exemplar retrieval
        try:
            exemplars = await self.store.nearest(vector, self.config.sample_count)
        except Exception as e:
            logger.warning(f"Job {job_id} ({file_name}): sample retrieval failed, keeping first pass: {e}")
            return result

        if not exemplars:
            logger.info(f"Job {job_id} ({file_name}): no samples found, skipping second pass")
            return result

        # Stage 5: second pass
        try:
            refined = await self.backend.extract_second_pass(locator, content_type, exemplars, result)
        except Exception as e:
            logger.warning(f"Job {job_id} ({file_name}): second pass failed, keeping first pass: {e}")
            return result

        logger.debug(f"Job {job_id} ({file_name}): second pass used {len(exemplars)} samples")
        return refined

    async def _delete_upload(self, job_id: str, locator: str) -> None:
        delete = asyncio.ensure_future(self._delete(job_id, locator))
        try:
            await asyncio.shield(delete)
        except asyncio.CancelledError:
            # finish the delete before the cancellation propagates
            await delete
            raise

    async def _delete(self, job_id: str, locator: str) -> None:
        try:
            await self.backend.delete(locator)
        except Exception as e:
            logger.warning(f"Job {job_id}: failed to delete uploaded file {locator}: {e}")
