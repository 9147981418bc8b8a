"""FastAPI app with health, prescription submission, polling and sample endpoints.

Submissions return immediately with a pending job; callers poll the job
until it is complete or failed.
"""
from __future__ import annotations

import io
import logging
from contextlib import asynccontextmanager
from typing import Any, Callable

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, Response, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ai.backend import BackendError, BackendUnavailableError

from .config import settings
from .datastore import SampleStoreError
from .logging_config import setup_logging
from .parsers import UnsupportedFileTypeError
from .pipelines.samples import SampleIngestionError, ingest_sample
from .schemas import Prescription
from .service import ParserService, build_service

logger = logging.getLogger(__name__)


# Pydantic response models
class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    parser_backend: str | None = None


class ErrorResponse(BaseModel):
    """Error response."""
    error: str | None = None
    message: str


def _error(status_code: int, message: str, error: Any = None) -> JSONResponse:
    body = ErrorResponse(error=str(error) if error is not None else None, message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def get_service(request: Request) -> ParserService:
    """Service root dependency, created by the lifespan handler."""
    return request.app.state.service


async def read_upload(upload: UploadFile, max_bytes: int) -> bytes:
    """Read an upload fully, rejecting anything larger than max_bytes."""
    data = await upload.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="File exceeds max upload size",
        )
    return data


def create_app(service_factory: Callable[[], ParserService] = build_service) -> FastAPI:
    """Build the FastAPI application around a service root."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup/shutdown logic."""
        # Startup
        setup_logging(settings.logging)
        logger.info("Application starting up")
        service = service_factory()
        app.state.service = service
        await service.start()

        yield

        # Shutdown
        logger.info("Application shutting down")
        await service.stop()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        description="Asynchronous prescription document parsing",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Invalid request: {exc.errors()}")
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid request", exc.errors())

    @app.exception_handler(UnsupportedFileTypeError)
    async def unsupported_file_handler(request: Request, exc: UnsupportedFileTypeError):
        """Handle uploads that are not PDF documents."""
        logger.warning(f"Unsupported upload: {exc}")
        return _error(status.HTTP_400_BAD_REQUEST, str(exc), exc)

    @app.exception_handler(BackendUnavailableError)
    async def backend_unavailable_handler(request: Request, exc: BackendUnavailableError):
        logger.error(f"Backend unavailable: {exc}")
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Parser backend unavailable", exc)

    @app.exception_handler(SampleIngestionError)
    async def sample_ingestion_error_handler(request: Request, exc: SampleIngestionError):
        """Handle sample upload, embedding and persistence errors."""
        logger.error(f"Sample ingestion error: {exc}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to save sample prescription", exc)

    @app.exception_handler(BackendError)
    async def backend_error_handler(request: Request, exc: BackendError):
        logger.error(f"Backend error: {exc}")
        return _error(status.HTTP_502_BAD_GATEWAY, "Parser backend error", exc)

    @app.exception_handler(SampleStoreError)
    async def sample_store_error_handler(request: Request, exc: SampleStoreError):
        logger.error(f"Sample store error: {exc}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Sample store error", exc)

    @app.get("/health", response_model=HealthResponse)
    async def health(service: ParserService = Depends(get_service)) -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(
            status="ok",
            version=settings.version,
            parser_backend=service.backend_name,
        )

    @app.post("/parser/prescription")
    async def parse_prescription(
        image: UploadFile = File(..., description="Prescription document (PDF)"),
        service: ParserService = Depends(get_service),
    ) -> dict[str, Any]:
        """Submit a document for parsing and return the pending job.

        The upload is read fully here; the pipeline runs after the response
        is sent and is polled through GET /parser/prescription/{job_id}.
        """
        try:
            data = await read_upload(image, settings.api.max_upload_bytes)
        finally:
            await image.close()

        file_name = image.filename or ""
        logger.info(f"Received prescription upload: {file_name} ({len(data)} bytes)")

        job_id = await service.orchestrator.submit_document(file_name, io.BytesIO(data))
        job = service.registry.get_job(job_id)
        if job is None:
            return _error(status.HTTP_404_NOT_FOUND, "Job not found")
        return job.to_dict()

    @app.post("/parser/prescription/sample", status_code=status.HTTP_204_NO_CONTENT)
    async def save_sample_prescription(
        image: UploadFile = File(..., description="Sample prescription document (PDF)"),
        rx_json: str | None = Form(default=None, alias="json", description="Validated prescription JSON"),
        service: ParserService = Depends(get_service),
    ) -> Response:
        """Store a validated sample used as few-shot context for later parses."""
        try:
            data = await read_upload(image, settings.api.max_upload_bytes)
        finally:
            await image.close()

        if not rx_json:
            return _error(status.HTTP_400_BAD_REQUEST, "Prescription JSON is required", "json is required")
        try:
            document = Prescription.model_validate_json(rx_json)
        except ValidationError as e:
            return _error(status.HTTP_400_BAD_REQUEST, "Invalid prescription JSON", f"invalid prescription JSON: {e}")

        await ingest_sample(service.backend, service.store, image.filename or "", data, document)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/parser/prescription/{job_id}")
    async def get_job_status(
        job_id: str,
        service: ParserService = Depends(get_service),
    ) -> Any:
        """Return the current snapshot of a job."""
        job = service.registry.get_job(job_id)
        if job is None:
            return _error(status.HTTP_404_NOT_FOUND, "Job not found")
        return job.to_dict()

    return app


app = create_app()
