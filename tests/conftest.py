"""
Shared fixtures: in-memory extraction backend and sample store fakes,
plus sample documents.
"""
import asyncio
import uuid

import pytest

from rxparse.config import EMBEDDING_DIM, PipelineSettings
from rxparse.jobs import JobRegistry
from rxparse.pipelines.extraction import ExtractionOrchestrator
from rxparse.schemas import (
    Medication,
    ParserResultScore,
    Patient,
    Prescriber,
    Prescription,
    SamplePrescription,
)


class FakeBackend:
    """Extraction backend double that records calls.

    Set one of the *_error attributes to make that operation raise.
    """

    name = "fake"

    def __init__(self, first_pass, second_pass, vector, score=None):
        self.first_pass = first_pass
        self.second_pass = second_pass
        self.vector = vector
        self.score_result = score

        self.upload_error = None
        self.delete_error = None
        self.first_pass_error = None
        self.second_pass_error = None
        self.embed_error = None
        self.score_error = None

        self.uploads = []
        self.deleted = []
        self.second_pass_calls = []
        self.embedded = []
        self.score_calls = []
        # set to an asyncio.Event to hold that call until released
        self.gate = None
        self.second_pass_gate = None
        self.delete_gate = None

    async def upload(self, file_name, data, content_type):
        self.uploads.append((file_name, data, content_type))
        if self.upload_error:
            raise self.upload_error
        return f"file-{len(self.uploads)}"

    async def delete(self, locator):
        if self.delete_gate is not None:
            await self.delete_gate.wait()
        self.deleted.append(locator)
        if self.delete_error:
            raise self.delete_error

    async def extract_first_pass(self, locator, content_type):
        if self.gate is not None:
            await self.gate.wait()
        if self.first_pass_error:
            raise self.first_pass_error
        return self.first_pass

    async def extract_second_pass(self, locator, content_type, exemplars, prior):
        self.second_pass_calls.append((locator, content_type, list(exemplars), prior))
        if self.second_pass_gate is not None:
            await self.second_pass_gate.wait()
        if self.second_pass_error:
            raise self.second_pass_error
        return self.second_pass

    async def embed(self, document):
        self.embedded.append(document)
        if self.embed_error:
            raise self.embed_error
        return list(self.vector)

    async def score(self, expected_json, output_json):
        self.score_calls.append((expected_json, output_json))
        if self.score_error:
            raise self.score_error
        return self.score_result


class FakeSampleStore:
    """In-memory sample store."""

    def __init__(self, samples=None):
        self.samples = list(samples or [])
        self.nearest_error = None
        self.save_error = None
        self.nearest_calls = []
        self.saved = []

    async def nearest(self, vector, k):
        self.nearest_calls.append((list(vector), k))
        if self.nearest_error:
            raise self.nearest_error
        return self.samples[:k]

    async def save(self, mime_type, file_id, document, vector):
        if self.save_error:
            raise self.save_error
        self.saved.append((mime_type, file_id, document, list(vector)))


@pytest.fixture
def first_pass_rx():
    """Document returned by the first extraction pass."""
    return Prescription(
        date_written="2024-03-01",
        patient=Patient(first_name="John", last_name="Doe", dob="1990-01-01"),
        prescriber=Prescriber(name="Jane Smith", npi="1234567890", specialty="MD"),
        medications=[
            Medication(drug_name="Metformin", strength="500mg", quantity="30", refills="3"),
        ],
    )


@pytest.fixture
def second_pass_rx(first_pass_rx):
    """Refined document returned by the second pass."""
    refined = first_pass_rx.model_copy(deep=True)
    refined.medications[0].refills = "2"
    refined.medications[0].sig = "Take 1 tablet by mouth daily"
    return refined


@pytest.fixture
def embedding_vector():
    return [0.01] * EMBEDDING_DIM


@pytest.fixture
def sample_exemplars():
    """Two validated samples as returned by the store."""
    return [
        SamplePrescription(
            id=uuid.uuid4(),
            file_id=f"sample-file-{i}",
            mime_type="application/pdf",
            content=Prescription(patient=Patient(first_name=f"Sample{i}")).canonical_json(),
        )
        for i in range(2)
    ]


@pytest.fixture
def score_object():
    return ParserResultScore.model_validate({
        "field_scores": [
            {
                "field_path": "patient.first_name",
                "expected_value": "John",
                "output_value": "John",
                "score": 1.0,
                "reasoning": "Exact match",
            },
            {
                "field_path": "medications[0].refills",
                "expected_value": "2",
                "output_value": "3",
                "score": 0.0,
                "reasoning": "Wrong refill count",
            },
        ],
        "total_awarded_points": 1.0,
        "total_possible_points": 2.0,
        "overall_score_percentage": 50.0,
        "summary_critique": "Refills were misread.",
    })


@pytest.fixture
def fake_backend(first_pass_rx, second_pass_rx, embedding_vector, score_object):
    return FakeBackend(first_pass_rx, second_pass_rx, embedding_vector, score_object)


@pytest.fixture
def fake_store(sample_exemplars):
    return FakeSampleStore(sample_exemplars)


@pytest.fixture
def registry():
    return JobRegistry()


@pytest.fixture
def orchestrator(registry, fake_backend, fake_store):
    return ExtractionOrchestrator(
        registry,
        fake_backend,
        fake_store,
        PipelineSettings(sample_count=3, max_concurrent_jobs=4),
    )


@pytest.fixture
def wait_for_job():
    """Poll a registry until the job is terminal."""

    async def _wait(registry, job_id, timeout=2.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            job = registry.get_job(job_id)
            if job is not None and job.status.is_terminal:
                return job
            await asyncio.sleep(0.01)
        raise AssertionError(f"job {job_id} did not finish within {timeout}s")

    return _wait
