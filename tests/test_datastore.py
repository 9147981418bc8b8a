"""
Tests for the pgvector sample store with a mocked async session.
"""
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import SQLAlchemyError

from rxparse.datastore import PgVectorSampleStore, SampleStoreError
from rxparse.models import PrescriptionSample, SampleEmbedding
from rxparse.schemas import Prescription


def _async_cm(value):
    cm = MagicMock()
    cm.__aenter__ = AsyncMock(return_value=value)
    cm.__aexit__ = AsyncMock(return_value=False)
    return cm


@pytest.fixture
def session():
    session = MagicMock()
    session.execute = AsyncMock()
    session.begin.return_value = _async_cm(None)
    return session


@pytest.fixture
def store(session):
    session_maker = MagicMock(return_value=_async_cm(session))
    return PgVectorSampleStore(session_maker)


class TestNearest:

    @pytest.mark.asyncio
    async def test_orders_by_l2_distance(self, store, session, embedding_vector):
        row = PrescriptionSample(
            id=uuid.uuid4(),
            file_id="file-1",
            mime_type="application/pdf",
            content={"patient": {"first_name": "Ann"}},
        )
        result = MagicMock()
        result.scalars.return_value.all.return_value = [row]
        session.execute.return_value = result

        samples = await store.nearest(embedding_vector, 3)

        assert len(samples) == 1
        assert samples[0].id == row.id
        assert samples[0].file_id == "file-1"
        assert Prescription.model_validate_json(samples[0].content).patient.first_name == "Ann"

        (stmt,), _ = session.execute.call_args
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "<->" in sql
        assert "JOIN embeddings" in sql
        assert "LIMIT" in sql

    @pytest.mark.asyncio
    async def test_zero_k(self, store, session, embedding_vector):
        assert await store.nearest(embedding_vector, 0) == []
        session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_database_error(self, store, session, embedding_vector):
        session.execute.side_effect = SQLAlchemyError("connection refused")

        with pytest.raises(SampleStoreError, match="failed to query samples"):
            await store.nearest(embedding_vector, 3)


class TestSave:

    @pytest.mark.asyncio
    async def test_saves_document_and_embedding_together(self, store, session, first_pass_rx, embedding_vector):
        await store.save("application/pdf", "file-9", first_pass_rx, embedding_vector)

        session.begin.assert_called_once()
        (sample,), _ = session.add.call_args
        assert isinstance(sample, PrescriptionSample)
        assert sample.file_id == "file-9"
        assert sample.mime_type == "application/pdf"
        assert Prescription.model_validate(sample.content) == first_pass_rx
        assert isinstance(sample.embedding, SampleEmbedding)
        assert sample.embedding.embedding == embedding_vector

    @pytest.mark.asyncio
    async def test_database_error(self, store, session, first_pass_rx, embedding_vector):
        session.add.side_effect = SQLAlchemyError("unique violation")

        with pytest.raises(SampleStoreError, match="failed to save sample"):
            await store.save("application/pdf", "file-9", first_pass_rx, embedding_vector)
