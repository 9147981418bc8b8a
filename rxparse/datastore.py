"""Sample store: validated exemplars and nearest-neighbour retrieval.

The pgvector implementation keeps each sample in two tables written in one
transaction; retrieval orders by L2 distance on the embedding column.
"""

from __future__ import annotations

import logging
from typing import Protocol, Sequence, runtime_checkable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import PrescriptionSample, SampleEmbedding
from .schemas import Prescription, SamplePrescription

logger = logging.getLogger(__name__)


class SampleStoreError(Exception):
    """Raised when the sample store cannot be read or written."""
    pass


@runtime_checkable
class SampleStore(Protocol):
    """Capability contract for exemplar persistence."""

    async def nearest(self, vector: Sequence[float], k: int) -> list[SamplePrescription]:
        """Return up to k samples ordered by ascending L2 distance."""
        ...

    async def save(
        self,
        mime_type: str,
        file_id: str,
        document: Prescription,
        vector: Sequence[float],
    ) -> None:
        ...


def _to_sample(row: PrescriptionSample) -> SamplePrescription:
    return SamplePrescription(
        id=row.id,
        file_id=row.file_id,
        mime_type=row.mime_type,
        content=Prescription.model_validate(row.content).canonical_json(),
    )


class PgVectorSampleStore:
    """Sample store on PostgreSQL with the pgvector extension."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.session_maker = session_maker

    async def nearest(self, vector: Sequence[float], k: int) -> list[SamplePrescription]:
        if k <= 0:
            return []

        stmt = (
            select(PrescriptionSample)
            .join(SampleEmbedding, SampleEmbedding.prescription_id == PrescriptionSample.id)
            .order_by(SampleEmbedding.embedding.l2_distance(list(vector)))
            .limit(k)
        )
        try:
            async with self.session_maker() as session:
                result = await session.execute(stmt)
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise SampleStoreError(f"failed to query samples: {e}") from e

        logger.debug(f"Retrieved {len(rows)} samples (k={k})")
        return [_to_sample(row) for row in rows]

    async def save(
        self,
        mime_type: str,
        file_id: str,
        document: Prescription,
        vector: Sequence[float],
    ) -> None:
        sample = PrescriptionSample(
            file_id=file_id,
            mime_type=mime_type,
            content=document.model_dump(mode="json"),
        )
        sample.embedding = SampleEmbedding(embedding=list(vector))

        try:
            async with self.session_maker() as session:
                async with session.begin():
                    session.add(sample)
        except SQLAlchemyError as e:
            raise SampleStoreError(f"failed to save sample: {e}") from e

        logger.info(f"Saved sample {sample.id} (file_id={file_id})")
