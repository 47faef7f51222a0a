"""
Mastery state storage

Every store persists the whole MasteryState as one JSON blob and supports a
conditional write gated on the stored version: save(state, expected_version)
succeeds only if the stored version equals expected_version (no row counts
as version 0), otherwise it raises ConcurrencyConflict.
"""
from typing import AsyncIterator, Dict, Optional, Protocol, Tuple
import logging

from pydantic import ValidationError
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from mastery_engine.core.exceptions import ConcurrencyConflict, PersistenceFailure
from mastery_engine.models.mastery_state import MasteryStateRecord
from mastery_engine.schemas.mastery import MasteryState

logger = logging.getLogger(__name__)


def decode_state(blob: str, learner_id: str, tenant_id: str) -> MasteryState:
    """Deserialise a stored blob; a corrupt payload is a non-retryable PersistenceFailure"""
    try:
        return MasteryState.from_blob(blob)
    except ValidationError as e:
        logger.error(f"Corrupt state payload for learner {learner_id} (tenant {tenant_id}): {e}")
        raise PersistenceFailure(
            f"corrupt state payload: {e.error_count()} validation errors", learner_id, tenant_id, retryable=False
        ) from e


class MasteryStore(Protocol):
    async def load(self, learner_id: str, tenant_id: str) -> Optional[MasteryState]:
        ...

    async def save(self, state: MasteryState, expected_version: int) -> None:
        ...

    def iter_tenant(self, tenant_id: str) -> AsyncIterator[MasteryState]:
        ...


class InMemoryMasteryStore:
    """Process-local store keeping serialised blobs in a dict"""

    def __init__(self):
        self._rows: Dict[Tuple[str, str], Tuple[int, str]] = {}

    async def load(self, learner_id: str, tenant_id: str) -> Optional[MasteryState]:
        row = self._rows.get((tenant_id, learner_id))
        if row is None:
            return None
        return decode_state(row[1], learner_id, tenant_id)

    async def save(self, state: MasteryState, expected_version: int) -> None:
        key = (state.tenant_id, state.learner_id)
        row = self._rows.get(key)
        actual = row[0] if row is not None else 0
        if actual != expected_version:
            raise ConcurrencyConflict(state.learner_id, state.tenant_id, expected_version, actual)
        self._rows[key] = (state.version, state.to_blob())

    async def iter_tenant(self, tenant_id: str) -> AsyncIterator[MasteryState]:
        for (row_tenant, row_learner), (_, blob) in list(self._rows.items()):
            if row_tenant != tenant_id:
                continue
            try:
                state = decode_state(blob, row_learner, row_tenant)
            except PersistenceFailure:
                continue  # logged by decode_state
            yield state

    def version_of(self, learner_id: str, tenant_id: str) -> int:
        row = self._rows.get((tenant_id, learner_id))
        return row[0] if row is not None else 0

    def __len__(self) -> int:
        return len(self._rows)


class SqlAlchemyMasteryStore:
    """
    Async SQLAlchemy store over the mastery_states table.

    First writes insert (a duplicate key means another writer got there
    first); later writes are UPDATE ... WHERE version = :expected.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def load(self, learner_id: str, tenant_id: str) -> Optional[MasteryState]:
        try:
            async with self.session_factory() as session:
                record = await session.get(MasteryStateRecord, (learner_id, tenant_id))
        except SQLAlchemyError as e:
            logger.error(f"Failed to load state for learner {learner_id} (tenant {tenant_id}): {e}")
            raise PersistenceFailure(str(e), learner_id, tenant_id) from e

        if record is None:
            return None
        state = decode_state(record.payload, learner_id, tenant_id)
        state.version = record.version
        return state

    async def save(self, state: MasteryState, expected_version: int) -> None:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    if expected_version == 0:
                        session.add(MasteryStateRecord(
                            learner_id=state.learner_id,
                            tenant_id=state.tenant_id,
                            version=state.version,
                            payload=state.to_blob(),
                            last_updated=state.last_updated,
                        ))
                        await session.flush()
                    else:
                        result = await session.execute(
                            update(MasteryStateRecord)
                            .where(
                                MasteryStateRecord.learner_id == state.learner_id,
                                MasteryStateRecord.tenant_id == state.tenant_id,
                                MasteryStateRecord.version == expected_version,
                            )
                            .values(
                                version=state.version,
                                payload=state.to_blob(),
                                last_updated=state.last_updated,
                            )
                        )
                        if result.rowcount == 0:
                            actual = await self._stored_version(session, state)
                            raise ConcurrencyConflict(state.learner_id, state.tenant_id, expected_version, actual)
        except IntegrityError as e:
            actual = await self._stored_version_fresh(state)
            raise ConcurrencyConflict(state.learner_id, state.tenant_id, expected_version, actual) from e
        except SQLAlchemyError as e:
            logger.error(f"Failed to save state for learner {state.learner_id} (tenant {state.tenant_id}): {e}")
            raise PersistenceFailure(str(e), state.learner_id, state.tenant_id) from e

    async def iter_tenant(self, tenant_id: str) -> AsyncIterator[MasteryState]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(MasteryStateRecord).where(MasteryStateRecord.tenant_id == tenant_id)
            )
            records = result.scalars().all()
        for record in records:
            try:
                state = decode_state(record.payload, record.learner_id, record.tenant_id)
            except PersistenceFailure:
                continue  # logged by decode_state
            state.version = record.version
            yield state

    @staticmethod
    async def _stored_version(session, state: MasteryState) -> Optional[int]:
        result = await session.execute(
            select(MasteryStateRecord.version).where(
                MasteryStateRecord.learner_id == state.learner_id,
                MasteryStateRecord.tenant_id == state.tenant_id,
            )
        )
        return result.scalar_one_or_none()

    async def _stored_version_fresh(self, state: MasteryState) -> Optional[int]:
        async with self.session_factory() as session:
            return await self._stored_version(session, state)
