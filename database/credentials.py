"""
Credential store — lookups and inserts against the ``credentials`` table.

The unique constraint on ``identifier`` is authoritative: an insert that
collides with an existing identifier raises ``DuplicateIdentifierError``
even when a prior existence check passed.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from database.models import Base, Credential

logger = logging.getLogger(__name__)


class DuplicateIdentifierError(Exception):
    """Raised when an insert violates the identifier uniqueness constraint."""

    def __init__(self, identifier: str) -> None:
        super().__init__(f"identifier already registered: {identifier}")
        self.identifier = identifier


def _to_uuid(value: str | uuid.UUID) -> uuid.UUID:
    return uuid.UUID(value) if isinstance(value, str) else value


class CredentialStore:
    """Each call runs in its own session and transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_by_identifier(self, identifier: str) -> Optional[Credential]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Credential).where(Credential.identifier == identifier)
            )
            return result.scalar_one_or_none()

    async def get_by_id(self, subject_id: str | uuid.UUID) -> Optional[Credential]:
        """Return ``None`` for unknown ids, including strings that are not UUIDs."""
        try:
            sid = _to_uuid(subject_id)
        except ValueError:
            return None
        async with self._session_factory() as session:
            return await session.get(Credential, sid)

    async def insert(self, identifier: str, hashed_secret: str) -> Credential:
        credential = Credential(
            subject_id=uuid.uuid4(),
            identifier=identifier,
            hashed_secret=hashed_secret,
        )
        async with self._session_factory() as session:
            session.add(credential)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateIdentifierError(identifier) from exc
        return credential


async def ping(engine: AsyncEngine) -> None:
    """Round-trip to the database; raises if it is unreachable."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Credential tables ready")
