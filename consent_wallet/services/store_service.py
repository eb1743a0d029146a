"""
Persistent Store Service

Namespaced key-value store on top of the ``store_entries`` table. Every key
holds one whole collection; callers read it, transform it in memory and write
it back. There is no partial update and no locking: two writers racing on the
same key between their read and their write lose one update (last write wins).
"""

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from consent_wallet.exceptions import StoreError
from consent_wallet.models.store_entry import StoreEntry

logger = logging.getLogger(__name__)


class PersistentStore:
    """Versioned, namespaced key-value store owned by the coordinator."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], namespace: str = "consent_wallet"):
        self._session_factory = session_factory
        self.namespace = namespace

    def _keys(self, keys: Iterable[Any]) -> list[str]:
        # StoreKey members are str enums; store their plain value
        return [getattr(k, "value", k) for k in keys]

    async def get(self, *keys: Any) -> dict[str, Any]:
        """
        Read several keys at once.

        Returns:
            Mapping of key -> stored value. Keys never written are absent.

        Raises:
            StoreError: the underlying read failed
        """
        names = self._keys(keys)
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(StoreEntry).where(StoreEntry.namespace == self.namespace, StoreEntry.key.in_(names))
                )
                entries = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Store read failed for {names}: {e}")
            raise StoreError(operation="get") from e

        return {entry.key: entry.value for entry in entries}

    async def set(self, values: dict[Any, Any]) -> None:
        """
        Replace the whole value of each given key, creating keys as needed.

        Raises:
            StoreError: the underlying write failed
        """
        values = {getattr(k, "value", k): v for k, v in values.items()}
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(StoreEntry).where(
                        StoreEntry.namespace == self.namespace, StoreEntry.key.in_(list(values))
                    )
                )
                existing = {entry.key: entry for entry in result.scalars().all()}

                for key, value in values.items():
                    entry = existing.get(key)
                    if entry is None:
                        db.add(StoreEntry(namespace=self.namespace, key=key, value=value, version=1))
                    else:
                        entry.value = value
                        entry.version = entry.version + 1

                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Store write failed for {list(values)}: {e}")
            raise StoreError(operation="set") from e

        logger.debug("Store write: %s", ", ".join(values))

    async def remove(self, *keys: Any) -> None:
        names = self._keys(keys)
        try:
            async with self._session_factory() as db:
                await db.execute(
                    delete(StoreEntry).where(StoreEntry.namespace == self.namespace, StoreEntry.key.in_(names))
                )
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Store delete failed for {names}: {e}")
            raise StoreError(operation="remove") from e

    async def version(self, key: Any) -> int:
        """Number of writes a key has seen, 0 if it was never written."""
        name = getattr(key, "value", key)
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(StoreEntry.version).where(StoreEntry.namespace == self.namespace, StoreEntry.key == name)
                )
                version = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError(operation="version") from e
        return version or 0

    async def initialize(self, defaults: dict[Any, Any]) -> list[str]:
        """
        Create every key of ``defaults`` that does not exist yet.

        Existing values are left untouched, so calling this on every start is safe.

        Returns:
            The keys that were created
        """
        current = await self.get(*defaults)
        missing = {getattr(k, "value", k): v for k, v in defaults.items() if getattr(k, "value", k) not in current}
        if missing:
            await self.set(missing)
            logger.info(f"Store '{self.namespace}' initialized keys: {', '.join(missing)}")
        return list(missing)
