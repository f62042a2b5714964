"""Key store adapter — the narrow surface the summarizer and key router need.

``build_key_store`` yields either a live ``SqlKeyStore`` or an
``UnconfiguredKeyStore`` whose every method raises ``StoreNotConfiguredError``.
Callers branch on the exception (or ``store.configured``), never on ``None``.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncGenerator, Optional

from sqlalchemy.exc import NotSupportedError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from blingo.common.config import BlingoSettings
from blingo.common.database import DatabaseManager
from blingo.common.exceptions import StoreError, StoreNotConfiguredError
from blingo.keys.models import ApiKeyModel
from blingo.keys.service import ApiKeyService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiKeySnapshot:
    """Detached copy of an api_keys row."""

    id: str
    name: str
    key: str
    usage: int
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, model: ApiKeyModel) -> "ApiKeySnapshot":
        return cls(
            id=model.id,
            name=model.name,
            key=model.key,
            usage=model.usage or 0,
            user_id=model.user_id,
            created_at=model.created_at,
        )


@dataclass(frozen=True)
class UserSnapshot:
    id: str
    email: str
    name: Optional[str] = None
    image: Optional[str] = None


class KeyStore:
    """Interface shared by the live and unconfigured stores."""

    configured: bool = False

    async def find_by_key(self, key: str) -> ApiKeySnapshot | None:
        raise NotImplementedError

    async def get_usage(self, key_id: str) -> int | None:
        raise NotImplementedError

    async def increment_usage(self, key_id: str) -> bool:
        raise NotImplementedError

    async def reset_usage(self, key_id: str) -> bool:
        raise NotImplementedError

    async def get_or_create_user(
        self, email: str, name: str | None = None, image: str | None = None
    ) -> UserSnapshot:
        raise NotImplementedError

    async def create(self, user_id: str | None, name: str, key: str) -> ApiKeySnapshot:
        raise NotImplementedError

    async def get_for_owner(self, key_id: str, user_id: str) -> ApiKeySnapshot | None:
        raise NotImplementedError

    async def rename(self, key_id: str, user_id: str, name: str) -> ApiKeySnapshot | None:
        raise NotImplementedError

    async def delete(self, key_id: str, user_id: str) -> bool:
        raise NotImplementedError

    async def list_by_owner(self, user_id: str) -> list[ApiKeySnapshot]:
        raise NotImplementedError


class UnconfiguredKeyStore(KeyStore):
    """Stand-in used when no database URL is configured."""

    configured = False

    def _fail(self):
        raise StoreNotConfiguredError()

    async def find_by_key(self, key: str) -> ApiKeySnapshot | None:
        self._fail()

    async def get_usage(self, key_id: str) -> int | None:
        self._fail()

    async def increment_usage(self, key_id: str) -> bool:
        self._fail()

    async def reset_usage(self, key_id: str) -> bool:
        self._fail()

    async def get_or_create_user(
        self, email: str, name: str | None = None, image: str | None = None
    ) -> UserSnapshot:
        self._fail()

    async def create(self, user_id: str | None, name: str, key: str) -> ApiKeySnapshot:
        self._fail()

    async def get_for_owner(self, key_id: str, user_id: str) -> ApiKeySnapshot | None:
        self._fail()

    async def rename(self, key_id: str, user_id: str, name: str) -> ApiKeySnapshot | None:
        self._fail()

    async def delete(self, key_id: str, user_id: str) -> bool:
        self._fail()

    async def list_by_owner(self, user_id: str) -> list[ApiKeySnapshot]:
        self._fail()


class SqlKeyStore(KeyStore):
    """Key store backed by the relational database."""

    configured = True

    def __init__(self, db: DatabaseManager, service: ApiKeyService | None = None):
        self.db = db
        self.service = service or ApiKeyService()

    @asynccontextmanager
    async def _session(self, action: str) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self.db.get_session() as session:
                yield session
        except (SQLAlchemyError, OSError) as exc:
            logger.error("Key store failed to %s", action, exc_info=True)
            # Driver-level message only; the SQLAlchemy wrapper embeds the statement.
            raise StoreError(str(getattr(exc, "orig", None) or exc)) from exc

    async def find_by_key(self, key: str) -> ApiKeySnapshot | None:
        async with self._session("look up key") as session:
            record = await self.service.get_by_key(session, key)
            return ApiKeySnapshot.from_model(record) if record else None

    async def get_usage(self, key_id: str) -> int | None:
        async with self._session("read usage") as session:
            record = await self.service.get_by_id(session, key_id)
            return (record.usage or 0) if record else None

    async def increment_usage(self, key_id: str) -> bool:
        """Charge one request. Failures are logged and reported as False."""
        try:
            async with self._session("increment usage") as session:
                try:
                    return await self.service.increment_usage(session, key_id)
                except NotSupportedError:
                    logger.warning(
                        "Atomic usage increment not supported, falling back to read-then-write"
                    )
                    await session.rollback()
                    return await self.service.increment_usage_unsafe(session, key_id)
        except StoreError as exc:
            logger.error("Failed to increment usage for key %s: %s", key_id, exc.message)
            return False

    async def reset_usage(self, key_id: str) -> bool:
        try:
            async with self._session("reset usage") as session:
                return await self.service.set_usage(session, key_id, 0)
        except StoreError as exc:
            logger.error("Failed to reset usage for key %s: %s", key_id, exc.message)
            return False

    async def get_or_create_user(
        self, email: str, name: str | None = None, image: str | None = None
    ) -> UserSnapshot:
        async with self._session("get or create user") as session:
            user = await self.service.get_or_create_user(session, email, name, image)
            return UserSnapshot(id=user.id, email=user.email, name=user.name, image=user.image)

    async def create(self, user_id: str | None, name: str, key: str) -> ApiKeySnapshot:
        async with self._session("create key") as session:
            record = await self.service.create_key(session, user_id, name, key)
            return ApiKeySnapshot.from_model(record)

    async def get_for_owner(self, key_id: str, user_id: str) -> ApiKeySnapshot | None:
        async with self._session("fetch key") as session:
            record = await self.service.get_for_owner(session, key_id, user_id)
            return ApiKeySnapshot.from_model(record) if record else None

    async def rename(self, key_id: str, user_id: str, name: str) -> ApiKeySnapshot | None:
        async with self._session("rename key") as session:
            record = await self.service.rename_key(session, key_id, user_id, name)
            return ApiKeySnapshot.from_model(record) if record else None

    async def delete(self, key_id: str, user_id: str) -> bool:
        async with self._session("delete key") as session:
            return await self.service.delete_key(session, key_id, user_id)

    async def list_by_owner(self, user_id: str) -> list[ApiKeySnapshot]:
        async with self._session("list keys") as session:
            records = await self.service.list_by_owner(session, user_id)
            return [ApiKeySnapshot.from_model(r) for r in records]


def build_key_store(settings: BlingoSettings, db: DatabaseManager | None = None) -> KeyStore:
    """Return the live store when a database is configured, else the unconfigured one."""
    if not settings.store_configured:
        return UnconfiguredKeyStore()
    return SqlKeyStore(db or DatabaseManager(settings))
