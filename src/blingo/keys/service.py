"""API key CRUD service — session-scoped queries against users and api_keys."""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from blingo.keys.models import ApiKeyModel, UserModel


class ApiKeyService:
    """User and API key persistence operations."""

    # ── Users ──

    async def get_user_by_email(
        self, session: AsyncSession, email: str
    ) -> UserModel | None:
        result = await session.execute(
            select(UserModel).where(UserModel.email == email)
        )
        return result.scalar_one_or_none()

    async def get_or_create_user(
        self,
        session: AsyncSession,
        email: str,
        name: str | None = None,
        image: str | None = None,
    ) -> UserModel:
        """Return the user for ``email``, creating it on first sight."""
        user = await self.get_user_by_email(session, email)
        if user is not None:
            if name and user.name != name:
                user.name = name
            if image and user.image != image:
                user.image = image
            await session.flush()
            return user
        user = UserModel(email=email, name=name, image=image)
        session.add(user)
        await session.flush()
        return user

    # ── Keys ──

    async def create_key(
        self,
        session: AsyncSession,
        user_id: str | None,
        name: str,
        key: str,
    ) -> ApiKeyModel:
        record = ApiKeyModel(user_id=user_id, name=name, key=key, usage=0)
        session.add(record)
        await session.flush()
        return record

    async def get_by_key(
        self, session: AsyncSession, key: str
    ) -> ApiKeyModel | None:
        result = await session.execute(
            select(ApiKeyModel).where(ApiKeyModel.key == key)
        )
        return result.scalar_one_or_none()

    async def get_by_id(
        self, session: AsyncSession, key_id: str
    ) -> ApiKeyModel | None:
        return await session.get(ApiKeyModel, key_id)

    async def get_for_owner(
        self, session: AsyncSession, key_id: str, user_id: str
    ) -> ApiKeyModel | None:
        result = await session.execute(
            select(ApiKeyModel).where(
                ApiKeyModel.id == key_id,
                ApiKeyModel.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_by_owner(
        self, session: AsyncSession, user_id: str
    ) -> list[ApiKeyModel]:
        result = await session.execute(
            select(ApiKeyModel)
            .where(ApiKeyModel.user_id == user_id)
            .order_by(ApiKeyModel.created_at.desc())
        )
        return list(result.scalars().all())

    async def rename_key(
        self, session: AsyncSession, key_id: str, user_id: str, name: str
    ) -> ApiKeyModel | None:
        record = await self.get_for_owner(session, key_id, user_id)
        if record is None:
            return None
        record.name = name
        await session.flush()
        return record

    async def delete_key(
        self, session: AsyncSession, key_id: str, user_id: str
    ) -> bool:
        record = await self.get_for_owner(session, key_id, user_id)
        if record is None:
            return False
        await session.delete(record)
        await session.flush()
        return True

    # ── Usage ──

    async def increment_usage(self, session: AsyncSession, key_id: str) -> bool:
        """Atomic server-side ``usage = usage + 1``. False if the key is gone."""
        result = await session.execute(
            update(ApiKeyModel)
            .where(ApiKeyModel.id == key_id)
            .values(usage=ApiKeyModel.usage + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def increment_usage_unsafe(self, session: AsyncSession, key_id: str) -> bool:
        """Read-then-write increment; concurrent callers can lose updates."""
        record = await self.get_by_id(session, key_id)
        if record is None:
            return False
        record.usage = (record.usage or 0) + 1
        await session.flush()
        return True

    async def set_usage(self, session: AsyncSession, key_id: str, usage: int) -> bool:
        result = await session.execute(
            update(ApiKeyModel)
            .where(ApiKeyModel.id == key_id)
            .values(usage=usage)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0
