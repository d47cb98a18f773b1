"""User identities, their credit balance and ride preferences."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from carpool.config import settings
from carpool.domain.enums import UserRole
from carpool.domain.errors import DuplicateEmail, UserNotFound
from carpool.infrastructure.models import UserModel, UserPreferencesModel
from carpool.infrastructure.repositories import UserRepository

logger = logging.getLogger(__name__)

PREFERENCE_FLAGS = ("smoker", "pets", "music", "chatter")


class UserService:
    def __init__(self, session: AsyncSession):
        self.users = UserRepository(session)

    async def register_user(
        self,
        name: str,
        email: str,
        *,
        role: UserRole = UserRole.PASSENGER,
        credits: float | None = None,
    ) -> UserModel:
        if await self.users.get_by_email(email):
            raise DuplicateEmail(email)
        user = await self.users.create(
            UserModel(
                name=name,
                email=email,
                role=role,
                credits=settings.signup_credits if credits is None else credits,
            )
        )
        logger.info("User %d registered with %.2f credits", user.id, user.credits)
        return user

    async def get_user(self, user_id: int) -> UserModel:
        user = await self.users.get_fresh(user_id)
        if user is None:
            raise UserNotFound(user_id)
        return user

    async def get_preferences(self, user_id: int) -> UserPreferencesModel:
        await self.get_user(user_id)
        preferences = await self.users.get_preferences(user_id)
        if preferences is None:
            # defaults, not persisted until the user saves them
            preferences = UserPreferencesModel(
                user_id=user_id, smoker=False, pets=False, music=True, chatter=True
            )
        return preferences

    async def upsert_preferences(self, user_id: int, flags: dict) -> UserPreferencesModel:
        await self.get_user(user_id)
        preferences = await self.users.get_preferences(user_id)
        if preferences is None:
            preferences = await self.users.add_preferences(
                UserPreferencesModel(
                    user_id=user_id, smoker=False, pets=False, music=True, chatter=True
                )
            )
        for flag in PREFERENCE_FLAGS:
            if flags.get(flag) is not None:
                setattr(preferences, flag, flags[flag])
        return preferences
