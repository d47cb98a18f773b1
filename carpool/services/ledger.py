"""
Credit ledger on ``users.credits``.

Both operations are a single conditional UPDATE, so a debit can never drive
a balance negative even when two debits on the same user race.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from carpool.domain.errors import InsufficientFunds, UserNotFound
from carpool.domain.refunds import round_money
from carpool.infrastructure.repositories import UserRepository

logger = logging.getLogger(__name__)


class Ledger:
    def __init__(self, session: AsyncSession):
        self.users = UserRepository(session)

    async def debit(self, user_id: int, amount: float) -> None:
        amount = _positive(amount)
        if await self.users.debit_if_sufficient(user_id, amount):
            logger.info("Debited %.2f credits from user %d", amount, user_id)
            return

        user = await self.users.get_fresh(user_id)
        if user is None:
            raise UserNotFound(user_id)
        raise InsufficientFunds(user_id, required=amount, available=user.credits)

    async def credit(self, user_id: int, amount: float) -> None:
        amount = _positive(amount)
        if not await self.users.add_credits(user_id, amount):
            raise UserNotFound(user_id)
        logger.info("Credited %.2f credits to user %d", amount, user_id)

    async def balance(self, user_id: int) -> float:
        user = await self.users.get_fresh(user_id)
        if user is None:
            raise UserNotFound(user_id)
        return user.credits


def _positive(amount: float) -> float:
    amount = round_money(amount)
    if amount <= 0:
        raise ValueError(f"Ledger amounts must be positive, got {amount}")
    return amount
