"""
User endpoints
==============

POST /api/v1/users                  -- sign up (starts with the signup credits)
GET  /api/v1/users/me               -- profile and credit balance
GET  /api/v1/users/me/preferences   -- ride preferences
PUT  /api/v1/users/me/preferences   -- save ride preferences
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_actor_id, get_db, get_uow
from carpool.api.middleware import RATE_LIMIT, limiter
from carpool.api.schemas import (
    PreferencesRequest,
    PreferencesResponse,
    UserCreateRequest,
    UserResponse,
)
from carpool.infrastructure.unit_of_work import UnitOfWork
from carpool.services.users import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", status_code=201, response_model=UserResponse, summary="Sign up")
@limiter.limit(RATE_LIMIT)
async def register_user(
    request: Request,
    body: UserCreateRequest,
    uow: UnitOfWork = Depends(get_uow),
):
    return await uow.run(
        lambda session: UserService(session).register_user(body.name, body.email),
        name="register_user",
    )


@router.get("/me", response_model=UserResponse, summary="Current user")
@limiter.limit(RATE_LIMIT)
async def get_me(
    request: Request,
    actor_id: int = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return await UserService(db).get_user(actor_id)


@router.get(
    "/me/preferences",
    response_model=PreferencesResponse,
    summary="Ride preferences of the current user",
)
@limiter.limit(RATE_LIMIT)
async def get_preferences(
    request: Request,
    actor_id: int = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return await UserService(db).get_preferences(actor_id)


@router.put(
    "/me/preferences",
    response_model=PreferencesResponse,
    summary="Save ride preferences",
)
@limiter.limit(RATE_LIMIT)
async def put_preferences(
    request: Request,
    body: PreferencesRequest,
    actor_id: int = Depends(get_actor_id),
    uow: UnitOfWork = Depends(get_uow),
):
    return await uow.run(
        lambda session: UserService(session).upsert_preferences(
            actor_id, body.model_dump()
        ),
        name="upsert_preferences",
    )
