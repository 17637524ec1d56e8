"""FastAPI dependency injection helpers."""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carpool.domain.entities import Actor
from carpool.domain.enums import Role
from carpool.infrastructure.database import async_session_factory
from carpool.infrastructure.geo import GoogleMapsClient
from carpool.infrastructure.policy_store import RedisPolicyStore
from carpool.infrastructure.redis_client import get_redis
from carpool.services.ride_engine import RideEngine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session_factory


async def get_policy_store() -> RedisPolicyStore:
    return RedisPolicyStore(await get_redis())


def get_maps(request: Request) -> GoogleMapsClient:
    """Maps client sharing the app-wide ``httpx.AsyncClient`` opened in lifespan."""
    return GoogleMapsClient(request.app.state.http_client)


async def get_engine(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    policy_store: RedisPolicyStore = Depends(get_policy_store),
    maps: GoogleMapsClient = Depends(get_maps),
) -> RideEngine:
    return RideEngine(session_factory, policy_store, maps)


async def get_actor(
    x_user_id: Optional[int] = Header(None),
    x_user_role: Optional[str] = Header(None),
    x_user_approved: bool = Header(False),
) -> Actor:
    """
    Identity resolved upstream by the auth gateway, forwarded as headers.
    Verifying credentials is the gateway's job, not this service's.
    """
    if x_user_id is None or not x_user_role:
        raise HTTPException(status_code=401, detail="Not authorized, no identity.")
    try:
        role = Role(x_user_role.lower())
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Unknown role: {x_user_role}")
    return Actor(id=x_user_id, role=role, approved_to_drive=x_user_approved)
