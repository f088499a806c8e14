import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi_users import BaseUserManager, FastAPIUsers, UUIDIDMixin
from fastapi_users.authentication import (
    AuthenticationBackend,
    CookieTransport,
    JWTStrategy,
)
from fastapi_users.db import SQLAlchemyUserDatabase
from sqlalchemy.ext.asyncio import AsyncSession

from comms.core.config import settings
from comms.db import get_db_session, get_user_db
from comms.models import User
from comms.realtime.keys import ParticipantKey, RoleSet
from comms.repositories.user_repository import UserRepository
from comms.schemas.participant import ParticipantType

logger = logging.getLogger(__name__)


class UserManager(UUIDIDMixin, BaseUserManager[User, uuid.UUID]):
    reset_password_token_secret = settings.SECRET
    verification_token_secret = settings.SECRET

    async def on_after_register(self, user: User, request: Optional[Request] = None):
        logger.info(f"User {user.id} has registered.")

    async def on_after_login(
        self,
        user: User,
        request: Optional[Request] = None,
        response=None,
    ):
        logger.info(f"User {user.id} has logged in.")


async def get_user_manager(user_db: SQLAlchemyUserDatabase = Depends(get_user_db)):
    yield UserManager(user_db)


transport = CookieTransport()


def get_strategy() -> JWTStrategy:
    return JWTStrategy(
        secret=settings.SECRET,
        lifetime_seconds=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        algorithm=settings.ALGORITHM,
    )


auth_backend = AuthenticationBackend(
    name="cookie",
    transport=transport,
    get_strategy=get_strategy,
)

fastapi_users = FastAPIUsers[User, uuid.UUID](get_user_manager, [auth_backend])

current_active_user = fastapi_users.current_user(active=True)


@dataclass(frozen=True)
class Actor:
    """An authenticated user acting under one specific role."""

    user: User
    role: ParticipantType

    @property
    def id(self) -> uuid.UUID:
        return self.user.id

    @property
    def key(self) -> ParticipantKey:
        return ParticipantKey(self.role, self.user.id)


async def resolve_roles(session: AsyncSession, user: User) -> RoleSet:
    grants = await UserRepository(session).get_role_grants(user.id)
    return RoleSet.from_grants(grants, is_superuser=user.is_superuser)


async def current_customer(
    user: User = Depends(current_active_user),
    session: AsyncSession = Depends(get_db_session),
) -> Actor:
    """Customers, and accounts holding no role grant at all, act as ``user``."""
    roles = await resolve_roles(session, user)
    if ParticipantType.USER not in roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Customer access required"
        )
    return Actor(user=user, role=ParticipantType.USER)


async def current_driver(
    user: User = Depends(current_active_user),
    session: AsyncSession = Depends(get_db_session),
) -> Actor:
    roles = await resolve_roles(session, user)
    if ParticipantType.DRIVER not in roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Driver access required"
        )
    return Actor(user=user, role=ParticipantType.DRIVER)


async def current_admin(
    user: User = Depends(current_active_user),
    session: AsyncSession = Depends(get_db_session),
) -> Actor:
    roles = await resolve_roles(session, user)
    if ParticipantType.ADMIN not in roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required"
        )
    return Actor(user=user, role=ParticipantType.ADMIN)
