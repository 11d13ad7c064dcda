"""Profile store: registered identities and their opaque key material."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from rivift.realtime.locks import KeyedLock

from app.models import User
from app.schemas import PublicUser, UserCreate, UserRead

logger = logging.getLogger(__name__)

PROFILE_FIELDS = frozenset({"display_name", "icon", "public_key", "encrypted_private_key"})


class DuplicateIdentity(Exception):
    """Raised when registering an identity that already exists."""


class ProfileStore:
    def __init__(self, session_factory: sessionmaker[Session], locks: KeyedLock | None = None) -> None:
        self._session_factory = session_factory
        self._locks = locks or KeyedLock()

    async def create_user(self, payload: UserCreate) -> UserRead:
        async with self._locks.hold(f"profile:{payload.email}"):
            return await run_in_threadpool(self._create_user, payload)

    def _create_user(self, payload: UserCreate) -> UserRead:
        try:
            with self._session_factory.begin() as db:
                if db.get(User, payload.email) is not None:
                    raise DuplicateIdentity(payload.email)
                user = User(**payload.model_dump())
                db.add(user)
                db.flush()
                created = UserRead.model_validate(user)
        except IntegrityError as exc:
            raise DuplicateIdentity(payload.email) from exc
        logger.info("Registered identity %s", payload.email)
        return created

    async def get_user(self, identity: str) -> UserRead | None:
        return await run_in_threadpool(self._get_user, identity)

    def _get_user(self, identity: str) -> UserRead | None:
        with self._session_factory() as db:
            user = db.get(User, identity)
            return UserRead.model_validate(user) if user is not None else None

    async def find_users(self, identities: Iterable[str]) -> list[PublicUser]:
        return await run_in_threadpool(self._find_users, set(identities))

    def _find_users(self, identities: set[str]) -> list[PublicUser]:
        if not identities:
            return []
        with self._session_factory() as db:
            stmt = select(User).where(User.email.in_(identities)).order_by(User.email)
            return [PublicUser.model_validate(user) for user in db.execute(stmt).scalars()]

    async def update_profile(self, identity: str, fields: Mapping[str, str | None]) -> bool:
        """Update profile fields in place; relationship edges are never touched."""

        unknown = set(fields) - PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Unknown profile fields: {', '.join(sorted(unknown))}")
        async with self._locks.hold(f"profile:{identity}"):
            return await run_in_threadpool(self._update_profile, identity, dict(fields))

    def _update_profile(self, identity: str, fields: dict[str, str | None]) -> bool:
        with self._session_factory.begin() as db:
            user = db.get(User, identity)
            if user is None:
                return False
            changed = False
            for name, value in fields.items():
                if getattr(user, name) != value:
                    setattr(user, name, value)
                    changed = True
            return changed
