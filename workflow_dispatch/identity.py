"""Identity/profile lookup used to build the workflow auth envelope."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from workflow_dispatch.db import Database, from_iso, to_iso
from workflow_dispatch.models import UserProfile
from workflow_dispatch.results import ErrorKind, Ok, Result, fail, try_catch

LOGGER = logging.getLogger(__name__)


class IdentityLookup(ABC):
    """Resolves a user id to the profile fields the workflow engine needs."""

    @abstractmethod
    async def get_profile(self, user_id: str) -> Result[UserProfile]:
        """Return the profile, or a ``PROFILE_NOT_FOUND`` failure."""


class DatabaseIdentityLookup(IdentityLookup):
    """Profile lookup backed by the ``profiles`` table."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def get_profile(self, user_id: str) -> Result[UserProfile]:
        def action() -> Result[UserProfile]:
            with self._db.connect() as conn:
                row = conn.execute(
                    """
                    SELECT id, email, full_name, role, plan_name, credit_balance, created_at
                    FROM profiles
                    WHERE id = ?
                    """,
                    (user_id,),
                ).fetchone()
            if row is None:
                return fail(ErrorKind.PROFILE_NOT_FOUND, f"User profile not found: {user_id}")
            return Ok(
                UserProfile(
                    id=row["id"],
                    email=row["email"],
                    full_name=row["full_name"],
                    role=row["role"],
                    plan_name=row["plan_name"],
                    credit_balance=row["credit_balance"] or 0,
                    created_at=from_iso(row["created_at"]),
                )
            )

        result = try_catch(action, kind=ErrorKind.PROFILE_NOT_FOUND)
        if not result.success:
            LOGGER.warning("Profile lookup failed for user %s: %s", user_id, result.message)
        return result

    def upsert_profile(self, profile: UserProfile) -> None:
        with self._db.connect() as conn:
            conn.execute(
                """
                INSERT INTO profiles(id, email, full_name, role, plan_name, credit_balance, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    email=excluded.email,
                    full_name=excluded.full_name,
                    role=excluded.role,
                    plan_name=excluded.plan_name,
                    credit_balance=excluded.credit_balance,
                    created_at=excluded.created_at
                """,
                (
                    profile.id,
                    profile.email,
                    profile.full_name,
                    profile.role,
                    profile.plan_name,
                    profile.credit_balance,
                    to_iso(profile.created_at) if profile.created_at else None,
                ),
            )
