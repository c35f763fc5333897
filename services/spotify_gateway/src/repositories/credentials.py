"""Credential store for per-user OAuth tokens."""

import logging
from datetime import UTC, datetime
from typing import Any, cast

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError

from services.spotify_gateway.src.database import DatabaseManager
from services.spotify_gateway.src.exceptions import PersistenceError
from services.spotify_gateway.src.models.user import User, UserCredential

logger = logging.getLogger(__name__)

_TOKEN_FIELDS = {"access_token", "refresh_token", "expires_in", "api_token"}


class CredentialStore:
    """Keyed persistence of user credentials, one row per external id.

    Every method opens its own session; the returned ``UserCredential`` is a
    detached snapshot and writing to it has no effect on storage.
    """

    def __init__(self, db_manager: DatabaseManager) -> None:
        """Initialize the store.

        Args:
            db_manager: Database manager providing sessions
        """
        self.db = db_manager

    async def get(self, external_id: str) -> UserCredential | None:
        """Load the credential stored for an external id.

        Args:
            external_id: Caller-supplied user id

        Returns:
            The credential, or None when the user never authorized

        Raises:
            PersistenceError: If the database cannot be read
        """
        try:
            async with self.db.get_session() as session:
                result = await session.execute(select(User).where(User.user_id == external_id))
                user = cast("User | None", result.scalar_one_or_none())
                return user.to_credential() if user else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to load credentials for {external_id}: {e}")
            raise PersistenceError(f"Failed to load credentials for {external_id}", "get") from e

    async def upsert(self, external_id: str, **fields: Any) -> UserCredential:
        """Insert or update the credential row for an external id.

        Updates are issued as a single UPDATE so the access/refresh pair is
        always written together.

        Args:
            external_id: Caller-supplied user id
            **fields: Any of access_token, refresh_token, expires_in, api_token

        Returns:
            The stored credential

        Raises:
            ValueError: If an unknown field is passed
            PersistenceError: If the database cannot be written
        """
        unknown = set(fields) - _TOKEN_FIELDS
        if unknown:
            raise ValueError(f"Unknown credential fields: {sorted(unknown)}")

        now = datetime.now(UTC)
        try:
            async with self.db.get_session() as session:
                stmt = (
                    update(User)
                    .where(User.user_id == external_id)
                    .values(**fields, updated_at=now)
                    .returning(User)
                )
                result = await session.execute(stmt)
                user = cast("User | None", result.scalar_one_or_none())

                if user is None:
                    user = User(user_id=external_id, created_at=now, updated_at=now, **fields)
                    session.add(user)
                    await session.flush()

                return user.to_credential()
        except SQLAlchemyError as e:
            logger.error(f"Failed to store credentials for {external_id}: {e}")
            raise PersistenceError(f"Failed to store credentials for {external_id}", "upsert") from e

    async def delete(self, external_id: str) -> bool:
        """Delete the credential row for an external id.

        Args:
            external_id: Caller-supplied user id

        Returns:
            True if a row was deleted, False if none existed

        Raises:
            PersistenceError: If the database cannot be written
        """
        try:
            async with self.db.get_session() as session:
                result = await session.execute(delete(User).where(User.user_id == external_id))
                deleted = cast("int", result.rowcount) > 0
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete credentials for {external_id}: {e}")
            raise PersistenceError(f"Failed to delete credentials for {external_id}", "delete") from e

        if deleted:
            logger.info(f"Deleted credentials for {external_id}")
        return deleted
